#!/usr/bin/env python3
"""
Market Ledger

Share-based accounting for the market asset. LP shares claim total assets,
debt shares claim total debt, and interest accrual grows both sides before
any share price is read.

Cash actually held by the market is total_assets - total_debt + reserve_balance.
Free liquidity excludes the reserve; withdrawals may draw reserve cash.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple
import logging

from .errors import ErrorCode, RiskLimitError, ValidationError
from .interest_rate import InterestRateModel
from .math import PERCENT_SCALE, MarketMath
from .staking_reward import StakingRewardModel


logger = logging.getLogger(__name__)


@dataclass
class AccrualResult:
    """Outcome of a single accrual step"""
    elapsed: int = 0
    rate: int = 0
    interest: int = 0
    reserve_interest: int = 0
    lp_interest: int = 0
    staking_reward_shares: int = 0


@dataclass
class SocializationResult:
    """How a bad-debt shortfall was absorbed"""
    bad_debt: int
    reserve_used: int = 0
    staked_shares_burned: int = 0
    staked_loss: int = 0
    diluted_loss: int = 0


class MarketLedger:
    """Global ledger for the market asset"""

    def __init__(self, asset: str, decimals: int = 8, asset_cap: int = 0,
                 protocol_reserve_percentage: int = 0):
        self.asset = asset
        self.decimals = decimals
        self.asset_cap = asset_cap
        self.protocol_reserve_percentage = protocol_reserve_percentage

        self.total_assets = 0
        self.total_debt = 0
        self.lp_share_supply = 0
        self.debt_share_supply = 0
        self.reserve_balance = 0
        self.last_accrual_time = 0

        self.lp_balances: Dict[str, int] = {}

    @property
    def free_liquidity(self) -> int:
        """Market asset lendable to borrowers"""
        return max(self.total_assets - self.total_debt, 0)

    @property
    def cash(self) -> int:
        """Market asset held, including reserve cash"""
        return max(self.total_assets - self.total_debt + self.reserve_balance, 0)

    @property
    def utilization(self) -> int:
        return InterestRateModel.utilization(self.total_assets, self.total_debt)

    # Accrual

    def accrue_interest(self, now: int, rate_model: InterestRateModel, enabled: bool = True,
                        reward_model: Optional[StakingRewardModel] = None,
                        staking_holder: Optional[str] = None) -> AccrualResult:
        """Grow total debt to `now`; a no-op when no time has elapsed"""
        elapsed = now - self.last_accrual_time
        if elapsed <= 0:
            return AccrualResult()

        self.last_accrual_time = now
        if not enabled or self.total_debt == 0:
            return AccrualResult(elapsed=elapsed)

        rate = rate_model.current_rate(self.total_assets, self.total_debt)
        factor = rate_model.compounded_interest(rate, elapsed)
        interest = rate_model.total_interest(factor, self.total_debt)

        reserve_interest = MarketMath.percent_of(interest, self.protocol_reserve_percentage)
        lp_interest = interest - reserve_interest

        self.total_debt = MarketMath.checked_add(self.total_debt, interest)
        self.reserve_balance += reserve_interest
        self.total_assets = MarketMath.checked_add(self.total_assets, lp_interest)

        reward_shares = 0
        if reward_model is not None and staking_holder is not None and lp_interest > 0:
            reward_shares = self._mint_staking_reward(lp_interest, reward_model, staking_holder)

        return AccrualResult(
            elapsed=elapsed,
            rate=rate,
            interest=interest,
            reserve_interest=reserve_interest,
            lp_interest=lp_interest,
            staking_reward_shares=reward_shares,
        )

    def _mint_staking_reward(self, lp_interest: int, reward_model: StakingRewardModel,
                             staking_holder: str) -> int:
        staked = self.lp_balance_of(staking_holder)
        percentage = reward_model.reward_percentage(
            reward_model.staked_percentage(staked, self.lp_share_supply)
        )
        reward_assets = MarketMath.percent_of(lp_interest, percentage)
        assets_before_reward = self.total_assets - reward_assets
        if reward_assets == 0 or assets_before_reward <= 0:
            return 0

        # priced so that only the reward itself dilutes other LPs
        shares = reward_assets * self.lp_share_supply // assets_before_reward
        self._mint_lp(staking_holder, shares)
        return shares

    # LP shares

    def lp_balance_of(self, holder: str) -> int:
        return self.lp_balances.get(holder, 0)

    def convert_to_shares(self, amount: int) -> int:
        if self.lp_share_supply == 0 or self.total_assets == 0:
            return amount
        return MarketMath.mul_div_down(amount, self.lp_share_supply, self.total_assets)

    def convert_to_assets(self, shares: int) -> int:
        if self.lp_share_supply == 0:
            return shares
        return MarketMath.mul_div_down(shares, self.total_assets, self.lp_share_supply)

    def deposit(self, holder: str, amount: int) -> int:
        """Add liquidity; returns LP shares minted"""
        if amount == 0:
            raise ValidationError(ErrorCode.ZERO_AMOUNT, "Deposit amount must be positive")
        if self.total_assets + amount > self.asset_cap:
            raise RiskLimitError(ErrorCode.ASSET_CAP, f"Deposit would exceed asset cap {self.asset_cap}")

        shares = self.convert_to_shares(amount)
        if shares == 0:
            raise ValidationError(ErrorCode.ZERO_AMOUNT, "Deposit too small to mint a share")

        self.total_assets = MarketMath.checked_add(self.total_assets, amount)
        self._mint_lp(holder, shares)
        return shares

    def withdraw(self, holder: str, amount: int) -> int:
        """Remove `amount` of liquidity; returns LP shares burned"""
        if amount == 0:
            raise ValidationError(ErrorCode.ZERO_AMOUNT, "Withdraw amount must be positive")
        if self.total_assets == 0:
            raise RiskLimitError(ErrorCode.INSUFFICIENT_LIQUIDITY, "Market holds no assets")

        shares = MarketMath.mul_div_up(amount, self.lp_share_supply, self.total_assets)
        self._burn_for_assets(holder, shares, amount)
        return shares

    def redeem(self, holder: str, shares: int) -> int:
        """Burn `shares`; returns market asset paid out"""
        if shares == 0:
            raise ValidationError(ErrorCode.ZERO_AMOUNT, "Redeem shares must be positive")
        amount = self.convert_to_assets(shares)
        if amount == 0:
            raise ValidationError(ErrorCode.ZERO_AMOUNT, "Shares redeem for nothing")
        self._burn_for_assets(holder, shares, amount)
        return amount

    def _burn_for_assets(self, holder: str, shares: int, amount: int):
        balance = self.lp_balance_of(holder)
        if shares > balance:
            raise ValidationError(
                ErrorCode.INSUFFICIENT_LP_SHARES,
                f"{holder} holds {balance} LP shares, needs {shares}"
            )
        if amount > self.cash:
            raise RiskLimitError(
                ErrorCode.INSUFFICIENT_LIQUIDITY,
                f"Requested {amount}, market holds {self.cash}"
            )
        self._burn_lp(holder, shares)
        self.total_assets -= amount

    def transfer_lp(self, sender: str, recipient: str, shares: int):
        balance = self.lp_balance_of(sender)
        if shares > balance:
            raise ValidationError(ErrorCode.INSUFFICIENT_LP_SHARES, f"{sender} holds {balance} LP shares")
        self.lp_balances[sender] = balance - shares
        self.lp_balances[recipient] = self.lp_balance_of(recipient) + shares

    def _mint_lp(self, holder: str, shares: int):
        self.lp_share_supply = MarketMath.checked_add(self.lp_share_supply, shares)
        self.lp_balances[holder] = self.lp_balance_of(holder) + shares

    def _burn_lp(self, holder: str, shares: int):
        self.lp_balances[holder] = self.lp_balance_of(holder) - shares
        self.lp_share_supply -= shares

    # Debt shares

    def debt_value(self, debt_shares: int) -> int:
        """Market asset owed for debt shares, rounded up"""
        if self.debt_share_supply == 0:
            return 0
        return MarketMath.mul_div_up(debt_shares, self.total_debt, self.debt_share_supply)

    def borrow(self, amount: int) -> int:
        """Draw `amount` of free liquidity; returns debt shares minted"""
        if amount == 0:
            raise ValidationError(ErrorCode.ZERO_AMOUNT, "Borrow amount must be positive")
        if amount > self.free_liquidity:
            raise RiskLimitError(
                ErrorCode.INSUFFICIENT_FREE_LIQUIDITY,
                f"Requested {amount}, free liquidity {self.free_liquidity}"
            )

        if self.debt_share_supply == 0 or self.total_debt == 0:
            shares = amount
        else:
            shares = MarketMath.mul_div_down(amount, self.debt_share_supply, self.total_debt)

        self.total_debt = MarketMath.checked_add(self.total_debt, amount)
        self.debt_share_supply = MarketMath.checked_add(self.debt_share_supply, shares)
        return shares

    def repay(self, debt_shares: int, amount: int) -> Tuple[int, int]:
        """
        Pay down debt held as `debt_shares`.

        Returns (shares_burned, amount_used); anything above the owed value
        is left unspent.
        """
        if amount == 0:
            raise ValidationError(ErrorCode.ZERO_AMOUNT, "Repay amount must be positive")
        owed = self.debt_value(debt_shares)
        if owed == 0:
            raise ValidationError(ErrorCode.NO_DEBT, "Position has no debt")

        if amount >= owed:
            shares, used = debt_shares, owed
        else:
            shares = min(MarketMath.mul_div_down(amount, self.debt_share_supply, self.total_debt), debt_shares)
            used = amount

        self.burn_debt(shares, used)
        return shares, used

    def burn_debt(self, shares: int, amount: int):
        self.debt_share_supply -= shares
        self.total_debt = max(self.total_debt - amount, 0)

    # Reserve and losses

    def add_fee_income(self, amount: int):
        """Fees earned for LPs (flash loans)"""
        self.total_assets = MarketMath.checked_add(self.total_assets, amount)

    def deposit_to_reserve(self, amount: int):
        if amount == 0:
            raise ValidationError(ErrorCode.ZERO_AMOUNT, "Reserve deposit must be positive")
        self.reserve_balance = MarketMath.checked_add(self.reserve_balance, amount)

    def withdraw_from_reserve(self, amount: int):
        if amount == 0:
            raise ValidationError(ErrorCode.ZERO_AMOUNT, "Reserve withdrawal must be positive")
        if amount > self.reserve_balance or amount > self.cash:
            raise ValidationError(
                ErrorCode.INSUFFICIENT_BALANCE,
                f"Reserve holds {self.reserve_balance}, cash {self.cash}, requested {amount}"
            )
        self.reserve_balance -= amount

    def socialize_bad_debt(self, debt_shares: int, staking_holder: Optional[str] = None) -> SocializationResult:
        """
        Write off `debt_shares` that no collateral backs.

        The shortfall is drawn from the reserve first, then from LP shares held
        by the staking pool, and whatever remains dilutes every LP.
        """
        bad_debt = self.debt_value(debt_shares)
        self.burn_debt(debt_shares, bad_debt)
        result = SocializationResult(bad_debt=bad_debt)
        if bad_debt == 0:
            return result

        result.reserve_used = min(bad_debt, self.reserve_balance)
        self.reserve_balance -= result.reserve_used
        remaining = bad_debt - result.reserve_used
        if remaining == 0:
            return result

        if staking_holder is not None and self.total_assets > 0:
            staked = self.lp_balance_of(staking_holder)
            shares_needed = MarketMath.mul_div_up(remaining, self.lp_share_supply, self.total_assets)
            burned = min(staked, shares_needed)
            burned_value = min(MarketMath.mul_div_down(burned, self.total_assets, self.lp_share_supply), remaining)
            self._burn_lp(staking_holder, burned)
            result.staked_shares_burned = burned
            result.staked_loss = burned_value

        self.total_assets = max(self.total_assets - remaining, 0)
        result.diluted_loss = remaining - result.staked_loss

        logger.warning(
            "Socialized bad debt %d: reserve %d, staked %d (%d shares), diluted %d",
            bad_debt, result.reserve_used, result.staked_loss,
            result.staked_shares_burned, result.diluted_loss
        )
        return result

    def get_state(self) -> dict:
        return {
            "total_assets": self.total_assets,
            "total_debt": self.total_debt,
            "lp_share_supply": self.lp_share_supply,
            "debt_share_supply": self.debt_share_supply,
            "reserve_balance": self.reserve_balance,
            "free_liquidity": self.free_liquidity,
            "utilization": self.utilization,
            "last_accrual_time": self.last_accrual_time,
        }
