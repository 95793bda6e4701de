#!/usr/bin/env python3
"""
Lending Market Engine

Owns the single market aggregate (ledger, positions, withdrawal caps, staking
pool, token balances) and exposes every user, liquidator and governance entry
point. Each entry point is a transaction: it accrues interest first, and any
failure restores the state captured when it started.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Union
import copy
import logging

from ..core.collateral import NO_DEBT_HEALTH, CollateralConfig, PositionManager, UserPosition
from ..core.errors import (
    ErrorCode, FlashLoanError, MarketError, OracleError, RiskLimitError,
    StakingError, ValidationError
)
from ..core.interest_rate import InterestRateParams, LinearKinkedInterestRateModel
from ..core.liquidation import LiquidationEngine, LiquidationMath, LiquidationQuote, LiquidationResult
from ..core.market import AccrualResult, MarketLedger
from ..core.math import PERCENT_SCALE
from ..core.oracle import ManualPriceFeed, PriceOracle
from ..core.staking import StakingPool
from ..core.staking_reward import StakingRewardModel, StakingRewardParams
from ..core.tokens import TokenLedger
from ..core.withdrawal_caps import WithdrawalCaps
from .config import MarketConfig
from .flash_loan import FlashLoanReceiver
from .governance import FeatureFlag, MarketGovernance
from .state import ChainState


logger = logging.getLogger(__name__)

BPS_SCALE = 10_000


@dataclass
class BatchLiquidationEntry:
    """One instruction of a batch liquidation"""
    borrower: str
    repay_amount: int
    min_collateral_expected: int = 0


BatchOutcome = Union[LiquidationResult, MarketError, None]


class LendingMarketEngine:
    """Transactional entry points over one lending market"""

    # Objects restored in place when a transaction fails
    TRANSACTIONAL_STATE = (
        "tokens", "governance", "rate_model", "reward_model",
        "ledger", "positions", "caps", "staking",
    )

    def __init__(self, config: Optional[MarketConfig] = None, oracle: Optional[PriceOracle] = None):
        self.config = config or MarketConfig()
        self.address = self.config.market_address
        self.oracle = oracle or ManualPriceFeed()
        self.chain = ChainState(self.config.genesis_time, self.config.seconds_per_block)

        self.tokens = TokenLedger()
        self.governance = MarketGovernance(self.config.governance, self.config.guardian)
        self.rate_model = LinearKinkedInterestRateModel(self.config.launch_principal)
        self.reward_model = StakingRewardModel(self.config.launch_principal)

        self.ledger = MarketLedger(
            self.config.market_asset,
            decimals=self.config.market_decimals,
            asset_cap=self.config.asset_cap,
            protocol_reserve_percentage=self.config.protocol_reserve_percentage,
        )
        self.ledger.last_accrual_time = self.chain.timestamp
        self.positions = PositionManager(self.config.market_decimals, self.config.max_collaterals)
        self.liquidations = LiquidationEngine(self.ledger, self.positions)

        caps_config = self.config.withdrawal_caps
        self.caps = WithdrawalCaps(self.address, caps_config.refill_window, caps_config.decay_window)
        self.caps.set_lp_cap_factor(caps_config.lp_cap_factor)
        self.caps.set_debt_cap_factor(caps_config.debt_cap_factor)

        self.staking = StakingPool(self.config.staking.address, self.config.staking.cooldown_blocks)

        self.pyth_time_delta = self.config.pyth_time_delta
        self.flash_loan_fee_bps = self.config.flash_loan_fee_bps
        self.allowed_callbacks: Dict[str, FlashLoanReceiver] = {}
        self._flash_loan_active = False

        self.liquidation_events: List[dict] = []
        self.last_accrual: AccrualResult = AccrualResult()

    @property
    def block(self) -> int:
        return self.chain.block_height

    @property
    def now(self) -> int:
        return self.chain.timestamp

    @property
    def market_asset(self) -> str:
        return self.config.market_asset

    # Transaction plumbing

    @contextmanager
    def _transaction(self, action: str):
        if self._flash_loan_active:
            raise FlashLoanError(ErrorCode.FLASH_LOAN_ACTIVE, f"{action} called while a flash loan is open")
        snapshot = copy.deepcopy({name: getattr(self, name) for name in self.TRANSACTIONAL_STATE})
        try:
            yield
        except Exception as exc:
            for name, saved in snapshot.items():
                live = getattr(self, name)
                live.__dict__.clear()
                live.__dict__.update(saved.__dict__)
            if isinstance(exc, MarketError):
                logger.warning("%s rejected: %s", action, exc)
            raise

    def _accrue(self) -> AccrualResult:
        result = self.ledger.accrue_interest(
            self.now,
            self.rate_model,
            enabled=self.governance.is_enabled(FeatureFlag.INTEREST_ACCRUAL, self.block),
            reward_model=self.reward_model,
            staking_holder=self.staking.address,
        )
        if result.staking_reward_shares:
            self.staking.add_reward(result.staking_reward_shares)
        if result.elapsed:
            self.last_accrual = result
        return result

    def _read_prices(self, assets: Iterable[str]) -> Dict[str, int]:
        """Collateral prices plus the market asset price that values debt"""
        prices = {asset: self.oracle.read_price(asset, self.now, self.pyth_time_delta) for asset in assets}
        market_price = self.oracle.read_price(self.market_asset, self.now, self.pyth_time_delta)
        if market_price == 0:
            raise OracleError(ErrorCode.PRICE_UNAVAILABLE, f"{self.market_asset} is priced at zero")
        prices[self.market_asset] = market_price
        return prices

    def _require_health(self, position: UserPosition, prices: Dict[str, int]):
        """Max-LTV check applied after borrowing or removing collateral"""
        debt_value = self.ledger.debt_value(position.debt_shares)
        health = self.positions.health_factor(
            position, debt_value, prices, use_max_ltv=True, market_price=prices[self.market_asset]
        )
        if health < PERCENT_SCALE:
            raise RiskLimitError(
                ErrorCode.MAX_LTV,
                f"{position.owner} health at max LTV would be {health}"
            )

    def _require_staking_enabled(self):
        if not self.governance.is_enabled(FeatureFlag.STAKING, self.block):
            raise StakingError(ErrorCode.STAKING_DISABLED, "Staking is disabled")

    # Liquidity providers

    def deposit(self, caller: str, amount: int, on_behalf_of: Optional[str] = None) -> int:
        """Supply market asset from `caller`; returns LP shares minted"""
        with self._transaction("deposit"):
            self.governance.require_enabled(FeatureFlag.DEPOSIT, self.block)
            self._accrue()
            pool_size = self.ledger.free_liquidity

            self.tokens.transfer(self.market_asset, caller, self.address, amount)
            shares = self.ledger.deposit(on_behalf_of or caller, amount)
            self.caps.log_lp_inflow(self.address, amount, pool_size, self.now)

        logger.info("%s deposited %d %s for %d LP shares", caller, amount, self.market_asset, shares)
        return shares

    def withdraw(self, caller: str, amount: int, recipient: Optional[str] = None) -> int:
        """Withdraw `amount` of market asset; returns LP shares burned"""
        with self._transaction("withdraw"):
            self.governance.require_enabled(FeatureFlag.WITHDRAW, self.block)
            self._accrue()
            self.caps.check_withdrawal_lp_cap(self.address, amount, self.ledger.free_liquidity, self.now)

            shares = self.ledger.withdraw(caller, amount)
            self.tokens.transfer(self.market_asset, self.address, recipient or caller, amount)

        logger.info("%s withdrew %d %s burning %d LP shares", caller, amount, self.market_asset, shares)
        return shares

    def redeem(self, caller: str, shares: int, recipient: Optional[str] = None) -> int:
        """Burn `shares`; returns market asset paid out"""
        with self._transaction("redeem"):
            self.governance.require_enabled(FeatureFlag.WITHDRAW, self.block)
            self._accrue()
            amount = self.ledger.convert_to_assets(shares)
            self.caps.check_withdrawal_lp_cap(self.address, amount, self.ledger.free_liquidity, self.now)

            amount = self.ledger.redeem(caller, shares)
            self.tokens.transfer(self.market_asset, self.address, recipient or caller, amount)

        logger.info("%s redeemed %d LP shares for %d %s", caller, shares, amount, self.market_asset)
        return amount

    def transfer_lp_shares(self, caller: str, recipient: str, shares: int):
        with self._transaction("transfer_lp_shares"):
            if shares == 0:
                raise ValidationError(ErrorCode.ZERO_AMOUNT, "Transfer amount must be positive")
            self.ledger.transfer_lp(caller, recipient, shares)

    # Borrowers

    def borrow(self, caller: str, amount: int, receiver: Optional[str] = None) -> int:
        """Borrow against the caller's collateral; returns debt shares minted"""
        with self._transaction("borrow"):
            self.governance.require_enabled(FeatureFlag.BORROW, self.block)
            self._accrue()
            position = self.positions.get_position(caller)
            prices = self._read_prices(position.collaterals)

            self.caps.check_withdrawal_debt_cap(self.address, amount, self.ledger.free_liquidity, self.now)
            shares = self.ledger.borrow(amount)
            position.debt_shares += shares
            self._require_health(position, prices)

            position.last_update_block = self.block
            self.tokens.transfer(self.market_asset, self.address, receiver or caller, amount)

        logger.info("%s borrowed %d %s", caller, amount, self.market_asset)
        return shares

    def repay(self, caller: str, amount: int, on_behalf_of: Optional[str] = None) -> int:
        """Repay debt of `on_behalf_of` (default caller); returns the amount actually used"""
        borrower = on_behalf_of or caller
        with self._transaction("repay"):
            self.governance.require_enabled(FeatureFlag.REPAY, self.block)
            self._accrue()
            position = self.positions.get_position(borrower)

            shares, used = self.ledger.repay(position.debt_shares, amount)
            position.debt_shares -= shares
            self.tokens.transfer(self.market_asset, caller, self.address, used)

        logger.info("%s repaid %d %s for %s", caller, used, self.market_asset, borrower)
        return used

    def add_collateral(self, caller: str, asset: str, amount: int, on_behalf_of: Optional[str] = None):
        with self._transaction("add_collateral"):
            self.governance.require_enabled(FeatureFlag.ADD_COLLATERAL, self.block)
            self._accrue()
            pool_size = self.positions.total_collateral.get(asset, 0)

            self.positions.add_collateral(on_behalf_of or caller, asset, amount)
            self.tokens.transfer(asset, caller, self.address, amount)
            self.caps.log_collateral_inflow(self.address, asset, amount, pool_size, self.now)

        logger.info("%s added %d %s collateral", caller, amount, asset)

    def remove_collateral(self, caller: str, asset: str, amount: int, recipient: Optional[str] = None):
        with self._transaction("remove_collateral"):
            self.governance.require_enabled(FeatureFlag.REMOVE_COLLATERAL, self.block)
            self._accrue()
            position = self.positions.get_position(caller)
            # prices only gate positions that carry debt
            prices = self._read_prices(position.collaterals) if position.debt_shares else {}

            pool_size = self.positions.total_collateral.get(asset, 0)
            self.caps.check_withdrawal_collateral_cap(self.address, asset, amount, pool_size, self.now)
            self.positions.remove_collateral(caller, asset, amount, self.block)
            if position.debt_shares:
                self._require_health(position, prices)

            self.tokens.transfer(asset, self.address, recipient or caller, amount)

        logger.info("%s removed %d %s collateral", caller, amount, asset)

    # Liquidators

    def liquidate_collateral(self, caller: str, asset: str, borrower: str, repay_amount: int,
                             min_collateral_expected: int = 0) -> LiquidationResult:
        """Repay part of an unhealthy position's debt in exchange for discounted collateral"""
        with self._transaction("liquidate_collateral"):
            self.governance.require_enabled(FeatureFlag.LIQUIDATION, self.block)
            self._accrue()
            position = self.positions.get_position(borrower)
            prices = self._read_prices(position.collaterals)

            plan = self.liquidations.plan(
                borrower, caller, asset, repay_amount, min_collateral_expected, prices, self.block,
                market_price=prices[self.market_asset],
            )
            self.tokens.transfer(self.market_asset, caller, self.address, plan.quote.repay_amount)
            result = self.liquidations.commit(plan, staking_holder=self.staking.address)
            self.tokens.transfer(asset, self.address, caller, plan.quote.collateral_to_give)

            if result.socialization is not None and result.socialization.staked_shares_burned:
                self.staking.slash(result.socialization.staked_shares_burned)
                if self.staking.is_wiped_out:
                    self.governance.features[FeatureFlag.STAKING] = False
                    logger.warning("Staking pool wiped out by bad debt; staking disabled")

        self.liquidation_events.append({
            "block": self.block,
            "liquidator": caller,
            "borrower": borrower,
            "collateral": asset,
            "repay_amount": plan.quote.repay_amount,
            "collateral_seized": plan.quote.collateral_to_give,
            "full_liquidation": plan.quote.full_liquidation,
            "health_before": plan.health_before,
            "bad_debt": result.socialization.bad_debt if result.socialization else 0,
        })
        return result

    def batch_liquidate(self, caller: str, asset: str,
                        entries: List[Optional[BatchLiquidationEntry]]) -> List[BatchOutcome]:
        """
        Run independent liquidations against one collateral.

        `None` entries are skipped. Each entry commits or fails on its own; the
        outcome list holds the result or the error for every slot.
        """
        if len(entries) > self.config.max_batch_size:
            raise ValidationError(
                ErrorCode.BATCH_TOO_LARGE,
                f"Batch of {len(entries)} exceeds {self.config.max_batch_size} entries"
            )

        outcomes: List[BatchOutcome] = []
        for entry in entries:
            if entry is None:
                outcomes.append(None)
                continue
            try:
                outcomes.append(self.liquidate_collateral(
                    caller, asset, entry.borrower, entry.repay_amount, entry.min_collateral_expected
                ))
            except MarketError as exc:
                outcomes.append(exc)
        return outcomes

    # Flash loans

    def flash_loan(self, caller: str, amount: int, receiver: str, data: Optional[Any] = None) -> int:
        """
        Lend `amount` to `caller` for one allow-listed callback; returns the fee charged.

        The callback cannot re-enter the engine. Afterwards `amount + fee` is
        pulled from `caller`, and a shortfall rolls the whole loan back.
        """
        with self._transaction("flash_loan"):
            self.governance.require_enabled(FeatureFlag.FLASH_LOAN, self.block)
            callback = self.allowed_callbacks.get(receiver)
            if callback is None:
                raise FlashLoanError(ErrorCode.CALLBACK_NOT_ALLOWED, f"{receiver} is not an allowed callback")
            if amount == 0:
                raise ValidationError(ErrorCode.ZERO_AMOUNT, "Flash loan amount must be positive")
            self._accrue()
            if amount > self.ledger.cash:
                raise RiskLimitError(ErrorCode.INSUFFICIENT_LIQUIDITY, f"Market holds {self.ledger.cash}")

            fee = amount * self.flash_loan_fee_bps // BPS_SCALE
            self.tokens.transfer(self.market_asset, self.address, caller, amount)
            self._flash_loan_active = True
            try:
                callback.on_flash_loan(self, caller, amount, fee, data)
            finally:
                self._flash_loan_active = False

            owed = amount + fee
            if self.tokens.balance_of(self.market_asset, caller) < owed:
                raise FlashLoanError(ErrorCode.FLASH_LOAN_NOT_REPAID, f"{caller} cannot return {amount} + {fee}")
            self.tokens.transfer(self.market_asset, caller, self.address, owed)
            self.ledger.add_fee_income(fee)

        logger.info("Flash loan of %d to %s, fee %d", amount, receiver, fee)
        return fee

    # Staking

    def stake(self, caller: str, lp_shares: int) -> int:
        """Move LP shares into the staking pool; returns staked shares minted"""
        with self._transaction("stake"):
            self._require_staking_enabled()
            self._accrue()
            self.ledger.transfer_lp(caller, self.staking.address, lp_shares)
            minted = self.staking.stake(caller, lp_shares)
        return minted

    def initiate_unstake(self, caller: str, staked_shares: int) -> int:
        with self._transaction("initiate_unstake"):
            self._require_staking_enabled()
            self._accrue()
            index = self.staking.initiate_unstake(caller, staked_shares, self.block)
        return index

    def finalize_unstake(self, caller: str, index: int) -> int:
        """Release a queued withdrawal; returns LP shares returned to the caller"""
        with self._transaction("finalize_unstake"):
            self._require_staking_enabled()
            self._accrue()
            lp_shares = self.staking.finalize_unstake(caller, index, self.block)
            self.ledger.transfer_lp(self.staking.address, caller, lp_shares)
        return lp_shares

    def reconcile_staking_lp_balance(self) -> int:
        """Count LP shares sent straight to the staking pool"""
        with self._transaction("reconcile_staking_lp_balance"):
            delta = self.staking.reconcile_lp_balance(self.ledger.lp_balance_of(self.staking.address))
        return delta

    # Launch principal

    def update_ir_params(self, caller: str, params: InterestRateParams):
        with self._transaction("update_ir_params"):
            self._accrue()
            self.rate_model.update_ir_params(caller, params)

    def update_reward_params(self, caller: str, params: StakingRewardParams):
        with self._transaction("update_reward_params"):
            self._accrue()
            self.reward_model.update_reward_params(caller, params)

    # Governance

    def set_ir_params(self, caller: str, params: InterestRateParams):
        with self._transaction("set_ir_params"):
            self.governance.require_governance(caller)
            self._accrue()
            self.rate_model.set_params(params)

    def set_reward_params(self, caller: str, params: StakingRewardParams):
        with self._transaction("set_reward_params"):
            self.governance.require_governance(caller)
            self._accrue()
            self.reward_model.set_params(params)

    def update_collateral_settings(self, caller: str, asset: str, max_ltv: int, liquidation_ltv: int,
                                   liquidation_discount: int, decimals: int):
        with self._transaction("update_collateral_settings"):
            self.governance.require_governance(caller)
            existing = self.positions.collateral_configs.get(asset)
            if existing is not None and existing.decimals != decimals:
                raise ValidationError(ErrorCode.INVALID_PARAMS, f"Decimals of {asset} cannot change")
            self.positions.set_collateral_config(CollateralConfig(
                asset=asset,
                max_ltv=max_ltv,
                liquidation_ltv=liquidation_ltv,
                liquidation_discount=liquidation_discount,
                decimals=decimals,
                supported=existing.supported if existing else True,
                updated_at_block=self.block,
            ))

    def set_collateral_supported(self, caller: str, asset: str, supported: bool):
        with self._transaction("set_collateral_supported"):
            self.governance.require_governance(caller)
            config = self.positions.get_config(asset)
            config.supported = supported
            config.updated_at_block = self.block

    def set_asset_cap(self, caller: str, asset_cap: int):
        with self._transaction("set_asset_cap"):
            self.governance.require_governance(caller)
            self.ledger.asset_cap = asset_cap

    def set_protocol_reserve_percentage(self, caller: str, percentage: int):
        with self._transaction("set_protocol_reserve_percentage"):
            self.governance.require_governance(caller)
            if not 0 <= percentage <= PERCENT_SCALE:
                raise ValidationError(ErrorCode.INVALID_PARAMS, "Reserve percentage must be within 0-100%")
            self._accrue()
            self.ledger.protocol_reserve_percentage = percentage

    def deposit_to_reserve(self, caller: str, amount: int):
        with self._transaction("deposit_to_reserve"):
            self.governance.require_governance(caller)
            self._accrue()
            self.ledger.deposit_to_reserve(amount)
            self.tokens.transfer(self.market_asset, caller, self.address, amount)

    def withdraw_from_reserve(self, caller: str, amount: int, recipient: Optional[str] = None):
        with self._transaction("withdraw_from_reserve"):
            self.governance.require_governance(caller)
            self._accrue()
            self.ledger.withdraw_from_reserve(amount)
            self.tokens.transfer(self.market_asset, self.address, recipient or caller, amount)

    def set_lp_cap_factor(self, caller: str, factor: int):
        with self._transaction("set_lp_cap_factor"):
            self.governance.require_governance(caller)
            self.caps.set_lp_cap_factor(factor)

    def set_debt_cap_factor(self, caller: str, factor: int):
        with self._transaction("set_debt_cap_factor"):
            self.governance.require_governance(caller)
            self.caps.set_debt_cap_factor(factor)

    def set_collateral_cap_factor(self, caller: str, asset: str, factor: int):
        with self._transaction("set_collateral_cap_factor"):
            self.governance.require_governance(caller)
            self.caps.set_collateral_cap_factor(asset, factor)

    def set_cap_windows(self, caller: str, refill_window: int, decay_window: int):
        with self._transaction("set_cap_windows"):
            self.governance.require_governance(caller)
            self.caps.set_refill_window(refill_window)
            self.caps.set_decay_window(decay_window)

    def set_pyth_time_delta(self, caller: str, seconds: int):
        with self._transaction("set_pyth_time_delta"):
            self.governance.require_governance(caller)
            if seconds < 0:
                raise ValidationError(ErrorCode.INVALID_PARAMS, "Staleness delta must be non-negative")
            self.pyth_time_delta = seconds

    def set_flash_loan_fee(self, caller: str, fee_bps: int):
        with self._transaction("set_flash_loan_fee"):
            self.governance.require_governance(caller)
            if not 0 <= fee_bps <= BPS_SCALE:
                raise ValidationError(ErrorCode.INVALID_PARAMS, "Flash loan fee must be within 0-10000 bps")
            self.flash_loan_fee_bps = fee_bps

    def set_callback_allowed(self, caller: str, receiver: FlashLoanReceiver, allowed: bool = True):
        with self._transaction("set_callback_allowed"):
            self.governance.require_governance(caller)
            if allowed:
                self.allowed_callbacks[receiver.name] = receiver
            else:
                self.allowed_callbacks.pop(receiver.name, None)

    def set_feature(self, caller: str, flag: FeatureFlag, enabled: bool):
        with self._transaction("set_feature"):
            if flag is FeatureFlag.INTEREST_ACCRUAL:
                # settle interest under the old setting first
                self._accrue()
            self.governance.set_feature(caller, flag, enabled)

    def disable_until(self, caller: str, flag: FeatureFlag, block: int):
        with self._transaction("disable_until"):
            self.governance.disable_until(caller, flag, block)

    def pause(self, caller: str):
        with self._transaction("pause"):
            self.governance.pause(caller)

    def unpause(self, caller: str):
        with self._transaction("unpause"):
            self.governance.unpause(caller)

    def set_governance(self, caller: str, new_governance: str):
        with self._transaction("set_governance"):
            self.governance.set_governance(caller, new_governance)

    def set_guardian(self, caller: str, new_guardian: Optional[str]):
        with self._transaction("set_guardian"):
            self.governance.set_guardian(caller, new_guardian)

    # Reads

    def _projected_ledger(self) -> MarketLedger:
        """Copy of the ledger with interest accrued to the current time"""
        ledger = copy.deepcopy(self.ledger)
        ledger.accrue_interest(
            self.now, self.rate_model,
            enabled=self.governance.is_enabled(FeatureFlag.INTEREST_ACCRUAL, self.block),
            reward_model=self.reward_model,
            staking_holder=self.staking.address,
        )
        return ledger

    def account_health(self, user: str) -> dict:
        """Health of `user` at current prices, both at liquidation and at max LTV"""
        position = self.positions.peek_position(user)
        prices = self._read_prices(position.collaterals)
        market_price = prices[self.market_asset]
        debt_value = self._projected_ledger().debt_value(position.debt_shares)
        health = self.positions.health_factor(position, debt_value, prices, market_price=market_price)
        return {
            "user": user,
            "debt_value": debt_value,
            "debt_usd_value": self.positions.debt_usd_value(debt_value, market_price),
            "market_price": market_price,
            "collateral_value": self.positions.total_collateral_value(position, prices),
            "weighted_collateral_value": self.positions.weighted_collateral_value(position, prices),
            "borrow_limit": self.positions.weighted_collateral_value(position, prices, use_max_ltv=True),
            "health_factor": health,
            "max_ltv_health": self.positions.health_factor(
                position, debt_value, prices, use_max_ltv=True, market_price=market_price
            ),
            "liquidatable": debt_value > 0 and health < PERCENT_SCALE,
        }

    def liquidation_preview(self, borrower: str, asset: str, offered_repay: int) -> Optional[LiquidationQuote]:
        """Quote a liquidation without running its guards; None when the position is healthy"""
        position = self.positions.peek_position(borrower)
        collateral_amount = position.collateral_balance(asset)
        if collateral_amount == 0:
            return None
        prices = self._read_prices(position.collaterals)
        market_price = prices[self.market_asset]
        debt_value = self._projected_ledger().debt_value(position.debt_shares)
        health = self.positions.health_factor(position, debt_value, prices, market_price=market_price)
        if health == NO_DEBT_HEALTH or health >= PERCENT_SCALE:
            return None

        config = self.positions.get_config(asset)
        return LiquidationMath.compute(
            debt_value=debt_value,
            weighted_collateral_value=self.positions.weighted_collateral_value(position, prices),
            collateral_amount=collateral_amount,
            price=prices[asset],
            liquidation_discount=config.liquidation_discount,
            liquidation_ltv=config.liquidation_ltv,
            offered_repay=offered_repay,
            decimals=config.decimals,
            market_decimals=self.positions.market_decimals,
            market_price=market_price,
        )

    def debt_of(self, user: str) -> int:
        return self._projected_ledger().debt_value(self.positions.peek_position(user).debt_shares)

    def lp_value_of(self, user: str) -> int:
        ledger = self._projected_ledger()
        return ledger.convert_to_assets(ledger.lp_balance_of(user))

    def get_market_state(self) -> dict:
        state = self.ledger.get_state()
        state.update({
            "block": self.block,
            "timestamp": self.now,
            "cash": self.ledger.cash,
            "borrow_rate": self.rate_model.current_rate(self.ledger.total_assets, self.ledger.total_debt),
            "staking_lp_balance": self.staking.lp_share_balance,
            "active_staked_shares": self.staking.active_staked_shares,
            "queued_withdrawal_shares": self.staking.queued_withdrawal_shares,
            "total_collateral": dict(self.positions.total_collateral),
            "positions": len([p for p in self.positions.positions.values() if not p.is_empty]),
            "liquidations": len(self.liquidation_events),
        })
        return state

    # Clock

    def mine_blocks(self, count: int = 1):
        self.chain.mine_blocks(count)

    def advance_time(self, seconds: int):
        self.chain.advance_time(seconds)
