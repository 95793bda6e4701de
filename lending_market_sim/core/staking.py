#!/usr/bin/env python3
"""
Staking Slash Pool

Holds staked LP shares that back the market against bad debt. Staked shares
are priced at lp_share_balance / (active + queued) so donated LP shares and
staking rewards raise the price for everyone, and slashing lowers it for active
and queued stakers alike.
"""

from dataclasses import dataclass
from typing import Dict, List
import logging

from .errors import ErrorCode, StakingError


logger = logging.getLogger(__name__)

DEFAULT_UNSTAKE_COOLDOWN_BLOCKS = 100


@dataclass
class UnstakeRequest:
    """Staked shares locked until `finalization_at`"""
    staked_shares: int
    finalization_at: int
    finalized: bool = False


@dataclass
class SlashResult:
    lp_shares_burned: int
    active_portion: int
    queued_portion: int


class StakingPool:
    """Pool of staked LP shares with two-phase unstaking"""

    def __init__(self, address: str = "staking-pool",
                 cooldown_blocks: int = DEFAULT_UNSTAKE_COOLDOWN_BLOCKS):
        self.address = address
        self.cooldown_blocks = cooldown_blocks

        self.lp_share_balance = 0
        self.active_staked_shares = 0
        self.queued_withdrawal_shares = 0

        self.staked_balances: Dict[str, int] = {}
        self.withdrawals: Dict[str, List[UnstakeRequest]] = {}

    @property
    def total_staked_shares(self) -> int:
        return self.active_staked_shares + self.queued_withdrawal_shares

    def staked_balance_of(self, user: str) -> int:
        return self.staked_balances.get(user, 0)

    def lp_value_of_staked(self, staked_shares: int) -> int:
        if self.total_staked_shares == 0:
            return 0
        return staked_shares * self.lp_share_balance // self.total_staked_shares

    def stake(self, user: str, lp_shares: int) -> int:
        """Record `lp_shares` moved into the pool; returns staked shares minted"""
        if lp_shares == 0:
            raise StakingError(ErrorCode.ZERO_STAKE, "Stake amount must be positive")

        if self.total_staked_shares == 0 or self.lp_share_balance == 0:
            minted = lp_shares
        else:
            minted = lp_shares * self.total_staked_shares // self.lp_share_balance
        if minted == 0:
            raise StakingError(ErrorCode.ZERO_STAKE, "Stake too small to mint a share")

        self.lp_share_balance += lp_shares
        self.active_staked_shares += minted
        self.staked_balances[user] = self.staked_balance_of(user) + minted
        return minted

    def initiate_unstake(self, user: str, staked_shares: int, block: int) -> int:
        """Queue `staked_shares` for withdrawal; returns the withdrawal index"""
        if staked_shares == 0:
            raise StakingError(ErrorCode.ZERO_STAKE, "Unstake amount must be positive")
        balance = self.staked_balance_of(user)
        if staked_shares > balance:
            raise StakingError(
                ErrorCode.INSUFFICIENT_STAKED_SHARES,
                f"{user} has {balance} staked shares, requested {staked_shares}"
            )

        self.staked_balances[user] = balance - staked_shares
        self.active_staked_shares -= staked_shares
        self.queued_withdrawal_shares += staked_shares

        requests = self.withdrawals.setdefault(user, [])
        requests.append(UnstakeRequest(staked_shares, block + self.cooldown_blocks))
        return len(requests) - 1

    def finalize_unstake(self, user: str, index: int, block: int) -> int:
        """Release a queued withdrawal at the current pool price; returns LP shares"""
        requests = self.withdrawals.get(user, [])
        if not 0 <= index < len(requests) or requests[index].finalized:
            raise StakingError(ErrorCode.WITHDRAWAL_NOT_FOUND, f"No pending withdrawal {index} for {user}")
        request = requests[index]
        if block < request.finalization_at:
            raise StakingError(
                ErrorCode.WITHDRAWAL_NOT_FINALIZED,
                f"Withdrawal finalizes at block {request.finalization_at}"
            )

        lp_shares = self.lp_value_of_staked(request.staked_shares)
        self.queued_withdrawal_shares -= request.staked_shares
        self.lp_share_balance -= lp_shares
        request.finalized = True
        return lp_shares

    def get_withdrawal(self, user: str, index: int) -> UnstakeRequest:
        return self.withdrawals[user][index]

    def reconcile_lp_balance(self, actual_lp_balance: int) -> int:
        """Absorb LP shares sent to the pool outside of stake; returns the change"""
        delta = actual_lp_balance - self.lp_share_balance
        self.lp_share_balance = actual_lp_balance
        if delta:
            logger.info("Staking pool LP balance reconciled by %d shares", delta)
        return delta

    def add_reward(self, lp_shares: int):
        self.lp_share_balance += lp_shares

    def slash(self, lp_shares: int) -> SlashResult:
        """Burn LP shares backing the pool, shared pro rata by active and queued stake"""
        burned = min(lp_shares, self.lp_share_balance)
        total = self.total_staked_shares
        active_portion = burned * self.active_staked_shares // total if total else 0
        queued_portion = burned - active_portion
        self.lp_share_balance -= burned
        logger.warning("Staking pool slashed %d LP shares (active %d, queued %d)",
                       burned, active_portion, queued_portion)
        return SlashResult(burned, active_portion, queued_portion)

    @property
    def is_wiped_out(self) -> bool:
        return self.lp_share_balance == 0
