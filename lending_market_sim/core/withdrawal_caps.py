#!/usr/bin/env python3
"""
Withdrawal Caps

Token buckets throttling how fast liquidity, debt and each collateral can
leave the market. A bucket stores the capacity still available: it refills
linearly toward `factor x pool_size` over the refill window, inflows credit it,
and capacity credited above the cap decays back to the cap over the decay
window. All arithmetic saturates at the 128-bit bound.
"""

from dataclasses import dataclass
from typing import Dict, Optional
import logging

from .errors import AuthorizationError, ErrorCode, RiskLimitError, ValidationError
from .math import PERCENT_SCALE, MarketMath


logger = logging.getLogger(__name__)

DEFAULT_REFILL_WINDOW = 86_400
DEFAULT_DECAY_WINDOW = 10_800


@dataclass
class CapBucket:
    """Remaining withdrawable capacity of one resource"""
    factor: int = 0
    bucket: int = 0
    last_update_time: Optional[int] = None

    @property
    def enabled(self) -> bool:
        return self.factor > 0


class WithdrawalCaps:
    """LP, debt and per-collateral buckets, mutated only by their owning market"""

    def __init__(self, owner: str, refill_window: int = DEFAULT_REFILL_WINDOW,
                 decay_window: int = DEFAULT_DECAY_WINDOW):
        self.owner = owner
        self.refill_window = refill_window
        self.decay_window = decay_window
        self.lp = CapBucket()
        self.debt = CapBucket()
        self.collateral: Dict[str, CapBucket] = {}

    # Bucket math

    @staticmethod
    def capacity(factor: int, pool_size: int) -> int:
        return MarketMath.saturating_mul(factor, pool_size) // PERCENT_SCALE

    @staticmethod
    def refreshed_bucket(bucket: int, cap: int, last_update_time: Optional[int], now: int,
                         refill_window: int, decay_window: int) -> int:
        """Bucket level at `now` given its level at `last_update_time`"""
        if last_update_time is None:
            return cap
        elapsed = max(now - last_update_time, 0)

        if bucket < cap:
            if elapsed >= refill_window:
                return cap
            refill = MarketMath.saturating_mul(cap, elapsed) // refill_window
            return min(MarketMath.saturating_add(bucket, refill), cap)
        if bucket > cap:
            if elapsed >= decay_window:
                return cap
            excess = bucket - cap
            decayed = MarketMath.saturating_mul(excess, elapsed) // decay_window
            return bucket - decayed
        return bucket

    def _refresh(self, state: CapBucket, pool_size: int, now: int) -> int:
        cap = self.capacity(state.factor, pool_size)
        state.bucket = self.refreshed_bucket(
            state.bucket, cap, state.last_update_time, now, self.refill_window, self.decay_window
        )
        state.last_update_time = now
        return cap

    def _consume(self, state: CapBucket, amount: int, pool_size: int, now: int, code: ErrorCode, label: str):
        if not state.enabled:
            return
        cap = self._refresh(state, pool_size, now)
        available = min(state.bucket, cap)
        if amount > available:
            raise RiskLimitError(code, f"{label} withdrawal of {amount} exceeds available {available}")
        state.bucket = available - amount

    def _credit(self, state: CapBucket, amount: int, pool_size: int, now: int):
        if not state.enabled:
            return
        self._refresh(state, pool_size, now)
        state.bucket = MarketMath.saturating_add(state.bucket, amount)

    def _require_owner(self, caller: str):
        if caller != self.owner:
            raise AuthorizationError(ErrorCode.RESTRICTED, f"{caller} may not update withdrawal caps")

    def collateral_bucket(self, asset: str) -> CapBucket:
        return self.collateral.setdefault(asset, CapBucket())

    # Market hooks

    def check_withdrawal_lp_cap(self, caller: str, amount: int, pool_size: int, now: int):
        self._require_owner(caller)
        self._consume(self.lp, amount, pool_size, now, ErrorCode.LP_CAP_EXCEEDED, "LP")

    def check_withdrawal_debt_cap(self, caller: str, amount: int, pool_size: int, now: int):
        self._require_owner(caller)
        self._consume(self.debt, amount, pool_size, now, ErrorCode.DEBT_CAP_EXCEEDED, "Debt")

    def check_withdrawal_collateral_cap(self, caller: str, asset: str, amount: int, pool_size: int, now: int):
        self._require_owner(caller)
        self._consume(self.collateral_bucket(asset), amount, pool_size, now,
                      ErrorCode.COLLATERAL_CAP_EXCEEDED, asset)

    def log_lp_inflow(self, caller: str, amount: int, pool_size: int, now: int):
        self._require_owner(caller)
        self._credit(self.lp, amount, pool_size, now)

    def log_collateral_inflow(self, caller: str, asset: str, amount: int, pool_size: int, now: int):
        self._require_owner(caller)
        self._credit(self.collateral_bucket(asset), amount, pool_size, now)

    # Governance setters

    @staticmethod
    def _validate_factor(factor: int):
        if not 0 <= factor <= PERCENT_SCALE:
            raise ValidationError(ErrorCode.INVALID_PARAMS, "Cap factor must be within 0-100%")

    def set_lp_cap_factor(self, factor: int):
        self._validate_factor(factor)
        self.lp.factor = factor

    def set_debt_cap_factor(self, factor: int):
        self._validate_factor(factor)
        self.debt.factor = factor

    def set_collateral_cap_factor(self, asset: str, factor: int):
        self._validate_factor(factor)
        self.collateral_bucket(asset).factor = factor

    def set_refill_window(self, seconds: int):
        if seconds <= 0:
            raise ValidationError(ErrorCode.INVALID_PARAMS, "Refill window must be positive")
        self.refill_window = seconds

    def set_decay_window(self, seconds: int):
        if seconds <= 0:
            raise ValidationError(ErrorCode.INVALID_PARAMS, "Decay window must be positive")
        self.decay_window = seconds

    # Reads

    def current_fill(self, state: CapBucket, pool_size: int, now: int) -> int:
        """Capacity already used, between 0 and the cap"""
        cap = self.capacity(state.factor, pool_size)
        bucket = self.refreshed_bucket(
            state.bucket, cap, state.last_update_time, now, self.refill_window, self.decay_window
        )
        return cap - min(bucket, cap)
