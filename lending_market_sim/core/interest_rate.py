#!/usr/bin/env python3
"""
Kinked Interest Rate Model

Utilization-driven borrow rate with a slope change at the kink, and discrete
per-second compounding of that rate over elapsed time. Everything is integer
fixed point at 10^12.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional
import logging

from .errors import (
    ArithmeticOverflowError, AuthorizationError, ErrorCode, ValidationError
)
from .math import IR_SCALE, SECONDS_PER_YEAR, U128_MAX, MarketMath


logger = logging.getLogger(__name__)

# Internal precision of the compounding loop
COMPOUND_SCALE = 10 ** 36
_SCALE_RATIO = COMPOUND_SCALE // IR_SCALE


@dataclass
class InterestRateParams:
    """Kinked curve parameters, all at 10^12 scale"""
    slope1: int
    slope2: int
    kink: int
    base_ir: int

    def validate(self):
        if self.kink >= IR_SCALE:
            raise ValidationError(ErrorCode.INVALID_KINK, "Utilization kink must be below 100%")
        if min(self.slope1, self.slope2, self.base_ir, self.kink) < 0:
            raise ValidationError(ErrorCode.INVALID_PARAMS, "Interest rate parameters must be non-negative")


class InterestRateModel(ABC):
    """Interface the market ledger uses to price debt"""

    @abstractmethod
    def interest_rate(self, utilization: int) -> int:
        """Annualized borrow rate at 10^12 scale"""
        pass

    @staticmethod
    def utilization(total_assets: int, total_debt: int) -> int:
        """Debt over assets at 10^12 scale; not clamped at 100%"""
        if total_assets == 0:
            return 0
        return total_debt * IR_SCALE // total_assets

    @staticmethod
    def compounded_interest(rate: int, elapsed_seconds: int) -> int:
        """
        Growth factor (1 + rate / seconds_per_year) ^ elapsed_seconds at 10^12.

        Binary exponentiation at 10^36 precision. Raises ArithmeticOverflowError
        once the factor leaves the 128-bit range instead of wrapping.
        """
        if elapsed_seconds <= 0:
            return IR_SCALE

        base = COMPOUND_SCALE + rate * _SCALE_RATIO // SECONDS_PER_YEAR
        limit = U128_MAX * _SCALE_RATIO
        result = COMPOUND_SCALE
        exponent = elapsed_seconds

        while exponent:
            if exponent & 1:
                result = result * base // COMPOUND_SCALE
                if result > limit:
                    raise ArithmeticOverflowError("Compounded interest factor overflow")
            exponent >>= 1
            if exponent:
                base = base * base // COMPOUND_SCALE
                # the top bit of the exponent still multiplies this base in
                if base > limit:
                    raise ArithmeticOverflowError("Compounded interest factor overflow")

        return result // _SCALE_RATIO

    @staticmethod
    def total_interest(factor: int, principal: int) -> int:
        """Interest owed on principal for a growth factor, rounded up"""
        return MarketMath.mul_div_up(principal, factor - IR_SCALE, IR_SCALE)


class LinearKinkedInterestRateModel(InterestRateModel):
    """Two-slope rate curve, initialized once by the launch principal"""

    def __init__(self, launch_principal: str, params: Optional[InterestRateParams] = None):
        self.launch_principal = launch_principal
        self.params = params or InterestRateParams(0, 0, 0, 0)
        self.initialized = False

    def update_ir_params(self, caller: str, params: InterestRateParams):
        """One-time initialization from the deploy principal"""
        if caller != self.launch_principal:
            raise AuthorizationError(ErrorCode.NOT_LAUNCH_PRINCIPAL, f"{caller} is not the launch principal")
        if self.initialized:
            raise AuthorizationError(ErrorCode.IR_ALREADY_INITIALIZED, "Interest rate params already set")
        params.validate()
        self.params = params
        self.initialized = True
        logger.info("Interest rate params initialized: %s", params)

    def set_params(self, params: InterestRateParams):
        """Governance path for later parameter changes"""
        params.validate()
        self.params = params
        self.initialized = True

    def interest_rate(self, utilization: int) -> int:
        p = self.params
        below_kink = min(utilization, p.kink)
        above_kink = max(utilization - p.kink, 0)
        return (
            p.base_ir
            + p.slope1 * below_kink // IR_SCALE
            + p.slope2 * above_kink // IR_SCALE
        )

    def current_rate(self, total_assets: int, total_debt: int) -> int:
        return self.interest_rate(self.utilization(total_assets, total_debt))
