#!/usr/bin/env python3
"""
Lending Market Errors

Numeric error codes surfaced to callers and the exception hierarchy raised by
every entry point. A raised MarketError aborts the call; the engine restores
the market snapshot taken before the call began.
"""

from enum import IntEnum


class ErrorCode(IntEnum):
    """Numeric failure signals returned to callers"""
    ARITHMETIC_OVERFLOW = 1

    NOT_GOVERNANCE = 100
    ZERO_AMOUNT = 101
    FEATURE_DISABLED = 102
    INSUFFICIENT_LIQUIDITY = 103
    INVALID_PARAMS = 104
    INSUFFICIENT_BALANCE = 105
    NOT_GUARDIAN = 106
    INSUFFICIENT_LP_SHARES = 107
    COLLATERAL_NOT_SUPPORTED = 108
    LIQUIDATION_NOT_ALLOWED = 113
    ASSET_CAP = 116

    INSUFFICIENT_FREE_LIQUIDITY = 20001
    MAX_LTV = 20002
    NO_DEBT = 20003
    INSUFFICIENT_COLLATERAL = 20006
    INVALID_COLLATERAL = 20007
    MAX_COLLATERALS = 20008

    POSITION_HEALTHY = 30001
    NO_COLLATERAL_BALANCE = 30002
    BATCH_TOO_LARGE = 30003
    SLIPPAGE = 30007
    ZERO_REPAY = 30010

    INSUFFICIENT_STAKED_SHARES = 60001
    WITHDRAWAL_NOT_FOUND = 60002
    ZERO_STAKE = 60003
    WITHDRAWAL_NOT_FINALIZED = 60004
    STAKING_DISABLED = 60009

    IR_ALREADY_INITIALIZED = 70000
    NOT_LAUNCH_PRINCIPAL = 70001
    INVALID_KINK = 70004

    PRICE_UNAVAILABLE = 80001
    STALE_PRICE = 80002

    REWARD_ALREADY_INITIALIZED = 90000
    REWARD_NOT_LAUNCH_PRINCIPAL = 90001
    INVALID_REWARD_KINK = 90004
    INVALID_REWARD_SLOPES = 90005

    CALLBACK_NOT_ALLOWED = 110000
    FLASH_LOAN_NOT_REPAID = 110001
    FLASH_LOAN_ACTIVE = 110002

    RESTRICTED = 120000
    LP_CAP_EXCEEDED = 120002
    DEBT_CAP_EXCEEDED = 120003
    COLLATERAL_CAP_EXCEEDED = 120004


class MarketError(Exception):
    """Base error for every rejected market call"""

    def __init__(self, code: ErrorCode, message: str = ""):
        self.code = ErrorCode(code)
        self.message = message or self.code.name
        super().__init__(f"[{int(self.code)}] {self.message}")


class ValidationError(MarketError):
    """Zero amounts, invalid percentages or decimals"""
    pass


class RiskLimitError(MarketError):
    """Max-LTV, liquidity, asset/debt/collateral cap and rate-limit violations"""
    pass


class OracleError(MarketError):
    """Missing or stale price data"""
    pass


class AuthorizationError(MarketError):
    """Non-governance caller or disabled feature"""
    pass


class LiquidationError(MarketError):
    """Slippage, same-block and zero-repay liquidation guards"""
    pass


class StakingError(MarketError):
    """Staking pool rejections"""
    pass


class FlashLoanError(MarketError):
    """Callback not allow-listed or loan not repaid"""
    pass


class ArithmeticOverflowError(MarketError):
    """A value left the 128-bit unsigned range"""

    def __init__(self, message: str = "Arithmetic overflow"):
        super().__init__(ErrorCode.ARITHMETIC_OVERFLOW, message)
