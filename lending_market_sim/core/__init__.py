"""Core lending market components"""

from .errors import ErrorCode, MarketError, FlashLoanError
from .market import MarketLedger
from .interest_rate import InterestRateParams, LinearKinkedInterestRateModel
from .staking_reward import StakingRewardParams, StakingRewardModel
from .collateral import CollateralConfig, CollateralSet, PositionManager, UserPosition
from .liquidation import LiquidationEngine, LiquidationMath
from .withdrawal_caps import WithdrawalCaps
from .staking import StakingPool
from .oracle import ManualPriceFeed, PriceOracle, PriceQuote

__all__ = [
    "ErrorCode", "MarketError", "FlashLoanError", "MarketLedger",
    "InterestRateParams", "LinearKinkedInterestRateModel",
    "StakingRewardParams", "StakingRewardModel",
    "CollateralConfig", "CollateralSet", "PositionManager", "UserPosition",
    "LiquidationEngine", "LiquidationMath",
    "WithdrawalCaps", "StakingPool",
    "ManualPriceFeed", "PriceOracle", "PriceQuote"
]
