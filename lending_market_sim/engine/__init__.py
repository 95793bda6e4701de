"""Market engine, governance and configuration"""

from .market_engine import LendingMarketEngine, BatchLiquidationEntry
from .config import MarketConfig, CollateralSettings, InterestRateConfig, StakingRewardConfig
from .governance import FeatureFlag, MarketGovernance
from .flash_loan import FlashLoanReceiver, TradingReceiver
from .state import ChainState

__all__ = [
    "LendingMarketEngine", "BatchLiquidationEntry",
    "MarketConfig", "CollateralSettings", "InterestRateConfig", "StakingRewardConfig",
    "FeatureFlag", "MarketGovernance",
    "FlashLoanReceiver", "TradingReceiver", "ChainState"
]
