"""
Lending Market Simulation

Over-collateralized lending market with share-based interest accrual,
multi-collateral health, break-even capped liquidations, bad-debt
socialization through reserve and stakers, and token-bucket withdrawal caps.
"""

__version__ = "1.0.0"
__author__ = "Unit Zero Labs"

# Core components
from .core.errors import ErrorCode, MarketError
from .core.market import MarketLedger
from .core.interest_rate import InterestRateParams, LinearKinkedInterestRateModel
from .core.staking_reward import StakingRewardParams, StakingRewardModel
from .core.collateral import CollateralConfig, PositionManager, UserPosition
from .core.liquidation import LiquidationEngine, LiquidationMath
from .core.withdrawal_caps import WithdrawalCaps
from .core.staking import StakingPool
from .core.oracle import ManualPriceFeed, PriceOracle

# Engine
from .engine.market_engine import LendingMarketEngine, BatchLiquidationEntry
from .engine.config import MarketConfig, CollateralSettings
from .engine.governance import FeatureFlag
from .engine.state import ChainState

# Agents
from .agents.base_agent import BaseAgent, AgentAction, AgentState
from .agents.lender import Lender
from .agents.borrower import Borrower
from .agents.liquidator import Liquidator

# Stress Testing
from .stress_testing.runner import StressTestRunner
from .stress_testing.scenarios import LendingStressTestSuite

# Analysis
from .analysis.metrics import MarketMetricsCalculator

__all__ = [
    # Core
    "ErrorCode", "MarketError", "MarketLedger",
    "InterestRateParams", "LinearKinkedInterestRateModel",
    "StakingRewardParams", "StakingRewardModel",
    "CollateralConfig", "PositionManager", "UserPosition",
    "LiquidationEngine", "LiquidationMath", "WithdrawalCaps", "StakingPool",
    "ManualPriceFeed", "PriceOracle",

    # Engine
    "LendingMarketEngine", "BatchLiquidationEntry", "MarketConfig", "CollateralSettings",
    "FeatureFlag", "ChainState",

    # Agents
    "BaseAgent", "AgentAction", "AgentState", "Lender", "Borrower", "Liquidator",

    # Stress Testing
    "StressTestRunner", "LendingStressTestSuite",

    # Analysis
    "MarketMetricsCalculator"
]
