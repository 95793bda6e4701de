"""Stress test scenarios and runner"""

from .scenarios import LendingStressTestSuite, SimulationContext, StressTestScenario
from .runner import StressTestRunner, default_market_config

__all__ = [
    "LendingStressTestSuite", "SimulationContext", "StressTestScenario",
    "StressTestRunner", "default_market_config"
]
