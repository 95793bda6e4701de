#!/usr/bin/env python3
"""
Stress Test Scenario Definitions

Scenarios for liquidation pricing, bad-debt socialization, withdrawal caps
and oracle staleness. Each scenario supplies a collateral price path as
per-step multipliers of the initial prices, plus optional hooks that adjust
the market configuration or intervene at given steps.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import numpy as np

from ..engine.config import MarketConfig, WithdrawalCapConfig

PricePath = Dict[str, np.ndarray]


@dataclass
class SimulationContext:
    """What step hooks may inspect and change during a run"""
    engine: object
    agents: list = field(default_factory=list)
    oracle_paused: bool = False


class StressTestScenario:
    """Individual stress test scenario"""

    def __init__(self, name: str, description: str,
                 price_path: Callable[[np.random.Generator, int], PricePath],
                 steps: int = 60, blocks_per_step: int = 6,
                 configure: Optional[Callable[[MarketConfig], MarketConfig]] = None,
                 on_step: Optional[Callable[[int, SimulationContext], None]] = None,
                 agent_params: Optional[dict] = None):
        self.name = name
        self.description = description
        self.price_path = price_path
        self.steps = steps
        self.blocks_per_step = blocks_per_step
        self.configure = configure
        self.on_step = on_step
        self.agent_params = agent_params or {}

    def build_price_path(self, rng: np.random.Generator) -> PricePath:
        return self.price_path(rng, self.steps)

    def apply_config(self, config: MarketConfig) -> MarketConfig:
        return self.configure(config) if self.configure else config


def flat_path(steps: int, assets=("BTC", "ETH")) -> PricePath:
    return {asset: np.ones(steps) for asset in assets}


def shock_path(shocks: Dict[str, float], at_step: int) -> Callable[[np.random.Generator, int], PricePath]:
    """Instant relative price drop at `at_step` that persists"""
    def build(rng: np.random.Generator, steps: int) -> PricePath:
        path = flat_path(steps)
        for asset, shock in shocks.items():
            path[asset][at_step:] *= (1 + shock)
        return path
    return build


def gbm_path(drift: float, volatility: float) -> Callable[[np.random.Generator, int], PricePath]:
    """Geometric Brownian motion per step, BTC and ETH 80% correlated"""
    def build(rng: np.random.Generator, steps: int) -> PricePath:
        cov = np.array([[1.0, 0.8], [0.8, 1.0]]) * volatility ** 2
        returns = rng.multivariate_normal([drift, drift], cov, size=steps)
        returns[0] = 0.0
        levels = np.exp(np.cumsum(returns, axis=0))
        return {"BTC": levels[:, 0], "ETH": levels[:, 1]}
    return build


def _with_lp_caps(config: MarketConfig) -> MarketConfig:
    return config.model_copy(update={
        "withdrawal_caps": WithdrawalCapConfig(lp_cap_factor=20_000_000, debt_cap_factor=50_000_000)
    })


def _panic_lenders(at_step: int) -> Callable[[int, SimulationContext], None]:
    def hook(step: int, context: SimulationContext):
        if step == at_step:
            for agent in context.agents:
                if agent.agent_type == "lender":
                    agent.panic = True
    return hook


def _stale_oracle(start: int, end: int) -> Callable[[int, SimulationContext], None]:
    def hook(step: int, context: SimulationContext):
        context.oracle_paused = start <= step < end
    return hook


class LendingStressTestSuite:
    """Complete stress test suite for the lending market"""

    def __init__(self):
        self.scenarios = self._create_scenarios()
        self.results = {}

    def _create_scenarios(self) -> List[StressTestScenario]:
        return [
            StressTestScenario(
                "BTC_Flash_Crash",
                "BTC drops 35% instantly; partial liquidations restore break-even health",
                shock_path({"BTC": -0.35}, at_step=10),
            ),
            StressTestScenario(
                "Bad_Debt_Cascade",
                "BTC and ETH drop 60%; full liquidations socialize bad debt through reserve and stakers",
                shock_path({"BTC": -0.60, "ETH": -0.60}, at_step=10),
            ),
            StressTestScenario(
                "Gradual_Decline",
                "Correlated random walk with negative drift over a day",
                gbm_path(drift=-0.004, volatility=0.01),
                steps=144,
            ),
            StressTestScenario(
                "Bank_Run",
                "Every lender tries to exit at once against LP withdrawal caps",
                lambda rng, steps: flat_path(steps),
                configure=_with_lp_caps,
                on_step=_panic_lenders(at_step=5),
            ),
            StressTestScenario(
                "Interest_Spike",
                "Borrowers run the market near full utilization for a month of daily steps",
                lambda rng, steps: flat_path(steps),
                steps=30,
                blocks_per_step=8_640,
                agent_params={"lender_deposit": 150_000, "target_health_range": (1.02, 1.08)},
            ),
            StressTestScenario(
                "Oracle_Outage",
                "Prices stop updating during a 25% BTC drop; borrows and liquidations fail closed",
                shock_path({"BTC": -0.25}, at_step=12),
                on_step=_stale_oracle(start=10, end=20),
            ),
        ]

    def get_scenario(self, name: str) -> StressTestScenario:
        for scenario in self.scenarios:
            if scenario.name == name:
                return scenario
        raise KeyError(f"Unknown scenario: {name}")

    def get_scenario_names(self) -> List[str]:
        return [scenario.name for scenario in self.scenarios]

    def get_scenario_descriptions(self) -> Dict[str, str]:
        return {scenario.name: scenario.description for scenario in self.scenarios}
