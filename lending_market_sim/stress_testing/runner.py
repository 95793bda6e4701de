#!/usr/bin/env python3
"""
Stress Test Execution Engine

Builds a populated market for a scenario, drives lenders, borrowers and
liquidators block by block along the scenario's price path, and aggregates
Monte Carlo runs into pandas tables.
"""

import time
from typing import Dict, List, Optional

import numpy as np
import pandas as pd

from ..agents.base_agent import BaseAgent
from ..agents.borrower import Borrower
from ..agents.lender import Lender
from ..agents.liquidator import Liquidator
from ..analysis.metrics import MarketMetricsCalculator
from ..core.oracle import ManualPriceFeed
from ..engine.config import CollateralSettings, MarketConfig, StakingRewardConfig
from ..engine.market_engine import LendingMarketEngine
from .scenarios import LendingStressTestSuite, SimulationContext, StressTestScenario


INITIAL_PRICES = {"USDC": 1.0, "BTC": 100_000.0, "ETH": 4_000.0}
COLLATERAL_DECIMALS = {"BTC": 8, "ETH": 18}


def default_market_config() -> MarketConfig:
    """Two-collateral USDC market used by every scenario"""
    return MarketConfig(
        market_asset="USDC",
        protocol_reserve_percentage=10_000_000,
        pyth_time_delta=120,
        staking_reward=StakingRewardConfig(),
        collaterals=[
            CollateralSettings(asset="BTC", max_ltv=70_000_000, liquidation_ltv=80_000_000,
                               liquidation_discount=10_000_000, decimals=8),
            CollateralSettings(asset="ETH", max_ltv=75_000_000, liquidation_ltv=82_000_000,
                               liquidation_discount=8_000_000, decimals=18),
        ],
    )


class StressTestRunner:
    """Stress test execution engine with Monte Carlo capabilities"""

    def __init__(self, num_lenders: int = 5, num_borrowers: int = 6, num_liquidators: int = 2,
                 seed: int = 42, verbose: bool = False):
        self.num_lenders = num_lenders
        self.num_borrowers = num_borrowers
        self.num_liquidators = num_liquidators
        self.seed = seed
        self.verbose = verbose
        self.test_suite = LendingStressTestSuite()
        self.results: Dict[str, dict] = {}

    # Market setup

    def _units(self, engine: LendingMarketEngine, asset: str, whole_tokens: float) -> int:
        decimals = COLLATERAL_DECIMALS.get(asset, engine.config.market_decimals)
        return int(round(whole_tokens * 10 ** decimals))

    def _publish_prices(self, engine: LendingMarketEngine, oracle: ManualPriceFeed,
                        path: Dict[str, np.ndarray], step: int):
        oracle.set_usd_price("USDC", INITIAL_PRICES["USDC"], engine.now)
        for asset, multipliers in path.items():
            oracle.set_usd_price(asset, INITIAL_PRICES[asset] * float(multipliers[step]), engine.now)

    def _create_agents(self, engine: LendingMarketEngine, scenario: StressTestScenario,
                       rng: np.random.Generator) -> List[BaseAgent]:
        params = scenario.agent_params
        usdc = engine.market_asset
        agents: List[BaseAgent] = []

        lender_deposit = params.get("lender_deposit", 400_000)
        for i in range(self.num_lenders):
            lender = Lender(
                f"lender_{i}",
                self._units(engine, usdc, lender_deposit),
                withdraw_probability=0.02,
                stake_fraction=0.5 if i == 0 else 0.0,
                rng=rng,
            )
            engine.tokens.mint(usdc, lender.agent_id, self._units(engine, usdc, lender_deposit))
            agents.append(lender)

        low, high = params.get("target_health_range", (1.05, 1.6))
        for i in range(self.num_borrowers):
            asset = "BTC" if i % 2 == 0 else "ETH"
            whole = 200_000.0 / INITIAL_PRICES[asset]
            amount = self._units(engine, asset, whole)
            borrower = Borrower(f"borrower_{i}", asset, amount, target_health=float(rng.uniform(low, high)))
            engine.tokens.mint(asset, borrower.agent_id, amount)
            agents.append(borrower)

        for i in range(self.num_liquidators):
            liquidator = Liquidator(f"liquidator_{i}")
            engine.tokens.mint(usdc, liquidator.agent_id, self._units(engine, usdc, 2_000_000))
            agents.append(liquidator)

        return agents

    def _fund_reserve(self, engine: LendingMarketEngine, amount: int):
        governance = engine.config.governance
        engine.tokens.mint(engine.market_asset, governance, amount)
        engine.deposit_to_reserve(governance, amount)

    # Runs

    def run_scenario(self, scenario_name: str, seed: Optional[int] = None) -> dict:
        """Run one scenario end to end and return its metrics"""
        scenario = self.test_suite.get_scenario(scenario_name)
        rng = np.random.default_rng(self.seed if seed is None else seed)

        oracle = ManualPriceFeed()
        engine = scenario.apply_config(default_market_config()).create_engine(oracle)
        path = scenario.build_price_path(rng)
        self._publish_prices(engine, oracle, path, 0)

        self._fund_reserve(engine, self._units(engine, engine.market_asset, 20_000))
        agents = self._create_agents(engine, scenario, rng)
        context = SimulationContext(engine, agents)
        metrics = MarketMetricsCalculator()

        if self.verbose:
            print(f"Running stress test: {scenario.name}")
            print(f"Description: {scenario.description}")

        for step in range(scenario.steps):
            if step > 0:
                engine.mine_blocks(scenario.blocks_per_step)
            if scenario.on_step:
                scenario.on_step(step, context)
            if not context.oracle_paused:
                self._publish_prices(engine, oracle, path, step)

            for agent in agents:
                agent.step(engine)
            metrics.record_snapshot(engine, step)

        result = {
            "scenario": scenario.name,
            "description": scenario.description,
            "summary": metrics.calculate_summary(engine),
            "metrics": metrics.to_dataframe(),
            "liquidations": metrics.liquidation_dataframe(engine),
            "agents": pd.DataFrame([agent.get_portfolio_summary(engine) for agent in agents]),
            "final_state": engine.get_market_state(),
        }
        self.results[scenario.name] = result
        return result

    def run_monte_carlo_stress_test(self, scenario_name: str, num_runs: int = 20) -> Dict:
        """
        Run a scenario across seeds

        Returns:
            Per-run summaries as a DataFrame plus mean/std of every numeric column
        """
        print(f"Running Monte Carlo stress test: {scenario_name}")
        print(f"Number of runs: {num_runs}")
        print("=" * 50)

        summaries = []
        start_time = time.time()
        for run in range(num_runs):
            result = self.run_scenario(scenario_name, seed=self.seed + run)
            summaries.append({"run": run, **result["summary"]})
            if (run + 1) % 10 == 0:
                print(f"Completed {run + 1}/{num_runs} runs ({time.time() - start_time:.1f}s)")

        runs = pd.DataFrame(summaries).set_index("run")
        numeric = runs.select_dtypes(include=[np.number])
        aggregate = {
            column: {"mean": float(np.nanmean(values)), "std": float(np.nanstd(values))}
            for column, values in numeric.astype(float).items()
        }
        print(f"Monte Carlo stress test completed in {time.time() - start_time:.1f}s")
        return {"scenario": scenario_name, "runs": runs, "aggregate": aggregate}

    def run_full_stress_test_suite(self) -> Dict[str, dict]:
        """Run every scenario once"""
        print("Running Full Lending Market Stress Test Suite")
        print("=" * 60)

        names = self.test_suite.get_scenario_names()
        suite_results = {}
        for i, name in enumerate(names):
            print(f"\n[{i + 1}/{len(names)}] Testing: {name}")
            suite_results[name] = self.run_scenario(name)
            self.print_summary(suite_results[name]["summary"])
        return suite_results

    def print_summary(self, summary: dict):
        for key, value in summary.items():
            if isinstance(value, float):
                print(f"  {key}: {value:.4f}")
            else:
                print(f"  {key}: {value}")
