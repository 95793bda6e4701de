#!/usr/bin/env python3
"""
Market Stability Metrics

Per-block snapshots of the market ledger, reserve, staking pool and position
health, collected into a pandas DataFrame and summarized with numpy.
"""

from typing import Dict, List

import numpy as np
import pandas as pd

from ..core.collateral import NO_DEBT_HEALTH
from ..core.errors import MarketError
from ..core.math import IR_SCALE, PERCENT_SCALE


class MarketMetricsCalculator:
    """Collects market snapshots and derives stability metrics"""

    def __init__(self):
        self.snapshots: List[dict] = []

    def record_snapshot(self, engine, step: int) -> dict:
        """Capture the market state after `step`"""
        state = engine.get_market_state()
        healths = self._position_healths(engine)

        snapshot = {
            "step": step,
            "block": state["block"],
            "timestamp": state["timestamp"],
            "total_assets": state["total_assets"],
            "total_debt": state["total_debt"],
            "reserve_balance": state["reserve_balance"],
            "cash": state["cash"],
            "utilization": state["utilization"] / IR_SCALE,
            "borrow_rate": state["borrow_rate"] / IR_SCALE,
            "lp_share_price": state["total_assets"] / state["lp_share_supply"] if state["lp_share_supply"] else 1.0,
            "staking_lp_balance": state["staking_lp_balance"],
            "open_positions": state["positions"],
            "liquidatable_positions": int(np.sum(np.array(healths) < 1.0)) if healths else 0,
            "min_health": float(np.min(healths)) if healths else np.nan,
            "liquidations": state["liquidations"],
        }
        self.snapshots.append(snapshot)
        return snapshot

    def _position_healths(self, engine) -> List[float]:
        healths = []
        for owner, position in engine.positions.positions.items():
            if position.debt_shares == 0:
                continue
            try:
                health = engine.account_health(owner)["health_factor"]
            except MarketError:
                continue
            if health != NO_DEBT_HEALTH:
                healths.append(health / PERCENT_SCALE)
        return healths

    def to_dataframe(self) -> pd.DataFrame:
        if not self.snapshots:
            return pd.DataFrame()
        return pd.DataFrame(self.snapshots).set_index("step")

    def liquidation_dataframe(self, engine) -> pd.DataFrame:
        return pd.DataFrame(engine.liquidation_events)

    def calculate_summary(self, engine) -> Dict:
        """Headline stability numbers for one run"""
        df = self.to_dataframe()
        liquidations = self.liquidation_dataframe(engine)
        if df.empty:
            return {}

        initial_price = df["lp_share_price"].iloc[0]
        final_price = df["lp_share_price"].iloc[-1]
        reserve = df["reserve_balance"].to_numpy()

        return {
            "steps": len(df),
            "max_utilization": float(df["utilization"].max()),
            "mean_borrow_rate": float(df["borrow_rate"].mean()),
            "min_health": float(df["min_health"].min()) if df["min_health"].notna().any() else None,
            "liquidation_count": len(liquidations),
            "total_repaid": int(liquidations["repay_amount"].sum()) if not liquidations.empty else 0,
            "total_bad_debt": int(liquidations["bad_debt"].sum()) if not liquidations.empty else 0,
            "max_reserve_drawdown": int(np.max(np.maximum.accumulate(reserve) - reserve)),
            "lp_share_price_change": float(final_price / initial_price - 1) if initial_price else 0.0,
            "final_total_assets": int(df["total_assets"].iloc[-1]),
            "final_total_debt": int(df["total_debt"].iloc[-1]),
            "stability_status": self._categorize_stability(df, liquidations),
        }

    def _categorize_stability(self, df: pd.DataFrame, liquidations: pd.DataFrame) -> str:
        if not liquidations.empty and liquidations["bad_debt"].sum() > 0:
            return "insolvent_positions"
        if df["liquidatable_positions"].iloc[-1] > 0:
            return "under_stress"
        if df["utilization"].max() > 0.95:
            return "liquidity_constrained"
        return "stable"
