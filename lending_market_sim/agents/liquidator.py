#!/usr/bin/env python3
"""
Liquidator Agent

Scans every position for health below break-even, prices each candidate
with the engine's liquidation preview, and submits one batch per collateral
with a slippage floor under the previewed seizure.
"""

from typing import Dict, List, Optional, Tuple

from ..core.errors import MarketError
from ..core.liquidation import LiquidationResult
from ..engine.market_engine import BatchLiquidationEntry
from .base_agent import AgentAction, BaseAgent


class Liquidator(BaseAgent):
    """Liquidation bot"""

    def __init__(self, agent_id: str, slippage_tolerance: float = 0.01, max_batch_size: int = 50):
        super().__init__(agent_id, "liquidator")
        self.slippage_tolerance = slippage_tolerance
        self.max_batch_size = max_batch_size

        # State tracking
        self.liquidation_history: List[dict] = []
        self.successful_liquidations = 0
        self.total_repaid = 0
        self.collateral_received: Dict[str, int] = {}

    def decide_action(self, engine) -> Tuple[AgentAction, dict]:
        """
        Liquidation decision logic:
        1. Scan for liquidatable positions
        2. Group candidates by collateral
        3. Liquidate the largest group in one batch
        """
        batches = self._scan_liquidatable_positions(engine)
        if not batches:
            return AgentAction.HOLD, {}

        asset = max(batches, key=lambda a: len(batches[a]))
        return AgentAction.LIQUIDATE, {"asset": asset, "entries": batches[asset][:self.max_batch_size]}

    def _scan_liquidatable_positions(self, engine) -> Dict[str, List[BatchLiquidationEntry]]:
        available = engine.tokens.balance_of(engine.market_asset, self.agent_id)
        batches: Dict[str, List[BatchLiquidationEntry]] = {}

        for borrower, position in engine.positions.positions.items():
            if position.debt_shares == 0 or borrower == self.agent_id:
                continue
            for asset in position.collaterals:
                entry = self._price_candidate(engine, borrower, asset, available)
                if entry is not None:
                    batches.setdefault(asset, []).append(entry)
                    available -= entry.repay_amount
                    break
        return batches

    def _price_candidate(self, engine, borrower: str, asset: str,
                         available: int) -> Optional[BatchLiquidationEntry]:
        if available <= 0:
            return None
        try:
            quote = engine.liquidation_preview(borrower, asset, available)
        except MarketError:
            return None
        if quote is None or quote.collateral_to_give == 0:
            return None

        min_collateral = int(quote.collateral_to_give * (1 - self.slippage_tolerance))
        return BatchLiquidationEntry(borrower, quote.repay_amount, min_collateral)

    def _execute_liquidation(self, engine, params: dict) -> bool:
        asset = params["asset"]
        entries = params["entries"]
        outcomes = engine.batch_liquidate(self.agent_id, asset, entries)

        settled = 0
        for entry, outcome in zip(entries, outcomes):
            if isinstance(outcome, LiquidationResult):
                settled += 1
                quote = outcome.plan.quote
                self.total_repaid += quote.repay_amount
                self.collateral_received[asset] = self.collateral_received.get(asset, 0) + quote.collateral_to_give
                self.liquidation_history.append({
                    "block": engine.block,
                    "borrower": entry.borrower,
                    "collateral": asset,
                    "repay_amount": quote.repay_amount,
                    "collateral_seized": quote.collateral_to_give,
                    "bad_debt": outcome.socialization.bad_debt if outcome.socialization else 0,
                })
            elif isinstance(outcome, MarketError):
                self.state.record(engine.block, AgentAction.LIQUIDATE,
                                  {"borrower": entry.borrower}, False, int(outcome.code))

        self.successful_liquidations += settled
        if settled:
            self.state.record(engine.block, AgentAction.LIQUIDATE, {"asset": asset, "settled": settled}, True)
        return settled > 0
