#!/usr/bin/env python3
"""
Borrower Agent

Posts one collateral, borrows up to a target health measured at max LTV, and
repays part of its debt when liquidation health drifts toward break-even.
"""

from typing import Tuple

from ..core.errors import MarketError
from ..core.math import PERCENT_SCALE, PRICE_SCALE
from .base_agent import AgentAction, BaseAgent


class Borrower(BaseAgent):
    """Leveraged borrower against a single collateral"""

    def __init__(self, agent_id: str, collateral_asset: str, collateral_amount: int,
                 target_health: float = 1.25, rescue_health: float = 1.05,
                 repay_fraction: float = 0.5):
        super().__init__(agent_id, "borrower")
        self.collateral_asset = collateral_asset
        self.collateral_amount = collateral_amount
        self.target_health = target_health
        self.rescue_health = rescue_health
        self.repay_fraction = repay_fraction

        self.has_collateral = False
        self.has_borrowed = False

    def decide_action(self, engine) -> Tuple[AgentAction, dict]:
        if not self.has_collateral:
            self.has_collateral = True
            return AgentAction.ADD_COLLATERAL, {"asset": self.collateral_asset, "amount": self.collateral_amount}

        try:
            health = engine.account_health(self.agent_id)
        except MarketError:
            # no usable price this step
            return AgentAction.HOLD, {}

        if not self.has_borrowed:
            self.has_borrowed = True
            headroom = int(health["borrow_limit"] / self.target_health) - health["debt_usd_value"]
            amount = headroom * PRICE_SCALE // health["market_price"]
            if amount > 0:
                return AgentAction.BORROW, {"amount": amount}
            return AgentAction.HOLD, {}

        debt = health["debt_value"]
        if debt and health["health_factor"] < self.rescue_health * PERCENT_SCALE:
            balance = engine.tokens.balance_of(engine.market_asset, self.agent_id)
            amount = min(int(debt * self.repay_fraction), balance)
            if amount > 0:
                return AgentAction.REPAY, {"amount": amount}
        return AgentAction.HOLD, {}
