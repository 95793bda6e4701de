#!/usr/bin/env python3
"""
Lender Agent

Supplies market asset once, then occasionally withdraws part of its
position. A lender in panic mode tries to pull everything every step, which
is how bank-run scenarios exercise the withdrawal caps.
"""

from typing import Optional, Tuple

import numpy as np

from .base_agent import AgentAction, BaseAgent


class Lender(BaseAgent):
    """Liquidity provider"""

    def __init__(self, agent_id: str, deposit_amount: int, withdraw_probability: float = 0.0,
                 withdraw_fraction: float = 0.25, stake_fraction: float = 0.0,
                 rng: Optional[np.random.Generator] = None):
        super().__init__(agent_id, "lender")
        self.deposit_amount = deposit_amount
        self.withdraw_probability = withdraw_probability
        self.withdraw_fraction = withdraw_fraction
        self.stake_fraction = stake_fraction
        self.rng = rng or np.random.default_rng()

        self.has_deposited = False
        self.has_staked = False
        self.panic = False

    def decide_action(self, engine) -> Tuple[AgentAction, dict]:
        if not self.has_deposited:
            self.has_deposited = True
            return AgentAction.DEPOSIT, {"amount": self.deposit_amount}

        lp_shares = engine.ledger.lp_balance_of(self.agent_id)
        if self.stake_fraction > 0 and not self.has_staked and lp_shares > 0:
            self.has_staked = True
            return AgentAction.STAKE, {"lp_shares": int(lp_shares * self.stake_fraction)}

        if lp_shares == 0:
            return AgentAction.HOLD, {}

        value = engine.ledger.convert_to_assets(lp_shares)
        if self.panic:
            return AgentAction.WITHDRAW, {"amount": min(value, engine.ledger.cash)}
        if self.rng.random() < self.withdraw_probability:
            return AgentAction.WITHDRAW, {"amount": int(value * self.withdraw_fraction)}
        return AgentAction.HOLD, {}
