#!/usr/bin/env python3
"""
Minimal Agent Interface

Base class for market participants. Agents decide an action from the engine
state and execute it through the engine's entry points; rejected calls are
counted rather than raised so a simulation keeps running.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Dict, List, Tuple

from ..core.errors import MarketError


class AgentAction(Enum):
    """Agent action types"""
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    BORROW = "borrow"
    REPAY = "repay"
    ADD_COLLATERAL = "add_collateral"
    REMOVE_COLLATERAL = "remove_collateral"
    LIQUIDATE = "liquidate"
    STAKE = "stake"
    HOLD = "hold"


class AgentState:
    """Action counters and history of one agent"""

    def __init__(self, agent_id: str):
        self.agent_id = agent_id
        self.successful_actions = 0
        self.failed_actions = 0
        self.rejections: Dict[int, int] = {}
        self.action_history: List[dict] = []

    def record(self, block: int, action: "AgentAction", params: dict, success: bool, error_code: int = 0):
        if success:
            self.successful_actions += 1
        else:
            self.failed_actions += 1
            self.rejections[error_code] = self.rejections.get(error_code, 0) + 1
        self.action_history.append({
            "block": block,
            "action": action.value,
            "success": success,
            "error_code": error_code,
            **params,
        })


class BaseAgent(ABC):
    """Minimal agent interface"""

    def __init__(self, agent_id: str, agent_type: str):
        self.agent_id = agent_id
        self.agent_type = agent_type
        self.state = AgentState(agent_id)
        self.active = True

    @abstractmethod
    def decide_action(self, engine) -> Tuple[AgentAction, dict]:
        """
        Decide what action to take based on current market state

        Returns:
            Tuple of (action_type, params)
        """
        pass

    def step(self, engine) -> bool:
        """Decide and execute one action"""
        if not self.active:
            return False
        action, params = self.decide_action(engine)
        if action == AgentAction.HOLD:
            return False
        return self.execute_action(engine, action, params)

    def execute_action(self, engine, action: AgentAction, params: dict) -> bool:
        """Route an action to the engine; returns whether it settled"""
        try:
            if action == AgentAction.DEPOSIT:
                engine.deposit(self.agent_id, params["amount"])
            elif action == AgentAction.WITHDRAW:
                engine.withdraw(self.agent_id, params["amount"])
            elif action == AgentAction.BORROW:
                engine.borrow(self.agent_id, params["amount"])
            elif action == AgentAction.REPAY:
                engine.repay(self.agent_id, params["amount"])
            elif action == AgentAction.ADD_COLLATERAL:
                engine.add_collateral(self.agent_id, params["asset"], params["amount"])
            elif action == AgentAction.REMOVE_COLLATERAL:
                engine.remove_collateral(self.agent_id, params["asset"], params["amount"])
            elif action == AgentAction.STAKE:
                engine.stake(self.agent_id, params["lp_shares"])
            elif action == AgentAction.LIQUIDATE:
                return self._execute_liquidation(engine, params)
        except MarketError as e:
            self.state.record(engine.block, action, params, False, int(e.code))
            return False

        self.state.record(engine.block, action, params, True)
        return True

    def _execute_liquidation(self, engine, params: dict) -> bool:
        """Liquidation hook, overridden by liquidators"""
        return False

    def get_portfolio_summary(self, engine) -> dict:
        """Token balances and market position of the agent"""
        position = engine.positions.peek_position(self.agent_id)
        balances = {asset: engine.tokens.balance_of(asset, self.agent_id) for asset in engine.tokens.balances}
        return {
            "agent_id": self.agent_id,
            "agent_type": self.agent_type,
            "token_balances": balances,
            "lp_shares": engine.ledger.lp_balance_of(self.agent_id),
            "debt": engine.ledger.debt_value(position.debt_shares),
            "collateral": dict(position.balances),
            "successful_actions": self.state.successful_actions,
            "failed_actions": self.state.failed_actions,
            "rejections": dict(self.state.rejections),
        }
