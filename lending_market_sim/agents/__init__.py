"""Market participants driven by the stress-test runner"""

from .base_agent import BaseAgent, AgentAction, AgentState
from .lender import Lender
from .borrower import Borrower
from .liquidator import Liquidator

__all__ = ["BaseAgent", "AgentAction", "AgentState", "Lender", "Borrower", "Liquidator"]
