#!/usr/bin/env python3
"""
Flash Loan Receivers

The borrowed amount is credited to the initiator, the allow-listed receiver's
callback runs, and the market then pulls amount + fee back from the
initiator. Engine entry points cannot be re-entered while the loan is open.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional


class FlashLoanReceiver(ABC):
    """Callback invoked in the middle of a flash loan"""

    def __init__(self, name: str):
        self.name = name

    @abstractmethod
    def on_flash_loan(self, engine, initiator: str, amount: int, fee: int, data: Optional[Any] = None):
        """Use the funds held by `initiator`; they must still cover `amount + fee` afterwards"""
        pass


class TradingReceiver(FlashLoanReceiver):
    """Round-trips the loan through a counterparty, losing `loss` on the trade"""

    def __init__(self, name: str, loss: int = 0, counterparty: str = "dex"):
        super().__init__(name)
        self.loss = loss
        self.counterparty = counterparty
        self.calls = 0

    def on_flash_loan(self, engine, initiator: str, amount: int, fee: int, data: Optional[Any] = None):
        self.calls += 1
        if self.loss:
            engine.tokens.transfer(engine.config.market_asset, initiator, self.counterparty, self.loss)
