#!/usr/bin/env python3
"""
Token Balances

Minimal fungible-token ledger standing in for the external token contracts:
the market asset and every collateral are balances keyed by holder.
"""

from collections import defaultdict
from typing import Dict

from .errors import ErrorCode, ValidationError


class TokenLedger:
    """Balances of every token by holder"""

    def __init__(self):
        self.balances: Dict[str, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
        self.total_supply: Dict[str, int] = defaultdict(int)

    def balance_of(self, token: str, holder: str) -> int:
        return self.balances[token][holder]

    def mint(self, token: str, holder: str, amount: int):
        self.balances[token][holder] += amount
        self.total_supply[token] += amount

    def burn(self, token: str, holder: str, amount: int):
        self._debit(token, holder, amount)
        self.total_supply[token] -= amount

    def transfer(self, token: str, sender: str, recipient: str, amount: int):
        if amount == 0:
            return
        self._debit(token, sender, amount)
        self.balances[token][recipient] += amount

    def _debit(self, token: str, holder: str, amount: int):
        balance = self.balances[token][holder]
        if amount > balance:
            raise ValidationError(
                ErrorCode.INSUFFICIENT_BALANCE,
                f"{holder} holds {balance} {token}, needs {amount}"
            )
        self.balances[token][holder] = balance - amount
