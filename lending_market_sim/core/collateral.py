#!/usr/bin/env python3
"""
Positions and Collateral

Per-user collateral balances and debt shares, collateral risk settings, and
the health computation that prices a position against live oracle prices.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional
import logging

from .errors import ErrorCode, RiskLimitError, ValidationError
from .math import PERCENT_SCALE, PRICE_SCALE, U128_MAX, MarketMath


logger = logging.getLogger(__name__)

# Health reported for a position without debt
NO_DEBT_HEALTH = U128_MAX
MAX_DECIMALS = 18


@dataclass
class CollateralConfig:
    """Risk settings for one collateral token, percentages at 10^8"""
    asset: str
    max_ltv: int
    liquidation_ltv: int
    liquidation_discount: int
    decimals: int
    supported: bool = True
    updated_at_block: int = 0

    def validate(self):
        if not 0 <= self.max_ltv <= self.liquidation_ltv <= PERCENT_SCALE:
            raise ValidationError(ErrorCode.INVALID_PARAMS, "Require 0 <= max_ltv <= liquidation_ltv <= 100%")
        if self.liquidation_discount < 0:
            raise ValidationError(ErrorCode.INVALID_PARAMS, "Liquidation discount must be non-negative")
        # a liquidation must be able to raise health
        bonus_ltv = self.liquidation_ltv * (PERCENT_SCALE + self.liquidation_discount) // PERCENT_SCALE
        if bonus_ltv >= PERCENT_SCALE:
            raise ValidationError(ErrorCode.INVALID_PARAMS, "liquidation_ltv * (1 + discount) must stay below 100%")
        if not 0 <= self.decimals <= MAX_DECIMALS:
            raise ValidationError(ErrorCode.INVALID_PARAMS, f"Decimals must be within 0-{MAX_DECIMALS}")


class CollateralSet:
    """
    Insertion-ordered set of collateral assets kept in fixed-capacity slots.

    Removal leaves a tombstone (None) so surviving entries keep their order;
    tombstones are compacted away only when a new entry needs a slot.
    """

    def __init__(self, capacity: int = 10):
        self.capacity = capacity
        self.slots: List[Optional[str]] = []
        self.index: Dict[str, int] = {}

    def __contains__(self, asset: str) -> bool:
        return asset in self.index

    def __len__(self) -> int:
        return len(self.index)

    def __iter__(self) -> Iterator[str]:
        return (asset for asset in self.slots if asset is not None)

    def add(self, asset: str) -> int:
        """Append `asset` if missing; returns its slot"""
        if asset in self.index:
            return self.index[asset]
        if len(self.index) >= self.capacity:
            raise RiskLimitError(ErrorCode.MAX_COLLATERALS, f"At most {self.capacity} collaterals per position")
        if len(self.slots) >= self.capacity:
            self._compact()

        self.slots.append(asset)
        self.index[asset] = len(self.slots) - 1
        return self.index[asset]

    def remove(self, asset: str):
        slot = self.index.pop(asset, None)
        if slot is not None:
            self.slots[slot] = None

    def _compact(self):
        self.slots = [asset for asset in self.slots if asset is not None]
        self.index = {asset: slot for slot, asset in enumerate(self.slots)}


@dataclass
class UserPosition:
    """Collateral balances and debt shares of one borrower"""
    owner: str
    debt_shares: int = 0
    collaterals: CollateralSet = field(default_factory=CollateralSet)
    balances: Dict[str, int] = field(default_factory=dict)
    last_update_block: int = 0

    def collateral_balance(self, asset: str) -> int:
        return self.balances.get(asset, 0)

    @property
    def is_empty(self) -> bool:
        return self.debt_shares == 0 and len(self.collaterals) == 0


class PositionManager:
    """Collateral registry and every borrower position"""

    def __init__(self, market_decimals: int = 8, max_collaterals: int = 10):
        self.market_decimals = market_decimals
        self.max_collaterals = max_collaterals
        self.collateral_configs: Dict[str, CollateralConfig] = {}
        self.positions: Dict[str, UserPosition] = {}
        # total deposited per collateral, the collateral withdrawal-cap pool size
        self.total_collateral: Dict[str, int] = {}

    def set_collateral_config(self, config: CollateralConfig):
        config.validate()
        self.collateral_configs[config.asset] = config
        logger.info("Collateral settings for %s updated at block %d", config.asset, config.updated_at_block)

    def get_config(self, asset: str) -> CollateralConfig:
        config = self.collateral_configs.get(asset)
        if config is None:
            raise ValidationError(ErrorCode.COLLATERAL_NOT_SUPPORTED, f"{asset} is not a collateral")
        return config

    def get_position(self, owner: str) -> UserPosition:
        position = self.positions.get(owner)
        if position is None:
            position = UserPosition(owner, collaterals=CollateralSet(self.max_collaterals))
            self.positions[owner] = position
        return position

    def peek_position(self, owner: str) -> UserPosition:
        """Position of `owner` without registering a new one"""
        return self.positions.get(owner) or UserPosition(owner, collaterals=CollateralSet(self.max_collaterals))

    def add_collateral(self, owner: str, asset: str, amount: int) -> UserPosition:
        if amount == 0:
            raise ValidationError(ErrorCode.ZERO_AMOUNT, "Collateral amount must be positive")
        config = self.collateral_configs.get(asset)
        if config is None or not config.supported:
            raise ValidationError(ErrorCode.COLLATERAL_NOT_SUPPORTED, f"{asset} is not accepted as collateral")
        if config.max_ltv == 0:
            raise ValidationError(ErrorCode.INVALID_COLLATERAL, f"{asset} has zero max LTV")

        position = self.get_position(owner)
        position.collaterals.add(asset)
        position.balances[asset] = position.collateral_balance(asset) + amount
        self.total_collateral[asset] = self.total_collateral.get(asset, 0) + amount
        return position

    def remove_collateral(self, owner: str, asset: str, amount: int, block: int) -> UserPosition:
        """Remove collateral without any health check; callers check afterwards"""
        if amount == 0:
            raise ValidationError(ErrorCode.ZERO_AMOUNT, "Collateral amount must be positive")
        self.get_config(asset)
        position = self.get_position(owner)
        balance = position.collateral_balance(asset)
        if amount > balance:
            raise ValidationError(
                ErrorCode.INSUFFICIENT_COLLATERAL,
                f"{owner} holds {balance} {asset}, requested {amount}"
            )

        self._debit(position, asset, amount)
        position.last_update_block = block
        return position

    def seize_collateral(self, owner: str, asset: str, amount: int):
        """Move collateral out of a position during liquidation"""
        self._debit(self.get_position(owner), asset, amount)

    def _debit(self, position: UserPosition, asset: str, amount: int):
        remaining = position.collateral_balance(asset) - amount
        if remaining == 0:
            position.balances.pop(asset, None)
            position.collaterals.remove(asset)
        else:
            position.balances[asset] = remaining
        self.total_collateral[asset] = self.total_collateral.get(asset, 0) - amount

    # Valuation

    def collateral_value(self, asset: str, amount: int, price: int) -> int:
        config = self.get_config(asset)
        return MarketMath.token_value(amount, price, config.decimals, self.market_decimals)

    def weighted_collateral_value(self, position: UserPosition, prices: Dict[str, int],
                                  use_max_ltv: bool = False) -> int:
        """Sum of collateral value times liquidation (or max) LTV"""
        total = 0
        for asset in position.collaterals:
            config = self.get_config(asset)
            value = self.collateral_value(asset, position.collateral_balance(asset), prices[asset])
            ltv = config.max_ltv if use_max_ltv else config.liquidation_ltv
            total += MarketMath.percent_of(value, ltv)
        return total

    def total_collateral_value(self, position: UserPosition, prices: Dict[str, int]) -> int:
        return sum(
            self.collateral_value(asset, position.collateral_balance(asset), prices[asset])
            for asset in position.collaterals
        )

    @staticmethod
    def debt_usd_value(debt_value: int, market_price: int = PRICE_SCALE) -> int:
        """Debt in market-asset units priced at the market asset's oracle price, rounded up"""
        return MarketMath.mul_div_up(debt_value, market_price, PRICE_SCALE)

    def health_factor(self, position: UserPosition, debt_value: int, prices: Dict[str, int],
                      use_max_ltv: bool = False, market_price: int = PRICE_SCALE) -> int:
        """
        Weighted collateral over debt at 10^8; 10^8 is break-even.

        Collateral is valued in USD, and so is the debt once `market_price`
        is applied, so a market asset trading above par lowers health.
        """
        if debt_value == 0:
            return NO_DEBT_HEALTH
        weighted = self.weighted_collateral_value(position, prices, use_max_ltv)
        return weighted * PERCENT_SCALE // self.debt_usd_value(debt_value, market_price)
