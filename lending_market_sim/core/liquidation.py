#!/usr/bin/env python3
"""
Liquidation Engine

Pricing of a liquidation against one collateral of an unhealthy position:
the repay is capped at the amount that restores health to exactly break-even,
the liquidator receives collateral at a discount, and a position left with no
collateral but outstanding debt has that debt socialized.

Planning is read-only. Nothing is written until `commit` receives a plan that
passed every guard.
"""

from dataclasses import dataclass
from typing import Dict, Optional
import logging

from .collateral import PositionManager
from .errors import ErrorCode, LiquidationError
from .market import MarketLedger, SocializationResult
from .math import PERCENT_SCALE, PRICE_SCALE, MarketMath


logger = logging.getLogger(__name__)


@dataclass
class LiquidationQuote:
    """Amounts a liquidation would settle"""
    repay_amount: int
    collateral_to_give: int
    max_repay: int
    full_liquidation: bool


@dataclass
class LiquidationPlan:
    """Every effect of one liquidation, applied together by commit"""
    borrower: str
    liquidator: str
    collateral: str
    quote: LiquidationQuote
    debt_shares_burned: int
    health_before: int
    socialize: bool


@dataclass
class LiquidationResult:
    plan: LiquidationPlan
    socialization: Optional[SocializationResult] = None


class LiquidationMath:
    """Pure liquidation pricing"""

    @staticmethod
    def max_repay_to_break_even(debt_value: int, weighted_collateral_value: int,
                                liquidation_discount: int, liquidation_ltv: int) -> int:
        """
        Repay that brings weighted collateral and debt to equality.

        Repaying R removes R of debt and R x (1 + discount) of collateral value,
        i.e. R x (1 + discount) x ltv of weighted value, so
        R = (D - L) / (1 - (1 + discount) x ltv).
        """
        if weighted_collateral_value >= debt_value:
            return 0
        bonus_ltv = liquidation_ltv * (PERCENT_SCALE + liquidation_discount) // PERCENT_SCALE
        if bonus_ltv >= PERCENT_SCALE:
            # seizing cannot improve health; allow closing the whole debt
            return debt_value
        return (debt_value - weighted_collateral_value) * PERCENT_SCALE // (PERCENT_SCALE - bonus_ltv)

    @staticmethod
    def collateral_for_repay(repay_amount: int, price: int, liquidation_discount: int,
                             decimals: int, market_decimals: int, market_price: int = PRICE_SCALE) -> int:
        """Collateral units bought by `repay_amount` at the discounted price"""
        value_with_bonus = MarketMath.mul_div_down(repay_amount, PERCENT_SCALE + liquidation_discount, PERCENT_SCALE)
        market_units = MarketMath.mul_div_down(value_with_bonus, market_price, price)
        return MarketMath.from_market_decimals(market_units, decimals, market_decimals)

    @staticmethod
    def compute(debt_value: int, weighted_collateral_value: int, collateral_amount: int,
                price: int, liquidation_discount: int, liquidation_ltv: int,
                offered_repay: int, decimals: int, market_decimals: int = 8,
                market_price: int = PRICE_SCALE) -> LiquidationQuote:
        """
        Quote a liquidation. `debt_value` and every repay are in market-asset
        units; collateral values are USD, so the break-even repay is solved in
        USD and converted back at `market_price`.
        """
        debt_usd = PositionManager.debt_usd_value(debt_value, market_price)
        max_repay_usd = LiquidationMath.max_repay_to_break_even(
            debt_usd, weighted_collateral_value, liquidation_discount, liquidation_ltv
        )
        max_repay = MarketMath.mul_div_down(max_repay_usd, PRICE_SCALE, market_price)
        repay = min(offered_repay, max_repay, debt_value)

        if price > 0:
            collateral_to_give = LiquidationMath.collateral_for_repay(
                repay, price, liquidation_discount, decimals, market_decimals, market_price
            )
            if collateral_to_give <= collateral_amount:
                return LiquidationQuote(repay, collateral_to_give, max_repay, False)

        # seize everything and charge only what it is worth at the discount
        value = MarketMath.token_value(collateral_amount, price, decimals, market_decimals)
        full_repay = MarketMath.mul_div_up(
            value, PERCENT_SCALE * PRICE_SCALE, (PERCENT_SCALE + liquidation_discount) * market_price
        )
        return LiquidationQuote(min(full_repay, debt_value), collateral_amount, max_repay, True)


class LiquidationEngine:
    """Builds and commits liquidation plans against the ledger and positions"""

    def __init__(self, ledger: MarketLedger, positions: PositionManager):
        self.ledger = ledger
        self.positions = positions

    def plan(self, borrower: str, liquidator: str, collateral: str, offered_repay: int,
             min_collateral_expected: int, prices: Dict[str, int], block: int,
             market_price: int = PRICE_SCALE) -> LiquidationPlan:
        """Price a liquidation and run every guard without touching state"""
        config = self.positions.get_config(collateral)
        position = self.positions.get_position(borrower)
        collateral_amount = position.collateral_balance(collateral)
        if collateral_amount == 0:
            raise LiquidationError(ErrorCode.NO_COLLATERAL_BALANCE, f"{borrower} holds no {collateral}")

        if position.last_update_block == block or config.updated_at_block == block:
            raise LiquidationError(
                ErrorCode.LIQUIDATION_NOT_ALLOWED,
                f"Position or {collateral} settings changed in block {block}"
            )

        price = prices[collateral]
        if offered_repay == 0 and price > 0:
            raise LiquidationError(ErrorCode.ZERO_REPAY, "Repay amount must be positive")

        debt_value = self.ledger.debt_value(position.debt_shares)
        health = self.positions.health_factor(position, debt_value, prices, market_price=market_price)
        if debt_value == 0 or health >= PERCENT_SCALE:
            raise LiquidationError(ErrorCode.POSITION_HEALTHY, f"{borrower} health {health} is not liquidatable")

        quote = LiquidationMath.compute(
            debt_value=debt_value,
            weighted_collateral_value=self.positions.weighted_collateral_value(position, prices),
            collateral_amount=collateral_amount,
            price=price,
            liquidation_discount=config.liquidation_discount,
            liquidation_ltv=config.liquidation_ltv,
            offered_repay=offered_repay,
            decimals=config.decimals,
            market_decimals=self.positions.market_decimals,
            market_price=market_price,
        )

        if quote.repay_amount == 0 and price > 0:
            raise LiquidationError(ErrorCode.ZERO_REPAY, "Liquidation would repay nothing")
        if quote.collateral_to_give < min_collateral_expected:
            raise LiquidationError(
                ErrorCode.SLIPPAGE,
                f"Collateral {quote.collateral_to_give} below expected {min_collateral_expected}"
            )

        if quote.repay_amount >= debt_value:
            shares_burned = position.debt_shares
        else:
            shares_burned = min(
                MarketMath.mul_div_down(quote.repay_amount, self.ledger.debt_share_supply, self.ledger.total_debt),
                position.debt_shares,
            )

        emptied = quote.collateral_to_give == collateral_amount and len(position.collaterals) == 1
        socialize = emptied and shares_burned < position.debt_shares

        return LiquidationPlan(
            borrower=borrower,
            liquidator=liquidator,
            collateral=collateral,
            quote=quote,
            debt_shares_burned=shares_burned,
            health_before=health,
            socialize=socialize,
        )

    def commit(self, plan: LiquidationPlan, staking_holder: Optional[str] = None) -> LiquidationResult:
        """Apply a plan: burn repaid debt, move collateral, socialize any remainder"""
        position = self.positions.get_position(plan.borrower)

        if plan.debt_shares_burned:
            self.ledger.burn_debt(plan.debt_shares_burned, plan.quote.repay_amount)
            position.debt_shares -= plan.debt_shares_burned
        if plan.quote.collateral_to_give:
            self.positions.seize_collateral(plan.borrower, plan.collateral, plan.quote.collateral_to_give)

        result = LiquidationResult(plan)
        if plan.socialize:
            result.socialization = self.ledger.socialize_bad_debt(position.debt_shares, staking_holder)
            position.debt_shares = 0

        logger.info(
            "Liquidated %s: repaid %d for %d %s%s",
            plan.borrower, plan.quote.repay_amount, plan.quote.collateral_to_give, plan.collateral,
            " (full)" if plan.quote.full_liquidation else ""
        )
        return result
