#!/usr/bin/env python3
"""
Lending Market Fixed-Point Math

Integer fixed-point helpers shared by the ledger, the liquidation engine and
the rate limiter. Quantities model 128-bit unsigned on-chain integers: checked
helpers fail closed, saturating helpers clamp.
"""

from .errors import ArithmeticOverflowError


U128_MAX = 2 ** 128 - 1

# Rates and utilization
IR_SCALE = 10 ** 12
# LTVs, discounts, cap factors and health
PERCENT_SCALE = 10 ** 8
PRICE_SCALE = 10 ** 8

SECONDS_PER_YEAR = 31_536_000


class MarketMath:
    """Pure fixed-point functions for market calculations"""

    @staticmethod
    def checked_add(a: int, b: int) -> int:
        result = a + b
        if result > U128_MAX:
            raise ArithmeticOverflowError("Arithmetic overflow in addition")
        return result

    @staticmethod
    def checked_sub(a: int, b: int) -> int:
        if b > a:
            raise ArithmeticOverflowError("Arithmetic underflow in subtraction")
        return a - b

    @staticmethod
    def checked_mul(a: int, b: int) -> int:
        result = a * b
        if result > U128_MAX:
            raise ArithmeticOverflowError("Arithmetic overflow in multiplication")
        return result

    @staticmethod
    def saturating_add(a: int, b: int) -> int:
        return min(a + b, U128_MAX)

    @staticmethod
    def saturating_sub(a: int, b: int) -> int:
        return a - b if a > b else 0

    @staticmethod
    def saturating_mul(a: int, b: int) -> int:
        return min(a * b, U128_MAX)

    @staticmethod
    def mul_div_down(a: int, b: int, denominator: int) -> int:
        """floor(a * b / denominator) with a checked product"""
        return MarketMath.checked_mul(a, b) // denominator

    @staticmethod
    def mul_div_up(a: int, b: int, denominator: int) -> int:
        """ceil(a * b / denominator) with a checked product"""
        product = MarketMath.checked_mul(a, b)
        return -(-product // denominator)

    @staticmethod
    def signed_mul_div(a: int, b: int, denominator: int) -> int:
        """a * b / denominator truncated toward zero"""
        product = a * b
        if product < 0:
            return -((-product) // denominator)
        return product // denominator

    @staticmethod
    def to_market_decimals(amount: int, decimals: int, market_decimals: int) -> int:
        """
        Convert a token amount into market-asset decimals.

        Collateral with more decimals than the market asset is scaled down
        (flooring), fewer decimals are scaled up.
        """
        if decimals > market_decimals:
            return amount // 10 ** (decimals - market_decimals)
        return amount * 10 ** (market_decimals - decimals)

    @staticmethod
    def from_market_decimals(amount: int, decimals: int, market_decimals: int) -> int:
        """Inverse of to_market_decimals"""
        if decimals > market_decimals:
            return amount * 10 ** (decimals - market_decimals)
        return amount // 10 ** (market_decimals - decimals)

    @staticmethod
    def token_value(amount: int, price: int, decimals: int, market_decimals: int) -> int:
        """Value of a token amount in market-asset units at a PRICE_SCALE price"""
        normalized = MarketMath.to_market_decimals(amount, decimals, market_decimals)
        return MarketMath.mul_div_down(normalized, price, PRICE_SCALE)

    @staticmethod
    def percent_of(amount: int, percentage: int) -> int:
        return MarketMath.mul_div_down(amount, percentage, PERCENT_SCALE)
