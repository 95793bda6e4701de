"""Market metrics and result tables"""

from .metrics import MarketMetricsCalculator

__all__ = ["MarketMetricsCalculator"]
