"""Student portfolio aggregation."""

from umoja.portfolio.aggregator import PortfolioAggregator
from umoja.portfolio.tiering import portfolio_strength, unlocked_tiers

__all__ = ["PortfolioAggregator", "portfolio_strength", "unlocked_tiers"]
