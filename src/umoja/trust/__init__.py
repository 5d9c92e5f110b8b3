"""Farmer trust scoring — pure calculator and event-driven ledger."""

from umoja.trust.calculator import TrustCalculator
from umoja.trust.ledger import TrustLedger

__all__ = ["TrustCalculator", "TrustLedger"]
