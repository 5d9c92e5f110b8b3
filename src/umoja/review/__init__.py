"""Peer-reviewer selection."""

from umoja.review.router import ReviewerRouter, eligible_reviewer_tiers

__all__ = ["ReviewerRouter", "eligible_reviewer_tiers"]
