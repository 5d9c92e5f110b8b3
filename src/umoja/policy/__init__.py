"""Policy resolution from the JSON configuration directory."""

from umoja.policy.resolver import PolicyResolver

__all__ = ["PolicyResolver"]
