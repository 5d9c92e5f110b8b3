"""Farmer identity-verification state machine."""

from umoja.verification.gate import VerificationGate, resubmit_verification

__all__ = ["VerificationGate", "resubmit_verification"]
