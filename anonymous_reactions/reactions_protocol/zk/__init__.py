"""Reaction proof verifiers."""

from .interfaces import PublicInputs, VerifierError, VerifyResult, ZkVerifier

__all__ = ["PublicInputs", "VerifierError", "VerifyResult", "ZkVerifier"]
