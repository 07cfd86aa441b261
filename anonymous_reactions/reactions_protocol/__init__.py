"""Cryptographic core of anonymous reactions."""
from __future__ import annotations

from .babyjubjub import ECPoint
from .commitments import UserCommitmentService, derive_commitment, derive_nullifier
from .elgamal import VoteCiphertext, encrypt_vote
from .factory import create_verifier
from .feature_flags import get_verifier_type, set_verifier_type
from .key_derivation import derive_feed_secret, derive_reaction_key
from .types import (
    ErrorCode,
    MembershipProof,
    RegisterCommitmentResult,
    SubmitReactionRequest,
    SubmitReactionResult,
)
from .zk.interfaces import PublicInputs, VerifyResult, ZkVerifier

__all__ = [
    "ECPoint",
    "ErrorCode",
    "MembershipProof",
    "PublicInputs",
    "RegisterCommitmentResult",
    "SubmitReactionRequest",
    "SubmitReactionResult",
    "UserCommitmentService",
    "VerifyResult",
    "VoteCiphertext",
    "ZkVerifier",
    "create_verifier",
    "derive_commitment",
    "derive_feed_secret",
    "derive_nullifier",
    "derive_reaction_key",
    "encrypt_vote",
    "get_verifier_type",
    "set_verifier_type",
]
