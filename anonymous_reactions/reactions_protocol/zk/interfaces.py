"""
Verifier interface for reaction proofs.

A reaction proof attests that the prover (a) knows a secret whose commitment is
a leaf of the feed's membership tree at ``members_root``, (b) derived
``nullifier`` from that secret and the message id, and (c) encrypted a
permitted one-hot vote under the feed public key. Backends only see the public
inputs listed in ``PublicInputs``.
"""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from ..babyjubjub import ECPoint
from ..config import PUBLIC_INPUT_COUNT
from ..elgamal import VoteCiphertext
from ..security import canonical_bytes_to_field, id_to_field


@dataclass(frozen=True)
class PublicInputs:
    """
    Public inputs of the reaction circuit.

    Attributes:
        nullifier: 32-byte nullifier
        vote: Encrypted vote vector
        message_id: Target message
        feed_public_key: Feed ElGamal key the vote is encrypted under
        members_root: Membership root the proof is bound to (32 bytes)
        author_commitment: Commitment of the target message's author (32 bytes)
    """

    nullifier: bytes
    vote: VoteCiphertext
    message_id: uuid.UUID
    feed_public_key: ECPoint
    members_root: bytes
    author_commitment: bytes

    def to_field_elements(self) -> list[int]:
        """
        Flatten into the circuit's public signal order.

        nullifier, message_id, members_root, author_commitment, pk.x, pk.y,
        then (x, y) of every C1, then (x, y) of every C2.
        """
        signals = [
            canonical_bytes_to_field(self.nullifier),
            id_to_field(self.message_id),
            canonical_bytes_to_field(self.members_root),
            canonical_bytes_to_field(self.author_commitment),
            self.feed_public_key.x,
            self.feed_public_key.y,
        ]
        for point in self.vote.c1:
            signals.extend((point.x, point.y))
        for point in self.vote.c2:
            signals.extend((point.x, point.y))
        if len(signals) != PUBLIC_INPUT_COUNT:
            raise ValueError(
                f"expected {PUBLIC_INPUT_COUNT} public signals, got {len(signals)}"
            )
        return signals

    def with_root(self, members_root: bytes) -> PublicInputs:
        return PublicInputs(
            nullifier=self.nullifier,
            vote=self.vote,
            message_id=self.message_id,
            feed_public_key=self.feed_public_key,
            members_root=members_root,
            author_commitment=self.author_commitment,
        )


class VerifierError:
    """Error identifiers reported in ``VerifyResult.error``."""

    VULNERABLE_CIRCUIT_VERSION = "VULNERABLE_CIRCUIT_VERSION"
    UNKNOWN_CIRCUIT_VERSION = "UNKNOWN_CIRCUIT_VERSION"
    INVALID_PROOF_FORMAT = "INVALID_PROOF_FORMAT"
    INVALID_PROOF = "INVALID_PROOF"
    VERIFICATION_ERROR = "VERIFICATION_ERROR"


@dataclass(frozen=True)
class VerifyResult:
    valid: bool
    error: Optional[str] = None
    message: Optional[str] = None
    warning: Optional[str] = None

    @classmethod
    def success(cls) -> VerifyResult:
        return cls(valid=True)

    @classmethod
    def success_with_warning(cls, warning: str) -> VerifyResult:
        return cls(valid=True, warning=warning)

    @classmethod
    def failure(cls, error: str, message: str) -> VerifyResult:
        return cls(valid=False, error=error, message=message)


class ZkVerifier(ABC):
    """
    Reaction proof verifier.

    Implementations must not raise for routine rejections; every failure is
    reported through ``VerifyResult``.
    """

    @property
    @abstractmethod
    def current_version(self) -> str:
        """Circuit version new clients should prove against."""

    @abstractmethod
    def is_version_supported(self, circuit_version: str) -> bool:
        ...

    @abstractmethod
    def is_vulnerable_version(self, circuit_version: str) -> bool:
        ...

    @abstractmethod
    async def verify(
        self, proof: bytes, inputs: PublicInputs, circuit_version: str
    ) -> VerifyResult:
        """Check ``proof`` against ``inputs`` for ``circuit_version``."""
