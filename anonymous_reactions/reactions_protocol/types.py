"""
Data model for anonymous reactions.

This module provides:
1. ErrorCode - typed rejection reasons of the submission pipeline
2. Storage rows - commitments, root history, nullifiers, tallies, audit log
3. Request/result shapes exchanged with the transport layer, with CBOR
   serialization for the request and the audit record
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

import cbor2

from .config import MERKLE_TREE_DEPTH
from .elgamal import VoteCiphertext
from .exceptions import CryptographicError

RECORD_VERSION = 1


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# ERROR CODES
# ============================================================================


class ErrorCode(Enum):
    """
    Reasons a reaction is rejected.

    Gates run in a fixed order: shape (INVALID_*), then FEED_NOT_FOUND,
    MESSAGE_NOT_FOUND, NO_MERKLE_ROOTS and finally INVALID_PROOF.
    """

    INVALID_CIPHERTEXT_SIZE = "INVALID_CIPHERTEXT_SIZE"
    INVALID_CIPHERTEXT_POINT = "INVALID_CIPHERTEXT_POINT"
    INVALID_NULLIFIER = "INVALID_NULLIFIER"
    FEED_NOT_FOUND = "FEED_NOT_FOUND"
    MESSAGE_NOT_FOUND = "MESSAGE_NOT_FOUND"
    NO_MERKLE_ROOTS = "NO_MERKLE_ROOTS"
    INVALID_PROOF = "INVALID_PROOF"


# ============================================================================
# MEMBERSHIP ROWS
# ============================================================================


@dataclass(frozen=True)
class FeedMemberCommitment:
    feed_id: uuid.UUID
    commitment: bytes
    registered_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class GroupMemberCommitment(FeedMemberCommitment):
    """
    Commitment row with rotation and revocation data.

    A row is active while ``revoked_at_block`` is None. Revocation never
    deletes the row; re-joining appends a new active row.
    """

    key_generation: int = 0
    registered_at_block: int = 0
    revoked_at_block: Optional[int] = None

    @property
    def is_active(self) -> bool:
        return self.revoked_at_block is None


@dataclass(frozen=True)
class MerkleRootHistory:
    """
    One appended root. ``id`` increases monotonically with every append and
    defines recency; rows are never mutated.
    """

    id: int
    feed_id: uuid.UUID
    root: bytes
    block_height: int
    created_at: datetime = field(default_factory=utcnow)


# ============================================================================
# REACTION ROWS
# ============================================================================


@dataclass(frozen=True)
class ReactionNullifier:
    nullifier: bytes
    message_id: uuid.UUID
    vote: VoteCiphertext
    encrypted_backup: Optional[bytes] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class MessageReactionTally:
    """
    Running encrypted tally of one message.

    Attributes:
        message_id: Tallied message
        feed_id: Feed the message belongs to
        tally: Homomorphic sum of the current vote of every nullifier
        total_count: Number of distinct nullifiers (updates do not count)
        version: Monotonic version, bumped on every write
        last_updated: Time of the last write
    """

    message_id: uuid.UUID
    feed_id: uuid.UUID
    tally: VoteCiphertext
    total_count: int
    version: int
    last_updated: datetime = field(default_factory=utcnow)


@dataclass(frozen=True)
class ReactionTransaction:
    """Immutable audit record of an accepted reaction."""

    id: uuid.UUID
    block_height: int
    feed_id: uuid.UUID
    message_id: uuid.UUID
    nullifier: bytes
    vote: VoteCiphertext
    proof: bytes
    circuit_version: str
    created_at: datetime = field(default_factory=utcnow)

    def to_bytes(self) -> bytes:
        """Serialize the record to CBOR."""
        try:
            return cbor2.dumps(
                {
                    "v": RECORD_VERSION,
                    "id": self.id.bytes,
                    "h": self.block_height,
                    "f": self.feed_id.bytes,
                    "m": self.message_id.bytes,
                    "n": self.nullifier,
                    "c": self.vote.to_bytes(),
                    "p": self.proof,
                    "cv": self.circuit_version,
                    "ts": self.created_at.timestamp(),
                }
            )
        except (TypeError, ValueError, cbor2.CBOREncodeError) as exc:
            raise CryptographicError(f"Failed to serialize transaction: {exc}") from exc

    @classmethod
    def from_bytes(cls, data: bytes) -> ReactionTransaction:
        try:
            raw = cbor2.loads(data)
            if raw.get("v") != RECORD_VERSION:
                raise CryptographicError(f"Unsupported record version: {raw.get('v')}")
            return cls(
                id=uuid.UUID(bytes=raw["id"]),
                block_height=int(raw["h"]),
                feed_id=uuid.UUID(bytes=raw["f"]),
                message_id=uuid.UUID(bytes=raw["m"]),
                nullifier=bytes(raw["n"]),
                vote=VoteCiphertext.from_bytes(raw["c"]),
                proof=bytes(raw["p"]),
                circuit_version=str(raw["cv"]),
                created_at=datetime.fromtimestamp(raw["ts"], tz=timezone.utc),
            )
        except (KeyError, TypeError, ValueError, AttributeError, cbor2.CBORDecodeError) as exc:
            raise CryptographicError(f"Failed to deserialize transaction: {exc}") from exc


# ============================================================================
# REQUEST / RESULT SHAPES
# ============================================================================


@dataclass(frozen=True)
class SubmitReactionRequest:
    """
    A reaction as received from the transport.

    The four coordinate arrays hold one 32-byte big-endian value per vote
    slot. Nothing here is validated until the pipeline's shape gate runs.
    """

    feed_id: uuid.UUID
    message_id: uuid.UUID
    nullifier: bytes
    c1x: tuple[bytes, ...]
    c1y: tuple[bytes, ...]
    c2x: tuple[bytes, ...]
    c2y: tuple[bytes, ...]
    proof: bytes
    circuit_version: str
    encrypted_backup: Optional[bytes] = None

    @classmethod
    def from_vote(
        cls,
        *,
        feed_id: uuid.UUID,
        message_id: uuid.UUID,
        nullifier: bytes,
        vote: VoteCiphertext,
        proof: bytes,
        circuit_version: str,
        encrypted_backup: Optional[bytes] = None,
    ) -> SubmitReactionRequest:
        c1x, c1y, c2x, c2y = vote.to_wire()
        return cls(
            feed_id=feed_id,
            message_id=message_id,
            nullifier=nullifier,
            c1x=tuple(c1x),
            c1y=tuple(c1y),
            c2x=tuple(c2x),
            c2y=tuple(c2y),
            proof=proof,
            circuit_version=circuit_version,
            encrypted_backup=encrypted_backup,
        )

    def to_bytes(self) -> bytes:
        return cbor2.dumps(
            {
                "v": RECORD_VERSION,
                "f": self.feed_id.bytes,
                "m": self.message_id.bytes,
                "n": self.nullifier,
                "c1x": list(self.c1x),
                "c1y": list(self.c1y),
                "c2x": list(self.c2x),
                "c2y": list(self.c2y),
                "p": self.proof,
                "cv": self.circuit_version,
                "b": self.encrypted_backup,
            }
        )

    @classmethod
    def from_bytes(cls, data: bytes) -> SubmitReactionRequest:
        """
        Decode a CBOR request.

        Raises:
            ValueError: If the payload is not a well-formed request
        """
        try:
            raw = cbor2.loads(data)
            if raw.get("v") != RECORD_VERSION:
                raise ValueError(f"Unsupported request version: {raw.get('v')}")
            return cls(
                feed_id=uuid.UUID(bytes=raw["f"]),
                message_id=uuid.UUID(bytes=raw["m"]),
                nullifier=bytes(raw["n"]),
                c1x=tuple(bytes(v) for v in raw["c1x"]),
                c1y=tuple(bytes(v) for v in raw["c1y"]),
                c2x=tuple(bytes(v) for v in raw["c2x"]),
                c2y=tuple(bytes(v) for v in raw["c2y"]),
                proof=bytes(raw["p"]),
                circuit_version=str(raw["cv"]),
                encrypted_backup=raw.get("b"),
            )
        except (KeyError, TypeError, AttributeError, cbor2.CBORDecodeError) as exc:
            raise ValueError(f"Malformed reaction request: {exc}") from exc


@dataclass(frozen=True)
class SubmitReactionResult:
    success: bool
    error_code: Optional[ErrorCode] = None
    message: Optional[str] = None
    transaction_id: Optional[str] = None

    @classmethod
    def ok(cls, transaction_id: str) -> SubmitReactionResult:
        return cls(success=True, transaction_id=transaction_id)

    @classmethod
    def rejected(cls, code: ErrorCode, message: str) -> SubmitReactionResult:
        return cls(success=False, error_code=code, message=message)


@dataclass(frozen=True)
class MembershipProof:
    """
    Inclusion proof handed to the prover.

    Attributes:
        is_member: False for unknown or revoked commitments (no proof data)
        root: Current root, 32 bytes
        path_elements: Sibling per level, leaf level first, 32 bytes each
        path_indices: 0 = left child, 1 = right child, per level
        tree_depth: Always MERKLE_TREE_DEPTH
        root_block_height: Block height of the most recent root row
    """

    is_member: bool
    root: Optional[bytes] = None
    path_elements: Optional[tuple[bytes, ...]] = None
    path_indices: Optional[tuple[int, ...]] = None
    tree_depth: int = MERKLE_TREE_DEPTH
    root_block_height: int = 0

    @classmethod
    def not_member(cls) -> MembershipProof:
        return cls(is_member=False)


@dataclass(frozen=True)
class RegisterCommitmentResult:
    success: bool
    already_registered: bool = False
    root: Optional[bytes] = None
