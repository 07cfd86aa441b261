"""
Symmetric key derivation for reactions.

Per-message reaction keys and per-feed secrets are derived from the feed's
32-byte shared group key with HKDF-SHA256, salted with the identifier they are
scoped to. The feed keypair helpers turn a derived secret into the ElGamal key
that vote ciphertexts are encrypted under.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from .babyjubjub import ECPoint, base_mul
from .config import (
    FEED_SECRET_INFO,
    HKDF_OUTPUT_BYTES,
    REACTION_KEY_INFO,
    SHARED_KEY_SIZE_BYTES,
    SUBGROUP_ORDER,
)
from .poseidon import poseidon_hash
from .security import id_to_field


def hkdf_sha256(ikm: bytes, salt: bytes, info: bytes, length: int = HKDF_OUTPUT_BYTES) -> bytes:
    return HKDF(
        algorithm=hashes.SHA256(),
        length=length,
        salt=salt,
        info=info,
    ).derive(ikm)


def _check_shared_key(shared_key: bytes) -> None:
    if len(shared_key) != SHARED_KEY_SIZE_BYTES:
        raise ValueError(
            f"shared key must be {SHARED_KEY_SIZE_BYTES} bytes, got {len(shared_key)}"
        )


def derive_reaction_key(shared_key: bytes, message_id: uuid.UUID) -> bytes:
    """
    Derive the 32-byte key protecting reactions to one message.

    Args:
        shared_key: Feed group key (32 bytes)
        message_id: Target message

    Raises:
        ValueError: If the shared key is not 32 bytes
    """
    _check_shared_key(shared_key)
    return hkdf_sha256(shared_key, message_id.bytes, REACTION_KEY_INFO)


def derive_feed_secret(shared_key: bytes, feed_id: uuid.UUID) -> bytes:
    """
    Derive the 32-byte secret scoped to one feed.

    Raises:
        ValueError: If the shared key is not 32 bytes
    """
    _check_shared_key(shared_key)
    return hkdf_sha256(shared_key, feed_id.bytes, FEED_SECRET_INFO)


@dataclass(frozen=True)
class FeedKeyPair:
    secret: int
    public_key: ECPoint


def feed_scalar(feed_id: uuid.UUID) -> int:
    """Scalar the node derives a group feed's public key from."""
    scalar = poseidon_hash(id_to_field(feed_id)) % SUBGROUP_ORDER
    return scalar if scalar != 0 else 1


def derive_feed_keypair(feed_id: uuid.UUID) -> FeedKeyPair:
    """Feed ElGamal keypair as derived by the node's feed info provider."""
    secret = feed_scalar(feed_id)
    return FeedKeyPair(secret=secret, public_key=base_mul(secret))


def keypair_from_feed_secret(feed_secret: bytes) -> FeedKeyPair:
    """Feed ElGamal keypair derived from a ``derive_feed_secret`` output."""
    secret = int.from_bytes(feed_secret, "big") % SUBGROUP_ORDER
    if secret == 0:
        secret = 1
    return FeedKeyPair(secret=secret, public_key=base_mul(secret))
