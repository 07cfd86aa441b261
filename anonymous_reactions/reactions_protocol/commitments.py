"""
Member commitments and nullifiers.

A member's commitment is ``Poseidon(secret)`` where the secret is a non-zero
field element derived with HKDF, either from the member's public address
(server side, when membership changes) or from the local signing key (the
member's own node). Nullifiers bind the same secret to one message so a member
can react to it at most once.
"""

from __future__ import annotations

import logging
import uuid
from typing import Protocol

from .config import (
    ADDRESS_COMMITMENT_INFO,
    ADDRESS_COMMITMENT_SALT,
    LOCAL_SECRET_INFO,
    LOCAL_SECRET_SALT,
    NULLIFIER_DOMAIN,
)
from .key_derivation import hkdf_sha256
from .poseidon import poseidon_hash
from .security import field_to_bytes, id_to_field, nonzero_field_element

log = logging.getLogger(__name__)


class CredentialsProvider(Protocol):
    """Source of the local node's signing key."""

    def get_private_signing_key(self) -> str:
        """Hex-encoded private signing key."""
        ...


def compute_commitment(secret: int) -> bytes:
    """Commitment of a member secret: Poseidon(secret) as 32 bytes big-endian."""
    return field_to_bytes(poseidon_hash(secret))


def derive_address_secret(address: str) -> int:
    """Deterministic non-zero secret for a public address."""
    digest = hkdf_sha256(
        address.encode("utf-8"), ADDRESS_COMMITMENT_SALT, ADDRESS_COMMITMENT_INFO
    )
    return nonzero_field_element(digest)


def derive_commitment(address: str) -> bytes:
    """
    Derive the commitment registered for ``address``.

    Same address always yields the same commitment; distinct addresses yield
    distinct commitments except with negligible probability.

    Raises:
        ValueError: If the address is empty
    """
    if not address:
        raise ValueError("address must be a non-empty string")
    return compute_commitment(derive_address_secret(address))


def derive_nullifier(secret: int, message_id: uuid.UUID, feed_id: uuid.UUID) -> bytes:
    """
    Nullifier for one member reacting to one message.

    Poseidon(secret, message_id, feed_id, NULLIFIER_DOMAIN) with the ids read
    as big-endian field elements. Deterministic in (secret, message), so a
    resubmission maps to the same nullifier.
    """
    value = poseidon_hash(
        secret, id_to_field(message_id), id_to_field(feed_id), NULLIFIER_DOMAIN
    )
    return field_to_bytes(value)


class UserCommitmentService:
    """
    Local member secret and commitment.

    The secret is derived once from the signing key supplied by the injected
    credentials provider, so two services built over the same credentials
    agree on it.
    """

    def __init__(self, credentials: CredentialsProvider) -> None:
        private_key = bytes.fromhex(credentials.get_private_signing_key())
        if not private_key:
            raise ValueError("private signing key is empty")
        digest = hkdf_sha256(private_key, LOCAL_SECRET_SALT, LOCAL_SECRET_INFO)
        self._secret = nonzero_field_element(digest)
        self._commitment = compute_commitment(self._secret)
        log.debug("Local commitment %s...", self._commitment.hex()[:16])

    @property
    def local_secret(self) -> int:
        return self._secret

    @property
    def local_commitment(self) -> bytes:
        return self._commitment

    def derive_commitment(self, address: str) -> bytes:
        return derive_commitment(address)

    def nullifier_for(self, message_id: uuid.UUID, feed_id: uuid.UUID) -> bytes:
        return derive_nullifier(self._secret, message_id, feed_id)
