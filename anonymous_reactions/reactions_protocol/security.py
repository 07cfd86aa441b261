"""
Security utilities shared by the reaction primitives.

Field element encoding, fork-safe randomness for vote encryption and a
constant-time comparison for secret-derived byte strings.
"""

import hmac
import os
import secrets
import uuid
from typing import Union

from .config import FIELD_ELEMENT_BYTES, FIELD_MODULUS, SUBGROUP_ORDER
from .exceptions import CryptographicError


# ============================================================================
# FIELD ELEMENT ENCODING
# ============================================================================


def field_to_bytes(value: int) -> bytes:
    """
    Encode a field element as 32 bytes big-endian.

    Args:
        value: Integer in [0, FIELD_MODULUS)

    Returns:
        32-byte big-endian encoding

    Raises:
        CryptographicError: If value is outside the field
    """
    if not 0 <= value < FIELD_MODULUS:
        raise CryptographicError("value is not a canonical field element")
    return value.to_bytes(FIELD_ELEMENT_BYTES, "big")


def bytes_to_field(data: bytes) -> int:
    """
    Decode a big-endian byte string into a field element.

    Accepts up to 32 bytes; the value is reduced modulo the field, matching
    how commitments and nullifiers are fed into the circuits.

    Raises:
        CryptographicError: If more than 32 bytes are supplied
    """
    if not isinstance(data, (bytes, bytearray)):
        raise TypeError(f"data must be bytes, got {type(data)}")
    if len(data) > FIELD_ELEMENT_BYTES:
        raise CryptographicError(
            f"field element encoding too long: {len(data)} bytes"
        )
    return int.from_bytes(data, "big") % FIELD_MODULUS


def is_canonical_field_bytes(data: bytes) -> bool:
    """True if ``data`` is exactly 32 bytes encoding a value below the field modulus."""
    return (
        len(data) == FIELD_ELEMENT_BYTES
        and int.from_bytes(data, "big") < FIELD_MODULUS
    )


def canonical_bytes_to_field(data: bytes) -> int:
    """
    Decode a 32-byte field element without reduction.

    Public inputs must have exactly one byte encoding; otherwise N and N + p
    would be distinct storage keys for the same circuit signal.

    Raises:
        CryptographicError: If the encoding is not canonical
    """
    if not isinstance(data, (bytes, bytearray)):
        raise TypeError(f"data must be bytes, got {type(data)}")
    if not is_canonical_field_bytes(data):
        raise CryptographicError("value is not a canonical 32-byte field element")
    return int.from_bytes(data, "big")


def id_to_field(value: Union[uuid.UUID, bytes]) -> int:
    """Read a 16-byte identifier (UUID) as a big-endian field element."""
    raw = value.bytes if isinstance(value, uuid.UUID) else bytes(value)
    return bytes_to_field(raw)


def nonzero_field_element(digest: bytes) -> int:
    """Reduce a KDF output into the field, mapping zero to one."""
    value = int.from_bytes(digest, "big") % FIELD_MODULUS
    return value if value != 0 else 1


# ============================================================================
# RANDOMNESS SOURCE (Fork-Safe)
# ============================================================================


class RandomnessSource:
    """
    Cryptographically secure randomness with fork detection.

    ElGamal randomness must never repeat across processes; the source
    reinitializes itself when it notices it is running in a forked child.
    """

    def __init__(self):
        self._pid = os.getpid()
        self._rng = secrets.SystemRandom()

    def get_random_scalar(self, max_value: int) -> int:
        """Random scalar in [1, max_value)."""
        if os.getpid() != self._pid:
            self.__init__()
        return self._rng.randrange(1, max_value)

    def get_random_subgroup_scalar(self) -> int:
        return self.get_random_scalar(SUBGROUP_ORDER)


# ============================================================================
# CONSTANT-TIME OPERATIONS
# ============================================================================


def constant_time_compare(a: bytes, b: bytes) -> bool:
    """
    Constant-time comparison of two byte strings.

    Used for roots and nullifiers, which are derived from member secrets.
    """
    return hmac.compare_digest(a, b)
