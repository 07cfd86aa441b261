"""
Additively homomorphic ElGamal vote ciphertexts on Baby JubJub.

A vote is a vector of VOTE_SLOTS ciphertexts, one per emoji kind. Slot i holds
an encryption of ``m_i * G`` with m_i = 1 for the chosen emoji and 0 for every
other slot:

    C1 = r * G
    C2 = m * G + r * PK

Adding two votes slot by slot adds the plaintexts, so the server folds every
reaction into a running tally without decrypting anything. Holders of the feed
secret recover each slot's count with a bounded discrete-log search.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Sequence

from .babyjubjub import (
    GENERATOR,
    IDENTITY,
    ECPoint,
    add,
    base_mul,
    is_on_curve,
    scalar_mul,
    subtract,
)
from .config import FIELD_ELEMENT_BYTES, MAX_DECRYPT_COUNT, POINT_SIZE_BYTES, VOTE_SLOTS
from .exceptions import CryptographicError
from .security import RandomnessSource

_default_rng = RandomnessSource()


@dataclass(frozen=True)
class VoteCiphertext:
    """
    Vector of ElGamal ciphertexts.

    Attributes:
        c1: C1 point of every slot
        c2: C2 point of every slot
    """

    c1: tuple[ECPoint, ...]
    c2: tuple[ECPoint, ...]

    def __post_init__(self) -> None:
        if len(self.c1) != len(self.c2):
            raise CryptographicError("C1 and C2 must have the same number of slots")

    @property
    def slots(self) -> int:
        return len(self.c1)

    def to_bytes(self) -> bytes:
        """All C1 points then all C2 points, 64 bytes each."""
        return b"".join(p.to_bytes() for p in self.c1 + self.c2)

    @classmethod
    def from_bytes(cls, data: bytes) -> VoteCiphertext:
        if len(data) % (2 * POINT_SIZE_BYTES) != 0:
            raise CryptographicError("ciphertext encoding has a partial slot")
        points = [
            ECPoint.from_bytes(data[i:i + POINT_SIZE_BYTES])
            for i in range(0, len(data), POINT_SIZE_BYTES)
        ]
        half = len(points) // 2
        return cls(c1=tuple(points[:half]), c2=tuple(points[half:]))

    def to_wire(self) -> tuple[list[bytes], list[bytes], list[bytes], list[bytes]]:
        """Coordinate arrays (C1x, C1y, C2x, C2y) as sent by clients."""
        return (
            [p.x_bytes for p in self.c1],
            [p.y_bytes for p in self.c1],
            [p.x_bytes for p in self.c2],
            [p.y_bytes for p in self.c2],
        )

    @classmethod
    def from_wire(
        cls,
        c1x: Sequence[bytes],
        c1y: Sequence[bytes],
        c2x: Sequence[bytes],
        c2y: Sequence[bytes],
    ) -> VoteCiphertext:
        """
        Build a ciphertext from coordinate arrays.

        Raises:
            CryptographicError: If array lengths differ, a coordinate is not
                32 bytes, or a point is off the curve
        """
        if not (len(c1x) == len(c1y) == len(c2x) == len(c2y)):
            raise CryptographicError("coordinate arrays differ in length")
        for coordinate in (*c1x, *c1y, *c2x, *c2y):
            if len(coordinate) != FIELD_ELEMENT_BYTES:
                raise CryptographicError("coordinate must be 32 bytes")

        c1 = tuple(ECPoint.from_coordinates(x, y) for x, y in zip(c1x, c1y))
        c2 = tuple(ECPoint.from_coordinates(x, y) for x, y in zip(c2x, c2y))
        for point in c1 + c2:
            if not is_on_curve(point):
                raise CryptographicError("ciphertext point is not on the curve")
        return cls(c1=c1, c2=c2)


def empty_tally(slots: int = VOTE_SLOTS) -> VoteCiphertext:
    """Encryption of zero in every slot (identity points)."""
    return VoteCiphertext(c1=(IDENTITY,) * slots, c2=(IDENTITY,) * slots)


def encrypt_vote(
    choice: int,
    public_key: ECPoint,
    *,
    slots: int = VOTE_SLOTS,
    randomness: Optional[Sequence[int]] = None,
    rng: Optional[RandomnessSource] = None,
) -> VoteCiphertext:
    """
    Encrypt a one-hot vote for slot ``choice``.

    Args:
        choice: Index of the chosen emoji, in [0, slots)
        public_key: Feed ElGamal public key
        randomness: Optional per-slot nonces (tests and replays)
        rng: Randomness source used when no nonces are given

    Raises:
        ValueError: If choice or the nonce count is out of range
    """
    if not 0 <= choice < slots:
        raise ValueError(f"choice must be in [0, {slots}), got {choice}")
    if randomness is None:
        source = rng or _default_rng
        randomness = [source.get_random_subgroup_scalar() for _ in range(slots)]
    if len(randomness) != slots:
        raise ValueError(f"expected {slots} nonces, got {len(randomness)}")

    c1 = []
    c2 = []
    for i, r in enumerate(randomness):
        message = 1 if i == choice else 0
        c1.append(base_mul(r))
        c2.append(add(base_mul(message), scalar_mul(r, public_key)))
    return VoteCiphertext(c1=tuple(c1), c2=tuple(c2))


def add_votes(a: VoteCiphertext, b: VoteCiphertext) -> VoteCiphertext:
    """Slot-wise homomorphic addition."""
    if a.slots != b.slots:
        raise CryptographicError("cannot combine ciphertexts with different slot counts")
    return VoteCiphertext(
        c1=tuple(add(x, y) for x, y in zip(a.c1, b.c1)),
        c2=tuple(add(x, y) for x, y in zip(a.c2, b.c2)),
    )


def subtract_votes(a: VoteCiphertext, b: VoteCiphertext) -> VoteCiphertext:
    """Slot-wise homomorphic subtraction (removes vote ``b`` from ``a``)."""
    if a.slots != b.slots:
        raise CryptographicError("cannot combine ciphertexts with different slot counts")
    return VoteCiphertext(
        c1=tuple(subtract(x, y) for x, y in zip(a.c1, b.c1)),
        c2=tuple(subtract(x, y) for x, y in zip(a.c2, b.c2)),
    )


def sum_votes(votes: Sequence[VoteCiphertext], slots: int = VOTE_SLOTS) -> VoteCiphertext:
    total = empty_tally(slots)
    for vote in votes:
        total = add_votes(total, vote)
    return total


def decrypt_slot(
    c1: ECPoint, c2: ECPoint, secret: int, max_count: int = MAX_DECRYPT_COUNT
) -> Optional[int]:
    """
    Recover the count encrypted in one slot.

    Returns:
        The count in [0, max_count], or None if it is larger
    """
    target = subtract(c2, scalar_mul(secret, c1))
    acc = IDENTITY
    for count in range(max_count + 1):
        if acc == target:
            return count
        acc = add(acc, GENERATOR)
    return None


def decrypt_tally(
    tally: VoteCiphertext, secret: int, max_count: int = MAX_DECRYPT_COUNT
) -> list[Optional[int]]:
    return [decrypt_slot(c1, c2, secret, max_count) for c1, c2 in zip(tally.c1, tally.c2)]
