"""
Baby JubJub point arithmetic.

Twisted Edwards curve ``a*x^2 + y^2 = 1 + d*x^2*y^2`` over the BN254 scalar
field. Addition uses the unified (complete) formula, so the identity and
doubling need no special cases, and scalar multiplication is a Montgomery
ladder over a fixed number of bits. Both keep the sequence of field operations
independent of the values involved.

All functions are pure; points are immutable ``ECPoint`` values.
"""

from __future__ import annotations

from dataclasses import dataclass

from .config import (
    CURVE_A,
    CURVE_D,
    FIELD_ELEMENT_BYTES,
    FIELD_MODULUS,
    GENERATOR_X,
    GENERATOR_Y,
    POINT_SIZE_BYTES,
    SCALAR_BITS,
    SUBGROUP_ORDER,
)
from .exceptions import CryptographicError

P = FIELD_MODULUS


def _inv(value: int) -> int:
    return pow(value, P - 2, P)


@dataclass(frozen=True)
class ECPoint:
    """
    Affine point on Baby JubJub.

    Attributes:
        x: X coordinate, canonical field element
        y: Y coordinate, canonical field element
    """

    x: int
    y: int

    def __post_init__(self) -> None:
        if not (0 <= self.x < P and 0 <= self.y < P):
            raise CryptographicError("point coordinates must be canonical field elements")

    @property
    def x_bytes(self) -> bytes:
        return self.x.to_bytes(FIELD_ELEMENT_BYTES, "big")

    @property
    def y_bytes(self) -> bytes:
        return self.y.to_bytes(FIELD_ELEMENT_BYTES, "big")

    def to_bytes(self) -> bytes:
        """64-byte encoding: 32 bytes X followed by 32 bytes Y, big-endian."""
        return self.x_bytes + self.y_bytes

    @classmethod
    def from_bytes(cls, data: bytes) -> ECPoint:
        if len(data) != POINT_SIZE_BYTES:
            raise CryptographicError(
                f"expected {POINT_SIZE_BYTES} bytes, got {len(data)}"
            )
        return cls.from_coordinates(
            data[:FIELD_ELEMENT_BYTES], data[FIELD_ELEMENT_BYTES:]
        )

    @classmethod
    def from_coordinates(cls, x_bytes: bytes, y_bytes: bytes) -> ECPoint:
        """Build a point from separate big-endian X and Y encodings."""
        if len(x_bytes) != FIELD_ELEMENT_BYTES or len(y_bytes) != FIELD_ELEMENT_BYTES:
            raise CryptographicError(
                f"coordinates must be {FIELD_ELEMENT_BYTES} bytes each"
            )
        return cls(int.from_bytes(x_bytes, "big"), int.from_bytes(y_bytes, "big"))

    def is_identity(self) -> bool:
        return self.x == 0 and self.y == 1

    def __str__(self) -> str:
        return f"({self.x}, {self.y})"


IDENTITY = ECPoint(0, 1)
GENERATOR = ECPoint(GENERATOR_X, GENERATOR_Y)


def is_on_curve(point: ECPoint) -> bool:
    """Check ``a*x^2 + y^2 == 1 + d*x^2*y^2``."""
    x2 = point.x * point.x % P
    y2 = point.y * point.y % P
    left = (CURVE_A * x2 + y2) % P
    right = (1 + CURVE_D * x2 % P * y2) % P
    return left == right


def add(p1: ECPoint, p2: ECPoint) -> ECPoint:
    """
    Unified twisted Edwards addition.

    x3 = (x1*y2 + y1*x2) / (1 + d*x1*x2*y1*y2)
    y3 = (y1*y2 - a*x1*x2) / (1 - d*x1*x2*y1*y2)
    """
    x1x2 = p1.x * p2.x % P
    y1y2 = p1.y * p2.y % P
    dxy = CURVE_D * x1x2 % P * y1y2 % P

    x3 = (p1.x * p2.y + p1.y * p2.x) % P * _inv((1 + dxy) % P) % P
    y3 = (y1y2 - CURVE_A * x1x2) % P * _inv((1 - dxy) % P) % P
    return ECPoint(x3, y3)


def negate(point: ECPoint) -> ECPoint:
    return ECPoint((-point.x) % P, point.y)


def subtract(p1: ECPoint, p2: ECPoint) -> ECPoint:
    return add(p1, negate(p2))


def _projective_add(
    p1: tuple[int, int, int], p2: tuple[int, int, int]
) -> tuple[int, int, int]:
    # Unified projective addition (add-2008-bbjlp), no inversions
    x1, y1, z1 = p1
    x2, y2, z2 = p2
    a = z1 * z2 % P
    b = a * a % P
    c = x1 * x2 % P
    d = y1 * y2 % P
    e = CURVE_D * c % P * d % P
    f = (b - e) % P
    g = (b + e) % P
    x3 = a * f % P * (((x1 + y1) * (x2 + y2) - c - d) % P) % P
    y3 = a * g % P * ((d - CURVE_A * c) % P) % P
    z3 = f * g % P
    return x3, y3, z3


def scalar_mul(scalar: int, point: ECPoint) -> ECPoint:
    """
    Multiply ``point`` by ``scalar`` with a Montgomery ladder.

    The ladder always runs SCALAR_BITS iterations (more only for scalars wider
    than that), performing one addition and one doubling per bit in projective
    coordinates. Negative scalars multiply the negated point.
    """
    if scalar < 0:
        scalar = -scalar
        point = negate(point)

    bits = max(SCALAR_BITS, scalar.bit_length())
    r0 = (0, 1, 1)
    r1 = (point.x, point.y, 1)
    for i in reversed(range(bits)):
        if (scalar >> i) & 1:
            r0 = _projective_add(r0, r1)
            r1 = _projective_add(r1, r1)
        else:
            r1 = _projective_add(r0, r1)
            r0 = _projective_add(r0, r0)

    x, y, z = r0
    z_inv = _inv(z)
    return ECPoint(x * z_inv % P, y * z_inv % P)


def base_mul(scalar: int) -> ECPoint:
    """Shortcut for ``scalar * GENERATOR``."""
    return scalar_mul(scalar, GENERATOR)


def in_subgroup(point: ECPoint) -> bool:
    """True if the point lies on the curve and in the prime-order subgroup."""
    return is_on_curve(point) and scalar_mul(SUBGROUP_ORDER, point).is_identity()
