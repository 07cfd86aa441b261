"""
Unit tests for Baby JubJub point arithmetic.

Tests cover:
1. Curve membership of the generator and identity
2. Group law (identity, negation, associativity of scalar multiples)
3. Montgomery ladder agreement with repeated addition
4. Point encoding and canonical-range checks
"""

from __future__ import annotations

import pytest

from anonymous_reactions.reactions_protocol.babyjubjub import (
    GENERATOR,
    IDENTITY,
    ECPoint,
    add,
    base_mul,
    in_subgroup,
    is_on_curve,
    negate,
    scalar_mul,
    subtract,
)
from anonymous_reactions.reactions_protocol.config import FIELD_MODULUS, SUBGROUP_ORDER
from anonymous_reactions.reactions_protocol.exceptions import CryptographicError


class TestCurveBasics:
    def test_generator_on_curve(self) -> None:
        assert is_on_curve(GENERATOR)

    def test_identity_on_curve(self) -> None:
        assert is_on_curve(IDENTITY)
        assert IDENTITY.is_identity()

    def test_generator_in_prime_subgroup(self) -> None:
        assert in_subgroup(GENERATOR)

    def test_off_curve_point_detected(self) -> None:
        assert not is_on_curve(ECPoint(1, 1))


class TestGroupLaw:
    def test_identity_is_neutral(self) -> None:
        assert add(GENERATOR, IDENTITY) == GENERATOR
        assert add(IDENTITY, GENERATOR) == GENERATOR

    def test_negation_cancels(self) -> None:
        assert add(GENERATOR, negate(GENERATOR)).is_identity()
        assert subtract(GENERATOR, GENERATOR).is_identity()

    def test_addition_commutes(self) -> None:
        p = base_mul(7)
        q = base_mul(11)
        assert add(p, q) == add(q, p)

    def test_sum_stays_on_curve(self) -> None:
        assert is_on_curve(add(base_mul(5), base_mul(9)))


class TestScalarMultiplication:
    def test_small_multiples_match_repeated_addition(self) -> None:
        acc = IDENTITY
        for k in range(6):
            assert scalar_mul(k, GENERATOR) == acc
            acc = add(acc, GENERATOR)

    def test_zero_scalar_gives_identity(self) -> None:
        assert scalar_mul(0, GENERATOR).is_identity()

    def test_subgroup_order_gives_identity(self) -> None:
        assert scalar_mul(SUBGROUP_ORDER, GENERATOR).is_identity()

    def test_scalar_distributes_over_addition(self) -> None:
        a = 123456789
        b = 987654321
        assert base_mul(a + b) == add(base_mul(a), base_mul(b))

    def test_negative_scalar_negates(self) -> None:
        assert scalar_mul(-3, GENERATOR) == negate(base_mul(3))

    def test_scalar_wider_than_ladder(self) -> None:
        wide = (1 << 300) + 5
        assert base_mul(wide) == base_mul(wide % SUBGROUP_ORDER)

    def test_scalar_mul_of_arbitrary_point(self) -> None:
        p = base_mul(42)
        assert scalar_mul(3, p) == base_mul(126)


class TestEncoding:
    def test_bytes_round_trip(self) -> None:
        point = base_mul(31337)
        data = point.to_bytes()
        assert len(data) == 64
        assert data[:32] == point.x_bytes
        assert ECPoint.from_bytes(data) == point

    def test_from_bytes_rejects_wrong_length(self) -> None:
        with pytest.raises(CryptographicError):
            ECPoint.from_bytes(b"\x00" * 63)

    def test_from_coordinates_rejects_short_coordinate(self) -> None:
        with pytest.raises(CryptographicError):
            ECPoint.from_coordinates(b"\x00" * 31, b"\x00" * 32)

    def test_non_canonical_coordinate_rejected(self) -> None:
        with pytest.raises(CryptographicError):
            ECPoint(FIELD_MODULUS, 1)

    def test_identity_encoding(self) -> None:
        assert IDENTITY.x_bytes == b"\x00" * 32
        assert IDENTITY.y_bytes == b"\x00" * 31 + b"\x01"
