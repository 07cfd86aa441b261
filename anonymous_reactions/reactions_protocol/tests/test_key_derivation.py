"""Unit tests for HKDF key derivation and feed keypairs."""

from __future__ import annotations

import uuid

import pytest

from anonymous_reactions.reactions_protocol.babyjubjub import base_mul, in_subgroup
from anonymous_reactions.reactions_protocol.config import SUBGROUP_ORDER
from anonymous_reactions.reactions_protocol.key_derivation import (
    derive_feed_keypair,
    derive_feed_secret,
    derive_reaction_key,
    feed_scalar,
    hkdf_sha256,
    keypair_from_feed_secret,
)

SHARED_KEY = bytes(range(32))
MESSAGE_A = uuid.UUID("11111111-2222-3333-4444-555555555555")
MESSAGE_B = uuid.UUID("66666666-7777-8888-9999-aaaaaaaaaaaa")


def test_hkdf_matches_rfc5869_case_1() -> None:
    okm = hkdf_sha256(
        bytes([0x0B] * 22),
        bytes(range(0x0D)),
        bytes(range(0xF0, 0xFA)),
        length=42,
    )
    assert okm.hex() == (
        "3cb25f25faacd57a90434f64d0362f2a2d2d0a90cf1a5a4c5db02d56ecc4c5bf"
        "34007208d5b887185865"
    )


def test_reaction_key_is_deterministic_and_scoped() -> None:
    key_a = derive_reaction_key(SHARED_KEY, MESSAGE_A)
    assert len(key_a) == 32
    assert derive_reaction_key(SHARED_KEY, MESSAGE_A) == key_a
    assert derive_reaction_key(SHARED_KEY, MESSAGE_B) != key_a


def test_feed_secret_differs_from_reaction_key() -> None:
    assert derive_feed_secret(SHARED_KEY, MESSAGE_A) != derive_reaction_key(SHARED_KEY, MESSAGE_A)


@pytest.mark.parametrize("size", [0, 16, 31, 33])
def test_shared_key_must_be_32_bytes(size: int) -> None:
    with pytest.raises(ValueError, match="32 bytes"):
        derive_reaction_key(b"\x01" * size, MESSAGE_A)
    with pytest.raises(ValueError, match="32 bytes"):
        derive_feed_secret(b"\x01" * size, MESSAGE_A)


def test_feed_keypair_is_consistent() -> None:
    feed_id = uuid.uuid4()
    keypair = derive_feed_keypair(feed_id)
    assert 1 <= keypair.secret < SUBGROUP_ORDER
    assert keypair.secret == feed_scalar(feed_id)
    assert keypair.public_key == base_mul(keypair.secret)
    assert in_subgroup(keypair.public_key)


def test_feed_keypairs_differ_per_feed() -> None:
    assert derive_feed_keypair(MESSAGE_A).public_key != derive_feed_keypair(MESSAGE_B).public_key


def test_keypair_from_feed_secret() -> None:
    secret = derive_feed_secret(SHARED_KEY, MESSAGE_A)
    keypair = keypair_from_feed_secret(secret)
    assert keypair.secret == int.from_bytes(secret, "big") % SUBGROUP_ORDER
    assert keypair.public_key == base_mul(keypair.secret)


def test_zero_feed_secret_maps_to_one() -> None:
    assert keypair_from_feed_secret(b"\x00" * 32).secret == 1
