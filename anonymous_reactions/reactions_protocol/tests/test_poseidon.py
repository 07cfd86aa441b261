"""Unit tests for the Poseidon hash and its parameter registry."""

from __future__ import annotations

import json

import pytest

from anonymous_reactions.reactions_protocol import poseidon
from anonymous_reactions.reactions_protocol.config import FIELD_MODULUS


@pytest.fixture(autouse=True)
def restore_default_params() -> None:
    yield
    poseidon.reset_default_params()


def test_hash_is_deterministic() -> None:
    assert poseidon.poseidon_hash(1, 2) == poseidon.poseidon_hash(1, 2)


def test_hash_is_field_element() -> None:
    digest = poseidon.poseidon_hash(FIELD_MODULUS - 1, 12345)
    assert 0 <= digest < FIELD_MODULUS


def test_input_order_matters() -> None:
    assert poseidon.poseidon_hash(1, 2) != poseidon.poseidon_hash(2, 1)


def test_single_input_is_zero_padded() -> None:
    assert poseidon.poseidon_hash(7) == poseidon.poseidon_hash(7, 0)


def test_three_inputs_are_zero_padded() -> None:
    assert poseidon.poseidon_hash(1, 2, 3) == poseidon.poseidon_hash(1, 2, 3, 0)


def test_widths_give_different_digests() -> None:
    assert poseidon.poseidon_hash(1, 2) != poseidon.poseidon_hash(1, 2, 0)


def test_inputs_reduced_mod_field() -> None:
    assert poseidon.poseidon_hash(FIELD_MODULUS + 5) == poseidon.poseidon_hash(5)


@pytest.mark.parametrize("count", [0, 5])
def test_unsupported_input_count(count: int) -> None:
    with pytest.raises(ValueError, match="Unsupported input count"):
        poseidon.poseidon_hash(*range(count))


def test_default_params_shape() -> None:
    params = poseidon.get_params(3)
    params.validate()
    assert params.t == 3
    assert len(params.rc) == params.R_F + params.R_P
    assert poseidon.derive_default_params(3) == params


def test_unknown_width_not_registered() -> None:
    with pytest.raises(KeyError):
        poseidon.get_params(4)


def test_permute_rejects_wrong_state_width() -> None:
    with pytest.raises(ValueError):
        poseidon.poseidon_permute([0, 1], poseidon.get_params(3))


def test_load_params_json_replaces_width(tmp_path) -> None:
    before = poseidon.poseidon_hash(1, 2)
    defaults = poseidon.derive_default_params(3)
    rc = [list(row) for row in defaults.rc]
    rc[0][0] = (rc[0][0] + 1) % FIELD_MODULUS
    path = tmp_path / "poseidon_t3.json"
    path.write_text(
        json.dumps(
            {
                "t": 3,
                "R_F": defaults.R_F,
                "R_P": defaults.R_P,
                "alpha": 5,
                "mds": [[hex(v) for v in row] for row in defaults.mds],
                "rc": [[str(v) for v in row] for row in rc],
            }
        ),
        encoding="utf-8",
    )

    loaded = poseidon.load_params_json(str(path))

    assert poseidon.get_params(3) is loaded
    assert poseidon.poseidon_hash(1, 2) != before


def test_invalid_params_rejected() -> None:
    defaults = poseidon.derive_default_params(3)
    broken = poseidon.PoseidonParams(
        t=3, R_F=defaults.R_F, R_P=defaults.R_P, alpha=4, mds=defaults.mds, rc=defaults.rc
    )
    with pytest.raises(ValueError, match="alpha"):
        poseidon.register_params(broken)
