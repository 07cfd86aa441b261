"""
Tests for the Groth16 reaction proof verifier.

Proofs are simulated with a verification key whose trapdoor scalars are known
to the test: with B fixed to the G2 generator and C = c*G1, choosing
A = (a*b + s*g + c*d)*G1 with s = k0 + sum(x_i * k_i) satisfies the pairing
equation for exactly the public signals x_i.
"""

from __future__ import annotations

import dataclasses
import json
import uuid

import pytest
from py_ecc.optimized_bn128 import G1, G2, curve_order, multiply, normalize

from anonymous_reactions.reactions_protocol.babyjubjub import base_mul
from anonymous_reactions.reactions_protocol.config import FIELD_MODULUS, PUBLIC_INPUT_COUNT
from anonymous_reactions.reactions_protocol.elgamal import encrypt_vote
from anonymous_reactions.reactions_protocol.exceptions import ProofVerificationError
from anonymous_reactions.reactions_protocol.zk.groth16 import (
    Groth16Verifier,
    load_verifying_key,
    parse_proof,
)
from anonymous_reactions.reactions_protocol.zk.interfaces import PublicInputs, VerifierError

VERSION = "omega-v1.0.0"
TRAPDOOR = {"a": 11, "b": 13, "g": 17, "d": 19, "c": 23}
IC_SCALARS = [101 + 7 * i for i in range(PUBLIC_INPUT_COUNT + 1)]


def _n(value) -> int:
    return value if isinstance(value, int) else value.n


def _g1_json(point) -> list[str]:
    x, y = normalize(point)
    return [str(_n(x)), str(_n(y)), "1"]


def _g2_json(point) -> list[list[str]]:
    x, y = normalize(point)
    return [
        [str(_n(x.coeffs[0])), str(_n(x.coeffs[1]))],
        [str(_n(y.coeffs[0])), str(_n(y.coeffs[1]))],
        ["1", "0"],
    ]


def _verification_key(ic_scalars=IC_SCALARS) -> dict:
    return {
        "protocol": "groth16",
        "curve": "bn128",
        "nPublic": len(ic_scalars) - 1,
        "vk_alpha_1": _g1_json(multiply(G1, TRAPDOOR["a"])),
        "vk_beta_2": _g2_json(multiply(G2, TRAPDOOR["b"])),
        "vk_gamma_2": _g2_json(multiply(G2, TRAPDOOR["g"])),
        "vk_delta_2": _g2_json(multiply(G2, TRAPDOOR["d"])),
        "IC": [_g1_json(multiply(G1, k)) for k in ic_scalars],
    }


def _proof_points(signals: list[int]):
    s = (IC_SCALARS[0] + sum(x * k for x, k in zip(signals, IC_SCALARS[1:]))) % curve_order
    a_scalar = (
        TRAPDOOR["a"] * TRAPDOOR["b"]
        + s * TRAPDOOR["g"]
        + TRAPDOOR["c"] * TRAPDOOR["d"]
    ) % curve_order
    return multiply(G1, a_scalar), G2, multiply(G1, TRAPDOOR["c"])


def _proof_bytes(signals: list[int]) -> bytes:
    a, b, c = _proof_points(signals)
    ax, ay = _g1_json(a)[:2]
    (bx0, bx1), (by0, by1), _ = _g2_json(b)
    cx, cy = _g1_json(c)[:2]
    words = [ax, ay, bx0, bx1, by0, by1, cx, cy]
    return b"".join(int(w).to_bytes(32, "big") for w in words)


def _proof_json(signals: list[int]) -> bytes:
    a, b, c = _proof_points(signals)
    return json.dumps(
        {"pi_a": _g1_json(a), "pi_b": _g2_json(b), "pi_c": _g1_json(c), "protocol": "groth16"}
    ).encode("utf-8")


def _inputs(root: bytes = b"\x00" * 31 + b"\x07") -> PublicInputs:
    feed_key = base_mul(5)
    return PublicInputs(
        nullifier=b"\x11" * 32,
        vote=encrypt_vote(2, feed_key, randomness=[1, 2, 3, 4, 5, 6]),
        message_id=uuid.UUID("12345678-1234-5678-1234-567812345678"),
        feed_public_key=feed_key,
        members_root=root,
        author_commitment=b"\x22" * 32,
    )


@pytest.fixture(scope="module")
def vk_json() -> dict:
    return _verification_key()


@pytest.fixture
def verifier(vk_json: dict) -> Groth16Verifier:
    return Groth16Verifier(verification_keys={VERSION: vk_json})


@pytest.mark.trio
async def test_valid_proof_accepted(verifier: Groth16Verifier) -> None:
    inputs = _inputs()
    result = await verifier.verify(_proof_bytes(inputs.to_field_elements()), inputs, VERSION)
    assert result.valid
    assert result.warning is None


@pytest.mark.trio
async def test_proof_bound_to_root(verifier: Groth16Verifier) -> None:
    inputs = _inputs()
    proof = _proof_bytes(inputs.to_field_elements())
    result = await verifier.verify(proof, inputs.with_root(b"\x00" * 31 + b"\x08"), VERSION)
    assert not result.valid
    assert result.error == VerifierError.INVALID_PROOF


@pytest.mark.trio
async def test_nullifier_alias_above_modulus_rejected(verifier: Groth16Verifier) -> None:
    inputs = _inputs()
    proof = _proof_bytes(inputs.to_field_elements())
    alias = (int.from_bytes(inputs.nullifier, "big") + FIELD_MODULUS).to_bytes(32, "big")

    result = await verifier.verify(proof, dataclasses.replace(inputs, nullifier=alias), VERSION)

    assert not result.valid
    assert result.error == VerifierError.VERIFICATION_ERROR


@pytest.mark.trio
async def test_snarkjs_json_proof_accepted(verifier: Groth16Verifier) -> None:
    inputs = _inputs()
    result = await verifier.verify(_proof_json(inputs.to_field_elements()), inputs, VERSION)
    assert result.valid


@pytest.mark.trio
async def test_deprecated_version_accepted_with_warning(vk_json: dict) -> None:
    verifier = Groth16Verifier(
        deprecated_versions=("omega-v0.9.0",),
        verification_keys={VERSION: vk_json, "omega-v0.9.0": vk_json},
    )
    inputs = _inputs()
    result = await verifier.verify(
        _proof_bytes(inputs.to_field_elements()), inputs, "omega-v0.9.0"
    )
    assert result.valid
    assert "deprecated" in result.warning


@pytest.mark.trio
async def test_vulnerable_version_rejected(vk_json: dict) -> None:
    verifier = Groth16Verifier(
        vulnerable_versions=("omega-v0.1.0",),
        verification_keys={VERSION: vk_json, "omega-v0.1.0": vk_json},
    )
    assert verifier.is_vulnerable_version("omega-v0.1.0")
    result = await verifier.verify(b"", _inputs(), "omega-v0.1.0")
    assert result.error == VerifierError.VULNERABLE_CIRCUIT_VERSION


@pytest.mark.trio
async def test_unknown_version_rejected(verifier: Groth16Verifier) -> None:
    assert not verifier.is_version_supported("omega-v9.9.9")
    result = await verifier.verify(b"\x00" * 256, _inputs(), "omega-v9.9.9")
    assert result.error == VerifierError.UNKNOWN_CIRCUIT_VERSION
    assert VERSION in result.message


@pytest.mark.trio
async def test_wrong_length_is_format_error(verifier: Groth16Verifier) -> None:
    result = await verifier.verify(b"\x01" * 100, _inputs(), VERSION)
    assert result.error == VerifierError.INVALID_PROOF_FORMAT


@pytest.mark.trio
async def test_off_curve_point_is_format_error(verifier: Groth16Verifier) -> None:
    proof = (1).to_bytes(32, "big") * 2 + b"\x00" * 192
    result = await verifier.verify(proof, _inputs(), VERSION)
    assert result.error == VerifierError.INVALID_PROOF_FORMAT


@pytest.mark.trio
async def test_input_count_mismatch_is_verification_error() -> None:
    verifier = Groth16Verifier(verification_keys={VERSION: _verification_key(IC_SCALARS[:3])})
    proof = _proof_bytes([0, 0])
    result = await verifier.verify(proof, _inputs(), VERSION)
    assert result.error == VerifierError.VERIFICATION_ERROR


def test_keys_loaded_from_circuits_dir(tmp_path, vk_json: dict) -> None:
    version_dir = tmp_path / VERSION
    version_dir.mkdir()
    (version_dir / "verification_key.json").write_text(json.dumps(vk_json), encoding="utf-8")

    verifier = Groth16Verifier(circuits_dir=tmp_path)

    assert verifier.current_version == VERSION
    assert verifier.is_version_supported(VERSION)


def test_missing_key_file_leaves_version_unsupported(tmp_path) -> None:
    verifier = Groth16Verifier(circuits_dir=tmp_path)
    assert not verifier.is_version_supported(VERSION)


def test_npublic_mismatch_rejected(vk_json: dict) -> None:
    broken = dict(vk_json, nPublic=PUBLIC_INPUT_COUNT + 1)
    with pytest.raises(ProofVerificationError, match="nPublic"):
        load_verifying_key(broken)


def test_missing_field_rejected(vk_json: dict) -> None:
    broken = {k: v for k, v in vk_json.items() if k != "vk_delta_2"}
    with pytest.raises(ProofVerificationError):
        load_verifying_key(broken)


def test_malformed_json_proof_rejected() -> None:
    with pytest.raises(ProofVerificationError):
        parse_proof(b'{"pi_a": ["x"]}')
