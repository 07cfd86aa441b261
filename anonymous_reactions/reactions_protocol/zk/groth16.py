"""
Groth16 verifier over BN254 for reaction proofs.

Verification equation, checked as a single product in GT:

    e(A, B) * e(-alpha1, beta2) * e(-vk_x, gamma2) * e(-C, delta2) == 1

with vk_x = IC[0] + sum(signal_i * IC[i+1]) over the public signals produced
by ``PublicInputs.to_field_elements``.

Verification keys use the snarkjs ``verification_key.json`` layout and are
either registered programmatically or loaded from
``<circuits_dir>/<version>/verification_key.json``. A version without a key is
not supported; there is no fallback key.

Proof encoding (256 bytes, 32-byte big-endian words):
    A.x | A.y | B.x.c0 | B.x.c1 | B.y.c0 | B.y.c1 | C.x | C.y
A snarkjs ``proof.json`` document (UTF-8 JSON) is accepted as well.

The pairing product is computed in a worker thread so the event loop keeps
serving other requests.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Sequence, Union

import trio
from py_ecc.optimized_bn128 import (
    FQ,
    FQ2,
    FQ12,
    add,
    b,
    b2,
    curve_order,
    field_modulus,
    final_exponentiate,
    is_inf,
    is_on_curve,
    multiply,
    neg,
    pairing,
)

from ..config import (
    CURRENT_CIRCUIT_VERSION,
    DEPRECATED_CIRCUIT_VERSIONS,
    GROTH16_PROOF_BYTES,
    SUPPORTED_CIRCUIT_VERSIONS,
    VULNERABLE_CIRCUIT_VERSIONS,
)
from ..exceptions import ProofVerificationError
from .interfaces import PublicInputs, VerifierError, VerifyResult, ZkVerifier

log = logging.getLogger(__name__)

VERIFICATION_KEY_FILENAME = "verification_key.json"

G1Point = Any
G2Point = Any

_WORD = 32


# ---------------------------
# Point decoding
# ---------------------------


def _to_int(value: Union[int, str]) -> int:
    if isinstance(value, int):
        return value
    s = str(value).strip().lower()
    if s.startswith("0x"):
        return int(s, 16)
    return int(s)


def _coordinate(value: Union[int, str]) -> int:
    coordinate = _to_int(value)
    if not 0 <= coordinate < field_modulus:
        raise ProofVerificationError("coordinate outside the BN254 base field")
    return coordinate


def _g1(x: Union[int, str], y: Union[int, str]) -> G1Point:
    xi, yi = _coordinate(x), _coordinate(y)
    if xi == 0 and yi == 0:
        return (FQ(1), FQ(1), FQ(0))
    point = (FQ(xi), FQ(yi), FQ(1))
    if not is_on_curve(point, b):
        raise ProofVerificationError("G1 point is not on the curve")
    return point


def _g2(xx: Sequence[Union[int, str]], yy: Sequence[Union[int, str]]) -> G2Point:
    x0, x1 = _coordinate(xx[0]), _coordinate(xx[1])
    y0, y1 = _coordinate(yy[0]), _coordinate(yy[1])
    if x0 == x1 == y0 == y1 == 0:
        return (FQ2([1, 0]), FQ2([1, 0]), FQ2([0, 0]))
    point = (FQ2([x0, x1]), FQ2([y0, y1]), FQ2([1, 0]))
    if not is_on_curve(point, b2):
        raise ProofVerificationError("G2 point is not on the curve")
    if not is_inf(multiply(point, curve_order)):
        raise ProofVerificationError("G2 point is not in the prime-order subgroup")
    return point


# ---------------------------
# Keys and proofs
# ---------------------------


@dataclass(frozen=True)
class VerifyingKey:
    alpha1: G1Point
    beta2: G2Point
    gamma2: G2Point
    delta2: G2Point
    ic: tuple  # IC[0..n] in G1

    @property
    def public_input_count(self) -> int:
        return len(self.ic) - 1


@dataclass(frozen=True)
class Groth16Proof:
    a: G1Point
    b: G2Point
    c: G1Point


def load_verifying_key(vk_json: Mapping[str, Any]) -> VerifyingKey:
    """
    Parse a snarkjs verification key.

    Raises:
        ProofVerificationError: If a field is missing or a point is invalid
    """
    try:
        alpha = vk_json["vk_alpha_1"]
        beta = vk_json["vk_beta_2"]
        gamma = vk_json["vk_gamma_2"]
        delta = vk_json["vk_delta_2"]
        ic = vk_json["IC"]
    except (KeyError, TypeError) as exc:
        raise ProofVerificationError(f"verification key is missing {exc}") from exc

    try:
        key = VerifyingKey(
            alpha1=_g1(alpha[0], alpha[1]),
            beta2=_g2(beta[0], beta[1]),
            gamma2=_g2(gamma[0], gamma[1]),
            delta2=_g2(delta[0], delta[1]),
            ic=tuple(_g1(point[0], point[1]) for point in ic),
        )
    except (IndexError, TypeError, ValueError) as exc:
        raise ProofVerificationError(f"malformed verification key: {exc}") from exc

    n_public = vk_json.get("nPublic")
    if n_public is not None and int(n_public) != key.public_input_count:
        raise ProofVerificationError(
            f"nPublic={n_public} does not match {len(key.ic)} IC points"
        )
    return key


def parse_proof(proof: bytes) -> Groth16Proof:
    """
    Decode a proof in either supported encoding.

    Raises:
        ProofVerificationError: If the proof cannot be decoded
    """
    if proof[:1] == b"{":
        try:
            doc = json.loads(proof.decode("utf-8"))
            return Groth16Proof(
                a=_g1(doc["pi_a"][0], doc["pi_a"][1]),
                b=_g2(doc["pi_b"][0], doc["pi_b"][1]),
                c=_g1(doc["pi_c"][0], doc["pi_c"][1]),
            )
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ProofVerificationError(f"malformed JSON proof: {exc}") from exc

    if len(proof) != GROTH16_PROOF_BYTES:
        raise ProofVerificationError(
            f"proof must be {GROTH16_PROOF_BYTES} bytes, got {len(proof)}"
        )
    words = [
        int.from_bytes(proof[i:i + _WORD], "big")
        for i in range(0, GROTH16_PROOF_BYTES, _WORD)
    ]
    return Groth16Proof(
        a=_g1(words[0], words[1]),
        b=_g2((words[2], words[3]), (words[4], words[5])),
        c=_g1(words[6], words[7]),
    )


def _vk_x(ic: Sequence[G1Point], signals: Sequence[int]) -> G1Point:
    acc = ic[0]
    for point, signal in zip(ic[1:], signals):
        scalar = signal % curve_order
        if scalar:
            acc = add(acc, multiply(point, scalar))
    return acc


def _pairing_product_is_one(pairs: Iterable[tuple[G1Point, G2Point]]) -> bool:
    acc = FQ12.one()
    for p, q in pairs:
        if is_inf(p) or is_inf(q):
            continue
        acc = acc * pairing(q, p, final_exponentiate=False)
    return final_exponentiate(acc) == FQ12.one()


def check_groth16(key: VerifyingKey, proof: Groth16Proof, signals: Sequence[int]) -> bool:
    """Blocking pairing check; run it off the event loop."""
    if len(signals) != key.public_input_count:
        raise ProofVerificationError(
            f"verification key expects {key.public_input_count} public signals, "
            f"got {len(signals)}"
        )
    vk_x = _vk_x(key.ic, signals)
    return _pairing_product_is_one(
        [
            (proof.a, proof.b),
            (neg(key.alpha1), key.beta2),
            (neg(vk_x), key.gamma2),
            (neg(proof.c), key.delta2),
        ]
    )


# ---------------------------
# Verifier
# ---------------------------


class Groth16Verifier(ZkVerifier):
    """Versioned Groth16 verifier."""

    def __init__(
        self,
        *,
        current_version: str = CURRENT_CIRCUIT_VERSION,
        supported_versions: Optional[Iterable[str]] = None,
        deprecated_versions: Iterable[str] = DEPRECATED_CIRCUIT_VERSIONS,
        vulnerable_versions: Iterable[str] = VULNERABLE_CIRCUIT_VERSIONS,
        circuits_dir: Optional[Union[str, Path]] = None,
        verification_keys: Optional[Mapping[str, Mapping[str, Any]]] = None,
    ) -> None:
        self._current_version = current_version
        self._deprecated = frozenset(deprecated_versions)
        self._vulnerable = frozenset(vulnerable_versions)
        self._keys: dict[str, VerifyingKey] = {}

        if supported_versions is None:
            supported_versions = SUPPORTED_CIRCUIT_VERSIONS
        if circuits_dir is not None:
            for version in supported_versions:
                self._load_from_dir(Path(circuits_dir), version)
        for version, vk_json in (verification_keys or {}).items():
            self.register_verification_key(version, vk_json)

        log.info(
            "Groth16 verifier initialized with %d circuit versions, current %s",
            len(self._keys),
            self._current_version,
        )

    def _load_from_dir(self, circuits_dir: Path, version: str) -> None:
        path = circuits_dir / version / VERIFICATION_KEY_FILENAME
        if not path.is_file():
            log.warning("No verification key for circuit %s at %s", version, path)
            return
        try:
            vk_json = json.loads(path.read_text(encoding="utf-8"))
            self.register_verification_key(version, vk_json)
        except (OSError, json.JSONDecodeError, ProofVerificationError) as exc:
            log.warning("Failed to load verification key for %s: %s", version, exc)

    def register_verification_key(self, version: str, vk_json: Mapping[str, Any]) -> None:
        """
        Parse and install the key for ``version``.

        Raises:
            ProofVerificationError: If the key is malformed
        """
        self._keys[version] = load_verifying_key(vk_json)
        log.debug("Registered verification key for circuit %s", version)

    @property
    def current_version(self) -> str:
        return self._current_version

    def is_version_supported(self, circuit_version: str) -> bool:
        return circuit_version in self._keys

    def is_vulnerable_version(self, circuit_version: str) -> bool:
        return circuit_version in self._vulnerable

    async def verify(
        self, proof: bytes, inputs: PublicInputs, circuit_version: str
    ) -> VerifyResult:
        if circuit_version in self._vulnerable:
            return VerifyResult.failure(
                VerifierError.VULNERABLE_CIRCUIT_VERSION,
                f"Circuit version '{circuit_version}' has known vulnerabilities "
                "and is no longer accepted.",
            )

        key = self._keys.get(circuit_version)
        if key is None:
            return VerifyResult.failure(
                VerifierError.UNKNOWN_CIRCUIT_VERSION,
                f"Circuit version '{circuit_version}' is not supported. "
                f"Use '{self._current_version}'.",
            )

        try:
            parsed = parse_proof(proof)
        except ProofVerificationError as exc:
            log.debug("Unparsable proof: %s", exc)
            return VerifyResult.failure(
                VerifierError.INVALID_PROOF_FORMAT, f"Failed to parse proof: {exc}"
            )

        try:
            signals = inputs.to_field_elements()
            valid = await trio.to_thread.run_sync(check_groth16, key, parsed, signals)
        except Exception as exc:
            log.exception("Error during proof verification")
            return VerifyResult.failure(
                VerifierError.VERIFICATION_ERROR, f"Verification error: {exc}"
            )

        if not valid:
            return VerifyResult.failure(
                VerifierError.INVALID_PROOF, "Proof verification failed."
            )

        if circuit_version in self._deprecated:
            return VerifyResult.success_with_warning(
                f"Circuit version '{circuit_version}' is deprecated. "
                f"Please update to '{self._current_version}'."
            )
        return VerifyResult.success()
