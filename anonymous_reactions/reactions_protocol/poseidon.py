"""
Poseidon hash over the BN254 scalar field.

Fixed-arity Poseidon as used by the reaction circuits: the state is
``[0, inputs...]`` of width ``t`` (3 for up to two inputs, 5 for up to four),
one permutation is applied and ``state[0]`` is the digest.

Parameters are held in a registry keyed by width. The default sets are derived
deterministically (SHA-256 round constants, Cauchy MDS) and match the
constants deployed on the network. Operators whose circuits were compiled with
different constants register them with ``load_params_json`` at startup, and
every hash afterwards uses them.

JSON schema::

    {
      "t": 3,
      "R_F": 8,
      "R_P": 57,
      "alpha": 5,
      "mds": [[...t ints...], ...],
      "rc":  [[...t ints...], ... R_F+R_P rows ...]
    }

Integers may be JSON numbers, decimal strings or 0x-prefixed hex strings.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Sequence, Union

from .config import (
    FIELD_MODULUS,
    POSEIDON_ALPHA,
    POSEIDON_FULL_ROUNDS,
    POSEIDON_MAX_INPUTS,
    POSEIDON_PARTIAL_ROUNDS,
    POSEIDON_WIDTHS,
)

log = logging.getLogger(__name__)

_MOD = FIELD_MODULUS


# ---------------------------
# Parameters & registry
# ---------------------------


@dataclass(frozen=True)
class PoseidonParams:
    t: int  # state width
    R_F: int  # number of full rounds
    R_P: int  # number of partial rounds
    alpha: int  # S-box exponent
    mds: tuple[tuple[int, ...], ...]  # t x t
    rc: tuple[tuple[int, ...], ...]  # (R_F + R_P) x t

    def validate(self) -> None:
        if self.t < 2:
            raise ValueError("t must be >= 2")
        if self.R_F % 2 != 0:
            raise ValueError("R_F must be even (half before, half after partial rounds)")
        if self.alpha < 3 or self.alpha % 2 == 0:
            raise ValueError("alpha must be an odd integer >= 3")
        if len(self.mds) != self.t or any(len(row) != self.t for row in self.mds):
            raise ValueError("mds must be t x t")
        expected_rounds = self.R_F + self.R_P
        if len(self.rc) != expected_rounds or any(len(row) != self.t for row in self.rc):
            raise ValueError(f"rc must be (R_F+R_P) x t = {expected_rounds} x {self.t}")


_PARAMS_REGISTRY: dict[int, PoseidonParams] = {}


def register_params(params: PoseidonParams) -> None:
    """Install ``params`` as the parameter set for its width."""
    params.validate()
    if params.t not in POSEIDON_WIDTHS:
        raise ValueError(f"unsupported Poseidon width t={params.t}")
    _PARAMS_REGISTRY[params.t] = params
    log.info("Registered Poseidon parameters for t=%d", params.t)


def get_params(t: int) -> PoseidonParams:
    try:
        return _PARAMS_REGISTRY[t]
    except KeyError:
        raise KeyError(f"Poseidon params for t={t} are not registered") from None


def _to_int(value: Union[int, str]) -> int:
    if isinstance(value, int):
        return value % _MOD
    s = str(value).strip().lower()
    if s.startswith("0x"):
        return int(s, 16) % _MOD
    return int(s) % _MOD


def load_params_json(path: str) -> PoseidonParams:
    """Load a parameter set from JSON and register it for its width."""
    with open(path, "r", encoding="utf-8") as fh:
        raw = json.load(fh)

    params = PoseidonParams(
        t=int(raw["t"]),
        R_F=int(raw["R_F"]),
        R_P=int(raw["R_P"]),
        alpha=int(raw.get("alpha", POSEIDON_ALPHA)),
        mds=tuple(tuple(_to_int(v) for v in row) for row in raw["mds"]),
        rc=tuple(tuple(_to_int(v) for v in row) for row in raw["rc"]),
    )
    register_params(params)
    return params


def derive_default_params(t: int) -> PoseidonParams:
    """
    Derive the network's default parameter set for width ``t``.

    Round constant k is SHA-256("poseidon_t{t}_c{k}") mod p, consumed t at a
    time per round. The MDS matrix is the Cauchy matrix
    M[i][j] = 1 / ((i + 1) + (t + j + 1)).
    """
    rounds = POSEIDON_FULL_ROUNDS + POSEIDON_PARTIAL_ROUNDS
    flat = [
        int.from_bytes(hashlib.sha256(f"poseidon_t{t}_c{k}".encode()).digest(), "big")
        % _MOD
        for k in range(t * rounds)
    ]
    rc = tuple(tuple(flat[r * t:(r + 1) * t]) for r in range(rounds))
    mds = tuple(
        tuple(pow((i + 1) + (t + j + 1), _MOD - 2, _MOD) for j in range(t))
        for i in range(t)
    )
    return PoseidonParams(
        t=t,
        R_F=POSEIDON_FULL_ROUNDS,
        R_P=POSEIDON_PARTIAL_ROUNDS,
        alpha=POSEIDON_ALPHA,
        mds=mds,
        rc=rc,
    )


def reset_default_params() -> None:
    """Restore the default parameter sets (used by tests after overrides)."""
    for t in POSEIDON_WIDTHS:
        register_params(derive_default_params(t))


# ---------------------------
# Permutation
# ---------------------------


def _sbox(x: int, alpha: int) -> int:
    if alpha == 5:
        x2 = x * x % _MOD
        x4 = x2 * x2 % _MOD
        return x4 * x % _MOD
    return pow(x, alpha, _MOD)


def _apply_mds(state: list[int], mds: tuple[tuple[int, ...], ...]) -> list[int]:
    return [sum(m * s for m, s in zip(row, state)) % _MOD for row in mds]


def poseidon_permute(state: Sequence[int], params: PoseidonParams) -> list[int]:
    """
    Poseidon permutation.

    Round schedule: R_F/2 full rounds, R_P partial rounds (S-box on the first
    element only), R_F/2 full rounds.
    """
    t = params.t
    if len(state) != t:
        raise ValueError(f"state length {len(state)} != t={t}")

    x = [int(v) % _MOD for v in state]
    half = params.R_F // 2
    r = 0

    for _ in range(half):
        x = [_sbox((x[i] + params.rc[r][i]) % _MOD, params.alpha) for i in range(t)]
        x = _apply_mds(x, params.mds)
        r += 1

    for _ in range(params.R_P):
        x = [(x[i] + params.rc[r][i]) % _MOD for i in range(t)]
        x[0] = _sbox(x[0], params.alpha)
        x = _apply_mds(x, params.mds)
        r += 1

    for _ in range(half):
        x = [_sbox((x[i] + params.rc[r][i]) % _MOD, params.alpha) for i in range(t)]
        x = _apply_mds(x, params.mds)
        r += 1

    return x


# ---------------------------
# Hash interface
# ---------------------------


def poseidon_hash(*inputs: int) -> int:
    """
    Hash one to four field elements.

    One input is hashed as (a, 0) and three inputs as (a, b, c, 0), so the
    digest of a short input equals the digest of its zero-padded form.

    Raises:
        ValueError: If no inputs or more than four are given
    """
    n = len(inputs)
    if n == 0 or n > POSEIDON_MAX_INPUTS:
        raise ValueError(
            f"Unsupported input count: {n}. Expected 1-{POSEIDON_MAX_INPUTS} inputs."
        )

    arity = 2 if n <= 2 else 4
    padded = [int(v) % _MOD for v in inputs] + [0] * (arity - n)
    params = get_params(arity + 1)
    return poseidon_permute([0] + padded, params)[0]


reset_default_params()
