"""
Feature flag for the reaction proof verifier.

WARNING: the "dev" verifier accepts every proof; this flag decides whether
reactions are authenticated at all.
"""

from __future__ import annotations

import os
from typing import Final, Optional

from .exceptions import ConfigurationError

VERIFIER_NAMES: Final[tuple[str, ...]] = ("dev", "groth16")
DEFAULT_VERIFIER: Final[str] = "groth16"
ENV_VAR_NAME: Final[str] = "REACTIONS_ZK_VERIFIER"

_verifier_override: Optional[str] = None


def parse_verifier_name(value: Optional[str], *, source: str) -> Optional[str]:
    """
    Normalize a verifier name; blank or missing values mean "not set".

    Raises:
        ConfigurationError: If the name is not a known verifier
    """
    if value is None:
        return None
    if not isinstance(value, str):
        raise ConfigurationError(f"Verifier name from {source} must be a string, got {value!r}")

    name = value.strip().lower()
    if name == "":
        return None
    if name not in VERIFIER_NAMES:
        raise ConfigurationError(
            f"Unknown verifier backend {value!r} from {source}. "
            f"Valid options: {', '.join(VERIFIER_NAMES)}"
        )
    return name


def get_verifier_type() -> str:
    """In-memory override, then ``REACTIONS_ZK_VERIFIER``, then groth16."""
    if _verifier_override is not None:
        return _verifier_override
    env_verifier = parse_verifier_name(os.getenv(ENV_VAR_NAME), source=ENV_VAR_NAME)
    return env_verifier or DEFAULT_VERIFIER


def set_verifier_type(value: Optional[str]) -> None:
    """Force the verifier for this process (testing only); None clears it."""
    global _verifier_override
    _verifier_override = parse_verifier_name(value, source="override")
