"""
Operator settings for the reactions service.

Reads a YAML file and returns frozen, validated settings. Every section and
key is optional and falls back to the protocol defaults; unknown keys are
rejected so that typos do not silently keep a default.

Example:

    reactions:
      root_grace_window: 3
      max_retries: 3
      retry_backoff: 0.05
    verifier:
      backend: groth16
      current_version: omega-v1.0.0
      supported_versions: [omega-v1.0.0]
      deprecated_versions: []
      vulnerable_versions: []
      circuits_dir: /var/lib/reactions/circuits
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import yaml

from ..reactions_protocol.config import (
    CURRENT_CIRCUIT_VERSION,
    DEPRECATED_CIRCUIT_VERSIONS,
    MAX_TALLY_RETRIES,
    RETRY_BACKOFF_SECONDS,
    ROOT_GRACE_WINDOW,
    SUPPORTED_CIRCUIT_VERSIONS,
    VULNERABLE_CIRCUIT_VERSIONS,
)
from ..reactions_protocol.exceptions import ConfigurationError
from ..reactions_protocol.factory import create_verifier
from ..reactions_protocol.feature_flags import parse_verifier_name
from ..reactions_protocol.zk.interfaces import ZkVerifier


# ---------------------------
# Settings shapes
# ---------------------------


@dataclass(frozen=True)
class ReactionsSettings:
    root_grace_window: int = ROOT_GRACE_WINDOW
    max_retries: int = MAX_TALLY_RETRIES
    retry_backoff: float = RETRY_BACKOFF_SECONDS

    def pipeline_options(self) -> dict[str, Any]:
        """Keyword arguments for ``ReactionSubmissionPipeline``."""
        return {
            "root_window": self.root_grace_window,
            "max_retries": self.max_retries,
            "retry_backoff": self.retry_backoff,
        }


@dataclass(frozen=True)
class VerifierSettings:
    """
    Verifier selection.

    ``backend`` None defers to the REACTIONS_ZK_VERIFIER feature flag.
    """

    backend: Optional[str] = None
    current_version: str = CURRENT_CIRCUIT_VERSION
    supported_versions: tuple[str, ...] = SUPPORTED_CIRCUIT_VERSIONS
    deprecated_versions: tuple[str, ...] = DEPRECATED_CIRCUIT_VERSIONS
    vulnerable_versions: tuple[str, ...] = VULNERABLE_CIRCUIT_VERSIONS
    circuits_dir: Optional[Path] = None

    def build_verifier(self, *, override: Optional[str] = None) -> ZkVerifier:
        """
        Build the configured verifier.

        ``override`` wins over ``backend``; with neither set the feature flag
        decides. Version lists and the circuits directory only apply to groth16.
        """
        return create_verifier(
            override or self.backend,
            current_version=self.current_version,
            supported_versions=self.supported_versions,
            deprecated_versions=self.deprecated_versions,
            vulnerable_versions=self.vulnerable_versions,
            circuits_dir=self.circuits_dir,
        )


@dataclass(frozen=True)
class Settings:
    reactions: ReactionsSettings = field(default_factory=ReactionsSettings)
    verifier: VerifierSettings = field(default_factory=VerifierSettings)


# ---------------------------
# YAML -> Settings loader
# ---------------------------


def _check_keys(section: str, raw: Mapping[str, Any], allowed: set[str]) -> None:
    unknown = sorted(set(raw) - allowed)
    if unknown:
        raise ConfigurationError(f"Unknown keys in '{section}': {', '.join(unknown)}")


def _section(raw: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = raw.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigurationError(f"'{name}' must be a map")
    return value


def _get_int(map_: Mapping[str, Any], key: str, default: int, minimum: int) -> int:
    if key not in map_:
        return default
    value = map_[key]
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"Expected integer for '{key}', got {type(value).__name__}")
    if value < minimum:
        raise ConfigurationError(f"'{key}' must be at least {minimum}")
    return value


def _get_float(map_: Mapping[str, Any], key: str, default: float) -> float:
    if key not in map_:
        return default
    value = map_[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigurationError(f"Expected number for '{key}', got {type(value).__name__}")
    if value < 0:
        raise ConfigurationError(f"'{key}' must not be negative")
    return float(value)


def _get_str(map_: Mapping[str, Any], key: str, default: Optional[str]) -> Optional[str]:
    if key not in map_ or map_[key] is None:
        return default
    value = map_[key]
    if not isinstance(value, str) or not value.strip():
        raise ConfigurationError(f"Expected non-empty string for '{key}'")
    return value.strip()


def _get_versions(map_: Mapping[str, Any], key: str, default: tuple[str, ...]) -> tuple[str, ...]:
    if key not in map_:
        return default
    value = map_[key] or []
    if not isinstance(value, list) or not all(isinstance(v, str) and v for v in value):
        raise ConfigurationError(f"'{key}' must be a list of version strings")
    return tuple(value)


def _load_reactions(raw: Mapping[str, Any]) -> ReactionsSettings:
    _check_keys("reactions", raw, {"root_grace_window", "max_retries", "retry_backoff"})
    return ReactionsSettings(
        root_grace_window=_get_int(raw, "root_grace_window", ROOT_GRACE_WINDOW, 1),
        max_retries=_get_int(raw, "max_retries", MAX_TALLY_RETRIES, 1),
        retry_backoff=_get_float(raw, "retry_backoff", RETRY_BACKOFF_SECONDS),
    )


def _load_verifier(raw: Mapping[str, Any]) -> VerifierSettings:
    _check_keys(
        "verifier",
        raw,
        {
            "backend",
            "current_version",
            "supported_versions",
            "deprecated_versions",
            "vulnerable_versions",
            "circuits_dir",
        },
    )
    backend = parse_verifier_name(_get_str(raw, "backend", None), source="settings")

    current = _get_str(raw, "current_version", CURRENT_CIRCUIT_VERSION)
    supported = _get_versions(raw, "supported_versions", SUPPORTED_CIRCUIT_VERSIONS)
    vulnerable = _get_versions(raw, "vulnerable_versions", VULNERABLE_CIRCUIT_VERSIONS)
    if current in vulnerable:
        raise ConfigurationError(f"Current circuit version '{current}' is marked vulnerable")
    if current not in supported:
        supported = (current,) + supported

    circuits_dir = _get_str(raw, "circuits_dir", None)
    return VerifierSettings(
        backend=backend,
        current_version=current,
        supported_versions=supported,
        deprecated_versions=_get_versions(raw, "deprecated_versions", DEPRECATED_CIRCUIT_VERSIONS),
        vulnerable_versions=vulnerable,
        circuits_dir=Path(circuits_dir) if circuits_dir is not None else None,
    )


def parse_settings(raw: Any) -> Settings:
    """
    Build settings from an already-parsed YAML document.

    Raises:
        ConfigurationError: On unknown keys or values of the wrong type
    """
    if raw is None:
        return Settings()
    if not isinstance(raw, dict):
        raise ConfigurationError("settings document must be a map")
    _check_keys("settings", raw, {"reactions", "verifier"})
    return Settings(
        reactions=_load_reactions(_section(raw, "reactions")),
        verifier=_load_verifier(_section(raw, "verifier")),
    )


def load_settings(path: Union[str, Path]) -> Settings:
    """
    Load settings from a YAML file.

    Raises:
        ConfigurationError: If the file cannot be read or is invalid
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigurationError(f"Cannot read settings file {path}: {exc}") from exc
    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc
    return parse_settings(raw)
