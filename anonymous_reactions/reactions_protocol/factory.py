"""
Verifier construction.

The Groth16 backend is imported only when selected, so processes running the
dev verifier never load py_ecc.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from .feature_flags import get_verifier_type, parse_verifier_name
from .zk.interfaces import ZkVerifier

log = logging.getLogger(__name__)


def create_verifier(name: Optional[str] = None, **groth16_options: Any) -> ZkVerifier:
    """
    Build a reaction proof verifier.

    Args:
        name: "groth16" or "dev"; None defers to the feature flag
        **groth16_options: Keyword arguments for ``Groth16Verifier``
            (version lists, circuits directory). The dev verifier takes none.

    Raises:
        ConfigurationError: If ``name`` or the feature flag is not a known verifier
    """
    selected = parse_verifier_name(name, source="caller") or get_verifier_type()
    log.debug("Creating %s verifier", selected)

    if selected == "dev":
        from .zk.dev_mode import DevModeVerifier

        if groth16_options:
            log.debug("Ignoring verifier options for dev mode: %s", sorted(groth16_options))
        return DevModeVerifier()

    from .zk.groth16 import Groth16Verifier

    return Groth16Verifier(**groth16_options)
