"""
Development verifier that accepts every proof.

WARNING: selecting this backend disables the membership and vote-validity
guarantees of the protocol. It exists so the submission flow can be exercised
without compiled circuits and must never run in production.
"""

from __future__ import annotations

import logging

from .interfaces import PublicInputs, VerifyResult, ZkVerifier

log = logging.getLogger(__name__)

DEV_CIRCUIT_VERSION = "dev-mode-v1"


class DevModeVerifier(ZkVerifier):
    def __init__(self) -> None:
        log.warning("DEV MODE ZK VERIFIER ACTIVE: all proofs are accepted without verification")

    @property
    def current_version(self) -> str:
        return DEV_CIRCUIT_VERSION

    def is_version_supported(self, circuit_version: str) -> bool:
        return True

    def is_vulnerable_version(self, circuit_version: str) -> bool:
        return False

    async def verify(
        self, proof: bytes, inputs: PublicInputs, circuit_version: str
    ) -> VerifyResult:
        log.debug(
            "Accepting proof for message %s (circuit %s) without verification",
            inputs.message_id,
            circuit_version,
        )
        return VerifyResult.success_with_warning(
            "DEV MODE: proof accepted without verification"
        )
