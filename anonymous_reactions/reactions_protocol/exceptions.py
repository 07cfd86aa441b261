"""
Custom exceptions for the anonymous reactions protocol.

Expected rejections of a reaction are reported as typed results; these
exceptions cover misconfiguration, malformed cryptographic material and
infrastructure faults.
"""


class ReactionsProtocolError(Exception):
    """Base exception for anonymous reaction errors."""

    pass


class ConfigurationError(ReactionsProtocolError):
    """Configuration error."""

    pass


class CryptographicError(ReactionsProtocolError):
    """Cryptographic operation error (bad point, bad field element)."""

    pass


class ProofVerificationError(ReactionsProtocolError):
    """Verification key or proof material could not be used."""

    pass


class StorageError(ReactionsProtocolError):
    """Storage layer fault."""

    pass


class VersionConflictError(StorageError):
    """Optimistic concurrency check failed at commit time."""

    pass


class NullifierMismatchError(ReactionsProtocolError):
    """A nullifier is already recorded against a different message."""

    pass
