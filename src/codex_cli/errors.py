#!/usr/bin/env python3
"""Errors - Exception types raised by the store core.

Core modules raise these; only the CLI layer turns them into messages
and exit codes.
"""


class CodexError(Exception):
    """Base class for all store errors."""


class NotFoundError(CodexError, KeyError):
    """A path or alias does not exist."""

    def __str__(self):
        return str(self.args[0]) if self.args else "Not found"


class InvalidPathError(CodexError, ValueError):
    """A dot-notation path is empty or has an empty segment."""


class InvalidShapeError(CodexError, ValueError):
    """A tree is not a JSON object or contains an array."""


class LockTimeoutError(CodexError):
    """The lock sidecar could not be acquired within the retry budget."""


class DecryptionError(CodexError):
    """Base class for failures while decrypting a value."""


class NotEncryptedError(DecryptionError):
    """The value does not carry the encryption prefix."""


class CorruptedDataError(DecryptionError):
    """The encrypted payload cannot be decoded or is too short."""


class AuthenticationFailedError(DecryptionError):
    """GCM tag verification failed (wrong password or tampered data)."""


class InterpolationError(CodexError):
    """A ${...} reference could not be resolved."""


class StoreIOError(CodexError):
    """Persisting a tree failed (disk full, permission denied, ...)."""
