"""
Error types for Local Storage Key provisioning.

Keystore backends translate their own failures into a KeyStoreError tagged
with a KeyStoreErrorKind. The provisioning state machine matches on the kind
to decide between a fatal panic, a recoverable error, or ignoring the failure.
"""

from enum import Enum
from typing import Optional


class KeyStoreErrorKind(Enum):
    """Failure categories reported by an authenticated key store."""
    AUTH_SKIPPED = "auth-skipped"
    INSECURE_DEVICE = "insecure-device"
    MIGRATION_FAILED = "migration-failed"
    KEYSTORE_SPECIFIC = "keystore-specific"
    NOT_FOUND = "not-found"
    OTHER = "other"


class KeyStoreError(Exception):
    """Raised by a key store capability (open, list_keys, get, set, secure_device)."""

    def __init__(self, kind: KeyStoreErrorKind, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.code = code

    def __str__(self) -> str:
        if self.code:
            return f"[{self.kind.value}:{self.code}] {self.message}"
        return f"[{self.kind.value}] {self.message}"


class KeyProvisioningError(Exception):
    """
    Recoverable failure while acquiring the Local Storage Key.

    The caller may retry acquisition or abort the higher-level operation.
    """

    def __init__(self, message: str, cause: Optional[KeyStoreError] = None):
        super().__init__(message)
        self.message = message
        self.cause = cause

    @property
    def kind(self) -> KeyStoreErrorKind:
        return self.cause.kind if self.cause else KeyStoreErrorKind.OTHER


class ProvisioningPanic(Exception):
    """
    Raised when the application must not continue without its storage key
    (authentication skipped, insecure device, failed migration).
    The user has already been notified when this is raised.
    """

    def __init__(self, message: str, cause: Optional[KeyStoreError] = None):
        super().__init__(message)
        self.cause = cause


class EngineNotLoadedError(RuntimeError):
    """The wrapped database engine is missing or cannot open encrypted databases."""
    pass
