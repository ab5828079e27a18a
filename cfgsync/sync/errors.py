"""Exception hierarchy for remote store and sync failures."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional


class SyncError(Exception):
    """Base class for every cfgsync sync failure."""


class RemoteStoreError(SyncError):
    """A remote store call failed."""

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.details = details or {}


class VersionConflict(RemoteStoreError):
    """The expected version token did not match the remote file."""

    def __init__(
        self,
        message: str,
        *,
        current_token: Optional[str] = None,
        status: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, status=status, details=details)
        self.current_token = current_token


class RemoteNotFound(RemoteStoreError):
    """The requested remote object does not exist."""


class RateLimited(RemoteStoreError):
    """The store refused the call because the rate limit is exhausted."""

    def __init__(
        self,
        message: str,
        *,
        reset_at: Optional[datetime] = None,
        status: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, status=status, details=details)
        self.reset_at = reset_at

    def __str__(self) -> str:
        if self.reset_at is None:
            return self.message
        return f"{self.message} (resets at {self.reset_at.astimezone().strftime('%H:%M:%S')})"


class AuthFailure(RemoteStoreError):
    """The credential was rejected. Fatal for the whole run."""


class TransportFailure(RemoteStoreError):
    """Network error or server-side failure."""


class SchemaError(RemoteStoreError):
    """A response body did not have the expected shape."""


class ConflictUnresolved(SyncError):
    """Every applicable rung of the fallback ladder failed for a path."""

    def __init__(self, path: str, attempts: List[str], cause: Optional[BaseException] = None) -> None:
        tried = ", ".join(attempts) if attempts else "none"
        reason = f": {cause}" if cause is not None else ""
        super().__init__(f"could not resolve version conflict for '{path}' (tried: {tried}){reason}")
        self.path = path
        self.attempts = list(attempts)
        self.cause = cause


class RunAborted(SyncError):
    """A run-level precondition failed before any batch started."""


__all__ = [
    "SyncError",
    "RemoteStoreError",
    "VersionConflict",
    "RemoteNotFound",
    "RateLimited",
    "AuthFailure",
    "TransportFailure",
    "SchemaError",
    "ConflictUnresolved",
    "RunAborted",
]
