"""Exceptions raised below the session boundary.

The registry and selector raise these; :class:`NetworkSession` turns them
into :class:`ServiceResult` failures and a session-level error string.
"""

from __future__ import annotations


class SharectlError(Exception):
    """Base class for sharectl errors."""

    code = "SHARECTL_ERROR"


class ValidationError(SharectlError):
    """A malformed passphrase. Raised before the conductor is contacted."""

    code = "INVALID_PASSPHRASE"

    def __init__(self, reason: str, message: str | None = None) -> None:
        super().__init__(message or reason)
        self.reason = reason


class AuthorityError(SharectlError):
    """The conductor refused or failed a partition lifecycle call."""

    code = "AUTHORITY_ERROR"


class NotConnectedError(SharectlError):
    """No conductor connection is attached to the session."""

    code = "NOT_CONNECTED"

    def __init__(self, message: str = "Not connected to conductor") -> None:
        super().__init__(message)
