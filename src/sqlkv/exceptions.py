"""
Custom exception hierarchy for sqlkv.

All exceptions inherit from SqlKVError, which provides optional context
for structured error handling and logging.
"""

from __future__ import annotations

from typing import Any


class SqlKVError(Exception):
    """Base exception for all sqlkv errors.

    Attributes:
        message: Human-readable error message.
        context: Optional structured context for logging/debugging.
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v!r}" for k, v in self.context.items())
            return f"{self.message} ({ctx_str})"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"


class ConfigurationError(SqlKVError):
    """Raised when configuration is invalid or missing.

    Raised before any connection attempt.

    Examples:
        - Missing database location
        - Non-numeric or non-positive sync interval
        - Remote location handed to the local SQLite client
    """

    pass


class ValidationError(SqlKVError):
    """Raised when caller input is rejected before any I/O.

    Context should include:
        - field: The field that failed validation
        - value: The invalid value
        - expected: Description of what was expected
    """

    pass


class KVError(SqlKVError):
    """Raised when a KV operation fails at the session boundary.

    Wraps backing-store failures, transaction rollbacks, nested transaction
    attempts and close failures. The original exception is chained as
    ``__cause__`` and exposed through ``cause``.

    Context should include:
        - operation: The session operation that failed
        - key / prefix: The key or prefix involved, when there is one
    """

    @property
    def cause(self) -> BaseException | None:
        """The wrapped exception, if any."""
        return self.__cause__


class DecodeError(KVError):
    """Raised when a stored value cannot be decoded.

    Distinct from a missing key, which is reported as ``None``.
    """

    pass
