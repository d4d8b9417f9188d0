"""
Package-level exception hierarchy for pgdoctor.

All exceptions inherit from PgDoctorError, enabling:
- Catching all pgdoctor errors with a single except clause
- Rich context fields for debugging (check_id, query_name, config_key, etc.)
- Structured serialization via to_dict() for JSON error output

Hierarchy:
    PgDoctorError
    ├── QueryError             – The query gateway failed to run a query
    ├── CheckError             – A specific check failed during a run
    │   └── CheckTimeoutError  – A check exceeded its deadline
    ├── ConfigurationError     – Invalid configuration value
    └── GatewayConnectionError – Could not open a connection to the database

Invalid filter tokens are deliberately NOT exceptions: validate_filters()
returns them to the caller, which reports and ignores them.
"""

from __future__ import annotations

from typing import Any


class PgDoctorError(Exception):
    """
    Base exception for all pgdoctor errors.

    Attributes:
        message: Human-readable error description.
    """

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to dictionary for JSON error output."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
        }


# ── Gateway Errors ───────────────────────────────────────────────────────


class QueryError(PgDoctorError):
    """
    The query gateway failed to execute a read-only query.

    Attributes:
        query_name: Name of the gateway operation (e.g. "pg_version").
        original_error: The underlying driver exception.
    """

    def __init__(self, query_name: str, original_error: Exception) -> None:
        self.query_name = query_name
        self.original_error = original_error
        super().__init__(
            f"query {query_name} failed: "
            f"{original_error.__class__.__name__}: {original_error}"
        )

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["query_name"] = self.query_name
        result["original_error_type"] = self.original_error.__class__.__name__
        return result


class GatewayConnectionError(PgDoctorError):
    """
    Could not connect to the target database.

    Attributes:
        target: Redacted description of the connection target.
    """

    def __init__(self, message: str, target: str | None = None) -> None:
        self.target = target
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["target"] = self.target
        return result


# ── Check Errors ─────────────────────────────────────────────────────────


class CheckError(PgDoctorError):
    """
    Error raised by a check during a run.

    Captures which check failed so a fail-fast run can still say where it
    stopped. The original exception is kept both as an attribute and as
    the chained cause.

    Attributes:
        category: Category of the failing check.
        check_id: ID of the failing check.
        original_error: The underlying exception.
    """

    def __init__(
        self,
        category: str,
        check_id: str,
        original_error: Exception,
        message: str | None = None,
    ) -> None:
        self.category = category
        self.check_id = check_id
        self.original_error = original_error

        if message is None:
            message = (
                f"check {category}/{check_id} failed: "
                f"{original_error.__class__.__name__}: {original_error}"
            )
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON output / logging."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "category": self.category,
            "check_id": self.check_id,
            "original_error_type": self.original_error.__class__.__name__,
            "original_error_message": str(self.original_error),
        }


class CheckTimeoutError(CheckError):
    """
    A check did not finish before its deadline.

    Attributes:
        timeout_seconds: The per-check timeout that was exceeded.
    """

    def __init__(
        self,
        category: str,
        check_id: str,
        timeout_seconds: float,
        original_error: Exception,
    ) -> None:
        self.timeout_seconds = timeout_seconds
        super().__init__(
            category,
            check_id,
            original_error,
            message=f"check {category}/{check_id} timed out after {timeout_seconds:g}s",
        )

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["timeout_seconds"] = self.timeout_seconds
        return result


# ── Configuration Errors ─────────────────────────────────────────────────


class ConfigurationError(PgDoctorError):
    """
    Error in pgdoctor configuration.

    Attributes:
        config_key: The configuration key that caused the error (if known).
    """

    def __init__(self, message: str, config_key: str | None = None) -> None:
        self.config_key = config_key
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["config_key"] = self.config_key
        return result
