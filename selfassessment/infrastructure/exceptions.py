"""
Custom exception classes for the company self-assessment application.

Provides structured error handling with user-friendly messages and proper
error categorization for different failure scenarios.
"""

from __future__ import annotations

from typing import Any

import httpx


class SelfAssessmentError(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        user_message: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.user_message = user_message or self._get_default_user_message()

    def _get_default_user_message(self) -> str:
        return "Tekkis ootamatu viga. Palun proovige uuesti."

    def __str__(self) -> str:
        return f"{self.__class__.__name__}: {self.message}"


class ValidationError(SelfAssessmentError):
    """Raised when input validation fails."""

    def __init__(
        self, field: str, message: str, value: Any = None, details: dict[str, Any] | None = None
    ):
        self.field = field
        self.value = value
        super().__init__(
            message=f"Validation failed for field '{field}': {message}",
            details=details or {"field": field, "value": value},
            user_message=f"Palun kontrollige sisestatud andmeid (väli {field}).",
        )


class MissingPrerequisiteError(SelfAssessmentError):
    """Raised when an earlier step of the flow has not been completed."""

    def __init__(self, prerequisite: str, message: str | None = None):
        self.prerequisite = prerequisite
        super().__init__(
            message=message or f"Missing prerequisite: {prerequisite}",
            details={"prerequisite": prerequisite},
        )

    def _get_default_user_message(self) -> str:
        return "Eelmise sammu andmed puuduvad. Palun alustage hindamist algusest."


class RecordStoreError(SelfAssessmentError):
    """Raised when a call to the external record store fails."""

    def __init__(
        self,
        message: str,
        operation: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.operation = operation
        self.status_code = status_code
        super().__init__(
            message=f"Record store error during {operation}: {message}",
            details=details or {"operation": operation, "status_code": status_code},
        )

    def _get_default_user_message(self) -> str:
        return (
            "Hindamise andmebaasiga ei õnnestunud ühendust saada. "
            "Palun proovige hetke pärast uuesti."
        )


class StoreConnectionError(RecordStoreError):
    """Raised when the record store cannot be reached."""

    def __init__(self, message: str, operation: str = "connection"):
        super().__init__(message=message, operation=operation)

    def _get_default_user_message(self) -> str:
        return (
            "Ühendus hindamise andmebaasiga katkes. "
            "Palun kontrollige võrguühendust ja proovige uuesti."
        )


class StoreAuthError(RecordStoreError):
    """Raised when the record store rejects our credentials."""

    def __init__(self, message: str, operation: str, status_code: int | None = None):
        super().__init__(message=message, operation=operation, status_code=status_code)

    def _get_default_user_message(self) -> str:
        return "Hindamise andmebaas keeldus päringust. Palun võtke ühendust kasutajatoega."


class RecordNotFoundError(RecordStoreError):
    """Raised when a record id does not exist in the given table."""

    def __init__(self, table: str, record_id: str):
        self.table = table
        self.record_id = record_id
        super().__init__(
            message=f"{table} record {record_id} not found",
            operation=f"{table}.find",
            status_code=404,
            details={"table": table, "record_id": record_id},
        )

    def _get_default_user_message(self) -> str:
        return "Otsitud hindamist ei leitud."


class MalformedRecordError(RecordStoreError):
    """Raised when a record does not match the expected table schema."""

    def __init__(self, table: str, record_id: str | None, problems: list[str]):
        self.table = table
        self.record_id = record_id
        self.problems = problems
        super().__init__(
            message=f"{table} record {record_id} is malformed: {'; '.join(problems)}",
            operation=f"{table}.validate",
            details={"table": table, "record_id": record_id, "problems": problems},
        )


class InvalidTransitionError(SelfAssessmentError):
    """Raised when a response status change is not allowed."""

    def __init__(self, current: str | None, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(
            message=f"Invalid status transition from {current} to {requested}",
            details={"current": current, "requested": requested},
        )

    def _get_default_user_message(self) -> str:
        if self.current == "Completed":
            return "See hindamine on juba lõpetatud ja seda ei saa enam muuta."
        return "Seda sammu ei saa hindamise praeguses olekus teha."


class ConfigurationError(SelfAssessmentError):
    """Raised when configuration is invalid."""

    def __init__(
        self,
        message: str,
        config_key: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.config_key = config_key
        super().__init__(
            message=message,
            details=details or {"config_key": config_key},
            user_message="Rakenduse seadistus on puudulik. Palun võtke ühendust kasutajatoega.",
        )


class ExportError(SelfAssessmentError):
    """Raised when PDF generation or email delivery fails."""

    def __init__(
        self,
        message: str,
        export_format: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.export_format = export_format
        super().__init__(
            message=message,
            details=details or {"export_format": export_format},
        )

    def _get_default_user_message(self) -> str:
        if self.export_format == "email":
            return "Viga e-kirja saatmisel. Palun proovige uuesti."
        return "Viga PDF-i allalaadimisel. Palun proovige uuesti."


def handle_store_error(e: Exception, operation: str = "record store operation") -> RecordStoreError:
    """
    Convert HTTP client exceptions to record-store exceptions.

    Example:
        >>> try:
        ...     response.raise_for_status()
        ... except httpx.HTTPError as e:
        ...     raise handle_store_error(e, "MethodQuestions.select") from e
    """
    if isinstance(e, RecordStoreError):
        return e

    if isinstance(e, httpx.HTTPStatusError):
        status_code = e.response.status_code
        if status_code in (401, 403):
            return StoreAuthError(str(e), operation, status_code=status_code)
        return RecordStoreError(str(e), operation, status_code=status_code)

    if isinstance(e, (httpx.TimeoutException, httpx.NetworkError)):
        return StoreConnectionError(str(e), operation)

    return RecordStoreError(str(e), operation)


def log_error_details(error: Exception, context: dict[str, Any] | None = None) -> dict[str, Any]:
    """
    Create structured error details for logging.

    Example:
        >>> details = log_error_details(RecordNotFoundError("AssessmentResponses", "rec1"))
        >>> details["error_type"]
        'RecordNotFoundError'
    """
    details = {
        "error_type": type(error).__name__,
        "error_message": str(error),
        "context": context or {},
    }

    if isinstance(error, SelfAssessmentError):
        details.update({"user_message": error.user_message, "error_details": error.details})

    return details
