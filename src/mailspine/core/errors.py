"""
Structured error types for mailspine.

Provides a typed hierarchy of errors with metadata for retry decisions,
error categorization and root cause analysis through error chaining.

The dispatch engine distinguishes three failure families:
- **Invalid schedules:** malformed measure/unit or an unreconcilable record.
  Raised by the pure core before any update is produced. Never retryable.
- **Store failures:** a template that does not exist, or a conditional write
  that lost a race against another driver instance.
- **Configuration:** settings that cannot be loaded or validated.

Manifesto:
    - **Typed Error Hierarchy:** Different error types for different domains
    - **Explicit Retry Semantics:** Each error knows if it's retryable
    - **Rich Context:** Errors carry metadata for logging and alerting
    - **Error Chaining:** Preserve original exceptions while adding context

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────────┐
        │                      MailspineError                              │
        │  (category, retryable, retry_after, context, cause)             │
        ├─────────────────────────────────────────────────────────────────┤
        │                                                                  │
        │  ValidationError        StorageError         ConfigError        │
        │  (VALIDATION)           (STORAGE)            (CONFIG)           │
        │       │                      │                    │              │
        │  InvalidScheduleError   TemplateNotFoundError InvalidConfigError │
        │                         StaleRecordError                        │
        │                                                                  │
        │  DatabaseError          OrchestrationError                      │
        │  (DATABASE)             (ORCHESTRATION)                         │
        │       │                      │                                   │
        │  LockError              DispatchError                           │
        └─────────────────────────────────────────────────────────────────┘

Examples:
    >>> error = InvalidScheduleError("measure must be positive", field="schedule_measure", value=0)
    >>> error.retryable
    False
    >>> error.with_context(template_id="newsletter").context.template_id
    'newsletter'

Guardrails:
    ❌ DON'T: Raise bare ValueError from the scheduling core
    ✅ DO: Raise InvalidScheduleError so callers can leave the record unchanged

    ❌ DON'T: Swallow the original exception
    ✅ DO: Pass it as cause= for error chaining

Tags:
    error-handling, exception-hierarchy, retry-logic, error-context,
    mailspine, scheduling
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and routing."""

    # Infrastructure errors (usually transient)
    NETWORK = "NETWORK"           # Connection, timeout, DNS
    DATABASE = "DATABASE"         # Connection, query, lock table
    STORAGE = "STORAGE"           # Template store semantics

    # Data errors
    VALIDATION = "VALIDATION"     # Malformed schedules, constraint violations

    # Configuration errors (never retryable)
    CONFIG = "CONFIG"             # Missing config, invalid settings

    # Application errors
    ORCHESTRATION = "ORCHESTRATION"  # Driver loop, dispatch

    # Internal errors
    INTERNAL = "INTERNAL"         # Bugs, unexpected state
    UNKNOWN = "UNKNOWN"           # Uncategorized errors


@dataclass
class ErrorContext:
    """
    Structured metadata context for errors.

    Typed fields cover the identifiers the dispatch engine logs most often;
    anything else goes into ``metadata``. ``to_dict()`` serializes only the
    fields that are set.

    Attributes:
        template_id: Template whose schedule was being processed
        instance_id: Driver instance that hit the error
        operation: Engine operation (reconcile, apply_update, dispatch, ...)
        metadata: Additional key-value pairs
    """

    template_id: str | None = None
    instance_id: str | None = None
    operation: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["template_id", "instance_id", "operation"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class MailspineError(Exception):
    """
    Base exception for all mailspine errors.

    Subclasses set ``default_category`` and ``default_retryable``; both can
    be overridden per instance.
    """

    # Default category for this error type
    default_category: ErrorCategory = ErrorCategory.INTERNAL
    # Default retryable setting
    default_retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        retryable: bool | None = None,
        retry_after: int | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.retry_after = retry_after
        self.context = context or ErrorContext()
        self.cause = cause

        # Chain the cause if provided
        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> MailspineError:
        """
        Add context to this error (fluent API).

        Usage:
            raise StaleRecordError("lost race").with_context(
                template_id="weekly-digest",
                operation="apply_update",
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
        if self.retry_after is not None:
            result["retry_after"] = self.retry_after
        if self.context:
            context_dict = self.context.to_dict()
            if context_dict:
                result["context"] = context_dict
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# VALIDATION ERRORS
# =============================================================================


class ValidationError(MailspineError):
    """
    Data validation error.

    Never retryable - data must be fixed.
    """

    default_category = ErrorCategory.VALIDATION
    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        constraint: str | None = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value
        self.constraint = constraint

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        if self.value is not None:
            result["value"] = repr(self.value)
        if self.constraint:
            result["constraint"] = self.constraint
        return result


class InvalidScheduleError(ValidationError):
    """Schedule parameters cannot produce a fire time.

    Raised for a non-positive or missing measure, a unit outside the
    enumerated set, or a scheduled record without a schedule type. The
    record must be treated as unchanged.
    """

    pass


# =============================================================================
# CONFIGURATION ERRORS
# =============================================================================


class ConfigError(MailspineError):
    """
    Configuration error.

    Never retryable - configuration must be fixed.
    """

    default_category = ErrorCategory.CONFIG
    default_retryable = False


class InvalidConfigError(ConfigError):
    """Configuration value is invalid."""

    def __init__(self, key: str, value: Any, message: str | None = None):
        self.key = key
        self.value = value
        super().__init__(message or f"Invalid configuration for {key}: {value!r}")


# =============================================================================
# STORAGE ERRORS
# =============================================================================


class StorageError(MailspineError):
    """Template store error."""

    default_category = ErrorCategory.STORAGE
    default_retryable = False


class TemplateNotFoundError(StorageError):
    """No schedule record exists for the template id."""

    def __init__(self, template_id: str):
        self.template_id = template_id
        super().__init__(
            f"Template not found: {template_id}",
            context=ErrorContext(template_id=template_id),
        )


class StaleRecordError(StorageError):
    """Conditional write rejected because the stored version moved on.

    Retryable: re-read the record, reconcile again and re-apply.
    """

    default_retryable = True

    def __init__(self, template_id: str, expected_version: int | None):
        self.template_id = template_id
        self.expected_version = expected_version
        super().__init__(
            f"Template {template_id} changed since version {expected_version}",
            context=ErrorContext(template_id=template_id, operation="apply_update"),
        )


class DatabaseError(MailspineError):
    """Database query or transaction error."""

    default_category = ErrorCategory.DATABASE
    default_retryable = False


class LockError(DatabaseError):
    """Lock table could not be read or written."""

    default_retryable = True


# =============================================================================
# ORCHESTRATION ERRORS
# =============================================================================


class OrchestrationError(MailspineError):
    """Driver loop error."""

    default_category = ErrorCategory.ORCHESTRATION
    default_retryable = False


class DispatchError(OrchestrationError):
    """A template could not be dispatched."""

    pass


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: Exception) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, MailspineError):
        return error.retryable
    retryable_types = (
        ConnectionError,
        ConnectionResetError,
        ConnectionRefusedError,
        BrokenPipeError,
        OSError,
    )
    return isinstance(error, retryable_types)


def categorize_error(error: Exception) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, MailspineError):
        return error.category
    if isinstance(error, (ConnectionError, OSError)):
        return ErrorCategory.NETWORK
    if isinstance(error, ValueError):
        return ErrorCategory.VALIDATION
    if isinstance(error, (KeyError, AttributeError)):
        return ErrorCategory.CONFIG
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "MailspineError",
    "ValidationError",
    "InvalidScheduleError",
    "ConfigError",
    "InvalidConfigError",
    "StorageError",
    "TemplateNotFoundError",
    "StaleRecordError",
    "DatabaseError",
    "LockError",
    "OrchestrationError",
    "DispatchError",
    "is_retryable",
    "categorize_error",
]
