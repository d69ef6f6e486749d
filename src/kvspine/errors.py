"""
Structured error types for kvspine stores.

Every failure a store raises is a :class:`KVError` carrying a category, a
retry hint, structured context and the chained underlying exception, so a
caller can log ``error.to_dict()`` without knowing which backend failed.

Manifesto:
    - **Typed hierarchy:** validation, codec, storage and config failures are
      distinct classes, never a bare ``Exception``
    - **Not-found is not an error:** a missing key surfaces as ``found=False``
    - **Error chaining:** library exceptions are kept as ``cause``

Architecture:
    ::

        ┌───────────────────────────────────────────────────────────┐
        │                         KVError                           │
        │  (category, retryable, context, cause)                    │
        ├───────────────────────────────────────────────────────────┤
        │  ValidationError      CodecError        StorageError      │
        │  (VALIDATION)         (CODEC)           (STORAGE)         │
        │       │                   │                               │
        │  InvalidKeyError      EncodeError       ConfigError       │
        │  InvalidValueError    DecodeError       (CONFIG)          │
        └───────────────────────────────────────────────────────────┘

Examples:
    >>> err = InvalidKeyError("empty key")
    >>> err.category
    <ErrorCategory.VALIDATION: 'VALIDATION'>
    >>> err.retryable
    False

    >>> try:
    ...     raise PermissionError("read-only file system")
    ... except OSError as e:
    ...     err = StorageError("write failed", cause=e).with_context(key="a")
    >>> err.context.key
    'a'

Guardrails:
    ❌ DON'T: Raise for a missing key
    ✅ DO: Return ``(False, None)`` from ``get``

    ❌ DON'T: Swallow the codec or OS exception
    ✅ DO: Pass it as ``cause=``
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Error categories used for routing and retry decisions."""

    # Input errors (never retryable)
    VALIDATION = "VALIDATION"     # Empty key, nil value, bad ttl
    CONFIG = "CONFIG"             # Unknown backend or codec

    # Data errors
    CODEC = "CODEC"               # Marshal / unmarshal failures

    # Infrastructure errors
    STORAGE = "STORAGE"           # Disk, Redis, database failures

    # Internal errors
    INTERNAL = "INTERNAL"
    UNKNOWN = "UNKNOWN"


@dataclass
class ErrorContext:
    """
    Structured metadata attached to a :class:`KVError`.

    Attributes:
        store: Backend name (``"map"``, ``"file"``, ...)
        key: Logical key being operated on
        path: File path for the file backend
        operation: Store operation (``"get"``, ``"set_ex"``, ``"gc"``, ...)
        metadata: Additional key-value pairs
    """

    store: str | None = None
    key: str | None = None
    path: str | None = None
    operation: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["store", "key", "path", "operation"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class KVError(Exception):
    """
    Base exception for all kvspine errors.

    Subclasses set ``default_category`` and ``default_retryable``; both can be
    overridden per instance.
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
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.retryable = retryable if retryable is not None else self.default_retryable
        self.context = context or ErrorContext()
        self.cause = cause

        # Chain the cause if provided
        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> KVError:
        """
        Add context to this error (fluent API).

        Usage:
            raise StorageError("read failed", cause=e).with_context(
                store="file",
                key="user:1",
            )
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging."""
        result = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
            "retryable": self.retryable,
        }
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


class ValidationError(KVError):
    """
    Invalid input to a store operation.

    Raised before any storage access, so the store is left untouched.
    """

    default_category = ErrorCategory.VALIDATION
    default_retryable = False

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        **kwargs: Any,
    ):
        super().__init__(message, **kwargs)
        self.field = field
        self.value = value

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field:
            result["field"] = self.field
        if self.value is not None:
            result["value"] = repr(self.value)
        return result


class InvalidKeyError(ValidationError):
    """The key is empty or not a string."""

    pass


class InvalidValueError(ValidationError):
    """The value or decode target is missing, or the ttl is malformed."""

    pass


# =============================================================================
# CODEC ERRORS
# =============================================================================


class CodecError(KVError):
    """A codec could not convert between a value and bytes."""

    default_category = ErrorCategory.CODEC
    default_retryable = False


class EncodeError(CodecError):
    """Marshalling a value failed."""

    pass


class DecodeError(CodecError):
    """Unmarshalling a payload or record failed."""

    pass


# =============================================================================
# STORAGE / CONFIG ERRORS
# =============================================================================


class StorageError(KVError):
    """Backend storage failure other than "not found"."""

    default_category = ErrorCategory.STORAGE
    default_retryable = False


class ConfigError(KVError):
    """Unknown backend, unknown codec or unusable options."""

    default_category = ErrorCategory.CONFIG
    default_retryable = False


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================


def is_retryable(error: BaseException) -> bool:
    """Check if an error is retryable."""
    if isinstance(error, KVError):
        return error.retryable
    return isinstance(error, (ConnectionError, TimeoutError))


def categorize_error(error: BaseException) -> ErrorCategory:
    """Get the category of an error."""
    if isinstance(error, KVError):
        return error.category
    if isinstance(error, OSError):
        return ErrorCategory.STORAGE
    if isinstance(error, (TypeError, ValueError)):
        return ErrorCategory.VALIDATION
    return ErrorCategory.UNKNOWN


__all__ = [
    "ErrorCategory",
    "ErrorContext",
    "KVError",
    "ValidationError",
    "InvalidKeyError",
    "InvalidValueError",
    "CodecError",
    "EncodeError",
    "DecodeError",
    "StorageError",
    "ConfigError",
    "is_retryable",
    "categorize_error",
]
