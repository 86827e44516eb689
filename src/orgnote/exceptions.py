"""Custom exceptions for orgnote.

Provides a structured exception hierarchy with error codes and
machine-readable error information for better error handling.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Node errors (1xxx)
    NODE_NOT_FOUND = 1001
    NODE_TITLE_REQUIRED = 1002

    # Parse errors (2xxx)
    PARSE_FAILED = 2001
    PARSE_UNTERMINATED_DRAWER = 2002
    PARSE_MALFORMED_PROPERTY = 2003

    # Storage errors (4xxx)
    STORAGE_READ_FAILED = 4001
    STORAGE_WRITE_FAILED = 4002
    STORAGE_DELETE_FAILED = 4003
    CONSTRAINT_VIOLATION = 4004
    SCHEMA_VERSION_MISMATCH = 4005

    # Validation errors (7xxx)
    VALIDATION_FAILED = 7001


class OrgnoteError(Exception):
    """Base exception for all orgnote errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class ParseError(OrgnoteError):
    """Raised when an org document cannot be parsed."""

    def __init__(
        self,
        message: str,
        line: Optional[int] = None,
        path: Optional[str] = None,
        code: ErrorCode = ErrorCode.PARSE_FAILED
    ):
        details: Dict[str, Any] = {}
        if path:
            details["file"] = path.split("/")[-1]
        if line is not None:
            details["line"] = line

        super().__init__(message, code=code, details=details)
        self.line = line
        self.path = path


class StorageError(OrgnoteError):
    """Raised for storage/persistence errors."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        path: Optional[str] = None,
        code: ErrorCode = ErrorCode.STORAGE_READ_FAILED,
        original_error: Optional[Exception] = None
    ):
        details = {}
        if operation:
            details["operation"] = operation
        if path:
            # Don't expose full paths in error messages
            details["path_hint"] = path.split("/")[-1] if "/" in path else path
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.path = path
        self.original_error = original_error


class ReadError(StorageError):
    """Raised when a note file cannot be read (missing, permissions, encoding)."""

    def __init__(self, path: str, original_error: Optional[Exception] = None):
        super().__init__(
            f"Cannot read file '{path}'",
            operation="read",
            path=path,
            code=ErrorCode.STORAGE_READ_FAILED,
            original_error=original_error,
        )


class ConstraintViolation(StorageError):
    """Raised when an insert violates a uniqueness or foreign-key constraint.

    The enclosing per-file transaction has already been rolled back when
    this reaches the caller.
    """

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        original_error: Optional[Exception] = None
    ):
        super().__init__(
            message,
            operation="sync",
            path=path,
            code=ErrorCode.CONSTRAINT_VIOLATION,
            original_error=original_error,
        )


class SchemaVersionMismatch(StorageError):
    """Raised when the stored schema version differs and rebuild is disabled."""

    def __init__(self, found: int, expected: int):
        super().__init__(
            f"Database schema version {found} does not match expected {expected}",
            operation="init_db",
            code=ErrorCode.SCHEMA_VERSION_MISMATCH,
        )
        self.found = found
        self.expected = expected
        self.details["found"] = found
        self.details["expected"] = expected


class NodeNotFoundError(OrgnoteError):
    """Raised when a node cannot be found."""

    def __init__(self, node_id: str, message: Optional[str] = None):
        super().__init__(
            message or f"Node with ID '{node_id}' not found",
            code=ErrorCode.NODE_NOT_FOUND,
            details={"node_id": node_id}
        )
        self.node_id = node_id


class ValidationError(OrgnoteError):
    """Raised for general validation errors."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED
    ):
        details = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value
