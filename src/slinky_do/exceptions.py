"""Custom exceptions for the slinky-do vault server.

Provides a structured exception hierarchy with error codes and
machine-readable error information for better error handling.
"""
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Note errors (1xxx)
    NOTE_NOT_FOUND = 1001
    NOTE_ALREADY_EXISTS = 1002
    NOTE_TITLE_REQUIRED = 1003

    # Checklist errors (2xxx)
    TODO_NOT_FOUND = 2001
    TODO_AMBIGUOUS_MATCH = 2002
    TODO_TEXT_REQUIRED = 2003

    # Metadata errors (3xxx)
    METADATA_MALFORMED = 3001

    # Storage errors (4xxx)
    STORAGE_READ_FAILED = 4001
    STORAGE_WRITE_FAILED = 4002
    STORAGE_DELETE_FAILED = 4003
    STORAGE_MOVE_FAILED = 4004
    STORAGE_LIST_FAILED = 4005

    # Configuration errors (6xxx)
    CONFIG_INVALID = 6001
    CONFIG_MISSING = 6002

    # Validation errors (7xxx)
    VALIDATION_FAILED = 7001
    PATH_ESCAPE = 7005


class VaultError(Exception):
    """Base exception for all vault errors.

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


class PathEscapeError(VaultError):
    """Raised when a path resolves outside the configured vault root.

    The operation that raised it has not touched the file system.
    """

    def __init__(self, path: str, root: str, message: Optional[str] = None):
        super().__init__(
            message or "Path must be within the vault",
            code=ErrorCode.PATH_ESCAPE,
            details={"path": str(path)[:200]}
        )
        self.path = path
        self.root = root


class NoteNotFoundError(VaultError):
    """Raised when a note cannot be found."""

    def __init__(self, path: str, message: Optional[str] = None):
        super().__init__(
            message or f"Note '{path}' not found",
            code=ErrorCode.NOTE_NOT_FOUND,
            details={"path": path}
        )
        self.path = path


class NoteAlreadyExistsError(VaultError):
    """Raised when creating a note would overwrite an existing file."""

    def __init__(self, path: str, message: Optional[str] = None):
        super().__init__(
            message or f"Note already exists: {path}",
            code=ErrorCode.NOTE_ALREADY_EXISTS,
            details={"path": path}
        )
        self.path = path


class TodoNotFoundError(VaultError):
    """Raised when no checklist item matches an id or text lookup."""

    def __init__(self, selector: str, message: Optional[str] = None):
        super().__init__(
            message or f"No todo matching {selector}",
            code=ErrorCode.TODO_NOT_FOUND,
            details={"selector": selector[:100]}
        )
        self.selector = selector


class AmbiguousMatchError(VaultError):
    """Raised when a text lookup matches more than one checklist item.

    Attributes:
        query: The text that was looked up
        candidates: Every item that matched, in document order
    """

    def __init__(self, query: str, candidates: Sequence[Any]):
        super().__init__(
            f"'{query}' matches {len(candidates)} todos; use an id instead",
            code=ErrorCode.TODO_AMBIGUOUS_MATCH,
            details={
                "query": query[:100],
                "candidate_ids": [getattr(c, "id", None) for c in candidates][:10],
            }
        )
        self.query = query
        self.candidates: List[Any] = list(candidates)


class MalformedMetadataError(VaultError):
    """Raised inside the metadata codec when a frontmatter block cannot be parsed.

    Callers of ``decode`` never see it; it is reported as
    ``MetadataStatus.MALFORMED`` instead.
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        details = {}
        if original_error:
            details["original_error"] = str(original_error)[:200]
        super().__init__(message, code=ErrorCode.METADATA_MALFORMED, details=details)
        self.original_error = original_error


class StorageError(VaultError):
    """Raised for file system read/write errors."""

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
            # Don't expose full paths in error messages for security
            details["path_hint"] = path.split("/")[-1] if "/" in path else path
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.operation = operation
        self.path = path
        self.original_error = original_error


class ConfigurationError(VaultError):
    """Raised for configuration-related errors."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        code: ErrorCode = ErrorCode.CONFIG_INVALID
    ):
        details = {}
        if config_key:
            details["config_key"] = config_key

        super().__init__(message, code=code, details=details)
        self.config_key = config_key


class ValidationError(VaultError):
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
