"""
Exception hierarchy for beads-bridge.

Every error raised by the core carries a machine-readable ``code`` so the
CLI and the sync results can report failures uniformly.

Exception Hierarchy:
    BridgeError (base)
    ├── NotFoundError (missing item, entity, or mapping)
    ├── AlreadyExistsError (duplicate mapping for an external entity)
    ├── ValidationError (malformed input such as an external ref)
    ├── ConflictError (mapping is in conflict and must be resolved first)
    ├── StoreError (persisted state is unreadable or corrupt)
    ├── SubprocessError (git / bd / gh invocation failed)
    └── BackendError (external system failure)
        ├── AuthenticationError
        └── RateLimitError

Example:
    >>> from beads_bridge.core.errors import NotFoundError
    >>> try:
    ...     raise NotFoundError("Mapping not found: abc", mapping_id="abc")
    ... except NotFoundError as e:
    ...     print(e.code, e.context["mapping_id"])
    NOT_FOUND abc
"""

from __future__ import annotations


class BridgeError(Exception):
    """
    Base exception for all beads-bridge errors.

    Attributes:
        message: Human-readable error message
        code: Stable machine-readable error code
        context: Additional context about the failure
    """

    default_code = "BRIDGE_ERROR"

    def __init__(self, message: str, code: str | None = None, **context: object) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.context = context

    def __str__(self) -> str:
        return self.message


class NotFoundError(BridgeError):
    """Raised when an item, external entity, or mapping does not exist."""

    default_code = "NOT_FOUND"


class AlreadyExistsError(BridgeError):
    """Raised when creating a mapping for an entity that already has one."""

    default_code = "ALREADY_EXISTS"


class ValidationError(BridgeError):
    """Raised for malformed input (external refs, diagram sections, options)."""

    default_code = "VALIDATION_ERROR"


class ConflictError(BridgeError):
    """Raised when an operation would silently overwrite an unresolved conflict."""

    default_code = "CONFLICT"


class StoreError(BridgeError):
    """Raised when persisted state cannot be read or written."""

    default_code = "STORE_ERROR"


class SubprocessError(BridgeError):
    """
    Raised when an external command (git, bd, gh) fails.

    Attributes:
        command: The argv that was executed
        stderr: Captured standard error (stripped)
        returncode: Process exit code, None when the process never ran
    """

    default_code = "SUBPROCESS_ERROR"

    def __init__(
        self,
        message: str,
        command: list[str] | None = None,
        stderr: str = "",
        returncode: int | None = None,
        code: str | None = None,
    ) -> None:
        super().__init__(message, code=code, command=command, stderr=stderr)
        self.command = command
        self.stderr = stderr
        self.returncode = returncode


class BackendError(BridgeError):
    """Raised when an external project-management backend fails."""

    default_code = "BACKEND_ERROR"


class AuthenticationError(BackendError):
    """Raised when backend credentials are missing or rejected."""

    default_code = "AUTH_ERROR"


class RateLimitError(BackendError):
    """
    Raised when a backend rejects a request for exceeding its rate limit.

    Attributes:
        retry_after: Seconds the backend asked us to wait, if it said
    """

    default_code = "RATE_LIMIT"

    def __init__(self, message: str, retry_after: float | None = None, **context: object) -> None:
        super().__init__(message, **context)
        self.retry_after = retry_after


__all__ = [
    "BridgeError",
    "NotFoundError",
    "AlreadyExistsError",
    "ValidationError",
    "ConflictError",
    "StoreError",
    "SubprocessError",
    "BackendError",
    "AuthenticationError",
    "RateLimitError",
]
