"""Custom exceptions for worktree-lens"""

from typing import Optional


class WorktreeLensError(Exception):
    """Base exception for all worktree-lens errors."""
    pass


class GitOperationError(WorktreeLensError):
    """Exception raised for errors in Git operations."""

    def __init__(self, operation: str, path: Optional[str] = None, message: Optional[str] = None):
        self.operation = operation
        self.path = path
        self.message = message

        error_msg = f"Git operation '{operation}' failed"
        if path:
            error_msg += f" for '{path}'"
        if message:
            error_msg += f": {message}"

        super().__init__(error_msg)


class NotFoundError(GitOperationError):
    """Exception raised when a path or revision does not resolve."""

    def __init__(self, what: str, path: Optional[str] = None):
        self.what = what
        super().__init__("resolve", path, f"{what} not found")


class AccessDeniedError(WorktreeLensError):
    """Exception raised when a path or settings file cannot be read or written."""

    def __init__(self, path: str, message: Optional[str] = None):
        self.path = path
        self.message = message

        error_msg = f"Access denied for '{path}'"
        if message:
            error_msg += f": {message}"

        super().__init__(error_msg)


class ReadError(AccessDeniedError):
    """Exception raised when file content cannot be read for a diff."""
    pass


class CorruptError(WorktreeLensError):
    """Exception raised for unparseable status records or settings documents."""

    def __init__(self, path: str, message: Optional[str] = None):
        self.path = path
        self.message = message

        error_msg = f"Corrupt content in '{path}'"
        if message:
            error_msg += f": {message}"

        super().__init__(error_msg)


class BusyError(GitOperationError):
    """Exception raised when the repository is locked by a concurrent operation."""

    def __init__(self, path: str, message: Optional[str] = None):
        super().__init__("read", path, message or "Repository is locked by another process")


class InvalidRequestError(WorktreeLensError):
    """Exception raised for malformed requests (e.g. negative page offset)."""
    pass


class HooksConfigError(WorktreeLensError):
    """Exception raised when applying or removing hooks fails."""

    def __init__(self, operation: str, message: Optional[str] = None):
        self.operation = operation
        self.message = message

        error_msg = f"Hooks operation '{operation}' failed"
        if message:
            error_msg += f": {message}"

        super().__init__(error_msg)


class ConfigError(WorktreeLensError):
    """Exception raised when the configuration file cannot be loaded."""
    pass
