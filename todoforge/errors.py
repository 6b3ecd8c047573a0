"""
Error Hierarchy
===============

Exceptions raised by TodoForge components.

The hierarchy mirrors how the session loop treats a failure:

- RecoverableError: log it, skip the TODO (or retry the iteration), keep going.
- FatalError: stop the session.
- ValidationError: the post-action syntax check failed, roll the file back.

Rejections that are part of normal operation (no pattern matched, confidence
too low, pattern disabled) are not exceptions. They are returned as data, see
``todoforge.gate.GateDecision``.
"""

from typing import Any, Dict, List, Optional


class TodoForgeError(Exception):
    """Base class for every error raised by TodoForge."""

    prefix = "Error"

    def __init__(
        self,
        message: str,
        code: str = "TODOFORGE_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(f"{self.prefix}: {message}")


# =============================================================================
# Recoverable
# =============================================================================

class RecoverableError(TodoForgeError):
    """A failure that affects one TODO or one iteration, not the session."""

    prefix = "Recoverable Error"

    def __init__(self, message: str, code: str = "RECOVERABLE", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code, details)


class FileSystemError(RecoverableError):
    prefix = "File System Error"

    def __init__(self, message: str, path: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        details = dict(details or {})
        if path is not None:
            details.setdefault("path", path)
        super().__init__(message, "FILE_SYSTEM", details)
        self.path = path


class GitError(RecoverableError):
    prefix = "Git Error"

    def __init__(self, message: str, command: Optional[List[str]] = None, stderr: str = ""):
        super().__init__(message, "GIT", {"command": command or [], "stderr": stderr})
        self.command = command or []
        self.stderr = stderr


class ParseError(RecoverableError):
    """Source text could not be parsed into a clean syntax tree."""

    prefix = "Parse Error"

    def __init__(self, message: str, path: str = "", line: int = 0, column: int = 0):
        super().__init__(message, "PARSE", {"path": path, "line": line, "column": column})
        self.path = path
        self.line = line
        self.column = column


class UnsupportedFileTypeError(RecoverableError):
    prefix = "Unsupported File Type"

    def __init__(self, path: str, extension: str):
        super().__init__(
            f"{extension or '(none)'} files are not supported ({path})",
            "UNSUPPORTED_FILE_TYPE",
            {"path": path, "extension": extension},
        )
        self.path = path
        self.extension = extension


class OperationTimeoutError(RecoverableError):
    """A bounded operation ran past its deadline."""

    prefix = "Timeout Error"

    def __init__(self, operation: str, timeout_seconds: float):
        super().__init__(
            f"{operation} timed out after {timeout_seconds:g}s",
            "TIMEOUT",
            {"operation": operation, "timeout_seconds": timeout_seconds},
        )
        self.operation = operation
        self.timeout_seconds = timeout_seconds


# =============================================================================
# Fatal
# =============================================================================

class FatalError(TodoForgeError):
    """A failure that makes continuing the session pointless."""

    prefix = "Fatal Error"

    def __init__(self, message: str, code: str = "FATAL", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code, details)


class ConfigurationError(FatalError):
    prefix = "Configuration Error"

    def __init__(self, message: str, key: Optional[str] = None):
        super().__init__(message, "CONFIGURATION", {"key": key} if key else None)
        self.key = key


class UnsupportedActionError(FatalError):
    prefix = "Unsupported Action"

    def __init__(self, action_type: str):
        super().__init__(f"No executor registered for action type '{action_type}'", "UNSUPPORTED_ACTION",
                         {"action_type": action_type})
        self.action_type = action_type


# =============================================================================
# Validation
# =============================================================================

class ValidationError(TodoForgeError):
    """Post-action syntax validation failed."""

    prefix = "Validation Error"

    def __init__(self, message: str, issues: Optional[List[Any]] = None, path: Optional[str] = None):
        super().__init__(message, "VALIDATION", {"path": path} if path else None)
        self.issues = list(issues or [])
        self.path = path
