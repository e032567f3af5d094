"""Custom exceptions for aem-eye.

Provides structured error handling with categorized exceptions. Per-target
probe failures are not represented here: they are recovered inside the worker
and only ever show up as classified counters.
"""

from typing import Optional, Dict, Any


class AemEyeError(Exception):
    """Base exception for all aem-eye errors.

    Provides a structured representation with:
    - error_code: Machine-readable error identifier
    - message: Human-readable error description
    - details: Optional additional context
    """

    error_code: str = "AEMEYE_ERROR"
    exit_code: int = 1

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Return structured error dict."""
        response = {
            "error": True,
            "error_code": self.error_code,
            "message": self.message,
        }
        if self.details:
            response["details"] = self.details
        return response


# ============ Validation Errors ============


class ValidationError(AemEyeError):
    """Input validation failed."""

    error_code = "VALIDATION_ERROR"


class InvalidTargetError(ValidationError):
    """A host line could not be turned into a probe target."""

    error_code = "INVALID_TARGET"

    def __init__(self, value: str, reason: str = "Invalid target"):
        super().__init__(f"{reason}: {value!r}", details={"target": value, "reason": reason})
        self.reason = reason


# ============ Configuration Errors ============


class ConfigurationError(AemEyeError):
    """Configuration issue."""

    error_code = "CONFIGURATION_ERROR"
    exit_code = 2

    def __init__(self, setting: str, message: str):
        super().__init__(f"Configuration error for {setting}: {message}", details={"setting": setting})
        self.setting = setting


class InvalidPatternError(ConfigurationError):
    """A detection pattern is malformed or does not compile."""

    error_code = "INVALID_PATTERN"

    def __init__(self, name: str, pattern: str, reason: str):
        super().__init__(f"pattern:{name}", f"{reason} ({pattern!r})")
        self.details.update({"name": name, "pattern": pattern, "reason": reason})
        self.name = name
        self.pattern = pattern


# ============ Input Errors ============


class InputSourceError(AemEyeError):
    """The host list could not be opened or read."""

    error_code = "INPUT_SOURCE_ERROR"
    exit_code = 1

    def __init__(self, source: str, reason: str):
        super().__init__(f"failed to read hosts from {source}: {reason}", details={"source": source, "reason": reason})
        self.source = source


# ============ Pipeline Errors ============


class QueueClosedError(AemEyeError):
    """Raised to the producer when the job queue no longer accepts jobs."""

    error_code = "QUEUE_CLOSED"

    def __init__(self, reason: str = "queue closed"):
        super().__init__(reason, details={"reason": reason})
