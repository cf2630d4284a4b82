"""
Unified exception hierarchy for the StudyMap backend.

All domain exceptions inherit from StudyMapError and carry:
- error_code: machine-readable string (e.g. "COURSE_NOT_FOUND")
- status_code: HTTP status code
- message: human-readable description
- context: optional structured metadata dict

The HTTP layer (main.py) is the only place these are turned into responses.
"""

from typing import Optional, Dict, Any


class StudyMapError(Exception):
    """Base exception for all StudyMap domain errors."""

    def __init__(
        self,
        message: str,
        error_code: str = "INTERNAL_ERROR",
        status_code: int = 500,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.context = context or {}
        super().__init__(message)


class NotFoundError(StudyMapError):
    """404 resource-not-found errors."""

    def __init__(
        self,
        message: str,
        error_code: str = "COURSE_NOT_FOUND",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, error_code=error_code, status_code=404, context=context)


class CapabilityError(StudyMapError):
    """Upstream LLM capability failed (unavailable, malformed output, API error)."""

    def __init__(
        self,
        message: str,
        error_code: str = "CAPABILITY_FAILED",
        status_code: int = 500,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, error_code=error_code, status_code=status_code, context=context)


class CapabilityUnavailableError(CapabilityError):
    """Claude client is not configured."""

    def __init__(self, message: str = "Claude client unavailable.", context: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code="CAPABILITY_UNAVAILABLE", context=context)


class CapabilityTimeoutError(CapabilityError):
    """Upstream call exceeded its wall-clock budget."""

    def __init__(self, operation: str, timeout_seconds: float, context: Optional[Dict[str, Any]] = None):
        self.operation = operation
        self.timeout_seconds = timeout_seconds
        ctx = {"operation": operation, "timeout_seconds": timeout_seconds}
        if context:
            ctx.update(context)
        super().__init__(
            f"{operation} timed out after {timeout_seconds:g}s",
            error_code="CAPABILITY_TIMEOUT",
            context=ctx,
        )


class QuizGenerationError(CapabilityError):
    """Failed to generate a quiz."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code="QUIZ_GENERATION_FAILED", status_code=400, context=context)


class SyllabusParseError(CapabilityError):
    """Failed to turn a syllabus upload into a study map."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code="SYLLABUS_PARSE_FAILED", status_code=400, context=context)


class ResourceSearchError(CapabilityError):
    """Failed to search for learning resources."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code="RESOURCE_SEARCH_FAILED", status_code=500, context=context)


class ChatError(CapabilityError):
    """Failed to produce a chat reply."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code="CHAT_FAILED", status_code=500, context=context)


class StorageError(StudyMapError):
    """500-level database / storage failures."""

    def __init__(
        self,
        message: str,
        error_code: str = "STORAGE_ERROR",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, error_code=error_code, status_code=500, context=context)
