"""
Exception hierarchy for the study processor.

Every domain error carries:
- message: human-readable description (this is what the caller sees)
- error_code: machine-readable string, used in logs only
- status_code: HTTP status the API reports
- context: optional structured metadata for diagnostics
"""

from typing import Any, Dict, Optional


class StudyProcessorError(Exception):
    """Base exception for all study processor errors."""

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


class InvalidRequest(StudyProcessorError):
    """Missing or invalid request fields. Raised before any side effect."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message, error_code="INVALID_REQUEST", context=context)


class ProviderError(StudyProcessorError):
    """The AI provider failed terminally (non-retryable, or retries exhausted)."""

    def __init__(
        self,
        message: str,
        provider_status: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        self.provider_status = provider_status
        ctx = {"provider_status": provider_status}
        if context:
            ctx.update(context)
        super().__init__(message, error_code="PROVIDER_ERROR", context=ctx)


class ExtractionError(StudyProcessorError):
    """Turning an upload into text failed (download, file type, or provider)."""

    def __init__(
        self,
        message: str,
        error_code: str = "EXTRACTION_FAILED",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, error_code=error_code, context=context)


class UnsupportedFileType(ExtractionError):
    """The stored file's extension is neither a PDF nor a known image type."""

    def __init__(self, extension: str, context: Optional[Dict[str, Any]] = None):
        self.extension = extension
        ctx = {"extension": extension}
        if context:
            ctx.update(context)
        super().__init__(
            f"Unsupported file type: {extension or 'unknown'}",
            error_code="UNSUPPORTED_FILE_TYPE",
            context=ctx,
        )


class PersistenceError(StudyProcessorError):
    """A database read/write failed. Earlier side effects are not rolled back."""

    def __init__(
        self,
        message: str,
        error_code: str = "PERSISTENCE_FAILED",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, error_code=error_code, context=context)


class MaterialNotFound(PersistenceError):
    def __init__(self, material_id: str):
        self.material_id = material_id
        super().__init__(
            f"Study material not found: {material_id}",
            error_code="MATERIAL_NOT_FOUND",
            context={"material_id": material_id},
        )
