"""Application error taxonomy.

Every error raised on purpose by the services derives from ``AppError`` and
carries an HTTP status, a stable machine-readable ``code`` and optional
``extra`` context (existing slug, wait hint) that the API layer copies into
the response body. ``devhance.main`` registers the single handler that turns
these into JSON responses.
"""
from typing import Any, Dict, Optional


class AppError(Exception):
    status_code: int = 500
    code: str = "INTERNAL_ERROR"
    # Opaque errors never expose their message to end users in production
    expose_message: bool = True

    def __init__(self, message: str, extra: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.extra: Dict[str, Any] = extra or {}

    def to_dict(self, include_message: bool = True) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "error": self.message if include_message else "An unexpected error occurred",
            "code": self.code,
        }
        body.update(self.extra)
        return body


class ValidationError(AppError):
    status_code = 400
    code = "VALIDATION_ERROR"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message, {"field": field} if field else None)
        self.field = field


# Raised when a repository URL does not have the expected host/path shape
InvalidInputError = ValidationError


class AuthError(AppError):
    status_code = 401
    code = "AUTH_ERROR"

    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)


class NotFoundError(AppError):
    status_code = 404
    code = "NOT_FOUND"

    def __init__(self, resource: str = "Resource"):
        super().__init__(f"{resource} not found")
        self.resource = resource


class AnalysisInProgressError(AppError):
    status_code = 409
    code = "ANALYSIS_IN_PROGRESS"

    def __init__(self, repo_url: str, retry_after_seconds: int):
        super().__init__(
            "Another analysis is already running for this account",
            {"repo_url": repo_url, "retry_after_seconds": retry_after_seconds},
        )
        self.repo_url = repo_url
        self.retry_after_seconds = retry_after_seconds


class DuplicateRepoError(AppError):
    status_code = 409
    code = "DUPLICATE_REPO"

    def __init__(self, slug: str, case_study_id: Any):
        super().__init__(
            "A case study already exists for this repository",
            {"slug": slug, "case_study_id": str(case_study_id)},
        )
        self.slug = slug
        self.case_study_id = case_study_id


class DuplicateEntryError(AppError):
    """Storage uniqueness violation. Retryable with a fresh key (e.g. a new slug)."""

    status_code = 409
    code = "DUPLICATE_ENTRY"

    def __init__(self, message: str = "A record with this value already exists", field: Optional[str] = None):
        super().__init__(message, {"field": field} if field else None)
        self.field = field


class InvalidSignatureError(AppError):
    status_code = 401
    code = "INVALID_SIGNATURE"

    def __init__(self, message: str = "Invalid signature"):
        super().__init__(message)


class ConfigurationError(AppError):
    status_code = 500
    code = "CONFIGURATION_ERROR"
    expose_message = False


class ExternalServiceError(AppError):
    status_code = 502
    code = "EXTERNAL_SERVICE_ERROR"
    expose_message = False

    def __init__(self, service: str, message: Optional[str] = None):
        super().__init__(message or f"{service} service error")
        self.service = service


class GenerationServiceError(ExternalServiceError):
    code = "GENERATION_SERVICE_ERROR"

    def __init__(self, message: str):
        super().__init__("generation", message)


class GenerationParseError(ExternalServiceError):
    code = "GENERATION_PARSE_ERROR"

    def __init__(self, message: str, raw: Optional[str] = None):
        super().__init__("generation", message)
        # Kept for logging only, never serialized into a response
        self.raw = raw
