"""Exception types raised by each pipeline stage."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ScrapeErrorCode(str, Enum):
    """Failure classes for page fetching and site mapping."""

    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    RATE_LIMITED = "RATE_LIMITED"
    ACCESS_DENIED = "ACCESS_DENIED"
    NOT_FOUND = "NOT_FOUND"
    SCRAPE_FAILED = "SCRAPE_FAILED"
    INVALID_URL = "INVALID_URL"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


_RETRYABLE_SCRAPE_CODES = frozenset({
    ScrapeErrorCode.NETWORK_ERROR,
    ScrapeErrorCode.TIMEOUT,
    ScrapeErrorCode.RATE_LIMITED,
})


class ScrapeError(Exception):
    """A page could not be fetched or a site could not be mapped."""

    def __init__(
        self,
        url: str,
        code: ScrapeErrorCode,
        message: str,
        retryable: bool | None = None,
        retry_after: float | None = None,
    ):
        super().__init__(message)
        self.url = url
        self.code = code
        self.message = message
        self.retryable = code in _RETRYABLE_SCRAPE_CODES if retryable is None else retryable
        self.retry_after = retry_after


class OpenApiErrorCode(str, Enum):
    INVALID_FORMAT = "INVALID_FORMAT"
    PARSE_ERROR = "PARSE_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNSUPPORTED_VERSION = "UNSUPPORTED_VERSION"
    CONVERSION_ERROR = "CONVERSION_ERROR"


class OpenApiParseError(Exception):
    """A machine-readable spec could not be converted."""

    retryable = False

    def __init__(self, code: OpenApiErrorCode, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


class ExtractionErrorCode(str, Enum):
    EMPTY_CONTENT = "EMPTY_CONTENT"
    AI_ERROR = "AI_ERROR"
    INVALID_RESPONSE = "INVALID_RESPONSE"
    EXTRACTION_FAILED = "EXTRACTION_FAILED"
    TIMEOUT = "TIMEOUT"


class ExtractionError(Exception):
    """AI-assisted extraction produced no usable document."""

    def __init__(self, code: ExtractionErrorCode, message: str):
        super().__init__(message)
        self.code = code
        self.message = message
        self.retryable = code == ExtractionErrorCode.TIMEOUT


class StorageErrorCode(str, Enum):
    STORAGE_UNAVAILABLE = "STORAGE_UNAVAILABLE"
    WRITE_FAILED = "WRITE_FAILED"
    READ_FAILED = "READ_FAILED"
    NOT_FOUND = "NOT_FOUND"
    CONTENT_TOO_LARGE = "CONTENT_TOO_LARGE"
    COMPRESSION_FAILED = "COMPRESSION_FAILED"
    DECOMPRESSION_FAILED = "DECOMPRESSION_FAILED"


class StorageError(Exception):
    """The corpus cache could not store or return content."""

    retryable = True

    def __init__(
        self,
        code: StorageErrorCode,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}


class JobError(Exception):
    """A job operation was rejected."""

    def __init__(self, code: str, message: str, status_code: int = 400):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code


class JobCancelledError(Exception):
    """Raised inside a running job once it has been cancelled."""

    retryable = True

    def __init__(self, job_id: str, message: str = "Job cancelled by user"):
        super().__init__(message)
        self.job_id = job_id
        self.message = message


class TemplateError(Exception):
    """A template could not be applied."""

    retryable = False

    def __init__(self, template_id: str, message: str):
        super().__init__(message)
        self.template_id = template_id
        self.message = message


class JobErrorDetails(BaseModel):
    """Normalized error record stored on a failed job."""

    code: str
    message: str
    details: dict[str, Any] = Field(default_factory=dict)
    retryable: bool = False
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def categorize_error(error: BaseException) -> JobErrorDetails:
    """Map any exception to the stable error record kept on a job."""
    if isinstance(error, ScrapeError):
        return JobErrorDetails(
            code=f"SCRAPE_{error.code.value}",
            message=error.message,
            details={"url": error.url},
            retryable=error.retryable,
        )
    if isinstance(error, ExtractionError):
        return JobErrorDetails(
            code=f"PARSE_{error.code.value}", message=error.message, retryable=error.retryable
        )
    if isinstance(error, OpenApiParseError):
        return JobErrorDetails(code=f"OPENAPI_{error.code.value}", message=error.message)
    if isinstance(error, StorageError):
        return JobErrorDetails(
            code=f"STORAGE_{error.code.value}",
            message=error.message,
            details=error.details,
            retryable=True,
        )
    if isinstance(error, JobCancelledError):
        return JobErrorDetails(code="CANCELLED", message=error.message, retryable=True)
    if isinstance(error, JobError):
        return JobErrorDetails(code=error.code, message=error.message)
    return JobErrorDetails(
        code="UNKNOWN_ERROR",
        message=str(error) or "An unexpected error occurred",
    )
