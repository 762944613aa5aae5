"""Job record and its state machine."""

import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field

from api_doc_scraper.actions.generator import ActionDefinition
from api_doc_scraper.errors import JobError, JobErrorDetails
from api_doc_scraper.models import ApiDocument

DEFAULT_ESTIMATED_DURATION_MS = 60_000
SPECIFIC_URLS_ESTIMATED_DURATION_MS = 30_000


class JobStatus(str, Enum):
    PENDING = "PENDING"
    CRAWLING = "CRAWLING"
    PARSING = "PARSING"
    GENERATING = "GENERATING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


IN_PROGRESS_STATUSES = frozenset({
    JobStatus.PENDING,
    JobStatus.CRAWLING,
    JobStatus.PARSING,
    JobStatus.GENERATING,
})

TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED})

# Forward-only pipeline order; FAILED is reachable from any active state
_NEXT_STATUSES: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.CRAWLING, JobStatus.FAILED}),
    JobStatus.CRAWLING: frozenset({JobStatus.PARSING, JobStatus.FAILED}),
    JobStatus.PARSING: frozenset({JobStatus.GENERATING, JobStatus.FAILED}),
    JobStatus.GENERATING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
}

_STEP_DESCRIPTIONS = {
    JobStatus.PENDING: "Waiting to start...",
    JobStatus.CRAWLING: "Crawling documentation pages...",
    JobStatus.PARSING: "Extracting API information...",
    JobStatus.GENERATING: "Generating integration schema...",
    JobStatus.COMPLETED: "Complete",
    JobStatus.FAILED: "Failed",
}


def _now() -> datetime:
    return datetime.now(timezone.utc)


class Job(BaseModel):
    """A scrape job.

    ``result`` is set exactly when the job is COMPLETED and ``error``
    exactly when it is FAILED. Progress never decreases while the job is
    active; a re-analysis starts a new pass from PARSING.
    """

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    tenant_id: str
    documentation_url: str
    specific_urls: list[str] = Field(default_factory=list)
    wishlist: list[str] = Field(default_factory=list)
    status: JobStatus = JobStatus.PENDING
    progress: int = Field(default=0, ge=0, le=100)
    result: ApiDocument | None = None
    actions: list[ActionDefinition] = Field(default_factory=list)
    error: JobErrorDetails | None = None
    cached_content_key: str | None = None
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
    completed_at: datetime | None = None

    @property
    def in_progress(self) -> bool:
        return self.status in IN_PROGRESS_STATUSES

    @property
    def current_step(self) -> str:
        return _STEP_DESCRIPTIONS.get(self.status, "Processing...")

    @property
    def can_retry(self) -> bool:
        return self.status == JobStatus.FAILED and self.error is not None and self.error.retryable

    def advance(self, status: JobStatus, progress: int | None = None) -> None:
        """Move to the next pipeline stage."""
        self._move_to(status)
        if progress is not None:
            self.set_progress(progress)
        self.check_invariants()

    def _move_to(self, status: JobStatus) -> None:
        if status not in _NEXT_STATUSES[self.status]:
            raise JobError(
                "INVALID_STATUS",
                f"Cannot move job from {self.status.value} to {status.value}",
            )
        self.status = status
        self._touch()

    def set_progress(self, progress: int) -> None:
        if not 0 <= progress <= 100 or progress < self.progress:
            raise JobError(
                "INVALID_PROGRESS",
                f"Progress must be 0-100 and not below {self.progress}, got {progress}",
            )
        self.progress = progress
        self._touch()

    def complete(
        self,
        result: ApiDocument,
        actions: list[ActionDefinition] | None = None,
        cached_content_key: str | None = None,
    ) -> None:
        self._move_to(JobStatus.COMPLETED)
        self.result = result
        self.actions = actions or []
        self.error = None
        self.progress = 100
        if cached_content_key:
            self.cached_content_key = cached_content_key
        self.completed_at = self.updated_at
        self.check_invariants()

    def fail(self, error: JobErrorDetails) -> None:
        self._move_to(JobStatus.FAILED)
        self.error = error
        self.result = None
        self.actions = []
        self.completed_at = self.updated_at
        self.check_invariants()

    def begin_reanalysis(self, progress: int) -> None:
        """Reopen a finished job for a new parsing pass over its cached corpus."""
        if self.status not in TERMINAL_STATUSES:
            raise JobError(
                "INVALID_STATUS",
                f"Cannot re-analyze job with status {self.status.value}. "
                "Job must be COMPLETED or FAILED.",
            )
        self.status = JobStatus.PARSING
        self.progress = progress
        self.result = None
        self.actions = []
        self.error = None
        self.completed_at = None
        self._touch()

    def check_invariants(self) -> None:
        if (self.result is not None) != (self.status == JobStatus.COMPLETED):
            raise JobError("INVALID_STATE", "A job has a result exactly when it is COMPLETED")
        if (self.error is not None) != (self.status == JobStatus.FAILED):
            raise JobError("INVALID_STATE", "A job has an error exactly when it is FAILED")

    def _touch(self) -> None:
        self.updated_at = _now()


class CreateJobResponse(BaseModel):
    job_id: str
    status: JobStatus
    estimated_duration_ms: int


class ReanalyzeCheck(BaseModel):
    can_reanalyze: bool
    reason: str
    has_cached_content: bool
