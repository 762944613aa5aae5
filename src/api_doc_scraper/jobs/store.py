"""Job persistence."""

from typing import Protocol

from api_doc_scraper.jobs.models import IN_PROGRESS_STATUSES, Job, JobStatus


class JobStore(Protocol):
    async def create(self, job: Job) -> Job: ...

    async def get(self, job_id: str) -> Job | None: ...

    async def get_for_tenant(self, job_id: str, tenant_id: str) -> Job | None: ...

    async def update(self, job: Job) -> Job: ...

    async def list_by_tenant(
        self, tenant_id: str, status: JobStatus | None = None, limit: int = 20
    ) -> list[Job]: ...

    async def find_completed_by_url(self, tenant_id: str, url: str) -> Job | None: ...

    async def list_in_progress(self) -> list[Job]: ...

    async def delete(self, job_id: str, tenant_id: str) -> bool: ...


class InMemoryJobStore:
    """Process-local store. Jobs are copied in and out so callers never share state."""

    def __init__(self):
        self._jobs: dict[str, Job] = {}

    async def create(self, job: Job) -> Job:
        self._jobs[job.id] = job.model_copy(deep=True)
        return job

    async def get(self, job_id: str) -> Job | None:
        job = self._jobs.get(job_id)
        return job.model_copy(deep=True) if job else None

    async def get_for_tenant(self, job_id: str, tenant_id: str) -> Job | None:
        job = self._jobs.get(job_id)
        if job is None or job.tenant_id != tenant_id:
            return None
        return job.model_copy(deep=True)

    async def update(self, job: Job) -> Job:
        if job.id not in self._jobs:
            raise KeyError(job.id)
        self._jobs[job.id] = job.model_copy(deep=True)
        return job

    async def list_by_tenant(
        self, tenant_id: str, status: JobStatus | None = None, limit: int = 20
    ) -> list[Job]:
        jobs = [
            j for j in self._jobs.values()
            if j.tenant_id == tenant_id and (status is None or j.status == status)
        ]
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return [j.model_copy(deep=True) for j in jobs[:limit]]

    async def find_completed_by_url(self, tenant_id: str, url: str) -> Job | None:
        matches = [
            j for j in self._jobs.values()
            if j.tenant_id == tenant_id
            and j.documentation_url == url
            and j.status == JobStatus.COMPLETED
        ]
        if not matches:
            return None
        latest = max(matches, key=lambda j: j.created_at)
        return latest.model_copy(deep=True)

    async def list_in_progress(self) -> list[Job]:
        return [j.model_copy(deep=True) for j in self._jobs.values() if j.status in IN_PROGRESS_STATUSES]

    async def delete(self, job_id: str, tenant_id: str) -> bool:
        job = self._jobs.get(job_id)
        if job is None or job.tenant_id != tenant_id:
            return False
        del self._jobs[job_id]
        return True
