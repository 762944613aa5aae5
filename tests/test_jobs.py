import asyncio
import gzip
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from api_doc_scraper.config import AppConfig, CrawlMode
from api_doc_scraper.crawl.prioritizer import TRIAGE_SYSTEM_PROMPT
from api_doc_scraper.discovery.site_mapper import SiteMap
from api_doc_scraper.errors import (
    ExtractionError,
    JobCancelledError,
    JobError,
    JobErrorDetails,
    ScrapeError,
    ScrapeErrorCode,
    StorageError,
    StorageErrorCode,
)
from api_doc_scraper.fetcher.base import PageContent
from api_doc_scraper.jobs import (
    FileCorpusCache,
    InMemoryCorpusCache,
    InMemoryJobStore,
    Job,
    JobOrchestrator,
    JobQueue,
    JobStatus,
    finalize_document,
    prioritize_endpoints,
)
from api_doc_scraper.jobs import storage
from api_doc_scraper.models import ApiDocument, ApiEndpoint, HttpMethod
from api_doc_scraper.parsers import prompts

FIXTURES = Path(__file__).parent / "fixtures"
SPEC_URL = "https://petstore.example.com/openapi.yaml"
TENANT = "tenant-1"


class FakeFetcher:
    def __init__(self, pages: dict[str, str]):
        self.pages = pages
        self.scrape = AsyncMock(side_effect=self._scrape)
        self.on_scrape = None

    async def _scrape(self, url, **kwargs):
        if self.on_scrape is not None:
            await self.on_scrape(url)
        if url not in self.pages:
            raise ScrapeError(url, ScrapeErrorCode.NOT_FOUND, f"Page not found: {url}")
        return PageContent(url=url, final_url=url, content=self.pages[url])

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        return None


def _config():
    config = AppConfig()
    config.rate_limit.delay_seconds = 0.0
    config.crawl.mode = CrawlMode.SINGLE
    return config


def _orchestrator(pages=None, **kwargs):
    if pages is None:
        pages = {SPEC_URL: (FIXTURES / "petstore.yaml").read_text()}
    fetcher = FakeFetcher(pages)
    events = []
    orchestrator = JobOrchestrator(
        store=InMemoryJobStore(),
        corpus_cache=InMemoryCorpusCache(),
        fetcher_factory=lambda: fetcher,
        config=_config(),
        on_progress=lambda job_id, stage, message: events.append((stage, message)),
        **kwargs,
    )
    return orchestrator, fetcher, events


async def _run(orchestrator, url=SPEC_URL, **kwargs):
    created = await orchestrator.create_job(TENANT, documentation_url=url, **kwargs)
    return await orchestrator.process_job(created.job_id)


def _advanced_job(*statuses):
    job = Job(tenant_id=TENANT, documentation_url=SPEC_URL)
    progress = {JobStatus.CRAWLING: 10, JobStatus.PARSING: 30, JobStatus.GENERATING: 80}
    for status in statuses:
        job.advance(status, progress.get(status))
    return job


class RecordingJobStore(InMemoryJobStore):
    """Keeps the (status, progress) of every update."""

    def __init__(self):
        super().__init__()
        self.history = []

    async def update(self, job):
        self.history.append((job.status, job.progress))
        return await super().update(job)


DOCS_ROOT = "https://docs.widgets.test/docs"
AUTH_PAGE = f"{DOCS_ROOT}/authentication"
WIDGETS_PAGE = f"{DOCS_ROOT}/reference/widgets"
DOCS_PAGES = {
    DOCS_ROOT: "Welcome to the Widgets API. Read the guides below to get started.",
    AUTH_PAGE: "Send a bearer token in the Authorization header with every request.",
    WIDGETS_PAGE: (
        "GET /widgets lists widgets.\n\nPOST /widgets creates a widget.\n\n"
        "GET /legacy/widgets is deprecated."
    ),
}


def _docs_llm():
    """Fake model answering page triage and each extraction step by system prompt."""
    answers = {
        TRIAGE_SYSTEM_PROMPT: {"selectedUrls": [WIDGETS_PAGE, AUTH_PAGE, DOCS_ROOT], "authUrls": [AUTH_PAGE]},
        prompts.INFO_SYSTEM_PROMPT: {"name": "Widgets API", "baseUrl": "https://api.widgets.test/v1"},
        prompts.ENDPOINTS_SYSTEM_PROMPT: {"endpoints": [
            {"name": "List widgets", "method": "GET", "path": "/widgets", "description": "Lists widgets"},
            {"name": "Create widget", "method": "POST", "path": "/widgets", "description": "Creates a widget"},
            {"name": "List legacy widgets", "method": "GET", "path": "/legacy/widgets", "deprecated": True},
        ]},
        prompts.AUTH_SYSTEM_PROMPT: {"authMethods": [
            {"type": "bearer", "location": "header", "paramName": "Authorization"},
        ]},
        prompts.RATE_LIMITS_SYSTEM_PROMPT: {"default": {"requests": 100, "window": 60}, "perEndpoint": []},
    }

    async def generate_json(system, user, temperature=None, response_schema=None):
        return answers[system]

    llm = MagicMock()
    llm.generate_json = AsyncMock(side_effect=generate_json)
    return llm


class TestJobModel:
    def test_forward_transitions(self):
        job = _advanced_job(JobStatus.CRAWLING, JobStatus.PARSING)
        assert job.status == JobStatus.PARSING
        assert job.progress == 30
        assert job.in_progress
        assert job.current_step == "Extracting API information..."

    def test_skipping_a_stage_is_rejected(self):
        job = Job(tenant_id=TENANT, documentation_url=SPEC_URL)
        with pytest.raises(JobError) as exc:
            job.advance(JobStatus.PARSING)
        assert exc.value.code == "INVALID_STATUS"

    def test_progress_never_decreases(self):
        job = _advanced_job(JobStatus.CRAWLING)
        job.set_progress(20)
        with pytest.raises(JobError) as exc:
            job.set_progress(15)
        assert exc.value.code == "INVALID_PROGRESS"
        with pytest.raises(JobError):
            job.set_progress(101)

    def test_complete(self):
        job = _advanced_job(JobStatus.CRAWLING, JobStatus.PARSING, JobStatus.GENERATING)
        job.complete(ApiDocument(name="A", base_url="https://a.test"), cached_content_key="jobs/x/content.gz")
        assert job.status == JobStatus.COMPLETED
        assert job.progress == 100
        assert job.completed_at is not None
        assert job.cached_content_key == "jobs/x/content.gz"
        assert not job.in_progress

    def test_complete_requires_generating(self):
        job = _advanced_job(JobStatus.CRAWLING)
        with pytest.raises(JobError):
            job.complete(ApiDocument(name="A", base_url="https://a.test"))

    def test_advance_rejects_result_before_completion(self):
        job = _advanced_job(JobStatus.CRAWLING)
        job.result = ApiDocument(name="A", base_url="https://a.test")
        with pytest.raises(JobError) as exc:
            job.advance(JobStatus.PARSING, 30)
        assert exc.value.code == "INVALID_STATE"

    def test_fail_clears_result(self):
        job = _advanced_job(JobStatus.CRAWLING)
        job.fail(JobErrorDetails(code="SCRAPE_TIMEOUT", message="slow", retryable=True))
        assert job.status == JobStatus.FAILED
        assert job.result is None
        assert job.can_retry
        with pytest.raises(JobError):
            job.fail(JobErrorDetails(code="X", message="again"))

    def test_begin_reanalysis(self):
        job = _advanced_job(JobStatus.CRAWLING)
        job.fail(JobErrorDetails(code="X", message="boom"))
        job.begin_reanalysis(30)
        assert job.status == JobStatus.PARSING
        assert job.error is None
        assert job.completed_at is None

    def test_begin_reanalysis_requires_terminal(self):
        with pytest.raises(JobError) as exc:
            Job(tenant_id=TENANT, documentation_url=SPEC_URL).begin_reanalysis(30)
        assert exc.value.code == "INVALID_STATUS"


class TestInMemoryJobStore:
    def test_tenant_isolation_and_copies(self):
        async def run():
            store = InMemoryJobStore()
            job = await store.create(Job(tenant_id=TENANT, documentation_url=SPEC_URL))
            assert await store.get_for_tenant(job.id, "other") is None

            loaded = await store.get(job.id)
            loaded.progress = 50
            assert (await store.get(job.id)).progress == 0

            assert await store.delete(job.id, "other") is False
            assert await store.delete(job.id, TENANT) is True
            assert await store.get(job.id) is None

        asyncio.run(run())

    def test_list_and_find(self):
        async def run():
            store = InMemoryJobStore()
            pending = await store.create(Job(tenant_id=TENANT, documentation_url=SPEC_URL))
            done = _advanced_job(JobStatus.CRAWLING, JobStatus.PARSING, JobStatus.GENERATING)
            done.complete(ApiDocument(name="A", base_url="https://a.test"))
            await store.create(done)

            assert len(await store.list_by_tenant(TENANT)) == 2
            completed = await store.list_by_tenant(TENANT, JobStatus.COMPLETED)
            assert [j.id for j in completed] == [done.id]
            assert (await store.find_completed_by_url(TENANT, SPEC_URL)).id == done.id
            assert [j.id for j in await store.list_in_progress()] == [pending.id]

        asyncio.run(run())


class TestCorpusCache:
    def test_file_cache_round_trip(self, tmp_path):
        async def run():
            cache = FileCorpusCache(tmp_path)
            key = await cache.store("job1", "# Docs\n\nGET /users", {"page_count": "1"})
            assert key == "jobs/job1/content.gz"
            assert gzip.decompress((tmp_path / key).read_bytes()) == b"# Docs\n\nGET /users"
            assert (tmp_path / "jobs" / "job1" / "metadata.json").is_file()
            assert await cache.retrieve(key) == "# Docs\n\nGET /users"
            assert await cache.retrieve_by_job_id("job1") == "# Docs\n\nGET /users"
            assert await cache.delete("job1") is True
            assert await cache.retrieve_by_job_id("job1") is None
            assert await cache.delete("job1") is False

        asyncio.run(run())

    def test_missing_key(self, tmp_path):
        with pytest.raises(StorageError) as exc:
            asyncio.run(FileCorpusCache(tmp_path).retrieve("jobs/none/content.gz"))
        assert exc.value.code == StorageErrorCode.NOT_FOUND

    def test_corrupt_content(self, tmp_path):
        path = tmp_path / "jobs" / "bad" / "content.gz"
        path.parent.mkdir(parents=True)
        path.write_bytes(b"not gzip")
        cache = FileCorpusCache(tmp_path)
        with pytest.raises(StorageError) as exc:
            asyncio.run(cache.retrieve("jobs/bad/content.gz"))
        assert exc.value.code == StorageErrorCode.DECOMPRESSION_FAILED
        assert asyncio.run(cache.retrieve_by_job_id("bad")) is None

    def test_size_limit(self, monkeypatch):
        monkeypatch.setattr(storage, "MAX_CONTENT_SIZE", 10)
        with pytest.raises(StorageError) as exc:
            asyncio.run(InMemoryCorpusCache().store("job1", "x" * 11))
        assert exc.value.code == StorageErrorCode.CONTENT_TOO_LARGE
        assert exc.value.details["size"] == 11

    def test_memory_cache(self):
        async def run():
            cache = InMemoryCorpusCache()
            key = await cache.store("job1", "content", {"source_url": SPEC_URL})
            assert await cache.retrieve(key) == "content"
            assert cache.metadata[key] == {"source_url": SPEC_URL}
            assert await cache.delete("job1") is True
            assert await cache.retrieve_by_job_id("job1") is None

        asyncio.run(run())


class TestJobQueue:
    def test_failures_do_not_stop_workers(self):
        handled = []

        async def handler(job_id):
            if job_id == "bad":
                raise RuntimeError("boom")
            handled.append(job_id)

        async def run():
            async with JobQueue(handler, workers=1) as queue:
                for job_id in ("a", "bad", "b"):
                    queue.enqueue(job_id)
                await queue.join()
            assert not queue.running

        asyncio.run(run())
        assert handled == ["a", "b"]


class TestHelpers:
    def _doc(self):
        return ApiDocument(
            name="",
            base_url="",
            endpoints=[
                ApiEndpoint(name="Archive", slug="archive", method=HttpMethod.POST, path="/archive"),
                ApiEndpoint(name="List invoices", slug="list-invoices", method=HttpMethod.GET, path="/invoices"),
                ApiEndpoint(name="Create invoice", slug="create-invoice", method=HttpMethod.POST,
                            path="/invoices", description="Create and send an invoice"),
            ],
        )

    def test_prioritize_endpoints(self):
        doc = prioritize_endpoints(self._doc(), ["invoice", "send"])
        assert [e.slug for e in doc.endpoints] == ["create-invoice", "list-invoices", "archive"]

    def test_prioritize_without_wishlist_keeps_order(self):
        doc = self._doc()
        assert prioritize_endpoints(doc, []) is doc

    def test_finalize_document(self):
        doc = finalize_document(self._doc(), ["https://a.test/docs"])
        assert doc.name == "Unknown API"
        assert doc.base_url == "https://api.example.com"
        assert doc.metadata.source_urls == ["https://a.test/docs"]


class TestJobOrchestrator:
    def test_spec_job_completes(self):
        orchestrator, fetcher, events = _orchestrator()

        async def run():
            job = await _run(orchestrator)
            cached = await orchestrator.corpus_cache.retrieve_by_job_id(job.id)
            return job, cached

        job, cached = asyncio.run(run())
        assert job.status == JobStatus.COMPLETED
        assert job.progress == 100
        assert job.error is None
        assert len(job.result.endpoints) == 4
        assert len(job.actions) == 3
        assert job.result.metadata.source_urls == [SPEC_URL]
        assert job.result.metadata.detected_template.template_id == "rest-crud"
        assert job.cached_content_key == f"jobs/{job.id}/content.gz"
        assert cached.startswith("openapi: 3.0.3")
        fetcher.scrape.assert_awaited_once()

        stages = [stage for stage, _ in events]
        assert stages[0] == "CRAWLING"
        assert stages.index("PARSING") < stages.index("GENERATING") < stages.index("COMPLETED")

    def test_completed_job_is_reused(self):
        orchestrator, _, _ = _orchestrator()

        async def run():
            first = await _run(orchestrator)
            again = await orchestrator.create_job(TENANT, documentation_url=SPEC_URL)
            forced = await orchestrator.create_job(TENANT, documentation_url=SPEC_URL, force=True)
            other_tenant = await orchestrator.create_job("tenant-2", documentation_url=SPEC_URL)
            return first, again, forced, other_tenant

        first, again, forced, other_tenant = asyncio.run(run())
        assert again.job_id == first.id
        assert again.status == JobStatus.COMPLETED
        assert again.estimated_duration_ms == 0
        assert forced.job_id != first.id
        assert forced.status == JobStatus.PENDING
        assert forced.estimated_duration_ms == 60_000
        assert other_tenant.job_id != first.id

    def test_small_completed_job_is_not_reused(self):
        orchestrator, _, _ = _orchestrator()
        orchestrator.config.job.min_endpoints_for_cache = 10

        async def run():
            first = await _run(orchestrator)
            again = await orchestrator.create_job(TENANT, documentation_url=SPEC_URL)
            return first, again

        first, again = asyncio.run(run())
        assert len(first.result.endpoints) == 4
        assert again.job_id != first.id
        assert again.status == JobStatus.PENDING

    def test_documentation_site_job_completes(self):
        site_mapper = MagicMock()
        site_mapper.map_site = AsyncMock(return_value=SiteMap(urls=[WIDGETS_PAGE, AUTH_PAGE]))
        llm = _docs_llm()
        orchestrator, fetcher, events = _orchestrator(DOCS_PAGES, llm=llm, site_mapper=site_mapper)
        orchestrator.config.crawl.mode = CrawlMode.INTELLIGENT
        orchestrator.store = RecordingJobStore()

        async def run():
            job = await _run(orchestrator, url=DOCS_ROOT)
            cached = await orchestrator.corpus_cache.retrieve_by_job_id(job.id)
            return job, cached

        job, cached = asyncio.run(run())
        assert job.status == JobStatus.COMPLETED
        site_mapper.map_site.assert_awaited_once()
        assert llm.generate_json.await_args_list[0].args[0] == TRIAGE_SYSTEM_PROMPT
        assert fetcher.scrape.await_count == 3

        statuses = [status for status, _ in orchestrator.store.history]
        stages = [s for i, s in enumerate(statuses) if i == 0 or s != statuses[i - 1]]
        assert stages == [JobStatus.CRAWLING, JobStatus.PARSING, JobStatus.GENERATING, JobStatus.COMPLETED]
        progress = [p for _, p in orchestrator.store.history]
        assert progress == sorted(progress)
        assert progress[-1] == 100
        assert [stage for stage, _ in events][0] == "CRAWLING"

        # The auth page ranks below the endpoint page yet still leads the corpus
        assert cached.index("# Authentication") < cached.index("# API Endpoints")
        assert cached.index("bearer token") < cached.index("GET /widgets")

        assert job.result.name == "Widgets API"
        assert len(job.result.endpoints) == 3
        assert job.result.auth_methods
        live = [e for e in job.result.endpoints if not e.deprecated]
        assert len(live) == 2
        assert len(job.actions) == len(live)
        assert sorted(job.result.metadata.source_urls) == sorted(DOCS_PAGES)

    def test_invalid_input(self):
        orchestrator, _, _ = _orchestrator()
        with pytest.raises(JobError) as exc:
            asyncio.run(orchestrator.create_job(TENANT))
        assert exc.value.code == "INVALID_INPUT"
        with pytest.raises(JobError) as exc:
            asyncio.run(orchestrator.create_job(TENANT, documentation_url="ftp://files.test/spec"))
        assert exc.value.code == "INVALID_INPUT"

    def test_get_job_checks_tenant(self):
        orchestrator, _, _ = _orchestrator()

        async def run():
            created = await orchestrator.create_job(TENANT, documentation_url=SPEC_URL)
            await orchestrator.get_job("tenant-2", created.job_id)

        with pytest.raises(JobError) as exc:
            asyncio.run(run())
        assert exc.value.code == "JOB_NOT_FOUND"
        assert exc.value.status_code == 404

    def test_fetch_failure_is_recorded(self):
        orchestrator, _, events = _orchestrator(pages={})

        async def run():
            created = await orchestrator.create_job(TENANT, documentation_url=SPEC_URL)
            with pytest.raises(ScrapeError):
                await orchestrator.process_job(created.job_id)
            return await orchestrator.get_job(TENANT, created.job_id)

        job = asyncio.run(run())
        assert job.status == JobStatus.FAILED
        assert job.error.code == "SCRAPE_NOT_FOUND"
        assert job.error.details == {"url": SPEC_URL}
        assert events[-1][0] == "FAILED"

    def test_documentation_without_llm_fails_after_caching(self):
        url = "https://docs.test/api"
        orchestrator, _, _ = _orchestrator(pages={url: "# Widgets API\n\nGET /widgets lists widgets."})

        async def run():
            created = await orchestrator.create_job(TENANT, documentation_url=url)
            with pytest.raises(ExtractionError):
                await orchestrator.process_job(created.job_id)
            job = await orchestrator.get_job(TENANT, created.job_id)
            return job, await orchestrator.can_reanalyze(job)

        job, check = asyncio.run(run())
        assert job.error.code == "PARSE_AI_ERROR"
        assert check.can_reanalyze is True
        assert check.reason == "Job failed - re-analysis may recover results"

    def test_specific_urls(self):
        page_a = "https://docs.test/a"
        page_b = "https://docs.test/b"
        orchestrator, fetcher, _ = _orchestrator(pages={page_a: "# Widgets\n\nGET /widgets"})

        async def run():
            created = await orchestrator.create_job(TENANT, specific_urls=[page_a, page_b, " "])
            with pytest.raises(ExtractionError):
                await orchestrator.process_job(created.job_id)
            job = await orchestrator.get_job(TENANT, created.job_id)
            return created, job, await orchestrator.corpus_cache.retrieve_by_job_id(job.id)

        created, job, cached = asyncio.run(run())
        assert created.estimated_duration_ms == 30_000
        assert job.documentation_url == page_a
        assert job.specific_urls == [page_a, page_b]
        assert f"--- SOURCE: {page_a} ---" in cached
        assert page_b not in cached
        assert fetcher.scrape.await_count == 2

    def test_specific_urls_all_failing(self):
        orchestrator, _, _ = _orchestrator(pages={})

        async def run():
            created = await orchestrator.create_job(TENANT, specific_urls=["https://docs.test/a"])
            with pytest.raises(ScrapeError):
                await orchestrator.process_job(created.job_id)
            return await orchestrator.get_job(TENANT, created.job_id)

        assert asyncio.run(run()).error.code == "SCRAPE_SCRAPE_FAILED"

    def test_cancel_pending_job(self):
        orchestrator, fetcher, _ = _orchestrator()

        async def run():
            created = await orchestrator.create_job(TENANT, documentation_url=SPEC_URL)
            cancelled = await orchestrator.cancel_job(TENANT, created.job_id)
            processed = await orchestrator.process_job(created.job_id)
            with pytest.raises(JobError) as exc:
                await orchestrator.cancel_job(TENANT, created.job_id)
            return cancelled, processed, exc.value

        cancelled, processed, error = asyncio.run(run())
        assert cancelled.status == JobStatus.FAILED
        assert cancelled.error.code == "CANCELLED"
        assert cancelled.error.retryable is True
        assert processed.status == JobStatus.FAILED
        assert error.code == "INVALID_STATE"
        fetcher.scrape.assert_not_awaited()

    def test_cancel_running_job(self):
        orchestrator, fetcher, _ = _orchestrator()
        job_ids = []

        async def cancel_during_fetch(url):
            await orchestrator.cancel_job(TENANT, job_ids[0])

        fetcher.on_scrape = cancel_during_fetch

        async def run():
            created = await orchestrator.create_job(TENANT, documentation_url=SPEC_URL)
            job_ids.append(created.job_id)
            with pytest.raises(JobCancelledError):
                await orchestrator.process_job(created.job_id)
            return await orchestrator.get_job(TENANT, created.job_id)

        job = asyncio.run(run())
        assert job.status == JobStatus.FAILED
        assert job.error.code == "CANCELLED"
        assert job.result is None

    def test_reanalyze(self):
        orchestrator, fetcher, _ = _orchestrator()

        async def run():
            job = await _run(orchestrator)
            check = await orchestrator.can_reanalyze(job)
            reanalyzed = await orchestrator.reanalyze_job(TENANT, job.id)
            return check, reanalyzed

        check, job = asyncio.run(run())
        assert check.can_reanalyze is True
        assert check.has_cached_content is True
        assert check.reason == "4 endpoints found - re-analysis available"
        assert job.status == JobStatus.COMPLETED
        assert job.result.metadata.previous_endpoint_count == 4
        assert job.result.metadata.reanalyzed_at is not None
        assert len(job.result.endpoints) == 4
        fetcher.scrape.assert_awaited_once()

    def test_reanalyze_without_cached_content(self):
        orchestrator, _, _ = _orchestrator()

        async def run():
            job = await _run(orchestrator)
            await orchestrator.corpus_cache.delete(job.id)
            check = await orchestrator.can_reanalyze(job)
            with pytest.raises(JobError) as exc:
                await orchestrator.reanalyze_job(TENANT, job.id)
            return check, exc.value

        check, error = asyncio.run(run())
        assert check.can_reanalyze is False
        assert check.reason == "No cached content available. Re-scrape required."
        assert error.code == "NO_CACHED_CONTENT"

    def test_reanalyze_requires_finished_job(self):
        orchestrator, _, _ = _orchestrator()

        async def run():
            created = await orchestrator.create_job(TENANT, documentation_url=SPEC_URL)
            job = await orchestrator.get_job(TENANT, created.job_id)
            check = await orchestrator.can_reanalyze(job)
            with pytest.raises(JobError) as exc:
                await orchestrator.reanalyze_job(TENANT, created.job_id)
            return check, exc.value

        check, error = asyncio.run(run())
        assert check.reason == "Job is still pending"
        assert error.code == "INVALID_STATUS"

    def test_background_queue(self):
        orchestrator, _, _ = _orchestrator()

        async def run():
            created = await orchestrator.create_job(TENANT, documentation_url=SPEC_URL)
            orchestrator.start_job(created.job_id)
            await orchestrator.queue.join()
            await orchestrator.queue.stop()
            return await orchestrator.list_jobs(TENANT, JobStatus.COMPLETED, limit=500)

        jobs = asyncio.run(run())
        assert len(jobs) == 1
        assert jobs[0].status == JobStatus.COMPLETED
