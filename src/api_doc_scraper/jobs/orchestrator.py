"""Job orchestration: crawl, parse, generate, complete.

The orchestrator is the only writer of a job's status, progress, result
and error. Each stage reloads the job record before writing it, so a
cancellation recorded by ``cancel_job`` is noticed at the next checkpoint
even when it came from another caller.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from api_doc_scraper.actions.generator import ActionDefinition, GenerationOptions, generate_actions
from api_doc_scraper.config import AppConfig
from api_doc_scraper.crawl.orchestrator import CrawlOrchestrator, CrawlProgress
from api_doc_scraper.discovery.site_mapper import SiteMapper
from api_doc_scraper.errors import (
    ExtractionError,
    ExtractionErrorCode,
    JobCancelledError,
    JobError,
    ScrapeError,
    ScrapeErrorCode,
    StorageError,
    categorize_error,
)
from api_doc_scraper.fetcher.base import BaseFetcher
from api_doc_scraper.fetcher.http_fetcher import HttpFetcher
from api_doc_scraper.jobs.models import (
    DEFAULT_ESTIMATED_DURATION_MS,
    SPECIFIC_URLS_ESTIMATED_DURATION_MS,
    TERMINAL_STATUSES,
    CreateJobResponse,
    Job,
    JobStatus,
    ReanalyzeCheck,
)
from api_doc_scraper.jobs.queue import JobQueue
from api_doc_scraper.jobs.storage import CorpusCache
from api_doc_scraper.jobs.store import JobStore
from api_doc_scraper.llm import LlmClient
from api_doc_scraper.models import ApiDocument, DetectedTemplateInfo
from api_doc_scraper.parsers.ai_extractor import AiExtractor
from api_doc_scraper.parsers.openapi import PLACEHOLDER_BASE_URL, is_structured_spec, parse_spec
from api_doc_scraper.templates.detector import detect_template
from api_doc_scraper.utils.cancellation import CancellationToken
from api_doc_scraper.utils.url_utils import validate_url

logger = logging.getLogger(__name__)

JobProgressCallback = Callable[[str, str, str], None]  # job_id, stage, message


def prioritize_endpoints(doc: ApiDocument, wishlist: list[str]) -> ApiDocument:
    """Move endpoints matching more wishlist items to the front, keeping order otherwise."""
    if not doc.endpoints or not wishlist:
        return doc
    terms = [w.lower() for w in wishlist]

    def score(endpoint) -> int:
        text = " ".join([endpoint.name, endpoint.slug, endpoint.path, endpoint.description or ""]).lower()
        return sum(1 for term in terms if term in text)

    ranked = sorted(doc.endpoints, key=lambda e: -score(e))
    matched = sum(1 for e in ranked if score(e) > 0)
    logger.info("Wishlist matched %d/%d endpoints", matched, len(ranked))
    return doc.model_copy(update={"endpoints": ranked})


def finalize_document(doc: ApiDocument, source_urls: list[str]) -> ApiDocument:
    """Fill required defaults and stamp scrape metadata."""
    metadata = doc.metadata.model_copy(update={
        "scraped_at": datetime.now(timezone.utc),
        "source_urls": list(source_urls),
    })
    return doc.model_copy(update={
        "name": doc.name or "Unknown API",
        "base_url": doc.base_url or PLACEHOLDER_BASE_URL,
        "metadata": metadata,
    })


class JobOrchestrator:
    """Creates, runs, cancels and re-analyzes scrape jobs."""

    def __init__(
        self,
        store: JobStore,
        corpus_cache: CorpusCache,
        fetcher_factory: Callable[[], BaseFetcher] | None = None,
        llm: LlmClient | None = None,
        config: AppConfig | None = None,
        site_mapper: SiteMapper | None = None,
        on_progress: JobProgressCallback | None = None,
    ):
        self.store = store
        self.corpus_cache = corpus_cache
        self.config = config or AppConfig()
        self.fetcher_factory = fetcher_factory or self._default_fetcher
        self.llm = llm
        self.site_mapper = site_mapper
        self.on_progress = on_progress
        self.extractor = AiExtractor(llm, self.config.extraction) if llm else None
        self.queue = JobQueue(self.process_job, workers=self.config.job.workers)
        self._tokens: dict[str, CancellationToken] = {}

    def _default_fetcher(self) -> BaseFetcher:
        return HttpFetcher(
            self.config.fetcher,
            max_retries=self.config.rate_limit.max_retries,
            retry_base_delay=self.config.rate_limit.retry_base_delay,
        )

    # -- creation and queries ------------------------------------------------

    async def create_job(
        self,
        tenant_id: str,
        documentation_url: str | None = None,
        specific_urls: list[str] | None = None,
        wishlist: list[str] | None = None,
        force: bool = False,
    ) -> CreateJobResponse:
        """Create a PENDING job, or return a usable completed one for the same URL."""
        specific_urls = [u.strip() for u in specific_urls or [] if u.strip()]
        primary_url = documentation_url or (specific_urls[0] if specific_urls else None)
        if not primary_url:
            raise JobError("INVALID_INPUT", "Either documentation_url or specific_urls must be provided")
        for url in [primary_url, *specific_urls]:
            try:
                validate_url(url)
            except ScrapeError as e:
                raise JobError("INVALID_INPUT", f"Invalid URL {url!r}: {e.message}") from e

        if not force and not specific_urls:
            existing = await self.store.find_completed_by_url(tenant_id, primary_url)
            if existing is not None:
                count = len(existing.result.endpoints) if existing.result else 0
                if count >= self.config.job.min_endpoints_for_cache:
                    logger.info("Cache hit: job %s already has %d endpoints", existing.id, count)
                    return CreateJobResponse(
                        job_id=existing.id, status=existing.status, estimated_duration_ms=0
                    )
                logger.info(
                    "Cached job %s has %d endpoints (min %d), creating a fresh job",
                    existing.id, count, self.config.job.min_endpoints_for_cache,
                )

        job = Job(
            tenant_id=tenant_id,
            documentation_url=primary_url,
            specific_urls=specific_urls,
            wishlist=[w.strip() for w in wishlist or [] if w.strip()],
        )
        await self.store.create(job)
        logger.info("Created job %s for %s", job.id, primary_url)
        estimate = SPECIFIC_URLS_ESTIMATED_DURATION_MS if specific_urls else DEFAULT_ESTIMATED_DURATION_MS
        return CreateJobResponse(job_id=job.id, status=job.status, estimated_duration_ms=estimate)

    async def get_job(self, tenant_id: str, job_id: str) -> Job:
        job = await self.store.get_for_tenant(job_id, tenant_id)
        if job is None:
            raise JobError("JOB_NOT_FOUND", "Scrape job not found", 404)
        return job

    async def list_jobs(
        self, tenant_id: str, status: JobStatus | None = None, limit: int = 20
    ) -> list[Job]:
        return await self.store.list_by_tenant(tenant_id, status, max(1, min(limit, 100)))

    def start_job(self, job_id: str) -> None:
        """Queue a job for background processing; must be called inside a running loop."""
        self.queue.start()
        self.queue.enqueue(job_id)

    # -- processing ----------------------------------------------------------

    async def process_job(self, job_id: str, token: CancellationToken | None = None) -> Job:
        """Run a job end to end. Failures are recorded on the job and re-raised."""
        job = await self.store.get(job_id)
        if job is None:
            raise JobError("JOB_NOT_FOUND", "Scrape job not found", 404)
        if job.status in TERMINAL_STATUSES:
            return job

        token = token or CancellationToken(job_id)
        self._tokens[job_id] = token
        try:
            return await self._run_pipeline(job, token)
        except Exception as e:
            await self._record_failure(job_id, e)
            raise
        finally:
            self._tokens.pop(job_id, None)

    async def _run_pipeline(self, job: Job, token: CancellationToken) -> Job:
        job = await self._transition(job.id, token, JobStatus.CRAWLING, 10)
        content, source_urls = await self._acquire(job, token)
        cache_key = await self._cache_corpus(job, content, source_urls)

        job = await self._transition(job.id, token, JobStatus.PARSING, 30)
        doc = await self._parse(job, content, source_urls, token)
        job = await self._set_progress(job.id, token, 70)

        job = await self._transition(job.id, token, JobStatus.GENERATING, 80)
        doc, actions = self._generate(job, doc, content, source_urls)
        job = await self._set_progress(job.id, token, 95)

        job = await self._load_active(job.id, token)
        job.complete(doc, actions, cache_key)
        await self.store.update(job)
        self._emit(job.id, "COMPLETED", f"Extracted {len(doc.endpoints)} endpoints")
        logger.info("Job %s completed with %d endpoints", job.id, len(doc.endpoints))
        return job

    async def _acquire(self, job: Job, token: CancellationToken) -> tuple[str, list[str]]:
        """Fetch the corpus for a job, reporting progress from 10 to 25."""
        def forward(progress: CrawlProgress) -> None:
            self._emit(job.id, "CRAWLING", progress.message)

        async with self.fetcher_factory() as fetcher:
            crawler = CrawlOrchestrator(
                fetcher, self.config, llm=self.llm, site_mapper=self.site_mapper
            )
            if job.specific_urls:
                sections: list[str] = []
                source_urls: list[str] = []
                total = len(job.specific_urls)
                for i, url in enumerate(job.specific_urls):
                    try:
                        result = await crawler.crawl_urls([url], forward, token)
                    except ScrapeError as e:
                        logger.warning("Skipping %s: %s", url, e.message)
                    else:
                        sections.append(result.aggregated_content)
                        source_urls.extend(result.source_urls)
                    await self._set_progress(job.id, token, 10 + (15 * (i + 1)) // total)
                if not sections:
                    raise ScrapeError(
                        job.specific_urls[0],
                        ScrapeErrorCode.SCRAPE_FAILED,
                        "Failed to scrape any of the provided URLs",
                    )
                content = "\n\n".join(sections)
            else:
                result = await crawler.crawl(
                    job.documentation_url,
                    mode=self.config.crawl.mode,
                    max_pages=self.config.crawl.max_pages,
                    wishlist=job.wishlist,
                    on_progress=forward,
                    token=token,
                )
                content = result.aggregated_content
                source_urls = result.source_urls
                logger.info(
                    "Job %s: discovered %d URLs, selected %d, fetched %d pages",
                    job.id, result.total_urls_discovered,
                    len(result.prioritized_urls), result.pages_crawled,
                )

        await self._set_progress(job.id, token, 25)
        self._emit(job.id, "CRAWLING", f"Scraped {len(content)} characters")
        return content, source_urls

    async def _cache_corpus(self, job: Job, content: str, source_urls: list[str]) -> str | None:
        try:
            key = await self.corpus_cache.store(job.id, content, {
                "source_url": job.documentation_url,
                "scraped_at": datetime.now(timezone.utc).isoformat(),
                "page_count": str(len(source_urls)),
            })
        except StorageError as e:
            logger.warning("Failed to cache content for job %s: %s", job.id, e.message)
            return None
        self._emit(job.id, "CRAWLING", "Content cached for re-analysis")
        return key

    async def _parse(
        self,
        job: Job,
        content: str,
        source_urls: list[str],
        token: CancellationToken,
    ) -> ApiDocument:
        if is_structured_spec(content):
            self._emit(job.id, "PARSING", "Detected OpenAPI/Swagger specification, parsing directly")
            parsed = parse_spec(content, job.documentation_url)
            self._emit(job.id, "PARSING", f"Parsed OpenAPI {parsed.openapi_version} specification")
            return parsed.doc

        if self.extractor is None:
            raise ExtractionError(
                ExtractionErrorCode.AI_ERROR,
                "Documentation is not a machine-readable spec and no language model is configured",
            )
        self._emit(job.id, "PARSING", "Using AI to extract API information")
        extraction = await self.extractor.extract(
            content,
            source_urls,
            on_progress=lambda message: self._emit(job.id, "PARSING", message),
            token=token,
        )
        self._emit(job.id, "PARSING", f"AI extraction complete (confidence {extraction.confidence:.0%})")
        return extraction.doc

    def _generate(
        self,
        job: Job,
        doc: ApiDocument,
        content: str,
        source_urls: list[str],
    ) -> tuple[ApiDocument, list[ActionDefinition]]:
        if job.wishlist:
            doc = prioritize_endpoints(doc, job.wishlist)
        doc = finalize_document(doc, source_urls)

        detection = detect_template(doc, content, source_urls)
        if detection.detected and detection.template is not None:
            doc.metadata.detected_template = DetectedTemplateInfo(
                template_id=detection.template.id,
                template_name=detection.template.name,
                confidence=detection.confidence,
                signals=detection.signals,
            )
            self._emit(job.id, "GENERATING", f"Detected {detection.template.name} template")

        options = GenerationOptions.from_config(
            self.config.generation,
            wishlist=job.wishlist,
            source_urls=source_urls,
            ai_confidence=doc.metadata.ai_confidence,
        )
        generation = generate_actions(doc, options)
        for warning in generation.warnings:
            if warning not in doc.metadata.warnings:
                doc.metadata.warnings.append(warning)
        self._emit(job.id, "GENERATING", f"Generated {len(generation.actions)} actions")
        return doc, generation.actions

    # -- cancel and re-analysis ----------------------------------------------

    async def cancel_job(self, tenant_id: str, job_id: str) -> Job:
        job = await self.get_job(tenant_id, job_id)
        if not job.in_progress:
            raise JobError("INVALID_STATE", f"Cannot cancel job with status {job.status.value}")
        job.fail(categorize_error(JobCancelledError(job_id)))
        await self.store.update(job)
        token = self._tokens.get(job_id)
        if token is not None:
            token.cancel()
        logger.info("Job %s cancelled by user", job_id)
        return job

    async def reanalyze_job(
        self, tenant_id: str, job_id: str, token: CancellationToken | None = None
    ) -> Job:
        """Parse and generate again from the cached corpus, without fetching."""
        job = await self.get_job(tenant_id, job_id)
        if job.status not in TERMINAL_STATUSES:
            raise JobError(
                "INVALID_STATUS",
                f"Cannot re-analyze job with status {job.status.value}. Job must be COMPLETED or FAILED.",
            )
        content = await self._cached_content(job)
        if content is None:
            raise JobError(
                "NO_CACHED_CONTENT",
                "No cached scraped content available for this job. Re-scrape the documentation.",
            )

        previous_count = len(job.result.endpoints) if job.result else 0
        source_urls = (job.result.metadata.source_urls if job.result else []) or [job.documentation_url]
        job.begin_reanalysis(30)
        await self.store.update(job)
        self._emit(job.id, "PARSING", "Re-analyzing cached content")

        token = token or CancellationToken(job_id)
        self._tokens[job_id] = token
        try:
            doc = await self._parse(job, content, source_urls, token)
            job = await self._transition(job.id, token, JobStatus.GENERATING, 80)
            doc, actions = self._generate(job, doc, content, source_urls)
            doc.metadata.reanalyzed_at = datetime.now(timezone.utc)
            doc.metadata.previous_endpoint_count = previous_count
            job = await self._set_progress(job.id, token, 95)

            job = await self._load_active(job.id, token)
            job.complete(doc, actions)
            await self.store.update(job)
        except Exception as e:
            await self._record_failure(job_id, e)
            raise
        finally:
            self._tokens.pop(job_id, None)

        logger.info(
            "Job %s re-analyzed: %d endpoints (was %d)", job_id, len(doc.endpoints), previous_count
        )
        return job

    async def can_reanalyze(self, job: Job) -> ReanalyzeCheck:
        if job.status not in TERMINAL_STATUSES:
            return ReanalyzeCheck(
                can_reanalyze=False,
                reason=f"Job is still {job.status.value.lower()}",
                has_cached_content=False,
            )
        if await self._cached_content(job) is None:
            return ReanalyzeCheck(
                can_reanalyze=False,
                reason="No cached content available. Re-scrape required.",
                has_cached_content=False,
            )
        if job.status == JobStatus.FAILED:
            reason = "Job failed - re-analysis may recover results"
        elif not job.result or not job.result.endpoints:
            reason = "No endpoints extracted - re-analysis recommended"
        else:
            reason = f"{len(job.result.endpoints)} endpoints found - re-analysis available"
        return ReanalyzeCheck(can_reanalyze=True, reason=reason, has_cached_content=True)

    async def _cached_content(self, job: Job) -> str | None:
        if job.cached_content_key:
            try:
                return await self.corpus_cache.retrieve(job.cached_content_key)
            except StorageError as e:
                logger.warning("Failed to retrieve content by key %s: %s", job.cached_content_key, e.message)
        return await self.corpus_cache.retrieve_by_job_id(job.id)

    # -- record helpers ------------------------------------------------------

    async def _load_active(self, job_id: str, token: CancellationToken) -> Job:
        """Reload the job, stopping if it was cancelled in the meantime."""
        job = await self.store.get(job_id)
        if job is None:
            raise JobError("JOB_NOT_FOUND", "Scrape job not found", 404)
        if job.status == JobStatus.FAILED:
            token.cancel()
        token.raise_if_cancelled()
        return job

    async def _transition(
        self, job_id: str, token: CancellationToken, status: JobStatus, progress: int
    ) -> Job:
        job = await self._load_active(job_id, token)
        job.advance(status, progress)
        await self.store.update(job)
        logger.info("Job %s -> %s (%d%%)", job_id, status.value, progress)
        self._emit(job_id, status.value, job.current_step)
        return job

    async def _set_progress(self, job_id: str, token: CancellationToken, progress: int) -> Job:
        job = await self._load_active(job_id, token)
        if progress > job.progress:
            job.set_progress(progress)
            await self.store.update(job)
        return job

    async def _record_failure(self, job_id: str, error: BaseException) -> None:
        job = await self.store.get(job_id)
        if job is None or not job.in_progress:
            # Already failed by cancel_job, or gone
            return
        details = categorize_error(error)
        job.fail(details)
        await self.store.update(job)
        logger.error("Job %s failed: [%s] %s", job_id, details.code, details.message)
        self._emit(job_id, "FAILED", f"Job failed: {details.message}")

    def _emit(self, job_id: str, stage: str, message: str) -> None:
        if self.on_progress is not None:
            self.on_progress(job_id, stage, message)
