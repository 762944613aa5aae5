"""Scrape job lifecycle: records, persistence, corpus cache and orchestration."""

from api_doc_scraper.jobs.models import CreateJobResponse, Job, JobStatus, ReanalyzeCheck
from api_doc_scraper.jobs.orchestrator import JobOrchestrator, finalize_document, prioritize_endpoints
from api_doc_scraper.jobs.queue import JobQueue
from api_doc_scraper.jobs.storage import CorpusCache, FileCorpusCache, InMemoryCorpusCache
from api_doc_scraper.jobs.store import InMemoryJobStore, JobStore

__all__ = [
    "CorpusCache",
    "CreateJobResponse",
    "FileCorpusCache",
    "InMemoryCorpusCache",
    "InMemoryJobStore",
    "Job",
    "JobOrchestrator",
    "JobQueue",
    "JobStatus",
    "JobStore",
    "ReanalyzeCheck",
    "finalize_document",
    "prioritize_endpoints",
]
