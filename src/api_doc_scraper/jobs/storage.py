"""Raw corpus cache, used to re-analyze a job without fetching again."""

import asyncio
import gzip
import json
import logging
import zlib
from pathlib import Path
from typing import Protocol

from api_doc_scraper.errors import StorageError, StorageErrorCode

logger = logging.getLogger(__name__)

MAX_CONTENT_SIZE = 10 * 1024 * 1024  # uncompressed bytes
CONTENT_FILENAME = "content.gz"
METADATA_FILENAME = "metadata.json"


def storage_key(job_id: str, filename: str = CONTENT_FILENAME) -> str:
    return f"jobs/{job_id}/{filename}"


def _check_size(job_id: str, content: str) -> bytes:
    data = content.encode("utf-8")
    if len(data) > MAX_CONTENT_SIZE:
        raise StorageError(
            StorageErrorCode.CONTENT_TOO_LARGE,
            f"Content size ({len(data)} bytes) exceeds maximum ({MAX_CONTENT_SIZE} bytes)",
            {"job_id": job_id, "size": len(data), "max_size": MAX_CONTENT_SIZE},
        )
    return data


class CorpusCache(Protocol):
    async def store(self, job_id: str, content: str, metadata: dict[str, str] | None = None) -> str: ...

    async def retrieve(self, key: str) -> str: ...

    async def retrieve_by_job_id(self, job_id: str) -> str | None: ...

    async def delete(self, job_id: str) -> bool: ...


class FileCorpusCache:
    """Gzip files under ``<root>/jobs/<job_id>/content.gz``."""

    def __init__(self, root: Path):
        self.root = Path(root)

    async def store(self, job_id: str, content: str, metadata: dict[str, str] | None = None) -> str:
        data = _check_size(job_id, content)
        key = storage_key(job_id)
        await asyncio.to_thread(self._write, key, data, metadata or {})
        logger.debug("Cached %d bytes for job %s at %s", len(data), job_id, key)
        return key

    def _write(self, key: str, data: bytes, metadata: dict[str, str]) -> None:
        path = self.root / key
        try:
            compressed = gzip.compress(data)
        except (OSError, zlib.error) as e:
            raise StorageError(StorageErrorCode.COMPRESSION_FAILED, f"Failed to compress content: {e}") from e
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(compressed)
            (path.parent / METADATA_FILENAME).write_text(json.dumps(metadata), encoding="utf-8")
        except OSError as e:
            raise StorageError(
                StorageErrorCode.WRITE_FAILED, f"Failed to write {key}: {e}", {"key": key}
            ) from e

    async def retrieve(self, key: str) -> str:
        return await asyncio.to_thread(self._read, key)

    def _read(self, key: str) -> str:
        path = self.root / key
        if not path.is_file():
            raise StorageError(StorageErrorCode.NOT_FOUND, f"No cached content at {key}", {"key": key})
        try:
            compressed = path.read_bytes()
        except OSError as e:
            raise StorageError(StorageErrorCode.READ_FAILED, f"Failed to read {key}: {e}", {"key": key}) from e
        try:
            return gzip.decompress(compressed).decode("utf-8")
        except (OSError, EOFError, zlib.error, UnicodeDecodeError) as e:
            raise StorageError(
                StorageErrorCode.DECOMPRESSION_FAILED, f"Failed to decompress {key}: {e}", {"key": key}
            ) from e

    async def retrieve_by_job_id(self, job_id: str) -> str | None:
        try:
            return await self.retrieve(storage_key(job_id))
        except StorageError as e:
            if e.code != StorageErrorCode.NOT_FOUND:
                logger.warning("Cached content for job %s is unreadable: %s", job_id, e.message)
            return None

    async def delete(self, job_id: str) -> bool:
        directory = self.root / "jobs" / job_id
        if not directory.is_dir():
            return False
        for child in directory.iterdir():
            child.unlink()
        directory.rmdir()
        return True


class InMemoryCorpusCache:
    """Dict-backed cache, compressed like the file cache."""

    def __init__(self):
        self._blobs: dict[str, bytes] = {}
        self.metadata: dict[str, dict[str, str]] = {}

    async def store(self, job_id: str, content: str, metadata: dict[str, str] | None = None) -> str:
        key = storage_key(job_id)
        self._blobs[key] = gzip.compress(_check_size(job_id, content))
        self.metadata[key] = dict(metadata or {})
        return key

    async def retrieve(self, key: str) -> str:
        if key not in self._blobs:
            raise StorageError(StorageErrorCode.NOT_FOUND, f"No cached content at {key}", {"key": key})
        return gzip.decompress(self._blobs[key]).decode("utf-8")

    async def retrieve_by_job_id(self, job_id: str) -> str | None:
        key = storage_key(job_id)
        if key not in self._blobs:
            return None
        return await self.retrieve(key)

    async def delete(self, job_id: str) -> bool:
        key = storage_key(job_id)
        self.metadata.pop(key, None)
        return self._blobs.pop(key, None) is not None
