"""Background job execution on an asyncio worker pool."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class JobQueue:
    """Runs enqueued job ids through ``handler`` on a fixed number of workers.

    Failures are recorded on the job by the handler itself; the queue only
    logs them so one bad job never stops a worker.
    """

    def __init__(self, handler: Callable[[str], Awaitable[object]], workers: int = 2):
        self.handler = handler
        self.workers = workers
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def start(self) -> None:
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._worker(i), name=f"job-worker-{i}")
            for i in range(self.workers)
        ]

    def enqueue(self, job_id: str) -> None:
        self._queue.put_nowait(job_id)

    async def join(self) -> None:
        """Wait until every enqueued job has been handled."""
        await self._queue.join()

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []

    async def __aenter__(self) -> "JobQueue":
        self.start()
        return self

    async def __aexit__(self, *args) -> None:
        await self.stop()

    async def _worker(self, index: int) -> None:
        while True:
            job_id = await self._queue.get()
            try:
                await self.handler(job_id)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.error("Job %s failed on worker %d", job_id, index, exc_info=True)
            finally:
                self._queue.task_done()
