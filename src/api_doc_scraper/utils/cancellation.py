"""Cooperative cancellation for long-running jobs."""

from api_doc_scraper.errors import JobCancelledError


class CancellationToken:
    """Flag checked by a running job at each suspension point.

    One token exists per running job. Cancelling is best effort: work
    already awaiting an external call finishes that call first.
    """

    def __init__(self, job_id: str = ""):
        self.job_id = job_id
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise JobCancelledError(self.job_id)
