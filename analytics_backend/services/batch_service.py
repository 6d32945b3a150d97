"""
Batch Processing Service for the Analytics Backend

Fans a list of items out to a worker function on a thread pool and joins the
results back in input order.

Semantics:
- Every item runs; a failing item never cancels its siblings
- Each failure is captured as a failed ``BatchOutcome`` carrying the error text
- Outcomes are returned in input order with success/failure counts
- Batch size limits are enforced by the caller, not here
"""

import asyncio
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Optional, Sequence, TypeVar

from ..models.schemas import BatchOutcome, BatchReport, BatchSummary

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_WORKERS = min(4, os.cpu_count() or 1)


class BatchCoordinator:
    """Ordered, partial-failure tolerant fan-out/fan-in over a thread pool."""

    def __init__(self, max_workers: int = DEFAULT_MAX_WORKERS, executor: Optional[ThreadPoolExecutor] = None):
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="analytics-batch"
        )
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def _run_item(self, worker: Callable[[Any], T], index: int, item: Any, label: str) -> BatchOutcome:
        try:
            return BatchOutcome(index=index, ok=True, value=worker(item))
        except Exception as e:
            self.logger.error(
                f"Batch {label} item {index} failed: {e}",
                extra={"batch_operation": label, "batch_index": index}
            )
            return BatchOutcome(index=index, ok=False, error_message=str(e) or type(e).__name__)

    async def run(self, worker: Callable[[Any], T], items: Sequence[Any], label: str = "batch") -> BatchReport:
        """
        Apply ``worker`` to every item concurrently.

        Args:
            worker: Synchronous per-item function; may raise
            items: Items in caller order
            label: Operation name used in logs

        Returns:
            BatchReport with one outcome per item, in input order
        """
        loop = asyncio.get_running_loop()
        futures = [
            loop.run_in_executor(self._executor, self._run_item, worker, index, item, label)
            for index, item in enumerate(items)
        ]
        outcomes = list(await asyncio.gather(*futures))

        successful = sum(1 for outcome in outcomes if outcome.ok)
        summary = BatchSummary(total=len(outcomes), successful=successful, failed=len(outcomes) - successful)

        self.logger.info(
            f"Batch {label} completed: {summary.successful}/{summary.total} successful",
            extra={"batch_operation": label, "batch_size": summary.total}
        )
        return BatchReport(outcomes=outcomes, summary=summary)

    def shutdown(self, wait: bool = True) -> None:
        """Release the worker pool if this coordinator created it."""
        if self._owns_executor:
            self._executor.shutdown(wait=wait)


__all__ = ["BatchCoordinator", "DEFAULT_MAX_WORKERS"]
