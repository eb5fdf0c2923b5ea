from __future__ import annotations

import logging
import signal
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Iterator, List, Optional, Tuple

from .api import BookStatus, MetadataClient
from .pipeline import BookProcessor, ProcessResult

logger = logging.getLogger(__name__)

STOP_SIGNALS = (signal.SIGINT, signal.SIGTERM)


@dataclass
class BatchSummary:
    results: List[ProcessResult] = field(default_factory=list)
    failures: List[Tuple[int, str]] = field(default_factory=list)
    interrupted: bool = False

    @property
    def processed(self) -> int:
        return len(self.results) + len(self.failures)

    @property
    def succeeded(self) -> int:
        return len(self.results)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def ready(self) -> int:
        return sum(1 for result in self.results if result.status is BookStatus.READY)


class BatchRunner:
    """Work through queued jobs one book at a time.

    A stop request lets the current book finish and prevents the next one
    from starting.
    """

    def __init__(
        self,
        api: MetadataClient,
        processor: BookProcessor,
        max_books: int = 10,
        delay: float = 5.0,
        sleep: Callable[[float], None] = time.sleep,
        on_result: Optional[Callable[[ProcessResult], None]] = None,
    ) -> None:
        self.api = api
        self.processor = processor
        self.max_books = max_books
        self.delay = delay
        self._sleep = sleep
        self._on_result = on_result
        self.stop_requested = False

    def request_stop(self, signum: Optional[int] = None, _frame: object = None) -> None:
        if not self.stop_requested:
            logger.warning("Stop requested; finishing the current book first.")
        self.stop_requested = True

    @contextmanager
    def handle_signals(self) -> Iterator["BatchRunner"]:
        previous = {sig: signal.signal(sig, self.request_stop) for sig in STOP_SIGNALS}
        try:
            yield self
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)

    def run(self) -> BatchSummary:
        summary = BatchSummary()
        while summary.processed < self.max_books:
            if self.stop_requested:
                summary.interrupted = True
                break
            job = self.api.pull_next_job()
            if job is None:
                logger.info("No queued jobs left.")
                break
            try:
                result = self.processor.process_job(job)
            except Exception as exc:
                logger.error("Book %s failed: %s", job.gutenberg_id, exc)
                summary.failures.append((job.gutenberg_id, str(exc)))
            else:
                summary.results.append(result)
                if self._on_result is not None:
                    self._on_result(result)
            if summary.processed < self.max_books and not self.stop_requested and self.delay > 0:
                self._sleep(self.delay)
        if self.stop_requested:
            summary.interrupted = True
        logger.info(
            "Batch finished: %d processed, %d failed, %d ready",
            summary.processed,
            summary.failed,
            summary.ready,
        )
        return summary
