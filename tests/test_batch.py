import signal
from typing import List

from folio import batch as batch_util
from folio.api import BookStatus, JobRecord
from folio.pipeline import ProcessResult
from folio.quality import QualityResult


class QueueApi:
    def __init__(self, source_ids: List[int]) -> None:
        self.jobs = [JobRecord(id=f"job-{sid}", gutenberg_id=sid) for sid in source_ids]
        self.pulls = 0

    def pull_next_job(self):
        self.pulls += 1
        return self.jobs.pop(0) if self.jobs else None


class FakeProcessor:
    def __init__(self, failing=(), pending=(), on_process=None) -> None:
        self.failing = set(failing)
        self.pending = set(pending)
        self.on_process = on_process
        self.seen: List[int] = []

    def process_job(self, job: JobRecord) -> ProcessResult:
        self.seen.append(job.gutenberg_id)
        if self.on_process is not None:
            self.on_process(job)
        if job.gutenberg_id in self.failing:
            raise RuntimeError(f"Book not found in catalog: {job.gutenberg_id}")
        passed = job.gutenberg_id not in self.pending
        return ProcessResult(
            source_id=job.gutenberg_id,
            book_id=f"book-{job.gutenberg_id}",
            status=BookStatus.READY if passed else BookStatus.PENDING,
            quality=QualityResult(score=100 if passed else 40, issues=[], passed=passed),
            chapter_count=3,
            word_count=6000,
        )


def test_batch_stops_when_queue_is_empty() -> None:
    sleeps = []
    api = QueueApi([1, 2])
    processor = FakeProcessor(pending=[2])
    summary = batch_util.BatchRunner(api, processor, max_books=10, delay=5.0, sleep=sleeps.append).run()

    assert processor.seen == [1, 2]
    assert summary.processed == 2
    assert summary.ready == 1
    assert not summary.interrupted
    assert sleeps == [5.0, 5.0]
    assert api.pulls == 3


def test_batch_respects_max_books_without_trailing_delay() -> None:
    sleeps = []
    api = QueueApi([1, 2, 3, 4])
    processor = FakeProcessor()
    summary = batch_util.BatchRunner(api, processor, max_books=2, delay=1.5, sleep=sleeps.append).run()

    assert processor.seen == [1, 2]
    assert summary.succeeded == 2
    assert sleeps == [1.5]
    assert [job.gutenberg_id for job in api.jobs] == [3, 4]


def test_batch_continues_after_a_failed_book() -> None:
    results = []
    api = QueueApi([5, 6, 7])
    processor = FakeProcessor(failing=[6])
    runner = batch_util.BatchRunner(api, processor, delay=0, on_result=results.append)
    summary = runner.run()

    assert summary.failures == [(6, "Book not found in catalog: 6")]
    assert summary.failed == 1
    assert summary.succeeded == 2
    assert [result.source_id for result in results] == [5, 7]


def test_stop_request_lets_current_book_finish() -> None:
    sleeps = []
    api = QueueApi([1, 2, 3])
    runner = None

    def stop_after_first(job: JobRecord) -> None:
        runner.request_stop(signal.SIGINT, None)

    processor = FakeProcessor(on_process=stop_after_first)
    runner = batch_util.BatchRunner(api, processor, delay=5.0, sleep=sleeps.append)
    summary = runner.run()

    assert processor.seen == [1]
    assert summary.succeeded == 1
    assert summary.interrupted
    assert sleeps == []


def test_handle_signals_installs_and_restores_handlers() -> None:
    runner = batch_util.BatchRunner(QueueApi([]), FakeProcessor())
    before = signal.getsignal(signal.SIGTERM)
    with runner.handle_signals():
        assert signal.getsignal(signal.SIGTERM) == runner.request_stop
        signal.raise_signal(signal.SIGTERM)
    assert runner.stop_requested
    assert signal.getsignal(signal.SIGTERM) == before
