from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Dict, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from . import cleaner as cleaner_util
from . import epub as epub_util
from . import pipeline as pipeline_util
from . import quality as quality_util
from .api import ApiError, MetadataClient
from .batch import BatchRunner
from .catalog import CatalogClient
from .config import CONFIG_FILENAME, Settings, load_settings
from .images import build_image_map, image_filename
from .storage import StorageClient, cover_extension

console = Console()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )
    # Per-request chatter from urllib3 drowns the pipeline's own messages.
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def _load_settings(args: argparse.Namespace) -> Settings:
    path: Optional[Path] = Path(args.config) if args.config else None
    if path is None and Path(CONFIG_FILENAME).is_file():
        path = Path(CONFIG_FILENAME)
    return load_settings(path)


def _metadata_client(settings: Settings) -> MetadataClient:
    return MetadataClient(
        base_url=settings.api_url,
        api_key=settings.api_key,
        admin_token=settings.admin_token,
        timeout=settings.request_timeout,
    )


def _book_processor(settings: Settings, api: MetadataClient) -> pipeline_util.BookProcessor:
    catalog = CatalogClient(
        base_url=settings.catalog_url,
        timeout=settings.request_timeout,
        download_timeout=settings.download_timeout,
        attempts=settings.download_attempts,
        backoff=settings.download_backoff,
    )
    storage = StorageClient(
        base_url=settings.api_url,
        api_key=settings.api_key,
        public_url=settings.public_url,
        timeout=settings.download_timeout,
    )
    return pipeline_util.BookProcessor(
        catalog=catalog,
        storage=storage,
        api=api,
        rules=cleaner_util.load_rules(settings.clean_rules),
        weights=quality_util.load_weights(settings.quality_weights),
    )


def _print_result(result: pipeline_util.ProcessResult) -> None:
    verdict = "PASS" if result.quality.passed else "FAIL"
    console.print(f"  Book ID:   {result.book_id}")
    console.print(f"  Source:    {result.source_id}")
    console.print(f"  Chapters:  {result.chapter_count}")
    console.print(f"  Words:     {result.word_count:,}")
    console.print(f"  Quality:   {result.quality.score}/100 ({verdict})")
    for issue in result.quality.issues:
        console.print(f"    - {issue}")


def _process(args: argparse.Namespace) -> int:
    try:
        settings = _load_settings(args)
        api = _metadata_client(settings)
        processor = _book_processor(settings, api)
    except (OSError, ValueError) as exc:
        sys.stderr.write(f"Invalid configuration: {exc}\n")
        return 2

    job = None
    source_id = args.source_id
    if source_id is None:
        try:
            job = api.pull_next_job()
        except ApiError as exc:
            sys.stderr.write(f"Failed to pull next job: {exc}\n")
            return 1
        if job is None:
            console.print("No queued jobs available. Nothing to do.")
            return 0
        source_id = job.gutenberg_id
        console.print(
            f"Job {job.id}: source {source_id} (priority {job.priority}, attempts {job.attempts})"
        )

    try:
        result = processor.process(source_id, job=job)
    except Exception as exc:
        sys.stderr.write(f"Processing failed: {exc}\n")
        return 1
    console.print("Processing complete")
    _print_result(result)
    return 0


def _batch(args: argparse.Namespace) -> int:
    try:
        settings = _load_settings(args)
        api = _metadata_client(settings)
        processor = _book_processor(settings, api)
    except (OSError, ValueError) as exc:
        sys.stderr.write(f"Invalid configuration: {exc}\n")
        return 2

    runner = BatchRunner(
        api=api,
        processor=processor,
        max_books=args.max_books if args.max_books is not None else settings.max_books,
        delay=args.delay if args.delay is not None else settings.batch_delay,
    )
    try:
        with runner.handle_signals():
            summary = runner.run()
    except ApiError as exc:
        sys.stderr.write(f"Batch aborted: {exc}\n")
        return 1

    console.print(
        f"Processed {summary.processed} books: {summary.succeeded} stored "
        f"({summary.ready} ready), {summary.failed} failed"
    )
    for source_id, message in summary.failures:
        console.print(f"  #{source_id}: {message}")
    if summary.interrupted:
        console.print("Stopped early on request.")
    return 1 if summary.failed and not summary.succeeded else 0


def _enqueue(args: argparse.Namespace) -> int:
    try:
        settings = _load_settings(args)
    except (OSError, ValueError) as exc:
        sys.stderr.write(f"Invalid configuration: {exc}\n")
        return 2
    api = _metadata_client(settings)
    source_ids = list(dict.fromkeys(args.source_ids))
    try:
        existing = set() if args.force else set(api.existing_source_ids(source_ids))
        created = 0
        for source_id in source_ids:
            if source_id in existing:
                console.print(f"  #{source_id}: already stored, skipped")
                continue
            job_id = api.create_job(source_id, priority=args.priority)
            console.print(f"  #{source_id}: queued as job {job_id}")
            created += 1
    except ApiError as exc:
        sys.stderr.write(f"Enqueue failed: {exc}\n")
        return 1
    console.print(f"Queued {created} job(s).")
    return 0


def _write_offline_images(
    content: epub_util.EpubContent,
    chapters: list,
    out_dir: Path,
) -> tuple[Dict[str, str], Dict[int, Dict[int, str]]]:
    images_dir = out_dir / "images"
    manifest = []
    for image in content.images:
        name = image_filename(image.href)
        images_dir.mkdir(parents=True, exist_ok=True)
        (images_dir / name).write_bytes(image.data)
        manifest.append((image.href, f"../images/{name}"))
    inline: Dict[int, Dict[int, str]] = {}
    for chapter in chapters:
        urls: Dict[int, str] = {}
        for image in chapter.inline_images:
            images_dir.mkdir(parents=True, exist_ok=True)
            (images_dir / image.filename).write_bytes(image.data)
            urls[image.index] = f"../images/{image.filename}"
        inline[chapter.order] = urls
    return build_image_map(manifest), inline


def _clean(args: argparse.Namespace) -> int:
    input_path = Path(args.input)
    out_dir = Path(args.out)
    chapters_dir = out_dir / "chapters"
    if chapters_dir.exists() and any(chapters_dir.iterdir()) and not args.overwrite:
        sys.stderr.write(
            f"{chapters_dir} already contains chapters (use --overwrite to replace)\n"
        )
        return 2
    try:
        settings = _load_settings(args)
        rules_path = Path(args.rules) if args.rules else settings.clean_rules
        weights_path = Path(args.weights) if args.weights else settings.quality_weights
        rules = cleaner_util.load_rules(rules_path)
        weights = quality_util.load_weights(weights_path)
    except (OSError, ValueError) as exc:
        sys.stderr.write(f"Invalid configuration: {exc}\n")
        return 2

    try:
        content = epub_util.read_epub_content(input_path)
    except epub_util.EpubError as exc:
        sys.stderr.write(f"{exc}\n")
        return 2

    aggregate = pipeline_util.build_aggregate(content, rules=rules, weights=weights)
    chapters_dir.mkdir(parents=True, exist_ok=True)
    for stale in chapters_dir.glob("*.html"):
        stale.unlink()
    image_map, inline_urls = _write_offline_images(content, aggregate.chapters, out_dir)

    cover_file = None
    if content.cover is not None:
        cover_file = f"cover.{cover_extension(content.cover.media_type)}"
        (out_dir / cover_file).write_bytes(content.cover.data)

    entries = []
    for chapter in aggregate.chapters:
        html = pipeline_util.finalize_chapter(
            chapter, image_map, inline_urls.get(chapter.order, {})
        )
        filename = f"{chapter.order:03d}.html"
        (chapters_dir / filename).write_text(html, encoding="utf-8")
        entries.append(
            {
                "order": chapter.order,
                "title": chapter.title,
                "file": f"chapters/{filename}",
                "word_count": chapter.word_count,
                "quality_ok": chapter.quality_ok,
            }
        )

    metadata = aggregate.metadata
    report = {
        "source": str(input_path),
        "title": metadata.title,
        "author": metadata.author,
        "language": metadata.language,
        "subjects": metadata.subjects,
        "cover": cover_file,
        "chapter_count": aggregate.chapter_count,
        "word_count": aggregate.word_count,
        "quality": aggregate.quality.to_dict(),
        "weights": quality_util.weights_dict(weights),
        "chapters": entries,
    }
    report_path = out_dir / "report.json"
    report_path.write_text(json.dumps(report, ensure_ascii=False, indent=2), encoding="utf-8")

    verdict = "PASS" if aggregate.quality.passed else "FAIL"
    console.print(f"Wrote {len(entries)} cleaned chapters to {chapters_dir}")
    console.print(f"Quality: {aggregate.quality.score}/100 ({verdict})")
    for issue in aggregate.quality.issues:
        console.print(f"  - {issue}")
    console.print(f"Report saved to {report_path}")
    return 0


def _counts_table(title: str, counts: Dict[str, object]) -> Table:
    table = Table(title=title, show_header=False)
    table.add_column("status")
    table.add_column("count", justify="right")
    for key, value in sorted(counts.items()):
        table.add_row(str(key), str(value))
    return table


def _report(args: argparse.Namespace) -> int:
    try:
        settings = _load_settings(args)
    except (OSError, ValueError) as exc:
        sys.stderr.write(f"Invalid configuration: {exc}\n")
        return 2
    api = _metadata_client(settings)
    try:
        stats = api.stats()
    except ApiError as exc:
        sys.stderr.write(f"Failed to fetch stats: {exc}\n")
        return 1

    avg = stats.get("avg_quality_score")
    avg_text = f"{avg:.1f}" if isinstance(avg, (int, float)) else "N/A"
    console.print("Books")
    console.print(f"  Total:             {stats.get('total_books') or 0}")
    console.print(f"  Total chapters:    {stats.get('total_chapters') or 0}")
    console.print(f"  Total words:       {int(stats.get('total_words') or 0):,}")
    console.print(f"  Avg quality score: {avg_text}")
    if isinstance(stats.get("by_status"), dict):
        console.print(_counts_table("Books by status", stats["by_status"]))
    console.print("Jobs")
    console.print(f"  Total:             {stats.get('total_jobs') or 0}")
    if isinstance(stats.get("jobs_by_status"), dict):
        console.print(_counts_table("Jobs by status", stats["jobs_by_status"]))

    if not args.verbose:
        console.print("Tip: use --verbose for detailed failure info")
        return 0

    try:
        failed_books = api.list_books(status="failed", limit=20)
        failed_jobs = api.list_jobs(status="failed", limit=20)
    except ApiError as exc:
        sys.stderr.write(f"Failed to fetch details: {exc}\n")
        return 1
    console.print("Failed books")
    if not failed_books:
        console.print("  (none)")
    for book in failed_books:
        console.print(f"  #{book.gutenberg_id} {book.title or 'Unknown'}")
        for issue in book.quality_issues:
            console.print(f"    - {issue}")
    console.print("Failed jobs")
    if not failed_jobs:
        console.print("  (none)")
    for job in failed_jobs:
        console.print(
            f"  #{job.gutenberg_id} attempts={job.attempts} "
            f"error=\"{job.error_message or 'unknown'}\""
        )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="folio")
    parser.add_argument(
        "--config",
        help=f"Path to JSON settings (defaults to ./{CONFIG_FILENAME} if present)",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="Debug logging and detailed reports"
    )
    subparsers = parser.add_subparsers(dest="command")

    process = subparsers.add_parser(
        "process", help="Process one book by catalog id, or the next queued job"
    )
    process.add_argument(
        "source_id",
        nargs="?",
        type=int,
        help="Catalog id to process directly (omit to pull the next queued job)",
    )
    process.set_defaults(func=_process)

    batch = subparsers.add_parser("batch", help="Process queued jobs sequentially")
    batch.add_argument("--max-books", type=int, help="Stop after this many books")
    batch.add_argument("--delay", type=float, help="Seconds to wait between books")
    batch.set_defaults(func=_batch)

    enqueue = subparsers.add_parser("enqueue", help="Queue processing jobs for catalog ids")
    enqueue.add_argument("source_ids", nargs="+", type=int, help="Catalog ids to queue")
    enqueue.add_argument("--priority", type=int, default=0)
    enqueue.add_argument(
        "--force", action="store_true", help="Queue ids that already have a book record"
    )
    enqueue.set_defaults(func=_enqueue)

    clean = subparsers.add_parser(
        "clean", help="Clean a local EPUB into chapter HTML files and a quality report"
    )
    clean.add_argument("--input", required=True, help="Path to input .epub")
    clean.add_argument(
        "--out",
        "--output",
        required=True,
        dest="out",
        help="Output directory (e.g., out/book)",
    )
    clean.add_argument("--rules", help="Path to JSON cleaner rules file")
    clean.add_argument("--weights", help="Path to JSON quality weights file")
    clean.add_argument(
        "--overwrite", action="store_true", help="Replace existing cleaned chapters"
    )
    clean.set_defaults(func=_clean)

    report = subparsers.add_parser("report", help="Summarize books and jobs in the store")
    report.set_defaults(func=_report)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    _setup_logging(args.verbose)
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
