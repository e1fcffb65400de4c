"""CLI entry point for applyflow job application and discovery workflows."""
import argparse
import logging
import sys
from collections import Counter
from pathlib import Path

from applyflow.core.config import Settings
from applyflow.core.logging import setup_logging
from applyflow.feedback.failure_logger import RunFailureLogger
from applyflow.profile.manager import load_candidate
from applyflow.storage.job_store import JsonJobStore
from applyflow.workflow.runner import BatchResult, build_runner

logger = logging.getLogger(__name__)


def _parse_filters(pairs: list[str]) -> dict[str, str]:
    filters: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise argparse.ArgumentTypeError(f"Filter must be key=value, got '{pair}'")
        filters[key.strip()] = value.strip()
    return filters


def _read_urls(source: str) -> list[str]:
    """URLs from a file (one per line, # comments allowed) or a single URL."""
    path = Path(source)
    if not path.is_file():
        return [source]
    with open(path, encoding="utf-8") as f:
        return [
            line.strip() for line in f
            if line.strip() and not line.strip().startswith("#")
        ]


def _log_batch(result: BatchResult) -> None:
    for item in result.results:
        outcome = "OK" if item.success else f"FAILED ({item.error})"
        logger.info(f"  {item.job_url}: {item.status} {outcome}")
    s = result.summary
    logger.info(f"Total: {s.total}, successful: {s.successful}, failed: {s.failed}, rate: {s.success_rate}%")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Apply to and discover jobs with browser automation workflows"
    )
    parser.add_argument(
        "--config", "-c",
        default="config/settings.yaml",
        help="Path to settings YAML file"
    )
    parser.add_argument(
        "--debug", "-d",
        action="store_true",
        help="Enable debug logging"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    candidate_args = argparse.ArgumentParser(add_help=False)
    candidate_args.add_argument(
        "--candidate", "-p",
        default="config/candidate.yaml",
        help="Path to candidate YAML or JSON file"
    )
    candidate_args.add_argument(
        "--resume-id", "-r",
        help="Resume id to upload with the application"
    )
    candidate_args.add_argument(
        "--dry-run",
        action="store_true",
        help="Fill forms but don't submit"
    )

    apply = sub.add_parser("apply", parents=[candidate_args], help="Apply to one job")
    apply.add_argument("url", help="URL of the job posting")

    batch = sub.add_parser("batch", parents=[candidate_args], help="Apply to several jobs")
    batch.add_argument("urls", help="File with one job URL per line")
    batch.add_argument(
        "--workers", "-w",
        type=int,
        help="Concurrent runs (overrides settings)"
    )

    process = sub.add_parser(
        "process", parents=[candidate_args], help="Apply to stored discovered jobs"
    )
    process.add_argument("--limit", type=int, help="Maximum jobs to process")

    discover = sub.add_parser("discover", help="Discover jobs from listing URL templates")
    discover.add_argument("domain", help="Job domain, e.g. 'software engineering'")
    discover.add_argument(
        "--urls", "-u",
        help="CSV of URL templates (defaults to storage.discovery_urls_path)"
    )
    discover.add_argument(
        "--filter", "-f",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Filter value for URL templates (repeatable)"
    )
    discover.add_argument(
        "--max-pages",
        type=int,
        help="Maximum listing pages per URL (overrides settings)"
    )

    sub.add_parser("jobs", help="Show stored job counts")

    failures = sub.add_parser("failures", help="List logged run failures")
    failures.add_argument(
        "--workflow",
        choices=["application", "discovery"],
        help="Only failures of this workflow"
    )
    failures.add_argument(
        "--all",
        action="store_true",
        help="Include failures already marked addressed"
    )
    failures.add_argument(
        "--mark-addressed",
        action="store_true",
        help="Mark the listed failures addressed"
    )

    serve = sub.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", help="Bind address (overrides settings)")
    serve.add_argument("--port", type=int, help="Port (overrides settings)")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the selected workflow command."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging("DEBUG" if args.debug else "INFO")
    logger.info("=== applyflow ===")

    settings = Settings.from_yaml(Path(args.config))
    workflow_update = {}
    if getattr(args, "dry_run", False):
        logger.info("Dry run: applications will not be submitted")
        workflow_update["submit_applications"] = False
    if getattr(args, "workers", None):
        workflow_update["max_concurrent_runs"] = args.workers
    if getattr(args, "max_pages", None):
        workflow_update["max_pages_per_target"] = args.max_pages
    if workflow_update:
        settings = settings.model_copy(update={
            "workflow": settings.workflow.model_copy(update=workflow_update),
        })

    if args.command == "serve":
        import uvicorn

        from applyflow.api import create_app

        host = args.host or settings.api.host
        port = args.port or settings.api.port
        logger.info(f"Serving API on http://{host}:{port}")
        uvicorn.run(create_app(settings), host=host, port=port)
        return 0

    if args.command == "jobs":
        store = JsonJobStore(settings.storage.jobs_path)
        for status, count in store.stats().items():
            logger.info(f"{status}: {count}")
        return 0

    if args.command == "failures":
        failure_log = RunFailureLogger(settings.storage.failures_path)
        failures = failure_log.read_all(include_addressed=args.all, workflow=args.workflow)
        for failure in failures:
            last_error = failure.errors[-1].get("error", "") if failure.errors else ""
            logger.info(
                f"{failure.timestamp} [{failure.workflow}/{failure.failure_type}] "
                f"{failure.target_url} at {failure.current_step}: {last_error}"
            )
        by_type = Counter(f.failure_type for f in failures)
        logger.info(f"{len(failures)} failure(s): {dict(by_type)}")
        if args.mark_addressed and failures:
            failure_log.mark_addressed([f.timestamp for f in failures])
        return 0

    runner = build_runner(settings)

    if args.command == "discover":
        try:
            filters = _parse_filters(args.filter)
        except argparse.ArgumentTypeError as e:
            parser.error(str(e))
        config_path = args.urls or str(settings.storage.discovery_urls_path)
        state = runner.discover(args.domain, filters, config_path=config_path)
        logger.info("=" * 50)
        logger.info(f"Status: {state.status}")
        logger.info(f"URLs processed: {len(state.processed_urls)}")
        logger.info(f"Jobs found: {len(state.scraped_jobs)}")
        for error in state.errors:
            logger.warning(f"  [{error.step}] {error.error}")
        return 0 if state.status == "completed" else 1

    candidate = load_candidate(Path(args.candidate))

    if args.command == "apply":
        logger.info(f"Target: {args.url}")
        state = runner.apply(args.url, candidate, resume_id=args.resume_id)
        logger.info("=" * 50)
        logger.info(f"Status: {state.status}")
        logger.info(f"Last step: {state.current_step}")
        if state.succeeded:
            logger.info("Application submitted successfully!")
            return 0
        logger.warning(f"Application {state.status} at {state.current_step}")
        return 1

    if args.command == "batch":
        result = runner.apply_batch(_read_urls(args.urls), candidate, resume_id=args.resume_id)
    else:
        result = runner.process_discovered(candidate, resume_id=args.resume_id, limit=args.limit)
    logger.info("=" * 50)
    _log_batch(result)
    return 0 if result.summary.failed == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
