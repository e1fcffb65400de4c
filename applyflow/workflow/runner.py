"""Run orchestration: one scoped browser session per workflow run."""
import logging
import time
from concurrent.futures import ThreadPoolExecutor
from contextlib import AbstractContextManager, contextmanager
from typing import Any, Callable, Iterator, Optional, Sequence

from pydantic import BaseModel

from ..agent.claude import ClaudeInference
from ..browser.connection import BrowserSession
from ..browser.page import PlaywrightPage
from ..core.config import BrowserConfig, Settings
from ..core.errors import CapabilityError
from ..feedback.failure_logger import RunFailureLogger, failure_from_state
from ..storage.job_store import JsonJobStore
from ..storage.resumes import HttpResumeStore, LocalResumeStore
from .application import build_application_graph, initial_application_state
from .discovery import build_discovery_graph, initial_discovery_state
from .engine import WorkflowEngine
from .ports import InferenceCapability, PageCapability, ResumeStore, RunContext, utc_now
from .state import ApplicationState, DiscoveryState, StateEnvelope, UrlTemplate

logger = logging.getLogger(__name__)

PageFactory = Callable[[], AbstractContextManager[PageCapability]]


@contextmanager
def browser_page(
    config: BrowserConfig, inference: Optional[InferenceCapability]
) -> Iterator[PlaywrightPage]:
    """Open a browser session and yield a page; the session closes on exit."""
    with BrowserSession(config) as session:
        yield PlaywrightPage(session.new_page(), inference=inference)


class BatchItem(BaseModel):
    job_url: str
    success: bool
    status: str
    current_step: Optional[str] = None
    error: Optional[str] = None
    state: Optional[ApplicationState] = None


class BatchSummary(BaseModel):
    total: int
    successful: int
    failed: int
    success_rate: float


class BatchResult(BaseModel):
    results: list[BatchItem]
    summary: BatchSummary


def summarize(items: Sequence[BatchItem]) -> BatchSummary:
    total = len(items)
    successful = sum(1 for item in items if item.success)
    return BatchSummary(
        total=total,
        successful=successful,
        failed=total - successful,
        success_rate=round(successful / total * 100, 2) if total else 0.0,
    )


def describe_outcome(state: StateEnvelope) -> str:
    """Short reason a run did not succeed."""
    if state.errors:
        return state.errors[-1].error
    if isinstance(state, ApplicationState) and state.submission and state.submission.error:
        return state.submission.error
    return f"Ended with status '{state.status}' at '{state.current_step}'"


class WorkflowRunner:
    """Runs application and discovery workflows with real or injected capabilities.

    Each run gets its own page from ``page_factory`` and its own RunContext, so
    concurrent batch runs share nothing but the job store and failure log.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        inference: Optional[InferenceCapability] = None,
        resume_store: Optional[ResumeStore] = None,
        job_store: Optional[JsonJobStore] = None,
        failure_logger: Optional[RunFailureLogger] = None,
        page_factory: Optional[PageFactory] = None,
        clock: Callable = utc_now,
    ) -> None:
        self.settings = settings or Settings()
        self._inference = inference
        self._resume_store = resume_store
        self._job_store = job_store
        self._failure_logger = failure_logger
        self._page_factory = page_factory or (
            lambda: browser_page(self.settings.browser, self._inference)
        )
        self._clock = clock
        self._engine = WorkflowEngine(max_steps=self.settings.workflow.max_steps)
        self._application_graph = build_application_graph()
        self._discovery_graph = build_discovery_graph()

    @property
    def job_store(self) -> Optional[JsonJobStore]:
        return self._job_store

    def _context(self, page: PageCapability) -> RunContext:
        return RunContext(
            page=page,
            inference=self._inference,
            resume_store=self._resume_store,
            job_store=self._job_store,
            config=self.settings.workflow,
            clock=self._clock,
        )

    def apply(
        self,
        job_url: str,
        candidate: dict[str, Any],
        resume_id: Optional[str] = None,
        job_description: Optional[dict[str, Any]] = None,
        job_id: Optional[str] = None,
    ) -> ApplicationState:
        """Run the application workflow against one job URL.

        When ``job_id`` names a stored job record, its status moves through
        ``processing`` to ``applied`` or ``failed``. Dry runs (submission
        disabled) leave job records and the failure log untouched.
        """
        logger.info(f"=== Applying to {job_url} ===")
        initial = initial_application_state(job_url, candidate, resume_id, job_description)
        if not self.settings.workflow.submit_applications:
            return self._run(self._application_graph, initial)
        self._mark_job(job_id, "processing")

        state = self._run(self._application_graph, initial)

        if state.succeeded:
            self._mark_job(job_id, "applied")
        else:
            self._mark_job(job_id, "failed", error=describe_outcome(state))
            self._log_failure("application", state)
        logger.info(f"Application finished: status={state.status}, step={state.current_step}")
        return state

    def apply_batch(
        self,
        job_urls: Sequence[str],
        candidate: dict[str, Any],
        resume_id: Optional[str] = None,
        job_ids: Optional[Sequence[str]] = None,
    ) -> BatchResult:
        """Apply to several jobs, at most ``max_concurrent_runs`` at a time.

        A failing URL is reported in its item and never stops the batch.
        ``job_ids``, when given, pairs each URL with its stored job record.
        Results keep the order of ``job_urls``.
        """
        workers = max(1, self.settings.workflow.max_concurrent_runs)
        ids = list(job_ids) if job_ids is not None else [None] * len(job_urls)
        if len(ids) != len(job_urls):
            raise ValueError("job_ids must match job_urls one to one")
        logger.info(f"Batch of {len(job_urls)} applications with {workers} worker(s)")

        def run_one(url: str, job_id: Optional[str]) -> BatchItem:
            try:
                state = self.apply(url, candidate, resume_id=resume_id, job_id=job_id)
            except Exception as e:
                logger.error(f"Application to {url} crashed: {e}")
                return BatchItem(job_url=url, success=False, status="failed", error=str(e))
            finally:
                if self.settings.workflow.delay_between_runs > 0:
                    time.sleep(self.settings.workflow.delay_between_runs)
            return BatchItem(
                job_url=url,
                success=state.succeeded,
                status=state.status,
                current_step=state.current_step,
                error=None if state.succeeded else describe_outcome(state),
                state=state,
            )

        with ThreadPoolExecutor(max_workers=workers) as pool:
            items = list(pool.map(run_one, job_urls, ids))

        summary = summarize(items)
        logger.info(
            f"Batch complete: {summary.successful}/{summary.total} succeeded "
            f"({summary.success_rate}%)"
        )
        return BatchResult(results=items, summary=summary)

    def process_discovered(
        self,
        candidate: dict[str, Any],
        resume_id: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> BatchResult:
        """Apply to stored job records still in ``discovered`` status."""
        if self._job_store is None:
            raise ValueError("No job store configured")
        records = self._job_store.get_all("discovered")
        if limit is not None:
            records = records[:limit]
        logger.info(f"Processing {len(records)} discovered jobs")
        return self.apply_batch(
            [r.url for r in records],
            candidate,
            resume_id=resume_id,
            job_ids=[r.id for r in records],
        )

    def discover(
        self,
        domain: str,
        filters: dict[str, Any],
        config_path: Optional[str] = None,
        templates: Sequence[UrlTemplate] = (),
    ) -> DiscoveryState:
        """Run the discovery workflow for a domain and filter set."""
        logger.info(f"=== Discovering jobs for domain '{domain}' ===")
        initial = initial_discovery_state(domain, filters, config_path, tuple(templates))
        state = self._run(self._discovery_graph, initial)
        if state.status != "completed":
            self._log_failure("discovery", state)
        logger.info(
            f"Discovery finished: {len(state.processed_urls)} URLs, "
            f"{len(state.scraped_jobs)} jobs"
        )
        return state

    def _run(self, graph, initial: StateEnvelope):
        try:
            with self._page_factory() as page:
                return self._engine.run(graph, initial, self._context(page))
        except CapabilityError as e:
            logger.error(f"Browser session failed: {e}")
            return initial.with_error("session", str(e), self._clock(), status="failed")

    def _mark_job(self, job_id: Optional[str], status: str, error: Optional[str] = None) -> None:
        if job_id is None or self._job_store is None:
            return
        if not self._job_store.update_status(job_id, status, error):
            logger.warning(f"No job record {job_id} to mark {status}")

    def _log_failure(self, workflow: str, state: StateEnvelope) -> None:
        if self._failure_logger is None:
            return
        failure = failure_from_state(workflow, state, self._clock().isoformat())
        self._failure_logger.log(failure)


def build_runner(settings: Settings) -> WorkflowRunner:
    """Wire a runner with Claude inference and file-backed stores from settings."""
    storage = settings.storage
    if storage.resume_base_url:
        resume_store: ResumeStore = HttpResumeStore(storage.resume_base_url, storage.download_dir)
    else:
        resume_store = LocalResumeStore(storage.resume_dir)
    return WorkflowRunner(
        settings,
        inference=ClaudeInference(settings.claude.model, settings.claude.max_tokens),
        resume_store=resume_store,
        job_store=JsonJobStore(storage.jobs_path),
        failure_logger=RunFailureLogger(storage.failures_path),
    )
