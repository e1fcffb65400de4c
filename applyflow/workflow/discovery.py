"""Discovery graph: expand listing templates and harvest job links page by page.

    construct_urls -> iterate_next_url -> scrape_listing -> paginate_or_advance
                           ^    |                ^                 |
                           |    +-> store_jobs   +--- next_page ---+
                           +------------- advance -----------------+

``iterate_next_url`` walks a zero-based cursor over the constructed URLs and
routes to ``store_jobs`` once every URL has been processed. Pagination inside
one listing is bounded by ``WorkflowConfig.max_pages_per_target``.
"""
import logging
import uuid
from enum import Enum
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from ..agent.prompts import build_url_template_prompt
from ..agent.schemas import FilledUrl
from ..core.errors import CapabilityError, StateValidationError
from ..extractor.page_scripts import COLLECT_LINKS_SCRIPT
from ..scraper.listing import classify_job_links, extract_company_from_url, parse_links
from ..scraper.pagination import PaginationController, normalize_url
from ..scraper.url_templates import fill_url_template, is_absolute_url, load_url_templates
from ..storage.job_store import JobRecord
from .engine import END, WorkflowGraph
from .ports import RunContext
from .state import (
    DiscoveryState,
    ListingTarget,
    Pagination,
    ScrapedJob,
    ScrapeResult,
    StorageResult,
)

logger = logging.getLogger(__name__)


class IterationRoute(Enum):
    NEXT_URL = "next_url"
    DONE = "done"


class PaginationRoute(Enum):
    NEXT_PAGE = "next_page"
    ADVANCE = "advance"


def construct_urls(state: DiscoveryState, context: RunContext) -> DiscoveryState:
    """Turn listing templates into concrete search URLs for the run's filters."""
    templates = state.templates
    if not templates:
        if not state.config_path:
            raise StateValidationError("construct_urls needs templates or a config path")
        try:
            templates = load_url_templates(Path(state.config_path))
        except (OSError, ValueError) as e:
            logger.error(f"Could not load URL templates: {e}")
            return state.with_error(
                "construct_urls", str(e), context.clock(), current_step="url_construction_failed"
            )

    filters = state.target.filters
    domain = state.target.domain
    processed: list[ListingTarget] = []
    errors = []
    for template in templates:
        final_url = fill_url_template(template.url, filters, domain)
        if final_url is None and context.inference is not None:
            try:
                answer = context.inference.classify(
                    build_url_template_prompt(template.url, template.description, filters, domain),
                    FilledUrl,
                )
                final_url = answer.url.strip()
            except CapabilityError as e:
                errors.append(f"{template.url}: {e}")
                continue
        if not final_url or not is_absolute_url(final_url):
            errors.append(f"{template.url}: could not build a valid URL")
            continue
        processed.append(
            ListingTarget(
                original_template=template.url,
                final_url=final_url,
                description=template.description,
                company=template.company or extract_company_from_url(template.url),
                domain=domain,
                filters=dict(filters),
            )
        )

    logger.info(f"URL construction completed. Generated {len(processed)} URLs")
    result = state.model_copy(update={
        "templates": tuple(templates),
        "processed_urls": tuple(processed),
        "cursor": 0,
        "current_step": "url_construction_complete",
    })
    for error in errors:
        logger.warning(f"Skipped template {error}")
        result = result.with_error("construct_urls", error, context.clock())
    return result


def iterate_next_url(state: DiscoveryState, context: RunContext) -> DiscoveryState:
    """Select the URL under the cursor and reset pagination for it."""
    if state.cursor >= len(state.processed_urls):
        logger.info(f"All {len(state.processed_urls)} URLs processed")
        return state.model_copy(update={
            "current_target": None,
            "current_step": "url_iteration_complete",
        })

    target = state.processed_urls[state.cursor]
    logger.info(
        f"Processing URL {state.cursor + 1}/{len(state.processed_urls)}: {target.final_url}"
    )
    return state.model_copy(update={
        "current_target": target,
        "cursor": state.cursor + 1,
        "pagination": Pagination(current_page=1, has_more_pages=False, next_page_url=None),
        "last_scrape": None,
        "current_step": "url_iteration_processing",
    })


def after_iteration(state: DiscoveryState) -> IterationRoute:
    return IterationRoute.DONE if state.current_target is None else IterationRoute.NEXT_URL


def _job_title(text: str, url: str) -> str:
    title = " ".join(text.split())
    if title:
        return title
    path = [p for p in urlparse(url).path.split("/") if p]
    return path[-1].replace("-", " ").title() if path else url


def scrape_listing(state: DiscoveryState, context: RunContext) -> DiscoveryState:
    """Load the current listing page and collect job posting links from it."""
    target = state.current_target
    if target is None:
        raise StateValidationError("scrape_listing needs a current target")
    if context.page is None:
        raise StateValidationError("scrape_listing needs a browser page")
    page = context.page
    url = target.final_url
    page_number = state.pagination.current_page

    try:
        page.navigate(url)
        links = parse_links(page.evaluate(COLLECT_LINKS_SCRIPT))
    except CapabilityError as e:
        logger.error(f"Failed to scrape {url}: {e}")
        return state.with_error(
            "scrape_listing",
            str(e),
            context.clock(),
            last_scrape=ScrapeResult(success=False, url=url, page_number=page_number, error=str(e)),
            current_step="listing_scrape_failed",
        )

    job_links = classify_job_links(url, links, context.inference)
    seen = {normalize_url(job.url) for job in state.scraped_jobs}
    scraped_at = context.clock()
    new_jobs = []
    for link in job_links:
        key = normalize_url(link.href)
        if key in seen:
            continue
        seen.add(key)
        new_jobs.append(
            ScrapedJob(
                title=_job_title(link.text, link.href),
                url=link.href,
                company=target.company or extract_company_from_url(link.href),
                listing_url=url,
                page_number=page_number,
                scraped_at=scraped_at,
            )
        )

    logger.info(f"Found {len(new_jobs)} new jobs on page {page_number} of {url}")
    return state.model_copy(update={
        "scraped_jobs": state.scraped_jobs + tuple(new_jobs),
        "last_scrape": ScrapeResult(
            success=True, url=url, page_number=page_number, jobs_found=len(new_jobs)
        ),
        "current_step": "listing_scraped",
    })


def paginate_or_advance(state: DiscoveryState, context: RunContext) -> DiscoveryState:
    """Move to the next results page, or give up on the current listing."""
    target = state.current_target
    pagination = state.pagination
    if target is None or state.last_scrape is None or not state.last_scrape.success:
        return state.model_copy(update={
            "pagination": pagination.model_copy(update={"has_more_pages": False, "next_page_url": None}),
            "current_step": "pagination_complete",
        })
    if context.page is None:
        raise StateValidationError("paginate_or_advance needs a browser page")

    decision = PaginationController().next_page(
        context.page,
        target.final_url,
        pagination.current_page,
        context.config.max_pages_per_target,
    )

    result = state
    if decision.error:
        result = result.with_error("paginate_or_advance", decision.error, context.clock())

    if not decision.has_more_pages:
        logger.info(f"No more pages for {target.final_url}: {decision.reasoning}")
        return result.model_copy(update={
            "pagination": pagination.model_copy(update={"has_more_pages": False, "next_page_url": None}),
            "current_step": "pagination_complete",
        })

    logger.info(f"Advancing to page {pagination.current_page + 1}: {decision.next_page_url}")
    return result.model_copy(update={
        "current_target": target.model_copy(update={"final_url": decision.next_page_url}),
        "pagination": Pagination(
            current_page=pagination.current_page + 1,
            has_more_pages=True,
            next_page_url=decision.next_page_url,
        ),
        "current_step": "next_page_found",
    })


def after_pagination(state: DiscoveryState) -> PaginationRoute:
    if state.pagination.has_more_pages and state.pagination.next_page_url:
        return PaginationRoute.NEXT_PAGE
    return PaginationRoute.ADVANCE


def job_record_id(url: str) -> str:
    """Stable record id for a job URL."""
    return str(uuid.uuid5(uuid.NAMESPACE_URL, normalize_url(url)))


def store_jobs(state: DiscoveryState, context: RunContext) -> DiscoveryState:
    """Persist scraped jobs as ``discovered`` records."""
    if context.job_store is None:
        logger.info("No job store configured, skipping storage")
        return state.model_copy(update={
            "storage": StorageResult(success=False, error="No job store configured"),
            "current_step": "storage_skipped",
        })
    if not state.scraped_jobs:
        return state.model_copy(update={
            "storage": StorageResult(success=True, stored=0),
            "current_step": "jobs_stored",
        })

    records = [
        JobRecord(
            id=job_record_id(job.url),
            url=job.url,
            title=job.title,
            company=job.company,
            domain=state.target.domain,
            filters=dict(state.target.filters),
            status="discovered",
            discovered_at=job.scraped_at,
        )
        for job in state.scraped_jobs
    ]
    try:
        # Existing records keep their status.
        fresh = [r for r in records if context.job_store.get_record(r.id) is None]
        ids = context.job_store.put_records(fresh) if fresh else []
    except (CapabilityError, OSError) as e:
        logger.error(f"Failed to store jobs: {e}")
        return state.with_error(
            "store_jobs",
            str(e),
            context.clock(),
            storage=StorageResult(success=False, error=str(e)),
            current_step="storage_failed",
        )

    logger.info(f"Stored {len(ids)} new job records, {len(records) - len(ids)} already known")
    return state.model_copy(update={
        "storage": StorageResult(success=True, stored=len(ids), record_ids=tuple(ids)),
        "current_step": "jobs_stored",
    })


STEP_BUDGET_MARGIN = 100


def discovery_step_budget(state: DiscoveryState, context: RunContext) -> int:
    """Steps a run may take once its URLs are known.

    Each URL costs one ``iterate_next_url`` plus a scrape and a pagination
    step per page.
    """
    per_url = 2 * max(1, context.config.max_pages_per_target) + 1
    return len(state.processed_urls) * per_url + STEP_BUDGET_MARGIN


def build_discovery_graph() -> WorkflowGraph[DiscoveryState]:
    graph = WorkflowGraph("discovery", DiscoveryState)
    graph.add_step("construct_urls", construct_urls)
    graph.add_step("iterate_next_url", iterate_next_url)
    graph.add_step("scrape_listing", scrape_listing)
    graph.add_step("paginate_or_advance", paginate_or_advance)
    graph.add_step("store_jobs", store_jobs)
    graph.add_edge("construct_urls", "iterate_next_url")
    graph.add_conditional_edge("iterate_next_url", after_iteration, {
        IterationRoute.NEXT_URL: "scrape_listing",
        IterationRoute.DONE: "store_jobs",
    })
    graph.add_edge("scrape_listing", "paginate_or_advance")
    graph.add_conditional_edge("paginate_or_advance", after_pagination, {
        PaginationRoute.NEXT_PAGE: "scrape_listing",
        PaginationRoute.ADVANCE: "iterate_next_url",
    })
    graph.add_edge("store_jobs", END)
    graph.set_entry("construct_urls")
    graph.set_step_budget(discovery_step_budget)
    return graph.validate()


def initial_discovery_state(
    domain: str,
    filters: dict,
    config_path: Optional[str] = None,
    templates: tuple = (),
) -> DiscoveryState:
    return DiscoveryState(
        target={"domain": domain, "filters": filters},
        config_path=config_path,
        templates=templates,
    )
