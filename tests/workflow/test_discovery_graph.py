from __future__ import annotations

from pathlib import Path
from urllib.parse import urlparse

import pytest

from applyflow.agent.schemas import FilledUrl, JobLinkSelection, NextPageAnswer
from applyflow.core.errors import InferenceError, NavigationError
from applyflow.extractor.page_scripts import COLLECT_LINKS_SCRIPT
from applyflow.storage.job_store import JsonJobStore
from applyflow.workflow.discovery import (
    build_discovery_graph,
    initial_discovery_state,
    job_record_id,
)
from applyflow.workflow.engine import WorkflowEngine
from applyflow.workflow.ports import NavigationResult
from applyflow.workflow.state import DiscoveryState, UrlTemplate

LISTING = "https://boards.example.com/jobs?q=python"
PAGE_2 = "https://boards.example.com/jobs?q=python&page=2"

LINKS = {
    LISTING: [
        {"href": "https://boards.example.com/jobs/1", "text": "Backend Engineer"},
        {"href": "https://boards.example.com/jobs/2", "text": "Data  Engineer"},
        {"href": "https://boards.example.com/about", "text": "About us"},
        {"href": PAGE_2, "text": "2"},
    ],
    PAGE_2: [
        {"href": "https://boards.example.com/jobs/2", "text": "Data Engineer"},
        {"href": "https://boards.example.com/jobs/3", "text": "ML Engineer"},
    ],
}

NEXT = {LISTING: PAGE_2}

TEMPLATE = UrlTemplate(url="https://boards.example.com/jobs?q={domain}", description="Example board")


def listing_page(page_factory, links: dict = LINKS, next_pages: dict = NEXT):
    page = page_factory()
    page.scripts[COLLECT_LINKS_SCRIPT] = lambda _: links.get(page.url, [])
    page.extracts[NextPageAnswer] = lambda _: (
        NextPageAnswer(has_more_pages=True, next_page_url=next_pages[page.url])
        if page.url in next_pages
        else NextPageAnswer(has_more_pages=False)
    )
    return page


def run(context, templates=(TEMPLATE,), config_path=None, filters=None) -> DiscoveryState:
    initial = initial_discovery_state("python", filters or {}, config_path, tuple(templates))
    return WorkflowEngine().run(build_discovery_graph(), initial, context)


class TestDiscoveryRun:
    def test_paginates_and_collects_unique_jobs(self, page_factory, make_context) -> None:
        page = listing_page(page_factory)

        result = run(make_context(page=page))

        assert result.status == "completed"
        assert [t.final_url for t in result.processed_urls] == [LISTING]
        assert [(j.url, j.page_number) for j in result.scraped_jobs] == [
            ("https://boards.example.com/jobs/1", 1),
            ("https://boards.example.com/jobs/2", 1),
            ("https://boards.example.com/jobs/3", 2),
        ]
        assert result.scraped_jobs[1].title == "Data Engineer"
        assert result.scraped_jobs[0].company == "Example"
        assert result.scraped_jobs[0].listing_url == LISTING
        assert result.history == (
            "construct_urls",
            "iterate_next_url",
            "scrape_listing",
            "paginate_or_advance",
            "scrape_listing",
            "paginate_or_advance",
            "iterate_next_url",
            "store_jobs",
        )
        assert result.cursor == 1
        assert result.current_target is None

    def test_max_pages_stops_pagination(self, page_factory, make_context) -> None:
        page = page_factory()
        page.scripts[COLLECT_LINKS_SCRIPT] = [
            {"href": "https://boards.example.com/jobs/1", "text": "Backend Engineer"},
        ]
        # every page claims another page exists
        page.extracts[NextPageAnswer] = lambda _: NextPageAnswer(
            has_more_pages=True, next_page_url=f"{page.url}&n=1"
        )

        result = run(make_context(page=page, max_pages_per_target=2))

        assert result.history.count("scrape_listing") == 2
        assert page.call_names().count("extract") == 1
        assert result.pagination.has_more_pages is False

    def test_same_url_from_extraction_is_not_followed(self, page_factory, make_context) -> None:
        page = listing_page(page_factory, next_pages={LISTING: LISTING})

        result = run(make_context(page=page))

        assert result.history.count("scrape_listing") == 1
        assert len(result.scraped_jobs) == 2

    def test_pagination_extraction_error_recorded(self, page_factory, make_context) -> None:
        page = listing_page(page_factory)
        page.extracts[NextPageAnswer] = InferenceError("model overloaded")

        result = run(make_context(page=page))

        assert result.status == "completed"
        assert result.history.count("scrape_listing") == 1
        assert result.errors[0].step == "paginate_or_advance"
        assert "model overloaded" in result.errors[0].error

    def test_failed_listing_moves_to_next_url(self, page_factory, make_context) -> None:
        bad = UrlTemplate(url="https://broken.example.org/jobs?q={domain}")

        def navigate(url: str) -> NavigationResult:
            if "broken" in url:
                raise NavigationError("timeout")
            return NavigationResult(ok=True, final_url=url)

        page = listing_page(page_factory)
        page.navigation = navigate

        result = run(make_context(page=page), templates=(bad, TEMPLATE))

        assert result.status == "completed"
        assert len(result.processed_urls) == 2
        assert result.errors[0].step == "scrape_listing"
        assert len(result.scraped_jobs) == 3
        assert result.history[:5] == (
            "construct_urls",
            "iterate_next_url",
            "scrape_listing",
            "paginate_or_advance",
            "iterate_next_url",
        )

    def test_inference_picks_links_present_on_page(
        self, page_factory, inference_factory, make_context
    ) -> None:
        page = listing_page(page_factory, next_pages={})
        inference = inference_factory({
            JobLinkSelection: JobLinkSelection(job_urls=[
                "https://boards.example.com/jobs/2",
                "https://elsewhere.example.net/jobs/99",
            ]),
        })

        result = run(make_context(page=page, inference=inference))

        assert [j.url for j in result.scraped_jobs] == ["https://boards.example.com/jobs/2"]

    def test_no_page_is_recorded(self, make_context) -> None:
        result = run(make_context())

        assert result.status == "failed"
        assert result.errors[-1].step == "scrape_listing"


class TestStepBudget:
    def test_many_paginating_listings_reach_storage(
        self, tmp_path: Path, page_factory, make_context
    ) -> None:
        page = page_factory()
        page.scripts[COLLECT_LINKS_SCRIPT] = lambda _: [{
            "href": f"https://{urlparse(page.url).netloc}/jobs/{page.url.count('&n=')}",
            "text": "Backend Engineer",
        }]
        # every page claims another page exists
        page.extracts[NextPageAnswer] = lambda _: NextPageAnswer(
            has_more_pages=True, next_page_url=f"{page.url}&n=1"
        )
        templates = [
            UrlTemplate(url=f"https://board{i}.example.com/jobs?q={{domain}}") for i in range(30)
        ]
        store = JsonJobStore(tmp_path / "jobs.json")

        result = run(make_context(page=page, job_store=store), templates=templates)

        assert result.status == "completed"
        assert len(result.history) > 500
        assert len(result.scraped_jobs) == 300
        assert result.storage.stored == 300
        assert not any("exceeded" in e.error for e in result.errors)


class TestUrlConstruction:
    def test_templates_from_csv(self, tmp_path: Path, page_factory, make_context) -> None:
        csv_path = tmp_path / "urls.csv"
        csv_path.write_text(
            "url,description,company\n"
            "https://boards.example.com/jobs?q={domain},Example board,\n"
            "https://jobs.lever.co/acme?team={team},Acme jobs,Acme Corp\n"
        )
        page = listing_page(page_factory, next_pages={})

        result = run(make_context(page=page), templates=(), config_path=str(csv_path))

        assert [t.final_url for t in result.processed_urls] == [LISTING]
        assert len(result.templates) == 2
        assert result.errors[0].step == "construct_urls"
        assert "{team}" in result.errors[0].error

    def test_inference_fills_unresolved_template(
        self, page_factory, inference_factory, make_context
    ) -> None:
        template = UrlTemplate(url="https://jobs.lever.co/acme?team={team}", company="Acme Corp")
        inference = inference_factory({
            FilledUrl: FilledUrl(url="https://jobs.lever.co/acme?team=Engineering"),
        })
        page = listing_page(page_factory, next_pages={})

        result = run(make_context(page=page, inference=inference), templates=(template,))

        target = result.processed_urls[0]
        assert target.final_url == "https://jobs.lever.co/acme?team=Engineering"
        assert target.company == "Acme Corp"
        assert target.original_template == template.url

    def test_filters_fill_placeholders(self, page_factory, make_context) -> None:
        template = UrlTemplate(url="https://www.indeed.com/jobs?q={domain}&l={location}")
        page = listing_page(page_factory, next_pages={})

        result = run(
            make_context(page=page),
            templates=(template,),
            filters={"location": "New York"},
        )

        assert result.processed_urls[0].final_url == "https://www.indeed.com/jobs?q=python&l=New+York"
        assert result.processed_urls[0].filters == {"location": "New York"}

    def test_missing_csv_recorded(self, tmp_path: Path, make_context) -> None:
        result = run(make_context(), templates=(), config_path=str(tmp_path / "missing.csv"))

        assert result.errors[0].step == "construct_urls"
        assert result.processed_urls == ()
        assert "store_jobs" in result.history

    def test_no_template_source_fails(self, make_context) -> None:
        result = run(make_context(), templates=())

        assert result.status == "failed"
        assert result.history == ("construct_urls",)


class TestStorage:
    def test_jobs_stored_as_discovered(self, tmp_path: Path, page_factory, make_context) -> None:
        store = JsonJobStore(tmp_path / "jobs.json")

        result = run(make_context(page=listing_page(page_factory), job_store=store))

        assert result.current_step == "jobs_stored"
        assert result.storage.stored == 3
        records = store.get_all()
        assert {r.status for r in records} == {"discovered"}
        assert {r.domain for r in records} == {"python"}
        record = store.get_record(job_record_id("https://boards.example.com/jobs/1"))
        assert record is not None
        assert record.title == "Backend Engineer"

    def test_rediscovery_keeps_existing_status(
        self, tmp_path: Path, page_factory, make_context
    ) -> None:
        store = JsonJobStore(tmp_path / "jobs.json")
        run(make_context(page=listing_page(page_factory), job_store=store))
        applied_id = job_record_id("https://boards.example.com/jobs/1")
        store.update_status(applied_id, "applied")

        result = run(make_context(page=listing_page(page_factory), job_store=store))

        assert result.storage.stored == 0
        assert store.get_record(applied_id).status == "applied"

    def test_without_store_storage_is_skipped(self, page_factory, make_context) -> None:
        result = run(make_context(page=listing_page(page_factory)))

        assert result.current_step == "storage_skipped"
        assert result.status == "completed"


@pytest.mark.parametrize(
    "first, second",
    [
        ("https://x.example.com/jobs/1", "https://x.example.com/jobs/1/"),
        ("https://x.example.com/jobs/1", "https://X.example.com/jobs/1#apply"),
    ],
)
def test_record_id_is_stable(first: str, second: str) -> None:
    assert job_record_id(first) == job_record_id(second)
