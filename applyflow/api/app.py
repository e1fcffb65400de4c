"""FastAPI application exposing the workflows over HTTP."""
import logging
import time
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .. import __version__
from ..core.config import Settings
from ..workflow.runner import WorkflowRunner, build_runner, describe_outcome
from ..workflow.state import DiscoveryState
from .schemas import BatchApplicationRequest, DiscoveryRequest, SingleApplicationRequest

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def error_body(error: str, message: str, **extra: Any) -> dict[str, Any]:
    return {"success": False, "error": error, "message": message, **extra, "timestamp": _timestamp()}


def extract_api_key(request: Request) -> Optional[str]:
    """API key from ``X-API-Key`` or an ``Authorization: Bearer`` header."""
    key = request.headers.get("x-api-key")
    if key:
        return key
    auth = request.headers.get("authorization", "")
    if auth.startswith("Bearer "):
        return auth.removeprefix("Bearer ").strip() or None
    return None


def discovery_payload(state: DiscoveryState) -> dict[str, Any]:
    processed = [
        {
            "originalTemplate": target.original_template,
            "finalUrl": target.final_url,
            "description": target.description,
            "company": target.company,
        }
        for target in state.processed_urls
    ]
    jobs = [
        {
            "title": job.title,
            "url": job.url,
            "company": job.company,
            "listingUrl": job.listing_url,
            "pageNumber": job.page_number,
            "scrapedAt": job.scraped_at.isoformat(),
        }
        for job in state.scraped_jobs
    ]
    return {
        "status": state.status,
        "processedUrls": processed,
        "scrapedJobs": jobs,
        "count": {"urls": len(processed), "jobs": len(jobs)},
        "errors": [e.model_dump(mode="json") for e in state.errors],
    }


def create_app(settings: Optional[Settings] = None, runner: Optional[WorkflowRunner] = None) -> FastAPI:
    """Build the API around a workflow runner.

    Everything under ``/api/v1`` requires an API key listed in
    ``settings.api.api_keys``; ``/health`` is open.
    """
    settings = settings or Settings()
    runner = runner or build_runner(settings)
    started = time.monotonic()

    app = FastAPI(title="applyflow", version=__version__)
    app.state.settings = settings
    app.state.runner = runner

    def require_api_key(request: Request) -> str:
        key = extract_api_key(request)
        if key is None:
            logger.warning(f"API request without API key: {request.method} {request.url.path}")
            raise HTTPException(status_code=401, detail="API key is required")
        if key not in settings.api.api_keys:
            logger.warning(f"Invalid API key used: {key[:8]}...")
            raise HTTPException(status_code=401, detail="Invalid API key")
        return key

    @app.exception_handler(RequestValidationError)
    async def validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = [
            {
                "field": ".".join(str(part) for part in err["loc"] if part != "body"),
                "message": err["msg"],
                "code": err["type"],
            }
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content=error_body("Validation Error", "Invalid request data", details=details),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=error_body(HTTPStatus(exc.status_code).phrase, str(exc.detail)),
        )

    @app.exception_handler(Exception)
    async def server_error(request: Request, exc: Exception) -> JSONResponse:
        logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}")
        message = "Internal Server Error" if settings.api.is_production else str(exc)
        return JSONResponse(status_code=500, content=error_body("Server Error", message))

    def failure(error: str, exc: Exception) -> JSONResponse:
        logger.error(f"{error}: {exc}")
        message = "Internal Server Error" if settings.api.is_production else str(exc)
        return JSONResponse(status_code=500, content=error_body(error, message))

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {
            "success": True,
            "status": "healthy",
            "timestamp": _timestamp(),
            "uptime": round(time.monotonic() - started, 3),
            "environment": settings.api.environment,
            "version": __version__,
        }

    router = APIRouter(prefix=API_PREFIX, dependencies=[Depends(require_api_key)])

    # Sync handlers run in the threadpool, which sync Playwright requires.
    @router.post("/job-application/single")
    def apply_single(body: SingleApplicationRequest) -> Any:
        logger.info(f"API: single application to {body.job_url}")
        try:
            state = runner.apply(
                body.job_url,
                body.candidate_data,
                resume_id=body.resume_id,
                job_description=body.job_description,
            )
        except Exception as e:
            return failure("Application Failed", e)
        message = None if state.succeeded else describe_outcome(state)
        return {
            "success": True,
            "applied": state.succeeded,
            "message": message,
            "data": state.model_dump(mode="json"),
            "timestamp": _timestamp(),
        }

    @router.post("/job-application/batch")
    def apply_batch(body: BatchApplicationRequest) -> Any:
        logger.info(f"API: batch application to {len(body.job_urls)} jobs")
        try:
            result = runner.apply_batch(body.job_urls, body.candidate_data, resume_id=body.resume_id)
        except Exception as e:
            return failure("Batch Application Failed", e)
        summary = result.summary
        return {
            "success": True,
            "data": {
                "results": [
                    {
                        "jobUrl": item.job_url,
                        "success": item.success,
                        "status": item.status,
                        "currentStep": item.current_step,
                        "error": item.error,
                    }
                    for item in result.results
                ],
                "summary": {
                    "total": summary.total,
                    "successful": summary.successful,
                    "failed": summary.failed,
                    "successRate": summary.success_rate,
                },
            },
            "timestamp": _timestamp(),
        }

    @router.post("/job-discovery")
    def discover(body: DiscoveryRequest) -> Any:
        config_path = body.config_path or str(settings.storage.discovery_urls_path)
        logger.info(f"API: job discovery for '{body.domain}' from {config_path}")
        try:
            state = runner.discover(body.domain, body.filters, config_path=config_path)
        except Exception as e:
            return failure("Job Discovery Failed", e)
        return {
            "success": True,
            "domain": body.domain,
            "filters": body.filters,
            **discovery_payload(state),
            "timestamp": _timestamp(),
        }

    @router.get("/jobs")
    def list_jobs(status: Optional[str] = None) -> dict[str, Any]:
        store = runner.job_store
        if store is None:
            raise HTTPException(status_code=503, detail="No job store configured")
        if status is not None and status not in ("discovered", "processing", "applied", "failed"):
            raise HTTPException(status_code=400, detail=f"Unknown status '{status}'")
        records = store.get_all(status)
        return {
            "success": True,
            "data": {
                "jobs": [r.model_dump(mode="json") for r in records],
                "stats": store.stats(),
            },
            "timestamp": _timestamp(),
        }

    app.include_router(router)
    return app
