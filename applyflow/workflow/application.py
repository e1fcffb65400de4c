"""Application graph: load the job page, read the form, map, fill and submit.

    detect_load -> analyze_form -> map_fields -> fill_form -> submit -> END

``detect_load`` branches to END with a terminal label when the page failed to
load, shows a blocker, or has no form. The later steps skip gracefully when an
upstream result is missing and raise only when a hard prerequisite (page,
candidate) is absent.
"""
import logging
from enum import Enum
from typing import Optional

from ..agent.models import LOGIN_URL_PATTERNS
from ..agent.prompts import BLOCKER_INSTRUCTION, FORM_DISCOVERY_INSTRUCTION
from ..agent.schemas import BlockerReport, DiscoveredForm
from ..core.errors import CapabilityError, StateValidationError
from ..extractor.completion import detect_completion
from ..extractor.forms import (
    FORM_EXTRACTION_SCRIPT,
    discovered_to_fields,
    parse_form_elements,
)
from ..extractor.page_scripts import FILL_FIELD_SCRIPT, FORM_PRESENCE_SCRIPT, SUBMIT_SCRIPT
from ..mapping.field_mapper import FieldMapper
from .engine import END, WorkflowGraph
from .ports import PageCapability, RunContext
from .state import (
    ApplicationState,
    Blockers,
    FieldFillOutcome,
    FieldMapping,
    FillResult,
    FormModel,
    MappingResult,
    PageState,
    SubmissionResult,
)

logger = logging.getLogger(__name__)

RESUME_FIELD_WORDS: tuple[str, ...] = ("resume", "cv", "curriculum")


class PageLoadRoute(Enum):
    """Where to go after the job page has loaded."""

    ANALYZE_FORM = "analyze_form"
    LOAD_FAILED = "load_failed"
    LOGIN_REQUIRED = "login_required"
    OAUTH_REQUIRED = "oauth_required"
    EMAIL_VERIFICATION_REQUIRED = "email_verification_required"
    BLOCKED = "blocked"
    NO_FORM = "no_form"


def _require_page(context: RunContext, step: str) -> PageCapability:
    if context.page is None:
        raise StateValidationError(f"{step} needs a browser page")
    return context.page


def _matches_login_url(url: str) -> Optional[str]:
    lowered = url.lower()
    for patterns in LOGIN_URL_PATTERNS.values():
        for pattern in patterns:
            if pattern in lowered:
                return pattern
    return None


def detect_blockers(page: PageCapability, url: str) -> Blockers:
    """Ask the page for login walls, OAuth, verification, registration and modals.

    Extraction failures are logged and reported as no blockers; the URL check
    for login pages still applies.
    """
    try:
        report = page.extract(BLOCKER_INSTRUCTION, BlockerReport)
        blockers = Blockers(**report.model_dump())
    except CapabilityError as e:
        logger.warning(f"Blocker detection failed: {e}")
        blockers = Blockers(reasoning=f"Blocker detection failed: {e}")

    login_pattern = _matches_login_url(url)
    if login_pattern and not blockers.has_login_required:
        reasoning = f"URL matches login pattern '{login_pattern}'"
        if blockers.reasoning:
            reasoning = f"{blockers.reasoning}; {reasoning}"
        blockers = blockers.model_copy(
            update={"has_login_required": True, "reasoning": reasoning}
        )
    return blockers


def detect_load(state: ApplicationState, context: RunContext) -> ApplicationState:
    """Navigate to the job URL and check for a form and for blockers."""
    page = _require_page(context, "detect_load")
    url = state.target.url
    if not url:
        raise StateValidationError("detect_load needs a target URL")

    try:
        navigation = page.navigate(url)
    except CapabilityError as e:
        logger.error(f"Failed to load {url}: {e}")
        return state.with_error(
            "detect_load",
            str(e),
            context.clock(),
            page_state=PageState(is_loaded=False, error=str(e)),
            current_step="page_load_failed",
        )

    final_url = navigation.final_url or url
    has_form = False
    form_type = None
    try:
        presence = page.evaluate(FORM_PRESENCE_SCRIPT) or {}
        has_form = bool(presence.get("hasForm")) or int(presence.get("inputCount") or 0) > 0
        form_type = presence.get("formType")
    except CapabilityError as e:
        logger.warning(f"Form presence check failed: {e}")

    blockers = detect_blockers(page, final_url)
    page_state = PageState(
        is_loaded=navigation.ok,
        has_form=has_form,
        form_type=form_type,
        final_url=final_url,
        blockers=blockers,
    )
    logger.info(
        f"Page loaded: has_form={has_form}, form_type={form_type}, "
        f"blockers={'yes' if blockers.detected else 'none'}"
    )
    return state.model_copy(update={"page_state": page_state, "current_step": "page_loaded"})


def after_page_load(state: ApplicationState) -> PageLoadRoute:
    """Pick the route after detect_load; blockers are checked in priority order."""
    page_state = state.page_state
    if page_state is None or not page_state.is_loaded:
        return PageLoadRoute.LOAD_FAILED
    blockers = page_state.blockers
    if blockers.has_login_required:
        return PageLoadRoute.LOGIN_REQUIRED
    if blockers.has_google_oauth:
        return PageLoadRoute.OAUTH_REQUIRED
    if blockers.has_email_verification:
        return PageLoadRoute.EMAIL_VERIFICATION_REQUIRED
    if blockers.has_blocking_modal or blockers.has_registration_required:
        return PageLoadRoute.BLOCKED
    if not page_state.has_form:
        return PageLoadRoute.NO_FORM
    return PageLoadRoute.ANALYZE_FORM


def analyze_form(state: ApplicationState, context: RunContext) -> ApplicationState:
    """Read the form's fields from the DOM, falling back to AI extraction."""
    if state.page_state is None or not state.page_state.has_form:
        logger.info("No form detected, skipping form analysis")
        return state.model_copy(update={
            "form_model": FormModel(success=False, error="No form detected on page"),
            "current_step": "form_analysis_skipped",
        })
    page = _require_page(context, "analyze_form")

    fields = ()
    dom_error = None
    try:
        fields = parse_form_elements(page.evaluate(FORM_EXTRACTION_SCRIPT))
    except CapabilityError as e:
        dom_error = str(e)
        logger.warning(f"DOM form extraction failed: {e}")

    if fields:
        return state.model_copy(update={
            "form_model": FormModel(success=True, fields=fields, source="dom"),
            "current_step": "form_analyzed",
        })

    try:
        discovered = page.extract(FORM_DISCOVERY_INSTRUCTION, DiscoveredForm)
        fields = discovered_to_fields(discovered)
    except CapabilityError as e:
        logger.error(f"Form analysis failed: {e}")
        error = f"{dom_error}; {e}" if dom_error else str(e)
        return state.with_error(
            "analyze_form",
            error,
            context.clock(),
            form_model=FormModel(success=False, error=error),
            current_step="form_analysis_failed",
        )

    if not fields:
        return state.model_copy(update={
            "form_model": FormModel(success=False, source="extraction", error="No form fields found"),
            "current_step": "form_analysis_skipped",
        })

    return state.model_copy(update={
        "form_model": FormModel(success=True, fields=fields, source="extraction"),
        "current_step": "form_analyzed",
    })


def map_fields(state: ApplicationState, context: RunContext) -> ApplicationState:
    """Resolve a candidate value for every analyzed field."""
    if not state.candidate:
        raise StateValidationError("map_fields needs candidate data")
    form_model = state.form_model
    if form_model is None or not form_model.success or not form_model.fields:
        logger.info("No analyzed form fields, skipping field mapping")
        return state.model_copy(update={
            "field_mapping": MappingResult(success=False, error="No form fields to map"),
            "current_step": "field_mapping_skipped",
        })

    today = context.clock().date()
    mapper = FieldMapper(inference=context.inference, today=today)
    result = mapper.map_fields(form_model.fields, state.candidate)
    return state.model_copy(update={"field_mapping": result, "current_step": "fields_mapped"})


def should_fill(mapping: FieldMapping, min_confidence: float, fill_low_confidence: bool) -> bool:
    """Whether a mapping is trustworthy enough to type into the page."""
    if not mapping.mapped or not mapping.value:
        return False
    if mapping.low_confidence:
        return fill_low_confidence
    return mapping.confidence >= min_confidence


def fill_form(state: ApplicationState, context: RunContext) -> ApplicationState:
    """Type mapped values into the page, one field at a time."""
    mapping = state.field_mapping
    if mapping is None or not mapping.success:
        logger.info("No field mapping, skipping form fill")
        return state.model_copy(update={
            "form_fill": FillResult(success=False, error="No field mapping available"),
            "current_step": "form_fill_skipped",
        })
    page = _require_page(context, "fill_form")

    selectors = {f.name: f.selector for f in state.form_model.fields} if state.form_model else {}
    config = context.config
    outcomes: list[FieldFillOutcome] = []
    for item in mapping.mappings:
        if not should_fill(item, config.min_fill_confidence, config.fill_low_confidence):
            continue
        try:
            result = page.evaluate(FILL_FIELD_SCRIPT, {
                "name": item.field_name,
                "selector": selectors.get(item.field_name),
                "value": item.value,
                "type": item.field_type,
            }) or {}
            filled = bool(result.get("filled"))
            reason = result.get("reason")
        except CapabilityError as e:
            filled, reason = False, str(e)
        if not filled:
            logger.warning(f"Could not fill '{item.field_name}': {reason}")
        outcomes.append(
            FieldFillOutcome(field_name=item.field_name, value=item.value, success=filled, reason=reason)
        )

    filled_count = sum(1 for o in outcomes if o.success)
    logger.info(f"Filled {filled_count}/{len(outcomes)} fields")
    return state.model_copy(update={
        "form_fill": FillResult(
            success=filled_count > 0,
            fields_filled=filled_count,
            outcomes=tuple(outcomes),
            error=None if filled_count else "No fields could be filled",
        ),
        "current_step": "form_filled" if filled_count else "form_fill_failed",
    })


def _resume_field_selector(state: ApplicationState) -> Optional[str]:
    if state.form_model is None:
        return None
    for form_field in state.form_model.fields:
        if form_field.type != "file":
            continue
        text = f"{form_field.name} {form_field.label or ''}".lower()
        if any(word in text for word in RESUME_FIELD_WORDS):
            return form_field.selector or f'input[type="file"][name="{form_field.name}"]'
    return None


def submit(state: ApplicationState, context: RunContext) -> ApplicationState:
    """Attach the resume, submit the form and look for a confirmation."""
    if state.form_fill is None or not state.form_fill.success:
        logger.info("Form was not filled, skipping submission")
        return state.model_copy(update={
            "submission": SubmissionResult(success=False, error="Form was not filled"),
            "current_step": "submission_skipped",
        })
    page = _require_page(context, "submit")

    resume_uploaded = False
    resume_error = None
    selector = _resume_field_selector(state)
    if state.resume_id and selector:
        if context.resume_store is None:
            resume_error = "No resume store configured"
        else:
            try:
                path = context.resume_store.fetch_resume_blob(state.resume_id)
                page.upload(selector, path)
                resume_uploaded = True
                logger.info(f"Uploaded resume {state.resume_id}")
            except CapabilityError as e:
                resume_error = str(e)
        if resume_error:
            logger.warning(f"Resume upload failed: {resume_error}")

    if not context.config.submit_applications:
        logger.info("Submission disabled, leaving form filled")
        return state.model_copy(update={
            "submission": SubmissionResult(
                success=False,
                resume_uploaded=resume_uploaded,
                resume_error=resume_error,
                error="Submission disabled",
            ),
            "current_step": "submission_skipped",
        })

    try:
        clicked = page.evaluate(SUBMIT_SCRIPT) or {}
    except CapabilityError as e:
        logger.error(f"Submit failed: {e}")
        return state.with_error(
            "submit",
            str(e),
            context.clock(),
            submission=SubmissionResult(
                success=False,
                resume_uploaded=resume_uploaded,
                resume_error=resume_error,
                error=str(e),
            ),
            current_step="submission_failed",
        )

    if not clicked.get("clicked"):
        return state.model_copy(update={
            "submission": SubmissionResult(
                success=False,
                resume_uploaded=resume_uploaded,
                resume_error=resume_error,
                error="No submit control found",
            ),
            "current_step": "submission_failed",
        })

    completion = detect_completion(page)
    submission = SubmissionResult(
        success=completion.is_complete,
        resume_uploaded=resume_uploaded,
        resume_error=resume_error,
        submitted=True,
        confirmed=completion.is_complete,
        signal=completion.signal.value,
        error=None if completion.is_complete else "No confirmation after submit",
    )
    return state.model_copy(update={
        "submission": submission,
        "current_step": "application_submitted" if completion.is_complete else "submission_unconfirmed",
    })


def build_application_graph() -> WorkflowGraph[ApplicationState]:
    graph = WorkflowGraph("application", ApplicationState)
    graph.add_step("detect_load", detect_load)
    graph.add_step("analyze_form", analyze_form)
    graph.add_step("map_fields", map_fields)
    graph.add_step("fill_form", fill_form)
    graph.add_step("submit", submit)
    graph.add_conditional_edge("detect_load", after_page_load, {
        PageLoadRoute.ANALYZE_FORM: "analyze_form",
        PageLoadRoute.LOAD_FAILED: END,
        PageLoadRoute.LOGIN_REQUIRED: END,
        PageLoadRoute.OAUTH_REQUIRED: END,
        PageLoadRoute.EMAIL_VERIFICATION_REQUIRED: END,
        PageLoadRoute.BLOCKED: END,
        PageLoadRoute.NO_FORM: END,
    })
    graph.add_edge("analyze_form", "map_fields")
    graph.add_edge("map_fields", "fill_form")
    graph.add_edge("fill_form", "submit")
    graph.add_edge("submit", END)
    graph.set_entry("detect_load")
    return graph.validate()


def initial_application_state(
    job_url: str,
    candidate: dict,
    resume_id: Optional[str] = None,
    job_description: Optional[dict] = None,
) -> ApplicationState:
    return ApplicationState(
        target={"url": job_url},
        candidate=candidate,
        resume_id=resume_id,
        job_description=job_description,
    )
