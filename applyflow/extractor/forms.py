"""Form field extraction from the current page."""
import logging
from typing import Any, Iterable, Optional

from ..agent.schemas import DiscoveredForm
from ..workflow.state import FIELD_TYPES, FormField
from .models import FormElement

logger = logging.getLogger(__name__)

FORM_EXTRACTION_SCRIPT = """
() => {
    const results = [];
    const seen = new Set();

    function getSelector(el) {
        if (el.id) return '#' + CSS.escape(el.id);
        if (el.name) return `${el.tagName.toLowerCase()}[name="${el.name}"]`;

        let path = [];
        while (el && el.nodeType === Node.ELEMENT_NODE) {
            let selector = el.nodeName.toLowerCase();
            if (el.id) {
                path.unshift('#' + CSS.escape(el.id));
                break;
            }
            let sib = el, nth = 1;
            while (sib = sib.previousElementSibling) {
                if (sib.nodeName === el.nodeName) nth++;
            }
            if (nth > 1) selector += `:nth-of-type(${nth})`;
            path.unshift(selector);
            el = el.parentNode;
        }
        return path.join(' > ');
    }

    function getLabel(el) {
        if (el.id) {
            const label = document.querySelector(`label[for="${CSS.escape(el.id)}"]`);
            if (label) return label.textContent.trim();
        }
        const parentLabel = el.closest('label');
        if (parentLabel) return parentLabel.textContent.trim();
        if (el.getAttribute('aria-label')) return el.getAttribute('aria-label');
        const prev = el.previousElementSibling;
        if (prev && prev.tagName === 'LABEL') return prev.textContent.trim();
        return el.placeholder || null;
    }

    const inputs = document.querySelectorAll('input, select, textarea');

    inputs.forEach(el => {
        const selector = getSelector(el);
        if (seen.has(selector)) return;
        seen.add(selector);

        const rect = el.getBoundingClientRect();
        const visible = rect.width > 0 && rect.height > 0;
        // file inputs are often visually hidden behind a styled button
        if (!visible && el.type !== 'file') return;

        const element = {
            selector: selector,
            tag: el.tagName.toLowerCase(),
            type: el.type || null,
            name: el.name || null,
            id: el.id || null,
            label: getLabel(el),
            placeholder: el.placeholder || null,
            required: el.required || el.getAttribute('aria-required') === 'true',
            visible: visible
        };

        if (el.tagName === 'SELECT') {
            element.options = Array.from(el.options)
                .map(o => o.text.trim())
                .filter(t => t.length > 0);
        }

        results.push(element);
    });

    return results;
}
"""

# input types that never carry candidate data
SKIPPED_INPUT_TYPES: frozenset[str] = frozenset({
    "hidden", "submit", "button", "reset", "image", "checkbox", "radio",
    "search", "password", "range", "color",
})

INPUT_TYPE_MAP: dict[str, str] = {
    "email": "email",
    "tel": "phone",
    "file": "file",
    "date": "date",
    "number": "number",
    "url": "text",
    "text": "text",
}

# option placeholders like "Select..." are not real choices
PLACEHOLDER_OPTIONS: tuple[str, ...] = ("select", "choose", "please select", "--", "-")


def infer_field_type(name: str) -> str:
    """Guess a field type from its name when the page does not say."""
    lowered = name.lower()
    if "email" in lowered:
        return "email"
    if "phone" in lowered or "mobile" in lowered:
        return "phone"
    if "resume" in lowered or "cv" in lowered.split("_") or "upload" in lowered:
        return "file"
    if "letter" in lowered or "message" in lowered or "description" in lowered:
        return "textarea"
    if "date" in lowered or "dob" in lowered:
        return "date"
    return "text"


def _clean_options(options: Optional[Iterable[str]]) -> tuple[str, ...]:
    cleaned = []
    for option in options or ():
        text = option.strip()
        if not text:
            continue
        if text.lower().rstrip(".") in PLACEHOLDER_OPTIONS or text.lower().startswith("select "):
            continue
        cleaned.append(text)
    return tuple(cleaned)


def element_to_field(element: FormElement) -> Optional[FormField]:
    """Convert an extracted DOM element to a form field, or None to skip it."""
    name = element.name or element.id or element.label
    if not name:
        return None

    if element.tag == "select":
        field_type = "select"
    elif element.tag == "textarea":
        field_type = "textarea"
    else:
        input_type = (element.type or "text").lower()
        if input_type in SKIPPED_INPUT_TYPES:
            return None
        field_type = INPUT_TYPE_MAP.get(input_type, "text")

    return FormField(
        name=name,
        type=field_type,
        options=_clean_options(element.options),
        label=element.label,
        selector=element.selector,
        required=element.required,
    )


def parse_form_elements(raw_elements: Any) -> tuple[FormField, ...]:
    """Turn the output of FORM_EXTRACTION_SCRIPT into ordered form fields."""
    if not isinstance(raw_elements, list):
        return ()
    fields: list[FormField] = []
    seen: set[str] = set()
    for raw in raw_elements:
        try:
            element = FormElement(**raw)
        except (TypeError, ValueError) as e:
            logger.debug(f"Skipping malformed element {raw!r}: {e}")
            continue
        form_field = element_to_field(element)
        if form_field is None or form_field.name in seen:
            continue
        seen.add(form_field.name)
        fields.append(form_field)
    logger.info(f"Extracted {len(fields)} form fields")
    return tuple(fields)


def discovered_to_fields(form: DiscoveredForm) -> tuple[FormField, ...]:
    """Turn an AI-extracted form description into ordered form fields."""
    fields: list[FormField] = []
    seen: set[str] = set()
    for item in form.fields:
        name = item.name.strip()
        if not name or name in seen:
            continue
        seen.add(name)
        field_type = item.type.lower() if item.type.lower() in FIELD_TYPES else infer_field_type(name)
        fields.append(
            FormField(
                name=name,
                type=field_type,
                options=_clean_options(item.options),
                label=item.label,
                required=item.required,
            )
        )
    return tuple(fields)
