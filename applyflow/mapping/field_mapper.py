"""Maps normalized candidate data onto detected form fields."""
import logging
from datetime import date
from typing import Any, Mapping, Optional, Sequence

from ..agent.prompts import build_field_prompt
from ..agent.schemas import FieldAnswer
from ..core.errors import CapabilityError
from ..workflow.ports import InferenceCapability
from ..workflow.state import FieldMapping, FormField, MappingResult, UnfilledField
from .candidate import NormalizedCandidate, normalize_candidate
from .rules import PATTERN_RULES, SEMANTIC_RULES, FieldName, FieldRule

logger = logging.getLogger(__name__)

NON_MAPPABLE_TYPES: frozenset[str] = frozenset({"file"})
NON_MAPPABLE_REASON = "Non-mappable field - requires special handling"
LOW_CONFIDENCE_THRESHOLD = 0.5


def match_option(value: str, options: Sequence[str]) -> Optional[str]:
    """Pick the select option that corresponds to ``value``.

    Exact case-insensitive matches win over containment in either direction.
    Returns None rather than guessing when nothing matches.
    """
    wanted = value.strip().lower()
    if not wanted:
        return None
    for option in options:
        if option.strip().lower() == wanted:
            return option
    for option in options:
        text = option.strip().lower()
        if text and (wanted in text or text in wanted):
            return option
    return None


class FieldMapper:
    """Resolves a value for each form field from a candidate record.

    Resolution order per field: pattern rules, semantic keyword rules, then the
    inference backend when one is configured. The mapper never mutates the
    candidate or the field list it is given.
    """

    def __init__(
        self,
        inference: Optional[InferenceCapability] = None,
        today: Optional[date] = None,
    ) -> None:
        self._inference = inference
        self._today = today

    def map_fields(
        self, fields: Sequence[FormField], candidate: Mapping[str, Any]
    ) -> MappingResult:
        """Map every field, listing non-mappable ones separately.

        Args:
            fields: Detected form fields in page order.
            candidate: Raw candidate record.

        Returns:
            MappingResult with one entry per mappable field.
        """
        normalized = normalize_candidate(candidate, today=self._today)
        mappings: list[FieldMapping] = []
        unfilled: list[UnfilledField] = []

        for form_field in fields:
            if form_field.type in NON_MAPPABLE_TYPES:
                unfilled.append(
                    UnfilledField(
                        field_name=form_field.name,
                        field_type=form_field.type,
                        reason=NON_MAPPABLE_REASON,
                    )
                )
                continue
            mappings.append(self.map_field(form_field, normalized))

        result = MappingResult(
            success=True,
            mappings=tuple(mappings),
            unfilled_fields=tuple(unfilled),
        )
        logger.info(
            f"Mapped {result.mapped_count}/{len(mappings)} fields "
            f"({len(unfilled)} non-mappable)"
        )
        return result

    def map_field(self, form_field: FormField, candidate: NormalizedCandidate) -> FieldMapping:
        """Resolve a single field against a normalized candidate."""
        names = [n for n in (FieldName.parse(form_field.name), FieldName.parse(form_field.label)) if n]

        rule = self._find_pattern_rule(names)
        if rule is not None:
            mapping = self._from_attributes(
                form_field, candidate, rule.attributes, rule.confidence, rule.reason, "pattern"
            )
            if mapping is not None:
                return mapping

        for semantic in SEMANTIC_RULES:
            if any(semantic.matches(n) for n in names):
                mapping = self._from_attributes(
                    form_field, candidate, semantic.attributes,
                    semantic.confidence, semantic.reason, "semantic",
                )
                if mapping is not None:
                    return mapping

        if self._inference is not None:
            return self._from_inference(form_field, candidate)

        return self._unmapped(form_field, "No matching candidate data")

    @staticmethod
    def _find_pattern_rule(names: Sequence[FieldName]) -> Optional[FieldRule]:
        for name in names:
            for rule in PATTERN_RULES:
                if rule.matches_exactly(name):
                    return rule
        for name in names:
            for rule in PATTERN_RULES:
                if rule.matches_partially(name):
                    return rule
        return None

    def _from_attributes(
        self,
        form_field: FormField,
        candidate: NormalizedCandidate,
        attributes: Sequence[str],
        confidence: float,
        reason: str,
        source: str,
    ) -> Optional[FieldMapping]:
        value = next((getattr(candidate, a) for a in attributes if getattr(candidate, a)), "")
        if not value:
            return None
        if form_field.type == "select":
            option = match_option(value, form_field.options)
            if option is None:
                logger.debug(f"No option of '{form_field.name}' matches {value!r}")
                return None
            value = option
        return FieldMapping(
            field_name=form_field.name,
            field_type=form_field.type,
            mapped=True,
            value=value,
            confidence=confidence,
            reason=reason,
            source=source,
        )

    def _from_inference(
        self, form_field: FormField, candidate: NormalizedCandidate
    ) -> FieldMapping:
        prompt = build_field_prompt(
            form_field.name,
            form_field.type,
            form_field.label,
            form_field.options,
            candidate.as_prompt_dict(),
        )
        try:
            answer = self._inference.classify(prompt, FieldAnswer)
        except CapabilityError as e:
            logger.warning(f"Inference failed for '{form_field.name}': {e}")
            return self._unmapped(form_field, f"Inference failed: {e}")

        value = (answer.value or "").strip()
        confidence = min(max(answer.confidence, 0.0), 1.0)
        if not value or confidence <= 0:
            return self._unmapped(form_field, "Inference found no value")

        if form_field.type == "select":
            option = match_option(value, form_field.options)
            if option is None:
                return self._unmapped(
                    form_field, f"Inferred value {value!r} matches no option"
                )
            value = option

        return FieldMapping(
            field_name=form_field.name,
            field_type=form_field.type,
            mapped=True,
            value=value,
            confidence=confidence,
            reason=f"Inference: {answer.reasoning}" if answer.reasoning else "Inference",
            source="inference",
            low_confidence=confidence <= LOW_CONFIDENCE_THRESHOLD,
        )

    @staticmethod
    def _unmapped(form_field: FormField, reason: str) -> FieldMapping:
        return FieldMapping(
            field_name=form_field.name,
            field_type=form_field.type,
            mapped=False,
            value=None,
            confidence=0.0,
            reason=reason,
            source="none",
        )
