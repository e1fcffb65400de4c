from __future__ import annotations

import json
import logging
import threading
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Iterable, Literal

from ..workflow.state import StateEnvelope

logger = logging.getLogger(__name__)

FailureType = Literal[
    "step_failed",
    "blocked",
    "load_failed",
    "no_form",
    "unconfirmed",
    "crash",
]

DEFAULT_LOG_PATH = Path("data/failures.jsonl")

BLOCKER_STATUSES: frozenset[str] = frozenset({
    "login_required",
    "oauth_required",
    "email_verification_required",
    "blocked",
})


@dataclass
class RunFailure:
    timestamp: str
    workflow: str
    target_url: str
    failure_type: FailureType
    status: str
    current_step: str
    errors: list[dict[str, Any]] = field(default_factory=list)
    details: dict[str, Any] = field(default_factory=dict)
    addressed: bool = False


def classify_failure(state: StateEnvelope) -> FailureType:
    """Failure category for a finished run that did not succeed."""
    if state.status == "failed":
        return "step_failed"
    if state.status in BLOCKER_STATUSES:
        return "blocked"
    if state.status == "load_failed":
        return "load_failed"
    if state.status == "no_form":
        return "no_form"
    return "unconfirmed"


def failure_from_state(workflow: str, state: StateEnvelope, timestamp: str) -> RunFailure:
    return RunFailure(
        timestamp=timestamp,
        workflow=workflow,
        target_url=state.target.url or state.target.domain or "",
        failure_type=classify_failure(state),
        status=state.status,
        current_step=state.current_step,
        errors=[e.model_dump(mode="json") for e in state.errors],
        details={"history": list(state.history)},
    )


class RunFailureLogger:
    def __init__(self, log_path: Path | None = None) -> None:
        self._log_path = log_path or DEFAULT_LOG_PATH
        self._lock = threading.Lock()

    def _ensure_directory(self) -> None:
        self._log_path.parent.mkdir(parents=True, exist_ok=True)

    def _serialize(self, failure: RunFailure) -> str:
        return json.dumps(asdict(failure), default=str)

    def log(self, failure: RunFailure) -> None:
        self._ensure_directory()
        line = self._serialize(failure) + "\n"
        with self._lock:
            with open(self._log_path, "a", encoding="utf-8") as f:
                f.write(line)

    def _read_lines(self) -> list[str]:
        if not self._log_path.exists():
            return []
        with open(self._log_path, "r", encoding="utf-8") as f:
            return [line.strip() for line in f if line.strip()]

    def read_all(
        self, include_addressed: bool = False, workflow: str | None = None
    ) -> list[RunFailure]:
        """Logged failures, oldest first. Lines that don't parse are skipped."""
        with self._lock:
            lines = self._read_lines()

        failures: list[RunFailure] = []
        for number, line in enumerate(lines, start=1):
            try:
                failure = RunFailure(**json.loads(line))
            except (json.JSONDecodeError, TypeError) as e:
                logger.warning(f"Skipping malformed failure record {number} in {self._log_path}: {e}")
                continue
            if failure.addressed and not include_addressed:
                continue
            if workflow is not None and failure.workflow != workflow:
                continue
            failures.append(failure)
        return failures

    def mark_addressed(self, timestamps: Iterable[str]) -> int:
        """Flag the failures logged at ``timestamps`` and return how many changed.

        Unparseable lines are written back untouched.
        """
        wanted = set(timestamps)
        if not wanted:
            return 0

        changed = 0
        with self._lock:
            rewritten: list[str] = []
            for line in self._read_lines():
                try:
                    data = json.loads(line)
                except json.JSONDecodeError:
                    rewritten.append(line)
                    continue
                if isinstance(data, dict) and data.get("timestamp") in wanted and not data.get("addressed"):
                    data["addressed"] = True
                    line = json.dumps(data, default=str)
                    changed += 1
                rewritten.append(line)

            if changed:
                with open(self._log_path, "w", encoding="utf-8") as f:
                    f.writelines(f"{line}\n" for line in rewritten)

        logger.info(f"Marked {changed} failure(s) addressed")
        return changed
