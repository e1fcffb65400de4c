from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional

import pytest

from applyflow.core.config import WorkflowConfig
from applyflow.core.errors import InferenceError
from applyflow.workflow.ports import NavigationResult, RunContext

FIXED_NOW = datetime(2024, 5, 16, 12, 0, tzinfo=timezone.utc)


def _resolve(value: Any, arg: Any) -> Any:
    """Scripted answer: raise exceptions, call callables, pop from lists of answers."""
    if isinstance(value, ScriptedSequence):
        value = value.next()
    if isinstance(value, BaseException):
        raise value
    if callable(value):
        return value(arg)
    return value


class ScriptedSequence:
    """Answers returned one per call; the last one repeats."""

    def __init__(self, *answers: Any) -> None:
        self._answers = list(answers)

    def next(self) -> Any:
        if len(self._answers) > 1:
            return self._answers.pop(0)
        return self._answers[0]


class FakePage:
    """Page capability with scripted results.

    ``scripts`` maps a script string to its result, ``extracts`` maps a schema
    class to its answer. Unscripted extractions raise InferenceError.
    """

    def __init__(
        self,
        scripts: Optional[dict[str, Any]] = None,
        extracts: Optional[dict[type, Any]] = None,
        navigation: Any = None,
    ) -> None:
        self.scripts = dict(scripts or {})
        self.extracts = dict(extracts or {})
        self.navigation = navigation
        self.calls: list[tuple[str, Any]] = []
        self.uploads: list[tuple[str, Path]] = []
        self.evaluated: list[tuple[str, Any]] = []
        self.url = ""

    def navigate(self, url: str) -> NavigationResult:
        self.calls.append(("navigate", url))
        if self.navigation is not None:
            result = _resolve(self.navigation, url)
            self.url = result.final_url
            return result
        self.url = url
        return NavigationResult(ok=True, final_url=url)

    def extract(self, instruction: str, schema: type) -> Any:
        self.calls.append(("extract", schema.__name__))
        if schema not in self.extracts:
            raise InferenceError(f"No scripted {schema.__name__}")
        return _resolve(self.extracts[schema], instruction)

    def evaluate(self, script: str, arg: Any = None) -> Any:
        self.calls.append(("evaluate", script))
        self.evaluated.append((script, arg))
        return _resolve(self.scripts.get(script), arg)

    def upload(self, selector: str, path: Path) -> None:
        self.calls.append(("upload", selector))
        self.uploads.append((selector, path))

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def scripts_run(self) -> list[str]:
        return [script for script, _ in self.evaluated]

    def args_for(self, script: str) -> list[Any]:
        return [arg for s, arg in self.evaluated if s == script]


class FakeInference:
    """Inference capability answering per schema class."""

    def __init__(self, answers: Optional[dict[type, Any]] = None) -> None:
        self.answers = dict(answers or {})
        self.prompts: list[tuple[str, type]] = []

    def classify(self, instruction: str, schema: type) -> Any:
        self.prompts.append((instruction, schema))
        if schema not in self.answers:
            raise InferenceError(f"No scripted {schema.__name__}")
        return _resolve(self.answers[schema], instruction)


class FakeResumeStore:
    def __init__(self, path: Optional[Path] = None, error: Optional[Exception] = None) -> None:
        self.path = path or Path("/tmp/resume_abc.pdf")
        self.error = error
        self.requested: list[str] = []

    def fetch_resume_blob(self, resume_id: str) -> Path:
        self.requested.append(resume_id)
        if self.error is not None:
            raise self.error
        return self.path


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW


@pytest.fixture
def page_factory() -> type[FakePage]:
    return FakePage


@pytest.fixture
def inference_factory() -> type[FakeInference]:
    return FakeInference


@pytest.fixture
def resume_store_factory() -> type[FakeResumeStore]:
    return FakeResumeStore


@pytest.fixture
def sequence() -> type[ScriptedSequence]:
    return ScriptedSequence


@pytest.fixture
def make_context(clock: Callable[[], datetime]) -> Callable[..., RunContext]:
    def _make(
        page: Any = None,
        inference: Any = None,
        resume_store: Any = None,
        job_store: Any = None,
        **config: Any,
    ) -> RunContext:
        return RunContext(
            page=page,
            inference=inference,
            resume_store=resume_store,
            job_store=job_store,
            config=WorkflowConfig(**config),
            clock=clock,
        )

    return _make


@pytest.fixture
def candidate() -> dict[str, Any]:
    return {
        "personal": {
            "firstName": "Jane",
            "lastName": "Smith",
            "email": "jane.smith@example.com",
            "phone": "+1 555 0100",
            "location": "New York, NY, USA",
            "dateOfBirth": "1990-05-15",
        },
        "skills": ["Python", "SQL"],
        "yearsExperience": 6,
    }
