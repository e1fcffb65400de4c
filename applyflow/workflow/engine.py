"""Directed step graph and the engine that runs it."""
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Generic, Mapping, Optional, TypeVar

from ..core.errors import (
    EnvelopeViolation,
    GraphDefinitionError,
    StepLimitExceeded,
    UnknownEdgeLabel,
)
from .ports import RunContext
from .state import StateEnvelope

logger = logging.getLogger(__name__)

StateT = TypeVar("StateT", bound=StateEnvelope)

END = "__end__"

Step = Callable[[StateT, RunContext], StateT]
Decision = Callable[[StateT], Enum]
StepBudget = Callable[[StateT, RunContext], int]

DEFAULT_MAX_STEPS = 500


@dataclass(frozen=True)
class ConditionalEdge:
    decide: Callable
    routes: Mapping[Enum, str]
    labels: type[Enum]


class WorkflowGraph(Generic[StateT]):
    """Builder for a named graph of steps over one state type."""

    def __init__(self, name: str, state_type: type[StateT]) -> None:
        self.name = name
        self.state_type = state_type
        self._steps: dict[str, Callable] = {}
        self._edges: dict[str, str] = {}
        self._conditional: dict[str, ConditionalEdge] = {}
        self._entry: Optional[str] = None
        self._step_budget: Optional[StepBudget] = None

    @property
    def entry(self) -> str:
        if self._entry is None:
            raise GraphDefinitionError(f"Graph '{self.name}' has no entry step")
        return self._entry

    @property
    def steps(self) -> tuple[str, ...]:
        return tuple(self._steps)

    def add_step(self, name: str, fn: Step) -> "WorkflowGraph[StateT]":
        if name == END:
            raise GraphDefinitionError(f"'{END}' is reserved")
        if name in self._steps:
            raise GraphDefinitionError(f"Step '{name}' already registered")
        self._steps[name] = fn
        return self

    def add_edge(self, source: str, target: str) -> "WorkflowGraph[StateT]":
        if source in self._edges or source in self._conditional:
            raise GraphDefinitionError(f"Step '{source}' already has an outgoing edge")
        self._edges[source] = target
        return self

    def add_conditional_edge(
        self,
        source: str,
        decide: Decision,
        routes: Mapping[Enum, str],
    ) -> "WorkflowGraph[StateT]":
        """Route from ``source`` by the label ``decide`` returns.

        Every member of the label enum must be routed, so a missing branch is
        caught when the graph is built rather than mid-run.
        """
        if source in self._edges or source in self._conditional:
            raise GraphDefinitionError(f"Step '{source}' already has an outgoing edge")
        if not routes:
            raise GraphDefinitionError(f"Conditional edge from '{source}' has no routes")

        labels = {type(label) for label in routes}
        if len(labels) != 1:
            raise GraphDefinitionError(
                f"Conditional edge from '{source}' mixes label types: {labels}"
            )
        label_type = labels.pop()
        if not issubclass(label_type, Enum):
            raise GraphDefinitionError(f"Labels from '{source}' must be Enum members")

        missing = [member for member in label_type if member not in routes]
        if missing:
            names = ", ".join(m.name for m in missing)
            raise GraphDefinitionError(
                f"Conditional edge from '{source}' does not route: {names}"
            )

        self._conditional[source] = ConditionalEdge(decide, dict(routes), label_type)
        return self

    def set_entry(self, name: str) -> "WorkflowGraph[StateT]":
        self._entry = name
        return self

    def set_step_budget(self, budget: "StepBudget") -> "WorkflowGraph[StateT]":
        """Size the step limit from the run's own workload.

        ``budget`` sees the envelope before every step; the engine allows the
        larger of its own limit and the budget.
        """
        self._step_budget = budget
        return self

    def step_limit(self, default: int, state: StateT, context: RunContext) -> int:
        if self._step_budget is None:
            return default
        return max(default, self._step_budget(state, context))

    def validate(self) -> "WorkflowGraph[StateT]":
        """Check that the entry and every edge endpoint are registered steps."""
        if self.entry not in self._steps:
            raise GraphDefinitionError(f"Entry step '{self.entry}' is not registered")

        targets: list[tuple[str, str]] = list(self._edges.items())
        for source, edge in self._conditional.items():
            targets.extend((source, target) for target in edge.routes.values())

        for source, target in targets:
            if source not in self._steps:
                raise GraphDefinitionError(f"Edge source '{source}' is not registered")
            if target != END and target not in self._steps:
                raise GraphDefinitionError(
                    f"Edge '{source}' -> '{target}' points at an unknown step"
                )
        return self

    def step(self, name: str) -> Callable:
        return self._steps[name]

    def next_step(self, name: str, state: StateT) -> tuple[str, Optional[Enum]]:
        """Resolve the successor of ``name`` given the post-step envelope.

        Returns the next step name (or END) and the label that chose it, if any.
        """
        edge = self._conditional.get(name)
        if edge is not None:
            label = edge.decide(state)
            if not isinstance(label, edge.labels) or label not in edge.routes:
                raise UnknownEdgeLabel(name, label)
            return edge.routes[label], label
        return self._edges.get(name, END), None


class WorkflowEngine:
    """Runs a graph from its entry step until a terminal is reached."""

    def __init__(self, max_steps: int = DEFAULT_MAX_STEPS) -> None:
        self.max_steps = max_steps

    def run(
        self,
        graph: WorkflowGraph[StateT],
        initial_state: StateT,
        context: Optional[RunContext] = None,
    ) -> StateT:
        """Execute ``graph`` and return the final envelope.

        A step that raises is recorded on the envelope with ``status="failed"``
        and the run halts. UnknownEdgeLabel and EnvelopeViolation are
        programming errors and propagate.
        """
        context = context or RunContext()
        state = initial_state.model_copy(update={"status": "running"})
        current = graph.entry
        executed = 0

        logger.info(f"Starting '{graph.name}' workflow at '{current}'")

        while current != END:
            limit = graph.step_limit(self.max_steps, state, context)
            if executed >= limit:
                error = StepLimitExceeded(f"'{graph.name}' exceeded {limit} steps")
                logger.error(str(error))
                return state.with_error(current, str(error), context.clock(), status="failed")

            fn = graph.step(current)
            state = state.model_copy(update={"history": state.history + (current,)})
            executed += 1
            logger.debug(f"Running step '{current}'")

            try:
                result = fn(state, context)
            except Exception as e:
                logger.error(f"Step '{current}' failed: {e}")
                return state.with_error(current, str(e), context.clock(), status="failed")

            self._check_envelope(graph, current, state, result)
            state = result

            current, label = graph.next_step(current, state)
            if current == END and label is not None:
                state = state.model_copy(update={"status": label.value})

        if state.status == "running":
            state = state.model_copy(update={"status": "completed"})

        logger.info(
            f"'{graph.name}' workflow finished: status={state.status}, "
            f"steps={len(state.history)}, errors={len(state.errors)}"
        )
        return state

    @staticmethod
    def _check_envelope(
        graph: WorkflowGraph, step: str, before: StateEnvelope, after: object
    ) -> None:
        if not isinstance(after, graph.state_type):
            raise EnvelopeViolation(
                f"Step '{step}' returned {type(after).__name__}, "
                f"expected {graph.state_type.__name__}"
            )
        if after.errors[: len(before.errors)] != before.errors:
            raise EnvelopeViolation(f"Step '{step}' dropped recorded errors")
        if after.history != before.history:
            raise EnvelopeViolation(f"Step '{step}' rewrote the step history")
