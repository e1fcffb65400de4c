from __future__ import annotations

from enum import Enum

import pytest
from pydantic import ValidationError

from applyflow.core.errors import (
    EnvelopeViolation,
    GraphDefinitionError,
    StateValidationError,
    UnknownEdgeLabel,
)
from applyflow.workflow.engine import END, WorkflowEngine, WorkflowGraph
from applyflow.workflow.ports import RunContext
from applyflow.workflow.state import StateEnvelope


class Counter(StateEnvelope):
    count: int = 0


class Loop(Enum):
    AGAIN = "again"
    STOP = "stop"


class Verdict(Enum):
    OK = "ok"
    REJECTED = "rejected"


def increment(state: Counter, context: RunContext) -> Counter:
    return state.model_copy(update={"count": state.count + 1, "current_step": "incremented"})


def loop_until(limit: int):
    def decide(state: Counter) -> Loop:
        return Loop.STOP if state.count >= limit else Loop.AGAIN
    return decide


def counting_graph(limit: int) -> WorkflowGraph[Counter]:
    graph = WorkflowGraph("counting", Counter)
    graph.add_step("increment", increment)
    graph.add_conditional_edge("increment", loop_until(limit), {
        Loop.AGAIN: "increment",
        Loop.STOP: END,
    })
    graph.set_entry("increment")
    return graph.validate()


class TestGraphDefinition:
    def test_incomplete_routes_rejected_at_build(self) -> None:
        graph = WorkflowGraph("g", Counter).add_step("a", increment)
        with pytest.raises(GraphDefinitionError, match="STOP"):
            graph.add_conditional_edge("a", loop_until(1), {Loop.AGAIN: "a"})

    def test_mixed_label_types_rejected(self) -> None:
        graph = WorkflowGraph("g", Counter).add_step("a", increment)
        with pytest.raises(GraphDefinitionError):
            graph.add_conditional_edge("a", loop_until(1), {
                Loop.AGAIN: "a", Loop.STOP: END, Verdict.OK: END,
            })

    def test_non_enum_labels_rejected(self) -> None:
        graph = WorkflowGraph("g", Counter).add_step("a", increment)
        with pytest.raises(GraphDefinitionError):
            graph.add_conditional_edge("a", lambda s: "x", {"x": END})

    def test_edge_to_unknown_step_rejected(self) -> None:
        graph = WorkflowGraph("g", Counter).add_step("a", increment)
        graph.add_edge("a", "missing").set_entry("a")
        with pytest.raises(GraphDefinitionError, match="missing"):
            graph.validate()

    def test_second_outgoing_edge_rejected(self) -> None:
        graph = WorkflowGraph("g", Counter).add_step("a", increment).add_step("b", increment)
        graph.add_edge("a", "b")
        with pytest.raises(GraphDefinitionError):
            graph.add_edge("a", END)

    def test_duplicate_and_reserved_step_names(self) -> None:
        graph = WorkflowGraph("g", Counter).add_step("a", increment)
        with pytest.raises(GraphDefinitionError):
            graph.add_step("a", increment)
        with pytest.raises(GraphDefinitionError):
            graph.add_step(END, increment)

    def test_missing_entry(self) -> None:
        graph = WorkflowGraph("g", Counter).add_step("a", increment)
        with pytest.raises(GraphDefinitionError):
            graph.validate()


class TestRun:
    def test_linear_run_completes(self) -> None:
        graph = WorkflowGraph("linear", Counter)
        graph.add_step("one", increment).add_step("two", increment)
        graph.add_edge("one", "two").set_entry("one").validate()

        result = WorkflowEngine().run(graph, Counter())

        assert result.count == 2
        assert result.status == "completed"
        assert result.history == ("one", "two")
        assert result.errors == ()

    def test_conditional_loop_and_terminal_label(self) -> None:
        result = WorkflowEngine().run(counting_graph(3), Counter())

        assert result.count == 3
        assert result.status == "stop"
        assert result.history == ("increment",) * 3

    def test_initial_state_not_modified(self) -> None:
        initial = Counter()
        WorkflowEngine().run(counting_graph(2), initial)
        assert initial.count == 0
        assert initial.status == "pending"
        assert initial.history == ()

    def test_runs_are_deterministic(self) -> None:
        engine = WorkflowEngine()
        first = engine.run(counting_graph(4), Counter())
        second = engine.run(counting_graph(4), Counter())
        assert first == second

    def test_step_exception_recorded_and_run_halts(self, make_context) -> None:
        def explode(state: Counter, context: RunContext) -> Counter:
            raise StateValidationError("needs a page")

        graph = WorkflowGraph("failing", Counter)
        graph.add_step("one", increment).add_step("explode", explode).add_step("never", increment)
        graph.add_edge("one", "explode").add_edge("explode", "never")
        graph.set_entry("one").validate()

        result = WorkflowEngine().run(graph, Counter(), make_context())

        assert result.status == "failed"
        assert result.count == 1
        assert result.history == ("one", "explode")
        assert len(result.errors) == 1
        assert result.errors[0].step == "explode"
        assert result.errors[0].error == "needs a page"
        assert result.errors[0].timestamp.year == 2024

    def test_step_limit(self) -> None:
        result = WorkflowEngine(max_steps=5).run(counting_graph(100), Counter())

        assert result.status == "failed"
        assert result.count == 5
        assert len(result.history) == 5
        assert "exceeded 5 steps" in result.errors[-1].error

    def test_step_budget_raises_limit(self) -> None:
        graph = counting_graph(40).set_step_budget(lambda state, context: 50)

        result = WorkflowEngine(max_steps=5).run(graph, Counter())

        assert result.status == "completed"
        assert result.count == 40

    def test_step_budget_never_lowers_limit(self) -> None:
        graph = counting_graph(8).set_step_budget(lambda state, context: 1)

        result = WorkflowEngine(max_steps=10).run(graph, Counter())

        assert result.status == "completed"
        assert result.count == 8

    def test_step_budget_reads_state(self) -> None:
        graph = counting_graph(100).set_step_budget(lambda state, context: 20 if state.count else 0)

        result = WorkflowEngine(max_steps=3).run(graph, Counter())

        assert result.status == "failed"
        assert result.count == 20
        assert "exceeded 20 steps" in result.errors[-1].error

    def test_unrouted_label_raises(self) -> None:
        graph = WorkflowGraph("bad", Counter).add_step("a", increment)
        graph.add_conditional_edge("a", lambda s: Verdict.OK, {Loop.AGAIN: "a", Loop.STOP: END})
        graph.set_entry("a").validate()

        with pytest.raises(UnknownEdgeLabel) as exc_info:
            WorkflowEngine().run(graph, Counter())
        assert exc_info.value.step == "a"
        assert exc_info.value.label is Verdict.OK

    def test_step_returning_other_type_is_violation(self) -> None:
        graph = WorkflowGraph("bad", Counter)
        graph.add_step("a", lambda state, context: {"count": 1})
        graph.set_entry("a").validate()

        with pytest.raises(EnvelopeViolation):
            WorkflowEngine().run(graph, Counter())

    def test_step_dropping_errors_is_violation(self, clock) -> None:
        def forget(state: Counter, context: RunContext) -> Counter:
            return state.model_copy(update={"errors": ()})

        graph = WorkflowGraph("bad", Counter).add_step("a", forget).set_entry("a").validate()
        initial = Counter().with_error("earlier", "boom", clock())

        with pytest.raises(EnvelopeViolation, match="errors"):
            WorkflowEngine().run(graph, initial)

    def test_step_rewriting_history_is_violation(self) -> None:
        def rewrite(state: Counter, context: RunContext) -> Counter:
            return state.model_copy(update={"history": ()})

        graph = WorkflowGraph("bad", Counter).add_step("a", rewrite).set_entry("a").validate()

        with pytest.raises(EnvelopeViolation, match="history"):
            WorkflowEngine().run(graph, Counter())

    def test_envelope_is_frozen(self) -> None:
        state = Counter()
        with pytest.raises(ValidationError):
            state.count = 5
