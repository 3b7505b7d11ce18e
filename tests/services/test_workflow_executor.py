"""WorkflowExecutor: table membership, guards, traces."""

import pytest

from rental_kernel.domain.workflow import Guard, Transition, Workflow
from rental_services.workflow_executor import WorkflowExecutor

OPEN = Guard("door_unlocked", "Door must be unlocked")

DOOR = Workflow(
    name="door",
    description="test workflow",
    initial_state="CLOSED",
    states=("CLOSED", "OPEN", "GONE"),
    transitions=(
        Transition("CLOSED", "OPEN", "open", guard=OPEN),
        Transition("OPEN", "CLOSED", "close"),
        Transition("OPEN", "GONE", "remove", posts_entry=True),
    ),
    terminal_states=("GONE",),
)


@pytest.fixture
def executor():
    return WorkflowExecutor()


class TestWorkflowDefinition:

    def test_unknown_state_rejected(self):
        with pytest.raises(ValueError, match="unknown state"):
            Workflow("bad", "", "A", ("A",), (Transition("A", "B", "go"),))

    def test_terminal_with_exit_rejected(self):
        with pytest.raises(ValueError, match="terminal"):
            Workflow("bad", "", "A", ("A", "B"), (Transition("B", "A", "back"),), ("B",))

    def test_allowed_targets(self):
        assert DOOR.allowed_targets("OPEN") == {"CLOSED", "GONE"}
        assert DOOR.allowed_targets("GONE") == frozenset()
        assert DOOR.find_by_action("OPEN", "remove").to_state == "GONE"


class TestExecuteTransition:

    def test_missing_transition(self, executor):
        result = executor.execute_transition(DOOR, "CLOSED", "GONE", "door")
        assert not result.success
        assert "CLOSED" in result.reason and "GONE" in result.reason

    def test_guard_without_evaluator_fails_closed(self, executor):
        result = executor.execute_transition(DOOR, "CLOSED", "OPEN", "door")
        assert not result.success
        assert result.guard_name == "door_unlocked"

    def test_guard_passes(self, executor):
        executor.guards.register("door_unlocked", lambda ctx: ctx["unlocked"])
        assert executor.execute_transition(DOOR, "CLOSED", "OPEN", "door", context={"unlocked": True}).success
        assert not executor.execute_transition(DOOR, "CLOSED", "OPEN", "door", context={"unlocked": False}).success

    def test_raising_guard_fails_closed(self, executor):
        executor.guards.register("door_unlocked", lambda ctx: ctx["missing"])
        result = executor.execute_transition(DOOR, "CLOSED", "OPEN", "door", context={})
        assert not result.success
        assert result.reason == "Door must be unlocked"

    def test_posts_entry_flag(self, executor):
        assert executor.execute_transition(DOOR, "OPEN", "GONE", "door").posts_entry

    def test_trace_emitted(self, executor, captured_logs):
        executor.execute_transition(DOOR, "OPEN", "CLOSED", "door")
        trace = next(r for r in captured_logs() if r["message"] == "workflow_transition")
        assert trace["trace_type"] == "WORKFLOW_TRANSITION"
        assert trace["outcome"] == "success"
        assert trace["workflow"] == "door"
