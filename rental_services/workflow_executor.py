"""
rental_services.workflow_executor -- Workflow transition execution.

Responsibility:
    Decides whether a state change is permitted: the transition must exist
    in the workflow table AND its guard (if any) must pass.  Used by the
    bill, listing and lease services so the three state machines share one
    evaluation path and one trace format.

Architecture position:
    Services layer.  Pure decision; does not write the new state.

Invariants enforced:
    - Table membership and guard are both required; neither replaces the other.
    - A refused transition names both the current and the requested state.
    - Unknown guard names fail closed.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from rental_kernel.domain.workflow import Guard, Transition, Workflow
from rental_kernel.logging_config import LogContext, get_logger

logger = get_logger("services.workflow_executor")

TRACE_TYPE_WORKFLOW_TRANSITION = "WORKFLOW_TRANSITION"
OUTCOME_SUCCESS = "success"
OUTCOME_GUARD_FAILED = "guard_failed"
OUTCOME_NO_TRANSITION = "no_transition"


@dataclass(frozen=True)
class TransitionResult:
    success: bool
    from_state: str
    to_state: str
    reason: str | None = None
    guard_name: str | None = None
    posts_entry: bool = False


def _emit_workflow_trace(
    workflow_name: str,
    entity_type: str,
    entity_id: UUID | None,
    from_state: str,
    to_state: str,
    outcome: str,
    reason: str | None,
    duration_ms: float,
) -> None:
    record: dict[str, Any] = {
        "trace_type": TRACE_TYPE_WORKFLOW_TRANSITION,
        "workflow": workflow_name,
        "entity_type": entity_type,
        "entity_id": str(entity_id) if entity_id else None,
        "from_state": from_state,
        "to_state": to_state,
        "outcome": outcome,
        "reason": reason,
        "duration_ms": round(duration_ms, 3),
    }
    record.update(LogContext.get_all())
    logger.info("workflow_transition", extra=record)


class GuardExecutor:
    """Evaluates workflow guards against context.

    Guards are declared on transitions (name + description).  This executor
    holds the evaluation logic per guard name.
    """

    def __init__(self) -> None:
        self._evaluators: dict[str, Callable[[Any], bool]] = {}

    def register(self, guard_name: str, evaluator: Callable[[Any], bool]) -> None:
        self._evaluators[guard_name] = evaluator

    def evaluate(self, guard: Guard, context: Any = None) -> bool:
        fn = self._evaluators.get(guard.name)
        if fn is None:
            logger.warning("guard_no_evaluator", extra={"guard_name": guard.name})
            return False
        try:
            return bool(fn(context))
        except Exception as e:  # noqa: BLE001
            logger.warning(
                "guard_evaluation_error",
                extra={"guard_name": guard.name, "error": str(e)},
            )
            return False


class WorkflowExecutor:
    """Checks a requested state change against a workflow and its guards."""

    def __init__(self, guard_executor: GuardExecutor | None = None) -> None:
        self._guard_executor = guard_executor or GuardExecutor()

    @property
    def guards(self) -> GuardExecutor:
        return self._guard_executor

    def execute_transition(
        self,
        workflow: Workflow,
        current_state: str,
        requested_state: str,
        entity_type: str,
        entity_id: UUID | None = None,
        context: Any = None,
    ) -> TransitionResult:
        """
        Returns a successful TransitionResult when ``current_state ->
        requested_state`` is in ``workflow`` and its guard passes.
        """
        t0 = time.monotonic()
        transition: Transition | None = workflow.find(current_state, requested_state)

        if transition is None:
            reason = (
                f"No transition from '{current_state}' to '{requested_state}' "
                f"in workflow '{workflow.name}'"
            )
            _emit_workflow_trace(
                workflow.name, entity_type, entity_id, current_state, requested_state,
                OUTCOME_NO_TRANSITION, reason, (time.monotonic() - t0) * 1000,
            )
            return TransitionResult(False, current_state, requested_state, reason=reason)

        if transition.guard is not None and not self._guard_executor.evaluate(
            transition.guard, context
        ):
            reason = transition.guard.description
            _emit_workflow_trace(
                workflow.name, entity_type, entity_id, current_state, requested_state,
                OUTCOME_GUARD_FAILED, reason, (time.monotonic() - t0) * 1000,
            )
            return TransitionResult(
                False, current_state, requested_state,
                reason=reason, guard_name=transition.guard.name,
            )

        _emit_workflow_trace(
            workflow.name, entity_type, entity_id, current_state, requested_state,
            OUTCOME_SUCCESS, None, (time.monotonic() - t0) * 1000,
        )
        return TransitionResult(
            True, current_state, requested_state, posts_entry=transition.posts_entry
        )
