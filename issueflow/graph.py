"""
Workflow Graph Model
In-memory view of a workflow as a directed graph: steps are nodes keyed by
status id, transitions are edges between steps.

The graph is rebuilt from the stored rows on every use (see
WorkflowRepository.load_graph) and never mutated, so it always reflects the
state of storage at load time.
"""

from collections import Counter
from typing import Dict, Iterable, List, Optional, Set

from .models import GraphError, WorkflowStep, WorkflowTransition


class WorkflowGraph:
    """Validation and query logic over a {steps, transitions} pair. No side effects."""

    def __init__(
        self,
        workflow_id: str,
        steps: Iterable[WorkflowStep],
        transitions: Iterable[WorkflowTransition],
    ):
        self.workflow_id = workflow_id
        self.steps: List[WorkflowStep] = list(steps)
        self.transitions: List[WorkflowTransition] = list(transitions)

        self._steps_by_id: Dict[str, WorkflowStep] = {s.id: s for s in self.steps}
        # With duplicate statuses the first step wins; validate() reports the rest
        self._step_by_status: Dict[str, WorkflowStep] = {}
        for step in self.steps:
            self._step_by_status.setdefault(step.status_id, step)

        # Adjacency: from_step_id -> {to_step_id: transition}
        self._adjacency: Dict[str, Dict[str, WorkflowTransition]] = {}
        for tr in self.transitions:
            self._adjacency.setdefault(tr.from_step_id, {}).setdefault(tr.to_step_id, tr)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def status_ids(self) -> Set[str]:
        return set(self._step_by_status)

    def has_status(self, status_id: str) -> bool:
        return status_id in self._step_by_status

    def step_for_status(self, status_id: str) -> Optional[WorkflowStep]:
        return self._step_by_status.get(status_id)

    def step(self, step_id: str) -> Optional[WorkflowStep]:
        return self._steps_by_id.get(step_id)

    def transition_between(self, from_step_id: str, to_step_id: str) -> Optional[WorkflowTransition]:
        return self._adjacency.get(from_step_id, {}).get(to_step_id)

    def is_valid_transition(self, from_status_id: str, to_status_id: str) -> bool:
        """
        True iff both statuses are steps of this workflow and an edge exists
        from the first to the second. A self-loop edge makes A -> A valid.
        """
        from_step = self._step_by_status.get(from_status_id)
        to_step = self._step_by_status.get(to_status_id)
        if from_step is None or to_step is None:
            return False
        return to_step.id in self._adjacency.get(from_step.id, {})

    def outgoing(self, from_status_id: str) -> List[WorkflowTransition]:
        """Transitions leaving the step of from_status_id whose target step exists."""
        from_step = self._step_by_status.get(from_status_id)
        if from_step is None:
            return []
        return [
            tr for to_step_id, tr in self._adjacency.get(from_step.id, {}).items()
            if to_step_id in self._steps_by_id
        ]

    def reachable_steps(self, from_status_id: str) -> Set[str]:
        """Status ids reachable from from_status_id by exactly one legal transition."""
        return {self._steps_by_id[tr.to_step_id].status_id for tr in self.outgoing(from_status_id)}

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate(self) -> List[GraphError]:
        """
        Check structural invariants. Returns an empty list when the graph is
        valid; never raises.

        Checks:
            - at least one step exists
            - a status appears in at most one step
            - every transition references steps of this workflow
            - at most one transition per (from, to) pair
            - at most one initial step
        """
        errors: List[GraphError] = []

        if not self.steps:
            errors.append(GraphError(
                code="no_steps",
                message=f"Workflow {self.workflow_id} has no steps",
            ))

        status_counts = Counter(s.status_id for s in self.steps)
        for status_id, count in status_counts.items():
            if count > 1:
                errors.append(GraphError(
                    code="duplicate_status",
                    message=f"Status {status_id} appears in {count} steps",
                    status_id=status_id,
                ))

        seen_pairs: Set[tuple] = set()
        for tr in self.transitions:
            missing = [
                step_id for step_id in (tr.from_step_id, tr.to_step_id)
                if step_id not in self._steps_by_id
            ]
            if missing or tr.workflow_id != self.workflow_id:
                errors.append(GraphError(
                    code="orphan_transition",
                    message=(
                        f"Transition '{tr.name}' ({tr.id}) references steps outside "
                        f"the workflow: {', '.join(missing) or tr.workflow_id}"
                    ),
                    transition_id=tr.id,
                ))
                continue
            pair = (tr.from_step_id, tr.to_step_id)
            if pair in seen_pairs:
                errors.append(GraphError(
                    code="duplicate_transition",
                    message=(
                        f"Transition '{tr.name}' ({tr.id}) duplicates an existing "
                        f"edge {tr.from_step_id} -> {tr.to_step_id}"
                    ),
                    transition_id=tr.id,
                ))
            seen_pairs.add(pair)

        initial_steps = [s for s in self.steps if s.is_initial]
        if len(initial_steps) > 1:
            errors.append(GraphError(
                code="multiple_initial_steps",
                message=(
                    "Only one step may be initial; found: "
                    + ", ".join(s.status_id for s in initial_steps)
                ),
            ))

        return errors
