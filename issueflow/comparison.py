"""
Workflow comparison
Step and transition diff between two workflows, typically a draft against the
workflow it shadows before publishing.

Steps are matched by status id and transitions by their (from status, to
status) pair, so two workflows compare equal regardless of their step ids.
"""

from typing import Dict, List, Tuple

from .graph import WorkflowGraph
from .models import ComparisonItem, WorkflowComparison, WorkflowTransition
from .repository import WorkflowRepository
from .stores import StatusCatalog

KIND_ORDER = {"removed": 0, "modified": 1, "added": 2, "unchanged": 3}


def _edges(graph: WorkflowGraph) -> Dict[Tuple[str, str], WorkflowTransition]:
    edges = {}
    for tr in graph.transitions:
        src, dst = graph.step(tr.from_step_id), graph.step(tr.to_step_id)
        if src is None or dst is None:
            continue
        edges.setdefault((src.status_id, dst.status_id), tr)
    return edges


def compare_graphs(left: WorkflowGraph, right: WorkflowGraph, names: Dict[str, str]) -> WorkflowComparison:
    """Changes that turn `left` into `right`."""

    def name(status_id: str) -> str:
        return names.get(status_id, status_id)

    steps: List[ComparisonItem] = []
    for status_id in left.status_ids | right.status_ids:
        before, after = left.step_for_status(status_id), right.step_for_status(status_id)
        if before is None:
            kind, details = "added", "(Initial status)" if after.is_initial else None
        elif after is None:
            kind, details = "removed", None
        elif before.is_initial != after.is_initial:
            kind, details = "modified", f"Initial: {before.is_initial} -> {after.is_initial}"
        else:
            kind, details = "unchanged", None
        steps.append(ComparisonItem(kind=kind, label=name(status_id), status_id=status_id, details=details))

    left_edges, right_edges = _edges(left), _edges(right)
    transitions: List[ComparisonItem] = []
    for pair in left_edges.keys() | right_edges.keys():
        before, after = left_edges.get(pair), right_edges.get(pair)
        details = None
        if before is None:
            kind = "added"
        elif after is None:
            kind = "removed"
        else:
            changed = [
                field for field in ("name", "description", "conditions")
                if getattr(before, field) != getattr(after, field)
            ]
            kind = "modified" if changed else "unchanged"
            if changed:
                details = f"Changed: {', '.join(changed)}"
        transitions.append(ComparisonItem(
            kind=kind,
            label=f"{name(pair[0])} -> {name(pair[1])}",
            from_status_id=pair[0],
            to_status_id=pair[1],
            details=details,
        ))

    steps.sort(key=lambda i: (KIND_ORDER[i.kind], i.label))
    transitions.sort(key=lambda i: (KIND_ORDER[i.kind], i.label))
    summary = dict.fromkeys(KIND_ORDER, 0)
    for item in steps + transitions:
        summary[item.kind] += 1

    return WorkflowComparison(
        left_id=left.workflow_id,
        right_id=right.workflow_id,
        steps=steps,
        transitions=transitions,
        summary=summary,
    )


def compare_workflows(
    repo: WorkflowRepository,
    catalog: StatusCatalog,
    left_id: str,
    right_id: str,
) -> WorkflowComparison:
    left, right = repo.load_graph(left_id), repo.load_graph(right_id)
    statuses = catalog.get_statuses(left.status_ids | right.status_ids)
    return compare_graphs(left, right, {sid: s.name for sid, s in statuses.items()})
