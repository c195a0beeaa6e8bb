"""
Board Column Synchronizer
Regenerates the columns of every board of a project so that they map onto the
steps of the project's published workflow, each step exactly once.
"""

import logging
from typing import Dict, Iterable, List

from .errors import ProjectWorkflowNotFound, StatusNotFound
from .models import (
    CATEGORY_ORDER,
    BoardColumn,
    BoardSyncError,
    ProjectSyncOutcome,
    Status,
    StatusCategory,
    WorkflowStep,
)
from .repository import WorkflowRepository
from .stores import BoardStore, ProjectStore, StatusCatalog

logger = logging.getLogger(__name__)

CATEGORY_COLUMN_NAMES: Dict[str, str] = {
    StatusCategory.todo.value: "To Do",
    StatusCategory.in_progress.value: "In Progress",
    StatusCategory.done.value: "Done",
}


def order_statuses(steps: Iterable[WorkflowStep], statuses: Dict[str, Status]) -> List[Status]:
    """Workflow statuses in column order: category first, then step position."""
    ordered = sorted(
        steps,
        key=lambda s: (
            CATEGORY_ORDER[statuses[s.status_id].category.value],
            s.position_x,
            s.position_y,
            statuses[s.status_id].position,
            statuses[s.status_id].name,
        ),
    )
    unique = dict.fromkeys(s.status_id for s in ordered)
    return [statuses[status_id] for status_id in unique]


def plan_columns(ordered: List[Status], existing: List[BoardColumn]) -> List[BoardColumn]:
    """
    Compute the column layout for one board.

    Existing columns whose statuses are all still steps of the workflow keep
    their name, WIP limits and relative order. Remaining steps are grouped by
    category into "To Do" / "In Progress" / "Done" columns, folded into a kept
    column of the same name when there is one. When nothing can be kept this
    amounts to a wholesale regeneration.

    Invariant: every status of `ordered` is mapped by exactly one column.
    """
    category_of = {s.id: s.category.value for s in ordered}
    step_order = {s.id: i for i, s in enumerate(ordered)}

    kept: List[BoardColumn] = []
    claimed = set()
    for column in sorted(existing, key=lambda c: c.position):
        ids = list(dict.fromkeys(column.status_ids))
        if not ids or not set(ids).issubset(step_order) or claimed.intersection(ids):
            continue
        kept.append(BoardColumn(
            name=column.name,
            min_issues=column.min_issues,
            max_issues=column.max_issues,
            status_ids=ids,
        ))
        claimed.update(ids)

    previous_by_name = {c.name: c for c in existing}
    generated: List[BoardColumn] = []
    for category in sorted(CATEGORY_ORDER, key=CATEGORY_ORDER.get):
        remaining = [s.id for s in ordered if s.id not in claimed and category_of[s.id] == category]
        if not remaining:
            continue
        name = CATEGORY_COLUMN_NAMES[category]
        target = next((c for c in kept if c.name == name), None)
        if target is not None:
            target.status_ids.extend(remaining)
            continue
        previous = previous_by_name.get(name)
        generated.append(BoardColumn(
            name=name,
            min_issues=previous.min_issues if previous else None,
            max_issues=previous.max_issues if previous else None,
            status_ids=remaining,
        ))

    def column_rank(column: BoardColumn) -> int:
        return min(CATEGORY_ORDER[category_of[sid]] for sid in column.status_ids)

    columns = [(column_rank(c), 0, i, c) for i, c in enumerate(kept)]
    columns += [(column_rank(c), 1, i, c) for i, c in enumerate(generated)]
    columns.sort(key=lambda item: item[:3])

    result = []
    for position, (_, _, _, column) in enumerate(columns):
        column.position = position
        result.append(column)
    return result


class BoardColumnSynchronizer:
    def __init__(
        self,
        repo: WorkflowRepository,
        projects: ProjectStore,
        boards: BoardStore,
        catalog: StatusCatalog,
    ):
        self.repo = repo
        self.projects = projects
        self.boards = boards
        self.catalog = catalog

    def desired_statuses(self, project_id: str) -> List[Status]:
        """Statuses of the project's published workflow, in column order."""
        workflow_id = self.projects.get_project_workflow(project_id)
        if workflow_id is None:
            raise ProjectWorkflowNotFound(project_id)
        graph = self.repo.load_graph(workflow_id)
        statuses = self.catalog.get_statuses(graph.status_ids)
        missing = sorted(graph.status_ids - set(statuses))
        if missing:
            raise StatusNotFound(missing[0])
        return order_statuses(graph.steps, statuses)

    def regenerate_board_columns_for_project(self, project_id: str) -> ProjectSyncOutcome:
        """
        Rebuild the columns of every board of the project.

        Boards are updated independently: a failure on one board is recorded
        in the outcome and the remaining boards are still attempted. Failing
        to resolve the project's workflow raises, since no board can be synced.
        """
        ordered = self.desired_statuses(project_id)
        outcome = ProjectSyncOutcome(project_id=project_id, boards_updated=0)

        for board in self.boards.get_boards_for_project(project_id):
            try:
                columns = plan_columns(ordered, board.columns)
                self.boards.replace_board_columns(board.id, columns)
            except Exception as exc:
                logger.warning("Board %s of project %s failed to sync: %s", board.id, project_id, exc)
                outcome.errors.append(BoardSyncError(board_id=board.id, message=str(exc)))
                continue
            outcome.boards_updated += 1

        logger.info(
            "Synced %d board(s) of project %s (%d failed)",
            outcome.boards_updated, project_id, len(outcome.errors),
        )
        return outcome
