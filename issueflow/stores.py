"""
Collaborator stores
SQLModel-backed implementations of the stores the workflow engine consumes:
the status catalog, issues, project bindings and boards.

The engine only relies on the narrow contracts below; the create helpers exist
so the API and tests can seed data.
"""

import logging
from datetime import datetime, UTC
from typing import Dict, Iterable, List, Optional

from sqlalchemy import Engine, func, update
from sqlmodel import Session, select

from .errors import (
    BoardNotFound,
    IssueNotFound,
    NotAPublishedWorkflow,
    ProjectNotFound,
    StatusConflictError,
    StatusNotFound,
    WorkflowNotFound,
)
from .ids import new_id
from .models import (
    Board,
    BoardColumn,
    BoardColumnStatusTable,
    BoardColumnTable,
    BoardTable,
    CreateStatusDTO,
    Issue,
    IssueStatusTable,
    IssueTable,
    Project,
    ProjectTable,
    Status,
    StatusCategory,
    WorkflowTable,
)

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(UTC).replace(microsecond=0).isoformat()


# ============================================================================
# Status Catalog
# ============================================================================

class StatusCatalog:
    """Flat set of named statuses with a category."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def create_status(self, data: CreateStatusDTO) -> Status:
        with Session(self.engine) as session:
            row = IssueStatusTable(
                id=new_id("st_"),
                name=data.name,
                category=data.category,
                color=data.color,
                position=data.position,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return self._to_status(row)

    def get_status(self, status_id: str) -> Status:
        with Session(self.engine) as session:
            row = session.get(IssueStatusTable, status_id)
            if row is None:
                raise StatusNotFound(status_id)
            return self._to_status(row)

    def get_statuses(self, status_ids: Iterable[str]) -> Dict[str, Status]:
        """Batch lookup; unknown ids are simply absent from the result."""
        ids = list(status_ids)
        if not ids:
            return {}
        with Session(self.engine) as session:
            rows = session.exec(select(IssueStatusTable).where(IssueStatusTable.id.in_(ids))).all()
            return {r.id: self._to_status(r) for r in rows}

    def list_statuses(self) -> List[Status]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(IssueStatusTable).order_by(IssueStatusTable.position, IssueStatusTable.name)
            ).all()
            return [self._to_status(r) for r in rows]

    @staticmethod
    def _to_status(row: IssueStatusTable) -> Status:
        return Status(
            id=row.id,
            name=row.name,
            category=StatusCategory(row.category),
            color=row.color,
            position=row.position,
        )


# ============================================================================
# Issue Store
# ============================================================================

class IssueStore:
    def __init__(self, engine: Engine):
        self.engine = engine

    def create_issue(self, project_id: str, issue_key: str, summary: str, status_id: str) -> Issue:
        with Session(self.engine) as session:
            if session.get(ProjectTable, project_id) is None:
                raise ProjectNotFound(project_id)
            row = IssueTable(
                id=new_id("iss_"),
                project_id=project_id,
                issue_key=issue_key,
                summary=summary,
                status_id=status_id,
                updated_at=_now(),
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return Issue.model_validate(row, from_attributes=True)

    def get_issue(self, issue_id: str) -> Issue:
        with Session(self.engine) as session:
            row = session.get(IssueTable, issue_id)
            if row is None:
                raise IssueNotFound(issue_id)
            return Issue.model_validate(row, from_attributes=True)

    def get_issue_status(self, issue_id: str) -> str:
        return self.get_issue(issue_id).status_id

    def set_issue_status(self, issue_id: str, status_id: str, expected_prior_status_id: str) -> None:
        """
        Conditional write: only lands if the issue is still in
        expected_prior_status_id. Raises StatusConflictError otherwise.
        """
        with Session(self.engine) as session:
            result = session.exec(
                update(IssueTable)
                .where(IssueTable.id == issue_id, IssueTable.status_id == expected_prior_status_id)
                .values(status_id=status_id, updated_at=_now())
            )
            if result.rowcount == 1:
                session.commit()
                return
            session.rollback()

            current = session.get(IssueTable, issue_id)
            if current is None:
                raise IssueNotFound(issue_id)
            logger.info(
                "Status write for issue %s lost: expected %s, found %s",
                issue_id, expected_prior_status_id, current.status_id,
            )
            raise StatusConflictError(issue_id, expected_prior_status_id, current.status_id)

    def count_issues_with_status(self, project_ids: Iterable[str], status_id: str) -> int:
        ids = list(project_ids)
        if not ids:
            return 0
        with Session(self.engine) as session:
            return session.exec(
                select(func.count(IssueTable.id)).where(
                    IssueTable.project_id.in_(ids),
                    IssueTable.status_id == status_id,
                )
            ).one()


# ============================================================================
# Project Store
# ============================================================================

class ProjectStore:
    def __init__(self, engine: Engine):
        self.engine = engine

    def create_project(self, key: str, name: str, workflow_id: Optional[str] = None) -> Project:
        with Session(self.engine) as session:
            if workflow_id is not None:
                self._check_bindable(session, workflow_id)
            row = ProjectTable(id=new_id("prj_"), key=key, name=name, workflow_id=workflow_id)
            session.add(row)
            session.commit()
            session.refresh(row)
            return Project.model_validate(row, from_attributes=True)

    def bind_workflow(self, project_id: str, workflow_id: str) -> Project:
        """Point a project at a published workflow. Drafts are never bound."""
        with Session(self.engine) as session:
            row = session.get(ProjectTable, project_id)
            if row is None:
                raise ProjectNotFound(project_id)
            self._check_bindable(session, workflow_id)
            row.workflow_id = workflow_id
            session.add(row)
            session.commit()
            session.refresh(row)
            return Project.model_validate(row, from_attributes=True)

    def get_project_workflow(self, project_id: str) -> Optional[str]:
        with Session(self.engine) as session:
            row = session.get(ProjectTable, project_id)
            if row is None:
                raise ProjectNotFound(project_id)
            return row.workflow_id

    def get_projects_using_workflow(self, workflow_id: str) -> List[str]:
        with Session(self.engine) as session:
            return list(session.exec(
                select(ProjectTable.id)
                .where(ProjectTable.workflow_id == workflow_id)
                .order_by(ProjectTable.key)
            ).all())

    @staticmethod
    def _check_bindable(session: Session, workflow_id: str) -> None:
        workflow = session.get(WorkflowTable, workflow_id)
        if workflow is None:
            raise WorkflowNotFound(workflow_id)
        if workflow.is_draft:
            raise NotAPublishedWorkflow(workflow_id)


# ============================================================================
# Board Store
# ============================================================================

class BoardStore:
    def __init__(self, engine: Engine):
        self.engine = engine

    def create_board(self, project_id: str, name: str, columns: Optional[List[BoardColumn]] = None) -> Board:
        with Session(self.engine) as session:
            if session.get(ProjectTable, project_id) is None:
                raise ProjectNotFound(project_id)
            row = BoardTable(id=new_id("brd_"), project_id=project_id, name=name)
            session.add(row)
            session.flush()
            self._insert_columns(session, row.id, columns or [])
            session.commit()
            return self._load_board(session, row)

    def get_board(self, board_id: str) -> Board:
        with Session(self.engine) as session:
            row = session.get(BoardTable, board_id)
            if row is None:
                raise BoardNotFound(board_id)
            return self._load_board(session, row)

    def get_boards_for_project(self, project_id: str) -> List[Board]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(BoardTable).where(BoardTable.project_id == project_id).order_by(BoardTable.id)
            ).all()
            return [self._load_board(session, r) for r in rows]

    def replace_board_columns(self, board_id: str, columns: List[BoardColumn]) -> None:
        """Drop every column of the board and insert the given ones, in one transaction."""
        with Session(self.engine) as session:
            if session.get(BoardTable, board_id) is None:
                raise BoardNotFound(board_id)
            old_columns = session.exec(
                select(BoardColumnTable).where(BoardColumnTable.board_id == board_id)
            ).all()
            old_ids = [c.id for c in old_columns]
            if old_ids:
                for mapping in session.exec(
                    select(BoardColumnStatusTable).where(BoardColumnStatusTable.column_id.in_(old_ids))
                ).all():
                    session.delete(mapping)
                session.flush()
                for column in old_columns:
                    session.delete(column)
                session.flush()
            self._insert_columns(session, board_id, columns)
            session.commit()

    @staticmethod
    def _insert_columns(session: Session, board_id: str, columns: List[BoardColumn]) -> None:
        for position, column in enumerate(columns):
            column_id = new_id("col_")
            session.add(BoardColumnTable(
                id=column_id,
                board_id=board_id,
                name=column.name,
                position=position,
                min_issues=column.min_issues,
                max_issues=column.max_issues,
            ))
            for status_position, status_id in enumerate(column.status_ids):
                session.add(BoardColumnStatusTable(
                    id=new_id("cs_"),
                    column_id=column_id,
                    status_id=status_id,
                    position=status_position,
                ))
        session.flush()

    @staticmethod
    def _load_board(session: Session, row: BoardTable) -> Board:
        columns = session.exec(
            select(BoardColumnTable)
            .where(BoardColumnTable.board_id == row.id)
            .order_by(BoardColumnTable.position)
        ).all()
        result = []
        for column in columns:
            status_ids = session.exec(
                select(BoardColumnStatusTable.status_id)
                .where(BoardColumnStatusTable.column_id == column.id)
                .order_by(BoardColumnStatusTable.position)
            ).all()
            result.append(BoardColumn(
                id=column.id,
                name=column.name,
                position=column.position,
                min_issues=column.min_issues,
                max_issues=column.max_issues,
                status_ids=list(status_ids),
            ))
        return Board(id=row.id, project_id=row.project_id, name=row.name, columns=result)
