"""
Repository Layer
Handles all database operations for workflows, their steps and transitions,
including the draft-specific queries and the publish swap.

Pure data access: no business rules beyond the integrity constraints of the
tables. Every method runs in its own Session and commits once, so a step or
transition write either lands completely or not at all.
"""

import logging
from datetime import datetime, UTC
from typing import Callable, Dict, List, Optional

from sqlalchemy import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from .errors import (
    DraftAlreadyExists,
    DraftNotFound,
    DuplicateStep,
    DuplicateTransition,
    InvalidWorkflowGraph,
    NotADraft,
    NotAPublishedWorkflow,
    StepNotFound,
    TransitionNotFound,
    WorkflowInUse,
    WorkflowNotFound,
)
from .graph import WorkflowGraph
from .ids import new_id
from .models import (
    AddStepDTO,
    AddTransitionDTO,
    EXPORT_FORMAT_VERSION,
    ExportedStep,
    ExportedTransition,
    ExportedWorkflowBody,
    GraphError,
    IssueStatusTable,
    ProjectTable,
    UpdateStepDTO,
    UpdateTransitionDTO,
    UpdateWorkflowDTO,
    Workflow,
    WorkflowDetail,
    WorkflowExport,
    WorkflowStep,
    WorkflowStepTable,
    WorkflowTable,
    WorkflowTransition,
    WorkflowTransitionTable,
)

logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(UTC).replace(microsecond=0).isoformat()


# Unique constraints the repository translates into domain conflicts:
# name -> "table.column, ..." as SQLite reports it (it omits the name)
UNIQUE_CONSTRAINTS: Dict[str, str] = {
    "uq_workflow_draft": "workflows.draft_of",
    "uq_step_status": "workflow_steps.workflow_id, workflow_steps.status_id",
    "uq_transition_pair": (
        "workflow_transitions.workflow_id, workflow_transitions.from_step_id, "
        "workflow_transitions.to_step_id"
    ),
}


def _violates(exc: IntegrityError, constraint: str) -> bool:
    """True iff the IntegrityError comes from the named unique constraint."""
    message = str(exc.orig)
    if constraint in message:
        return True
    return message.startswith("UNIQUE constraint failed") and message.endswith(UNIQUE_CONSTRAINTS[constraint])


# Callback run by publish_draft before the swap: (draft graph, live graph) -> errors
PublishCheck = Callable[[WorkflowGraph, WorkflowGraph], List[GraphError]]


class WorkflowRepository:
    """Repository for workflow, step and transition rows"""

    def __init__(self, engine: Engine):
        self.engine = engine

    def create_schema(self):
        """Create all database tables"""
        from .database import create_schema
        create_schema(self.engine)

    # ========================================================================
    # Workflows
    # ========================================================================

    def create_workflow(
        self,
        name: str,
        description: Optional[str] = None,
        project_id: Optional[str] = None,
    ) -> Workflow:
        """Create a new, empty, published workflow."""
        now = _now()
        with Session(self.engine) as session:
            row = WorkflowTable(
                id=new_id("wf_"),
                name=name,
                description=description,
                project_id=project_id,
                is_draft=False,
                published_at=now,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.commit()
            session.refresh(row)
            return Workflow.model_validate(row)

    def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        with Session(self.engine) as session:
            row = session.get(WorkflowTable, workflow_id)
            return Workflow.model_validate(row) if row else None

    def require_workflow(self, workflow_id: str) -> Workflow:
        workflow = self.get_workflow(workflow_id)
        if workflow is None:
            raise WorkflowNotFound(workflow_id)
        return workflow

    def list_workflows(
        self,
        include_drafts: bool = True,
        project_id: Optional[str] = None,
    ) -> List[Workflow]:
        """
        List workflows ordered by name.
        With project_id, only shared workflows (no owner) and the ones owned
        by that project are returned.
        """
        with Session(self.engine) as session:
            query = select(WorkflowTable)
            if not include_drafts:
                query = query.where(WorkflowTable.is_draft == False)  # noqa: E712
            if project_id is not None:
                query = query.where(
                    (WorkflowTable.project_id == project_id) | (WorkflowTable.project_id == None)  # noqa: E711
                )
            rows = session.exec(query.order_by(WorkflowTable.name)).all()
            return [Workflow.model_validate(r) for r in rows]

    def update_workflow(self, workflow_id: str, data: UpdateWorkflowDTO) -> Workflow:
        with Session(self.engine) as session:
            row = self._get_row(session, workflow_id)
            if data.name is not None:
                row.name = data.name
            if data.description is not None:
                row.description = data.description
            row.updated_at = _now()
            session.add(row)
            session.commit()
            session.refresh(row)
            return Workflow.model_validate(row)

    def delete_workflow(self, workflow_id: str) -> None:
        """
        Delete a workflow with its steps and transitions.
        A published workflow is only deleted when no project binds to it; its
        draft, if any, goes with it.
        """
        with Session(self.engine) as session:
            row = self._get_row(session, workflow_id)
            if not row.is_draft:
                bound = session.exec(
                    select(ProjectTable.id).where(ProjectTable.workflow_id == workflow_id)
                ).all()
                if bound:
                    raise WorkflowInUse(workflow_id, bound)
                draft = session.exec(
                    select(WorkflowTable).where(WorkflowTable.draft_of == workflow_id)
                ).first()
                if draft:
                    self._delete_content(session, draft.id)
                    session.delete(draft)
                    session.flush()

            self._delete_content(session, workflow_id)
            session.delete(row)
            session.commit()

    def get_workflow_detail(self, workflow_id: str) -> WorkflowDetail:
        """Get workflow by ID with steps and transitions"""
        with Session(self.engine) as session:
            row = self._get_row(session, workflow_id)
            return WorkflowDetail(
                workflow=Workflow.model_validate(row),
                steps=self._steps(session, workflow_id),
                transitions=self._transitions(session, workflow_id),
            )

    def list_steps(self, workflow_id: str) -> List[WorkflowStep]:
        with Session(self.engine) as session:
            self._get_row(session, workflow_id)
            return self._steps(session, workflow_id)

    def list_transitions(self, workflow_id: str) -> List[WorkflowTransition]:
        with Session(self.engine) as session:
            self._get_row(session, workflow_id)
            return self._transitions(session, workflow_id)

    def load_graph(self, workflow_id: str) -> WorkflowGraph:
        """
        Read all steps and transitions of a workflow in one session and build
        a fresh graph from them.
        """
        with Session(self.engine) as session:
            self._get_row(session, workflow_id)
            return self._graph(session, workflow_id)

    def clone_workflow(
        self,
        source_id: str,
        new_name: str,
        project_id: Optional[str] = None,
    ) -> Workflow:
        """Duplicate a workflow into a new published one; the source is untouched."""
        now = _now()
        with Session(self.engine) as session:
            source = self._get_row(session, source_id)
            clone = WorkflowTable(
                id=new_id("wf_"),
                name=new_name,
                description=source.description,
                project_id=project_id,
                is_draft=False,
                published_at=now,
                created_at=now,
                updated_at=now,
            )
            session.add(clone)
            self._copy_content(session, source_id, clone.id)
            session.commit()
            session.refresh(clone)
            logger.info("Cloned workflow %s into %s", source_id, clone.id)
            return Workflow.model_validate(clone)

    # ========================================================================
    # Export / import
    # ========================================================================

    def export_workflow(self, workflow_id: str) -> WorkflowExport:
        """
        Portable copy of a workflow. Transitions reference statuses instead of
        step ids, and every step carries its status name so another instance
        can match it.
        """
        with Session(self.engine) as session:
            row = self._get_row(session, workflow_id)
            steps = self._steps(session, workflow_id)
            transitions = self._transitions(session, workflow_id)

            status_ids = [s.status_id for s in steps]
            names: Dict[str, str] = {}
            if status_ids:
                names = dict(session.exec(
                    select(IssueStatusTable.id, IssueStatusTable.name)
                    .where(IssueStatusTable.id.in_(status_ids))
                ).all())

            status_of = {s.id: s.status_id for s in steps}
            return WorkflowExport(
                exported_at=_now(),
                workflow=ExportedWorkflowBody(
                    name=row.name,
                    description=row.description,
                    steps=[
                        ExportedStep(
                            status_id=s.status_id,
                            status_name=names.get(s.status_id),
                            position_x=s.position_x,
                            position_y=s.position_y,
                            is_initial=s.is_initial,
                        )
                        for s in steps
                    ],
                    transitions=[
                        ExportedTransition(
                            from_status_id=status_of[t.from_step_id],
                            to_status_id=status_of[t.to_step_id],
                            name=t.name,
                            description=t.description,
                            conditions=t.conditions or [],
                        )
                        for t in transitions
                        if t.from_step_id in status_of and t.to_step_id in status_of
                    ],
                ),
            )

    def import_workflow(
        self,
        data: WorkflowExport,
        name: str,
        project_id: Optional[str] = None,
    ) -> Workflow:
        """
        Create a new published workflow from an export.

        Statuses are matched by id, then by name. The rebuilt graph is
        validated before anything is written; unknown statuses and graph
        errors raise InvalidWorkflowGraph with every problem found.
        """
        if data.version != EXPORT_FORMAT_VERSION:
            raise InvalidWorkflowGraph(name, [GraphError(
                code="unsupported_version",
                message=f"Export format {data.version} is not supported (expected {EXPORT_FORMAT_VERSION})",
            )])
        body = data.workflow
        now = _now()
        with Session(self.engine) as session:
            known = session.exec(select(IssueStatusTable)).all()
            known_ids = {s.id for s in known}
            id_by_name = {s.name: s.id for s in known}

            workflow_id = new_id("wf_")
            errors: List[GraphError] = []
            steps: List[WorkflowStep] = []
            step_ids: Dict[str, str] = {}  # exported status id -> new step id
            for exported in body.steps:
                if exported.status_id in known_ids:
                    status_id = exported.status_id
                else:
                    status_id = id_by_name.get(exported.status_name or "")
                if status_id is None:
                    errors.append(GraphError(
                        code="unknown_status",
                        message=f"Status {exported.status_name or exported.status_id} does not exist",
                        status_id=exported.status_id,
                    ))
                    continue
                step = WorkflowStep(
                    id=new_id("step_"),
                    workflow_id=workflow_id,
                    status_id=status_id,
                    position_x=exported.position_x,
                    position_y=exported.position_y,
                    is_initial=exported.is_initial,
                )
                steps.append(step)
                step_ids[exported.status_id] = step.id

            # Unmatched endpoints keep the raw status id, so validate() reports them as orphans
            transitions = [
                WorkflowTransition(
                    id=new_id("tr_"),
                    workflow_id=workflow_id,
                    from_step_id=step_ids.get(t.from_status_id, t.from_status_id),
                    to_step_id=step_ids.get(t.to_status_id, t.to_status_id),
                    name=t.name,
                    description=t.description,
                    conditions=t.conditions,
                )
                for t in body.transitions
            ]

            errors.extend(WorkflowGraph(workflow_id, steps, transitions).validate())
            if errors:
                raise InvalidWorkflowGraph(name, errors)

            row = WorkflowTable(
                id=workflow_id,
                name=name,
                description=body.description,
                project_id=project_id,
                is_draft=False,
                published_at=now,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.flush()
            for step in steps:
                session.add(WorkflowStepTable(**step.model_dump()))
            session.flush()
            for tr in transitions:
                session.add(WorkflowTransitionTable(**tr.model_dump()))
            session.commit()
            session.refresh(row)
            logger.info(
                "Imported workflow %s (%d steps, %d transitions)", row.id, len(steps), len(transitions)
            )
            return Workflow.model_validate(row)

    # ========================================================================
    # Drafts
    # ========================================================================

    def create_draft(self, workflow_id: str) -> Workflow:
        """
        Deep-copy a published workflow into a new draft row set.
        Raises DraftAlreadyExists if the workflow already has a draft; two
        concurrent callers are serialized by the UNIQUE constraint on draft_of.
        """
        now = _now()
        with Session(self.engine) as session:
            source = self._get_row(session, workflow_id)
            if source.is_draft:
                raise NotAPublishedWorkflow(workflow_id)

            existing = session.exec(
                select(WorkflowTable).where(WorkflowTable.draft_of == workflow_id)
            ).first()
            if existing:
                raise DraftAlreadyExists(workflow_id, existing.id)

            draft = WorkflowTable(
                id=new_id("wf_"),
                name=source.name,
                description=source.description,
                project_id=source.project_id,
                is_draft=True,
                draft_of=workflow_id,
                created_at=now,
                updated_at=now,
            )
            try:
                session.add(draft)
                session.flush()
                self._copy_content(session, workflow_id, draft.id)
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                if not _violates(exc, "uq_workflow_draft"):
                    raise
                logger.info("Lost draft creation race for workflow %s", workflow_id)
                raise DraftAlreadyExists(workflow_id)

            session.refresh(draft)
            return Workflow.model_validate(draft)

    def get_draft(self, workflow_id: str) -> Optional[Workflow]:
        with Session(self.engine) as session:
            row = session.exec(
                select(WorkflowTable).where(WorkflowTable.draft_of == workflow_id)
            ).first()
            return Workflow.model_validate(row) if row else None

    def publish_draft(self, draft_id: str, check: Optional[PublishCheck] = None) -> Workflow:
        """
        Swap the draft's content into the workflow it shadows and delete the
        draft row, all in one transaction. Until the commit, readers keep
        seeing the previous published content.

        `check` sees both graphs as read by this session, right before the
        swap; any error it returns aborts the publish with InvalidWorkflowGraph
        and nothing is written.
        """
        with Session(self.engine) as session:
            draft = session.get(WorkflowTable, draft_id)
            if draft is None:
                raise DraftNotFound(draft_id)
            if not draft.is_draft:
                raise NotADraft(draft_id)
            published = session.get(WorkflowTable, draft.draft_of)
            if published is None:
                raise WorkflowNotFound(draft.draft_of)

            # Every edit touches the draft row: writing it first keeps edits out
            # until this transaction ends
            self._touch(session, draft)
            session.flush()

            if check is not None:
                errors = check(
                    self._graph(session, draft_id),
                    self._graph(session, published.id),
                )
                if errors:
                    raise InvalidWorkflowGraph(draft_id, errors)

            self._delete_content(session, published.id)

            for step in session.exec(
                select(WorkflowStepTable).where(WorkflowStepTable.workflow_id == draft_id)
            ).all():
                step.workflow_id = published.id
                session.add(step)
            for tr in session.exec(
                select(WorkflowTransitionTable).where(WorkflowTransitionTable.workflow_id == draft_id)
            ).all():
                tr.workflow_id = published.id
                session.add(tr)
            session.flush()

            now = _now()
            published.name = draft.name
            published.description = draft.description
            published.published_at = now
            published.updated_at = now
            session.add(published)
            session.delete(draft)
            session.commit()
            session.refresh(published)
            return Workflow.model_validate(published)

    def delete_draft(self, draft_id: str) -> bool:
        """Delete a draft row set. Returns False when it no longer exists."""
        with Session(self.engine) as session:
            draft = session.get(WorkflowTable, draft_id)
            if draft is None:
                return False
            if not draft.is_draft:
                raise NotADraft(draft_id)
            self._delete_content(session, draft_id)
            session.delete(draft)
            session.commit()
            return True

    # ========================================================================
    # Steps
    # ========================================================================

    def add_step(self, workflow_id: str, data: AddStepDTO) -> WorkflowStep:
        with Session(self.engine) as session:
            workflow = self._get_row(session, workflow_id)
            step = WorkflowStepTable(
                id=new_id("step_"),
                workflow_id=workflow_id,
                status_id=data.status_id,
                position_x=data.position_x,
                position_y=data.position_y,
                is_initial=data.is_initial,
            )
            session.add(step)
            self._touch(session, workflow)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                if not _violates(exc, "uq_step_status"):
                    raise
                raise DuplicateStep(workflow_id, data.status_id)
            session.refresh(step)
            return WorkflowStep.model_validate(step)

    def update_step(self, workflow_id: str, step_id: str, data: UpdateStepDTO) -> WorkflowStep:
        with Session(self.engine) as session:
            workflow = self._get_row(session, workflow_id)
            step = self._get_step(session, workflow_id, step_id)
            if data.position_x is not None:
                step.position_x = data.position_x
            if data.position_y is not None:
                step.position_y = data.position_y
            if data.is_initial is not None:
                step.is_initial = data.is_initial
            session.add(step)
            self._touch(session, workflow)
            session.commit()
            session.refresh(step)
            return WorkflowStep.model_validate(step)

    def remove_step(self, workflow_id: str, step_id: str) -> None:
        """Delete a step and every transition entering or leaving it."""
        with Session(self.engine) as session:
            workflow = self._get_row(session, workflow_id)
            step = self._get_step(session, workflow_id, step_id)
            for tr in session.exec(
                select(WorkflowTransitionTable).where(
                    WorkflowTransitionTable.workflow_id == workflow_id,
                    (WorkflowTransitionTable.from_step_id == step_id)
                    | (WorkflowTransitionTable.to_step_id == step_id),
                )
            ).all():
                session.delete(tr)
            session.flush()
            session.delete(step)
            self._touch(session, workflow)
            session.commit()

    # ========================================================================
    # Transitions
    # ========================================================================

    def add_transition(self, workflow_id: str, data: AddTransitionDTO) -> WorkflowTransition:
        with Session(self.engine) as session:
            workflow = self._get_row(session, workflow_id)
            tr = WorkflowTransitionTable(
                id=new_id("tr_"),
                workflow_id=workflow_id,
                from_step_id=data.from_step_id,
                to_step_id=data.to_step_id,
                name=data.name,
                description=data.description,
                conditions=data.conditions,
            )
            session.add(tr)
            self._touch(session, workflow)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                if not _violates(exc, "uq_transition_pair"):
                    raise
                raise DuplicateTransition(workflow_id, data.from_step_id, data.to_step_id)
            session.refresh(tr)
            return WorkflowTransition.model_validate(tr)

    def update_transition(
        self,
        workflow_id: str,
        transition_id: str,
        data: UpdateTransitionDTO,
    ) -> WorkflowTransition:
        with Session(self.engine) as session:
            workflow = self._get_row(session, workflow_id)
            tr = self._get_transition(session, workflow_id, transition_id)
            if data.name is not None:
                tr.name = data.name
            if data.description is not None:
                tr.description = data.description
            if data.conditions is not None:
                tr.conditions = data.conditions
            session.add(tr)
            self._touch(session, workflow)
            session.commit()
            session.refresh(tr)
            return WorkflowTransition.model_validate(tr)

    def remove_transition(self, workflow_id: str, transition_id: str) -> None:
        with Session(self.engine) as session:
            workflow = self._get_row(session, workflow_id)
            tr = self._get_transition(session, workflow_id, transition_id)
            session.delete(tr)
            self._touch(session, workflow)
            session.commit()

    # ========================================================================
    # Helpers
    # ========================================================================

    @staticmethod
    def _get_row(session: Session, workflow_id: str) -> WorkflowTable:
        row = session.get(WorkflowTable, workflow_id)
        if row is None:
            raise WorkflowNotFound(workflow_id)
        return row

    @staticmethod
    def _get_step(session: Session, workflow_id: str, step_id: str) -> WorkflowStepTable:
        step = session.get(WorkflowStepTable, step_id)
        if step is None or step.workflow_id != workflow_id:
            raise StepNotFound(step_id)
        return step

    @staticmethod
    def _get_transition(session: Session, workflow_id: str, transition_id: str) -> WorkflowTransitionTable:
        tr = session.get(WorkflowTransitionTable, transition_id)
        if tr is None or tr.workflow_id != workflow_id:
            raise TransitionNotFound(transition_id)
        return tr

    @staticmethod
    def _touch(session: Session, workflow: WorkflowTable) -> None:
        workflow.updated_at = _now()
        session.add(workflow)

    @staticmethod
    def _steps(session: Session, workflow_id: str) -> List[WorkflowStep]:
        rows = session.exec(
            select(WorkflowStepTable)
            .where(WorkflowStepTable.workflow_id == workflow_id)
            .order_by(WorkflowStepTable.position_x, WorkflowStepTable.position_y, WorkflowStepTable.id)
        ).all()
        return [WorkflowStep.model_validate(r) for r in rows]

    @staticmethod
    def _transitions(session: Session, workflow_id: str) -> List[WorkflowTransition]:
        rows = session.exec(
            select(WorkflowTransitionTable)
            .where(WorkflowTransitionTable.workflow_id == workflow_id)
            .order_by(WorkflowTransitionTable.id)
        ).all()
        return [WorkflowTransition.model_validate(r) for r in rows]

    @classmethod
    def _graph(cls, session: Session, workflow_id: str) -> WorkflowGraph:
        return WorkflowGraph(workflow_id, cls._steps(session, workflow_id), cls._transitions(session, workflow_id))

    @staticmethod
    def _delete_content(session: Session, workflow_id: str) -> None:
        """Delete transitions, then steps, of a workflow (no commit)."""
        for tr in session.exec(
            select(WorkflowTransitionTable).where(WorkflowTransitionTable.workflow_id == workflow_id)
        ).all():
            session.delete(tr)
        session.flush()
        for step in session.exec(
            select(WorkflowStepTable).where(WorkflowStepTable.workflow_id == workflow_id)
        ).all():
            session.delete(step)
        session.flush()

    @staticmethod
    def _copy_content(session: Session, source_id: str, target_id: str) -> None:
        """
        Copy steps and transitions of source_id under target_id with fresh ids,
        remapping transition endpoints onto the new steps (no commit).
        """
        step_map: Dict[str, str] = {}
        for step in session.exec(
            select(WorkflowStepTable).where(WorkflowStepTable.workflow_id == source_id)
        ).all():
            copy_id = new_id("step_")
            step_map[step.id] = copy_id
            session.add(WorkflowStepTable(
                id=copy_id,
                workflow_id=target_id,
                status_id=step.status_id,
                position_x=step.position_x,
                position_y=step.position_y,
                is_initial=step.is_initial,
            ))
        session.flush()

        for tr in session.exec(
            select(WorkflowTransitionTable).where(WorkflowTransitionTable.workflow_id == source_id)
        ).all():
            # Orphan rows are not carried over; validate() would reject them anyway
            if tr.from_step_id not in step_map or tr.to_step_id not in step_map:
                continue
            session.add(WorkflowTransitionTable(
                id=new_id("tr_"),
                workflow_id=target_id,
                from_step_id=step_map[tr.from_step_id],
                to_step_id=step_map[tr.to_step_id],
                name=tr.name,
                description=tr.description,
                conditions=list(tr.conditions) if tr.conditions is not None else None,
            ))
        session.flush()
