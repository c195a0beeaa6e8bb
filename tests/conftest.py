# tests/conftest.py
from typing import Dict, Sequence, Tuple

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import create_engine

from issueflow.config import Settings
from issueflow.core import WorkflowCore
from issueflow.database import create_db_engine
from issueflow.main import create_app
from issueflow.models import (
    AddStepDTO,
    AddTransitionDTO,
    CreateStatusDTO,
    Status,
    StatusCategory,
    Workflow,
    WorkflowStep,
)


@pytest.fixture()
def engine():
    # BD en memoria compartida: "sqlite://" + StaticPool mantiene UNA conexión viva,
    # así que el fan-out de tableros corre en línea (sync_max_workers=1).
    return create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )


@pytest.fixture()
def core(engine):
    c = WorkflowCore(engine, Settings(sync_max_workers=1))
    c.create_schema()
    return c


@pytest.fixture()
def file_core(tmp_path):
    """Core sobre un archivo SQLite: varias conexiones, hilos reales."""
    settings = Settings(
        database_url=f"sqlite:///{tmp_path / 'issueflow.db'}",
        sync_max_workers=4,
        sync_timeout_seconds=10.0,
    )
    c = WorkflowCore(create_db_engine(settings), settings)
    c.create_schema()
    return c


# ============================================================================
# Seed data
# ============================================================================

SEED_STATUSES = [
    ("Backlog", StatusCategory.todo),
    ("In Progress", StatusCategory.in_progress),
    ("Review", StatusCategory.in_progress),
    ("Done", StatusCategory.done),
]


@pytest.fixture()
def seed_statuses():
    def _seed(c: WorkflowCore) -> Dict[str, Status]:
        return {
            name: c.catalog.create_status(CreateStatusDTO(name=name, category=category, position=i))
            for i, (name, category) in enumerate(SEED_STATUSES)
        }
    return _seed


@pytest.fixture()
def make_workflow():
    """
    Build a published workflow: one step per status (the first one initial,
    positions in list order) and one transition per (from, to) pair.
    """
    def _make(
        c: WorkflowCore,
        name: str,
        statuses: Sequence[Status],
        edges: Sequence[Tuple[Status, Status]] = (),
    ) -> Tuple[Workflow, Dict[str, WorkflowStep]]:
        wf = c.repo.create_workflow(name)
        steps: Dict[str, WorkflowStep] = {}
        for i, st in enumerate(statuses):
            steps[st.id] = c.repo.add_step(
                wf.id, AddStepDTO(status_id=st.id, position_x=i * 100, is_initial=(i == 0))
            )
        for src, dst in edges:
            c.repo.add_transition(wf.id, AddTransitionDTO(
                from_step_id=steps[src.id].id,
                to_step_id=steps[dst.id].id,
                name=f"{src.name} -> {dst.name}",
            ))
        return wf, steps
    return _make


@pytest.fixture()
def statuses(core, seed_statuses) -> Dict[str, Status]:
    return seed_statuses(core)


@pytest.fixture()
def w1(core, statuses, make_workflow):
    """W1: Backlog -> In Progress -> Done."""
    s = statuses
    return make_workflow(
        core,
        "W1",
        [s["Backlog"], s["In Progress"], s["Done"]],
        [(s["Backlog"], s["In Progress"]), (s["In Progress"], s["Done"])],
    )


@pytest.fixture()
def project(core, w1):
    wf, _ = w1
    return core.projects.create_project("P1", "Project One", workflow_id=wf.id)


@pytest.fixture()
def issue(core, project, statuses):
    return core.issues.create_issue(project.id, "P1-1", "First issue", statuses["Backlog"].id)


@pytest.fixture()
def client(core):
    """Cliente de pruebas para peticiones HTTP síncronas contra la app."""
    return TestClient(create_app(core))

