# tests/test_repository.py
"""
Pruebas unitarias del repositorio SQLModel sobre SQLite en memoria.
"""

import re

import pytest
from sqlalchemy import event
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import StaticPool
from sqlmodel import create_engine

from issueflow.config import Settings
from issueflow.core import WorkflowCore
from issueflow.errors import (
    DuplicateStep,
    DuplicateTransition,
    InvalidWorkflowGraph,
    StepNotFound,
    WorkflowInUse,
    WorkflowNotFound,
)
from issueflow.models import AddStepDTO, AddTransitionDTO, UpdateWorkflowDTO

WF_ID_RE = r"^wf_[0-9A-Z]{26}$"


def test_create_and_get_workflow(core):
    wf = core.repo.create_workflow("Software", description="Default flow")
    assert re.match(WF_ID_RE, wf.id)
    assert wf.is_draft is False
    assert wf.published_at is not None

    got = core.repo.get_workflow(wf.id)
    assert got == wf
    assert core.repo.get_workflow("wf_missing") is None
    with pytest.raises(WorkflowNotFound):
        core.repo.require_workflow("wf_missing")


def test_list_workflows_by_project_and_drafts(core, w1):
    wf, _ = w1
    owned = core.repo.create_workflow("Owned", project_id="prj_a")
    core.repo.create_workflow("Other", project_id="prj_b")
    draft = core.repo.create_draft(wf.id)

    names = [w.name for w in core.repo.list_workflows(project_id="prj_a", include_drafts=False)]
    assert names == ["Owned", "W1"]

    ids = {w.id for w in core.repo.list_workflows()}
    assert {wf.id, owned.id, draft.id}.issubset(ids)
    assert draft.id not in {w.id for w in core.repo.list_workflows(include_drafts=False)}


def test_update_workflow(core):
    wf = core.repo.create_workflow("Old")
    updated = core.repo.update_workflow(wf.id, UpdateWorkflowDTO(name="New"))
    assert updated.name == "New"
    assert updated.description is None


def test_detail_and_graph_reflect_storage(core, statuses, w1):
    wf, steps = w1
    detail = core.repo.get_workflow_detail(wf.id)
    assert len(detail.steps) == 3
    assert len(detail.transitions) == 2

    g = core.repo.load_graph(wf.id)
    assert g.status_ids == set(steps)
    assert g.is_valid_transition(statuses["Backlog"].id, statuses["In Progress"].id)


def test_step_per_status_is_unique(core, statuses, w1):
    wf, _ = w1
    with pytest.raises(DuplicateStep):
        core.repo.add_step(wf.id, AddStepDTO(status_id=statuses["Backlog"].id))


def test_transition_per_pair_is_unique(core, statuses, w1):
    wf, steps = w1
    backlog, doing = steps[statuses["Backlog"].id], steps[statuses["In Progress"].id]
    with pytest.raises(DuplicateTransition):
        core.repo.add_transition(wf.id, AddTransitionDTO(
            from_step_id=backlog.id, to_step_id=doing.id, name="Again",
        ))


def test_remove_step_drops_its_transitions(core, statuses, w1):
    wf, steps = w1
    doing = steps[statuses["In Progress"].id]
    core.repo.remove_step(wf.id, doing.id)

    detail = core.repo.get_workflow_detail(wf.id)
    assert doing.id not in {s.id for s in detail.steps}
    assert detail.transitions == []
    assert core.repo.load_graph(wf.id).validate() == []


def test_step_of_other_workflow_is_not_found(core, statuses, w1):
    wf, steps = w1
    other = core.repo.create_workflow("Other")
    with pytest.raises(StepNotFound):
        core.repo.remove_step(other.id, steps[statuses["Done"].id].id)


def test_clone_copies_graph_with_fresh_ids(core, statuses, w1):
    wf, steps = w1
    clone = core.repo.clone_workflow(wf.id, "W1 copy", project_id="prj_x")
    assert clone.id != wf.id
    assert clone.project_id == "prj_x"

    g = core.repo.load_graph(clone.id)
    assert g.status_ids == set(steps)
    assert not {s.id for s in g.steps} & {s.id for s in steps.values()}
    assert g.is_valid_transition(statuses["Backlog"].id, statuses["In Progress"].id)
    assert g.validate() == []


def test_delete_workflow_in_use_is_refused(core, w1, project):
    wf, _ = w1
    with pytest.raises(WorkflowInUse) as exc:
        core.repo.delete_workflow(wf.id)
    assert exc.value.project_ids == [project.id]


def test_delete_workflow_takes_its_draft(core, w1):
    wf, _ = w1
    draft = core.repo.create_draft(wf.id)
    core.repo.delete_workflow(wf.id)
    assert core.repo.get_workflow(wf.id) is None
    assert core.repo.get_workflow(draft.id) is None


@pytest.fixture()
def fk_core():
    """Core en memoria con PRAGMA foreign_keys=ON."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _foreign_keys(dbapi_connection, _record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    c = WorkflowCore(engine, Settings(sync_max_workers=1))
    c.create_schema()
    return c


def test_only_unique_violations_become_conflicts(fk_core, seed_statuses):
    backlog = seed_statuses(fk_core)["Backlog"]
    wf = fk_core.repo.create_workflow("W")
    step = fk_core.repo.add_step(wf.id, AddStepDTO(status_id=backlog.id))

    # Foreign key failure: not a duplicate
    with pytest.raises(IntegrityError):
        fk_core.repo.add_step(wf.id, AddStepDTO(status_id="st_missing"))
    with pytest.raises(IntegrityError):
        fk_core.repo.add_transition(wf.id, AddTransitionDTO(
            from_step_id=step.id, to_step_id="step_missing", name="Nowhere",
        ))

    with pytest.raises(DuplicateStep):
        fk_core.repo.add_step(wf.id, AddStepDTO(status_id=backlog.id))
    assert fk_core.repo.load_graph(wf.id).status_ids == {backlog.id}


# ============================================================================
# Export / import
# ============================================================================

def test_export_uses_status_ids_and_names(core, statuses, w1):
    wf, steps = w1
    exported = core.repo.export_workflow(wf.id)

    payload = exported.model_dump(mode="json", by_alias=True)
    assert payload["version"] == "1.0"
    assert payload["exportedAt"]
    body = payload["workflow"]
    assert body["name"] == "W1"
    assert {s["status_id"] for s in body["steps"]} == set(steps)
    assert {s["status_name"] for s in body["steps"]} == {"Backlog", "In Progress", "Done"}
    assert [s["is_initial"] for s in body["steps"] if s["status_name"] == "Backlog"] == [True]
    assert {(t["from_status_id"], t["to_status_id"]) for t in body["transitions"]} == {
        (statuses["Backlog"].id, statuses["In Progress"].id),
        (statuses["In Progress"].id, statuses["Done"].id),
    }


def test_import_rebuilds_the_graph_with_fresh_ids(core, statuses, w1):
    wf, steps = w1
    imported = core.repo.import_workflow(core.repo.export_workflow(wf.id), "W1 (Imported)", project_id="prj_x")

    assert re.match(WF_ID_RE, imported.id)
    assert imported.id != wf.id
    assert imported.name == "W1 (Imported)"
    assert imported.project_id == "prj_x"
    assert imported.is_draft is False

    g = core.repo.load_graph(imported.id)
    assert g.validate() == []
    assert g.status_ids == set(steps)
    assert not {s.id for s in g.steps} & {s.id for s in steps.values()}
    assert g.step_for_status(statuses["Backlog"].id).is_initial
    assert g.is_valid_transition(statuses["In Progress"].id, statuses["Done"].id)
    assert not g.is_valid_transition(statuses["Backlog"].id, statuses["Done"].id)


def test_import_matches_foreign_status_ids_by_name(core, statuses, w1):
    wf, _ = w1
    data = core.repo.export_workflow(wf.id)
    # Otra instancia: mismos nombres, otros ids
    foreign = {s.status_id: f"st_remote_{i}" for i, s in enumerate(data.workflow.steps)}
    for s in data.workflow.steps:
        s.status_id = foreign[s.status_id]
    for t in data.workflow.transitions:
        t.from_status_id, t.to_status_id = foreign[t.from_status_id], foreign[t.to_status_id]

    imported = core.repo.import_workflow(data, "Remote")
    g = core.repo.load_graph(imported.id)
    assert g.status_ids == {statuses[n].id for n in ("Backlog", "In Progress", "Done")}
    assert g.is_valid_transition(statuses["Backlog"].id, statuses["In Progress"].id)


def test_import_rejects_unknown_status_and_writes_nothing(core, statuses, w1):
    wf, _ = w1
    data = core.repo.export_workflow(wf.id)
    done = next(s for s in data.workflow.steps if s.status_name == "Done")
    done.status_id, done.status_name = "st_nowhere", "Archived"

    before = core.repo.list_workflows()
    with pytest.raises(InvalidWorkflowGraph) as exc:
        core.repo.import_workflow(data, "Broken")
    codes = [e.code for e in exc.value.errors]
    assert codes[0] == "unknown_status"
    assert "orphan_transition" in codes
    assert core.repo.list_workflows() == before


def test_import_rejects_other_format_versions(core, w1):
    wf, _ = w1
    data = core.repo.export_workflow(wf.id)
    data.version = "2.0"
    with pytest.raises(InvalidWorkflowGraph) as exc:
        core.repo.import_workflow(data, "Future")
    assert [e.code for e in exc.value.errors] == ["unsupported_version"]
