# tests/test_editing.py
"""
Ruta de edición: errores de grafo como datos (EditResult), guardia de uso
y bloqueo de workflows publicados en uso.
"""

import pytest

from issueflow.errors import StepNotFound, WorkflowLocked
from issueflow.models import (
    AddStepDTO,
    AddTransitionDTO,
    UpdateStepDTO,
    UpdateTransitionDTO,
)


@pytest.fixture()
def draft(core, w1):
    wf, _ = w1
    return core.drafts.start_draft(wf.id)


def step_of(core, workflow_id, status):
    return core.repo.load_graph(workflow_id).step_for_status(status.id)


def test_published_workflow_in_use_is_locked(core, statuses, w1, project):
    wf, _ = w1
    with pytest.raises(WorkflowLocked):
        core.editor.add_step(wf.id, AddStepDTO(status_id=statuses["Review"].id))


def test_unbound_published_workflow_is_editable(core, statuses, w1):
    wf, _ = w1
    result = core.editor.add_step(wf.id, AddStepDTO(status_id=statuses["Review"].id))
    assert result.ok
    assert result.step.status_id == statuses["Review"].id


def test_add_step_reports_problems_as_data(core, statuses, draft):
    dup = core.editor.add_step(draft.id, AddStepDTO(status_id=statuses["Backlog"].id))
    assert dup.ok is False
    assert [e.code for e in dup.errors] == ["duplicate_status"]

    unknown = core.editor.add_step(draft.id, AddStepDTO(status_id="st_nope"))
    assert [e.code for e in unknown.errors] == ["unknown_status"]

    second_initial = core.editor.add_step(
        draft.id, AddStepDTO(status_id=statuses["Review"].id, is_initial=True)
    )
    assert [e.code for e in second_initial.errors] == ["multiple_initial_steps"]
    assert not core.repo.load_graph(draft.id).has_status(statuses["Review"].id)


def test_update_step_guards_initial_flag(core, statuses, draft):
    doing = step_of(core, draft.id, statuses["In Progress"])
    result = core.editor.update_step(draft.id, doing.id, UpdateStepDTO(is_initial=True))
    assert [e.code for e in result.errors] == ["multiple_initial_steps"]

    moved = core.editor.update_step(draft.id, doing.id, UpdateStepDTO(position_x=500, position_y=40))
    assert moved.ok
    assert (moved.step.position_x, moved.step.position_y) == (500, 40)


def test_remove_step_blocked_while_issues_hold_status(core, statuses, draft, issue):
    backlog = step_of(core, draft.id, statuses["Backlog"])
    result = core.editor.remove_step(draft.id, backlog.id)

    assert result.ok is False
    assert result.issue_count == 1
    assert result.errors[0].code == "step_in_use"
    assert "1 issue(s)" in result.errors[0].message
    assert core.repo.load_graph(draft.id).has_status(statuses["Backlog"].id)


def test_remove_free_step(core, statuses, draft, issue):
    done = step_of(core, draft.id, statuses["Done"])
    result = core.editor.remove_step(draft.id, done.id)

    assert result.ok
    graph = core.repo.load_graph(draft.id)
    assert not graph.has_status(statuses["Done"].id)
    assert graph.validate() == []


def test_remove_unknown_step(core, draft):
    with pytest.raises(StepNotFound):
        core.editor.remove_step(draft.id, "step_missing")


def test_add_transition_checks_references(core, statuses, draft):
    backlog = step_of(core, draft.id, statuses["Backlog"])
    doing = step_of(core, draft.id, statuses["In Progress"])

    orphan = core.editor.add_transition(draft.id, AddTransitionDTO(
        from_step_id=backlog.id, to_step_id="step_elsewhere", name="Nowhere",
    ))
    assert [e.code for e in orphan.errors] == ["orphan_transition"]

    dup = core.editor.add_transition(draft.id, AddTransitionDTO(
        from_step_id=backlog.id, to_step_id=doing.id, name="Again",
    ))
    assert [e.code for e in dup.errors] == ["duplicate_transition"]

    back = core.editor.add_transition(draft.id, AddTransitionDTO(
        from_step_id=doing.id, to_step_id=backlog.id, name="Reopen",
        conditions=[{"type": "user_in_group", "group": "devs"}],
    ))
    assert back.ok
    assert back.transition.conditions == [{"type": "user_in_group", "group": "devs"}]


def test_update_and_remove_transition(core, statuses, draft):
    graph = core.repo.load_graph(draft.id)
    tr = graph.outgoing(statuses["Backlog"].id)[0]

    renamed = core.editor.update_transition(draft.id, tr.id, UpdateTransitionDTO(name="Start work"))
    assert renamed.transition.name == "Start work"

    assert core.editor.remove_transition(draft.id, tr.id).ok
    assert not core.repo.load_graph(draft.id).is_valid_transition(
        statuses["Backlog"].id, statuses["In Progress"].id
    )
