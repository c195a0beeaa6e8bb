# tests/test_transitions.py
"""
Ejecutor de transiciones: la máquina de estados en tiempo de ejecución.
"""

import pytest

from issueflow.errors import IssueNotFound, ProjectWorkflowNotFound, StatusConflictError
from issueflow.models import AddTransitionDTO
from issueflow.transitions import TRANSITION_NOT_ALLOWED


def test_move_not_in_workflow_is_rejected(core, statuses, issue):
    result = core.executor.execute_transition(issue.id, statuses["Done"].id)

    assert result.success is False
    assert result.error.startswith(TRANSITION_NOT_ALLOWED)
    assert "In Progress" in result.error
    assert result.from_status_id == statuses["Backlog"].id
    assert core.issues.get_issue_status(issue.id) == statuses["Backlog"].id


def test_allowed_move_updates_issue(core, statuses, issue):
    result = core.executor.execute_transition(issue.id, statuses["In Progress"].id)

    assert result.success is True
    assert result.error is None
    assert core.issues.get_issue_status(issue.id) == statuses["In Progress"].id

    # And onwards along the chain
    assert core.executor.execute_transition(issue.id, statuses["Done"].id).success


def test_status_outside_workflow_is_rejected(core, statuses, issue):
    result = core.executor.execute_transition(issue.id, statuses["Review"].id)
    assert result.success is False


def test_same_status_requires_self_loop(core, statuses, w1, issue):
    wf, steps = w1
    backlog = statuses["Backlog"]
    assert core.executor.execute_transition(issue.id, backlog.id).success is False

    step_id = steps[backlog.id].id
    core.repo.add_transition(wf.id, AddTransitionDTO(from_step_id=step_id, to_step_id=step_id, name="Touch"))
    assert core.executor.execute_transition(issue.id, backlog.id).success is True


def test_terminal_status_message(core, statuses, project):
    done_issue = core.issues.create_issue(project.id, "P1-9", "Closed", statuses["Done"].id)
    result = core.executor.execute_transition(done_issue.id, statuses["Backlog"].id)
    assert result.success is False
    assert "isn't allowed from the current status" in result.error


def test_unknown_issue_raises_not_found(core, statuses, w1):
    with pytest.raises(IssueNotFound):
        core.executor.execute_transition("iss_missing", statuses["Done"].id)


def test_project_without_workflow_raises_not_found(core, statuses):
    p = core.projects.create_project("NOWF", "No workflow")
    i = core.issues.create_issue(p.id, "NOWF-1", "Orphan", statuses["Backlog"].id)
    with pytest.raises(ProjectWorkflowNotFound):
        core.executor.execute_transition(i.id, statuses["Done"].id)


def test_lost_race_surfaces_conflict(core, statuses, issue):
    # Another writer moved the issue after our read
    core.issues.set_issue_status(issue.id, statuses["In Progress"].id, statuses["Backlog"].id)

    with pytest.raises(StatusConflictError) as exc:
        core.issues.set_issue_status(issue.id, statuses["Done"].id, statuses["Backlog"].id)
    assert exc.value.actual_status_id == statuses["In Progress"].id
    assert core.issues.get_issue_status(issue.id) == statuses["In Progress"].id


def test_stale_read_in_executor_raises_conflict(core, statuses, issue, monkeypatch):
    real_get_issue = core.issues.get_issue

    def get_then_race(issue_id):
        snapshot = real_get_issue(issue_id)
        core.issues.set_issue_status(issue_id, statuses["In Progress"].id, statuses["Backlog"].id)
        return snapshot

    monkeypatch.setattr(core.issues, "get_issue", get_then_race)
    with pytest.raises(StatusConflictError):
        core.executor.execute_transition(issue.id, statuses["In Progress"].id)


def test_available_transitions(core, statuses, issue):
    options = core.executor.available_transitions(issue.id)
    assert [(o.to_status_id, o.to_status_name) for o in options] == [
        (statuses["In Progress"].id, "In Progress")
    ]
    assert options[0].transition_name == "Backlog -> In Progress"
