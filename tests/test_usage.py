# tests/test_usage.py
import pytest

from issueflow.errors import WorkflowNotFound


def test_step_without_issues_can_be_removed(core, statuses, w1, issue):
    wf, _ = w1
    check = core.guard.can_remove_step(wf.id, statuses["Done"].id)
    assert check.allowed is True
    assert check.issue_count == 0


def test_step_holding_issues_is_blocked(core, statuses, w1, project, issue):
    wf, _ = w1
    core.issues.create_issue(project.id, "P1-2", "Second", statuses["Backlog"].id)

    check = core.guard.can_remove_step(wf.id, statuses["Backlog"].id)
    assert check.allowed is False
    assert check.issue_count == 2


def test_counts_span_every_bound_project(core, statuses, w1, issue):
    wf, _ = w1
    p2 = core.projects.create_project("P2", "Two", workflow_id=wf.id)
    core.issues.create_issue(p2.id, "P2-1", "Elsewhere", statuses["Backlog"].id)

    assert core.guard.can_remove_step(wf.id, statuses["Backlog"].id).issue_count == 2


def test_issues_of_unbound_projects_do_not_count(core, statuses, w1, issue):
    wf, _ = w1
    other = core.projects.create_project("OTHER", "Unbound")
    core.issues.create_issue(other.id, "OTHER-1", "Not ours", statuses["Done"].id)

    assert core.guard.can_remove_step(wf.id, statuses["Done"].id).allowed is True


def test_draft_counts_issues_of_the_live_workflow(core, statuses, w1, issue):
    wf, _ = w1
    draft = core.drafts.start_draft(wf.id)

    check = core.guard.can_remove_step(draft.id, statuses["Backlog"].id)
    assert check.allowed is False
    assert check.issue_count == 1


def test_unknown_workflow(core):
    with pytest.raises(WorkflowNotFound):
        core.guard.can_remove_step("wf_missing", "st_x")
