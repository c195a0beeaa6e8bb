import logging

from .models import StepRemovalCheck
from .repository import WorkflowRepository
from .stores import IssueStore, ProjectStore

logger = logging.getLogger(__name__)


class UsageGuard:
    """
    Blocks removal of a step while issues still hold its status.

    Cooperative: the edit path calls can_remove_step before remove_step; the
    repository itself does not enforce it.
    """

    def __init__(self, repo: WorkflowRepository, projects: ProjectStore, issues: IssueStore):
        self.repo = repo
        self.projects = projects
        self.issues = issues

    def can_remove_step(self, workflow_id: str, status_id: str) -> StepRemovalCheck:
        workflow = self.repo.require_workflow(workflow_id)
        # No project binds to a draft; its issues live under the workflow it shadows
        live_id = workflow.draft_of if workflow.is_draft else workflow.id

        project_ids = self.projects.get_projects_using_workflow(live_id)
        count = self.issues.count_issues_with_status(project_ids, status_id)
        if count:
            logger.info(
                "Step %s of workflow %s still holds %d issue(s)", status_id, workflow_id, count
            )
        return StepRemovalCheck(allowed=count == 0, issue_count=count)
