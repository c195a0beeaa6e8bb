"""
Composition root: wires the stores and workflow components over one engine.
"""

from typing import Optional

from sqlalchemy import Engine

from .boards import BoardColumnSynchronizer
from .config import Settings, settings as default_settings
from .drafts import DraftManager
from .editing import WorkflowEditor
from .repository import WorkflowRepository
from .stores import BoardStore, IssueStore, ProjectStore, StatusCatalog
from .transitions import TransitionExecutor
from .usage import UsageGuard


class WorkflowCore:
    """
    Every component of the workflow engine, built over one database engine.
    Collaborator stores can be swapped in (tests inject failing ones).
    """

    def __init__(
        self,
        engine: Engine,
        settings: Optional[Settings] = None,
        *,
        catalog: Optional[StatusCatalog] = None,
        issues: Optional[IssueStore] = None,
        projects: Optional[ProjectStore] = None,
        boards: Optional[BoardStore] = None,
    ):
        self.engine = engine
        self.settings = settings or default_settings

        self.repo = WorkflowRepository(engine)
        self.catalog = catalog or StatusCatalog(engine)
        self.issues = issues or IssueStore(engine)
        self.projects = projects or ProjectStore(engine)
        self.boards = boards or BoardStore(engine)

        self.guard = UsageGuard(self.repo, self.projects, self.issues)
        self.synchronizer = BoardColumnSynchronizer(self.repo, self.projects, self.boards, self.catalog)
        self.drafts = DraftManager(
            self.repo,
            self.projects,
            self.synchronizer,
            self.guard,
            max_workers=self.settings.sync_max_workers,
            sync_timeout=self.settings.sync_timeout_seconds,
        )
        self.executor = TransitionExecutor(self.repo, self.projects, self.issues, self.catalog)
        self.editor = WorkflowEditor(self.repo, self.projects, self.catalog, self.guard)

    def create_schema(self) -> None:
        self.repo.create_schema()
