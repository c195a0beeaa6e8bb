"""
issueflow
Workflow engine for an issue tracker: statuses, transitions, draft/publish
lifecycle and board column synchronization.
"""

__version__ = "0.1.0"
