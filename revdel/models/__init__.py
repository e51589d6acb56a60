"""SQLAlchemy models for the application."""

from .file import ArchivedFile, OldFile
from .log_entry import LogEntry
from .page import Page
from .recent_change import RecentChange
from .revision import ArchivedRevision, Revision

__all__ = [
    "ArchivedFile",
    "ArchivedRevision",
    "LogEntry",
    "OldFile",
    "Page",
    "RecentChange",
    "Revision",
]
