"""Recent activity index, denormalized from revisions and log entries."""

from sqlalchemy import Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from ..database import Base


class RecentChange(Base):
    """One row of the recent-activity feed.

    Points at a revision (``this_oldid``) or a log entry (``log_id``) without
    a unique back-reference; lookups pair the id with the timestamp index.
    """

    __tablename__ = "recentchanges"

    id: Mapped[int] = mapped_column("rc_id", Integer, primary_key=True)
    timestamp: Mapped[str] = mapped_column("rc_timestamp", String(14), nullable=False)
    namespace: Mapped[int] = mapped_column(
        "rc_namespace", Integer, nullable=False, server_default="0"
    )
    title: Mapped[str] = mapped_column(
        "rc_title", String(255), nullable=False, server_default=""
    )
    this_oldid: Mapped[int] = mapped_column(
        "rc_this_oldid", Integer, nullable=False, server_default="0"
    )
    log_id: Mapped[int] = mapped_column(
        "rc_logid", Integer, nullable=False, server_default="0"
    )
    deleted: Mapped[int] = mapped_column(
        "rc_deleted", Integer, nullable=False, server_default="0"
    )
    patrolled: Mapped[int] = mapped_column(
        "rc_patrolled", Integer, nullable=False, server_default="0"
    )

    __table_args__ = (Index("rc_timestamp", "rc_timestamp"),)
