"""Revision models: the live ``revision`` table and the ``archive`` table."""

from sqlalchemy import ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ..database import Base


class Revision(Base):
    """A live revision of an existing page."""

    __tablename__ = "revision"

    id: Mapped[int] = mapped_column("rev_id", Integer, primary_key=True)
    page_id: Mapped[int] = mapped_column(
        "rev_page",
        Integer,
        ForeignKey("page.page_id", ondelete="CASCADE"),
        nullable=False,
    )
    timestamp: Mapped[str] = mapped_column("rev_timestamp", String(14), nullable=False)
    user_id: Mapped[int] = mapped_column(
        "rev_user", Integer, nullable=False, server_default="0"
    )
    user_text: Mapped[str] = mapped_column("rev_user_text", String(255), nullable=False)
    comment: Mapped[str] = mapped_column(
        "rev_comment", Text, nullable=False, server_default=""
    )
    length: Mapped[int | None] = mapped_column("rev_len", Integer, nullable=True)
    sha1: Mapped[str] = mapped_column(
        "rev_sha1", String(32), nullable=False, server_default=""
    )
    deleted: Mapped[int] = mapped_column(
        "rev_deleted", Integer, nullable=False, server_default="0"
    )

    __table_args__ = (
        Index("rev_page_id", "rev_page", "rev_id"),
        Index("rev_timestamp", "rev_timestamp"),
    )

    def __repr__(self) -> str:
        return f"<Revision(id={self.id}, page={self.page_id}, deleted={self.deleted})>"


class ArchivedRevision(Base):
    """A revision of a deleted page, keyed by title and timestamp.

    ``rev_id`` keeps the revision's original id when it is known, which is
    how the live and archived views of one revision are joined.
    """

    __tablename__ = "archive"

    id: Mapped[int] = mapped_column("ar_id", Integer, primary_key=True)
    namespace: Mapped[int] = mapped_column("ar_namespace", Integer, nullable=False)
    title: Mapped[str] = mapped_column("ar_title", String(255), nullable=False)
    rev_id: Mapped[int | None] = mapped_column("ar_rev_id", Integer, nullable=True)
    timestamp: Mapped[str] = mapped_column("ar_timestamp", String(14), nullable=False)
    user_id: Mapped[int] = mapped_column(
        "ar_user", Integer, nullable=False, server_default="0"
    )
    user_text: Mapped[str] = mapped_column("ar_user_text", String(255), nullable=False)
    comment: Mapped[str] = mapped_column(
        "ar_comment", Text, nullable=False, server_default=""
    )
    length: Mapped[int | None] = mapped_column("ar_len", Integer, nullable=True)
    sha1: Mapped[str] = mapped_column(
        "ar_sha1", String(32), nullable=False, server_default=""
    )
    deleted: Mapped[int] = mapped_column(
        "ar_deleted", Integer, nullable=False, server_default="0"
    )

    __table_args__ = (
        Index("name_title_timestamp", "ar_namespace", "ar_title", "ar_timestamp"),
        Index("ar_revid", "ar_rev_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<ArchivedRevision(id={self.id}, title={self.title}, "
            f"ts={self.timestamp}, rev_id={self.rev_id})>"
        )
