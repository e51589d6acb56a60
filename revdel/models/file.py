"""File version models: superseded versions and archived (deleted) files."""

from sqlalchemy import Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ..database import Base


class OldFile(Base):
    """A superseded version of a file that still exists.

    ``archive_name`` is ``<timestamp>!<name>``; the bytes sit in the public
    zone under that name unless the version is hidden, in which case they
    sit in the restricted zone under ``storage_key``.
    """

    __tablename__ = "oldimage"

    name: Mapped[str] = mapped_column("oi_name", String(255), primary_key=True)
    timestamp: Mapped[str] = mapped_column("oi_timestamp", String(14), primary_key=True)
    archive_name: Mapped[str] = mapped_column(
        "oi_archive_name", String(255), nullable=False
    )
    user_id: Mapped[int] = mapped_column(
        "oi_user", Integer, nullable=False, server_default="0"
    )
    user_text: Mapped[str] = mapped_column("oi_user_text", String(255), nullable=False)
    description: Mapped[str] = mapped_column(
        "oi_description", Text, nullable=False, server_default=""
    )
    size: Mapped[int] = mapped_column("oi_size", Integer, nullable=False, server_default="0")
    width: Mapped[int] = mapped_column("oi_width", Integer, nullable=False, server_default="0")
    height: Mapped[int] = mapped_column(
        "oi_height", Integer, nullable=False, server_default="0"
    )
    sha1: Mapped[str] = mapped_column("oi_sha1", String(40), nullable=False)
    deleted: Mapped[int] = mapped_column(
        "oi_deleted", Integer, nullable=False, server_default="0"
    )

    __table_args__ = (Index("oi_name_archive_name", "oi_name", "oi_archive_name"),)

    def __repr__(self) -> str:
        return f"<OldFile(name={self.name}, archive_name={self.archive_name})>"


class ArchivedFile(Base):
    """A version of a deleted file; its bytes always sit in the restricted zone."""

    __tablename__ = "filearchive"

    id: Mapped[int] = mapped_column("fa_id", Integer, primary_key=True)
    name: Mapped[str] = mapped_column("fa_name", String(255), nullable=False)
    archive_name: Mapped[str | None] = mapped_column(
        "fa_archive_name", String(255), nullable=True
    )
    storage_key: Mapped[str] = mapped_column(
        "fa_storage_key", String(64), nullable=False, server_default=""
    )
    timestamp: Mapped[str] = mapped_column("fa_timestamp", String(14), nullable=False)
    user_id: Mapped[int] = mapped_column(
        "fa_user", Integer, nullable=False, server_default="0"
    )
    user_text: Mapped[str] = mapped_column("fa_user_text", String(255), nullable=False)
    description: Mapped[str] = mapped_column(
        "fa_description", Text, nullable=False, server_default=""
    )
    size: Mapped[int] = mapped_column("fa_size", Integer, nullable=False, server_default="0")
    width: Mapped[int] = mapped_column("fa_width", Integer, nullable=False, server_default="0")
    height: Mapped[int] = mapped_column(
        "fa_height", Integer, nullable=False, server_default="0"
    )
    deleted: Mapped[int] = mapped_column(
        "fa_deleted", Integer, nullable=False, server_default="0"
    )

    __table_args__ = (
        Index("fa_name", "fa_name", "fa_timestamp"),
        Index("fa_storage_key", "fa_storage_key"),
    )
