"""Log entry model."""

from sqlalchemy import Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from ..database import Base


class LogEntry(Base):
    __tablename__ = "logging"

    id: Mapped[int] = mapped_column("log_id", Integer, primary_key=True)
    type: Mapped[str] = mapped_column("log_type", String(32), nullable=False)
    action: Mapped[str] = mapped_column("log_action", String(32), nullable=False)
    timestamp: Mapped[str] = mapped_column("log_timestamp", String(14), nullable=False)
    user_id: Mapped[int] = mapped_column(
        "log_user", Integer, nullable=False, server_default="0"
    )
    user_text: Mapped[str] = mapped_column("log_user_text", String(255), nullable=False)
    namespace: Mapped[int] = mapped_column(
        "log_namespace", Integer, nullable=False, server_default="0"
    )
    title: Mapped[str] = mapped_column(
        "log_title", String(255), nullable=False, server_default=""
    )
    page_id: Mapped[int | None] = mapped_column("log_page", Integer, nullable=True)
    comment: Mapped[str] = mapped_column(
        "log_comment", Text, nullable=False, server_default=""
    )
    params: Mapped[str] = mapped_column(
        "log_params", Text, nullable=False, server_default=""
    )
    deleted: Mapped[int] = mapped_column(
        "log_deleted", Integer, nullable=False, server_default="0"
    )

    __table_args__ = (Index("type_time", "log_type", "log_timestamp"),)

    def __repr__(self) -> str:
        return f"<LogEntry(id={self.id}, type={self.type}, action={self.action})>"
