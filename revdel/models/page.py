"""Page model."""

from sqlalchemy import Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from ..database import Base


class Page(Base):
    """A page; ``latest`` points at its current revision."""

    __tablename__ = "page"

    id: Mapped[int] = mapped_column("page_id", Integer, primary_key=True)
    namespace: Mapped[int] = mapped_column("page_namespace", Integer, nullable=False)
    title: Mapped[str] = mapped_column("page_title", String(255), nullable=False)
    latest: Mapped[int] = mapped_column(
        "page_latest", Integer, nullable=False, server_default="0"
    )
    touched: Mapped[str] = mapped_column("page_touched", String(14), nullable=False)

    __table_args__ = (
        UniqueConstraint("page_namespace", "page_title", name="name_title"),
    )

    def __repr__(self) -> str:
        return f"<Page(id={self.id}, ns={self.namespace}, title={self.title})>"
