"""The page, file or log grouping a redaction batch is scoped to."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .models.page import Page

NS_SPECIAL = -1
NS_MAIN = 0
NS_TALK = 1
NS_USER = 2
NS_PROJECT = 4
NS_FILE = 6
NS_TEMPLATE = 10
NS_CATEGORY = 14

NAMESPACE_NAMES: dict[int, str] = {
    NS_SPECIAL: "Special",
    NS_MAIN: "",
    NS_TALK: "Talk",
    NS_USER: "User",
    NS_PROJECT: "Project",
    NS_FILE: "File",
    NS_TEMPLATE: "Template",
    NS_CATEGORY: "Category",
}
_NAMESPACE_IDS = {name.lower(): ns for ns, name in NAMESPACE_NAMES.items() if name}


@dataclass(frozen=True)
class Subject:
    namespace: int
    title: str

    def __post_init__(self) -> None:
        if not self.title.strip():
            raise ValueError("Subject title must not be empty")
        # Canonical form: underscores, first letter upper-cased
        key = self.title.strip().replace(" ", "_")
        object.__setattr__(self, "title", key[0].upper() + key[1:])

    @classmethod
    def from_text(cls, text: str) -> Subject:
        """Parse "Namespace:Title" (or a bare title in the main namespace)."""
        prefix, sep, rest = text.partition(":")
        if sep and prefix.strip().lower() in _NAMESPACE_IDS:
            return cls(_NAMESPACE_IDS[prefix.strip().lower()], rest)
        return cls(NS_MAIN, text)

    @property
    def db_key(self) -> str:
        return self.title

    @property
    def text(self) -> str:
        return self.title.replace("_", " ")

    @property
    def prefixed_text(self) -> str:
        ns_name = NAMESPACE_NAMES.get(self.namespace, "")
        return f"{ns_name}:{self.text}" if ns_name else self.text

    @property
    def prefixed_db_key(self) -> str:
        return self.prefixed_text.replace(" ", "_")

    async def resolve_page_id(self, db: AsyncSession) -> int | None:
        result = await db.execute(
            select(Page.id).where(
                Page.namespace == self.namespace,
                Page.title == self.db_key,
            )
        )
        return result.scalar_one_or_none()

    def __str__(self) -> str:
        return self.prefixed_text
