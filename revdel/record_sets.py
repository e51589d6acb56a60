"""Record sets: the records of one kind requested for one subject.

A set runs the backing query (merging live and archived revisions where a
kind has two sources), builds the right ``Record`` for each row, and owns
the kind's pre- and post-commit hooks.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping, Sequence
from typing import Any, ClassVar

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .adapters.cache import CachePurger, NullCachePurger
from .adapters.events import EventPublisher, NullPublisher
from .auth.models import RIGHT_DELETE_LOG_ENTRY, RIGHT_DELETE_REVISION, Actor
from .bits import VisibilityBits
from .config import get_settings
from .errors import IntegrityError, InvalidIdError, UnknownKindError
from .files import archive_rel
from .models.file import ArchivedFile, OldFile
from .models.log_entry import LogEntry
from .models.page import Page
from .models.revision import ArchivedRevision, Revision
from .records import (
    ArchivedFileRecord,
    ArchivedRevisionRecord,
    ArchiveRecord,
    FileRecord,
    LogRecord,
    Record,
    RevisionRecord,
)
from .subject import NS_SPECIAL, Subject
from .timestamps import db_timestamp

logger = logging.getLogger(__name__)

Row = Mapping[str, Any]


class RecordSet(ABC):
    """Base class for the records of one kind."""

    kind: ClassVar[str]
    # Column the caller's ids refer to
    relation_type: ClassVar[str]
    # Right the actor needs to change visibility of this kind
    restriction: ClassVar[str] = RIGHT_DELETE_REVISION
    # Meaning of the CONTENT bit for this kind
    content_label: ClassVar[str] = "text"
    handles_files: ClassVar[bool] = False
    timestamp_ids: ClassVar[bool] = False

    def __init__(
        self,
        db: AsyncSession,
        actor: Actor,
        subject: Subject,
        ids: Iterable[Any],
        cache: CachePurger | None = None,
        publisher: EventPublisher | None = None,
    ):
        self.db = db
        self.actor = actor
        self.subject = subject
        self.ids = self.normalize_ids(ids)
        self.cache = cache or NullCachePurger()
        self.publisher = publisher or NullPublisher()
        self.items: list[Record] = []

    @classmethod
    def normalize_id(cls, value: Any) -> Any:
        """Convert a caller-supplied id to this kind's logical id type.

        Raises:
            InvalidIdError: if the value cannot be an id of this kind.
        """
        try:
            if cls.timestamp_ids:
                return db_timestamp(str(value))
            if isinstance(value, bool):
                raise ValueError(value)
            return int(str(value).strip())
        except ValueError:
            raise InvalidIdError(
                f"Invalid {cls.kind} id: {value!r}", kind=cls.kind, id=value
            ) from None

    @classmethod
    def normalize_ids(cls, ids: Iterable[Any]) -> list[Any]:
        """Normalize and de-duplicate ids, keeping the caller's order."""
        return list(dict.fromkeys(cls.normalize_id(i) for i in ids))

    async def query(self) -> list[Record]:
        """Run the backing query and build one record per row, newest first."""
        if not self.ids:
            self.items = []
            return self.items
        rows = await self.do_query()
        self.items = [self.new_item(row) for row in rows]
        logger.debug(
            "record_set.queried",
            extra={
                "kind": self.kind,
                "subject": self.subject.prefixed_text,
                "requested": len(self.ids),
                "found": len(self.items),
            },
        )
        return self.items

    @abstractmethod
    async def do_query(self) -> Sequence[Row]:
        pass

    @abstractmethod
    def new_item(self, row: Row) -> Record:
        pass

    async def pre_commit(self) -> None:
        """Runs after bits are computed and before any record row is written."""

    async def post_commit(self, changed_ids: Sequence[Any]) -> None:
        """Runs after the changes are committed; failures are advisory."""

    @classmethod
    async def suggest_target(
        cls, db: AsyncSession, subject: Subject, ids: Iterable[Any]
    ) -> Subject:
        return subject

    async def _touch_page(self) -> None:
        await self.db.execute(
            update(Page)
            .where(
                Page.namespace == self.subject.namespace,
                Page.title == self.subject.db_key,
            )
            .values({Page.touched: db_timestamp()})
            .execution_options(synchronize_session=False)
        )
        await self.cache.invalidate(self.subject.prefixed_db_key)

    def _page_url(self) -> str:
        return f"{get_settings().site_url}/{self.subject.prefixed_db_key}"

    def _publish(self, event_type: str, changed_ids: Sequence[Any]) -> None:
        self.publisher.publish(
            event_type,
            {
                "kind": self.kind,
                "subject": self.subject.prefixed_text,
                "ids": [str(i) for i in changed_ids],
                "actor_id": self.actor.user_id,
            },
            attributes={"kind": self.kind},
        )


class RevisionSet(RecordSet):
    """Revisions by id, live or archived with their page."""

    kind = "revision"
    relation_type = "rev_id"

    def __init__(self, *args: Any, **kwargs: Any):
        super().__init__(*args, **kwargs)
        self._current_id: int | None = None
        self._current_loaded = False

    async def do_query(self) -> Sequence[Row]:
        live: Sequence[Row] = []
        page_id = await self.subject.resolve_page_id(self.db)
        if page_id is not None:
            result = await self.db.execute(
                select(Revision.__table__)
                .where(Revision.page_id == page_id, Revision.id.in_(self.ids))
                .order_by(Revision.id.desc())
            )
            live = result.mappings().all()

        if len(live) >= len(self.ids):
            # Every requested revision is live
            return live

        result = await self.db.execute(
            select(ArchivedRevision.__table__)
            .where(
                ArchivedRevision.namespace == self.subject.namespace,
                ArchivedRevision.title == self.subject.db_key,
                ArchivedRevision.rev_id.in_(self.ids),
            )
            .order_by(ArchivedRevision.rev_id.desc())
        )
        archived = result.mappings().all()

        if not archived:
            return live
        if not live:
            return archived
        return merge_by_logical_id(live, "rev_id", archived, "ar_rev_id")

    def new_item(self, row: Row) -> Record:
        if row.get("rev_id") is not None:
            return RevisionRecord(self, row)
        if row.get("ar_rev_id") is not None:
            return ArchivedRevisionRecord(self, row)
        raise IntegrityError(
            f"Invalid row type in {type(self).__name__}", columns=sorted(row)
        )

    async def get_current(self) -> int | None:
        """The subject's current revision id, resolved once per set."""
        if not self._current_loaded:
            result = await self.db.execute(
                select(Page.latest).where(
                    Page.namespace == self.subject.namespace,
                    Page.title == self.subject.db_key,
                )
            )
            self._current_id = result.scalar_one_or_none()
            self._current_loaded = True
        return self._current_id

    async def pre_commit(self) -> None:
        await self._touch_page()

    async def post_commit(self, changed_ids: Sequence[Any]) -> None:
        await self.cache.purge_urls([self._page_url()])
        self._publish("revision.visibility_changed", changed_ids)

    @classmethod
    async def suggest_target(cls, db, subject, ids):
        ids = cls.normalize_ids(ids)
        if not ids:
            return subject
        result = await db.execute(
            select(Page.namespace, Page.title)
            .join(Revision, Revision.page_id == Page.id)
            .where(Revision.id.in_(ids))
            .distinct()
        )
        pages = result.all()
        if len(pages) == 1:
            return Subject(pages[0][0], pages[0][1])
        return subject


class ArchiveSet(RecordSet):
    """Revisions of a deleted page, addressed by timestamp."""

    kind = "archive"
    relation_type = "ar_timestamp"
    timestamp_ids = True

    async def do_query(self) -> Sequence[Row]:
        result = await self.db.execute(
            select(ArchivedRevision.__table__)
            .where(
                ArchivedRevision.namespace == self.subject.namespace,
                ArchivedRevision.title == self.subject.db_key,
                ArchivedRevision.timestamp.in_(self.ids),
            )
            .order_by(ArchivedRevision.timestamp.desc())
        )
        return result.mappings().all()

    def new_item(self, row: Row) -> Record:
        return ArchiveRecord(self, row)


class FileSet(RecordSet):
    """Superseded versions of an existing file, addressed by timestamp."""

    kind = "oldimage"
    relation_type = "oi_archive_name"
    content_label = "file"
    handles_files = True
    timestamp_ids = True

    def archive_names(self) -> list[str]:
        return [f"{ts}!{self.subject.db_key}" for ts in self.ids]

    async def do_query(self) -> Sequence[Row]:
        result = await self.db.execute(
            select(OldFile.__table__)
            .where(
                OldFile.name == self.subject.db_key,
                OldFile.archive_name.in_(self.archive_names()),
            )
            .order_by(OldFile.timestamp.desc())
        )
        return result.mappings().all()

    def new_item(self, row: Row) -> Record:
        return FileRecord(self, row)

    async def is_referenced(self, key: str) -> bool:
        """Whether a restricted-zone key still backs some hidden file version."""
        result = await self.db.execute(
            select(func.count())
            .select_from(ArchivedFile)
            .where(ArchivedFile.storage_key == key)
        )
        if result.scalar_one():
            return True
        sha1 = key.split(".", 1)[0]
        result = await self.db.execute(
            select(func.count())
            .select_from(OldFile)
            .where(
                OldFile.sha1 == sha1,
                OldFile.deleted.op("&")(int(VisibilityBits.CONTENT)) != 0,
            )
        )
        return bool(result.scalar_one())

    def purge_urls(self) -> list[str]:
        base = get_settings().file_url_base
        name = self.subject.db_key
        return [
            f"{base}/{archive_rel(name, archive_name)}"
            for archive_name in self.archive_names()
        ]

    async def pre_commit(self) -> None:
        await self._touch_page()

    async def post_commit(self, changed_ids: Sequence[Any]) -> None:
        await self.cache.purge_urls([self._page_url(), *self.purge_urls()])
        self._publish("file.visibility_changed", changed_ids)


class ArchivedFileSet(FileSet):
    """Versions of a deleted file, addressed by archive row id."""

    kind = "filearchive"
    relation_type = "fa_id"
    timestamp_ids = False

    async def do_query(self) -> Sequence[Row]:
        result = await self.db.execute(
            select(ArchivedFile.__table__)
            .where(
                ArchivedFile.name == self.subject.db_key,
                ArchivedFile.id.in_(self.ids),
            )
            .order_by(ArchivedFile.id.desc())
        )
        return result.mappings().all()

    def new_item(self, row: Row) -> Record:
        return ArchivedFileRecord(self, row)

    def purge_urls(self) -> list[str]:
        # Archived file bytes are never served publicly
        return []


class LogSet(RecordSet):
    """Log entries by id; ``Special:Log/<type>`` narrows to one log type."""

    kind = "logging"
    relation_type = "log_id"
    restriction = RIGHT_DELETE_LOG_ENTRY
    content_label = "action"

    def log_type(self) -> str | None:
        if self.subject.namespace != NS_SPECIAL:
            return None
        prefix, _, log_type = self.subject.db_key.partition("/")
        if prefix.lower() != "log" or not log_type:
            return None
        return log_type.lower()

    async def do_query(self) -> Sequence[Row]:
        stmt = select(LogEntry.__table__).where(LogEntry.id.in_(self.ids))
        log_type = self.log_type()
        if log_type:
            stmt = stmt.where(LogEntry.type == log_type)
        result = await self.db.execute(stmt.order_by(LogEntry.id.desc()))
        return result.mappings().all()

    def new_item(self, row: Row) -> Record:
        return LogRecord(self, row)

    async def post_commit(self, changed_ids: Sequence[Any]) -> None:
        self._publish("log.visibility_changed", changed_ids)

    @classmethod
    async def suggest_target(cls, db, subject, ids):
        ids = cls.normalize_ids(ids)
        if not ids:
            return subject
        result = await db.execute(
            select(LogEntry.type).where(LogEntry.id.in_(ids)).distinct()
        )
        types = result.scalars().all()
        if len(types) == 1:
            return Subject(NS_SPECIAL, f"Log/{types[0]}")
        return subject


def merge_by_logical_id(
    live: Sequence[Row], live_key: str, archived: Sequence[Row], archived_key: str
) -> list[Row]:
    """Merge two sources into one list, newest logical id first.

    When both sources hold the same id the archived row wins.
    """
    rows: dict[Any, Row] = {}
    for row in live:
        rows[row[live_key]] = row
    for row in archived:
        rows[row[archived_key]] = row
    return [rows[key] for key in sorted(rows, reverse=True)]


RECORD_SET_TYPES: dict[str, type[RecordSet]] = {
    cls.kind: cls
    for cls in (RevisionSet, ArchiveSet, FileSet, ArchivedFileSet, LogSet)
}


def get_record_set_class(kind: str) -> type[RecordSet]:
    try:
        return RECORD_SET_TYPES[kind]
    except KeyError:
        raise UnknownKindError(f"Unknown record kind: {kind!r}", kind=kind) from None
