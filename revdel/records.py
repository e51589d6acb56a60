"""Records: one historical entry backed by one physical row.

Each concrete record kind knows the shape of its row and how to
compare-and-swap its visibility bits. Records are created by their
``RecordSet`` from query rows and keep a non-owning reference to it for
the acting user and the subject.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, ClassVar

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from .bits import VisibilityBits, can_view
from .config import get_settings
from .files import FileRef, archive_rel, storage_key
from .models.file import ArchivedFile, OldFile
from .models.log_entry import LogEntry
from .models.recent_change import RecentChange
from .models.revision import ArchivedRevision, Revision
from .timestamps import iso_timestamp

if TYPE_CHECKING:
    from .auth.models import Actor
    from .migration import FileMigrationPlan
    from .record_sets import RecordSet, RevisionSet

logger = logging.getLogger(__name__)


class Record(ABC):
    """One historical entry and its visibility bits as last read."""

    id_field: ClassVar[str]
    timestamp_field: ClassVar[str]
    author_id_field: ClassVar[str]
    author_name_field: ClassVar[str]
    comment_field: ClassVar[str]
    bits_field: ClassVar[str]
    # API flag name for the CONTENT bit
    content_flag: ClassVar[str] = "texthidden"

    def __init__(self, record_set: RecordSet, row: Mapping[str, Any]):
        self.record_set = record_set
        self.row = dict(row)
        # Snapshot: every set_bits call compares against this value
        self._bits = VisibilityBits(int(self.row[self.bits_field]))

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(id={self.id!r}, bits={int(self._bits)})>"

    @property
    def actor(self) -> Actor:
        return self.record_set.actor

    @property
    def id(self) -> Any:
        return self.row[self.id_field]

    @property
    def timestamp(self) -> str:
        return self.row[self.timestamp_field]

    @property
    def author_id(self) -> int:
        return self.row[self.author_id_field]

    @property
    def author_name(self) -> str:
        return self.row[self.author_name_field]

    @property
    def comment(self) -> str:
        return self.row[self.comment_field]

    @property
    def bits(self) -> VisibilityBits:
        return self._bits

    def can_view(self) -> bool:
        """Whether the actor may see (and therefore alter) this record at all."""
        return can_view(self._bits, VisibilityBits.RESTRICTED, self.actor)

    def can_view_content(self) -> bool:
        return can_view(self._bits, VisibilityBits.CONTENT, self.actor)

    def can_view_field(self, bit: VisibilityBits) -> bool:
        return can_view(self._bits, bit, self.actor)

    def is_deleted(self) -> bool:
        return bool(self._bits & VisibilityBits.CONTENT)

    async def is_hide_current_op(self, new_bits: int) -> bool:
        return False

    @abstractmethod
    async def set_bits(
        self,
        db: AsyncSession,
        new_bits: int,
        plan: FileMigrationPlan | None = None,
    ) -> bool:
        """Compare-and-swap this record's bits from ``self.bits`` to ``new_bits``.

        Returns:
            True if exactly one row matched, False if the row vanished or
            another actor changed its bits since it was read.
        """

    def to_api_data(self) -> dict[str, Any]:
        """Render the record for the acting user, omitting fields it may not see."""
        data: dict[str, Any] = {
            "id": self.id,
            "timestamp": iso_timestamp(self.timestamp),
        }
        data.update(self._hidden_flags())
        if self.can_view_field(VisibilityBits.AUTHOR):
            data["userid"] = self.author_id
            data["user"] = self.author_name
        if self.can_view_field(VisibilityBits.COMMENT):
            data["comment"] = self.comment
        return data

    def _hidden_flags(self) -> dict[str, bool]:
        flags = {}
        if self._bits & VisibilityBits.AUTHOR:
            flags["userhidden"] = True
        if self._bits & VisibilityBits.COMMENT:
            flags["commenthidden"] = True
        if self._bits & VisibilityBits.CONTENT:
            flags[self.content_flag] = True
        if self._bits & VisibilityBits.RESTRICTED:
            flags["suppressed"] = True
        return flags


class RevisionRecord(Record):
    """A live ``revision`` row."""

    id_field = "rev_id"
    timestamp_field = "rev_timestamp"
    author_id_field = "rev_user"
    author_name_field = "rev_user_text"
    comment_field = "rev_comment"
    bits_field = "rev_deleted"

    record_set: RevisionSet

    async def set_bits(self, db, new_bits, plan=None):
        result = await db.execute(
            update(Revision)
            .where(
                Revision.id == self.id,
                Revision.page_id == self.row["rev_page"],
                Revision.deleted == int(self._bits),
            )
            .values({Revision.deleted: int(new_bits)})
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False

        # Best effort: the feed row has no unique link back to the revision,
        # so match on the id plus the (non-unique) timestamp index.
        await db.execute(
            update(RecentChange)
            .where(
                RecentChange.this_oldid == self.id,
                RecentChange.timestamp == self.timestamp,
            )
            .values({RecentChange.deleted: int(new_bits), RecentChange.patrolled: 1})
            .execution_options(synchronize_session=False)
        )
        return True

    async def is_hide_current_op(self, new_bits: int) -> bool:
        if not new_bits & VisibilityBits.CONTENT:
            return False
        return await self.record_set.get_current() == self.id

    def to_api_data(self) -> dict[str, Any]:
        data = super().to_api_data()
        data["page"] = self.row["rev_page"]
        if self.can_view_content():
            data["sha1"] = self.row.get("rev_sha1") or None
            data["size"] = self.row.get("rev_len")
        return data


class ArchiveRecord(Record):
    """An ``archive`` row addressed by its timestamp within the subject."""

    id_field = "ar_timestamp"
    timestamp_field = "ar_timestamp"
    author_id_field = "ar_user"
    author_name_field = "ar_user_text"
    comment_field = "ar_comment"
    bits_field = "ar_deleted"

    async def set_bits(self, db, new_bits, plan=None):
        rev_id = self.row["ar_rev_id"]
        rev_id_clause = (
            ArchivedRevision.rev_id.is_(None)
            if rev_id is None
            else ArchivedRevision.rev_id == rev_id
        )
        # Full composite key: the (namespace, title, timestamp) index is what
        # the table is organized by.
        result = await db.execute(
            update(ArchivedRevision)
            .where(
                ArchivedRevision.namespace == self.row["ar_namespace"],
                ArchivedRevision.title == self.row["ar_title"],
                ArchivedRevision.timestamp == self.row["ar_timestamp"],
                rev_id_clause,
                ArchivedRevision.deleted == int(self._bits),
            )
            .values({ArchivedRevision.deleted: int(new_bits)})
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def to_api_data(self) -> dict[str, Any]:
        data = super().to_api_data()
        data["revid"] = self.row["ar_rev_id"]
        if self.can_view_content():
            data["sha1"] = self.row.get("ar_sha1") or None
            data["size"] = self.row.get("ar_len")
        return data


class ArchivedRevisionRecord(ArchiveRecord):
    """An ``archive`` row reached through its original revision id."""

    id_field = "ar_rev_id"


class FileRecord(Record):
    """An ``oldimage`` row: a superseded version of an existing file."""

    id_field = "oi_archive_name"
    timestamp_field = "oi_timestamp"
    author_id_field = "oi_user"
    author_name_field = "oi_user_text"
    comment_field = "oi_description"
    bits_field = "oi_deleted"
    content_flag = "contenthidden"

    @property
    def id(self) -> str:
        # "<timestamp>!<name>" is addressed by its timestamp
        return self.row["oi_archive_name"].split("!", 1)[0]

    @property
    def file_ref(self) -> FileRef:
        name = self.row["oi_name"]
        return FileRef(
            name=name,
            public_rel=archive_rel(name, self.row["oi_archive_name"]),
            key=storage_key(self.row["oi_sha1"], name),
        )

    async def set_bits(self, db, new_bits, plan=None):
        was_hidden = self.is_deleted()
        now_hidden = bool(new_bits & VisibilityBits.CONTENT)
        if was_hidden != now_hidden and plan is None:
            raise ValueError("Changing file visibility requires a migration plan")

        result = await db.execute(
            update(OldFile)
            .where(
                OldFile.name == self.row["oi_name"],
                OldFile.timestamp == self.row["oi_timestamp"],
                OldFile.deleted == int(self._bits),
            )
            .values({OldFile.deleted: int(new_bits)})
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False

        if plan is not None:
            plan.plan_transition(self.file_ref, was_hidden, now_hidden)
        return True

    def to_api_data(self) -> dict[str, Any]:
        data = super().to_api_data()
        data.update(
            title=self.record_set.subject.prefixed_text,
            archivename=self.row["oi_archive_name"],
            width=self.row["oi_width"],
            height=self.row["oi_height"],
            size=self.row["oi_size"],
        )
        if not self.is_deleted():
            data["url"] = f"{get_settings().file_url_base}/{self.file_ref.public_rel}"
        return data


class ArchivedFileRecord(Record):
    """A ``filearchive`` row; its bytes never leave the restricted zone."""

    id_field = "fa_id"
    timestamp_field = "fa_timestamp"
    author_id_field = "fa_user"
    author_name_field = "fa_user_text"
    comment_field = "fa_description"
    bits_field = "fa_deleted"
    content_flag = "contenthidden"

    async def set_bits(self, db, new_bits, plan=None):
        result = await db.execute(
            update(ArchivedFile)
            .where(
                ArchivedFile.id == self.id,
                ArchivedFile.deleted == int(self._bits),
            )
            .values({ArchivedFile.deleted: int(new_bits)})
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def to_api_data(self) -> dict[str, Any]:
        data = super().to_api_data()
        data.update(
            title=self.record_set.subject.prefixed_text,
            width=self.row["fa_width"],
            height=self.row["fa_height"],
            size=self.row["fa_size"],
        )
        return data


class LogRecord(Record):
    """A ``logging`` row."""

    id_field = "log_id"
    timestamp_field = "log_timestamp"
    author_id_field = "log_user"
    author_name_field = "log_user_text"
    comment_field = "log_comment"
    bits_field = "log_deleted"
    content_flag = "actionhidden"

    def can_view_content(self) -> bool:
        # Log entries have no separate content to view
        return True

    async def set_bits(self, db, new_bits, plan=None):
        result = await db.execute(
            update(LogEntry)
            .where(
                LogEntry.id == self.id,
                LogEntry.deleted == int(self._bits),
            )
            .values({LogEntry.deleted: int(new_bits)})
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False

        await db.execute(
            update(RecentChange)
            .where(
                RecentChange.log_id == self.id,
                RecentChange.timestamp == self.timestamp,
            )
            .values({RecentChange.deleted: int(new_bits), RecentChange.patrolled: 1})
            .execution_options(synchronize_session=False)
        )
        return True

    def to_api_data(self) -> dict[str, Any]:
        data = super().to_api_data()
        data["type"] = self.row["log_type"]
        data["action"] = self.row["log_action"]
        if self.can_view_field(VisibilityBits.CONTENT):
            data["params"] = self.row["log_params"]
            data["target_namespace"] = self.row["log_namespace"]
            data["target_title"] = self.row["log_title"]
        return data
