"""Tests for per-record compare-and-swap updates and rendering."""

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from revdel.auth.models import Actor
from revdel.bits import VisibilityBits
from revdel.migration import FileMigrationPlan
from revdel.models import ArchivedRevision, LogEntry, OldFile, RecentChange, Revision
from revdel.record_sets import ArchiveSet, FileSet, LogSet, RevisionSet
from revdel.subject import NS_FILE, NS_MAIN, NS_SPECIAL, Subject

CONTENT = VisibilityBits.CONTENT
COMMENT = VisibilityBits.COMMENT
AUTHOR = VisibilityBits.AUTHOR
RESTRICTED = VisibilityBits.RESTRICTED


async def revision_bits(db: AsyncSession, rev_id: int) -> int:
    result = await db.execute(select(Revision.deleted).where(Revision.id == rev_id))
    return result.scalar_one()


async def load_one(record_set):
    items = await record_set.query()
    assert len(items) == 1
    return items[0]


class TestRevisionRecordSetBits:
    @pytest.mark.asyncio
    async def test_set_bits_updates_row_and_feed(
        self, db_session: AsyncSession, admin: Actor, test_revisions
    ):
        record = await load_one(
            RevisionSet(db_session, admin, Subject(NS_MAIN, "Page"), [10])
        )

        assert await record.set_bits(db_session, CONTENT | COMMENT)

        assert await revision_bits(db_session, 10) == CONTENT | COMMENT
        result = await db_session.execute(
            select(RecentChange.deleted, RecentChange.patrolled).where(
                RecentChange.this_oldid == 10
            )
        )
        assert tuple(result.one()) == (CONTENT | COMMENT, 1)

    @pytest.mark.asyncio
    async def test_set_bits_is_idempotent_only_once(
        self, db_session: AsyncSession, admin: Actor, test_revisions
    ):
        record = await load_one(
            RevisionSet(db_session, admin, Subject(NS_MAIN, "Page"), [10])
        )

        assert await record.set_bits(db_session, CONTENT) is True
        # The snapshot still says 0, the row now says CONTENT
        assert await record.set_bits(db_session, CONTENT) is False
        assert await revision_bits(db_session, 10) == CONTENT

    @pytest.mark.asyncio
    async def test_race_exactly_one_wins(
        self, db_session: AsyncSession, admin: Actor, suppressor: Actor, test_revisions
    ):
        subject = Subject(NS_MAIN, "Page")
        first = await load_one(RevisionSet(db_session, admin, subject, [11]))
        second = await load_one(RevisionSet(db_session, suppressor, subject, [11]))
        assert first.bits == second.bits == 0

        results = [
            await second.set_bits(db_session, AUTHOR),
            await first.set_bits(db_session, CONTENT),
        ]

        assert results == [True, False]
        assert await revision_bits(db_session, 11) == AUTHOR

    @pytest.mark.asyncio
    async def test_missing_row_fails(
        self, db_session: AsyncSession, admin: Actor, test_revisions
    ):
        record = await load_one(
            RevisionSet(db_session, admin, Subject(NS_MAIN, "Page"), [10])
        )
        await db_session.delete(await db_session.get(Revision, 10))
        await db_session.flush()

        assert await record.set_bits(db_session, CONTENT) is False


class TestArchiveRecord:
    @pytest.mark.asyncio
    async def test_set_bits_with_null_rev_id(
        self, db_session: AsyncSession, admin: Actor
    ):
        db_session.add(
            ArchivedRevision(
                namespace=0,
                title="Gone",
                rev_id=None,
                timestamp="20200101000000",
                user_id=5,
                user_text="Editor",
                comment="old",
                deleted=0,
            )
        )
        await db_session.commit()

        record = await load_one(
            ArchiveSet(db_session, admin, Subject(NS_MAIN, "Gone"), ["20200101000000"])
        )
        assert record.id == "20200101000000"
        assert await record.set_bits(db_session, COMMENT)

        result = await db_session.execute(
            select(ArchivedRevision.deleted).where(ArchivedRevision.title == "Gone")
        )
        assert result.scalar_one() == COMMENT


class TestFileRecord:
    @pytest.mark.asyncio
    async def test_visibility_change_needs_plan(
        self, db_session: AsyncSession, admin: Actor, visible_old_file: OldFile
    ):
        record = await load_one(
            FileSet(db_session, admin, Subject(NS_FILE, "Example.jpg"), ["20240102000000"])
        )
        with pytest.raises(ValueError, match="migration plan"):
            await record.set_bits(db_session, CONTENT)

    @pytest.mark.asyncio
    async def test_comment_change_needs_no_plan(
        self, db_session: AsyncSession, admin: Actor, visible_old_file: OldFile
    ):
        record = await load_one(
            FileSet(db_session, admin, Subject(NS_FILE, "Example.jpg"), ["20240102000000"])
        )
        assert await record.set_bits(db_session, COMMENT)

    @pytest.mark.asyncio
    async def test_hide_enqueues_delete_after_cas(
        self, db_session: AsyncSession, admin: Actor, visible_old_file: OldFile
    ):
        record = await load_one(
            FileSet(db_session, admin, Subject(NS_FILE, "Example.jpg"), ["20240102000000"])
        )
        plan = FileMigrationPlan()

        assert await record.set_bits(db_session, CONTENT, plan)
        assert len(plan.delete) == 1
        assert plan.delete[0].dst == "a/1/b/a1b2c3d4e5.jpg"

        # Lost race: nothing more is planned
        assert not await record.set_bits(db_session, CONTENT, plan)
        assert len(plan.delete) == 1

    @pytest.mark.asyncio
    async def test_unhide_enqueues_stage_and_cleanup(
        self, db_session: AsyncSession, admin: Actor, hidden_old_file: OldFile
    ):
        record = await load_one(
            FileSet(db_session, admin, Subject(NS_FILE, "Example.jpg"), ["20240103000000"])
        )
        plan = FileMigrationPlan()

        assert await record.set_bits(db_session, 0, plan)

        assert len(plan.stage) == 1
        assert plan.cleanup == ["f9e8d7c6b5.jpg"]
        assert plan.delete == []

    @pytest.mark.asyncio
    async def test_api_data_url_only_when_visible(
        self,
        db_session: AsyncSession,
        admin: Actor,
        visible_old_file: OldFile,
        hidden_old_file: OldFile,
    ):
        record_set = FileSet(
            db_session,
            admin,
            Subject(NS_FILE, "Example.jpg"),
            ["20240102000000", "20240103000000"],
        )
        hidden, visible = await record_set.query()

        assert "url" in visible.to_api_data()
        data = hidden.to_api_data()
        assert "url" not in data
        assert data["contenthidden"] is True
        assert data["archivename"] == "20240103000000!Example.jpg"


class TestLogRecord:
    @pytest.mark.asyncio
    async def test_set_bits_updates_feed(
        self, db_session: AsyncSession, admin: Actor, test_log_entries
    ):
        record = await load_one(
            LogSet(db_session, admin, Subject(NS_SPECIAL, "Log"), [1])
        )
        assert record.can_view_content()

        assert await record.set_bits(db_session, CONTENT)

        result = await db_session.execute(
            select(RecentChange.deleted).where(RecentChange.log_id == 1)
        )
        assert result.scalar_one() == CONTENT
        result = await db_session.execute(
            select(LogEntry.deleted).where(LogEntry.id == 1)
        )
        assert result.scalar_one() == CONTENT


class TestApiData:
    @pytest.mark.asyncio
    async def test_hidden_fields_omitted_for_reader(
        self, db_session: AsyncSession, reader: Actor, test_revisions
    ):
        await db_session.execute(
            Revision.__table__.update()
            .where(Revision.__table__.c.rev_id == 10)
            .values(rev_deleted=int(AUTHOR | COMMENT))
        )
        record = await load_one(
            RevisionSet(db_session, reader, Subject(NS_MAIN, "Page"), [10])
        )

        data = record.to_api_data()

        assert data["userhidden"] is True
        assert data["commenthidden"] is True
        assert "user" not in data
        assert "comment" not in data
        assert data["sha1"] == "sha10"
        assert data["timestamp"] == "2024-01-01T00:00:10Z"

    @pytest.mark.asyncio
    async def test_restricted_record_not_viewable_by_admin(
        self, db_session: AsyncSession, admin: Actor, suppressor: Actor, test_revisions
    ):
        await db_session.execute(
            Revision.__table__.update()
            .where(Revision.__table__.c.rev_id == 10)
            .values(rev_deleted=int(CONTENT | RESTRICTED))
        )
        subject = Subject(NS_MAIN, "Page")

        as_admin = await load_one(RevisionSet(db_session, admin, subject, [10]))
        as_suppressor = await load_one(RevisionSet(db_session, suppressor, subject, [10]))

        assert not as_admin.can_view()
        assert "sha1" not in as_admin.to_api_data()
        assert as_suppressor.can_view()
        assert as_admin.to_api_data()["suppressed"] is True
