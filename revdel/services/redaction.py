"""Service layer for changing the visibility of historical records."""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from opentelemetry import trace
from sqlalchemy.ext.asyncio import AsyncSession

from ..adapters.cache import CachePurger, get_cache_purger
from ..adapters.events import EventPublisher, get_event_publisher
from ..adapters.storage import StorageAdapter, get_storage_adapter
from ..auth.models import Actor
from ..bits import VisibilityBits, combine, to_names, would_lock_out
from ..errors import (
    ConcurrentModificationError,
    CurrentVersionError,
    LockoutError,
    NotFoundError,
    PermissionDeniedError,
    PreCommitError,
    RedactionError,
    StorageMigrationError,
)
from ..migration import FileMigrationPlan
from ..observability.metrics import HOOK_FAILURES, REDACTION_DURATION, REDACTION_ITEMS
from ..record_sets import RecordSet, get_record_set_class
from ..records import Record
from ..schemas.redaction import ItemOutcome, RedactionStatus, StorageFailure
from ..subject import Subject

logger = logging.getLogger(__name__)
tracer = trace.get_tracer("revdel.redaction")


class RedactionState(str, Enum):
    BUILT = "built"
    QUERIED = "queried"
    BITS_APPLIED = "bits_applied"
    PRE_COMMITTED = "pre_committed"
    PERSISTED = "persisted"
    POST_COMMITTED = "post_committed"
    FAILED = "failed"


@dataclass
class PendingChange:
    record: Record
    old_bits: VisibilityBits
    new_bits: VisibilityBits


class RedactionCoordinator:
    """Drives one redaction operation for one actor, start to finish.

    Structural problems (nothing found, lockout, hiding the current revision,
    malformed rows, pre-commit failure) raise before any record row is written.
    Per-record problems are recorded in the returned status.
    """

    def __init__(
        self,
        db: AsyncSession,
        actor: Actor,
        storage: StorageAdapter | None = None,
        cache: CachePurger | None = None,
        publisher: EventPublisher | None = None,
    ) -> None:
        self.db = db
        self.actor = actor
        self._storage = storage
        self.cache = cache or get_cache_purger()
        self.publisher = publisher or get_event_publisher()
        self.state = RedactionState.BUILT

    @property
    def storage(self) -> StorageAdapter:
        if self._storage is None:
            self._storage = get_storage_adapter()
        return self._storage

    def _transition(self, state: RedactionState) -> None:
        logger.debug(
            "redaction.state",
            extra={"from": self.state.value, "to": state.value},
        )
        self.state = state

    async def run(
        self,
        kind: str,
        subject: Subject,
        ids: Iterable[Any],
        bits_to_set: int = 0,
        bits_to_clear: int = 0,
        suppress_requested: bool = False,
        current_version_ack: bool = False,
    ) -> RedactionStatus:
        if self.state is not RedactionState.BUILT:
            raise RuntimeError("A coordinator runs exactly one operation")

        set_cls = get_record_set_class(kind)
        if not self.actor.is_allowed(set_cls.restriction):
            self._transition(RedactionState.FAILED)
            raise PermissionDeniedError(
                f"Changing {kind} visibility requires the {set_cls.restriction!r} right",
                kind=kind,
            )

        to_set = VisibilityBits(bits_to_set)
        if suppress_requested:
            to_set |= VisibilityBits.RESTRICTED
        to_clear = VisibilityBits(bits_to_clear)
        if to_set & to_clear:
            self._transition(RedactionState.FAILED)
            raise ValueError(
                f"Bits both set and cleared: {to_names(to_set & to_clear)}"
            )

        try:
            record_set = set_cls(
                self.db,
                self.actor,
                subject,
                ids,
                cache=self.cache,
                publisher=self.publisher,
            )
        except RedactionError:
            self._transition(RedactionState.FAILED)
            raise
        status = RedactionStatus(
            kind=kind, subject=subject.prefixed_text, state=self.state.value
        )
        started = time.monotonic()

        with tracer.start_as_current_span("redaction.run") as span:
            span.set_attribute("kind", kind)
            span.set_attribute("actor_id", self.actor.user_id)
            span.set_attribute("id_count", len(record_set.ids))
            try:
                items = await self._query(record_set, status)
                pending = await self._apply_bits(
                    items, to_set, to_clear, current_version_ack, status
                )
                if not pending:
                    self._transition(RedactionState.FAILED)
                    return status
                await self._pre_commit(record_set)
                changed = await self._persist(record_set, pending, status)
                if self.state is RedactionState.FAILED:
                    return status
                await self._post_commit(record_set, changed, status)
            except RedactionError:
                self._transition(RedactionState.FAILED)
                raise
            finally:
                status.state = self.state.value
                for outcome in status.outcomes.values():
                    REDACTION_ITEMS.labels(kind, outcome.value).inc()
                REDACTION_DURATION.labels(kind).observe(time.monotonic() - started)
                span.set_attribute("state", self.state.value)

        logger.info(
            "redaction.completed",
            extra={
                "kind": kind,
                "subject": subject.prefixed_text,
                "actor_id": self.actor.user_id,
                "set": to_names(to_set),
                "clear": to_names(to_clear),
                "success_count": status.success_count,
                "fail_count": status.fail_count,
            },
        )
        return status

    async def _query(
        self, record_set: RecordSet, status: RedactionStatus
    ) -> list[Record]:
        items = await record_set.query()
        if not items:
            raise NotFoundError(
                f"No {record_set.kind} records found for {record_set.subject}",
                ids=[str(i) for i in record_set.ids],
            )
        found = {str(item.id) for item in items}
        for logical_id in record_set.ids:
            if str(logical_id) not in found:
                status.record(logical_id, ItemOutcome.NOT_FOUND)
        self._transition(RedactionState.QUERIED)
        return items

    async def _apply_bits(
        self,
        items: Sequence[Record],
        to_set: VisibilityBits,
        to_clear: VisibilityBits,
        current_version_ack: bool,
        status: RedactionStatus,
    ) -> list[PendingChange]:
        changes = []
        for item in items:
            if not item.can_view():
                status.record(item.id, ItemOutcome.NO_ACCESS)
                logger.warning(
                    "redaction.no_access",
                    extra={"id": str(item.id), "actor_id": self.actor.user_id},
                )
                continue
            new_bits = combine(item.bits, to_set, to_clear)
            if new_bits == item.bits:
                status.record(item.id, ItemOutcome.UNCHANGED)
                continue
            changes.append(PendingChange(item, item.bits, new_bits))

        # Whole-batch checks over the changes the actor may make: nothing is
        # written if any of them fails.
        for change in changes:
            if would_lock_out(
                change.old_bits, change.new_bits, self.actor.is_elevated
            ):
                raise LockoutError(
                    f"Change to {change.record.id} would lock non-elevated "
                    "administrators out of the record",
                    id=str(change.record.id),
                )
        if not current_version_ack:
            for change in changes:
                if await change.record.is_hide_current_op(change.new_bits):
                    raise CurrentVersionError(
                        f"Revision {change.record.id} is the current revision of "
                        f"{change.record.record_set.subject}",
                        id=str(change.record.id),
                    )

        self._transition(RedactionState.BITS_APPLIED)
        return changes

    async def _pre_commit(self, record_set: RecordSet) -> None:
        try:
            await record_set.pre_commit()
        except Exception as e:
            HOOK_FAILURES.labels(record_set.kind, "pre_commit").inc()
            raise PreCommitError(
                f"Pre-commit update failed for {record_set.subject}: {e}"
            ) from e
        self._transition(RedactionState.PRE_COMMITTED)

    async def _persist(
        self,
        record_set: RecordSet,
        pending: Sequence[PendingChange],
        status: RedactionStatus,
    ) -> list[Any]:
        plan = FileMigrationPlan() if record_set.handles_files else None
        changed = []
        for change in pending:
            logical_id = change.record.id
            if await change.record.set_bits(self.db, change.new_bits, plan):
                status.record(logical_id, ItemOutcome.OK)
                changed.append(logical_id)
                logger.info(
                    "redaction.item_updated",
                    extra={
                        "kind": record_set.kind,
                        "id": str(logical_id),
                        "old_bits": int(change.old_bits),
                        "new_bits": int(change.new_bits),
                    },
                )
            else:
                # Another actor changed the row first; the rest still proceed
                error = ConcurrentModificationError(
                    f"{record_set.kind} {logical_id} changed concurrently",
                    id=str(logical_id),
                )
                status.record(logical_id, ItemOutcome.CONCURRENT_MODIFICATION)
                logger.warning(
                    "redaction.concurrent_change",
                    extra={"kind": record_set.kind, "error": error.message},
                )

        if not changed:
            # Every row lost its race; drop the page touch and skip the hooks
            await self.db.rollback()
            logger.warning(
                "redaction.nothing_changed",
                extra={"kind": record_set.kind, "subject": str(record_set.subject)},
            )
            self._transition(RedactionState.FAILED)
            return changed

        if plan is not None and not plan.is_empty:
            result = await plan.execute(self.storage, record_set.is_referenced)
            if not result.ok:
                error = StorageMigrationError(
                    result.failures[0].phase, [f.to_dict() for f in result.failures]
                )
                status.storage_errors = [
                    StorageFailure(**f.to_dict()) for f in result.failures
                ]
                status.needs_rollback = True
                for logical_id in changed:
                    status.record(logical_id, ItemOutcome.ROLLED_BACK)
                logger.error(
                    "redaction.storage_failed",
                    extra={
                        "kind": record_set.kind,
                        "phase": error.phase,
                        "failures": error.failures,
                    },
                )
                self._transition(RedactionState.FAILED)
                return changed

        await self.db.commit()
        self._transition(RedactionState.PERSISTED)
        return changed

    async def _post_commit(
        self,
        record_set: RecordSet,
        changed: Sequence[Any],
        status: RedactionStatus,
    ) -> None:
        try:
            await record_set.post_commit(changed)
        except Exception as e:
            # Committed changes stand; report and move on
            HOOK_FAILURES.labels(record_set.kind, "post_commit").inc()
            logger.warning(
                "redaction.post_commit_failed",
                extra={"kind": record_set.kind, "error": str(e)},
                exc_info=True,
            )
            status.warnings.append(f"post_commit: {e}")
        self._transition(RedactionState.POST_COMMITTED)


async def run_redaction(
    db: AsyncSession,
    actor: Actor,
    kind: str,
    subject: Subject,
    ids: Iterable[Any],
    bits_to_set: int = 0,
    bits_to_clear: int = 0,
    suppress_requested: bool = False,
    current_version_ack: bool = False,
    *,
    storage: StorageAdapter | None = None,
    cache: CachePurger | None = None,
    publisher: EventPublisher | None = None,
) -> RedactionStatus:
    """Change the visibility bits of records of ``kind`` under ``subject``.

    Commits the session on success. When a file migration phase fails the
    session is left uncommitted with ``status.needs_rollback`` set; the
    caller decides whether to roll back.

    Raises:
        UnknownKindError, InvalidIdError, PermissionDeniedError, NotFoundError,
        LockoutError, CurrentVersionError, IntegrityError, PreCommitError.
    """
    coordinator = RedactionCoordinator(
        db, actor, storage=storage, cache=cache, publisher=publisher
    )
    return await coordinator.run(
        kind,
        subject,
        ids,
        bits_to_set=bits_to_set,
        bits_to_clear=bits_to_clear,
        suppress_requested=suppress_requested,
        current_version_ack=current_version_ack,
    )


async def list_records(
    db: AsyncSession,
    actor: Actor,
    kind: str,
    subject: Subject,
    ids: Iterable[Any],
) -> list[Record]:
    """Load the requested records for display, newest first."""
    set_cls = get_record_set_class(kind)
    if not actor.is_allowed(set_cls.restriction):
        raise PermissionDeniedError(
            f"Viewing {kind} visibility requires the {set_cls.restriction!r} right",
            kind=kind,
        )
    record_set = set_cls(db, actor, subject, ids)
    items = await record_set.query()
    if not items:
        raise NotFoundError(f"No {kind} records found for {subject}")
    return items


async def suggest_target(
    db: AsyncSession, kind: str, subject: Subject, ids: Iterable[Any]
) -> Subject:
    """Best guess at the display subject for ``ids``; ``subject`` when ambiguous."""
    return await get_record_set_class(kind).suggest_target(db, subject, ids)
