"""Three-phase file migration between the public and restricted zones.

Bytes cannot be rolled back together with the database, so the phases are
ordered so that no failure ever leaves a file without a surviving copy:

1. stage: copy restricted copies back into the public zone
2. delete: move public bytes into the restricted zone
3. cleanup: erase restricted copies that were staged back

A failed stage must not be followed by delete or cleanup, and a failed
delete must not be followed by cleanup.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from opentelemetry import trace

from .files import FileRef
from .observability.metrics import STORAGE_OPS
from .status import OperationStatus

if TYPE_CHECKING:
    from .adapters.storage import StorageAdapter

logger = logging.getLogger(__name__)
tracer = trace.get_tracer("revdel.migration")


class MigrationPhase(str, Enum):
    STAGE = "stage"
    DELETE = "delete"
    CLEANUP = "cleanup"


@dataclass(frozen=True)
class StageOp:
    """Copy ``src`` (restricted zone) to ``dst`` (public zone), overwriting identical content."""

    src: str
    dst: str


@dataclass(frozen=True)
class DeleteOp:
    """Move ``src`` (public zone) to ``dst`` (restricted zone)."""

    src: str
    dst: str


@dataclass
class FileMigrationPlan:
    """Pending file operations for one redaction batch."""

    stage: list[StageOp] = field(default_factory=list)
    delete: list[DeleteOp] = field(default_factory=list)
    cleanup: list[str] = field(default_factory=list)
    executed: bool = False

    @property
    def is_empty(self) -> bool:
        return not (self.stage or self.delete or self.cleanup)

    def clear(self) -> None:
        self.stage.clear()
        self.delete.clear()
        self.cleanup.clear()

    def plan_transition(self, ref: FileRef, was_hidden: bool, now_hidden: bool) -> None:
        """Queue the operations for one file version whose content bit changed."""
        if was_hidden:
            if now_hidden:
                return
            # Newly visible: restore to public, then drop the restricted copy
            self.stage.append(StageOp(src=ref.deleted_rel, dst=ref.public_rel))
            self.cleanup.append(ref.key)
        elif now_hidden:
            self.delete.append(DeleteOp(src=ref.public_rel, dst=ref.deleted_rel))

    async def execute(
        self,
        storage: StorageAdapter,
        is_referenced: Callable[[str], Awaitable[bool]] | None = None,
    ) -> OperationStatus:
        """Run stage, delete and cleanup in order, stopping at the first failed phase.

        Args:
            storage: Adapter performing the byte moves.
            is_referenced: Returns True if a restricted-zone key is still needed
                by another hidden version; such keys are left in place.

        Returns:
            Merged status of every phase that ran.
        """
        if self.executed:
            raise RuntimeError("File migration plan already executed")
        self.executed = True

        status = OperationStatus()
        with tracer.start_as_current_span("migration.execute") as span:
            span.set_attribute("stage_count", len(self.stage))
            span.set_attribute("delete_count", len(self.delete))
            span.set_attribute("cleanup_count", len(self.cleanup))

            if self.stage:
                status.merge(
                    self._record(
                        MigrationPhase.STAGE,
                        storage.store_batch(self.stage, overwrite_same=True),
                    )
                )
            if not status.ok:
                self._abort(MigrationPhase.STAGE, status)
                return status

            if self.delete:
                status.merge(
                    self._record(MigrationPhase.DELETE, storage.delete_batch(self.delete))
                )
            if not status.ok:
                # The database is about to record these versions as hidden;
                # erasing restricted copies now could lose the only copy.
                self._abort(MigrationPhase.DELETE, status)
                return status

            keys = list(dict.fromkeys(self.cleanup))
            if is_referenced is not None:
                keys = [key for key in keys if not await is_referenced(key)]
            if keys:
                status.merge(
                    self._record(
                        MigrationPhase.CLEANUP, storage.cleanup_deleted_batch(keys)
                    )
                )
            span.set_attribute("ok", status.ok)

        logger.info(
            "migration.completed",
            extra={
                "staged": len(self.stage),
                "deleted": len(self.delete),
                "cleaned": len(keys),
                "ok": status.ok,
            },
        )
        return status

    @staticmethod
    def _record(phase: MigrationPhase, status: OperationStatus) -> OperationStatus:
        STORAGE_OPS.labels(phase.value, "ok").inc(status.success_count)
        STORAGE_OPS.labels(phase.value, "failed").inc(status.fail_count)
        return status

    def _abort(self, phase: MigrationPhase, status: OperationStatus) -> None:
        skipped = []
        if phase is MigrationPhase.STAGE:
            skipped = [MigrationPhase.DELETE.value, MigrationPhase.CLEANUP.value]
        elif phase is MigrationPhase.DELETE:
            skipped = [MigrationPhase.CLEANUP.value]
        logger.error(
            "migration.phase_failed",
            extra={
                "phase": phase.value,
                "failures": [f.to_dict() for f in status.failures],
                "skipped_phases": skipped,
            },
        )
