"""Aggregating status for batched storage operations."""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class OpFailure:
    """One failed storage operation."""

    phase: str
    target: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"phase": self.phase, "target": self.target, "message": self.message}


@dataclass
class OperationStatus:
    """Accumulates per-op results across one or more batches.

    A status is OK until any failure is recorded. Merging keeps the
    successes of earlier batches alongside later failures.
    """

    success_count: int = 0
    failures: list[OpFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def fail_count(self) -> int:
        return len(self.failures)

    def success(self) -> None:
        self.success_count += 1

    def fail(self, phase: str, target: str, message: str) -> None:
        self.failures.append(OpFailure(phase=phase, target=target, message=message))

    def merge(self, other: OperationStatus) -> OperationStatus:
        self.success_count += other.success_count
        self.failures.extend(other.failures)
        return self

    def failures_in(self, phase: str) -> list[OpFailure]:
        return [f for f in self.failures if f.phase == phase]
