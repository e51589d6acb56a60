"""Pydantic schemas for the redaction API."""

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field, computed_field

BitName = Literal["content", "comment", "author"]


class ItemOutcome(str, Enum):
    OK = "ok"
    UNCHANGED = "unchanged"
    NO_ACCESS = "no_access"
    NOT_FOUND = "not_found"
    CONCURRENT_MODIFICATION = "concurrent_modification"
    # Written, then undone because the file migration failed
    ROLLED_BACK = "rolled_back"


class RedactionRequest(BaseModel):
    """Request body for changing record visibility."""

    target: str = Field(..., min_length=1)
    ids: list[str] = Field(..., min_length=1)
    hide: list[BitName] = []
    unhide: list[BitName] = []
    # True: add the RESTRICTED bit; False: remove it; None: leave as is
    suppress: bool | None = None
    acknowledge_current: bool = False


class StorageFailure(BaseModel):
    phase: str
    target: str
    message: str


class RedactionStatus(BaseModel):
    """Aggregate result of one redaction operation."""

    kind: str
    subject: str
    state: str
    outcomes: dict[str, ItemOutcome] = {}
    storage_errors: list[StorageFailure] = []
    warnings: list[str] = []
    needs_rollback: bool = False

    def record(self, logical_id: Any, outcome: ItemOutcome) -> None:
        self.outcomes[str(logical_id)] = outcome

    @computed_field  # type: ignore[prop-decorator]
    @property
    def success_count(self) -> int:
        return sum(1 for o in self.outcomes.values() if o is ItemOutcome.OK)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def fail_count(self) -> int:
        return len(self.outcomes) - self.success_count

    @computed_field  # type: ignore[prop-decorator]
    @property
    def overall_ok(self) -> bool:
        return (
            bool(self.outcomes)
            and self.fail_count == 0
            and not self.storage_errors
            and not self.needs_rollback
        )

    @computed_field  # type: ignore[prop-decorator]
    @property
    def result(self) -> Literal["success", "partial", "failure"]:
        if self.overall_ok:
            return "success"
        if self.success_count and not self.needs_rollback:
            return "partial"
        return "failure"


class RecordListResponse(BaseModel):
    kind: str
    target: str
    content_label: str
    items: list[dict[str, Any]]


class TargetSuggestion(BaseModel):
    target: str
