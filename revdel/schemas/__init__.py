"""Pydantic schemas for the API."""

from .redaction import (
    ItemOutcome,
    RecordListResponse,
    RedactionRequest,
    RedactionStatus,
    StorageFailure,
    TargetSuggestion,
)

__all__ = [
    "ItemOutcome",
    "RecordListResponse",
    "RedactionRequest",
    "RedactionStatus",
    "StorageFailure",
    "TargetSuggestion",
]
