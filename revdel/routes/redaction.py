"""API routes for record visibility changes."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..adapters.cache import CachePurger, get_cache_purger
from ..adapters.events import EventPublisher, get_event_publisher
from ..adapters.storage import StorageAdapter, get_storage_adapter
from ..auth.middleware import require_actor
from ..bits import VisibilityBits, from_names
from ..database import get_db
from ..errors import (
    CurrentVersionError,
    IntegrityError,
    InvalidIdError,
    LockoutError,
    NotFoundError,
    PermissionDeniedError,
    PreCommitError,
    RedactionError,
    UnknownKindError,
)
from ..record_sets import get_record_set_class
from ..schemas.redaction import (
    RecordListResponse,
    RedactionRequest,
    RedactionStatus,
    TargetSuggestion,
)
from ..services import redaction as redaction_service
from ..subject import Subject

router = APIRouter(prefix="/api/redactions", tags=["redactions"])
logger = logging.getLogger(__name__)

_STATUS_CODES: dict[type[RedactionError], int] = {
    NotFoundError: 404,
    UnknownKindError: 404,
    InvalidIdError: 400,
    PermissionDeniedError: 403,
    LockoutError: 403,
    CurrentVersionError: 409,
    IntegrityError: 500,
    PreCommitError: 500,
}


def _http_error(error: RedactionError) -> HTTPException:
    status_code = _STATUS_CODES.get(type(error), 500)
    if status_code >= 500:
        logger.error(
            "redaction.request_failed",
            extra={"code": error.code, "error": error.message},
        )
    return HTTPException(
        status_code=status_code,
        detail={"code": error.code, "message": error.message},
    )


def _parse_subject(target: str) -> Subject:
    try:
        return Subject.from_text(target)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.get(
    "/{kind}",
    response_model=RecordListResponse,
    summary="List records with their visibility",
)
async def list_records(
    kind: str,
    request: Request,
    target: str = Query(..., min_length=1),
    ids: list[str] = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
) -> RecordListResponse:
    actor = require_actor(request)
    subject = _parse_subject(target)
    try:
        items = await redaction_service.list_records(db, actor, kind, subject, ids)
    except RedactionError as e:
        raise _http_error(e) from e

    return RecordListResponse(
        kind=kind,
        target=subject.prefixed_text,
        content_label=get_record_set_class(kind).content_label,
        items=[item.to_api_data() for item in items],
    )


@router.get(
    "/{kind}/target",
    response_model=TargetSuggestion,
    summary="Suggest the display target for a set of ids",
)
async def suggest_target(
    kind: str,
    request: Request,
    target: str = Query(..., min_length=1),
    ids: list[str] = Query(..., min_length=1),
    db: AsyncSession = Depends(get_db),
) -> TargetSuggestion:
    require_actor(request)
    subject = _parse_subject(target)
    try:
        suggested = await redaction_service.suggest_target(db, kind, subject, ids)
    except RedactionError as e:
        raise _http_error(e) from e
    return TargetSuggestion(target=suggested.prefixed_text)


@router.post(
    "/{kind}",
    response_model=RedactionStatus,
    summary="Change visibility of records",
)
async def change_visibility(
    kind: str,
    data: RedactionRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
    storage: StorageAdapter = Depends(get_storage_adapter),
    cache: CachePurger = Depends(get_cache_purger),
    publisher: EventPublisher = Depends(get_event_publisher),
) -> RedactionStatus:
    actor = require_actor(request)
    subject = _parse_subject(data.target)

    to_set = from_names(data.hide)
    to_clear = from_names(data.unhide)
    if data.suppress is False:
        to_clear |= VisibilityBits.RESTRICTED

    try:
        status = await redaction_service.run_redaction(
            db,
            actor,
            kind,
            subject,
            data.ids,
            bits_to_set=to_set,
            bits_to_clear=to_clear,
            suppress_requested=bool(data.suppress),
            current_version_ack=data.acknowledge_current,
            storage=storage,
            cache=cache,
            publisher=publisher,
        )
    except RedactionError as e:
        await db.rollback()
        raise _http_error(e) from e
    except ValueError as e:
        await db.rollback()
        raise HTTPException(status_code=400, detail=str(e)) from e

    if status.needs_rollback:
        # Storage and database must agree: undo the bit changes
        await db.rollback()
        logger.warning(
            "redaction.rolled_back",
            extra={"kind": kind, "subject": subject.prefixed_text},
        )

    return status
