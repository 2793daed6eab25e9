"""
Wire tap history and dead letters
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from api.dependencies import envelope, get_engine, verify_api_key
from ingestion.engine import EtlEngine
from schemas.api import (
    APIResponse,
    DeadLetterListResponse,
    FailedMessageResponse,
    MessageListResponse,
    StoredMessageResponse,
)

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Messages"], dependencies=[Depends(verify_api_key)])


def _aware(value: datetime) -> datetime:
    """Naive query times are taken as UTC."""
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


@router.get("/messages", response_model=APIResponse[MessageListResponse])
async def list_messages(
    request: Request,
    context: Optional[str] = Query(None, description="Tap context, e.g. pipeline-output"),
    start: Optional[datetime] = Query(None, description="Observed at or after (inclusive)"),
    end: Optional[datetime] = Query(None, description="Observed at or before (inclusive)"),
    limit: int = Query(100, ge=1, le=1000, description="Most recent entries to return"),
    engine: EtlEngine = Depends(get_engine)
):
    """
    Tapped messages, newest last.

    Filters combine: ``context`` narrows by tap label, ``start``/``end`` by
    observation time.
    """
    store = engine.message_store

    if start is not None or end is not None:
        if start is not None and end is not None and _aware(start) > _aware(end):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="start must not be after end")
        entries = store.retrieve_by_time_range(
            _aware(start) if start is not None else datetime.min.replace(tzinfo=timezone.utc),
            _aware(end) if end is not None else datetime.max.replace(tzinfo=timezone.utc),
        )
    else:
        entries = store.retrieve_all()

    if context:
        entries = [e for e in entries if e.context == context]

    logger.info(f"[{request.state.request_id}] GET /messages context={context} returned={len(entries)}")

    total = len(entries)
    messages = [StoredMessageResponse.from_entry(e) for e in entries[-limit:]]
    return envelope(request, MessageListResponse(total=total, messages=messages))


@router.get("/messages/{message_id}", response_model=StoredMessageResponse)
async def get_message(message_id: str, engine: EtlEngine = Depends(get_engine)):
    """Latest observation of a message."""
    entry = engine.message_store.retrieve(message_id)
    if entry is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Message {message_id} not found")
    return StoredMessageResponse.from_entry(entry)


@router.get("/messages/{message_id}/history", response_model=List[StoredMessageResponse])
async def get_message_history(message_id: str, engine: EtlEngine = Depends(get_engine)):
    """Every observation of a message, one per pipeline stage."""
    entries = engine.message_store.history(message_id)
    if not entries:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Message {message_id} not found")
    return [StoredMessageResponse.from_entry(e) for e in entries]


@router.get("/dead-letters", response_model=APIResponse[DeadLetterListResponse])
async def list_dead_letters(request: Request, engine: EtlEngine = Depends(get_engine)):
    failed = engine.dead_letter.failed_messages()
    return envelope(
        request,
        DeadLetterListResponse(
            total=len(failed),
            failed_messages=[FailedMessageResponse.from_entry(f) for f in failed],
        ),
    )
