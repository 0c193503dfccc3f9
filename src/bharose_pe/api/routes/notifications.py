"""Notification inbox routes. A user only ever sees their own notifications.

Routes:
    GET    /api/v1/notifications               : List (optionally unread only), newest first
    GET    /api/v1/notifications/unread-count  : Badge count
    POST   /api/v1/notifications/{id}/read     : Mark one read
    POST   /api/v1/notifications/read-all      : Mark all read
"""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from bharose_pe.api.deps import get_actor, get_db_session
from bharose_pe.domain.models import ActorContext
from bharose_pe.schemas.notifications import (
    MarkAllReadResponse,
    NotificationResponse,
    UnreadCountResponse,
)
from bharose_pe.services.notification_service import NotificationService

router = APIRouter(prefix="/api/v1/notifications", tags=["Notifications"])


@router.get("", response_model=list[NotificationResponse], summary="List notifications")
async def list_notifications(
    unread_only: bool = Query(default=False),
    actor: ActorContext = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
) -> list[NotificationResponse]:
    notifications = await NotificationService(session).list_notifications(
        actor, unread_only=unread_only
    )
    return [NotificationResponse.model_validate(n) for n in notifications]


@router.get("/unread-count", response_model=UnreadCountResponse, summary="Unread count")
async def unread_count(
    actor: ActorContext = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
) -> UnreadCountResponse:
    return UnreadCountResponse(unread=await NotificationService(session).unread_count(actor))


@router.post("/read-all", response_model=MarkAllReadResponse, summary="Mark all read")
async def mark_all_read(
    actor: ActorContext = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
) -> MarkAllReadResponse:
    return MarkAllReadResponse(marked=await NotificationService(session).mark_all_read(actor))


@router.post(
    "/{notification_id}/read",
    response_model=NotificationResponse,
    summary="Mark a notification read",
)
async def mark_read(
    notification_id: uuid.UUID,
    actor: ActorContext = Depends(get_actor),
    session: AsyncSession = Depends(get_db_session),
) -> NotificationResponse:
    notification = await NotificationService(session).mark_read(actor, notification_id)
    return NotificationResponse.model_validate(notification)
