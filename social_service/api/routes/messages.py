"""
Direct messaging routes
"""
from fastapi import APIRouter, Depends, Query, status
from typing import List

from ...application.services import MessagingService
from ...schemas import (
    ConversationItem,
    CurrentUser,
    MarkReadRequest,
    MarkReadResponse,
    MessageOut,
    SendMessageRequest,
    UnreadCountResponse,
)
from ..dependencies import get_current_user, get_messaging_service

router = APIRouter(prefix="/messages", tags=["Messages"])


@router.post(
    "",
    response_model=MessageOut,
    status_code=status.HTTP_201_CREATED,
    summary="Send a message",
)
async def send_message(
    data: SendMessageRequest,
    current_user: CurrentUser = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
):
    """
    Send a direct message

    - **toUserId**: recipient; following is not required
    - **text**: message body, trimmed; must not be empty
    """
    return await service.send_message(current_user.id, data.to_user_id, data.text)


@router.get("", response_model=List[MessageOut], summary="List messages with a user")
async def list_messages(
    with_user_id: int = Query(..., alias="with", description="Counterpart user ID"),
    current_user: CurrentUser = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
):
    """Messages exchanged with one counterpart, oldest first, each flagged `isMe`"""
    return await service.list_messages(current_user.id, with_user_id)


@router.post("/read", response_model=MarkReadResponse, summary="Mark a conversation read")
async def mark_read(
    data: MarkReadRequest,
    current_user: CurrentUser = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
):
    return await service.mark_read(current_user.id, data.with_user_id)


@router.get(
    "/conversations",
    response_model=List[ConversationItem],
    summary="List conversations",
)
async def list_conversations(
    current_user: CurrentUser = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
):
    """
    Conversations derived from message history

    Each entry carries the counterpart identity, the last message and the
    number of unread messages from that counterpart.
    """
    return await service.list_conversations(current_user.id)


@router.get("/unread-count", response_model=UnreadCountResponse, summary="Global unread count")
async def unread_count(
    current_user: CurrentUser = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
):
    return await service.unread_count(current_user.id)
