"""
anonchat.api.routes.anonymous — Anonymous chat endpoints
=========================================================

    GET    /anonymous/my                       — caller's chats
    POST   /anonymous/start                    — get-or-create with a target
    GET    /anonymous/{chat_id}                — chat detail
    GET    /anonymous/{chat_id}/messages       — message page (ascending)
    POST   /anonymous/{chat_id}/messages       — send a message
    POST   /anonymous/{chat_id}/reveal         — request a reveal
    POST   /anonymous/{chat_id}/reveal/respond — accept / decline
    POST   /anonymous/{chat_id}/read           — mark as read
    DELETE /anonymous/{chat_id}                — delete chat

Errors use the ``{"error": "<code>"}`` envelope installed in
:mod:`anonchat.api.main`.
"""

from __future__ import annotations

from datetime import datetime

from fastapi import APIRouter
from pydantic import BaseModel, StrictBool

from anonchat.api.deps import ChatService, CurrentUser

router = APIRouter(prefix="/anonymous", tags=["anonymous"])


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class StartChatBody(BaseModel):
    # Optional so a missing id maps to ``target_user_id_required``.
    target_user_id: str | int | None = None


class SendMessageBody(BaseModel):
    content: str | None = None
    message_type: str | None = None


class RevealResponseBody(BaseModel):
    accept: StrictBool


# ---------------------------------------------------------------------------
# Chats
# ---------------------------------------------------------------------------
@router.get("/my")
async def list_my_chats(
    user_id: CurrentUser,
    service: ChatService,
    state: str | None = None,
    limit: int | None = None,
    cursor: datetime | None = None,
):
    """Return the caller's chats, most recently active first."""
    return await service.list_my_chats(user_id, state=state, limit=limit, cursor=cursor)


@router.post("/start")
async def start_chat(body: StartChatBody, user_id: CurrentUser, service: ChatService):
    """Return the chat with ``target_user_id``, creating it on first contact."""
    return await service.start_chat(user_id, body.target_user_id)


@router.get("/{chat_id}")
async def get_chat(chat_id: str, user_id: CurrentUser, service: ChatService):
    return await service.get_chat(user_id, chat_id)


@router.delete("/{chat_id}")
async def delete_chat(chat_id: str, user_id: CurrentUser, service: ChatService):
    return await service.delete_chat(user_id, chat_id)


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------
@router.get("/{chat_id}/messages")
async def list_messages(
    chat_id: str,
    user_id: CurrentUser,
    service: ChatService,
    limit: int | None = None,
    before: datetime | None = None,
    before_id: int | None = None,
):
    """Page backwards through the chat; items are returned oldest-first."""
    return await service.list_messages(
        user_id, chat_id, limit=limit, before=before, before_id=before_id
    )


@router.post("/{chat_id}/messages")
async def send_message(
    chat_id: str, body: SendMessageBody, user_id: CurrentUser, service: ChatService
):
    return await service.send_message(user_id, chat_id, body.content, body.message_type)


# ---------------------------------------------------------------------------
# Reveal
# ---------------------------------------------------------------------------
@router.post("/{chat_id}/reveal")
async def request_reveal(chat_id: str, user_id: CurrentUser, service: ChatService):
    return await service.request_reveal(user_id, chat_id)


@router.post("/{chat_id}/reveal/respond")
async def respond_to_reveal(
    chat_id: str, body: RevealResponseBody, user_id: CurrentUser, service: ChatService
):
    return await service.respond_to_reveal(user_id, chat_id, body.accept)


# ---------------------------------------------------------------------------
# Read state
# ---------------------------------------------------------------------------
@router.post("/{chat_id}/read")
async def mark_as_read(chat_id: str, user_id: CurrentUser, service: ChatService):
    return await service.mark_as_read(user_id, chat_id)
