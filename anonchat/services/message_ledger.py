"""
anonchat.services.message_ledger — Append-Only Message Log
===========================================================

Text messages come from participants; every other type is written by the
server to mark a lifecycle event, with a fixed phrase per type.  Nothing in
the ledger is ever edited or deleted individually.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from anonchat.constants import CLIENT_MESSAGE_TYPES, SYSTEM_MESSAGE_CONTENT
from anonchat.database.models import AnonymousChat, AnonymousChatMessage, MessageType
from anonchat.errors import ContentRequiredError, InvalidMessageTypeError
from anonchat.services import chat_repository

logger = logging.getLogger(__name__)


def parse_client_message_type(raw: str | None) -> MessageType:
    """Validate a client-supplied ``message_type`` (default ``text``).

    Unknown values and server-only types are both rejected.
    """
    if raw is None:
        return MessageType.TEXT
    try:
        message_type = MessageType(raw)
    except ValueError:
        raise InvalidMessageTypeError() from None
    if message_type not in CLIENT_MESSAGE_TYPES:
        raise InvalidMessageTypeError()
    return message_type


def clean_content(content: str | None) -> str:
    if content is None or not content.strip():
        raise ContentRequiredError()
    return content.strip()


class MessageLedger:
    """Writes and pages the per-chat message log.

    ``count_system_messages`` decides whether lifecycle entries count toward
    the reveal threshold.  The chat-started marker never does.
    """

    def __init__(self, *, count_system_messages: bool = True) -> None:
        self.count_system_messages = count_system_messages

    def send_text(
        self,
        session: Session,
        chat: AnonymousChat,
        sender_id: str,
        content: str | None,
        message_type: str | None = None,
    ) -> AnonymousChatMessage:
        """Validate and append a participant's message; always counted."""
        text = clean_content(content)
        kind = parse_client_message_type(message_type)
        return chat_repository.append_message(
            session, chat.id, sender_id, text, kind, counted=True
        )

    def record_system_event(
        self,
        session: Session,
        chat: AnonymousChat,
        triggered_by: str,
        message_type: MessageType,
    ) -> AnonymousChatMessage:
        """Append the fixed ledger entry for a lifecycle event.

        *triggered_by* is the participant whose action caused the event.
        """
        if message_type == MessageType.TEXT:
            raise ValueError("text messages are not system events")
        message = chat_repository.append_message(
            session,
            chat.id,
            triggered_by,
            SYSTEM_MESSAGE_CONTENT[message_type],
            message_type,
            counted=self.count_system_messages,
        )
        logger.debug("Ledger: %s in chat %s by %s", message_type, chat.id, triggered_by)
        return message

    def record_chat_started(
        self, session: Session, chat: AnonymousChat, triggered_by: str
    ) -> AnonymousChatMessage:
        return chat_repository.append_message(
            session,
            chat.id,
            triggered_by,
            SYSTEM_MESSAGE_CONTENT[MessageType.SYSTEM],
            MessageType.SYSTEM,
            counted=False,
        )

    def history(
        self,
        session: Session,
        chat: AnonymousChat,
        caller_id: str,
        *,
        limit: int,
        before: datetime | None = None,
        before_id: int | None = None,
    ) -> list[dict[str, Any]]:
        return chat_repository.list_messages(
            session, chat, caller_id, limit=limit, before=before, before_id=before_id
        )
