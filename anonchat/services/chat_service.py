"""
anonchat.services.chat_service — Chat Access Facade
====================================================

The single authorized entry point to the anonymous chat core.  Each public
coroutine is one unit of work:

  1. Validate client input (raises before anything touches the DB).
  2. ``run_db`` a synchronous function on a worker thread.
  3. Inside one session: re-derive participancy, mutate through the
     repository / ledger / reveal engine / read-state tracker, build the
     caller-relative view, commit.

Storage exceptions never leave this module raw: they are logged with full
context and re-raised as :class:`~anonchat.errors.StorageError`.
"""

from __future__ import annotations

import logging
import random
from collections.abc import Callable
from datetime import datetime
from typing import Any, TypeVar

from sqlalchemy import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from anonchat.config import ChatConfig
from anonchat.database.engine import get_session, run_db
from anonchat.database.models import AnonymousChat, ChatState
from anonchat.engine.names import generate_anonymous_name
from anonchat.engine.reveal import (
    ChatSnapshot,
    RevealTransition,
    plan_reveal_request,
    plan_reveal_response,
)
from anonchat.errors import (
    ChatNotAnonymousError,
    ChatNotFoundError,
    InvalidRequestError,
    NoPendingRevealError,
    SelfChatError,
    StorageError,
    TargetUserRequiredError,
)
from anonchat.services import chat_repository
from anonchat.services.message_ledger import (
    MessageLedger,
    clean_content,
    parse_client_message_type,
)
from anonchat.services.read_state import ReadStateTracker

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _normalize_user_id(raw: Any) -> str | None:
    if raw is None or isinstance(raw, bool):
        return None
    value = str(raw).strip()
    return value or None


def _clamp_limit(limit: int | None, default: int, maximum: int) -> int:
    """Missing or non-positive → *default*; oversized → *maximum*."""
    if limit is None or limit < 1:
        return default
    return min(limit, maximum)


def _parse_state(raw: str | None) -> ChatState | None:
    if raw is None or raw == "":
        return None
    try:
        return ChatState(raw)
    except ValueError:
        raise InvalidRequestError(f"unknown chat state {raw!r}") from None


class AnonymousChatService:
    """Composes repository, ledger, reveal engine and read-state tracking.

    Construct one per process (or per test) and pass it around explicitly::

        service = AnonymousChatService(engine, load_config())
        chat = await service.start_chat("alice", "bob")
    """

    def __init__(
        self,
        engine: Engine,
        config: ChatConfig | None = None,
        *,
        rng: random.Random | None = None,
    ) -> None:
        self.engine = engine
        self.config = config or ChatConfig()
        self.rng = rng
        self.ledger = MessageLedger(count_system_messages=self.config.count_system_messages)
        self.read_states = ReadStateTracker()

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------
    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        try:
            return await run_db(func, *args)
        except SQLAlchemyError as exc:
            logger.exception("Storage failure in %s%r", func.__name__, args)
            raise StorageError() from exc

    def _require_chat(
        self, session: Session, chat_id: str, user_id: str, *, for_update: bool = False
    ) -> AnonymousChat:
        chat = chat_repository.get_chat_for_participant(
            session, chat_id, user_id, for_update=for_update
        )
        if chat is None:
            raise ChatNotFoundError()
        return chat

    def _view(self, session: Session, chat: AnonymousChat, user_id: str) -> dict[str, Any]:
        return chat_repository.build_chat_view(
            session, chat, user_id, threshold=self.config.reveal_threshold
        )

    def _apply_transition(
        self,
        session: Session,
        chat: AnonymousChat,
        transition: RevealTransition,
        user_id: str,
    ) -> None:
        patch = {"state": transition.to_state, **transition.patch}
        swapped = chat_repository.update_chat_state(
            session, chat.id, patch, expected_state=transition.from_state
        )
        if not swapped:
            logger.warning(
                "Reveal race lost on chat %s (%s → %s) by %s",
                chat.id, transition.from_state, transition.to_state, user_id,
            )
            if transition.from_state == ChatState.ANONYMOUS:
                raise ChatNotAnonymousError()
            raise NoPendingRevealError()
        self.ledger.record_system_event(session, chat, user_id, transition.message_type)
        logger.info(
            "Chat %s: %s → %s (by %s)",
            chat.id, transition.from_state, transition.to_state, user_id,
        )

    # ------------------------------------------------------------------
    # List / start / get
    # ------------------------------------------------------------------
    async def list_my_chats(
        self,
        user_id: str,
        *,
        state: str | None = None,
        limit: int | None = None,
        cursor: datetime | None = None,
    ) -> dict[str, Any]:
        chat_state = _parse_state(state)
        page_size = _clamp_limit(
            limit, self.config.chat_list_default_limit, self.config.chat_list_max_limit
        )
        return await self._run(self._list_my_chats, user_id, chat_state, page_size, cursor)

    def _list_my_chats(
        self, user_id: str, state: ChatState | None, limit: int, cursor: datetime | None
    ) -> dict[str, Any]:
        with get_session(self.engine) as session:
            items = chat_repository.list_chats_for_user(
                session,
                user_id,
                threshold=self.config.reveal_threshold,
                limit=limit,
                state=state,
                cursor=cursor,
            )
        return {"items": items}

    async def start_chat(self, user_id: str, target_user_id: Any) -> dict[str, Any]:
        """Get-or-create the chat between *user_id* and the target."""
        target = _normalize_user_id(target_user_id)
        if target is None:
            raise TargetUserRequiredError()
        if target == user_id:
            raise SelfChatError()
        return await self._run(self._start_chat, user_id, target)

    def _start_chat(self, user_id: str, target: str) -> dict[str, Any]:
        with get_session(self.engine) as session:
            chat = chat_repository.find_chat_between(session, user_id, target)
            if chat is None:
                chat, created = chat_repository.create_chat(
                    session,
                    user_id,
                    target,
                    generate_anonymous_name(self.rng),
                    generate_anonymous_name(self.rng),
                )
                if created:
                    self.ledger.record_chat_started(session, chat, user_id)
                    logger.info("Anonymous chat %s started by %s", chat.id, user_id)
            return self._view(session, chat, user_id)

    async def get_chat(self, user_id: str, chat_id: str) -> dict[str, Any]:
        return await self._run(self._get_chat, user_id, chat_id)

    def _get_chat(self, user_id: str, chat_id: str) -> dict[str, Any]:
        with get_session(self.engine) as session:
            chat = self._require_chat(session, chat_id, user_id)
            return self._view(session, chat, user_id)

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------
    async def list_messages(
        self,
        user_id: str,
        chat_id: str,
        *,
        limit: int | None = None,
        before: datetime | None = None,
        before_id: int | None = None,
    ) -> dict[str, Any]:
        """Page backwards through a chat.

        A full page carries ``next_cursor`` / ``next_cursor_id`` (the oldest
        item's ``created_at`` and ``id``); pass them back as ``before`` /
        ``before_id`` for the next page.
        """
        page_size = _clamp_limit(
            limit, self.config.message_default_limit, self.config.message_max_limit
        )
        return await self._run(
            self._list_messages, user_id, chat_id, page_size, before, before_id
        )

    def _list_messages(
        self,
        user_id: str,
        chat_id: str,
        limit: int,
        before: datetime | None,
        before_id: int | None,
    ) -> dict[str, Any]:
        with get_session(self.engine) as session:
            chat = self._require_chat(session, chat_id, user_id)
            items = self.ledger.history(
                session, chat, user_id, limit=limit, before=before, before_id=before_id
            )
        oldest = items[0] if len(items) == limit else None
        return {
            "items": items,
            "next_cursor": oldest["created_at"] if oldest else None,
            "next_cursor_id": oldest["id"] if oldest else None,
        }

    async def send_message(
        self,
        user_id: str,
        chat_id: str,
        content: str | None,
        message_type: str | None = None,
    ) -> dict[str, Any]:
        text = clean_content(content)
        parse_client_message_type(message_type)
        return await self._run(self._send_message, user_id, chat_id, text, message_type)

    def _send_message(
        self, user_id: str, chat_id: str, content: str, message_type: str | None
    ) -> dict[str, Any]:
        with get_session(self.engine) as session:
            chat = self._require_chat(session, chat_id, user_id)
            message = self.ledger.send_text(session, chat, user_id, content, message_type)
            profiles = chat_repository.revealed_profiles(session, chat)
            return chat_repository.message_view(message, chat, user_id, profiles)

    # ------------------------------------------------------------------
    # Reveal
    # ------------------------------------------------------------------
    async def request_reveal(self, user_id: str, chat_id: str) -> dict[str, Any]:
        return await self._run(self._request_reveal, user_id, chat_id)

    def _request_reveal(self, user_id: str, chat_id: str) -> dict[str, Any]:
        with get_session(self.engine) as session:
            chat = self._require_chat(session, chat_id, user_id, for_update=True)
            transition = plan_reveal_request(
                ChatSnapshot.of(chat), user_id, self.config.reveal_threshold
            )
            self._apply_transition(session, chat, transition, user_id)
        return {"success": True}

    async def respond_to_reveal(self, user_id: str, chat_id: str, accept: bool) -> dict[str, Any]:
        if not isinstance(accept, bool):
            raise InvalidRequestError("accept must be a boolean")
        return await self._run(self._respond_to_reveal, user_id, chat_id, accept)

    def _respond_to_reveal(self, user_id: str, chat_id: str, accept: bool) -> dict[str, Any]:
        with get_session(self.engine) as session:
            chat = self._require_chat(session, chat_id, user_id, for_update=True)
            transition = plan_reveal_response(ChatSnapshot.of(chat), user_id, accept)
            self._apply_transition(session, chat, transition, user_id)
        return {"success": True, "accepted": accept}

    # ------------------------------------------------------------------
    # Read state / delete
    # ------------------------------------------------------------------
    async def mark_as_read(self, user_id: str, chat_id: str) -> dict[str, Any]:
        return await self._run(self._mark_as_read, user_id, chat_id)

    def _mark_as_read(self, user_id: str, chat_id: str) -> dict[str, Any]:
        with get_session(self.engine) as session:
            chat = self._require_chat(session, chat_id, user_id)
            self.read_states.mark_as_read(session, chat.id, user_id)
        return {"success": True}

    async def unread_count(self, user_id: str, chat_id: str) -> int:
        return await self._run(self._unread_count, user_id, chat_id)

    def _unread_count(self, user_id: str, chat_id: str) -> int:
        with get_session(self.engine) as session:
            chat = self._require_chat(session, chat_id, user_id)
            return self.read_states.unread_count(session, chat.id, user_id)

    async def delete_chat(self, user_id: str, chat_id: str) -> dict[str, Any]:
        return await self._run(self._delete_chat, user_id, chat_id)

    def _delete_chat(self, user_id: str, chat_id: str) -> dict[str, Any]:
        with get_session(self.engine) as session:
            if not chat_repository.delete_chat(session, chat_id, user_id):
                raise ChatNotFoundError()
        logger.info("Anonymous chat %s deleted by %s", chat_id, user_id)
        return {"success": True}
