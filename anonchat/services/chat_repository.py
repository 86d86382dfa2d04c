"""
anonchat.services.chat_repository — Chat Persistence & Caller Views
====================================================================

The only module that writes ``anonymous_chats``, ``anonymous_chat_messages``
and ``chat_read_states``.  Every function takes an open :class:`Session`;
the caller owns the unit of work (see :func:`anonchat.database.engine.get_session`),
so participancy checks and mutations share one transaction.

Race guards live in the database, not in Python:
  * one chat per unordered pair — unique ``(pair_low, pair_high)`` index,
    conflicts resolve to the existing row;
  * ``message_count`` — SQL-side ``message_count + 1`` in the insert's
    transaction;
  * reveal transitions — ``UPDATE … WHERE state = :expected``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from anonchat.constants import ALLOWED_CHAT_PATCH_FIELDS
from anonchat.database.models import (
    AnonymousChat,
    AnonymousChatMessage,
    ChatReadState,
    ChatState,
    MessageType,
    UserProfile,
    utcnow,
)
from anonchat.engine.reveal import reveal_eligibility

logger = logging.getLogger(__name__)

# Internal columns never shown to clients.
_HIDDEN_CHAT_COLUMNS = frozenset({"pair_low", "pair_high"})


def normalize_pair(user_a: str, user_b: str) -> tuple[str, str]:
    """Return the pair sorted so ``(a, b)`` and ``(b, a)`` map to one key."""
    return (user_a, user_b) if user_a <= user_b else (user_b, user_a)


def _participant_clause(user_id: str):
    return or_(AnonymousChat.user1_id == user_id, AnonymousChat.user2_id == user_id)


# ---------------------------------------------------------------------------
# Chats
# ---------------------------------------------------------------------------
def find_chat_between(session: Session, user_a: str, user_b: str) -> AnonymousChat | None:
    """Symmetric lookup: the chat for the unordered pair, if any."""
    low, high = normalize_pair(user_a, user_b)
    return session.scalar(
        select(AnonymousChat).where(
            AnonymousChat.pair_low == low,
            AnonymousChat.pair_high == high,
        )
    )


def create_chat(
    session: Session,
    user_a: str,
    user_b: str,
    name_a: str,
    name_b: str,
) -> tuple[AnonymousChat, bool]:
    """Insert a fresh anonymous chat, *user_a* in slot 1.

    Returns ``(chat, created)``.  If a concurrent request already created
    the pair, the unique index rejects our row inside a SAVEPOINT and the
    existing chat is returned with ``created=False``.
    """
    low, high = normalize_pair(user_a, user_b)
    chat = AnonymousChat(
        user1_id=user_a,
        user2_id=user_b,
        pair_low=low,
        pair_high=high,
        user1_anonymous_name=name_a,
        user2_anonymous_name=name_b,
        state=ChatState.ANONYMOUS.value,
        message_count=0,
    )
    try:
        with session.begin_nested():   # SAVEPOINT
            session.add(chat)
            session.flush()
    except IntegrityError:
        # Lost the race — the SAVEPOINT was rolled back, the outer txn lives.
        existing = find_chat_between(session, user_a, user_b)
        if existing is None:
            raise
        logger.info("Chat for pair %s/%s already created concurrently.", low, high)
        return existing, False
    return chat, True


def get_chat_for_participant(
    session: Session,
    chat_id: str,
    caller_id: str,
    *,
    for_update: bool = False,
) -> AnonymousChat | None:
    """Fetch *chat_id* only if *caller_id* is one of its two participants.

    ``for_update`` takes a row lock (``SELECT … FOR UPDATE``) on backends
    that support it.
    """
    stmt = select(AnonymousChat).where(
        AnonymousChat.id == chat_id,
        _participant_clause(caller_id),
    )
    if for_update:
        stmt = stmt.with_for_update()
    return session.scalar(stmt)


def update_chat_state(
    session: Session,
    chat_id: str,
    patch: dict[str, Any],
    *,
    expected_state: ChatState,
) -> bool:
    """Apply *patch* only while the chat is still in *expected_state*.

    Returns ``True`` when exactly one row changed.  ``False`` means another
    request moved the chat first (or it vanished).
    """
    unknown = set(patch) - ALLOWED_CHAT_PATCH_FIELDS
    if unknown:
        raise ValueError(f"Unsupported chat patch fields: {sorted(unknown)}")

    values = dict(patch)
    if isinstance(values.get("state"), ChatState):
        values["state"] = values["state"].value
    values["updated_at"] = utcnow()

    result = session.execute(
        update(AnonymousChat)
        .where(
            AnonymousChat.id == chat_id,
            AnonymousChat.state == expected_state.value,
        )
        .values(**values)
        .execution_options(synchronize_session="fetch")
    )
    return result.rowcount == 1


def delete_chat(session: Session, chat_id: str, caller_id: str) -> bool:
    """Delete a chat with its messages and read states.

    Only a participant may delete; returns ``False`` otherwise or when the
    chat does not exist.
    """
    chat = get_chat_for_participant(session, chat_id, caller_id)
    if chat is None:
        return False

    session.execute(delete(AnonymousChatMessage).where(AnonymousChatMessage.chat_id == chat_id))
    session.execute(delete(ChatReadState).where(ChatReadState.chat_id == chat_id))
    session.execute(
        delete(AnonymousChat)
        .where(AnonymousChat.id == chat_id)
        .execution_options(synchronize_session="fetch")
    )
    return True


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------
def append_message(
    session: Session,
    chat_id: str,
    sender_id: str,
    content: str,
    message_type: MessageType,
    *,
    counted: bool = True,
) -> AnonymousChatMessage:
    """Insert a ledger row and bump the parent chat in the same transaction.

    When *counted* is true ``message_count`` is incremented SQL-side, so
    concurrent senders never lose an increment.  ``updated_at`` is bumped
    either way.  Participancy must already have been checked.
    """
    now = utcnow()
    message = AnonymousChatMessage(
        chat_id=chat_id,
        sender_id=sender_id,
        content=content,
        message_type=MessageType(message_type).value,
        created_at=now,
    )
    session.add(message)

    values: dict[str, Any] = {"updated_at": now}
    if counted:
        values["message_count"] = AnonymousChat.message_count + 1
    session.execute(
        update(AnonymousChat)
        .where(AnonymousChat.id == chat_id)
        .values(**values)
        .execution_options(synchronize_session="fetch")
    )
    session.flush()
    return message


def list_messages(
    session: Session,
    chat: AnonymousChat,
    caller_id: str,
    *,
    limit: int,
    before: datetime | None = None,
    before_id: int | None = None,
) -> list[dict[str, Any]]:
    """Return up to *limit* messages in ascending order.

    Queried newest-first so ``before`` pages backwards from the most recent
    message, then reversed for display.  ``(before, before_id)`` is a keyset
    cursor matching the ``(created_at, id)`` ordering; without ``before_id``
    only ``created_at`` is compared.
    """
    stmt = select(AnonymousChatMessage).where(AnonymousChatMessage.chat_id == chat.id)
    if before is not None and before_id is not None:
        stmt = stmt.where(
            or_(
                AnonymousChatMessage.created_at < before,
                and_(
                    AnonymousChatMessage.created_at == before,
                    AnonymousChatMessage.id < before_id,
                ),
            )
        )
    elif before is not None:
        stmt = stmt.where(AnonymousChatMessage.created_at < before)
    stmt = stmt.order_by(
        AnonymousChatMessage.created_at.desc(),
        AnonymousChatMessage.id.desc(),
    ).limit(limit)
    rows = list(reversed(session.scalars(stmt).all()))
    profiles = revealed_profiles(session, chat)
    return [message_view(m, chat, caller_id, profiles) for m in rows]


def message_view(
    message: AnonymousChatMessage,
    chat: AnonymousChat,
    caller_id: str,
    profiles: dict[str, UserProfile] | None = None,
) -> dict[str, Any]:
    """Annotate a message for *caller_id*.

    Real sender names/avatars appear only once the chat is ``normal``.
    """
    profiles = profiles or {}
    revealed = chat.state == ChatState.NORMAL.value
    profile = profiles.get(message.sender_id) if revealed else None
    return {
        "id": message.id,
        "chat_id": message.chat_id,
        "sender_id": message.sender_id,
        "content": message.content,
        "message_type": message.message_type,
        "created_at": message.created_at,
        "is_own": message.sender_id == caller_id,
        "sender_anonymous_name": chat.anonymous_name_of(message.sender_id),
        "sender_real_name": profile.display_name if profile else None,
        "sender_avatar_url": profile.avatar_url if profile else None,
    }


# ---------------------------------------------------------------------------
# Read states
# ---------------------------------------------------------------------------
def upsert_read_state(session: Session, chat_id: str, user_id: str) -> ChatReadState:
    """Set ``last_read_at = now`` for the pair, creating the row if absent."""
    now = utcnow()
    state = session.get(ChatReadState, (chat_id, user_id))
    if state is None:
        state = ChatReadState(chat_id=chat_id, user_id=user_id, last_read_at=now)
        try:
            with session.begin_nested():   # SAVEPOINT
                session.add(state)
                session.flush()
            return state
        except IntegrityError:
            # A parallel mark-read inserted first; fall through to update it.
            state = session.get(ChatReadState, (chat_id, user_id))
            if state is None:
                raise
    state.last_read_at = now
    session.flush()
    return state


def unread_count(session: Session, chat_id: str, user_id: str) -> int:
    """Messages created after the user's bookmark (all of them if none)."""
    last_read_at = session.scalar(
        select(ChatReadState.last_read_at).where(
            ChatReadState.chat_id == chat_id,
            ChatReadState.user_id == user_id,
        )
    )
    stmt = select(func.count(AnonymousChatMessage.id)).where(
        AnonymousChatMessage.chat_id == chat_id
    )
    if last_read_at is not None:
        stmt = stmt.where(AnonymousChatMessage.created_at > last_read_at)
    return session.scalar(stmt) or 0


# ---------------------------------------------------------------------------
# Caller-relative chat views
# ---------------------------------------------------------------------------
def load_profiles(session: Session, user_ids: Iterable[str]) -> dict[str, UserProfile]:
    ids = set(user_ids)
    if not ids:
        return {}
    rows = session.scalars(select(UserProfile).where(UserProfile.user_id.in_(ids))).all()
    return {p.user_id: p for p in rows}


def revealed_profiles(session: Session, chat: AnonymousChat) -> dict[str, UserProfile]:
    """Both participants' profiles once the chat is ``normal``, else nothing."""
    if chat.state != ChatState.NORMAL.value:
        return {}
    return load_profiles(session, chat.participant_ids())


def _chat_to_dict(chat: AnonymousChat) -> dict[str, Any]:
    return {
        col.name: getattr(chat, col.key)
        for col in AnonymousChat.__table__.columns
        if col.name not in _HIDDEN_CHAT_COLUMNS
    }


def build_chat_view(
    session: Session,
    chat: AnonymousChat,
    caller_id: str,
    *,
    threshold: int,
    profiles: dict[str, UserProfile] | None = None,
) -> dict[str, Any]:
    """Blend raw chat columns with partner fields relative to *caller_id*.

    Partner real name and avatar are exposed only when ``is_revealed``;
    ``partner_display_name`` is what a client should print either way.
    """
    partner_id = chat.partner_of(caller_id)
    if profiles is None:
        profiles = load_profiles(session, [partner_id])
    is_revealed = chat.state == ChatState.NORMAL.value
    profile = profiles.get(partner_id) if is_revealed else None

    partner_alias = chat.anonymous_name_of(partner_id)
    real_name = profile.display_name if profile else None

    view = _chat_to_dict(chat)
    view.update(
        partner_id=partner_id,
        partner_anonymous_name=partner_alias,
        partner_real_name=real_name,
        partner_avatar_url=profile.avatar_url if profile else None,
        partner_display_name=real_name or partner_alias,
        my_anonymous_name=chat.anonymous_name_of(caller_id),
        is_revealed=is_revealed,
        did_i_request_reveal=chat.reveal_requested_by == caller_id,
        reveal=reveal_eligibility(chat.message_count, threshold).to_dict(),
    )
    return view


def list_chats_for_user(
    session: Session,
    user_id: str,
    *,
    threshold: int,
    limit: int,
    state: ChatState | None = None,
    cursor: datetime | None = None,
) -> list[dict[str, Any]]:
    """Chats the user takes part in, most recently active first.

    ``cursor`` is a ``created_at`` boundary: only chats created before it
    are returned.  Each item carries partner fields, a last-message preview,
    and ``unread_count`` computed against the caller's read bookmark.
    """
    unread_subq = (
        select(func.count(AnonymousChatMessage.id))
        .where(
            AnonymousChatMessage.chat_id == AnonymousChat.id,
            or_(
                ChatReadState.last_read_at.is_(None),
                AnonymousChatMessage.created_at > ChatReadState.last_read_at,
            ),
        )
        .correlate(AnonymousChat, ChatReadState)
        .scalar_subquery()
    )
    last_message_subq = (
        select(AnonymousChatMessage.id)
        .where(AnonymousChatMessage.chat_id == AnonymousChat.id)
        .order_by(AnonymousChatMessage.created_at.desc(), AnonymousChatMessage.id.desc())
        .limit(1)
        .correlate(AnonymousChat)
        .scalar_subquery()
    )

    stmt = (
        select(
            AnonymousChat,
            ChatReadState.last_read_at,
            unread_subq.label("unread_count"),
            last_message_subq.label("last_message_id"),
        )
        .outerjoin(
            ChatReadState,
            and_(
                ChatReadState.chat_id == AnonymousChat.id,
                ChatReadState.user_id == user_id,
            ),
        )
        .where(_participant_clause(user_id))
    )
    if state is not None:
        stmt = stmt.where(AnonymousChat.state == state.value)
    if cursor is not None:
        stmt = stmt.where(AnonymousChat.created_at < cursor)
    stmt = stmt.order_by(AnonymousChat.updated_at.desc(), AnonymousChat.id.desc()).limit(limit)

    rows = session.execute(stmt).all()
    if not rows:
        return []

    last_ids = [r.last_message_id for r in rows if r.last_message_id is not None]
    last_messages: dict[int, AnonymousChatMessage] = {}
    if last_ids:
        last_messages = {
            m.id: m
            for m in session.scalars(
                select(AnonymousChatMessage).where(AnonymousChatMessage.id.in_(last_ids))
            ).all()
        }
    profiles = load_profiles(session, [r.AnonymousChat.partner_of(user_id) for r in rows])

    items: list[dict[str, Any]] = []
    for row in rows:
        chat = row.AnonymousChat
        view = build_chat_view(session, chat, user_id, threshold=threshold, profiles=profiles)
        last = last_messages.get(row.last_message_id)
        view.update(
            last_message=last.content if last else None,
            last_message_type=last.message_type if last else None,
            last_message_at=last.created_at if last else None,
            last_read_at=row.last_read_at,
            unread_count=int(row.unread_count or 0),
        )
        items.append(view)
    return items
