"""
anonchat.database.models — SQLAlchemy 2.0 Data Models
======================================================

Tables:
- user_profiles           — Real identity shown after a reveal (read-only here)
- anonymous_chats         — One row per unordered user pair + reveal state
- anonymous_chat_messages — Append-only ledger, including system entries
- chat_read_states        — Per-(chat, user) last-read bookmark
"""

from __future__ import annotations

import enum
import uuid
from datetime import UTC, datetime

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all anonchat ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class ChatState(enum.StrEnum):
    """Reveal lifecycle of an anonymous chat."""
    ANONYMOUS = "anonymous"
    REVEAL_PENDING = "reveal_pending"
    NORMAL = "normal"


class MessageType(enum.StrEnum):
    """Ledger entry kinds.  Everything except TEXT is server-authored."""
    TEXT = "text"
    SYSTEM = "system"
    REVEAL_REQUEST = "reveal_request"
    REVEAL_ACCEPTED = "reveal_accepted"
    REVEAL_DECLINED = "reveal_declined"


def _new_chat_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    """Application-side timestamp (microsecond precision on every backend)."""
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# UserProfile — owned by the surrounding app; joined for reveals
# ---------------------------------------------------------------------------
class UserProfile(Base):
    __tablename__ = "user_profiles"

    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    display_name: Mapped[str | None] = mapped_column(String(100), default=None)
    avatar_url: Mapped[str | None] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    def __repr__(self) -> str:
        return f"<UserProfile user={self.user_id} name={self.display_name!r}>"


# ---------------------------------------------------------------------------
# AnonymousChat — exactly two participants, one row per pair
# ---------------------------------------------------------------------------
class AnonymousChat(Base):
    """A two-party chat behind generated pseudonyms.

    ``pair_low``/``pair_high`` hold the participant ids in sorted order so
    a unique index can enforce one chat per unordered pair, whatever slot
    each user landed in.
    """
    __tablename__ = "anonymous_chats"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_chat_id)
    user1_id: Mapped[str] = mapped_column(String(64), nullable=False)
    user2_id: Mapped[str] = mapped_column(String(64), nullable=False)
    pair_low: Mapped[str] = mapped_column(String(64), nullable=False)
    pair_high: Mapped[str] = mapped_column(String(64), nullable=False)
    user1_anonymous_name: Mapped[str] = mapped_column(String(64), nullable=False)
    user2_anonymous_name: Mapped[str] = mapped_column(String(64), nullable=False)
    state: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ChatState.ANONYMOUS.value
    )
    message_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reveal_requested_by: Mapped[str | None] = mapped_column(String(64), default=None)
    reveal_requested_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    revealed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    messages: Mapped[list[AnonymousChatMessage]] = relationship(
        back_populates="chat", cascade="all, delete-orphan", passive_deletes=True
    )
    read_states: Mapped[list[ChatReadState]] = relationship(
        cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        UniqueConstraint("pair_low", "pair_high", name="uq_anonymous_chats_pair"),
        CheckConstraint("user1_id <> user2_id", name="ck_anonymous_chats_distinct_users"),
        CheckConstraint(
            "state IN ('anonymous', 'reveal_pending', 'normal')",
            name="ck_anonymous_chats_state",
        ),
        CheckConstraint(
            "reveal_requested_by IS NULL OR reveal_requested_by IN (user1_id, user2_id)",
            name="ck_anonymous_chats_requester_is_participant",
        ),
        Index("ix_anonymous_chats_user1", "user1_id", "updated_at"),
        Index("ix_anonymous_chats_user2", "user2_id", "updated_at"),
    )

    def participant_ids(self) -> tuple[str, str]:
        return self.user1_id, self.user2_id

    def partner_of(self, user_id: str) -> str:
        return self.user2_id if self.user1_id == user_id else self.user1_id

    def anonymous_name_of(self, user_id: str) -> str:
        if user_id == self.user1_id:
            return self.user1_anonymous_name
        return self.user2_anonymous_name

    def __repr__(self) -> str:
        return (
            f"<AnonymousChat id={self.id} state={self.state} "
            f"count={self.message_count}>"
        )


# ---------------------------------------------------------------------------
# AnonymousChatMessage — append-only ledger
# ---------------------------------------------------------------------------
class AnonymousChatMessage(Base):
    __tablename__ = "anonymous_chat_messages"

    # Autoincrement id doubles as the insertion-order tiebreaker.
    id: Mapped[int] = mapped_column(
        BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True
    )
    chat_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("anonymous_chats.id", ondelete="CASCADE"), nullable=False
    )
    sender_id: Mapped[str] = mapped_column(String(64), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    message_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default=MessageType.TEXT.value
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utcnow, server_default=func.now()
    )

    chat: Mapped[AnonymousChat] = relationship(back_populates="messages")

    __table_args__ = (
        CheckConstraint(
            "message_type IN ('text', 'system', 'reveal_request', "
            "'reveal_accepted', 'reveal_declined')",
            name="ck_anonymous_chat_messages_type",
        ),
        Index("ix_anonymous_chat_messages_chat_created", "chat_id", "created_at", "id"),
    )

    def __repr__(self) -> str:
        return f"<AnonymousChatMessage id={self.id} chat={self.chat_id} type={self.message_type}>"


# ---------------------------------------------------------------------------
# ChatReadState — per-user read bookmark
# ---------------------------------------------------------------------------
class ChatReadState(Base):
    __tablename__ = "chat_read_states"

    chat_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("anonymous_chats.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    last_read_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<ChatReadState chat={self.chat_id} user={self.user_id}>"
