"""
anonchat.engine.reveal — Reveal State Machine
==============================================

Pure transition logic.  No DB I/O inside the engine: callers pass a
:class:`ChatSnapshot` and get back a :class:`RevealTransition` describing
the target state, the column patch, and the ledger entry to append.  The
service layer applies it with a compare-and-swap on ``from_state``.

States::

    anonymous ──request (count ≥ threshold)──▶ reveal_pending
    reveal_pending ──accept (by partner)──▶ normal      (sticky)
    reveal_pending ──decline (by partner)──▶ anonymous  (count kept)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from anonchat.database.models import AnonymousChat, ChatState, MessageType, utcnow
from anonchat.errors import (
    CannotRespondToOwnRequestError,
    ChatNotAnonymousError,
    InsufficientMessagesError,
    NoPendingRevealError,
)

__all__ = [
    "ChatSnapshot",
    "RevealEligibility",
    "RevealTransition",
    "plan_reveal_request",
    "plan_reveal_response",
    "reveal_eligibility",
]


@dataclass(frozen=True, slots=True)
class ChatSnapshot:
    """The slice of chat state the reveal rules look at."""

    state: ChatState
    message_count: int
    reveal_requested_by: str | None = None

    @classmethod
    def of(cls, chat: AnonymousChat) -> ChatSnapshot:
        return cls(
            state=ChatState(chat.state),
            message_count=chat.message_count,
            reveal_requested_by=chat.reveal_requested_by,
        )


@dataclass(frozen=True, slots=True)
class RevealTransition:
    """A legal state change, ready to be applied."""

    from_state: ChatState
    to_state: ChatState
    message_type: MessageType
    patch: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class RevealEligibility:
    """Progress toward the reveal threshold, for client display."""

    can_request_reveal: bool
    messages_until_reveal: int
    required: int
    current: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "can_request_reveal": self.can_request_reveal,
            "messages_until_reveal": self.messages_until_reveal,
            "required": self.required,
            "current": self.current,
        }


def reveal_eligibility(message_count: int, threshold: int) -> RevealEligibility:
    return RevealEligibility(
        can_request_reveal=message_count >= threshold,
        messages_until_reveal=max(0, threshold - message_count),
        required=threshold,
        current=message_count,
    )


def plan_reveal_request(
    chat: ChatSnapshot,
    user_id: str,
    threshold: int,
    *,
    now: datetime | None = None,
) -> RevealTransition:
    """Plan ``anonymous → reveal_pending`` for a request by *user_id*.

    Raises
    ------
    ChatNotAnonymousError
        The chat is already pending or revealed.
    InsufficientMessagesError
        ``message_count`` is below *threshold*.
    """
    if chat.state != ChatState.ANONYMOUS:
        raise ChatNotAnonymousError()
    if chat.message_count < threshold:
        raise InsufficientMessagesError(required=threshold, current=chat.message_count)

    return RevealTransition(
        from_state=ChatState.ANONYMOUS,
        to_state=ChatState.REVEAL_PENDING,
        message_type=MessageType.REVEAL_REQUEST,
        patch={
            "reveal_requested_by": user_id,
            "reveal_requested_at": now or utcnow(),
        },
    )


def plan_reveal_response(
    chat: ChatSnapshot,
    user_id: str,
    accept: bool,
    *,
    now: datetime | None = None,
) -> RevealTransition:
    """Plan the answer to a pending reveal request.

    Accepting moves to ``normal`` and stamps ``revealed_at``; declining goes
    back to ``anonymous`` and clears the request fields.

    Raises
    ------
    NoPendingRevealError
        The chat is not in ``reveal_pending``.
    CannotRespondToOwnRequestError
        *user_id* issued the pending request.
    """
    if chat.state != ChatState.REVEAL_PENDING:
        raise NoPendingRevealError()
    if chat.reveal_requested_by == user_id:
        raise CannotRespondToOwnRequestError()

    if accept:
        return RevealTransition(
            from_state=ChatState.REVEAL_PENDING,
            to_state=ChatState.NORMAL,
            message_type=MessageType.REVEAL_ACCEPTED,
            patch={"revealed_at": now or utcnow()},
        )
    return RevealTransition(
        from_state=ChatState.REVEAL_PENDING,
        to_state=ChatState.ANONYMOUS,
        message_type=MessageType.REVEAL_DECLINED,
        patch={"reveal_requested_by": None, "reveal_requested_at": None},
    )
