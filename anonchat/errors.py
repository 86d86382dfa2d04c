"""
anonchat.errors — Chat Error Taxonomy
======================================

Every failure the chat core can report carries a machine ``code`` (sent to
clients as ``{"error": code}``), an HTTP ``status_code``, and optional
``extra`` fields merged into the response envelope.

Non-participants always get :class:`ChatNotFoundError`, never a forbidden
error, so chat existence is not leaked.
"""

from __future__ import annotations

from typing import Any


class ChatError(Exception):
    """Base exception for all chat-domain errors."""

    code: str = "chat_error"
    status_code: int = 500

    def __init__(self, message: str | None = None, **extra: Any) -> None:
        self.message = message or self.code
        self.extra = extra
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, **self.extra}


# ---------------------------------------------------------------------------
# 400 — malformed client input
# ---------------------------------------------------------------------------
class ValidationError(ChatError):
    status_code = 400
    code = "invalid_request"


class InvalidRequestError(ValidationError):
    code = "invalid_request"


class TargetUserRequiredError(ValidationError):
    code = "target_user_id_required"


class SelfChatError(ValidationError):
    code = "cannot_chat_with_self"


class ContentRequiredError(ValidationError):
    code = "content_required"


class InvalidMessageTypeError(ValidationError):
    code = "invalid_message_type"


# ---------------------------------------------------------------------------
# 401 — no or invalid bearer token
# ---------------------------------------------------------------------------
class UnauthorizedError(ChatError):
    status_code = 401
    code = "unauthorized"


# ---------------------------------------------------------------------------
# 404 — missing chat or caller is not a participant
# ---------------------------------------------------------------------------
class ChatNotFoundError(ChatError):
    status_code = 404
    code = "chat_not_found"


# ---------------------------------------------------------------------------
# 400 — reveal state guards
# ---------------------------------------------------------------------------
class StateGuardError(ChatError):
    status_code = 400
    code = "invalid_state"


class ChatNotAnonymousError(StateGuardError):
    code = "chat_not_anonymous"


class InsufficientMessagesError(StateGuardError):
    code = "not_enough_messages"

    def __init__(self, required: int, current: int) -> None:
        super().__init__(
            f"{current}/{required} messages — reveal not yet available",
            required=required,
            current=current,
        )
        self.required = required
        self.current = current


class NoPendingRevealError(StateGuardError):
    code = "no_pending_reveal"


class CannotRespondToOwnRequestError(StateGuardError):
    code = "cannot_respond_to_own_request"


# ---------------------------------------------------------------------------
# 500 — storage failures (details stay in server logs)
# ---------------------------------------------------------------------------
class StorageError(ChatError):
    status_code = 500
    code = "database_error"
