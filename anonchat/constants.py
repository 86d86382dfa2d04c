"""
anonchat.constants — Shared Constants
======================================

Single source of truth for protocol constants.  Import from here instead of
duplicating literals in the engine, services, and API layer.
"""

from __future__ import annotations

from anonchat.database.models import MessageType

# ---------------------------------------------------------------------------
# Reveal protocol
# ---------------------------------------------------------------------------
REVEAL_MESSAGE_THRESHOLD = 15

# ---------------------------------------------------------------------------
# Fixed ledger phrases for server-authored messages
# ---------------------------------------------------------------------------
SYSTEM_MESSAGE_CONTENT: dict[MessageType, str] = {
    MessageType.SYSTEM: "Chat gestartet",
    MessageType.REVEAL_REQUEST: "möchte sich aufdecken",
    MessageType.REVEAL_ACCEPTED: "Profil sichtbar!",
    MessageType.REVEAL_DECLINED: "Aufdecken abgelehnt",
}

# Only these types may be submitted by a client.
CLIENT_MESSAGE_TYPES: frozenset[MessageType] = frozenset({MessageType.TEXT})

# ---------------------------------------------------------------------------
# Paging
# ---------------------------------------------------------------------------
CHAT_LIST_DEFAULT_LIMIT = 20
CHAT_LIST_MAX_LIMIT = 100
MESSAGE_DEFAULT_LIMIT = 50
MESSAGE_MAX_LIMIT = 100

# ---------------------------------------------------------------------------
# Repository allow lists
# ---------------------------------------------------------------------------
ALLOWED_CHAT_PATCH_FIELDS: set[str] = {
    "state", "reveal_requested_by", "reveal_requested_at", "revealed_at",
}
