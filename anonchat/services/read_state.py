"""
anonchat.services.read_state — Read Bookmarks & Unread Counts
==============================================================

No push channel exists, so "unread" is derived: every message created after
the user's ``last_read_at`` (or every message, if they never read the chat).
Counts are computed at read time, never cached, so they always agree with
the ledger.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from anonchat.database.models import ChatReadState
from anonchat.services import chat_repository


class ReadStateTracker:
    """Thin policy layer over the repository's read-state rows."""

    def mark_as_read(self, session: Session, chat_id: str, user_id: str) -> ChatReadState:
        """Idempotent: repeated calls just move the bookmark to *now*."""
        return chat_repository.upsert_read_state(session, chat_id, user_id)

    def unread_count(self, session: Session, chat_id: str, user_id: str) -> int:
        return chat_repository.unread_count(session, chat_id, user_id)
