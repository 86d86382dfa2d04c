"""
tests/test_chat_repository.py — Repository against in-memory SQLite
====================================================================
Covers pair deduplication, participancy filtering, compare-and-swap state
updates, message accounting, read bookmarks, and cascading deletes.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from anonchat.database.models import (
    AnonymousChat,
    AnonymousChatMessage,
    ChatReadState,
    ChatState,
    MessageType,
    UserProfile,
)
from anonchat.services import chat_repository as repo


def _new_chat(session: Session, a: str = "alice", b: str = "bob") -> AnonymousChat:
    chat, created = repo.create_chat(session, a, b, "RoteEule_1", "BlauerFuchs_2")
    assert created
    return chat


class TestPairs:
    def test_normalize_pair_is_symmetric(self):
        assert repo.normalize_pair("b", "a") == repo.normalize_pair("a", "b") == ("a", "b")

    def test_find_chat_between_either_order(self, db_session):
        chat = _new_chat(db_session)
        assert repo.find_chat_between(db_session, "alice", "bob").id == chat.id
        assert repo.find_chat_between(db_session, "bob", "alice").id == chat.id
        assert repo.find_chat_between(db_session, "alice", "carol") is None

    def test_duplicate_insert_returns_existing(self, db_engine):
        with Session(db_engine) as s1:
            first = _new_chat(s1)
            s1.commit()
            first_id = first.id

        # Reversed order, as a racing partner would submit it.
        with Session(db_engine) as s2:
            chat, created = repo.create_chat(s2, "bob", "alice", "X_1", "Y_2")
            s2.commit()
            assert created is False
            assert chat.id == first_id

        with Session(db_engine) as s3:
            assert s3.scalar(select(func.count(AnonymousChat.id))) == 1


class TestParticipancy:
    def test_outsider_cannot_load_chat(self, db_session):
        chat = _new_chat(db_session)
        assert repo.get_chat_for_participant(db_session, chat.id, "alice") is not None
        assert repo.get_chat_for_participant(db_session, chat.id, "bob") is not None
        assert repo.get_chat_for_participant(db_session, chat.id, "mallory") is None

    def test_unknown_chat_id(self, db_session):
        assert repo.get_chat_for_participant(db_session, "nope", "alice") is None


class TestUpdateChatState:
    def test_swap_succeeds_from_expected_state(self, db_session):
        chat = _new_chat(db_session)
        ok = repo.update_chat_state(
            db_session,
            chat.id,
            {"state": ChatState.REVEAL_PENDING, "reveal_requested_by": "alice"},
            expected_state=ChatState.ANONYMOUS,
        )
        assert ok is True
        db_session.refresh(chat)
        assert chat.state == "reveal_pending"
        assert chat.reveal_requested_by == "alice"

    def test_swap_fails_from_wrong_state(self, db_session):
        chat = _new_chat(db_session)
        ok = repo.update_chat_state(
            db_session,
            chat.id,
            {"state": ChatState.NORMAL},
            expected_state=ChatState.REVEAL_PENDING,
        )
        assert ok is False
        db_session.refresh(chat)
        assert chat.state == "anonymous"

    def test_unknown_fields_rejected(self, db_session):
        chat = _new_chat(db_session)
        with pytest.raises(ValueError, match="message_count"):
            repo.update_chat_state(
                db_session,
                chat.id,
                {"message_count": 999},
                expected_state=ChatState.ANONYMOUS,
            )


class TestMessages:
    def test_counted_and_uncounted_appends(self, db_session):
        chat = _new_chat(db_session)
        repo.append_message(db_session, chat.id, "alice", "Chat gestartet",
                            MessageType.SYSTEM, counted=False)
        repo.append_message(db_session, chat.id, "alice", "hi", MessageType.TEXT)
        repo.append_message(db_session, chat.id, "bob", "hey", MessageType.TEXT)
        db_session.refresh(chat)
        assert chat.message_count == 2
        total = db_session.scalar(
            select(func.count(AnonymousChatMessage.id))
            .where(AnonymousChatMessage.chat_id == chat.id)
        )
        assert total == 3

    def test_list_messages_ascending_with_before(self, db_session):
        chat = _new_chat(db_session)
        sent = [
            repo.append_message(db_session, chat.id, "alice", f"m{i}", MessageType.TEXT)
            for i in range(5)
        ]
        page = repo.list_messages(db_session, chat, "alice", limit=2)
        assert [m["content"] for m in page] == ["m3", "m4"]
        assert page[0]["is_own"] is True

        older = repo.list_messages(
            db_session, chat, "bob", limit=10, before=page[0]["created_at"]
        )
        assert [m["content"] for m in older] == ["m0", "m1", "m2"]
        assert older[0]["is_own"] is False
        assert older[0]["sender_anonymous_name"] == "RoteEule_1"
        assert sent[0].id < sent[-1].id

    def test_keyset_cursor_walks_through_timestamp_ties(self, db_session):
        chat = _new_chat(db_session)
        sent = [
            repo.append_message(db_session, chat.id, "alice", f"m{i}", MessageType.TEXT)
            for i in range(3)
        ]
        stamp = sent[0].created_at
        db_session.execute(
            update(AnonymousChatMessage)
            .where(AnonymousChatMessage.chat_id == chat.id)
            .values(created_at=stamp)
        )
        db_session.expire_all()

        seen = []
        cursor, cursor_id = None, None
        for _ in range(4):
            page = repo.list_messages(
                db_session, chat, "alice", limit=1, before=cursor, before_id=cursor_id
            )
            if not page:
                break
            seen.append(page[0]["content"])
            cursor, cursor_id = page[0]["created_at"], page[0]["id"]
        assert seen == ["m2", "m1", "m0"]

        # created_at alone cannot step past a tie
        assert repo.list_messages(db_session, chat, "alice", limit=10, before=stamp) == []

    def test_sender_real_name_only_after_reveal(self, db_session):
        db_session.add(UserProfile(user_id="alice", display_name="Alice A."))
        chat = _new_chat(db_session)
        repo.append_message(db_session, chat.id, "alice", "hi", MessageType.TEXT)

        [before] = repo.list_messages(db_session, chat, "bob", limit=10)
        assert before["sender_real_name"] is None

        chat.state = ChatState.NORMAL.value
        db_session.flush()
        [after] = repo.list_messages(db_session, chat, "bob", limit=10)
        assert after["sender_real_name"] == "Alice A."


class TestReadState:
    def test_unread_counts_everything_without_bookmark(self, db_session):
        chat = _new_chat(db_session)
        for i in range(3):
            repo.append_message(db_session, chat.id, "alice", f"m{i}", MessageType.TEXT)
        assert repo.unread_count(db_session, chat.id, "bob") == 3

    def test_bookmark_resets_and_is_idempotent(self, db_session):
        chat = _new_chat(db_session)
        repo.append_message(db_session, chat.id, "alice", "old", MessageType.TEXT)
        first = repo.upsert_read_state(db_session, chat.id, "bob")
        second = repo.upsert_read_state(db_session, chat.id, "bob")
        assert first is second
        assert repo.unread_count(db_session, chat.id, "bob") == 0

        rows = db_session.scalar(
            select(func.count()).select_from(ChatReadState)
            .where(ChatReadState.chat_id == chat.id)
        )
        assert rows == 1

    def test_messages_after_bookmark_are_unread(self, db_session):
        chat = _new_chat(db_session)
        state = repo.upsert_read_state(db_session, chat.id, "bob")
        # Pin the bookmark in the past so ordering doesn't hinge on clock ticks.
        state.last_read_at = state.last_read_at - timedelta(seconds=1)
        db_session.flush()
        repo.append_message(db_session, chat.id, "alice", "a", MessageType.TEXT)
        repo.append_message(db_session, chat.id, "alice", "b", MessageType.TEXT)
        assert repo.unread_count(db_session, chat.id, "bob") == 2


class TestDelete:
    def test_delete_removes_messages_and_bookmarks(self, db_session):
        chat = _new_chat(db_session)
        repo.append_message(db_session, chat.id, "alice", "hi", MessageType.TEXT)
        repo.upsert_read_state(db_session, chat.id, "alice")

        assert repo.delete_chat(db_session, chat.id, "mallory") is False
        assert repo.delete_chat(db_session, chat.id, "bob") is True

        assert db_session.scalar(select(func.count(AnonymousChat.id))) == 0
        assert db_session.scalar(select(func.count(AnonymousChatMessage.id))) == 0
        assert db_session.scalar(select(func.count()).select_from(ChatReadState)) == 0


class TestChatViews:
    def test_view_is_caller_relative(self, db_session):
        chat = _new_chat(db_session)
        view = repo.build_chat_view(db_session, chat, "bob", threshold=15)
        assert view["partner_id"] == "alice"
        assert view["partner_anonymous_name"] == "RoteEule_1"
        assert view["my_anonymous_name"] == "BlauerFuchs_2"
        assert view["partner_display_name"] == "RoteEule_1"
        assert view["is_revealed"] is False
        assert view["reveal"]["messages_until_reveal"] == 15
        assert "pair_low" not in view

    def test_partner_profile_hidden_until_revealed(self, db_session):
        db_session.add(UserProfile(user_id="alice", display_name="Alice", avatar_url="a.png"))
        chat = _new_chat(db_session)
        hidden = repo.build_chat_view(db_session, chat, "bob", threshold=15)
        assert hidden["partner_real_name"] is None
        assert hidden["partner_avatar_url"] is None

        chat.state = ChatState.NORMAL.value
        shown = repo.build_chat_view(db_session, chat, "bob", threshold=15)
        assert shown["partner_real_name"] == "Alice"
        assert shown["partner_avatar_url"] == "a.png"
        assert shown["partner_display_name"] == "Alice"

    def test_list_filters_and_annotates(self, db_session):
        c1 = _new_chat(db_session, "alice", "bob")
        c2 = _new_chat(db_session, "carol", "alice")
        _new_chat(db_session, "bob", "carol")
        repo.append_message(db_session, c1.id, "bob", "latest in c1", MessageType.TEXT)
        repo.update_chat_state(
            db_session, c2.id, {"state": ChatState.REVEAL_PENDING,
                                "reveal_requested_by": "carol"},
            expected_state=ChatState.ANONYMOUS,
        )

        items = repo.list_chats_for_user(db_session, "alice", threshold=15, limit=10)
        assert {i["id"] for i in items} == {c1.id, c2.id}
        by_id = {i["id"]: i for i in items}
        assert by_id[c1.id]["last_message"] == "latest in c1"
        assert by_id[c1.id]["unread_count"] == 1
        assert by_id[c1.id]["last_read_at"] is None
        assert by_id[c2.id]["last_message"] is None
        assert by_id[c2.id]["partner_id"] == "carol"

        pending = repo.list_chats_for_user(
            db_session, "alice", threshold=15, limit=10, state=ChatState.REVEAL_PENDING
        )
        assert [i["id"] for i in pending] == [c2.id]
