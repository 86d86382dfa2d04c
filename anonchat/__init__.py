"""
anonchat — Anonymous Chat Reveal Protocol
==========================================
Two people talk behind generated pseudonyms and, once the conversation has
enough substance, may consensually reveal their real identities to each
other.  Everything is pull-based REST over a relational store.

Package layout::

    anonchat/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Thresholds, message phrases, paging limits
    ├── errors.py          # Error taxonomy (code + HTTP status)
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # ORM models (chats, messages, read states)
    ├── engine/
    │   ├── names.py       # Anonymous display-name generator
    │   └── reveal.py      # Pure reveal state machine
    ├── services/
    │   ├── chat_repository.py  # Persistence + caller-relative views
    │   ├── message_ledger.py   # Append-only message log
    │   ├── read_state.py       # Last-read bookmarks, unread counts
    │   └── chat_service.py     # Authorized async facade
    └── api/
        ├── main.py        # FastAPI app + error envelope
        ├── deps.py        # Bearer JWT → caller id, DI providers
        └── routes/        # /anonymous REST endpoints
"""

__version__ = "0.1.0"
