"""
anonchat.config — YAML Configuration Loader
============================================

Secrets and connection strings come from the environment (``.env``).
Protocol tuning lives in ``config.yaml``: the reveal threshold, whether
server-authored messages count toward it, and paging limits.

Usage::

    from anonchat.config import load_config

    cfg = load_config()            # $ANONCHAT_CONFIG or ./config.yaml
    print(cfg.reveal_threshold)    # 15
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

import yaml

from anonchat.constants import (
    CHAT_LIST_DEFAULT_LIMIT,
    CHAT_LIST_MAX_LIMIT,
    MESSAGE_DEFAULT_LIMIT,
    MESSAGE_MAX_LIMIT,
    REVEAL_MESSAGE_THRESHOLD,
)

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yaml"


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ChatConfig:
    """Immutable protocol settings loaded from ``config.yaml``.

    ``count_system_messages`` decides whether reveal request/accept/decline
    ledger entries bump ``message_count``.  The chat-started marker written
    at creation is never counted.
    """

    reveal_threshold: int = REVEAL_MESSAGE_THRESHOLD
    count_system_messages: bool = True

    # Paging
    chat_list_default_limit: int = CHAT_LIST_DEFAULT_LIMIT
    chat_list_max_limit: int = CHAT_LIST_MAX_LIMIT
    message_default_limit: int = MESSAGE_DEFAULT_LIMIT
    message_max_limit: int = MESSAGE_MAX_LIMIT


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path | None = None) -> ChatConfig:
    """Read *path* and return a :class:`ChatConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML file.  When omitted, ``$ANONCHAT_CONFIG``
        is used, falling back to ``config.yaml`` in the working directory.

    Raises
    ------
    FileNotFoundError
        If *path* was given explicitly and doesn't exist.
    ValueError
        If a value is out of range (non-positive threshold or limits).
    """
    explicit = path is not None
    config_path = Path(path or os.getenv("ANONCHAT_CONFIG", DEFAULT_CONFIG_PATH))

    if not config_path.exists():
        if explicit:
            raise FileNotFoundError(
                f"Configuration file not found: {config_path.resolve()}\n"
                "Hint: copy config.yaml.example → config.yaml and edit it."
            )
        logger.info("No %s found — using built-in chat defaults.", config_path)
        return ChatConfig()

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    defaults = ChatConfig()
    cfg = ChatConfig(
        reveal_threshold=int(raw.get("reveal_threshold", defaults.reveal_threshold)),
        count_system_messages=bool(
            raw.get("count_system_messages", defaults.count_system_messages)
        ),
        chat_list_default_limit=int(
            raw.get("chat_list_default_limit", defaults.chat_list_default_limit)
        ),
        chat_list_max_limit=int(raw.get("chat_list_max_limit", defaults.chat_list_max_limit)),
        message_default_limit=int(
            raw.get("message_default_limit", defaults.message_default_limit)
        ),
        message_max_limit=int(raw.get("message_max_limit", defaults.message_max_limit)),
    )
    _validate(cfg)
    return cfg


def _validate(cfg: ChatConfig) -> None:
    if cfg.reveal_threshold < 1:
        raise ValueError("reveal_threshold must be at least 1")
    for name in (
        "chat_list_default_limit",
        "chat_list_max_limit",
        "message_default_limit",
        "message_max_limit",
    ):
        if getattr(cfg, name) < 1:
            raise ValueError(f"{name} must be at least 1")
    if cfg.chat_list_default_limit > cfg.chat_list_max_limit:
        raise ValueError("chat_list_default_limit exceeds chat_list_max_limit")
    if cfg.message_default_limit > cfg.message_max_limit:
        raise ValueError("message_default_limit exceeds message_max_limit")
