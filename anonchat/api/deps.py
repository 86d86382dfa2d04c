"""
anonchat.api.deps — FastAPI dependency injection
=================================================

The composition root: one engine, one config and one
:class:`~anonchat.services.chat_service.AnonymousChatService` per process,
built lazily.  Tests swap them with ``app.dependency_overrides``.

Callers authenticate with ``Authorization: Bearer <JWT>``; the ``sub``
claim is the user id.  Token issuance happens elsewhere.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Annotated

import jwt
from fastapi import Depends, Header
from jwt.exceptions import InvalidTokenError
from sqlalchemy import Engine

from anonchat.config import ChatConfig, load_config
from anonchat.database.engine import create_db_engine
from anonchat.errors import UnauthorizedError
from anonchat.services.chat_service import AnonymousChatService

_WEAK_SECRETS = frozenset({
    "anonchat-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError at import time if the secret is missing, blank,
    too short (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


@lru_cache(maxsize=1)
def get_engine() -> Engine:
    return create_db_engine()


@lru_cache(maxsize=1)
def get_config() -> ChatConfig:
    return load_config()


@lru_cache(maxsize=1)
def get_chat_service() -> AnonymousChatService:
    return AnonymousChatService(get_engine(), get_config())


def get_current_user_id(
    authorization: Annotated[str | None, Header()] = None,
) -> str:
    """Validate the bearer JWT and return its ``sub`` claim."""
    if not authorization or not authorization.startswith("Bearer "):
        raise UnauthorizedError("Missing token")
    token = authorization.split(" ", 1)[1]
    try:
        payload = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
    except InvalidTokenError:
        raise UnauthorizedError("Invalid token")
    sub = payload.get("sub")
    if sub is None or str(sub).strip() == "":
        raise UnauthorizedError("Token has no subject")
    return str(sub)


CurrentUser = Annotated[str, Depends(get_current_user_id)]
ChatService = Annotated[AnonymousChatService, Depends(get_chat_service)]
