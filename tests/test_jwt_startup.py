"""
tests/test_jwt_startup — JWT Secret Validation at Startup
===========================================================
The API must refuse to start when JWT_SECRET is missing, blank, too short,
or a known weak default.
"""

from __future__ import annotations

import os
from unittest.mock import patch

import pytest

from anonchat.api import deps


class TestJWTSecretValidation:
    """Prove that _load_jwt_secret() rejects bad secrets and accepts good ones."""

    def test_rejects_missing_secret(self):
        with patch.dict(os.environ, {}, clear=False):
            os.environ.pop("JWT_SECRET", None)
            with pytest.raises(RuntimeError, match="JWT_SECRET environment variable is not set"):
                deps._load_jwt_secret()

    def test_rejects_empty_secret(self):
        with patch.dict(os.environ, {"JWT_SECRET": ""}):
            with pytest.raises(RuntimeError, match="JWT_SECRET environment variable is not set"):
                deps._load_jwt_secret()

    def test_rejects_known_weak_default(self):
        with patch.dict(os.environ, {"JWT_SECRET": "anonchat-dev-secret-change-me"}):
            with pytest.raises(RuntimeError, match="known weak default"):
                deps._load_jwt_secret()

    def test_rejects_change_me_variant(self):
        with patch.dict(os.environ, {"JWT_SECRET": "change-me"}):
            with pytest.raises(RuntimeError, match="known weak default"):
                deps._load_jwt_secret()

    def test_rejects_short_secret(self):
        with patch.dict(os.environ, {"JWT_SECRET": "tooshort"}):
            with pytest.raises(RuntimeError, match="too short"):
                deps._load_jwt_secret()

    def test_accepts_strong_secret(self):
        good_secret = "a" * 64
        with patch.dict(os.environ, {"JWT_SECRET": good_secret}):
            assert deps._load_jwt_secret() == good_secret


class TestCurrentUser:
    def test_missing_header_is_unauthorized(self):
        from anonchat.errors import UnauthorizedError

        with pytest.raises(UnauthorizedError):
            deps.get_current_user_id(None)

    def test_non_bearer_scheme_is_unauthorized(self):
        from anonchat.errors import UnauthorizedError

        with pytest.raises(UnauthorizedError):
            deps.get_current_user_id("Basic abc")

    def test_numeric_sub_is_returned_as_string(self):
        import jwt

        token = jwt.encode({"sub": "1234"}, deps.JWT_SECRET, algorithm=deps.JWT_ALGORITHM)
        assert deps.get_current_user_id(f"Bearer {token}") == "1234"

    def test_token_signed_with_other_secret_is_rejected(self):
        import jwt

        from anonchat.errors import UnauthorizedError

        token = jwt.encode({"sub": "u1"}, "z" * 64, algorithm=deps.JWT_ALGORITHM)
        with pytest.raises(UnauthorizedError):
            deps.get_current_user_id(f"Bearer {token}")
