# -*- coding: utf-8 -*-
"""
backend/tests/modules/auth/test_jwt_security.py

Tests de emisión/validación de JWT y de la dependencia get_current_user_id.

Autor: DoxAI
Fecha: 2025-12-29
"""

from datetime import timedelta

import pytest
from fastapi import HTTPException
from jose import jwt

from app.modules.auth.dependencies import get_current_user_id, validate_jwt_token
from app.modules.auth.security import (
    TokenDecodeError,
    create_access_token,
    decode_access_token,
)
from app.shared.config import settings


class TestAccessTokens:
    """create_access_token / decode_access_token"""

    def test_roundtrip_keeps_subject_and_extra_claims(self):
        token = create_access_token("user-42", role="customer")

        payload = decode_access_token(token)

        assert payload["sub"] == "user-42"
        assert payload["role"] == "customer"
        assert payload["exp"] > payload["iat"]

    def test_integer_subject_is_stringified(self):
        assert decode_access_token(create_access_token(7))["sub"] == "7"

    def test_expired_token(self):
        token = create_access_token("user-1", expires_delta=timedelta(seconds=-5))

        with pytest.raises(TokenDecodeError):
            decode_access_token(token)

    def test_wrong_signature(self):
        token = jwt.encode({"sub": "user-1"}, "another-secret", algorithm="HS256")

        with pytest.raises(TokenDecodeError):
            decode_access_token(token)

    def test_missing_subject(self):
        token = jwt.encode(
            {"role": "customer"},
            settings.jwt_secret_key.get_secret_value(),
            algorithm=settings.jwt_algorithm,
        )

        with pytest.raises(TokenDecodeError):
            decode_access_token(token)


class TestDependencies:
    """validate_jwt_token / get_current_user_id"""

    def test_validate_returns_user_id(self):
        assert validate_jwt_token(create_access_token("user-1")) == "user-1"

    def test_invalid_token_is_401(self):
        with pytest.raises(HTTPException) as exc:
            validate_jwt_token("not-a-jwt")

        assert exc.value.status_code == 401
        assert exc.value.headers == {"WWW-Authenticate": "Bearer"}
        assert exc.value.detail["error"] == "invalid_token"

    @pytest.mark.asyncio
    async def test_get_current_user_id(self):
        assert await get_current_user_id(create_access_token("user-9")) == "user-9"
