"""Tests for bearer tokens and the API key check."""

from datetime import timedelta

import pytest
from authlib.jose import jwt

from funcbase.api.security import (
    create_access_token,
    decode_token,
    get_optional_user_id,
    require_api_key,
)
from funcbase.exceptions import CustomHTTPException
from funcbase.settings import settings


class TestTokens:
    def test_round_trip(self):
        token = create_access_token("user-7")

        assert token.token_type == "bearer"
        assert decode_token(token.access_token).sub == "user-7"

    def test_expired_token(self):
        token = create_access_token("user-7", expires_delta=timedelta(minutes=-1))

        with pytest.raises(CustomHTTPException) as exc_info:
            decode_token(token.access_token)
        assert exc_info.value.status_code == 401

    def test_garbage_token(self):
        with pytest.raises(CustomHTTPException):
            decode_token("not.a.token")

    def test_wrong_secret(self):
        forged = jwt.encode({"alg": "HS256"}, {"sub": "admin"}, "another-secret").decode()

        with pytest.raises(CustomHTTPException):
            decode_token(forged)

    def test_anonymous_caller(self):
        assert get_optional_user_id(None) is None


class TestApiKey:
    def test_no_key_configured(self, monkeypatch):
        monkeypatch.setattr(settings, "api_key", None)
        assert require_api_key(None) is None

    def test_matching_key(self, monkeypatch):
        monkeypatch.setattr(settings, "api_key", "secret")
        assert require_api_key("secret") is None

    @pytest.mark.parametrize(("header", "status_code"), [(None, 401), ("wrong", 403)])
    def test_rejected(self, monkeypatch, header, status_code):
        monkeypatch.setattr(settings, "api_key", "secret")

        with pytest.raises(CustomHTTPException) as exc_info:
            require_api_key(header)
        assert exc_info.value.status_code == status_code
