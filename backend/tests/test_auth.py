"""
Unit tests for operator authentication.
Tests password comparison, token issuance and verification, and the
Authorization header dependency.
"""

import pytest
import os
import time
import jwt as pyjwt
from unittest.mock import patch

os.environ.setdefault("JWT_SECRET", "test-jwt-secret-for-unit-tests")

from mailrelay.auth import (
    TOKEN_TTL_SECONDS,
    constant_time_compare,
    create_access_token,
    decode_access_token,
    get_current_user,
)
from mailrelay.errors import AuthError, ConfigurationError

TEST_SECRET = "test-jwt-secret-for-unit-tests"
T0 = 1_700_000_000


@pytest.fixture(autouse=True)
def jwt_secret():
    with patch.dict(os.environ, {"JWT_SECRET": TEST_SECRET}):
        yield


class TestConstantTimeCompare:
    """Password comparison."""

    def test_equal_strings_match(self):
        assert constant_time_compare("hunter2", "hunter2") is True

    def test_length_mismatch_is_false(self):
        assert constant_time_compare("hunter", "hunter2") is False
        assert constant_time_compare("hunter22", "hunter2") is False

    @pytest.mark.parametrize("position", [0, 3, 6])
    def test_any_single_differing_byte_is_false(self, position):
        configured = "hunter2"
        candidate = configured[:position] + "X" + configured[position + 1:]
        assert constant_time_compare(candidate, configured) is False

    @pytest.mark.parametrize("candidate,configured", [("", "secret"), (None, "secret"), ("secret", ""), ("secret", None)])
    def test_empty_values_are_false(self, candidate, configured):
        assert constant_time_compare(candidate, configured) is False

    @pytest.mark.parametrize("candidate", [1234567, ["hunter2"], {"p": "hunter2"}, True])
    def test_non_string_candidate_is_false(self, candidate):
        assert constant_time_compare(candidate, "hunter2") is False

    def test_uses_digest_comparison_for_equal_lengths(self):
        with patch("mailrelay.auth.hmac.compare_digest", return_value=False) as mock_compare:
            assert constant_time_compare("abc", "abd") is False
        mock_compare.assert_called_once_with(b"abc", b"abd")

    def test_comparison_failure_returns_false(self):
        with patch("mailrelay.auth.hmac.compare_digest", side_effect=TypeError("boom")):
            assert constant_time_compare("abc", "abc") is False

    def test_non_ascii_passwords(self):
        assert constant_time_compare("pässwörd", "pässwörd") is True
        assert constant_time_compare("pässwörd", "passwörd") is False


class TestTokens:
    """Session token issuance and verification."""

    def test_token_carries_admin_claim_and_eight_hour_expiry(self):
        token = create_access_token(now=T0)

        payload = pyjwt.decode(token, TEST_SECRET, algorithms=["HS256"], options={"verify_exp": False})

        assert payload["user"] == "admin"
        assert payload["iat"] == T0
        assert payload["exp"] == T0 + TOKEN_TTL_SECONDS

    def test_token_valid_just_before_expiry(self):
        token = create_access_token(now=T0)

        claims = decode_access_token(token, now=T0 + 7 * 3600 + 59 * 60)

        assert claims["user"] == "admin"

    def test_token_rejected_just_after_expiry(self):
        token = create_access_token(now=T0)

        with pytest.raises(AuthError) as exc_info:
            decode_access_token(token, now=T0 + 8 * 3600 + 60)

        assert exc_info.value.status_code == 401
        assert "expired" in exc_info.value.message.lower()

    def test_wrong_secret_is_invalid(self):
        token = pyjwt.encode({"user": "admin", "exp": int(time.time()) + 3600}, "wrong-secret", algorithm="HS256")

        with pytest.raises(AuthError) as exc_info:
            decode_access_token(token)

        assert exc_info.value.message == "Invalid token."

    def test_garbage_token_is_invalid(self):
        with pytest.raises(AuthError):
            decode_access_token("not.a.real.jwt.at.all")

    def test_token_without_exp_is_invalid(self):
        token = pyjwt.encode({"user": "admin"}, TEST_SECRET, algorithm="HS256")

        with pytest.raises(AuthError):
            decode_access_token(token)

    def test_missing_secret_is_configuration_error(self):
        with patch.dict(os.environ, {"JWT_SECRET": ""}):
            with pytest.raises(ConfigurationError) as exc_info:
                create_access_token()

        assert exc_info.value.status_code == 500

    def test_missing_secret_on_verify_is_configuration_error(self):
        token = create_access_token()

        with patch.dict(os.environ, {"JWT_SECRET": ""}):
            with pytest.raises(ConfigurationError):
                decode_access_token(token)


class TestGetCurrentUser:
    """Authorization header handling."""

    @pytest.mark.asyncio
    async def test_valid_token_returns_claims(self):
        token = create_access_token()

        claims = await get_current_user(f"Bearer {token}")

        assert claims["user"] == "admin"

    @pytest.mark.asyncio
    async def test_missing_header_raises_401(self):
        with pytest.raises(AuthError) as exc_info:
            await get_current_user(None)

        assert exc_info.value.status_code == 401
        assert "Authentication required" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_missing_bearer_prefix_raises_401(self):
        token = create_access_token()

        with pytest.raises(AuthError):
            await get_current_user(token)

    @pytest.mark.asyncio
    async def test_empty_bearer_token_raises_401(self):
        with pytest.raises(AuthError):
            await get_current_user("Bearer ")

    @pytest.mark.asyncio
    async def test_expired_token_raises_401(self):
        token = create_access_token(now=time.time() - TOKEN_TTL_SECONDS - 10)

        with pytest.raises(AuthError) as exc_info:
            await get_current_user(f"Bearer {token}")

        assert "expired" in exc_info.value.message.lower()
