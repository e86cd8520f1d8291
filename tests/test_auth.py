"""
Tests for the bearer token helpers.
"""

import pytest

from kubesandbox.modules.auth import (
    CredentialsError,
    TokenVerifier,
    generate_token,
    parse_bearer,
    redact,
)


class TestParseBearer:
    """Tests for parsing the Authorization header."""

    def test_valid_header(self):
        assert parse_bearer("Bearer abc") == "abc"

    def test_type_is_case_insensitive(self):
        assert parse_bearer("bEaReR abc") == "abc"

    @pytest.mark.parametrize("value", [None, ""])
    def test_missing_header(self, value):
        with pytest.raises(CredentialsError, match="mandatory"):
            parse_bearer(value)

    @pytest.mark.parametrize("value,parts", [("Bearer", 1), ("Bearer a b", 3)])
    def test_wrong_number_of_parts(self, value, parts):
        with pytest.raises(CredentialsError, match=f"exactly 2 parts .* found {parts}"):
            parse_bearer(value)

    def test_wrong_type(self):
        with pytest.raises(CredentialsError, match="'Basic'"):
            parse_bearer("Basic dXNlcjpwYXNz")


class TestTokenVerifier:
    """Tests for checking the token of a request."""

    def test_correct_token(self):
        result = TokenVerifier("secret").verify("Bearer secret")

        assert result.ok
        assert result.status_code == 200

    def test_wrong_token(self):
        """Test that a well formed header with another token is a 401."""
        result = TokenVerifier("secret").verify("Bearer other")

        assert not result.ok
        assert result.status_code == 401
        assert result.error == "Wrong token"
        assert result.token == "other"

    def test_malformed_header(self):
        """Test that problems with the header itself are a 400."""
        result = TokenVerifier("secret").verify("secret")

        assert not result.ok
        assert result.status_code == 400

    def test_empty_token_not_allowed(self):
        with pytest.raises(ValueError):
            TokenVerifier("")


def test_generated_tokens_are_unique():
    tokens = {generate_token() for _ in range(20)}
    assert len(tokens) == 20
    assert all(tokens)


def test_redact_keeps_only_a_prefix():
    assert redact("0123456789abcdef") == "01234567..."
    assert redact(None) == ""
