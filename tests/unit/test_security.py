"""Unit tests for bearer token signing."""

import pytest

from agriadvisor.core.security import InvalidTokenError, TokenService


@pytest.fixture
def service():
    return TokenService("unit-secret", ttl_hours=1)


def test_issued_token_verifies_to_user(service):
    token = service.issue_token("user-42", now=1_000_000)
    assert service.verify_token(token, now=1_000_100) == "user-42"


def test_expired_token_is_rejected(service):
    token = service.issue_token("user-42", now=1_000_000)
    with pytest.raises(InvalidTokenError, match="expired"):
        service.verify_token(token, now=1_000_000 + 3601)


def test_token_signed_with_other_secret_is_rejected(service):
    forged = TokenService("other-secret").issue_token("user-42")
    with pytest.raises(InvalidTokenError, match="signature"):
        service.verify_token(forged)


def test_tampered_user_id_is_rejected(service):
    user_id, expires, signature = service.issue_token("user-42").split(".")
    with pytest.raises(InvalidTokenError):
        service.verify_token(f"user-43.{expires}.{signature}")


@pytest.mark.parametrize("token", ["", "abc", "a.b", "a..c"])
def test_malformed_tokens(service, token):
    with pytest.raises(InvalidTokenError, match="malformed"):
        service.verify_token(token)


def test_empty_secret_is_refused():
    with pytest.raises(ValueError):
        TokenService("")
