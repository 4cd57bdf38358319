"""
Security module for AgriAdvisor - signed bearer tokens
Token issuance is owned by the auth service; this module only signs and verifies
"""

import hashlib
import hmac
import time
from typing import Optional


class InvalidTokenError(Exception):
    """Raised when a bearer token is malformed, forged or expired"""


class TokenService:
    """HMAC-signed user tokens of the form ``<user_id>.<expires_at>.<signature>``"""

    def __init__(self, secret: str, ttl_hours: int = 24 * 30):
        if not secret:
            raise ValueError("Token secret must not be empty")
        self.secret = secret.encode('utf-8')
        self.ttl_seconds = ttl_hours * 3600

    def generate_signature(self, payload: str) -> str:
        return hmac.new(self.secret, payload.encode('utf-8'), hashlib.sha256).hexdigest()

    def issue_token(self, user_id: str, now: Optional[float] = None) -> str:
        expires_at = int((now if now is not None else time.time()) + self.ttl_seconds)
        payload = f"{user_id}.{expires_at}"
        return f"{payload}.{self.generate_signature(payload)}"

    def verify_token(self, token: str, now: Optional[float] = None) -> str:
        """Return the user id carried by a valid token"""
        parts = token.split('.')
        if len(parts) != 3 or not all(parts):
            raise InvalidTokenError("Token is malformed")

        user_id, expires_raw, signature = parts
        expected_signature = self.generate_signature(f"{user_id}.{expires_raw}")
        if not hmac.compare_digest(signature, expected_signature):
            raise InvalidTokenError("Token signature is invalid")

        try:
            expires_at = int(expires_raw)
        except ValueError:
            raise InvalidTokenError("Token is malformed")

        if expires_at < (now if now is not None else time.time()):
            raise InvalidTokenError("Token has expired")

        return user_id
