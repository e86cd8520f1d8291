"""
Bearer token used by the runner to authenticate to the executor.

The token is generated by the runner when it provisions the sandbox and
handed to the executor through its startup configuration. It lives only as
long as both processes.
"""

import hmac
import uuid
from dataclasses import dataclass
from typing import Optional


class CredentialsError(ValueError):
    """The authorization header is missing or malformed."""


@dataclass
class AuthResult:
    """Result of checking the credentials of a request."""
    ok: bool
    status_code: int = 200
    error: Optional[str] = None
    token: Optional[str] = None


def generate_token() -> str:
    """Generate a fresh random token."""
    return str(uuid.uuid4())


def parse_bearer(authorization: Optional[str]) -> str:
    """
    Extract the token from the value of an Authorization header.

    Raises:
        CredentialsError: If the header is missing, doesn't have exactly two
            parts or its type isn't bearer
    """
    if not authorization:
        raise CredentialsError("Authorization header is mandatory")
    chunks = authorization.split(" ")
    if len(chunks) != 2:
        raise CredentialsError(
            f"Expected exactly 2 parts in the authorization header but found {len(chunks)}"
        )
    typ, token = chunks
    if typ.lower() != "bearer":
        raise CredentialsError(f"Expected authorization type 'bearer' but found '{typ}'")
    return token


class TokenVerifier:
    """Checks that requests carry exactly the configured token."""

    def __init__(self, token: str):
        if not token:
            raise ValueError("token is mandatory")
        self._token = token

    def verify(self, authorization: Optional[str]) -> AuthResult:
        try:
            token = parse_bearer(authorization)
        except CredentialsError as e:
            return AuthResult(ok=False, status_code=400, error=str(e))
        if not hmac.compare_digest(token.encode("utf-8"), self._token.encode("utf-8")):
            return AuthResult(ok=False, status_code=401, error="Wrong token", token=token)
        return AuthResult(ok=True, token=token)


def redact(token: Optional[str]) -> str:
    """Shorten a token so that it can be written to the log."""
    if not token:
        return ""
    return f"{token[:8]}..."
