"""Authentication module for the executor bearer token."""

from .token import AuthResult, CredentialsError, TokenVerifier, generate_token, parse_bearer, redact

__all__ = [
    "AuthResult",
    "CredentialsError",
    "TokenVerifier",
    "generate_token",
    "parse_bearer",
    "redact",
]
