"""
API Module - Black Box Interface

Purpose: Wire protocol between the session client and the remote executor
Interface: ExecutionRequest, ExecutionResult, ErrorResponse, TESTS_PATH
Hidden: base64 encoding of byte fields, JSON field aliases
"""

from .models import (
    PREFIX,
    TESTS_PATH,
    VERSION,
    ErrorResponse,
    ExecutionRequest,
    ExecutionResult,
)

__all__ = [
    "PREFIX",
    "VERSION",
    "TESTS_PATH",
    "ExecutionRequest",
    "ExecutionResult",
    "ErrorResponse",
]
