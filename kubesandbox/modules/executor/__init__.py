"""
Executor Module - Black Box Interface

Purpose: Server running inside the sandbox that executes test binaries
Interface: HTTP POST /api/v1/tests protected by a bearer token
Hidden: Working directories, subprocess handling, output capture
"""

from .handler import TestExecutor
from .server import DEFAULT_LISTEN, ExecutorServer, ExecutorServerBuilder, create_app, parse_listen

__all__ = [
    "DEFAULT_LISTEN",
    "ExecutorServer",
    "ExecutorServerBuilder",
    "TestExecutor",
    "create_app",
    "parse_listen",
]
