"""
Session Module - Black Box Interface

Purpose: Provision the sandbox, drive the executor and report the results
Interface: Runner.builder(), Runner.provision/discover/run_all/teardown, ExecutorClient, Session
Hidden: Object manifests, token handling, HTTP details
"""

from .client import ExecutorClient, Session
from .runner import (
    CLEANER_APP,
    SERVER_APP,
    RunSummary,
    Runner,
    RunnerBuilder,
    compile_binaries,
    format_duration,
    project_name,
    scan_directories,
)

__all__ = [
    "CLEANER_APP",
    "SERVER_APP",
    "ExecutorClient",
    "RunSummary",
    "Runner",
    "RunnerBuilder",
    "Session",
    "compile_binaries",
    "format_duration",
    "project_name",
    "scan_directories",
]
