"""
Shared pytest fixtures for kubesandbox tests.

This module provides common fixtures including:
- KubectlMocker: Mock kubectl subprocess calls with canned responses
- FakeControlPlane: In-memory cluster with scripted watch events
- Helpers to write shell scripts that stand in for test binaries
"""

import json
import os
import subprocess
import sys
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Pattern, Tuple, Union
from unittest.mock import MagicMock, patch

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from kubesandbox.errors import ResourceExistsError, ResourceNotFoundError
from kubesandbox.modules.cluster import ADDED, MODIFIED, WatchEvent


# =============================================================================
# Kubectl Mocking Infrastructure
# =============================================================================

@dataclass
class KubectlResponse:
    """Represents a mocked kubectl command response."""
    stdout: str = ""
    stderr: str = ""
    returncode: int = 0

    def to_completed_process(self) -> MagicMock:
        """Convert to a subprocess.CompletedProcess-like mock."""
        result = MagicMock()
        result.stdout = self.stdout
        result.stderr = self.stderr
        result.returncode = self.returncode
        return result


@dataclass
class KubectlCall:
    """Record of a kubectl call made during testing."""
    command: List[str]
    full_command_str: str
    stdin: Optional[str] = None
    env: Optional[Dict[str, str]] = None
    matched_pattern: Optional[str] = None


class KubectlMocker:
    """
    Mock kubectl subprocess calls with pattern-matched responses.

    Usage:
        def test_delete(kubectl_mocker):
            kubectl_mocker.register("delete project", KubectlResponse())
            KubectlControlPlane().delete("project", "sandbox-x")
            assert kubectl_mocker.was_called_with("delete project sandbox-x")
    """

    def __init__(self):
        self._responses: List[Tuple[Union[str, Pattern], KubectlResponse]] = []
        self._call_history: List[KubectlCall] = []
        self._default_response = KubectlResponse(
            stderr="Error: mock not configured for this command",
            returncode=1
        )

    def register(self, pattern: Union[str, Pattern], response: KubectlResponse) -> "KubectlMocker":
        """Register a response for commands matching the pattern. First match wins."""
        self._responses.append((pattern, response))
        return self

    def mock_run(self, cmd: List[str], input: Optional[str] = None, **kwargs) -> MagicMock:
        """Side effect used to patch subprocess.run."""
        cmd_str = " ".join(cmd)
        if os.path.basename(cmd[0]) != "kubectl":
            return _real_run(cmd, input=input, **kwargs)

        kubectl_args = " ".join(cmd[1:])
        matched_pattern = None
        response = self._default_response
        for pattern, resp in self._responses:
            if isinstance(pattern, str):
                if pattern in kubectl_args:
                    matched_pattern = pattern
                    response = resp
                    break
            elif pattern.search(kubectl_args):
                matched_pattern = pattern.pattern
                response = resp
                break

        self._call_history.append(KubectlCall(
            command=cmd,
            full_command_str=cmd_str,
            stdin=input,
            env=kwargs.get("env"),
            matched_pattern=matched_pattern,
        ))
        return response.to_completed_process()

    @property
    def calls(self) -> List[KubectlCall]:
        return self._call_history

    @property
    def call_count(self) -> int:
        return len(self._call_history)

    def was_called_with(self, pattern: str) -> bool:
        """Check if any call contained the given pattern."""
        return any(pattern in call.full_command_str for call in self._call_history)


_real_run = subprocess.run


@pytest.fixture
def kubectl_mocker():
    """Fixture that provides a KubectlMocker with subprocess.run patched."""
    mocker = KubectlMocker()
    with patch("subprocess.run", side_effect=mocker.mock_run):
        yield mocker


# =============================================================================
# In-memory control plane
# =============================================================================

class FakeControlPlane:
    """
    Control plane that keeps objects in a dictionary.

    Watches replay the events registered with add_events() for the kind,
    which lets tests decide when pods become ready and routes get admitted.
    """

    def __init__(self):
        self.objects: Dict[Tuple[str, Optional[str], str], Dict[str, Any]] = {}
        self.created: List[Tuple[str, str, Optional[str]]] = []
        self.deleted: List[Tuple[str, str, Optional[str], Optional[int]]] = []
        self.events: Dict[str, List[WatchEvent]] = {}
        self.delete_error: Optional[Exception] = None

    def create(self, manifest: Dict[str, Any], namespace: Optional[str] = None) -> Dict[str, Any]:
        kind = manifest["kind"].lower()
        name = manifest["metadata"]["name"]
        key = (kind, namespace, name)
        if key in self.objects:
            raise ResourceExistsError(kind, name, "already exists")
        self.objects[key] = manifest
        self.created.append((kind, name, namespace))
        return manifest

    def ensure(self, manifest: Dict[str, Any], namespace: Optional[str] = None) -> None:
        try:
            self.create(manifest, namespace=namespace)
        except ResourceExistsError:
            pass

    def get(self, kind: str, name: str, namespace: Optional[str] = None) -> Dict[str, Any]:
        try:
            return self.objects[(kind.lower(), namespace, name)]
        except KeyError:
            raise ResourceNotFoundError(kind, name, "not found") from None

    def delete(
        self,
        kind: str,
        name: str,
        namespace: Optional[str] = None,
        grace_period: Optional[int] = None,
    ) -> None:
        self.deleted.append((kind, name, namespace, grace_period))
        if self.delete_error is not None:
            raise self.delete_error

    def watch(self, kind: str, name: str, namespace: Optional[str] = None, timeout: float = 60):
        return iter(list(self.events.get(kind, [])))

    def add_events(self, kind: str, *events: WatchEvent) -> "FakeControlPlane":
        self.events.setdefault(kind, []).extend(events)
        return self

    def created_kinds(self, namespace: Optional[str] = None) -> List[str]:
        return [kind for kind, _, ns in self.created if ns == namespace]

    def find(self, kind: str, name: str) -> Optional[Dict[str, Any]]:
        for (k, _, n), manifest in self.objects.items():
            if k == kind and n == name:
                return manifest
        return None


def ready_pod(name: str = "server") -> Dict[str, Any]:
    return {
        "metadata": {"name": name},
        "status": {"conditions": [{"type": "Ready", "status": "True"}]},
    }


def pending_pod(name: str = "server") -> Dict[str, Any]:
    return {
        "metadata": {"name": name},
        "status": {"phase": "Pending", "conditions": [{"type": "Ready", "status": "False"}]},
    }


def admitted_route(host: str = "server-sandbox.apps.example.com", name: str = "server") -> Dict[str, Any]:
    return {
        "metadata": {"name": name},
        "spec": {"host": host},
        "status": {"ingress": [{"conditions": [{"type": "Admitted", "status": "True"}]}]},
    }


@pytest.fixture
def control_plane():
    """FakeControlPlane where the server pod is ready and the route is admitted."""
    fake = FakeControlPlane()
    fake.add_events("pod", WatchEvent(ADDED, pending_pod()), WatchEvent(MODIFIED, ready_pod()))
    fake.add_events("route", WatchEvent(ADDED, admitted_route()))
    return fake


# =============================================================================
# Test binaries
# =============================================================================

def shell_binary(body: str) -> bytes:
    """Content of a shell script that can be executed as a test binary."""
    return f"#!/bin/sh\n{body}\n".encode("utf-8")


@pytest.fixture
def work_dir(tmp_path):
    """Working directory of the executor."""
    path = tmp_path / "work"
    path.mkdir()
    return str(path)


@pytest.fixture
def binaries_dir(tmp_path):
    """Directory where the runner looks for compiled test binaries."""
    path = tmp_path / "binaries"
    path.mkdir()
    return path


@pytest.fixture
def fast_readiness(monkeypatch):
    """Make the readiness waits short."""
    monkeypatch.setenv("SANDBOX_WATCH_TIMEOUT", "2")
    monkeypatch.setenv("SANDBOX_PROBE_ATTEMPTS", "3")
    monkeypatch.setenv("SANDBOX_PROBE_INTERVAL", "0.01")


def json_lines(*documents: Any) -> str:
    return "".join(json.dumps(d, indent=2) + "\n" for d in documents)


# =============================================================================
# Test Markers Configuration
# =============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "kubectl_mock: Tests using mocked kubectl subprocess calls"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take a long time to run"
    )
