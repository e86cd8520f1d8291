"""Configuration provider following Black Box Design principles."""
import os
from dataclasses import dataclass
from typing import Protocol


@dataclass
class SandboxConfig:
    """Details of the objects deployed inside the sandbox project."""
    image: str
    command: str
    server_port: int
    server_work: str
    cleanup_delay: float
    kubectl: str


@dataclass
class ReadinessConfig:
    """Bounds of the readiness waits."""
    watch_timeout: float
    probe_attempts: int
    probe_interval: float


class ConfigProvider(Protocol):
    """Protocol for configuration providers."""

    def get_sandbox_config(self) -> SandboxConfig:
        """Get sandbox configuration."""
        ...

    def get_readiness_config(self) -> ReadinessConfig:
        """Get readiness configuration."""
        ...


class EnvConfigProvider:
    """Environment-based configuration provider."""

    def get_sandbox_config(self) -> SandboxConfig:
        """Get sandbox configuration from environment variables."""
        return SandboxConfig(
            image=os.getenv("SANDBOX_IMAGE", "quay.io/kubesandbox/kubesandbox:latest"),
            command=os.getenv("SANDBOX_COMMAND", "/usr/local/bin/kubesandbox"),
            server_port=int(os.getenv("SANDBOX_SERVER_PORT", "8000")),
            server_work=os.getenv("SANDBOX_SERVER_WORK", "/var/cache/sandbox"),
            cleanup_delay=float(os.getenv("SANDBOX_CLEANUP_DELAY", "3600")),
            kubectl=os.getenv("SANDBOX_KUBECTL", "kubectl"),
        )

    def get_readiness_config(self) -> ReadinessConfig:
        """Get readiness configuration from environment variables."""
        return ReadinessConfig(
            watch_timeout=float(os.getenv("SANDBOX_WATCH_TIMEOUT", "60")),
            probe_attempts=int(os.getenv("SANDBOX_PROBE_ATTEMPTS", "60")),
            probe_interval=float(os.getenv("SANDBOX_PROBE_INTERVAL", "1")),
        )
