"""
Config Module - Black Box Interface

Purpose: Defaults for the objects deployed in the sandbox and the readiness bounds
Interface: get_config_provider(), ConfigProvider, EnvConfigProvider
Hidden: environment parsing
"""

from .provider import ConfigProvider, EnvConfigProvider, ReadinessConfig, SandboxConfig

# Singleton instance
_instance = None


def get_config_provider() -> ConfigProvider:
    """Get the configuration provider singleton."""
    global _instance
    if _instance is None:
        _instance = EnvConfigProvider()
    return _instance


__all__ = [
    "ConfigProvider",
    "EnvConfigProvider",
    "ReadinessConfig",
    "SandboxConfig",
    "get_config_provider",
]
