"""
Cluster Module - Black Box Interface

Purpose: Create, get, delete and watch the objects of the sandbox project
Interface: KubectlControlPlane, WatchEvent, current_namespace(), resources builders
Hidden: kubectl invocation, JSON stream decoding

Can be replaced with a direct API client as long as it offers the same four operations.
"""

from . import resources
from .kubectl import (
    ADDED,
    DELETED,
    ERROR,
    MODIFIED,
    KubectlControlPlane,
    WatchEvent,
    WatchStream,
    current_namespace,
    decode_documents,
)

__all__ = [
    "ADDED",
    "MODIFIED",
    "DELETED",
    "ERROR",
    "KubectlControlPlane",
    "WatchEvent",
    "WatchStream",
    "current_namespace",
    "decode_documents",
    "resources",
]
