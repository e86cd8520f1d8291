"""
Readiness Module - Black Box Interface

Purpose: Wait till the pod, the route and the server of the sandbox are usable
Interface: await_ready(), ReadinessTarget, poll(), wait_for_pod(), wait_for_route(), wait_for_server()
Hidden: background reader thread, deadline bookkeeping, readiness predicates
"""

from .waiter import (
    Poller,
    ReadinessTarget,
    await_ready,
    is_pod_ready,
    is_route_admitted,
    is_server_responding,
    poll,
    probe_server,
    wait_for_pod,
    wait_for_route,
    wait_for_server,
)

__all__ = [
    "Poller",
    "ReadinessTarget",
    "await_ready",
    "is_pod_ready",
    "is_route_admitted",
    "is_server_responding",
    "poll",
    "probe_server",
    "wait_for_pod",
    "wait_for_route",
    "wait_for_server",
]
