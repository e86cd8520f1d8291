"""
Waits for the objects of the sandbox to become usable.

All the waits share the same primitive, await_ready, which consumes a source
of watch events and returns the first object that satisfies a predicate.
Sources that don't have an event stream, like the HTTP server, are turned
into one with a Poller.
"""

import logging
import queue
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Iterator, Optional

import httpx

from kubesandbox.errors import ReadinessTimeoutError, WatchError
from kubesandbox.modules.cluster import ADDED, DELETED, ERROR, MODIFIED, WatchEvent

logger = logging.getLogger(__name__)

# Status code returned by the OpenShift router when the backend isn't ready:
ROUTER_NOT_READY = 503

# Marks the end of an event source:
_END = object()


@dataclass
class ReadinessTarget:
    """What to wait for and for how long. A timeout of None means no deadline."""

    kind: str
    name: str
    predicate: Callable[[Any], bool]
    timeout: Optional[float] = 60


def await_ready(target: ReadinessTarget, events: Iterable[WatchEvent]) -> Any:
    """
    Observe the events till one of them satisfies the predicate of the target.

    The source is consumed in a background thread so that the deadline is
    respected even when the source blocks. If the source has a stop method it
    is called before returning.

    Returns:
        The first object that satisfies the predicate

    Raises:
        ReadinessTimeoutError: If the deadline elapses or the source ends first
        WatchError: If the object is deleted or the source reports an error
    """
    channel: "queue.Queue[Any]" = queue.Queue()
    # The next event is pulled only after the previous one has been handled, so
    # sources like the Poller never probe ahead of the consumer:
    consumed = threading.Semaphore(0)
    finished = threading.Event()

    def read() -> None:
        try:
            for event in events:
                channel.put(event)
                consumed.acquire()
                if finished.is_set():
                    return
        except Exception as e:
            channel.put(WatchEvent(type=ERROR, object={"message": str(e)}))
        finally:
            channel.put(_END)

    reader = threading.Thread(
        target=read, name=f"wait-{target.kind}-{target.name}", daemon=True
    )
    logger.debug(f"Waiting for {target.kind} '{target.name}' to be ready")
    reader.start()
    deadline = None if target.timeout is None else time.monotonic() + target.timeout
    try:
        while True:
            remaining = None
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    raise _timeout(target)
            try:
                event = channel.get(timeout=remaining)
            except queue.Empty:
                raise _timeout(target) from None
            if event is _END:
                raise _timeout(target)

            logger.debug(f"Received '{event.type}' event for {target.kind} '{target.name}'")
            if event.type in (ADDED, MODIFIED):
                if target.predicate(event.object):
                    logger.debug(f"{target.kind.capitalize()} '{target.name}' is ready now")
                    return event.object
            elif event.type == DELETED:
                raise WatchError(
                    f"{target.kind} '{target.name}' was deleted while waiting for it to be ready"
                )
            elif event.type == ERROR:
                message = event.object.get("message") if isinstance(event.object, dict) else event.object
                raise WatchError(
                    f"unexpected error while waiting for {target.kind} '{target.name}' "
                    f"to be ready: {message}"
                )
            else:
                logger.error(
                    f"Unknown type of event '{event.type}' while waiting for {target.kind} "
                    f"'{target.name}' to be ready, will ignore it"
                )
            consumed.release()
    finally:
        finished.set()
        consumed.release()
        stop = getattr(events, "stop", None)
        if callable(stop):
            stop()


def _timeout(target: ReadinessTarget) -> ReadinessTimeoutError:
    return ReadinessTimeoutError(
        f"{target.kind} '{target.name}' isn't ready after {target.timeout} seconds"
    )


class Poller:
    """Event source that calls a probe at fixed intervals."""

    def __init__(self, probe: Callable[[], Any], attempts: int = 60, interval: float = 1.0):
        self.probe = probe
        self.attempts = attempts
        self.interval = interval
        self._stopped = threading.Event()

    def __iter__(self) -> Iterator[WatchEvent]:
        for attempt in range(self.attempts):
            if self._stopped.is_set():
                return
            yield WatchEvent(type=MODIFIED, object=self.probe())
            if attempt + 1 < self.attempts and self._stopped.wait(self.interval):
                return

    def stop(self) -> None:
        self._stopped.set()


def poll(probe: Callable[[], Any], attempts: int = 60, interval: float = 1.0) -> Poller:
    return Poller(probe, attempts=attempts, interval=interval)


# Predicates


def is_pod_ready(pod: Any) -> bool:
    """Check if the pod has the Ready condition set to true."""
    if not isinstance(pod, dict):
        return False
    conditions = pod.get("status", {}).get("conditions") or []
    return any(c.get("type") == "Ready" and c.get("status") == "True" for c in conditions)


def is_ingress_admitted(ingress: dict) -> bool:
    conditions = ingress.get("conditions") or []
    return any(c.get("type") == "Admitted" and c.get("status") == "True" for c in conditions)


def is_route_admitted(route: Any) -> bool:
    """
    Check if the route is admitted. That means that it has been seen by at
    least one router and that all the ingresses are admitted.
    """
    if not isinstance(route, dict):
        return False
    ingresses = route.get("status", {}).get("ingress") or []
    return bool(ingresses) and all(is_ingress_admitted(i) for i in ingresses)


def is_server_responding(status_code: Optional[int]) -> bool:
    """
    Anything other than a 503 means that the response comes from the actual
    server and not from the router.
    """
    return status_code is not None and status_code != ROUTER_NOT_READY


# Waits used by the runner


def wait_for_pod(control_plane, project: str, name: str, timeout: float = 60) -> dict:
    target = ReadinessTarget(kind="pod", name=name, predicate=is_pod_ready, timeout=timeout)
    return await_ready(target, control_plane.watch("pod", name, namespace=project, timeout=timeout))


def wait_for_route(control_plane, project: str, name: str, timeout: float = 60) -> dict:
    target = ReadinessTarget(kind="route", name=name, predicate=is_route_admitted, timeout=timeout)
    return await_ready(target, control_plane.watch("route", name, namespace=project, timeout=timeout))


def probe_server(client: httpx.Client, address: str) -> Optional[int]:
    """Return the status code of a GET to the address, None if there is no answer."""
    logger.debug(f"Checking if server '{address}' is responding")
    try:
        response = client.get(address)
    except httpx.TransportError as e:
        logger.debug(f"Server '{address}' isn't responding: {e}")
        return None
    logger.debug(f"Server '{address}' responded with status code {response.status_code}")
    return response.status_code


def wait_for_server(
    client: httpx.Client,
    address: str,
    attempts: int = 60,
    interval: float = 1.0,
) -> None:
    """Wait till the server behind the route answers, bounded by the number of attempts."""
    target = ReadinessTarget(
        kind="server", name=address, predicate=is_server_responding, timeout=None
    )
    try:
        await_ready(target, poll(lambda: probe_server(client, address), attempts, interval))
    except ReadinessTimeoutError:
        raise ReadinessTimeoutError(
            f"server '{address}' isn't responding after {attempts} attempts"
        ) from None
