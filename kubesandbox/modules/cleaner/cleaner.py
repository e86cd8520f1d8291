"""
Cleaner that deletes the sandbox project after waiting some time.

It runs as a pod inside the project itself, so the project disappears even
if the runner that created it crashes. When the runner deletes the project
first the pod receives a termination signal and the cleaner is stopped.
"""

import logging
import queue
import threading
from enum import Enum
from typing import Optional

from kubesandbox.errors import InvalidInputError, SandboxError
from kubesandbox.modules.cluster import KubectlControlPlane, current_namespace

logger = logging.getLogger(__name__)

# Grace period used when deleting the project:
GRACE_PERIOD = 1

# Message sent through the stop channel:
_STOP = "stop"


class CleanerState(str, Enum):
    """Lifecycle of the cleaner."""

    IDLE = "idle"
    ARMED = "armed"
    FIRED = "fired"
    STOPPED = "stopped"


class Cleaner:
    """
    One shot timer that deletes the project unless stopped first.

    Exactly one of two things ends the armed state: a stop() call, which
    cancels the deletion, or the expiration of the wait time, which deletes
    the project. Both are resolved by a single blocking get on the stop
    channel, with the wait time as timeout.

    destroy() releases the channel, cancelling the timer if it is still
    armed. Callers must not call stop() after destroy().
    """

    def __init__(self, wait: float, project: str, control_plane):
        self.wait = wait
        self.project = project
        self.control_plane = control_plane
        self.state = CleanerState.IDLE
        self._stop: Optional["queue.Queue[str]"] = queue.Queue(maxsize=1)
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @staticmethod
    def builder() -> "CleanerBuilder":
        return CleanerBuilder()

    def start(self) -> None:
        """Arm the timer."""
        with self._lock:
            if self.state != CleanerState.IDLE:
                raise SandboxError(f"cleaner can't be started in state '{self.state.value}'")
            if self._stop is None:
                raise SandboxError("cleaner has been destroyed")
            self.state = CleanerState.ARMED
            self._thread = threading.Thread(target=self._select, name="cleaner", daemon=True)
            self._thread.start()
        logger.info(f"Project '{self.project}' will be deleted in {self.wait} seconds")

    def _select(self) -> None:
        channel = self._stop
        try:
            channel.get(timeout=self.wait)
        except queue.Empty:
            with self._lock:
                self.state = CleanerState.FIRED
            self._delete()
            return
        with self._lock:
            self.state = CleanerState.STOPPED
        logger.info(f"Deletion of project '{self.project}' has been cancelled")

    def stop(self) -> None:
        """Cancel the deletion of the project, if it didn't happen already."""
        channel = self._stop
        if channel is None or self.state != CleanerState.ARMED:
            return
        try:
            channel.put_nowait(_STOP)
        except queue.Full:
            pass

    def destroy(self) -> None:
        """Release the resources used by the cleaner."""
        self.stop()
        if self._thread is not None:
            self._thread.join()
        self._stop = None

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the timer to be resolved. Returns True if it was."""
        if self._thread is None:
            return self.state != CleanerState.ARMED
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def _delete(self) -> None:
        logger.info(f"Deleting project '{self.project}'")
        try:
            self.control_plane.delete("project", self.project, grace_period=GRACE_PERIOD)
        except SandboxError as e:
            logger.error(f"Can't delete project '{self.project}': {e}")
            return
        logger.info(f"Project '{self.project}' has been deleted")


class CleanerBuilder:
    """Collects the settings of the cleaner."""

    def __init__(self):
        self._wait: float = 0
        self._project: Optional[str] = None
        self._control_plane = None

    def wait(self, value: float) -> "CleanerBuilder":
        """Seconds to wait before deleting the project."""
        self._wait = value
        return self

    def project(self, value: str) -> "CleanerBuilder":
        """Project to delete, by default the one where the cleaner is running."""
        self._project = value
        return self

    def control_plane(self, value) -> "CleanerBuilder":
        self._control_plane = value
        return self

    def build(self) -> Cleaner:
        if not self._wait or self._wait <= 0:
            raise InvalidInputError("wait time can't be zero")
        project = self._project or current_namespace()
        control_plane = self._control_plane or KubectlControlPlane()
        return Cleaner(self._wait, project, control_plane)
