"""
Control plane client backed by the kubectl command line tool.

All the objects are exchanged as JSON: manifests are written to the standard
input of `kubectl create -f -` and results are read with `-o json`. Watches
use `--output-watch-events`, which prints one JSON document per event.
"""

import json
import logging
import os
import subprocess
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional

from kubesandbox.errors import ResourceError, ResourceExistsError, ResourceNotFoundError

logger = logging.getLogger(__name__)

# File where the cluster writes the namespace of the pod:
SERVICE_ACCOUNT_NAMESPACE = "/var/run/secrets/kubernetes.io/serviceaccount/namespace"

# Watch event types:
ADDED = "ADDED"
MODIFIED = "MODIFIED"
DELETED = "DELETED"
ERROR = "ERROR"

# Messages printed by kubectl when --request-timeout expires. Transport errors
# like "i/o timeout" aren't included:
_REQUEST_TIMEOUT_MESSAGES = (
    "Client.Timeout exceeded",
    "context deadline exceeded",
)


@dataclass
class WatchEvent:
    """One change notification for a watched object."""

    type: str
    object: Any = field(default_factory=dict)


def decode_documents(chunks: Iterable[str]) -> Iterator[Any]:
    """
    Decode a stream of concatenated JSON documents.

    Documents may span several chunks and several documents may arrive in
    the same chunk, which is what kubectl does when printing pretty JSON.
    """
    decoder = json.JSONDecoder()
    buffer = ""
    for chunk in chunks:
        buffer += chunk
        while True:
            buffer = buffer.lstrip()
            if not buffer:
                break
            try:
                document, end = decoder.raw_decode(buffer)
            except json.JSONDecodeError:
                # Incomplete document, wait for more data
                break
            yield document
            buffer = buffer[end:]
    if buffer.strip():
        logger.warning(f"Discarding {len(buffer)} bytes of incomplete watch output")


class WatchStream:
    """
    Iterable of watch events produced by a running kubectl process.

    Call stop() to terminate the process; iteration then ends.
    """

    def __init__(self, process: subprocess.Popen, kind: str, name: str):
        self._process = process
        self._kind = kind
        self._name = name
        self._stopped = threading.Event()

    def __iter__(self) -> Iterator[WatchEvent]:
        try:
            for document in decode_documents(self._process.stdout):
                if not isinstance(document, dict):
                    yield WatchEvent(type="UNKNOWN", object=document)
                    continue
                yield WatchEvent(
                    type=document.get("type", "UNKNOWN"),
                    object=document.get("object", {}),
                )
            code = self._process.wait()
            stderr = self._process.stderr.read() if self._process.stderr else ""
            if code != 0 and not self._stopped.is_set() and not is_timeout(stderr):
                yield WatchEvent(
                    type=ERROR,
                    object={"message": stderr.strip() or f"kubectl exited with code {code}"},
                )
        finally:
            self.stop()

    def stop(self) -> None:
        """Terminate the watch."""
        self._stopped.set()
        if self._process.poll() is None:
            logger.debug(f"Stopping watch of {self._kind} '{self._name}'")
            self._process.kill()
            self._process.wait()


def is_timeout(stderr: str) -> bool:
    """Check if kubectl stopped because the request timeout of the watch expired."""
    return any(message in stderr for message in _REQUEST_TIMEOUT_MESSAGES)


class KubectlControlPlane:
    """
    Create, get, delete and watch cluster objects using kubectl.

    Args:
        kubeconfig: Client configuration file, None for the kubectl default
        proxy: URL of the proxy used to reach the API server
        insecure: Skip verification of the API server certificate
        kubectl: Name or path of the kubectl binary
        timeout: Seconds allowed for each non watch command
    """

    def __init__(
        self,
        kubeconfig: Optional[str] = None,
        proxy: Optional[str] = None,
        insecure: bool = False,
        kubectl: str = "kubectl",
        timeout: float = 60,
    ):
        self.kubeconfig = kubeconfig
        self.proxy = proxy
        self.insecure = insecure
        self.kubectl = kubectl
        self.timeout = timeout

    def _command(self, args: List[str], namespace: Optional[str] = None) -> List[str]:
        cmd = [self.kubectl]
        if self.kubeconfig:
            cmd += ["--kubeconfig", self.kubeconfig]
        if self.insecure:
            cmd.append("--insecure-skip-tls-verify")
        if namespace:
            cmd += ["--namespace", namespace]
        return cmd + args

    def _env(self) -> Dict[str, str]:
        env = dict(os.environ)
        if self.proxy:
            env["HTTPS_PROXY"] = self.proxy
            env["HTTP_PROXY"] = self.proxy
        return env

    def _run(
        self,
        kind: str,
        name: str,
        args: List[str],
        namespace: Optional[str] = None,
        stdin: Optional[str] = None,
    ) -> subprocess.CompletedProcess:
        cmd = self._command(args, namespace)
        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            process = subprocess.run(
                cmd,
                input=stdin,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                env=self._env(),
            )
        except subprocess.TimeoutExpired as e:
            raise ResourceError(kind, name, f"kubectl didn't finish in {self.timeout} seconds") from e
        except OSError as e:
            raise ResourceError(kind, name, f"can't run kubectl: {e}") from e

        if process.returncode != 0:
            message = (process.stderr or "").strip() or f"kubectl exited with code {process.returncode}"
            if "(AlreadyExists)" in message:
                raise ResourceExistsError(kind, name, message)
            if "(NotFound)" in message:
                raise ResourceNotFoundError(kind, name, message)
            raise ResourceError(kind, name, message)
        return process

    def create(self, manifest: Dict[str, Any], namespace: Optional[str] = None) -> Dict[str, Any]:
        """
        Create an object.

        Raises:
            ResourceExistsError: If the object already exists
            ResourceError: For any other failure
        """
        kind = manifest.get("kind", "object")
        name = manifest.get("metadata", {}).get("name", "")
        logger.info(f"Creating {kind} '{name}'")
        process = self._run(
            kind, name, ["create", "-f", "-", "-o", "json"],
            namespace=namespace, stdin=json.dumps(manifest),
        )
        return json.loads(process.stdout) if process.stdout.strip() else {}

    def ensure(self, manifest: Dict[str, Any], namespace: Optional[str] = None) -> None:
        """Create an object, treating an existing one as success."""
        try:
            self.create(manifest, namespace=namespace)
        except ResourceExistsError:
            logger.debug(
                f"{manifest.get('kind')} '{manifest.get('metadata', {}).get('name')}' already exists"
            )

    def get(self, kind: str, name: str, namespace: Optional[str] = None) -> Dict[str, Any]:
        """Get the current state of an object."""
        process = self._run(kind, name, ["get", kind, name, "-o", "json"], namespace=namespace)
        return json.loads(process.stdout)

    def delete(
        self,
        kind: str,
        name: str,
        namespace: Optional[str] = None,
        grace_period: Optional[int] = None,
    ) -> None:
        """Delete an object without waiting for finalization."""
        args = ["delete", kind, name, "--wait=false"]
        if grace_period is not None:
            args.append(f"--grace-period={grace_period}")
        self._run(kind, name, args, namespace=namespace)

    def watch(
        self,
        kind: str,
        name: str,
        namespace: Optional[str] = None,
        timeout: float = 60,
    ) -> WatchStream:
        """Start watching the object with the given kind and name."""
        args = [
            "get", kind,
            "--field-selector", f"metadata.name={name}",
            "--watch",
            "--output-watch-events",
            "-o", "json",
            f"--request-timeout={int(timeout)}s",
        ]
        cmd = self._command(args, namespace)
        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            process = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                env=self._env(),
            )
        except OSError as e:
            raise ResourceError(kind, name, f"can't run kubectl: {e}") from e
        return WatchStream(process, kind, name)


def current_namespace(path: str = SERVICE_ACCOUNT_NAMESPACE) -> str:
    """Return the namespace of the pod where this process runs."""
    try:
        with open(path) as f:
            namespace = f.read().strip()
    except OSError as e:
        raise ResourceError("namespace", path, f"can't read namespace file: {e}") from e
    if not namespace:
        raise ResourceError("namespace", path, "namespace file is empty")
    return namespace
