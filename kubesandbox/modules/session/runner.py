"""
Test runner: provisions the sandbox project, sends the test binaries to the
executor running inside it and collects the results.

The binaries are sent one at a time, in lexicographic order, so that the
output printed to the console is deterministic.
"""

import getpass
import glob
import logging
import math
import os
import re
import subprocess
import sys
import time
from dataclasses import dataclass
from typing import BinaryIO, List, Optional

import httpx

from kubesandbox.config import ReadinessConfig, SandboxConfig, get_config_provider
from kubesandbox.errors import InvalidInputError, ResourceError, ResourceNotFoundError, SandboxError
from kubesandbox.modules.api import ExecutionRequest
from kubesandbox.modules.auth import generate_token
from kubesandbox.modules.cluster import KubectlControlPlane, resources
from kubesandbox.modules.readiness import wait_for_pod, wait_for_route, wait_for_server

from .client import ExecutorClient, Session

logger = logging.getLogger(__name__)

# Names of the applications deployed in the project:
CLEANER_APP = "cleaner"
SERVER_APP = "server"

# Secret and variable used to pass the token to the server:
TOKEN_SECRET = "server-token"
TOKEN_KEY = "token"
TOKEN_ENV = "SANDBOX_TOKEN"

# Suffixes of test sources and compiled test binaries:
TEST_SOURCE_SUFFIX = "_test.go"
TEST_BINARY_PATTERN = "*.test"


@dataclass
class RunSummary:
    """Counters of one batch of test binaries."""
    passed: int = 0
    failed: int = 0
    skipped: int = 0

    @property
    def ok(self) -> bool:
        return self.failed == 0 and self.skipped == 0


def project_name(user: Optional[str] = None, now: Optional[float] = None) -> str:
    """Generate a project name like 'sandbox-jdoe-1571234567'."""
    user = user or getpass.getuser()
    user = re.sub(r"[^a-z0-9-]+", "-", user.lower()).strip("-") or "user"
    return f"sandbox-{user}-{int(now if now is not None else time.time())}"


def format_duration(seconds: float) -> str:
    """Format seconds for a duration flag, rounding up to whole milliseconds."""
    millis = math.ceil(round(seconds * 1000, 6))
    if millis % 1000 == 0:
        return f"{millis // 1000}s"
    return f"{millis}ms"


def scan_directories(roots: List[str]) -> List[str]:
    """Find recursively the directories that contain test source files."""
    found = set()
    for root in roots:
        logger.info(f"Scanning directory '{root}' for test files")
        for dirpath, _, filenames in os.walk(root):
            if any(name.endswith(TEST_SOURCE_SUFFIX) for name in filenames):
                found.add(dirpath)
    return sorted(found)


def compile_binaries(directories: List[str], output_dir: str) -> None:
    """Compile the test binaries with 'go test -c', writing them to the output directory."""
    for directory in directories:
        logger.info(f"Compiling test binary for directory '{directory}'")
        package = directory
        if not os.path.isabs(directory) and not directory.startswith("." + os.sep):
            package = "." + os.sep + directory
        cmd = ["go", "test", "-c", package]
        logger.debug(f"Running command '{' '.join(cmd)}'")
        try:
            process = subprocess.run(cmd, cwd=output_dir)
        except OSError as e:
            raise SandboxError(f"can't run the go compiler: {e}") from e
        if process.returncode != 0:
            raise SandboxError(
                f"compilation of tests binary for directory '{directory}' finished "
                f"with exit code {process.returncode}"
            )


class Runner:
    """The test runner. Use Runner.builder() to create it."""

    def __init__(
        self,
        directories: List[str],
        control_plane,
        sandbox: SandboxConfig,
        readiness: ReadinessConfig,
        compile: bool = True,
        recursive: bool = False,
        keep: bool = False,
        proxy: Optional[str] = None,
        insecure: bool = False,
        output_dir: str = ".",
        http_client: Optional[httpx.Client] = None,
        stdout: Optional[BinaryIO] = None,
        stderr: Optional[BinaryIO] = None,
    ):
        self.directories = directories
        self.control_plane = control_plane
        self.sandbox = sandbox
        self.readiness = readiness
        self.compile = compile
        self.recursive = recursive
        self.keep = keep
        self.proxy = proxy
        self.insecure = insecure
        self.output_dir = output_dir
        self.stdout = stdout or sys.stdout.buffer
        self.stderr = stderr or sys.stderr.buffer

        self.project: Optional[str] = None
        self.session: Optional[Session] = None
        self._token: Optional[str] = None
        self._http = http_client
        self._client: Optional[ExecutorClient] = None

    @staticmethod
    def builder() -> "RunnerBuilder":
        return RunnerBuilder()

    # Provisioning

    def provision(self) -> str:
        """
        Make sure that the project, the cleaner and the server exist.

        Returns:
            The name of the project
        """
        self._token = generate_token()
        project = project_name()
        logger.info(f"Creating project '{project}'")
        self.control_plane.ensure(resources.project_request(project))
        self.project = project
        if not self.keep:
            self._ensure_cleaner()
        self._ensure_server()
        return project

    def _ensure_account(self, app: str) -> None:
        self.control_plane.ensure(resources.service_account(app), namespace=self.project)
        self.control_plane.ensure(
            resources.admin_role_binding(app, self.project), namespace=self.project
        )

    def _ensure_cleaner(self) -> None:
        self._ensure_account(CLEANER_APP)
        command = [
            self.sandbox.command,
            "clean-after-delay",
            f"--wait={format_duration(self.sandbox.cleanup_delay)}",
        ]
        self.control_plane.ensure(
            resources.pod(CLEANER_APP, self.sandbox.image, command), namespace=self.project
        )

    def _ensure_server(self) -> None:
        self._ensure_account(SERVER_APP)
        self.control_plane.ensure(
            resources.secret(TOKEN_SECRET, {TOKEN_KEY: self._token}, app=SERVER_APP),
            namespace=self.project,
        )
        port = self.sandbox.server_port
        command = [
            self.sandbox.command,
            "serve",
            f"--listen=0.0.0.0:{port}",
            f"--work={self.sandbox.server_work}",
        ]
        pod = resources.pod(
            SERVER_APP,
            self.sandbox.image,
            command,
            env=[resources.secret_env(TOKEN_ENV, TOKEN_SECRET, TOKEN_KEY)],
            port=port,
            work_volume=self.sandbox.server_work,
        )
        self.control_plane.ensure(pod, namespace=self.project)
        self.control_plane.ensure(resources.service(SERVER_APP, port), namespace=self.project)
        self.control_plane.ensure(resources.route(SERVER_APP), namespace=self.project)

    # Discovery

    def discover(self) -> Session:
        """Wait till the server is reachable and return the session used to talk to it."""
        if self.project is None or self._token is None:
            raise SandboxError("the sandbox hasn't been provisioned")
        timeout = self.readiness.watch_timeout
        wait_for_pod(self.control_plane, self.project, SERVER_APP, timeout=timeout)
        route = wait_for_route(self.control_plane, self.project, SERVER_APP, timeout=timeout)

        # Now that the route is admitted we can calculate the address of the server:
        host = route.get("spec", {}).get("host")
        if not host:
            raise ResourceError("route", SERVER_APP, "route doesn't have a host")
        address = f"https://{host}"

        if self._http is None:
            self._http = httpx.Client(
                proxy=self.proxy,
                verify=not self.insecure,
                timeout=httpx.Timeout(10.0, read=600.0),
            )
        wait_for_server(
            self._http,
            address,
            attempts=self.readiness.probe_attempts,
            interval=self.readiness.probe_interval,
        )

        self.session = Session(
            environment=self.project,
            server_endpoint=address,
            token=self._token,
            owns_environment=not self.keep,
        )
        self._client = ExecutorClient.for_session(self.session, self._http)
        logger.info(f"Server is ready at '{address}'")
        return self.session

    # Execution

    def find_binaries(self) -> List[str]:
        """Compile, if requested, and return the test binaries in lexicographic order."""
        directories = sorted(self.directories)
        if self.recursive:
            directories = scan_directories(directories)
        if len(directories) == 1:
            logger.info("Found one directory containing test files")
        else:
            logger.info(f"Found {len(directories)} directories containing test files")
        for directory in directories:
            logger.debug(f"Found directory '{directory}' containing test files")

        if self.compile:
            compile_binaries(directories, self.output_dir)

        binaries = sorted(glob.glob(os.path.join(self.output_dir, TEST_BINARY_PATTERN)))
        if len(binaries) == 1:
            logger.info("Found one test binary")
        else:
            logger.info(f"Found {len(binaries)} test binaries")
        return binaries

    def run_all(self, binaries: List[str]) -> RunSummary:
        """
        Send the binaries to the server, one at a time, and print the results.

        A binary that can't be read is skipped. Transport and authentication
        errors abort the whole batch.
        """
        if self._client is None:
            raise SandboxError("the runner isn't connected to the server")
        summary = RunSummary()
        for binary in sorted(binaries):
            logger.info(f"Running test binary '{binary}'")
            try:
                with open(binary, "rb") as f:
                    data = f.read()
            except OSError as e:
                logger.error(f"Can't read test binary from file '{binary}': {e}")
                summary.skipped += 1
                continue

            result = self._client.send(ExecutionRequest(binary=data))

            if result.stdout:
                logger.info(f"Output of test binary '{binary}' follows")
                self.stdout.write(result.stdout)
                self.stdout.flush()
            else:
                logger.info(f"Test binary '{binary}' didn't produce output")
            if result.stderr:
                logger.info(f"Error output of test binary '{binary}' follows")
                self.stderr.write(result.stderr)
                self.stderr.flush()
            else:
                logger.info(f"Test binary '{binary}' didn't produce error output")

            logger.info(f"Test binary '{binary}' finished with exit code {result.exit_code}")
            if result.passed:
                summary.passed += 1
            else:
                summary.failed += 1
        return summary

    def run(self) -> RunSummary:
        """Find the binaries, provision the sandbox and run them. Call teardown() afterwards."""
        binaries = self.find_binaries()
        self.provision()
        self.discover()
        return self.run_all(binaries)

    # Cleanup

    def teardown(self) -> None:
        """Delete the project, unless it has to be preserved."""
        try:
            if self.project is None:
                return
            if self.keep:
                logger.info(f"Preserving project '{self.project}'")
                return
            logger.info(f"Deleting project '{self.project}'")
            try:
                self.control_plane.delete("project", self.project)
            except ResourceNotFoundError:
                logger.debug(f"Project '{self.project}' doesn't exist")
        finally:
            if self._http is not None:
                self._http.close()


class RunnerBuilder:
    """
    Collects the settings of the runner. The control plane client is created
    by build() unless one is given explicitly.
    """

    def __init__(self):
        self._kubeconfig: Optional[str] = None
        self._proxy: Optional[str] = None
        self._insecure = False
        self._compile = True
        self._recursive = False
        self._keep = False
        self._directories: List[str] = []
        self._image: Optional[str] = None
        self._cleanup_delay: Optional[float] = None
        self._output_dir = "."
        self._control_plane = None
        self._http_client: Optional[httpx.Client] = None
        self._stdout: Optional[BinaryIO] = None
        self._stderr: Optional[BinaryIO] = None

    def kubeconfig(self, value: Optional[str]) -> "RunnerBuilder":
        """Configuration file used to connect to the cluster, the kubectl default if not given."""
        self._kubeconfig = value
        return self

    def proxy(self, value: Optional[str]) -> "RunnerBuilder":
        """URL of the proxy used for the cluster API and for the server."""
        self._proxy = value
        return self

    def insecure(self, value: bool) -> "RunnerBuilder":
        """Accept servers whose certificates are signed by unknown authorities."""
        self._insecure = value
        return self

    def compile(self, value: bool) -> "RunnerBuilder":
        self._compile = value
        return self

    def recursive(self, value: bool) -> "RunnerBuilder":
        self._recursive = value
        return self

    def keep(self, value: bool) -> "RunnerBuilder":
        """Preserve the project when the runner finishes. The cleaner isn't deployed either."""
        self._keep = value
        return self

    def directories(self, *values: str) -> "RunnerBuilder":
        self._directories.extend(values)
        return self

    def image(self, value: Optional[str]) -> "RunnerBuilder":
        self._image = value
        return self

    def cleanup_delay(self, value: Optional[float]) -> "RunnerBuilder":
        """Seconds after which the cleaner deletes the project."""
        self._cleanup_delay = value
        return self

    def output_dir(self, value: str) -> "RunnerBuilder":
        """Directory where the test binaries are compiled and searched for."""
        self._output_dir = value
        return self

    def control_plane(self, value) -> "RunnerBuilder":
        self._control_plane = value
        return self

    def http_client(self, value: httpx.Client) -> "RunnerBuilder":
        self._http_client = value
        return self

    def output(self, stdout: BinaryIO, stderr: BinaryIO) -> "RunnerBuilder":
        """Streams where the output of the test binaries is written."""
        self._stdout = stdout
        self._stderr = stderr
        return self

    def build(self) -> Runner:
        if not self._directories:
            raise InvalidInputError("at least one directory must be provided")
        if self._cleanup_delay is not None and self._cleanup_delay <= 0:
            raise InvalidInputError("cleanup delay must be positive")

        provider = get_config_provider()
        sandbox = provider.get_sandbox_config()
        if self._image:
            sandbox.image = self._image
        if self._cleanup_delay is not None:
            sandbox.cleanup_delay = self._cleanup_delay

        control_plane = self._control_plane or KubectlControlPlane(
            kubeconfig=self._kubeconfig,
            proxy=self._proxy,
            insecure=self._insecure,
            kubectl=sandbox.kubectl,
        )
        return Runner(
            directories=list(self._directories),
            control_plane=control_plane,
            sandbox=sandbox,
            readiness=provider.get_readiness_config(),
            compile=self._compile,
            recursive=self._recursive,
            keep=self._keep,
            proxy=self._proxy,
            insecure=self._insecure,
            output_dir=self._output_dir,
            http_client=self._http_client,
            stdout=self._stdout,
            stderr=self._stderr,
        )
