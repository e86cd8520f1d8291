"""
Runs test binaries received from the runner.

Each execution gets its own directory inside the working directory, named
after a random identifier and never reused. Nothing else is shared between
executions, so concurrent calls don't interfere with each other.
"""

import logging
import os
import subprocess
import uuid
from typing import Dict

from kubesandbox.errors import ExecutorError, SpawnError
from kubesandbox.modules.api import ExecutionRequest, ExecutionResult

logger = logging.getLogger(__name__)


class TestExecutor:
    """Executes one test binary per call."""

    __test__ = False

    def __init__(self, work: str):
        self.work = work

    def execute(self, request: ExecutionRequest) -> ExecutionResult:
        """
        Write the binary to a private directory, run it and collect the output.

        Args:
            request: Binary, arguments and environment of the test

        Returns:
            Standard output, standard error and exit code of the binary. A
            nonzero exit code is a normal result, not an error.

        Raises:
            SpawnError: If the binary can't be started at all
            ExecutorError: If the directory or the files can't be created or read
        """
        test_id = str(uuid.uuid4())
        logger.info(f"Assigned test identifier '{test_id}'")

        # Create the test directory:
        test_dir = os.path.join(self.work, test_id)
        try:
            os.mkdir(test_dir, 0o700)
        except OSError as e:
            logger.error(f"Can't create directory for test '{test_id}': {e}")
            raise ExecutorError("Can't generate test directory", cause=e) from e
        logger.info(f"Created test directory '{test_dir}' for test '{test_id}'")

        # Write the binary:
        test_binary = os.path.join(test_dir, "binary")
        try:
            fd = os.open(test_binary, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o700)
            with os.fdopen(fd, "wb") as f:
                f.write(request.binary)
        except OSError as e:
            logger.error(f"Can't create binary file '{test_binary}' for test '{test_id}': {e}")
            raise ExecutorError("Can't create test binary file", cause=e) from e
        logger.info(f"Created binary file '{test_binary}' for test '{test_id}'")

        test_out_path = os.path.join(test_dir, "stdout")
        test_err_path = os.path.join(test_dir, "stderr")
        test_code = self._run(test_id, test_dir, test_binary, request, test_out_path, test_err_path)
        logger.info(f"Test binary for test '{test_id}' finished with exit code {test_code}")

        # Read back the output:
        try:
            with open(test_out_path, "rb") as f:
                test_out = f.read()
        except OSError as e:
            logger.error(f"Can't read output file '{test_out_path}' for test '{test_id}': {e}")
            raise ExecutorError("Can't read output file", cause=e) from e
        try:
            with open(test_err_path, "rb") as f:
                test_err = f.read()
        except OSError as e:
            logger.error(f"Can't read errors file '{test_err_path}' for test '{test_id}': {e}")
            raise ExecutorError("Can't read errors file", cause=e) from e

        return ExecutionResult(stdout=test_out, stderr=test_err, exit_code=test_code)

    def _run(
        self,
        test_id: str,
        test_dir: str,
        test_binary: str,
        request: ExecutionRequest,
        test_out_path: str,
        test_err_path: str,
    ) -> int:
        try:
            test_out = open(test_out_path, "wb")
        except OSError as e:
            logger.error(f"Can't create out file '{test_out_path}' for test '{test_id}': {e}")
            raise ExecutorError("Can't create output file", cause=e) from e
        with test_out:
            try:
                test_err = open(test_err_path, "wb")
            except OSError as e:
                logger.error(f"Can't create errors file '{test_err_path}' for test '{test_id}': {e}")
                raise ExecutorError("Can't create errors file", cause=e) from e
            with test_err:
                try:
                    process = subprocess.run(
                        [test_binary, *request.args],
                        cwd=test_dir,
                        env=self.environment(request.env),
                        stdin=subprocess.DEVNULL,
                        stdout=test_out,
                        stderr=test_err,
                    )
                except (OSError, ValueError) as e:
                    logger.error(f"Can't execute test binary for test '{test_id}': {e}")
                    raise SpawnError(f"Can't execute test binary: {e}") from e
        return process.returncode

    @staticmethod
    def environment(overlay: Dict[str, str]) -> Dict[str, str]:
        """Environment of the executor with the variables of the request added."""
        env = dict(os.environ)
        env.update(overlay)
        return env
