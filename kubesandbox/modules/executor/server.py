"""
HTTP server that exposes the test executor.

The only route is POST /api/v1/tests. Requests go through the access log and
the bearer token check before reaching the handler; anything else is
answered with a 404.
"""

import logging
import os
import tempfile
from typing import Optional, Tuple

import uvicorn
from fastapi import FastAPI, Request, Response
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from kubesandbox import __version__
from kubesandbox.errors import ExecutorError, InvalidInputError, SpawnError
from kubesandbox.logging_config import get_logging_config
from kubesandbox.modules.api import TESTS_PATH, ExecutionRequest
from kubesandbox.modules.auth import TokenVerifier
from kubesandbox.modules.middleware import AccessLogStage, BearerAuthStage, Pipeline, send_error

from .handler import TestExecutor

logger = logging.getLogger(__name__)

DEFAULT_LISTEN = "0.0.0.0:8000"


def create_app(token: str, work: str, executor: Optional[TestExecutor] = None) -> FastAPI:
    """Create the FastAPI application of the executor."""
    app = FastAPI(
        title="kubesandbox executor",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    executor = executor or TestExecutor(work)

    async def post_test(request: Request) -> Response:
        body = await request.body()
        try:
            test = ExecutionRequest.model_validate_json(body)
        except ValidationError as e:
            logger.info(f"Can't unmarshal request body: {e.error_count()} errors")
            return send_error(400, "Can't unmarshal request body")

        try:
            result = await run_in_threadpool(executor.execute, test)
        except SpawnError:
            return send_error(500, "Can't execute test binary")
        except ExecutorError as e:
            return send_error(e.status_code, e.reason)

        return Response(content=result.to_json(), media_type="application/json")

    pipeline = Pipeline([AccessLogStage(), BearerAuthStage(TokenVerifier(token))])
    app.add_api_route(TESTS_PATH, pipeline.wrap(post_test), methods=["POST"])

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        """Unmatched paths and methods are reported as not found."""
        if exc.status_code in (404, 405):
            return send_error(404, f"Can't find resource for path '{request.url.path}'")
        return send_error(exc.status_code, str(exc.detail))

    return app


def parse_listen(value: str) -> Tuple[str, int]:
    """Split an address like '0.0.0.0:8000' or ':8000' into host and port."""
    host, sep, port = value.rpartition(":")
    if not sep or not port.isdigit():
        raise InvalidInputError(f"listen address '{value}' should be 'host:port'")
    return host or "0.0.0.0", int(port)


class ExecutorServer:
    """The test executor server. Use ExecutorServer.builder() to create it."""

    def __init__(self, host: str, port: int, token: str, work: str):
        self.host = host
        self.port = port
        self.token = token
        self.work = work
        self.app = create_app(token, work)

    @staticmethod
    def builder() -> "ExecutorServerBuilder":
        return ExecutorServerBuilder()

    def serve(self, log_level: str = "INFO") -> None:
        """Run the server till the process receives SIGINT or SIGTERM."""
        logger.info(f"Server is now listening in address '{self.host}:{self.port}'")
        uvicorn.run(
            self.app,
            host=self.host,
            port=self.port,
            log_level=log_level.lower(),
            log_config=get_logging_config(log_level),
        )


class ExecutorServerBuilder:
    """Collects and validates the settings of the executor server."""

    def __init__(self):
        self._listen = DEFAULT_LISTEN
        self._token: Optional[str] = None
        self._work: Optional[str] = None

    def listen(self, value: str) -> "ExecutorServerBuilder":
        """Address and port where the server will listen, 0.0.0.0:8000 by default."""
        self._listen = value or DEFAULT_LISTEN
        return self

    def token(self, value: str) -> "ExecutorServerBuilder":
        """Token required in the Authorization header of every request."""
        self._token = value
        return self

    def work(self, value: Optional[str]) -> "ExecutorServerBuilder":
        """Directory where the test directories are created, the temporary directory by default."""
        self._work = value
        return self

    def build(self) -> ExecutorServer:
        if not self._token:
            raise InvalidInputError("token is mandatory")
        host, port = parse_listen(self._listen)
        work = self._work or tempfile.gettempdir()
        if not os.path.isdir(work):
            raise InvalidInputError(f"working directory '{work}' doesn't exist")
        return ExecutorServer(host, port, self._token, work)
