"""
Request Pipeline Module - Black Box Interface

Purpose: Compose the stages that run before the executor handler
Interface: Pipeline, AccessLogStage, BearerAuthStage, send_error()
Hidden: Header parsing, error formatting, audit logging

Stages have the same signature as Starlette HTTP middleware: they receive the
request and the next callable, and either forward or answer with an error.
"""

import logging
from typing import Awaitable, Callable, Iterable, List

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from kubesandbox.modules.api import ErrorResponse
from kubesandbox.modules.auth import TokenVerifier, redact

logger = logging.getLogger(__name__)

Handler = Callable[[Request], Awaitable[Response]]
Stage = Callable[[Request, Handler], Awaitable[Response]]


def send_error(status_code: int, reason: str) -> JSONResponse:
    """Build the JSON error response sent for every failure."""
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(reason=reason).model_dump(),
    )


def client_address(request: Request) -> str:
    if request.client is None:
        return "unknown"
    return f"{request.client.host}:{request.client.port}"


class Pipeline:
    """Ordered list of stages wrapping a final handler."""

    def __init__(self, stages: Iterable[Stage]):
        self.stages: List[Stage] = list(stages)

    def wrap(self, handler: Handler) -> Handler:
        """Return a handler that runs all the stages, in order, and then the given one."""
        wrapped = handler
        for stage in reversed(self.stages):
            wrapped = _chain(stage, wrapped)
        return wrapped


def _chain(stage: Stage, call_next: Handler) -> Handler:
    async def endpoint(request: Request) -> Response:
        return await stage(request, call_next)
    return endpoint


class AccessLogStage:
    """Writes every request to the log."""

    async def __call__(self, request: Request, call_next: Handler) -> Response:
        logger.info(
            f"Received {request.method} request for '{request.url.path}' "
            f"from '{client_address(request)}'"
        )
        return await call_next(request)


class BearerAuthStage:
    """
    Checks that the request carries the right bearer token.

    Missing or malformed headers are answered with 400, a wrong token with
    401. Rejected tokens are logged together with the caller address, but
    only their first characters.
    """

    def __init__(self, verifier: TokenVerifier):
        self.verifier = verifier

    async def __call__(self, request: Request, call_next: Handler) -> Response:
        result = self.verifier.verify(request.headers.get("Authorization"))
        if result.ok:
            return await call_next(request)
        if result.status_code == 401:
            logger.warning(
                f"Rejected {request.method} request for '{request.url.path}' from "
                f"'{client_address(request)}' because token '{redact(result.token)}' is incorrect"
            )
        else:
            logger.info(f"Rejected request from '{client_address(request)}': {result.error}")
        return send_error(result.status_code, result.error or "Authentication failed")


__all__ = [
    "AccessLogStage",
    "BearerAuthStage",
    "Handler",
    "Pipeline",
    "Stage",
    "send_error",
]
