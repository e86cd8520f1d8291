"""
Client side of the executor REST API.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import httpx
from pydantic import ValidationError

from kubesandbox.errors import AuthError, TransportError
from kubesandbox.modules.api import TESTS_PATH, ExecutionRequest, ExecutionResult

logger = logging.getLogger(__name__)


@dataclass
class Session:
    """Everything needed to talk to the executor of one sandbox."""
    environment: str
    server_endpoint: str
    token: str
    owns_environment: bool = True


class ExecutorClient:
    """Simplifies the interaction with the executor server."""

    def __init__(self, address: str, token: str, http_client: Optional[httpx.Client] = None):
        self.address = address.rstrip("/")
        self._token = token
        self._http = http_client or httpx.Client()

    @classmethod
    def for_session(cls, session: Session, http_client: Optional[httpx.Client] = None) -> "ExecutorClient":
        return cls(session.server_endpoint, session.token, http_client)

    def send(self, request: ExecutionRequest) -> ExecutionResult:
        """
        Send the test to the server, wait for it to be executed and return the result.

        Raises:
            AuthError: If the server rejects the token
            TransportError: If the request can't be sent or the server fails
        """
        url = f"{self.address}{TESTS_PATH}"
        logger.debug(f"Sending POST request to '{url}'")
        try:
            response = self._http.post(
                url,
                content=request.model_dump_json(),
                headers={
                    "Authorization": f"Bearer {self._token}",
                    "Content-Type": "application/json",
                },
            )
        except httpx.HTTPError as e:
            raise TransportError(f"can't send request to '{url}': {e}") from e

        if response.status_code == 401:
            raise AuthError(f"server '{self.address}' rejected the token: {_reason(response)}")
        if response.status_code != 200:
            raise TransportError(
                f"send failed with status code {response.status_code}: {_reason(response)}"
            )

        try:
            return ExecutionResult.model_validate_json(response.content)
        except ValidationError as e:
            raise TransportError(f"can't decode response from '{url}': {e}") from e

    def close(self) -> None:
        self._http.close()


def _reason(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    if isinstance(body, dict) and "reason" in body:
        return str(body["reason"])
    return response.text
