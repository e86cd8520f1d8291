"""
kubesandbox wire models.

These models define the JSON documents exchanged between the session client
and the remote executor. Byte fields travel as standard base64 strings.
"""

import base64
import binascii
from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

# Path of the only endpoint exposed by the executor:
PREFIX = "/api"
VERSION = "v1"
TESTS_PATH = f"{PREFIX}/{VERSION}/tests"


def decode_bytes(value: Any) -> Any:
    """Decode base64 text coming from JSON, leave real bytes untouched."""
    if value is None:
        return b""
    if isinstance(value, str):
        try:
            return base64.b64decode(value, validate=True)
        except binascii.Error as e:
            raise ValueError(f"invalid base64 data: {e}") from e
    return value


def encode_bytes(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")


class ExecutionRequest(BaseModel):
    """A test binary plus the way it should be invoked."""

    model_config = ConfigDict(frozen=True)

    binary: bytes = Field(..., description="Content of the test binary")
    args: List[str] = Field(default_factory=list, description="Command line arguments")
    env: Dict[str, str] = Field(
        default_factory=dict, description="Variables added to the executor environment"
    )

    @field_validator("binary", mode="before")
    @classmethod
    def validate_binary(cls, v):
        return decode_bytes(v)

    @field_validator("args")
    @classmethod
    def validate_args(cls, v: List[str]) -> List[str]:
        for arg in v:
            if "\x00" in arg:
                raise ValueError("arguments can't contain null characters")
        return v

    @field_validator("env")
    @classmethod
    def validate_env(cls, v: Dict[str, str]) -> Dict[str, str]:
        # Values that can't be passed to the process environment:
        for name, value in v.items():
            if not name or "=" in name or "\x00" in name:
                raise ValueError(f"invalid environment variable name '{name}'")
            if "\x00" in value:
                raise ValueError(f"value of environment variable '{name}' contains null characters")
        return v

    @field_serializer("binary")
    def serialize_binary(self, v: bytes) -> str:
        return encode_bytes(v)


class ExecutionResult(BaseModel):
    """Output and exit code of one execution."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    stdout: bytes = Field(default=b"", alias="out")
    stderr: bytes = Field(default=b"", alias="err")
    exit_code: int = Field(default=0, alias="code")

    @field_validator("stdout", "stderr", mode="before")
    @classmethod
    def validate_output(cls, v):
        return decode_bytes(v)

    @field_serializer("stdout", "stderr")
    def serialize_output(self, v: bytes) -> str:
        return encode_bytes(v)

    @property
    def passed(self) -> bool:
        return self.exit_code == 0

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)


class ErrorResponse(BaseModel):
    """Body of every non-200 response."""

    reason: str
