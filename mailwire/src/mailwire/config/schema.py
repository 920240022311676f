"""Pydantic models describing the mailwire runtime configuration."""
from __future__ import annotations

import codecs
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ServerSettings(BaseModel):
    """Default server endpoint used when a caller does not give one."""

    model_config = ConfigDict(extra="forbid")

    host: Optional[str] = None
    port: int = Field(default=993, gt=0, lt=65536)
    tls: bool = True
    timeout: Optional[float] = Field(default=30.0, gt=0)


class ProtocolSettings(BaseModel):
    """Knobs for the response accumulator and command tagging."""

    model_config = ConfigDict(extra="forbid")

    encoding: str = "utf-8"
    tag_prefix: str = Field(default="A", min_length=1)
    max_reads: Optional[int] = Field(default=None, gt=0)
    response_deadline: Optional[float] = Field(default=None, gt=0)
    read_size: int = Field(default=65536, gt=0)

    @field_validator("encoding")
    @classmethod
    def _known_encoding(cls, value: str) -> str:
        try:
            codecs.lookup(value)
        except LookupError as exc:
            raise ValueError(f"unknown encoding {value!r}") from exc
        return value

    @field_validator("tag_prefix")
    @classmethod
    def _plain_tag(cls, value: str) -> str:
        if not value.isalnum():
            raise ValueError("tag_prefix must be alphanumeric")
        return value


class RuntimeConfig(BaseModel):
    """Root configuration loaded from ``mailwire.yaml``."""

    model_config = ConfigDict(extra="forbid")

    version: int = 1
    server: ServerSettings = Field(default_factory=ServerSettings)
    protocol: ProtocolSettings = Field(default_factory=ProtocolSettings)
