"""Post and request types exchanged with a protocol engine.

All types use Pydantic models for validation and serialization, with
camelCase aliases on the wire.
"""

from __future__ import annotations

import hashlib
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

PostType = Literal["text", "topic", "join", "leave", "info", "delete"]

# Limits applied to outgoing posts (UTF-8 bytes)
MAX_CHANNEL_BYTES = 64
MAX_TEXT_BYTES = 4096
MAX_TOPIC_BYTES = 512
MAX_NAME_BYTES = 32


class EngineError(Exception):
    """Base class for errors raised by a protocol engine."""


class InvalidPostError(EngineError):
    """The engine refused to publish a post that fails validation."""


class ChannelOptions(BaseModel):
    """Which posts of a channel to return.

    ``time_end == 0`` asks for an open-ended range: a stream keeps
    delivering new posts as they arrive.  ``limit`` caps the number of
    stored posts returned (the newest win); ``0`` means no cap.
    """

    model_config = ConfigDict(populate_by_name=True)

    channel: str
    time_start: int = Field(default=0, alias="timeStart")
    time_end: int = Field(default=0, alias="timeEnd")
    limit: int = 50


class Post(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    type: PostType
    public_key: str = Field(alias="publicKey")  # hex
    timestamp: int  # ms since epoch
    hash: str = ""  # hex BLAKE2b-256 of every other field
    channel: str | None = None
    text: str | None = None
    topic: str | None = None
    name: str | None = None
    hashes: tuple[str, ...] = ()

    @property
    def author(self) -> bytes:
        return bytes.fromhex(self.public_key)

    def compute_hash(self) -> str:
        payload = self.model_dump_json(by_alias=True, exclude={"hash"})
        return hashlib.blake2b(payload.encode("utf-8"), digest_size=32).hexdigest()

    def sealed(self) -> Post:
        """Return a copy carrying its own hash."""
        return self.model_copy(update={"hash": self.compute_hash()})
