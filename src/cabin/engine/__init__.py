"""cabin.engine: the protocol engine surface and an in-process engine."""

from cabin.engine.base import Cable
from cabin.engine.memory import MemoryCable
from cabin.engine.types import (
    ChannelOptions,
    EngineError,
    InvalidPostError,
    Post,
    PostType,
)

__all__ = [
    "Cable",
    "ChannelOptions",
    "EngineError",
    "InvalidPostError",
    "MemoryCable",
    "Post",
    "PostType",
]
