"""
Inbound command schema for the daemon channel.

Messages are JSON objects tagged by ``type``. :func:`parse_command` turns a raw
frame into one of the command models below or raises
:class:`~cueplay.infra.exceptions.MalformedCommandError`. A message with any
invalid chunk is rejected as a whole; NaN and infinite numbers are invalid.
"""

from __future__ import annotations

import json
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from cueplay.infra.exceptions import MalformedCommandError

from .chunk_queue import Chunk


class _Message(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True, allow_inf_nan=False)


class ChunkPayload(_Message):
    text: str
    timestamp: float

    def to_chunk(self) -> Chunk:
        return Chunk(text=self.text, timestamp=self.timestamp)


class PlaybackQueue(_Message):
    type: Literal["PLAYBACK_QUEUE"]
    queue: list[ChunkPayload]
    start_time: float | None = None

    def chunks(self) -> list[Chunk]:
        return [c.to_chunk() for c in self.queue]


class PlaybackAppend(_Message):
    type: Literal["PLAYBACK_APPEND"]
    chunks: list[ChunkPayload]

    def to_chunks(self) -> list[Chunk]:
        return [c.to_chunk() for c in self.chunks]


class PlaybackStart(_Message):
    type: Literal["PLAYBACK_START"]
    start_time: float | None = None


class PlaybackPause(_Message):
    type: Literal["PLAYBACK_PAUSE"]


class PlaybackResume(_Message):
    type: Literal["PLAYBACK_RESUME"]


class PlaybackSeek(_Message):
    type: Literal["PLAYBACK_SEEK"]
    time: float


class PlaybackStop(_Message):
    type: Literal["PLAYBACK_STOP"]


class InfoMessage(_Message):
    type: Literal["INFO", "STATUS"]
    message: str = ""


Command = Annotated[
    Union[
        PlaybackQueue,
        PlaybackAppend,
        PlaybackStart,
        PlaybackPause,
        PlaybackResume,
        PlaybackSeek,
        PlaybackStop,
        InfoMessage,
    ],
    Field(discriminator="type"),
]

_COMMAND_ADAPTER: TypeAdapter[Command] = TypeAdapter(Command)

COMMAND_TYPES = (
    "PLAYBACK_QUEUE",
    "PLAYBACK_APPEND",
    "PLAYBACK_START",
    "PLAYBACK_PAUSE",
    "PLAYBACK_RESUME",
    "PLAYBACK_SEEK",
    "PLAYBACK_STOP",
    "INFO",
    "STATUS",
)


def parse_command(raw: str | bytes | dict[str, Any]) -> Command:
    """Parse one inbound message."""
    data: Any = raw
    if isinstance(raw, (str, bytes)):
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise MalformedCommandError(f"Failed to parse message: {e}", raw) from e
    if not isinstance(data, dict):
        raise MalformedCommandError(
            f"Message must be a JSON object, got {type(data).__name__}", raw
        )
    if data.get("type") not in COMMAND_TYPES:
        raise MalformedCommandError(f"Unknown message type: {data.get('type')!r}", raw)
    try:
        return _COMMAND_ADAPTER.validate_python(data)
    except ValidationError as e:
        raise MalformedCommandError(
            f"Invalid {data['type']} message: {e.error_count()} error(s)", raw
        ) from e
