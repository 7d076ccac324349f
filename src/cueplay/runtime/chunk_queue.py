"""
Chunk queue: ordered, mergeable collection of timestamped chunks.

The queue is always sorted by timestamp (stable, so equal timestamps keep
arrival order). Positions are plain indexes; after a merge the caller
re-resolves its current chunk with :meth:`ChunkQueue.locate` instead of
trusting the old index.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Sequence


@dataclass(frozen=True)
class Chunk:
    """A timestamped text segment performed by the renderer."""

    text: str
    timestamp: float  # seconds from the session anchor

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Chunk:
        return cls(text=str(d["text"]), timestamp=float(d["timestamp"]))

    def to_dict(self) -> dict[str, Any]:
        return {"text": self.text, "timestamp": self.timestamp}


def _sort_key(chunk: Chunk) -> float:
    return chunk.timestamp


class ChunkQueue:
    """Timestamp-ordered sequence of chunks."""

    def __init__(self, chunks: Iterable[Chunk] = ()) -> None:
        self._chunks: list[Chunk] = sorted(chunks, key=_sort_key)

    def __len__(self) -> int:
        return len(self._chunks)

    def __iter__(self) -> Iterator[Chunk]:
        return iter(self._chunks)

    def __getitem__(self, index: int) -> Chunk:
        return self._chunks[index]

    def __bool__(self) -> bool:
        return bool(self._chunks)

    def __repr__(self) -> str:
        return f"ChunkQueue({len(self._chunks)} chunks)"

    @property
    def chunks(self) -> Sequence[Chunk]:
        return tuple(self._chunks)

    def replace(self, chunks: Iterable[Chunk]) -> None:
        """Replace the contents with ``chunks`` sorted by timestamp."""
        self._chunks = sorted(chunks, key=_sort_key)

    def merge(self, chunks: Iterable[Chunk]) -> None:
        """Add ``chunks`` after the existing ones and re-sort."""
        self._chunks.extend(chunks)
        self._chunks.sort(key=_sort_key)

    def clear(self) -> None:
        self._chunks = []

    def get(self, index: int) -> Chunk | None:
        if 0 <= index < len(self._chunks):
            return self._chunks[index]
        return None

    def locate(self, chunk: Chunk) -> int:
        """Return the index of ``chunk`` or -1.

        The very same object wins over an equal (text + timestamp) chunk, so
        duplicates appended later do not steal the position.
        """
        for i, candidate in enumerate(self._chunks):
            if candidate is chunk:
                return i
        for i, candidate in enumerate(self._chunks):
            if candidate == chunk:
                return i
        return -1

    def find_index_at_time(self, t: float) -> int:
        """Index of the last chunk with ``timestamp <= t``.

        Clamps to the first chunk when every chunk is later than ``t``.
        Returns -1 only for an empty queue.
        """
        if not self._chunks:
            return -1
        for i in range(len(self._chunks) - 1, -1, -1):
            if self._chunks[i].timestamp <= t:
                return i
        return 0
