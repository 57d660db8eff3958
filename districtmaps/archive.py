"""
Streaming ZIP extraction over an async byte stream, backed by libarchive.

libarchive reads from a blocking file object, so the archive is walked in a
worker thread that pulls network chunks from the event loop one at a time.
Members are seen in stream order and the walk can stop part way through an
archive, so the bytes after the last wanted member are never requested.

Usage:

    def take(member):
        if member.is_dir or not wanted(member.name):
            return False                  # skipped by libarchive
        member.save(staging / member.name)
        return all_collected()            # True stops the walk

    await extract_members(response.aiter_bytes(), take)
"""

from __future__ import annotations

import asyncio
import io
from pathlib import Path
from typing import AsyncIterable, Callable, Iterator, Optional

import libarchive

CHUNK_SIZE = 64 * 1024
# libarchive pulls this much past the member being read
READ_SIZE = 8 * 1024


class ArchiveError(ValueError):
    """The byte stream is not a ZIP archive libarchive can decode."""


class TruncatedArchive(ArchiveError):
    """The byte stream ended before the archive did."""


class _ChunkStream(io.RawIOBase):
    """Blocking reader over an async chunk iterator owned by ``loop``."""

    def __init__(self, chunks: AsyncIterable[bytes], loop: asyncio.AbstractEventLoop) -> None:
        super().__init__()
        self._chunks = chunks.__aiter__()
        self._loop = loop
        self._pending = b""
        self.eof = False
        self.error: Optional[BaseException] = None

    def readable(self) -> bool:
        return True

    async def _next(self) -> Optional[bytes]:
        while True:
            try:
                chunk = await self._chunks.__anext__()
            except StopAsyncIteration:
                return None
            if chunk:
                return chunk

    def readinto(self, b) -> int:
        if not self._pending:
            if self.eof:
                return 0
            try:
                chunk = asyncio.run_coroutine_threadsafe(self._next(), self._loop).result()
            except Exception as e:
                # exceptions cannot cross libarchive's read callback; re-raised after the walk
                self.error = e
                chunk = None
            if chunk is None:
                self.eof = True
                return 0
            self._pending = chunk
        n = min(len(b), len(self._pending))
        b[:n] = self._pending[:n]
        self._pending = self._pending[n:]
        return n


class ArchiveMember:
    """One archive entry; only valid inside the callback it was passed to."""

    def __init__(self, entry: libarchive.ArchiveEntry) -> None:
        self._entry = entry

    def __repr__(self) -> str:
        return f"ArchiveMember({self.name!r}, size={self.size})"

    @property
    def name(self) -> str:
        return self._entry.pathname or ""

    @property
    def is_dir(self) -> bool:
        return bool(self._entry.isdir)

    @property
    def size(self) -> Optional[int]:
        return self._entry.size

    def blocks(self) -> Iterator[bytes]:
        yield from self._entry.get_blocks(CHUNK_SIZE)

    def read(self) -> bytes:
        return b"".join(self.blocks())

    def save(self, path: Path) -> int:
        written = 0
        with path.open("wb") as f:
            for block in self.blocks():
                f.write(block)
                written += len(block)
        return written


def _walk(stream: io.BufferedReader, handle: Callable[[ArchiveMember], bool]) -> bool:
    with libarchive.stream_reader(stream, format_name="zip", block_size=READ_SIZE) as archive:
        for entry in archive:
            if handle(ArchiveMember(entry)):
                return True
    return False


async def extract_members(
    chunks: AsyncIterable[bytes],
    handle: Callable[[ArchiveMember], bool],
) -> bool:
    """
    Call ``handle`` for every archive member, in stream order.

    ``handle`` runs in a worker thread and may read the member it is given.
    When it returns True the walk stops and no further chunks are pulled;
    the return value tells whether that happened. Errors raised by ``chunks``
    propagate unchanged, an early end of the stream raises ``TruncatedArchive``.
    """
    raw = _ChunkStream(chunks, asyncio.get_running_loop())
    stream = io.BufferedReader(raw, buffer_size=READ_SIZE)
    try:
        stopped = await asyncio.to_thread(_walk, stream, handle)
    except libarchive.ArchiveError as e:
        if raw.error is not None:
            raise raw.error from e
        if raw.eof:
            raise TruncatedArchive(f"stream ended before the archive did: {e}") from e
        raise ArchiveError(str(e)) from e
    if raw.error is not None:
        raise raw.error
    return stopped
