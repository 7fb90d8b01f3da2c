"""Edge-coverage bitmap shared between an instrumented program and a monitor."""

from __future__ import annotations

import mmap
import os
from pathlib import Path
from typing import Any

MAP_SIZE = 65536
BRANCH_SLOTS = MAP_SIZE * 8

_HASH_MULTIPLIER = 16777619
_MASK32 = 0xFFFFFFFF


def count_covered(data: Any) -> int:
    """Return the number of set bits in the first MAP_SIZE bytes of ``data``."""
    return int.from_bytes(bytes(data[:MAP_SIZE]), "little").bit_count()


class CoverageMap:
    """A MAP_SIZE-byte bitmap in which each bit records one hit edge.

    ``buffer`` is any writable byte buffer of at least MAP_SIZE bytes, such as a
    ``bytearray`` or an ``mmap``; when omitted a private buffer is allocated.
    """

    def __init__(self, buffer: Any = None) -> None:
        if buffer is None:
            buffer = bytearray(MAP_SIZE)
        if len(buffer) < MAP_SIZE:
            raise ValueError(
                f"coverage buffer must hold at least {MAP_SIZE} bytes, got {len(buffer)}"
            )
        self.buffer = buffer
        self.prev_loc = 0

    def hit(self, cur_loc: int) -> None:
        """Record that the block ``cur_loc`` was entered after the previous one."""
        cur = cur_loc & _MASK32
        idx = (((self.prev_loc * _HASH_MULTIPLIER) & _MASK32) ^ cur) % BRANCH_SLOTS
        self.buffer[idx >> 3] |= 1 << (idx & 7)
        self.prev_loc = cur

    def covered_count(self) -> int:
        """Return how many distinct edges have been recorded."""
        return count_covered(self.buffer)

    def reset(self) -> None:
        """Clear every recorded edge and forget the previous location."""
        self.buffer[:MAP_SIZE] = bytes(MAP_SIZE)
        self.prev_loc = 0

    def close(self) -> None:
        """Flush and release the underlying buffer if it is file-backed."""
        flush = getattr(self.buffer, "flush", None)
        close = getattr(self.buffer, "close", None)
        if getattr(self.buffer, "closed", False):
            return
        if callable(flush):
            flush()
        if callable(close):
            close()

    def __enter__(self) -> CoverageMap:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def open_coverage_file(path: str | os.PathLike[str]) -> CoverageMap:
    """Map the coverage file at ``path`` into memory, creating it if needed.

    The file is grown to MAP_SIZE bytes when shorter; existing contents are kept
    so several processes can accumulate coverage into the same map.
    """
    fd = os.open(Path(path), os.O_RDWR | os.O_CREAT, 0o666)
    try:
        if os.fstat(fd).st_size < MAP_SIZE:
            os.ftruncate(fd, MAP_SIZE)
        mapping = mmap.mmap(fd, MAP_SIZE)
    finally:
        os.close(fd)
    return CoverageMap(mapping)