"""Buffer cache: in-memory copies of disk blocks, recycled least recently used first."""

from __future__ import annotations

import enum
import threading
from dataclasses import dataclass, field

from xvfs.layout import BSIZE, NBUF, FsPanic


class BufFlag(enum.IntFlag):
    """State of a cached block."""

    BUSY = 0x1   # held by some caller between bread and brelse
    VALID = 0x2  # data has been read from disk
    DIRTY = 0x4  # data must be written to disk


@dataclass(eq=False)
class Buf:
    """A cached copy of one disk block."""

    dev: int = -1
    blockno: int = 0
    flags: BufFlag = BufFlag(0)
    data: bytearray = field(default_factory=lambda: bytearray(BSIZE))


class BufferCache:
    """A fixed set of buffers kept in most-recently-used order.

    The disk object must provide ``rw(buf)``, which writes a dirty buffer
    or reads a non-valid one and leaves it valid.
    """

    def __init__(self, disk, nbuf: int = NBUF) -> None:
        self._disk = disk
        self._cond = threading.Condition()
        # Index 0 is the most recently used buffer.
        self._lru = [Buf() for _ in range(nbuf)]

    def _get(self, dev: int, blockno: int) -> Buf:
        with self._cond:
            while True:
                cached = next(
                    (b for b in self._lru if b.dev == dev and b.blockno == blockno),
                    None,
                )
                if cached is None:
                    break
                if not cached.flags & BufFlag.BUSY:
                    cached.flags |= BufFlag.BUSY
                    return cached
                self._cond.wait()

            # Not cached: recycle a buffer that is neither busy nor awaiting commit.
            for b in reversed(self._lru):
                if not b.flags & (BufFlag.BUSY | BufFlag.DIRTY):
                    b.dev = dev
                    b.blockno = blockno
                    b.flags = BufFlag.BUSY
                    return b
        raise FsPanic("bget: no buffers")

    def bread(self, dev: int, blockno: int) -> Buf:
        """Return a busy buffer holding the contents of the given block."""
        buf = self._get(dev, blockno)
        if not buf.flags & BufFlag.VALID:
            self._disk.rw(buf)
        return buf

    def bwrite(self, buf: Buf) -> None:
        """Write a busy buffer's contents to disk."""
        if not buf.flags & BufFlag.BUSY:
            raise FsPanic("bwrite")
        buf.flags |= BufFlag.DIRTY
        self._disk.rw(buf)

    def brelse(self, buf: Buf) -> None:
        """Release a busy buffer and make it the most recently used."""
        if not buf.flags & BufFlag.BUSY:
            raise FsPanic("brelse")
        with self._cond:
            self._lru.remove(buf)
            self._lru.insert(0, buf)
            buf.flags &= ~BufFlag.BUSY
            self._cond.notify_all()