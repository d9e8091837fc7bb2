"""Write-ahead redo log that groups file-system operations into transactions."""

from __future__ import annotations

import struct
import threading
from contextlib import contextmanager
from typing import Iterator

from xvfs.bufcache import Buf, BufferCache, BufFlag
from xvfs.layout import BSIZE, LOGSIZE, MAXOPBLOCKS, FsPanic, SuperBlock

_HEADER_SIZE = 4 * (1 + LOGSIZE)


class Log:
    """Physical redo log for one device.

    The on-disk log is a header block listing home block numbers,
    followed by copies of those blocks. A commit happens only when no
    operation is in progress.
    """

    def __init__(self, cache: BufferCache, dev: int, sb: SuperBlock) -> None:
        if _HEADER_SIZE >= BSIZE:
            raise FsPanic("initlog: too big logheader")
        self._cache = cache
        self._cond = threading.Condition()
        self.dev = dev
        self.start = sb.logstart
        self.size = sb.nlog
        self.outstanding = 0
        self.committing = False
        self.blocks: list[int] = []
        self._recover()

    def _install_trans(self) -> None:
        """Copy committed blocks from the log to their home locations."""
        for tail, home in enumerate(self.blocks):
            lbuf = self._cache.bread(self.dev, self.start + tail + 1)
            dbuf = self._cache.bread(self.dev, home)
            dbuf.data[:] = lbuf.data
            self._cache.bwrite(dbuf)
            self._cache.brelse(lbuf)
            self._cache.brelse(dbuf)

    def _read_head(self) -> None:
        buf = self._cache.bread(self.dev, self.start)
        try:
            (n,) = struct.unpack_from("<i", buf.data, 0)
            if not 0 <= n <= LOGSIZE:
                raise FsPanic("log header corrupt")
            self.blocks = list(struct.unpack_from(f"<{n}i", buf.data, 4))
        finally:
            self._cache.brelse(buf)

    def _write_head(self) -> None:
        """Write the in-memory header to disk; this is the commit point."""
        buf = self._cache.bread(self.dev, self.start)
        n = len(self.blocks)
        struct.pack_into(f"<i{n}i", buf.data, 0, n, *self.blocks)
        self._cache.bwrite(buf)
        self._cache.brelse(buf)

    def _recover(self) -> None:
        self._read_head()
        self._install_trans()
        self.blocks = []
        self._write_head()

    def _write_log(self) -> None:
        """Copy modified blocks from the cache into the log area."""
        for tail, home in enumerate(self.blocks):
            to = self._cache.bread(self.dev, self.start + tail + 1)
            src = self._cache.bread(self.dev, home)
            to.data[:] = src.data
            self._cache.bwrite(to)
            self._cache.brelse(src)
            self._cache.brelse(to)

    def _commit(self) -> None:
        if self.blocks:
            self._write_log()
            self._write_head()
            self._install_trans()
            self.blocks = []
            self._write_head()

    def begin_op(self) -> None:
        """Start an operation, waiting while a commit runs or space is short."""
        with self._cond:
            while (
                self.committing
                or len(self.blocks) + (self.outstanding + 1) * MAXOPBLOCKS > LOGSIZE
            ):
                self._cond.wait()
            self.outstanding += 1

    def end_op(self) -> None:
        """Finish an operation, committing if it was the last one outstanding."""
        with self._cond:
            self.outstanding -= 1
            if self.committing:
                raise FsPanic("log.committing")
            do_commit = self.outstanding == 0
            if do_commit:
                self.committing = True
            else:
                self._cond.notify_all()

        if do_commit:
            try:
                self._commit()
            finally:
                with self._cond:
                    self.committing = False
                    self._cond.notify_all()

    def log_write(self, buf: Buf) -> None:
        """Record a modified buffer in the current transaction and pin it."""
        if len(self.blocks) >= LOGSIZE or len(self.blocks) >= self.size - 1:
            raise FsPanic("too big a transaction")
        if self.outstanding < 1:
            raise FsPanic("log_write outside of trans")
        with self._cond:
            if buf.blockno not in self.blocks:
                self.blocks.append(buf.blockno)
            buf.flags |= BufFlag.DIRTY

    @contextmanager
    def transaction(self) -> Iterator[Log]:
        """Run the enclosed code as one operation of the log."""
        self.begin_op()
        try:
            yield self
        finally:
            self.end_op()