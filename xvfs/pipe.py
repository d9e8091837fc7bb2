"""Pipes: a bounded byte channel between a writing and a reading file."""

from __future__ import annotations

import errno
import threading

from xvfs.file import File, FileKind, FileTable

PIPESIZE = 512


class Pipe:
    """A ring buffer of PIPESIZE bytes with blocking read and write."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._data = bytearray(PIPESIZE)
        self.nread = 0
        self.nwrite = 0
        self.readopen = True
        self.writeopen = True

    def write(self, data: bytes) -> int:
        """Write all of ``data``, blocking while the buffer is full."""
        data = bytes(data)
        with self._cond:
            for byte in data:
                while self.nwrite == self.nread + PIPESIZE:
                    if not self.readopen:
                        raise BrokenPipeError(errno.EPIPE, "read end closed")
                    self._cond.notify_all()
                    self._cond.wait()
                self._data[self.nwrite % PIPESIZE] = byte
                self.nwrite += 1
            self._cond.notify_all()
        return len(data)

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes, blocking while empty and the write end is open."""
        with self._cond:
            while self.nread == self.nwrite and self.writeopen:
                self._cond.wait()
            take = max(0, min(n, self.nwrite - self.nread))
            start = self.nread % PIPESIZE
            ring = self._data[start:] + self._data[:start]
            out = bytes(ring[:take])
            self.nread += take
            self._cond.notify_all()
        return out

    def close(self, writable: bool) -> None:
        """Close the write end if ``writable``, else the read end."""
        with self._cond:
            if writable:
                self.writeopen = False
            else:
                self.readopen = False
            self._cond.notify_all()


def pipealloc(table: FileTable) -> tuple[File, File]:
    """Create a pipe and return its read file and its write file."""
    f0 = table.alloc()
    try:
        f1 = table.alloc()
    except OSError:
        table.close(f0)
        raise
    pipe = Pipe()
    f0.kind = FileKind.PIPE
    f0.readable = True
    f0.writable = False
    f0.pipe = pipe
    f1.kind = FileKind.PIPE
    f1.readable = False
    f1.writable = True
    f1.pipe = pipe
    return f0, f1