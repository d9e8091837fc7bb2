"""Open files: a shared table of reference-counted file objects."""

from __future__ import annotations

import enum
import errno
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterator, Optional

from xvfs.layout import BSIZE, LOGSIZE, NFILE, FsPanic, Stat

if TYPE_CHECKING:
    from xvfs.fs import FileSystem, Inode
    from xvfs.pipe import Pipe

# Bytes written per transaction: leaves room in the log for the inode,
# the indirect block, allocation blocks and two blocks of slop for
# writes that do not start on a block boundary.
_MAX_WRITE = ((LOGSIZE - 1 - 1 - 2) // 2) * BSIZE


class FileKind(enum.Enum):
    """What an open file refers to."""

    NONE = 0
    PIPE = 1
    INODE = 2


@dataclass(eq=False)
class File:
    """One open file, shared by every descriptor that refers to it."""

    kind: FileKind = FileKind.NONE
    ref: int = 0
    readable: bool = False
    writable: bool = False
    pipe: Optional["Pipe"] = None
    ip: Optional["Inode"] = None
    off: int = 0


class FileTable:
    """A fixed pool of open files."""

    def __init__(self, fs: Optional["FileSystem"], nfile: int = NFILE) -> None:
        self._fs = fs
        self._lock = threading.Lock()
        self._files = [File() for _ in range(nfile)]

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        with self._fs._log.transaction():
            yield

    def alloc(self) -> File:
        """Take a free file from the table, with one reference."""
        with self._lock:
            f = next((f for f in self._files if f.ref == 0), None)
            if f is None:
                raise OSError(errno.ENFILE, "file table full")
            f.ref = 1
            return f

    def dup(self, f: File) -> File:
        """Take another reference to ``f``."""
        with self._lock:
            if f.ref < 1:
                raise FsPanic("filedup")
            f.ref += 1
            return f

    def close(self, f: File) -> None:
        """Drop a reference to ``f``, releasing what it refers to on the last one."""
        with self._lock:
            if f.ref < 1:
                raise FsPanic("fileclose")
            f.ref -= 1
            if f.ref > 0:
                return
            kind, pipe, ip, writable = f.kind, f.pipe, f.ip, f.writable
            f.kind = FileKind.NONE
            f.pipe = None
            f.ip = None

        if kind is FileKind.PIPE:
            pipe.close(writable)
        elif kind is FileKind.INODE:
            with self._transaction():
                self._fs.iput(ip)

    def stat(self, f: File) -> Stat:
        """Metadata of the inode behind ``f``."""
        if f.kind is not FileKind.INODE:
            raise OSError(errno.EBADF, "not an inode file")
        self._fs.ilock(f.ip)
        try:
            return self._fs.stati(f.ip)
        finally:
            self._fs.iunlock(f.ip)

    def read(self, f: File, n: int) -> bytes:
        """Read up to ``n`` bytes from ``f`` at its current offset."""
        if not f.readable:
            raise OSError(errno.EBADF, "file not open for reading")
        if f.kind is FileKind.PIPE:
            return f.pipe.read(n)
        if f.kind is FileKind.INODE:
            self._fs.ilock(f.ip)
            try:
                data = self._fs.readi(f.ip, f.off, n)
                f.off += len(data)
            finally:
                self._fs.iunlock(f.ip)
            return data
        raise FsPanic("fileread")

    def write(self, f: File, data: bytes) -> int:
        """Write ``data`` to ``f`` at its current offset."""
        if not f.writable:
            raise OSError(errno.EBADF, "file not open for writing")
        data = bytes(data)
        if f.kind is FileKind.PIPE:
            return f.pipe.write(data)
        if f.kind is FileKind.INODE:
            written = 0
            while written < len(data):
                chunk = data[written:written + _MAX_WRITE]
                with self._transaction():
                    self._fs.ilock(f.ip)
                    try:
                        r = self._fs.writei(f.ip, chunk, f.off)
                        f.off += r
                    finally:
                        self._fs.iunlock(f.ip)
                if r != len(chunk):
                    raise FsPanic("short filewrite")
                written += r
            return written
        raise FsPanic("filewrite")