"""Inodes, file contents, directories and path names."""

from __future__ import annotations

import errno
import struct
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional, Union

from xvfs.bufcache import Buf, BufferCache
from xvfs.layout import (
    BPB,
    BSIZE,
    DINODE_SIZE,
    DIRENT_SIZE,
    DIRSIZ,
    IPB,
    MAXFILE,
    NDEV,
    NDIRECT,
    NINDIRECT,
    NINODE,
    ROOTINO,
    DInode,
    Dirent,
    FsPanic,
    InodeType,
    Stat,
    SuperBlock,
    bblock,
    iblock,
)
from xvfs.log import Log

Name = Union[str, bytes]
DeviceRead = Callable[["Inode", int], bytes]
DeviceWrite = Callable[["Inode", bytes], int]

_ADDR = struct.Struct("<I")


def _to_bytes(value: Name) -> bytes:
    return value.encode() if isinstance(value, str) else bytes(value)


@dataclass(eq=False)
class Inode:
    """In-memory copy of an inode, plus cache bookkeeping."""

    dev: int = 0
    inum: int = 0
    ref: int = 0
    busy: bool = False
    valid: bool = False
    type: int = 0
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: list[int] = field(default_factory=lambda: [0] * (NDIRECT + 1))


def namecmp(s: Name, t: Name) -> int:
    """Compare two directory entry names over at most DIRSIZ bytes."""
    a = _to_bytes(s)[:DIRSIZ].split(b"\0", 1)[0]
    b = _to_bytes(t)[:DIRSIZ].split(b"\0", 1)[0]
    return (a > b) - (a < b)


def skipelem(path):
    """Split the first element off ``path``.

    Returns ``(name, rest)`` where ``name`` is cut to DIRSIZ characters
    and ``rest`` has no leading slashes, or None if no element remains.
    """
    sep = b"/" if isinstance(path, (bytes, bytearray)) else "/"
    path = path.lstrip(sep)
    if not path:
        return None
    elem, _, rest = path.partition(sep)
    return elem[:DIRSIZ], rest.lstrip(sep)


class FileSystem:
    """The file system on one device, reached through a buffer cache and a log."""

    def __init__(self, cache: BufferCache, log: Log, dev: int) -> None:
        self._cache = cache
        self._log = log
        self.dev = dev
        self._cond = threading.Condition()
        self._inodes = [Inode() for _ in range(NINODE)]
        self._devsw: dict[int, tuple[Optional[DeviceRead], Optional[DeviceWrite]]] = {}
        with self._block(1) as bp:
            self.sb = SuperBlock.unpack(bp.data)

    @contextmanager
    def _block(self, blockno: int) -> Iterator[Buf]:
        bp = self._cache.bread(self.dev, blockno)
        try:
            yield bp
        finally:
            self._cache.brelse(bp)

    def register_device(
        self,
        major: int,
        read: Optional[DeviceRead] = None,
        write: Optional[DeviceWrite] = None,
    ) -> None:
        """Install the read and write handlers for a major device number."""
        if not 0 <= major < NDEV:
            raise ValueError(f"major device number must be in [0, {NDEV})")
        self._devsw[major] = (read, write)

    # Blocks.

    def _bzero(self, blockno: int) -> None:
        with self._block(blockno) as bp:
            bp.data[:] = bytes(BSIZE)
            self._log.log_write(bp)

    def balloc(self) -> int:
        """Allocate a zeroed disk block and return its number."""
        for base in range(0, self.sb.size, BPB):
            with self._block(bblock(base, self.sb)) as bp:
                found = None
                for bi in range(min(BPB, self.sb.size - base)):
                    mask = 1 << (bi % 8)
                    if not bp.data[bi // 8] & mask:
                        bp.data[bi // 8] |= mask
                        self._log.log_write(bp)
                        found = base + bi
                        break
            if found is not None:
                self._bzero(found)
                return found
        raise FsPanic("balloc: out of blocks")

    def bfree(self, b: int) -> None:
        """Mark disk block ``b`` free."""
        with self._block(bblock(b, self.sb)) as bp:
            bi = b % BPB
            mask = 1 << (bi % 8)
            if not bp.data[bi // 8] & mask:
                raise FsPanic("freeing free block")
            bp.data[bi // 8] &= ~mask & 0xFF
            self._log.log_write(bp)

    # Inodes.

    def ialloc(self, itype: int) -> Inode:
        """Allocate a free on-disk inode of the given type and return it unlocked."""
        for inum in range(1, self.sb.ninodes):
            with self._block(iblock(inum, self.sb)) as bp:
                off = (inum % IPB) * DINODE_SIZE
                if DInode.unpack(bp.data[off:off + DINODE_SIZE]).type == 0:
                    bp.data[off:off + DINODE_SIZE] = DInode(type=int(itype)).pack()
                    self._log.log_write(bp)
                    allocated = True
                else:
                    allocated = False
            if allocated:
                return self.iget(inum)
        raise FsPanic("ialloc: no inodes")

    def iupdate(self, ip: Inode) -> None:
        """Copy a modified in-memory inode to disk."""
        with self._block(iblock(ip.inum, self.sb)) as bp:
            off = (ip.inum % IPB) * DINODE_SIZE
            dinode = DInode(ip.type, ip.major, ip.minor, ip.nlink, ip.size, list(ip.addrs))
            bp.data[off:off + DINODE_SIZE] = dinode.pack()
            self._log.log_write(bp)

    def iget(self, inum: int) -> Inode:
        """Return the cached inode ``inum``, neither locked nor read from disk."""
        with self._cond:
            empty = None
            for ip in self._inodes:
                if ip.ref > 0 and ip.dev == self.dev and ip.inum == inum:
                    ip.ref += 1
                    return ip
                if empty is None and ip.ref == 0:
                    empty = ip
            if empty is None:
                raise FsPanic("iget: no inodes")
            empty.dev = self.dev
            empty.inum = inum
            empty.ref = 1
            empty.busy = False
            empty.valid = False
            return empty

    def idup(self, ip: Inode) -> Inode:
        """Take another reference to ``ip``."""
        with self._cond:
            ip.ref += 1
        return ip

    def ilock(self, ip: Inode) -> None:
        """Lock ``ip``, reading it from disk if needed."""
        if ip is None or ip.ref < 1:
            raise FsPanic("ilock")
        with self._cond:
            while ip.busy:
                self._cond.wait()
            ip.busy = True
        if not ip.valid:
            with self._block(iblock(ip.inum, self.sb)) as bp:
                off = (ip.inum % IPB) * DINODE_SIZE
                dip = DInode.unpack(bp.data[off:off + DINODE_SIZE])
            ip.type = dip.type
            ip.major = dip.major
            ip.minor = dip.minor
            ip.nlink = dip.nlink
            ip.size = dip.size
            ip.addrs = list(dip.addrs)
            ip.valid = True
            if ip.type == 0:
                raise FsPanic("ilock: no type")

    def iunlock(self, ip: Inode) -> None:
        """Unlock ``ip``."""
        if ip is None or not ip.busy or ip.ref < 1:
            raise FsPanic("iunlock")
        with self._cond:
            ip.busy = False
            self._cond.notify_all()

    def iput(self, ip: Inode) -> None:
        """Drop a reference; free the inode on disk if it was the last and unlinked."""
        with self._cond:
            free = ip.ref == 1 and ip.valid and ip.nlink == 0
            if free:
                if ip.busy:
                    raise FsPanic("iput busy")
                ip.busy = True
        if free:
            self.itrunc(ip)
            ip.type = 0
            self.iupdate(ip)
        with self._cond:
            if free:
                ip.busy = False
                ip.valid = False
                self._cond.notify_all()
            ip.ref -= 1

    def iunlockput(self, ip: Inode) -> None:
        """Unlock ``ip`` and drop a reference to it."""
        self.iunlock(ip)
        self.iput(ip)

    # Inode content.

    def bmap(self, ip: Inode, bn: int) -> int:
        """Disk block holding block ``bn`` of ``ip``, allocated if absent."""
        if bn < NDIRECT:
            if ip.addrs[bn] == 0:
                ip.addrs[bn] = self.balloc()
            return ip.addrs[bn]
        bn -= NDIRECT
        if bn < NINDIRECT:
            if ip.addrs[NDIRECT] == 0:
                ip.addrs[NDIRECT] = self.balloc()
            with self._block(ip.addrs[NDIRECT]) as bp:
                (addr,) = _ADDR.unpack_from(bp.data, bn * 4)
                if addr == 0:
                    addr = self.balloc()
                    _ADDR.pack_into(bp.data, bn * 4, addr)
                    self._log.log_write(bp)
            return addr
        raise FsPanic("bmap: out of range")

    def itrunc(self, ip: Inode) -> None:
        """Free all content blocks of ``ip`` and set its size to zero."""
        for i, addr in enumerate(ip.addrs[:NDIRECT]):
            if addr:
                self.bfree(addr)
                ip.addrs[i] = 0
        if ip.addrs[NDIRECT]:
            with self._block(ip.addrs[NDIRECT]) as bp:
                table = struct.unpack_from(f"<{NINDIRECT}I", bp.data, 0)
            for addr in table:
                if addr:
                    self.bfree(addr)
            self.bfree(ip.addrs[NDIRECT])
            ip.addrs[NDIRECT] = 0
        ip.size = 0
        self.iupdate(ip)

    def stati(self, ip: Inode) -> Stat:
        """Metadata of ``ip``."""
        return Stat(type=ip.type, dev=ip.dev, ino=ip.inum, nlink=ip.nlink, size=ip.size)

    def _device(self, ip: Inode, index: int):
        handlers = self._devsw.get(ip.major) if 0 <= ip.major < NDEV else None
        handler = handlers[index] if handlers else None
        if handler is None:
            raise OSError(errno.ENODEV, f"no handler for device {ip.major}")
        return handler

    def readi(self, ip: Inode, off: int, n: int) -> bytes:
        """Read up to ``n`` bytes of ``ip`` starting at ``off``."""
        if ip.type == InodeType.DEV:
            return self._device(ip, 0)(ip, n)
        if off < 0 or n < 0 or off > ip.size:
            raise ValueError("read offset out of range")
        n = min(n, ip.size - off)
        chunks = []
        tot = 0
        while tot < n:
            with self._block(self.bmap(ip, off // BSIZE)) as bp:
                start = off % BSIZE
                m = min(n - tot, BSIZE - start)
                chunks.append(bytes(bp.data[start:start + m]))
            tot += m
            off += m
        return b"".join(chunks)

    def writei(self, ip: Inode, data: bytes, off: int) -> int:
        """Write ``data`` into ``ip`` at ``off``, growing it if needed."""
        if ip.type == InodeType.DEV:
            return self._device(ip, 1)(ip, bytes(data))
        n = len(data)
        if off < 0 or off > ip.size:
            raise ValueError("write offset out of range")
        if off + n > MAXFILE * BSIZE:
            raise ValueError("write past the largest file size")
        tot = 0
        while tot < n:
            with self._block(self.bmap(ip, off // BSIZE)) as bp:
                start = off % BSIZE
                m = min(n - tot, BSIZE - start)
                bp.data[start:start + m] = data[tot:tot + m]
                self._log.log_write(bp)
            tot += m
            off += m
        if n > 0 and off > ip.size:
            ip.size = off
            self.iupdate(ip)
        return n

    # Directories.

    def _dirents(self, dp: Inode) -> Iterator[tuple[int, Dirent]]:
        for off in range(0, dp.size, DIRENT_SIZE):
            raw = self.readi(dp, off, DIRENT_SIZE)
            if len(raw) != DIRENT_SIZE:
                raise FsPanic("dirlink read")
            yield off, Dirent.unpack(raw)

    def dirlookup(self, dp: Inode, name: Name) -> Optional[tuple[Inode, int]]:
        """Find ``name`` in directory ``dp``; return its inode and entry offset."""
        if dp.type != InodeType.DIR:
            raise FsPanic("dirlookup not DIR")
        for off, de in self._dirents(dp):
            if de.inum and namecmp(name, de.name) == 0:
                return self.iget(de.inum), off
        return None

    def dirlink(self, dp: Inode, name: Name, inum: int) -> None:
        """Add the entry ``(name, inum)`` to directory ``dp``."""
        found = self.dirlookup(dp, name)
        if found is not None:
            self.iput(found[0])
            raise FileExistsError(errno.EEXIST, "name already present", name)
        off = next(
            (o for o, de in self._dirents(dp) if de.inum == 0),
            len(range(0, dp.size, DIRENT_SIZE)) * DIRENT_SIZE,
        )
        entry = Dirent(inum, _to_bytes(name)[:DIRSIZ])
        if self.writei(dp, entry.pack(), off) != DIRENT_SIZE:
            raise FsPanic("dirlink")

    # Paths.

    def _namex(self, path: Name, parent: bool, cwd: Optional[Inode]):
        path = _to_bytes(path)
        if path.startswith(b"/") or cwd is None:
            ip = self.iget(ROOTINO)
        else:
            ip = self.idup(cwd)

        while (step := skipelem(path)) is not None:
            name, path = step
            self.ilock(ip)
            if ip.type != InodeType.DIR:
                self.iunlockput(ip)
                return None
            if parent and not path:
                self.iunlock(ip)
                return ip, name
            found = self.dirlookup(ip, name)
            if found is None:
                self.iunlockput(ip)
                return None
            self.iunlockput(ip)
            ip = found[0]
        if parent:
            self.iput(ip)
            return None
        return ip

    def namei(self, path: Name, cwd: Optional[Inode] = None) -> Optional[Inode]:
        """Inode for ``path``, relative to ``cwd`` (the root if None)."""
        return self._namex(path, False, cwd)

    def nameiparent(
        self, path: Name, cwd: Optional[Inode] = None
    ) -> Optional[tuple[Inode, bytes]]:
        """Inode of the parent directory of ``path`` and its final element."""
        return self._namex(path, True, cwd)