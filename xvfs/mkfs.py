"""Build a file-system image holding a root directory and a set of files."""

from __future__ import annotations

import struct
import sys
from pathlib import Path
from typing import Iterable, Union

from xvfs.layout import (
    BSIZE,
    DINODE_SIZE,
    FSSIZE,
    IPB,
    LOGSIZE,
    MAXFILE,
    NDIRECT,
    NINDIRECT,
    ROOTINO,
    DInode,
    Dirent,
    FsPanic,
    InodeType,
    SuperBlock,
    iblock,
)

NINODES = 200

_INDIRECT = struct.Struct(f"<{NINDIRECT}I")


class ImageBuilder:
    """Lays out a fresh image and fills its root directory.

    Disk layout:
    [ boot block | super block | log | inode blocks | free bit map | data blocks ]
    """

    def __init__(self) -> None:
        self.nbitmap = FSSIZE // (BSIZE * 8) + 1
        self.ninodeblocks = NINODES // IPB + 1
        self.nlog = LOGSIZE
        self.nmeta = 2 + self.nlog + self.ninodeblocks + self.nbitmap
        self.nblocks = FSSIZE - self.nmeta
        self.sb = SuperBlock(
            size=FSSIZE,
            nblocks=self.nblocks,
            ninodes=NINODES,
            nlog=self.nlog,
            logstart=2,
            inodestart=2 + self.nlog,
            bmapstart=2 + self.nlog + self.ninodeblocks,
        )
        self._image = bytearray(FSSIZE * BSIZE)
        self._freeinode = 1
        self.freeblock = self.nmeta
        self._finished = False

        self._wsect(1, self.sb.pack())
        self.rootino = self.ialloc(InodeType.DIR)
        if self.rootino != ROOTINO:
            raise FsPanic("root inode is not the first inode")
        self.iappend(self.rootino, Dirent(self.rootino, b".").pack())
        self.iappend(self.rootino, Dirent(self.rootino, b"..").pack())

    def _wsect(self, sec: int, data: bytes) -> None:
        if not 0 <= sec < FSSIZE:
            raise ValueError(f"sector {sec} outside the image")
        if len(data) > BSIZE:
            raise ValueError("sector data larger than a block")
        self._image[sec * BSIZE:(sec + 1) * BSIZE] = bytes(data).ljust(BSIZE, b"\0")

    def _rsect(self, sec: int) -> bytearray:
        if not 0 <= sec < FSSIZE:
            raise ValueError(f"sector {sec} outside the image")
        return bytearray(self._image[sec * BSIZE:(sec + 1) * BSIZE])

    def _winode(self, inum: int, din: DInode) -> None:
        bn = iblock(inum, self.sb)
        block = self._rsect(bn)
        off = (inum % IPB) * DINODE_SIZE
        block[off:off + DINODE_SIZE] = din.pack()
        self._wsect(bn, block)

    def _rinode(self, inum: int) -> DInode:
        block = self._rsect(iblock(inum, self.sb))
        off = (inum % IPB) * DINODE_SIZE
        return DInode.unpack(block[off:off + DINODE_SIZE])

    def _allocblock(self) -> int:
        if self.freeblock >= FSSIZE:
            raise ValueError("image out of data blocks")
        b = self.freeblock
        self.freeblock += 1
        return b

    def ialloc(self, itype: int) -> int:
        """Allocate the next inode with one link and return its number."""
        if self._freeinode >= NINODES:
            raise ValueError("image out of inodes")
        inum = self._freeinode
        self._freeinode += 1
        self._winode(inum, DInode(type=int(itype), nlink=1, size=0))
        return inum

    def iappend(self, inum: int, data: bytes) -> None:
        """Append ``data`` to the contents of inode ``inum``."""
        view = memoryview(bytes(data))
        din = self._rinode(inum)
        off = din.size
        pos = 0
        while pos < len(view):
            fbn = off // BSIZE
            if fbn >= MAXFILE:
                raise ValueError("file too large for the image")
            if fbn < NDIRECT:
                if din.addrs[fbn] == 0:
                    din.addrs[fbn] = self._allocblock()
                x = din.addrs[fbn]
            else:
                if din.addrs[NDIRECT] == 0:
                    din.addrs[NDIRECT] = self._allocblock()
                indirect = list(_INDIRECT.unpack(self._rsect(din.addrs[NDIRECT])))
                if indirect[fbn - NDIRECT] == 0:
                    indirect[fbn - NDIRECT] = self._allocblock()
                    self._wsect(din.addrs[NDIRECT], _INDIRECT.pack(*indirect))
                x = indirect[fbn - NDIRECT]
            n1 = min(len(view) - pos, (fbn + 1) * BSIZE - off)
            block = self._rsect(x)
            start = off - fbn * BSIZE
            block[start:start + n1] = view[pos:pos + n1]
            self._wsect(x, block)
            pos += n1
            off += n1
        din.size = off
        self._winode(inum, din)

    def add_file(self, name: Union[str, bytes], data: bytes) -> int:
        """Add a regular file to the root directory and return its inode number.

        A leading underscore is dropped from the name.
        """
        raw = name.encode() if isinstance(name, str) else bytes(name)
        if b"/" in raw:
            raise ValueError(f"file name may not contain '/': {name!r}")
        if raw.startswith(b"_"):
            raw = raw[1:]
        inum = self.ialloc(InodeType.FILE)
        self.iappend(self.rootino, Dirent(inum, raw).pack())
        self.iappend(inum, data)
        return inum

    def finish(self) -> bytes:
        """Round up the root directory, write the free map and return the image."""
        if self._finished:
            raise RuntimeError("image already finished")
        self._finished = True

        din = self._rinode(self.rootino)
        din.size = (din.size // BSIZE + 1) * BSIZE
        self._winode(self.rootino, din)

        used = self.freeblock
        if used >= BSIZE * 8:
            raise ValueError("allocated blocks do not fit one bitmap block")
        bitmap = bytearray(BSIZE)
        for i in range(used):
            bitmap[i // 8] |= 1 << (i % 8)
        self._wsect(self.sb.bmapstart, bitmap)
        return bytes(self._image)


def build_image(files: Iterable[tuple[Union[str, bytes], bytes]]) -> bytes:
    """Build an image whose root directory holds the given ``(name, data)`` files."""
    builder = ImageBuilder()
    for name, data in files:
        builder.add_file(name, data)
    return builder.finish()


def main(argv=None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        print("Usage: mkfs fs.img files...", file=sys.stderr)
        return 1
    image_path, *names = args

    builder = ImageBuilder()
    print(
        f"nmeta {builder.nmeta} (boot, super, log blocks {builder.nlog} "
        f"inode blocks {builder.ninodeblocks}, bitmap blocks {builder.nbitmap}) "
        f"blocks {builder.nblocks} total {FSSIZE}"
    )
    for name in names:
        try:
            data = Path(name).read_bytes()
            builder.add_file(name, data)
        except OSError as exc:
            print(f"{name}: {exc.strerror}", file=sys.stderr)
            return 1
        except ValueError as exc:
            print(f"{name}: {exc}", file=sys.stderr)
            return 1

    print(f"balloc: first {builder.freeblock} blocks have been allocated")
    image = builder.finish()
    print(f"balloc: write bitmap block at sector {builder.sb.bmapstart}")
    try:
        Path(image_path).write_bytes(image)
    except OSError as exc:
        print(f"{image_path}: {exc.strerror}", file=sys.stderr)
        return 1
    return 0