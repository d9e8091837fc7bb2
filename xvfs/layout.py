"""On-disk layout of the file system, its limits and its record formats."""

from __future__ import annotations

import enum
import struct
from dataclasses import dataclass, field

# System limits.
NPROC = 64
KSTACKSIZE = 4096
NCPU = 8
NOFILE = 16
NFILE = 100
NINODE = 50
NDEV = 10
ROOTDEV = 1
MAXARG = 32
MAXOPBLOCKS = 10
LOGSIZE = MAXOPBLOCKS * 3
NBUF = MAXOPBLOCKS * 3
FSSIZE = 1000

# Disk layout:
# [ boot block | super block | log | inode blocks | free bit map | data blocks ]
ROOTINO = 1
BSIZE = 512
NDIRECT = 12
NINDIRECT = BSIZE // 4
MAXFILE = NDIRECT + NINDIRECT
DIRSIZ = 14

_SUPERBLOCK = struct.Struct("<7I")
_DINODE = struct.Struct(f"<4hI{NDIRECT + 1}I")
_DIRENT = struct.Struct(f"<H{DIRSIZ}s")

SUPERBLOCK_SIZE = _SUPERBLOCK.size
DINODE_SIZE = _DINODE.size
DIRENT_SIZE = _DIRENT.size

IPB = BSIZE // DINODE_SIZE
BPB = BSIZE * 8


class FsPanic(RuntimeError):
    """An unrecoverable inconsistency detected by the file system."""


class InodeType(enum.IntEnum):
    """Kinds of inode; an on-disk type of zero marks a free inode."""

    DIR = 1
    FILE = 2
    DEV = 3


@dataclass
class SuperBlock:
    """Describes where each region of the disk image lives."""

    size: int = 0
    nblocks: int = 0
    ninodes: int = 0
    nlog: int = 0
    logstart: int = 0
    inodestart: int = 0
    bmapstart: int = 0

    def pack(self) -> bytes:
        return _SUPERBLOCK.pack(
            self.size,
            self.nblocks,
            self.ninodes,
            self.nlog,
            self.logstart,
            self.inodestart,
            self.bmapstart,
        )

    @classmethod
    def unpack(cls, data) -> SuperBlock:
        return cls(*_SUPERBLOCK.unpack_from(data, 0))


@dataclass
class DInode:
    """The on-disk form of an inode."""

    type: int = 0
    major: int = 0
    minor: int = 0
    nlink: int = 0
    size: int = 0
    addrs: list[int] = field(default_factory=lambda: [0] * (NDIRECT + 1))

    def pack(self) -> bytes:
        if len(self.addrs) != NDIRECT + 1:
            raise ValueError(f"an inode holds exactly {NDIRECT + 1} block addresses")
        return _DINODE.pack(
            self.type, self.major, self.minor, self.nlink, self.size, *self.addrs
        )

    @classmethod
    def unpack(cls, data) -> DInode:
        itype, major, minor, nlink, size, *addrs = _DINODE.unpack_from(data, 0)
        return cls(itype, major, minor, nlink, size, list(addrs))


@dataclass
class Dirent:
    """One directory entry; an inode number of zero marks a free slot."""

    inum: int = 0
    name: bytes = b""

    def pack(self) -> bytes:
        # Names of DIRSIZ bytes or more are truncated and carry no terminator.
        return _DIRENT.pack(self.inum, self.name)

    @classmethod
    def unpack(cls, data) -> Dirent:
        inum, raw = _DIRENT.unpack_from(data, 0)
        return cls(inum, raw.split(b"\0", 1)[0])


@dataclass
class Stat:
    """Metadata about a file, as reported to callers."""

    type: int
    dev: int
    ino: int
    nlink: int
    size: int


def iblock(inum: int, sb: SuperBlock) -> int:
    """Block holding inode ``inum``."""
    return inum // IPB + sb.inodestart


def bblock(b: int, sb: SuperBlock) -> int:
    """Block of the free map holding the bit for block ``b``."""
    return b // BPB + sb.bmapstart