"""A disk whose blocks live in memory."""

from __future__ import annotations

from xvfs.bufcache import Buf, BufFlag
from xvfs.layout import BSIZE, ROOTDEV, FsPanic


class MemDisk:
    """Stores a file-system image in memory and serves block requests."""

    def __init__(self, image: bytes, dev: int = ROOTDEV) -> None:
        self._data = bytearray(image)
        self.dev = dev
        self.nblocks = len(self._data) // BSIZE

    def rw(self, buf: Buf) -> None:
        """Write ``buf`` if dirty, else read it; either way mark it valid."""
        if not buf.flags & BufFlag.BUSY:
            raise FsPanic("iderw: buf not busy")
        if buf.flags & (BufFlag.VALID | BufFlag.DIRTY) == BufFlag.VALID:
            raise FsPanic("iderw: nothing to do")
        if buf.dev != self.dev:
            raise FsPanic(f"iderw: request not for disk {self.dev}")
        if not 0 <= buf.blockno < self.nblocks:
            raise FsPanic("iderw: block out of range")

        start = buf.blockno * BSIZE
        if buf.flags & BufFlag.DIRTY:
            buf.flags &= ~BufFlag.DIRTY
            self._data[start:start + BSIZE] = buf.data
        else:
            buf.data[:] = self._data[start:start + BSIZE]
        buf.flags |= BufFlag.VALID

    def image(self) -> bytes:
        """The current contents of the whole disk."""
        return bytes(self._data)