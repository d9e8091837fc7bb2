import threading

import pytest

from xvfs.bufcache import BufFlag, BufferCache
from xvfs.disk import MemDisk
from xvfs.layout import BSIZE, FsPanic


def _disk(nblocks=8):
    return MemDisk(b"".join(bytes([i]) * BSIZE for i in range(nblocks)))


def test_bread_returns_block_contents():
    cache = BufferCache(_disk())
    buf = cache.bread(1, 5)
    assert bytes(buf.data) == bytes([5]) * BSIZE
    assert buf.flags & BufFlag.BUSY
    assert buf.flags & BufFlag.VALID
    assert (buf.dev, buf.blockno) == (1, 5)


def test_released_block_is_served_from_cache():
    cache = BufferCache(_disk())
    first = cache.bread(1, 3)
    first.data[0] = 0xAA  # not written: only the cached copy changes
    cache.brelse(first)
    again = cache.bread(1, 3)
    assert again is first
    assert again.data[0] == 0xAA


def test_bwrite_reaches_disk():
    disk = _disk()
    cache = BufferCache(disk)
    buf = cache.bread(1, 2)
    buf.data[:] = b"q" * BSIZE
    cache.bwrite(buf)
    cache.brelse(buf)
    assert disk.image()[2 * BSIZE:3 * BSIZE] == b"q" * BSIZE
    assert not buf.flags & BufFlag.DIRTY


def test_release_and_write_require_busy():
    cache = BufferCache(_disk())
    buf = cache.bread(1, 1)
    cache.brelse(buf)
    with pytest.raises(FsPanic, match="brelse"):
        cache.brelse(buf)
    with pytest.raises(FsPanic, match="bwrite"):
        cache.bwrite(buf)


def test_runs_out_of_buffers():
    cache = BufferCache(_disk(), nbuf=2)
    cache.bread(1, 0)
    cache.bread(1, 1)
    with pytest.raises(FsPanic, match="no buffers"):
        cache.bread(1, 2)


def test_dirty_buffers_are_not_recycled():
    cache = BufferCache(_disk(), nbuf=1)
    buf = cache.bread(1, 0)
    buf.flags |= BufFlag.DIRTY
    cache.brelse(buf)
    with pytest.raises(FsPanic, match="no buffers"):
        cache.bread(1, 1)


def test_least_recently_used_is_recycled():
    cache = BufferCache(_disk(), nbuf=2)
    b0 = cache.bread(1, 0)
    cache.brelse(b0)
    b1 = cache.bread(1, 1)
    cache.brelse(b1)
    b2 = cache.bread(1, 2)
    assert b2 is b0
    assert bytes(b2.data) == bytes([2]) * BSIZE
    cache.brelse(b2)
    assert cache.bread(1, 1) is b1


def test_bread_waits_for_busy_buffer():
    cache = BufferCache(_disk())
    held = cache.bread(1, 4)
    got = []
    worker = threading.Thread(target=lambda: got.append(cache.bread(1, 4)), daemon=True)
    worker.start()
    worker.join(0.2)
    assert got == []
    cache.brelse(held)
    worker.join(2)
    assert got == [held]
    assert held.flags & BufFlag.BUSY