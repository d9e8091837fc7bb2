import pytest

from xvfs.bufcache import BufferCache
from xvfs.disk import MemDisk
from xvfs.fs import FileSystem
from xvfs.layout import (
    BSIZE,
    FSSIZE,
    LOGSIZE,
    MAXFILE,
    ROOTDEV,
    ROOTINO,
    InodeType,
    SuperBlock,
)
from xvfs.log import Log
from xvfs.mkfs import NINODES, ImageBuilder, build_image, main


def mount(image):
    cache = BufferCache(MemDisk(image, ROOTDEV))
    sb = SuperBlock.unpack(image[BSIZE:2 * BSIZE])
    log = Log(cache, ROOTDEV, sb)
    return FileSystem(cache, log, ROOTDEV), log


def read_file(fs, path):
    ip = fs.namei(path)
    assert ip is not None
    fs.ilock(ip)
    try:
        return fs.readi(ip, 0, ip.size)
    finally:
        fs.iunlock(ip)


def test_superblock_layout():
    image = build_image([])
    sb = SuperBlock.unpack(image[BSIZE:2 * BSIZE])
    assert len(image) == FSSIZE * BSIZE
    assert sb.size == FSSIZE
    assert sb.ninodes == NINODES
    assert sb.logstart == 2
    assert sb.nlog == LOGSIZE
    assert sb.inodestart == 2 + LOGSIZE
    assert sb.inodestart < sb.bmapstart
    assert sb.nblocks + sb.bmapstart < sb.size


def test_root_directory_entries():
    fs, _ = mount(build_image([]))
    root = fs.namei("/")
    assert root.inum == ROOTINO
    fs.ilock(root)
    assert root.type == InodeType.DIR
    assert root.size > 0 and root.size % BSIZE == 0
    dot, _ = fs.dirlookup(root, ".")
    dotdot, _ = fs.dirlookup(root, "..")
    assert dot.inum == ROOTINO
    assert dotdot.inum == ROOTINO


def test_files_round_trip_and_underscore_dropped():
    payload = bytes(range(256)) * 30
    image = build_image([("README", b"readme text\n"), ("_cat", payload)])
    fs, _ = mount(image)
    assert read_file(fs, "README") == b"readme text\n"
    assert read_file(fs, "/cat") == payload
    assert fs.namei("_cat") is None


def test_add_file_returns_sequential_inodes():
    builder = ImageBuilder()
    first = builder.add_file("a", b"1")
    second = builder.add_file("b", b"2")
    assert first == ROOTINO + 1
    assert second == first + 1


def test_bitmap_marks_used_blocks():
    builder = ImageBuilder()
    builder.add_file("data", bytes(BSIZE * 3))
    used = builder.freeblock
    fs, log = mount(builder.finish())
    with log.transaction():
        assert fs.balloc() == used


def test_slash_in_name_rejected():
    builder = ImageBuilder()
    with pytest.raises(ValueError):
        builder.add_file("dir/file", b"")


def test_file_too_large_rejected():
    builder = ImageBuilder()
    with pytest.raises(ValueError):
        builder.add_file("big", bytes(MAXFILE * BSIZE + 1))


def test_finish_only_once():
    builder = ImageBuilder()
    builder.finish()
    with pytest.raises(RuntimeError):
        builder.finish()


def test_main_writes_image(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    (tmp_path / "README").write_bytes(b"from host\n")
    out = tmp_path / "fs.img"
    assert main([str(out), "README"]) == 0
    image = out.read_bytes()
    assert len(image) == FSSIZE * BSIZE
    fs, _ = mount(image)
    assert read_file(fs, "README") == b"from host\n"


def test_main_usage_and_missing_file(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    assert main([]) == 1
    assert main([str(tmp_path / "fs.img"), "missing"]) == 1
    assert not (tmp_path / "fs.img").exists()