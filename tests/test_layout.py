import pytest

from xvfs.layout import (
    BPB,
    BSIZE,
    DIRENT_SIZE,
    DIRSIZ,
    FSSIZE,
    IPB,
    NDIRECT,
    DInode,
    Dirent,
    InodeType,
    SuperBlock,
    bblock,
    iblock,
)


def test_packed_records_divide_block():
    dinode_bytes = DInode(addrs=[0] * (NDIRECT + 1)).pack()
    dirent_bytes = Dirent(1, b"a").pack()
    assert BSIZE % len(dinode_bytes) == 0
    assert BSIZE % len(dirent_bytes) == 0
    assert IPB * len(dinode_bytes) == BSIZE
    assert bblock(BPB - 1, SuperBlock(bmapstart=0)) == 0
    assert bblock(BSIZE * 8, SuperBlock(bmapstart=0)) == 1


def test_inode_type_is_stored_as_stat_value():
    for itype, wire in (
        (InodeType.DIR, b"\x01\x00"),
        (InodeType.FILE, b"\x02\x00"),
        (InodeType.DEV, b"\x03\x00"),
    ):
        packed = DInode(type=itype, addrs=[0] * (NDIRECT + 1)).pack()
        assert packed[:2] == wire
        assert DInode.unpack(packed).type == itype


def test_superblock_round_trip():
    sb = SuperBlock(FSSIZE, 941, 200, 30, 2, 32, 58)
    packed = sb.pack()
    assert SuperBlock.unpack(packed) == sb
    assert packed[:4] == b"\xe8\x03\x00\x00"


def test_superblock_unpack_ignores_trailing_bytes():
    sb = SuperBlock(10, 5, 3, 2, 2, 4, 5)
    assert SuperBlock.unpack(sb.pack() + bytes(BSIZE)) == sb


def test_dinode_round_trip():
    addrs = list(range(100, 100 + NDIRECT + 1))
    di = DInode(type=2, major=0, minor=0, nlink=1, size=1234, addrs=addrs)
    packed = di.pack()
    assert len(packed) * IPB == BSIZE
    assert DInode.unpack(packed) == di


def test_dinode_rejects_wrong_address_count():
    with pytest.raises(ValueError):
        DInode(addrs=[0] * NDIRECT).pack()


def test_dirent_wire_bytes():
    assert Dirent(1, b".").pack() == b"\x01\x00." + b"\x00" * 13


def test_dirent_long_name_truncated_without_terminator():
    name = b"abcdefghijklmnopq"
    packed = Dirent(7, name).pack()
    assert len(packed) == DIRENT_SIZE
    back = Dirent.unpack(packed)
    assert back.name == name[:DIRSIZ]
    assert back.inum == 7


def test_dirent_unpack_stops_at_nul():
    assert Dirent.unpack(Dirent(3, b"cat").pack()) == Dirent(3, b"cat")


def test_iblock_and_bblock():
    sb = SuperBlock(inodestart=32, bmapstart=58)
    assert iblock(0, sb) == sb.inodestart
    assert iblock(IPB - 1, sb) == sb.inodestart
    assert iblock(IPB, sb) == sb.inodestart + 1
    assert bblock(0, sb) == sb.bmapstart
    assert bblock(BPB, sb) == sb.bmapstart + 1