import threading

import pytest

from xvfs.file import FileKind, FileTable
from xvfs.pipe import PIPESIZE, Pipe, pipealloc


def test_write_then_read():
    p = Pipe()
    assert p.write(b"hello") == 5
    assert p.read(10) == b"hello"


def test_read_respects_limit():
    p = Pipe()
    p.write(b"abcdef")
    assert p.read(3) == b"abc"
    assert p.read(3) == b"def"


def test_read_after_writer_closed_returns_eof():
    p = Pipe()
    p.write(b"tail")
    p.close(writable=True)
    assert p.read(100) == b"tail"
    assert p.read(100) == b""


def test_wraparound_preserves_order():
    p = Pipe()
    first = bytes(range(200)) * 2
    p.write(first)
    assert p.read(len(first)) == first
    second = bytes(range(250, 0, -1)) * 2
    p.write(second)
    assert p.read(len(second)) == second


def test_full_pipe_with_reader_closed_breaks():
    p = Pipe()
    p.close(writable=False)
    with pytest.raises(BrokenPipeError):
        p.write(bytes(PIPESIZE + 1))
    assert p.nwrite == PIPESIZE


def test_large_write_blocks_until_read():
    p = Pipe()
    payload = bytes(range(256)) * 8
    result = []

    def reader():
        chunks = []
        while chunk := p.read(100):
            chunks.append(chunk)
        result.append(b"".join(chunks))

    t = threading.Thread(target=reader)
    t.start()
    assert p.write(payload) == len(payload)
    p.close(writable=True)
    t.join(timeout=10)
    assert result == [payload]


def test_pipealloc_through_file_table():
    table = FileTable(None, 4)
    rf, wf = pipealloc(table)
    assert rf.kind is FileKind.PIPE and wf.kind is FileKind.PIPE
    assert rf.readable and not rf.writable
    assert wf.writable and not wf.readable
    assert rf.pipe is wf.pipe
    assert table.write(wf, b"data") == 4
    assert table.read(rf, 10) == b"data"
    pipe = rf.pipe
    table.close(wf)
    table.close(rf)
    assert not pipe.writeopen and not pipe.readopen


def test_pipealloc_failure_releases_first_file():
    table = FileTable(None, 1)
    with pytest.raises(OSError):
        pipealloc(table)
    f = table.alloc()
    assert f.ref == 1