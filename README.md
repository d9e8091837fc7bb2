# xvfs

A compact Unix-style file system that runs entirely in memory. It is built in
layers:

- `xvfs.layout`: the on-disk format and limits, with the `SuperBlock`,
  `DInode` and `Dirent` records (each with `pack` / `unpack`), `Stat`,
  `InodeType`, the `iblock` / `bblock` helpers and the `FsPanic` error.
- `xvfs.disk`: `MemDisk`, a disk held in a byte image; `image()` returns its
  current contents.
- `xvfs.bufcache`: `BufferCache`, a least-recently-used cache of disk blocks
  (`bread`, `bwrite`, `brelse`) holding `Buf` objects with `BufFlag` state.
- `xvfs.log`: `Log`, a redo log that groups block writes into transactions
  (`begin_op`, `end_op`, `log_write`, and the `transaction()` context manager).
  Any committed transaction left in the log is installed when a `Log` is
  created.
- `xvfs.fs`: `FileSystem`, which covers block allocation (`balloc`, `bfree`),
  the inode cache (`ialloc`, `iget`, `idup`, `ilock`, `iunlock`, `iput`,
  `iunlockput`, `iupdate`, `itrunc`), reading and writing inode data (`readi`,
  `writei`), directories (`dirlookup`, `dirlink`), path lookup (`namei`,
  `nameiparent`) and device handlers (`register_device`). The helpers
  `skipelem` and `namecmp` split and compare path elements.
- `xvfs.file`: `FileTable`, a fixed pool of reference-counted `File` objects
  with `alloc`, `dup`, `close`, `stat`, `read` and `write`.
- `xvfs.pipe`: `Pipe`, a 512-byte blocking channel, and `pipealloc(table)`,
  which returns a read file and a write file sharing one pipe.
- `xvfs.mkfs`: `ImageBuilder` and `build_image`, which build a fresh file
  system image.
- `xvfs.grep`: a small pattern matcher (`match`, `matchhere`, `matchstar`) and
  a line filter (`grep`).
- `xvfs.fmt`: printf-style formatting with `format` and `format_int`.
- `xvfs.console`: `Console`, line-edited input with echo, and formatted
  output through `cprintf`.
- `xvfs.kbd`: `Keyboard`, which decodes PC scan codes into characters.

## Installing

```
pip install .
```

## Building an image

```
xvfs-mkfs fs.img README notes.txt
```

This writes `fs.img` (1000 blocks of 512 bytes) with a root directory that
holds the named files. A leading `_` in a file name is dropped, and names
containing `/` are refused. The same can be done from Python:

```python
from xvfs.mkfs import build_image

image = build_image([("hello", b"hello, world\n")])
```

## Reading it back

```python
from xvfs.disk import MemDisk
from xvfs.bufcache import BufferCache
from xvfs.layout import SuperBlock
from xvfs.log import Log
from xvfs.fs import FileSystem

disk = MemDisk(image, 1)
cache = BufferCache(disk, 30)
buf = cache.bread(1, 1)
sb = SuperBlock.unpack(buf.data)
cache.brelse(buf)

log = Log(cache, 1, sb)
fs = FileSystem(cache, log, 1)
with log.transaction():
    ip = fs.namei("/hello", None)
    fs.ilock(ip)
    print(fs.readi(ip, 0, ip.size))
    fs.iunlockput(ip)
```

Conditions that the file system treats as fatal, such as running out of blocks
or releasing a buffer it does not hold, raise `FsPanic`. Ordinary failures
raise the usual Python errors: `FileExistsError` from `dirlink` when the name
is taken, `OSError` when the file table is full or a file is read or written
against its mode, `BrokenPipeError` when writing to a pipe whose read end is
closed, and `ValueError` for offsets out of range.

## Searching text

```
xvfs-grep 'ab*c$' file.txt
```

The pattern supports `^`, `.`, `*` and `$`. With no file arguments it reads
standard input. Only newline-terminated lines are reported.

## What it does not do

The package provides the file-system layers and the image builder, not an
operating system around them. There is no system-call layer: there are no
ready-made operations to open, create, unlink or make directories by path, and
no per-process descriptor tables; these have to be composed from the
`FileSystem` and `FileTable` primitives. Disks exist only as in-memory images
(`MemDisk`), and there is no command for listing or extracting the files in an
existing image.

## Tests

```
pip install .[test]
pytest
```