"""In-memory Unix-style file system with buffer cache, redo log, pipes and image builder."""

__version__ = "0.1.0"

__all__ = [
    "layout",
    "disk",
    "bufcache",
    "log",
    "fs",
    "file",
    "pipe",
    "mkfs",
    "grep",
    "fmt",
    "console",
    "kbd",
]