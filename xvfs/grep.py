"""A small grep that supports the ``^``, ``.``, ``*`` and ``$`` operators."""

from __future__ import annotations

import sys
from pathlib import Path
from typing import BinaryIO, Iterator, Union

_BUFSIZE = 1024


def match(re: str, text: str) -> bool:
    """Search for ``re`` anywhere in ``text``."""
    if re.startswith("^"):
        return matchhere(re[1:], text)
    while True:
        # The empty tail of the text is tried too.
        if matchhere(re, text):
            return True
        if not text:
            return False
        text = text[1:]


def matchhere(re: str, text: str) -> bool:
    """Search for ``re`` at the beginning of ``text``."""
    if not re:
        return True
    if len(re) > 1 and re[1] == "*":
        return matchstar(re[0], re[2:], text)
    if re == "$":
        return not text
    if text and (re[0] == "." or re[0] == text[0]):
        return matchhere(re[1:], text[1:])
    return False


def matchstar(c: str, re: str, text: str) -> bool:
    """Search for ``c*re`` at the beginning of ``text``."""
    while True:
        # A star matches zero or more instances.
        if matchhere(re, text):
            return True
        if not text:
            return False
        head, text = text[0], text[1:]
        if head != c and c != ".":
            return False


def grep(pattern: Union[str, bytes], stream: BinaryIO) -> Iterator[bytes]:
    """Yield each newline-terminated line of ``stream`` that matches ``pattern``.

    Input is read into a buffer of fixed size; a read that brings no
    complete line discards what has been gathered, and a final line
    without a newline is never reported.
    """
    if isinstance(pattern, (bytes, bytearray)):
        pattern = bytes(pattern).decode("latin-1")
    pending = b""
    while True:
        chunk = stream.read(_BUFSIZE - 1 - len(pending))
        if not chunk:
            break
        pending += chunk
        *lines, rest = pending.split(b"\n")
        for line in lines:
            if match(pattern, line.decode("latin-1")):
                yield line + b"\n"
        pending = rest if lines else b""


def main(argv=None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args:
        sys.stderr.write("usage: grep pattern [file ...]\n")
        return 1
    pattern, *names = args
    out = sys.stdout.buffer

    if not names:
        out.writelines(grep(pattern, sys.stdin.buffer))
        out.flush()
        return 0

    for name in names:
        try:
            stream = Path(name).open("rb")
        except OSError:
            out.write(f"grep: cannot open {name}\n".encode())
            out.flush()
            return 1
        with stream:
            out.writelines(grep(pattern, stream))
    out.flush()
    return 0