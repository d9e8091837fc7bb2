"""Console: echoing line-edited input and formatted output."""

from __future__ import annotations

import threading
from typing import Iterable, TextIO, Union

from xvfs.fmt import format_int

BACKSPACE = 0x100
INPUT_BUF = 128


def _ctrl(ch: str) -> int:
    return ord(ch) - ord("@")


_CTRL_D = _ctrl("D")
_CTRL_H = _ctrl("H")
_CTRL_P = _ctrl("P")
_CTRL_U = _ctrl("U")
_DEL = 0x7F


class Console:
    """Line-buffered console input with echo, and output to a text stream."""

    def __init__(self, output: TextIO) -> None:
        self._output = output
        self._cond = threading.Condition(threading.RLock())
        self._buf = bytearray(INPUT_BUF)
        self._r = 0  # read index
        self._w = 0  # write index
        self._e = 0  # edit index

    def putc(self, c: Union[int, str]) -> None:
        """Write one character; BACKSPACE erases the previous one."""
        if isinstance(c, str):
            c = ord(c)
        if c == BACKSPACE:
            self._output.write("\b \b")
        else:
            self._output.write(chr(c & 0xFF))

    def cprintf(self, fmt: str, *args) -> None:
        """Print to the console; understands %d, %x, %p, %s and %%."""
        values = iter(args)

        def take():
            try:
                return next(values)
            except StopIteration:
                raise TypeError("not enough arguments for format string") from None

        with self._cond:
            chars = iter(fmt)
            for c in chars:
                if c != "%":
                    self.putc(c)
                    continue
                c = next(chars, None)
                if c is None:
                    break
                if c == "d":
                    text = format_int(take(), 10, True, False)
                elif c in "xp":
                    text = format_int(take(), 16, False, False)
                elif c == "s":
                    s = take()
                    if s is None:
                        text = "(null)"
                    elif isinstance(s, (bytes, bytearray)):
                        text = bytes(s).decode("latin-1")
                    else:
                        text = str(s)
                elif c == "%":
                    text = "%"
                else:
                    # Unknown sequences are printed to draw attention.
                    text = "%" + c
                for ch in text:
                    self.putc(ch)

    def intr(self, chars: Union[Iterable[int], str]) -> bool:
        """Feed input characters through the line editor.

        Returns True if a process listing was requested with Control-P.
        """
        if isinstance(chars, str):
            chars = (ord(ch) for ch in chars)
        doprocdump = False
        with self._cond:
            for c in chars:
                if c == _CTRL_P:
                    doprocdump = True
                elif c == _CTRL_U:
                    while (
                        self._e != self._w
                        and self._buf[(self._e - 1) % INPUT_BUF] != ord("\n")
                    ):
                        self._e -= 1
                        self.putc(BACKSPACE)
                elif c in (_CTRL_H, _DEL):
                    if self._e != self._w:
                        self._e -= 1
                        self.putc(BACKSPACE)
                elif c != 0 and self._e - self._r < INPUT_BUF:
                    if c == ord("\r"):
                        c = ord("\n")
                    self._buf[self._e % INPUT_BUF] = c & 0xFF
                    self._e += 1
                    self.putc(c)
                    if (
                        c == ord("\n")
                        or c == _CTRL_D
                        or self._e == self._r + INPUT_BUF
                    ):
                        self._w = self._e
                        self._cond.notify_all()
        return doprocdump

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes, stopping after a newline; block until input.

        Control-D marks end of file: an empty result once nothing precedes it.
        """
        out = bytearray()
        with self._cond:
            while len(out) < n:
                while self._r == self._w:
                    self._cond.wait()
                c = self._buf[self._r % INPUT_BUF]
                self._r += 1
                if c == _CTRL_D:
                    if out:
                        # Keep ^D so the next read returns zero bytes.
                        self._r -= 1
                    break
                out.append(c)
                if c == ord("\n"):
                    break
        return bytes(out)

    def write(self, data: bytes) -> int:
        """Write ``data`` to the console and return its length."""
        data = bytes(data)
        with self._cond:
            for byte in data:
                self.putc(byte)
        return len(data)