"""PC keyboard scan-code decoding."""

from __future__ import annotations

from typing import Iterable

SHIFT = 1 << 0
CTL = 1 << 1
ALT = 1 << 2
CAPSLOCK = 1 << 3
NUMLOCK = 1 << 4
SCROLLLOCK = 1 << 5
E0ESC = 1 << 6

KEY_HOME = 0xE0
KEY_END = 0xE1
KEY_UP = 0xE2
KEY_DN = 0xE3
KEY_LF = 0xE4
KEY_RT = 0xE5
KEY_PGUP = 0xE6
KEY_PGDN = 0xE7
KEY_INS = 0xE8
KEY_DEL = 0xE9


def _ctrl(ch: str) -> int:
    return (ord(ch) - ord("@")) & 0xFF


_SPECIAL = {
    0xC8: KEY_UP, 0xD0: KEY_DN,
    0xC9: KEY_PGUP, 0xD1: KEY_PGDN,
    0xCB: KEY_LF, 0xCD: KEY_RT,
    0x97: KEY_HOME, 0xCF: KEY_END,
    0xD2: KEY_INS, 0xD3: KEY_DEL,
}


def _table(prefix: bytes, extra: dict[int, int]) -> bytes:
    table = bytearray(256)
    table[:len(prefix)] = prefix
    for code, value in {**_SPECIAL, **extra}.items():
        table[code] = value
    return bytes(table)


_KEYPAD = b"\x00" * 7 + b"7" + b"89-456+1" + b"230.\x00\x00\x00\x00"

_NORMALMAP = _table(
    b"\x00\x1b1234567890-=\b\t"
    b"qwertyuiop[]\n\x00as"
    b"dfghjkl;'`\x00\\zxcv"
    b"bnm,./\x00*\x00 \x00\x00\x00\x00\x00\x00"
    + _KEYPAD,
    {0x9C: ord("\n"), 0xB5: ord("/")},
)

_SHIFTMAP = _table(
    b"\x00\x1b!@#$%^&*()_+\b\t"
    b"QWERTYUIOP{}\n\x00AS"
    b'DFGHJKL:"~\x00|ZXCV'
    b"BNM<>?\x00*\x00 \x00\x00\x00\x00\x00\x00"
    + _KEYPAD,
    {0x9C: ord("\n"), 0xB5: ord("/")},
)

_CTLMAP = _table(
    bytes(16)
    + bytes(_ctrl(c) for c in "QWERTYUI")
    + bytes([_ctrl("O"), _ctrl("P"), 0, 0, ord("\r"), 0, _ctrl("A"), _ctrl("S")])
    + bytes(_ctrl(c) for c in "DFGHJKL") + b"\x00"
    + bytes([0, 0, 0, _ctrl("\\"), _ctrl("Z"), _ctrl("X"), _ctrl("C"), _ctrl("V")])
    + bytes([_ctrl("B"), _ctrl("N"), _ctrl("M"), 0, 0, _ctrl("/"), 0, 0]),
    {0x9C: ord("\r"), 0xB5: _ctrl("/")},
)

_SHIFTCODE = {0x1D: CTL, 0x2A: SHIFT, 0x36: SHIFT, 0x38: ALT, 0x9D: CTL, 0xB8: ALT}
_TOGGLECODE = {0x3A: CAPSLOCK, 0x45: NUMLOCK, 0x46: SCROLLLOCK}

_CHARCODE = (_NORMALMAP, _SHIFTMAP, _CTLMAP, _CTLMAP)


class Keyboard:
    """Tracks modifier state and turns scan codes into characters."""

    def __init__(self) -> None:
        self.shift = 0

    def getc(self, data: int) -> int:
        """Decode one scan code; 0 means it produced no character."""
        if not 0 <= data <= 0xFF:
            raise ValueError(f"scan code out of range: {data}")
        if data == 0xE0:
            self.shift |= E0ESC
            return 0
        if data & 0x80:
            # Key released.
            if not self.shift & E0ESC:
                data &= 0x7F
            self.shift &= ~(_SHIFTCODE.get(data, 0) | E0ESC)
            return 0
        if self.shift & E0ESC:
            # The previous code was an E0 escape.
            data |= 0x80
            self.shift &= ~E0ESC

        self.shift |= _SHIFTCODE.get(data, 0)
        self.shift ^= _TOGGLECODE.get(data, 0)
        c = _CHARCODE[self.shift & (CTL | SHIFT)][data]
        if self.shift & CAPSLOCK:
            if ord("a") <= c <= ord("z"):
                c += ord("A") - ord("a")
            elif ord("A") <= c <= ord("Z"):
                c += ord("a") - ord("A")
        return c

    def decode(self, scancodes: Iterable[int]) -> bytes:
        """Decode a sequence of scan codes into the characters they type."""
        return bytes(c for c in map(self.getc, scancodes) if c)