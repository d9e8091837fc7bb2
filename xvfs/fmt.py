"""Minimal printf-style formatting: %d, %x, %p, %s, %c and %%."""

from __future__ import annotations

_LOWER = "0123456789abcdef"
_UPPER = "0123456789ABCDEF"


def format_int(value: int, base: int, signed: bool, upper: bool = True) -> str:
    """Render a 32-bit integer in ``base``.

    With ``signed`` the value is read as a signed 32-bit number and a
    minus sign is added; otherwise it is read as unsigned.
    """
    if not 2 <= base <= 16:
        raise ValueError("base must be between 2 and 16")
    digits = _UPPER if upper else _LOWER
    x = int(value) & 0xFFFFFFFF
    neg = signed and x >= 0x80000000
    if neg:
        x = 0x100000000 - x
    out = []
    while True:
        x, d = divmod(x, base)
        out.append(digits[d])
        if x == 0:
            break
    if neg:
        out.append("-")
    return "".join(reversed(out))


def _text(value) -> str:
    if value is None:
        return "(null)"
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("latin-1")
    return str(value)


def _char(value) -> str:
    if isinstance(value, int):
        return chr(value & 0xFF)
    return _text(value)[:1]


def format(fmt: str, *args, upper: bool = True) -> str:
    """Format ``args`` according to ``fmt``.

    Unknown conversions are echoed with their percent sign; a trailing
    lone percent sign is dropped.
    """
    values = iter(args)

    def take():
        try:
            return next(values)
        except StopIteration:
            raise TypeError("not enough arguments for format string") from None

    out = []
    chars = iter(fmt)
    for c in chars:
        if c != "%":
            out.append(c)
            continue
        c = next(chars, None)
        if c is None:
            break
        if c == "d":
            out.append(format_int(take(), 10, True, upper))
        elif c in "xp":
            out.append(format_int(take(), 16, False, upper))
        elif c == "s":
            out.append(_text(take()))
        elif c == "c":
            out.append(_char(take()))
        elif c == "%":
            out.append("%")
        else:
            out.append("%" + c)
    return "".join(out)