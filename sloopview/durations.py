"""Parsing of duration strings such as ``"1h30m"`` or ``"-1.5s"``."""

from __future__ import annotations

import re
from datetime import timedelta

_NUMBER = re.compile(r"([0-9]*)(?:\.([0-9]*))?")
_UNIT = re.compile(r"[^0-9.]*")

_NANOS_PER_UNIT = {
    "ns": 1,
    "us": 1_000,
    "\u00b5s": 1_000,
    "\u03bcs": 1_000,
    "ms": 1_000_000,
    "s": 1_000_000_000,
    "m": 60 * 1_000_000_000,
    "h": 3600 * 1_000_000_000,
}

_MAX_NANOS = (1 << 63) - 1


def parse_duration(text: str) -> timedelta:
    """Parse a signed sequence of decimal numbers with unit suffixes.

    Valid units are ``ns``, ``us`` (or ``µs``), ``ms``, ``s``, ``m`` and ``h``.
    The bare string ``"0"`` is accepted. Precision below a microsecond is
    truncated. Raises ``ValueError`` for malformed input.
    """
    invalid = ValueError(f"time: invalid duration {text!r}")
    rest = text
    negative = False
    if rest[:1] in ("+", "-"):
        negative = rest[0] == "-"
        rest = rest[1:]
    if rest == "0":
        return timedelta(0)
    if not rest:
        raise invalid

    limit = _MAX_NANOS + 1 if negative else _MAX_NANOS
    total = 0
    pos = 0
    while pos < len(rest):
        number = _NUMBER.match(rest, pos)
        whole, fraction = number.group(1), number.group(2) or ""
        if not whole and not fraction:
            raise invalid
        pos = number.end()

        unit_match = _UNIT.match(rest, pos)
        unit = unit_match.group(0)
        pos = unit_match.end()
        if not unit:
            raise ValueError(f"time: missing unit in duration {text!r}")
        scale = _NANOS_PER_UNIT.get(unit)
        if scale is None:
            raise ValueError(f"time: unknown unit {unit!r} in duration {text!r}")

        total += int(whole or "0") * scale
        if fraction:
            total += int(fraction) * scale // 10 ** len(fraction)
        if total > limit:
            raise invalid

    result = timedelta(microseconds=total // 1000)
    return -result if negative else result