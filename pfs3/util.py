"""Datestamps, protection bits, Latin-1 names and path helpers."""

import string
import time
from datetime import datetime, timedelta, timezone

AMIGA_EPOCH = datetime(1978, 1, 1, tzinfo=timezone.utc)
AMIGA_EPOCH_OFFSET = 2922 * 86400
TICKS_PER_SECOND = 50

_FLAG_BITS = {"h": 0x80, "s": 0x40, "p": 0x20, "a": 0x10}
_DENY_BITS = {"r": 0x08, "w": 0x04, "e": 0x02, "d": 0x01}
_ASCII_LOWER = str.maketrans(string.ascii_uppercase, string.ascii_lowercase)


def amiga_to_datetime(days, minutes, ticks):
    """Convert an Amiga datestamp (days, minutes, 1/50 s ticks) to an aware UTC datetime."""
    return AMIGA_EPOCH + timedelta(
        days=days,
        minutes=minutes,
        seconds=ticks // TICKS_PER_SECOND,
        microseconds=(ticks % TICKS_PER_SECOND) * 20_000,
    )


def amiga_date_string(days, minutes, ticks):
    """Format an Amiga datestamp as 'YYYY-MM-DD HH:MM:SS'."""
    return amiga_to_datetime(days, minutes, ticks).strftime("%Y-%m-%d %H:%M:%S")


def amiga_protection_to_mode(prot, is_dir):
    """Map Amiga RWE bits (set means denied) to a Unix mode for owner, group and other."""
    mode = 0o40000 if is_dir else 0o100000
    if not prot & 0x08:
        mode |= 0o444
    if not prot & 0x04:
        mode |= 0o222
    if not prot & 0x02:
        mode |= 0o111
    return mode


def unix_mode_to_amiga_protection(mode):
    """Map Unix owner permissions to Amiga protection bits; delete follows write."""
    prot = 0x0F
    if mode & 0o400:
        prot &= ~0x08
    if mode & 0o200:
        prot &= ~0x05
    if mode & 0o100:
        prot &= ~0x02
    return prot & 0xFF


def amiga_protection_string(prot):
    """Render protection bits as 'hsparwed', using '-' for unset or denied bits."""
    flags = "".join(ch if prot & bit else "-" for ch, bit in _FLAG_BITS.items())
    perms = "".join("-" if prot & bit else ch for ch, bit in _DENY_BITS.items())
    return flags + perms


def parse_amiga_protection(current, spec):
    """Apply an absolute ('rwed'), additive ('+p') or subtractive ('-wd') spec.

    Raises ValueError for an empty spec or an unknown letter.
    """
    if not spec:
        raise ValueError("empty protection spec")
    if spec[0] in "+-":
        op, letters = spec[0], spec[1:]
        prot = current & 0xFF
    else:
        op, letters = "=", spec
        prot = 0x0F
    for ch in letters:
        if ch in _FLAG_BITS:
            bit = _FLAG_BITS[ch]
            prot = prot & ~bit if op == "-" else prot | bit
        elif ch in _DENY_BITS:
            bit = _DENY_BITS[ch]
            prot = prot | bit if op == "-" else prot & ~bit
        else:
            raise ValueError(f"invalid protection character {ch!r} in {spec!r}")
    return prot & 0xFF


def latin1_to_string(data):
    """Decode ISO 8859-1 bytes to str."""
    return bytes(data).decode("latin-1")


def name_eq_ci(a, b):
    """Compare Amiga filenames, ignoring ASCII case only."""
    return a.translate(_ASCII_LOWER) == b.translate(_ASCII_LOWER)


def current_amiga_datestamp():
    """Return the current time as an Amiga (days, minutes, ticks) triple."""
    amiga_secs = max(0, int(time.time()) - AMIGA_EPOCH_OFFSET)
    days = (amiga_secs // 86400) & 0xFFFF
    minutes = (amiga_secs % 86400) // 60
    ticks = (amiga_secs % 60) * TICKS_PER_SECOND
    return days, minutes, ticks


def join_pfs3_path(parent, name):
    """Join a parent path and a name with exactly one '/'."""
    if parent.endswith("/"):
        return f"{parent}{name}"
    return f"{parent}/{name}"