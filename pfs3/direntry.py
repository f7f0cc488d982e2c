"""Directory block headers and variable-length directory entries."""

import struct
from dataclasses import dataclass, field

from pfs3.errors import BadBlockIdError, TooShortError
from pfs3.ondisk import (
    DBLKID,
    ST_LINKDIR,
    ST_LINKFILE,
    ST_ROLLOVERFILE,
    ST_SOFTLINK,
    ST_USERDIR,
)
from pfs3.util import latin1_to_string

DIR_BLOCK_HEADER_SIZE = 0x14
MIN_ENTRY_SIZE = 18

_DIR_HEADER = struct.Struct(">H2xI4xII")
_ENTRY_HEAD = struct.Struct(">bIIHHHBB")

# (flag bit, attribute name, struct format) in on-disk order
_EXTRA_LAYOUT = (
    (0x0001, "link", ">I"),
    (0x0002, "uid", ">H"),
    (0x0004, "gid", ">H"),
    (0x0008, "prot", ">I"),
    (0x0010, "virtualsize", ">I"),
    (0x0020, "rollpointer", ">I"),
    (0x0040, "fsizex", ">H"),
)


@dataclass
class DirBlockHeader:
    """The 20-byte header at the start of every directory block."""

    id: int
    datestamp: int
    anodenr: int
    parent: int

    @classmethod
    def parse(cls, data):
        if len(data) < DIR_BLOCK_HEADER_SIZE:
            raise TooShortError("dir block header")
        block_id, datestamp, anodenr, parent = _DIR_HEADER.unpack_from(data, 0)
        if block_id != DBLKID:
            raise BadBlockIdError("dir block", DBLKID, block_id)
        return cls(block_id, datestamp, anodenr, parent)


@dataclass
class ExtraFields:
    """Optional fields stored after the name and comment of an entry."""

    link: int = 0
    uid: int = 0
    gid: int = 0
    prot: int = 0
    virtualsize: int = 0
    rollpointer: int = 0
    fsizex: int = 0

    @classmethod
    def _from_entry(cls, raw, nlength):
        extra = cls()
        name_end = MIN_ENTRY_SIZE + nlength
        if name_end >= len(raw):
            return extra
        field_start = name_end + 1 + raw[name_end]
        if field_start & 1:
            field_start += 1
        if field_start + 2 > len(raw):
            return extra
        (flags,) = struct.unpack_from(">H", raw, field_start)
        pos = field_start + 2
        for bit, attr, fmt in _EXTRA_LAYOUT:
            size = struct.calcsize(fmt)
            if flags & bit and pos + size <= len(raw):
                (value,) = struct.unpack_from(fmt, raw, pos)
                setattr(extra, attr, value)
                pos += size
        return extra


@dataclass
class DirEntry:
    """One packed entry in a directory block."""

    entry_size: int
    entry_type: int
    anode: int
    fsize: int
    creation_day: int
    creation_minute: int
    creation_tick: int
    protection: int
    name: str
    comment: str = ""
    extra: ExtraFields = field(default_factory=ExtraFields)

    @classmethod
    def parse(cls, data, offset=0):
        """Parse the entry at ``offset``; return (entry, next_offset) or None at the end."""
        if offset >= len(data):
            return None
        entry_size = data[offset]
        if entry_size == 0:
            return None
        end = offset + entry_size
        if end > len(data) or entry_size < MIN_ENTRY_SIZE:
            return None
        raw = bytes(data[offset:end])
        (entry_type, anode, fsize, day, minute, tick,
         protection, nlength) = _ENTRY_HEAD.unpack_from(raw, 1)
        name = latin1_to_string(raw[MIN_ENTRY_SIZE:MIN_ENTRY_SIZE + nlength])

        comment = ""
        comment_off = MIN_ENTRY_SIZE + nlength
        if comment_off < len(raw):
            clen = raw[comment_off]
            cstart = comment_off + 1
            if cstart + clen <= len(raw):
                comment = latin1_to_string(raw[cstart:cstart + clen])

        entry = cls(
            entry_size=entry_size,
            entry_type=entry_type,
            anode=anode,
            fsize=fsize,
            creation_day=day,
            creation_minute=minute,
            creation_tick=tick,
            protection=protection,
            name=name,
            comment=comment,
            extra=ExtraFields._from_entry(raw, nlength),
        )
        return entry, end

    def is_file(self):
        return self.entry_type < 0 and self.entry_type != ST_ROLLOVERFILE

    def is_rollover(self):
        return self.entry_type == ST_ROLLOVERFILE

    def is_dir(self):
        return self.entry_type == ST_USERDIR

    def is_softlink(self):
        return self.entry_type == ST_SOFTLINK

    def is_hardlink(self):
        return self.entry_type in (ST_LINKDIR, ST_LINKFILE)

    def file_size(self):
        """Full size including the extended bits 32-47."""
        return self.fsize | (self.extra.fsizex << 32)