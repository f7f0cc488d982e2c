"""The PFS3 rootblock and its extension block."""

import struct
from dataclasses import dataclass, field

from pfs3.errors import BadBlockIdError, BadMagicError, TooShortError
from pfs3.ondisk import (
    ANODE_BLOCK_HEADER_SIZE,
    ANODE_SIZE,
    EXTENSIONID,
    MAXBITMAPINDEX,
    MAXSMALLBITMAPINDEX,
    MAXSMALLINDEXNR,
    MAXSUPER,
    MODE_DATESTAMP,
    MODE_DELDIR,
    MODE_DIR_EXTENSION,
    MODE_EXTENSION,
    MODE_EXTROVING,
    MODE_HARDDISK,
    MODE_LARGEFILE,
    MODE_LONGFN,
    MODE_SIZEFIELD,
    MODE_SPLITTED_ANODES,
    MODE_SUPERDELDIR,
    MODE_SUPERINDEX,
    PFS_TYPES,
)
from pfs3.util import latin1_to_string

RB_OFF_DISKTYPE = 0x00
RB_OFF_OPTIONS = 0x04
RB_OFF_DATESTAMP = 0x08
RB_OFF_DISKNAME = 0x14
RB_OFF_LASTRESERVED = 0x34
RB_OFF_FIRSTRESERVED = 0x38
RB_OFF_RESERVED_FREE = 0x3C
RB_OFF_RESERVED_BLKSIZE = 0x40
RB_OFF_RBLKCLUSTER = 0x42
RB_OFF_BLOCKSFREE = 0x44
RB_OFF_ALWAYSFREE = 0x48
RB_OFF_DISKSIZE = 0x54
RB_OFF_EXTENSION = 0x58
RB_OFF_INDEX_UNION = 0x60

EXT_OFF_SUPERINDEX = 0x40
EXT_OFF_DELDIRBLOCKS = 0x90
EXT_DELDIR_SLOTS = 32
DEFAULT_FNSIZE = 32

_RB_HEAD = struct.Struct(">IIIHHHH")
_RB_RESERVED = struct.Struct(">IIIHHIIIIII")

_FLAG_NAMES = (
    (MODE_HARDDISK, "HARDDISK"),
    (MODE_SPLITTED_ANODES, "SPLITTED_ANODES"),
    (MODE_DIR_EXTENSION, "DIR_EXTENSION"),
    (MODE_DELDIR, "DELDIR"),
    (MODE_SIZEFIELD, "SIZEFIELD"),
    (MODE_EXTENSION, "EXTENSION"),
    (MODE_DATESTAMP, "DATESTAMP"),
    (MODE_SUPERINDEX, "SUPERINDEX"),
    (MODE_SUPERDELDIR, "SUPERDELDIR"),
    (MODE_EXTROVING, "EXTROVING"),
    (MODE_LONGFN, "LONGFN"),
    (MODE_LARGEFILE, "LARGEFILE"),
)


def _read_u32s(data, start, count):
    """Read up to ``count`` big-endian u32s from ``start``, stopping at the buffer end."""
    available = max(0, (len(data) - start) // 4)
    n = min(count, available)
    return list(struct.unpack_from(f">{n}I", data, start)) if n else []


@dataclass
class Rootblock:
    """The filesystem superblock found at partition block 2."""

    disktype: int
    options: int
    datestamp: int
    creation_day: int
    creation_minute: int
    creation_tick: int
    protection: int
    diskname: str
    lastreserved: int
    firstreserved: int
    reserved_free: int
    reserved_blksize: int
    rblkcluster: int
    blocksfree: int
    alwaysfree: int
    roving_ptr: int
    deldir: int
    disksize: int
    extension: int
    bitmapindex: list = field(default_factory=list)
    indexblocks: list = field(default_factory=list)

    @classmethod
    def parse(cls, data):
        if len(data) < RB_OFF_INDEX_UNION:
            raise TooShortError("rootblock")
        (disktype, options, datestamp, day, minute, tick,
         protection) = _RB_HEAD.unpack_from(data, RB_OFF_DISKTYPE)
        if disktype not in PFS_TYPES:
            raise BadMagicError("rootblock", disktype)

        namelen = min(data[RB_OFF_DISKNAME], 31)
        start = RB_OFF_DISKNAME + 1
        diskname = latin1_to_string(data[start:start + namelen])

        (lastreserved, firstreserved, reserved_free, reserved_blksize,
         rblkcluster, blocksfree, alwaysfree, roving_ptr, deldir, disksize,
         extension) = _RB_RESERVED.unpack_from(data, RB_OFF_LASTRESERVED)

        if options & MODE_SUPERINDEX:
            bitmapindex = _read_u32s(data, RB_OFF_INDEX_UNION, MAXBITMAPINDEX + 1)
            indexblocks = []
        else:
            bitmapindex = _read_u32s(data, RB_OFF_INDEX_UNION, MAXSMALLBITMAPINDEX + 1)
            idx_start = RB_OFF_INDEX_UNION + (MAXSMALLBITMAPINDEX + 1) * 4
            indexblocks = _read_u32s(data, idx_start, MAXSMALLINDEXNR + 1)

        return cls(
            disktype=disktype,
            options=options,
            datestamp=datestamp,
            creation_day=day,
            creation_minute=minute,
            creation_tick=tick,
            protection=protection,
            diskname=diskname,
            lastreserved=lastreserved,
            firstreserved=firstreserved,
            reserved_free=reserved_free,
            reserved_blksize=reserved_blksize,
            rblkcluster=rblkcluster,
            blocksfree=blocksfree,
            alwaysfree=alwaysfree,
            roving_ptr=roving_ptr,
            deldir=deldir,
            disksize=disksize,
            extension=extension,
            bitmapindex=bitmapindex,
            indexblocks=indexblocks,
        )

    def has_flag(self, flag):
        return bool(self.options & flag)

    def index_per_block(self):
        """Number of u32 index entries per reserved block."""
        return max(0, self.reserved_blksize // 4 - 3)

    def anodes_per_block(self):
        """Number of anodes that fit in one reserved block."""
        return max(0, self.reserved_blksize - ANODE_BLOCK_HEADER_SIZE) // ANODE_SIZE

    def is_large(self):
        return self.has_flag(MODE_SUPERINDEX)

    def has_extension(self):
        return self.has_flag(MODE_EXTENSION) and self.extension != 0

    def has_longfn(self):
        return self.has_flag(MODE_LONGFN)

    def has_largefile(self):
        return self.has_flag(MODE_LARGEFILE)

    def is_splitted_anodes(self):
        return self.has_flag(MODE_SPLITTED_ANODES)

    def flags_string(self):
        """Names of the set option flags joined with ' | '."""
        return " | ".join(name for flag, name in _FLAG_NAMES if self.options & flag)


@dataclass
class RootblockExt:
    """The rootblock extension block holding additional volume metadata."""

    id: int
    ext_options: int
    datestamp: int
    pfs2version: int
    root_date: tuple
    volume_date: tuple
    reserved_roving: int
    fnsize: int
    superindex: list = field(default_factory=list)
    deldirblocks: list = field(default_factory=list)

    @classmethod
    def parse(cls, data):
        if len(data) < EXT_OFF_SUPERINDEX:
            raise TooShortError("rootblock extension")
        (block_id,) = struct.unpack_from(">H", data, 0)
        if block_id != EXTENSIONID:
            raise BadBlockIdError("rootblock extension", EXTENSIONID, block_id)
        ext_options, datestamp, pfs2version = struct.unpack_from(">III", data, 0x04)
        dates = struct.unpack_from(">6H", data, 0x10)
        (reserved_roving,) = struct.unpack_from(">I", data, 0x2C)
        (fnsize,) = struct.unpack_from(">H", data, 0x38)
        return cls(
            id=block_id,
            ext_options=ext_options,
            datestamp=datestamp,
            pfs2version=pfs2version,
            root_date=tuple(dates[:3]),
            volume_date=tuple(dates[3:]),
            reserved_roving=reserved_roving,
            fnsize=fnsize or DEFAULT_FNSIZE,
            superindex=_read_u32s(data, EXT_OFF_SUPERINDEX, MAXSUPER + 1),
            deldirblocks=_read_u32s(data, EXT_OFF_DELDIRBLOCKS, EXT_DELDIR_SLOTS),
        )