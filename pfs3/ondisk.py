"""PFS3 on-disk constants and small fixed-layout structures (big-endian)."""

import struct
from dataclasses import dataclass

from pfs3.errors import BadBlockIdError, TooShortError
from pfs3.util import latin1_to_string

# Filesystem type identifiers
ID_PFS_DISK = 0x50465301
ID_PFS2_DISK = 0x50465302
ID_AFS_DISK = 0x41465301
ID_MUAF_DISK = 0x6D754146
ID_MUPFS_DISK = 0x6D755046

PFS_TYPES = (ID_PFS_DISK, ID_PFS2_DISK, ID_AFS_DISK, ID_MUAF_DISK, ID_MUPFS_DISK)

# Block type ids
DBLKID = 0x4442
ABLKID = 0x4142
IBLKID = 0x4942
BMBLKID = 0x424D
BMIBLKID = 0x4D49
DELDIRID = 0x4444
EXTENSIONID = 0x4558
SBLKID = 0x5342

# Rootblock option flags
MODE_HARDDISK = 1
MODE_SPLITTED_ANODES = 2
MODE_DIR_EXTENSION = 4
MODE_DELDIR = 8
MODE_SIZEFIELD = 16
MODE_EXTENSION = 32
MODE_DATESTAMP = 64
MODE_SUPERINDEX = 128
MODE_SUPERDELDIR = 256
MODE_EXTROVING = 512
MODE_LONGFN = 1024
MODE_LARGEFILE = 2048

# Limits
MAXSMALLBITMAPINDEX = 4
MAXBITMAPINDEX = 103
MAXSMALLINDEXNR = 98
MAXSUPER = 15
MAX_DIR_DEPTH = 128

# Predefined anode numbers
ANODE_EOF = 0
ANODE_ROOTDIR = 5
ANODE_USERFIRST = 6

# Well-known block positions
BOOTBLOCK = 2 - 2
ROOTBLOCK = 2

SECTOR_SIZE = 512

# Directory entry types
ST_FILE = -3
ST_USERDIR = 2
ST_SOFTLINK = 3
ST_LINKDIR = 4
ST_LINKFILE = -4
ST_ROLLOVERFILE = -16

ANODE_SIZE = 12
ANODE_BLOCK_HEADER_SIZE = 16
INDEX_BLOCK_HEADER_SIZE = 12
BITMAP_BLOCK_HEADER_SIZE = 12
DELDIR_HEADER_SIZE = 32
DELDIR_ENTRY_SIZE = 32

_HEADER = struct.Struct(">H2xII")


@dataclass
class Anode:
    """An extent descriptor: a run of blocks plus the next anode in the chain."""

    clustersize: int
    blocknr: int
    next: int
    nr: int

    @classmethod
    def parse(cls, data, nr):
        if len(data) < ANODE_SIZE:
            raise TooShortError("anode")
        clustersize, blocknr, nxt = struct.unpack_from(">III", data, 0)
        return cls(clustersize, blocknr, nxt, nr)

    def is_eof(self):
        return self.next == ANODE_EOF


def _parse_header(data, what, expected_id=None):
    if len(data) < _HEADER.size:
        raise TooShortError(what)
    block_id, datestamp, seqnr = _HEADER.unpack_from(data, 0)
    if expected_id is not None and block_id != expected_id:
        raise BadBlockIdError(what.removesuffix(" header"), expected_id, block_id)
    return block_id, datestamp, seqnr


@dataclass
class AnodeBlockHeader:
    """Header of an anode block; the anode array follows at offset 16."""

    id: int
    datestamp: int
    seqnr: int

    @classmethod
    def parse(cls, data):
        if len(data) < ANODE_BLOCK_HEADER_SIZE:
            raise TooShortError("anode block header")
        return cls(*_parse_header(data, "anode block header", ABLKID))


@dataclass
class IndexBlockHeader:
    """Header of an index block; the u32 index array follows at offset 12."""

    id: int
    datestamp: int
    seqnr: int

    @classmethod
    def parse(cls, data):
        return cls(*_parse_header(data, "index block header"))


@dataclass
class BitmapBlockHeader:
    """Header of a bitmap block; the bit array follows at offset 12."""

    id: int
    datestamp: int
    seqnr: int

    @classmethod
    def parse(cls, data):
        return cls(*_parse_header(data, "bitmap block header", BMBLKID))


@dataclass
class DelDirEntry:
    """A 32-byte slot in a deleted-files directory block."""

    anode: int
    fsize: int
    fsizex: int
    creation_day: int
    creation_minute: int
    creation_tick: int
    filename: str

    @classmethod
    def parse(cls, data):
        """Parse one slot; return None if it is too short or unused."""
        if len(data) < DELDIR_ENTRY_SIZE:
            return None
        anode, fsize = struct.unpack_from(">II", data, 0)
        if anode == 0:
            return None
        day, minute, tick = struct.unpack_from(">HHH", data, 8)
        (fsizex,) = struct.unpack_from(">H", data, 30)
        filename = latin1_to_string(data[14:30]).rstrip("\0")
        return cls(anode, fsize, fsizex, day, minute, tick, filename)

    def file_size(self):
        """Full size combining the low 32 bits and the extension bits."""
        return self.fsize | (self.fsizex << 32)


def deldir_entries_per_block(reserved_blksize):
    """Number of deldir slots that fit in one reserved block."""
    return max(0, reserved_blksize - DELDIR_HEADER_SIZE) // DELDIR_ENTRY_SIZE


def put_u32(buf, off, val):
    """Store a big-endian u32 into a bytearray at byte offset off."""
    struct.pack_into(">I", buf, off, val)


def put_u16(buf, off, val):
    """Store a big-endian u16 into a bytearray at byte offset off."""
    struct.pack_into(">H", buf, off, val)


def write_reserved_blocks(dev, blk, data, rescluster, sector_size):
    """Write a reserved block spanning rescluster sectors, zero-padding the tail."""
    for i in range(rescluster):
        chunk = bytes(data[i * sector_size:(i + 1) * sector_size])
        dev.write_block(blk + i, chunk.ljust(sector_size, b"\0"))