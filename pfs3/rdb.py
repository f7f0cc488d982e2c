"""Detection of PFS3 partitions in Amiga RDB (Rigid Disk Block) images."""

import errno
import struct
from dataclasses import dataclass

from pfs3.errors import InvalidPartitionError
from pfs3.ondisk import PFS_TYPES
from pfs3.util import latin1_to_string

RDSK_MAGIC = 0x5244534B
PART_MAGIC = 0x50415254
RDB_HIGHBLOCK_OFF = 0x0C
RDB_BLOCK_SIZE = 512
MAX_SCAN_BLOCK = 1023

RDB_PFS3_DOSTYPES = (
    0x50465301,  # PFS\1
    0x50465302,  # PFS\2
    0x50465303,  # PFS\3
    0x50445301,  # PDS\1
    0x50445302,  # PDS\2
    0x50445303,  # PDS\3
)

_PART_NAME_LEN_OFF = 0x24
_ENV_OFF = 0x80


@dataclass
class PartitionInfo:
    """A PFS3 partition found in an RDB image."""

    name: str
    offset: int
    blocks: int


def _u32(buf, off):
    return struct.unpack_from(">I", buf, off)[0]


def _parse_part_block(buf):
    nlen = min(buf[_PART_NAME_LEN_OFF], 30)
    start = _PART_NAME_LEN_OFF + 1
    name = latin1_to_string(buf[start:start + nlen])
    surfaces = _u32(buf, _ENV_OFF + 0x0C)
    blocks_per_track = _u32(buf, _ENV_OFF + 0x14)
    low_cyl = _u32(buf, _ENV_OFF + 0x24)
    high_cyl = _u32(buf, _ENV_OFF + 0x28)
    dostype = _u32(buf, _ENV_OFF + 0x40)
    if dostype not in RDB_PFS3_DOSTYPES and dostype not in PFS_TYPES:
        return None
    if high_cyl < low_cyl:
        return None
    track_blocks = surfaces * blocks_per_track
    return PartitionInfo(
        name=name,
        offset=low_cyl * track_blocks * RDB_BLOCK_SIZE,
        blocks=(high_cyl - low_cyl + 1) * track_blocks,
    )


def detect_pfs3_partitions(path):
    """Return every PFS3 partition listed in the RDB of the image at ``path``.

    An image without an RDB yields an empty list.
    """
    partitions = []
    with open(path, "rb") as f:
        header = f.read(RDB_BLOCK_SIZE)
        if len(header) < RDB_BLOCK_SIZE:
            raise OSError(errno.EIO, f"{path}: image shorter than one block")
        if _u32(header, 0) != RDSK_MAGIC:
            return partitions
        scan_limit = min(_u32(header, RDB_HIGHBLOCK_OFF), MAX_SCAN_BLOCK) + 1
        for blk in range(1, scan_limit):
            f.seek(blk * RDB_BLOCK_SIZE)
            buf = f.read(RDB_BLOCK_SIZE)
            if len(buf) < RDB_BLOCK_SIZE:
                break
            if _u32(buf, 0) != PART_MAGIC:
                continue
            info = _parse_part_block(buf)
            if info is not None:
                partitions.append(info)
    return partitions


def detect_pfs3_partition(path):
    """Return the byte offset of the first PFS3 partition in an RDB image."""
    partitions = detect_pfs3_partitions(path)
    if not partitions:
        raise InvalidPartitionError("no PFS3 partition found in RDB image")
    return partitions[0].offset