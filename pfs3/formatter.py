"""Creation of a new, empty PFS3 filesystem on a block device (mkfs).

The layout written is, in order:

1. boot block carrying the PFS\\1 magic,
2. rootblock cluster: rootblock followed by the reserved-area bitmap,
3. rootblock extension,
4. bitmap index blocks and bitmap blocks (all data blocks free),
5. anode index block and an anode block holding the root directory anode,
6. an empty root directory block.
"""

from dataclasses import dataclass

from pfs3.errors import DiskFullError
from pfs3.ondisk import (
    ABLKID,
    ANODE_BLOCK_HEADER_SIZE,
    ANODE_ROOTDIR,
    ANODE_SIZE,
    BMBLKID,
    BMIBLKID,
    DBLKID,
    EXTENSIONID,
    IBLKID,
    ID_PFS_DISK,
    MAXBITMAPINDEX,
    MAXSMALLBITMAPINDEX,
    MODE_DATESTAMP,
    MODE_DIR_EXTENSION,
    MODE_EXTENSION,
    MODE_EXTROVING,
    MODE_HARDDISK,
    MODE_LONGFN,
    MODE_SIZEFIELD,
    MODE_SPLITTED_ANODES,
    MODE_SUPERINDEX,
    put_u16,
    put_u32,
    write_reserved_blocks,
)
from pfs3.util import current_amiga_datestamp

MAXSMALLDISK = (MAXSMALLBITMAPINDEX + 1) * 253 * 253 * 32
MAXNUMRESERVED = 4096 + 255 * 1024 * 8
_MAX_1K_DISK = (MAXBITMAPINDEX + 1) * 253 * 253 * 32
_MAX_2K_DISK = (MAXBITMAPINDEX + 1) * 509 * 509 * 32

FIRST_RESERVED = 2
MAX_DISKNAME = 30
PFS2_VERSION = 0x0013_0002
DEFAULT_FNSIZE = 32

_U32_MASK = 0xFFFF_FFFF
_U64_MASK = 0xFFFF_FFFF_FFFF_FFFF


@dataclass
class FormatOptions:
    """Options for a new PFS3 volume."""

    volume_name: str = "Untitled"
    enable_deldir: bool = False


@dataclass
class FormatResult:
    """Summary of a completed format."""

    volume_name: str
    total_blocks: int
    data_blocks: int
    blocks_free: int
    num_reserved: int
    reserved_blksize: int


def _div_ceil(a, b):
    return -(-a // b)


def _calc_num_reserved(total_blocks, resblocksize):
    taken = 32
    i = 2048
    while i > 0 and i // 2 < total_blocks:
        m = 10 if i >= 512 * 2048 else 14
        taken += taken * m // 16
        i = (i << 1) & _U64_MASK
    taken //= resblocksize // 1024
    taken = min(max(taken - 1, 0), MAXNUMRESERVED)
    taken = (taken + 31) & ~0x1F
    return max(taken, 32)


class _ReservedAllocator:
    """Hands out reserved-block indexes, starting after the rootblock cluster."""

    def __init__(self, numreserved, rootcluster_resblocks):
        self.numreserved = numreserved
        self.free = [i >= rootcluster_resblocks for i in range(numreserved)]
        self.roving = rootcluster_resblocks

    def alloc(self):
        for step in range(self.numreserved):
            idx = (self.roving + step) % self.numreserved
            if self.free[idx]:
                self.free[idx] = False
                self.roving = (idx + 1) % self.numreserved
                return idx
        raise DiskFullError("out of reserved blocks")

    def free_count(self):
        return sum(self.free)

    def build_bitmap(self):
        longs = []
        for start in range(0, self.numreserved, 32):
            val = 0
            for bit, is_free in enumerate(self.free[start:start + 32]):
                if is_free:
                    val |= 0x8000_0000 >> bit
            longs.append(val)
        return longs


def _reserved_block(block_id, seqnr, size):
    buf = bytearray(size)
    put_u16(buf, 0, block_id)
    put_u32(buf, 4, 1)  # datestamp
    put_u32(buf, 8, seqnr)
    return buf


def _bitmap_word(remaining):
    if remaining >= 32:
        return _U32_MASK
    return (_U32_MASK << (32 - remaining)) & _U32_MASK


def format_with_size(dev, total_blocks, opts=None):
    """Format ``dev`` as a PFS3 volume of ``total_blocks`` device blocks."""
    if opts is None:
        opts = FormatOptions()
    bs = dev.block_size

    resblocksize = 1024
    supermode = total_blocks > MAXSMALLDISK
    if supermode:
        if total_blocks > _MAX_1K_DISK:
            resblocksize = 2048
        if total_blocks > _MAX_2K_DISK:
            resblocksize = 4096
    resblocksize = max(resblocksize, bs)
    rescluster = resblocksize // bs

    numreserved = _calc_num_reserved(total_blocks, resblocksize)

    resbm_1k = 1
    i = 125
    while i < numreserved // 32:
        resbm_1k += 1
        i += 256
    resbm_resblocks = _div_ceil(1024 * resbm_1k, resblocksize)
    rblkcluster = rescluster * resbm_resblocks

    firstreserved = FIRST_RESERVED
    lastreserved = rescluster * numreserved + firstreserved - 1

    alloc = _ReservedAllocator(numreserved, resbm_resblocks)

    def alloc_block():
        return firstreserved + alloc.alloc() * rescluster

    rext_blk = alloc_block()

    options = (
        MODE_HARDDISK
        | MODE_SPLITTED_ANODES
        | MODE_DIR_EXTENSION
        | MODE_SIZEFIELD
        | MODE_DATESTAMP
        | MODE_EXTROVING
        | MODE_LONGFN
        | MODE_EXTENSION
    )
    if supermode:
        options |= MODE_SUPERINDEX

    cday, cmin, ctick = current_amiga_datestamp()
    index_per_block = max(0, resblocksize // 4 - 3)

    reserved_area = lastreserved + 1
    disk_blocks = total_blocks & _U32_MASK
    if disk_blocks <= reserved_area:
        raise DiskFullError(
            f"disk too small: {total_blocks} blocks, "
            f"need at least {reserved_area + 1} for reserved area"
        )
    data_blocks = disk_blocks - reserved_area
    bits_per_bmb = index_per_block * 32
    no_bmb = _div_ceil(data_blocks, bits_per_bmb)
    no_bmi = _div_ceil(no_bmb, index_per_block)

    boot = bytearray(bs)
    put_u32(boot, 0, ID_PFS_DISK)
    dev.write_block(0, bytes(boot))
    dev.write_block(1, bytes(bs))

    bm_blocknrs = [alloc_block() for _ in range(no_bmb)]
    bmi_blocknrs = [alloc_block() for _ in range(no_bmi)]
    anidx_blk = alloc_block()
    anode_blk = alloc_block()
    rootdir_blk = alloc_block()

    rb_data = bytearray(rblkcluster * bs)
    put_u32(rb_data, 0x00, ID_PFS_DISK)
    put_u32(rb_data, 0x04, options)
    put_u32(rb_data, 0x08, 1)
    put_u16(rb_data, 0x0C, cday)
    put_u16(rb_data, 0x0E, cmin)
    put_u16(rb_data, 0x10, ctick)
    put_u16(rb_data, 0x12, 0xF0)

    name = opts.volume_name.encode("utf-8")[:MAX_DISKNAME]
    rb_data[0x14] = len(name)
    rb_data[0x15:0x15 + len(name)] = name

    put_u32(rb_data, 0x34, lastreserved)
    put_u32(rb_data, 0x38, firstreserved)
    put_u32(rb_data, 0x3C, alloc.free_count())
    put_u16(rb_data, 0x40, resblocksize)
    put_u16(rb_data, 0x42, rblkcluster)
    put_u32(rb_data, 0x44, data_blocks)
    put_u32(rb_data, 0x48, data_blocks // 20)
    put_u32(rb_data, 0x54, disk_blocks)
    put_u32(rb_data, 0x58, rext_blk)

    if supermode:
        for idx, blknr in enumerate(bmi_blocknrs):
            put_u32(rb_data, 0x60 + idx * 4, blknr)
    else:
        for idx, blknr in enumerate(bmi_blocknrs[:MAXSMALLBITMAPINDEX + 1]):
            put_u32(rb_data, 0x60 + idx * 4, blknr)
        put_u32(rb_data, 0x60 + (MAXSMALLBITMAPINDEX + 1) * 4, anidx_blk)

    rbm_off = bs
    put_u16(rb_data, rbm_off, BMBLKID)
    put_u32(rb_data, rbm_off + 8, 0)
    for idx, val in enumerate(alloc.build_bitmap()):
        off = rbm_off + 12 + idx * 4
        if off + 4 <= len(rb_data):
            put_u32(rb_data, off, val)

    for idx in range(rblkcluster):
        dev.write_block(firstreserved + idx, bytes(rb_data[idx * bs:(idx + 1) * bs]))

    rext = bytearray(resblocksize)
    put_u16(rext, 0x00, EXTENSIONID)
    put_u32(rext, 0x08, 1)
    put_u32(rext, 0x0C, PFS2_VERSION)
    put_u16(rext, 0x10, cday)
    put_u16(rext, 0x12, cmin)
    put_u16(rext, 0x14, ctick)
    put_u16(rext, 0x38, DEFAULT_FNSIZE)
    if supermode:
        put_u32(rext, 0x40, anidx_blk)
    write_reserved_blocks(dev, rext_blk, rext, rescluster, bs)

    for seq, bmi_blknr in enumerate(bmi_blocknrs):
        bmi = _reserved_block(BMIBLKID, seq, resblocksize)
        first = seq * index_per_block
        for j, bm_blknr in enumerate(bm_blocknrs[first:first + index_per_block]):
            put_u32(bmi, 12 + j * 4, bm_blknr)
        write_reserved_blocks(dev, bmi_blknr, bmi, rescluster, bs)

    for seq, bm_blknr in enumerate(bm_blocknrs):
        bm = _reserved_block(BMBLKID, seq, resblocksize)
        for j in range(index_per_block):
            block_idx = seq * bits_per_bmb + j * 32
            if block_idx < data_blocks:
                put_u32(bm, 12 + j * 4, _bitmap_word(data_blocks - block_idx))
        write_reserved_blocks(dev, bm_blknr, bm, rescluster, bs)

    anidx = _reserved_block(IBLKID, 0, resblocksize)
    put_u32(anidx, 12, anode_blk)
    write_reserved_blocks(dev, anidx_blk, anidx, rescluster, bs)

    anode_block = _reserved_block(ABLKID, 0, resblocksize)
    an_off = ANODE_BLOCK_HEADER_SIZE + ANODE_ROOTDIR * ANODE_SIZE
    put_u32(anode_block, an_off, 1)
    put_u32(anode_block, an_off + 4, rootdir_blk)
    put_u32(anode_block, an_off + 8, 0)
    write_reserved_blocks(dev, anode_blk, anode_block, rescluster, bs)

    root_dir = _reserved_block(DBLKID, 0, resblocksize)
    put_u32(root_dir, 0x0C, ANODE_ROOTDIR)
    put_u32(root_dir, 0x10, ANODE_ROOTDIR)
    write_reserved_blocks(dev, rootdir_blk, root_dir, rescluster, bs)

    dev.flush()

    return FormatResult(
        volume_name=opts.volume_name,
        total_blocks=total_blocks,
        data_blocks=data_blocks,
        blocks_free=data_blocks,
        num_reserved=numreserved,
        reserved_blksize=resblocksize,
    )