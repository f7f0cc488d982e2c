"""Data bitmap reading, used to count free blocks."""

import struct

from pfs3.ondisk import BITMAP_BLOCK_HEADER_SIZE, INDEX_BLOCK_HEADER_SIZE

_FULL_WORD = 0xFFFFFFFF


class BitmapReader:
    """Resolves bitmap block sequence numbers and scans the bitmap."""

    def __init__(self, rb):
        self.reserved_blksize = rb.reserved_blksize
        self.index_per_block = rb.index_per_block()
        self.bitmapindex = list(rb.bitmapindex)

    def count_free(self, dev, cache, disksize):
        """Count set (free) bits over the first ``disksize`` bits of the bitmap."""
        free = 0
        remaining = disksize
        seqnr = 0
        while remaining > 0:
            blk = self.get_bitmap_block(seqnr, dev, cache)
            if blk is None:
                break
            data = cache.read_reserved(dev, blk, self.reserved_blksize)
            for pos in range(BITMAP_BLOCK_HEADER_SIZE, len(data) - 3, 4):
                if remaining <= 0:
                    break
                (word,) = struct.unpack_from(">I", data, pos)
                bits = min(remaining, 32)
                if bits < 32:
                    word &= (_FULL_WORD << (32 - bits)) & _FULL_WORD
                free += word.bit_count()
                remaining -= 32
            seqnr += 1
        return free

    def get_bitmap_block(self, seqnr, dev, cache):
        """Return the block number of bitmap block ``seqnr``, or None if unmapped."""
        idx_nr, idx_off = divmod(seqnr, self.index_per_block)
        if idx_nr >= len(self.bitmapindex):
            return None
        bmi_blk = self.bitmapindex[idx_nr]
        if bmi_blk == 0:
            return None
        data = cache.read_reserved(dev, bmi_blk, self.reserved_blksize)
        off = INDEX_BLOCK_HEADER_SIZE + idx_off * 4
        if off + 4 > len(data):
            return None
        (value,) = struct.unpack_from(">I", data, off)
        return value or None