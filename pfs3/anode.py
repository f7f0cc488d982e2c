"""Anode (extent) lookup and chain traversal.

Anode numbers encode a sequence number and an offset:

* split mode: ``anodenr = (seqnr << 16) | offset``
* otherwise:  ``anodenr = seqnr * anodes_per_block + offset``

The sequence number is resolved to an anode block through the rootblock's
index blocks, or on large disks through the super index of the rootblock
extension.
"""

import struct

from pfs3.errors import AnodeNotFoundError, InvalidPartitionError
from pfs3.ondisk import (
    ANODE_BLOCK_HEADER_SIZE,
    ANODE_EOF,
    ANODE_SIZE,
    INDEX_BLOCK_HEADER_SIZE,
    Anode,
    AnodeBlockHeader,
)

MAX_CHAIN_LEN = 1_000_000


class AnodeReader:
    """Reads anode records from the reserved area of a volume."""

    def __init__(self, rb, rbe=None):
        self.reserved_blksize = rb.reserved_blksize
        self.anodes_per_block = rb.anodes_per_block()
        self.index_per_block = rb.index_per_block()
        self.split_mode = rb.is_splitted_anodes()
        self.is_large = rb.is_large()
        self.indexblocks = list(rb.indexblocks)
        self.superindex = list(rbe.superindex) if rbe is not None else []

    def _split(self, anodenr):
        if self.split_mode:
            return anodenr >> 16, anodenr & 0xFFFF
        return divmod(anodenr, self.anodes_per_block)

    def get_anode(self, anodenr, dev, cache):
        """Look up a single anode by number."""
        seqnr, offset = self._split(anodenr)
        blk_nr = self.resolve_anode_block(seqnr, dev, cache)
        if blk_nr == 0:
            raise AnodeNotFoundError(anodenr)

        data = cache.read_reserved(dev, blk_nr, self.reserved_blksize)
        AnodeBlockHeader.parse(data)

        base = ANODE_BLOCK_HEADER_SIZE + offset * ANODE_SIZE
        if base + ANODE_SIZE > len(data):
            raise AnodeNotFoundError(anodenr)
        return Anode.parse(data[base:base + ANODE_SIZE], anodenr)

    def get_chain(self, anodenr, dev, cache):
        """Follow the chain starting at ``anodenr`` up to EOF, rejecting cycles."""
        chain = []
        seen = set()
        nr = anodenr
        while nr != ANODE_EOF:
            if nr in seen:
                raise InvalidPartitionError(f"anode cycle at {nr}")
            seen.add(nr)
            if len(chain) >= MAX_CHAIN_LEN:
                raise InvalidPartitionError("anode chain too long")
            anode = self.get_anode(nr, dev, cache)
            chain.append(anode)
            nr = anode.next
        return chain

    def resolve_anode_block(self, seqnr, dev, cache):
        """Return the block holding anode block ``seqnr``, or 0 if it is unmapped."""
        ipb = self.index_per_block
        if self.is_large:
            super_nr, remainder = divmod(seqnr, ipb * ipb)
            idx_nr, idx_off = divmod(remainder, ipb)
            super_blk = _get_or_zero(self.superindex, super_nr)
            if super_blk == 0:
                return 0
            idx_blk = self._read_index_entry(super_blk, idx_nr, dev, cache)
            if idx_blk == 0:
                return 0
            return self._read_index_entry(idx_blk, idx_off, dev, cache)

        idx_nr, idx_off = divmod(seqnr, ipb)
        idx_blk = _get_or_zero(self.indexblocks, idx_nr)
        if idx_blk == 0:
            return 0
        return self._read_index_entry(idx_blk, idx_off, dev, cache)

    def _read_index_entry(self, block, offset, dev, cache):
        data = cache.read_reserved(dev, block, self.reserved_blksize)
        off = INDEX_BLOCK_HEADER_SIZE + offset * 4
        if off + 4 > len(data):
            return 0
        return struct.unpack_from(">I", data, off)[0]


def _get_or_zero(values, index):
    return values[index] if index < len(values) else 0