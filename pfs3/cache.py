"""Least-recently-used cache for reserved-area blocks."""

from collections import OrderedDict

from pfs3.errors import TooShortError

DEFAULT_CAPACITY = 256


class BlockCache:
    """Caches reserved blocks (directory, anode, index blocks) by block number."""

    def __init__(self, capacity=DEFAULT_CAPACITY):
        self.capacity = capacity
        self._entries = OrderedDict()

    def __len__(self):
        return len(self._entries)

    def __contains__(self, block):
        return block in self._entries

    def invalidate(self, block):
        """Drop a block from the cache, e.g. after it was written."""
        self._entries.pop(block, None)

    def read_reserved(self, dev, block, reserved_blksize):
        """Return ``reserved_blksize`` bytes starting at ``block``, from cache if possible."""
        cached = self._entries.get(block)
        if cached is not None:
            self._entries.move_to_end(block)
            return cached

        sectors = max(reserved_blksize // dev.block_size, 1)
        if sectors * dev.block_size > reserved_blksize:
            raise TooShortError("read buffer")
        data = bytes(dev.read_blocks(block, sectors)).ljust(reserved_blksize, b"\0")

        if len(self._entries) >= self.capacity:
            self._entries.popitem(last=False)
        self._entries[block] = data
        return data