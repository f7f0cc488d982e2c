import pytest

from pfs3.cache import BlockCache
from pfs3.device import MemoryBlockDevice
from pfs3.errors import TooShortError


class CountingDevice(MemoryBlockDevice):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.reads = []

    def read_blocks(self, block, count):
        self.reads.append((block, count))
        return super().read_blocks(block, count)


def make_device(blocks=16):
    dev = CountingDevice(total_blocks=blocks, block_size=512)
    for blk in range(blocks):
        dev.write_block(blk, bytes([blk]) * 512)
    return dev


def test_read_returns_block_contents():
    dev = make_device()
    cache = BlockCache()
    assert cache.read_reserved(dev, 3, 512) == bytes([3]) * 512


def test_second_read_is_cached():
    dev = make_device()
    cache = BlockCache()
    first = cache.read_reserved(dev, 4, 512)
    second = cache.read_reserved(dev, 4, 512)
    assert first == second
    assert dev.reads == [(4, 1)]
    assert 4 in cache


def test_invalidate_forces_reread():
    dev = make_device()
    cache = BlockCache()
    cache.read_reserved(dev, 2, 512)
    dev.write_block(2, b"\xaa" * 512)
    assert cache.read_reserved(dev, 2, 512) == bytes([2]) * 512
    cache.invalidate(2)
    assert 2 not in cache
    assert cache.read_reserved(dev, 2, 512) == b"\xaa" * 512
    cache.invalidate(99)
    assert len(cache) == 1


def test_multi_sector_reserved_block():
    dev = make_device()
    cache = BlockCache()
    data = cache.read_reserved(dev, 5, 1024)
    assert data == bytes([5]) * 512 + bytes([6]) * 512
    assert dev.reads == [(5, 2)]


def test_partial_sector_is_zero_padded():
    dev = make_device()
    cache = BlockCache()
    data = cache.read_reserved(dev, 7, 768)
    assert len(data) == 768
    assert data[:512] == bytes([7]) * 512
    assert data[512:] == bytes(256)


def test_reserved_smaller_than_sector_rejected():
    dev = make_device()
    with pytest.raises(TooShortError):
        BlockCache().read_reserved(dev, 0, 256)


def test_lru_eviction():
    dev = make_device()
    cache = BlockCache(capacity=2)
    cache.read_reserved(dev, 0, 512)
    cache.read_reserved(dev, 1, 512)
    cache.read_reserved(dev, 0, 512)
    cache.read_reserved(dev, 2, 512)
    assert len(cache) == 2
    assert 0 in cache
    assert 1 not in cache
    assert 2 in cache
    dev.reads.clear()
    cache.read_reserved(dev, 0, 512)
    assert dev.reads == []
    cache.read_reserved(dev, 1, 512)
    assert dev.reads == [(1, 1)]