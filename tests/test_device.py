import pytest

from pfs3.device import FileBlockDevice, MemoryBlockDevice
from pfs3.errors import (
    BlockOutOfRangeError,
    InvalidPartitionError,
    ReadOnlyError,
    TooShortError,
)


def _pattern(n, size=512):
    return bytes([n % 256]) * size


def test_create_write_read(tmp_path):
    path = tmp_path / "disk.img"
    with FileBlockDevice.create(path, 512, 8) as dev:
        assert dev.total_blocks == 8
        dev.write_block(3, _pattern(3))
        dev.flush()
        assert dev.read_block(3) == _pattern(3)
        assert dev.read_block(2) == bytes(512)
    assert path.stat().st_size == 8 * 512


def test_write_blocks_and_reopen(tmp_path):
    path = tmp_path / "disk.img"
    data = _pattern(1) + _pattern(2)
    with FileBlockDevice.create(path, 512, 4) as dev:
        dev.write_blocks(1, 2, data)
        dev.flush()
    with FileBlockDevice.open(path) as dev:
        assert dev.total_blocks == 4
        assert dev.read_blocks(1, 2) == data


def test_read_only_rejects_writes(tmp_path):
    path = tmp_path / "disk.img"
    path.write_bytes(bytes(2048))
    with FileBlockDevice.open(path) as dev:
        with pytest.raises(ReadOnlyError):
            dev.write_block(0, bytes(512))


def test_partition_offset(tmp_path):
    path = tmp_path / "disk.img"
    path.write_bytes(bytes(1024) + _pattern(9) + _pattern(10))
    with FileBlockDevice.open_rw(path, 512, 1024) as dev:
        assert dev.total_blocks == 2
        assert dev.read_block(0) == _pattern(9)
        dev.write_block(1, _pattern(11))
        dev.flush()
    assert path.read_bytes()[1536:] == _pattern(11)


def test_offset_past_end(tmp_path):
    path = tmp_path / "disk.img"
    path.write_bytes(bytes(512))
    with pytest.raises(InvalidPartitionError):
        FileBlockDevice.open(path, 512, 4096)


def test_write_out_of_range(tmp_path):
    with FileBlockDevice.create(tmp_path / "d.img", 512, 4) as dev:
        with pytest.raises(BlockOutOfRangeError):
            dev.write_blocks(3, 2, bytes(1024))


def test_short_write_buffer(tmp_path):
    with FileBlockDevice.create(tmp_path / "d.img", 512, 4) as dev:
        with pytest.raises(TooShortError):
            dev.write_block(0, bytes(100))


def test_read_past_end_of_file(tmp_path):
    with FileBlockDevice.create(tmp_path / "d.img", 512, 2) as dev:
        with pytest.raises(OSError):
            dev.read_block(5)


def test_memory_round_trip():
    dev = MemoryBlockDevice(4, 512)
    dev.write_blocks(0, 2, _pattern(4) + _pattern(5))
    assert dev.read_block(1) == _pattern(5)
    assert dev.read_blocks(0, 2) == _pattern(4) + _pattern(5)
    assert bytes(dev.data[:512]) == _pattern(4)


def test_memory_from_data():
    dev = MemoryBlockDevice(data=_pattern(1) + _pattern(2) + b"x")
    assert dev.total_blocks == 2
    assert dev.read_block(1) == _pattern(2)


def test_memory_pads_data_to_size():
    dev = MemoryBlockDevice(3, 512, data=_pattern(6))
    assert dev.read_block(0) == _pattern(6)
    assert dev.read_block(2) == bytes(512)


def test_memory_out_of_range():
    dev = MemoryBlockDevice(2, 512)
    with pytest.raises(BlockOutOfRangeError):
        dev.read_block(2)
    with pytest.raises(BlockOutOfRangeError):
        dev.write_blocks(1, 2, bytes(1024))


def test_memory_read_only():
    dev = MemoryBlockDevice(2, 512, writable=False)
    with pytest.raises(ReadOnlyError):
        dev.write_block(0, bytes(512))
    assert dev.read_block(0) == bytes(512)


def test_memory_short_write():
    dev = MemoryBlockDevice(2, 512)
    with pytest.raises(TooShortError):
        dev.write_block(0, bytes(10))