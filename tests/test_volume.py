import struct

import pytest

from pfs3.device import MemoryBlockDevice
from pfs3.errors import (
    BadMagicError,
    CorruptError,
    InvalidPartitionError,
    NotDirectoryError,
    NotFoundError,
    ReadOnlyError,
)
from pfs3.formatter import FormatOptions, format_with_size
from pfs3.ondisk import (
    ANODE_ROOTDIR,
    DBLKID,
    DELDIRID,
    MODE_DELDIR,
    ST_FILE,
    ST_USERDIR,
)
from pfs3.volume import Volume

TOTAL = 4096
BS = 512
README = bytes((i * 7) % 256 for i in range(1200))
INNER = bytes((i * 13 + 5) % 256 for i in range(700))


def _put(dev, blk, off, data):
    start = blk * BS + off
    dev.data[start:start + len(data)] = data


def _entry(name, entry_type, anode, fsize, comment=b""):
    body = struct.pack(">bIIHHHBB", entry_type, anode, fsize, 0, 0, 0, 0, len(name))
    raw = b"\0" + body + name + bytes([len(comment)]) + comment
    if len(raw) % 2:
        raw += b"\0"
    return bytes([len(raw)]) + raw[1:]


def _formatted():
    dev = MemoryBlockDevice(TOTAL)
    result = format_with_size(dev, TOTAL, FormatOptions(volume_name="TestVol"))
    return dev, result


def _populated():
    dev, _ = _formatted()
    vol = Volume.from_device(dev)
    rootdir_blk = vol.get_anode_chain(ANODE_ROOTDIR)[0].blocknr
    anode_blk = vol.anodes.resolve_anode_block(0, vol.dev, vol.cache)

    def set_anode(nr, cs, blk, nxt):
        _put(dev, anode_blk, 16 + nr * 12, struct.pack(">III", cs, blk, nxt))

    set_anode(6, 3, 1000, 0)
    set_anode(7, 1, 2000, 0)
    set_anode(8, 1, 1100, 9)
    set_anode(9, 1, 1200, 0)

    _put(dev, 1000, 0, README)
    _put(dev, 1100, 0, INNER[:512])
    _put(dev, 1200, 0, INNER[512:])

    entries = _entry(b"readme.txt", ST_FILE, 6, len(README), b"hello")
    entries += _entry(b"Sub", ST_USERDIR, 7, 0)
    _put(dev, rootdir_blk, 0x14, entries)

    header = struct.pack(">H2xI4xII", DBLKID, 1, 7, ANODE_ROOTDIR)
    _put(dev, 2000, 0, header + _entry(b"inner.txt", ST_FILE, 8, len(INNER)))
    return dev


def _rdb_image(volume_bytes):
    image = bytearray(32 * BS)
    struct.pack_into(">I", image, 0, 0x5244534B)
    struct.pack_into(">I", image, 0x0C, 1)
    part = BS
    struct.pack_into(">I", image, part, 0x50415254)
    image[part + 0x24] = 3
    image[part + 0x25:part + 0x28] = b"DH0"
    env = part + 0x80
    struct.pack_into(">I", image, env + 0x0C, 1)
    struct.pack_into(">I", image, env + 0x14, 16)
    struct.pack_into(">I", image, env + 0x24, 2)
    struct.pack_into(">I", image, env + 0x28, 257)
    struct.pack_into(">I", image, env + 0x40, 0x50465303)
    return bytes(image) + bytes(volume_bytes)


def test_fresh_volume_info():
    dev, result = _formatted()
    vol = Volume.from_device(dev)
    assert vol.name == "TestVol"
    assert vol.total_blocks == TOTAL
    assert vol.free_blocks == result.blocks_free
    assert vol.block_size == BS
    assert vol.fnsize == 32
    assert vol.rootblock.reserved_blksize == result.reserved_blksize


def test_bitmap_count_matches_data_blocks():
    dev, result = _formatted()
    vol = Volume.from_device(dev)
    assert vol.bitmap_count_free() == result.data_blocks


def test_reserved_count_matches_rootblock():
    dev, _ = _formatted()
    vol = Volume.from_device(dev)
    assert vol.reserved_count_free() == vol.rootblock.reserved_free


def test_fresh_root_is_empty():
    dev, _ = _formatted()
    vol = Volume.from_device(dev)
    assert vol.list_dir("/") == []
    assert vol.lookup("/") is None
    assert vol.lookup("missing") is None
    assert vol.list_deldir() == []


def test_list_root_and_subdir():
    vol = Volume.from_device(_populated())
    root = vol.list_dir("/")
    assert [e.name for e in root] == ["readme.txt", "Sub"]
    assert root[0].comment == "hello"
    assert root[1].is_dir()
    assert [e.name for e in vol.list_dir("Sub")] == ["inner.txt"]
    assert [e.name for e in vol.list_dir_by_anode(7)] == ["inner.txt"]


def test_read_files():
    vol = Volume.from_device(_populated())
    assert vol.read_file("readme.txt") == README
    assert vol.read_file("/README.TXT") == README
    assert vol.read_file("sub/inner.txt") == INNER


def test_lookup_case_insensitive():
    vol = Volume.from_device(_populated())
    entry = vol.lookup("SUB/INNER.TXT")
    assert entry.name == "inner.txt"
    assert entry.file_size() == len(INNER)


def test_read_file_errors():
    vol = Volume.from_device(_populated())
    with pytest.raises(NotFoundError):
        vol.read_file("nope.txt")
    with pytest.raises(NotDirectoryError):
        vol.read_file("Sub")
    with pytest.raises(NotDirectoryError):
        vol.list_dir("readme.txt")
    with pytest.raises(NotFoundError):
        vol.list_dir("nodir/x")


@pytest.mark.parametrize(
    "offset,length", [(0, 10), (500, 30), (510, 600), (1190, 100), (0, 5000)]
)
def test_read_file_range_matches_slice(offset, length):
    vol = Volume.from_device(_populated())
    assert vol.read_file_range(6, len(README), offset, length) == README[offset:offset + length]


def test_read_file_range_across_extents():
    vol = Volume.from_device(_populated())
    assert vol.read_file_range(8, len(INNER), 400, 200) == INNER[400:600]


def test_read_file_range_past_end():
    vol = Volume.from_device(_populated())
    assert vol.read_file_range(6, len(README), len(README), 10) == b""


def test_anode_chain_and_blocks():
    vol = Volume.from_device(_populated())
    chain = vol.get_anode_chain(8)
    assert [a.nr for a in chain] == [8, 9]
    assert vol.validate_anode_chain(8) == [1100, 1200]
    assert vol.validate_anode_chain(6) == [1000, 1001, 1002]


def test_read_file_data_truncates_to_size():
    vol = Volume.from_device(_populated())
    assert vol.read_file_data(6, 100) == README[:100]


def test_list_deldir():
    dev = _populated()
    vol = Volume.from_device(dev)
    options = vol.rootblock.options | MODE_DELDIR
    _put(dev, 2, 4, struct.pack(">I", options))
    _put(dev, vol.rootblock.extension, 0x90, struct.pack(">I", 1500))
    slot = struct.pack(">IIHHH", 6, 1200, 0, 0, 0) + b"gone.txt".ljust(16, b"\0") + b"\0\0"
    _put(dev, 1500, 0, struct.pack(">H", DELDIRID))
    _put(dev, 1500, 32, slot)
    deleted = Volume.from_device(dev).list_deldir()
    assert [(d.filename, d.anode, d.file_size()) for d in deleted] == [("gone.txt", 6, 1200)]


def test_bad_magic():
    with pytest.raises(BadMagicError):
        Volume.from_device(MemoryBlockDevice(16))


def test_tiny_reserved_blksize_is_corrupt():
    dev, _ = _formatted()
    _put(dev, 2, 0x40, struct.pack(">H", 32))
    with pytest.raises(CorruptError):
        Volume.from_device(dev)


def test_open_raw_file(tmp_path):
    dev = _populated()
    path = tmp_path / "raw.img"
    path.write_bytes(bytes(dev.data))
    with Volume.open(path) as vol:
        assert vol.read_file("readme.txt") == README
        with pytest.raises(ReadOnlyError):
            vol.dev.write_block(0, bytes(BS))
    with pytest.raises(InvalidPartitionError):
        Volume.open_rdb(path)
    with Volume.open_auto(path, 0, None, False) as vol:
        assert vol.name == "TestVol"


def test_open_rw_allows_writes(tmp_path):
    dev, _ = _formatted()
    path = tmp_path / "rw.img"
    path.write_bytes(bytes(dev.data))
    with Volume.open_rw(path) as vol:
        vol.dev.write_block(3000, b"\x55" * BS)
        vol.dev.flush()
    assert path.read_bytes()[3000 * BS:3001 * BS] == b"\x55" * BS


def test_rdb_partition_opening(tmp_path):
    dev = _populated()
    path = tmp_path / "rdb.hdf"
    path.write_bytes(_rdb_image(dev.data))
    assert Volume.find_partition_offset(path, "dh0") == 32 * BS
    with Volume.open_rdb(path) as vol:
        assert vol.read_file("Sub/inner.txt") == INNER
    with Volume.open_partition(path, "DH0") as vol:
        assert vol.name == "TestVol"
    with Volume.open_partition(path, "0") as vol:
        assert vol.name == "TestVol"
    with Volume.open_auto(path, 0, None, False) as vol:
        assert vol.read_file("readme.txt") == README
    with Volume.open_partition_rw(path, "DH0") as vol:
        assert vol.name == "TestVol"
    with Volume.open_rdb_rw(path) as vol:
        assert vol.name == "TestVol"


def test_unknown_partition(tmp_path):
    dev, _ = _formatted()
    path = tmp_path / "rdb.hdf"
    path.write_bytes(_rdb_image(dev.data))
    with pytest.raises(NotFoundError):
        Volume.open_partition(path, "DH9")
    with pytest.raises(NotFoundError):
        Volume.find_partition_offset(path, "3")