# pfs3

A pure Python library for PFS3 (Professional File System III) volumes, the
filesystem used on many Amiga hard disks. It reads raw PFS3 partition images
and RDB (Rigid Disk Block) hard disk images, and can format new, empty PFS3
volumes. It has no dependencies outside the standard library.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Reading a volume

```python
from pfs3.volume import Volume
from pfs3.util import amiga_date_string, amiga_protection_string

with Volume.open_rdb("disk.hdf") as vol:      # first PFS3 partition of an RDB image
    print(vol.name, vol.total_blocks, vol.free_blocks, vol.block_size)

    for entry in vol.list_dir("/"):
        kind = "dir " if entry.is_dir() else "file"
        stamp = amiga_date_string(
            entry.creation_day, entry.creation_minute, entry.creation_tick
        )
        print(kind, amiga_protection_string(entry.protection), stamp,
              entry.name, entry.file_size())

    data = vol.read_file("S/Startup-Sequence")
```

`name`, `total_blocks`, `free_blocks`, `block_size` and `fnsize` are
properties. A `Volume` closes its device on `close()` or at the end of a
`with` block.

Ways to open a volume:

- `Volume.open(path, partition_offset=0)` for a raw partition image, or a
  known byte offset inside a larger image.
- `Volume.open_rdb(path)` for the first PFS3 partition of an RDB image.
- `Volume.open_partition(path, "DH0")` for a named RDB partition; the name
  is matched ignoring case, and a numeric index such as `"1"` also works.
- `Volume.open_auto(path, offset=0, partition=None, writable=False)` uses the
  partition name if given, else the offset, else tries RDB detection and
  falls back to offset 0.
- `Volume.from_device(dev)` for any block device already opened.
- `open_rw`, `open_rdb_rw` and `open_partition_rw` open the image file for
  writing instead of read-only.

Path lookups use `/` as the separator and ignore ASCII case.
`Volume.lookup(path)` returns `None` for the root directory or for a missing
final component, and raises `NotFoundError` for a missing intermediate
directory.

Other read operations:

- `read_file_range(anodenr, file_size, offset, length)` reads only the
  blocks that overlap the requested range.
- `list_deldir()` lists deleted files kept in the deldir, if the volume has
  one enabled.
- `bitmap_count_free()` counts free data blocks by scanning the bitmap;
  `reserved_count_free()` counts free reserved blocks.
- `get_anode_chain(anodenr)` and `validate_anode_chain(anodenr)` return a
  file's extents and the data block numbers they cover.

## Partitions in RDB images

```python
from pfs3.rdb import detect_pfs3_partitions

for part in detect_pfs3_partitions("disk.hdf"):
    print(part.name, part.offset, part.blocks)
```

An image without an RDB gives an empty list. `detect_pfs3_partition(path)`
returns the byte offset of the first PFS3 partition, or raises
`InvalidPartitionError`.

## Formatting

```python
from pfs3.device import FileBlockDevice
from pfs3.formatter import FormatOptions, format_with_size

with FileBlockDevice.create("new.hdf", 512, 65536) as dev:
    result = format_with_size(dev, 65536, FormatOptions(volume_name="Work"))
    print(result.data_blocks, result.num_reserved, result.reserved_blksize)
```

`MemoryBlockDevice(total_blocks, block_size=512)` from `pfs3.device` keeps a
device in memory and can be used wherever a file-backed device is:

```python
from pfs3.device import MemoryBlockDevice
from pfs3.formatter import format_with_size
from pfs3.volume import Volume

dev = MemoryBlockDevice(4096)
format_with_size(dev, 4096)
vol = Volume.from_device(dev)
print(vol.list_dir("/"))    # []
```

## Utilities

`pfs3.util` converts Amiga datestamps (`amiga_to_datetime`,
`amiga_date_string`, `current_amiga_datestamp`) and protection bits
(`amiga_protection_to_mode`, `unix_mode_to_amiga_protection`,
`amiga_protection_string`, `parse_amiga_protection`, which accepts specs
such as `"rwed"`, `"+p"` or `"-wd"`).

## Errors

All library errors derive from `pfs3.errors.Pfs3Error`, with subclasses
such as `NotFoundError`, `NotDirectoryError`, `CorruptError`,
`InvalidPartitionError`, `DiskFullError` and `ReadOnlyError`. Failures of
the underlying file raise `OSError`.

## What it does not do

- No writing inside an existing volume: there is no way to add, overwrite
  or delete files or create directories. The `_rw` openers only open the
  image file for writing.
- No filesystem check or repair beyond the block-counting and anode-chain
  helpers above.
- No command-line tool and no mounting of volumes into the host system; it
  is a library only.