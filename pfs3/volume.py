"""Top-level access to a PFS3 partition: volume info, directories and file data."""

from pfs3 import directory
from pfs3.anode import AnodeReader
from pfs3.bitmap import BitmapReader
from pfs3.cache import BlockCache
from pfs3.device import FileBlockDevice
from pfs3.errors import CorruptError, NotDirectoryError, NotFoundError, Pfs3Error
from pfs3.ondisk import (
    DELDIR_ENTRY_SIZE,
    DELDIR_HEADER_SIZE,
    DELDIRID,
    MODE_DELDIR,
    ROOTBLOCK,
    SECTOR_SIZE,
    DelDirEntry,
    deldir_entries_per_block,
)
from pfs3.rdb import detect_pfs3_partition, detect_pfs3_partitions
from pfs3.rootblock import DEFAULT_FNSIZE, Rootblock, RootblockExt
from pfs3.util import name_eq_ci

MIN_RESERVED_BLKSIZE = 64
_RESERVED_BITMAP_HEADER = 12


class Volume:
    """A PFS3 volume on a block device, giving access to its files and directories."""

    def __init__(self, dev, rootblock, rootblock_ext=None, cache=None):
        self.dev = dev
        self.cache = cache if cache is not None else BlockCache()
        self.rootblock = rootblock
        self.rootblock_ext = rootblock_ext
        self.anodes = AnodeReader(rootblock, rootblock_ext)
        self.bitmap = BitmapReader(rootblock)

    # --- opening ---

    @classmethod
    def from_device(cls, dev):
        """Open a volume from an already opened block device."""
        rootblock = Rootblock.parse(dev.read_block(ROOTBLOCK))
        if rootblock.rblkcluster * SECTOR_SIZE > SECTOR_SIZE:
            rootblock = Rootblock.parse(dev.read_blocks(ROOTBLOCK, rootblock.rblkcluster))

        if rootblock.reserved_blksize < MIN_RESERVED_BLKSIZE:
            raise CorruptError(
                f"reserved_blksize {rootblock.reserved_blksize} too small "
                f"(minimum {MIN_RESERVED_BLKSIZE})"
            )

        cache = BlockCache()
        rootblock_ext = None
        if rootblock.has_extension():
            data = cache.read_reserved(dev, rootblock.extension, rootblock.reserved_blksize)
            rootblock_ext = RootblockExt.parse(data)
        return cls(dev, rootblock, rootblock_ext, cache)

    @classmethod
    def _open_file(cls, path, partition_offset, writable):
        opener = FileBlockDevice.open_rw if writable else FileBlockDevice.open
        dev = opener(path, SECTOR_SIZE, partition_offset, 0)
        try:
            return cls.from_device(dev)
        except BaseException:
            dev.close()
            raise

    @classmethod
    def open(cls, path, partition_offset=0):
        """Open read-only; ``partition_offset`` is the byte offset of the partition."""
        return cls._open_file(path, partition_offset, False)

    @classmethod
    def open_rw(cls, path, partition_offset=0):
        """Open for reading and writing."""
        return cls._open_file(path, partition_offset, True)

    @classmethod
    def open_rdb(cls, path):
        """Open the first PFS3 partition of an RDB image read-only."""
        return cls.open(path, detect_pfs3_partition(path))

    @classmethod
    def open_partition(cls, path, name):
        """Open a partition of an RDB image by name (e.g. 'DH0') or index."""
        return cls.open(path, cls.find_partition_offset(path, name))

    @classmethod
    def open_rdb_rw(cls, path):
        """Open the first PFS3 partition of an RDB image for writing."""
        return cls.open_rw(path, detect_pfs3_partition(path))

    @classmethod
    def open_partition_rw(cls, path, name):
        """Open a named partition of an RDB image for writing."""
        return cls.open_rw(path, cls.find_partition_offset(path, name))

    @classmethod
    def open_auto(cls, path, offset=0, partition=None, writable=False):
        """Open by partition name, explicit offset, or RDB detection with fallback to 0."""
        opener = cls.open_rw if writable else cls.open
        if partition is not None:
            return opener(path, cls.find_partition_offset(path, partition))
        if offset == 0:
            try:
                offset = detect_pfs3_partition(path)
            except (Pfs3Error, OSError):
                offset = 0
        return opener(path, offset)

    @classmethod
    def find_partition_offset(cls, path, name):
        """Byte offset of the partition matching ``name`` (case-insensitive) or index."""
        partitions = detect_pfs3_partitions(path)
        for part in partitions:
            if name_eq_ci(part.name, name):
                return part.offset
        if name.isascii() and name.isdigit() and int(name) < len(partitions):
            return partitions[int(name)].offset
        available = ", ".join(p.name for p in partitions)
        raise NotFoundError(f"partition '{name}' not found (available: {available})")

    def close(self):
        """Close the underlying device."""
        self.dev.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    # --- info ---

    @property
    def name(self):
        """Volume name from the rootblock."""
        return self.rootblock.diskname

    @property
    def total_blocks(self):
        """Total blocks on the disk."""
        return self.rootblock.disksize

    @property
    def free_blocks(self):
        """Free data blocks as recorded in the rootblock."""
        return self.rootblock.blocksfree

    @property
    def block_size(self):
        """Device block size in bytes."""
        return self.dev.block_size

    @property
    def fnsize(self):
        """Maximum filename size."""
        if self.rootblock_ext is None:
            return DEFAULT_FNSIZE
        return self.rootblock_ext.fnsize

    def bitmap_count_free(self):
        """Count free blocks by scanning the data bitmap."""
        return self.bitmap.count_free(self.dev, self.cache, self.rootblock.disksize)

    def get_anode_chain(self, anodenr):
        """Return the anode chain starting at ``anodenr``."""
        return self.anodes.get_chain(anodenr, self.dev, self.cache)

    def reserved_count_free(self):
        """Count free reserved blocks from the bitmap in the rootblock cluster."""
        cluster = self.dev.read_blocks(self.rootblock.firstreserved, self.rootblock.rblkcluster)
        start = self.block_size + _RESERVED_BITMAP_HEADER
        usable = start + (len(cluster) - start) // 4 * 4 if len(cluster) > start else start
        return int.from_bytes(cluster[start:usable], "big").bit_count()

    # --- directories ---

    def list_dir(self, path):
        """List the entries of the directory at ``path``."""
        dir_anode = directory.resolve_dir_path(
            path, self.anodes, self.dev, self.cache, self.rootblock.reserved_blksize
        )
        return self.list_dir_by_anode(dir_anode)

    def list_dir_by_anode(self, dir_anode):
        """List the entries of the directory with anode ``dir_anode``."""
        return directory.list_entries(
            dir_anode, self.anodes, self.dev, self.cache, self.rootblock.reserved_blksize
        )

    def lookup(self, path):
        """Return the entry at ``path``, or None for the root or a missing last component."""
        return directory.resolve_path(
            path, self.anodes, self.dev, self.cache, self.rootblock.reserved_blksize
        )

    # --- file data ---

    def read_file(self, path):
        """Return the whole contents of the file at ``path``."""
        entry = self.lookup(path)
        if entry is None:
            raise NotFoundError(path)
        if entry.is_dir():
            raise NotDirectoryError()
        return self.read_file_data(entry.anode, entry.file_size())

    def read_file_data(self, anodenr, size):
        """Read ``size`` bytes of file data following the anode chain."""
        bs = self.block_size
        data = bytearray()
        remaining = size
        for anode in self.get_anode_chain(anodenr):
            for blk in range(anode.blocknr, anode.blocknr + anode.clustersize):
                if remaining == 0:
                    break
                chunk = min(remaining, bs)
                data += self.dev.read_block(blk)[:chunk]
                remaining -= chunk
        return bytes(data)

    def read_file_range(self, anodenr, file_size, offset, length):
        """Read ``length`` bytes from ``offset``, touching only the blocks that overlap."""
        if offset >= file_size:
            return b""
        end = min(offset + length, file_size)
        bs = self.block_size
        result = bytearray()
        extent_start = 0
        for anode in self.get_anode_chain(anodenr):
            extent_end = extent_start + anode.clustersize * bs
            if extent_end <= offset:
                extent_start = extent_end
                continue
            if extent_start >= end:
                break
            for i in range(anode.clustersize):
                blk_start = extent_start + i * bs
                blk_end = blk_start + bs
                if blk_end <= offset:
                    continue
                if blk_start >= end:
                    break
                block = self.dev.read_block(anode.blocknr + i)
                lo = max(offset - blk_start, 0)
                hi = min(end, blk_end) - blk_start
                result += block[lo:hi]
            extent_start = extent_end
        return bytes(result)

    def validate_anode_chain(self, anodenr):
        """Return every data block number used by the chain starting at ``anodenr``."""
        return [
            blk
            for anode in self.get_anode_chain(anodenr)
            for blk in range(anode.blocknr, anode.blocknr + anode.clustersize)
        ]

    def list_deldir(self):
        """List the deleted files kept in the deldir, if enabled."""
        if not self.rootblock.has_flag(MODE_DELDIR) or self.rootblock_ext is None:
            return []
        rbs = self.rootblock.reserved_blksize
        per_block = deldir_entries_per_block(rbs)
        result = []
        for blk in self.rootblock_ext.deldirblocks:
            if blk == 0:
                continue
            data = self.cache.read_reserved(self.dev, blk, rbs)
            if int.from_bytes(data[0:2], "big") != DELDIRID:
                continue
            for i in range(per_block):
                off = DELDIR_HEADER_SIZE + i * DELDIR_ENTRY_SIZE
                if off + DELDIR_ENTRY_SIZE > len(data):
                    break
                entry = DelDirEntry.parse(data[off:off + DELDIR_ENTRY_SIZE])
                if entry is not None:
                    result.append(entry)
        return result