"""Block devices: file-backed (with partition offset) and in-memory."""

import abc
import errno
import os
import threading

from pfs3.errors import (
    BlockOutOfRangeError,
    InvalidPartitionError,
    ReadOnlyError,
    TooShortError,
)


class BlockDevice(abc.ABC):
    """A device addressed in fixed-size blocks of ``block_size`` bytes."""

    block_size: int

    def read_block(self, block):
        """Return the contents of one block."""
        return self.read_blocks(block, 1)

    @abc.abstractmethod
    def read_blocks(self, block, count):
        """Return the contents of ``count`` consecutive blocks."""

    def write_block(self, block, data):
        """Write one block from ``data``."""
        self.write_blocks(block, 1, data)

    @abc.abstractmethod
    def write_blocks(self, block, count, data):
        """Write ``count`` consecutive blocks from ``data``."""

    @abc.abstractmethod
    def flush(self):
        """Push pending writes to stable storage."""

    def close(self):
        """Release any resources held by the device."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class FileBlockDevice(BlockDevice):
    """A block device stored in a file, optionally starting at a byte offset."""

    def __init__(self, file, block_bytes, partition_offset, total_blocks, writable):
        self._file = file
        self._lock = threading.Lock()
        self.block_size = block_bytes
        self.partition_offset = partition_offset
        self.writable = writable
        if total_blocks == 0:
            file_len = os.fstat(file.fileno()).st_size
            if partition_offset > file_len:
                file.close()
                raise InvalidPartitionError("partition offset beyond end of file")
            total_blocks = (file_len - partition_offset) // block_bytes
        self.total_blocks = total_blocks

    @classmethod
    def open(cls, path, block_bytes=512, partition_offset=0, total_blocks=0):
        """Open a file read-only; a total_blocks of 0 means the rest of the file."""
        return cls(open(path, "rb"), block_bytes, partition_offset, total_blocks, False)

    @classmethod
    def open_rw(cls, path, block_bytes=512, partition_offset=0, total_blocks=0):
        """Open an existing file for reading and writing."""
        return cls(open(path, "r+b"), block_bytes, partition_offset, total_blocks, True)

    @classmethod
    def create(cls, path, block_bytes, total_blocks):
        """Create (or truncate) a file of total_blocks blocks and open it read-write."""
        file = open(path, "w+b")
        file.truncate(total_blocks * block_bytes)
        return cls(file, block_bytes, 0, total_blocks, True)

    def _offset(self, block):
        return self.partition_offset + block * self.block_size

    def read_blocks(self, block, count):
        length = count * self.block_size
        with self._lock:
            self._file.seek(self._offset(block))
            data = self._file.read(length)
        if len(data) < length:
            raise OSError(errno.EIO, f"short read at block {block}")
        return data

    def write_blocks(self, block, count, data):
        if not self.writable:
            raise ReadOnlyError()
        if self.total_blocks > 0 and block + count > self.total_blocks:
            raise BlockOutOfRangeError(block)
        length = count * self.block_size
        if len(data) < length:
            raise TooShortError("write buffer")
        with self._lock:
            self._file.seek(self._offset(block))
            self._file.write(bytes(data[:length]))

    def flush(self):
        with self._lock:
            self._file.flush()
            os.fsync(self._file.fileno())

    def close(self):
        with self._lock:
            self._file.close()


class MemoryBlockDevice(BlockDevice):
    """A block device held in a bytearray."""

    def __init__(self, total_blocks=0, block_size=512, data=None, writable=True):
        self.block_size = block_size
        self.writable = writable
        if data is None:
            self.data = bytearray(total_blocks * block_size)
        else:
            if total_blocks == 0:
                total_blocks = len(data) // block_size
            size = total_blocks * block_size
            self.data = bytearray(data[:size]).ljust(size, b"\0")
        self.total_blocks = total_blocks

    def _check_range(self, block, count):
        if block < 0 or block + count > self.total_blocks:
            raise BlockOutOfRangeError(block)

    def read_blocks(self, block, count):
        self._check_range(block, count)
        start = block * self.block_size
        return bytes(self.data[start:start + count * self.block_size])

    def write_blocks(self, block, count, data):
        if not self.writable:
            raise ReadOnlyError()
        self._check_range(block, count)
        length = count * self.block_size
        if len(data) < length:
            raise TooShortError("write buffer")
        start = block * self.block_size
        self.data[start:start + length] = data[:length]

    def flush(self):
        """Nothing to flush: memory is the backing store."""