"""Directory block reading, name lookup and path resolution.

A directory is a chain of directory blocks (id 'DB'), each holding packed
variable-length entries.
"""

import struct

from pfs3.direntry import DIR_BLOCK_HEADER_SIZE, DirEntry
from pfs3.errors import NotDirectoryError, NotFoundError
from pfs3.ondisk import ANODE_ROOTDIR, DBLKID
from pfs3.util import name_eq_ci


def _iter_block_entries(data):
    offset = DIR_BLOCK_HEADER_SIZE
    while offset < len(data):
        parsed = DirEntry.parse(data, offset)
        if parsed is None:
            return
        entry, offset = parsed
        yield entry


def list_entries(dir_anode, anodes, dev, cache, reserved_blksize):
    """Return every entry of the directory whose anode is ``dir_anode``."""
    entries = []
    for anode in anodes.get_chain(dir_anode, dev, cache):
        for blk in range(anode.blocknr, anode.blocknr + anode.clustersize):
            data = cache.read_reserved(dev, blk, reserved_blksize)
            if len(data) < DIR_BLOCK_HEADER_SIZE + 1:
                continue
            if struct.unpack_from(">H", data, 0)[0] != DBLKID:
                continue
            entries.extend(_iter_block_entries(data))
    return entries


def lookup(dir_anode, name, anodes, dev, cache, reserved_blksize):
    """Find ``name`` in a directory, ignoring ASCII case."""
    for entry in list_entries(dir_anode, anodes, dev, cache, reserved_blksize):
        if name_eq_ci(entry.name, name):
            return entry
    raise NotFoundError(name)


def _components(path):
    return [part for part in path.split("/") if part]


def resolve_path(path, anodes, dev, cache, reserved_blksize):
    """Resolve a '/'-separated path to its entry.

    Returns None for the root directory or when only the last component is
    missing. Raises NotFoundError for a missing intermediate directory and
    NotDirectoryError when an intermediate component is not a directory.
    """
    parts = _components(path)
    if not parts:
        return None
    dir_anode = ANODE_ROOTDIR
    for part in parts[:-1]:
        entry = lookup(dir_anode, part, anodes, dev, cache, reserved_blksize)
        if not entry.is_dir():
            raise NotDirectoryError()
        dir_anode = entry.anode
    try:
        return lookup(dir_anode, parts[-1], anodes, dev, cache, reserved_blksize)
    except NotFoundError:
        return None


def resolve_dir_path(path, anodes, dev, cache, reserved_blksize):
    """Resolve a path that must name a directory to that directory's anode."""
    dir_anode = ANODE_ROOTDIR
    for part in _components(path):
        entry = lookup(dir_anode, part, anodes, dev, cache, reserved_blksize)
        if not entry.is_dir():
            raise NotDirectoryError()
        dir_anode = entry.anode
    return dir_anode