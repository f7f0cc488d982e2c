"""Exception hierarchy for PFS3 volume access."""


class Pfs3Error(Exception):
    """Base class for every error raised by this package."""


class TooShortError(Pfs3Error):
    """A structure was parsed from a buffer that is too small."""

    def __init__(self, what):
        super().__init__(f"{what}: data too short")
        self.what = what


class BadMagicError(Pfs3Error):
    """A block did not start with the expected filesystem magic."""

    def __init__(self, what, magic):
        super().__init__(f"{what}: bad magic 0x{magic:08x}")
        self.what = what
        self.magic = magic


class BadBlockIdError(Pfs3Error):
    """A reserved block carried the wrong two-byte block id."""

    def __init__(self, what, expected, got):
        super().__init__(f"{what}: expected block id 0x{expected:04x}, got 0x{got:04x}")
        self.what = what
        self.expected = expected
        self.got = got


class BlockOutOfRangeError(Pfs3Error):
    """A block number lies outside the device."""

    def __init__(self, block):
        super().__init__(f"block {block} out of range")
        self.block = block


class AnodeNotFoundError(Pfs3Error):
    """An anode number could not be resolved to an anode block."""

    def __init__(self, anodenr):
        super().__init__(f"anode {anodenr} not found")
        self.anodenr = anodenr


class NotFoundError(Pfs3Error):
    """A path, name or partition does not exist."""

    def __init__(self, name):
        super().__init__(f"not found: {name}")
        self.name = name


class AlreadyExistsError(Pfs3Error):
    """A name that should be new is already taken."""

    def __init__(self, name):
        super().__init__(f"already exists: {name}")
        self.name = name


class DiskFullError(Pfs3Error):
    """There is not enough space for the requested operation."""

    def __init__(self, detail):
        super().__init__(f"disk full: {detail}")
        self.detail = detail


class CorruptError(Pfs3Error):
    """The on-disk structures are inconsistent."""

    def __init__(self, detail):
        super().__init__(f"corrupt filesystem: {detail}")
        self.detail = detail


class NotDirectoryError(Pfs3Error):
    """A directory was expected but something else was found."""

    def __init__(self):
        super().__init__("not a directory")


class NotEmptyError(Pfs3Error):
    """A directory that must be empty still has entries."""

    def __init__(self):
        super().__init__("directory not empty")


class InvalidPartitionError(Pfs3Error):
    """The partition layout or its structures are unusable."""

    def __init__(self, detail):
        super().__init__(f"invalid partition: {detail}")
        self.detail = detail


class ReadOnlyError(Pfs3Error):
    """A write was attempted on a read-only device."""

    def __init__(self):
        super().__init__("device is read-only")