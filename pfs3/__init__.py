"""Reading, inspecting and formatting PFS3 Amiga filesystem images."""

__version__ = "0.1.3"