"""Exception classes and helper functions used across ``fat32reader``."""

from __future__ import annotations

__all__ = [
    'FormatError',
    'FormatWarning',
    'BoundsError',
    'ShortReadError',
    'CorruptChainError',
    'max_value',
]


class FormatError(ValueError):
    """Exception raised if a structure of the volume -- for example the BIOS
    parameter block or a directory entry -- cannot be created because the data to
    be parsed does not conform to the FAT32 format.

    Usually means the image is corrupt or does not hold a FAT32 file system.
    """


class FormatWarning(UserWarning):
    """Warning emitted if a value found in a structure does not conform to the
    FAT32 format but the volume might still be readable.
    """


class BoundsError(ValueError):
    """Exception raised if a requested byte range exceeds the size of a file."""


class ShortReadError(OSError):
    """Exception raised if the backing image returned fewer bytes than a
    positioned read requested.

    This indicates a truncated or otherwise corrupt image.
    """


class CorruptChainError(FormatError):
    """Exception raised if a cluster chain cannot be followed, e.g. because it
    loops, leaves the bounds of the FAT or ends before the declared file size.
    """


def max_value(width: int) -> int:
    """Return the maximum unsigned value representable in ``width`` bytes."""
    if width < 1:
        raise ValueError('Width must be greater than 0')
    return 256**width - 1
