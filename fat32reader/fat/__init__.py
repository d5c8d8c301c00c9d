"""FAT32 volumes.

See https://en.wikipedia.org/wiki/Design_of_the_FAT_file_system.
See https://www.cs.fsu.edu/~cop4610t/assignments/project3/spec/fatspec.pdf.
"""

from .session import VolumeSession

__all__ = ["VolumeSession"]
