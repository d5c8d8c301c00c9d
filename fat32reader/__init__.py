"""Read-only access to FAT32 volume images."""

from .fat import VolumeSession
from .source import BlockSource

__all__ = ["BlockSource", "VolumeSession"]
