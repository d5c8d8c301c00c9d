"""File allocation table."""

from __future__ import annotations

import logging
import struct
from typing import TYPE_CHECKING, Iterator

from .reserved import FAT_ENTRY_SIZE

if TYPE_CHECKING:
    from ..source import BlockSource
    from .reserved import BootParameters

__all__ = ["FatTable", "continues_chain", "CLUSTER_FIRST_DATA", "CLUSTER_EOC_MIN"]


log = logging.getLogger(__name__)


CLUSTER_FIRST_DATA = 2
CLUSTER_EOC_MIN = 0x0FFFFFF8
CLUSTER_EOC_MAX = 0x0FFFFFFF


def continues_chain(value: int) -> bool:
    """Return whether the FAT link ``value`` points to a further cluster.

    Only values in the end-of-chain range ``0x0FFFFFF8`` to ``0x0FFFFFFF`` end a
    chain. Values above that range are treated as continuing, like older tooling
    does; they cannot be followed and are reported by the chain reader.
    """
    return value < CLUSTER_EOC_MIN or value > CLUSTER_EOC_MAX


class FatTable:
    """One copy of the FAT, loaded completely into memory.

    Choose a different copy via ``main_fat`` if the first one is (partially)
    unreadable. Link values are kept as raw unsigned 32-bit integers; the reserved
    high 4 bits are not masked.
    """

    def __init__(self, links: tuple[int, ...], main_fat: int = 0):
        self._links = links
        self._main_fat = main_fat

    @classmethod
    def from_source(
        cls, source: BlockSource, boot: BootParameters, main_fat: int = 0
    ) -> FatTable:
        """Read FAT number ``main_fat`` of the volume described by ``boot``."""
        offset = boot.fat_offset(main_fat)
        entries = boot.fat_entries
        b = source.read_at(offset, entries * FAT_ENTRY_SIZE)
        links = struct.unpack(f"<{entries}I", b)

        log.debug(f"Loaded FAT {main_fat} at offset {offset} ({entries} entries)")
        return cls(links, main_fat)

    def link_of(self, cluster: int) -> int:
        """Return the link value stored for ``cluster``.

        Raises ``IndexError`` if ``cluster`` lies outside the table.
        """
        if not 0 <= cluster < len(self._links):
            raise IndexError(
                f"Cluster index must not exceed FAT bounds (0, {len(self._links) - 1})"
            )
        return self._links[cluster]

    def __getitem__(self, cluster: int) -> int:
        return self.link_of(cluster)

    def __len__(self) -> int:
        """Number of FAT entries."""
        return len(self._links)

    def __iter__(self) -> Iterator[int]:
        return iter(self._links)

    @staticmethod
    def continues_chain(value: int) -> bool:
        return continues_chain(value)

    @property
    def main_fat(self) -> int:
        """The selected FAT copy."""
        return self._main_fat

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(entries={len(self)}, "
            f"main_fat={self._main_fat})"
        )
