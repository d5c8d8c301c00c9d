"""Reading cluster chains from the data region."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Iterator

from ..base import CorruptChainError
from .directory import ENTRY_SIZE
from .fat import CLUSTER_FIRST_DATA, continues_chain

if TYPE_CHECKING:
    from ..source import BlockSource
    from .fat import FatTable
    from .reserved import BootParameters

__all__ = ['ClusterChainReader', 'ROOT_SENTINEL']


log = logging.getLogger(__name__)


ROOT_SENTINEL = 0
"""Cluster number standing for the first cluster of the root directory."""


class ClusterChainReader:
    """Follows cluster chains through the FAT and reads their data.

    Every traversal is bounded: a chain visiting a cluster twice, continuing to a
    reserved cluster or leaving the FAT raises ``CorruptChainError``.
    """

    def __init__(self, source: BlockSource, boot: BootParameters, fat: FatTable):
        self._source = source
        self._boot = boot
        self._fat = fat
        self._cluster_size = boot.bytes_per_cluster
        self._cluster_zero_offset = boot.cluster_zero_offset

    @property
    def cluster_size(self) -> int:
        return self._cluster_size

    def offset_of(self, cluster: int) -> int:
        """Byte offset of ``cluster`` in the image.

        ``ROOT_SENTINEL`` maps to the first cluster of the root directory.
        """
        if cluster == ROOT_SENTINEL:
            return self._boot.root_offset
        return self._cluster_zero_offset + cluster * self._cluster_size

    def read_cluster(self, cluster: int) -> bytes:
        return self._source.read_at(self.offset_of(cluster), self._cluster_size)

    def iter_chain(self, start: int) -> Iterator[int]:
        """Yield the clusters of the chain beginning at ``start``.

        The FAT is only consulted when the next cluster is requested, so a
        consumer stopping early causes no further lookups.
        """
        cluster = self._boot.root_cluster if start == ROOT_SENTINEL else start
        if not CLUSTER_FIRST_DATA <= cluster < len(self._fat):
            raise CorruptChainError(
                f'Start cluster {cluster} lies outside the data region '
                f'({CLUSTER_FIRST_DATA}, {len(self._fat) - 1})'
            )

        visited = set()
        while True:
            visited.add(cluster)
            yield cluster

            link = self._fat.link_of(cluster)
            if not continues_chain(link):
                return
            if not CLUSTER_FIRST_DATA <= link < len(self._fat):
                raise CorruptChainError(
                    f'Cluster {cluster} links to invalid cluster {link:#x}'
                )
            if link in visited:
                raise CorruptChainError(
                    f'Cluster chain starting at {start} loops back to cluster {link}'
                )
            cluster = link

    def iter_records(self, start: int) -> Iterator[bytes]:
        """Yield the 32-byte directory records stored in the chain at ``start``.

        Clusters are read lazily, one at a time.
        """
        for cluster in self.iter_chain(start):
            log.debug(f'Reading directory cluster {cluster}')
            data = self.read_cluster(cluster)
            for pos in range(0, len(data) - ENTRY_SIZE + 1, ENTRY_SIZE):
                yield data[pos : pos + ENTRY_SIZE]

    def read_file(self, start: int, size: int) -> bytes:
        """Return the first ``size`` bytes stored in the chain at ``start``.

        Padding of the last cluster is discarded. Raises ``CorruptChainError`` if
        the chain ends before ``size`` bytes were read.
        """
        if size < 0:
            raise ValueError('File size must be zero or positive')
        if size == 0:
            return b''

        chunks = []
        remaining = size
        clusters = 0

        for cluster in self.iter_chain(start):
            chunk_size = min(remaining, self._cluster_size)
            chunks.append(self._source.read_at(self.offset_of(cluster), chunk_size))
            remaining -= chunk_size
            clusters += 1
            if remaining == 0:
                break

        if remaining:
            raise CorruptChainError(
                f'Cluster chain starting at {start} ends after {clusters} clusters, '
                f'{remaining} bytes short of the declared size {size}'
            )

        log.debug(f'Read {size} bytes from {clusters} clusters starting at {start}')
        return b''.join(chunks)
