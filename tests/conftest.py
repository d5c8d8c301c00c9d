"""Fixtures used across the test suite."""

from __future__ import annotations

import os
import struct
from pathlib import Path
from tempfile import mkstemp

import pytest

from fat32reader.fat.directory import ENTRY_SIZE, Attributes, create_entry
from fat32reader.fat.reserved import (
    BOOT_SECTOR_SIZE,
    EXTENDED_BOOT_SIGNATURE_EXISTS,
    FILE_SYSTEM_TYPE_FAT32,
    SIGNATURE,
    Bpb,
)

EOC = 0x0FFFFFFF
MEDIA_DESCRIPTOR = 0xF8


def make_bpb(**kwargs) -> Bpb:
    """Return a valid FAT32 ``Bpb``; fields can be overridden via ``kwargs``."""
    values = dict(
        jump_instruction=b'\xEB\x58\x90',
        oem_name=b'MSWIN4.1',
        bytes_per_sector=512,
        sectors_per_cluster=1,
        reserved_sectors=32,
        fat_count=2,
        rootdir_entries=0,
        total_sectors_16=0,
        media_type=MEDIA_DESCRIPTOR,
        sectors_per_fat_16=0,
        sectors_per_track=32,
        heads=64,
        hidden_sectors=0,
        total_sectors_32=0,
        sectors_per_fat=1,
        mirroring_flags=0,
        version=0,
        root_cluster=2,
        fsinfo_sector=1,
        boot_sector_backup_start=6,
        reserved_1=bytes(12),
        physical_drive_number=0x80,
        reserved_2=bytes(1),
        extended_boot_signature=EXTENDED_BOOT_SIGNATURE_EXISTS,
        volume_id=0x1234ABCD,
        volume_label=b'TESTVOLUME ',
        file_system_type=FILE_SYSTEM_TYPE_FAT32,
    )
    values.update(kwargs)
    return Bpb(**values)


def make_boot_sector(bpb: Bpb, signature: bytes = SIGNATURE) -> bytes:
    b = bytes(bpb)
    return b + bytes(BOOT_SECTOR_SIZE - len(b) - len(signature)) + signature


class ImageBuilder:
    """Builds small FAT32 volume images.

    Clusters are handed out in ascending order. Directory chains are extended
    when the image is written, so records may be added in any order.
    """

    def __init__(
        self,
        *,
        bytes_per_sector: int = 512,
        sectors_per_cluster: int = 1,
        reserved_sectors: int = 32,
        fat_count: int = 2,
        sectors_per_fat: int = 1,
        clusters: int = 64,
        root_cluster: int = 2,
        legacy_geometry: bool = False,
        signature: bytes = SIGNATURE,
    ):
        self.cluster_size = bytes_per_sector * sectors_per_cluster
        if legacy_geometry:
            self.fat_size = sectors_per_fat * self.cluster_size
        else:
            self.fat_size = sectors_per_fat * bytes_per_sector
        if clusters > self.fat_size // 4:
            raise ValueError('FAT too small for the requested cluster count')

        self.bpb = make_bpb(
            bytes_per_sector=bytes_per_sector,
            sectors_per_cluster=sectors_per_cluster,
            reserved_sectors=reserved_sectors,
            fat_count=fat_count,
            sectors_per_fat=sectors_per_fat,
            root_cluster=root_cluster,
        )
        self.signature = signature
        self.root_cluster = root_cluster
        self.clusters = clusters
        self.fat_region_offset = reserved_sectors * bytes_per_sector
        self.data_region_offset = self.fat_region_offset + fat_count * self.fat_size

        self.links = [0] * (self.fat_size // 4)
        self.links[0] = 0x0FFFFFF8
        self.links[1] = EOC
        self.links[root_cluster] = EOC
        self.data: dict[int, bytes] = {}
        self.records: dict[int, list[bytes]] = {root_cluster: []}
        self._chains: dict[int, list[int]] = {root_cluster: [root_cluster]}
        self._next = 2

    def allocate(self, count: int) -> list[int]:
        """Allocate ``count`` clusters linked into one chain."""
        chain = []
        while len(chain) < count:
            cluster = self._next
            self._next += 1
            if cluster == self.root_cluster:
                continue
            if cluster >= self.clusters:
                raise ValueError('Image is full')
            chain.append(cluster)
        for cluster, following in zip(chain, chain[1:]):
            self.links[cluster] = following
        if chain:
            self.links[chain[-1]] = EOC
            self._chains[chain[0]] = chain
        return chain

    def _parent(self, parent: int | None) -> int:
        return self.root_cluster if parent is None else parent

    def add_raw(self, record: bytes, parent: int | None = None) -> None:
        assert len(record) == ENTRY_SIZE
        self.records[self._parent(parent)].append(bytes(record))

    def add_file(
        self,
        name: str,
        extension: str,
        content: bytes,
        parent: int | None = None,
        **kwargs,
    ) -> int:
        """Add a file and return its start cluster (0 for empty files)."""
        count = -(-len(content) // self.cluster_size)
        chain = self.allocate(count)
        for index, cluster in enumerate(chain):
            start = index * self.cluster_size
            self.data[cluster] = content[start : start + self.cluster_size]

        cluster = chain[0] if chain else 0
        record = create_entry(name, extension, cluster=cluster, size=len(content), **kwargs)
        self.add_raw(bytes(record), parent)
        return cluster

    def add_directory(self, name: str, parent: int | None = None) -> int:
        """Add a directory with ``.`` and ``..`` entries and return its cluster."""
        (cluster,) = self.allocate(1)
        parent_cluster = self._parent(parent)
        dotdot = 0 if parent_cluster == self.root_cluster else parent_cluster

        self.records[cluster] = [
            bytes(create_entry('.', attributes=Attributes.DIRECTORY, cluster=cluster)),
            bytes(create_entry('..', attributes=Attributes.DIRECTORY, cluster=dotdot)),
        ]
        record = create_entry(name, attributes=Attributes.DIRECTORY, cluster=cluster)
        self.add_raw(bytes(record), parent)
        return cluster

    def _layout_directories(self) -> None:
        per_cluster = self.cluster_size // ENTRY_SIZE
        for start, records in self.records.items():
            chain = self._chains[start]
            needed = max(1, -(-len(records) // per_cluster))
            if needed > len(chain):
                extension = self.allocate(needed - len(chain))
                self.links[chain[-1]] = extension[0]
                chain.extend(extension)
            for index, cluster in enumerate(chain):
                first = index * per_cluster
                self.data[cluster] = b''.join(records[first : first + per_cluster])

    def to_bytes(self) -> bytes:
        self._layout_directories()

        image = bytearray(
            self.data_region_offset + (self.clusters - 2) * self.cluster_size
        )
        image[:BOOT_SECTOR_SIZE] = make_boot_sector(self.bpb, self.signature)

        fat = struct.pack(f'<{len(self.links)}I', *self.links)
        for index in range(self.bpb.fat_count):
            offset = self.fat_region_offset + index * self.fat_size
            image[offset : offset + self.fat_size] = fat

        cluster_zero_offset = self.data_region_offset - 2 * self.cluster_size
        for cluster, data in self.data.items():
            offset = cluster_zero_offset + cluster * self.cluster_size
            image[offset : offset + len(data)] = data
        return bytes(image)

    def write(self, path: Path) -> Path:
        path.write_bytes(self.to_bytes())
        return path


@pytest.fixture
def tempfile():
    """Fixture providing a new temporary file for testing purposes.

    Returns a ``pathlib.Path`` object representing the path of the temporary file.
    """
    fd, path_str = mkstemp()
    os.close(fd)  # we are going to use a Path object instead
    path = Path(path_str)
    yield path
    path.unlink(missing_ok=True)  # clean up


@pytest.fixture
def builder():
    """Fixture providing an ``ImageBuilder`` with default geometry."""
    return ImageBuilder()


@pytest.fixture
def make_builder():
    """Fixture providing the ``ImageBuilder`` class for custom geometries."""
    return ImageBuilder


@pytest.fixture
def bpb():
    """Fixture providing a valid FAT32 ``Bpb`` with default geometry."""
    return make_bpb()


@pytest.fixture
def build_boot_sector():
    """Fixture providing a function assembling a 512-byte boot sector from a
    ``Bpb`` and an optional signature.
    """
    return make_boot_sector
