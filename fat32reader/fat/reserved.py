"""Structures found in the reserved region of a FAT32 volume."""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from typing import ClassVar

from typing_extensions import Annotated

from ..base import FormatError, FormatWarning
from ..bytestruct import ByteStruct

__all__ = [
    'Bpb',
    'BootParameters',
    'BOOT_SECTOR_SIZE',
    'FILE_SYSTEM_TYPE_FAT32',
    'SIGNATURE',
]


log = logging.getLogger(__name__)


BOOT_SECTOR_SIZE = 512
SIGNATURE = b'\x55\xaa'
FILE_SYSTEM_TYPE_FAT32 = b'FAT32   '
EXTENDED_BOOT_SIGNATURE_EXISTS = b'\x29'
MIN_ROOT_CLUSTER = 2
FAT_ENTRY_SIZE = 4


@dataclass(frozen=True)
class Bpb(ByteStruct):
    """FAT32 BIOS parameter block, including the jump instruction and OEM name
    preceding it (boot sector offsets 0x00 to 0x5A).
    """

    jump_instruction: Annotated[bytes, 3]
    oem_name: Annotated[bytes, 8]
    bytes_per_sector: Annotated[int, 2]  # 0x0B
    sectors_per_cluster: Annotated[int, 1]  # 0x0D
    reserved_sectors: Annotated[int, 2]  # 0x0E
    fat_count: Annotated[int, 1]  # 0x10
    rootdir_entries: Annotated[int, 2]  # always 0 for FAT32
    total_sectors_16: Annotated[int, 2]
    media_type: Annotated[int, 1]
    sectors_per_fat_16: Annotated[int, 2]  # always 0 for FAT32
    sectors_per_track: Annotated[int, 2]
    heads: Annotated[int, 2]
    hidden_sectors: Annotated[int, 4]
    total_sectors_32: Annotated[int, 4]
    sectors_per_fat: Annotated[int, 4]  # 0x24
    mirroring_flags: Annotated[int, 2]
    version: Annotated[int, 2]
    root_cluster: Annotated[int, 4]  # 0x2C
    fsinfo_sector: Annotated[int, 2]
    boot_sector_backup_start: Annotated[int, 2]
    reserved_1: Annotated[bytes, 12]
    physical_drive_number: Annotated[int, 1]
    reserved_2: Annotated[bytes, 1]
    extended_boot_signature: Annotated[bytes, 1]
    volume_id: Annotated[int, 4]
    volume_label: Annotated[bytes, 11]
    file_system_type: Annotated[bytes, 8]

    def validate(self) -> None:
        if self.bytes_per_sector == 0:
            raise FormatError('Bytes per sector must be greater than 0')
        if self.sectors_per_cluster == 0:
            raise FormatError('Sectors per cluster must be greater than 0')
        if self.fat_count == 0:
            raise FormatError('FAT count must be greater than 0')
        if self.sectors_per_fat == 0:
            raise FormatError('Sectors per FAT must be greater than 0')
        if self.root_cluster < MIN_ROOT_CLUSTER:
            raise FormatError(
                f'Root directory start cluster must be greater than or equal to '
                f'{MIN_ROOT_CLUSTER}'
            )
        if (
            self.extended_boot_signature == EXTENDED_BOOT_SIGNATURE_EXISTS
            and self.file_system_type != FILE_SYSTEM_TYPE_FAT32
        ):
            warnings.warn(
                f'Unknown file system type {self.file_system_type!r}; the volume '
                f'might not hold a FAT32 file system',
                FormatWarning,
            )


@dataclass(frozen=True)
class BootParameters:
    """Volume geometry decoded from the boot sector.

    If ``legacy_geometry`` is set, the byte length of one FAT is computed as
    sectors per FAT times bytes per *cluster* instead of bytes per sector. This
    reproduces the layout assumed by older tooling and only matches real volumes
    using one sector per cluster.
    """

    bpb: Bpb
    legacy_geometry: bool = False

    SIZE: ClassVar[int] = BOOT_SECTOR_SIZE

    @classmethod
    def from_bytes(cls, b: bytes, *, legacy_geometry: bool = False) -> BootParameters:
        """Parse boot parameters from the ``bytes`` of the boot sector."""
        if len(b) != cls.SIZE:
            raise ValueError(
                f'Boot sector must be {cls.SIZE} bytes long, got {len(b)} bytes'
            )

        signature = b[-len(SIGNATURE) :]
        if signature != SIGNATURE:
            warnings.warn(f'Invalid boot sector signature {signature!r}', FormatWarning)

        bpb = Bpb.from_bytes(b[: len(Bpb)])
        if legacy_geometry:
            log.warning(
                'Using legacy geometry: FAT length is sectors per FAT times bytes '
                'per cluster'
            )
        return cls(bpb, legacy_geometry)

    @property
    def bytes_per_sector(self) -> int:
        return self.bpb.bytes_per_sector

    @property
    def sectors_per_cluster(self) -> int:
        return self.bpb.sectors_per_cluster

    @property
    def reserved_sectors(self) -> int:
        return self.bpb.reserved_sectors

    @property
    def fat_count(self) -> int:
        return self.bpb.fat_count

    @property
    def sectors_per_fat(self) -> int:
        return self.bpb.sectors_per_fat

    @property
    def root_cluster(self) -> int:
        return self.bpb.root_cluster

    @property
    def bytes_per_cluster(self) -> int:
        return self.sectors_per_cluster * self.bytes_per_sector

    @property
    def fat_size(self) -> int:
        """Byte length of one FAT."""
        if self.legacy_geometry:
            return self.sectors_per_fat * self.bytes_per_cluster
        return self.sectors_per_fat * self.bytes_per_sector

    @property
    def fat_entries(self) -> int:
        """Number of link values held by one FAT."""
        return self.fat_size // FAT_ENTRY_SIZE

    @property
    def fat_region_offset(self) -> int:
        """Byte offset of the first FAT."""
        return self.reserved_sectors * self.bytes_per_sector

    def fat_offset(self, index: int) -> int:
        """Byte offset of the FAT copy with number ``index``."""
        if not 0 <= index < self.fat_count:
            raise ValueError(f'FAT number must be in range (0, {self.fat_count - 1})')
        return self.fat_region_offset + index * self.fat_size

    @property
    def data_region_offset(self) -> int:
        """Byte offset of cluster 2, the first cluster of the data region."""
        return self.fat_region_offset + self.fat_count * self.fat_size

    @property
    def cluster_zero_offset(self) -> int:
        """Notional byte offset of cluster 0; cluster N starts at this offset plus
        N times the cluster size.
        """
        return self.data_region_offset - 2 * self.bytes_per_cluster

    @property
    def root_offset(self) -> int:
        """Byte offset of the first cluster of the root directory."""
        return self.cluster_zero_offset + self.root_cluster * self.bytes_per_cluster

    @property
    def volume_label(self) -> str:
        return self.bpb.volume_label.decode('ascii', errors='replace').rstrip()

    @property
    def oem_name(self) -> str:
        return self.bpb.oem_name.decode('ascii', errors='replace').rstrip()
