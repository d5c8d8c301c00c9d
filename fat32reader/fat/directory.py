"""Directory entry decoding and encoding."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, Flag
from typing import Iterable, Iterator

from typing_extensions import Annotated

from ..bytestruct import ByteStruct

__all__ = [
    'ENTRY_SIZE',
    'Attributes',
    'Hint',
    'EntryKind',
    'EightDotThreeEntry',
    'Entry',
    'iter_entries',
    'create_entry',
    'pack_dos_datetime',
    'unpack_dos_datetime',
]


log = logging.getLogger(__name__)


ENTRY_SIZE = 32

DOS_FILENAME_OEM_ENCODING = '850'
"""OEM encoding used for DOS filenames.

Characters >= 128 depend on the code page of the system which wrote the volume.
Code page 850 is used as the default; this constant may be changed to the name of
another 8-bit 1-byte encoding.
"""

ACTUALLY_E5 = 0x05
LONG_NAME_MASK = 0x3F
DOS_YEAR_MIN = 1980
DOS_YEAR_MAX = 2107
DOS_TIME_TEN_MS_MAX = 199


class Hint(Enum):
    """Special meanings of the first byte of a directory record."""

    END_OF_ENTRIES = 0x00
    FREE = 0xE5


class Attributes(Flag):
    """Directory entry attributes."""

    READ_ONLY = 1 << 0
    HIDDEN = 1 << 1
    SYSTEM = 1 << 2
    VOLUME_ID = 1 << 3
    DIRECTORY = 1 << 4
    ARCHIVE = 1 << 5
    DEVICE = 1 << 6
    RESERVED = 1 << 7

    LONG_NAME = READ_ONLY | HIDDEN | SYSTEM | VOLUME_ID


class EntryKind(Enum):
    """Whether an entry describes a file or a directory."""

    FILE = 'file'
    DIRECTORY = 'directory'


def _pack_dos_name(name: str, extension: str) -> tuple[bytes, bytes]:
    """Pack a DOS base name and extension into 8 and 3 space-padded bytes."""
    name_bytes = name.encode(DOS_FILENAME_OEM_ENCODING)
    ext_bytes = extension.encode(DOS_FILENAME_OEM_ENCODING)
    if len(name_bytes) > 8:
        raise ValueError(f'Base name {name!r} is longer than 8 characters')
    if len(ext_bytes) > 3:
        raise ValueError(f'Extension {extension!r} is longer than 3 characters')

    packed_name = name_bytes.ljust(8)
    if packed_name[0] == Hint.FREE.value:
        packed_name = bytes([ACTUALLY_E5]) + packed_name[1:]
    return packed_name, ext_bytes.ljust(3)


def _unpack_dos_name(name_bytes: bytes, ext_bytes: bytes) -> tuple[str, str]:
    """Unpack a DOS base name and extension, trimming trailing padding.

    Characters which cannot be decoded using ``DOS_FILENAME_OEM_ENCODING`` are
    replaced by the Unicode replacement character ``U+FFFD``.
    """
    unpacked_name = name_bytes.rstrip(b' ')
    if unpacked_name[:1] == bytes([ACTUALLY_E5]):
        unpacked_name = bytes([Hint.FREE.value]) + unpacked_name[1:]
    unpacked_ext = ext_bytes.rstrip(b' ')

    return (
        unpacked_name.decode(DOS_FILENAME_OEM_ENCODING, errors='replace'),
        unpacked_ext.decode(DOS_FILENAME_OEM_ENCODING, errors='replace'),
    )


def pack_dos_datetime(dt: datetime) -> tuple[int, int, int]:
    """Return a packed DOS datetime as a tuple of (date, time, 10 ms count) from the
    datetime object ``dt``.
    """
    if dt.year < DOS_YEAR_MIN or dt.year > DOS_YEAR_MAX:
        raise ValueError(f'Invalid DOS date {dt}')
    date = ((dt.year - DOS_YEAR_MIN) << 9) | (dt.month << 5) | dt.day
    time = (dt.hour << 11) | (dt.minute << 5) | (dt.second // 2)
    time_ten_ms = (dt.second % 2) * 100 + dt.microsecond // 10_000
    return date, time, time_ten_ms


def unpack_dos_datetime(
    date: int, time: int = 0, time_ten_ms: int = 0
) -> datetime | None:
    """Return a datetime object from a DOS datetime or ``None`` if the values do
    not represent a valid DOS datetime.
    """
    if time_ten_ms > DOS_TIME_TEN_MS_MAX:
        return None

    y = ((date & 0b1111111000000000) >> 9) + DOS_YEAR_MIN
    m = (date & 0b0000000111100000) >> 5
    d = date & 0b0000000000011111
    hh = (time & 0b1111100000000000) >> 11
    mm = (time & 0b0000011111100000) >> 5
    ss = (time & 0b0000000000011111) * 2 + time_ten_ms // 100
    us = (time_ten_ms % 100) * 10_000
    try:
        return datetime(y, m, d, hh, mm, ss, us)
    except ValueError:
        return None


@dataclass(frozen=True)
class EightDotThreeEntry(ByteStruct):
    """Raw 32-byte directory record."""

    name: Annotated[bytes, 8]
    extension: Annotated[bytes, 3]
    attributes_byte: Annotated[int, 1]
    reserved: Annotated[int, 1]
    created_time_ten_ms: Annotated[int, 1]
    created_time: Annotated[int, 2]
    created_date: Annotated[int, 2]
    last_accessed_date: Annotated[int, 2]
    cluster_high: Annotated[int, 2]
    last_modified_time: Annotated[int, 2]
    last_modified_date: Annotated[int, 2]
    cluster_low: Annotated[int, 2]
    size: Annotated[int, 4]

    @property
    def hint(self) -> Hint | None:
        """Special meaning of the record or ``None``."""
        try:
            return Hint(self.name[0])
        except ValueError:
            return None

    @property
    def free(self) -> bool:
        return self.hint is Hint.FREE

    @property
    def end_of_entries(self) -> bool:
        """Whether no further records follow in this directory."""
        return self.hint is Hint.END_OF_ENTRIES

    @property
    def long_name(self) -> bool:
        """Whether the record is part of a VFAT long filename."""
        return self.attributes_byte & LONG_NAME_MASK == Attributes.LONG_NAME.value

    @property
    def attributes(self) -> Attributes:
        return Attributes(self.attributes_byte)

    @property
    def cluster(self) -> int:
        """Start cluster of the file or directory."""
        return (self.cluster_high << 16) + self.cluster_low


@dataclass(frozen=True)
class Entry:
    """Directory entry decoded from a plain 8.3 record.

    ``name`` is the display name: the base name alone for directories and
    base name, dot and extension for files, even if the extension is empty.
    """

    name: str
    kind: EntryKind
    attributes: Attributes
    cluster: int
    size: int
    record: EightDotThreeEntry = field(repr=False, compare=False)

    @classmethod
    def from_record(cls, record: EightDotThreeEntry) -> Entry:
        base, ext = _unpack_dos_name(record.name, record.extension)
        attributes = record.attributes

        if Attributes.DIRECTORY in attributes:
            kind = EntryKind.DIRECTORY
            name = base
        else:
            kind = EntryKind.FILE
            name = f'{base}.{ext}'

        return cls(name, kind, attributes, record.cluster, record.size, record)

    @classmethod
    def from_bytes(cls, b: bytes) -> Entry:
        return cls.from_record(EightDotThreeEntry.from_bytes(b))

    @property
    def is_directory(self) -> bool:
        return self.kind is EntryKind.DIRECTORY

    @property
    def created(self) -> datetime | None:
        """Creation datetime or ``None`` if invalid."""
        return unpack_dos_datetime(
            self.record.created_date,
            self.record.created_time,
            self.record.created_time_ten_ms,
        )

    @property
    def last_accessed(self) -> datetime | None:
        """Date of last access or ``None`` if invalid."""
        return unpack_dos_datetime(self.record.last_accessed_date)

    @property
    def last_modified(self) -> datetime | None:
        """Datetime of last modification or ``None`` if invalid."""
        return unpack_dos_datetime(
            self.record.last_modified_date, self.record.last_modified_time
        )

    def __bytes__(self) -> bytes:
        return bytes(self.record)


def iter_entries(records: Iterable[bytes]) -> Iterator[Entry]:
    """Yield directory entries decoded from ``records``.

    Each element of ``records`` must be the ``bytes`` form of one 32-byte record.
    Free records and VFAT long filename records are skipped. A record starting with
    ``0x00`` ends the directory; ``records`` is not consumed any further.
    """
    for b in records:
        record = EightDotThreeEntry.from_bytes(b)

        if record.end_of_entries:
            return
        if record.free:
            continue
        if record.long_name:
            log.debug(f'Skipped long filename record {b[1:11]!r}')
            continue

        yield Entry.from_record(record)


def create_entry(
    name: str,
    extension: str = '',
    attributes: Attributes = Attributes.ARCHIVE,
    cluster: int = 0,
    size: int = 0,
    *,
    case_info: int = 0,
    created: datetime | None = None,
    last_accessed: datetime | None = None,
    last_modified: datetime | None = None,
) -> EightDotThreeEntry:
    """Encode a plain 8.3 record.

    Timestamps which are not passed are stored as zero. ``case_info`` is stored
    as is in the byte following the attributes, which some systems use to mark
    lower case base names and extensions.
    """
    packed_name, packed_ext = _pack_dos_name(name, extension)
    created_date, created_time, created_time_ten_ms = (
        (0, 0, 0) if created is None else pack_dos_datetime(created)
    )
    last_accessed_date = 0 if last_accessed is None else pack_dos_datetime(last_accessed)[0]
    last_modified_date, last_modified_time = (
        (0, 0) if last_modified is None else pack_dos_datetime(last_modified)[:2]
    )

    return EightDotThreeEntry(
        packed_name,
        packed_ext,
        attributes.value,
        case_info,
        created_time_ten_ms,
        created_time,
        created_date,
        last_accessed_date,
        cluster >> 16,
        last_modified_time,
        last_modified_date,
        cluster & 0xFFFF,
        size,
    )
