"""Read-only session on a mounted FAT32 volume image."""

from __future__ import annotations

import logging
import os
from errno import EISDIR
from functools import wraps
from pathlib import PurePosixPath
from types import TracebackType
from typing import TYPE_CHECKING, Callable, Iterator, TypeVar

from typing_extensions import Concatenate, ParamSpec

from ..base import BoundsError
from ..source import BlockSource
from .chain import ClusterChainReader
from .fat import FatTable
from .path import Directory, PathResolver
from .reserved import BOOT_SECTOR_SIZE, BootParameters

if TYPE_CHECKING:
    from ..typing import StrPath
    from .directory import Entry

__all__ = ["VolumeSession"]


log = logging.getLogger(__name__)


# Typing
P = ParamSpec("P")
R = TypeVar("R")  # return type


def checked(
    method: Callable[Concatenate["VolumeSession", P], R],
) -> Callable[Concatenate["VolumeSession", P], R]:
    @wraps(method)
    def checked_wrapper(
        self: "VolumeSession", *args: P.args, **kwargs: P.kwargs
    ) -> R:
        self._source.check_closed()
        return method(self, *args, **kwargs)

    return checked_wrapper


def _check_file(entry: Entry, *, hint: str) -> None:
    """Ensure that ``entry`` is a regular file entry.

    :param hint: Path shown as a hint in the exception.
    """
    if entry.is_directory:
        raise OSError(EISDIR, os.strerror(EISDIR), hint)


class VolumeSession:
    """Browsing session on a FAT32 volume.

    Holds the image, its boot parameters, the FAT and the current directory.
    Closing the session closes the underlying ``BlockSource``.

    Do not use ``__init__`` directly, use ``VolumeSession.open()`` or
    ``VolumeSession.from_source()`` instead.
    """

    def __init__(self, source: BlockSource, boot: BootParameters, fat: FatTable):
        self._source = source
        self._boot = boot
        self._fat = fat
        self._chain = ClusterChainReader(source, boot, fat)
        self._resolver = PathResolver(self._chain)
        self._cwd = self._resolver.root()

        log.info(f"Mounted {source} ({len(fat)} FAT entries, FAT {fat.main_fat})")

    @classmethod
    def open(
        cls, path: StrPath, *, main_fat: int = 0, legacy_geometry: bool = False
    ) -> VolumeSession:
        """Open the image at ``path`` and mount the volume it holds.

        :param main_fat: Number of the FAT copy to read.
        :param legacy_geometry: Compute the FAT length from the cluster size
            instead of the sector size.
        """
        source = BlockSource.open(path)
        try:
            return cls.from_source(
                source, main_fat=main_fat, legacy_geometry=legacy_geometry
            )
        except BaseException:
            source.close()
            raise

    @classmethod
    def from_source(
        cls,
        source: BlockSource,
        *,
        main_fat: int = 0,
        legacy_geometry: bool = False,
    ) -> VolumeSession:
        """Mount the volume held by an open ``source``."""
        boot = BootParameters.from_bytes(
            source.read_at(0, BOOT_SECTOR_SIZE), legacy_geometry=legacy_geometry
        )
        fat = FatTable.from_source(source, boot, main_fat)
        return cls(source, boot, fat)

    def _hint(self, name: str) -> str:
        return str(PurePosixPath(self._cwd.path, name))

    @checked
    def list_entries(self) -> list[str]:
        """Names of the entries of the current directory, in on-disk order."""
        return self._cwd.names()

    @checked
    def iter_entries(self) -> Iterator[Entry]:
        return iter(list(self._cwd))

    @checked
    def stat_entry(self, name: str) -> Entry:
        return self._cwd.lookup(name)

    @checked
    def file_size(self, name: str) -> int:
        entry = self._cwd.lookup(name)
        _check_file(entry, hint=self._hint(name))
        return entry.size

    @checked
    def change_directory(self, path: str) -> None:
        """Change the current directory to ``path``.

        On failure, the current directory stays the same.
        """
        self._cwd = self._resolver.resolve(path, self._cwd)
        log.debug(f"Changed directory to {self._cwd.path}")

    @checked
    def read_file_range(self, name: str, offset: int, length: int) -> bytes:
        """Read ``length`` bytes of the file ``name`` starting at ``offset``.

        Raises ``BoundsError`` if the range extends past the end of the file.
        Only the clusters covering the range are read, so corruption of the
        chain past ``offset + length`` is not detected.
        """
        if offset < 0:
            raise ValueError("Offset must be zero or positive")
        if length < 0:
            raise ValueError("Length must be zero or positive")

        entry = self._cwd.lookup(name)
        _check_file(entry, hint=self._hint(name))

        stop = offset + length
        if stop > entry.size:
            raise BoundsError(
                f"Range ({offset}, {stop}) exceeds size of file {name!r} "
                f"({entry.size} bytes)"
            )
        if length == 0:
            return b""

        return self._chain.read_file(entry.cluster, stop)[offset:]

    @checked
    def boot_info(self) -> BootParameters:
        return self._boot

    @checked
    def getcwd(self) -> str:
        return self._cwd.path

    @property
    def cwd(self) -> Directory:
        return self._cwd

    @property
    def fat(self) -> FatTable:
        return self._fat

    def close(self) -> None:
        """Close the session and its image. Safe to call more than once."""
        self._source.close()

    @property
    def closed(self) -> bool:
        return self._source.closed

    def __enter__(self) -> VolumeSession:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self._source.path!r})"
