"""Positioned read access to a volume image.

A block source wraps one read-only file descriptor of a disk image or block device.
"""

from __future__ import annotations

import logging
import os
from stat import S_ISBLK, S_ISREG
from types import TracebackType
from typing import TYPE_CHECKING

from .base import ShortReadError

if TYPE_CHECKING:
    from .typing import StrPath

__all__ = ["BlockSource"]


log = logging.getLogger(__name__)


if hasattr(os, "pread"):
    _read = os.pread
else:

    def _read(fd: int, size: int, pos: int) -> bytes:
        """Read `size` bytes from file descriptor `fd` starting at byte `pos`."""
        os.lseek(fd, pos, os.SEEK_SET)
        return os.read(fd, size)


class BlockSource:
    """Read-only image file or block device accessed by byte offset.

    Do not use `__init__` directly, use `BlockSource.open()` instead.
    """

    def __init__(self, fd: int, path: StrPath, size: int):
        self._fd = fd
        self._path = str(path)
        self._size = size
        self._closed = False

        log.info(f"Opened image {self} ({size} bytes)")

    @classmethod
    def open(cls, path: StrPath) -> BlockSource:
        """Open the image file or block device at `path` for reading."""
        flags = os.O_RDONLY | getattr(os, "O_BINARY", 0)
        fd = os.open(path, flags)

        try:
            stat = os.fstat(fd)
            if S_ISREG(stat.st_mode):
                size = stat.st_size
            elif S_ISBLK(stat.st_mode):
                size = os.lseek(fd, 0, os.SEEK_END)
            else:
                raise ValueError("File is neither a block device nor a regular file")
            return cls(fd, path, size)

        except BaseException:
            os.close(fd)
            raise

    def read_at(self, pos: int, size: int) -> bytes:
        """Read exactly `size` bytes starting at byte offset `pos`.

        Raises `ShortReadError` if the image ends before `size` bytes were read.
        """
        self.check_closed()

        if pos < 0:
            raise ValueError("Position to read from must be zero or positive")
        if size < 0:
            raise ValueError("Amount of bytes to read must be zero or positive")
        if size == 0:
            return b""

        b = _read(self._fd, size, pos)

        if len(b) != size:
            raise ShortReadError(
                f"Did not read the expected amount of bytes at offset {pos} "
                f"(expected {size} bytes, got {len(b)} bytes)"
            )
        return b

    def close(self) -> None:
        """Close the underlying file descriptor. Safe to call more than once."""
        if self._closed:
            return
        os.close(self._fd)
        self._closed = True
        log.info(f"Closed image {self}")

    @property
    def path(self) -> str:
        return self._path

    @property
    def size(self) -> int:
        """Size of the image in bytes."""
        return self._size

    @property
    def closed(self) -> bool:
        return self._closed

    def check_closed(self) -> None:
        if self._closed:
            raise ValueError("I/O operation on closed image")

    def __enter__(self) -> BlockSource:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self._path!r})"
