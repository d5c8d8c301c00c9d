"""Directories and path resolution."""

from __future__ import annotations

import logging
import os
from errno import ENOENT, ENOTDIR
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Iterable, Iterator

from .chain import ROOT_SENTINEL
from .directory import Attributes, Entry, create_entry, iter_entries

if TYPE_CHECKING:
    from .chain import ClusterChainReader

__all__ = ['Directory', 'PathResolver', 'split_path']


log = logging.getLogger(__name__)


CURRENT = '.'
PARENT = '..'


def split_path(path: str) -> tuple[bool, tuple[str, ...]]:
    """Split ``path`` into whether it is absolute and its components.

    Empty and ``.`` components are dropped; ``..`` components are kept.
    """
    if not path:
        raise ValueError('Path must not be empty')
    p = PurePosixPath(path)
    if p.is_absolute():
        return True, p.parts[1:]
    return False, p.parts


def _dot_entries() -> tuple[Entry, Entry]:
    """``.`` and ``..`` entries of the root directory, both pointing at the root
    sentinel cluster.
    """
    return (
        Entry.from_record(create_entry(CURRENT, attributes=Attributes.DIRECTORY)),
        Entry.from_record(create_entry(PARENT, attributes=Attributes.DIRECTORY)),
    )


class Directory:
    """Snapshot of the entries of one directory.

    Entries are kept in on-disk order; of several entries sharing a name only the
    first one is kept.
    """

    def __init__(self, entries: Iterable[Entry], parts: tuple[str, ...] = ()):
        self._entries: dict[str, Entry] = {}
        for entry in entries:
            self._entries.setdefault(entry.name, entry)
        self._parts = parts

    @property
    def parts(self) -> tuple[str, ...]:
        """Path components leading to this directory from the root."""
        return self._parts

    @property
    def is_root(self) -> bool:
        return not self._parts

    @property
    def path(self) -> str:
        return '/' + '/'.join(self._parts)

    def names(self) -> list[str]:
        return list(self._entries)

    def lookup(self, name: str) -> Entry:
        """Return the entry called exactly ``name``.

        Raises ``FileNotFoundError`` if there is none.
        """
        try:
            return self._entries[name]
        except KeyError:
            hint = str(PurePosixPath(self.path, name))
            raise OSError(ENOENT, os.strerror(ENOENT), hint) from None

    def __contains__(self, name: object) -> bool:
        return name in self._entries

    def __iter__(self) -> Iterator[Entry]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f'{self.__class__.__name__}({self.path!r}, entries={len(self)})'


class PathResolver:
    """Walks paths through the directory tree.

    Nothing is cached; every resolution reads all directories it passes through.
    """

    def __init__(self, chain: ClusterChainReader):
        self._chain = chain

    def read_directory(self, cluster: int, parts: tuple[str, ...]) -> Directory:
        """Read the directory stored at ``cluster`` and bind it to ``parts``.

        If ``parts`` is empty, the directory is treated as the root directory and
        gets ``.`` and ``..`` entries prepended.
        """
        entries: Iterable[Entry] = iter_entries(self._chain.iter_records(cluster))
        if not parts:
            entries = (*_dot_entries(), *entries)
        directory = Directory(entries, parts)

        log.debug(f'Read directory {directory.path} from cluster {cluster}')
        return directory

    def root(self) -> Directory:
        return self.read_directory(ROOT_SENTINEL, ())

    def resolve(self, path: str, cwd: Directory) -> Directory:
        """Return the directory ``path`` refers to, relative to ``cwd`` unless
        ``path`` is absolute.

        Raises ``FileNotFoundError`` if a component does not exist and
        ``NotADirectoryError`` if it is not a directory.
        """
        absolute, components = split_path(path)
        current = self.root() if absolute else cwd

        for part in components:
            if part == CURRENT:
                continue

            if part == PARENT:
                if current.is_root:
                    continue
                entry = current.lookup(PARENT)
                current = self.read_directory(entry.cluster, current.parts[:-1])
                continue

            entry = current.lookup(part)
            if not entry.is_directory:
                hint = str(PurePosixPath(current.path, part))
                raise OSError(ENOTDIR, os.strerror(ENOTDIR), hint)
            current = self.read_directory(entry.cluster, (*current.parts, part))

        log.debug(f'Resolved {path!r} to {current.path}')
        return current
