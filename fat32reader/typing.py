"""Certain types used across the package."""

from __future__ import annotations

from os import PathLike
from typing import Union

from typing_extensions import TypeAlias

__all__ = ['NoneType', 'StrPath']


NoneType: TypeAlias = type(None)
StrPath: TypeAlias = Union[str, 'PathLike[str]']
