"""Packing and validation of fixed-size binary records."""

from __future__ import annotations

import struct
from typing import Any, ClassVar, Literal, NamedTuple, TypeVar

from typing_extensions import Annotated, get_args, get_origin, get_type_hints

from .base import FormatError, max_value
from .typing import NoneType

__all__ = ["ByteStruct"]


INT_CONVERSION = {1: "B", 2: "H", 4: "I", 8: "Q"}
INTERNAL_NAMES = (
    "__bytestruct_fields__",
    "__bytestruct_format__",
    "__bytestruct_size__",
    "__bytestruct_cached__",
)

_Bs = TypeVar("_Bs", bound="ByteStruct")


class _Field(NamedTuple):
    """Metadata about a field of a `ByteStruct`.

    - `type_`: `int`, `bytes` or `NoneType` (pad bytes).
    - `size`: Width of the field in bytes.
    """

    type_: Any
    size: int


class _ByteStructMeta(type):
    """Metaclass of `ByteStruct`.

    Reads the `Annotated` type hints of a `ByteStruct` subclass and sets
    `__bytestruct_fields__`, `__bytestruct_format__` and `__bytestruct_size__`
    accordingly.
    """

    def __new__(
        mcs,
        name: str,
        bases: tuple[type, ...],
        namespace: dict[str, Any],
        **kwargs: Any,
    ) -> _ByteStructMeta:
        return super().__new__(mcs, name, bases, namespace)

    def __init__(
        cls,
        name: str,
        bases: tuple[type, ...],
        namespace: dict[str, Any],
        byteorder: Literal["<", ">"] = "<",
    ):
        super().__init__(name, bases, namespace)
        if not bases:
            return  # cls is ByteStruct

        type_hints = get_type_hints(cls, include_extras=True)
        format_ = byteorder
        fields = {}

        for field_name, type_ in type_hints.items():
            if field_name in INTERNAL_NAMES or get_origin(type_) is ClassVar:
                continue
            if get_origin(type_) is not Annotated:
                raise TypeError(
                    f"Unannotated type {type_} of field {field_name!r} is not "
                    f"allowed for ByteStruct"
                )

            annotated_type, size, *_ = get_args(type_)
            if not isinstance(size, int) or size < 1:
                raise ValueError(f"Invalid size {size!r} of field {field_name!r}")

            if annotated_type is int:
                if size not in INT_CONVERSION:
                    raise ValueError(
                        f"Invalid int field size {size}, must be one of "
                        f"{tuple(INT_CONVERSION)}"
                    )
                format_ += INT_CONVERSION[size]
            elif annotated_type is bytes:
                format_ += f"{size}s"
            elif annotated_type is NoneType:
                format_ += f"{size}x"
            else:
                raise TypeError(
                    f"Annotated type {annotated_type} of field {field_name!r} is "
                    f"not allowed for ByteStruct"
                )

            fields[field_name] = _Field(annotated_type, size)

        cls.__bytestruct_fields__ = fields
        cls.__bytestruct_format__ = format_
        cls.__bytestruct_size__ = struct.calcsize(format_)

    def __len__(cls) -> int:
        """Size of the `bytes` form of the `ByteStruct` in bytes."""
        return cls.__bytestruct_size__


class ByteStruct(metaclass=_ByteStructMeta):
    """Fixed-size binary record with named fields.

    Every subclass must be a frozen `dataclass`. Fields are declared with
    `typing.Annotated`::

        @dataclasses.dataclass(frozen=True)
        class Record(ByteStruct, byteorder='<'):

            size: Annotated[int, 4]      # unsigned int of 4 bytes
            name: Annotated[bytes, 8]    # 8 raw bytes
            unused: Annotated[None, 2]   # 2 pad bytes

    Creating an instance checks every `int` field against the maximum value of
    its width and every `bytes` field against its length, raising `FormatError`
    on violation. Additional checks can be added by overriding `validate()`.
    """

    __bytestruct_fields__: "dict[str, _Field]"
    __bytestruct_format__: str
    __bytestruct_size__: int
    __bytestruct_cached__: bytes

    # noinspection PyUnusedLocal
    def __init__(self, *args: Any, **kwargs: Any):
        if type(self) is ByteStruct:
            raise TypeError("Cannot directly instantiate ByteStruct")
        raise TypeError("ByteStruct subclass must be a frozen dataclass")

    def __post_init__(self) -> None:
        params: Any = getattr(self, "__dataclass_params__", None)
        if params is None or not params.frozen:
            raise TypeError("ByteStruct subclass must be a frozen dataclass")

        packed = self._check_and_pack()
        # Parsed records keep their original bytes, pad bytes included.
        # Avoid __setattr__() here because this is a frozen dataclass.
        self.__dict__.setdefault("__bytestruct_cached__", packed)
        self.validate()

    def _check_and_pack(self) -> bytes:
        """Check field values against their widths and return the packed form."""
        values = []

        for name, field in self.__bytestruct_fields__.items():
            if field.type_ is NoneType:
                continue

            value = getattr(self, name)
            if field.type_ is int:
                if not 0 <= value <= max_value(field.size):
                    raise FormatError(
                        f"Value {value} of field {name!r} does not fit in "
                        f"{field.size} bytes"
                    )
            elif len(value) != field.size:
                raise FormatError(
                    f"Value of field {name!r} must be of length {field.size} bytes, "
                    f"got {len(value)} bytes"
                )
            values.append(value)

        return struct.pack(self.__bytestruct_format__, *values)

    def validate(self) -> None:
        """Custom validation logic, executed after the width checks."""

    @classmethod
    def from_bytes(cls: type[_Bs], b: bytes) -> _Bs:
        """Parse the record from `bytes` of exactly `len(cls)` bytes."""
        if cls is ByteStruct:
            raise TypeError("Cannot directly instantiate ByteStruct")
        size = cls.__bytestruct_size__
        if len(b) != size:
            raise ValueError(f"Structure is {size} bytes long, got {len(b)} bytes")

        unpacked = iter(struct.unpack(cls.__bytestruct_format__, b))
        values = [
            None if field.type_ is NoneType else next(unpacked)
            for field in cls.__bytestruct_fields__.values()
        ]

        self = cls.__new__(cls)
        self.__dict__["__bytestruct_cached__"] = bytes(b)
        self.__init__(*values)  # type: ignore[misc]
        return self

    def __bytes__(self) -> bytes:
        """`bytes` form of the record."""
        return self.__bytestruct_cached__

    def __len__(self) -> int:
        return self.__bytestruct_size__
