"""Flex encoding primitives used by generated Python code.

All integers are written as base-128 varints: the low 7 bits of each byte
carry data, the high bit marks that more bytes follow. Signed integers are
zigzag transformed first so their size grows with magnitude regardless of
sign. Strings and blobs are a length followed by raw bytes, variable arrays a
count followed by the elements, fixed arrays just the elements.
"""

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Self, TypeVar


class SerializationError(RuntimeError):
    """Raised when serialization or deserialization fails."""


class BufferUnderrun(SerializationError):
    """Raised when a read would go past the end of the input."""


class BufferOverrun(SerializationError):
    """Raised when a write would go past the capacity of the output."""


# Largest encoding of each width: ceil(width / 7) bytes
MAX_ENCODED_SIZE: dict[int, int] = {8: 2, 16: 3, 32: 5, 64: 10}


class OutputBuffer:
    """Append-only output cursor, optionally limited to ``capacity`` bytes."""

    def __init__(self, capacity: int | None = None) -> None:
        self._data = bytearray()
        self._capacity = capacity

    @property
    def size(self) -> int:
        return len(self._data)

    def put(self, byte: int) -> None:
        if self._capacity is not None and len(self._data) >= self._capacity:
            raise BufferOverrun("Reached end of output buffer")
        self._data.append(byte)

    def put_bytes(self, data: bytes) -> None:
        if self._capacity is not None and len(self._data) + len(data) > self._capacity:
            raise BufferOverrun("Reached end of output buffer")
        self._data.extend(data)

    def getvalue(self) -> bytes:
        return bytes(self._data)


class InputBuffer:
    """Read cursor over ``data[offset:end]``. Never reads past ``end``."""

    def __init__(self, data: bytes | memoryview, offset: int = 0, end: int | None = None) -> None:
        self._data = memoryview(data)
        self._end = len(self._data) if end is None else min(end, len(self._data))
        if not 0 <= offset <= self._end:
            raise BufferUnderrun(f"Offset {offset} outside of input buffer")
        self._pos = offset

    @property
    def position(self) -> int:
        return self._pos

    @property
    def remaining(self) -> int:
        return self._end - self._pos

    def get(self) -> int:
        if self._pos >= self._end:
            raise BufferUnderrun("Reached end of input buffer")
        byte = self._data[self._pos]
        self._pos += 1
        return byte

    def get_bytes(self, size: int) -> bytes:
        if size > self.remaining:
            raise BufferUnderrun(
                f"Need {size} bytes but only {self.remaining} remain in input buffer"
            )
        start = self._pos
        self._pos += size
        return bytes(self._data[start : self._pos])


def _truncate(value: int, nbits: int, signed: bool) -> int:
    value &= (1 << nbits) - 1
    if signed and value >> (nbits - 1):
        value -= 1 << nbits
    return value


def zigzag(value: int, nbits: int = 64) -> int:
    """Map a signed value onto an unsigned one, small magnitudes staying small."""
    value = _truncate(value, nbits, True)
    return ((value << 1) ^ (value >> (nbits - 1))) & ((1 << nbits) - 1)


def unzigzag(value: int) -> int:
    """Inverse of zigzag()."""
    return (value >> 1) ^ -(value & 1)


def encode_unsigned(out: OutputBuffer, value: int) -> None:
    """Write a non-negative integer as a varint. Zero takes one byte."""
    while value > 0x7F:
        out.put(0x80 | (value & 0x7F))
        value >>= 7
    out.put(value)


def decode_unsigned(buf: InputBuffer, nbits: int = 64) -> int:
    """Read a varint holding at most ``nbits`` bits of payload."""
    max_size = MAX_ENCODED_SIZE.get(nbits, (nbits + 6) // 7)
    value = 0
    for index in range(max_size):
        byte = buf.get()
        value |= (byte & 0x7F) << (7 * index)
        if not byte & 0x80:
            return value & ((1 << nbits) - 1)
    raise SerializationError(f"Varint longer than {max_size} bytes for a {nbits}-bit value")


def encode_integer(out: OutputBuffer, value: int, nbits: int, signed: bool) -> None:
    """Write an integer of a fixed width. Out of range values are truncated."""
    if signed:
        encode_unsigned(out, zigzag(value, nbits))
    else:
        encode_unsigned(out, _truncate(value, nbits, False))


def decode_integer(buf: InputBuffer, nbits: int, signed: bool) -> int:
    value = decode_unsigned(buf, nbits)
    return unzigzag(value) if signed else value


TEnum = TypeVar("TEnum", bound=IntEnum)


def encode_enum(out: OutputBuffer, value: IntEnum | int, nbits: int, signed: bool) -> None:
    encode_integer(out, int(value), nbits, signed)


def decode_enum(buf: InputBuffer, enum_type: type[TEnum], nbits: int, signed: bool) -> TEnum:
    value = decode_integer(buf, nbits, signed)
    try:
        return enum_type(value)
    except ValueError as exc:
        raise SerializationError(f"{value} is not a valid {enum_type.__name__}") from exc


def encode_bytes(out: OutputBuffer, value: bytes) -> None:
    encode_unsigned(out, len(value))
    out.put_bytes(value)


def decode_bytes(buf: InputBuffer) -> bytes:
    return buf.get_bytes(decode_unsigned(buf))


def encode_string(out: OutputBuffer, value: str) -> None:
    encode_bytes(out, value.encode("utf-8"))


def decode_string(buf: InputBuffer) -> str:
    raw = decode_bytes(buf)
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise SerializationError("String is not valid UTF-8") from exc


T = TypeVar("T")

Encoder = Callable[[OutputBuffer, T], None]
Decoder = Callable[[InputBuffer], T]


def encode_variable_array(
    out: OutputBuffer, values: Sequence[T], encode_element: Encoder[T]
) -> None:
    encode_unsigned(out, len(values))
    for value in values:
        encode_element(out, value)


def decode_variable_array(buf: InputBuffer, decode_element: Decoder[T]) -> list[T]:
    count = decode_unsigned(buf)
    # Elements are appended one by one so a bogus count fails on the data,
    # not on an allocation
    return [decode_element(buf) for _ in range(count)]


def encode_fixed_array(
    out: OutputBuffer, values: Sequence[T], count: int, encode_element: Encoder[T]
) -> None:
    if len(values) != count:
        raise SerializationError(f"Fixed array must have {count} elements, got {len(values)}")
    for value in values:
        encode_element(out, value)


def decode_fixed_array(buf: InputBuffer, count: int, decode_element: Decoder[T]) -> list[T]:
    return [decode_element(buf) for _ in range(count)]


@dataclass(frozen=True)
class FlexFieldInfo:
    """Metadata for a flexproto struct field."""

    flex_type: str


def flex_field(type: str) -> Any:
    """Define a required struct field with its schema type token attached.

    Args:
        type: The schema type token (e.g., "int32", "array_string").

    Returns:
        A dataclass field with flexproto metadata attached.
    """
    return field(metadata={"flexproto": FlexFieldInfo(type)})


class Struct:
    """Base class for generated struct types.

    Subclasses are @dataclass decorated and implement encode() and decode();
    pack() and unpack() wrap them for whole buffers.

    Example:
        @dataclass
        class Point(Struct):
            x: int = flex_field("int32")
            y: int = flex_field("int32")
    """

    def encode(self, out: OutputBuffer) -> None:
        """Append this struct to ``out``. Generated code overrides this."""
        raise NotImplementedError("encode() must be implemented by generated code")

    @classmethod
    def decode(cls, buf: InputBuffer) -> Self:
        """Read one struct from ``buf``. Generated code overrides this."""
        raise NotImplementedError("decode() must be implemented by generated code")

    def pack(self) -> bytes:
        """Pack this struct to bytes."""
        out = OutputBuffer()
        self.encode(out)
        return out.getvalue()

    @classmethod
    def unpack(
        cls, data: bytes | memoryview, offset: int = 0, end: int | None = None
    ) -> tuple[Self, int]:
        """Unpack a struct from bytes.

        Args:
            data: The bytes to unpack from.
            offset: Starting offset in data.
            end: Offset the struct must not read past. Defaults to len(data).

        Returns:
            Tuple of (instance, bytes_consumed).
        """
        buf = InputBuffer(data, offset, end)
        instance = cls.decode(buf)
        return instance, buf.position - offset
