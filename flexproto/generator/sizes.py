"""Encoded size calculation for schema types and structs."""

from dataclasses import dataclass
from enum import StrEnum, auto

from .types import (
    Blob,
    EnumRef,
    FieldType,
    FixedArray,
    FixedInt,
    SchemaDocument,
    String,
    StructRef,
    TypeEnumRef,
    VariableArray,
)

# Largest flex encoding per integer width: ceil(width / 7) bytes
MAX_VARINT_SIZES: dict[int, int] = {8: 2, 16: 3, 32: 5, 64: 10}


class SizeKind(StrEnum):
    """Classification of size characteristics."""

    FIXED = auto()  # Min == Max
    BOUNDED = auto()  # Variable but has a calculable max (e.g., a varint)
    UNBOUNDED = auto()  # Length-prefixed data, or an external struct


@dataclass(frozen=True)
class SizeInfo:
    """Size information for a type or struct."""

    min_size: int
    max_size: int | None  # None means unbounded
    kind: SizeKind

    @property
    def is_fixed(self) -> bool:
        return self.kind == SizeKind.FIXED

    @property
    def is_bounded(self) -> bool:
        return self.kind in (SizeKind.FIXED, SizeKind.BOUNDED)


@dataclass(frozen=True)
class StructSizeInfo:
    """Complete size information for a struct."""

    name: str
    size: SizeInfo


@dataclass(frozen=True)
class SchemaSizeInfo:
    """Size information for an entire schema."""

    structs: dict[str, StructSizeInfo]

    @property
    def max_struct_size(self) -> int | None:
        """Largest encoding of any struct, None if any struct is unbounded."""
        sizes = [s.size.max_size for s in self.structs.values()]
        if not sizes or any(size is None for size in sizes):
            return None
        return max(size for size in sizes if size is not None)


def _size(min_size: int, max_size: int | None) -> SizeInfo:
    if max_size is None:
        return SizeInfo(min_size, None, SizeKind.UNBOUNDED)
    if min_size == max_size:
        return SizeInfo(min_size, max_size, SizeKind.FIXED)
    return SizeInfo(min_size, max_size, SizeKind.BOUNDED)


UNKNOWN_SIZE = SizeInfo(0, None, SizeKind.UNBOUNDED)


class SizeCalculator:
    """Calculate flex-encoded sizes for schema types."""

    def __init__(self, schema: SchemaDocument):
        self.schema = schema
        self.structs = {s.name: s for s in schema.structs}
        self._cache: dict[str, SizeInfo] = {}
        self._active: set[str] = set()

    def calc_int_size(self, t: FixedInt) -> SizeInfo:
        """Calculate size for a fixed width integer."""
        return _size(1, MAX_VARINT_SIZES[t.width])

    def calc_type_size(self, t: FieldType) -> SizeInfo:
        """Calculate size for any field type."""
        if isinstance(t, FixedInt):
            return self.calc_int_size(t)

        if isinstance(t, (String, Blob, VariableArray)):
            # Length or count prefix, then any amount of data
            return _size(1, None)

        if isinstance(t, FixedArray):
            elem = self.calc_type_size(t.element)
            max_size = elem.max_size * t.count if elem.max_size is not None else None
            return _size(elem.min_size * t.count, max_size)

        if isinstance(t, EnumRef):
            enum = self.schema.enum(t.name)
            if enum is None:
                raise ValueError(f"Unknown enum: {t.name}")
            return self.calc_int_size(enum.base)

        if isinstance(t, TypeEnumRef):
            type_enum = self.schema.type_enum(t.name)
            if type_enum is None:
                raise ValueError(f"Unknown type enum: {t.name}")
            return self.calc_int_size(type_enum.base)

        if isinstance(t, StructRef):
            if t.name not in self.structs:
                # Declared external by name only; nothing is known about it
                return UNKNOWN_SIZE
            return self.calc_struct_size(t.name).size

        raise ValueError(f"Unknown type: {t!r}")

    def calc_struct_size(self, name: str) -> StructSizeInfo:
        """Calculate size for a struct (with caching)."""
        if name in self._cache:
            return StructSizeInfo(name, self._cache[name])

        # External structs are not checked for cycles when loading
        if name in self._active:
            return StructSizeInfo(name, UNKNOWN_SIZE)

        self._active.add(name)
        total_min = 0
        total_max: int | None = 0
        for f in self.structs[name].fields:
            size = self.calc_type_size(f.type)
            total_min += size.min_size
            if total_max is not None and size.max_size is not None:
                total_max += size.max_size
            else:
                total_max = None
        self._active.discard(name)

        struct_size = _size(total_min, total_max)
        self._cache[name] = struct_size
        return StructSizeInfo(name, struct_size)

    def calc_schema_info(self) -> SchemaSizeInfo:
        """Calculate size information for every struct with a body."""
        return SchemaSizeInfo(structs={name: self.calc_struct_size(name) for name in self.structs})


def calculate_sizes(schema: SchemaDocument) -> SchemaSizeInfo:
    """Calculate size information for a schema."""
    return SizeCalculator(schema).calc_schema_info()
