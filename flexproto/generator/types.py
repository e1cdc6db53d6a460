"""Type definitions for schema loading and code generation."""

from dataclasses import dataclass
from typing import Union

from dataclasses_json import DataClassJsonMixin


@dataclass(frozen=True)
class FixedInt(DataClassJsonMixin):
    """Integer of an exact bit width, flex encoded on the wire."""

    width: int
    signed: bool

    @property
    def name(self) -> str:
        return f"{'' if self.signed else 'u'}int{self.width}"


@dataclass(frozen=True)
class String(DataClassJsonMixin):
    """Length-prefixed text."""


@dataclass(frozen=True)
class Blob(DataClassJsonMixin):
    """Length-prefixed opaque bytes. Same wire form as String."""


@dataclass(frozen=True)
class VariableArray(DataClassJsonMixin):
    """Count-prefixed sequence of elements."""

    element: "FieldType"


@dataclass(frozen=True)
class FixedArray(DataClassJsonMixin):
    """Exactly ``count`` elements, no count prefix."""

    element: "FieldType"
    count: int


@dataclass(frozen=True)
class StructRef(DataClassJsonMixin):
    """Reference to a declared or external struct."""

    name: str


@dataclass(frozen=True)
class EnumRef(DataClassJsonMixin):
    """Reference to a declared enum."""

    name: str


@dataclass(frozen=True)
class TypeEnumRef(DataClassJsonMixin):
    """Reference to a declared type-tag enum."""

    name: str


FieldType = Union[
    FixedInt, String, Blob, VariableArray, FixedArray, StructRef, EnumRef, TypeEnumRef
]


@dataclass(frozen=True)
class Field(DataClassJsonMixin):
    """A struct member. Declaration order is wire order."""

    name: str
    token: str
    type: FieldType


@dataclass(frozen=True)
class StructDef(DataClassJsonMixin):
    """A struct with a body.

    External structs keep their layout elsewhere; their codec is still
    generated from the fields declared here.
    """

    name: str
    fields: tuple[Field, ...]
    is_external: bool = False


@dataclass(frozen=True)
class EnumValue(DataClassJsonMixin):
    """A single enum constant. ``value`` is None when not given explicitly."""

    name: str
    value: int | None = None


@dataclass(frozen=True)
class EnumDef(DataClassJsonMixin):
    """An integer enumeration."""

    name: str
    values: tuple[EnumValue, ...]
    base: FixedInt

    def resolved(self) -> list[tuple[str, int]]:
        """Return (name, value) pairs with unspecified values filled in.

        The first unspecified constant is 0, every later one is the previous
        value plus one.
        """
        result: list[tuple[str, int]] = []
        previous: int | None = None
        for value in self.values:
            if value.value is not None:
                current = value.value
            elif previous is None:
                current = 0
            else:
                current = previous + 1
            result.append((value.name, current))
            previous = current
        return result


@dataclass(frozen=True)
class TypeEnumMember(DataClassJsonMixin):
    """A type listed in a type-tag enum."""

    name: str
    type: FieldType


@dataclass(frozen=True)
class TypeEnumDef(DataClassJsonMixin):
    """Compile-time table mapping types to their position."""

    name: str
    members: tuple[TypeEnumMember, ...]
    base: FixedInt

    def tags(self) -> list[tuple[TypeEnumMember, int]]:
        return [(member, index) for index, member in enumerate(self.members)]


@dataclass(frozen=True)
class SchemaDocument(DataClassJsonMixin):
    """A fully loaded schema, shared read-only by every emitter."""

    structs: tuple[StructDef, ...] = ()
    enums: tuple[EnumDef, ...] = ()
    type_enums: tuple[TypeEnumDef, ...] = ()
    external_structs: tuple[str, ...] = ()
    includes: tuple[str, ...] = ()
    namespace: str | None = None

    def struct(self, name: str) -> StructDef | None:
        return next((s for s in self.structs if s.name == name), None)

    def enum(self, name: str) -> EnumDef | None:
        return next((e for e in self.enums if e.name == name), None)

    def type_enum(self, name: str) -> TypeEnumDef | None:
        return next((e for e in self.type_enums if e.name == name), None)

    @property
    def generated_structs(self) -> list[StructDef]:
        """Structs whose layout is emitted."""
        return [s for s in self.structs if not s.is_external]

    @property
    def opaque_structs(self) -> list[str]:
        """External structs declared by name only, with nothing emitted."""
        bodies = {s.name for s in self.structs}
        return [name for name in self.external_structs if name not in bodies]


# Both spellings are accepted: "int32" and the C-style "int32_t"
BASIC_TYPES: dict[str, FixedInt] = {
    f"{prefix}int{width}{suffix}": FixedInt(width, prefix == "")
    for width in (8, 16, 32, 64)
    for prefix in ("", "u")
    for suffix in ("", "_t")
}

STRING_TOKEN = "string"
BLOB_TOKEN = "blob"
ARRAY_PREFIX = "array_"
FIXARRAY_PREFIX = "fixarray_"


def basic_types() -> list[str]:
    """Return the list of basic integer type names."""
    return list(BASIC_TYPES)


def is_basic(token: str) -> bool:
    """Check if a token names a basic integer type."""
    return token in BASIC_TYPES


def embedded_structs(t: FieldType) -> list[str]:
    """Names of structs held by value, directly or through fixed arrays."""
    if isinstance(t, StructRef):
        return [t.name]
    if isinstance(t, FixedArray):
        return embedded_structs(t.element)
    return []


def array_elements(t: FieldType) -> list[FieldType]:
    """Element types of every count-prefixed array within ``t``, outermost first."""
    if isinstance(t, VariableArray):
        return [t.element] + array_elements(t.element)
    if isinstance(t, FixedArray):
        return array_elements(t.element)
    return []


def storage_type(t: FieldType) -> FieldType:
    """Collapse spellings that share one in-memory type; a blob is a uint8 array."""
    if isinstance(t, Blob):
        return VariableArray(FixedInt(8, False))
    if isinstance(t, VariableArray):
        return VariableArray(storage_type(t.element))
    if isinstance(t, FixedArray):
        return FixedArray(storage_type(t.element), t.count)
    return t
