"""Schema parser using Lark, and the loader building a SchemaDocument."""

import logging
import os
from dataclasses import dataclass
from typing import Any, TypeVar

from lark import Lark
from lark.visitors import Transformer

from .errors import DuplicateName, EmbeddingCycle, ZeroWidthArray
from .resolver import TypeResolver
from .sizes import SizeCalculator
from .types import (
    EnumDef,
    EnumValue,
    Field,
    FieldType,
    SchemaDocument,
    StructDef,
    TypeEnumDef,
    TypeEnumMember,
    array_elements,
    embedded_structs,
    storage_type,
)

logger = logging.getLogger(__name__)

_g_parser: Lark | None = None

DEFAULT_ENUM_BASE = "int32"
DEFAULT_TYPE_ENUM_BASE = "uint32"


@dataclass
class _Namespace:
    value: str


@dataclass
class _Include:
    value: str


@dataclass
class _Field:
    name: str
    token: str


@dataclass
class _Struct:
    name: str
    fields: list[_Field]


@dataclass
class _External:
    name: str
    body: list[_Field] | None


@dataclass
class _EnumValue:
    name: str
    value: int | None


@dataclass
class _Enum:
    name: str
    base: str | None
    values: list[_EnumValue]


@dataclass
class _TypeEnum:
    name: str
    base: str | None
    members: list[str]


TFilter = TypeVar("TFilter", bound=object)


def _filter(args: list[Any], class_type: type[TFilter]) -> list[TFilter]:
    return [v for v in args if isinstance(v, class_type)]


def _parse_int(text: str) -> int:
    sign = -1 if text.startswith("-") else 1
    digits = text.lstrip("+-")
    if digits[:2].lower() == "0x":
        return sign * int(digits[2:], 16)
    return sign * int(digits, 10)


class TreeTransformer(Transformer):
    """Transform parse tree into raw schema declarations."""

    def start(self, args: list[Any]) -> list[Any]:
        return list(args)

    def namespace(self, args: list[Any]) -> _Namespace:
        return _Namespace(value="::".join(str(a) for a in args))

    def include(self, args: list[Any]) -> _Include:
        return _Include(value=str(args[0])[1:-1])

    def field(self, args: list[Any]) -> _Field:
        return _Field(name=str(args[0]), token=str(args[1]))

    def struct_body(self, args: list[Any]) -> list[_Field]:
        return _filter(args, _Field)

    def struct(self, args: list[Any]) -> _Struct:
        return _Struct(name=str(args[0]), fields=args[1])

    def external(self, args: list[Any]) -> _External:
        return _External(name=str(args[0]), body=args[1])

    def enum_value(self, args: list[Any]) -> _EnumValue:
        value = _parse_int(str(args[1])) if args[1] is not None else None
        return _EnumValue(name=str(args[0]), value=value)

    def enum(self, args: list[Any]) -> _Enum:
        base = str(args[1]) if args[1] is not None else None
        return _Enum(name=str(args[0]), base=base, values=_filter(args[2:], _EnumValue))

    def type_member(self, args: list[Any]) -> str:
        return str(args[0])

    def type_enum(self, args: list[Any]) -> _TypeEnum:
        base = str(args[1]) if args[1] is not None else None
        return _TypeEnum(name=str(args[0]), base=base, members=[str(a) for a in args[2:]])


def _check_unique(names: list[str], kind: str, owner: str | None = None) -> None:
    seen: set[str] = set()
    for name in names:
        if name in seen:
            raise DuplicateName(f"duplicate {kind}", struct=owner, token=name)
        seen.add(name)


def _check_embedding(structs: list[StructDef]) -> None:
    """Reject structs that contain themselves by value, directly or not."""
    generated = {s.name: s for s in structs if not s.is_external}
    state: dict[str, str] = {}

    def visit(name: str, path: list[str]) -> None:
        state[name] = "active"
        for f in generated[name].fields:
            for target in embedded_structs(f.type):
                if target not in generated:
                    continue
                if state.get(target) == "active":
                    cycle = path[path.index(target) :] + [target]
                    raise EmbeddingCycle(
                        f"structs embed each other by value ({' -> '.join(cycle)})",
                        struct=name,
                        field=f.name,
                        token=f.token,
                    )
                if target not in state:
                    visit(target, path + [target])
        state[name] = "done"

    for name in generated:
        if name not in state:
            visit(name, [name])


def _check_distinct_types(type_enum: TypeEnumDef) -> None:
    """Each type may carry only one tag, whatever spelling names it."""
    seen: dict[FieldType, str] = {}
    for member in type_enum.members:
        key = storage_type(member.type)
        if key in seen:
            raise DuplicateName(
                f"type already tagged as '{seen[key]}'",
                struct=type_enum.name,
                token=member.name,
            )
        seen[key] = member.name


def _check_array_elements(schema: SchemaDocument) -> None:
    """Reject arrays whose elements take no bytes, since their count is unchecked."""
    calculator = SizeCalculator(schema)
    for struct in schema.structs:
        for f in struct.fields:
            for element in array_elements(f.type):
                if calculator.calc_type_size(element).max_size == 0:
                    raise ZeroWidthArray(
                        "array elements encode to zero bytes",
                        struct=struct.name,
                        field=f.name,
                        token=f.token,
                    )


def validate(
    structs: list[_Struct],
    externals: list[_External],
    enums: list[_Enum],
    type_enums: list[_TypeEnum],
    namespaces: list[_Namespace],
) -> None:
    """Check the name scopes of the raw declarations."""
    if len(namespaces) > 1:
        raise DuplicateName("namespace declared more than once", token=namespaces[1].value)

    _check_unique([e.name for e in externals], "external struct")

    # One scope for every type name; an external may also carry a body
    external_names = {e.name for e in externals}
    type_names = [s.name for s in structs]
    type_names += [e.name for e in enums]
    type_names += [e.name for e in type_enums]
    type_names += [n for n in sorted(external_names) if n not in {s.name for s in structs}]
    _check_unique(type_names, "type name")

    for struct in structs:
        _check_unique([f.name for f in struct.fields], "field", struct.name)
    for enum in enums:
        _check_unique([v.name for v in enum.values], "enum constant", enum.name)
    for type_enum in type_enums:
        _check_unique(type_enum.members, "type enum member", type_enum.name)


def load(items: list[Any]) -> SchemaDocument:
    """Build a SchemaDocument from raw declarations, resolving every type once."""
    namespaces = _filter(items, _Namespace)
    externals = _filter(items, _External)
    enums = _filter(items, _Enum)
    type_enums = _filter(items, _TypeEnum)

    # "external struct X { ... }" is a struct whose layout lives elsewhere
    raw_structs: list[_Struct] = []
    for item in items:
        if isinstance(item, _Struct):
            raw_structs.append(item)
        elif isinstance(item, _External) and item.body is not None:
            raw_structs.append(_Struct(name=item.name, fields=item.body))

    validate(raw_structs, externals, enums, type_enums, namespaces)

    external_names = [e.name for e in externals]
    resolver = TypeResolver(
        structs=[s.name for s in raw_structs] + external_names,
        enums=[e.name for e in enums],
        type_enums=[e.name for e in type_enums],
    )

    structs = [
        StructDef(
            name=s.name,
            fields=tuple(
                Field(name=f.name, token=f.token, type=resolver.resolve(f.token, s.name, f.name))
                for f in s.fields
            ),
            is_external=s.name in external_names,
        )
        for s in raw_structs
    ]
    _check_embedding(structs)

    enum_defs = [
        EnumDef(
            name=e.name,
            values=tuple(EnumValue(name=v.name, value=v.value) for v in e.values),
            base=resolver.resolve_base(e.base or DEFAULT_ENUM_BASE, e.name),
        )
        for e in enums
    ]

    type_enum_defs = [
        TypeEnumDef(
            name=e.name,
            members=tuple(
                TypeEnumMember(name=m, type=resolver.resolve(m, e.name)) for m in e.members
            ),
            base=resolver.resolve_base(e.base or DEFAULT_TYPE_ENUM_BASE, e.name),
        )
        for e in type_enums
    ]
    for type_enum in type_enum_defs:
        _check_distinct_types(type_enum)

    schema = SchemaDocument(
        structs=tuple(structs),
        enums=tuple(enum_defs),
        type_enums=tuple(type_enum_defs),
        external_structs=tuple(external_names),
        includes=tuple(i.value for i in _filter(items, _Include)),
        namespace=namespaces[0].value if namespaces else None,
    )
    _check_array_elements(schema)

    logger.debug(
        f"Loaded schema: {len(schema.structs)} structs, {len(schema.enums)} enums, "
        f"{len(schema.type_enums)} type enums, {len(schema.external_structs)} externals"
    )
    return schema


def parse(text: str) -> SchemaDocument:
    """Parse and load a schema definition."""
    global _g_parser

    if not _g_parser:
        with open(f"{os.path.dirname(__file__)}/schema.lark", encoding="utf-8") as f:
            grammar = f.read()

        _g_parser = Lark(grammar, parser="lalr")

    tree = _g_parser.parse(text)
    items = TreeTransformer().transform(tree)

    return load(items)
