"""Python code generator for flexproto schemas."""

import logging
from collections.abc import Callable
from importlib import resources

from jinja2 import Environment, PackageLoader

from .types import (
    Blob,
    EnumDef,
    EnumRef,
    FieldType,
    FixedArray,
    FixedInt,
    SchemaDocument,
    String,
    StructDef,
    StructRef,
    TypeEnumDef,
    TypeEnumRef,
    VariableArray,
)

logger = logging.getLogger(__name__)

RUNTIME_FILES = [
    "__init__.py",
    "serialization.py",
]

env = Environment(
    loader=PackageLoader("flexproto.generator", "templates"),
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
    line_comment_prefix="%%",
    line_statement_prefix="%",
)

template = env.get_template("python.py.j2")

INDENT = "    "


def map_type(t: FieldType) -> str:
    """Map a field type to a Python type annotation."""
    if isinstance(t, FixedInt):
        return "int"
    if isinstance(t, String):
        return "str"
    if isinstance(t, Blob):
        return "bytes"
    if isinstance(t, (VariableArray, FixedArray)):
        return f"list[{map_type(t.element)}]"
    if isinstance(t, (StructRef, EnumRef, TypeEnumRef)):
        return t.name
    raise ValueError(f"Unknown field type {t!r}")


def _enum_base(t: EnumRef | TypeEnumRef, schema: SchemaDocument) -> FixedInt:
    decl = schema.enum(t.name) if isinstance(t, EnumRef) else schema.type_enum(t.name)
    if decl is None:
        raise ValueError(f"Unknown enum {t.name}")
    return decl.base


def codec(
    t: FieldType, schema: SchemaDocument, depth: int = 0
) -> tuple[Callable[[str], str], str]:
    """Return an encoder (value expression -> statement) and a decoder expression.

    Encoders write to ``_out`` and decoders read from ``_buf``; array elements
    are handled by lambdas taking the same names.
    """
    if isinstance(t, FixedInt):
        args = f"{t.width}, {t.signed}"
        return (
            lambda v: f"_flex.encode_integer(_out, {v}, {args})",
            f"_flex.decode_integer(_buf, {args})",
        )

    if isinstance(t, String):
        return lambda v: f"_flex.encode_string(_out, {v})", "_flex.decode_string(_buf)"

    if isinstance(t, Blob):
        return lambda v: f"_flex.encode_bytes(_out, {v})", "_flex.decode_bytes(_buf)"

    if isinstance(t, VariableArray):
        item = f"_v{depth}"
        encode_item, decode_item = codec(t.element, schema, depth + 1)
        return (
            lambda v: f"_flex.encode_variable_array(_out, {v}, "
            f"lambda _out, {item}: {encode_item(item)})",
            f"_flex.decode_variable_array(_buf, lambda _buf: {decode_item})",
        )

    if isinstance(t, FixedArray):
        item = f"_v{depth}"
        encode_item, decode_item = codec(t.element, schema, depth + 1)
        return (
            lambda v: f"_flex.encode_fixed_array(_out, {v}, {t.count}, "
            f"lambda _out, {item}: {encode_item(item)})",
            f"_flex.decode_fixed_array(_buf, {t.count}, lambda _buf: {decode_item})",
        )

    if isinstance(t, StructRef):
        return lambda v: f"{v}.encode(_out)", f"{t.name}.decode(_buf)"

    if isinstance(t, (EnumRef, TypeEnumRef)):
        base = _enum_base(t, schema)
        args = f"{base.width}, {base.signed}"
        return (
            lambda v: f"_flex.encode_enum(_out, {v}, {args})",
            f"_flex.decode_enum(_buf, {t.name}, {args})",
        )

    raise ValueError(f"Unknown field type {t!r}")


def emit_enum(enum: EnumDef) -> str:
    lines = [f"class {enum.name}(IntEnum):"]
    lines += [f"{INDENT}{name} = {value}" for name, value in enum.resolved()]
    if not enum.values:
        lines.append(f"{INDENT}pass")
    return "\n".join(lines)


def emit_type_enum(type_enum: TypeEnumDef) -> str:
    """Emit a type-tag enum with a lookup from struct/enum instances to tags."""
    lines = [f"class {type_enum.name}(IntEnum):"]
    lines += [f"{INDENT}{member.name} = {tag}" for member, tag in type_enum.tags()]
    if type_enum.members:
        lines.append("")
    lines += [
        f"{INDENT}@classmethod",
        f"{INDENT}def of(cls, value: object) -> {type_enum.name}:",
        f'{INDENT * 2}"""Return the tag of the member type ``value`` is an instance of."""',
        f"{INDENT * 2}return cls[type(value).__name__]",
    ]
    return "\n".join(lines)


def emit_struct(struct: StructDef, schema: SchemaDocument) -> str:
    """Emit the dataclass layout together with its encode/decode methods."""
    lines = ["@dataclass", f"class {struct.name}(_flex.Struct):"]
    for f in struct.fields:
        lines.append(f'{INDENT}{f.name}: {map_type(f.type)} = _flex.flex_field("{f.token}")')
    if struct.fields:
        lines.append("")

    codecs = [(f, codec(f.type, schema)) for f in struct.fields]

    lines.append(f"{INDENT}def encode(self, _out: _flex.OutputBuffer) -> None:")
    for f, (encode, _decode) in codecs:
        lines.append(f"{INDENT * 2}{encode(f'self.{f.name}')}")
    if not struct.fields:
        lines.append(f"{INDENT * 2}pass")

    lines.append("")
    lines.append(f"{INDENT}@classmethod")
    lines.append(f"{INDENT}def decode(cls, _buf: _flex.InputBuffer) -> Self:")
    if not struct.fields:
        lines.append(f"{INDENT * 2}return cls()")
        return "\n".join(lines)

    # Keyword arguments evaluate left to right, in wire order; no locals are bound
    lines.append(f"{INDENT * 2}return cls(")
    for f, (_encode, decode) in codecs:
        lines.append(f"{INDENT * 3}{f.name}={decode},")
    lines.append(f"{INDENT * 2})")
    return "\n".join(lines)


def render(
    schema: SchemaDocument,
    runtime_import: str = "flexproto_runtime",
    external_module: str | None = None,
) -> str:
    """Render a schema to a Python module.

    Args:
        schema: The loaded schema
        runtime_import: Package the runtime's serialization module is imported from
        external_module: Module providing the structs declared external by name only
    """
    logger.debug(f"Rendering Python module with runtime {runtime_import}")
    return template.render(
        schema=schema,
        runtime_import=runtime_import,
        external_module=external_module,
        opaque_structs=schema.opaque_structs,
        emit_enum=emit_enum,
        emit_type_enum=emit_type_enum,
        emit_struct=lambda s: emit_struct(s, schema),
    )


def runtime() -> dict[str, str]:
    """Return the Python runtime files as a dict of filename -> content."""
    result: dict[str, str] = {}
    for filename in RUNTIME_FILES:
        content = resources.files("flexproto.proto").joinpath(filename).read_text()
        result[filename] = content
    return result
