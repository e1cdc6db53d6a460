"""C++ code generator for flexproto schemas."""

import logging
import os
import re

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
    embedded_structs,
)

logger = logging.getLogger(__name__)

env = Environment(
    loader=PackageLoader("flexproto.generator", "templates"),
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=True,
    line_comment_prefix="%%",
    line_statement_prefix="%",
)

template = env.get_template("cpp.h.j2")

RUNTIME_HEADER = "flexproto.h"

# Cursor parameters shared by every generated encoder and decoder
ENCODE_PARAMS = "uint8_t *& data, uint8_t * end_data"
DECODE_PARAMS = "const uint8_t *& data, const uint8_t * end_data"


def _map_int(t: FixedInt) -> str:
    return f"{'' if t.signed else 'u'}int{t.width}_t"


def map_type(t: FieldType) -> str:
    """Map a field type to the C++ type of its member."""
    if isinstance(t, FixedInt):
        return _map_int(t)
    if isinstance(t, String):
        return "std::string"
    if isinstance(t, Blob):
        return "std::vector<uint8_t>"
    if isinstance(t, VariableArray):
        return f"std::vector<{map_type(t.element)}>"
    if isinstance(t, FixedArray):
        return f"std::array<{map_type(t.element)}, {t.count}>"
    if isinstance(t, (StructRef, EnumRef, TypeEnumRef)):
        return t.name
    raise RuntimeError(f"Unknown field type {t!r}")


def codec(t: FieldType, target: str, depth: int = 0) -> tuple[str, str]:
    """Return the (encode, decode) statements for one value of type ``t``.

    Both statements come from the same branch so a field can never be
    written one way and read another. Array elements recurse through a
    generic lambda whose parameter is named after the nesting depth.
    """
    if isinstance(t, FixedInt):
        int_type = _map_int(t)
        return (
            f"flexproto::encode_integer<{int_type}>(data, end_data, {target});",
            f"flexproto::decode_integer<{int_type}>(data, end_data, {target});",
        )

    if isinstance(t, String):
        return (
            f"flexproto::encode_string(data, end_data, {target});",
            f"flexproto::decode_string(data, end_data, {target});",
        )

    if isinstance(t, Blob):
        return (
            f"flexproto::encode_blob(data, end_data, {target});",
            f"flexproto::decode_blob(data, end_data, {target});",
        )

    if isinstance(t, (VariableArray, FixedArray)):
        kind = "variable" if isinstance(t, VariableArray) else "fixed"
        item = f"item{depth}"
        encode_item, decode_item = codec(t.element, item, depth + 1)
        return (
            f"flexproto::encode_{kind}_array(data, end_data, {target}, "
            f"[]({ENCODE_PARAMS}, const auto & {item}) {{ {encode_item} }});",
            f"flexproto::decode_{kind}_array(data, end_data, {target}, "
            f"[]({DECODE_PARAMS}, auto & {item}) {{ {decode_item} }});",
        )

    if isinstance(t, StructRef):
        return (
            f"encode(data, end_data, {target});",
            f"decode(data, end_data, {target});",
        )

    if isinstance(t, (EnumRef, TypeEnumRef)):
        return (
            f"flexproto::encode_enum(data, end_data, {target});",
            f"flexproto::decode_enum(data, end_data, {target});",
        )

    raise RuntimeError(f"Unknown field type {t!r}")


def emit_forward_declarations(schema: SchemaDocument) -> str:
    return "\n".join(f"struct {s.name};" for s in schema.generated_structs)


def emit_enum(enum: EnumDef) -> str:
    lines = [f"enum class {enum.name} : {_map_int(enum.base)} {{"]
    lines += [f"    {name} = {value}," for name, value in enum.resolved()]
    lines.append("};")
    return "\n".join(lines)


def emit_type_enum(type_enum: TypeEnumDef) -> str:
    """Emit the tag enumeration and the type -> tag trait."""
    name = type_enum.name
    lines = [f"enum class {name} : {_map_int(type_enum.base)} {{"]
    lines += [f"    {member.name} = {tag}," for member, tag in type_enum.tags()]
    lines.append("};")
    lines.append("")
    lines.append(f"template<typename T> struct {name}_tag;")
    for member, _tag in type_enum.tags():
        lines.append(
            f"template<> struct {name}_tag<{map_type(member.type)}>"
            f" : std::integral_constant<{name}, {name}::{member.name}> {{}};"
        )
    return "\n".join(lines)


def emit_struct_layout(struct: StructDef) -> str:
    lines = [f"struct {struct.name} {{"]
    lines += [f"    {map_type(f.type)} {f.name};" for f in struct.fields]
    lines.append("};")
    return "\n".join(lines)


def _encoder_signature(struct: StructDef) -> str:
    return f"inline auto encode({ENCODE_PARAMS}, const {struct.name} & value) -> void"


def _decoder_signature(struct: StructDef) -> str:
    return f"inline auto decode({DECODE_PARAMS}, {struct.name} & value) -> void"


def emit_codec_prototypes(struct: StructDef) -> str:
    return f"{_encoder_signature(struct)};\n{_decoder_signature(struct)};"


def emit_encoder(struct: StructDef) -> str:
    lines = [_encoder_signature(struct), "{"]
    lines += [f"    {codec(f.type, f'value.{f.name}')[0]}" for f in struct.fields]
    lines.append("}")
    return "\n".join(lines)


def emit_decoder(struct: StructDef) -> str:
    lines = [_decoder_signature(struct), "{"]
    lines += [f"    {codec(f.type, f'value.{f.name}')[1]}" for f in struct.fields]
    lines.append("}")
    return "\n".join(lines)


def layout_order(schema: SchemaDocument) -> list[StructDef]:
    """Order layouts so that structs held by value come before their holders.

    Otherwise declaration order is kept. Embedding cycles are rejected when
    the schema is loaded, so this always terminates.
    """
    generated = {s.name: s for s in schema.generated_structs}
    ordered: list[StructDef] = []
    placed: set[str] = set()

    def place(struct: StructDef) -> None:
        if struct.name in placed:
            return
        placed.add(struct.name)
        for f in struct.fields:
            for target in embedded_structs(f.type):
                if target in generated:
                    place(generated[target])
        ordered.append(struct)

    for struct in schema.generated_structs:
        place(struct)
    return ordered


def header_guard(output_name: str) -> str:
    """Derive the include guard macro from the output file name."""
    return re.sub(r"\W", "_", os.path.basename(output_name)).upper()


def render(schema: SchemaDocument, *, output_name: str = "flexproto_schema.h") -> str:
    """Render a schema to a C++ header.

    Args:
        schema: The loaded schema
        output_name: Name of the header being generated, used for the guard
    """
    logger.debug(f"Rendering C++ header {output_name}")
    return template.render(
        schema=schema,
        guard=header_guard(output_name),
        runtime_header=RUNTIME_HEADER,
        forward_declarations=emit_forward_declarations(schema),
        layouts=layout_order(schema),
        emit_enum=emit_enum,
        emit_type_enum=emit_type_enum,
        emit_struct_layout=emit_struct_layout,
        emit_codec_prototypes=emit_codec_prototypes,
        emit_encoder=emit_encoder,
        emit_decoder=emit_decoder,
    )


def runtime() -> str:
    """Return the C++ runtime header."""
    runtimes_dir = os.path.join(os.path.dirname(__file__), "runtimes")
    with open(os.path.join(runtimes_dir, RUNTIME_HEADER), encoding="utf-8") as f:
        return f.read()
