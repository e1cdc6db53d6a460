"""Tests for the C++ generator."""

import shutil
import subprocess

import pytest

from flexproto.generator import parse
from flexproto.generator.cpp import (
    codec,
    emit_decoder,
    emit_encoder,
    header_guard,
    layout_order,
    map_type,
    render,
    runtime,
)
from flexproto.generator.types import (
    Blob,
    EnumRef,
    FixedArray,
    FixedInt,
    String,
    StructRef,
    VariableArray,
)

DEMO_SCHEMA = """
namespace demo::net
include "common/header.h"
external struct Header
external struct Stamp { sec: uint32 }

enum Color : uint8 { Red  Green = 5  Blue }
typeenum TagEnum { Request Response }

struct Request { id: uint32  color: Color }
struct Response { id: uint32  body: blob }
struct Point { x: int32  y: int32 }
"""


def describe_map_type():
    def maps_scalars(expect):
        expect(map_type(FixedInt(8, False))) == "uint8_t"
        expect(map_type(FixedInt(64, True))) == "int64_t"
        expect(map_type(String())) == "std::string"
        expect(map_type(Blob())) == "std::vector<uint8_t>"

    def maps_containers(expect):
        expect(map_type(VariableArray(String()))) == "std::vector<std::string>"
        expect(map_type(FixedArray(FixedInt(16, True), 4))) == "std::array<int16_t, 4>"
        expect(map_type(VariableArray(FixedArray(StructRef("Point"), 2)))) == (
            "std::vector<std::array<Point, 2>>"
        )

    def maps_references_by_name(expect):
        expect(map_type(StructRef("Point"))) == "Point"
        expect(map_type(EnumRef("Color"))) == "Color"


def describe_codec():
    def pairs_integer_statements(expect):
        encode, decode = codec(FixedInt(16, False), "value.count")
        expect(encode) == "flexproto::encode_integer<uint16_t>(data, end_data, value.count);"
        expect(decode) == "flexproto::decode_integer<uint16_t>(data, end_data, value.count);"

    def uses_enum_primitives_for_enums(expect):
        encode, decode = codec(EnumRef("Color"), "value.color")
        expect(encode) == "flexproto::encode_enum(data, end_data, value.color);"
        expect(decode) == "flexproto::decode_enum(data, end_data, value.color);"

    def recurses_into_array_elements(expect):
        encode, decode = codec(VariableArray(StructRef("A")), "value.items")
        expect(encode) == (
            "flexproto::encode_variable_array(data, end_data, value.items, "
            "[](uint8_t *& data, uint8_t * end_data, const auto & item0) "
            "{ encode(data, end_data, item0); });"
        )
        expect(decode) == (
            "flexproto::decode_variable_array(data, end_data, value.items, "
            "[](const uint8_t *& data, const uint8_t * end_data, auto & item0) "
            "{ decode(data, end_data, item0); });"
        )

    def names_lambda_parameters_by_depth(expect):
        encode, _ = codec(FixedArray(VariableArray(String()), 3), "value.grid")
        expect("const auto & item0" in encode) == True
        expect("const auto & item1" in encode) == True
        expect("flexproto::encode_string(data, end_data, item1);" in encode) == True


def describe_struct_codecs():
    def emits_encoder_in_field_order(expect):
        schema = parse("struct Point { x: int32  y: int32 }")
        expect(emit_encoder(schema.structs[0])) == "\n".join(
            [
                "inline auto encode(uint8_t *& data, uint8_t * end_data, const Point & value) -> void",
                "{",
                "    flexproto::encode_integer<int32_t>(data, end_data, value.x);",
                "    flexproto::encode_integer<int32_t>(data, end_data, value.y);",
                "}",
            ]
        )

    def emits_decoder_mirroring_encoder(expect):
        schema = parse("struct Msg { name: string  tags: array_uint8  color: Color }\nenum Color { A }")
        encoder = emit_encoder(schema.structs[0]).splitlines()[2:-1]
        decoder = emit_decoder(schema.structs[0]).splitlines()[2:-1]
        expect(len(encoder)) == len(decoder)
        for enc, dec in zip(encoder, decoder):
            expect(enc.replace("encode", "decode").replace("const auto", "auto")) == (
                dec.replace("const uint8_t", "uint8_t")
            )

    def handles_empty_struct(expect):
        schema = parse("struct Empty {}")
        expect(emit_encoder(schema.structs[0]).splitlines()[1:]) == ["{", "}"]


def describe_layout_order():
    def keeps_declaration_order(expect):
        schema = parse("struct B { x: int8 }\nstruct A { y: int8 }")
        expect([s.name for s in layout_order(schema)]) == ["B", "A"]

    def places_embedded_structs_first(expect):
        schema = parse(
            """
            struct A { b: B }
            struct B { items: array_A }
        """
        )
        expect([s.name for s in layout_order(schema)]) == ["B", "A"]

    def follows_fixed_arrays(expect):
        schema = parse(
            """
            struct Line { points: fixarray_2_Point }
            struct Point { x: int32 }
        """
        )
        expect([s.name for s in layout_order(schema)]) == ["Point", "Line"]


def describe_render():
    def derives_header_guard(expect):
        expect(header_guard("demo_fp.h")) == "DEMO_FP_H"
        expect(header_guard("out/my-schema.v2.h")) == "MY_SCHEMA_V2_H"

    def assembles_sections_in_order(expect):
        header = render(parse(DEMO_SCHEMA), output_name="demo_fp.h")
        positions = [
            header.index("#ifndef DEMO_FP_H"),
            header.index('#include "flexproto.h"'),
            header.index('#include "common/header.h"'),
            header.index("namespace demo::net {"),
            header.index("struct Request;"),
            header.index("enum class Color : uint8_t {"),
            header.index("enum class TagEnum : uint32_t {"),
            header.index("struct Request {"),
            header.index("const Request & value) -> void;"),
            header.index("const Request & value) -> void\n{"),
            header.index("} // namespace demo::net"),
            header.index("#endif // DEMO_FP_H"),
        ]
        expect(positions) == sorted(positions)

    def writes_enum_values_explicitly(expect):
        header = render(parse(DEMO_SCHEMA))
        expect("    Red = 0,\n    Green = 5,\n    Blue = 6,\n" in header) == True

    def emits_type_tags(expect):
        header = render(parse(DEMO_SCHEMA))
        expect("    Request = 0,\n    Response = 1,\n" in header) == True
        expect("template<typename T> struct TagEnum_tag;" in header) == True
        expect(
            "template<> struct TagEnum_tag<Response>"
            " : std::integral_constant<TagEnum, TagEnum::Response> {};" in header
        ) == True

    def emits_codec_but_not_layout_for_external_body(expect):
        header = render(parse(DEMO_SCHEMA))
        expect("struct Stamp {" in header) == False
        expect("struct Stamp;" in header) == False
        expect("const Stamp & value) -> void;" in header) == True
        expect("flexproto::encode_integer<uint32_t>(data, end_data, value.sec);" in header) == True

    def emits_nothing_for_name_only_external(expect):
        header = render(parse(DEMO_SCHEMA))
        expect("Header" in header.replace("common/header.h", "")) == False

    def forward_declares_mutually_referencing_structs(expect):
        header = render(
            parse(
                """
                struct A { b: B }
                struct B { items: array_A }
            """
            )
        )
        expect(header.index("struct A;") < header.index("struct B {")) == True
        expect(header.index("struct B;") < header.index("struct B {")) == True
        expect(header.index("struct B {") < header.index("struct A {")) == True
        expect("    std::vector<A> items;" in header) == True
        expect("    B b;" in header) == True

    def omits_namespace_when_not_declared(expect):
        header = render(parse("struct Point { x: int32 }"), output_name="point.h")
        expect("namespace" in header) == False
        expect(header.rstrip().endswith("#endif // POINT_H")) == True


def describe_runtime():
    def ships_bounds_checked_primitives(expect):
        header = runtime()
        expect("namespace flexproto {" in header) == True
        for name in [
            "encode_integer",
            "decode_integer",
            "encode_enum",
            "decode_enum",
            "encode_string",
            "decode_blob",
            "encode_variable_array",
            "decode_fixed_array",
            "struct buffer_underrun",
            "max_encoded_size",
        ]:
            expect(name in header) == True


CXX = shutil.which("g++") or shutil.which("clang++")

ROUND_TRIP_SCHEMA = """
namespace demo::net
include "stamp.h"
external struct Stamp { sec: uint32 }

enum Color : uint8 { Red  Green = 5  Blue }
enum Level : int16 { Low = -300  High = 300 }
typeenum TagEnum { Request Response }
typeenum Scalar : uint8 { int32 blob string }

struct Request { id: uint32  color: Color  stamp: Stamp }
struct Response { id: uint32  body: blob }
struct Point { x: int32  y: int32 }
struct Shape {
    name: string
    level: Level
    corners: fixarray_3_Point
    tags: array_string
    grid: array_fixarray_2_uint8
    kind: TagEnum
}
struct Tree { value: int64  children: array_Tree }
struct A { b: B }
struct B { items: array_A }
"""

STAMP_HEADER = """
#pragma once
#include <cstdint>
struct Stamp { uint32_t sec; };
"""

ROUND_TRIP_MAIN = r"""
#include "demo_fp.h"

using namespace demo::net;

static_assert(TagEnum_tag<Response>::value == TagEnum::Response, "tag of Response");
static_assert(Scalar_tag<std::vector<uint8_t>>::value == Scalar::blob, "tag of blob");

int main()
{
    uint8_t buffer[1024];

    Point point{-5, 1000000};
    uint8_t * out = buffer;
    encode(out, buffer + sizeof(buffer), point);
    const uint8_t expected[] = {0x09, 0x80, 0x89, 0x7a};
    if(out - buffer != 4 || std::memcmp(buffer, expected, sizeof(expected)) != 0)
        return 1;

    Shape shape{};
    shape.name = "triangle";
    shape.level = Level::Low;
    shape.corners[0] = Point{0, 0};
    shape.corners[1] = Point{-1, 1};
    shape.corners[2] = Point{2147483647, -2147483647 - 1};
    shape.tags.push_back("a");
    shape.tags.push_back("");
    shape.tags.push_back(std::string(200, 'c'));
    shape.grid.push_back({1, 2});
    shape.grid.push_back({255, 0});
    shape.kind = TagEnum::Response;

    out = buffer;
    encode(out, buffer + sizeof(buffer), shape);

    Shape decoded{};
    const uint8_t * in = buffer;
    decode(in, out, decoded);
    if(in != out)
        return 2;
    if(decoded.name != shape.name || decoded.level != Level::Low || decoded.kind != TagEnum::Response)
        return 3;
    if(decoded.corners[2].x != 2147483647 || decoded.corners[2].y != -2147483647 - 1)
        return 4;
    if(decoded.tags != shape.tags || decoded.grid != shape.grid)
        return 5;

    Request request{7, Color::Blue, Stamp{42}};
    out = buffer;
    encode(out, buffer + sizeof(buffer), request);
    const uint8_t request_bytes[] = {0x07, 0x06, 0x2a};
    if(out - buffer != 3 || std::memcmp(buffer, request_bytes, sizeof(request_bytes)) != 0)
        return 6;

    const uint8_t truncated[] = {0x09, 0x80};
    const uint8_t * cursor = truncated;
    try
    {
        decode(cursor, truncated + sizeof(truncated), point);
        return 7;
    }
    catch(const flexproto::buffer_underrun &)
    {
    }

    uint8_t small[2];
    out = small;
    try
    {
        encode(out, small + sizeof(small), Point{-5, 1000000});
        return 8;
    }
    catch(const flexproto::buffer_overflow &)
    {
    }

    return 0;
}
"""


def describe_compiled_header():
    @pytest.mark.skipif(CXX is None, reason="no C++ compiler available")
    def round_trips_with_runtime(expect, tmp_path):
        (tmp_path / "flexproto.h").write_text(runtime())
        (tmp_path / "stamp.h").write_text(STAMP_HEADER)
        (tmp_path / "demo_fp.h").write_text(
            render(parse(ROUND_TRIP_SCHEMA), output_name="demo_fp.h")
        )
        (tmp_path / "main.cpp").write_text(ROUND_TRIP_MAIN)
        binary = tmp_path / "round_trip"

        build = subprocess.run(
            [CXX, "-std=c++17", "-Wall", "-o", str(binary), str(tmp_path / "main.cpp")],
            capture_output=True,
            text=True,
        )
        assert build.returncode == 0, build.stderr

        result = subprocess.run([str(binary)], capture_output=True, text=True)
        expect(result.returncode) == 0
