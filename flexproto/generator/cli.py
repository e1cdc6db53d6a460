"""Command-line interface for flexproto code generation."""

from __future__ import annotations

import contextlib
import json
import logging
import os
import sys
import tempfile
from pathlib import Path

import click
from lark.exceptions import LarkError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from flexproto import __version__
from flexproto.generator import cpp, parse, python
from flexproto.generator.errors import SchemaError
from flexproto.generator.sizes import SchemaSizeInfo, calculate_sizes
from flexproto.generator.types import SchemaDocument

logger = logging.getLogger(__name__)

# Suffix appended to the schema file name, dots replaced: demo.fp -> demo_fp.h
OUTPUT_SUFFIXES = {
    "cpp": ".h",
    "python": ".py",
}


def _configure_logging(verbose: bool) -> None:
    package_logger = logging.getLogger("flexproto")
    package_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)
    if not any(isinstance(h, RichHandler) for h in package_logger.handlers):
        package_logger.addHandler(
            RichHandler(console=Console(stderr=True), show_path=False, show_time=False)
        )


def output_name(schema_file: str, language: str) -> str:
    """Derive the output file name from the schema file name."""
    path = Path(schema_file)
    return str(path.with_name(path.name.replace(".", "_") + OUTPUT_SUFFIXES[language]))


def commit(path: str, text: str) -> None:
    """Write ``text`` to ``path`` in one step, never leaving a partial file."""
    directory = os.path.dirname(os.path.abspath(path))
    fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".flexproto-", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
        os.replace(tmp_path, path)
    except BaseException:
        with contextlib.suppress(FileNotFoundError):
            os.unlink(tmp_path)
        raise


def _load(schema_file: str) -> SchemaDocument:
    """Load a schema file, exiting with a diagnostic on schema errors."""
    with open(schema_file, encoding="utf-8") as f:
        text = f.read()

    try:
        return parse(text)
    except (SchemaError, LarkError) as exc:
        Console(stderr=True).print(
            f"{schema_file}: {exc}", style="bold red", markup=False, soft_wrap=True
        )
        sys.exit(1)


@click.group()
@click.version_option(__version__, prog_name="flexproto")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Flexproto schema code generator."""
    _configure_logging(verbose)


@cli.command()
@click.argument("schema_file", required=False)
@click.option("--language", "-l", default="cpp", show_default=True, help="Target language (cpp, python)")
@click.option("--output", "-o", "output_file", default=None, help="Output file (derived from SCHEMA_FILE by default)")
@click.option(
    "--runtime-import",
    "runtime_import",
    is_flag=False,
    flag_value="flexproto.proto",
    default=None,
    help="Import path for the Python runtime. No value=flexproto.proto, omit=flexproto_runtime",
)
@click.option(
    "--external-module",
    default=None,
    help="Python module providing structs declared external by name only",
)
@click.pass_context
def gen(
    ctx: click.Context,
    schema_file: str | None,
    language: str,
    output_file: str | None,
    runtime_import: str | None,
    external_module: str | None,
) -> None:
    """Generate code from a schema file."""
    if schema_file is None:
        click.echo(ctx.get_help())
        ctx.exit(0)

    if language not in OUTPUT_SUFFIXES:
        print(f"Unknown language: {language}")
        sys.exit(1)

    if output_file is None:
        output_file = output_name(schema_file, language)

    schema = _load(schema_file)

    if language == "cpp":
        generated_file = cpp.render(schema, output_name=os.path.basename(output_file))
    else:
        # Default to "flexproto_runtime", the folder written by `runtime -l python`
        import_path = runtime_import if runtime_import is not None else "flexproto_runtime"
        generated_file = python.render(
            schema, runtime_import=import_path, external_module=external_module
        )

    commit(output_file, generated_file)
    logger.debug(f"Wrote {output_file}")


@cli.command()
@click.option("--language", "-l", required=True, help="Target language (cpp, python)")
@click.option("--output", "-o", "output_path", default=None, help="Output file (cpp) or directory (python)")
@click.option("--name", default="flexproto_runtime", help="Runtime folder name (python only)")
def runtime(language: str, output_path: str | None, name: str) -> None:
    """Generate runtime support code."""
    if language == "cpp":
        commit(output_path or cpp.RUNTIME_HEADER, cpp.runtime())
    elif language == "python":
        runtime_dir = Path(output_path or ".") / name
        runtime_dir.mkdir(parents=True, exist_ok=True)
        for filename, content in python.runtime().items():
            commit(str(runtime_dir / filename), content)
        print(f"Generated Python runtime in {runtime_dir}")
    else:
        print(f"Unknown language: {language}")
        sys.exit(1)


@cli.command()
@click.argument("schema_file")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def info(schema_file: str, output_json: bool) -> None:
    """Display schema information and encoded size calculations."""
    schema = _load(schema_file)
    size_info = calculate_sizes(schema)

    if output_json:
        _output_json(size_info, schema)
    else:
        _output_plain(size_info, schema)


def _format_size(size: int | None) -> str:
    """Format a size value, handling None for unbounded."""
    return "unbounded" if size is None else str(size)


def _output_json(size_info: SchemaSizeInfo, schema: SchemaDocument) -> None:
    """Output schema info as JSON."""
    data: dict = {
        "schema": schema.to_dict(),
        "structs": {},
    }

    for name, struct_info in size_info.structs.items():
        data["structs"][name] = {
            "min_size": struct_info.size.min_size,
            "max_size": struct_info.size.max_size,
            "kind": struct_info.size.kind.value,
        }

    print(json.dumps(data, indent=2))


def _output_plain(size_info: SchemaSizeInfo, schema: SchemaDocument) -> None:
    """Output schema info using rich text formatting."""
    console = Console()

    if schema.namespace or schema.includes or schema.external_structs:
        console.print("[bold cyan]Schema[/bold cyan]")
        schema_table = Table(show_header=False, box=None, padding=(0, 2, 0, 2))
        schema_table.add_column("Label", style="dim")
        schema_table.add_column("Value", style="white")
        schema_table.add_row("Namespace", schema.namespace or "(global)")
        schema_table.add_row("Includes", ", ".join(schema.includes) or "none")
        schema_table.add_row("External", ", ".join(schema.external_structs) or "none")
        console.print(schema_table)
        console.print()

    if schema.enums or schema.type_enums:
        console.print("[bold cyan]Enums[/bold cyan]")
        enum_table = Table(show_header=True, box=None, padding=(0, 2, 0, 0))
        enum_table.add_column("Name", style="white")
        enum_table.add_column("Base", style="dim")
        enum_table.add_column("Values", style="green")

        for enum in schema.enums:
            values = ", ".join(f"{name}={value}" for name, value in enum.resolved())
            enum_table.add_row(enum.name, enum.base.name, values)
        for type_enum in schema.type_enums:
            tags = ", ".join(f"{member.name}={tag}" for member, tag in type_enum.tags())
            enum_table.add_row(type_enum.name, f"{type_enum.base.name} (types)", tags)

        console.print(enum_table)
        console.print()

    console.print("[bold cyan]Structs[/bold cyan]")
    struct_table = Table(show_header=True, box=None, padding=(0, 2, 0, 0))
    struct_table.add_column("Name", style="white")
    struct_table.add_column("Size", style="yellow", justify="right")
    struct_table.add_column("Kind", style="dim")
    struct_table.add_column("External", style="green")

    for name, struct_info in size_info.structs.items():
        min_size = struct_info.size.min_size
        max_size = struct_info.size.max_size

        if min_size == max_size:
            size_str = f"{min_size} bytes"
        else:
            size_str = f"{min_size}-{_format_size(max_size)} bytes"

        struct = schema.struct(name)
        external = "yes" if struct is not None and struct.is_external else ""
        struct_table.add_row(name, size_str, struct_info.size.kind.value, external)

    console.print(struct_table)


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
