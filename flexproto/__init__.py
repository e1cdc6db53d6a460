"""Flexproto - Schema-driven code generator for the flex wire encoding."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("flexproto")
except PackageNotFoundError:
    __version__ = "(local)"
