"""Flexproto schema code generator."""

from .errors import *
from .parser import parse as parse
from .resolver import TypeResolver as TypeResolver
from .sizes import SizeCalculator as SizeCalculator
from .sizes import SizeInfo as SizeInfo
from .sizes import SizeKind as SizeKind
from .sizes import StructSizeInfo as StructSizeInfo
from .sizes import calculate_sizes as calculate_sizes
from .types import *
