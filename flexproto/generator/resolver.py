"""Classification of schema type tokens into field types."""

import logging
from collections.abc import Iterable

from .errors import MalformedFixedArraySize, UnresolvedType
from .types import (
    ARRAY_PREFIX,
    BASIC_TYPES,
    BLOB_TOKEN,
    FIXARRAY_PREFIX,
    STRING_TOKEN,
    Blob,
    EnumRef,
    FieldType,
    FixedArray,
    FixedInt,
    String,
    StructRef,
    TypeEnumRef,
    VariableArray,
)

logger = logging.getLogger(__name__)


class TypeResolver:
    """Resolve type tokens against the names declared in one schema.

    Matching is purely syntactic and the first rule that applies wins:
    basic integers, ``string``, ``blob``, ``array_T``, ``fixarray_N_T``,
    then declared type enums, enums and structs.
    """

    def __init__(
        self,
        structs: Iterable[str] = (),
        enums: Iterable[str] = (),
        type_enums: Iterable[str] = (),
    ):
        self.structs = frozenset(structs)
        self.enums = frozenset(enums)
        self.type_enums = frozenset(type_enums)

    def resolve(
        self, token: str, struct: str | None = None, field: str | None = None
    ) -> FieldType:
        """Resolve a field's type token.

        ``struct`` and ``field`` only serve to locate errors.
        """
        try:
            return self._resolve(token)
        except (UnresolvedType, MalformedFixedArraySize) as exc:
            detail = exc.reason
            if exc.token != token:
                detail = f"{detail} '{exc.token}' in"
            raise type(exc)(detail, struct=struct, field=field, token=token) from None

    def resolve_base(self, token: str, owner: str) -> FixedInt:
        """Resolve the underlying integer type of an enum."""
        if token not in BASIC_TYPES:
            raise UnresolvedType("base type must be a basic integer", struct=owner, token=token)
        return BASIC_TYPES[token]

    def _resolve(self, token: str) -> FieldType:
        if token in BASIC_TYPES:
            return BASIC_TYPES[token]

        if token == STRING_TOKEN:
            return String()

        if token == BLOB_TOKEN:
            return Blob()

        if token.startswith(ARRAY_PREFIX):
            return VariableArray(self._resolve(token[len(ARRAY_PREFIX) :]))

        if token.startswith(FIXARRAY_PREFIX):
            count, sep, element = token[len(FIXARRAY_PREFIX) :].partition("_")
            if not sep or not element:
                raise MalformedFixedArraySize("expected fixarray_<N>_<TYPE>, got", token=token)
            if not count.isdigit() or int(count) < 1:
                raise MalformedFixedArraySize(
                    "fixed array size must be a positive integer in", token=token
                )
            return FixedArray(self._resolve(element), int(count))

        if token in self.type_enums:
            return TypeEnumRef(token)

        if token in self.enums:
            return EnumRef(token)

        if token in self.structs:
            return StructRef(token)

        logger.debug(f"No rule matches type token {token!r}")
        raise UnresolvedType("unresolved type", token=token)
