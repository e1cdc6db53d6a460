"""Errors raised while loading a schema."""


class SchemaError(RuntimeError):
    """Base class for fatal schema errors.

    Carries the owning declaration, the field (if any) and the offending
    token so a diagnostic can point at the exact spot in the schema.
    """

    def __init__(
        self,
        message: str,
        *,
        struct: str | None = None,
        field: str | None = None,
        token: str | None = None,
    ) -> None:
        self.struct = struct
        self.field = field
        self.token = token
        self.reason = message
        super().__init__(self._format())

    def _format(self) -> str:
        location = ".".join(part for part in (self.struct, self.field) if part)
        text = f"{location}: {self.reason}" if location else self.reason
        if self.token is not None:
            text += f" '{self.token}'"
        return text


class UnresolvedType(SchemaError):
    """Raised when a type token matches none of the known kinds."""


class MalformedFixedArraySize(SchemaError):
    """Raised when a fixarray token has a size that is not a positive integer."""


class DuplicateName(SchemaError):
    """Raised when two declarations share a name within one scope."""


class EmbeddingCycle(SchemaError):
    """Raised when structs embed each other by value."""


class ZeroWidthArray(SchemaError):
    """Raised when a variable array holds elements that encode to no bytes."""
