"""Schema model: the typed description of tables, references and groups.

The model is produced by an external schema parser (see ``SchemaParser``)
and consumed read-only by the graph builder. Every class here is frozen:
changing a table's columns or a group's members means building a new
``Schema`` and running layout again.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from erd_layout.config import DEFAULT_NAMESPACE


def table_key(namespace: str, name: str) -> str:
    """Identity key of a table: ``namespace.name``."""
    return f"{namespace}.{name}"


@dataclass(frozen=True)
class Column:
    name: str
    type: str
    pk: bool = False
    unique: bool = False
    not_null: bool = False
    increment: bool = False
    default: str | None = None
    note: str | None = None

    @property
    def badges(self) -> list[str]:
        """Constraint badges shown after the column type."""
        flags = [(self.pk, "PK"), (self.unique, "UQ"), (self.not_null, "NN"), (self.increment, "AI")]
        return [badge for enabled, badge in flags if enabled]

    @property
    def row_length(self) -> int:
        """Character count of the column's row: name, type and badges."""
        length = len(self.name) + len(self.type) + 3
        if self.badges:
            length += len("  " + " ".join(self.badges))
        return length


@dataclass(frozen=True)
class Table:
    name: str
    columns: tuple[Column, ...] = ()
    namespace: str = DEFAULT_NAMESPACE
    note: str | None = None
    header_color: str | None = None

    @property
    def id(self) -> str:
        return table_key(self.namespace, self.name)

    def column(self, name: str) -> Column | None:
        for col in self.columns:
            if col.name == name:
                return col
        return None

    def column_index(self, name: str) -> int:
        """Row index of a column, or -1 when the table has no such column."""
        for i, col in enumerate(self.columns):
            if col.name == name:
                return i
        return -1


@dataclass(frozen=True)
class RefEndpoint:
    """One side of a reference.

    ``relation`` is the cardinality marker of this side (``"1"`` or ``"*"``).
    """

    table: str
    columns: tuple[str, ...]
    relation: str = "1"
    namespace: str = DEFAULT_NAMESPACE

    @property
    def table_id(self) -> str:
        return table_key(self.namespace, self.table)

    @property
    def anchor_column(self) -> str | None:
        """The column used as visual anchor (first column of a composite key)."""
        return self.columns[0] if self.columns else None


@dataclass(frozen=True)
class Reference:
    source: RefEndpoint
    target: RefEndpoint
    name: str = ""
    on_delete: str | None = None
    on_update: str | None = None

    @property
    def is_self_reference(self) -> bool:
        return self.source.table_id == self.target.table_id


@dataclass(frozen=True)
class EnumValue:
    name: str
    note: str | None = None


@dataclass(frozen=True)
class SchemaEnum:
    name: str
    values: tuple[EnumValue, ...] = ()
    namespace: str = DEFAULT_NAMESPACE


@dataclass(frozen=True)
class TableRef:
    """A group member: a (namespace, table name) pair."""

    name: str
    namespace: str = DEFAULT_NAMESPACE

    @property
    def table_id(self) -> str:
        return table_key(self.namespace, self.name)


@dataclass(frozen=True)
class Group:
    name: str
    members: tuple[TableRef, ...] = ()
    color: str | None = None
    note: str | None = None


@dataclass(frozen=True)
class Schema:
    tables: tuple[Table, ...] = ()
    references: tuple[Reference, ...] = ()
    enums: tuple[SchemaEnum, ...] = ()
    groups: tuple[Group, ...] = ()
    _by_id: dict[str, Table] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        # Frozen dataclass: populate the lookup cache in place. First table wins.
        for t in self.tables:
            self._by_id.setdefault(t.id, t)

    def table(self, table_id: str) -> Table | None:
        return self._by_id.get(table_id)


# ─── Parser Collaborator ──────────────────────────────────────────────────────


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class ParseDiagnostic:
    """A positioned parser message (1-based line and column)."""

    line: int
    column: int
    severity: Severity
    message: str


class SchemaParser(Protocol):
    """Turns schema source text into a ``Schema``.

    Implementations raise ``erd_layout.errors.SchemaParseError`` carrying the
    ``ParseDiagnostic`` list when the text is invalid.
    """

    def parse(self, text: str) -> Schema: ...
