"""Entity model of a catalog: columns, column sets, tables and keys.

Every entity exists in two forms. During a build, ``ColumnSetBuilder``,
``ForeignKeyBuilder`` and ``TableBuilder`` accumulate columns by position
and record the derived flags. Finalization turns them into the immutable
``ColumnSet`` family (``Table``, ``PrimaryKey``, ``ForeignKey``), which is
what a ``Catalog`` exposes.
"""

from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import (
    Dict, FrozenSet, Iterable, Iterator, List, Mapping, NamedTuple, Optional, Set, Tuple, Union
)

from .constants import DEFAULT_CATALOG_SEPARATOR
from .datatypes import SqlType


@dataclass(frozen=True, eq=False)
class Column:
    """A column of a table.

    Columns compare by identity: two tables may well have columns with the
    same name.
    """
    table_name: str
    name: str
    type_code: SqlType
    uri: str
    sql_name: str
    can_be_null: bool = True
    unique: bool = False


ColumnKey = Union[str, Column]


@dataclass(frozen=True, eq=False, repr=False)
class ColumnSet:
    """An ordered, name-keyed, immutable collection of columns.

    Positions are 1-based. Equality only looks at column names: two column
    sets are equal when each is a subset of the other.
    """
    columns: Tuple[Column, ...]

    def __post_init__(self):
        object.__setattr__(self, "columns", tuple(self.columns))
        object.__setattr__(self, "_by_name", {c.name: c for c in self.columns})

    def __len__(self) -> int:
        return len(self.columns)

    def __iter__(self) -> Iterator[Column]:
        return iter(self.columns)

    def __contains__(self, item: ColumnKey) -> bool:
        return self.contains(item)

    def __eq__(self, other):
        if not isinstance(other, ColumnSet):
            return NotImplemented
        return self.subset_of(other) and other.subset_of(self)

    def __hash__(self):
        return hash(self.names())

    def __repr__(self):
        return f"{type(self).__name__}({', '.join(c.name for c in self.columns)})"

    def contains(self, item: ColumnKey) -> bool:
        """Return whether this set holds a column of that name, or that very column."""
        if isinstance(item, Column):
            return self._by_name.get(item.name) is item
        return item in self._by_name

    def column_at(self, position: int) -> Column:
        """Return the column at a 1-based position."""
        if position < 1:
            raise IndexError(f"Column positions start at 1, got {position}")
        return self.columns[position - 1]

    def column(self, name: str) -> Optional[Column]:
        return self._by_name.get(name)

    def names(self) -> FrozenSet[str]:
        return frozenset(self._by_name)

    def subset_of(self, other: "ColumnSet") -> bool:
        """Column-name inclusion; tables and types are not compared."""
        return self.names() <= other.names()

    def owning_table(self) -> Optional[str]:
        """Return the table the columns belong to.

        All columns are assumed to belong to the same table; this is not
        checked.
        """
        return self.columns[0].table_name if self.columns else None


def column_set(columns: Iterable[Column]) -> ColumnSet:
    """Return a plain column set holding ``columns`` in order."""
    return ColumnSet(tuple(columns))


@dataclass(frozen=True, eq=False, repr=False)
class PrimaryKey(ColumnSet):
    name: Optional[str] = None


@dataclass(frozen=True, eq=False, repr=False)
class ForeignKey(ColumnSet):
    """A foreign key: columns of one table mapped one to one onto columns of
    another (the foreign table).

    The foreign columns are references; they belong to the foreign table.
    """
    name: str = ""
    table_name: str = ""
    foreign_table_name: str = ""
    uri: str = ""
    sql_name: str = ""
    mapping: Mapping[Column, Column] = field(default_factory=dict)
    primary_key: Optional[PrimaryKey] = None
    unique: bool = False

    def __post_init__(self):
        super().__post_init__()
        object.__setattr__(self, "mapping", MappingProxyType(dict(self.mapping)))

    def __repr__(self):
        return f"ForeignKey({self.table_name}.{self.name} -> {self.foreign_table_name})"

    def owning_table(self) -> str:
        return self.table_name

    def mapped_column(self, key: ColumnKey) -> Optional[Column]:
        """Return the foreign column mapped to a local column (or column name)."""
        column = key if isinstance(key, Column) else self.column(key)
        return self.mapping.get(column) if column is not None else None

    def foreign_column_set(self) -> ColumnSet:
        """Return the referenced columns of the foreign table, in key order."""
        return column_set(self.mapping[c] for c in self.columns)

    def can_be_null(self) -> bool:
        """Whether some column of the key allows NULL.

        Referential integrity does not apply to a row where part of the key
        is NULL.
        """
        return any(c.can_be_null for c in self.columns)

    def subsumes_primary_key(self) -> bool:
        """Whether the key is mandatory and covers the table's primary key.

        When it does, every row of the table has a counterpart in the
        foreign table, which reads as a subclass relation between the two.
        """
        if self.primary_key is None:
            raise ValueError(f"Table {self.table_name} has no primary key")
        return not self.can_be_null() and self.primary_key.subset_of(self)


class ForeignKeyPair(NamedTuple):
    """Two foreign keys of the same table, ordered by name."""
    first: ForeignKey
    second: ForeignKey


@dataclass(frozen=True, eq=False, repr=False)
class Table(ColumnSet):
    catalog: Optional[str] = None
    schema: Optional[str] = None
    name: str = ""
    uri: str = ""
    sql_name: str = ""
    primary_key: Optional[PrimaryKey] = None
    foreign_keys: Mapping[str, ForeignKey] = field(default_factory=dict)
    foreign_key_pairs: Tuple[ForeignKeyPair, ...] = ()

    def __post_init__(self):
        super().__post_init__()
        object.__setattr__(self, "foreign_keys", MappingProxyType(dict(self.foreign_keys)))
        object.__setattr__(self, "foreign_key_pairs", tuple(self.foreign_key_pairs))

    def __repr__(self):
        return f"Table({self.name})"

    def owning_table(self) -> str:
        return self.name


@dataclass(frozen=True)
class SqlNaming:
    """How the source database quotes and qualifies identifiers.

    ``catalog_at_start`` tells whether a catalog name precedes the table
    name (``catalog.schema.table``) or follows it (``schema.table@catalog``
    with ``@`` as separator).
    """
    quote_string: str = '"'
    catalog_separator: str = DEFAULT_CATALOG_SEPARATOR
    catalog_at_start: bool = True
    # closing quote, when it differs from the opening one (as in [name])
    final_quote_string: Optional[str] = None

    def quote(self, identifier: str) -> str:
        q = self.quote_string.strip()
        if not q:
            return identifier
        final = self.final_quote_string or q
        return f"{q}{identifier.replace(final, final + final)}{final}"

    def qualify(self, catalog: Optional[str], schema: Optional[str], table: str) -> str:
        parts = []
        if catalog is not None and self.catalog_at_start:
            parts.append(self.quote(catalog) + self.catalog_separator)
        if schema is not None:
            parts.append(self.quote(schema) + ".")
        parts.append(self.quote(table))
        if catalog is not None and not self.catalog_at_start:
            parts.append(self.catalog_separator + self.quote(catalog))
        return "".join(parts)


class ColumnSetBuilder:
    """Accumulates columns by 1-based position while a catalog is built."""

    def __init__(self):
        self._slots: List[Optional[Column]] = []
        self._by_name: Dict[str, Column] = {}

    def __len__(self) -> int:
        return len(self._by_name)

    def __iter__(self) -> Iterator[Column]:
        return (c for c in self._slots if c is not None)

    def add(self, column: Column, position: int) -> None:
        if position < 1:
            raise ValueError(f"Column positions start at 1, got {position}")
        while len(self._slots) < position:
            self._slots.append(None)
        self._slots[position - 1] = column
        self._by_name[column.name] = column

    def column(self, name: str) -> Optional[Column]:
        return self._by_name.get(name)

    def names(self) -> FrozenSet[str]:
        return frozenset(self._by_name)

    def subset_of(self, other) -> bool:
        return self.names() <= other.names()

    def build(self) -> ColumnSet:
        """Return the snapshot; unfilled positions are dropped."""
        return column_set(self)


class ForeignKeyBuilder:
    """Accumulates the columns of a foreign key and their foreign counterparts."""

    def __init__(self, name: str, table_name: str, foreign_table_name: str,
                 uri: str, sql_name: str):
        self.name = name
        self.table_name = table_name
        self.foreign_table_name = foreign_table_name
        self.uri = uri
        self.sql_name = sql_name
        self.unique = False
        self._columns = ColumnSetBuilder()
        self._foreign: Dict[str, Column] = {}

    def __len__(self) -> int:
        return len(self._columns)

    def __iter__(self) -> Iterator[Column]:
        return iter(self._columns)

    def add(self, column: Column, position: int, foreign_column: Column) -> None:
        self._columns.add(column, position)
        self._foreign[column.name] = foreign_column

    def names(self) -> FrozenSet[str]:
        return self._columns.names()

    def can_be_null(self) -> bool:
        return any(c.can_be_null for c in self._columns)

    def subsumes(self, primary_key) -> bool:
        return not self.can_be_null() and primary_key.subset_of(self)

    def build(self, columns: Mapping[str, Column], foreign_columns: Mapping[str, Column],
              primary_key: PrimaryKey) -> ForeignKey:
        local = [columns[c.name] for c in self._columns]
        mapping = {c: foreign_columns[self._foreign[c.name].name] for c in local}
        return ForeignKey(
            columns=tuple(local),
            name=self.name,
            table_name=self.table_name,
            foreign_table_name=self.foreign_table_name,
            uri=self.uri,
            sql_name=self.sql_name,
            mapping=mapping,
            primary_key=primary_key,
            unique=self.unique,
        )


class TableBuilder:
    """Build-time state of a table."""

    def __init__(self, catalog: Optional[str], schema: Optional[str], name: str,
                 uri: str, sql_name: str):
        self.catalog = catalog
        self.schema = schema
        self.name = name
        self.uri = uri
        self.sql_name = sql_name
        self.columns = ColumnSetBuilder()
        self.primary_key: Optional[ColumnSetBuilder] = None
        self.primary_key_name: Optional[str] = None
        self.foreign_keys: Dict[str, ForeignKeyBuilder] = {}
        self.foreign_key_pairs: List[Tuple[ForeignKeyBuilder, ForeignKeyBuilder]] = []
        self.unique_columns: Set[str] = set()

    def column(self, name: str) -> Optional[Column]:
        return self.columns.column(name)

    def build_columns(self) -> Dict[str, Column]:
        """Return the final columns by name, with uniqueness applied."""
        return {
            c.name: replace(c, unique=True) if c.name in self.unique_columns else c
            for c in self.columns
        }

    def build(self, columns_by_table: Mapping[str, Mapping[str, Column]]) -> Table:
        """Return the immutable table.

        ``columns_by_table`` holds the final columns of every retained table,
        as returned by ``build_columns``, so that foreign keys can refer to
        the final columns of their foreign tables.
        """
        own = columns_by_table[self.name]
        primary_key = PrimaryKey(
            columns=tuple(own[c.name] for c in self.primary_key),
            name=self.primary_key_name,
        )
        foreign_keys = {
            name: fk.build(own, columns_by_table[fk.foreign_table_name], primary_key)
            for name, fk in self.foreign_keys.items()
        }
        pairs = [
            ForeignKeyPair(foreign_keys[a.name], foreign_keys[b.name])
            for a, b in self.foreign_key_pairs
        ]
        return Table(
            columns=tuple(own[c.name] for c in self.columns),
            catalog=self.catalog,
            schema=self.schema,
            name=self.name,
            uri=self.uri,
            sql_name=self.sql_name,
            primary_key=primary_key,
            foreign_keys=foreign_keys,
            foreign_key_pairs=pairs,
        )
