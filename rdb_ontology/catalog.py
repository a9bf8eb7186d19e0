"""The finished, read-only model of a database schema."""

import logging
from types import MappingProxyType
from typing import Any, Iterable, Iterator, Mapping, Optional, Tuple, Union

from .encoding import Encoding
from .model import Column, ForeignKey, ForeignKeyPair, SqlNaming, Table

logger = logging.getLogger(__name__)

TableKey = Union[str, Table]


def _strip_fragment(uri: str) -> str:
    return uri[:-1] if uri.endswith(("#", "/")) else uri


class Catalog:
    """Tables, keys and URIs of a database, as seen by one build.

    A catalog is never modified once built and may be shared freely between
    consumers.
    """

    def __init__(self, tables: Mapping[str, Table], tbox_base_uri: str, abox_base_uri: str,
                 imported_tbox_uri: str, encoding: Encoding, naming: SqlNaming):
        self._tables = MappingProxyType(dict(tables))
        self.tbox_base_uri = tbox_base_uri
        self.abox_base_uri = abox_base_uri
        self.imported_tbox_uri = imported_tbox_uri
        self.encoding = encoding
        self.naming = naming

    @property
    def tables(self) -> Mapping[str, Table]:
        return self._tables

    def __len__(self) -> int:
        return len(self._tables)

    def __iter__(self) -> Iterator[Table]:
        return iter(self._tables.values())

    def __repr__(self):
        return f"Catalog({len(self)} tables, tbox={self.tbox_base_uri})"

    def tbox_uri(self) -> str:
        """The URI of the TBox ontology: its base URI without the trailing ``#`` or ``/``."""
        return _strip_fragment(self.tbox_base_uri)

    def abox_uri(self) -> str:
        return _strip_fragment(self.abox_base_uri)

    def lookup_table(self, table: TableKey) -> Optional[Table]:
        name = table.name if isinstance(table, Table) else table
        return self._tables.get(name)

    def lookup_column(self, table: TableKey, name: str) -> Optional[Column]:
        found = self.lookup_table(table)
        return found.column(name) if found is not None else None

    def foreign_keys_of(self, table: TableKey) -> Mapping[str, ForeignKey]:
        found = self.lookup_table(table)
        return found.foreign_keys if found is not None else MappingProxyType({})

    def foreign_key_pairs_of(self, table: TableKey) -> Tuple[ForeignKeyPair, ...]:
        found = self.lookup_table(table)
        return found.foreign_key_pairs if found is not None else ()

    def uri_of(self, entity: Union[Table, Column, ForeignKey, ForeignKeyPair]) -> str:
        """Return the TBox URI of a table, column, foreign key or pair."""
        if isinstance(entity, ForeignKeyPair):
            return self.encoding.pair_uri(
                entity.first.table_name, entity.first.name, entity.second.name, self.tbox_base_uri
            )
        if isinstance(entity, (Table, Column, ForeignKey)):
            return entity.uri
        raise TypeError(f"No URI for {type(entity).__name__}")

    def uri_of_row(self, row: Any, identifying_columns: Iterable[Union[str, Column]],
                   table: TableKey) -> Optional[str]:
        """Return the ABox URI of a row.

        Args:
            row: A SQLAlchemy ``Row`` or a mapping, holding the identifying
                columns
            identifying_columns: Columns identifying a row of ``table``,
                usually its primary key
            table: The table the row belongs to

        Returns:
            The row URI, or None if an identifying value is NULL
        """
        names = [c.name if isinstance(c, Column) else c for c in identifying_columns]
        table_name = table.name if isinstance(table, Table) else table
        return self.encoding.row_uri(row, names, table_name, self.abox_base_uri)

    def decode_uri(self, uri: str):
        """Return what a URI of this catalog stands for, or None.

        See ``Encoding.decode_uri``.
        """
        return self.encoding.decode_uri(uri, self)

    def describe(self) -> str:
        """Return a plain text outline of the catalog."""
        lines = [f"TBox: {self.tbox_base_uri}", f"ABox: {self.abox_base_uri}"]
        for table in self:
            lines.append(f"Table {table.name} ({table.sql_name}) <{table.uri}>")
            for column in table:
                flags = []
                if not column.can_be_null:
                    flags.append("not null")
                if column.unique:
                    flags.append("unique")
                suffix = f" [{', '.join(flags)}]" if flags else ""
                lines.append(f"  column {column.name}: {column.type_code.name}{suffix}")
            if table.primary_key is not None:
                pk_columns = ", ".join(c.name for c in table.primary_key)
                lines.append(f"  primary key {table.primary_key.name or ''}({pk_columns})")
            for fk in table.foreign_keys.values():
                mapping = ", ".join(f"{c.name}->{fk.mapped_column(c).name}" for c in fk)
                kind = "subsumes primary key" if fk.subsumes_primary_key() else (
                    "unique" if fk.unique else "")
                suffix = f" [{kind}]" if kind else ""
                lines.append(f"  foreign key {fk.name} -> {fk.foreign_table_name} ({mapping}){suffix}")
            for pair in table.foreign_key_pairs:
                lines.append(f"  pair {pair.first.name} / {pair.second.name}")
        return "\n".join(lines)
