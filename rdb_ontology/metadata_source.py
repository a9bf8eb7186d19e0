"""Read-only access to the structural metadata of a connected database."""

import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import inspect, text
from sqlalchemy import types as sqltypes
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from .constants import (
    PRIVILEGE_DIALECTS,
    SYSTEM_SCHEMAS,
    SUPPORTED_TABLE_TYPES,
    UNAVAILABLE_FK_NAMES,
)
from .datatypes import SqlType
from .model import SqlNaming

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TableRow:
    """A table as listed by the database."""
    catalog: Optional[str]
    schema: Optional[str]
    name: str
    table_type: str = "TABLE"


@dataclass(frozen=True)
class ColumnRow:
    name: str
    type_code: SqlType
    nullable: bool
    ordinal_position: int


@dataclass(frozen=True)
class PrimaryKeyRow:
    pk_name: Optional[str]
    column_name: str
    key_seq: int


@dataclass(frozen=True)
class ImportedKeyRow:
    """One column of a foreign key of the inspected table.

    Rows of one key are contiguous and ``key_seq`` restarts at 1 for each
    key.
    """
    fk_name: Optional[str]
    key_seq: int
    fkcolumn_name: str
    pktable_name: str
    pkcolumn_name: str


@dataclass(frozen=True)
class IndexRow:
    """One column of a unique index; ``column_name`` is None for expressions."""
    index_name: Optional[str]
    ordinal_position: int
    column_name: Optional[str]


@dataclass(frozen=True)
class PrivilegeRow:
    grantee: str
    privilege: str


# Checked in order: subclasses before their bases
_TYPE_CODES: Sequence[Tuple[type, SqlType]] = (
    (sqltypes.ARRAY, SqlType.ARRAY),
    (sqltypes.Boolean, SqlType.BOOLEAN),
    (sqltypes.SmallInteger, SqlType.SMALLINT),
    (sqltypes.BigInteger, SqlType.BIGINT),
    (sqltypes.Integer, SqlType.INTEGER),
    (sqltypes.Double, SqlType.DOUBLE),
    (sqltypes.REAL, SqlType.REAL),
    (sqltypes.Float, SqlType.FLOAT),
    (sqltypes.DECIMAL, SqlType.DECIMAL),
    (sqltypes.Numeric, SqlType.NUMERIC),
    (sqltypes.DateTime, SqlType.TIMESTAMP),
    (sqltypes.Date, SqlType.DATE),
    (sqltypes.Time, SqlType.TIME),
    (sqltypes.CLOB, SqlType.CLOB),
    (sqltypes.Text, SqlType.LONGVARCHAR),
    (sqltypes.CHAR, SqlType.CHAR),
    (sqltypes.NCHAR, SqlType.CHAR),
    (sqltypes.String, SqlType.VARCHAR),
    (sqltypes.BLOB, SqlType.BLOB),
    (sqltypes.BINARY, SqlType.BINARY),
    (sqltypes.VARBINARY, SqlType.VARBINARY),
    (sqltypes.LargeBinary, SqlType.LONGVARBINARY),
    (sqltypes.NullType, SqlType.NULL),
)

_MYSQL_GRANTEE = re.compile(r"^'([^']*)'@'[^']*'$")


def sql_type_of(type_: Any) -> SqlType:
    """Return the SQL type code of a reflected SQLAlchemy type."""
    for type_class, code in _TYPE_CODES:
        if isinstance(type_, type_class):
            return code
    return SqlType.OTHER


def like_pattern(pattern: str) -> "re.Pattern":
    """Compile an SQL ``LIKE`` pattern (``%`` and ``_`` wildcards)."""
    parts = []
    for char in pattern:
        if char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("".join(parts), re.DOTALL)


def _has_wildcard(pattern: str) -> bool:
    return "%" in pattern or "_" in pattern


class MetadataSource:
    """Metadata of the database behind one open connection.

    Every method fully materializes its result before returning, so that
    only one metadata query is ever in flight on the connection.
    """

    def __init__(self, connection: Connection, user_name: Optional[str] = None):
        self.connection = connection
        self.dialect_name = connection.dialect.name
        self.inspector = inspect(connection)
        self.user_name = user_name if user_name is not None else self._current_user()

    def _current_user(self) -> Optional[str]:
        """Return the user the connection runs as, spelled the way grants name it."""
        if self.dialect_name not in PRIVILEGE_DIALECTS:
            return self.connection.engine.url.username
        query = "SELECT CURRENT_USER()" if self.dialect_name == "snowflake" else "SELECT CURRENT_USER"
        user = self.connection.execute(text(query)).scalar()
        if user and self.dialect_name in ("mysql", "mariadb"):
            # reported as user@host
            user = user.rsplit("@", 1)[0]
        logger.debug(f"Connected as {user}")
        return user

    def sql_naming(self) -> SqlNaming:
        """Return how the connected dialect quotes identifiers."""
        preparer = self.connection.dialect.identifier_preparer
        final = preparer.final_quote if preparer.final_quote != preparer.initial_quote else None
        return SqlNaming(quote_string=preparer.initial_quote, final_quote_string=final)

    def _schema(self, table: TableRow) -> Optional[str]:
        return table.schema if table.schema is not None else self.inspector.default_schema_name

    def tables(self, catalog: Optional[str], schema_pattern: str, table_pattern: str,
               table_types: Iterable[str]) -> List[TableRow]:
        """List the tables matching the given filters.

        Args:
            catalog: Database name the tables must belong to, or None for any
            schema_pattern: ``LIKE`` pattern on schema names
            table_pattern: ``LIKE`` pattern on table names
            table_types: Any of ``TABLE`` and ``VIEW``

        Returns:
            Matching tables ordered by type, schema and name
        """
        if catalog is not None and catalog != self.connection.engine.url.database:
            logger.debug(f"Catalog {catalog} is not the connected database")
            return []

        table_types = [t.upper() for t in table_types]
        for table_type in table_types:
            if table_type not in SUPPORTED_TABLE_TYPES:
                logger.warning(f"Unsupported table type {table_type} is ignored")

        schema_regex = like_pattern(schema_pattern)
        table_regex = like_pattern(table_pattern)
        excluded = SYSTEM_SCHEMAS.get(self.dialect_name, []) if _has_wildcard(schema_pattern) else []

        rows = []
        for schema in self.inspector.get_schema_names():
            if schema in excluded or not schema_regex.fullmatch(schema):
                continue
            names: Dict[str, List[str]] = {}
            if "TABLE" in table_types:
                names["TABLE"] = self.inspector.get_table_names(schema=schema)
            if "VIEW" in table_types:
                names["VIEW"] = self.inspector.get_view_names(schema=schema)
            for table_type, table_names in names.items():
                rows.extend(
                    TableRow(catalog, schema, name, table_type)
                    for name in table_names
                    if table_regex.fullmatch(name)
                )
        rows.sort(key=lambda r: (r.table_type, r.schema or "", r.name))
        logger.debug(f"Listed {len(rows)} tables")
        return rows

    def columns(self, table: TableRow) -> List[ColumnRow]:
        columns = self.inspector.get_columns(table.name, schema=self._schema(table))
        return [
            ColumnRow(
                name=column["name"],
                type_code=sql_type_of(column["type"]),
                nullable=bool(column.get("nullable", True)),
                ordinal_position=position,
            )
            for position, column in enumerate(columns, start=1)
        ]

    def primary_keys(self, table: TableRow) -> List[PrimaryKeyRow]:
        constraint = self.inspector.get_pk_constraint(table.name, schema=self._schema(table))
        return [
            PrimaryKeyRow(constraint.get("name"), column_name, key_seq)
            for key_seq, column_name in enumerate(constraint.get("constrained_columns") or [], start=1)
        ]

    def imported_keys(self, table: TableRow) -> List[ImportedKeyRow]:
        """List the foreign keys of a table, one row per key column.

        Keys are ordered by name; names some drivers report in place of a
        missing one come through as None.
        """
        foreign_keys = self.inspector.get_foreign_keys(table.name, schema=self._schema(table))
        rows = []
        for fk in sorted(foreign_keys, key=lambda k: k.get("name") or ""):
            name = fk.get("name")
            if name in UNAVAILABLE_FK_NAMES:
                name = None
            pairs = zip(fk["constrained_columns"], fk["referred_columns"])
            rows.extend(
                ImportedKeyRow(name, key_seq, column, fk["referred_table"], referred)
                for key_seq, (column, referred) in enumerate(pairs, start=1)
            )
        return rows

    def unique_indexes(self, table: TableRow) -> List[IndexRow]:
        """List the columns of the unique indexes of a table.

        The primary key, unique constraints and unique indexes are all
        reported; a column list enforced by several of them is reported
        once.
        """
        schema = self._schema(table)
        candidates: List[Tuple[Optional[str], List[Optional[str]]]] = []

        pk = self.inspector.get_pk_constraint(table.name, schema=schema)
        if pk.get("constrained_columns"):
            candidates.append((pk.get("name"), pk["constrained_columns"]))
        try:
            for constraint in self.inspector.get_unique_constraints(table.name, schema=schema):
                candidates.append((constraint.get("name"), constraint["column_names"]))
        except NotImplementedError:
            logger.debug(f"Dialect {self.dialect_name} does not report unique constraints")
        for index in self.inspector.get_indexes(table.name, schema=schema):
            if index.get("unique"):
                candidates.append((index.get("name"), index["column_names"]))

        seen = set()
        rows = []
        for name, column_names in sorted(candidates, key=lambda c: c[0] or ""):
            key = tuple(column_names)
            if key in seen:
                continue
            seen.add(key)
            rows.extend(
                IndexRow(name, position, column_name)
                for position, column_name in enumerate(column_names, start=1)
            )
        return rows

    def table_privileges(self, table: TableRow) -> List[PrivilegeRow]:
        query = text(
            "SELECT grantee, privilege_type FROM information_schema.table_privileges "
            "WHERE table_schema = :schema AND table_name = :table"
        )
        return self._privileges(query, {"schema": self._schema(table), "table": table.name})

    def column_privileges(self, table: TableRow, column_name: str) -> List[PrivilegeRow]:
        query = text(
            "SELECT grantee, privilege_type FROM information_schema.column_privileges "
            "WHERE table_schema = :schema AND table_name = :table AND column_name = :column"
        )
        return self._privileges(
            query, {"schema": self._schema(table), "table": table.name, "column": column_name}
        )

    def _privileges(self, query, params: Dict[str, Any]) -> List[PrivilegeRow]:
        if self.dialect_name not in PRIVILEGE_DIALECTS:
            return []
        try:
            with self.connection.begin_nested():
                result = self.connection.execute(query, params).fetchall()
        except SQLAlchemyError as e:
            logger.debug(f"Privileges not available for {params}: {e}")
            return []
        return [PrivilegeRow(self._grantee(row[0]), str(row[1]).upper()) for row in result]

    @staticmethod
    def _grantee(grantee: str) -> str:
        match = _MYSQL_GRANTEE.match(grantee)
        return match.group(1) if match else grantee
