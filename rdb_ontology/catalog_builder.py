"""Builds a Catalog from the metadata of a live database."""

import itertools
import logging
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, Optional

from sqlalchemy import create_engine
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from .catalog import Catalog
from .config import BuildParameters
from .constants import PUBLIC_GRANTEE, SELECT_PRIVILEGE, SYNTHETIC_FK_PREFIX
from .errors import ConnectionError, IntegrityError
from .metadata_source import MetadataSource, PrivilegeRow, TableRow
from .model import Column, ColumnSetBuilder, ForeignKeyBuilder, SqlNaming, TableBuilder
from .utils import sanitize_for_logging

logger = logging.getLogger(__name__)

# Diagnostic verbosity level -> logging level; deeper levels log at DEBUG
_LOG_LEVELS = {1: logging.WARNING, 2: logging.INFO}


def has_select_privilege(privileges: Iterable[PrivilegeRow], user_name: Optional[str]) -> bool:
    """Decide whether the current user may read a table or column.

    An empty listing means the database does not report privileges, not
    that there are none, so it grants access.
    """
    privileges = list(privileges)
    if not privileges:
        return True
    return any(
        p.grantee in (user_name, PUBLIC_GRANTEE) and p.privilege == SELECT_PRIVILEGE
        for p in privileges
    )


@contextmanager
def open_connection(params: BuildParameters) -> Iterator[Connection]:
    """Open the single connection a build works through.

    The engine is disposed of when the block exits, whatever the outcome.

    Raises:
        ConnectionError: If the engine cannot be created or the database
            cannot be reached
    """
    public_url = params.public_url()
    try:
        engine = create_engine(params.sqlalchemy_url())
    except (SQLAlchemyError, ImportError) as e:
        raise ConnectionError(f"Cannot create an engine for {public_url}: {e}") from e

    try:
        try:
            connection = engine.connect()
        except SQLAlchemyError as e:
            raise ConnectionError(f"Cannot connect to {public_url}: {e}") from e
        with connection:
            yield connection
    finally:
        engine.dispose()


class CatalogBuilder:
    """Runs the introspection phases and assembles the Catalog.

    The phases are, in order: table discovery, column discovery, primary
    keys, foreign keys, foreign key pairing and unique index detection. Each
    phase completes for every table before the next one starts, so that a
    foreign key can always find the columns of its foreign table.
    """

    def __init__(self, params: BuildParameters):
        self.params = params
        self.encoding = params.encoding
        self.naming: Optional[SqlNaming] = params.naming
        self.tables: Dict[str, TableBuilder] = {}
        self._rows: Dict[str, TableRow] = {}

    def build(self) -> Catalog:
        """Connect to the database and build its catalog.

        Raises:
            ConnectionError: If the database cannot be reached
            IntegrityError: If a primary key column is not accessible
        """
        logger.info(f"Building catalog of {self.params.public_url()}")
        details = dict(vars(self.params), url=self.params.public_url())
        logger.debug(f"Build parameters: {sanitize_for_logging(details)}")
        with open_connection(self.params) as connection:
            return self.build_from_source(MetadataSource(connection))

    def build_from_source(self, source: MetadataSource) -> Catalog:
        """Build the catalog from an already open metadata source."""
        self.tables = {}
        self._rows = {}
        self.naming = self.params.naming or source.sql_naming()

        self._discover_tables(source)
        self._discover_columns(source)
        self._discover_primary_keys(source)
        self._discover_foreign_keys(source)
        self._pair_foreign_keys()
        self._detect_unique_indexes(source)

        catalog = self._finalize()
        logger.debug(f"Catalog built with {len(catalog)} tables")
        return catalog

    def _diagnose(self, level: int, message: str) -> None:
        if level <= self.params.verbosity:
            logger.log(_LOG_LEVELS.get(level, logging.DEBUG), message)

    def _discover_tables(self, source: MetadataSource) -> None:
        p = self.params
        for row in source.tables(p.catalog, p.schema_pattern, p.table_pattern, p.table_types):
            if not has_select_privilege(source.table_privileges(row), source.user_name):
                self._diagnose(1, f"table {row.name} not accessible")
                continue
            if row.name in self.tables:
                previous = self._rows[row.name]
                self._diagnose(2, f"table {row.name} of schema {row.schema} replaces "
                                  f"the one of schema {previous.schema}")
            self.tables[row.name] = TableBuilder(
                catalog=row.catalog,
                schema=row.schema,
                name=row.name,
                uri=self.encoding.table_uri(row.name, p.tbox_base_uri),
                sql_name=self.naming.qualify(row.catalog, row.schema, row.name),
            )
            self._rows[row.name] = row
            self._diagnose(2, f"table {row.name} created")

    def _discover_columns(self, source: MetadataSource) -> None:
        for table in self.tables.values():
            row = self._rows[table.name]
            for column_row in source.columns(row):
                name = column_row.name
                if not has_select_privilege(source.column_privileges(row, name), source.user_name):
                    self._diagnose(3, f"column {table.name}.{name} not accessible")
                    continue
                column = Column(
                    table_name=table.name,
                    name=name,
                    type_code=column_row.type_code,
                    uri=self.encoding.column_uri(table.name, name, self.params.tbox_base_uri),
                    sql_name=self.naming.quote(name),
                    can_be_null=column_row.nullable,
                )
                table.columns.add(column, column_row.ordinal_position)
                self._diagnose(4, f"column {table.name}.{name} created")

    def _discover_primary_keys(self, source: MetadataSource) -> None:
        for name in list(self.tables):
            table = self.tables[name]
            for pk_row in source.primary_keys(self._rows[name]):
                if table.primary_key is None:
                    table.primary_key = ColumnSetBuilder()
                    table.primary_key_name = pk_row.pk_name
                column = table.column(pk_row.column_name)
                if column is None:
                    raise IntegrityError(name, pk_row.column_name)
                table.primary_key.add(column, pk_row.key_seq)

            if table.primary_key is None:
                # rows of a table without a primary key cannot be identified
                self._diagnose(1, f"table {name} removed, because it has no primary key")
                del self.tables[name]
                del self._rows[name]
            else:
                self._diagnose(3, f"primary key for {name} created")

    def _discover_foreign_keys(self, source: MetadataSource) -> None:
        for table in self.tables.values():
            current: Optional[ForeignKeyBuilder] = None
            foreign_table: Optional[TableBuilder] = None
            skip = False
            for fk_row in source.imported_keys(self._rows[table.name]):
                if fk_row.key_seq == 1:
                    self._register_foreign_key(table, current, skip)
                    fk_name = fk_row.fk_name
                    if fk_name is None:
                        fk_name = f"{SYNTHETIC_FK_PREFIX}{fk_row.pktable_name}_{fk_row.pkcolumn_name}"
                    current = ForeignKeyBuilder(
                        name=fk_name,
                        table_name=table.name,
                        foreign_table_name=fk_row.pktable_name,
                        uri=self.encoding.foreign_key_uri(table.name, fk_name, self.params.tbox_base_uri),
                        sql_name=self.naming.quote(fk_name),
                    )
                    foreign_table = self.tables.get(fk_row.pktable_name)
                    skip = foreign_table is None
                    if skip:
                        self._diagnose(2, f"no foreign table for {table.name}.{fk_name}")
                if skip or current is None:
                    continue

                column = table.column(fk_row.fkcolumn_name)
                foreign_column = foreign_table.column(fk_row.pkcolumn_name)
                if column is None or foreign_column is None:
                    skip = True
                    self._diagnose(3, f"column unreachable for {table.name}.{current.name}")
                    continue
                current.add(column, fk_row.key_seq, foreign_column)
                self._diagnose(
                    5, f"foreign key column {table.name}.{current.name}.{column.name} mapped"
                )
            self._register_foreign_key(table, current, skip)

    def _register_foreign_key(self, table: TableBuilder, fk: Optional[ForeignKeyBuilder],
                              skip: bool) -> None:
        if fk is None or skip:
            return
        table.foreign_keys[fk.name] = fk
        self._diagnose(3, f"foreign key {table.name}.{fk.name} created")

    def _pair_foreign_keys(self) -> None:
        for table in self.tables.values():
            candidates = sorted(
                (fk for fk in table.foreign_keys.values() if not fk.subsumes(table.primary_key)),
                key=lambda fk: fk.name,
            )
            table.foreign_key_pairs = list(itertools.combinations(candidates, 2))

    def _detect_unique_indexes(self, source: MetadataSource) -> None:
        for table in self.tables.values():
            candidate: Optional[ColumnSetBuilder] = None
            discard = False
            for index_row in source.unique_indexes(self._rows[table.name]):
                position = index_row.ordinal_position
                if position == 0:
                    continue
                if position == 1:
                    self._register_unique_index(table, candidate, discard)
                    candidate = ColumnSetBuilder()
                    discard = False
                if candidate is None or discard:
                    continue

                column = table.column(index_row.column_name) if index_row.column_name else None
                if column is None:
                    discard = True
                    self._diagnose(3, f"index {index_row.index_name} of {table.name} discarded, "
                                      f"column {index_row.column_name} not accessible")
                    continue
                candidate.add(column, position)
            self._register_unique_index(table, candidate, discard)

    @staticmethod
    def _register_unique_index(table: TableBuilder, index: Optional[ColumnSetBuilder],
                               discard: bool) -> None:
        if index is None or discard or not len(index):
            return
        if len(index) == 1:
            table.unique_columns.update(index.names())
        for fk in table.foreign_keys.values():
            if fk.unique or fk.subsumes(table.primary_key):
                continue
            if index.subset_of(fk):
                fk.unique = True

    def _finalize(self) -> Catalog:
        # two passes: every table's final columns exist before any foreign
        # key is built against them
        columns_by_table = {name: table.build_columns() for name, table in self.tables.items()}
        tables = {name: table.build(columns_by_table) for name, table in self.tables.items()}
        return Catalog(
            tables,
            tbox_base_uri=self.params.tbox_base_uri,
            abox_base_uri=self.params.abox_base_uri,
            imported_tbox_uri=self.params.imported_tbox_uri,
            encoding=self.encoding,
            naming=self.naming,
        )


def build_catalog(params: BuildParameters) -> Catalog:
    """Build the catalog of the database ``params`` points to."""
    return CatalogBuilder(params).build()
