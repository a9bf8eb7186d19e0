"""Error taxonomy for catalog building and URI decoding."""

import builtins
from typing import Optional


class CatalogError(Exception):
    """Base exception for rdb-ontology."""


class ConnectionError(CatalogError, builtins.ConnectionError):
    """The source database could not be opened or authenticated against."""


class IntegrityError(CatalogError):
    """A primary key column is reported but is not accessible.

    Rows of such a table cannot be given a sound identity, so the whole
    build is aborted.
    """

    def __init__(self, table_name: str, column_name: str):
        self.table_name = table_name
        self.column_name = column_name
        super().__init__(
            f"Column {table_name}.{column_name} is not accessible, "
            f"though part of the primary key"
        )


class CodecError(CatalogError, ValueError):
    """A token or URI could not be decoded."""

    def __init__(self, message: str, value: Optional[str] = None):
        self.value = value
        super().__init__(message if value is None else f"{message}: {value!r}")
