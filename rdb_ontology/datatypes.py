"""Mapping between SQL type codes and XML Schema datatypes."""

import logging
from enum import IntEnum
from typing import Optional

from rdflib import URIRef
from rdflib.namespace import XSD

logger = logging.getLogger(__name__)


class SqlType(IntEnum):
    """SQL type codes, numbered as ``java.sql.Types`` numbers them."""
    ARRAY = 2003
    BIGINT = -5
    BINARY = -2
    BIT = -7
    BLOB = 2004
    BOOLEAN = 16
    CHAR = 1
    CLOB = 2005
    DATALINK = 70
    DATE = 91
    DECIMAL = 3
    DISTINCT = 2001
    DOUBLE = 8
    FLOAT = 6
    INTEGER = 4
    OBJECT = 2000
    LONGVARBINARY = -4
    LONGVARCHAR = -1
    NULL = 0
    NUMERIC = 2
    OTHER = 1111
    REAL = 7
    REF = 2006
    SMALLINT = 5
    STRUCT = 2002
    TIME = 92
    TIMESTAMP = 93
    TINYINT = -6
    VARBINARY = -3
    VARCHAR = 12


# Codes absent from this table (arrays, large objects, structured and
# driver-specific types) have no XSD counterpart.
_XSD_TYPES = {
    SqlType.BIGINT: XSD.integer,
    SqlType.BINARY: XSD.hexBinary,
    SqlType.BIT: XSD.boolean,
    SqlType.BOOLEAN: XSD.boolean,
    SqlType.CHAR: XSD.string,
    SqlType.DATE: XSD.date,
    SqlType.DECIMAL: XSD.decimal,
    SqlType.DOUBLE: XSD.double,
    SqlType.FLOAT: XSD.float,
    SqlType.INTEGER: XSD.integer,
    SqlType.LONGVARBINARY: XSD.hexBinary,
    SqlType.LONGVARCHAR: XSD.string,
    SqlType.NUMERIC: XSD.decimal,
    SqlType.REAL: XSD.decimal,
    SqlType.SMALLINT: XSD.short,
    SqlType.TIME: XSD.time,
    SqlType.TIMESTAMP: XSD.dateTime,
    SqlType.TINYINT: XSD.short,
    SqlType.VARBINARY: XSD.hexBinary,
    SqlType.VARCHAR: XSD.string,
}


def xsd_type(type_code: int) -> Optional[URIRef]:
    """Return the XSD datatype for an SQL type code.

    Args:
        type_code: A ``SqlType`` member or its integer value

    Returns:
        The XSD datatype term, or None when the type is not supported
    """
    try:
        code = SqlType(type_code)
    except ValueError:
        logger.debug(f"Unknown SQL type code {type_code}")
        return None
    return _XSD_TYPES.get(code)


def xsd_type_uri(type_code: int) -> Optional[str]:
    """Return the URI of the XSD datatype for an SQL type code, or None."""
    datatype = xsd_type(type_code)
    return str(datatype) if datatype is not None else None
