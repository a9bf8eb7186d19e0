"""Reversible encoding of SQL names into URI fragments.

URIs of the catalog entities follow these patterns, every name and value
being encoded first:

    table             <base>T--<table>
    column            <base>c--<table>--<column>
    foreign key       <base>k--<table>--<foreign key>
    foreign key pair  <base>p--<table>--<foreign key 1>--<foreign key 2>
    row               <base>r--<table>--<value 1>--<value 2>...

The row values are those of the columns identifying the row, usually the
table's primary key. A row URI decodes only when it holds one value per
primary key column.
"""

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Iterable, List, NamedTuple, Optional, Tuple

from .errors import CodecError
from .model import ForeignKeyPair

if TYPE_CHECKING:
    from .catalog import Catalog

logger = logging.getLogger(__name__)

_HEX_DIGITS = frozenset("0123456789abcdef")

TABLE_TAG = "T"
COLUMN_TAG = "c"
FOREIGN_KEY_TAG = "k"
PAIR_TAG = "p"
ROW_TAG = "r"


class RowReference(NamedTuple):
    """A decoded row URI: the table name and the identifying values."""
    table_name: str
    values: Tuple[str, ...]


def row_value(row: Any, column_name: str) -> Any:
    """Read a value by column name from a SQLAlchemy ``Row`` or a mapping."""
    return getattr(row, "_mapping", row)[column_name]


class Encoding(ABC):
    """Turns SQL names into URI components and back."""

    @abstractmethod
    def encode(self, name: str) -> str:
        """Encode an SQL name into a URI component."""

    @abstractmethod
    def decode(self, token: str) -> str:
        """Decode a URI component into an SQL name.

        Raises:
            CodecError: If the token is not a valid encoded name
        """

    @abstractmethod
    def table_uri(self, table_name: str, base: str) -> str:
        pass

    @abstractmethod
    def column_uri(self, table_name: str, column_name: str, base: str) -> str:
        pass

    @abstractmethod
    def foreign_key_uri(self, table_name: str, fk_name: str, base: str) -> str:
        pass

    @abstractmethod
    def pair_uri(self, table_name: str, first_fk_name: str, second_fk_name: str,
                 base: str) -> str:
        pass

    @abstractmethod
    def row_uri(self, row: Any, column_names: Iterable[str], table_name: str,
                base: str) -> Optional[str]:
        """Return the URI of a row of ``table_name``.

        The values of ``column_names`` are read from ``row``; they are
        expected to identify a row of that table. Returns None when one of
        them is NULL.
        """

    @abstractmethod
    def decode_uri(self, uri: str, catalog: "Catalog"):
        """Return the entity of ``catalog`` a URI stands for.

        Returns:
            A Table, Column, ForeignKey, ForeignKeyPair or RowReference, or
            None if the URI is in neither namespace of the catalog

        Raises:
            CodecError: If the URI is in a catalog namespace but malformed,
                or names something the catalog does not hold
        """


class PaEncoding(Encoding):
    """Default encoding, producing names safe for XML and Turtle.

    Letters, digits and underscores are kept as is. Any other character is
    written as its hexadecimal code point, preceded by ``-``. Consecutive
    escaped characters are separated by ``_`` instead of being closed and
    reopened, and a run of escaped characters is closed by ``-`` only when
    something follows it, so that ``--`` never occurs in an encoded name:

        >>> PaEncoding().encode("$$a")
        '-24_24-a'
        >>> PaEncoding().encode("a$")
        'a-24'
    """

    ESCAPE_CHAR = "-"
    ESCAPE_SEP = "_"
    SEPARATOR = "--"

    @staticmethod
    def _is_plain(char: str) -> bool:
        return char.isalpha() or char.isdecimal() or char == "_"

    def encode(self, name: str) -> str:
        parts: List[str] = []
        escaping = False
        for char in name:
            if self._is_plain(char):
                if escaping:
                    parts.append(self.ESCAPE_CHAR)
                    escaping = False
                parts.append(char)
            else:
                parts.append(self.ESCAPE_SEP if escaping else self.ESCAPE_CHAR)
                escaping = True
                parts.append(format(ord(char), "x"))
        return "".join(parts)

    def decode(self, token: str) -> str:
        """Decode a token, accepting only what ``encode`` produces."""
        parts: List[str] = []
        escaping = False
        closed = False
        digits = ""
        for char in token:
            if escaping:
                if char in _HEX_DIGITS:
                    digits += char
                elif char in (self.ESCAPE_SEP, self.ESCAPE_CHAR):
                    parts.append(self._code_point(digits, token))
                    digits = ""
                    escaping = char == self.ESCAPE_SEP
                    closed = char == self.ESCAPE_CHAR
                else:
                    raise CodecError(f"Invalid character {char!r} in escape", token)
            elif self._is_plain(char):
                parts.append(char)
                closed = False
            elif char == self.ESCAPE_CHAR and not closed:
                escaping = True
            else:
                raise CodecError(f"Invalid character {char!r}", token)
        if escaping:
            # the last escape of a name is left unclosed
            parts.append(self._code_point(digits, token))
        elif closed:
            raise CodecError("Escape closed at the end of the name", token)
        return "".join(parts)

    @staticmethod
    def _code_point(digits: str, token: str) -> str:
        if not digits:
            raise CodecError("Empty escape", token)
        if len(digits) > 1 and digits[0] == "0":
            raise CodecError(f"Leading zero in escape {digits}", token)
        value = int(digits, 16)
        if value > 0x10FFFF:
            raise CodecError(f"Code point {digits} out of range", token)
        return chr(value)

    def _uri(self, base: str, tag: str, *names: str) -> str:
        return base + self.SEPARATOR.join([tag] + [self.encode(n) for n in names])

    def table_uri(self, table_name: str, base: str) -> str:
        return self._uri(base, TABLE_TAG, table_name)

    def column_uri(self, table_name: str, column_name: str, base: str) -> str:
        return self._uri(base, COLUMN_TAG, table_name, column_name)

    def foreign_key_uri(self, table_name: str, fk_name: str, base: str) -> str:
        return self._uri(base, FOREIGN_KEY_TAG, table_name, fk_name)

    def pair_uri(self, table_name: str, first_fk_name: str, second_fk_name: str,
                 base: str) -> str:
        return self._uri(base, PAIR_TAG, table_name, first_fk_name, second_fk_name)

    def row_uri(self, row: Any, column_names: Iterable[str], table_name: str,
                base: str) -> Optional[str]:
        values = []
        for name in column_names:
            value = row_value(row, name)
            if value is None:
                return None
            values.append(str(value))
        return self._uri(base, ROW_TAG, table_name, *values)

    def decode_uri(self, uri: str, catalog: "Catalog"):
        if uri.startswith(catalog.abox_base_uri):
            local = uri[len(catalog.abox_base_uri):]
        elif uri.startswith(catalog.tbox_base_uri):
            local = uri[len(catalog.tbox_base_uri):]
        else:
            logger.debug(f"URI {uri} is outside the catalog namespaces")
            return None

        tag, *segments = local.split(self.SEPARATOR)
        expected = {TABLE_TAG: 1, COLUMN_TAG: 2, FOREIGN_KEY_TAG: 2, PAIR_TAG: 3}
        if tag == ROW_TAG:
            if len(segments) < 2:
                raise CodecError("Row URI without values", uri)
        elif tag in expected:
            if len(segments) != expected[tag]:
                raise CodecError(f"Wrong number of segments for tag {tag!r}", uri)
        else:
            raise CodecError(f"Unknown tag {tag!r}", uri)

        names = [self.decode(s) for s in segments]
        table = catalog.lookup_table(names[0])
        if table is None:
            raise CodecError(f"Unknown table {names[0]!r}", uri)

        if tag == TABLE_TAG:
            return table
        if tag == COLUMN_TAG:
            return self._resolve(table.column(names[1]), "column", names[1], uri)
        if tag == FOREIGN_KEY_TAG:
            return self._resolve(table.foreign_keys.get(names[1]), "foreign key", names[1], uri)
        if tag == PAIR_TAG:
            return ForeignKeyPair(
                self._resolve(table.foreign_keys.get(names[1]), "foreign key", names[1], uri),
                self._resolve(table.foreign_keys.get(names[2]), "foreign key", names[2], uri),
            )
        key_size = len(table.primary_key) if table.primary_key is not None else 0
        if len(names) - 1 != key_size:
            raise CodecError(
                f"Row URI has {len(names) - 1} values, the key of {table.name!r} has {key_size}", uri
            )
        return RowReference(table.name, tuple(names[1:]))

    @staticmethod
    def _resolve(entity, kind: str, name: str, uri: str):
        if entity is None:
            raise CodecError(f"Unknown {kind} {name!r}", uri)
        return entity
