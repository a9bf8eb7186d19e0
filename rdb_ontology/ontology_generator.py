"""OWL graphs generated from a catalog: the schema (TBox) and the data (ABox)."""

import datetime
import logging
from enum import IntEnum
from typing import Any, List, Optional

from rdflib import BNode, Graph, Literal, Namespace, URIRef
from rdflib.namespace import RDF, RDFS, OWL, XSD
from sqlalchemy import text
from sqlalchemy.engine import Connection

from .catalog import Catalog
from .datatypes import xsd_type
from .encoding import row_value
from .model import Column, ForeignKey, ForeignKeyPair, Table

logger = logging.getLogger(__name__)


class LanguageLevel(IntEnum):
    """Expressiveness of the generated TBox.

    Unique data properties can only be declared inverse functional in OWL
    Full; OWL Lite restricts that to object properties.
    """
    OWL_LITE = 1
    OWL_FULL = 2


DEFAULT_LANGUAGE_LEVEL = LanguageLevel.OWL_LITE


def bind_namespaces(graph: Graph, catalog: Catalog) -> None:
    graph.bind("rdf", RDF)
    graph.bind("rdfs", RDFS)
    graph.bind("owl", OWL)
    graph.bind("xsd", XSD)
    graph.bind("", Namespace(catalog.tbox_base_uri), override=True)
    graph.bind("i", Namespace(catalog.abox_base_uri), override=True)


def lexical_form(value: Any) -> str:
    """Return the XSD lexical form of a value read from the database."""
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime.date, datetime.time)):
        return value.isoformat()
    return str(value)


class TBoxGenerator:
    """Generates the OWL description of the tables of a catalog.

    Tables become classes, columns datatype properties and foreign keys
    object properties, except for a foreign key covering the primary key,
    which makes its table a subclass of the foreign table. Each pair of
    foreign keys of a table becomes an object property linking the two
    referenced classes.
    """

    def __init__(self, catalog: Catalog, language_level: LanguageLevel = DEFAULT_LANGUAGE_LEVEL):
        self.catalog = catalog
        self.language_level = language_level
        self.graph = Graph()
        bind_namespaces(self.graph, catalog)

    def generate(self) -> Graph:
        ontology = URIRef(self.catalog.tbox_uri())
        self.graph.add((ontology, RDF.type, OWL.Ontology))
        for table in self.catalog:
            self._add_table(table)
        logger.info(f"TBox generated with {len(self.graph)} triples")
        return self.graph

    def _add_table(self, table: Table) -> None:
        table_uri = URIRef(table.uri)
        self.graph.add((table_uri, RDF.type, OWL.Class))
        self.graph.add((table_uri, RDFS.label, Literal(table.name)))

        for column in table:
            self._add_column(table_uri, column)
        for fk in table.foreign_keys.values():
            self._add_foreign_key(table_uri, fk)
        for pair in table.foreign_key_pairs:
            self._add_pair(pair)

    def _add_column(self, table_uri: URIRef, column: Column) -> None:
        prop_uri = URIRef(column.uri)
        self.graph.add((prop_uri, RDF.type, OWL.DatatypeProperty))
        self.graph.add((prop_uri, RDF.type, OWL.FunctionalProperty))
        self.graph.add((prop_uri, RDFS.label, Literal(column.name)))
        self.graph.add((prop_uri, RDFS.domain, table_uri))

        datatype = xsd_type(column.type_code)
        if datatype is not None:
            self.graph.add((prop_uri, RDFS.range, datatype))
        else:
            logger.debug(f"No XSD datatype for {column.table_name}.{column.name}")

        if not column.can_be_null:
            self._add_min_cardinality(table_uri, prop_uri)
        if column.unique and self.language_level >= LanguageLevel.OWL_FULL:
            self.graph.add((prop_uri, RDF.type, OWL.InverseFunctionalProperty))

    def _add_foreign_key(self, table_uri: URIRef, fk: ForeignKey) -> None:
        foreign_uri = self._class_of(fk.foreign_table_name)
        if fk.subsumes_primary_key():
            self.graph.add((table_uri, RDFS.subClassOf, foreign_uri))
            return

        prop_uri = URIRef(fk.uri)
        self.graph.add((prop_uri, RDF.type, OWL.ObjectProperty))
        self.graph.add((prop_uri, RDF.type, OWL.FunctionalProperty))
        self.graph.add((prop_uri, RDFS.label, Literal(fk.name)))
        self.graph.add((prop_uri, RDFS.domain, table_uri))
        self.graph.add((prop_uri, RDFS.range, foreign_uri))
        if not fk.can_be_null():
            self._add_min_cardinality(table_uri, prop_uri)
        if fk.unique:
            self.graph.add((prop_uri, RDF.type, OWL.InverseFunctionalProperty))

    def _add_pair(self, pair: ForeignKeyPair) -> None:
        prop_uri = URIRef(self.catalog.uri_of(pair))
        self.graph.add((prop_uri, RDF.type, OWL.ObjectProperty))
        self.graph.add((prop_uri, RDFS.label, Literal(f"{pair.first.name} {pair.second.name}")))
        self.graph.add((prop_uri, RDFS.domain, self._class_of(pair.first.foreign_table_name)))
        self.graph.add((prop_uri, RDFS.range, self._class_of(pair.second.foreign_table_name)))

    def _add_min_cardinality(self, class_uri: URIRef, prop_uri: URIRef) -> None:
        restriction = BNode()
        self.graph.add((restriction, RDF.type, OWL.Restriction))
        self.graph.add((restriction, OWL.onProperty, prop_uri))
        self.graph.add((restriction, OWL.minCardinality, Literal(1, datatype=XSD.nonNegativeInteger)))
        self.graph.add((class_uri, RDFS.subClassOf, restriction))

    def _class_of(self, table_name: str) -> URIRef:
        return URIRef(self.catalog.lookup_table(table_name).uri)


class ABoxGenerator:
    """Generates the individuals of a catalog's tables from their rows.

    Every row with a complete primary key becomes an individual of its
    table's class. Foreign keys are followed only when they reference the
    primary key of the foreign table, since only then is the referenced
    row's URI known.
    """

    def __init__(self, catalog: Catalog, connection: Connection):
        self.catalog = catalog
        self.connection = connection
        self.graph = Graph()
        bind_namespaces(self.graph, catalog)

    def generate(self) -> Graph:
        ontology = URIRef(self.catalog.abox_uri())
        self.graph.add((ontology, RDF.type, OWL.Ontology))
        self.graph.add((ontology, OWL.imports, URIRef(self.catalog.imported_tbox_uri)))
        for table in self.catalog:
            self._add_rows(table)
        logger.info(f"ABox generated with {len(self.graph)} triples")
        return self.graph

    def _referencing_columns(self, fk: ForeignKey) -> Optional[List[str]]:
        """Return the columns of ``fk`` in the order of the foreign primary key.

        Returns None if the key does not reference that primary key.
        """
        foreign_table = self.catalog.lookup_table(fk.foreign_table_name)
        if fk.foreign_column_set() != foreign_table.primary_key:
            return None
        local_names = {fk.mapped_column(c).name: c.name for c in fk}
        return [local_names[c.name] for c in foreign_table.primary_key]

    def _add_rows(self, table: Table) -> None:
        columns = ", ".join(c.sql_name for c in table)
        query = text(f"SELECT {columns} FROM {table.sql_name}")
        logger.debug(f"Reading rows: {query}")

        references = {}
        for fk in table.foreign_keys.values():
            referencing = self._referencing_columns(fk)
            if referencing is None:
                logger.debug(f"Foreign key {table.name}.{fk.name} does not reference a primary key")
            else:
                references[fk.name] = referencing

        count = 0
        for row in self.connection.execute(query):
            subject_uri = self.catalog.uri_of_row(row, table.primary_key, table)
            if subject_uri is None:
                logger.debug(f"Row of {table.name} skipped, its primary key is incomplete")
                continue
            subject = URIRef(subject_uri)
            self.graph.add((subject, RDF.type, URIRef(table.uri)))
            for column in table:
                self._add_value(subject, column, row_value(row, column.name))

            targets = {
                name: self.catalog.uri_of_row(
                    row, referencing, table.foreign_keys[name].foreign_table_name
                )
                for name, referencing in references.items()
            }
            for name, target in targets.items():
                if target is None:
                    continue
                fk = table.foreign_keys[name]
                predicate = OWL.sameAs if fk.subsumes_primary_key() else URIRef(fk.uri)
                self.graph.add((subject, predicate, URIRef(target)))
            for pair in table.foreign_key_pairs:
                first, second = targets.get(pair.first.name), targets.get(pair.second.name)
                if first is not None and second is not None:
                    self.graph.add((URIRef(first), URIRef(self.catalog.uri_of(pair)), URIRef(second)))
            count += 1
        logger.debug(f"{count} individuals generated for {table.name}")

    def _add_value(self, subject: URIRef, column: Column, value: Any) -> None:
        if value is None:
            return
        datatype = xsd_type(column.type_code)
        if datatype is None:
            return
        self.graph.add((subject, URIRef(column.uri), Literal(lexical_form(value), datatype=datatype)))
