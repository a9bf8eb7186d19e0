"""rdb-ontology - a relational schema catalog with reversible URIs, for OWL generation."""

__version__ = "0.1.0"
__author__ = "rdb-ontology Contributors"
__description__ = "Relational database introspection into an immutable catalog, with TBox and ABox generation"

# Export main components for easier imports
from .catalog import Catalog
from .catalog_builder import CatalogBuilder, build_catalog
from .config import BuildParameters, config_manager
from .encoding import Encoding, PaEncoding, RowReference
from .errors import CatalogError, CodecError, ConnectionError, IntegrityError
from .model import Column, ColumnSet, ForeignKey, ForeignKeyPair, PrimaryKey, SqlNaming, Table
from .ontology_generator import ABoxGenerator, LanguageLevel, TBoxGenerator

__all__ = [
    "Catalog",
    "CatalogBuilder",
    "build_catalog",
    "BuildParameters",
    "config_manager",
    "Encoding",
    "PaEncoding",
    "RowReference",
    "CatalogError",
    "CodecError",
    "ConnectionError",
    "IntegrityError",
    "Column",
    "ColumnSet",
    "ForeignKey",
    "ForeignKeyPair",
    "PrimaryKey",
    "SqlNaming",
    "Table",
    "ABoxGenerator",
    "LanguageLevel",
    "TBoxGenerator",
    "__version__",
    "__description__",
]
