"""Constants for rdb-ontology."""

# Introspection filters (SQL LIKE patterns, as JDBC metadata calls take them)
DEFAULT_SCHEMA_PATTERN = "%"
DEFAULT_TABLE_PATTERN = "%"
DEFAULT_TABLE_TYPES = ("TABLE",)
SUPPORTED_TABLE_TYPES = ("TABLE", "VIEW")

# Namespaces derived from the connection URL when not configured
TBOX_NAMESPACE_SUFFIX = "/cross/tbox#"
ABOX_NAMESPACE_SUFFIX = "/cross/abox#"

# Serialization format of the dumped graph (any rdflib serializer name)
DEFAULT_OUTPUT_SYNTAX = "turtle"

# Access privileges
PUBLIC_GRANTEE = "PUBLIC"
SELECT_PRIVILEGE = "SELECT"

# Dialects exposing information_schema.table_privileges / column_privileges
PRIVILEGE_DIALECTS = ("postgresql", "mysql", "mariadb", "mssql", "snowflake")

# Some drivers report this string instead of a NULL foreign key name
UNAVAILABLE_FK_NAMES = frozenset({"not_available"})

# Prefix for foreign key names synthesized from the referenced table/column
SYNTHETIC_FK_PREFIX = "__fk_"

# Default qualified-name separator between catalog and table
DEFAULT_CATALOG_SEPARATOR = "."

# System schemas to exclude when the schema pattern is a wildcard
SYSTEM_SCHEMAS = {
    "postgresql": ["information_schema", "pg_catalog", "pg_toast"],
    "mysql": ["information_schema", "mysql", "performance_schema", "sys"],
    "mariadb": ["information_schema", "mysql", "performance_schema", "sys"],
    "mssql": ["INFORMATION_SCHEMA", "sys", "guest"],
    "snowflake": ["INFORMATION_SCHEMA"],
    "sqlite": ["temp"],
}

# Verbosity of build diagnostics (0 means silent)
MAX_VERBOSITY = 5
