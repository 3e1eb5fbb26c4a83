"""
Centralized constants for Model Auto Generator.

This module contains configuration defaults, the per-dialect raw type tables
used by the type mapper and the per-style ORM type tables used by the
renderer. Keeping them in one place makes it easy for contributors to add a
dialect or a target code style.
"""

import keyword
from typing import Dict, FrozenSet, Tuple


# =============================================================================
# CORE CONFIGURATION
# =============================================================================

class DefaultConfig:
    """Default configuration values."""

    STYLE = "sqlalchemy"
    OUTPUT_DIR = "models"
    MAX_WORKERS = 4
    DATABASE_ALIAS = "default"

    # Suffix appended to model names unless suppressed
    CAMEL_CASE_MODEL_SUFFIX = "Model"
    SNAKE_CASE_MODEL_SUFFIX = "_model"


class SupportedDialects:
    """SQL dialects the type mapper ships tables for."""

    MYSQL = "mysql"
    MARIADB = "mariadb"
    POSTGRES = "postgres"
    SQLITE = "sqlite"
    MSSQL = "mssql"

    ALL = [MYSQL, MARIADB, POSTGRES, SQLITE, MSSQL]

    # Django connection.vendor -> dialect tag
    DJANGO_VENDORS = {
        "postgresql": POSTGRES,
        "mysql": MYSQL,
        "sqlite": SQLITE,
        "microsoft": MSSQL,
    }

    # Common aliases accepted in configuration files
    ALIASES = {
        "postgresql": POSTGRES,
        "pg": POSTGRES,
        "sqlite3": SQLITE,
        "sqlserver": MSSQL,
    }


class CodeStyles:
    """Target code styles understood by the renderer."""

    SQLALCHEMY = "sqlalchemy"
    DJANGO = "django"
    SEQUELIZE_JS = "sequelize-js"
    SEQUELIZE_TS = "sequelize-ts"

    ALL = [SQLALCHEMY, DJANGO, SEQUELIZE_JS, SEQUELIZE_TS]
    PYTHON = [SQLALCHEMY, DJANGO]

    EXTENSIONS = {
        SQLALCHEMY: ".py",
        DJANGO: ".py",
        SEQUELIZE_JS: ".js",
        SEQUELIZE_TS: ".ts",
    }

    MODEL_TEMPLATES = {
        SQLALCHEMY: "sqlalchemy_model.py.j2",
        DJANGO: "django_model.py.j2",
        SEQUELIZE_JS: "sequelize_model.js.j2",
        SEQUELIZE_TS: "sequelize_model.ts.j2",
    }

    # Extra per-table outputs written to types_dir
    TYPINGS_TEMPLATES = {
        SEQUELIZE_TS: ("sequelize_attributes.d.ts.j2", ".d.ts"),
    }

    # Files rendered once per run from all definitions, written to dir
    PACKAGE_TEMPLATES = {
        SQLALCHEMY: [("sqlalchemy_base.py.j2", "_base.py"), ("python_package.py.j2", "__init__.py")],
        DJANGO: [("python_package.py.j2", "__init__.py")],
    }


class FileKinds:
    """Kinds of rendered files, used by the writer to pick a directory."""

    MODEL = "model"
    TYPINGS = "typings"
    PACKAGE = "package"


class DiagnosticCodes:
    """Codes attached to non-fatal mapping diagnostics."""

    UNKNOWN_TYPE = "unknown-type"
    ENUM_PARSE_FAILED = "enum-parse-failed"
    UNKNOWN_INDEX_COLUMN = "unknown-index-column"
    MODEL_NAME_COLLISION = "model-name-collision"
    FILE_NAME_COLLISION = "file-name-collision"
    ATTRIBUTE_NAME_COLLISION = "attribute-name-collision"
    DANGLING_REFERENCE = "dangling-reference"


PYTHON_KEYWORDS: FrozenSet[str] = frozenset(keyword.kwlist) | frozenset(keyword.softkwlist)

# Column names that carry no meaning of their own in a link table
LINK_TABLE_BOOKKEEPING_COLUMNS: FrozenSet[str] = frozenset({
    "created_at", "updated_at", "created", "modified",
    "creation_date", "modification_date", "timestamp",
})

# Default expressions evaluated by the database rather than literal values
EXPRESSION_DEFAULTS: FrozenSet[str] = frozenset({
    "current_timestamp", "current_date", "current_time",
    "localtimestamp", "localtime", "now()", "getdate()", "sysdatetime()",
    "gen_random_uuid()", "uuid_generate_v4()", "uuid()", "newid()",
})


# =============================================================================
# DIALECT TYPE TABLES
# =============================================================================

class LogicalTypes:
    """Logical type tags, mirrored by domain.models.LogicalType."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    BINARY = "binary"
    JSON = "json"
    ENUM = "enum"
    OTHER = "other"


def _table(**groups: Tuple[str, ...]) -> Dict[str, str]:
    """Flatten ``logical_type_value=(token, ...)`` groups into a lookup table."""
    table: Dict[str, str] = {}
    for logical_value, tokens in groups.items():
        for token in tokens:
            table[token] = logical_value
    return table


MYSQL_TYPES: Dict[str, str] = {
    # Parameterized tokens are looked up before the bare token
    "tinyint(1)": LogicalTypes.BOOLEAN,
    "bit(1)": LogicalTypes.BOOLEAN,
    **_table(
        boolean=("bool", "boolean"),
        number=(
            "tinyint", "smallint", "mediumint", "int", "integer", "bigint",
            "float", "double", "double precision", "real",
            "decimal", "dec", "numeric", "fixed", "bit", "year",
        ),
        string=(
            "char", "varchar", "tinytext", "text", "mediumtext", "longtext",
            "set",
        ),
        date=("date", "datetime", "timestamp", "time"),
        binary=(
            "binary", "varbinary", "tinyblob", "blob", "mediumblob", "longblob",
        ),
        json=("json",),
        enum=("enum",),
    ),
}

MARIADB_TYPES: Dict[str, str] = {
    **MYSQL_TYPES,
    "uuid": LogicalTypes.STRING,
    "inet4": LogicalTypes.STRING,
    "inet6": LogicalTypes.STRING,
}

POSTGRES_TYPES: Dict[str, str] = _table(
    number=(
        "smallint", "integer", "int", "int2", "int4", "int8", "bigint",
        "smallserial", "serial", "bigserial", "serial2", "serial4", "serial8",
        "real", "float4", "float8", "double precision", "numeric", "decimal",
        "money", "oid",
    ),
    boolean=("boolean", "bool"),
    string=(
        "character varying", "varchar", "character", "char", "bpchar", "text",
        "citext", "name", "uuid", "inet", "cidr", "macaddr", "macaddr8", "xml",
        "interval",
    ),
    date=(
        "date", "timestamp", "timestamp without time zone",
        "timestamp with time zone", "timestamptz", "time",
        "time without time zone", "time with time zone", "timetz",
    ),
    binary=("bytea",),
    json=("json", "jsonb"),
    enum=("enum",),
)

SQLITE_TYPES: Dict[str, str] = _table(
    number=(
        "integer", "int", "tinyint", "smallint", "mediumint", "bigint",
        "big int", "int2", "int8", "real", "double",
        "double precision", "float", "numeric", "decimal",
    ),
    boolean=("boolean", "bool"),
    string=(
        "text", "varchar", "char", "character", "nchar", "nvarchar",
        "varying character", "native character", "clob", "uuid",
    ),
    date=("date", "datetime", "timestamp", "time"),
    binary=("blob",),
    json=("json",),
)

MSSQL_TYPES: Dict[str, str] = _table(
    number=(
        "tinyint", "smallint", "int", "bigint", "decimal", "numeric",
        "money", "smallmoney", "float", "real",
    ),
    boolean=("bit",),
    string=(
        "char", "varchar", "nchar", "nvarchar", "text", "ntext",
        "uniqueidentifier", "xml",
    ),
    date=(
        "date", "datetime", "datetime2", "smalldatetime", "datetimeoffset",
        "time",
    ),
    binary=("binary", "varbinary", "image"),
)

DIALECT_TYPE_TABLES: Dict[str, Dict[str, str]] = {
    SupportedDialects.MYSQL: MYSQL_TYPES,
    SupportedDialects.MARIADB: MARIADB_TYPES,
    SupportedDialects.POSTGRES: POSTGRES_TYPES,
    SupportedDialects.SQLITE: SQLITE_TYPES,
    SupportedDialects.MSSQL: MSSQL_TYPES,
}

# Base types that carry precision/scale rather than a length
DECIMAL_BASE_TYPES: FrozenSet[str] = frozenset({
    "decimal", "dec", "numeric", "fixed", "money", "smallmoney",
})

# Base types that only ever hold auto-incrementing integers
SERIAL_BASE_TYPES: FrozenSet[str] = frozenset({
    "smallserial", "serial", "bigserial", "serial2", "serial4", "serial8",
})

# Type modifiers removed before the table lookup
TYPE_MODIFIERS: Tuple[str, ...] = ("unsigned", "signed", "zerofill")


# =============================================================================
# STYLE TYPE MAPS
# =============================================================================
# Each style maps a logical type to a default ORM type and may override it for
# specific base types. The renderer adds length/precision/enum arguments.

_TEXT_BASES = ("text", "tinytext", "mediumtext", "longtext", "clob", "ntext", "citext")
_BIG_INT_BASES = ("bigint", "int8", "bigserial", "serial8", "big int")
_SMALL_INT_BASES = ("smallint", "int2", "tinyint", "mediumint", "smallserial", "serial2")
_FLOAT_BASES = ("float", "double", "double precision", "real", "float4", "float8")
_TIME_BASES = ("time", "time without time zone", "time with time zone", "timetz")
_UUID_BASES = ("uuid", "uniqueidentifier")


def _overrides(value: str, bases: Tuple[str, ...]) -> Dict[str, str]:
    return {base: value for base in bases}


STYLE_TYPE_MAPS: Dict[str, Dict[str, Dict[str, str]]] = {
    CodeStyles.SQLALCHEMY: {
        "logical": {
            LogicalTypes.STRING: "String",
            LogicalTypes.NUMBER: "Integer",
            LogicalTypes.BOOLEAN: "Boolean",
            LogicalTypes.DATE: "DateTime",
            LogicalTypes.BINARY: "LargeBinary",
            LogicalTypes.JSON: "JSON",
            LogicalTypes.ENUM: "Enum",
            LogicalTypes.OTHER: "NullType",
        },
        "base": {
            **_overrides("Text", _TEXT_BASES),
            **_overrides("BigInteger", _BIG_INT_BASES),
            **_overrides("SmallInteger", _SMALL_INT_BASES),
            **_overrides("Numeric", tuple(DECIMAL_BASE_TYPES)),
            **_overrides("Float", _FLOAT_BASES),
            **_overrides("Time", _TIME_BASES),
            **_overrides("Uuid", _UUID_BASES),
            "date": "Date",
        },
    },
    CodeStyles.DJANGO: {
        "logical": {
            LogicalTypes.STRING: "CharField",
            LogicalTypes.NUMBER: "IntegerField",
            LogicalTypes.BOOLEAN: "BooleanField",
            LogicalTypes.DATE: "DateTimeField",
            LogicalTypes.BINARY: "BinaryField",
            LogicalTypes.JSON: "JSONField",
            LogicalTypes.ENUM: "CharField",
            LogicalTypes.OTHER: "TextField",
        },
        "base": {
            **_overrides("TextField", _TEXT_BASES),
            **_overrides("BigIntegerField", _BIG_INT_BASES),
            **_overrides("SmallIntegerField", _SMALL_INT_BASES),
            **_overrides("DecimalField", tuple(DECIMAL_BASE_TYPES)),
            **_overrides("FloatField", _FLOAT_BASES),
            **_overrides("TimeField", _TIME_BASES),
            **_overrides("UUIDField", _UUID_BASES),
            "date": "DateField",
        },
    },
    CodeStyles.SEQUELIZE_JS: {
        "logical": {
            LogicalTypes.STRING: "STRING",
            LogicalTypes.NUMBER: "INTEGER",
            LogicalTypes.BOOLEAN: "BOOLEAN",
            LogicalTypes.DATE: "DATE",
            LogicalTypes.BINARY: "BLOB",
            LogicalTypes.JSON: "JSON",
            LogicalTypes.ENUM: "ENUM",
            # Sequelize accepts the raw SQL type string for anything else
            LogicalTypes.OTHER: "",
        },
        "base": {
            **_overrides("TEXT", _TEXT_BASES),
            **_overrides("BIGINT", _BIG_INT_BASES),
            **_overrides("SMALLINT", ("smallint", "int2", "smallserial", "serial2")),
            "tinyint": "TINYINT",
            "mediumint": "MEDIUMINT",
            **_overrides("DECIMAL", tuple(DECIMAL_BASE_TYPES)),
            **_overrides("FLOAT", ("float", "float4")),
            **_overrides("DOUBLE", ("double", "double precision", "float8")),
            "real": "REAL",
            **_overrides("TIME", _TIME_BASES),
            **_overrides("UUID", _UUID_BASES),
            "date": "DATEONLY",
            "char": "CHAR",
            "jsonb": "JSONB",
        },
    },
}
STYLE_TYPE_MAPS[CodeStyles.SEQUELIZE_TS] = STYLE_TYPE_MAPS[CodeStyles.SEQUELIZE_JS]

# TypeScript attribute types for the generated typings
TYPESCRIPT_TYPES: Dict[str, str] = {
    LogicalTypes.STRING: "string",
    LogicalTypes.NUMBER: "number",
    LogicalTypes.BOOLEAN: "boolean",
    LogicalTypes.DATE: "Date",
    LogicalTypes.BINARY: "Buffer",
    LogicalTypes.JSON: "object",
    LogicalTypes.ENUM: "string",
    LogicalTypes.OTHER: "any",
}
