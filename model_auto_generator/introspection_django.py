import logging
import threading
import django
from django.db import connections, DatabaseError, DEFAULT_DB_ALIAS
from django.conf import settings
from typing import List, Dict, Any, Optional, Tuple

from model_auto_generator.constants import SupportedDialects
from model_auto_generator.domain.models import RawColumn, RawForeignKey, RawIndex, TableSchema
from model_auto_generator.exceptions import SchemaIntrospectionError
from model_auto_generator.introspection import SchemaIntrospector, normalize_table_name


logger = logging.getLogger(__name__)

# --- Vendor specific raw type queries ---
# Django's FieldInfo.type_code is a driver type code (an OID on PostgreSQL), so
# the declared SQL type is read from the catalog instead.

POSTGRES_COLUMN_TYPES_SQL = """
    SELECT a.attname,
           format_type(a.atttypid, a.atttypmod),
           (SELECT array_agg(e.enumlabel::text ORDER BY e.enumsortorder)
              FROM pg_enum e WHERE e.enumtypid = a.atttypid)
      FROM pg_attribute a
     WHERE a.attrelid = %s::regclass
       AND a.attnum > 0
       AND NOT a.attisdropped
"""

MYSQL_COLUMN_TYPES_SQL = """
    SELECT column_name, column_type
      FROM information_schema.columns
     WHERE table_schema = DATABASE() AND table_name = %s
"""

INFORMATION_SCHEMA_COLUMN_TYPES_SQL = """
    SELECT column_name, data_type, character_maximum_length, numeric_precision, numeric_scale
      FROM information_schema.columns
     WHERE table_name = %s
"""

INFORMATION_SCHEMA_SCHEMA_FILTER = "\n       AND table_schema = %s"

# Statements switching the session to another schema; Django's own
# introspection then reads that schema
SCHEMA_SWITCH_SQL = {
    'postgresql': "SET search_path TO {}",
    'mysql': "USE {}",
}

# --- Django Setup Helper ---
_django_setup_done = False


def setup_django(db_settings: Dict[str, Any], secret_key: str):
    """Configures minimal Django settings and runs django.setup()."""
    global _django_setup_done
    if _django_setup_done or settings.configured:
        logger.debug("Django setup already performed.")
        _django_setup_done = True
        return

    logger.info("Configuring Django settings for introspection...")
    # --- Convert Pydantic models to plain dicts for Django settings ---
    plain_db_settings: Dict[str, Dict[str, Any]] = {}
    for alias, db_model in db_settings.items():
        if hasattr(db_model, 'model_dump') and callable(db_model.model_dump):
            # Missing keys are handled by Django itself
            plain_db_settings[alias] = db_model.model_dump(exclude_none=True)
        elif isinstance(db_model, dict):
            plain_db_settings[alias] = db_model
        else:
            raise TypeError(f"Invalid database settings type for alias '{alias}': {type(db_model).__name__}")
    logger.debug(f"Using DB aliases for Django: {', '.join(plain_db_settings)}")

    settings.configure(
        SECRET_KEY=secret_key,
        DATABASES=plain_db_settings,
        TIME_ZONE='UTC',  # Avoid timezone warnings
        USE_TZ=True,
        DEFAULT_AUTO_FIELD='django.db.models.BigAutoField',
    )
    django.setup()
    _django_setup_done = True
    logger.info("Django setup complete.")


# --- Helper Functions ---
def constraints_to_raw(constraints: Dict[str, Dict[str, Any]]) -> Tuple[List[RawIndex], List[RawForeignKey]]:
    """
    Convert the output of Django's ``get_constraints`` into raw indexes and
    foreign keys.

    Check constraints are dropped. Composite foreign keys are dropped too,
    since Django reports only a single target column for them.
    """
    indexes: List[RawIndex] = []
    foreign_keys: List[RawForeignKey] = []
    for name, c_data in constraints.items():
        columns = list(c_data.get('columns') or [])
        target = c_data.get('foreign_key')
        if target and isinstance(target, tuple):
            if len(columns) == 1:
                target_table, target_column = target
                foreign_keys.append(RawForeignKey(
                    column_name=columns[0],
                    referenced_table=target_table,
                    referenced_column=target_column,
                    constraint_name=name,
                ))
            else:
                logger.warning(f"Skipping composite foreign key '{name}' on {columns}")
            continue

        if c_data.get('primary_key'):
            indexes.append(RawIndex(name=name, columns=columns, unique=bool(c_data.get('unique')), primary=True))
        elif c_data.get('unique') or c_data.get('index'):
            indexes.append(RawIndex(name=name, columns=columns, unique=bool(c_data.get('unique'))))
    return indexes, foreign_keys


def use_schema(conn, cursor, schema: Optional[str]) -> bool:
    """
    Point the session at ``schema`` where the backend can switch schemas.

    Returns:
        True if a switch statement was executed
    """
    if not schema:
        return False
    statement = SCHEMA_SWITCH_SQL.get(conn.vendor)
    if statement is None:
        return False
    cursor.execute(statement.format(conn.ops.quote_name(schema)))
    return True


def _column_meta(description) -> Dict[str, Any]:
    """Backend specific FieldInfo extras worth keeping."""
    meta: Dict[str, Any] = {}
    for attr in ('is_autofield', 'extra', 'is_unsigned', 'collation', 'has_json_constraint'):
        value = getattr(description, attr, None)
        if value not in (None, ''):
            meta[attr] = value
    return meta


def _information_schema_type(data_type: str, length, precision, scale) -> str:
    if length == -1:
        return f"{data_type}(max)"
    if length:
        return f"{data_type}({length})"
    if data_type in ('decimal', 'numeric') and precision is not None:
        return f"{data_type}({precision},{scale or 0})"
    return data_type


class DjangoSchemaIntrospector(SchemaIntrospector):
    """Introspects a live database through Django's ``connection.introspection``."""

    def __init__(self, db_alias: str = DEFAULT_DB_ALIAS, schema: Optional[str] = None):
        if not _django_setup_done:
            raise SchemaIntrospectionError(
                "Django has not been set up. Call setup_django() first.",
                suggestions=["Provide 'databases' in the configuration"],
            )
        self.db_alias = db_alias
        self.schema = schema
        self._owner_thread = threading.get_ident()
        vendor = connections[db_alias].vendor
        self.dialect = SupportedDialects.DJANGO_VENDORS.get(vendor, vendor)
        logger.debug(f"Using Django backend '{vendor}' for alias '{db_alias}'")
        if schema and vendor == 'sqlite':
            logger.warning(f"SQLite databases have no schemas; '{schema}' is ignored.")

    def list_tables(self) -> List[str]:
        """Tables of the database; views are skipped."""
        conn = connections[self.db_alias]
        try:
            with conn.cursor() as cursor:
                use_schema(conn, cursor, self.schema)
                all_db_items = conn.introspection.get_table_list(cursor)
        except DatabaseError as e:
            raise SchemaIntrospectionError(f"Could not list tables: {e}") from e

        tables = []
        for item in all_db_items:
            table_name = normalize_table_name(item)
            item_type = getattr(item, 'type', 't')
            if item_type != 't':
                logger.debug(f"Skipping item '{table_name}' (type: {item_type}).")
                continue
            tables.append(table_name)
        logger.info(f"Found {len(tables)} tables in database.")
        return tables

    def describe_table(self, table_name: str) -> TableSchema:
        # Django connections are thread local; worker threads get their own
        conn = connections[self.db_alias]
        introspection = conn.introspection
        try:
            with conn.cursor() as cursor:
                use_schema(conn, cursor, self.schema)
                table_description = introspection.get_table_description(cursor, table_name)
                constraints = introspection.get_constraints(cursor, table_name)
                raw_types, enum_values = self._raw_types(conn, cursor, table_name, self.schema)
                indexes, foreign_keys = constraints_to_raw(constraints)
                if not foreign_keys:
                    foreign_keys = self._relations(introspection, cursor, table_name)
        except DatabaseError as e:
            raise SchemaIntrospectionError(f"Could not describe table '{table_name}': {e}", table=table_name) from e
        finally:
            if threading.get_ident() != self._owner_thread:
                conn.close()

        columns = []
        for description in table_description:
            meta = _column_meta(description)
            if description.name in enum_values:
                meta['enum_values'] = enum_values[description.name]
            columns.append(RawColumn(
                name=description.name,
                raw_type=raw_types.get(description.name) or str(description.type_code),
                nullable=bool(description.null_ok),
                default_value=getattr(description, 'default', None),
                comment=getattr(description, 'comment', None),
                dialect_meta=meta,
            ))
        logger.debug(f"Described table '{table_name}': {len(columns)} columns, {len(indexes)} indexes")
        return TableSchema(name=table_name, columns=columns, indexes=indexes, foreign_keys=foreign_keys)

    def close(self) -> None:
        connections[self.db_alias].close()

    @staticmethod
    def _relations(introspection, cursor, table_name: str) -> List[RawForeignKey]:
        try:
            # {column_name: (referenced_column, referenced_table)}
            relations = introspection.get_relations(cursor, table_name)
        except NotImplementedError:
            return []
        return [
            RawForeignKey(column_name=column, referenced_table=target_table, referenced_column=target_column)
            for column, (target_column, target_table) in relations.items()
        ]

    @staticmethod
    def _raw_types(
        conn, cursor, table_name: str, schema: Optional[str] = None
    ) -> Tuple[Dict[str, str], Dict[str, List[str]]]:
        """Declared SQL types per column, plus enum labels where the backend has them."""
        raw_types: Dict[str, str] = {}
        enum_values: Dict[str, List[str]] = {}
        if conn.vendor == 'postgresql':
            cursor.execute(POSTGRES_COLUMN_TYPES_SQL, [conn.ops.quote_name(table_name)])
            for name, type_string, labels in cursor.fetchall():
                raw_types[name] = type_string
                if labels:
                    enum_values[name] = list(labels)
        elif conn.vendor == 'mysql':
            cursor.execute(MYSQL_COLUMN_TYPES_SQL, [table_name])
            for name, column_type in cursor.fetchall():
                raw_types[name] = column_type.decode() if isinstance(column_type, bytes) else column_type
        elif conn.vendor == 'sqlite':
            # type_code already holds the declared type
            pass
        else:
            if schema:
                cursor.execute(
                    INFORMATION_SCHEMA_COLUMN_TYPES_SQL + INFORMATION_SCHEMA_SCHEMA_FILTER, [table_name, schema]
                )
            else:
                cursor.execute(INFORMATION_SCHEMA_COLUMN_TYPES_SQL, [table_name])
            for name, data_type, length, precision, scale in cursor.fetchall():
                raw_types[name] = _information_schema_type(data_type, length, precision, scale)
        return raw_types, enum_values
