"""
Schema introspection boundary for Model Auto Generator.

Everything driver shaped is turned into ``TableSchema`` objects here, so the
mapping stage never sees a driver-specific structure. Two sources exist: a
schema snapshot file (YAML or JSON) and a live database reached through
Django (see ``introspection_django``).
"""

import json
import logging
from abc import ABC, abstractmethod
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

import yaml

from model_auto_generator.constants import DefaultConfig
from model_auto_generator.domain.models import (
    RawColumn,
    RawForeignKey,
    RawIndex,
    TableSchema,
)
from model_auto_generator.exceptions import SchemaIntrospectionError, TableNotFoundError


logger = logging.getLogger(__name__)

# Snapshot keys accepted for each field, snake_case first
_COLUMN_KEYS = {
    "raw_type": ("raw_type", "type", "data_type"),
    "nullable": ("nullable", "allowNull", "allow_null", "null"),
    "default_value": ("default_value", "default", "defaultValue"),
    "comment": ("comment",),
    "primary_key": ("primary_key", "primaryKey"),
}
_INDEX_KEYS = {
    "columns": ("columns", "fields"),
    "unique": ("unique",),
    "primary": ("primary", "primary_key", "primaryKey"),
}
_FOREIGN_KEY_KEYS = {
    "column_name": ("column_name", "columnName", "column"),
    "referenced_table": ("referenced_table", "referencedTableName", "references_table"),
    "referenced_column": ("referenced_column", "referencedColumnName", "references_column"),
    "constraint_name": ("constraint_name", "constraintName", "name"),
}


def _pick(data: Mapping[str, Any], keys: Sequence[str], default: Any = None) -> Any:
    for key in keys:
        if key in data:
            return data[key]
    return default


# --- Table names ---


def normalize_table_name(item: Any) -> str:
    """
    Turn one entry of a driver's table listing into a plain table name.

    Example:
        >>> normalize_table_name({"tableName": "users", "schema": "public"})
        'users'
        >>> normalize_table_name(("public", "users"))
        'users'
    """
    if isinstance(item, str):
        return item
    if isinstance(item, Mapping):
        name = _pick(item, ("tableName", "table_name", "name"))
        if isinstance(name, str):
            return name
    elif isinstance(item, (tuple, list)) and item and isinstance(item[-1], str):
        # (schema, name) pairs
        return item[-1]
    elif isinstance(getattr(item, "name", None), str):
        return item.name
    raise SchemaIntrospectionError(f"Cannot read a table name from {item!r}")


def select_table_names(
    all_names: Iterable[str],
    tables: Optional[Sequence[str]] = None,
    skip_tables: Optional[Sequence[str]] = None,
) -> List[str]:
    """
    Apply the ``tables`` / ``skip_tables`` selection to the available tables.

    Args:
        all_names: Every table the source reports
        tables: Use exactly these tables, in this order
        skip_tables: Use every table except these

    Returns:
        Selected table names

    Raises:
        TableNotFoundError: If a named table does not exist
    """
    available = list(all_names)
    available_set = set(available)

    if tables is not None:
        for table in tables:
            if table not in available_set:
                raise TableNotFoundError(table, available)
        return list(tables)

    if skip_tables is not None:
        for table in skip_tables:
            if table not in available_set:
                raise TableNotFoundError(table, available)
        skipped = set(skip_tables)
        for table in skip_tables:
            logger.debug(f"Excluding table: {table}")
        return [name for name in available if name not in skipped]

    return available


# --- Snapshot parsing ---


def _column_from_dict(name: Optional[str], data: Mapping[str, Any]) -> RawColumn:
    column_name = data.get("name", name)
    if not column_name:
        raise SchemaIntrospectionError(f"Column entry without a name: {dict(data)!r}")
    known = {key for keys in _COLUMN_KEYS.values() for key in keys} | {"name"}
    dialect_meta = {key: value for key, value in data.items() if key not in known}
    nullable = _pick(data, _COLUMN_KEYS["nullable"], True)
    return RawColumn(
        name=column_name,
        raw_type=str(_pick(data, _COLUMN_KEYS["raw_type"], "")),
        nullable=bool(nullable),
        default_value=_pick(data, _COLUMN_KEYS["default_value"]),
        comment=_pick(data, _COLUMN_KEYS["comment"]),
        dialect_meta=dialect_meta,
    )


def _index_columns(fields_value: Any) -> List[str]:
    columns = []
    for entry in fields_value or []:
        if isinstance(entry, Mapping):
            # Sequelize showIndex reports {attribute, order, length}
            entry = _pick(entry, ("attribute", "name", "column"))
        if entry:
            columns.append(str(entry))
    return columns


def table_schema_from_dict(name: str, data: Mapping[str, Any]) -> TableSchema:
    """
    Build a ``TableSchema`` from a snapshot entry.

    ``columns`` may be a list of column dicts or a ``{column: {...}}`` mapping
    (the shape of Sequelize's ``describeTable``). Keys are accepted in
    snake_case or camelCase; column keys that are not recognized end up in
    ``dialect_meta``. Columns flagged ``primary_key`` produce a primary index
    when the entry lists none.
    """
    if not isinstance(data, Mapping):
        raise SchemaIntrospectionError(f"Table entry must be a mapping, got {type(data).__name__}", table=name)

    table_name = data.get("name", name)
    raw_columns = data.get("columns") or data.get("structures") or []
    if isinstance(raw_columns, Mapping):
        columns = [_column_from_dict(col_name, col) for col_name, col in raw_columns.items()]
        column_flags = list(raw_columns.items())
    else:
        columns = [_column_from_dict(None, col) for col in raw_columns]
        column_flags = [(column.name, col) for column, col in zip(columns, raw_columns)]

    indexes = [
        RawIndex(
            name=index.get("name"),
            columns=_index_columns(_pick(index, _INDEX_KEYS["columns"])),
            unique=bool(_pick(index, _INDEX_KEYS["unique"], False)),
            primary=bool(_pick(index, _INDEX_KEYS["primary"], False)),
        )
        for index in data.get("indexes") or []
    ]

    if not any(index.primary for index in indexes):
        flagged = [col_name for col_name, col in column_flags if _pick(col, _COLUMN_KEYS["primary_key"], False)]
        if flagged:
            indexes.insert(0, RawIndex(name="PRIMARY", columns=flagged, unique=True, primary=True))

    foreign_keys = [
        RawForeignKey(
            column_name=_pick(fk, _FOREIGN_KEY_KEYS["column_name"]),
            referenced_table=_pick(fk, _FOREIGN_KEY_KEYS["referenced_table"]),
            referenced_column=_pick(fk, _FOREIGN_KEY_KEYS["referenced_column"]),
            constraint_name=_pick(fk, _FOREIGN_KEY_KEYS["constraint_name"]),
        )
        for fk in _pick(data, ("foreign_keys", "foreignKeys"), None) or []
    ]

    return TableSchema(name=table_name, columns=columns, indexes=indexes, foreign_keys=foreign_keys)


@dataclass
class SchemaSnapshot:
    """A parsed snapshot file."""

    dialect: Optional[str] = None
    tables: Dict[str, TableSchema] = field(default_factory=dict)


def load_schema_snapshot(path: str) -> SchemaSnapshot:
    """
    Load a YAML or JSON schema snapshot.

    The file holds ``{dialect, tables: {name: {columns, indexes, foreign_keys}}}``.

    Raises:
        SchemaIntrospectionError: If the file is missing, unparsable or malformed
    """
    snapshot_path = Path(path)
    try:
        text = snapshot_path.read_text(encoding="utf-8")
    except OSError as e:
        raise SchemaIntrospectionError(
            f"Cannot read schema snapshot {path}: {e}",
            suggestions=["Check the 'snapshot' path in the configuration"],
        ) from e

    try:
        if snapshot_path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (ValueError, yaml.YAMLError) as e:
        raise SchemaIntrospectionError(f"Cannot parse schema snapshot {path}: {e}") from e

    if not isinstance(data, Mapping) or not isinstance(data.get("tables"), Mapping):
        raise SchemaIntrospectionError(
            f"Schema snapshot {path} must be a mapping with a 'tables' mapping",
            suggestions=["See the README for the snapshot format"],
        )

    tables = {
        str(name): table_schema_from_dict(str(name), table)
        for name, table in data["tables"].items()
    }
    logger.debug(f"Loaded snapshot {path} with {len(tables)} table(s)")
    return SchemaSnapshot(dialect=data.get("dialect"), tables=tables)


# --- Introspectors ---


class SchemaIntrospector(ABC):
    """
    Source of raw per-table schema information.

    Implementations report the dialect, list tables and describe one table at
    a time. ``describe_table`` may be called from several threads at once.
    """

    dialect: Optional[str] = None

    @abstractmethod
    def list_tables(self) -> List[str]:
        """Names of every table the source can describe."""

    @abstractmethod
    def describe_table(self, table_name: str) -> TableSchema:
        """Columns, indexes and foreign keys of one table."""

    def close(self) -> None:
        """Release connections; called once the run no longer needs the source."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class SnapshotIntrospector(SchemaIntrospector):
    """Introspector reading a schema snapshot instead of a live database."""

    def __init__(self, path: Optional[str] = None, snapshot: Optional[SchemaSnapshot] = None):
        if snapshot is None:
            if path is None:
                raise ValueError("SnapshotIntrospector needs a path or a snapshot")
            snapshot = load_schema_snapshot(path)
        self.snapshot = snapshot
        self.dialect = snapshot.dialect

    def list_tables(self) -> List[str]:
        return list(self.snapshot.tables)

    def describe_table(self, table_name: str) -> TableSchema:
        try:
            return self.snapshot.tables[table_name]
        except KeyError:
            raise SchemaIntrospectionError(
                f"Table '{table_name}' is not part of the snapshot", table=table_name
            ) from None


def gather_tables(
    introspector: SchemaIntrospector,
    table_names: Sequence[str],
    max_workers: int = DefaultConfig.MAX_WORKERS,
) -> Dict[str, TableSchema]:
    """
    Describe every table concurrently and wait for all of them.

    All or nothing: the first failure cancels the calls that have not started
    and is raised as ``SchemaIntrospectionError``.

    Returns:
        Dict of table name to TableSchema, in ``table_names`` order
    """
    if not table_names:
        return {}

    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="describe") as executor:
        futures = {
            executor.submit(introspector.describe_table, name): name
            for name in table_names
        }
        done, pending = wait(futures, return_when=FIRST_EXCEPTION)
        failed = [future for future in done if future.exception() is not None]
        if failed:
            for future in pending:
                future.cancel()
            future = failed[0]
            table = futures[future]
            error = future.exception()
            if isinstance(error, SchemaIntrospectionError):
                raise error
            raise SchemaIntrospectionError(
                f"Could not describe table '{table}': {error}", table=table
            ) from error

    results = {futures[future]: future.result() for future in futures}
    return {name: results[name] for name in table_names}
