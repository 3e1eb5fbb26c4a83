"""
Tests for schema introspection: snapshots, table selection, concurrent
describe calls and the Django backed introspector.
"""

import json
import threading
import unittest
from collections import namedtuple
from unittest import mock

import pytest

from model_auto_generator.domain.definitions import build_definitions
from model_auto_generator.domain.models import AssociationKind, LogicalType, TableSchema
from model_auto_generator.domain.relationships import distinct_foreign_keys
from model_auto_generator.exceptions import SchemaIntrospectionError, TableNotFoundError
from model_auto_generator.introspection import (
    SchemaIntrospector,
    SnapshotIntrospector,
    gather_tables,
    load_schema_snapshot,
    normalize_table_name,
    select_table_names,
    table_schema_from_dict,
)
from model_auto_generator.introspection_django import (
    DjangoSchemaIntrospector,
    constraints_to_raw,
    use_schema,
)


TableInfo = namedtuple("TableInfo", ["name", "type"])


class TestNormalizeTableName(unittest.TestCase):
    def test_driver_shapes(self):
        self.assertEqual(normalize_table_name("users"), "users")
        self.assertEqual(normalize_table_name({"tableName": "users", "schema": "public"}), "users")
        self.assertEqual(normalize_table_name({"table_name": "users"}), "users")
        self.assertEqual(normalize_table_name(("public", "users")), "users")
        self.assertEqual(normalize_table_name(TableInfo("users", "t")), "users")

    def test_unreadable_item(self):
        with self.assertRaises(SchemaIntrospectionError):
            normalize_table_name(42)


class TestSelectTableNames(unittest.TestCase):
    available = ["user", "post", "tag"]

    def test_all_tables_by_default(self):
        self.assertEqual(select_table_names(self.available), ["user", "post", "tag"])

    def test_include_list_keeps_its_order(self):
        self.assertEqual(select_table_names(self.available, tables=["tag", "user"]), ["tag", "user"])

    def test_skip_list(self):
        self.assertEqual(select_table_names(self.available, skip_tables=["post"]), ["user", "tag"])

    def test_unknown_table(self):
        with self.assertRaises(TableNotFoundError) as ctx:
            select_table_names(self.available, tables=["comment"])
        self.assertEqual(ctx.exception.context["table"], "comment")

    def test_unknown_skipped_table(self):
        with self.assertRaises(TableNotFoundError):
            select_table_names(self.available, skip_tables=["comment"])


class TestTableSchemaFromDict(unittest.TestCase):
    def test_column_list_with_primary_flag(self):
        schema = table_schema_from_dict("book", {
            "columns": [
                {"name": "id", "type": "integer", "nullable": False, "primary_key": True},
                {"name": "isbn", "data_type": "char(13)", "collation": "C"},
            ],
        })
        self.assertEqual(schema.column_names, ["id", "isbn"])
        self.assertEqual(schema.columns[1].raw_type, "char(13)")
        self.assertEqual(schema.columns[1].dialect_meta, {"collation": "C"})
        (primary,) = schema.indexes
        self.assertTrue(primary.primary)
        self.assertEqual(primary.columns, ["id"])

    def test_declared_primary_index_is_not_duplicated(self):
        schema = table_schema_from_dict("book", {
            "columns": {"id": {"type": "integer", "primaryKey": True}},
            "indexes": [{"name": "book_pkey", "columns": ["id"], "primary": True, "unique": True}],
        })
        self.assertEqual([index.name for index in schema.indexes], ["book_pkey"])

    def test_not_a_mapping(self):
        with self.assertRaises(SchemaIntrospectionError):
            table_schema_from_dict("book", ["id"])

    def test_column_without_a_name(self):
        with self.assertRaises(SchemaIntrospectionError):
            table_schema_from_dict("book", {"columns": [{"type": "integer"}]})


def test_load_yaml_snapshot(snapshot_file):
    snapshot = load_schema_snapshot(str(snapshot_file))
    assert snapshot.dialect == "postgres"
    assert list(snapshot.tables) == ["author", "book"]

    author = snapshot.tables["author"]
    assert author.column_names == ["id", "full_name", "mood"]
    assert author.columns[0].nullable is False
    assert author.columns[2].dialect_meta == {"special": ["happy", "sad"]}
    assert author.indexes[0].columns == ["id"]

    book = snapshot.tables["book"]
    assert book.indexes[1].columns == ["author_id"]
    assert book.foreign_keys[0].referenced_table == "author"


def test_load_json_snapshot(tmp_path, snapshot_data):
    path = tmp_path / "schema.json"
    path.write_text(json.dumps(snapshot_data), encoding="utf-8")
    assert list(load_schema_snapshot(str(path)).tables) == ["author", "book"]


def test_snapshot_definitions_end_to_end(snapshot_file):
    introspector = SnapshotIntrospector(str(snapshot_file))
    tables = gather_tables(introspector, introspector.list_tables())
    definitions = build_definitions(tables, dialect=introspector.dialect)

    author = definitions["author"]
    assert author.attributes[0].auto_increment
    assert author.attributes[0].default_value is None
    assert author.attributes[1].type_info.length == 120
    assert author.attributes[2].logical_type == LogicalType.ENUM

    book = definitions["book"]
    assert book.attributes[2].default_is_expression
    assert [a.kind for a in book.associations] == [AssociationKind.BELONGS_TO]
    assert [a.kind for a in author.associations] == [AssociationKind.HAS_MANY]


@pytest.mark.parametrize(
    "content, suffix",
    [
        ("tables: [unclosed", ".yaml"),
        ("{not json", ".json"),
        ("- just\n- a list\n", ".yaml"),
        ("dialect: mysql\n", ".yaml"),
    ],
)
def test_malformed_snapshots(tmp_path, content, suffix):
    path = tmp_path / f"schema{suffix}"
    path.write_text(content, encoding="utf-8")
    with pytest.raises(SchemaIntrospectionError):
        load_schema_snapshot(str(path))


def test_missing_snapshot(tmp_path):
    with pytest.raises(SchemaIntrospectionError):
        load_schema_snapshot(str(tmp_path / "nope.yaml"))


def test_snapshot_introspector_unknown_table(snapshot_file):
    with pytest.raises(SchemaIntrospectionError):
        SnapshotIntrospector(str(snapshot_file)).describe_table("publisher")


# --- gather_tables ---


class RecordingIntrospector(SchemaIntrospector):
    """Introspector returning empty tables, failing on request."""

    dialect = "mysql"

    def __init__(self, fail_on=None, error=None):
        self.fail_on = fail_on
        self.error = error
        self.threads = set()
        self.closed = False

    def list_tables(self):
        return ["a", "b", "c", "d"]

    def describe_table(self, table_name):
        self.threads.add(threading.get_ident())
        if table_name == self.fail_on:
            raise self.error
        return TableSchema(name=table_name)

    def close(self):
        self.closed = True


class TestGatherTables(unittest.TestCase):
    def test_results_follow_requested_order(self):
        tables = gather_tables(RecordingIntrospector(), ["d", "a", "c"], max_workers=3)
        self.assertEqual(list(tables), ["d", "a", "c"])
        self.assertEqual(tables["a"].name, "a")

    def test_empty_selection(self):
        self.assertEqual(gather_tables(RecordingIntrospector(), []), {})

    def test_introspection_errors_propagate(self):
        error = SchemaIntrospectionError("boom", table="b")
        with self.assertRaises(SchemaIntrospectionError) as ctx:
            gather_tables(RecordingIntrospector(fail_on="b", error=error), ["a", "b", "c"])
        self.assertIs(ctx.exception, error)

    def test_other_errors_are_wrapped(self):
        introspector = RecordingIntrospector(fail_on="c", error=RuntimeError("connection reset"))
        with self.assertRaises(SchemaIntrospectionError) as ctx:
            gather_tables(introspector, ["a", "b", "c"])
        self.assertEqual(ctx.exception.context["table"], "c")
        self.assertIsInstance(ctx.exception.__cause__, RuntimeError)

    def test_runs_on_worker_threads(self):
        introspector = RecordingIntrospector()
        gather_tables(introspector, ["a", "b"], max_workers=2)
        self.assertNotIn(threading.get_ident(), introspector.threads)

    def test_context_manager_closes(self):
        with RecordingIntrospector() as introspector:
            pass
        self.assertTrue(introspector.closed)


# --- Django ---


class TestConstraintsToRaw(unittest.TestCase):
    """Conversion of Django's get_constraints() output."""

    def test_conversion(self):
        indexes, foreign_keys = constraints_to_raw({
            "book_pkey": {"columns": ["id"], "primary_key": True, "unique": True,
                          "foreign_key": None, "check": False, "index": True},
            "book_isbn_key": {"columns": ["isbn"], "primary_key": False, "unique": True,
                              "foreign_key": None, "check": False, "index": False},
            "book_title_idx": {"columns": ["title"], "primary_key": False, "unique": False,
                               "foreign_key": None, "check": False, "index": True},
            "book_author_fk": {"columns": ["author_id"], "primary_key": False, "unique": False,
                               "foreign_key": ("author", "id"), "check": False, "index": False},
            "book_price_check": {"columns": ["price"], "primary_key": False, "unique": False,
                                 "foreign_key": None, "check": True, "index": False},
        })
        self.assertEqual(
            [(index.name, index.columns, index.unique, index.primary) for index in indexes],
            [
                ("book_pkey", ["id"], True, True),
                ("book_isbn_key", ["isbn"], True, False),
                ("book_title_idx", ["title"], False, False),
            ],
        )
        (fk,) = foreign_keys
        self.assertEqual(
            (fk.column_name, fk.referenced_table, fk.referenced_column, fk.constraint_name),
            ("author_id", "author", "id", "book_author_fk"),
        )

    def test_composite_foreign_keys_are_skipped(self):
        _, foreign_keys = constraints_to_raw({
            "fk": {"columns": ["a", "b"], "foreign_key": ("other", "a"), "primary_key": False, "unique": False},
        })
        self.assertEqual(foreign_keys, [])


def test_django_sqlite_introspection(sqlite_database):
    introspector = DjangoSchemaIntrospector("default")
    try:
        assert introspector.dialect == "sqlite"
        assert introspector.list_tables() == ["author", "book"]

        tables = gather_tables(introspector, ["author", "book"], max_workers=2)
        book = tables["book"]
        assert book.column_names == ["id", "title", "author_id", "price"]
        assert [column.raw_type for column in book.columns] == ["integer", "varchar(200)", "integer", "decimal(8,2)"]
        assert book.columns[1].nullable is False
        assert [
            (fk.column_name, fk.referenced_table, fk.referenced_column)
            for fk in distinct_foreign_keys(book.foreign_keys)
        ] == [("author_id", "author", "id")]

        primary = [index for index in book.indexes if index.primary]
        assert primary[0].columns == ["id"]
        assert "book_title_idx" in [index.name for index in book.indexes]

        definitions = build_definitions(tables, dialect=introspector.dialect)
        assert definitions["author"].get_attribute("name").is_unique
        assert definitions["book"].get_attribute("price").type_info.precision == 8
        assert [a.alias for a in definitions["author"].associations] == ["books"]
    finally:
        introspector.close()


def test_django_describe_missing_table(sqlite_database):
    introspector = DjangoSchemaIntrospector("default")
    try:
        with pytest.raises(SchemaIntrospectionError):
            introspector.describe_table("publisher")
    finally:
        introspector.close()


def fake_connection(vendor):
    conn = mock.MagicMock()
    conn.vendor = vendor
    conn.ops.quote_name.side_effect = lambda name: f'"{name}"'
    return conn


class TestUseSchema(unittest.TestCase):
    """Switching the introspected schema per backend."""

    def test_postgres_sets_search_path(self):
        cursor = mock.MagicMock()
        self.assertTrue(use_schema(fake_connection("postgresql"), cursor, "sales"))
        cursor.execute.assert_called_once_with('SET search_path TO "sales"')

    def test_mysql_switches_database(self):
        cursor = mock.MagicMock()
        self.assertTrue(use_schema(fake_connection("mysql"), cursor, "shop"))
        cursor.execute.assert_called_once_with('USE "shop"')

    def test_no_schema_or_no_switch(self):
        cursor = mock.MagicMock()
        self.assertFalse(use_schema(fake_connection("postgresql"), cursor, None))
        self.assertFalse(use_schema(fake_connection("sqlite"), cursor, "main"))
        cursor.execute.assert_not_called()

    def test_information_schema_query_filters_by_schema(self):
        cursor = mock.MagicMock()
        cursor.fetchall.return_value = [("code", "nvarchar", 20, None, None)]
        raw_types, _ = DjangoSchemaIntrospector._raw_types(fake_connection("microsoft"), cursor, "item", "sales")
        sql, params = cursor.execute.call_args[0]
        self.assertIn("table_schema = %s", sql)
        self.assertEqual(params, ["item", "sales"])
        self.assertEqual(raw_types, {"code": "nvarchar(20)"})


def test_django_schema_is_ignored_on_sqlite(sqlite_database, caplog):
    with caplog.at_level("WARNING"):
        introspector = DjangoSchemaIntrospector("default", schema="sales")
    try:
        assert "'sales' is ignored" in caplog.text
        assert introspector.list_tables() == ["author", "book"]
    finally:
        introspector.close()
