# File: tests/conftest.py
# Contains pytest fixtures shared by the unit and integration tests.

from pathlib import Path
from typing import Dict

import pytest
import yaml

from model_auto_generator.domain.models import (
    RawColumn,
    RawForeignKey,
    RawIndex,
    TableSchema,
)


def make_table(name, columns, primary_key=None, indexes=None, foreign_keys=None) -> TableSchema:
    """
    Build a TableSchema from compact column specs.

    ``columns`` holds ``(name, raw_type)`` or ``(name, raw_type, options)``
    tuples; ``foreign_keys`` holds ``(column, table, column)`` tuples.
    """
    raw_columns = []
    for entry in columns:
        options = entry[2] if len(entry) > 2 else {}
        raw_columns.append(RawColumn(name=entry[0], raw_type=entry[1], **options))
    raw_indexes = list(indexes or [])
    if primary_key:
        raw_indexes.insert(0, RawIndex(name="PRIMARY", columns=list(primary_key), unique=True, primary=True))
    raw_foreign_keys = [
        RawForeignKey(column_name=column, referenced_table=table, referenced_column=target)
        for column, table, target in foreign_keys or []
    ]
    return TableSchema(name=name, columns=raw_columns, indexes=raw_indexes, foreign_keys=raw_foreign_keys)


@pytest.fixture
def blog_tables() -> Dict[str, TableSchema]:
    """A small blog schema in MySQL terms: user, post, tag and the post_tag link table."""
    user = make_table(
        "user",
        [
            ("id", "int(11)", {"nullable": False, "dialect_meta": {"extra": "auto_increment"}}),
            ("email", "varchar(255)", {"nullable": False}),
            ("status", "enum('active','banned')", {"default_value": "active"}),
            ("created_at", "datetime", {"default_value": "CURRENT_TIMESTAMP"}),
        ],
        primary_key=["id"],
        indexes=[RawIndex(name="user_email_uniq", columns=["email"], unique=True)],
    )
    post = make_table(
        "post",
        [
            ("id", "int(11)", {"nullable": False, "dialect_meta": {"extra": "auto_increment"}}),
            ("author_id", "int(11)", {"nullable": False}),
            ("editor_id", "int(11)"),
            ("title", "varchar(200)", {"nullable": False}),
            ("body", "text"),
            ("published", "tinyint(1)", {"default_value": "0"}),
            ("rating", "decimal(4,2)"),
        ],
        primary_key=["id"],
        indexes=[RawIndex(name="post_title_idx", columns=["title"])],
        foreign_keys=[("author_id", "user", "id"), ("editor_id", "user", "id")],
    )
    tag = make_table(
        "tag",
        [("id", "int(11)", {"nullable": False}), ("label", "varchar(50)", {"nullable": False})],
        primary_key=["id"],
    )
    post_tag = make_table(
        "post_tag",
        [("post_id", "int(11)", {"nullable": False}), ("tag_id", "int(11)", {"nullable": False})],
        primary_key=["post_id", "tag_id"],
        foreign_keys=[("post_id", "post", "id"), ("tag_id", "tag", "id")],
    )
    return {"user": user, "post": post, "tag": tag, "post_tag": post_tag}


@pytest.fixture
def employee_table() -> TableSchema:
    """A self-referencing table: employee.manager_id -> employee.id."""
    return make_table(
        "employee",
        [
            ("id", "integer", {"nullable": False}),
            ("name", "text"),
            ("manager_id", "integer"),
        ],
        primary_key=["id"],
        foreign_keys=[("manager_id", "employee", "id")],
    )


@pytest.fixture
def snapshot_data() -> dict:
    """Snapshot file content in the Sequelize-like camelCase shape."""
    return {
        "dialect": "postgres",
        "tables": {
            "author": {
                "columns": {
                    "id": {"type": "integer", "allowNull": False, "primaryKey": True,
                           "defaultValue": "nextval('author_id_seq'::regclass)"},
                    "full_name": {"type": "character varying(120)", "allowNull": False},
                    "mood": {"type": "mood", "special": ["happy", "sad"]},
                },
            },
            "book": {
                "columns": [
                    {"name": "id", "type": "integer", "nullable": False, "primary_key": True},
                    {"name": "author_id", "type": "integer"},
                    {"name": "published_at", "type": "timestamp with time zone", "default": "now()"},
                ],
                "indexes": [{"name": "book_author_idx", "fields": [{"attribute": "author_id"}]}],
                "foreignKeys": [
                    {"columnName": "author_id", "referencedTableName": "author", "referencedColumnName": "id"},
                ],
            },
        },
    }


@pytest.fixture
def snapshot_file(tmp_path, snapshot_data) -> Path:
    path = tmp_path / "schema.yaml"
    path.write_text(yaml.safe_dump(snapshot_data, sort_keys=False), encoding="utf-8")
    return path


# --- Fixture for a live database (Django over a temporary SQLite file) ---

LIBRARY_SCHEMA = [
    "CREATE TABLE author (id integer PRIMARY KEY AUTOINCREMENT, name varchar(100) NOT NULL, bio text)",
    "CREATE UNIQUE INDEX author_name_uniq ON author (name)",
    "CREATE TABLE book ("
    " id integer PRIMARY KEY AUTOINCREMENT,"
    " title varchar(200) NOT NULL,"
    " author_id integer NOT NULL REFERENCES author (id),"
    " price decimal(8,2) DEFAULT 0)",
    "CREATE INDEX book_title_idx ON book (title)",
    "CREATE VIEW book_titles AS SELECT title FROM book",
]


@pytest.fixture(scope="session")
def sqlite_database(tmp_path_factory) -> Path:
    """
    Configures Django once for the session against a SQLite file holding the
    library schema. Django settings can only be configured once per process,
    so every test touching Django goes through this fixture.
    """
    from django.db import connections

    from model_auto_generator.introspection_django import setup_django

    db_path = tmp_path_factory.mktemp("db") / "library.sqlite3"
    setup_django({"default": {"ENGINE": "django.db.backends.sqlite3", "NAME": str(db_path)}}, "test-secret-key")

    connection = connections["default"]
    with connection.cursor() as cursor:
        for statement in LIBRARY_SCHEMA:
            cursor.execute(statement)
    connection.close()
    return db_path
