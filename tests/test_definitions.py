"""
Tests for DefinitionBuilder: composing types, keys, names and associations.
"""

import unittest

import pytest

from conftest import make_table
from model_auto_generator.constants import DiagnosticCodes
from model_auto_generator.domain.definitions import (
    BuildOptions,
    DefinitionBuilder,
    build_definitions,
    coerce_literal,
    normalize_default,
)
from model_auto_generator.domain.models import (
    AssociationKind,
    LogicalType,
    RawColumn,
    TableSchema,
)
from model_auto_generator.domain.naming import NamingOptions
from model_auto_generator.exceptions import StructuralError


class TestNormalizeDefault(unittest.TestCase):
    """Test normalization of driver-reported column defaults."""

    def test_postgres_sequence(self):
        self.assertEqual(normalize_default("nextval('users_id_seq'::regclass)"), (None, False, True))

    def test_cast_literal(self):
        self.assertEqual(normalize_default("'draft'::character varying"), ("draft", False, False))

    def test_quoted_literal_with_escaped_quote(self):
        self.assertEqual(normalize_default("'it''s'"), ("it's", False, False))

    def test_numeric_cast(self):
        self.assertEqual(normalize_default("42::bigint"), ("42", False, False))

    def test_mssql_wrapped_default(self):
        self.assertEqual(normalize_default("((0))"), ("0", False, False))

    def test_expressions(self):
        self.assertEqual(normalize_default("CURRENT_TIMESTAMP"), ("CURRENT_TIMESTAMP", True, False))
        self.assertEqual(normalize_default("gen_random_uuid()"), ("gen_random_uuid()", True, False))

    def test_sql_null_is_no_default(self):
        self.assertEqual(normalize_default("NULL::character varying"), (None, False, False))
        self.assertEqual(normalize_default("NULL"), (None, False, False))
        self.assertEqual(normalize_default("null"), (None, False, False))

    def test_quoted_null_stays_a_string(self):
        self.assertEqual(normalize_default("'NULL'::text"), ("NULL", False, False))

    def test_non_string_default(self):
        self.assertEqual(normalize_default(5), (5, False, False))

    def test_auto_increment_sources(self):
        self.assertTrue(normalize_default(None, base_type="serial")[2])
        self.assertTrue(normalize_default(None, {"is_autofield": True})[2])
        self.assertTrue(normalize_default(None, {"extra": "auto_increment"})[2])
        self.assertFalse(normalize_default(None, {"extra": ""})[2])


class TestCoerceLiteral(unittest.TestCase):
    def test_numbers(self):
        self.assertEqual(coerce_literal("42", LogicalType.NUMBER), 42)
        self.assertEqual(coerce_literal("1.5", LogicalType.NUMBER), 1.5)
        self.assertEqual(coerce_literal("abc", LogicalType.NUMBER), "abc")

    def test_booleans(self):
        self.assertIs(coerce_literal("true", LogicalType.BOOLEAN), True)
        self.assertIs(coerce_literal("0", LogicalType.BOOLEAN), False)
        self.assertIs(coerce_literal("b'1'", LogicalType.BOOLEAN), True)

    def test_strings_are_untouched(self):
        self.assertEqual(coerce_literal("42", LogicalType.STRING), "42")


# --- Builder properties ---


def test_attributes_follow_column_order(blog_tables):
    definitions = build_definitions(blog_tables, dialect="mysql")
    for table_name, schema in blog_tables.items():
        definition = definitions[table_name]
        assert len(definition.attributes) == len(schema.columns)
        assert [attr.column_name for attr in definition.attributes] == schema.column_names


def test_definition_set_keeps_input_order(blog_tables):
    definitions = build_definitions(blog_tables, dialect="mysql")
    assert list(definitions) == ["user", "post", "tag", "post_tag"]
    assert definitions.dialect == "mysql"


def test_single_and_composite_primary_keys(blog_tables):
    definitions = build_definitions(blog_tables, dialect="mysql")
    assert [attr.column_name for attr in definitions["user"].primary_keys] == ["id"]
    assert not definitions["user"].has_composite_primary_key
    assert [attr.column_name for attr in definitions["post_tag"].primary_keys] == ["post_id", "tag_id"]
    assert definitions["post_tag"].has_composite_primary_key


def test_attribute_details(blog_tables):
    user = build_definitions(blog_tables, dialect="mysql")["user"]
    id_attr, email, status, created_at = user.attributes
    assert id_attr.auto_increment
    assert not id_attr.nullable
    assert email.is_unique
    assert email.type_info.length == 255
    assert status.logical_type == LogicalType.ENUM
    assert status.enum_values == ("active", "banned")
    assert status.default_value == "active"
    assert created_at.default_is_expression
    assert created_at.default_value == "CURRENT_TIMESTAMP"


def test_boolean_default_is_coerced(blog_tables):
    post = build_definitions(blog_tables, dialect="mysql")["post"]
    published = post.get_attribute("published")
    assert published.logical_type == LogicalType.BOOLEAN
    assert published.default_value is False


def test_associations_across_tables(blog_tables):
    definitions = build_definitions(blog_tables, dialect="mysql")
    user_aliases = [(a.kind, a.alias) for a in definitions["user"].associations]
    assert user_aliases == [
        (AssociationKind.HAS_MANY, "posts"),
        (AssociationKind.HAS_MANY, "posts_editor"),
    ]
    post_aliases = [(a.kind, a.alias) for a in definitions["post"].associations]
    assert post_aliases == [
        (AssociationKind.BELONGS_TO, "author"),
        (AssociationKind.BELONGS_TO, "editor"),
        (AssociationKind.HAS_MANY, "post_tags"),
    ]


def test_many_to_many_needs_the_option(blog_tables):
    plain = build_definitions(blog_tables, dialect="mysql")
    assert not plain["post"].associations_of(AssociationKind.BELONGS_TO_MANY)

    detected = build_definitions(blog_tables, dialect="mysql", detect_many_to_many=True)
    (many,) = detected["post"].associations_of(AssociationKind.BELONGS_TO_MANY)
    assert many.alias == "tags"
    assert many.through_table == "post_tag"
    assert many.target_model == "tag_model"


def test_building_twice_gives_identical_output(blog_tables):
    builder = DefinitionBuilder(BuildOptions(dialect="mysql", detect_many_to_many=True))
    assert builder.build(blog_tables) == builder.build(blog_tables)


def test_self_reference(employee_table):
    definitions = build_definitions([employee_table], dialect="postgres")
    associations = definitions["employee"].associations
    assert [(a.kind, a.alias, a.target_table) for a in associations] == [
        (AssociationKind.BELONGS_TO, "manager", "employee"),
        (AssociationKind.HAS_MANY, "employees", "employee"),
    ]


def test_dangling_reference(blog_tables):
    definitions = build_definitions({"post": blog_tables["post"]}, dialect="mysql")
    post = definitions["post"]
    assert all(a.kind == AssociationKind.BELONGS_TO for a in post.associations)
    assert all(a.dangling for a in post.associations)
    codes = [diag.code for diag in post.diagnostics]
    assert codes.count(DiagnosticCodes.DANGLING_REFERENCE) == 2


def test_unknown_type_keeps_raw_string():
    table = make_table("thing", [("name", "varchar(255)")])
    definitions = build_definitions([table], dialect="oracle")
    (attribute,) = definitions["thing"].attributes
    assert attribute.logical_type == LogicalType.OTHER
    assert attribute.raw_type == "varchar(255)"
    (diagnostic,) = definitions["thing"].diagnostics
    assert diagnostic.code == DiagnosticCodes.UNKNOWN_TYPE
    assert diagnostic.column == "name"


def test_unparsable_enum_diagnostic():
    table = make_table("thing", [("size", "enum(small")])
    definitions = build_definitions([table], dialect="mysql")
    (diagnostic,) = definitions["thing"].diagnostics
    assert diagnostic.code == DiagnosticCodes.ENUM_PARSE_FAILED


def test_camel_case_no_suffix_file_name_matches_model():
    naming = NamingOptions(camel_case=True, no_model_suffix=True, file_name_matches_model=True)
    definitions = build_definitions([make_table("user_profile", [("id", "int")])], dialect="mysql", naming=naming)
    definition = definitions["user_profile"]
    assert (definition.model_name, definition.file_name) == ("UserProfile", "UserProfile")


def test_model_name_collision_is_flagged():
    naming = NamingOptions(camel_case=True, no_model_suffix=True, singularize=True)
    tables = [make_table("user", [("id", "int")]), make_table("users", [("id", "int")])]
    definitions = build_definitions(tables, dialect="mysql", naming=naming)

    assert len(definitions) == 2
    assert definitions["user"].model_name == definitions["users"].model_name == "User"
    assert definitions.model_name_collisions == {"User": ("user", "users")}
    assert definitions.file_name_collisions == {}
    assert definitions.has_collisions
    for table in ("user", "users"):
        codes = [diag.code for diag in definitions[table].diagnostics]
        assert codes == [DiagnosticCodes.MODEL_NAME_COLLISION]


def test_attribute_name_collision_is_flagged(caplog):
    naming = NamingOptions(attribute_camel_case=True)
    table = make_table("account", [("id", "int"), ("user_id", "int"), ("userId", "int")], primary_key=["id"])
    with caplog.at_level("WARNING"):
        definition = build_definitions([table], dialect="mysql", naming=naming)["account"]

    assert [attr.attr_name for attr in definition.attributes] == ["id", "userId", "userId"]
    collisions = [diag for diag in definition.diagnostics if diag.code == DiagnosticCodes.ATTRIBUTE_NAME_COLLISION]
    assert [diag.column for diag in collisions] == ["user_id", "userId"]
    assert "attribute name 'userId'" in caplog.text


def test_distinct_attribute_names_have_no_collision():
    naming = NamingOptions(attribute_camel_case=True)
    table = make_table("account", [("id", "int"), ("user_id", "int")], primary_key=["id"])
    definition = build_definitions([table], dialect="mysql", naming=naming)["account"]
    assert definition.diagnostics == ()


def test_sql_null_default_is_dropped():
    table = make_table(
        "note",
        [("id", "integer"), ("body", "character varying(20)", {"default_value": "NULL::character varying"})],
        primary_key=["id"],
    )
    body = build_definitions([table], dialect="postgres")["note"].get_attribute("body")
    assert body.default_value is None
    assert not body.default_is_expression


def test_file_name_collision_is_flagged():
    naming = NamingOptions(file_name_camel_case=True)
    tables = [make_table("user_role", [("id", "int")]), make_table("userRole", [("id", "int")])]
    definitions = build_definitions(tables, dialect="mysql", naming=naming)
    assert definitions.file_name_collisions == {"userRole": ("user_role", "userRole")}
    assert not definitions.model_name_collisions


def test_snapshot_style_dict_input():
    definitions = build_definitions(
        {"book": {"columns": [{"name": "id", "type": "integer", "primary_key": True}]}},
        dialect="sqlite",
    )
    assert definitions["book"].primary_keys[0].column_name == "id"


class TestStructuralErrors(unittest.TestCase):
    def test_duplicate_column(self):
        table = TableSchema(name="t", columns=[RawColumn("a", "int"), RawColumn("a", "int")])
        with self.assertRaises(StructuralError):
            build_definitions([table], dialect="mysql")

    def test_duplicate_table(self):
        table = make_table("t", [("a", "int")])
        with self.assertRaises(StructuralError):
            build_definitions([table, make_table("t", [("b", "int")])], dialect="mysql")

    def test_key_disagrees_with_schema_name(self):
        with self.assertRaises(StructuralError):
            build_definitions({"other": make_table("t", [("a", "int")])}, dialect="mysql")

    def test_primary_key_on_missing_column(self):
        table = make_table("t", [("a", "int")], primary_key=["id"])
        with self.assertRaises(StructuralError):
            build_definitions([table], dialect="mysql")


def test_to_dict_is_plain_data(blog_tables):
    data = build_definitions(blog_tables, dialect="mysql").to_dict()
    assert data["dialect"] == "mysql"
    user = data["definitions"]["user"]
    assert user["attributes"][2]["type_info"]["enum_values"] == ["active", "banned"]
    assert user["associations"][0]["kind"] == "hasMany"


@pytest.mark.parametrize("dialect", ["postgresql", "PostgreSQL", "postgres"])
def test_dialect_aliases(dialect, employee_table):
    assert build_definitions([employee_table], dialect=dialect).dialect == "postgres"
