"""
Tests for the raw type -> logical type mapping.
"""

import unittest

from model_auto_generator.domain.models import LogicalType
from model_auto_generator.domain.type_mapping import (
    TypeMapper,
    map_type,
    normalize_dialect,
    parse_enum_values,
    split_raw_type,
)


class TestSplitRawType(unittest.TestCase):
    """Test normalization of raw type strings."""

    def test_unsigned_modifier_is_removed(self):
        self.assertEqual(split_raw_type("INT(10) UNSIGNED"), ("int", ["10"], True))

    def test_parameters_inside_the_type(self):
        self.assertEqual(
            split_raw_type("timestamp(6) with time zone"),
            ("timestamp with time zone", ["6"], False),
        )

    def test_enum_literals_are_not_split(self):
        self.assertEqual(split_raw_type("enum('a,b','c)')"), ("enum", [], False))


class TestNormalizeDialect(unittest.TestCase):
    def test_aliases(self):
        self.assertEqual(normalize_dialect("PostgreSQL"), "postgres")
        self.assertEqual(normalize_dialect("sqlite3"), "sqlite")
        self.assertEqual(normalize_dialect(" MySQL "), "mysql")

    def test_missing_dialect(self):
        self.assertEqual(normalize_dialect(None), "")


class TestParseEnumValues(unittest.TestCase):
    def test_escaped_quotes(self):
        self.assertEqual(parse_enum_values("'draft','it''s live'"), ("draft", "it's live"))

    def test_backslash_escapes(self):
        self.assertEqual(parse_enum_values(r"'a\'b'"), ("a'b",))

    def test_unquoted_body(self):
        self.assertIsNone(parse_enum_values("draft, live"))


class TestMySQLMapping(unittest.TestCase):
    """Test the MySQL type table."""

    def setUp(self):
        self.mapper = TypeMapper("mysql")

    def test_varchar_length(self):
        result = self.mapper.map_type("varchar(255)")
        self.assertEqual(result.logical_type, LogicalType.STRING)
        self.assertEqual(result.base_type, "varchar")
        self.assertEqual(result.length, 255)
        self.assertTrue(result.recognized)

    def test_tinyint_one_is_boolean(self):
        self.assertEqual(self.mapper.map_type("tinyint(1)").logical_type, LogicalType.BOOLEAN)
        self.assertEqual(self.mapper.map_type("tinyint(4)").logical_type, LogicalType.NUMBER)

    def test_unsigned_integer(self):
        result = self.mapper.map_type("int(10) unsigned")
        self.assertEqual(result.logical_type, LogicalType.NUMBER)
        self.assertTrue(result.unsigned)
        self.assertEqual(result.precision, 10)
        self.assertIsNone(result.scale)

    def test_decimal_precision_and_scale(self):
        result = self.mapper.map_type("decimal(10,2)")
        self.assertEqual((result.precision, result.scale), (10, 2))

    def test_decimal_with_precision_only(self):
        result = self.mapper.map_type("decimal(8)")
        self.assertEqual((result.precision, result.scale), (8, 0))

    def test_enum_values(self):
        result = self.mapper.map_type("enum('small','large')")
        self.assertEqual(result.logical_type, LogicalType.ENUM)
        self.assertEqual(result.enum_values, ("small", "large"))

    def test_unparsable_enum_degrades_to_string(self):
        result = self.mapper.map_type("enum(small")
        self.assertEqual(result.logical_type, LogicalType.STRING)
        self.assertFalse(result.recognized)
        self.assertIn("unparsable enum", result.note)

    def test_json_and_binary(self):
        self.assertEqual(self.mapper.map_type("json").logical_type, LogicalType.JSON)
        self.assertEqual(self.mapper.map_type("longblob").logical_type, LogicalType.BINARY)


class TestOtherDialects(unittest.TestCase):
    def test_postgres_timestamp_with_time_zone(self):
        result = map_type("timestamp(3) with time zone", "postgres")
        self.assertEqual(result.logical_type, LogicalType.DATE)
        self.assertEqual(result.base_type, "timestamp with time zone")
        self.assertEqual(result.precision, 3)

    def test_postgres_enum_from_driver_metadata(self):
        result = TypeMapper("postgres").map_type("mood", {"enum_values": ["happy", "sad"]})
        self.assertEqual(result.logical_type, LogicalType.ENUM)
        self.assertEqual(result.enum_values, ("happy", "sad"))
        self.assertEqual(result.raw_type, "mood")

    def test_mariadb_inherits_mysql(self):
        self.assertEqual(map_type("uuid", "mariadb").logical_type, LogicalType.STRING)
        self.assertEqual(map_type("mediumtext", "mariadb").logical_type, LogicalType.STRING)

    def test_sqlite_unsigned_big_int(self):
        result = map_type("UNSIGNED BIG INT", "sqlite")
        self.assertEqual(result.logical_type, LogicalType.NUMBER)
        self.assertEqual(result.base_type, "big int")
        self.assertTrue(result.unsigned)

    def test_mssql_max_length(self):
        result = map_type("nvarchar(max)", "mssql")
        self.assertEqual(result.logical_type, LogicalType.STRING)
        self.assertIsNone(result.length)

    def test_mssql_bit_is_boolean(self):
        self.assertEqual(map_type("bit", "mssql").logical_type, LogicalType.BOOLEAN)


class TestUnknownTypes(unittest.TestCase):
    """Unknown types degrade to 'other' and keep the raw string."""

    def test_type_missing_from_the_dialect_table(self):
        mapper = TypeMapper("custom", type_tables={"custom": {"integer": "number"}})
        result = mapper.map_type("varchar(255)")
        self.assertEqual(result.logical_type, LogicalType.OTHER)
        self.assertEqual(result.raw_type, "varchar(255)")
        self.assertFalse(result.recognized)
        self.assertIn("varchar(255)", result.note)

    def test_unknown_dialect(self):
        result = map_type("varchar(255)", "oracle")
        self.assertEqual(result.logical_type, LogicalType.OTHER)
        self.assertEqual(result.raw_type, "varchar(255)")

    def test_unknown_dialect_warns_for_every_mapper(self):
        for _ in range(2):
            with self.assertLogs("model_auto_generator.domain.type_mapping", level="WARNING") as logs:
                mapper = TypeMapper("oracle")
            self.assertEqual(len(logs.output), 1)
            with self.assertNoLogs("model_auto_generator.domain.type_mapping", level="WARNING"):
                mapper.map_type("varchar2(20)")
                mapper.map_type("number(10)")

    def test_unknown_postgres_type(self):
        result = map_type("tsvector", "postgres")
        self.assertEqual(result.logical_type, LogicalType.OTHER)
        self.assertEqual(result.base_type, "tsvector")

    def test_missing_raw_type(self):
        result = map_type(None, "mysql")
        self.assertEqual(result.logical_type, LogicalType.OTHER)
        self.assertEqual(result.raw_type, "")


if __name__ == "__main__":
    unittest.main()
