"""
Tests for the command line entry point and its logging setup.
"""

import logging

import pytest
import yaml

from model_auto_generator.cli import build_parser, main
from model_auto_generator.colored_logging import ColoredFormatter


@pytest.fixture(autouse=True)
def restore_root_logger():
    """main() replaces the root handlers; put pytest's back afterwards."""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def test_parser_defaults_do_not_override_the_config():
    args = build_parser().parse_args([])
    assert args.style is None
    assert args.dir is None
    assert args.camel_case is False


def test_parser_options():
    args = build_parser().parse_args([
        "--snapshot", "schema.yaml",
        "--style", "sequelize-ts",
        "-o", "out",
        "--types-dir", "types",
        "--skip-tables", "a,b",
        "--max-workers", "8",
        "--ts-no-check",
        "--schema", "sales",
        "--sequelize-namespace", "app.Sequelize",
    ])
    assert args.database_schema == "sales"
    assert args.sequelize_namespace == "app.Sequelize"
    assert args.snapshot == "schema.yaml"
    assert args.style == "sequelize-ts"
    assert args.dir == "out"
    assert args.types_dir == "types"
    assert args.skip_tables == "a,b"
    assert args.max_workers == 8
    assert args.ts_no_check is True


def test_generates_from_snapshot(tmp_path, snapshot_file):
    out = tmp_path / "out"
    exit_code = main([
        "--snapshot", str(snapshot_file),
        "--style", "sequelize-js",
        "--camel-case",
        "--no-model-suffix",
        "-o", str(out),
        "--no-color",
    ])
    assert exit_code == 0
    assert sorted(path.name for path in out.iterdir()) == ["author.js", "book.js"]
    book = (out / "book.js").read_text(encoding="utf-8")
    assert 'sequelize.define("Book", {' in book
    assert 'Book.belongsTo(models["Author"], { as: "author", foreignKey: "author_id", targetKey: "id" });' in book


def test_config_file_with_cli_override(tmp_path, snapshot_file):
    config_path = tmp_path / "config.yaml"
    config_path.write_text(
        yaml.safe_dump({"snapshot": str(snapshot_file), "style": "django", "dir": str(tmp_path / "from_config")}),
        encoding="utf-8",
    )
    out = tmp_path / "from_cli"
    assert main(["-c", str(config_path), "-o", str(out), "--tables", "author", "--no-color"]) == 0
    assert sorted(path.name for path in out.iterdir()) == ["__init__.py", "author.py"]
    assert not (tmp_path / "from_config").exists()


def test_unknown_table_exits_with_error(tmp_path, snapshot_file):
    out = tmp_path / "out"
    assert main(["--snapshot", str(snapshot_file), "--tables", "publisher", "-o", str(out), "--no-color"]) == 1
    assert not out.exists()


def test_missing_schema_source(tmp_path):
    assert main(["-o", str(tmp_path / "out"), "--no-color"]) == 1


def test_missing_config_file(tmp_path):
    assert main(["-c", str(tmp_path / "missing.yaml"), "--no-color"]) == 1


def test_verbose_sets_debug_level(tmp_path, snapshot_file):
    main(["--snapshot", str(snapshot_file), "-o", str(tmp_path / "out"), "-v", "--no-color"])
    assert logging.getLogger().level == logging.DEBUG


class TestColoredFormatter:
    def make_record(self, level, message):
        return logging.LogRecord("test", level, __file__, 1, message, None, None)

    def test_plain_output_without_colors(self):
        formatter = ColoredFormatter(use_colors=False)
        assert formatter.format(self.make_record(logging.INFO, "✓ done")) == "INFO: ✓ done"

    def test_colors_by_level_and_content(self):
        formatter = ColoredFormatter(use_colors=False)
        formatter.use_colors = True
        warning = formatter.format(self.make_record(logging.WARNING, "Table generated twice"))
        assert warning.startswith(ColoredFormatter.COLORS["WARNING"])
        success = formatter.format(self.make_record(logging.INFO, "✓ Generated 4 file(s)"))
        assert success.startswith(ColoredFormatter.SPECIAL_COLORS["success"])
        progress = formatter.format(self.make_record(logging.INFO, "→ Describing 2 table(s)..."))
        assert progress.startswith(ColoredFormatter.SPECIAL_COLORS["progress"])
        section = formatter.format(self.make_record(logging.INFO, "=" * 60))
        assert section.startswith(ColoredFormatter.BOLD)
        assert section.endswith(ColoredFormatter.RESET)
