import argparse
import logging
import sys
from typing import List, Optional

from model_auto_generator.automate import Automate
from model_auto_generator.colored_logging import (
    setup_colored_logging,
    log_success,
    log_progress,
    log_section,
)
from model_auto_generator.config_validation import load_config
from model_auto_generator.exceptions import GeneratorError


logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="model-auto-generator",
        description="Generate ORM model source files from an existing database schema.",
    )
    parser.add_argument(
        "-c",
        "--config",
        help="Path to the YAML configuration file.",
    )

    source = parser.add_argument_group("schema source")
    source.add_argument("--snapshot", help="YAML/JSON schema snapshot to read instead of a database.")
    source.add_argument("--dialect", help="SQL dialect: mysql, mariadb, postgres, sqlite or mssql.")
    source.add_argument(
        "--schema",
        dest="database_schema",
        help="Database schema to introspect (PostgreSQL schema, MySQL database).",
    )
    source.add_argument(
        "--tables",
        help="Comma separated tables to generate models for.",
    )
    source.add_argument(
        "--skip-tables",
        dest="skip_tables",
        help="Comma separated tables to leave out.",
    )
    source.add_argument(
        "--max-workers",
        dest="max_workers",
        type=int,
        help="Number of tables described concurrently.",
    )

    naming = parser.add_argument_group("naming")
    naming.add_argument("--camel-case", dest="camel_case", action="store_true", help="PascalCase model names.")
    naming.add_argument(
        "--attribute-camel-case",
        dest="attribute_camel_case",
        action="store_true",
        help="camelCase attribute names.",
    )
    naming.add_argument("--singularize", action="store_true", help="Singularize table names for model names.")
    naming.add_argument(
        "--no-model-suffix",
        dest="no_model_suffix",
        action="store_true",
        help="Do not append a suffix to model names.",
    )
    naming.add_argument("--model-suffix", dest="model_suffix", help="Custom suffix for model names.")
    naming.add_argument(
        "--file-name-camel-case",
        dest="file_name_camel_case",
        action="store_true",
        help="camelCase file names.",
    )
    naming.add_argument(
        "--file-name-matches-model",
        dest="file_name_matches_model",
        action="store_true",
        help="Name each file after its model.",
    )
    naming.add_argument(
        "--detect-many-to-many",
        dest="detect_many_to_many",
        action="store_true",
        help="Detect link tables and add belongsToMany associations.",
    )

    output = parser.add_argument_group("output")
    output.add_argument(
        "--style",
        choices=["sqlalchemy", "django", "sequelize-js", "sequelize-ts"],
        help="Target code style.",
    )
    output.add_argument("-o", "--dir", help="Output directory for model files. Overrides config file setting.")
    output.add_argument("--types-dir", dest="types_dir", help="Output directory for typings.")
    output.add_argument(
        "--empty-dir",
        dest="empty_dir",
        action="store_true",
        help="Empty the output directories before writing.",
    )
    output.add_argument(
        "--ts-no-check",
        dest="ts_no_check",
        action="store_true",
        help="Add a type-checker opt-out annotation to generated files.",
    )
    output.add_argument("--template-path", dest="template_path", help="Custom Jinja2 model template.")
    output.add_argument(
        "--sequelize-namespace",
        dest="sequelize_namespace",
        help="Expression providing Sequelize instead of require('sequelize'), e.g. 'app.Sequelize'.",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose DEBUG logging for the generator tool.",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        help="Disable colored output (useful for CI/CD environments).",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    # --- Logging Setup ---
    use_colors = not args.no_color
    log_level = logging.DEBUG if args.verbose else logging.INFO
    setup_colored_logging(level=log_level, use_colors=use_colors)

    if args.verbose:
        logger.debug("Verbose mode enabled. DEBUG level logging activated.")

    # --- Main Execution Pipeline ---
    try:
        log_progress(logger, "Loading configuration...")
        config = load_config(args.config, args)
        log_success(logger, "Configuration loaded and validated successfully.")
        logger.debug(f"Effective configuration loaded: {config.model_dump(exclude={'SECRET_KEY', 'databases'})}")

        log_section(logger, "Model Generation")
        files = Automate(config).run()

        log_section(logger, "COMPLETION")
        log_success(logger, f"Model generation completed: {len(files)} file(s) rendered.")
        return 0

    # --- Error Handling ---
    except GeneratorError as e:
        logger.error(str(e), exc_info=args.verbose)  # Show traceback if verbose
        return 1
    except Exception as e:
        # Catch any other unexpected exceptions
        logger.error(
            f"An unexpected error occurred during generation: {e}", exc_info=True
        )  # Always show traceback for unexpected
        return 1


# --- Script Entry Point ---
if __name__ == "__main__":
    sys.exit(main())
