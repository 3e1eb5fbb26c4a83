"""
Run orchestration for Model Auto Generator.

``Automate`` wires the stages together: select tables, describe them
concurrently, build definitions, render source files and write them.
Each stage is exposed on its own so callers can stop after any of them.
"""

import logging
from typing import Dict, List, Optional

from model_auto_generator.codegen import RenderedFile, render_definitions
from model_auto_generator.colored_logging import log_highlight, log_progress, log_success
from model_auto_generator.config_validation import GeneratorConfig
from model_auto_generator.domain.definitions import DefinitionBuilder
from model_auto_generator.domain.models import DefinitionSet, TableSchema
from model_auto_generator.exceptions import ConfigurationError
from model_auto_generator.introspection import (
    SchemaIntrospector,
    SnapshotIntrospector,
    gather_tables,
    select_table_names,
)
from model_auto_generator.writer import write_files


logger = logging.getLogger(__name__)


def create_introspector(config: GeneratorConfig) -> SchemaIntrospector:
    """
    Build the introspector the configuration asks for.

    Raises:
        ConfigurationError: If neither 'snapshot' nor 'databases' is configured
    """
    if config.snapshot:
        return SnapshotIntrospector(config.snapshot)
    if config.databases:
        # Django is only needed for live databases
        from model_auto_generator.introspection_django import DjangoSchemaIntrospector, setup_django

        setup_django(config.databases, config.SECRET_KEY)
        return DjangoSchemaIntrospector(config.database_alias, schema=config.database_schema)
    raise ConfigurationError(
        "No schema source configured.",
        suggestions=[
            "Set 'snapshot' to a YAML/JSON schema snapshot file",
            "Or set 'databases' to a Django DATABASES dictionary",
        ],
    )


class Automate:
    """
    One generator run.

    Usage:
        config = load_config("models.yaml")
        files = Automate(config).run()
    """

    def __init__(self, config: GeneratorConfig, introspector: Optional[SchemaIntrospector] = None):
        self.config = config
        self._introspector = introspector

    @property
    def introspector(self) -> SchemaIntrospector:
        if self._introspector is None:
            self._introspector = create_introspector(self.config)
        return self._introspector

    @property
    def dialect(self) -> Optional[str]:
        return self.config.dialect or self.introspector.dialect

    def get_table_names(self) -> List[str]:
        """Selected table names; fails before any table is described."""
        all_tables = self.introspector.list_tables()
        selected = select_table_names(all_tables, self.config.tables, self.config.skip_tables)
        log_highlight(logger, f"Selected {len(selected)} of {len(all_tables)} table(s)")
        return selected

    def get_tables(self) -> Dict[str, TableSchema]:
        table_names = self.get_table_names()
        log_progress(logger, f"Describing {len(table_names)} table(s)...")
        return gather_tables(self.introspector, table_names, self.config.max_workers)

    def require_dialect(self) -> str:
        """
        The dialect of this run, resolved before any table is described.

        Raises:
            ConfigurationError: If neither the configuration nor the schema
                source names a dialect
        """
        dialect = self.dialect
        if not dialect:
            raise ConfigurationError(
                "The SQL dialect is unknown.",
                suggestions=["Set 'dialect' in the configuration or in the schema snapshot"],
            )
        return dialect

    def get_definitions(self) -> DefinitionSet:
        dialect = self.require_dialect()
        tables = self.get_tables()
        definitions = DefinitionBuilder(self.config.build_options(dialect)).build(tables)
        for diagnostic in definitions.diagnostics:
            logger.debug(f"[{diagnostic.code}] {diagnostic.table}: {diagnostic.message}")
        return definitions

    def render(self, definitions: Optional[DefinitionSet] = None) -> List[RenderedFile]:
        if definitions is None:
            definitions = self.get_definitions()
        return render_definitions(
            definitions,
            style=self.config.style,
            template_path=self.config.template_path,
            ts_no_check=self.config.ts_no_check,
            sequelize_namespace=self.config.sequelize_namespace,
        )

    def run(self) -> List[RenderedFile]:
        """
        Run every stage and write the files when an output directory is set.

        The introspector is closed afterwards, whether the run succeeded or not.

        Returns:
            The rendered files
        """
        try:
            files = self.render()
        finally:
            self.close()

        if self.config.dir:
            write_files(
                files,
                self.config.dir,
                types_dir=self.config.effective_types_dir,
                empty_dir=self.config.empty_dir,
            )
            log_success(logger, f"Generated {len(files)} file(s) in {self.config.dir}")
        else:
            logger.info("No output directory configured; nothing written.")
        return files

    def close(self) -> None:
        if self._introspector is not None:
            self._introspector.close()
