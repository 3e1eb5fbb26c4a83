# File: model_auto_generator/config_validation.py
from argparse import Namespace
import logging
import os
import re
from pathlib import Path
from typing import List, Optional, Dict, Any, Literal, Self

import yaml
from pydantic import (
    BaseModel,
    Field,
    ValidationError,
    field_validator,
    model_validator,
    ConfigDict,
)

from model_auto_generator.constants import DefaultConfig, SupportedDialects
from model_auto_generator.domain.definitions import BuildOptions
from model_auto_generator.domain.naming import NamingOptions
from model_auto_generator.domain.type_mapping import normalize_dialect
from model_auto_generator.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

SUPPORTED_DB_ENGINES = [
    "django.db.backends.postgresql",
    "django.db.backends.mysql",
    "django.db.backends.sqlite3",
    "mssql",
]

JS_NAMESPACE_RE = re.compile(r"^[A-Za-z_$][\w$]*(\.[A-Za-z_$][\w$]*)*$")


# --- Pydantic Models for Configuration Schema ---
class DatabaseSettings(BaseModel):
    """Schema for a single database connection within the DATABASES dict."""

    ENGINE: str = Field(
        ...,
        min_length=1,
        description="Django database engine (e.g., 'django.db.backends.postgresql').",
    )
    NAME: str = Field(..., min_length=1, description="Database name.")
    USER: Optional[str] = Field(default=None, description="Database user.")
    PASSWORD: Optional[str] = Field(default=None, description="Database password.")
    HOST: Optional[str] = Field(default=None, description="Database host address.")
    PORT: Optional[int] = Field(default=None, description="Database port number.")
    OPTIONS: Dict[str, Any] = Field(
        default_factory=dict, description="Database engine specific options."
    )

    def __getitem__(self, key: str) -> Any:
        return getattr(self, key)

    @field_validator("ENGINE")
    @classmethod
    def validate_engine(cls, v: str) -> str:
        """Ensure engine is a Django database engine we can introspect."""
        if v not in SUPPORTED_DB_ENGINES:
            raise ValueError(
                f"Database engine: {v} is not supported. Supported engines are: {', '.join(SUPPORTED_DB_ENGINES)}"
            )
        return v

    @field_validator("PORT", mode="before")
    @classmethod
    def validate_port(cls, v: Any) -> Optional[int]:
        """Ensure port is a number or string representation of one, and within range."""
        if v is None or v == "":
            return None
        if isinstance(v, bool):
            raise TypeError("Port must be an integer or string containing digits, got bool")
        if isinstance(v, int):
            port_num = v
        elif isinstance(v, str):
            if not v.isdigit():
                raise ValueError(
                    f"Port must be a number or string containing only digits, got '{v}'"
                )
            port_num = int(v)
        else:
            raise TypeError(
                f"Port must be an integer or string containing digits, got {type(v).__name__}"
            )

        if not 0 <= port_num <= 65535:
            raise ValueError(f"Port must be between 0 and 65535, got {port_num}")
        return port_num


class GeneratorConfig(BaseModel):
    """Pydantic schema defining the expected structure and types for the configuration."""

    # --- Input ---
    dialect: Optional[str] = Field(
        default=None,
        description="SQL dialect of the schema; taken from the snapshot or database when omitted.",
    )
    snapshot: Optional[str] = Field(
        default=None, description="Path to a YAML/JSON schema snapshot file."
    )
    databases: Optional[Dict[str, DatabaseSettings]] = Field(
        default=None,
        description="Django DATABASES setting dictionary. Must contain a 'default' key.",
    )
    database_alias: str = Field(
        default=DefaultConfig.DATABASE_ALIAS,
        min_length=1,
        description="Key of the DATABASES entry to introspect.",
    )
    database_schema: Optional[str] = Field(
        default=None,
        description="Schema to introspect: a PostgreSQL schema or a MySQL database. Defaults to the connection's own.",
    )
    tables: Optional[List[str]] = Field(
        default=None, description="Only generate models for these tables."
    )
    skip_tables: Optional[List[str]] = Field(
        default=None, description="Generate models for every table except these."
    )
    max_workers: int = Field(
        default=DefaultConfig.MAX_WORKERS,
        ge=1,
        le=64,
        description="Number of tables described concurrently.",
    )

    # --- Naming ---
    camel_case: bool = Field(default=False, description="PascalCase model names.")
    attribute_camel_case: bool = Field(default=False, description="camelCase attribute names.")
    singularize: bool = Field(default=False, description="Singularize table names for model names.")
    no_model_suffix: bool = Field(default=False, description="Do not append a model suffix.")
    model_suffix: Optional[str] = Field(default=None, description="Custom model name suffix.")
    file_name_camel_case: bool = Field(default=False, description="camelCase file names.")
    file_name_matches_model: bool = Field(default=False, description="Name files after their model.")
    detect_many_to_many: bool = Field(
        default=False, description="Detect link tables and emit belongsToMany associations."
    )

    # --- Output ---
    style: Literal["sqlalchemy", "django", "sequelize-js", "sequelize-ts"] = Field(
        default=DefaultConfig.STYLE, description="Target code style."
    )
    template_path: Optional[str] = Field(
        default=None, description="Custom Jinja2 template replacing the style's model template."
    )
    sequelize_namespace: Optional[str] = Field(
        default=None,
        description="Expression the Sequelize styles read DataTypes from instead of require('sequelize').",
    )
    dir: Optional[str] = Field(
        default=DefaultConfig.OUTPUT_DIR,
        description="Directory for generated model files; empty to skip writing.",
    )
    types_dir: Optional[str] = Field(
        default=None, description="Directory for generated typings; defaults to 'dir'."
    )
    empty_dir: bool = Field(default=False, description="Empty the output directories first.")
    ts_no_check: bool = Field(
        default=False, description="Add a type-checker opt-out annotation to generated files."
    )

    # Internal field, usually added by load_config if not provided by user
    SECRET_KEY: Optional[str] = Field(
        default=None, description="Internal secret key for Django setup."
    )

    def __getitem__(self, key: str) -> Any:
        """Allow dictionary-style access."""
        return getattr(self, key)

    def get(self, key: str, default: Any = None) -> Any:
        """Allow dict.get() style access."""
        return getattr(self, key, default)

    # --- Custom Field Validators ---

    @field_validator("dialect")
    @classmethod
    def check_dialect(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        dialect = normalize_dialect(v)
        if dialect not in SupportedDialects.ALL:
            logger.warning(
                f"Dialect '{v}' is not one of {', '.join(SupportedDialects.ALL)}; "
                "every column type will map to 'other'."
            )
        return dialect

    @field_validator("tables", "skip_tables", mode="before")
    @classmethod
    def check_table_names_list(cls, v: Any) -> Optional[List[str]]:
        """Ensure items in table lists are non-empty strings; accepts a comma separated string."""
        if v is None:
            return None
        if isinstance(v, str):
            v = v.split(",")
        if not isinstance(v, (list, tuple)):
            raise TypeError("tables/skip_tables must be a list.")
        processed_list = []
        for index, item in enumerate(v):
            if not isinstance(item, str):
                raise TypeError(
                    f"Item at index {index} must be a string, found: {type(item).__name__}"
                )
            stripped_item = item.strip()
            if not stripped_item:
                raise ValueError(
                    f"Item at index {index} cannot be empty or just whitespace."
                )
            processed_list.append(stripped_item)
        return processed_list

    @field_validator("template_path")
    @classmethod
    def check_template_path(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not Path(v).is_file():
            raise ValueError(f"Template file '{v}' does not exist.")
        return v

    @field_validator("sequelize_namespace", "database_schema")
    @classmethod
    def check_optional_name(cls, v: Optional[str]) -> Optional[str]:
        if v is None or not v.strip():
            return None
        return v.strip()

    @field_validator("sequelize_namespace")
    @classmethod
    def check_sequelize_namespace(cls, v: Optional[str]) -> Optional[str]:
        """Only a dotted JavaScript identifier path can stand in for require('sequelize')."""
        if v is not None and not JS_NAMESPACE_RE.match(v):
            raise ValueError(
                f"'{v}' is not a dotted JavaScript identifier such as 'app.Sequelize'."
            )
        return v

    # --- Cross-field validation ---
    @model_validator(mode="after")
    def check_cross_field_config(self) -> Self:
        """Perform cross-field validation checks."""
        if self.tables is not None and self.skip_tables is not None:
            raise ValueError("'tables' and 'skip_tables' are mutually exclusive.")

        if self.databases is not None:
            if "default" not in self.databases:
                raise ValueError(
                    "The 'databases' configuration dictionary must contain a 'default' key."
                )
            if self.database_alias not in self.databases:
                raise ValueError(
                    f"'database_alias' {self.database_alias!r} is not a key of 'databases'."
                )

        if self.snapshot is not None and self.databases is not None:
            raise ValueError("Use either 'snapshot' or 'databases' as the schema source, not both.")

        if self.snapshot is not None and self.database_schema:
            logger.warning("'database_schema' only applies to live databases; the snapshot is read as is.")

        if self.no_model_suffix and self.model_suffix:
            logger.warning(
                "'no_model_suffix' is set, so the custom 'model_suffix' will have no effect."
            )
        return self

    model_config = ConfigDict(
        extra="ignore",  # Allow and ignore extra fields from input dict
    )

    # --- Domain option structs ---

    @property
    def effective_types_dir(self) -> Optional[str]:
        return self.types_dir or self.dir

    def naming_options(self) -> NamingOptions:
        return NamingOptions(
            camel_case=self.camel_case,
            attribute_camel_case=self.attribute_camel_case,
            file_name_camel_case=self.file_name_camel_case,
            file_name_matches_model=self.file_name_matches_model,
            no_model_suffix=self.no_model_suffix,
            model_suffix=self.model_suffix,
            singularize=self.singularize,
        )

    def build_options(self, dialect: Optional[str] = None) -> BuildOptions:
        """Options for the definition builder; ``dialect`` fills in a missing one."""
        return BuildOptions(
            dialect=self.dialect or dialect,
            naming=self.naming_options(),
            detect_many_to_many=self.detect_many_to_many,
        )


# --- Validation Function ---
def validate_and_parse_config(config_dict: Dict[str, Any], config_file: Optional[str] = None) -> GeneratorConfig:
    """
    Validates a raw configuration dictionary against the GeneratorConfig.

    Raises:
        ConfigurationError: Listing every location and message pydantic reported
    """
    try:
        validated_config = GeneratorConfig.model_validate(config_dict)
        logger.debug(
            "Configuration dictionary parsed and validated successfully against schema."
        )
        return validated_config
    except ValidationError as e:
        problems = []
        for error in e.errors():
            loc_parts = [str(loc_item) for loc_item in error.get("loc", ())]
            loc_str = " -> ".join(loc_parts) if loc_parts else "Model Level"
            msg = error.get("msg", "Unknown validation error")
            problems.append(f"{loc_str}: {msg}")

        raise ConfigurationError(
            "Configuration validation failed:\n  - " + "\n  - ".join(problems),
            config_file=config_file,
            context={'errors': len(problems)},
        ) from e


def load_config(config_path: Optional[str], cli_args: Optional[Namespace] = None) -> GeneratorConfig:
    """
    Loads configuration from YAML file, merges with CLI arguments,
    validates the result, and returns a validated Pydantic model instance.

    Raises:
        ConfigurationError: If the file cannot be read or parsed, or the
            merged configuration is invalid
    """
    raw_config: Dict[str, Any] = {}

    # 1. Load from YAML file if path is provided
    if config_path:
        config_file = Path(config_path)
        if not config_file.is_file():
            raise ConfigurationError(
                f"Config file not found at {config_path}", config_file=config_path
            )
        try:
            with open(config_file, "r", encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(
                f"Error parsing YAML file {config_path}: {e}", config_file=config_path
            ) from e
        except OSError as e:
            raise ConfigurationError(
                f"Error reading config file {config_path}: {e}", config_file=config_path
            ) from e

        if yaml_config and isinstance(yaml_config, dict):
            raw_config.update(yaml_config)
            logger.debug(f"Loaded configuration from {config_path}")
        elif yaml_config:
            raise ConfigurationError(
                f"Content in config file {config_path} is not a mapping.",
                config_file=config_path,
            )

    # 2. Override with CLI arguments (only those explicitly provided)
    overridden_keys = set()
    if cli_args is not None:
        for key, value in vars(cli_args).items():
            # store_true flags left off on the command line must not override the file
            if value is None or value is False or key == "databases":
                continue
            if key in GeneratorConfig.model_fields:
                raw_config[key] = value
                overridden_keys.add(key)
    if overridden_keys:
        logger.debug(f"Overridden config keys from CLI arguments: {sorted(overridden_keys)}")

    # 3. Add internal SECRET_KEY if not present (needed for django.setup)
    if "SECRET_KEY" not in raw_config:
        raw_config["SECRET_KEY"] = os.urandom(50).hex()

    return validate_and_parse_config(raw_config, config_file=config_path)
