"""
Domain module for Model Auto Generator.

This module contains the schema-to-definition mapping stage: pure functions
and classes that turn raw introspection output into dialect-independent model
definitions. Nothing in here talks to a database or touches the filesystem.
"""

from .models import (
    RawColumn,
    RawIndex,
    RawForeignKey,
    TableSchema,
    LogicalType,
    TypeMapping,
    Attribute,
    AssociationKind,
    Association,
    IndexDefinition,
    Diagnostic,
    Definition,
    DefinitionSet
)

from .type_mapping import (
    TypeMapper,
    map_type,
    normalize_dialect,
    parse_enum_values
)

from .naming import (
    NameTransformer,
    NamingOptions,
    to_snake_case,
    to_camel_case,
    to_pascal_case,
    pluralize,
    python_identifier
)

from .constraints import (
    KeyClassifier,
    KeyClassification
)

from .relationships import (
    AssociationResolver
)

from .definitions import (
    DefinitionBuilder,
    BuildOptions,
    build_definitions
)

__all__ = [
    # Core models
    'RawColumn',
    'RawIndex',
    'RawForeignKey',
    'TableSchema',
    'LogicalType',
    'TypeMapping',
    'Attribute',
    'AssociationKind',
    'Association',
    'IndexDefinition',
    'Diagnostic',
    'Definition',
    'DefinitionSet',

    # Type mapping
    'TypeMapper',
    'map_type',
    'normalize_dialect',
    'parse_enum_values',

    # Naming
    'NameTransformer',
    'NamingOptions',
    'to_snake_case',
    'to_camel_case',
    'to_pascal_case',
    'pluralize',
    'python_identifier',

    # Constraints
    'KeyClassifier',
    'KeyClassification',

    # Relationships
    'AssociationResolver',

    # Definitions
    'DefinitionBuilder',
    'BuildOptions',
    'build_definitions'
]
