"""
Definition building for Model Auto Generator.

Composes type mapping, key classification, naming and association resolution
into one ``Definition`` per table. The builder is the only place that sees the
whole table set at once: it validates the raw input, runs the association
fixpoint over every table, and flags model or file names shared by more than
one table, as well as attribute names shared by columns of one table.
"""

import logging
import re
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from model_auto_generator.constants import (
    EXPRESSION_DEFAULTS,
    SERIAL_BASE_TYPES,
    DiagnosticCodes,
)
from model_auto_generator.domain.constraints import KeyClassification, KeyClassifier
from model_auto_generator.domain.models import (
    Attribute,
    Definition,
    DefinitionSet,
    Diagnostic,
    LogicalType,
    RawColumn,
    TableSchema,
    TypeMapping,
)
from model_auto_generator.domain.naming import NameTransformer, NamingOptions
from model_auto_generator.domain.relationships import AssociationResolver
from model_auto_generator.domain.type_mapping import TypeMapper, normalize_dialect
from model_auto_generator.exceptions import StructuralError


logger = logging.getLogger(__name__)

TablesInput = Union[Mapping[str, Union[TableSchema, Dict[str, Any]]], Iterable[TableSchema]]

_NEXTVAL_RE = re.compile(r"^nextval\s*\(", re.IGNORECASE)
_QUOTED_RE = re.compile(r"^'((?:[^']|'')*)'$", re.DOTALL)
_CAST_RE = re.compile(r"^\(?(?P<value>.+?)\)?::[\w\s\".\[\]]+$", re.DOTALL)
_FUNCTION_RE = re.compile(r"^[a-z_][\w.]*\s*\(.*\)$", re.IGNORECASE | re.DOTALL)
_NUMBER_RE = re.compile(r"^-?\d+(\.\d+)?$")
_BOOLEAN_LITERALS = {"1": True, "0": False, "true": True, "false": False, "b'1'": True, "b'0'": False}

# dialect_meta keys drivers use to flag auto-incrementing columns
_AUTO_INCREMENT_KEYS = ("auto_increment", "autoIncrement", "is_autofield")


@dataclass(frozen=True)
class BuildOptions:
    """Everything the definition builder needs besides the tables."""

    dialect: Optional[str] = None
    naming: NamingOptions = field(default_factory=NamingOptions)
    detect_many_to_many: bool = False


def _unquote(value: str) -> Optional[str]:
    match = _QUOTED_RE.match(value)
    return match.group(1).replace("''", "'") if match else None


def _is_wrapped(value: str) -> bool:
    """True when one pair of parentheses encloses the whole value."""
    if not (value.startswith("(") and value.endswith(")")):
        return False
    depth = 0
    for position, char in enumerate(value):
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0 and position != len(value) - 1:
                return False
    return depth == 0


def coerce_literal(value: Any, logical_type: LogicalType) -> Any:
    """Turn a textual default into a number or boolean where the type says so."""
    if not isinstance(value, str):
        return value
    if logical_type == LogicalType.NUMBER and _NUMBER_RE.match(value):
        return float(value) if "." in value else int(value)
    if logical_type == LogicalType.BOOLEAN and value.lower() in _BOOLEAN_LITERALS:
        return _BOOLEAN_LITERALS[value.lower()]
    return value


def normalize_default(
    default_value: Any,
    dialect_meta: Optional[Mapping[str, Any]] = None,
    base_type: str = "",
) -> Tuple[Any, bool, bool]:
    """
    Normalize a driver-reported column default.

    Args:
        default_value: Default as reported by the driver
        dialect_meta: The column's extra driver metadata
        base_type: Normalized base type from the type mapper

    Returns:
        Tuple of (default value, is expression, auto increment)

    Example:
        >>> normalize_default("nextval('users_id_seq'::regclass)")
        (None, False, True)
        >>> normalize_default("'draft'::character varying")
        ('draft', False, False)
        >>> normalize_default("CURRENT_TIMESTAMP")
        ('CURRENT_TIMESTAMP', True, False)
    """
    meta = dialect_meta or {}
    auto_increment = base_type in SERIAL_BASE_TYPES or any(meta.get(key) for key in _AUTO_INCREMENT_KEYS)
    if "auto_increment" in str(meta.get("extra") or "").lower():
        auto_increment = True

    if not isinstance(default_value, str):
        return default_value, False, auto_increment

    value = default_value.strip()
    while _is_wrapped(value):
        value = value[1:-1].strip()
    if _NEXTVAL_RE.match(value):
        return None, False, True

    cast = _CAST_RE.match(value)
    if cast:
        value = cast.group("value").strip()
    # SQL NULL, not the string 'NULL'
    if value.upper() == "NULL":
        return None, False, auto_increment

    literal = _unquote(value)
    if literal is not None:
        return literal, False, auto_increment
    if cast and _NUMBER_RE.match(value):
        return value, False, auto_increment

    if value.lower() in EXPRESSION_DEFAULTS or _FUNCTION_RE.match(value):
        return value, True, auto_increment
    return value, False, auto_increment


class DefinitionBuilder:
    """
    Builds a ``DefinitionSet`` from raw per-table introspection output.

    Usage:
        builder = DefinitionBuilder(BuildOptions(dialect="postgres"))
        definitions = builder.build(tables)
    """

    def __init__(self, options: Optional[BuildOptions] = None):
        self.options = options or BuildOptions()
        self.dialect = normalize_dialect(self.options.dialect)
        self.naming = NameTransformer(self.options.naming)
        self.type_mapper = TypeMapper(self.dialect)
        self.key_classifier = KeyClassifier()
        self.resolver = AssociationResolver(self.naming, self.options.detect_many_to_many)

    def build(self, tables: TablesInput) -> DefinitionSet:
        """
        Build one Definition per table.

        Args:
            tables: Mapping of table name to TableSchema (or snapshot-style
                dict), or an iterable of TableSchema

        Returns:
            DefinitionSet in input order

        Raises:
            StructuralError: On duplicate tables or columns, a mapping key that
                disagrees with its schema name, or an inconsistent primary key.
                Nothing is returned in that case.
        """
        schemas = self._normalize_input(tables)
        for schema in schemas:
            self._check_columns(schema)

        classifications: Dict[str, KeyClassification] = {
            schema.name: self.key_classifier.classify(schema.columns, schema.indexes, schema.name)
            for schema in schemas
        }
        attr_names = {
            schema.name: [self.naming.to_attr_name(column.name) for column in schema.columns]
            for schema in schemas
        }

        associations = self.resolver.resolve_all(
            {schema.name: schema.foreign_keys for schema in schemas},
            [schema.name for schema in schemas],
            primary_keys_by_table={name: result.primary_key_set for name, result in classifications.items()},
            columns_by_table={schema.name: schema.column_names for schema in schemas},
            reserved_names_by_table=attr_names,
        )

        names = {}
        for schema in schemas:
            model_name = self.naming.to_model_name(schema.name)
            names[schema.name] = (model_name, self.naming.to_file_name(model_name, schema.name))
        model_collisions = self._collisions({table: pair[0] for table, pair in names.items()})
        file_collisions = self._collisions({table: pair[1] for table, pair in names.items()})

        definitions: Dict[str, Definition] = {}
        for schema in schemas:
            model_name, file_name = names[schema.name]
            classification = classifications[schema.name]
            diagnostics: List[Diagnostic] = list(classification.diagnostics)
            diagnostics.extend(self._attribute_collision_diagnostics(schema, attr_names[schema.name]))

            attributes = tuple(
                self._build_attribute(schema.name, column, attr_name, classification, diagnostics)
                for column, attr_name in zip(schema.columns, attr_names[schema.name])
            )
            table_associations = associations.get(schema.name, ())
            for association in table_associations:
                if association.dangling:
                    diagnostics.append(Diagnostic(
                        code=DiagnosticCodes.DANGLING_REFERENCE,
                        message=(
                            f"{association.foreign_key} references '{association.target_table}', "
                            "which is not part of this run"
                        ),
                        table=schema.name,
                        column=association.foreign_key,
                    ))

            diagnostics.extend(self._collision_diagnostics(
                schema.name, model_name, model_collisions, DiagnosticCodes.MODEL_NAME_COLLISION, "Model"
            ))
            diagnostics.extend(self._collision_diagnostics(
                schema.name, file_name, file_collisions, DiagnosticCodes.FILE_NAME_COLLISION, "File"
            ))

            definitions[schema.name] = Definition(
                table_name=schema.name,
                model_name=model_name,
                file_name=file_name,
                attributes=attributes,
                associations=table_associations,
                indexes=classification.secondary_indexes,
                diagnostics=tuple(diagnostics),
            )

        for name, tables_sharing in model_collisions.items():
            logger.warning(f"Model name '{name}' is generated for several tables: {', '.join(tables_sharing)}")
        for name, tables_sharing in file_collisions.items():
            logger.warning(f"File name '{name}' is generated for several tables: {', '.join(tables_sharing)}")

        logger.debug(f"Built {len(definitions)} definition(s) for dialect '{self.dialect}'")
        return DefinitionSet(
            definitions,
            dialect=self.dialect,
            model_name_collisions=model_collisions,
            file_name_collisions=file_collisions,
        )

    # --- Input validation ---

    @staticmethod
    def _normalize_input(tables: TablesInput) -> List[TableSchema]:
        # Imported here because the snapshot parser lives at the introspection boundary
        from model_auto_generator.introspection import table_schema_from_dict

        schemas: List[TableSchema] = []
        if isinstance(tables, Mapping):
            for key, value in tables.items():
                schema = value if isinstance(value, TableSchema) else table_schema_from_dict(key, value)
                if schema.name != key:
                    raise StructuralError(
                        f"Table supplied under key '{key}' describes table '{schema.name}'",
                        table=key,
                    )
                schemas.append(schema)
        else:
            schemas = list(tables)

        seen = set()
        for schema in schemas:
            if schema.name in seen:
                raise StructuralError(f"Table '{schema.name}' is supplied more than once", table=schema.name)
            seen.add(schema.name)
        return schemas

    @staticmethod
    def _check_columns(schema: TableSchema) -> None:
        seen = set()
        for column in schema.columns:
            if column.name in seen:
                raise StructuralError(
                    f"Column '{column.name}' appears more than once",
                    table=schema.name,
                    context={'column': column.name},
                )
            seen.add(column.name)

    # --- Composition ---

    def _build_attribute(
        self,
        table_name: str,
        column: RawColumn,
        attr_name: str,
        classification: KeyClassification,
        diagnostics: List[Diagnostic],
    ) -> Attribute:
        type_info = self.type_mapper.map_type(column.raw_type, column.dialect_meta)
        if not type_info.recognized:
            diagnostics.append(self._type_diagnostic(table_name, column, type_info))

        default_value, is_expression, auto_increment = normalize_default(
            column.default_value, column.dialect_meta, type_info.base_type
        )
        if not is_expression:
            default_value = coerce_literal(default_value, type_info.logical_type)
        return Attribute(
            attr_name=attr_name,
            column_name=column.name,
            type_info=type_info,
            nullable=bool(column.nullable),
            is_primary_key=column.name in classification.primary_key_set,
            is_unique=column.name in classification.unique_set,
            default_value=default_value,
            default_is_expression=is_expression,
            auto_increment=auto_increment,
            comment=column.comment or None,
        )

    @staticmethod
    def _type_diagnostic(table_name: str, column: RawColumn, type_info: TypeMapping) -> Diagnostic:
        if type_info.base_type == "enum":
            code = DiagnosticCodes.ENUM_PARSE_FAILED
        else:
            code = DiagnosticCodes.UNKNOWN_TYPE
        logger.warning(f"{table_name}.{column.name}: {type_info.note}")
        return Diagnostic(code=code, message=type_info.note, table=table_name, column=column.name)

    @staticmethod
    def _collisions(names_by_table: Mapping[str, str]) -> Dict[str, Tuple[str, ...]]:
        """Names produced for more than one table, with the tables producing them."""
        tables_by_name = defaultdict(list)
        for table, name in names_by_table.items():
            tables_by_name[name].append(table)
        return {
            name: tuple(tables)
            for name, tables in tables_by_name.items()
            if len(tables) > 1
        }

    @staticmethod
    def _collision_diagnostics(
        table_name: str,
        name: str,
        collisions: Mapping[str, Tuple[str, ...]],
        code: str,
        label: str,
    ) -> List[Diagnostic]:
        if name not in collisions:
            return []
        others = [table for table in collisions[name] if table != table_name]
        return [Diagnostic(
            code=code,
            message=f"{label} name '{name}' is also generated for table(s): {', '.join(others)}",
            table=table_name,
        )]

    def _attribute_collision_diagnostics(self, schema: TableSchema, attr_names: Sequence[str]) -> List[Diagnostic]:
        """One diagnostic per column whose attribute name another column of the table also gets."""
        collisions = self._collisions(dict(zip(schema.column_names, attr_names)))
        diagnostics = []
        for attr_name, columns in collisions.items():
            logger.warning(
                f"{schema.name}: attribute name '{attr_name}' is generated for several columns: {', '.join(columns)}"
            )
            for column in columns:
                others = [other for other in columns if other != column]
                diagnostics.append(Diagnostic(
                    code=DiagnosticCodes.ATTRIBUTE_NAME_COLLISION,
                    message=f"Attribute name '{attr_name}' is also generated for column(s): {', '.join(others)}",
                    table=schema.name,
                    column=column,
                ))
        return diagnostics


def build_definitions(
    tables: TablesInput,
    dialect: Optional[str] = None,
    naming: Optional[NamingOptions] = None,
    detect_many_to_many: bool = False,
) -> DefinitionSet:
    """Convenience wrapper around ``DefinitionBuilder(...).build(tables)``."""
    options = BuildOptions(
        dialect=dialect,
        naming=naming or NamingOptions(),
        detect_many_to_many=detect_many_to_many,
    )
    return DefinitionBuilder(options).build(tables)

