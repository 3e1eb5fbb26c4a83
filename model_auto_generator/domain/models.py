"""
Core domain models for Model Auto Generator.

The ``Raw*`` classes describe introspection output exactly as a driver hands
it over. Everything else is the normalized, dialect-independent result of the
mapping stage. Mapping results are frozen dataclasses: a ``Definition`` is
built once per run and handed to the renderer unchanged.
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple


class LogicalType(Enum):
    """Coarse, ORM-facing type categories."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    BINARY = "binary"
    JSON = "json"
    ENUM = "enum"
    OTHER = "other"


class AssociationKind(Enum):
    """Kinds of inferred relationships between models."""

    BELONGS_TO = "belongsTo"
    HAS_MANY = "hasMany"
    BELONGS_TO_MANY = "belongsToMany"


# --- Raw introspection input ---


@dataclass
class RawColumn:
    """A column as described by the database driver."""

    name: str
    raw_type: str
    nullable: bool = True
    default_value: Optional[Any] = None
    comment: Optional[str] = None
    # Anything else the driver reported (auto increment flags, enum values, ...)
    dialect_meta: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RawIndex:
    """An index as described by the database driver."""

    name: str
    columns: List[str] = field(default_factory=list)
    unique: bool = False
    primary: bool = False


@dataclass
class RawForeignKey:
    """One column of a foreign-key constraint."""

    column_name: str
    referenced_table: Optional[str]
    referenced_column: Optional[str] = None
    constraint_name: Optional[str] = None


@dataclass
class TableSchema:
    """The raw introspection triple for a single table."""

    name: str
    columns: List[RawColumn] = field(default_factory=list)
    indexes: List[RawIndex] = field(default_factory=list)
    foreign_keys: List[RawForeignKey] = field(default_factory=list)

    @property
    def column_names(self) -> List[str]:
        return [column.name for column in self.columns]


# --- Mapping results ---


@dataclass(frozen=True)
class TypeMapping:
    """
    Result of mapping a raw column type.

    ``recognized`` is False when the dialect table had no entry for the type
    (the logical type is then ``OTHER``) or when an enum literal could not be
    parsed (the logical type is then ``STRING``). ``note`` explains why.
    """

    raw_type: str
    base_type: str
    logical_type: LogicalType
    recognized: bool = True
    enum_values: Tuple[str, ...] = ()
    length: Optional[int] = None
    precision: Optional[int] = None
    scale: Optional[int] = None
    unsigned: bool = False
    note: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            'raw_type': self.raw_type,
            'base_type': self.base_type,
            'logical_type': self.logical_type.value,
            'recognized': self.recognized,
            'enum_values': list(self.enum_values),
            'length': self.length,
            'precision': self.precision,
            'scale': self.scale,
            'unsigned': self.unsigned,
            'note': self.note,
        }


@dataclass(frozen=True)
class Attribute:
    """A model attribute derived from exactly one raw column."""

    attr_name: str
    column_name: str
    type_info: TypeMapping
    nullable: bool = True
    is_primary_key: bool = False
    is_unique: bool = False
    default_value: Optional[Any] = None
    default_is_expression: bool = False
    auto_increment: bool = False
    comment: Optional[str] = None

    @property
    def logical_type(self) -> LogicalType:
        return self.type_info.logical_type

    @property
    def enum_values(self) -> Tuple[str, ...]:
        return self.type_info.enum_values

    @property
    def raw_type(self) -> str:
        return self.type_info.raw_type

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            'attr_name': self.attr_name,
            'column_name': self.column_name,
            'logical_type': self.logical_type.value,
            'type_info': self.type_info.to_dict(),
            'nullable': self.nullable,
            'is_primary_key': self.is_primary_key,
            'is_unique': self.is_unique,
            'default_value': self.default_value,
            'default_is_expression': self.default_is_expression,
            'auto_increment': self.auto_increment,
            'comment': self.comment,
        }


@dataclass(frozen=True)
class Association:
    """
    An inferred relationship, stored on the model that owns it.

    For ``BELONGS_TO`` the owner is the table holding the foreign key; for
    ``HAS_MANY`` it is the referenced table and ``target_table`` points back
    at the table holding the foreign key. ``foreign_key`` always names the
    foreign-key column and ``foreign_key_attr`` its attribute name.
    """

    kind: AssociationKind
    source_table: str
    target_table: str
    target_model: str
    foreign_key: str
    foreign_key_attr: str
    target_key: Optional[str] = None
    target_key_attr: Optional[str] = None
    alias: Optional[str] = None
    inverse_alias: Optional[str] = None
    constraint_name: Optional[str] = None
    dangling: bool = False
    through_table: Optional[str] = None

    @property
    def is_self_referential(self) -> bool:
        return self.source_table == self.target_table

    def sort_key(self) -> Tuple[str, str, str, str]:
        return (self.kind.value, self.target_table, self.foreign_key, self.through_table or "")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            'kind': self.kind.value,
            'source_table': self.source_table,
            'target_table': self.target_table,
            'target_model': self.target_model,
            'foreign_key': self.foreign_key,
            'foreign_key_attr': self.foreign_key_attr,
            'target_key': self.target_key,
            'target_key_attr': self.target_key_attr,
            'alias': self.alias,
            'inverse_alias': self.inverse_alias,
            'constraint_name': self.constraint_name,
            'dangling': self.dangling,
            'through_table': self.through_table,
            'is_self_referential': self.is_self_referential,
        }


@dataclass(frozen=True)
class IndexDefinition:
    """A secondary (non primary key) index."""

    name: Optional[str]
    fields: Tuple[str, ...]
    unique: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {'name': self.name, 'fields': list(self.fields), 'unique': self.unique}


@dataclass(frozen=True)
class Diagnostic:
    """A non-fatal mapping ambiguity kept visible in the output."""

    code: str
    message: str
    table: Optional[str] = None
    column: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'code': self.code,
            'message': self.message,
            'table': self.table,
            'column': self.column,
        }


@dataclass(frozen=True)
class Definition:
    """
    Normalized description of one table as a model.

    This is the only thing the renderer sees: attribute order follows column
    declaration order, associations and indexes are deduplicated.
    """

    table_name: str
    model_name: str
    file_name: str
    attributes: Tuple[Attribute, ...] = ()
    associations: Tuple[Association, ...] = ()
    indexes: Tuple[IndexDefinition, ...] = ()
    diagnostics: Tuple[Diagnostic, ...] = ()

    @property
    def primary_keys(self) -> Tuple[Attribute, ...]:
        return tuple(attr for attr in self.attributes if attr.is_primary_key)

    @property
    def has_composite_primary_key(self) -> bool:
        return len(self.primary_keys) > 1

    def get_attribute(self, column_name: str) -> Optional[Attribute]:
        """Get an attribute by its column name."""
        for attr in self.attributes:
            if attr.column_name == column_name:
                return attr
        return None

    def associations_of(self, kind: AssociationKind) -> Tuple[Association, ...]:
        return tuple(assoc for assoc in self.associations if assoc.kind == kind)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            'table_name': self.table_name,
            'model_name': self.model_name,
            'file_name': self.file_name,
            'attributes': [attr.to_dict() for attr in self.attributes],
            'associations': [assoc.to_dict() for assoc in self.associations],
            'indexes': [index.to_dict() for index in self.indexes],
            'diagnostics': [diag.to_dict() for diag in self.diagnostics],
        }


class DefinitionSet(Mapping):
    """
    Read-only ``table name -> Definition`` mapping produced by one build.

    Besides the definitions themselves it exposes run-level findings: model
    and file names shared by more than one table, and every diagnostic.
    """

    def __init__(
        self,
        definitions: Dict[str, Definition],
        dialect: Optional[str] = None,
        model_name_collisions: Optional[Dict[str, Tuple[str, ...]]] = None,
        file_name_collisions: Optional[Dict[str, Tuple[str, ...]]] = None,
    ):
        self._definitions = dict(definitions)
        self.dialect = dialect
        self.model_name_collisions = dict(model_name_collisions or {})
        self.file_name_collisions = dict(file_name_collisions or {})

    def __getitem__(self, table_name: str) -> Definition:
        return self._definitions[table_name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._definitions)

    def __len__(self) -> int:
        return len(self._definitions)

    def __repr__(self) -> str:
        return f"DefinitionSet({list(self._definitions)!r}, dialect={self.dialect!r})"

    @property
    def has_collisions(self) -> bool:
        return bool(self.model_name_collisions or self.file_name_collisions)

    @property
    def diagnostics(self) -> List[Diagnostic]:
        return [diag for definition in self.values() for diag in definition.diagnostics]

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            'dialect': self.dialect,
            'definitions': {name: definition.to_dict() for name, definition in self.items()},
            'model_name_collisions': {k: list(v) for k, v in self.model_name_collisions.items()},
            'file_name_collisions': {k: list(v) for k, v in self.file_name_collisions.items()},
        }
