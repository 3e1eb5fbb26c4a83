import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from jinja2 import (
    ChoiceLoader,
    Environment,
    FileSystemLoader,
    TemplateError,
    select_autoescape,
    ext as jinja2_extensions,
)

from model_auto_generator.codegen_utils import format_python_code_using_black
from model_auto_generator.constants import (
    STYLE_TYPE_MAPS,
    TYPESCRIPT_TYPES,
    CodeStyles,
    FileKinds,
)
from model_auto_generator.domain.models import (
    Association,
    AssociationKind,
    Attribute,
    Definition,
    DefinitionSet,
    LogicalType,
)
from model_auto_generator.domain.naming import pluralize, python_identifier, to_pascal_case
from model_auto_generator.exceptions import CodeGenerationError


logger = logging.getLogger(__name__)

# Define the path to the templates directory relative to this file
TEMPLATE_DIR = Path(__file__).parent / "templates"

# Logical types whose ORM type never depends on the base type
_LOGICAL_ONLY = (LogicalType.BOOLEAN, LogicalType.ENUM, LogicalType.OTHER)

_JS_IDENTIFIER = re.compile(r"^[A-Za-z_\$][A-Za-z0-9_\$]*$")

_DJANGO_AUTO_FIELDS = {
    "BigIntegerField": "BigAutoField",
    "SmallIntegerField": "SmallAutoField",
}


@dataclass(frozen=True)
class RenderedFile:
    """One generated source file, not yet written."""

    file_name: str
    code: str
    kind: str = FileKinds.MODEL
    table_name: Optional[str] = None


# --- Filters ---


def jinja2_pluralize_filter(word):
    """Custom Jinja filter to pluralize a word using inflect."""
    return pluralize(word)


def py_literal(value: Any) -> str:
    """Render a value as a Python literal."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return repr(value)
    return repr(str(value))


def js_literal(value: Any) -> str:
    """Render a value as a JavaScript literal."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return json.dumps(value, ensure_ascii=False)
    return json.dumps(str(value), ensure_ascii=False)


def js_key(name: str) -> str:
    """Object key for JavaScript output, quoted only when it has to be."""
    if _JS_IDENTIFIER.match(name):
        return name
    return js_literal(name)


def orm_type(attribute: Attribute, style: str) -> str:
    """
    Name of the ORM type for an attribute under a code style.

    Base-type overrides (``Text`` for ``text``, ``BigInteger`` for ``bigint``)
    win over the logical-type default, except for booleans and enums whose
    base type (``tinyint(1)``, a Postgres enum name) says nothing useful.
    """
    maps = STYLE_TYPE_MAPS[style]
    if attribute.logical_type not in _LOGICAL_ONLY:
        override = maps["base"].get(attribute.type_info.base_type)
        if override:
            return override
    return maps["logical"][attribute.logical_type.value]


def review_note(attribute: Attribute) -> Optional[str]:
    """Comment text for attributes whose type needs a manual look."""
    if attribute.type_info.recognized:
        return None
    return f"Review manually: {attribute.type_info.note}"


def model_indexes(definition: Definition) -> Tuple[List[Dict[str, Any]], List[str]]:
    """
    Secondary indexes worth declaring on the model.

    Single-column unique indexes are already expressed as ``unique`` on the
    attribute. Indexes naming columns the table lacks cannot be declared and
    are returned by name so the template can mention them.
    """
    column_names = {attr.column_name for attr in definition.attributes}
    declared = []
    skipped = []
    for index in definition.indexes:
        if index.unique and len(index.fields) == 1:
            continue
        if not all(name in column_names for name in index.fields):
            skipped.append(index.name or ", ".join(index.fields))
            continue
        suffix = "uniq" if index.unique else "idx"
        declared.append({
            "name": index.name or f"{definition.table_name}_{'_'.join(index.fields)}_{suffix}",
            "columns": list(index.fields),
            "unique": index.unique,
        })
    return declared, skipped


# --- SQLAlchemy ---


def sqlalchemy_type(attribute: Attribute, definition: Definition) -> str:
    type_info = attribute.type_info
    name = orm_type(attribute, CodeStyles.SQLALCHEMY)
    if name == "String" and type_info.length:
        return f"String({type_info.length})"
    if name == "LargeBinary" and type_info.length:
        return f"LargeBinary({type_info.length})"
    if name == "Numeric" and type_info.precision is not None:
        return f"Numeric({type_info.precision}, {type_info.scale or 0})"
    if name == "DateTime" and "time zone" in type_info.base_type and "without" not in type_info.base_type:
        return "DateTime(timezone=True)"
    if name == "DateTime" and type_info.base_type == "timestamptz":
        return "DateTime(timezone=True)"
    if name == "Enum":
        if type_info.raw_type.lower().startswith("enum"):
            enum_name = f"{definition.table_name}_{attribute.column_name}"
        else:
            # Postgres reports the enum type's own name
            enum_name = type_info.raw_type
        values = ", ".join(py_literal(value) for value in attribute.enum_values)
        return f"Enum({values}, name={py_literal(enum_name)})"
    return name


def _sqlalchemy_default(attribute: Attribute) -> Optional[str]:
    if attribute.default_value is None:
        return None
    if attribute.default_is_expression:
        return f"server_default=text({py_literal(attribute.default_value)})"
    if isinstance(attribute.default_value, str):
        return f"server_default={py_literal(attribute.default_value)}"
    return f"default={py_literal(attribute.default_value)}"


def sqlalchemy_columns(definition: Definition) -> List[Dict[str, Any]]:
    """Column declarations, in column order."""
    belongs_to = {assoc.foreign_key: assoc for assoc in definition.associations_of(AssociationKind.BELONGS_TO)}
    columns = []
    for attribute in definition.attributes:
        args = [py_literal(attribute.column_name), sqlalchemy_type(attribute, definition)]
        assoc = belongs_to.get(attribute.column_name)
        if assoc is not None:
            target = f"{assoc.target_table}.{assoc.target_key}" if assoc.target_key else assoc.target_table
            args.append(f"ForeignKey({py_literal(target)})")
        if attribute.is_primary_key:
            args.append("primary_key=True")
        if attribute.auto_increment:
            args.append("autoincrement=True")
        if not attribute.nullable and not attribute.is_primary_key:
            args.append("nullable=False")
        if attribute.is_unique and not attribute.is_primary_key:
            args.append("unique=True")
        default = _sqlalchemy_default(attribute)
        if default:
            args.append(default)
        if attribute.comment:
            args.append(f"comment={py_literal(attribute.comment)}")
        columns.append({
            "name": python_identifier(attribute.attr_name),
            "args": args,
            "note": review_note(attribute),
        })
    return columns


def sqlalchemy_relationships(definition: Definition) -> List[Dict[str, Any]]:
    """``relationship()`` declarations; dangling references get none."""
    model = python_identifier(definition.model_name)
    primary_keys = [python_identifier(attr.attr_name) for attr in definition.primary_keys]
    relationships = []
    for assoc in definition.associations:
        if assoc.dangling:
            continue
        target = python_identifier(assoc.target_model)
        args = [py_literal(target)]
        if assoc.kind == AssociationKind.BELONGS_TO:
            args.append(f"foreign_keys=[{python_identifier(assoc.foreign_key_attr)}]")
            if assoc.is_self_referential:
                remote = python_identifier(assoc.target_key_attr) if assoc.target_key_attr else ", ".join(primary_keys)
                args.append(f"remote_side=[{remote}]")
        elif assoc.kind == AssociationKind.HAS_MANY:
            args.append(f"foreign_keys={py_literal(f'[{target}.{python_identifier(assoc.foreign_key_attr)}]')}")
        else:
            args.append(f"secondary={py_literal(assoc.through_table)}")
            if assoc.is_self_referential and primary_keys:
                args.append(f"primaryjoin={py_literal(f'{model}.{primary_keys[0]} == {assoc.through_table}.c.{assoc.foreign_key}')}")
                args.append(f"secondaryjoin={py_literal(f'{model}.{primary_keys[0]} == {assoc.through_table}.c.{assoc.target_key}')}")
            args.append("viewonly=True")
        if assoc.inverse_alias:
            args.append(f"back_populates={py_literal(python_identifier(assoc.inverse_alias))}")
        relationships.append({"name": python_identifier(assoc.alias), "args": args})
    return relationships


def sqlalchemy_imports(definition: Definition) -> List[str]:
    names = {"Column"}
    for attribute in definition.attributes:
        names.add(orm_type(attribute, CodeStyles.SQLALCHEMY))
        if attribute.default_is_expression and attribute.default_value is not None:
            names.add("text")
    if definition.associations_of(AssociationKind.BELONGS_TO):
        names.add("ForeignKey")
    if model_indexes(definition)[0]:
        names.add("Index")
    names.discard("NullType")
    return sorted(names)


# --- Django ---


def _django_field_name(attribute: Attribute, assoc: Optional[Association]) -> str:
    if assoc is not None and not assoc.dangling:
        return python_identifier(assoc.alias)
    return python_identifier(attribute.attr_name)


def _django_type_kwargs(attribute: Attribute, field_class: str) -> Tuple[str, List[str], List[str]]:
    type_info = attribute.type_info
    kwargs: List[str] = []
    notes: List[str] = []
    if field_class == "CharField":
        if attribute.logical_type == LogicalType.ENUM and attribute.enum_values:
            kwargs.append(f"max_length={max(len(value) for value in attribute.enum_values)}")
            choices = ", ".join(f"({py_literal(value)}, {py_literal(value)})" for value in attribute.enum_values)
            kwargs.append(f"choices=[{choices}]")
        elif type_info.length:
            kwargs.append(f"max_length={type_info.length}")
        else:
            field_class = "TextField"
    elif field_class == "DecimalField":
        if type_info.precision is not None:
            kwargs.append(f"max_digits={type_info.precision}")
            kwargs.append(f"decimal_places={type_info.scale or 0}")
        else:
            kwargs.extend(["max_digits=10", "decimal_places=5"])
            notes.append("max_digits and decimal_places have been guessed")
    if attribute.auto_increment and attribute.is_primary_key:
        field_class = _DJANGO_AUTO_FIELDS.get(field_class, "AutoField")
    return field_class, kwargs, notes


def django_fields(definition: Definition, definitions: DefinitionSet) -> List[Dict[str, Any]]:
    """Field declarations; foreign-key columns become ``ForeignKey`` fields."""
    belongs_to = {assoc.foreign_key: assoc for assoc in definition.associations_of(AssociationKind.BELONGS_TO)}
    # Django models take one primary key field; a composite key keeps its first
    # column as the primary key and the full set in unique_together
    primary_keys = definition.primary_keys
    first_primary_key = primary_keys[0].column_name if primary_keys else None
    fields = []
    for attribute in definition.attributes:
        assoc = belongs_to.get(attribute.column_name)
        name = _django_field_name(attribute, assoc)
        notes: List[str] = []
        if assoc is not None and not assoc.dangling:
            target = "self" if assoc.is_self_referential else python_identifier(assoc.target_model)
            field_class = "ForeignKey"
            kwargs = [py_literal(target), "models.DO_NOTHING"]
            target_definition = definitions.get(assoc.target_table)
            target_pks = [attr.column_name for attr in target_definition.primary_keys] if target_definition else []
            if assoc.target_key and [assoc.target_key] != target_pks:
                kwargs.append(f"to_field={py_literal(assoc.target_key_attr)}")
            if assoc.inverse_alias:
                kwargs.append(f"related_name={py_literal(python_identifier(assoc.inverse_alias))}")
        else:
            field_class, kwargs, notes = _django_type_kwargs(attribute, orm_type(attribute, CodeStyles.DJANGO))
            if assoc is not None:
                notes.append(f"References {assoc.target_table}, which is not generated")

        if name != attribute.column_name:
            kwargs.append(f"db_column={py_literal(attribute.column_name)}")
        if attribute.column_name == first_primary_key:
            kwargs.append("primary_key=True")
        if attribute.is_unique and not attribute.is_primary_key:
            kwargs.append("unique=True")
        if attribute.nullable and not attribute.is_primary_key:
            kwargs.extend(["blank=True", "null=True"])
        if attribute.default_value is not None:
            if attribute.default_is_expression:
                notes.append(f"Database default: {attribute.default_value}")
            elif not attribute.auto_increment:
                kwargs.append(f"default={py_literal(attribute.default_value)}")
        if attribute.comment:
            kwargs.append(f"db_comment={py_literal(attribute.comment)}")
        note = review_note(attribute)
        if note:
            notes.append(note)
        fields.append({
            "name": name,
            "field_class": field_class,
            "kwargs": kwargs,
            "note": "; ".join(notes) or None,
        })
    return fields


def django_many_to_many(definition: Definition, definitions: DefinitionSet) -> List[Dict[str, Any]]:
    """
    ``ManyToManyField`` declarations.

    Django declares a many-to-many relation on one side only; the table whose
    name sorts first owns it and the other side gets the related name.
    """
    fields = []
    for assoc in definition.associations_of(AssociationKind.BELONGS_TO_MANY):
        if assoc.is_self_referential:
            if assoc.foreign_key > (assoc.target_key or ""):
                continue
        elif definition.table_name > assoc.target_table:
            continue
        through = definitions.get(assoc.through_table)
        if through is None:
            continue
        target = "self" if assoc.is_self_referential else python_identifier(assoc.target_model)
        kwargs = [py_literal(target), f"through={py_literal(python_identifier(through.model_name))}"]
        if assoc.is_self_referential:
            through_fields = _through_field_names(through, assoc)
            kwargs.append(f"through_fields=({py_literal(through_fields[0])}, {py_literal(through_fields[1])})")
            kwargs.append("symmetrical=False")
        if assoc.inverse_alias:
            kwargs.append(f"related_name={py_literal(python_identifier(assoc.inverse_alias))}")
        fields.append({"name": python_identifier(assoc.alias), "kwargs": kwargs})
    return fields


def _through_field_names(through: Definition, assoc: Association):
    aliases = {
        other.foreign_key: python_identifier(other.alias)
        for other in through.associations_of(AssociationKind.BELONGS_TO)
    }
    return aliases.get(assoc.foreign_key, assoc.foreign_key), aliases.get(assoc.target_key, assoc.target_key)


def django_field_names(definition: Definition) -> Dict[str, str]:
    """Column name -> model field name, for Meta options."""
    belongs_to = {assoc.foreign_key: assoc for assoc in definition.associations_of(AssociationKind.BELONGS_TO)}
    return {
        attribute.column_name: _django_field_name(attribute, belongs_to.get(attribute.column_name))
        for attribute in definition.attributes
    }


# --- Sequelize ---


def sequelize_type(attribute: Attribute) -> str:
    type_info = attribute.type_info
    name = orm_type(attribute, CodeStyles.SEQUELIZE_JS)
    if not name:
        # Sequelize accepts the SQL type string as is
        return js_literal(type_info.raw_type)
    if name == "ENUM":
        return "DataTypes.ENUM(" + ", ".join(js_literal(value) for value in attribute.enum_values) + ")"
    if name in ("STRING", "CHAR", "BLOB") and type_info.length:
        expression = f"DataTypes.{name}({type_info.length})"
    elif name == "DECIMAL" and type_info.precision is not None:
        expression = f"DataTypes.DECIMAL({type_info.precision}, {type_info.scale or 0})"
    else:
        expression = f"DataTypes.{name}"
    if type_info.unsigned and name in ("INTEGER", "BIGINT", "SMALLINT", "TINYINT", "MEDIUMINT", "DECIMAL", "FLOAT", "DOUBLE"):
        expression += ".UNSIGNED"
    return expression


def sequelize_attributes(definition: Definition) -> List[Dict[str, Any]]:
    """Attribute declarations as ``(key, js value)`` property lists."""
    belongs_to = {assoc.foreign_key: assoc for assoc in definition.associations_of(AssociationKind.BELONGS_TO)}
    attributes = []
    for attribute in definition.attributes:
        props = [
            ("type", sequelize_type(attribute)),
            ("allowNull", js_literal(attribute.nullable)),
        ]
        if attribute.default_value is not None:
            if attribute.default_is_expression:
                props.append(("defaultValue", f"sequelize.literal({js_literal(attribute.default_value)})"))
            else:
                props.append(("defaultValue", js_literal(attribute.default_value)))
        if attribute.is_primary_key:
            props.append(("primaryKey", "true"))
        if attribute.auto_increment:
            props.append(("autoIncrement", "true"))
        if attribute.is_unique and not attribute.is_primary_key:
            props.append(("unique", "true"))
        if attribute.comment:
            props.append(("comment", js_literal(attribute.comment)))
        props.append(("field", js_literal(attribute.column_name)))
        assoc = belongs_to.get(attribute.column_name)
        if assoc is not None:
            reference = f"model: {js_literal(assoc.target_table)}"
            if assoc.target_key:
                reference = f"key: {js_literal(assoc.target_key)}, {reference}"
            props.append(("references", "{ " + reference + " }"))
        attributes.append({
            "key": js_key(attribute.attr_name),
            "props": props,
            "note": review_note(attribute),
        })
    return attributes


def sequelize_associations(definition: Definition, definitions: DefinitionSet) -> List[Dict[str, Any]]:
    associations = []
    for assoc in definition.associations:
        if assoc.dangling:
            continue
        options = [("as", js_literal(assoc.alias)), ("foreignKey", js_literal(assoc.foreign_key_attr))]
        if assoc.kind == AssociationKind.BELONGS_TO and assoc.target_key_attr:
            options.append(("targetKey", js_literal(assoc.target_key_attr)))
        elif assoc.kind == AssociationKind.HAS_MANY and assoc.target_key_attr:
            options.append(("sourceKey", js_literal(assoc.target_key_attr)))
        elif assoc.kind == AssociationKind.BELONGS_TO_MANY:
            through = definitions.get(assoc.through_table)
            through_model = through.model_name if through else assoc.through_table
            options.append(("through", js_literal(through_model)))
            options.append(("otherKey", js_literal(assoc.target_key)))
        associations.append({
            "method": assoc.kind.value,
            "target": js_literal(assoc.target_model),
            "options": options,
        })
    return associations


def typescript_type(attribute: Attribute) -> str:
    if attribute.logical_type == LogicalType.ENUM and attribute.enum_values:
        ts_type = " | ".join(js_literal(value) for value in attribute.enum_values)
    else:
        ts_type = TYPESCRIPT_TYPES[attribute.logical_type.value]
    if attribute.nullable and ts_type != "any":
        ts_type += " | null"
    return ts_type


def typescript_optional(attribute: Attribute) -> bool:
    return attribute.nullable or attribute.auto_increment or attribute.default_value is not None


# --- Environment ---


def setup_jinja_env(template_path: Optional[str] = None) -> Environment:
    """Sets up and returns the Jinja2 environment."""
    loaders = [FileSystemLoader(TEMPLATE_DIR)]
    if template_path:
        loaders.insert(0, FileSystemLoader(str(Path(template_path).parent)))
    env = Environment(
        loader=ChoiceLoader(loaders),
        # Generated source is not markup; only html/xml templates are escaped
        autoescape=select_autoescape(["html", "xml"]),
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
        extensions=[
            jinja2_extensions.do,
            jinja2_extensions.loopcontrols,
        ],
    )
    env.filters["pluralize"] = jinja2_pluralize_filter
    env.filters["python_name"] = python_identifier
    env.filters["pascal_case"] = to_pascal_case
    env.filters["orm_type"] = orm_type
    env.filters["py_literal"] = py_literal
    env.filters["js_literal"] = js_literal
    env.filters["js_key"] = js_key
    env.filters["ts_type"] = typescript_type
    env.filters["ts_optional"] = typescript_optional
    return env


def _model_context(
    definition: Definition,
    definitions: DefinitionSet,
    style: str,
    ts_no_check: bool,
    sequelize_namespace: Optional[str] = None,
) -> Dict[str, Any]:
    context: Dict[str, Any] = {
        "definition": definition,
        "definitions": definitions,
        "dialect": definitions.dialect,
        "style": style,
        "ts_no_check": ts_no_check,
        "sequelize_namespace": sequelize_namespace,
        "class_name": python_identifier(definition.model_name),
    }
    context["indexes"], context["skipped_indexes"] = model_indexes(definition)
    if style == CodeStyles.SQLALCHEMY:
        context["columns"] = sqlalchemy_columns(definition)
        context["relationships"] = sqlalchemy_relationships(definition)
        context["imports"] = sqlalchemy_imports(definition)
        context["uses_null_type"] = any(
            orm_type(attr, style) == "NullType" for attr in definition.attributes
        )
        context["needs_relationship"] = bool(context["relationships"])
    elif style == CodeStyles.DJANGO:
        context["fields"] = django_fields(definition, definitions)
        context["many_to_many"] = django_many_to_many(definition, definitions)
        context["field_names"] = django_field_names(definition)
    else:
        context["attributes"] = sequelize_attributes(definition)
        context["associations"] = sequelize_associations(definition, definitions)
        context["interface_name"] = to_pascal_case(definition.model_name)
    return context


def _render(env: Environment, template_name: str, context: Dict[str, Any], style: str, table: Optional[str]) -> str:
    try:
        template = env.get_template(template_name)
        return template.render(context)
    except TemplateError as e:
        raise CodeGenerationError(
            f"Error rendering template '{template_name}': {e}", style=style, table=table
        ) from e


def render_definitions(
    definitions: DefinitionSet,
    style: str = CodeStyles.SQLALCHEMY,
    template_path: Optional[str] = None,
    ts_no_check: bool = False,
    sequelize_namespace: Optional[str] = None,
) -> List[RenderedFile]:
    """
    Render every definition into source files.

    Args:
        definitions: Output of the definition builder
        style: One of ``CodeStyles.ALL``
        template_path: Custom template replacing the style's model template
        ts_no_check: Add a type-checker opt-out annotation to every file
        sequelize_namespace: Expression the Sequelize styles read
            ``DataTypes`` from instead of requiring the sequelize package

    Returns:
        Model files in definition order, then typings, then package files

    Raises:
        CodeGenerationError: On an unknown style or a template failure
    """
    if style not in CodeStyles.ALL:
        raise CodeGenerationError(
            f"Code style '{style}' is not supported. Supported styles are: {', '.join(CodeStyles.ALL)}",
            style=style,
        )

    env = setup_jinja_env(template_path)
    model_template = Path(template_path).name if template_path else CodeStyles.MODEL_TEMPLATES[style]
    extension = CodeStyles.EXTENSIONS[style]
    is_python = style in CodeStyles.PYTHON

    files: List[RenderedFile] = []
    typings: List[RenderedFile] = []
    for definition in definitions.values():
        logger.debug(f"Rendering {style} model for table '{definition.table_name}'")
        context = _model_context(definition, definitions, style, ts_no_check, sequelize_namespace)
        file_name = f"{definition.file_name}{extension}"
        code = _render(env, model_template, context, style, definition.table_name)
        if is_python:
            code = format_python_code_using_black(file_name, code)
        files.append(RenderedFile(file_name, code, FileKinds.MODEL, definition.table_name))

        if style in CodeStyles.TYPINGS_TEMPLATES:
            typings_template, typings_extension = CodeStyles.TYPINGS_TEMPLATES[style]
            typings.append(RenderedFile(
                f"{definition.file_name}{typings_extension}",
                _render(env, typings_template, context, style, definition.table_name),
                FileKinds.TYPINGS,
                definition.table_name,
            ))

    files.extend(typings)
    for package_template, package_file in CodeStyles.PACKAGE_TEMPLATES.get(style, []):
        context = {
            "definitions": definitions,
            "style": style,
            "ts_no_check": ts_no_check,
            "modules": [
                {
                    "module": definition.file_name,
                    "class_name": python_identifier(definition.model_name),
                    "importable": definition.file_name.isidentifier(),
                }
                for definition in definitions.values()
            ],
        }
        code = format_python_code_using_black(package_file, _render(env, package_template, context, style, None))
        files.append(RenderedFile(package_file, code, FileKinds.PACKAGE))

    logger.info(f"Rendered {len(files)} file(s) in '{style}' style")
    return files
