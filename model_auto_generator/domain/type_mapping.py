"""
Type mapping domain logic for Model Auto Generator.

Maps dialect-specific raw column types (``varchar(255)``, ``int(10) unsigned``,
``timestamp(6) with time zone``, ``enum('a','b')`` ...) to coarse logical types.
Classification is table driven, see ``constants.DIALECT_TYPE_TABLES``. The
mapper never raises on an unknown type: it degrades to ``LogicalType.OTHER``
and keeps the raw type string so the generated code can be fixed by hand.
"""

import logging
import re
from typing import Any, Dict, List, Mapping, Optional, Tuple

from model_auto_generator.constants import (
    DECIMAL_BASE_TYPES,
    DIALECT_TYPE_TABLES,
    TYPE_MODIFIERS,
    SupportedDialects,
)
from model_auto_generator.domain.models import LogicalType, TypeMapping


logger = logging.getLogger(__name__)

_PARAMS_RE = re.compile(r"\(([^)]*)\)")
_ENUM_HEAD_RE = re.compile(r"^enum\s*\(")
_ENUM_RE = re.compile(r"^\s*enum\s*\((?P<body>.*)\)\s*$", re.IGNORECASE | re.DOTALL)
_ENUM_LITERAL = r"'(?:[^'\\]|''|\\.)*'"
_ENUM_LIST_RE = re.compile(rf"^\s*{_ENUM_LITERAL}(?:\s*,\s*{_ENUM_LITERAL})*\s*$", re.DOTALL)
_ENUM_ITEM_RE = re.compile(r"'((?:[^'\\]|''|\\.)*)'", re.DOTALL)
_ENUM_ESCAPE_RE = re.compile(r"''|\\(.)", re.DOTALL)

# Keys under which drivers report enum labels outside of the type string
_ENUM_META_KEYS = ("enum_values", "special")


def normalize_dialect(dialect: Optional[str]) -> str:
    """
    Normalize a dialect tag to the form used as a type table key.

    Args:
        dialect: Dialect tag such as 'postgresql', 'MySQL' or 'sqlite3'

    Returns:
        Lower-cased tag with common aliases resolved (e.g. 'postgres')
    """
    tag = (dialect or "").strip().lower()
    return SupportedDialects.ALIASES.get(tag, tag)


def split_raw_type(raw_type: str) -> Tuple[str, List[str], bool]:
    """
    Split a raw type into its normalized token, parameters and unsigned flag.

    Parenthesized parameters may appear anywhere in the type, as in the
    Postgres form ``timestamp(3) with time zone``.

    Example:
        >>> split_raw_type("INT(10) UNSIGNED")
        ('int', ['10'], True)
        >>> split_raw_type("timestamp(6) with time zone")
        ('timestamp with time zone', ['6'], False)
    """
    lowered = (raw_type or "").strip().lower()
    if _ENUM_HEAD_RE.match(lowered):
        # Enum literals may contain parentheses or commas of their own
        return "enum", [], False

    params_match = _PARAMS_RE.search(lowered)
    params = []
    if params_match:
        params = [part.strip() for part in params_match.group(1).split(",") if part.strip()]

    words = _PARAMS_RE.sub(" ", lowered).split()
    unsigned = "unsigned" in words
    words = [word for word in words if word not in TYPE_MODIFIERS]
    return " ".join(words), params, unsigned


def parse_enum_values(body: str) -> Optional[Tuple[str, ...]]:
    """
    Parse the body of an inline enum declaration into its literal values.

    Args:
        body: Text between the parentheses of ``enum(...)``

    Returns:
        Tuple of values, or None when the body is not a list of quoted literals

    Example:
        >>> parse_enum_values("'draft','it''s live'")
        ('draft', "it's live")
    """
    if not _ENUM_LIST_RE.match(body):
        return None
    return tuple(
        _ENUM_ESCAPE_RE.sub(lambda m: m.group(1) if m.group(1) is not None else "'", item)
        for item in _ENUM_ITEM_RE.findall(body)
    )


def _int_params(params: List[str]) -> List[int]:
    # Non-numeric parameters such as nvarchar(max) carry no size
    return [int(param) for param in params if param.isdigit()]


class TypeMapper:
    """
    Maps raw column types of one dialect to ``TypeMapping`` results.

    Each dialect owns a lookup table keyed by the normalized type token.
    Custom tables can be injected for dialects the generator does not ship.
    """

    def __init__(
        self,
        dialect: Optional[str],
        type_tables: Optional[Mapping[str, Mapping[str, str]]] = None,
    ):
        self.dialect = normalize_dialect(dialect)
        tables = DIALECT_TYPE_TABLES if type_tables is None else type_tables
        table = tables.get(self.dialect)
        if table is None:
            logger.warning(
                f"No type table for dialect '{self.dialect}'. "
                "Every column type will map to 'other'."
            )
            table = {}
        self.table: Mapping[str, str] = table

    def lookup(self, token: str, params: List[str]) -> Optional[LogicalType]:
        """Look up a token, trying the parameterized form first."""
        if params:
            value = self.table.get(f"{token}({','.join(params)})")
            if value is not None:
                return LogicalType(value)
        value = self.table.get(token)
        return LogicalType(value) if value is not None else None

    def map_type(
        self, raw_type: Optional[str], dialect_meta: Optional[Dict[str, Any]] = None
    ) -> TypeMapping:
        """
        Map a raw column type to a logical type.

        Args:
            raw_type: Type string as reported by the driver
            dialect_meta: Extra driver metadata; Postgres enum labels are read
                from its 'enum_values' or 'special' key

        Returns:
            TypeMapping; ``recognized`` is False when the type degraded
        """
        raw = "" if raw_type is None else str(raw_type)
        token, params, unsigned = split_raw_type(raw)

        meta_values = self._enum_values_from_meta(dialect_meta)
        if meta_values:
            return TypeMapping(
                raw_type=raw,
                base_type="enum",
                logical_type=LogicalType.ENUM,
                enum_values=meta_values,
            )

        logical_type = self.lookup(token, params)
        if logical_type is None:
            logger.debug(f"Unrecognized {self.dialect} type '{raw}', falling back to 'other'")
            return TypeMapping(
                raw_type=raw,
                base_type=token,
                logical_type=LogicalType.OTHER,
                recognized=False,
                unsigned=unsigned,
                note=f"unrecognized {self.dialect or 'unknown'} type '{raw}'",
            )

        if logical_type == LogicalType.ENUM:
            return self._map_enum(raw, token)

        length = precision = scale = None
        numbers = _int_params(params)
        if len(numbers) >= 2:
            precision, scale = numbers[0], numbers[1]
        elif len(numbers) == 1:
            if logical_type in (LogicalType.STRING, LogicalType.BINARY):
                length = numbers[0]
            elif logical_type in (LogicalType.NUMBER, LogicalType.DATE):
                precision = numbers[0]
                if token in DECIMAL_BASE_TYPES:
                    scale = 0

        return TypeMapping(
            raw_type=raw,
            base_type=token,
            logical_type=logical_type,
            length=length,
            precision=precision,
            scale=scale,
            unsigned=unsigned,
        )

    def _map_enum(self, raw: str, token: str) -> TypeMapping:
        match = _ENUM_RE.match(raw)
        values = parse_enum_values(match.group("body")) if match else None
        if values is None:
            logger.debug(f"Could not parse enum literal '{raw}', falling back to 'string'")
            return TypeMapping(
                raw_type=raw,
                base_type=token,
                logical_type=LogicalType.STRING,
                recognized=False,
                note=f"unparsable enum literal '{raw}'",
            )
        return TypeMapping(
            raw_type=raw,
            base_type=token,
            logical_type=LogicalType.ENUM,
            enum_values=values,
        )

    @staticmethod
    def _enum_values_from_meta(dialect_meta: Optional[Dict[str, Any]]) -> Tuple[str, ...]:
        if not dialect_meta:
            return ()
        for key in _ENUM_META_KEYS:
            values = dialect_meta.get(key)
            if isinstance(values, (list, tuple)) and values:
                return tuple(str(value) for value in values)
        return ()


def map_type(raw_type: Optional[str], dialect: Optional[str]) -> TypeMapping:
    """Map a raw column type under the given dialect's built-in table."""
    return TypeMapper(dialect).map_type(raw_type)
