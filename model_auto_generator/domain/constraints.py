"""
Constraint analysis domain logic for Model Auto Generator.

Derives primary-key and unique membership per column from the raw index list
and collects the remaining (secondary) indexes for the model's index options.
"""

import logging
from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional, Sequence, Set, Tuple

from model_auto_generator.constants import DiagnosticCodes
from model_auto_generator.domain.models import (
    Diagnostic,
    IndexDefinition,
    RawColumn,
    RawIndex,
)
from model_auto_generator.exceptions import StructuralError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class KeyClassification:
    """Result of classifying one table's indexes."""

    primary_key_set: FrozenSet[str] = frozenset()
    unique_set: FrozenSet[str] = frozenset()
    secondary_indexes: Tuple[IndexDefinition, ...] = ()
    diagnostics: Tuple[Diagnostic, ...] = field(default=(), compare=False)


class KeyClassifier:
    """
    Classifies columns as primary-key and/or unique members.

    A column is a primary-key member iff some index flagged ``primary`` lists
    it. It is unique iff some ``unique`` index lists it as its only column;
    composite unique indexes are reported as secondary indexes only.
    """

    def classify(
        self,
        columns: Sequence[RawColumn],
        indexes: Sequence[RawIndex],
        table_name: Optional[str] = None,
    ) -> KeyClassification:
        """
        Classify a table's indexes.

        Args:
            columns: The table's raw columns
            indexes: The table's raw indexes
            table_name: Used for error context and diagnostics only

        Returns:
            KeyClassification with primary/unique sets and secondary indexes

        Raises:
            StructuralError: If a primary index is empty or names a column the
                table does not have
        """
        column_names = {column.name for column in columns}
        primary_key_set: Set[str] = set()
        unique_set: Set[str] = set()
        diagnostics: List[Diagnostic] = []

        for index in indexes:
            if index.primary:
                self._check_primary_index(index, column_names, table_name)
                primary_key_set.update(index.columns)
            if index.unique and len(index.columns) == 1:
                unique_set.add(index.columns[0])

        secondary_indexes = self._secondary_indexes(indexes)

        for index in secondary_indexes:
            missing = [name for name in index.fields if name not in column_names]
            if missing:
                message = (
                    f"Index '{index.name}' references unknown column(s) "
                    f"{', '.join(missing)}; kept as-is"
                )
                logger.warning(f"{table_name}: {message}")
                diagnostics.append(Diagnostic(
                    code=DiagnosticCodes.UNKNOWN_INDEX_COLUMN,
                    message=message,
                    table=table_name,
                    column=missing[0],
                ))

        return KeyClassification(
            primary_key_set=frozenset(primary_key_set),
            unique_set=frozenset(unique_set),
            secondary_indexes=secondary_indexes,
            diagnostics=tuple(diagnostics),
        )

    @staticmethod
    def _check_primary_index(index: RawIndex, column_names: Set[str], table_name: Optional[str]) -> None:
        if not index.columns:
            raise StructuralError(
                f"Primary key index '{index.name}' has no columns",
                table=table_name,
                context={'index': index.name},
            )
        unknown = [name for name in index.columns if name not in column_names]
        if unknown:
            raise StructuralError(
                f"Primary key index '{index.name}' references unknown column(s): {', '.join(unknown)}",
                table=table_name,
                context={'index': index.name, 'columns': index.columns},
            )

    @staticmethod
    def _secondary_indexes(indexes: Sequence[RawIndex]) -> Tuple[IndexDefinition, ...]:
        """Non-primary indexes, deduplicated by (sorted column set, unique)."""
        seen = set()
        result = []
        for index in indexes:
            if index.primary:
                continue
            key = (tuple(sorted(set(index.columns))), bool(index.unique))
            if key in seen:
                logger.debug(f"Skipping duplicate index '{index.name}' on {list(index.columns)}")
                continue
            seen.add(key)
            result.append(IndexDefinition(
                name=index.name,
                fields=tuple(index.columns),
                unique=bool(index.unique),
            ))
        return tuple(result)
