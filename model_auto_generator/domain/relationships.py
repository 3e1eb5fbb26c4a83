"""
Relationship analysis domain logic for Model Auto Generator.

Associations are inferred from foreign-key facts only. Because a ``hasMany``
lives on the *referenced* table, no table's associations are final until every
table's foreign keys have been seen, so resolution is an explicit two-pass
computation over the whole foreign-key set:

1. every outgoing foreign key becomes a ``belongsTo`` on its own table;
2. every ``belongsTo`` whose target is part of the run adds the complementary
   ``hasMany`` on the target.

An optional third step recognizes link tables and adds ``belongsToMany``
associations on both linked tables.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import (
    Collection,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Set,
    Tuple,
)

from model_auto_generator.constants import LINK_TABLE_BOOKKEEPING_COLUMNS
from model_auto_generator.domain.models import (
    Association,
    AssociationKind,
    RawForeignKey,
)
from model_auto_generator.domain.naming import NameTransformer, strip_id_suffix


logger = logging.getLogger(__name__)

_KIND_ORDER = {
    AssociationKind.BELONGS_TO: 0,
    AssociationKind.HAS_MANY: 1,
    AssociationKind.BELONGS_TO_MANY: 2,
}


@dataclass(frozen=True)
class _Edge:
    """One distinct foreign-key column pointing from ``table`` to ``target``."""

    table: str
    column: str
    target: str
    target_column: Optional[str]
    constraint_name: Optional[str]
    dangling: bool


@dataclass
class _Draft:
    """An association before its alias is settled."""

    owner: str
    kind: AssociationKind
    target: str
    foreign_key: str
    foreign_key_table: str
    target_key: Optional[str]
    constraint_name: Optional[str]
    dangling: bool = False
    through_table: Optional[str] = None
    base_alias: str = ""
    clash_alias: str = ""
    alias: str = ""

    def sort_key(self):
        return (_KIND_ORDER[self.kind], self.target, self.foreign_key, self.through_table or "")


def distinct_foreign_keys(foreign_keys: Iterable[RawForeignKey]) -> List[RawForeignKey]:
    """
    Drop rows without a referenced table and duplicate rows, sorted.

    Some drivers report primary-key and unique constraints in their foreign
    key listing with an empty referenced table; those are not foreign keys.
    """
    seen = set()
    result = []
    for fk in foreign_keys:
        if not fk.referenced_table or not fk.column_name:
            logger.debug(f"Ignoring constraint row without a referenced table: {fk}")
            continue
        key = (fk.column_name, fk.referenced_table, fk.referenced_column)
        if key in seen:
            continue
        seen.add(key)
        result.append(fk)
    return sorted(
        result,
        key=lambda fk: (fk.column_name, fk.referenced_table, fk.referenced_column or "", fk.constraint_name or ""),
    )


class AssociationResolver:
    """
    Infers model associations from foreign keys across the whole table set.

    The resolver is pure: the same foreign-key facts always produce the same
    associations in the same order.
    """

    def __init__(self, naming: Optional[NameTransformer] = None, detect_many_to_many: bool = False):
        self.naming = naming or NameTransformer()
        self.detect_many_to_many = detect_many_to_many

    # --- Pass one ---

    def outgoing(
        self,
        table_name: str,
        foreign_keys: Sequence[RawForeignKey],
        all_table_names: Collection[str],
    ) -> Tuple[Association, ...]:
        """
        Resolve the ``belongsTo`` associations owned by one table.

        This is the per-table part of the computation; ``hasMany`` complements
        need every table's foreign keys and come from ``resolve_all``.
        """
        return self.resolve_all({table_name: foreign_keys}, all_table_names, include_complements=False)[table_name]

    # --- Full fixpoint ---

    def resolve_all(
        self,
        foreign_keys_by_table: Mapping[str, Sequence[RawForeignKey]],
        all_table_names: Optional[Collection[str]] = None,
        primary_keys_by_table: Optional[Mapping[str, Collection[str]]] = None,
        columns_by_table: Optional[Mapping[str, Collection[str]]] = None,
        reserved_names_by_table: Optional[Mapping[str, Collection[str]]] = None,
        include_complements: bool = True,
    ) -> Dict[str, Tuple[Association, ...]]:
        """
        Resolve the associations of every table.

        Args:
            foreign_keys_by_table: Raw foreign keys of each table in the run
            all_table_names: Tables present in this run; defaults to the keys
                of ``foreign_keys_by_table``. A foreign key to any other table
                is a dangling reference.
            primary_keys_by_table: Primary-key columns per table, needed only
                for many-to-many detection
            columns_by_table: Column names per table, also only used for
                many-to-many detection
            reserved_names_by_table: Attribute names per table that aliases
                must not shadow
            include_complements: False limits the result to pass one

        Returns:
            Dict mapping each table in ``foreign_keys_by_table`` (and every
            referenced table present in the run) to its sorted associations
        """
        table_names: Set[str] = set(foreign_keys_by_table if all_table_names is None else all_table_names)
        edges = self._collect_edges(foreign_keys_by_table, table_names)

        drafts: Dict[str, List[_Draft]] = defaultdict(list)
        for edge in edges:
            drafts[edge.table].append(self._belongs_to(edge))
        if include_complements:
            for edge in edges:
                if not edge.dangling:
                    drafts[edge.target].append(self._has_many(edge))
            if self.detect_many_to_many:
                for draft in self._many_to_many(edges, primary_keys_by_table or {}, columns_by_table or {}):
                    drafts[draft.owner].append(draft)

        owners = set(foreign_keys_by_table)
        if include_complements:
            owners |= table_names
        result: Dict[str, Tuple[Association, ...]] = {}
        for owner in sorted(owners):
            owned = sorted(drafts.get(owner, []), key=_Draft.sort_key)
            reserved = set((reserved_names_by_table or {}).get(owner, ()))
            self._assign_aliases(owned, reserved)
            drafts[owner] = owned

        inverse = self._inverse_aliases(drafts)
        for owner in sorted(owners):
            result[owner] = tuple(self._freeze(draft, inverse) for draft in drafts[owner])
        return result

    def resolve(
        self,
        table_name: str,
        foreign_keys_by_table: Mapping[str, Sequence[RawForeignKey]],
        all_table_names: Optional[Collection[str]] = None,
        **kwargs,
    ) -> Tuple[Association, ...]:
        """Resolve the final associations of a single table."""
        resolved = self.resolve_all(foreign_keys_by_table, all_table_names, **kwargs)
        return resolved.get(table_name, ())

    # --- Helpers ---

    def _collect_edges(
        self,
        foreign_keys_by_table: Mapping[str, Sequence[RawForeignKey]],
        table_names: Set[str],
    ) -> List[_Edge]:
        edges = []
        for table in sorted(foreign_keys_by_table):
            for fk in distinct_foreign_keys(foreign_keys_by_table[table]):
                dangling = fk.referenced_table not in table_names
                if dangling:
                    logger.warning(
                        f"FK {table}.{fk.column_name} references '{fk.referenced_table}', "
                        "which is not part of this run; no hasMany is generated for it."
                    )
                edges.append(_Edge(
                    table=table,
                    column=fk.column_name,
                    target=fk.referenced_table,
                    target_column=fk.referenced_column,
                    constraint_name=fk.constraint_name,
                    dangling=dangling,
                ))
        return edges

    def _belongs_to(self, edge: _Edge) -> _Draft:
        base = strip_id_suffix(edge.column)
        return _Draft(
            owner=edge.table,
            kind=AssociationKind.BELONGS_TO,
            target=edge.target,
            foreign_key=edge.column,
            foreign_key_table=edge.table,
            target_key=edge.target_column,
            constraint_name=edge.constraint_name,
            dangling=edge.dangling,
            base_alias=base,
            clash_alias=f"{base}_rel",
        )

    def _has_many(self, edge: _Edge) -> _Draft:
        base = self.naming.has_many_alias(edge.table)
        return _Draft(
            owner=edge.target,
            kind=AssociationKind.HAS_MANY,
            target=edge.table,
            foreign_key=edge.column,
            foreign_key_table=edge.table,
            target_key=edge.target_column,
            constraint_name=edge.constraint_name,
            base_alias=base,
            clash_alias=f"{base}_{strip_id_suffix(edge.column)}",
        )

    def _many_to_many(
        self,
        edges: List[_Edge],
        primary_keys_by_table: Mapping[str, Collection[str]],
        columns_by_table: Mapping[str, Collection[str]],
    ) -> List[_Draft]:
        """
        Link tables: exactly two foreign-key columns, both pointing at tables
        of this run, that either form the primary key together or sit next to
        nothing but a surrogate key and bookkeeping timestamps.
        """
        by_table: Dict[str, List[_Edge]] = defaultdict(list)
        for edge in edges:
            by_table[edge.table].append(edge)

        drafts = []
        for through, table_edges in sorted(by_table.items()):
            columns = {edge.column for edge in table_edges}
            if len(table_edges) != 2 or len(columns) != 2:
                continue
            if not self._is_link_table(
                columns,
                set(primary_keys_by_table.get(through, ())),
                columns_by_table.get(through),
            ):
                continue
            if any(edge.dangling for edge in table_edges):
                continue
            logger.debug(f"Detected link table '{through}' between {[e.target for e in table_edges]}")
            first, second = table_edges
            for own, other in ((first, second), (second, first)):
                base = self.naming.belongs_to_many_alias(other.target)
                drafts.append(_Draft(
                    owner=own.target,
                    kind=AssociationKind.BELONGS_TO_MANY,
                    target=other.target,
                    foreign_key=own.column,
                    foreign_key_table=through,
                    # For link tables the key is the column pointing at the target
                    target_key=other.column,
                    constraint_name=own.constraint_name,
                    through_table=through,
                    base_alias=base,
                    clash_alias=f"{base}_{strip_id_suffix(other.column)}",
                ))
        return drafts

    @staticmethod
    def _is_link_table(fk_columns: Set[str], primary_keys: Set[str], column_names: Optional[Collection[str]]) -> bool:
        if fk_columns == primary_keys:
            return True
        if column_names is None or len(primary_keys) != 1:
            return False
        extra = [
            name for name in column_names
            if name not in fk_columns and name not in primary_keys
            and name.lower() not in LINK_TABLE_BOOKKEEPING_COLUMNS
        ]
        return not extra

    def _assign_aliases(self, drafts: List[_Draft], reserved: Set[str]) -> None:
        """Give each draft an alias unique within its owner table."""
        used = set(reserved)
        for draft in drafts:
            alias = self.naming.to_attr_name(draft.base_alias)
            if alias in used:
                alias = self.naming.to_attr_name(draft.clash_alias)
            candidate, counter = alias, 1
            while candidate in used:
                candidate = f"{alias}_{counter}"
                counter += 1
            draft.alias = candidate
            used.add(candidate)

    @staticmethod
    def _inverse_aliases(drafts: Mapping[str, List[_Draft]]) -> Dict[Tuple, str]:
        """Map each (kind, owner, fk table, fk column) to the paired alias."""
        aliases = {}
        for owned in drafts.values():
            for draft in owned:
                aliases[(draft.kind, draft.owner, draft.foreign_key_table, draft.foreign_key)] = draft.alias

        inverse = {}
        for owned in drafts.values():
            for draft in owned:
                if draft.kind == AssociationKind.BELONGS_TO and not draft.dangling:
                    partner = (AssociationKind.HAS_MANY, draft.target, draft.foreign_key_table, draft.foreign_key)
                elif draft.kind == AssociationKind.HAS_MANY:
                    partner = (AssociationKind.BELONGS_TO, draft.target, draft.foreign_key_table, draft.foreign_key)
                elif draft.kind == AssociationKind.BELONGS_TO_MANY:
                    partner = (AssociationKind.BELONGS_TO_MANY, draft.target, draft.foreign_key_table, draft.target_key)
                else:
                    continue
                if partner in aliases:
                    key = (draft.kind, draft.owner, draft.foreign_key_table, draft.foreign_key)
                    inverse[key] = aliases[partner]
        return inverse

    def _freeze(self, draft: _Draft, inverse: Mapping[Tuple, str]) -> Association:
        if draft.dangling:
            # The target model is not generated in this run
            target_model = draft.target
        else:
            target_model = self.naming.to_model_name(draft.target)
        return Association(
            kind=draft.kind,
            source_table=draft.owner,
            target_table=draft.target,
            target_model=target_model,
            foreign_key=draft.foreign_key,
            foreign_key_attr=self.naming.to_attr_name(draft.foreign_key),
            target_key=draft.target_key,
            target_key_attr=self.naming.to_attr_name(draft.target_key) if draft.target_key else None,
            alias=draft.alias,
            inverse_alias=inverse.get((draft.kind, draft.owner, draft.foreign_key_table, draft.foreign_key)),
            constraint_name=draft.constraint_name,
            dangling=draft.dangling,
            through_table=draft.through_table,
        )
