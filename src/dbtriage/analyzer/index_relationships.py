"""
Index relationship analysis: duplicate and prefix-redundant indexes.

Compares every unordered pair of one table's indexes:

- duplicate: identical column lists. Drop the index with fewer scans;
  on a tie keep the name that sorts first.
- prefix: one column list is a strict, order-preserving prefix of the
  other. Drop the shorter one; any query it serves the longer one serves.

Only plain indexes of the same access method are compared: a partial
or expression index serves a different set of queries than its column
list suggests, and a btree never substitutes for a gin or hash index.

Pairs are independent. With A ⊂ B ⊂ C all three pairs are reported and
the caller decides the final removal set. The scan is O(n²) in the
number of indexes on the table, which is small.
"""

from __future__ import annotations

from enum import Enum
from itertools import combinations
from typing import Iterable

from pydantic import BaseModel, ConfigDict

from dbtriage.catalog.models import IndexUsageRow


class RelationshipKind(str, Enum):
    DUPLICATE = "duplicate"
    PREFIX = "prefix"


class IndexRelationship(BaseModel):
    """
    One redundant pair of indexes.

    Attributes:
        kind: duplicate or prefix.
        keep_index: Index that should stay.
        drop_index: Index recommended for removal.
        drop_backs_constraint: The drop candidate enforces a primary key or
            unique constraint, so dropping it needs the constraint moved first.
    """

    model_config = ConfigDict(frozen=True)

    kind: RelationshipKind
    schema_name: str
    table_name: str
    keep_index: str
    drop_index: str
    keep_columns: tuple[str, ...]
    drop_columns: tuple[str, ...]
    drop_backs_constraint: bool = False
    reason: str
    suggestion: str


def _is_strict_prefix(shorter: tuple[str, ...], longer: tuple[str, ...]) -> bool:
    return len(shorter) < len(longer) and longer[: len(shorter)] == shorter


def _comparable(a: IndexUsageRow, b: IndexUsageRow) -> bool:
    if a.index_type != b.index_type:
        return False
    return not (a.is_partial or b.is_partial or a.has_expressions or b.has_expressions)


def _relationship(a: IndexUsageRow, b: IndexUsageRow) -> IndexRelationship | None:
    """Classify one pair; ``a`` sorts before ``b`` by name."""
    if not _comparable(a, b):
        return None
    if a.columns == b.columns:
        # Fewer scans is dropped; ties keep the earlier name (a)
        keep, drop = (b, a) if b.scans > a.scans else (a, b)
        return IndexRelationship(
            kind=RelationshipKind.DUPLICATE,
            schema_name=a.schema_name,
            table_name=a.table_name,
            keep_index=keep.index_name,
            drop_index=drop.index_name,
            keep_columns=keep.columns,
            drop_columns=drop.columns,
            drop_backs_constraint=drop.backs_constraint,
            reason="Indexes have identical column sets",
            suggestion=(
                "Consider dropping one of these indexes "
                f"(prefer keeping {keep.index_name} based on usage)"
            ),
        )

    if _is_strict_prefix(a.columns, b.columns):
        shorter, longer = a, b
    elif _is_strict_prefix(b.columns, a.columns):
        shorter, longer = b, a
    else:
        return None

    return IndexRelationship(
        kind=RelationshipKind.PREFIX,
        schema_name=a.schema_name,
        table_name=a.table_name,
        keep_index=longer.index_name,
        drop_index=shorter.index_name,
        keep_columns=longer.columns,
        drop_columns=shorter.columns,
        drop_backs_constraint=shorter.backs_constraint,
        reason=f"{shorter.index_name} is a prefix of {longer.index_name}",
        suggestion=(
            f"Consider dropping {shorter.index_name} as "
            f"{longer.index_name} can handle the same queries"
        ),
    )


def find_index_relationships(indexes: Iterable[IndexUsageRow]) -> list[IndexRelationship]:
    """
    Find duplicate and prefix pairs among one table's indexes.

    Input order does not matter: indexes are compared in name order.
    Indexes with no plain column references (pure expression indexes)
    are skipped.

    Example:
        >>> rels = find_index_relationships([idx_ab, idx_abc])
        >>> rels[0].drop_index
        'idx_ab'
    """
    ordered = sorted(
        (idx for idx in indexes if idx.columns),
        key=lambda idx: idx.index_name,
    )
    relationships: list[IndexRelationship] = []
    for a, b in combinations(ordered, 2):
        rel = _relationship(a, b)
        if rel is not None:
            relationships.append(rel)
    return relationships
