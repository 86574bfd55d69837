"""
row_tree.py — Row Tree Mutations

Purpose:
- Insert, update, move, reorder and remove rows of a statement forest.
- Insert balance-sheet rows into a category with default link metadata.
- Every operation returns a NEW list of rows. Only the rows on the path to the
  change are copied; untouched subtrees are shared with the input.

Rejection policy:
- A rejected operation (duplicate id, unknown row or parent, protected row,
  move past the edge of the sibling list) logs a warning and returns the
  input list itself, so `result is rows` tells the caller nothing changed.
- Nothing here raises for structural violations.
"""

from __future__ import annotations

import uuid
from dataclasses import replace
from typing import Callable, Dict, FrozenSet, Iterable, Iterator, List, Optional, Tuple

from finmodel.core.logging import get_logger
from finmodel.services.modeling.bs_impact_rules import get_bs_item_impacts
from finmodel.services.modeling.category_resolver import (
    ANCHOR_IDS,
    CATEGORIES,
    GRAND_TOTAL_IDS,
    TYPICAL_PREFIXES,
    get_insertion_index_for_category,
)
from finmodel.services.modeling.types import CfsLink, IsLink, ROW_KINDS, Row, Year

logger = get_logger(__name__)

# Category boundaries the balance-sheet resolver depends on; never removable
STRUCTURAL_ROW_IDS: FrozenSet[str] = frozenset(ANCHOR_IDS) | GRAND_TOTAL_IDS


# -----------------------------------------------------------------------------
# Lookup helpers
# -----------------------------------------------------------------------------


def iter_rows(rows: Iterable[Row]) -> Iterator[Row]:
    """Depth-first, pre-order walk of a forest."""
    for row in rows:
        yield row
        if row.children:
            yield from iter_rows(row.children)


def flatten_rows(rows: Iterable[Row]) -> List[Row]:
    return list(iter_rows(rows))


def find_row(rows: Iterable[Row], row_id: str) -> Optional[Row]:
    for row in iter_rows(rows):
        if row.id == row_id:
            return row
    return None


def find_parent_id(rows: List[Row], row_id: str) -> Optional[str]:
    """Id of the direct parent of row_id (None for top-level or unknown rows)."""
    for row in iter_rows(rows):
        if any(child.id == row_id for child in row.children):
            return row.id
    return None


def top_level_index(rows: List[Row], row_id: str) -> int:
    """Index among top-level rows, or -1."""
    for idx, row in enumerate(rows):
        if row.id == row_id:
            return idx
    return -1


def collect_ids(rows: Iterable[Row]) -> List[str]:
    return [row.id for row in iter_rows(rows)]


def generate_row_id(prefix: str = "row") -> str:
    return f"{prefix}_{uuid.uuid4().hex[:8]}"


# -----------------------------------------------------------------------------
# Path-copying primitives
# -----------------------------------------------------------------------------


def _map_row(
    rows: List[Row],
    row_id: str,
    fn: Callable[[Row], Row],
) -> Tuple[List[Row], bool]:
    """Replace the row with id `row_id` by fn(row), copying only its ancestors."""
    for idx, row in enumerate(rows):
        if row.id == row_id:
            new_rows = list(rows)
            new_rows[idx] = fn(row)
            return new_rows, True
        if row.children:
            new_children, found = _map_row(row.children, row_id, fn)
            if found:
                new_rows = list(rows)
                new_rows[idx] = replace(row, children=new_children)
                return new_rows, True
    return rows, False


def _map_siblings(
    rows: List[Row],
    parent_id: Optional[str],
    fn: Callable[[List[Row]], Optional[List[Row]]],
) -> Tuple[List[Row], bool]:
    """
    Apply fn to the sibling list under parent_id (top level when None).
    fn returns the new sibling list, or None to reject.
    """
    if parent_id is None:
        result = fn(list(rows))
        return (result, True) if result is not None else (rows, False)

    outcome: Dict[str, bool] = {"applied": False}

    def _apply(parent: Row) -> Row:
        result = fn(list(parent.children))
        if result is None:
            return parent
        outcome["applied"] = True
        return replace(parent, children=result)

    new_rows, found = _map_row(rows, parent_id, _apply)
    if not found or not outcome["applied"]:
        return rows, False
    return new_rows, True


# -----------------------------------------------------------------------------
# Operations
# -----------------------------------------------------------------------------


def insert_row(
    rows: List[Row],
    row: Row,
    index: Optional[int] = None,
    parent_id: Optional[str] = None,
) -> List[Row]:
    """
    Insert `row` at `index` among the children of `parent_id` (top level when
    None). index None appends; out-of-range indexes are clamped.
    """
    existing = set(collect_ids(rows))
    incoming = collect_ids([row])
    duplicates = [rid for rid in incoming if rid in existing]
    if duplicates or len(set(incoming)) != len(incoming):
        logger.warning("Rejected insert of %s: duplicate row id(s) %s", row.id, duplicates or incoming)
        return rows
    if parent_id is not None and parent_id not in existing:
        logger.warning("Rejected insert of %s: unknown parent %s", row.id, parent_id)
        return rows

    def _insert(siblings: List[Row]) -> List[Row]:
        pos = len(siblings) if index is None else max(0, min(index, len(siblings)))
        siblings.insert(pos, row)
        return siblings

    new_rows, _ = _map_siblings(rows, parent_id, _insert)
    return new_rows


def add_child_row(
    rows: List[Row],
    parent_id: str,
    label: str,
    row_id: Optional[str] = None,
    kind: str = "input",
    value_type: Optional[str] = None,
) -> List[Row]:
    """
    Append a named child under parent_id. The value type defaults to the
    parent's; the id is generated from the parent id when not supplied.
    """
    parent = find_row(rows, parent_id)
    if parent is None:
        logger.warning("Rejected child %r: unknown parent %s", label, parent_id)
        return rows
    child = Row(
        id=row_id or generate_row_id(parent_id),
        label=label,
        kind=kind,
        value_type=value_type or parent.value_type,
    )
    return insert_row(rows, child, parent_id=parent_id)


def update_row_value(rows: List[Row], row_id: str, year: Year, value: float) -> List[Row]:
    def _set(row: Row) -> Row:
        return replace(row, values={**row.values, year: float(value)})

    new_rows, found = _map_row(rows, row_id, _set)
    if not found:
        logger.warning("Rejected value update: unknown row %s", row_id)
    return new_rows


def update_row_values(rows: List[Row], row_id: str, values: Dict[Year, float]) -> List[Row]:
    """Merge several (year, value) pairs into one row."""
    def _merge(row: Row) -> Row:
        return replace(row, values={**row.values, **{y: float(v) for y, v in values.items()}})

    new_rows, found = _map_row(rows, row_id, _merge)
    if not found:
        logger.warning("Rejected value update: unknown row %s", row_id)
    return new_rows


def clear_row_value(rows: List[Row], row_id: str, year: Year) -> List[Row]:
    def _clear(row: Row) -> Row:
        return replace(row, values={y: v for y, v in row.values.items() if y != year})

    new_rows, found = _map_row(rows, row_id, _clear)
    if not found:
        logger.warning("Rejected value clear: unknown row %s", row_id)
    return new_rows


def rename_row(rows: List[Row], row_id: str, label: str) -> List[Row]:
    new_rows, found = _map_row(rows, row_id, lambda r: replace(r, label=label))
    if not found:
        logger.warning("Rejected rename: unknown row %s", row_id)
    return new_rows


def update_row_kind(rows: List[Row], row_id: str, kind: str) -> List[Row]:
    if kind not in ROW_KINDS:
        logger.warning("Rejected kind change of %s: unknown kind %s", row_id, kind)
        return rows
    new_rows, found = _map_row(rows, row_id, lambda r: replace(r, kind=kind))
    if not found:
        logger.warning("Rejected kind change: unknown row %s", row_id)
    return new_rows


def set_cfs_link(rows: List[Row], row_id: str, cfs_link: Optional[CfsLink]) -> List[Row]:
    new_rows, found = _map_row(rows, row_id, lambda r: replace(r, cfs_link=cfs_link))
    if not found:
        logger.warning("Rejected cash-flow link: unknown row %s", row_id)
    return new_rows


def set_is_link(rows: List[Row], row_id: str, is_link: Optional[IsLink]) -> List[Row]:
    new_rows, found = _map_row(rows, row_id, lambda r: replace(r, is_link=is_link))
    if not found:
        logger.warning("Rejected income-statement link: unknown row %s", row_id)
    return new_rows


def move_row(rows: List[Row], row_id: str, direction: str) -> List[Row]:
    """
    Swap a row with its previous ("up") or next ("down") sibling.

    Category boundaries are the caller's concern; moving past either end of
    the sibling list is a no-op.
    """
    if direction not in ("up", "down"):
        logger.warning("Rejected move of %s: unknown direction %s", row_id, direction)
        return rows
    if find_row(rows, row_id) is None:
        logger.warning("Rejected move: unknown row %s", row_id)
        return rows

    def _swap(siblings: List[Row]) -> Optional[List[Row]]:
        idx = next(i for i, r in enumerate(siblings) if r.id == row_id)
        target = idx - 1 if direction == "up" else idx + 1
        if target < 0 or target >= len(siblings):
            return None
        siblings[idx], siblings[target] = siblings[target], siblings[idx]
        return siblings

    new_rows, applied = _map_siblings(rows, find_parent_id(rows, row_id), _swap)
    if not applied:
        logger.debug("Move of %s %s is a no-op at the edge of its siblings", row_id, direction)
    return new_rows


def reorder_rows(
    rows: List[Row],
    from_index: int,
    to_index: int,
    parent_id: Optional[str] = None,
) -> List[Row]:
    """Move the sibling at from_index to to_index (drag-and-drop style)."""

    def _reorder(siblings: List[Row]) -> Optional[List[Row]]:
        if not (0 <= from_index < len(siblings)) or not (0 <= to_index < len(siblings)):
            logger.warning(
                "Rejected reorder %s -> %s under %s: index out of range",
                from_index, to_index, parent_id or "<top>",
            )
            return None
        if from_index == to_index:
            return None
        moved = siblings.pop(from_index)
        siblings.insert(to_index, moved)
        return siblings

    new_rows, _ = _map_siblings(rows, parent_id, _reorder)
    return new_rows


def remove_row(
    rows: List[Row],
    row_id: str,
    protected_ids: FrozenSet[str] = frozenset(),
) -> List[Row]:
    """
    Remove a row and its subtree. Protected ids and the balance-sheet
    anchor totals (STRUCTURAL_ROW_IDS) are never removed.
    """
    protected_ids = frozenset(protected_ids) | STRUCTURAL_ROW_IDS
    if row_id in protected_ids:
        logger.warning("Rejected removal of protected row %s", row_id)
        return rows
    if find_row(rows, row_id) is None:
        logger.warning("Rejected removal: unknown row %s", row_id)
        return rows
    protected_inside = [rid for rid in collect_ids(find_row(rows, row_id).children) if rid in protected_ids]
    if protected_inside:
        logger.warning("Rejected removal of %s: contains protected rows %s", row_id, protected_inside)
        return rows

    def _drop(siblings: List[Row]) -> List[Row]:
        return [r for r in siblings if r.id != row_id]

    new_rows, _ = _map_siblings(rows, find_parent_id(rows, row_id), _drop)
    return new_rows


def insert_row_in_category(
    rows: List[Row],
    category: str,
    label: str,
    row_id: Optional[str] = None,
    values: Optional[Dict[Year, float]] = None,
) -> List[Row]:
    """
    Add a balance-sheet line item to `category` at the resolver's insertion
    index, with the category's default cfs_link / is_link attached.
    Generated ids carry the category prefix (ca_, fa_, cl_, ncl_, eq_).
    """
    if category not in CATEGORIES:
        logger.warning("Rejected insert of %r: unknown category %s", label, category)
        return rows
    new_id = row_id or generate_row_id(TYPICAL_PREFIXES[category].rstrip("_"))
    cfs_link, is_link = get_bs_item_impacts(category, new_id, label)
    row = Row(
        id=new_id,
        label=label,
        values={y: float(v) for y, v in (values or {}).items()},
        cfs_link=cfs_link,
        is_link=is_link,
    )
    return insert_row(rows, row, index=get_insertion_index_for_category(rows, category))
