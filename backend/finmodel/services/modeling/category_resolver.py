"""
category_resolver.py — Balance Sheet Category / Position Resolver

Purpose:
- Map a balance-sheet row to its accounting category.
- List the rows of a category and find where a new row of a category goes.

Resolution is a prioritized rule chain, each tier tried in order:
    1. static id map for well-known rows (including category subtotals)
    2. interval between the two flanking anchor rows
    3. scan for category-typical ids when the lower anchor is missing
    4. fixed-window fallback when no usable anchor exists

Anchors, in template order (each closes one category):
    total_current_assets       -> current_assets
    total_assets               -> fixed_assets
    total_current_liabilities  -> current_liabilities
    total_liabilities          -> non_current_liabilities
    total_equity               -> equity

Only top-level rows are positioned; children inherit their parent's category.
"""

from __future__ import annotations

from typing import Dict, FrozenSet, List, Optional, Tuple

from finmodel.services.modeling.types import Row

CURRENT_ASSETS = "current_assets"
FIXED_ASSETS = "fixed_assets"
CURRENT_LIABILITIES = "current_liabilities"
NON_CURRENT_LIABILITIES = "non_current_liabilities"
EQUITY = "equity"

CATEGORIES: Tuple[str, ...] = (
    CURRENT_ASSETS,
    FIXED_ASSETS,
    CURRENT_LIABILITIES,
    NON_CURRENT_LIABILITIES,
    EQUITY,
)

ANCHOR_IDS: Tuple[str, ...] = (
    "total_current_assets",
    "total_assets",
    "total_current_liabilities",
    "total_liabilities",
    "total_equity",
)

GRAND_TOTAL_IDS: FrozenSet[str] = frozenset({
    "total_assets",
    "total_liabilities",
    "total_liab_and_equity",
})

# Tier 1
CATEGORY_MAPPINGS: Dict[str, str] = {
    # Current assets
    "cash": CURRENT_ASSETS,
    "ar": CURRENT_ASSETS,
    "inventory": CURRENT_ASSETS,
    "other_ca": CURRENT_ASSETS,
    "total_current_assets": CURRENT_ASSETS,
    # Fixed assets
    "ppe": FIXED_ASSETS,
    "intangible_assets": FIXED_ASSETS,
    "goodwill": FIXED_ASSETS,
    "other_assets": FIXED_ASSETS,
    "total_fixed_assets": FIXED_ASSETS,
    # Current liabilities
    "ap": CURRENT_LIABILITIES,
    "st_debt": CURRENT_LIABILITIES,
    "other_cl": CURRENT_LIABILITIES,
    "total_current_liabilities": CURRENT_LIABILITIES,
    # Non-current liabilities
    "lt_debt": NON_CURRENT_LIABILITIES,
    "other_liab": NON_CURRENT_LIABILITIES,
    "total_non_current_liabilities": NON_CURRENT_LIABILITIES,
    # Equity
    "common_stock": EQUITY,
    "retained_earnings": EQUITY,
    "other_equity": EQUITY,
    "total_equity": EQUITY,
}

# Tier 3: ids and prefixes typical of each category
TYPICAL_IDS: Dict[str, FrozenSet[str]] = {
    CURRENT_ASSETS: frozenset({
        "cash", "ar", "inventory", "other_ca", "prepaid_expenses",
        "marketable_securities", "short_term_investments", "total_current_assets",
    }),
    FIXED_ASSETS: frozenset({
        "ppe", "intangible_assets", "goodwill", "other_assets",
        "long_term_investments", "total_fixed_assets",
    }),
    CURRENT_LIABILITIES: frozenset({
        "ap", "st_debt", "other_cl", "accrued_expenses", "deferred_revenue",
        "total_current_liabilities",
    }),
    NON_CURRENT_LIABILITIES: frozenset({
        "lt_debt", "other_liab", "deferred_tax_liabilities", "pension_liabilities",
        "total_non_current_liabilities",
    }),
    EQUITY: frozenset({
        "preferred_stock", "common_stock", "apic", "treasury_stock", "aoci",
        "retained_earnings", "other_equity",
    }),
}

TYPICAL_PREFIXES: Dict[str, str] = {
    CURRENT_ASSETS: "ca_",
    FIXED_ASSETS: "fa_",
    CURRENT_LIABILITIES: "cl_",
    NON_CURRENT_LIABILITIES: "ncl_",
    EQUITY: "eq_",
}

# Tier 4 window sizes
_NO_ANCHOR_WINDOW = 10
_CURRENT_ASSET_WINDOW = 5


def _anchor_positions(rows: List[Row]) -> List[int]:
    """Position of each anchor in ANCHOR_IDS order (-1 when absent)."""
    positions = {row.id: idx for idx, row in enumerate(rows)}
    return [positions.get(anchor_id, -1) for anchor_id in ANCHOR_IDS]


def is_typical_of(row_id: str, category: str) -> bool:
    return row_id in TYPICAL_IDS[category] or row_id.startswith(TYPICAL_PREFIXES[category])


def _resolve_by_position(rows: List[Row], index: int, anchors: List[int]) -> Optional[str]:
    """Tiers 2-4 for the top-level row at `index`."""
    present = [k for k, pos in enumerate(anchors) if pos >= 0]

    # Tier 4: no anchors at all
    if not present:
        if index < _NO_ANCHOR_WINDOW:
            return CURRENT_ASSETS
        if index >= len(rows) - _NO_ANCHOR_WINDOW:
            return EQUITY
        return None

    closing = next((k for k in present if index < anchors[k]), None)

    # After the last present anchor: the next category, if there is one
    if closing is None:
        last = present[-1]
        return CATEGORIES[last + 1] if last + 1 < len(CATEGORIES) else None

    # Tier 2: both flanking anchors present (or the first category)
    if closing == 0 or anchors[closing - 1] >= 0:
        return CATEGORIES[closing]

    # Tier 3: lower anchor missing; decide between the previous category and this one
    previous = CATEGORIES[closing - 1]
    lower_bound = max((anchors[k] for k in present if anchors[k] < index), default=-1)
    row_id = rows[index].id
    if is_typical_of(row_id, previous):
        return previous
    if is_typical_of(row_id, CATEGORIES[closing]):
        return CATEGORIES[closing]

    typical = [
        j for j in range(lower_bound + 1, anchors[closing])
        if is_typical_of(rows[j].id, previous)
    ]
    if typical:
        # The previous category extends through its last typical row
        return previous if index <= max(typical) else CATEGORIES[closing]

    # Tier 4: fixed window for fixed assets missing its current-assets anchor
    if closing == 1 and index < _CURRENT_ASSET_WINDOW:
        return CURRENT_ASSETS
    return CATEGORIES[closing]


def get_bs_category_for_row(
    row_id: str,
    rows: List[Row],
    row_index: Optional[int] = None,
) -> Optional[str]:
    """
    Category of a balance-sheet row, or None (grand totals, unplaceable rows).

    row_index is the row's position among top-level rows; when omitted it is
    looked up. A nested row takes its top-level ancestor's position.
    """
    if row_id in GRAND_TOTAL_IDS:
        return None
    if row_id in CATEGORY_MAPPINGS:
        return CATEGORY_MAPPINGS[row_id]

    if row_index is None:
        row_index = _top_level_position(rows, row_id)
        if row_index < 0:
            return None
    if not (0 <= row_index < len(rows)):
        return None
    return _resolve_by_position(rows, row_index, _anchor_positions(rows))


def _top_level_position(rows: List[Row], row_id: str) -> int:
    from finmodel.services.modeling.row_tree import find_row

    for idx, row in enumerate(rows):
        if row.id == row_id or (row.children and find_row(row.children, row_id) is not None):
            return idx
    return -1


def resolve_categories(rows: List[Row]) -> List[Optional[str]]:
    """Category for every top-level row, in order."""
    anchors = _anchor_positions(rows)
    out: List[Optional[str]] = []
    for idx, row in enumerate(rows):
        if row.id in GRAND_TOTAL_IDS:
            out.append(None)
        elif row.id in CATEGORY_MAPPINGS:
            out.append(CATEGORY_MAPPINGS[row.id])
        else:
            out.append(_resolve_by_position(rows, idx, anchors))
    return out


def get_rows_for_category(rows: List[Row], category: str) -> List[Row]:
    """
    Top-level rows whose resolved category matches, in order. Category
    subtotals are included; grand totals never are.
    """
    return [
        row for row, resolved in zip(rows, resolve_categories(rows))
        if resolved == category
    ]


def get_category_line_items(rows: List[Row], category: str) -> List[Row]:
    """Rows of a category that carry values (no totals or subtotals)."""
    return [row for row in get_rows_for_category(rows, category) if not row.is_total_like]


def get_insertion_index_for_category(rows: List[Row], category: str) -> int:
    """
    Index at which a new row of `category` is inserted: right after the last
    line item of the category, i.e. before its closing subtotal/total and any
    trailing subtotal rows (total_fixed_assets before total_assets).
    """
    if category not in CATEGORIES:
        return len(rows)
    anchors = _anchor_positions(rows)
    k = CATEGORIES.index(category)
    closing = anchors[k]
    opening = anchors[k - 1] if k > 0 else -1

    if closing < 0:
        categorized = [
            idx for idx, resolved in enumerate(resolve_categories(rows)) if resolved == category
        ]
        if categorized:
            return max(categorized) + 1
        return 0 if k == 0 else len(rows)

    for i in range(closing - 1, opening, -1):
        if not rows[i].is_total_like:
            return i + 1
    return closing
