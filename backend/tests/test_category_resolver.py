"""
Unit tests for category_resolver.py

Each resolution tier is exercised independently: static id map, anchor
interval, typical-id scan and the fixed-window fallback.
"""

from finmodel.services.modeling.category_resolver import (
    CURRENT_ASSETS,
    CURRENT_LIABILITIES,
    EQUITY,
    FIXED_ASSETS,
    NON_CURRENT_LIABILITIES,
    get_bs_category_for_row,
    get_category_line_items,
    get_insertion_index_for_category,
    get_rows_for_category,
    resolve_categories,
)
from finmodel.services.modeling.templates import create_balance_sheet_template
from finmodel.services.modeling.types import Row


def _rows(*ids):
    return [Row(id=i, label=i) for i in ids]


def test_static_mapping_wins():
    rows = create_balance_sheet_template()
    assert get_bs_category_for_row("cash", rows) == CURRENT_ASSETS
    assert get_bs_category_for_row("lt_debt", rows) == NON_CURRENT_LIABILITIES
    assert get_bs_category_for_row("total_equity", rows) == EQUITY
    assert get_bs_category_for_row("total_assets", rows) is None
    assert get_bs_category_for_row("total_liab_and_equity", rows) is None


def test_row_between_flanking_anchors():
    rows = _rows(
        "r0", "r1", "r2", "r3", "total_current_assets",
        "custom_a", "custom_b", "total_assets",
    )
    assert get_bs_category_for_row("custom_a", rows, 5) == FIXED_ASSETS
    assert get_bs_category_for_row("custom_a", rows) == FIXED_ASSETS
    assert get_bs_category_for_row("r1", rows) == CURRENT_ASSETS


def test_every_template_row_resolves_inside_its_interval():
    rows = create_balance_sheet_template()
    categories = dict(zip((r.id for r in rows), resolve_categories(rows)))
    assert categories["other_ca"] == CURRENT_ASSETS
    assert categories["goodwill"] == FIXED_ASSETS
    assert categories["other_cl"] == CURRENT_LIABILITIES
    assert categories["other_liab"] == NON_CURRENT_LIABILITIES
    assert categories["aoci"] == EQUITY
    assert categories["treasury_stock"] == EQUITY


def test_row_after_last_anchor_takes_next_category():
    rows = _rows("x0", "total_current_assets", "x2", "x3")
    assert get_bs_category_for_row("x3", rows) == FIXED_ASSETS


def test_missing_lower_anchor_uses_typical_ids():
    # total_current_assets is missing: ca_ rows stay current assets, the rest is fixed
    rows = _rows("ca_prepaid", "ca_deposits", "fa_building", "custom", "total_assets")
    assert get_bs_category_for_row("ca_deposits", rows) == CURRENT_ASSETS
    assert get_bs_category_for_row("fa_building", rows) == FIXED_ASSETS
    assert get_bs_category_for_row("custom", rows) == FIXED_ASSETS


def test_missing_lower_anchor_scans_for_last_typical_row():
    rows = _rows("total_current_assets", "xa", "cl_payroll", "xb", "total_liabilities", "eq_x")
    # total_assets and total_current_liabilities missing: xa is before the last cl_ row
    assert get_bs_category_for_row("xa", rows) == CURRENT_LIABILITIES
    assert get_bs_category_for_row("xb", rows) == NON_CURRENT_LIABILITIES


def test_fixed_window_fallback_without_anchors():
    rows = _rows(*[f"row{i}" for i in range(25)])
    assert get_bs_category_for_row("row3", rows) == CURRENT_ASSETS
    assert get_bs_category_for_row("row20", rows) == EQUITY
    assert get_bs_category_for_row("row12", rows) is None


def test_fixed_window_for_fixed_assets_without_current_anchor():
    rows = _rows("a0", "a1", "a2", "a3", "a4", "a5", "a6", "total_assets")
    assert get_bs_category_for_row("a2", rows) == CURRENT_ASSETS
    assert get_bs_category_for_row("a6", rows) == FIXED_ASSETS


def test_child_rows_inherit_parent_position():
    rows = create_balance_sheet_template()
    rows[5] = Row(id="ppe", label="PP&E", children=[Row(id="land", label="Land")])
    assert get_bs_category_for_row("land", rows) == FIXED_ASSETS


def test_rows_for_category_include_subtotal_not_grand_total():
    rows = create_balance_sheet_template()
    fixed = [r.id for r in get_rows_for_category(rows, FIXED_ASSETS)]
    assert fixed == ["ppe", "intangible_assets", "goodwill", "other_assets", "total_fixed_assets"]
    assert "total_assets" not in fixed
    line_items = [r.id for r in get_category_line_items(rows, FIXED_ASSETS)]
    assert "total_fixed_assets" not in line_items


def test_insertion_index_skips_trailing_totals():
    rows = create_balance_sheet_template()
    ids = [r.id for r in rows]
    assert get_insertion_index_for_category(rows, CURRENT_ASSETS) == ids.index("total_current_assets")
    assert get_insertion_index_for_category(rows, FIXED_ASSETS) == ids.index("total_fixed_assets")
    assert get_insertion_index_for_category(rows, EQUITY) == ids.index("total_equity")


def test_insertion_index_without_closing_anchor():
    rows = _rows("cash", "ar", "ppe")
    assert get_insertion_index_for_category(rows, CURRENT_ASSETS) == 2
    assert get_insertion_index_for_category(rows, EQUITY) == 3
