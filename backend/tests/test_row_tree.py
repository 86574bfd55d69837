"""
Unit tests for row_tree.py

Every operation returns a new forest; rejected operations return the input
list itself and leave it untouched.
"""

import pytest

from finmodel.services.modeling.category_resolver import (
    CURRENT_ASSETS,
    FIXED_ASSETS,
    NON_CURRENT_LIABILITIES,
    get_bs_category_for_row,
)
from finmodel.services.modeling.row_tree import (
    add_child_row,
    clear_row_value,
    collect_ids,
    find_parent_id,
    find_row,
    flatten_rows,
    insert_row,
    insert_row_in_category,
    move_row,
    remove_row,
    rename_row,
    reorder_rows,
    set_cfs_link,
    update_row_kind,
    update_row_value,
)
from finmodel.services.modeling.templates import (
    create_balance_sheet_template,
    create_income_statement_template,
    protected_ids_for,
)
from finmodel.services.modeling.types import BALANCE_SHEET, INCOME_STATEMENT, CfsLink, Row


@pytest.fixture
def rows():
    return [
        Row(id="a", label="A", values={"2024A": 1.0}),
        Row(id="b", label="B", children=[
            Row(id="b1", label="B1"),
            Row(id="b2", label="B2"),
        ]),
        Row(id="c", label="C"),
    ]


def test_insert_top_level_and_under_parent(rows):
    top = insert_row(rows, Row(id="x", label="X"), index=1)
    assert [r.id for r in top] == ["a", "x", "b", "c"]

    nested = insert_row(rows, Row(id="b0", label="B0"), index=0, parent_id="b")
    assert [r.id for r in find_row(nested, "b").children] == ["b0", "b1", "b2"]
    # Input is untouched and untouched subtrees are shared
    assert [r.id for r in find_row(rows, "b").children] == ["b1", "b2"]
    assert nested[0] is rows[0]


def test_insert_clamps_out_of_range_index(rows):
    assert insert_row(rows, Row(id="x", label="X"), index=99)[-1].id == "x"
    assert insert_row(rows, Row(id="y", label="Y"), index=-5)[0].id == "y"


def test_insert_rejects_duplicates_and_unknown_parent(rows):
    assert insert_row(rows, Row(id="b1", label="dup")) is rows
    assert insert_row(rows, Row(id="z", label="Z"), parent_id="missing") is rows


def test_add_child_row_inherits_value_type():
    rows = [Row(id="margin", label="Margin", value_type="percent")]
    out = add_child_row(rows, "margin", "Segment", row_id="margin_seg")
    child = find_row(out, "margin_seg")
    assert child.value_type == "percent"
    assert find_parent_id(out, "margin_seg") == "margin"


def test_add_child_row_generates_id_from_parent(rows):
    out = add_child_row(rows, "c", "New")
    child = find_row(out, "c").children[0]
    assert child.id.startswith("c_")
    assert add_child_row(rows, "missing", "New") is rows


def test_update_and_clear_value(rows):
    out = update_row_value(rows, "b2", "2025E", 7)
    assert find_row(out, "b2").values == {"2025E": 7.0}
    assert find_row(rows, "b2").values == {}

    cleared = clear_row_value(out, "b2", "2025E")
    assert find_row(cleared, "b2").values == {}


def test_update_unknown_row_is_a_no_op(rows):
    assert update_row_value(rows, "missing", "2024A", 1.0) is rows


def test_rename_kind_and_links(rows):
    out = rename_row(rows, "a", "Alpha")
    assert find_row(out, "a").label == "Alpha"
    assert update_row_kind(rows, "a", "calc")[0].kind == "calc"
    assert update_row_kind(rows, "a", "bogus") is rows

    link = CfsLink(section="operating", cfs_item_id="wc_change", impact="calculated")
    assert set_cfs_link(rows, "b1", link)[1].children[0].cfs_link == link


def test_move_row_swaps_siblings(rows):
    assert [r.id for r in move_row(rows, "b", "up")] == ["b", "a", "c"]
    nested = move_row(rows, "b2", "up")
    assert [r.id for r in find_row(nested, "b").children] == ["b2", "b1"]


def test_move_past_edge_is_a_no_op(rows):
    assert move_row(rows, "a", "up") is rows
    assert move_row(rows, "c", "down") is rows
    assert move_row(rows, "a", "sideways") is rows


def test_reorder_rows(rows):
    assert [r.id for r in reorder_rows(rows, 0, 2)] == ["b", "c", "a"]
    nested = reorder_rows(rows, 1, 0, parent_id="b")
    assert [r.id for r in find_row(nested, "b").children] == ["b2", "b1"]
    assert reorder_rows(rows, 0, 10) is rows


def test_remove_row_and_protection(rows):
    out = remove_row(rows, "b")
    assert collect_ids(out) == ["a", "c"]
    assert remove_row(rows, "a", protected_ids=frozenset({"a"})) is rows
    assert remove_row(rows, "b", protected_ids=frozenset({"b2"})) is rows
    assert remove_row(rows, "missing") is rows


def test_template_protected_rows_cannot_be_removed():
    rows = create_income_statement_template()
    protected = protected_ids_for(INCOME_STATEMENT)
    assert remove_row(rows, "gross_profit", protected) is rows
    assert [r.id for r in remove_row(rows, "rd", protected)].count("rd") == 0


@pytest.mark.parametrize("anchor_id", ["total_current_assets", "total_assets", "total_equity", "total_liab_and_equity"])
def test_balance_sheet_anchors_are_never_removed(anchor_id):
    bs = create_balance_sheet_template()
    assert remove_row(bs, anchor_id) is bs
    assert get_bs_category_for_row("other_ca", bs) == CURRENT_ASSETS


def test_flatten_is_pre_order(rows):
    assert [r.id for r in flatten_rows(rows)] == ["a", "b", "b1", "b2", "c"]


def test_insert_row_in_category_places_row_before_subtotal():
    bs = create_balance_sheet_template()
    out = insert_row_in_category(bs, FIXED_ASSETS, "Right-of-use Assets", row_id="rou_assets")
    ids = [r.id for r in out]
    assert ids.index("rou_assets") == ids.index("total_fixed_assets") - 1
    assert get_bs_category_for_row("rou_assets", out) == FIXED_ASSETS


def test_insert_row_in_category_attaches_default_links():
    bs = create_balance_sheet_template()
    out = insert_row_in_category(bs, NON_CURRENT_LIABILITIES, "Term Loan", row_id="term_loan")
    row = find_row(out, "term_loan")
    assert row.cfs_link.section == "financing"
    assert row.is_link.is_item_id == "interest_expense"

    generated = insert_row_in_category(bs, CURRENT_ASSETS, "Prepaid Expenses")
    new_ids = set(collect_ids(generated)) - set(collect_ids(bs))
    assert len(new_ids) == 1 and new_ids.pop().startswith("ca_")


def test_insert_row_in_unknown_category_is_rejected():
    bs = create_balance_sheet_template()
    assert insert_row_in_category(bs, "nope", "X") is bs
    assert protected_ids_for(BALANCE_SHEET)
