"""
evaluator.py — Row Value Evaluator

Purpose:
- Compute the value of any row of any statement for any year.
- Provide the cross-statement links of the three-statement model
  (IS -> CFS net income / D&A, BS deltas -> CFS operating items).

Rules (first match wins):
1. Row with children      -> sum of the children's evaluated values
2. CFS wc_change, projection year, no children -> -Δ working capital
3. Input row              -> stored value (0 when absent)
4. Derived row with a known id -> formula for that id in its statement
5. Anything else          -> stored value (0 when absent)

Failure policy:
- Missing rows, missing years and missing prior years evaluate to 0.
- Ratios with a zero denominator evaluate to 0.
- The evaluator never raises for missing data and never mutates the model.

Results are memoized per (statement, row id, year) for the lifetime of one
StatementEvaluator; build a new evaluator after changing the model.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from finmodel.core.config import settings
from finmodel.core.logging import get_logger
from finmodel.services.modeling.category_resolver import (
    CURRENT_ASSETS,
    CURRENT_LIABILITIES,
    EQUITY,
    FIXED_ASSETS,
    NON_CURRENT_LIABILITIES,
    get_category_line_items,
)
from finmodel.services.modeling.row_tree import iter_rows, top_level_index
from finmodel.services.modeling.types import (
    BALANCE_SHEET,
    CASH_FLOW,
    INCOME_STATEMENT,
    STATEMENT_KEYS,
    FinancialModel,
    Row,
    Year,
)

logger = get_logger(__name__)

CFO_ROW_PREFIX = "cfo_"

# Rows between ebit_margin and ebt that already have a fixed sign in the EBT formula
_EBT_TEMPLATE_ITEMS = ("interest_expense", "interest_income", "other_income")

# Balance-sheet category subtotal -> category it sums
_CATEGORY_SUBTOTALS: Dict[str, str] = {
    "total_current_assets": CURRENT_ASSETS,
    "total_fixed_assets": FIXED_ASSETS,
    "total_current_liabilities": CURRENT_LIABILITIES,
    "total_non_current_liabilities": NON_CURRENT_LIABILITIES,
    "total_equity": EQUITY,
}

# Working capital excludes cash and short-term debt
_WC_EXCLUDED_IDS = ("cash", "st_debt")


def safe_ratio(numerator: float, denominator: float) -> float:
    """numerator / denominator as a percentage (0-100); 0 when denominator is 0."""
    if denominator == 0:
        return 0.0
    return numerator / denominator * 100.0


def signed_change(change: float, impact: str) -> float:
    """Apply a cash-flow impact direction to a balance-sheet change."""
    if impact == "negative":
        return -change
    return change


def is_operating_classified(row: Row) -> bool:
    """
    True when a balance-sheet row carries its own operating classification
    (as opposed to flowing through the working-capital aggregate).
    """
    link = row.cfs_link
    return (
        link is not None
        and link.section == "operating"
        and link.impact in ("positive", "negative", "neutral")
        and link.cfs_item_id != "wc_change"
    )


def total_sbc_for_year(
    income_statement: List[Row],
    sbc_breakdowns: Dict[str, Dict[Year, float]],
    year: Year,
) -> float:
    """
    Total stock-based compensation for a year without double counting: when
    SG&A / COGS have breakdowns, their breakdown ids are summed, otherwise the
    parent id ("sga" / "cogs") is used.
    """
    total = 0.0
    for parent_id in ("sga", "cogs"):
        parent = next((r for r in income_statement if r.id == parent_id), None)
        if parent is not None and parent.children:
            total += sum(sbc_breakdowns.get(child.id, {}).get(year, 0.0) for child in parent.children)
        else:
            total += sbc_breakdowns.get(parent_id, {}).get(year, 0.0)
    return total


class StatementEvaluator:
    """
    Pure evaluator over one FinancialModel snapshot.

    overrides: optional {row_id: {year: value}} applied to income-statement
    rows before any other rule. Used to feed projected revenue into the
    income statement for projection years.

    Example:
        ev = StatementEvaluator(model)
        ev.value("gross_profit", "2024A")                 # income statement
        ev.value("total_assets", "2024A", BALANCE_SHEET)
    """

    def __init__(
        self,
        model: FinancialModel,
        overrides: Optional[Dict[str, Dict[Year, float]]] = None,
    ):
        self.model = model
        self.meta = model.meta
        self.overrides = overrides or {}
        self._memo: Dict[Tuple[str, str, Year], float] = {}
        self._by_id: Dict[str, Dict[str, Row]] = {}
        self._by_identity: Dict[int, str] = {}
        for key in STATEMENT_KEYS:
            index: Dict[str, Row] = {}
            for row in iter_rows(model.statement(key)):
                index.setdefault(row.id, row)
                self._by_identity[id(row)] = key
            self._by_id[key] = index

        self._formulas: Dict[str, Dict[str, Callable[[Year], float]]] = {
            INCOME_STATEMENT: {
                "gross_profit": self._gross_profit,
                "gross_margin": lambda y: self._margin("gross_profit", y),
                "ebitda": self._ebitda,
                "ebitda_margin": lambda y: self._margin("ebitda", y),
                "ebit": self._ebit,
                "ebit_margin": lambda y: self._margin("ebit", y),
                "ebt": self._ebt,
                "ebt_margin": lambda y: self._margin("ebt", y),
                "net_income": self._net_income,
                "net_income_margin": lambda y: self._margin("net_income", y),
            },
            BALANCE_SHEET: {
                **{
                    subtotal_id: (lambda y, c=category: self._category_sum(c, y))
                    for subtotal_id, category in _CATEGORY_SUBTOTALS.items()
                },
                "total_assets": self._total_assets,
                "total_liabilities": self._total_liabilities,
                "total_liab_and_equity": self._total_liab_and_equity,
            },
            CASH_FLOW: {
                "net_income": lambda y: self.value("net_income", y, INCOME_STATEMENT),
                "danda": lambda y: self.value("danda", y, INCOME_STATEMENT),
                "sbc": self._sbc,
                "wc_change": self._wc_change,
                "operating_cf": self._operating_cf,
                "investing_cf": self._investing_cf,
                "financing_cf": self._financing_cf,
                "net_change_cash": self._net_change_cash,
            },
        }

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def statement_of(self, row: Row) -> Optional[str]:
        """Statement key holding this exact row object, falling back to id lookup."""
        key = self._by_identity.get(id(row))
        if key is not None:
            return key
        for candidate in STATEMENT_KEYS:
            if row.id in self._by_id[candidate]:
                return candidate
        return None

    def evaluate(self, row: Row, year: Year, statement: Optional[str] = None) -> float:
        """Value of `row` in `year`. The statement is inferred when not given."""
        statement = statement or self.statement_of(row) or INCOME_STATEMENT
        key = (statement, row.id, year)
        if key not in self._memo:
            self._memo[key] = self._compute(statement, row, year)
        return self._memo[key]

    def value(self, row_id: str, year: Year, statement: str = INCOME_STATEMENT) -> float:
        """Value of a row by id; 0 when the row does not exist."""
        row = self._by_id.get(statement, {}).get(row_id)
        if row is None:
            return 0.0
        return self.evaluate(row, year, statement)

    def find(self, row_id: str, statement: str) -> Optional[Row]:
        return self._by_id.get(statement, {}).get(row_id)

    def previous_year(self, year: Year) -> Optional[Year]:
        return self.meta.previous_year(year)

    def bs_change(self, row: Row, year: Year) -> float:
        """
        Period-over-period change of a balance-sheet row. A missing prior
        year counts as a prior value of 0.
        """
        current = self.evaluate(row, year, BALANCE_SHEET)
        prior_year = self.previous_year(year)
        prior = self.evaluate(row, prior_year, BALANCE_SHEET) if prior_year else 0.0
        return current - prior

    def classified_operating_rows(self) -> List[Row]:
        """Top-level balance-sheet rows with their own operating classification."""
        return [r for r in self.model.balance_sheet if is_operating_classified(r)]

    def operating_change(self, bs_row: Row, year: Year) -> float:
        """Signed operating cash-flow contribution of a classified BS row."""
        impact = bs_row.cfs_link.impact if bs_row.cfs_link else "neutral"
        return signed_change(self.bs_change(bs_row, year), impact)

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    def _compute(self, statement: str, row: Row, year: Year) -> float:
        if statement == INCOME_STATEMENT and row.id in self.overrides:
            by_year = self.overrides[row.id]
            if year in by_year:
                return float(by_year[year])

        if row.children:
            return sum(self.evaluate(child, year, statement) for child in row.children)

        if (
            statement == CASH_FLOW
            and row.id == "wc_change"
            and self.meta.is_projection_year(year)
        ):
            return self._wc_change(year)

        if row.kind == "input":
            return row.values.get(year, 0.0)

        if statement == CASH_FLOW and row.id.startswith(CFO_ROW_PREFIX):
            return self._cfo_row(row, year)

        formula = self._formulas.get(statement, {}).get(row.id)
        if formula is not None:
            return formula(year)

        return row.values.get(year, 0.0)

    # -------------------------------------------------------------------------
    # Income statement
    # -------------------------------------------------------------------------

    def _is(self, row_id: str, year: Year) -> float:
        return self.value(row_id, year, INCOME_STATEMENT)

    def _margin(self, row_id: str, year: Year) -> float:
        return safe_ratio(self._is(row_id, year), self._is("rev", year))

    def _gross_profit(self, year: Year) -> float:
        return self._is("rev", year) - self._is("cogs", year)

    def _ebitda(self, year: Year) -> float:
        return (
            self._is("gross_profit", year)
            - self._is("sga", year)
            - self._is("rd", year)
            - self._is("other_opex", year)
        )

    def _ebit(self, year: Year) -> float:
        return (
            self._is("gross_profit", year)
            - self._is("sga", year)
            - self._is("rd", year)
            - self._is("other_opex", year)
            - self._is("danda", year)
        )

    def _ebt(self, year: Year) -> float:
        """
        EBIT - interest expense + interest income + other income, plus any
        other non-derived rows placed between ebit_margin and ebt (added as
        signed values).
        """
        total = (
            self._is("ebit", year)
            - self._is("interest_expense", year)
            + self._is("interest_income", year)
            + self._is("other_income", year)
        )
        rows = self.model.income_statement
        start = top_level_index(rows, "ebit_margin")
        end = top_level_index(rows, "ebt")
        if start >= 0 and end > start:
            for row in rows[start + 1:end]:
                if row.id in _EBT_TEMPLATE_ITEMS or row.value_type == "percent":
                    continue
                total += self.evaluate(row, year, INCOME_STATEMENT)
        return total

    def _net_income(self, year: Year) -> float:
        return self._is("ebt", year) - self._is("tax", year)

    # -------------------------------------------------------------------------
    # Balance sheet
    # -------------------------------------------------------------------------

    def _bs(self, row_id: str, year: Year) -> float:
        return self.value(row_id, year, BALANCE_SHEET)

    def _category_sum(self, category: str, year: Year) -> float:
        items = get_category_line_items(self.model.balance_sheet, category)
        return sum(self.evaluate(r, year, BALANCE_SHEET) for r in items)

    def _between_sum(self, start_id: str, end_id: str, year: Year) -> Optional[float]:
        """Sum of non-total top-level BS rows strictly between two anchors."""
        rows = self.model.balance_sheet
        start = top_level_index(rows, start_id)
        end = top_level_index(rows, end_id)
        if start < 0 or end < 0:
            return None
        return sum(
            self.evaluate(r, year, BALANCE_SHEET)
            for r in rows[start + 1:end]
            if not r.is_total_like
        )

    def _total_assets(self, year: Year) -> float:
        current = self._bs("total_current_assets", year)
        if self.find("total_fixed_assets", BALANCE_SHEET) is not None:
            return current + self._bs("total_fixed_assets", year)
        between = self._between_sum("total_current_assets", "total_assets", year)
        if between is not None:
            return current + between
        return current + self._bs("ppe", year) + self._bs("other_assets", year)

    def _total_liabilities(self, year: Year) -> float:
        current = self._bs("total_current_liabilities", year)
        if self.find("total_non_current_liabilities", BALANCE_SHEET) is not None:
            return current + self._bs("total_non_current_liabilities", year)
        between = self._between_sum("total_current_liabilities", "total_liabilities", year)
        if between is not None:
            return current + between
        return current + self._bs("lt_debt", year) + self._bs("other_liab", year)

    def _total_liab_and_equity(self, year: Year) -> float:
        return self._bs("total_liabilities", year) + self._bs("total_equity", year)

    # -------------------------------------------------------------------------
    # Cash flow
    # -------------------------------------------------------------------------

    def _cf(self, row_id: str, year: Year) -> float:
        return self.value(row_id, year, CASH_FLOW)

    def _sbc(self, year: Year) -> float:
        return total_sbc_for_year(self.model.income_statement, self.model.sbc_breakdowns, year)

    def _cfo_row(self, row: Row, year: Year) -> float:
        """cfo_<bsId>: change of the linked BS row, signed by the classification."""
        bs_row = self.find(row.id[len(CFO_ROW_PREFIX):], BALANCE_SHEET)
        if bs_row is None:
            return 0.0
        link = row.cfs_link or bs_row.cfs_link
        if link is None:
            return 0.0
        return signed_change(self.bs_change(bs_row, year), link.impact)

    def _wc_change(self, year: Year) -> float:
        """
        -Δ(current assets excl. cash - current liabilities excl. short-term debt).
        Rows with their own operating classification are left out; their
        change is reported separately.
        """
        prior_year = self.previous_year(year)
        if prior_year is None:
            return 0.0
        bs = self.model.balance_sheet

        def _wc(y: Year) -> float:
            assets = sum(
                self.evaluate(r, y, BALANCE_SHEET)
                for r in get_category_line_items(bs, CURRENT_ASSETS)
                if r.id not in _WC_EXCLUDED_IDS and not is_operating_classified(r)
            )
            liabilities = sum(
                self.evaluate(r, y, BALANCE_SHEET)
                for r in get_category_line_items(bs, CURRENT_LIABILITIES)
                if r.id not in _WC_EXCLUDED_IDS and not is_operating_classified(r)
            )
            return assets - liabilities

        return -(_wc(year) - _wc(prior_year))

    def _linked_operating_sum(self, year: Year, already_counted: Iterable[str]) -> float:
        """Classified BS operating changes not already shown as a cfo_ row."""
        counted = set(already_counted)
        return sum(
            self.operating_change(r, year)
            for r in self.classified_operating_rows()
            if r.id not in counted
        )

    def _operating_cf(self, year: Year) -> float:
        rows = self.model.cash_flow
        start = top_level_index(rows, "net_income")
        end = top_level_index(rows, "operating_cf")
        cfo_bs_ids = [
            r.id[len(CFO_ROW_PREFIX):] for r in rows if r.id.startswith(CFO_ROW_PREFIX)
        ]

        if start >= 0 and end > start:
            section = rows[start:end]
            section_ids = {r.id for r in section}
            total = sum(self.evaluate(r, year, CASH_FLOW) for r in section)
            # cfo_ rows outside the section still count once
            total += sum(
                self.evaluate(r, year, CASH_FLOW)
                for r in rows
                if r.id.startswith(CFO_ROW_PREFIX) and r.id not in section_ids
            )
            return total + self._linked_operating_sum(year, cfo_bs_ids)

        logger.debug("Cash flow operating section not found; using fixed formula for %s", year)
        cfo_rows = sum(
            self.evaluate(r, year, CASH_FLOW) for r in rows if r.id.startswith(CFO_ROW_PREFIX)
        )
        return (
            self._is("net_income", year)
            + self._is("danda", year)
            + self._sbc(year)
            + self._cf("wc_change", year)
            + self._cf("other_operating", year)
            + cfo_rows
            + self._linked_operating_sum(year, cfo_bs_ids)
        )

    def _investing_cf(self, year: Year) -> float:
        rows = self.model.cash_flow
        start = top_level_index(rows, "capex")
        end = top_level_index(rows, "investing_cf")
        total = 0.0
        counted: set = set()
        if start >= 0 and end > start:
            for row in rows[start:end]:
                total += self.evaluate(row, year, CASH_FLOW)
                counted.add(row.id)
        for row in rows:
            if row.id == "investing_cf" or row.id in counted:
                continue
            if row.cfs_link is not None and row.cfs_link.section == "investing":
                total += self.evaluate(row, year, CASH_FLOW)
        return total

    def _financing_cf(self, year: Year) -> float:
        rows = self.model.cash_flow
        start = top_level_index(rows, "investing_cf")
        end = top_level_index(rows, "financing_cf")
        if start >= 0 and end > start:
            return sum(self.evaluate(r, year, CASH_FLOW) for r in rows[start + 1:end])

        tagged = [
            r for r in rows
            if r.id != "financing_cf" and r.cfs_link is not None and r.cfs_link.section == "financing"
        ]
        if tagged:
            return sum(self.evaluate(r, year, CASH_FLOW) for r in tagged)

        return (
            self._cf("debt_issuance", year)
            - self._cf("debt_repayment", year)
            + self._cf("equity_issuance", year)
            - self._cf("dividends", year)
        )

    def _net_change_cash(self, year: Year) -> float:
        return (
            self._cf("operating_cf", year)
            + self._cf("investing_cf", year)
            + self._cf("financing_cf", year)
        )


# -----------------------------------------------------------------------------
# Derived outputs
# -----------------------------------------------------------------------------


@dataclass
class BalanceCheck:
    year: Year
    balances: bool
    total_assets: float
    total_liab_and_equity: float
    difference: float


def check_balance_sheet_balance(
    model: FinancialModel,
    years: Optional[List[Year]] = None,
    evaluator: Optional[StatementEvaluator] = None,
    tolerance: Optional[float] = None,
) -> List[BalanceCheck]:
    """
    Total Assets vs Total Liabilities + Total Equity for each year.
    Balanced when the absolute difference is below the tolerance
    (settings.BALANCE_TOLERANCE by default).
    """
    ev = evaluator or StatementEvaluator(model)
    tol = settings.BALANCE_TOLERANCE if tolerance is None else tolerance
    results: List[BalanceCheck] = []
    for year in years if years is not None else model.meta.years:
        total_assets = ev.value("total_assets", year, BALANCE_SHEET)
        liab_and_equity = (
            ev.value("total_liabilities", year, BALANCE_SHEET)
            + ev.value("total_equity", year, BALANCE_SHEET)
        )
        difference = total_assets - liab_and_equity
        results.append(BalanceCheck(
            year=year,
            balances=abs(difference) < tol,
            total_assets=total_assets,
            total_liab_and_equity=liab_and_equity,
            difference=difference,
        ))
    return results


def recompute_statement(
    model: FinancialModel,
    statement: str,
    years: Optional[List[Year]] = None,
    evaluator: Optional[StatementEvaluator] = None,
) -> List[Row]:
    """
    New copy of a statement with evaluated values written into every derived
    row and every row with children, for consumers that read stored values.
    Input leaf rows are returned untouched.
    """
    ev = evaluator or StatementEvaluator(model)
    target_years = years if years is not None else model.meta.years

    def _recompute(row: Row) -> Row:
        children = [_recompute(child) for child in row.children]
        if not row.children and not row.is_derived:
            return row
        values = dict(row.values)
        for year in target_years:
            values[year] = ev.evaluate(row, year, statement)
        return replace(row, values=values, children=children)

    return [_recompute(row) for row in model.statement(statement)]
