"""
templates.py — Statement Skeletons

Purpose:
- Instantiate the fixed skeleton of each statement (anchor rows in their
  template order).
- Declare the protected row ids that can never be removed.

The relative order of anchor rows defined here is what category_resolver.py relies on
for positional parsing; insertion logic must never reorder them.
"""

from __future__ import annotations

from typing import Callable, Dict, FrozenSet, List, Tuple

from finmodel.services.modeling.types import (
    BALANCE_SHEET,
    CASH_FLOW,
    INCOME_STATEMENT,
    Row,
)

# (id, label, kind, value_type)
_RowSpec = Tuple[str, str, str, str]

INCOME_STATEMENT_TEMPLATE: List[_RowSpec] = [
    ("rev", "Revenue", "input", "currency"),
    ("cogs", "Cost of Goods Sold (COGS)", "input", "currency"),
    ("gross_profit", "Gross Profit", "calc", "currency"),
    ("gross_margin", "Gross Margin %", "calc", "percent"),
    ("sga", "Selling, General & Administrative (SG&A)", "input", "currency"),
    ("rd", "Research & Development (R&D)", "input", "currency"),
    ("other_opex", "Other Operating Expenses", "input", "currency"),
    ("ebitda", "EBITDA", "calc", "currency"),
    ("ebitda_margin", "EBITDA Margin %", "calc", "percent"),
    ("danda", "Depreciation & Amortization (D&A)", "input", "currency"),
    ("ebit", "EBIT (Operating Income)", "calc", "currency"),
    ("ebit_margin", "EBIT Margin %", "calc", "percent"),
    ("interest_expense", "Interest Expense", "input", "currency"),
    ("interest_income", "Interest Income", "input", "currency"),
    ("other_income", "Other Income / (Expense), net", "input", "currency"),
    ("ebt", "EBT (Earnings Before Tax)", "calc", "currency"),
    ("tax", "Income Tax Expense", "input", "currency"),
    ("net_income", "Net Income", "calc", "currency"),
    ("net_income_margin", "Net Income Margin %", "calc", "percent"),
]

BALANCE_SHEET_TEMPLATE: List[_RowSpec] = [
    # Current assets
    ("cash", "Cash & Cash Equivalents", "input", "currency"),
    ("ar", "Accounts Receivable", "input", "currency"),
    ("inventory", "Inventory", "input", "currency"),
    ("other_ca", "Other Current Assets", "input", "currency"),
    ("total_current_assets", "Total Current Assets", "subtotal", "currency"),
    # Fixed assets
    ("ppe", "Property, Plant & Equipment (PP&E)", "input", "currency"),
    ("intangible_assets", "Intangible Assets", "input", "currency"),
    ("goodwill", "Goodwill", "input", "currency"),
    ("other_assets", "Other Assets", "input", "currency"),
    ("total_fixed_assets", "Total Fixed Assets", "subtotal", "currency"),
    ("total_assets", "Total Assets", "total", "currency"),
    # Current liabilities
    ("ap", "Accounts Payable", "input", "currency"),
    ("st_debt", "Short-Term Debt", "input", "currency"),
    ("other_cl", "Other Current Liabilities", "input", "currency"),
    ("total_current_liabilities", "Total Current Liabilities", "subtotal", "currency"),
    # Non-current liabilities
    ("lt_debt", "Long-Term Debt", "input", "currency"),
    ("other_liab", "Other Liabilities", "input", "currency"),
    ("total_non_current_liabilities", "Total Non-Current Liabilities", "subtotal", "currency"),
    ("total_liabilities", "Total Liabilities", "total", "currency"),
    # Equity
    ("preferred_stock", "Preferred Stock (Par Value)", "input", "currency"),
    ("common_stock", "Common Stock (Par Value)", "input", "currency"),
    ("apic", "Additional Paid-in Capital (APIC)", "input", "currency"),
    ("treasury_stock", "Treasury Stock (at cost)", "input", "currency"),
    ("aoci", "Accumulated Other Comprehensive Income (AOCI)", "input", "currency"),
    ("retained_earnings", "Retained Earnings", "input", "currency"),
    ("total_equity", "Total Equity", "subtotal", "currency"),
    ("total_liab_and_equity", "Total Liabilities & Equity", "total", "currency"),
]

CASH_FLOW_TEMPLATE: List[_RowSpec] = [
    # Operating
    ("net_income", "Net Income", "calc", "currency"),
    ("danda", "Depreciation & Amortization", "calc", "currency"),
    ("sbc", "Stock-Based Compensation", "calc", "currency"),
    ("wc_change", "Change in Working Capital", "input", "currency"),
    ("other_operating", "Other Operating Activities", "input", "currency"),
    ("operating_cf", "Cash from Operating Activities", "calc", "currency"),
    # Investing
    ("capex", "Capital Expenditures (CapEx)", "input", "currency"),
    ("other_investing", "Other Investing Activities", "input", "currency"),
    ("investing_cf", "Cash from Investing Activities", "calc", "currency"),
    # Financing
    ("debt_issuance", "Debt Issuance", "input", "currency"),
    ("debt_repayment", "Debt Repayment", "input", "currency"),
    ("equity_issuance", "Equity Issuance", "input", "currency"),
    ("dividends", "Dividends Paid", "input", "currency"),
    ("financing_cf", "Cash from Financing Activities", "calc", "currency"),
    ("net_change_cash", "Net Change in Cash", "calc", "currency"),
]

PROTECTED_ROW_IDS: Dict[str, FrozenSet[str]] = {
    INCOME_STATEMENT: frozenset({
        "rev", "cogs", "gross_profit", "gross_margin", "sga", "danda",
        "ebitda", "ebitda_margin", "ebit", "ebit_margin", "ebt", "ebt_margin",
        "tax", "net_income", "net_income_margin",
    }),
    BALANCE_SHEET: frozenset({
        "cash", "ar", "inventory", "other_ca", "total_current_assets",
        "ppe", "intangible_assets", "goodwill", "other_assets", "total_fixed_assets",
        "total_assets", "ap", "st_debt", "other_cl", "total_current_liabilities",
        "lt_debt", "other_liab", "total_non_current_liabilities", "total_liabilities",
        "common_stock", "retained_earnings", "other_equity", "total_equity",
        "total_liab_and_equity",
    }),
    CASH_FLOW: frozenset({
        "net_income", "operating_cf", "investing_cf", "financing_cf", "net_change_cash",
    }),
}


def _build(specs: List[_RowSpec]) -> List[Row]:
    return [
        Row(id=row_id, label=label, kind=kind, value_type=value_type)
        for row_id, label, kind, value_type in specs
    ]


def create_income_statement_template() -> List[Row]:
    return _build(INCOME_STATEMENT_TEMPLATE)


def create_balance_sheet_template() -> List[Row]:
    return _build(BALANCE_SHEET_TEMPLATE)


def create_cash_flow_template() -> List[Row]:
    return _build(CASH_FLOW_TEMPLATE)


_FACTORIES: Dict[str, Callable[[], List[Row]]] = {
    INCOME_STATEMENT: create_income_statement_template,
    BALANCE_SHEET: create_balance_sheet_template,
    CASH_FLOW: create_cash_flow_template,
}


def create_template(statement: str) -> List[Row]:
    """Fresh skeleton for the given statement key."""
    return _FACTORIES[statement]()


def protected_ids_for(statement: str) -> FrozenSet[str]:
    return PROTECTED_ROW_IDS.get(statement, frozenset())
