"""
bs_impact_rules.py — Default Cash-Flow / Income-Statement Links for BS Items

Purpose:
- Decide the cfs_link / is_link metadata a new balance-sheet row receives
  when it is added to a category.

Rules by category:
- current assets / current liabilities -> operating working capital
- fixed assets   -> capex + D&A for PP&E-like and intangible rows,
                    otherwise other investing
- non-current    -> debt: financing + interest expense link
                    deferred tax: other operating
                    otherwise: other financing
- equity         -> stock issuance, repurchases, net income (retained
                    earnings) or no cash impact (AOCI)
"""

from __future__ import annotations

import re
from typing import Optional, Tuple

from finmodel.services.modeling.category_resolver import (
    CURRENT_ASSETS,
    CURRENT_LIABILITIES,
    EQUITY,
    FIXED_ASSETS,
    NON_CURRENT_LIABILITIES,
)
from finmodel.services.modeling.types import CfsLink, IsLink

_PPE_PATTERN = re.compile(r"\b(ppe|pp&e|property|plant|equipment)\b")
_INTANGIBLE_PATTERN = re.compile(r"\bintangible")
_DEBT_PATTERN = re.compile(r"\b(debt|loans?|borrowings?|notes? payable)\b")
_DEFERRED_TAX_PATTERN = re.compile(r"deferred[\s_]+tax")


def _text(item_id: str, label: str) -> str:
    return f"{item_id.replace('_', ' ')} {label}".lower()


def get_bs_item_impacts(
    category: Optional[str],
    item_id: str,
    label: str = "",
) -> Tuple[Optional[CfsLink], Optional[IsLink]]:
    """
    (cfs_link, is_link) for a balance-sheet item added to `category`.
    Unknown categories get no metadata.
    """
    text = _text(item_id, label)

    if category in (CURRENT_ASSETS, CURRENT_LIABILITIES):
        return CfsLink(
            section="operating",
            cfs_item_id="wc_change",
            impact="calculated",
            description="Change in working capital",
        ), None

    if category == FIXED_ASSETS:
        if _PPE_PATTERN.search(text):
            return (
                CfsLink("investing", "capex", "negative", "Capital expenditures"),
                IsLink("danda", "Depreciation"),
            )
        if _INTANGIBLE_PATTERN.search(text):
            return (
                CfsLink("investing", "capex", "negative", "Purchases of intangible assets"),
                IsLink("danda", "Amortization"),
            )
        return CfsLink("investing", "other_investing", "calculated", "Other investing activities"), None

    if category == NON_CURRENT_LIABILITIES:
        if _DEBT_PATTERN.search(text):
            return (
                CfsLink("financing", "debt_issuance", "calculated", "Debt issuance / repayment"),
                IsLink("interest_expense", "Interest on debt"),
            )
        if _DEFERRED_TAX_PATTERN.search(text):
            return CfsLink("operating", "other_operating", "calculated", "Deferred income taxes"), None
        return CfsLink("financing", "other_financing", "calculated", "Other financing activities"), None

    if category == EQUITY:
        if item_id in ("common_stock", "apic", "preferred_stock"):
            return CfsLink("financing", "equity_issuance", "positive", "Equity issuance"), None
        if item_id == "treasury_stock":
            return CfsLink("financing", "share_repurchases", "negative", "Share repurchases"), None
        if item_id == "retained_earnings":
            return (
                CfsLink("operating", "net_income", "calculated", "Net income"),
                IsLink("net_income", "Net income"),
            )
        if item_id == "aoci":
            return None, None
        return CfsLink("financing", "equity_issuance", "positive", "Equity issuance"), None

    return None, None
