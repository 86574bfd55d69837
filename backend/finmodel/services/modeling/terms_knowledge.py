"""
terms_knowledge.py — Financial Terms Knowledge Base

Purpose:
- Static dictionary of recognized balance-sheet terms with their category
  and standard cash-flow treatment.
- Label lookup (direct, whole-word partial, keyword) used by the CFO
  classifier when pattern matching is inconclusive.

Keys are normalized labels (lowercase, punctuation stripped, single spaces).
These mappings should be expanded over time as more coverage is required.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Optional

from finmodel.services.modeling.category_resolver import (
    CURRENT_ASSETS,
    CURRENT_LIABILITIES,
    EQUITY,
    FIXED_ASSETS,
    NON_CURRENT_LIABILITIES,
)
from finmodel.services.modeling.types import CfsLink, IsLink


@dataclass(frozen=True)
class TermKnowledge:
    category: str
    cfs_treatment: Optional[CfsLink] = None
    is_link: Optional[IsLink] = None
    notes: str = ""


def normalize_label(label: str) -> str:
    """'Accounts Receivable, net' -> 'accounts receivable net'"""
    text = re.sub(r"[^\w\s]", " ", (label or "").lower())
    return re.sub(r"\s+", " ", text).strip()


# Shared treatments --------------------------------------------------------- #

_WORKING_CAPITAL = CfsLink(
    section="operating",
    cfs_item_id="wc_change",
    impact="calculated",
    description="Change in working capital",
)
_CAPEX = CfsLink(
    section="investing",
    cfs_item_id="capex",
    impact="negative",
    description="Capital expenditures",
)
_OTHER_INVESTING = CfsLink(
    section="investing",
    cfs_item_id="other_investing",
    impact="calculated",
    description="Other investing activities",
)
_DEBT = CfsLink(
    section="financing",
    cfs_item_id="debt_issuance",
    impact="calculated",
    description="Debt issuance / repayment",
)
_EQUITY_ISSUANCE = CfsLink(
    section="financing",
    cfs_item_id="equity_issuance",
    impact="positive",
    description="Equity issuance",
)
_DANDA = IsLink(is_item_id="danda", description="Depreciation and amortization")


_RAW_TERMS: Dict[str, TermKnowledge] = {
    # Current assets
    "cash": TermKnowledge(CURRENT_ASSETS, notes="Ending cash ties to the cash flow statement"),
    "cash and cash equivalents": TermKnowledge(CURRENT_ASSETS, notes="Ending cash ties to the cash flow statement"),
    "marketable securities": TermKnowledge(
        CURRENT_ASSETS,
        CfsLink("investing", "other_investing", "negative", "Purchases of marketable securities"),
    ),
    "short term investments": TermKnowledge(
        CURRENT_ASSETS,
        CfsLink("investing", "other_investing", "negative", "Purchases of short-term investments"),
    ),
    "accounts receivable": TermKnowledge(CURRENT_ASSETS, _WORKING_CAPITAL),
    "ar": TermKnowledge(CURRENT_ASSETS, _WORKING_CAPITAL),
    "inventory": TermKnowledge(CURRENT_ASSETS, _WORKING_CAPITAL),
    "prepaid expenses": TermKnowledge(CURRENT_ASSETS, _WORKING_CAPITAL),
    "prepaid assets": TermKnowledge(CURRENT_ASSETS, _WORKING_CAPITAL),
    "other current assets": TermKnowledge(CURRENT_ASSETS, _WORKING_CAPITAL),
    # Fixed assets
    "ppe": TermKnowledge(FIXED_ASSETS, _CAPEX, _DANDA),
    "property plant and equipment": TermKnowledge(FIXED_ASSETS, _CAPEX, _DANDA),
    "intangible assets": TermKnowledge(
        FIXED_ASSETS,
        CfsLink("investing", "capex", "negative", "Purchases of intangible assets"),
        IsLink("danda", "Amortization of intangible assets"),
    ),
    "goodwill": TermKnowledge(
        FIXED_ASSETS,
        CfsLink("investing", "other_investing", "negative", "Acquisitions"),
        notes="Changes only through acquisitions or impairment",
    ),
    "long term investments": TermKnowledge(FIXED_ASSETS, _OTHER_INVESTING),
    "other assets": TermKnowledge(FIXED_ASSETS, _OTHER_INVESTING),
    # Current liabilities
    "accounts payable": TermKnowledge(CURRENT_LIABILITIES, _WORKING_CAPITAL),
    "ap": TermKnowledge(CURRENT_LIABILITIES, _WORKING_CAPITAL),
    "short term debt": TermKnowledge(CURRENT_LIABILITIES, _DEBT),
    "accrued expenses": TermKnowledge(
        CURRENT_LIABILITIES,
        CfsLink("operating", "accrued_expenses", "positive", "Increase in accrued expenses"),
    ),
    "accrued liabilities": TermKnowledge(
        CURRENT_LIABILITIES,
        CfsLink("operating", "accrued_expenses", "positive", "Increase in accrued liabilities"),
    ),
    "deferred revenue": TermKnowledge(
        CURRENT_LIABILITIES,
        CfsLink("operating", "deferred_revenue", "positive", "Increase in deferred revenue"),
    ),
    "unearned revenue": TermKnowledge(
        CURRENT_LIABILITIES,
        CfsLink("operating", "deferred_revenue", "positive", "Increase in unearned revenue"),
    ),
    "other current liabilities": TermKnowledge(CURRENT_LIABILITIES, _WORKING_CAPITAL),
    # Non-current liabilities
    "long term debt": TermKnowledge(
        NON_CURRENT_LIABILITIES, _DEBT, IsLink("interest_expense", "Interest on debt"),
    ),
    "lt debt": TermKnowledge(
        NON_CURRENT_LIABILITIES, _DEBT, IsLink("interest_expense", "Interest on debt"),
    ),
    "deferred tax liabilities": TermKnowledge(
        NON_CURRENT_LIABILITIES,
        CfsLink("operating", "deferred_taxes", "calculated", "Deferred income taxes"),
    ),
    "pension liabilities": TermKnowledge(
        NON_CURRENT_LIABILITIES,
        CfsLink("operating", "pension", "positive", "Pension expense in excess of contributions"),
    ),
    "other liabilities": TermKnowledge(
        NON_CURRENT_LIABILITIES,
        CfsLink("financing", "other_financing", "calculated", "Other financing activities"),
    ),
    "operating leases": TermKnowledge(
        NON_CURRENT_LIABILITIES,
        CfsLink("operating", "lease_payments", "negative", "Operating lease payments"),
    ),
    "lease liabilities": TermKnowledge(
        NON_CURRENT_LIABILITIES,
        CfsLink("operating", "lease_payments", "negative", "Lease liability payments"),
    ),
    "finance leases": TermKnowledge(NON_CURRENT_LIABILITIES, _CAPEX, _DANDA),
    "capital leases": TermKnowledge(NON_CURRENT_LIABILITIES, _CAPEX, _DANDA),
    # Equity
    "common stock": TermKnowledge(EQUITY, _EQUITY_ISSUANCE),
    "apic": TermKnowledge(EQUITY, _EQUITY_ISSUANCE),
    "additional paid in capital": TermKnowledge(EQUITY, _EQUITY_ISSUANCE),
    "retained earnings": TermKnowledge(
        EQUITY,
        CfsLink("operating", "net_income", "calculated", "Net income"),
        IsLink("net_income", "Net income"),
        notes="Changes by net income less dividends",
    ),
    "treasury stock": TermKnowledge(
        EQUITY,
        CfsLink("financing", "share_repurchases", "negative", "Share repurchases"),
    ),
    "aoci": TermKnowledge(EQUITY, notes="Non-cash; no cash flow impact"),
    "accumulated other comprehensive income": TermKnowledge(
        EQUITY, notes="Non-cash; no cash flow impact",
    ),
}

FINANCIAL_TERMS_KNOWLEDGE: Dict[str, TermKnowledge] = {
    normalize_label(term): knowledge for term, knowledge in _RAW_TERMS.items()
}

# Single-word fallbacks -> canonical term
KEYWORD_TERMS: Dict[str, str] = {
    "marketable": "marketable securities",
    "securities": "marketable securities",
    "prepaid": "prepaid expenses",
    "accrued": "accrued expenses",
    "deferred": "deferred revenue",
    "lease": "lease liabilities",
    "leases": "lease liabilities",
}


def _contains_words(haystack: str, needle: str) -> bool:
    return re.search(rf"\b{re.escape(needle)}\b", haystack) is not None


def find_term_knowledge(label: str) -> Optional[TermKnowledge]:
    """
    Look up a label:
    1. exact normalized match
    2. a known term appearing as whole words in the label (longest first),
       or the label appearing as whole words in a known term
    3. keyword fallback
    """
    normalized = normalize_label(label)
    if not normalized:
        return None
    if normalized in FINANCIAL_TERMS_KNOWLEDGE:
        return FINANCIAL_TERMS_KNOWLEDGE[normalized]

    for term in sorted(FINANCIAL_TERMS_KNOWLEDGE, key=len, reverse=True):
        if _contains_words(normalized, term) or _contains_words(term, normalized):
            return FINANCIAL_TERMS_KNOWLEDGE[term]

    for word in normalized.split(" "):
        if word in KEYWORD_TERMS:
            return FINANCIAL_TERMS_KNOWLEDGE[KEYWORD_TERMS[word]]
    return None


def get_suggested_treatment(label: str) -> Optional[CfsLink]:
    knowledge = find_term_knowledge(label)
    return knowledge.cfs_treatment if knowledge else None
