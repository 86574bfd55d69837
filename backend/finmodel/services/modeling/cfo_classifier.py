"""
cfo_classifier.py — Operating Cash Flow Classification of Balance-Sheet Items

Purpose:
- Decide which fixed-asset / non-current-liability rows flow into Cash Flow
  from Operations, with what direction and how their amount is computed.
- Apply accepted classifications: tag the balance-sheet row and add a
  cfo_<rowId> line to the operating section of the cash flow statement.

Classification order (first match wins):
1. Non-operating patterns (debt, capex, PP&E, intangibles, goodwill): skipped
2. Operating lease / lease liability   -> auto_add, negative
3. Deferred revenue                    -> auto_add, positive
4. Deferred tax                        -> auto_add, neutral
5. Other long-term / other liability   -> suggest_review
6. Terms knowledge with an operating treatment -> auto_add
7. Accrued, warranty, pension patterns -> suggest_review
8. Anything else                       -> suggest_review, no numeric treatment
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from finmodel.core.logging import get_logger
from finmodel.services.modeling.category_resolver import (
    FIXED_ASSETS,
    NON_CURRENT_LIABILITIES,
    resolve_categories,
)
from finmodel.services.modeling.evaluator import (
    CFO_ROW_PREFIX,
    StatementEvaluator,
    is_operating_classified,
)
from finmodel.services.modeling.row_tree import insert_row, set_cfs_link, top_level_index
from finmodel.services.modeling.terms_knowledge import find_term_knowledge
from finmodel.services.modeling.types import BALANCE_SHEET, CfsLink, Row, Year

logger = get_logger(__name__)

# Handled by the template's own cash-flow lines
_STANDARD_IDS = ("cash", "ar", "inventory", "ap", "st_debt")

_EXCLUDE_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"debt", r"loan", r"note", r"bond", r"credit facility", r"revolver",
        r"capex", r"capital expenditure", r"ppe", r"property.*plant",
        r"equipment", r"intangible", r"goodwill",
    )
]

_REVIEW_PATTERNS = [
    re.compile(p, re.IGNORECASE)
    for p in (
        r"operating.*lease", r"lease.*liabilit", r"deferred.*revenue", r"deferred.*tax",
        r"accrued.*expense", r"accrued.*liabilit", r"warranty", r"pension",
        r"other.*long.*term", r"other.*liabilit",
    )
]

_LEASE = re.compile(r"operating.*lease|lease.*liabilit", re.IGNORECASE)
_DEFERRED_REVENUE = re.compile(r"deferred.*revenue", re.IGNORECASE)
_DEFERRED_TAX = re.compile(r"deferred.*tax", re.IGNORECASE)
_OTHER_LIABILITY = re.compile(r"other.*long.*term|other.*liabilit", re.IGNORECASE)


@dataclass
class CFOItem:
    row_id: str
    label: str
    treatment: str            # auto_add | suggest_review
    description: str
    impact: str               # positive | negative | neutral
    calculation_method: str   # change | direct | calculated

    def to_dict(self) -> dict:
        return {
            "rowId": self.row_id,
            "label": self.label,
            "treatment": self.treatment,
            "description": self.description,
            "impact": self.impact,
            "calculationMethod": self.calculation_method,
        }


def _matches(patterns, row: Row) -> bool:
    return any(p.search(row.label) or p.search(row.id) for p in patterns)


def classify_bs_row(row: Row) -> Optional[CFOItem]:
    """Classification of one candidate row; None when it is non-operating."""
    if _matches(_EXCLUDE_PATTERNS, row):
        return None

    def item(treatment: str, description: str, impact: str, method: str = "change") -> CFOItem:
        return CFOItem(row.id, row.label, treatment, description, impact, method)

    label = row.label
    if _LEASE.search(label):
        return item(
            "auto_add",
            "Operating lease liabilities are non-cash operating items. "
            "Increases reduce operating cash flow; decreases add to it.",
            "negative",
        )
    if _DEFERRED_REVENUE.search(label):
        return item(
            "auto_add",
            "Deferred revenue is an operating liability. Increases are cash "
            "received ahead of revenue; decreases are revenue recognized.",
            "positive",
        )
    if _DEFERRED_TAX.search(label):
        return item(
            "auto_add",
            "Deferred taxes are non-cash; changes flow to operating cash flow as adjustments.",
            "neutral",
        )
    if _OTHER_LIABILITY.search(label):
        return item(
            "suggest_review",
            "Other long-term liabilities may hold operating items (warranties, "
            "pensions) or financing items. Review to determine the treatment.",
            "neutral",
        )

    knowledge = find_term_knowledge(label)
    treatment = knowledge.cfs_treatment if knowledge else None
    if treatment is not None and treatment.section == "operating":
        impact = treatment.impact if treatment.impact in ("positive", "negative") else "neutral"
        method = "calculated" if treatment.impact == "calculated" else "change"
        return item("auto_add", treatment.description, impact, method)

    if _matches(_REVIEW_PATTERNS, row):
        return item(
            "suggest_review",
            "This item appears to be operating-related. Review to confirm the treatment.",
            "neutral",
        )
    return item(
        "suggest_review",
        "No standard operating treatment recognized. Review whether it affects operating cash flow.",
        "neutral",
    )


def analyze_bs_items_for_cfo(balance_sheet: List[Row]) -> List[CFOItem]:
    """
    Classify top-level fixed-asset and non-current-liability rows that are
    not totals, not template working-capital items and not already
    classified as operating.
    """
    items: List[CFOItem] = []
    for row, category in zip(balance_sheet, resolve_categories(balance_sheet)):
        if category not in (FIXED_ASSETS, NON_CURRENT_LIABILITIES):
            continue
        if row.is_total_like or row.id in _STANDARD_IDS or is_operating_classified(row):
            continue
        result = classify_bs_row(row)
        if result is not None:
            items.append(result)
    logger.debug("CFO analysis: %d of %d balance-sheet rows classified", len(items), len(balance_sheet))
    return items


def calculate_cfo_impact(
    row: Row,
    year: Year,
    previous_year: Optional[Year],
    impact: str,
    method: str,
    evaluator: Optional[StatementEvaluator] = None,
) -> float:
    """
    Operating cash-flow contribution of a classified row for one year.

    change:     current - prior (prior 0 when there is no previous year),
                negated for negative impact
    direct:     current value, negated for negative impact
    calculated: 0 (handled by an aggregate line)
    """
    def _value(y: Year) -> float:
        if evaluator is not None:
            return evaluator.evaluate(row, y, BALANCE_SHEET)
        return row.values.get(y, 0.0)

    current = _value(year)
    if method == "change":
        prior = _value(previous_year) if previous_year else 0.0
        change = current - prior
        return -change if impact == "negative" else change
    if method == "direct":
        return -current if impact == "negative" else current
    return 0.0


def apply_cfo_classifications(
    balance_sheet: List[Row],
    cash_flow: List[Row],
    items: List[CFOItem],
) -> Tuple[List[Row], List[Row]]:
    """
    Accept the auto_add classifications: each balance-sheet row gets an
    operating cfs_link and the cash flow statement gets a cfo_<rowId> line
    right before operating_cf (appended when operating_cf is missing).
    Returns the new (balance_sheet, cash_flow).
    """
    for cfo in items:
        if cfo.treatment != "auto_add":
            continue
        link = CfsLink(
            section="operating",
            cfs_item_id=f"{CFO_ROW_PREFIX}{cfo.row_id}",
            impact=cfo.impact,
            description=cfo.description,
        )
        balance_sheet = set_cfs_link(balance_sheet, cfo.row_id, link)
        if top_level_index(cash_flow, link.cfs_item_id) >= 0:
            continue
        anchor = top_level_index(cash_flow, "operating_cf")
        cash_flow = insert_row(
            cash_flow,
            Row(id=link.cfs_item_id, label=f"Change in {cfo.label}", kind="calc", cfs_link=link),
            index=anchor if anchor >= 0 else None,
        )
        logger.info("Added %s to operating cash flow (%s impact)", cfo.row_id, cfo.impact)
    return balance_sheet, cash_flow
