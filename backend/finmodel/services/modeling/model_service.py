"""
model_service.py — Financial Model Facade

Purpose:
- Single entry point for preview / export / API consumers of one model
  snapshot: evaluated values, projected revenue, uniform statement tables,
  balance checks and CFO classification.

Projection years:
- Revenue rows (rev, its streams and any IS row matching a breakdown id)
  take their values from the revenue projection engine.
- Every other row is evaluated normally, so IS formulas downstream of
  revenue (gross profit, margins, ...) see projected revenue.

A ModelService is bound to one immutable FinancialModel; build a new one
after changing the model.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from finmodel.core.logging import get_logger
from finmodel.services.modeling.cfo_classifier import (
    CFOItem,
    analyze_bs_items_for_cfo,
    apply_cfo_classifications,
)
from finmodel.services.modeling.evaluator import (
    BalanceCheck,
    StatementEvaluator,
    check_balance_sheet_balance,
)
from finmodel.services.modeling.revenue_projection import (
    RevenueProjectionResult,
    compute_revenue_projections,
)
from finmodel.services.modeling.types import (
    BALANCE_SHEET,
    CASH_FLOW,
    INCOME_STATEMENT,
    FinancialModel,
    Row,
    Year,
)

logger = get_logger(__name__)


@dataclass
class StatementTableRow:
    """One flattened row of a statement with values for every model year."""
    id: str
    label: str
    kind: str
    value_type: str
    depth: int
    values: Dict[Year, float] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "kind": self.kind,
            "valueType": self.value_type,
            "depth": self.depth,
            "values": dict(self.values),
        }


class ModelService:
    """
    Example:
        service = ModelService(model)
        service.value("gross_profit", "2024A")
        service.projected_revenue("rev", "2026E")
        table = service.statement_table("income_statement")
    """

    def __init__(self, model: FinancialModel):
        self.model = model
        self.evaluator = StatementEvaluator(model)
        self._projections: Optional[RevenueProjectionResult] = None
        self._projection_evaluator: Optional[StatementEvaluator] = None

    # -------------------------------------------------------------------------
    # Evaluation
    # -------------------------------------------------------------------------

    def evaluate(self, row: Row, year: Year, statement: Optional[str] = None) -> float:
        return self.evaluator.evaluate(row, year, statement)

    def value(self, row_id: str, year: Year, statement: str = INCOME_STATEMENT) -> float:
        return self.evaluator.value(row_id, year, statement)

    # -------------------------------------------------------------------------
    # Revenue projections
    # -------------------------------------------------------------------------

    def revenue_projections(self) -> RevenueProjectionResult:
        if self._projections is None:
            self._projections = compute_revenue_projections(self.model, self.evaluator)
            if self._projections.invalid_streams:
                logger.warning(
                    "Invalid breakdown mix in streams: %s",
                    ", ".join(self._projections.invalid_streams),
                )
        return self._projections

    def projected_revenue(self, item_id: str, year: Year) -> float:
        """Projected value of rev / a stream / a breakdown; 0 outside projection years."""
        if not self.model.meta.is_projection_year(year):
            return 0.0
        return self.revenue_projections().get(item_id, year)

    @property
    def projection_evaluator(self) -> StatementEvaluator:
        """Evaluator whose revenue rows read projected values in projection years."""
        if self._projection_evaluator is None:
            projections = self.revenue_projections()
            overrides = {
                item_id: by_year
                for item_id, by_year in projections.values.items()
                if self.evaluator.find(item_id, INCOME_STATEMENT) is not None
            }
            self._projection_evaluator = StatementEvaluator(self.model, overrides=overrides)
        return self._projection_evaluator

    # -------------------------------------------------------------------------
    # Tables
    # -------------------------------------------------------------------------

    def statement_table(self, statement: str) -> List[StatementTableRow]:
        """
        Flattened rows (pre-order, with depth) and their values for every
        historical and projection year.
        """
        meta = self.model.meta
        out: List[StatementTableRow] = []

        def _walk(rows: List[Row], depth: int) -> None:
            for row in rows:
                values: Dict[Year, float] = {}
                for year in meta.historical_years:
                    values[year] = self.evaluator.evaluate(row, year, statement)
                for year in meta.projection_years:
                    values[year] = self.projection_evaluator.evaluate(row, year, statement)
                out.append(StatementTableRow(
                    id=row.id,
                    label=row.label,
                    kind=row.kind,
                    value_type=row.value_type,
                    depth=depth,
                    values=values,
                ))
                _walk(row.children, depth + 1)

        _walk(self.model.statement(statement), 0)
        return out

    # -------------------------------------------------------------------------
    # Checks and classification
    # -------------------------------------------------------------------------

    def balance_check(self, years: Optional[List[Year]] = None) -> List[BalanceCheck]:
        return check_balance_sheet_balance(self.model, years=years, evaluator=self.evaluator)

    def classify_cfo(self) -> List[CFOItem]:
        return analyze_bs_items_for_cfo(self.model.balance_sheet)

    def with_cfo_applied(self, items: Optional[List[CFOItem]] = None) -> FinancialModel:
        """New model with the auto_add classifications applied (all of them by default)."""
        items = self.classify_cfo() if items is None else items
        balance_sheet, cash_flow = apply_cfo_classifications(
            self.model.balance_sheet, self.model.cash_flow, items,
        )
        return self.model.with_statement(BALANCE_SHEET, balance_sheet).with_statement(
            CASH_FLOW, cash_flow,
        )
