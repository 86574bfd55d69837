"""
Shared fixtures for modeling tests.
"""

from typing import Any, Dict, List, Optional

import pytest

from finmodel.services.modeling.revenue_config import RevenueProjectionConfig
from finmodel.services.modeling.row_tree import update_row_values
from finmodel.services.modeling.templates import (
    create_balance_sheet_template,
    create_cash_flow_template,
    create_income_statement_template,
)
from finmodel.services.modeling.types import FinancialModel, ModelMeta, Row

HISTORICAL = ["2023A", "2024A"]
PROJECTION = ["2025E", "2026E"]


def _with_values(rows: List[Row], values: Dict[str, Dict[str, float]]) -> List[Row]:
    for row_id, by_year in values.items():
        rows = update_row_values(rows, row_id, by_year)
    return rows


@pytest.fixture
def meta() -> ModelMeta:
    return ModelMeta(
        company_name="Acme",
        currency="USD",
        currency_unit="units",
        historical_years=list(HISTORICAL),
        projection_years=list(PROJECTION),
    )


@pytest.fixture
def make_model(meta):
    """Factory: template statements with the given stored values."""

    def _make(
        income: Optional[Dict[str, Dict[str, float]]] = None,
        balance: Optional[Dict[str, Dict[str, float]]] = None,
        cash_flow: Optional[Dict[str, Dict[str, float]]] = None,
        revenue_config: Optional[Dict[str, Any]] = None,
        income_statement: Optional[List[Row]] = None,
        balance_sheet: Optional[List[Row]] = None,
        **meta_overrides: Any,
    ) -> FinancialModel:
        model_meta = ModelMeta(**{**meta.__dict__, **meta_overrides})
        return FinancialModel(
            meta=model_meta,
            income_statement=_with_values(
                income_statement if income_statement is not None else create_income_statement_template(),
                income or {},
            ),
            balance_sheet=_with_values(
                balance_sheet if balance_sheet is not None else create_balance_sheet_template(),
                balance or {},
            ),
            cash_flow=_with_values(create_cash_flow_template(), cash_flow or {}),
            revenue_config=RevenueProjectionConfig.model_validate(revenue_config or {}),
        )

    return _make


@pytest.fixture
def scenario_income() -> Dict[str, Dict[str, float]]:
    """Revenue 1000, COGS 400, SG&A 200, R&D 50, D&A 30, interest 20/5, tax 60."""
    return {
        "rev": {"2024A": 1000.0},
        "cogs": {"2024A": 400.0},
        "sga": {"2024A": 200.0},
        "rd": {"2024A": 50.0},
        "danda": {"2024A": 30.0},
        "interest_expense": {"2024A": 20.0},
        "interest_income": {"2024A": 5.0},
        "tax": {"2024A": 60.0},
    }
