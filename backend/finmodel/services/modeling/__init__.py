"""
modeling package — Three-statement model computation.

Submodules:
    - types: Row tree, model snapshot and JSON conversion.
    - templates: standard statement skeletons and protected rows.
    - row_tree: immutable row insert / update / move / remove operations.
    - category_resolver: balance-sheet category and insertion position.
    - evaluator: row values, statement formulas and cross-statement links.
    - revenue_config / revenue_projection: revenue forecasting.
    - cfo_classifier, terms_knowledge, bs_impact_rules: cash-flow heuristics.
    - model_service: facade for preview / export / API consumers.
    - excel_export: .xlsx workbook builder.
"""

from .evaluator import StatementEvaluator, check_balance_sheet_balance  # noqa: F401
from .model_service import ModelService  # noqa: F401
from .revenue_projection import RevenueProjectionResult, compute_revenue_projections  # noqa: F401
from .types import FinancialModel, ModelMeta, Row, build_financial_model  # noqa: F401

__all__ = [
    "FinancialModel",
    "ModelMeta",
    "ModelService",
    "RevenueProjectionResult",
    "Row",
    "StatementEvaluator",
    "build_financial_model",
    "check_balance_sheet_balance",
    "compute_revenue_projections",
]
