"""
models.py — Financial Model API Endpoints (Stateless)

Purpose:
- Expose the modeling engine over HTTP. Every request carries the full model
  snapshot (rows, years, revenue configuration); nothing is persisted.

Endpoints:
- POST /api/v1/models/evaluate            - Evaluated statement tables
- POST /api/v1/models/revenue-projections - Projected revenue per item / year
- POST /api/v1/models/cfo-classification  - Operating CF classification of BS rows
- POST /api/v1/models/balance-check       - Assets vs liabilities & equity per year
- POST /api/v1/models/export              - Excel workbook download

This module should NOT:
- Contain modeling math (everything is delegated to services/modeling/).
"""

import io
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, Field, ValidationError

from finmodel.core.config import settings
from finmodel.core.logging import get_logger
from finmodel.services.modeling.excel_export import build_excel_workbook
from finmodel.services.modeling.model_service import ModelService
from finmodel.services.modeling.types import (
    STATEMENT_KEYS,
    FinancialModel,
    build_financial_model,
    model_to_dict,
)

logger = get_logger(__name__)

router = APIRouter(
    prefix="/models",
    tags=["models"]
)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

# -----------------------------------------------------------------------------
# Request/Response Schemas
# -----------------------------------------------------------------------------


class ModelRequest(BaseModel):
    model: Dict[str, Any] = Field(default_factory=dict)


class EvaluateRequest(ModelRequest):
    statements: Optional[List[str]] = None


class EvaluateResponse(BaseModel):
    years: List[str]
    statements: Dict[str, List[Dict[str, Any]]]


class RevenueProjectionsResponse(BaseModel):
    years: List[str]
    values: Dict[str, Dict[str, float]]
    invalid_streams: List[str]
    sub_lines: Dict[str, List[str]]


class CfoClassificationRequest(ModelRequest):
    apply: bool = False


class CfoClassificationResponse(BaseModel):
    items: List[Dict[str, Any]]
    model: Optional[Dict[str, Any]] = None


class BalanceCheckRequest(ModelRequest):
    years: Optional[List[str]] = None


class BalanceCheckResponse(BaseModel):
    balanced: bool
    results: List[Dict[str, Any]]


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------


def _load_model(payload: Dict[str, Any]) -> FinancialModel:
    """Build the model snapshot; malformed payloads become 422."""
    try:
        return build_financial_model(payload)
    except (ValueError, ValidationError) as exc:
        logger.warning("Rejected model payload: %s", exc)
        raise HTTPException(status_code=422, detail=f"Invalid model payload: {str(exc)}")


# -----------------------------------------------------------------------------
# Endpoints
# -----------------------------------------------------------------------------


@router.post("/evaluate", response_model=EvaluateResponse)
async def evaluate_model(request: EvaluateRequest):
    """
    Evaluate statements for every historical and projection year.

    Revenue rows in projection years come from the revenue projection engine;
    every other row is evaluated from its formula / children / stored value.
    """
    try:
        model = _load_model(request.model)
        statements = request.statements or list(STATEMENT_KEYS)
        unknown = [s for s in statements if s not in STATEMENT_KEYS]
        if unknown:
            raise HTTPException(status_code=422, detail=f"Unknown statements: {unknown}")

        service = ModelService(model)
        return EvaluateResponse(
            years=model.meta.years,
            statements={
                key: [row.to_dict() for row in service.statement_table(key)]
                for key in statements
            },
        )
    except HTTPException:
        raise
    except Exception as exc:
        logger.exception("Error evaluating model: %s", exc)
        raise HTTPException(status_code=500, detail=f"Error evaluating model: {str(exc)}")


@router.post("/revenue-projections", response_model=RevenueProjectionsResponse)
async def revenue_projections(request: ModelRequest):
    try:
        model = _load_model(request.model)
        result = ModelService(model).revenue_projections()
        return RevenueProjectionsResponse(
            years=model.meta.projection_years,
            values=result.values,
            invalid_streams=result.invalid_streams,
            sub_lines=result.sub_lines,
        )
    except HTTPException:
        raise
    except Exception as exc:
        logger.exception("Error projecting revenue: %s", exc)
        raise HTTPException(status_code=500, detail=f"Error projecting revenue: {str(exc)}")


@router.post("/cfo-classification", response_model=CfoClassificationResponse)
async def cfo_classification(request: CfoClassificationRequest):
    """
    Classify balance-sheet rows for operating cash flow. With `apply`, the
    auto_add items are applied and the updated model is returned.
    """
    try:
        model = _load_model(request.model)
        service = ModelService(model)
        items = service.classify_cfo()
        updated = model_to_dict(service.with_cfo_applied(items)) if request.apply else None
        return CfoClassificationResponse(items=[i.to_dict() for i in items], model=updated)
    except HTTPException:
        raise
    except Exception as exc:
        logger.exception("Error classifying balance sheet: %s", exc)
        raise HTTPException(status_code=500, detail=f"Error classifying balance sheet: {str(exc)}")


@router.post("/balance-check", response_model=BalanceCheckResponse)
async def balance_check(request: BalanceCheckRequest):
    try:
        model = _load_model(request.model)
        results = ModelService(model).balance_check(request.years)
        return BalanceCheckResponse(
            balanced=all(r.balances for r in results),
            results=[
                {
                    "year": r.year,
                    "balances": r.balances,
                    "totalAssets": r.total_assets,
                    "totalLiabAndEquity": r.total_liab_and_equity,
                    "difference": r.difference,
                }
                for r in results
            ],
        )
    except HTTPException:
        raise
    except Exception as exc:
        logger.exception("Error checking balance sheet: %s", exc)
        raise HTTPException(status_code=500, detail=f"Error checking balance sheet: {str(exc)}")


@router.post("/export")
async def export_excel(request: ModelRequest):
    """
    Returns:
    - A downloadable Excel workbook (.xlsx) with the three statements and the
      revenue build.
    """
    try:
        model = _load_model(request.model)
        workbook_bytes = build_excel_workbook(model)
        filename = f"{settings.EXPORT_FILENAME_PREFIX}_{datetime.now().strftime('%Y%m%d')}.xlsx"
        return StreamingResponse(
            io.BytesIO(workbook_bytes),
            media_type=XLSX_MEDIA_TYPE,
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )
    except HTTPException:
        raise
    except Exception as exc:
        logger.exception("Error exporting workbook: %s", exc)
        raise HTTPException(status_code=500, detail=f"Error exporting workbook: {str(exc)}")
