"""
API tests for /api/v1/models using FastAPI's TestClient.
"""

import pytest
from fastapi.testclient import TestClient

from finmodel.api.v1.models import XLSX_MEDIA_TYPE
from finmodel.main import app

client = TestClient(app)


@pytest.fixture
def payload():
    return {
        "meta": {
            "companyName": "Acme",
            "currencyUnit": "units",
            "years": {"historical": ["2023A", "2024A"], "projection": ["2025E"]},
        },
        "incomeStatement": [
            {"id": "rev", "label": "Revenue", "values": {"2024A": 1000}},
            {"id": "cogs", "label": "COGS", "values": {"2024A": 400}},
            {"id": "gross_profit", "label": "Gross Profit", "kind": "calc"},
        ],
        "balanceSheet": [
            {"id": "cash", "label": "Cash", "values": {"2023A": 100, "2024A": 100}},
            {"id": "total_current_assets", "label": "Total Current Assets", "kind": "subtotal"},
            {"id": "total_assets", "label": "Total Assets", "kind": "total"},
            {"id": "total_current_liabilities", "label": "Total Current Liabilities", "kind": "subtotal"},
            {"id": "deferred_revenue", "label": "Deferred Revenue", "values": {"2023A": 40, "2024A": 60}},
            {"id": "total_non_current_liabilities", "label": "Total Non-Current Liabilities", "kind": "subtotal"},
            {"id": "total_liabilities", "label": "Total Liabilities", "kind": "total"},
            {"id": "common_stock", "label": "Common Stock", "values": {"2023A": 60, "2024A": 40}},
            {"id": "total_equity", "label": "Total Equity", "kind": "subtotal"},
            {"id": "total_liab_and_equity", "label": "Total Liabilities & Equity", "kind": "total"},
        ],
        "revenueConfig": {
            "items": {"rev": {"method": "growth_rate", "inputs": {"ratePercent": 10}}},
        },
    }


def test_health():
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_evaluate(payload):
    response = client.post(
        "/api/v1/models/evaluate",
        json={"model": payload, "statements": ["income_statement"]},
    )
    assert response.status_code == 200
    body = response.json()
    assert body["years"] == ["2023A", "2024A", "2025E"]
    rows = {r["id"]: r for r in body["statements"]["income_statement"]}
    assert rows["gross_profit"]["values"]["2024A"] == pytest.approx(600.0)
    assert rows["rev"]["values"]["2025E"] == pytest.approx(1100.0)


def test_evaluate_rejects_unknown_statement(payload):
    response = client.post("/api/v1/models/evaluate", json={"model": payload, "statements": ["nope"]})
    assert response.status_code == 422


def test_invalid_row_is_rejected(payload):
    payload["incomeStatement"].append({"id": "bad", "kind": "formula"})
    response = client.post("/api/v1/models/evaluate", json={"model": payload})
    assert response.status_code == 422
    assert "unknown kind" in response.json()["detail"]


def test_revenue_projections(payload):
    response = client.post("/api/v1/models/revenue-projections", json={"model": payload})
    assert response.status_code == 200
    body = response.json()
    assert body["years"] == ["2025E"]
    assert body["values"]["rev"]["2025E"] == pytest.approx(1100.0)
    assert body["invalid_streams"] == []


def test_cfo_classification_with_apply(payload):
    response = client.post(
        "/api/v1/models/cfo-classification",
        json={"model": payload, "apply": True},
    )
    assert response.status_code == 200
    body = response.json()
    items = {i["rowId"]: i for i in body["items"]}
    assert items["deferred_revenue"]["treatment"] == "auto_add"
    cash_flow_ids = [r["id"] for r in body["model"]["cashFlow"]]
    assert "cfo_deferred_revenue" in cash_flow_ids


def test_balance_check(payload):
    response = client.post("/api/v1/models/balance-check", json={"model": payload, "years": ["2023A", "2024A"]})
    assert response.status_code == 200
    body = response.json()
    assert body["balanced"] is True
    assert [r["year"] for r in body["results"]] == ["2023A", "2024A"]


def test_export_returns_workbook(payload):
    response = client.post("/api/v1/models/export", json={"model": payload})
    assert response.status_code == 200
    assert response.headers["content-type"] == XLSX_MEDIA_TYPE
    assert "attachment" in response.headers["content-disposition"]
    assert response.content[:2] == b"PK"
