"""
types.py — Shared Data Layer for Modeling Modules

Purpose:
- Define the row tree (Row, CfsLink, IsLink) and the model container
  (ModelMeta, FinancialModel) shared by every modeling module.
- Convert JSON-shaped payloads (camelCase or snake_case keys) into these
  structures and back.

Conventions:
- Year labels are strings such as "2024A" (historical) or "2026E" (projection).
- All values are stored values (see currency.py); percentages are 0-100.
- Rows are treated as immutable snapshots: row_tree.py never mutates a Row in
  place, it returns new rows along the changed path.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Literal, Optional, Tuple

from finmodel.core.config import settings
from finmodel.services.modeling.revenue_config import RevenueProjectionConfig

Year = str

RowKind = Literal["input", "calc", "subtotal", "total"]
ValueType = Literal["currency", "percent", "number"]
CfsSection = Literal["operating", "investing", "financing"]
CfsImpact = Literal["positive", "negative", "neutral", "calculated"]

ROW_KINDS: Tuple[str, ...] = ("input", "calc", "subtotal", "total")
VALUE_TYPES: Tuple[str, ...] = ("currency", "percent", "number")

INCOME_STATEMENT = "income_statement"
BALANCE_SHEET = "balance_sheet"
CASH_FLOW = "cash_flow"
STATEMENT_KEYS: Tuple[str, ...] = (INCOME_STATEMENT, BALANCE_SHEET, CASH_FLOW)

# Payload aliases accepted for statements
_STATEMENT_ALIASES: Dict[str, str] = {
    "incomeStatement": INCOME_STATEMENT,
    "balanceSheet": BALANCE_SHEET,
    "cashFlow": CASH_FLOW,
}


@dataclass
class CfsLink:
    """
    Cash-flow classification remembered on a balance-sheet row.

    impact:
        positive   -> increase in the BS item increases cash
        negative   -> increase in the BS item decreases cash
        neutral    -> raw change passed through
        calculated -> handled by an aggregate (e.g. working capital), no
                      per-row contribution
    """
    section: str
    cfs_item_id: str
    impact: str = "neutral"
    description: str = ""


@dataclass
class IsLink:
    """Link from a balance-sheet row to an income-statement concept."""
    is_item_id: str
    description: str = ""


@dataclass
class Row:
    """
    One line item of a statement.

    Example:
        Row(id="rev", label="Revenue", values={"2024A": 1000.0},
            children=[Row(id="subs", label="Subscriptions")])
    """
    id: str
    label: str
    kind: str = "input"
    value_type: str = "currency"
    values: Dict[Year, float] = field(default_factory=dict)
    children: List["Row"] = field(default_factory=list)
    cfs_link: Optional[CfsLink] = None
    is_link: Optional[IsLink] = None

    @property
    def is_derived(self) -> bool:
        return self.kind in ("calc", "subtotal", "total")

    @property
    def is_total_like(self) -> bool:
        """Totals, subtotals and any row following the total_* naming convention."""
        return self.kind in ("subtotal", "total") or self.id.startswith("total_")


@dataclass
class ModelMeta:
    """Model-level settings: years, currency and display unit."""
    company_name: str = ""
    currency: str = field(default_factory=lambda: settings.DEFAULT_CURRENCY)
    currency_unit: str = field(default_factory=lambda: settings.DEFAULT_CURRENCY_UNIT)
    historical_years: List[Year] = field(
        default_factory=lambda: list(settings.DEFAULT_HISTORICAL_YEARS)
    )
    projection_years: List[Year] = field(
        default_factory=lambda: list(settings.DEFAULT_PROJECTION_YEARS)
    )

    @property
    def years(self) -> List[Year]:
        """Historical followed by projection years, in display order."""
        return list(self.historical_years) + list(self.projection_years)

    @property
    def last_historical_year(self) -> Optional[Year]:
        return self.historical_years[-1] if self.historical_years else None

    def previous_year(self, year: Year) -> Optional[Year]:
        years = self.years
        if year not in years:
            return None
        idx = years.index(year)
        return years[idx - 1] if idx > 0 else None

    def is_projection_year(self, year: Year) -> bool:
        return year in self.projection_years


@dataclass
class FinancialModel:
    """
    Snapshot of the whole model: three statements plus revenue configuration.

    sbc_breakdowns maps an expense category id (e.g. "sga" or one of its
    breakdown ids) to {year: stock-based compensation amount}.
    """
    meta: ModelMeta = field(default_factory=ModelMeta)
    income_statement: List[Row] = field(default_factory=list)
    balance_sheet: List[Row] = field(default_factory=list)
    cash_flow: List[Row] = field(default_factory=list)
    revenue_config: RevenueProjectionConfig = field(default_factory=RevenueProjectionConfig)
    sbc_breakdowns: Dict[str, Dict[Year, float]] = field(default_factory=dict)

    def statement(self, key: str) -> List[Row]:
        if key not in STATEMENT_KEYS:
            raise KeyError(f"Unknown statement: {key}")
        return getattr(self, key)

    def with_statement(self, key: str, rows: List[Row]) -> "FinancialModel":
        """Return a new model with one statement replaced."""
        if key not in STATEMENT_KEYS:
            raise KeyError(f"Unknown statement: {key}")
        return replace(self, **{key: rows})

    def with_revenue_config(self, config: RevenueProjectionConfig) -> "FinancialModel":
        return replace(self, revenue_config=config)


# -----------------------------------------------------------------------------
# Payload conversion
# -----------------------------------------------------------------------------


def _pick(data: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _parse_values(raw: Optional[Dict[str, Any]]) -> Dict[Year, float]:
    values: Dict[Year, float] = {}
    for year, raw_val in (raw or {}).items():
        if year is None or raw_val is None:
            continue
        try:
            values[str(year)] = float(raw_val)
        except (TypeError, ValueError):
            # Skip non-numeric cells
            continue
    return values


def cfs_link_from_dict(data: Optional[Dict[str, Any]]) -> Optional[CfsLink]:
    if not data:
        return None
    return CfsLink(
        section=str(_pick(data, "section", default="operating")),
        cfs_item_id=str(_pick(data, "cfs_item_id", "cfsItemId", default="")),
        impact=str(_pick(data, "impact", default="neutral")),
        description=str(_pick(data, "description", default="")),
    )


def is_link_from_dict(data: Optional[Dict[str, Any]]) -> Optional[IsLink]:
    if not data:
        return None
    return IsLink(
        is_item_id=str(_pick(data, "is_item_id", "isItemId", default="")),
        description=str(_pick(data, "description", default="")),
    )


def row_from_dict(data: Dict[str, Any]) -> Row:
    """
    Build a Row (recursively) from a JSON-shaped dict.

    Raises:
        ValueError: if the row has no id or an unknown kind / value type.
    """
    row_id = _pick(data, "id")
    if not row_id:
        raise ValueError("Row payload is missing 'id'")
    kind = _pick(data, "kind", default="input")
    if kind not in ROW_KINDS:
        raise ValueError(f"Row {row_id!r} has unknown kind {kind!r}")
    value_type = _pick(data, "value_type", "valueType", default="currency")
    if value_type not in VALUE_TYPES:
        raise ValueError(f"Row {row_id!r} has unknown value type {value_type!r}")

    return Row(
        id=str(row_id),
        label=str(_pick(data, "label", default=row_id)),
        kind=kind,
        value_type=value_type,
        values=_parse_values(_pick(data, "values")),
        children=[row_from_dict(child) for child in _pick(data, "children", default=[])],
        cfs_link=cfs_link_from_dict(_pick(data, "cfs_link", "cfsLink")),
        is_link=is_link_from_dict(_pick(data, "is_link", "isLink")),
    )


def row_to_dict(row: Row) -> Dict[str, Any]:
    """Serialize a Row using the camelCase keys of the JSON payloads."""
    out: Dict[str, Any] = {
        "id": row.id,
        "label": row.label,
        "kind": row.kind,
        "valueType": row.value_type,
        "values": dict(row.values),
        "children": [row_to_dict(child) for child in row.children],
    }
    if row.cfs_link is not None:
        out["cfsLink"] = {
            "section": row.cfs_link.section,
            "cfsItemId": row.cfs_link.cfs_item_id,
            "impact": row.cfs_link.impact,
            "description": row.cfs_link.description,
        }
    if row.is_link is not None:
        out["isLink"] = {
            "isItemId": row.is_link.is_item_id,
            "description": row.is_link.description,
        }
    return out


def meta_from_dict(data: Optional[Dict[str, Any]]) -> ModelMeta:
    """Build ModelMeta; anything missing falls back to settings defaults."""
    data = data or {}
    meta = ModelMeta()
    years = data.get("years") or {}
    historical = _pick(data, "historical_years", "historicalYears", default=years.get("historical"))
    projection = _pick(data, "projection_years", "projectionYears", default=years.get("projection"))
    return replace(
        meta,
        company_name=str(_pick(data, "company_name", "companyName", default="")),
        currency=str(_pick(data, "currency", default=meta.currency)),
        currency_unit=str(_pick(data, "currency_unit", "currencyUnit", default=meta.currency_unit)),
        historical_years=[str(y) for y in historical] if historical is not None else meta.historical_years,
        projection_years=[str(y) for y in projection] if projection is not None else meta.projection_years,
    )


def build_financial_model(payload: Dict[str, Any]) -> FinancialModel:
    """
    Build a FinancialModel from a JSON-shaped payload.

    Expected shape (camelCase keys are also accepted):
        {
            "meta": {"currencyUnit": "millions", "years": {"historical": [...], "projection": [...]}},
            "income_statement": [row, ...],
            "balance_sheet": [row, ...],
            "cash_flow": [row, ...],
            "revenue_config": {...},
            "sbc_breakdowns": {"sga": {"2024A": 12.0}}
        }

    Missing statements default to the standard templates.

    Raises:
        ValueError: on malformed rows.
        pydantic.ValidationError: on malformed revenue configuration.
    """
    from finmodel.services.modeling.templates import create_template

    normalized = {_STATEMENT_ALIASES.get(k, k): v for k, v in payload.items()}
    statements: Dict[str, List[Row]] = {}
    for key in STATEMENT_KEYS:
        raw_rows = normalized.get(key)
        if raw_rows is None:
            statements[key] = create_template(key)
        else:
            statements[key] = [row_from_dict(r) for r in raw_rows]

    raw_config = _pick(normalized, "revenue_config", "revenueConfig", "revenueProjectionConfig")
    revenue_config = (
        RevenueProjectionConfig.model_validate(raw_config) if raw_config else RevenueProjectionConfig()
    )

    sbc: Dict[str, Dict[Year, float]] = {}
    for category, by_year in (_pick(normalized, "sbc_breakdowns", "sbcBreakdowns", default={}) or {}).items():
        sbc[str(category)] = _parse_values(by_year)

    return FinancialModel(
        meta=meta_from_dict(normalized.get("meta")),
        income_statement=statements[INCOME_STATEMENT],
        balance_sheet=statements[BALANCE_SHEET],
        cash_flow=statements[CASH_FLOW],
        revenue_config=revenue_config,
        sbc_breakdowns=sbc,
    )


def model_to_dict(model: FinancialModel) -> Dict[str, Any]:
    return {
        "meta": {
            "companyName": model.meta.company_name,
            "currency": model.meta.currency,
            "currencyUnit": model.meta.currency_unit,
            "years": {
                "historical": list(model.meta.historical_years),
                "projection": list(model.meta.projection_years),
            },
        },
        "incomeStatement": [row_to_dict(r) for r in model.income_statement],
        "balanceSheet": [row_to_dict(r) for r in model.balance_sheet],
        "cashFlow": [row_to_dict(r) for r in model.cash_flow],
        "revenueConfig": model.revenue_config.model_dump(by_alias=True, exclude_none=True),
        "sbcBreakdowns": {k: dict(v) for k, v in model.sbc_breakdowns.items()},
    }
