"""
revenue_config.py — Revenue Projection Configuration

Purpose:
- Validated (pydantic) models for the per-item revenue forecasting methods,
  breakdowns and projection allocations.
- The configuration surface used by the revenue UI: set method / inputs,
  add / remove / rename breakdowns, set allocation percentages.
- Classification of breakdown methods into growth / $ / %-of-stream, and
  detection of the invalid three-way mix.

Every function returns a NEW RevenueProjectionConfig; the input is never
mutated. Percentages are 0-100; base amounts and prices are display units.
"""

from __future__ import annotations

import uuid
from typing import Any, Dict, Iterable, List, Literal, Optional, Set, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from finmodel.core.logging import get_logger

logger = get_logger(__name__)

RevenueProjectionMethod = Literal[
    "growth_rate",
    "price_volume",
    "customers_arpu",
    "pct_of_total",
    "product_line",
    "channel",
]
BreakdownProjectionType = Literal["growth", "dollar", "pct_of_stream"]

TOTAL_REVENUE_ID = "rev"

GROWTH_METHODS = ("growth_rate", "product_line", "channel")
DOLLAR_METHODS = ("price_volume", "customers_arpu")
PRODUCT_LINE_METHODS = ("product_line", "channel")


class _ConfigModel(BaseModel):
    """Accepts both snake_case and camelCase keys; dumps camelCase with by_alias."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


# -----------------------------------------------------------------------------
# Method inputs
# -----------------------------------------------------------------------------


class GrowthRateInputs(_ConfigModel):
    """Constant rate, or one rate per projection year (falls back to rate_percent)."""
    growth_type: Literal["constant", "custom_per_year"] = "constant"
    rate_percent: Optional[float] = None
    rates_by_year: Dict[str, float] = Field(default_factory=dict)
    base_year: Optional[str] = None
    base_amount: Optional[float] = Field(
        None, description="Base $ in display units; overrides the historical / allocated base"
    )


class PriceVolumeInputs(_ConfigModel):
    base_year: Optional[str] = None
    price: float = 0.0
    volume: float = 0.0
    price_growth_percent: float = 0.0
    volume_growth_percent: float = 0.0
    annualize_from_monthly: bool = False


class CustomersArpuInputs(_ConfigModel):
    base_year: Optional[str] = None
    customers: float = 0.0
    arpu: float = 0.0
    customer_growth_percent: float = 0.0
    arpu_growth_percent: float = 0.0


class PctOfTotalInputs(_ConfigModel):
    reference_id: str = TOTAL_REVENUE_ID
    pct_of_total: float = 0.0


class ProductLineItem(_ConfigModel):
    id: Optional[str] = None
    label: str = ""
    share_percent: Optional[float] = None
    growth_percent: float = 0.0


class ProductLineInputs(_ConfigModel):
    items: List[ProductLineItem] = Field(default_factory=list)
    base_amount: Optional[float] = Field(
        None, description="Base $ in display units; overrides the historical / allocated base"
    )


MethodInputs = Union[
    GrowthRateInputs,
    PriceVolumeInputs,
    CustomersArpuInputs,
    PctOfTotalInputs,
    ProductLineInputs,
]

INPUT_MODELS: Dict[str, type] = {
    "growth_rate": GrowthRateInputs,
    "price_volume": PriceVolumeInputs,
    "customers_arpu": CustomersArpuInputs,
    "pct_of_total": PctOfTotalInputs,
    "product_line": ProductLineInputs,
    "channel": ProductLineInputs,
}


# -----------------------------------------------------------------------------
# Config containers
# -----------------------------------------------------------------------------


class RevenueItemConfig(_ConfigModel):
    method: RevenueProjectionMethod
    inputs: MethodInputs

    @model_validator(mode="before")
    @classmethod
    def coerce_inputs(cls, data: Any) -> Any:
        """Validate `inputs` against the model that matches `method`."""
        if not isinstance(data, dict):
            return data
        method = data.get("method")
        model_cls = INPUT_MODELS.get(method) if isinstance(method, str) else None
        if model_cls is None:
            return data
        raw = data.get("inputs")
        if raw is None:
            raw = {}
        if isinstance(raw, BaseModel) and not isinstance(raw, model_cls):
            raw = raw.model_dump()
        if not isinstance(raw, model_cls):
            raw = model_cls.model_validate(raw)
        return {**data, "inputs": raw}


class RevenueBreakdownItem(_ConfigModel):
    id: str
    label: str


class ProjectionAllocation(_ConfigModel):
    """breakdown id -> percentage of the stream's historical base (0-100)."""
    percentages: Dict[str, float] = Field(default_factory=dict)


class RevenueProjectionConfig(_ConfigModel):
    items: Dict[str, RevenueItemConfig] = Field(default_factory=dict)
    breakdowns: Dict[str, List[RevenueBreakdownItem]] = Field(default_factory=dict)
    projection_allocations: Dict[str, ProjectionAllocation] = Field(default_factory=dict)

    def item(self, item_id: str) -> Optional[RevenueItemConfig]:
        return self.items.get(item_id)

    def method_of(self, item_id: str) -> Optional[str]:
        cfg = self.items.get(item_id)
        return cfg.method if cfg else None

    def breakdowns_for(self, stream_id: str) -> List[RevenueBreakdownItem]:
        return list(self.breakdowns.get(stream_id, []))

    def allocation_percent(self, stream_id: str, breakdown_id: str) -> float:
        alloc = self.projection_allocations.get(stream_id)
        return alloc.percentages.get(breakdown_id, 0.0) if alloc else 0.0


# -----------------------------------------------------------------------------
# Defaults
# -----------------------------------------------------------------------------


def default_item_config() -> RevenueItemConfig:
    """Lazy default for an unconfigured leaf item: 0% of total revenue."""
    return RevenueItemConfig(
        method="pct_of_total",
        inputs=PctOfTotalInputs(reference_id=TOTAL_REVENUE_ID, pct_of_total=0.0),
    )


def leaf_revenue_item_ids(stream_ids: Iterable[str], config: RevenueProjectionConfig) -> List[str]:
    """Streams without breakdowns plus every breakdown, in stream order."""
    out: List[str] = []
    for stream_id in stream_ids:
        breakdowns = config.breakdowns.get(stream_id, [])
        if breakdowns:
            out.extend(b.id for b in breakdowns)
        else:
            out.append(stream_id)
    return out


def ensure_item_configs(config: RevenueProjectionConfig, item_ids: Iterable[str]) -> RevenueProjectionConfig:
    """Add the default config for every listed item that has none."""
    missing = [item_id for item_id in item_ids if item_id not in config.items]
    if not missing:
        return config
    items = dict(config.items)
    for item_id in missing:
        items[item_id] = default_item_config()
    return config.model_copy(update={"items": items})


# -----------------------------------------------------------------------------
# Configuration surface
# -----------------------------------------------------------------------------


def set_item_method(
    config: RevenueProjectionConfig,
    item_id: str,
    method: str,
    inputs: Optional[Union[MethodInputs, Dict[str, Any]]] = None,
) -> RevenueProjectionConfig:
    """
    Set the forecasting method for an item. Inputs default to the method's
    empty bundle; existing inputs are kept when the method is unchanged.

    Raises:
        pydantic.ValidationError: unknown method or malformed inputs.
    """
    current = config.items.get(item_id)
    if inputs is None and current is not None and current.method == method:
        inputs = current.inputs
    item = RevenueItemConfig.model_validate({
        "method": method,
        "inputs": inputs if inputs is not None else {},
    })
    return config.model_copy(update={"items": {**config.items, item_id: item}})


def set_item_inputs(
    config: RevenueProjectionConfig,
    item_id: str,
    inputs: Union[MethodInputs, Dict[str, Any]],
) -> RevenueProjectionConfig:
    """
    Update the inputs of an item. Dict inputs are merged into the existing
    bundle (partial update); an unconfigured item gets the default method.
    """
    current = config.items.get(item_id) or default_item_config()
    if isinstance(inputs, dict):
        merged = {**current.inputs.model_dump(), **inputs}
        item = RevenueItemConfig.model_validate({"method": current.method, "inputs": merged})
    else:
        item = RevenueItemConfig.model_validate({"method": current.method, "inputs": inputs})
    return config.model_copy(update={"items": {**config.items, item_id: item}})


def add_breakdown(
    config: RevenueProjectionConfig,
    stream_id: str,
    label: str,
    breakdown_id: Optional[str] = None,
) -> RevenueProjectionConfig:
    """Append a breakdown under a stream. Duplicate ids are rejected."""
    breakdown_id = breakdown_id or f"{stream_id}_bd_{uuid.uuid4().hex[:8]}"
    existing = {b.id for items in config.breakdowns.values() for b in items}
    if breakdown_id in existing or breakdown_id == stream_id:
        logger.warning("Rejected breakdown %s under %s: duplicate id", breakdown_id, stream_id)
        return config
    items = config.breakdowns_for(stream_id) + [RevenueBreakdownItem(id=breakdown_id, label=label)]
    return config.model_copy(update={"breakdowns": {**config.breakdowns, stream_id: items}})


def remove_breakdown(config: RevenueProjectionConfig, stream_id: str, breakdown_id: str) -> RevenueProjectionConfig:
    """Remove a breakdown together with its item config and allocation."""
    items = config.breakdowns_for(stream_id)
    if not any(b.id == breakdown_id for b in items):
        logger.warning("Rejected breakdown removal: %s not under %s", breakdown_id, stream_id)
        return config
    breakdowns = dict(config.breakdowns)
    remaining = [b for b in items if b.id != breakdown_id]
    if remaining:
        breakdowns[stream_id] = remaining
    else:
        breakdowns.pop(stream_id, None)

    allocations = dict(config.projection_allocations)
    if stream_id in allocations:
        pct = {k: v for k, v in allocations[stream_id].percentages.items() if k != breakdown_id}
        allocations[stream_id] = ProjectionAllocation(percentages=pct)

    item_configs = {k: v for k, v in config.items.items() if k != breakdown_id}
    return config.model_copy(update={
        "breakdowns": breakdowns,
        "projection_allocations": allocations,
        "items": item_configs,
    })


def rename_breakdown(
    config: RevenueProjectionConfig,
    stream_id: str,
    breakdown_id: str,
    label: str,
) -> RevenueProjectionConfig:
    items = config.breakdowns_for(stream_id)
    if not any(b.id == breakdown_id for b in items):
        logger.warning("Rejected breakdown rename: %s not under %s", breakdown_id, stream_id)
        return config
    renamed = [
        RevenueBreakdownItem(id=b.id, label=label) if b.id == breakdown_id else b
        for b in items
    ]
    return config.model_copy(update={"breakdowns": {**config.breakdowns, stream_id: renamed}})


def set_allocation_percentage(
    config: RevenueProjectionConfig,
    stream_id: str,
    breakdown_id: str,
    percent: float,
) -> RevenueProjectionConfig:
    """Share (0-100) of the stream's historical base seeded into a breakdown."""
    if not any(b.id == breakdown_id for b in config.breakdowns_for(stream_id)):
        logger.warning("Rejected allocation: %s not under %s", breakdown_id, stream_id)
        return config
    current = config.projection_allocations.get(stream_id, ProjectionAllocation())
    updated = ProjectionAllocation(percentages={**current.percentages, breakdown_id: float(percent)})
    return config.model_copy(update={
        "projection_allocations": {**config.projection_allocations, stream_id: updated},
    })


def allocation_total(config: RevenueProjectionConfig, stream_id: str) -> float:
    """Sum of allocation percentages of a stream (should be 100)."""
    alloc = config.projection_allocations.get(stream_id)
    if not alloc:
        return 0.0
    valid = {b.id for b in config.breakdowns_for(stream_id)}
    return sum(v for k, v in alloc.percentages.items() if k in valid)


# -----------------------------------------------------------------------------
# Breakdown classification
# -----------------------------------------------------------------------------


def get_breakdown_projection_type(
    config: RevenueProjectionConfig,
    breakdown_id: str,
    stream_id: str,
) -> Optional[str]:
    """
    growth        -> growth_rate / product_line / channel
    dollar        -> price_volume / customers_arpu
    pct_of_stream -> pct_of_total referencing the parent stream
    None          -> unconfigured, or pct_of_total of another item
    """
    cfg = config.items.get(breakdown_id)
    if cfg is None:
        return None
    if cfg.method in GROWTH_METHODS:
        return "growth"
    if cfg.method in DOLLAR_METHODS:
        return "dollar"
    if cfg.method == "pct_of_total" and cfg.inputs.reference_id == stream_id:
        return "pct_of_stream"
    return None


def get_breakdown_types_present(config: RevenueProjectionConfig, stream_id: str) -> Set[str]:
    types: Set[str] = set()
    for b in config.breakdowns_for(stream_id):
        t = get_breakdown_projection_type(config, b.id, stream_id)
        if t is not None:
            types.add(t)
    return types


def has_invalid_breakdown_mix(config: RevenueProjectionConfig, stream_id: str) -> bool:
    """A stream may combine at most two of growth, $ and %-of-stream breakdowns."""
    return get_breakdown_types_present(config, stream_id) >= {"growth", "dollar", "pct_of_stream"}
