"""
revenue_projection.py — Revenue Projection Engine

Purpose:
- Compute projection-year values for total revenue ("rev"), every revenue
  stream (children of "rev") and every configured breakdown.
- Reconcile streams whose breakdowns depend on the stream total
  (% of this stream) with breakdowns that forecast $ independently.

Inputs:
- FinancialModel (income statement historicals, RevenueProjectionConfig,
  projection years, display unit)
- StatementEvaluator for last-historical-year values

Passes, in strict order (no iteration to a fixed point):
1. Base pass            streams without breakdowns project themselves
2. Breakdown base pass  breakdowns seeded from parent historic x allocation %
3. Circular pass        solve stream total T for %-of-stream / $-driver mixes
4. Aggregation          stream = sum of breakdowns; rev = sum of streams
5. Reference pass       pct_of_total items referencing another total
6. Re-aggregation       streams re-reconciled; rev solved and re-summed
7. Sub-line pass        product-line / channel lines rescaled to their total

Output:
- RevenueProjectionResult: item id -> year -> stored value. Product-line and
  channel lines are keyed "<itemId>::<lineKey>".
- Streams whose breakdowns mix growth, $ and %-of-stream are reported in
  `invalid_streams` and fall back to a plain sum of their breakdowns.

This module does NOT modify the model or write into income-statement rows.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set

from finmodel.core.logging import get_logger
from finmodel.services.modeling.currency import display_to_stored
from finmodel.services.modeling.evaluator import StatementEvaluator
from finmodel.services.modeling.revenue_config import (
    DOLLAR_METHODS,
    PRODUCT_LINE_METHODS,
    TOTAL_REVENUE_ID,
    ProductLineInputs,
    RevenueItemConfig,
    RevenueProjectionConfig,
    ensure_item_configs,
    has_invalid_breakdown_mix,
    leaf_revenue_item_ids,
)
from finmodel.services.modeling.types import INCOME_STATEMENT, FinancialModel, Row, Year

logger = get_logger(__name__)

SUB_LINE_SEPARATOR = "::"
_EPS = 1e-6


def sub_line_id(parent_id: str, line_key: str) -> str:
    return f"{parent_id}{SUB_LINE_SEPARATOR}{line_key}"


def _line_key(item, idx: int) -> str:
    for raw in (item.id, item.label):
        if raw is not None and str(raw).strip():
            return str(raw)
    return f"line-{idx}"


def _line_shares(inputs: ProductLineInputs) -> List[float]:
    """Share of each line as a fraction; missing shares split evenly."""
    n = len(inputs.items)
    return [
        (it.share_percent if it.share_percent is not None else (100.0 / n if n else 0.0)) / 100.0
        for it in inputs.items
    ]


def _line_weights(inputs: ProductLineInputs, year_idx: int) -> List[float]:
    """share x (1 + growth)^year_idx for each line; the first projection year carries no growth."""
    return [
        share * (1 + it.growth_percent / 100.0) ** year_idx
        for share, it in zip(_line_shares(inputs), inputs.items)
    ]


@dataclass
class RevenueProjectionResult:
    values: Dict[str, Dict[Year, float]] = field(default_factory=dict)
    invalid_streams: List[str] = field(default_factory=list)
    sub_lines: Dict[str, List[str]] = field(default_factory=dict)

    def get(self, item_id: str, year: Year) -> float:
        """Projected stored value; 0 for unknown items or years."""
        return self.values.get(item_id, {}).get(year, 0.0)

    def series(self, item_id: str) -> Dict[Year, float]:
        return dict(self.values.get(item_id, {}))


class RevenueProjectionEngine:
    """
    One-shot projection over a model snapshot.

    Example:
        result = RevenueProjectionEngine(model).run()
        result.get("rev", "2026E")
    """

    def __init__(self, model: FinancialModel, evaluator: Optional[StatementEvaluator] = None):
        self.model = model
        self.evaluator = evaluator or StatementEvaluator(model)
        self.years: List[Year] = list(model.meta.projection_years)
        self.last_historic: Optional[Year] = model.meta.last_historical_year
        self.unit = model.meta.currency_unit

        self.rev: Optional[Row] = next(
            (r for r in model.income_statement if r.id == TOTAL_REVENUE_ID), None
        )
        self.streams: List[Row] = list(self.rev.children) if self.rev else []
        self.stream_ids: List[str] = [s.id for s in self.streams]

        leaf_ids = leaf_revenue_item_ids(self.stream_ids, model.revenue_config)
        if self.rev is not None and not self.streams:
            leaf_ids = [TOTAL_REVENUE_ID]
        self.config: RevenueProjectionConfig = ensure_item_configs(model.revenue_config, leaf_ids)

        self.with_breakdowns: Set[str] = {
            sid for sid in self.stream_ids if self.config.breakdowns_for(sid)
        }
        self.parent_of: Dict[str, str] = {
            b.id: sid for sid in self.stream_ids for b in self.config.breakdowns_for(sid)
        }
        self.result = RevenueProjectionResult()
        self.values = self.result.values

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _historic(self, row: Row) -> float:
        if self.last_historic is None:
            return 0.0
        return self.evaluator.evaluate(row, self.last_historic, INCOME_STATEMENT)

    def _get(self, item_id: str, year: Year) -> float:
        return self.values.get(item_id, {}).get(year, 0.0)

    def _set(self, item_id: str, year: Year, value: float) -> None:
        self.values.setdefault(item_id, {})[year] = value

    def _base_override(self, cfg: Optional[RevenueItemConfig]) -> Optional[float]:
        """Explicit base amount (growth / product line methods), in stored units."""
        if cfg is None:
            return None
        base_amount = getattr(cfg.inputs, "base_amount", None)
        if cfg.method in ("growth_rate",) + PRODUCT_LINE_METHODS and base_amount is not None:
            return display_to_stored(base_amount, self.unit)
        return None

    def _pct(self, item_id: str) -> float:
        cfg = self.config.item(item_id)
        return cfg.inputs.pct_of_total / 100.0 if cfg and cfg.method == "pct_of_total" else 0.0

    def _reference_of(self, item_id: str) -> Optional[str]:
        cfg = self.config.item(item_id)
        if cfg is None or cfg.method != "pct_of_total":
            return None
        return cfg.inputs.reference_id or TOTAL_REVENUE_ID

    def _driver_exponent(self, base_year: Optional[str], year_idx: int) -> int:
        """
        Compounding periods for a driver in a projection year: one per year
        after the base year, none in the base year itself.
        """
        if base_year and base_year == self.years[year_idx]:
            return 0
        return year_idx + 1

    # -------------------------------------------------------------------------
    # Per-method projection
    # -------------------------------------------------------------------------

    def _project(
        self,
        cfg: Optional[RevenueItemConfig],
        year_idx: int,
        prior: float,
        base: float,
    ) -> float:
        """
        Value of one item in one projection year.

        prior: previous year's value (the base in the first year)
        base:  first-year base, used by product_line / channel
        """
        if cfg is None:
            return 0.0
        year = self.years[year_idx]
        inputs = cfg.inputs

        if cfg.method == "growth_rate":
            rate = inputs.rate_percent or 0.0
            if inputs.growth_type == "custom_per_year":
                rate = inputs.rates_by_year.get(year, rate)
            return prior * (1 + rate / 100.0)

        if cfg.method == "price_volume":
            periods = self._driver_exponent(inputs.base_year, year_idx)
            price = inputs.price * (1 + inputs.price_growth_percent / 100.0) ** periods
            volume = inputs.volume * (1 + inputs.volume_growth_percent / 100.0) ** periods
            months = 12 if inputs.annualize_from_monthly else 1
            return display_to_stored(price * volume * months, self.unit)

        if cfg.method == "customers_arpu":
            periods = self._driver_exponent(inputs.base_year, year_idx)
            customers = inputs.customers * (1 + inputs.customer_growth_percent / 100.0) ** periods
            arpu = inputs.arpu * (1 + inputs.arpu_growth_percent / 100.0) ** periods
            return display_to_stored(customers * arpu, self.unit)

        if cfg.method in PRODUCT_LINE_METHODS:
            if not inputs.items:
                return base
            return base * sum(_line_weights(inputs, year_idx))

        # pct_of_total is filled by the reference passes
        return 0.0

    def _project_series(self, item_id: str, base: float) -> None:
        cfg = self.config.item(item_id)
        for idx, year in enumerate(self.years):
            prior = base if idx == 0 else self._get(item_id, self.years[idx - 1])
            self._set(item_id, year, self._project(cfg, idx, prior, base))

    # -------------------------------------------------------------------------
    # Passes
    # -------------------------------------------------------------------------

    def _base_pass(self) -> None:
        if self.rev is not None and not self.streams:
            base = self._base_override(self.config.item(TOTAL_REVENUE_ID))
            self._project_series(TOTAL_REVENUE_ID, self._historic(self.rev) if base is None else base)
            return
        for stream in self.streams:
            self.values.setdefault(stream.id, {})
            if stream.id in self.with_breakdowns:
                continue
            base = self._base_override(self.config.item(stream.id))
            self._project_series(stream.id, self._historic(stream) if base is None else base)

    def _breakdown_base_pass(self) -> None:
        for stream in self.streams:
            if stream.id not in self.with_breakdowns:
                continue
            parent_historic = self._historic(stream)
            for b in self.config.breakdowns_for(stream.id):
                base = parent_historic * self.config.allocation_percent(stream.id, b.id) / 100.0
                override = self._base_override(self.config.item(b.id))
                self.values.setdefault(b.id, {})
                self._project_series(b.id, base if override is None else override)

    def _pct_of_stream_ids(self, stream_id: str) -> List[str]:
        return [
            b.id for b in self.config.breakdowns_for(stream_id)
            if self._reference_of(b.id) == stream_id
        ]

    def _solve_pct_of_stream(self, stream_id: str, pct_ids: List[str], year: Year) -> None:
        """T = (sum of other breakdowns) / (1 - p); each %-of-stream item = T x pct."""
        p = sum(self._pct(pid) for pid in pct_ids)
        others = sum(
            self._get(b.id, year)
            for b in self.config.breakdowns_for(stream_id)
            if b.id not in pct_ids
        )
        total = others / (1 - p)
        for pid in pct_ids:
            self._set(pid, year, total * self._pct(pid))
        self._set(stream_id, year, total)

    def _circular_pass(self) -> None:
        for stream_id in self.stream_ids:
            if stream_id not in self.with_breakdowns:
                continue
            if has_invalid_breakdown_mix(self.config, stream_id):
                logger.warning(
                    "Stream %s mixes growth, $ and %%-of-stream breakdowns; "
                    "falling back to a plain sum",
                    stream_id,
                )
                self.result.invalid_streams.append(stream_id)
                continue

            breakdown_ids = [b.id for b in self.config.breakdowns_for(stream_id)]
            pct_ids = self._pct_of_stream_ids(stream_id)
            driver_ids = [bid for bid in breakdown_ids if self.config.method_of(bid) in DOLLAR_METHODS]
            residual_ids = [bid for bid in breakdown_ids if bid not in driver_ids and bid not in pct_ids]
            p = sum(self._pct(pid) for pid in pct_ids)

            def alloc(bid: str) -> float:
                return self.config.allocation_percent(stream_id, bid)

            driver_alloc = sum(alloc(bid) for bid in driver_ids)

            for year in self.years:
                if pct_ids and p < 1:
                    # Mode B: independents keep their values
                    self._solve_pct_of_stream(stream_id, pct_ids, year)
                elif driver_ids and driver_alloc >= _EPS:
                    # Mode A: drivers fix T through their allocation share; plugs absorb the rest
                    driver_total = sum(self._get(bid, year) for bid in driver_ids)
                    keep_ids = [
                        bid for bid in residual_ids
                        if self._base_override(self.config.item(bid)) is not None
                    ]
                    keep_total = sum(self._get(bid, year) for bid in keep_ids)
                    plug_ids = [bid for bid in residual_ids if bid not in keep_ids]
                    plug_alloc = sum(alloc(bid) for bid in plug_ids) / 100.0

                    if not plug_ids:
                        total = driver_total + keep_total
                    elif plug_alloc >= 1 - _EPS:
                        total = driver_total / (driver_alloc / 100.0)
                    else:
                        total = (driver_total + keep_total) / (1 - plug_alloc)

                    pct_total = total * p
                    for pid in pct_ids:
                        self._set(pid, year, total * self._pct(pid))

                    remainder = total - driver_total - keep_total - pct_total
                    if len(plug_ids) == 1:
                        self._set(plug_ids[0], year, remainder)
                    elif plug_ids:
                        if plug_alloc > _EPS:
                            for bid in plug_ids:
                                self._set(bid, year, remainder / plug_alloc * alloc(bid) / 100.0)
                        else:
                            for bid in plug_ids:
                                self._set(bid, year, remainder / len(plug_ids))
                    self._set(stream_id, year, total)

    def _sum_breakdowns(self, stream_id: str, year: Year) -> None:
        self._set(
            stream_id,
            year,
            sum(self._get(b.id, year) for b in self.config.breakdowns_for(stream_id)),
        )

    def _sum_revenue(self) -> None:
        if not self.streams:
            return
        for year in self.years:
            self._set(TOTAL_REVENUE_ID, year, sum(self._get(sid, year) for sid in self.stream_ids))

    def _aggregation_pass(self) -> None:
        for stream_id in self.with_breakdowns:
            for year in self.years:
                self._sum_breakdowns(stream_id, year)
        self._sum_revenue()

    def _revenue_share_stream_ids(self) -> List[str]:
        """Streams without breakdowns forecast as a % of total revenue."""
        return [
            sid for sid in self.stream_ids
            if sid not in self.with_breakdowns and self._reference_of(sid) == TOTAL_REVENUE_ID
        ]

    def _reference_pass(self) -> None:
        rev_share_ids = set(self._revenue_share_stream_ids())
        item_ids = [sid for sid in self.stream_ids if sid not in self.with_breakdowns]
        item_ids += list(self.parent_of)
        for year in self.years:
            for item_id in item_ids:
                ref = self._reference_of(item_id)
                if ref is None or item_id in rev_share_ids:
                    continue
                if self.parent_of.get(item_id) == ref:
                    # %-of-stream, reconciled with its stream
                    continue
                if ref == item_id:
                    self._set(item_id, year, 0.0)
                    continue
                self._set(item_id, year, self._get(ref, year) * self._pct(item_id))

    def _reaggregation_pass(self) -> None:
        invalid = set(self.result.invalid_streams)
        for stream_id in self.stream_ids:
            if stream_id not in self.with_breakdowns:
                continue
            pct_ids = [] if stream_id in invalid else self._pct_of_stream_ids(stream_id)
            p = sum(self._pct(pid) for pid in pct_ids)
            for year in self.years:
                if pct_ids and p < 1:
                    self._solve_pct_of_stream(stream_id, pct_ids, year)
                else:
                    self._sum_breakdowns(stream_id, year)

        # Streams forecast as % of total revenue: rev = others / (1 - p)
        share_ids = self._revenue_share_stream_ids()
        p = sum(self._pct(sid) for sid in share_ids)
        for year in self.years:
            if share_ids and p < 1:
                others = sum(self._get(sid, year) for sid in self.stream_ids if sid not in share_ids)
                total = others / (1 - p)
                for sid in share_ids:
                    self._set(sid, year, total * self._pct(sid))
            elif share_ids:
                logger.warning("Revenue shares sum to %.1f%%; using the unsolved total", p * 100)
                current = self._get(TOTAL_REVENUE_ID, year)
                for sid in share_ids:
                    self._set(sid, year, current * self._pct(sid))
        self._sum_revenue()

    def _sub_line_pass(self) -> None:
        candidates: List[str] = []
        if self.rev is not None and not self.streams:
            candidates.append(TOTAL_REVENUE_ID)
        for stream_id in self.stream_ids:
            if stream_id in self.with_breakdowns:
                candidates.extend(b.id for b in self.config.breakdowns_for(stream_id))
            else:
                candidates.append(stream_id)

        for item_id in candidates:
            cfg = self.config.item(item_id)
            if cfg is None or cfg.method not in PRODUCT_LINE_METHODS or not cfg.inputs.items:
                continue
            keys = [sub_line_id(item_id, _line_key(it, idx)) for idx, it in enumerate(cfg.inputs.items)]
            self.result.sub_lines[item_id] = keys
            for idx, year in enumerate(self.years):
                weights = _line_weights(cfg.inputs, idx)
                denom = sum(weights)
                if denom < 1e-9:
                    continue
                total = self._get(item_id, year)
                for key, weight in zip(keys, weights):
                    self._set(key, year, total * weight / denom)

    # -------------------------------------------------------------------------
    # Entry point
    # -------------------------------------------------------------------------

    def run(self) -> RevenueProjectionResult:
        if self.rev is None or not self.years:
            return self.result
        self.values.setdefault(TOTAL_REVENUE_ID, {})
        self._base_pass()
        self._breakdown_base_pass()
        self._circular_pass()
        self._aggregation_pass()
        self._reference_pass()
        self._reaggregation_pass()
        self._sub_line_pass()
        logger.debug(
            "Projected %d revenue items over %d years (%d invalid streams)",
            len(self.values), len(self.years), len(self.result.invalid_streams),
        )
        return self.result


def compute_revenue_projections(
    model: FinancialModel,
    evaluator: Optional[StatementEvaluator] = None,
) -> RevenueProjectionResult:
    """Run all projection passes for a model snapshot."""
    return RevenueProjectionEngine(model, evaluator).run()
