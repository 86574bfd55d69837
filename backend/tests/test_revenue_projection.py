"""
Unit tests for revenue_projection.py

Scenarios cover each forecasting method, breakdown reconciliation (percent of
stream, $ drivers with plugs), references to other totals, invalid method
mixes and product-line sub-line distribution.
"""

import pytest

from finmodel.services.modeling.revenue_projection import compute_revenue_projections
from finmodel.services.modeling.row_tree import add_child_row, update_row_value
from finmodel.services.modeling.types import INCOME_STATEMENT

YEARS = ("2025E", "2026E")


@pytest.fixture
def with_streams(make_model):
    """Model whose revenue row has the given streams (id -> last historical value)."""

    def _make(streams, revenue_config=None, **meta):
        model = make_model(revenue_config=revenue_config, **meta)
        rows = model.income_statement
        for stream_id, historic in streams.items():
            rows = add_child_row(rows, "rev", stream_id.title(), row_id=stream_id)
            rows = update_row_value(rows, stream_id, "2024A", historic)
        return model.with_statement(INCOME_STATEMENT, rows)

    return _make


def growth(rate, **extra):
    return {"method": "growth_rate", "inputs": {"rate_percent": rate, **extra}}


def pct_of(reference_id, pct):
    return {"method": "pct_of_total", "inputs": {"reference_id": reference_id, "pct_of_total": pct}}


# -----------------------------------------------------------------------------
# Base pass
# -----------------------------------------------------------------------------


def test_growth_rate_stream(with_streams):
    model = with_streams({"subs": 1000.0}, {"items": {"subs": growth(10)}})
    result = compute_revenue_projections(model)

    assert result.get("subs", "2025E") == pytest.approx(1100.0)
    assert result.get("subs", "2026E") == pytest.approx(1210.0)
    assert result.get("rev", "2026E") == pytest.approx(1210.0)
    assert result.invalid_streams == []


def test_revenue_without_streams_projects_itself(make_model):
    model = make_model(
        income={"rev": {"2024A": 1000.0}},
        revenue_config={"items": {"rev": growth(10)}},
    )
    result = compute_revenue_projections(model)
    assert result.get("rev", "2025E") == pytest.approx(1100.0)
    assert result.get("rev", "2026E") == pytest.approx(1210.0)


def test_custom_per_year_rates_fall_back_to_constant(with_streams):
    config = {"items": {"subs": growth(5, growth_type="custom_per_year", rates_by_year={"2025E": 20})}}
    result = compute_revenue_projections(with_streams({"subs": 100.0}, config))
    assert result.get("subs", "2025E") == pytest.approx(120.0)
    assert result.get("subs", "2026E") == pytest.approx(126.0)


def test_base_amount_overrides_historical_in_display_units(with_streams):
    config = {"items": {"subs": growth(10, base_amount=2)}}
    model = with_streams({"subs": 1000.0}, config, currency_unit="thousands")
    assert compute_revenue_projections(model).get("subs", "2025E") == pytest.approx(2200.0)


def test_price_volume_compounds_drivers_and_converts_units(with_streams):
    config = {"items": {"units_sold": {
        "method": "price_volume",
        "inputs": {"price": 10, "volume": 100, "price_growth_percent": 10, "volume_growth_percent": 0},
    }}}
    model = with_streams({"units_sold": 0.0}, config, currency_unit="thousands")
    result = compute_revenue_projections(model)
    assert result.get("units_sold", "2025E") == pytest.approx(10 * 1.1 * 100 * 1000)
    assert result.get("units_sold", "2026E") == pytest.approx(10 * 1.21 * 100 * 1000)


def test_driver_base_year_inside_projection_window(with_streams):
    config = {"items": {"units_sold": {
        "method": "price_volume",
        "inputs": {"price": 10, "volume": 1, "price_growth_percent": 10, "base_year": "2025E"},
    }}}
    result = compute_revenue_projections(with_streams({"units_sold": 0.0}, config))
    # No growth in the base year itself; later years compound from the first projection year
    assert result.get("units_sold", "2025E") == pytest.approx(10.0)
    assert result.get("units_sold", "2026E") == pytest.approx(12.1)


def test_customers_arpu_with_monthly_annualization(with_streams):
    config = {"items": {
        "saas": {"method": "customers_arpu", "inputs": {"customers": 50, "arpu": 2, "customer_growth_percent": 100}},
        "hw": {"method": "price_volume", "inputs": {"price": 1, "volume": 10, "annualize_from_monthly": True}},
    }}
    result = compute_revenue_projections(with_streams({"saas": 0.0, "hw": 0.0}, config))
    assert result.get("saas", "2025E") == pytest.approx(200.0)
    assert result.get("saas", "2026E") == pytest.approx(400.0)
    assert result.get("hw", "2025E") == pytest.approx(120.0)
    assert result.get("rev", "2025E") == pytest.approx(320.0)


def test_product_lines_and_sub_line_distribution(with_streams):
    config = {"items": {"goods": {"method": "product_line", "inputs": {
        "base_amount": 100,
        "items": [
            {"id": "a", "label": "Line A", "share_percent": 60, "growth_percent": 10},
            {"id": "b", "label": "Line B", "share_percent": 40, "growth_percent": 0},
        ],
    }}}}
    result = compute_revenue_projections(with_streams({"goods": 50.0}, config))

    # First projection year is base x total share; growth starts the year after
    assert result.get("goods", "2025E") == pytest.approx(100.0)
    assert result.get("goods", "2026E") == pytest.approx(106.0)
    assert result.get("goods::a", "2025E") == pytest.approx(60.0)
    assert result.get("goods::a", "2026E") == pytest.approx(66.0)
    assert result.get("goods::b", "2026E") == pytest.approx(40.0)
    assert result.sub_lines["goods"] == ["goods::a", "goods::b"]
    for year in YEARS:
        assert result.get("goods::a", year) + result.get("goods::b", year) == pytest.approx(
            result.get("goods", year)
        )


def test_channel_lines_without_shares_split_evenly(with_streams):
    config = {"items": {"sales": {"method": "channel", "inputs": {
        "items": [{"label": "Online"}, {"label": "Retail"}],
    }}}}
    result = compute_revenue_projections(with_streams({"sales": 200.0}, config))
    assert result.get("sales", "2025E") == pytest.approx(200.0)
    assert result.get("sales::Online", "2025E") == pytest.approx(100.0)


def test_unconfigured_stream_defaults_to_zero(with_streams):
    result = compute_revenue_projections(with_streams({"misc": 500.0}))
    assert result.get("misc", "2025E") == 0.0
    assert result.get("rev", "2025E") == 0.0


# -----------------------------------------------------------------------------
# Breakdowns
# -----------------------------------------------------------------------------


def _breakdowns(stream_id, items, allocations=None):
    return {
        "breakdowns": {stream_id: [{"id": bid, "label": bid} for bid in items]},
        "items": items,
        "projection_allocations": {stream_id: {"percentages": allocations or {}}},
    }


def test_percent_of_stream_is_solved_algebraically(with_streams):
    config = _breakdowns(
        "prod",
        {"core": growth(10), "addon": pct_of("prod", 40)},
        {"core": 60, "addon": 40},
    )
    result = compute_revenue_projections(with_streams({"prod": 1000.0}, config))

    for year in YEARS:
        core = result.get("core", year)
        stream = result.get("prod", year)
        assert stream == pytest.approx(core / 0.6)
        assert result.get("addon", year) == pytest.approx(stream * 0.4)
    assert result.get("core", "2025E") == pytest.approx(660.0)
    assert result.get("rev", "2025E") == pytest.approx(1100.0)


def test_driver_with_plug_breakdown(with_streams):
    config = _breakdowns(
        "prod",
        {
            "units": {"method": "price_volume", "inputs": {"price": 6, "volume": 100}},
            "other": growth(0),
        },
        {"units": 50, "other": 50},
    )
    result = compute_revenue_projections(with_streams({"prod": 1000.0}, config))
    assert result.get("units", "2025E") == pytest.approx(600.0)
    assert result.get("prod", "2025E") == pytest.approx(1200.0)
    assert result.get("other", "2025E") == pytest.approx(600.0)


def test_driver_with_kept_growth_breakdown(with_streams):
    config = _breakdowns(
        "prod",
        {
            "units": {"method": "price_volume", "inputs": {"price": 6, "volume": 100}},
            "fixed": growth(0, base_amount=150),
        },
        {"units": 50, "fixed": 50},
    )
    result = compute_revenue_projections(with_streams({"prod": 1000.0}, config))
    assert result.get("fixed", "2025E") == pytest.approx(150.0)
    assert result.get("prod", "2025E") == pytest.approx(750.0)


def test_invalid_mix_falls_back_to_plain_sum(with_streams):
    config = _breakdowns(
        "prod",
        {
            "core": growth(10),
            "units": {"method": "price_volume", "inputs": {"price": 1, "volume": 100}},
            "addon": pct_of("prod", 20),
        },
        {"core": 50, "units": 30, "addon": 20},
    )
    result = compute_revenue_projections(with_streams({"prod": 1000.0}, config))

    assert result.invalid_streams == ["prod"]
    assert result.get("core", "2025E") == pytest.approx(550.0)
    assert result.get("addon", "2025E") == 0.0
    assert result.get("prod", "2025E") == pytest.approx(650.0)


# -----------------------------------------------------------------------------
# References to other totals
# -----------------------------------------------------------------------------


def test_stream_as_percent_of_total_revenue(with_streams):
    config = {"items": {"core": growth(10), "royalty": pct_of("rev", 40)}}
    result = compute_revenue_projections(with_streams({"core": 600.0, "royalty": 0.0}, config))
    assert result.get("rev", "2025E") == pytest.approx(1100.0)
    assert result.get("royalty", "2025E") == pytest.approx(440.0)


def test_stream_as_percent_of_sibling_stream(with_streams):
    config = {"items": {"core": growth(10), "support": pct_of("core", 50)}}
    result = compute_revenue_projections(with_streams({"core": 600.0, "support": 0.0}, config))
    assert result.get("support", "2025E") == pytest.approx(330.0)
    assert result.get("rev", "2025E") == pytest.approx(990.0)


def test_breakdown_referencing_another_stream(with_streams):
    config = _breakdowns("prod", {"base": growth(0), "bundle": pct_of("svc", 10)}, {"base": 100})
    config["items"]["svc"] = growth(0)
    result = compute_revenue_projections(with_streams({"prod": 100.0, "svc": 500.0}, config))
    assert result.get("bundle", "2025E") == pytest.approx(50.0)
    assert result.get("prod", "2025E") == pytest.approx(150.0)
    assert result.get("rev", "2025E") == pytest.approx(650.0)


def test_no_projection_years_gives_empty_result(with_streams):
    model = with_streams({"subs": 1000.0}, {"items": {"subs": growth(10)}}, projection_years=[])
    assert compute_revenue_projections(model).values == {}
