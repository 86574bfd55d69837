"""
Unit tests for revenue_config.py (configuration surface and breakdown
classification).
"""

import pytest
from pydantic import ValidationError

from finmodel.services.modeling.revenue_config import (
    GrowthRateInputs,
    PctOfTotalInputs,
    RevenueProjectionConfig,
    add_breakdown,
    allocation_total,
    ensure_item_configs,
    get_breakdown_projection_type,
    get_breakdown_types_present,
    has_invalid_breakdown_mix,
    leaf_revenue_item_ids,
    remove_breakdown,
    rename_breakdown,
    set_allocation_percentage,
    set_item_inputs,
    set_item_method,
)


@pytest.fixture
def config():
    cfg = RevenueProjectionConfig()
    cfg = add_breakdown(cfg, "prod", "Core", breakdown_id="core")
    cfg = add_breakdown(cfg, "prod", "Add-on", breakdown_id="addon")
    return cfg


def test_camel_case_payload_is_accepted():
    cfg = RevenueProjectionConfig.model_validate({
        "items": {"subs": {"method": "growth_rate", "inputs": {"ratePercent": 7.5, "growthType": "constant"}}},
        "projectionAllocations": {"subs": {"percentages": {"x": 10}}},
    })
    assert isinstance(cfg.item("subs").inputs, GrowthRateInputs)
    assert cfg.item("subs").inputs.rate_percent == 7.5
    assert cfg.allocation_percent("subs", "x") == 10.0

    dumped = cfg.model_dump(by_alias=True)
    assert dumped["items"]["subs"]["inputs"]["ratePercent"] == 7.5


def test_unknown_method_is_rejected():
    with pytest.raises(ValidationError):
        RevenueProjectionConfig.model_validate({"items": {"x": {"method": "magic", "inputs": {}}}})


def test_ensure_item_configs_defaults_to_zero_percent_of_revenue():
    cfg = ensure_item_configs(RevenueProjectionConfig(), ["subs"])
    item = cfg.item("subs")
    assert item.method == "pct_of_total"
    assert isinstance(item.inputs, PctOfTotalInputs)
    assert item.inputs.reference_id == "rev"
    assert item.inputs.pct_of_total == 0.0


def test_ensure_keeps_existing_configs():
    cfg = set_item_method(RevenueProjectionConfig(), "subs", "growth_rate", {"rate_percent": 5})
    assert ensure_item_configs(cfg, ["subs"]) is cfg


def test_set_method_keeps_inputs_when_unchanged():
    cfg = set_item_method(RevenueProjectionConfig(), "subs", "growth_rate", {"rate_percent": 5})
    again = set_item_method(cfg, "subs", "growth_rate")
    assert again.item("subs").inputs.rate_percent == 5
    switched = set_item_method(cfg, "subs", "price_volume")
    assert switched.item("subs").inputs.price == 0.0
    assert cfg.item("subs").method == "growth_rate"


def test_set_inputs_merges_partial_update():
    cfg = set_item_method(RevenueProjectionConfig(), "subs", "price_volume", {"price": 3, "volume": 4})
    cfg = set_item_inputs(cfg, "subs", {"volume": 10})
    inputs = cfg.item("subs").inputs
    assert (inputs.price, inputs.volume) == (3.0, 10.0)


def test_breakdown_lifecycle(config):
    assert [b.id for b in config.breakdowns_for("prod")] == ["core", "addon"]
    assert add_breakdown(config, "prod", "Dup", breakdown_id="core") is config

    renamed = rename_breakdown(config, "prod", "core", "Core Product")
    assert renamed.breakdowns_for("prod")[0].label == "Core Product"

    cfg = set_allocation_percentage(config, "prod", "core", 60)
    cfg = set_allocation_percentage(cfg, "prod", "addon", 40)
    assert allocation_total(cfg, "prod") == pytest.approx(100.0)
    assert set_allocation_percentage(cfg, "prod", "ghost", 5) is cfg

    cfg = set_item_method(cfg, "addon", "growth_rate", {"rate_percent": 1})
    removed = remove_breakdown(cfg, "prod", "addon")
    assert [b.id for b in removed.breakdowns_for("prod")] == ["core"]
    assert removed.item("addon") is None
    assert allocation_total(removed, "prod") == pytest.approx(60.0)


def test_generated_breakdown_id():
    cfg = add_breakdown(RevenueProjectionConfig(), "prod", "New")
    assert cfg.breakdowns_for("prod")[0].id.startswith("prod_bd_")


def test_leaf_ids(config):
    assert leaf_revenue_item_ids(["prod", "svc"], config) == ["core", "addon", "svc"]


def test_breakdown_types_and_invalid_mix(config):
    cfg = set_item_method(config, "core", "growth_rate", {"rate_percent": 5})
    cfg = set_item_method(cfg, "addon", "pct_of_total", {"reference_id": "prod", "pct_of_total": 20})
    assert get_breakdown_projection_type(cfg, "core", "prod") == "growth"
    assert get_breakdown_projection_type(cfg, "addon", "prod") == "pct_of_stream"
    assert not has_invalid_breakdown_mix(cfg, "prod")

    cfg = add_breakdown(cfg, "prod", "Units", breakdown_id="units")
    cfg = set_item_method(cfg, "units", "customers_arpu", {"customers": 1, "arpu": 1})
    assert get_breakdown_types_present(cfg, "prod") == {"growth", "dollar", "pct_of_stream"}
    assert has_invalid_breakdown_mix(cfg, "prod")


def test_percent_of_other_total_is_not_pct_of_stream(config):
    cfg = set_item_method(config, "addon", "pct_of_total", {"reference_id": "rev", "pct_of_total": 5})
    assert get_breakdown_projection_type(cfg, "addon", "prod") is None
    assert get_breakdown_projection_type(cfg, "core", "prod") is None
