"""
currency.py — Display Unit / Stored Value Conversion

Purpose:
- Convert between what the user sees (display value in units, thousands or
  millions) and the canonical stored value used by every computation.
- Format stored values for preview and export.

Conversion only happens at input/output boundaries; all modeling math runs on
stored values.
"""

from __future__ import annotations

from typing import Dict, Literal

CurrencyUnit = Literal["units", "thousands", "millions"]

UNIT_MULTIPLIERS: Dict[str, int] = {
    "units": 1,
    "thousands": 1_000,
    "millions": 1_000_000,
}

UNIT_LABELS: Dict[str, str] = {
    "units": "",
    "thousands": "K",
    "millions": "M",
}

UNIT_DECIMALS: Dict[str, int] = {
    "units": 0,
    "thousands": 1,
    "millions": 2,
}

CURRENCY_SYMBOLS: Dict[str, str] = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "CAD": "C$",
    "AUD": "A$",
}


def _multiplier(unit: str) -> int:
    # Unknown units behave like plain units.
    return UNIT_MULTIPLIERS.get(unit, 1)


def display_to_stored(display_value: float, unit: str) -> float:
    """Convert a display value (what the user enters) to a stored value."""
    return display_value * _multiplier(unit)


def stored_to_display(stored_value: float, unit: str) -> float:
    """Convert a stored value to the value shown in the given unit."""
    return stored_value / _multiplier(unit)


def get_unit_label(unit: str) -> str:
    return UNIT_LABELS.get(unit, "")


def get_currency_symbol(currency: str) -> str:
    """Symbol for an ISO code; unknown codes are returned unchanged."""
    return CURRENCY_SYMBOLS.get(currency, currency)


def format_currency_display(
    stored_value: float,
    unit: str,
    currency: str = "USD",
    include_symbol: bool = False,
) -> str:
    """
    Format a stored value for display.

    Examples:
        format_currency_display(1_500_000, "millions")        -> "1.50 M"
        format_currency_display(1_500_000, "millions", include_symbol=True)
                                                              -> "$1.50 M"
        format_currency_display(2_500, "units")               -> "2,500"
    """
    display_value = stored_to_display(stored_value, unit)
    decimals = UNIT_DECIMALS.get(unit, 0)
    formatted = f"{abs(display_value):,.{decimals}f}"
    if include_symbol:
        formatted = f"{get_currency_symbol(currency)}{formatted}"
    if display_value < 0:
        formatted = f"-{formatted}"
    label = get_unit_label(unit)
    return f"{formatted} {label}" if label else formatted
