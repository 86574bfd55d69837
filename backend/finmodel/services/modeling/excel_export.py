"""
excel_export.py — Excel Workbook Export Builder

Purpose:
- Lay the evaluated model into a client-facing .xlsx workbook:
    * Income Statement, Balance Sheet, Cash Flow sheets
      (historical + projection years, values from ModelService.statement_table)
    * Revenue Build sheet (projected revenue per stream, breakdown and
      product line / channel sub-line)

Formatting:
- Header row with year labels, grey fill
- Labels indented by tree depth; subtotals / totals in bold
- Inputs in blue, calculated values in black
- Currency cells in the model's display unit, percent rows as 0.0%
- A unit note under the title (e.g. "USD in millions")

Outputs:
- In-memory .xlsx file returned as bytes.

This module does NOT:
- Perform any modeling logic (everything comes from ModelService).
"""

from __future__ import annotations

from io import BytesIO
from typing import List, Optional

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from finmodel.core.logging import get_logger
from finmodel.services.modeling.currency import stored_to_display
from finmodel.services.modeling.model_service import ModelService, StatementTableRow
from finmodel.services.modeling.revenue_config import TOTAL_REVENUE_ID
from finmodel.services.modeling.types import (
    BALANCE_SHEET,
    CASH_FLOW,
    INCOME_STATEMENT,
    FinancialModel,
    Year,
)

logger = get_logger(__name__)

SHEET_TITLES = {
    INCOME_STATEMENT: "Income Statement",
    BALANCE_SHEET: "Balance Sheet",
    CASH_FLOW: "Cash Flow",
}
REVENUE_BUILD_TITLE = "Revenue Build"

INPUT_FONT = Font(color="0000FF")
CALC_FONT = Font(color="000000")
TOTAL_FONT = Font(color="000000", bold=True)
HEADER_FONT = Font(bold=True)
TITLE_FONT = Font(bold=True, size=14)
NOTE_FONT = Font(italic=True, color="808080")
HEADER_FILL = PatternFill(start_color="D3D3D3", end_color="D3D3D3", fill_type="solid")

CURRENCY_FORMAT = "#,##0.00;(#,##0.00)"
PERCENT_FORMAT = "0.0%"

_HEADER_ROW = 4
_LABEL_WIDTH = 48
_VALUE_WIDTH = 14


def _unit_note(model: FinancialModel) -> str:
    unit = model.meta.currency_unit
    if unit == "units":
        return f"{model.meta.currency}"
    return f"{model.meta.currency} in {unit}"


def _write_header(ws: Worksheet, title: str, note: str, years: List[Year], first_label: str = "Line Item") -> None:
    ws.cell(row=1, column=1, value=title).font = TITLE_FONT
    ws.cell(row=2, column=1, value=note).font = NOTE_FONT

    header = [first_label] + list(years)
    for col_idx, text in enumerate(header, start=1):
        cell = ws.cell(row=_HEADER_ROW, column=col_idx, value=text)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = Alignment(horizontal="left" if col_idx == 1 else "center")

    ws.column_dimensions["A"].width = _LABEL_WIDTH
    for col_idx in range(2, len(header) + 1):
        ws.column_dimensions[get_column_letter(col_idx)].width = _VALUE_WIDTH
    ws.freeze_panes = ws.cell(row=_HEADER_ROW + 1, column=2)


def _row_font(row: StatementTableRow) -> Font:
    if row.kind in ("subtotal", "total"):
        return TOTAL_FONT
    if row.kind == "input":
        return INPUT_FONT
    return CALC_FONT


def _write_value(ws: Worksheet, row_idx: int, col_idx: int, value: float, value_type: str, unit: str, font: Font) -> None:
    if value_type == "percent":
        cell = ws.cell(row=row_idx, column=col_idx, value=value / 100.0)
        cell.number_format = PERCENT_FORMAT
    else:
        cell = ws.cell(row=row_idx, column=col_idx, value=stored_to_display(value, unit))
        cell.number_format = CURRENCY_FORMAT
    cell.font = font


def write_statement_sheet(ws: Worksheet, service: ModelService, statement: str) -> None:
    model = service.model
    years = model.meta.years
    unit = model.meta.currency_unit
    _write_header(ws, SHEET_TITLES[statement], _unit_note(model), years)

    row_idx = _HEADER_ROW + 1
    for table_row in service.statement_table(statement):
        font = _row_font(table_row)
        label = ws.cell(row=row_idx, column=1, value=table_row.label)
        label.font = TOTAL_FONT if font is TOTAL_FONT else Font(bold=False)
        label.alignment = Alignment(indent=table_row.depth)
        for col_idx, year in enumerate(years, start=2):
            _write_value(ws, row_idx, col_idx, table_row.values.get(year, 0.0), table_row.value_type, unit, font)
        row_idx += 1


def write_revenue_build_sheet(ws: Worksheet, service: ModelService) -> None:
    """Projected revenue tree: rev, streams, breakdowns, sub-lines (projection years only)."""
    model = service.model
    years = model.meta.projection_years
    unit = model.meta.currency_unit
    config = model.revenue_config
    result = service.revenue_projections()

    _write_header(ws, REVENUE_BUILD_TITLE, _unit_note(model), years, first_label="Revenue Item")
    ws.cell(row=_HEADER_ROW, column=len(years) + 2, value="Method").font = HEADER_FONT
    ws.cell(row=_HEADER_ROW, column=len(years) + 2).fill = HEADER_FILL

    rev = next((r for r in model.income_statement if r.id == TOTAL_REVENUE_ID), None)
    if rev is None:
        ws.cell(row=_HEADER_ROW + 1, column=1, value="No revenue row in the income statement")
        return

    row_idx = _HEADER_ROW + 1

    def _line(item_id: str, label: str, depth: int, font: Font, method: Optional[str] = None) -> None:
        nonlocal row_idx
        cell = ws.cell(row=row_idx, column=1, value=label)
        cell.alignment = Alignment(indent=depth)
        cell.font = TOTAL_FONT if font is TOTAL_FONT else Font(bold=False)
        for col_idx, year in enumerate(years, start=2):
            _write_value(ws, row_idx, col_idx, result.get(item_id, year), "currency", unit, font)
        if method:
            ws.cell(row=row_idx, column=len(years) + 2, value=method)
        row_idx += 1

    def _sub_lines(item_id: str, depth: int) -> None:
        keys = result.sub_lines.get(item_id)
        cfg = config.item(item_id)
        if not keys or cfg is None:
            return
        for key, line in zip(keys, cfg.inputs.items):
            _line(key, line.label or key.split("::", 1)[-1], depth, CALC_FONT)

    _line(TOTAL_REVENUE_ID, rev.label, 0, TOTAL_FONT, config.method_of(TOTAL_REVENUE_ID) if not rev.children else None)
    _sub_lines(TOTAL_REVENUE_ID, 1)
    for stream in rev.children:
        breakdowns = config.breakdowns_for(stream.id)
        label = stream.label
        if stream.id in result.invalid_streams:
            label = f"{label} (invalid breakdown mix)"
        _line(stream.id, label, 1, CALC_FONT, None if breakdowns else config.method_of(stream.id))
        _sub_lines(stream.id, 2)
        for b in breakdowns:
            _line(b.id, b.label, 2, INPUT_FONT, config.method_of(b.id))
            _sub_lines(b.id, 3)


def build_excel_workbook(model: FinancialModel) -> bytes:
    """
    Build the export workbook for a model snapshot.

    Example:
        data = build_excel_workbook(model)
        Path("model.xlsx").write_bytes(data)
    """
    service = ModelService(model)
    wb = Workbook()
    # Replace the default sheet
    wb.remove(wb.active)

    for statement in (INCOME_STATEMENT, BALANCE_SHEET, CASH_FLOW):
        write_statement_sheet(wb.create_sheet(SHEET_TITLES[statement]), service, statement)
    write_revenue_build_sheet(wb.create_sheet(REVENUE_BUILD_TITLE), service)

    buffer = BytesIO()
    wb.save(buffer)
    logger.info(
        "Built workbook for %s (%d years)",
        model.meta.company_name or "<unnamed>", len(model.meta.years),
    )
    return buffer.getvalue()
