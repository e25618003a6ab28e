"""Serialization and ledger views.

Converts ledger entries and calculation results into JSON-ready structures,
writes them to JSON or CSV files, and builds the aggregated monthly and
yearly ledger views.
"""

from __future__ import annotations

import csv
import json
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Sequence

from .data_models import ZERO, CalculationResult, LedgerEntry

LEDGER_VIEWS = ("standard", "monthly", "yearly")

CSV_HEADER = [
    "Period",
    "Date",
    "Rate",
    "Payment",
    "Interest",
    "Principal",
    "Offset",
    "Redraw",
    "Balance",
    "Property_Value",
    "LVR",
    "Note",
    "Offset_Note",
    "Redraw_Note",
]


def entry_to_dict(entry: LedgerEntry) -> Dict[str, Any]:
    return {
        "period": entry.period,
        "date": entry.date.isoformat(),
        "balance": float(entry.balance),
        "interest": float(entry.interest),
        "principal": float(entry.principal),
        "payment": float(entry.payment),
        "offset": float(entry.offset),
        "redraw": float(entry.redraw),
        "rate": float(entry.rate),
        "variable_rate": float(entry.variable_rate),
        "split_rate": float(entry.split_rate) if entry.split_rate is not None else None,
        "split_fixed_payment": float(entry.split_fixed_payment),
        "split_variable_payment": float(entry.split_variable_payment),
        "is_fixed": entry.is_fixed,
        "is_split": entry.is_split,
        "is_interest_only": entry.is_interest_only,
        "is_refinance": entry.is_refinance,
        "property_value": float(entry.property_value),
        "lvr": float(entry.lvr) if entry.lvr is not None else None,
        "equity": float(entry.equity),
        "note": entry.note,
        "offset_note": entry.offset_note,
        "redraw_note": entry.redraw_note,
    }


def result_to_dict(result: CalculationResult) -> Dict[str, Any]:
    return {
        "summary": result.summary(),
        "ledger": [entry_to_dict(e) for e in result.history],
    }


def export_to_json(path: Path, result: CalculationResult) -> None:
    """Export the summary and full ledger to a JSON file."""
    with path.open("w", encoding="utf-8") as f:
        json.dump(result_to_dict(result), f, indent=2)


def export_to_csv(path: Path, history: Sequence[LedgerEntry]) -> None:
    """Export the ledger to a CSV file."""
    with path.open("w", newline="", encoding="utf-8") as f:
        writer = csv.writer(f)
        writer.writerow(CSV_HEADER)
        for e in history:
            writer.writerow(
                [
                    e.period,
                    e.date.isoformat(),
                    float(e.rate),
                    float(e.payment),
                    float(e.interest),
                    float(e.principal),
                    float(e.offset),
                    float(e.redraw),
                    float(e.balance),
                    float(e.property_value),
                    float(e.lvr) if e.lvr is not None else "",
                    e.note,
                    e.offset_note,
                    e.redraw_note,
                ]
            )


@dataclass(frozen=True)
class LedgerRow:
    """A row of an aggregated ledger view."""

    label: str
    date: date
    payment: Decimal
    interest: Decimal
    principal: Decimal
    balance: Decimal
    offset: Decimal
    redraw: Decimal
    rate: Decimal
    note: str
    offset_note: str
    redraw_note: str


def _join(values) -> str:
    return "; ".join(v for v in values if v)


def _row(label: str, chunk: Sequence[LedgerEntry]) -> LedgerRow:
    last = chunk[-1]
    return LedgerRow(
        label=label,
        date=last.date,
        payment=sum((e.payment for e in chunk), ZERO),
        interest=sum((e.interest for e in chunk), ZERO),
        principal=sum((e.principal for e in chunk), ZERO),
        balance=last.balance,
        offset=last.offset,
        redraw=last.redraw,
        rate=last.rate,
        note=_join(e.note for e in chunk),
        offset_note=_join(e.offset_note for e in chunk),
        redraw_note=_join(e.redraw_note for e in chunk),
    )


def aggregate_ledger(history: Sequence[LedgerEntry], view: str, ppy: int, period_label: str = "Period") -> List[LedgerRow]:
    """Group the ledger for display.

    ``standard`` keeps one row per period, ``monthly`` groups the periods by
    calendar month, and ``yearly`` groups every ``ppy`` consecutive periods.
    Payments, interest and principal are summed. Balance, facilities and rate
    come from the last period of each group. Notes are joined.
    """
    if view == "yearly":
        return [
            _row(f"Year {i // ppy + 1}", history[i : i + ppy])
            for i in range(0, len(history), ppy)
        ]
    if view == "monthly":
        rows: List[LedgerRow] = []
        chunk: List[LedgerEntry] = []
        for entry in history:
            if chunk and (entry.date.year, entry.date.month) != (chunk[-1].date.year, chunk[-1].date.month):
                rows.append(_row(f"Month {len(rows) + 1}", chunk))
                chunk = []
            chunk.append(entry)
        if chunk:
            rows.append(_row(f"Month {len(rows) + 1}", chunk))
        return rows
    return [_row(f"{period_label} {e.period}", [e]) for e in history]
