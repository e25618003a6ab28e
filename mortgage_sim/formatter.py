"""Output helpers for the mortgage simulator.

This module provides simple functions to render ledgers and summaries in a
tabular text format. We rely only on built-in printing and string formatting;
the command line decides what to print and how much of it.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable

from .export import LedgerRow

PERIOD_LABELS = {"monthly": "Month", "fortnightly": "Fortnight", "weekly": "Week"}


def period_label(frequency: str) -> str:
    return PERIOD_LABELS.get((frequency or "monthly").lower(), "Month")


def _money(value: Any) -> str:
    return f"{value:,.2f}" if value is not None else "-"


def print_summary(summary: Dict[str, Any]) -> None:
    """Print a summary of loan metrics in a human-readable format."""
    print("Summary")
    print("-" * 72)
    print(f"Principal          : {_money(summary['principal'])}")
    print(f"Periodic repayment : {_money(summary['periodic_repayment'])}")
    split = summary.get("split")
    if split:
        print(f"  Fixed portion    : {_money(split['fixed_amount'])} ({split['fixed_percent']:.1f}%)")
        print(f"  Variable portion : {_money(split['variable_amount'])} ({split['variable_percent']:.1f}%)")
    if summary.get("split_total_repayment"):
        print(f"  Split fixed      : {_money(summary['split_fixed_repayment'])}")
        print(f"  Split variable   : {_money(summary['split_variable_repayment'])}")
        print(f"  Split total      : {_money(summary['split_total_repayment'])}")
    print(f"Total interest     : {_money(summary['total_interest'])}")
    print(f"Total repaid       : {_money(summary['total_repaid'])}")
    print(f"Baseline interest  : {_money(summary['baseline_interest'])}")
    # Only positive savings are shown
    if summary.get("interest_saved", 0) > 0:
        print(f"Interest saved     : {_money(summary['interest_saved'])}")
    months_saved = summary.get("months_saved") or 0
    if months_saved > 0:
        print(f"Time saved         : {months_saved // 12}y {months_saved % 12}m")
    print(f"Neutrality date    : {summary.get('neutrality_date') or '-'}")
    print(f"Loan end date      : {summary.get('loan_end_date') or '-'}")
    if summary.get("refinance_index", -1) >= 0:
        print(f"Refinanced at      : period {summary['refinance_index'] + 1}")
        print(f"Refinance effect   : {_money(summary['refinance_interest_delta'])} interest")
    reached = {k: v for k, v in (summary.get("milestones") or {}).items() if v}
    for key, milestone in reached.items():
        print(f"LVR {key[3:]}% reached   : {milestone['date']}")
    print("-" * 72)


def print_ledger(rows: Iterable[LedgerRow]) -> None:
    """Print ledger rows as a simple tab-separated table."""
    headers = ["Period", "Date", "Rate", "Payment", "Interest", "Principal", "Offset", "Redraw", "Balance", "Notes"]
    print("\t".join(headers))
    for row in rows:
        notes = [row.note]
        if row.offset_note:
            notes.append(f"offset {row.offset_note}")
        if row.redraw_note:
            notes.append(f"redraw {row.redraw_note}")
        print(
            "\t".join(
                [
                    row.label,
                    row.date.isoformat(),
                    f"{row.rate:.2f}%",
                    f"{row.payment:.2f}",
                    f"{row.interest:.2f}",
                    f"{row.principal:.2f}",
                    f"{row.offset:.2f}",
                    f"{row.redraw:.2f}",
                    f"{row.balance:.2f}",
                    "; ".join(n for n in notes if n),
                ]
            )
        )


def print_comparison(s1: Dict[str, Any], s2: Dict[str, Any]) -> None:
    """Print a comparison of two loan summaries side by side.

    The difference column is scenario2 - scenario1; a negative difference
    means the second scenario is cheaper or shorter.
    """
    print("Comparison")
    print("=" * 72)
    keys = [
        "periodic_repayment",
        "total_interest",
        "total_repaid",
        "interest_saved",
        "months_saved",
        "periods",
    ]
    print(f"{'Metric':20s} {'Scenario1':>15s} {'Scenario2':>15s} {'Difference':>15s}")
    for key in keys:
        v1 = s1.get(key) or 0
        v2 = s2.get(key) or 0
        diff = v2 - v1
        print(f"{key:20s} {v1:15.2f} {v2:15.2f} {diff:15.2f}")
    print("=" * 72)
