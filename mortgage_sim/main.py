"""Command-line interface for the mortgage simulator.

This module uses the ``click`` library to implement a multi-command
interface. Users can project full ledgers, view summaries or compare two
settings files. Inputs come from the defaults, an optional JSON settings file
and explicit options, in that order of precedence. Results can be printed to
the terminal or exported to JSON/CSV files.
"""

from __future__ import annotations

import functools
import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

import click

from .data_models import LoanConfig
from .engine import calculate
from .export import LEDGER_VIEWS, aggregate_ledger, export_to_csv, export_to_json
from .formatter import period_label, print_comparison, print_ledger, print_summary
from .settings import (
    DEFAULT_SETTINGS,
    SettingsError,
    config_from_settings,
    load_settings_file,
    merge_settings,
)
from .utils import parse_date, periods_per_year

logger = logging.getLogger(__name__)


def parse_amount(value: str) -> float:
    """Parse a numeric string with optional suffixes.

    Accepts plain floats ("500000") and shorthand with ``k``/``m`` suffixes
    (e.g., "500k" meaning 500_000). Returns a float.
    """
    value = value.strip().lower()
    value = value.replace(",", "")
    factor = 1.0
    if value.endswith("k"):
        factor = 1_000.0
        value = value[:-1]
    elif value.endswith("m"):
        factor = 1_000_000.0
        value = value[:-1]
    try:
        return float(value) * factor
    except ValueError:
        raise click.BadParameter(f"Invalid amount: {value}")


def _check_date(text: str) -> str:
    try:
        return parse_date(text).isoformat()
    except ValueError as exc:
        raise click.BadParameter(str(exc))


def _check_number(text: str, what: str) -> float:
    try:
        return float(text)
    except ValueError:
        raise click.BadParameter(f"Invalid {what}: {text}")


def parse_overlay_string(value: str, name: str) -> Dict[str, Any]:
    """Parse ``RATE:YEARS[:START]`` for a fixed or interest-only window."""
    parts = value.split(":")
    if len(parts) not in (2, 3):
        raise click.BadParameter(f"{name} must be in RATE:YEARS[:START] format; got {value}")
    overlay = {
        "rate": _check_number(parts[0], "rate"),
        "years": int(_check_number(parts[1], "years")),
        "start": None,
    }
    if len(parts) == 3:
        overlay["start"] = _check_date(parts[2])
    return overlay


def parse_split_string(value: str) -> Dict[str, Any]:
    """Parse ``RATE:YEARS:SIZE[:START]``; SIZE is ``N%`` or an amount."""
    parts = value.split(":")
    if len(parts) not in (3, 4):
        raise click.BadParameter(f"Split must be in RATE:YEARS:SIZE[:START] format; got {value}")
    size = parts[2].strip()
    split: Dict[str, Any] = {
        "split_rate": _check_number(parts[0], "rate"),
        "split_years": int(_check_number(parts[1], "years")),
        "split_start": _check_date(parts[3]) if len(parts) == 4 else None,
    }
    if size.endswith("%"):
        split["split_type"] = "percent"
        split["split_percent"] = _check_number(size[:-1], "split percentage")
    else:
        split["split_type"] = "value"
        split["split_value"] = parse_amount(size)
    return split


def parse_intervention_strings(values: Tuple[str, ...]) -> List[Dict[str, Any]]:
    interventions: List[Dict[str, Any]] = []
    for item in values:
        parts = item.split(":")
        if len(parts) not in (3, 4):
            raise click.BadParameter(
                f"Intervention must be in DATE:KIND:VALUE[:RECURRENCE] format; got {item}"
            )
        when, kind, amount = parts[:3]
        value = _check_number(amount, "rate") if kind == "rate_change" else parse_amount(amount)
        interventions.append(
            {
                "date": _check_date(when),
                "type": kind.lower(),
                "value": value,
                "recurrence": parts[3].lower() if len(parts) == 4 else "once",
            }
        )
    return interventions


def parse_refinance_string(value: str) -> Dict[str, Any]:
    """Parse ``DATE:RATE:TERM_MONTHS[:CASH_OUT[:REGIME[:YEARS]]]``."""
    parts = value.split(":")
    if not 3 <= len(parts) <= 6:
        raise click.BadParameter(
            f"Refinance must be in DATE:RATE:TERM_MONTHS[:CASH_OUT[:REGIME[:YEARS]]] format; got {value}"
        )
    return {
        "date": _check_date(parts[0]),
        "rate": _check_number(parts[1], "rate"),
        "term_months": int(_check_number(parts[2], "term")),
        "cash_out": parse_amount(parts[3]) if len(parts) > 3 and parts[3] else 0,
        "regime": parts[4].lower() if len(parts) > 4 else "variable",
        "regime_years": int(_check_number(parts[5], "years")) if len(parts) > 5 else 0,
    }


def build_settings_from_options(
    config_path: Optional[str] = None,
    principal: Optional[str] = None,
    rate: Optional[float] = None,
    term_years: Optional[int] = None,
    term_months: Optional[int] = None,
    frequency: Optional[str] = None,
    loan_start: Optional[str] = None,
    repayment_start: Optional[str] = None,
    offset: Optional[str] = None,
    redraw: Optional[str] = None,
    fee: Optional[str] = None,
    repayment_override: Optional[str] = None,
    property_value: Optional[str] = None,
    property_growth: Optional[float] = None,
    fixed: Optional[str] = None,
    interest_only: Optional[str] = None,
    split: Optional[str] = None,
    intervention: Tuple[str, ...] = (),
    refinance: Optional[str] = None,
    accrual: Optional[str] = None,
) -> Dict[str, Any]:
    """Merge the defaults, an optional settings file and explicit options."""
    file_settings: Dict[str, Any] = {}
    if config_path:
        try:
            file_settings = load_settings_file(Path(config_path))
        except (OSError, json.JSONDecodeError, SettingsError) as exc:
            raise click.BadParameter(f"Cannot read settings file {config_path}: {exc}")

    options: Dict[str, Any] = {
        "rate": rate,
        "term_years": term_years,
        "term_months": term_months,
        "frequency": frequency,
        "property_growth": property_growth,
        "accrual": accrual,
    }
    for key, text in (
        ("amount", principal),
        ("offset", offset),
        ("redraw", redraw),
        ("fees", fee),
        ("repayment_override", repayment_override),
        ("property_value", property_value),
    ):
        if text is not None:
            options[key] = parse_amount(text)
    if loan_start:
        options["loan_start"] = _check_date(loan_start)
    if repayment_start:
        options["repayment_start"] = _check_date(repayment_start)

    # Each regime option also selects the rate mode; the last one given wins
    if fixed:
        overlay = parse_overlay_string(fixed, "Fixed")
        options.update(rate_mode="fixed", fixed_rate=overlay["rate"], fixed_years=overlay["years"], fixed_start=overlay["start"])
    if interest_only:
        overlay = parse_overlay_string(interest_only, "Interest-only")
        options.update(rate_mode="interest_only", io_rate=overlay["rate"], io_years=overlay["years"], io_start=overlay["start"])
    if split:
        options.update(rate_mode="split", **parse_split_string(split))
    if intervention:
        options["interventions"] = parse_intervention_strings(intervention)
    if refinance:
        options["refinance"] = parse_refinance_string(refinance)

    explicit = {k: v for k, v in options.items() if v is not None}
    return merge_settings(file_settings, explicit)


def build_config_from_options(**options: Any) -> LoanConfig:
    settings = build_settings_from_options(**options)
    try:
        return config_from_settings(settings)
    except SettingsError as exc:
        raise click.BadParameter(str(exc))


def loan_options(func: Callable) -> Callable:
    """Attach the loan input options shared by ``schedule`` and ``summary``."""
    options = [
        click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False), help="JSON settings file"),
        click.option("--principal", "-p", "principal", help="Loan amount (e.g. 375000 or 375k)"),
        click.option("--rate", "-r", "rate", type=float, help="Annual variable rate (percent)"),
        click.option("--term-years", "-t", "term_years", type=int, help="Loan term in whole years"),
        click.option("--term-months", "term_months", type=int, help="Additional term months (0-11)"),
        click.option("--frequency", "-f", "frequency", type=click.Choice(["monthly", "fortnightly", "weekly"]), help="Repayment frequency"),
        click.option("--loan-start", "loan_start", help="Loan start date (YYYY-MM-DD)"),
        click.option("--repayment-start", "repayment_start", help="First repayment date (YYYY-MM-DD)"),
        click.option("--offset", "offset", help="Opening offset balance"),
        click.option("--redraw", "redraw", help="Opening redraw balance"),
        click.option("--fee", "fee", help="Annual fee added to the balance"),
        click.option("--repayment-override", "repayment_override", help="Fixed periodic repayment, ignoring amortization"),
        click.option("--property-value", "property_value", help="Current property value"),
        click.option("--property-growth", "property_growth", type=float, help="Annual property growth (percent)"),
        click.option("--fixed", "fixed", help="Fixed window in RATE:YEARS[:START] format"),
        click.option("--interest-only", "interest_only", help="Interest-only window in RATE:YEARS[:START] format"),
        click.option("--split", "split", help="Split window in RATE:YEARS:SIZE[:START] format, SIZE as N% or an amount"),
        click.option("--intervention", "intervention", multiple=True, help="Event in DATE:KIND:VALUE[:RECURRENCE] format"),
        click.option("--refinance", "refinance", help="Refinance in DATE:RATE:TERM_MONTHS[:CASH_OUT[:REGIME[:YEARS]]] format"),
        click.option("--accrual", "accrual", type=click.Choice(["simple", "actual_days"]), help="Interest accrual convention"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Log engine activity to stderr")
def cli(verbose: bool) -> None:
    """A command-line mortgage projection tool."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@loan_options
@click.option("--view", "view", type=click.Choice(LEDGER_VIEWS), default="standard", help="Ledger grouping")
@click.option("--max-rows", "max_rows", type=int, default=120, help="Rows to print (0 for all)")
@click.option("--output", "output", type=str, help="Output file path (.json or .csv)")
def schedule(view: str, max_rows: int, output: Optional[str], **options: Any) -> None:
    """Compute and print the full ledger."""
    config = build_config_from_options(**options)
    result = calculate(config)
    if output:
        path = Path(output)
        if path.suffix.lower() == ".json":
            export_to_json(path, result)
        elif path.suffix.lower() == ".csv":
            export_to_csv(path, result.history)
        else:
            raise click.BadParameter("Unsupported output format; use .json or .csv")
        click.echo(f"Ledger exported to {path}")
        return

    print_summary(result.summary())
    rows = aggregate_ledger(
        result.history, view, periods_per_year(config.frequency), period_label(config.frequency)
    )
    if max_rows and len(rows) > max_rows:
        click.echo(f"Ledger has {len(rows)} rows; showing first {max_rows} rows.")
        rows = rows[:max_rows]
    print_ledger(rows)


@cli.command()
@loan_options
@click.option("--output", "output", type=str, help="Output file path (.json)")
def summary(output: Optional[str], **options: Any) -> None:
    """Compute and print only the summary metrics for a loan."""
    result = calculate(build_config_from_options(**options))
    summary_data = result.summary()
    if output:
        path = Path(output)
        if path.suffix.lower() != ".json":
            raise click.BadParameter("Summary export must use .json extension")
        with path.open("w", encoding="utf-8") as f:
            json.dump({"summary": summary_data}, f, indent=2)
        click.echo(f"Summary exported to {path}")
    else:
        print_summary(summary_data)


@cli.command()
@click.option("--scenario1", "scenario1", required=True, type=click.Path(exists=True, dir_okay=False), help="First settings file")
@click.option("--scenario2", "scenario2", required=True, type=click.Path(exists=True, dir_okay=False), help="Second settings file")
def compare(scenario1: str, scenario2: str) -> None:
    """Compare two loan scenarios given as JSON settings files.

    Keys missing from either file take their default values, for example:

        mortgage-sim compare --scenario1 current.json --scenario2 refinance.json
    """
    config1 = build_config_from_options(config_path=scenario1)
    config2 = build_config_from_options(config_path=scenario2)
    print_comparison(calculate(config1).summary(), calculate(config2).summary())


@cli.command()
def defaults() -> None:
    """Print the default settings as JSON (a starting point for --config files)."""
    click.echo(json.dumps(DEFAULT_SETTINGS, indent=2))


if __name__ == "__main__":
    cli()
