"""User settings and their conversion into a ``LoanConfig``.

Settings are a flat, JSON-compatible dictionary: the shape the command line
reads from ``--config`` files and the web API accepts and stores. Any key
left out falls back to ``DEFAULT_SETTINGS``. ``rate_mode`` selects which
regime overlay is built; overlay start dates default to the loan start.
"""

from __future__ import annotations

import json
import logging
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .data_models import (
    ACCRUAL_MODES,
    FREQUENCIES,
    INTERVENTION_KINDS,
    RECURRENCES,
    REFINANCE_REGIMES,
    FixedOverlay,
    InterestOnlyOverlay,
    Intervention,
    LoanConfig,
    PropertyTrack,
    RefinanceEvent,
    SplitOverlay,
)
from .utils import decimal_from_str, parse_date

logger = logging.getLogger(__name__)

RATE_MODES = ("variable", "fixed", "split", "interest_only")
SPLIT_TYPES = ("percent", "value")

DEFAULT_SETTINGS: Dict[str, Any] = {
    "amount": 375000,
    "rate": 5.29,
    "term_years": 25,
    "term_months": 0,
    "frequency": "monthly",
    "offset": 100000,
    "redraw": 200,
    "fees": 299,
    "loan_start": "2026-01-01",
    "repayment_start": "2026-02-01",
    "repayment_override": None,
    "property_value": 500000,
    "property_growth": 5.0,
    "accrual": "simple",
    "rate_mode": "variable",
    "fixed_years": 2,
    "fixed_rate": 5.89,
    "fixed_start": None,
    "io_years": 5,
    "io_rate": 5.59,
    "io_start": None,
    "split_type": "percent",
    "split_percent": 50,
    "split_value": 0,
    "split_years": 3,
    "split_rate": 5.89,
    "split_start": None,
    "interventions": [],
    "refinance": None,
}


class SettingsError(ValueError):
    """Raised when a settings value cannot be turned into loan inputs."""

    def __init__(self, key: str, message: str) -> None:
        super().__init__(f"{key}: {message}")
        self.key = key


def merge_settings(*layers: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Overlay settings dictionaries on top of the defaults, later ones winning."""
    merged = dict(DEFAULT_SETTINGS)
    for layer in layers:
        if layer:
            merged.update(layer)
    return merged


def load_settings_file(path: Path) -> Dict[str, Any]:
    """Read a JSON settings file; the top level must be an object."""
    with Path(path).open("r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise SettingsError(str(path), "settings file must contain a JSON object")
    return data


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _decimal(settings: Mapping[str, Any], key: str, default: str = "0") -> Decimal:
    value = settings.get(key)
    if _blank(value):
        return Decimal(default)
    try:
        return decimal_from_str(str(value))
    except ValueError as exc:
        raise SettingsError(key, str(exc)) from exc


def _int(settings: Mapping[str, Any], key: str) -> int:
    value = settings.get(key)
    if _blank(value):
        return 0
    try:
        number = decimal_from_str(str(value))
    except ValueError as exc:
        raise SettingsError(key, str(exc)) from exc
    if number != number.to_integral_value():
        raise SettingsError(key, f"must be a whole number; got {value}")
    return int(number)


def _date(settings: Mapping[str, Any], key: str, default: Optional[date] = None) -> Optional[date]:
    value = settings.get(key)
    if _blank(value):
        return default
    if isinstance(value, date):
        return value
    try:
        return parse_date(str(value))
    except ValueError as exc:
        raise SettingsError(key, str(exc)) from exc


def _choice(settings: Mapping[str, Any], key: str, choices: tuple) -> str:
    value = str(settings.get(key) or choices[0]).lower()
    if value not in choices:
        raise SettingsError(key, f"must be one of {', '.join(choices)}; got {value}")
    return value


def _interventions(items: Any) -> List[Intervention]:
    if not items:
        return []
    if not isinstance(items, list):
        raise SettingsError("interventions", "must be a list")
    interventions = []
    for position, item in enumerate(items):
        key = f"interventions[{position}]"
        if not isinstance(item, Mapping):
            raise SettingsError(key, "must be an object")
        kind = str(item.get("type", "")).lower()
        if kind not in INTERVENTION_KINDS:
            raise SettingsError(key, f"type must be one of {', '.join(INTERVENTION_KINDS)}; got {kind}")
        recurrence = "once" if kind == "rate_change" else str(item.get("recurrence") or "once").lower()
        if recurrence not in RECURRENCES:
            raise SettingsError(key, f"recurrence must be one of {', '.join(RECURRENCES)}; got {recurrence}")
        when = _date(item, "date")
        if when is None:
            raise SettingsError(key, "date is required")
        value = _decimal(item, "value")
        if value <= 0:
            logger.warning("Skipping %s with non-positive value %s", key, value)
            continue
        interventions.append(Intervention(date=when, kind=kind, value=value, recurrence=recurrence))
    return interventions


def _refinance(item: Any) -> Optional[RefinanceEvent]:
    if not item:
        return None
    if not isinstance(item, Mapping):
        raise SettingsError("refinance", "must be an object")
    when = _date(item, "date")
    if when is None:
        raise SettingsError("refinance", "date is required")
    term = _int(item, "term_months")
    if term <= 0:
        raise SettingsError("refinance", "term_months must be positive")
    return RefinanceEvent(
        date=when,
        rate=_decimal(item, "rate"),
        term=term,
        cash_out=max(Decimal(0), _decimal(item, "cash_out")),
        regime=_choice(item, "regime", REFINANCE_REGIMES),
        regime_years=_int(item, "regime_years"),
    )


def config_from_settings(settings: Optional[Mapping[str, Any]] = None) -> LoanConfig:
    """Build a ``LoanConfig`` from a settings dictionary.

    Parameters
    ----------
    settings: Mapping
        Settings keyed as in ``DEFAULT_SETTINGS``. Missing keys take their
        default value.

    Raises
    ------
    SettingsError
        If a value has the wrong type or is not one of the allowed choices.
    """
    s = merge_settings(settings)

    loan_start = _date(s, "loan_start")
    if loan_start is None:
        raise SettingsError("loan_start", "a loan start date is required")
    repayment_start = _date(s, "repayment_start", loan_start)

    extra_months = min(11, max(0, _int(s, "term_months")))
    term = _int(s, "term_years") * 12 + extra_months

    override = _decimal(s, "repayment_override")
    rate_mode = _choice(s, "rate_mode", RATE_MODES)

    fixed = interest_only = split = None
    if rate_mode == "fixed":
        fixed = FixedOverlay(
            start_date=_date(s, "fixed_start", loan_start),
            years=_int(s, "fixed_years"),
            rate=_decimal(s, "fixed_rate"),
        )
    elif rate_mode == "interest_only":
        interest_only = InterestOnlyOverlay(
            start_date=_date(s, "io_start", loan_start),
            years=_int(s, "io_years"),
            rate=_decimal(s, "io_rate"),
        )
    elif rate_mode == "split":
        split_percent = _decimal(s, "split_percent", "50")
        if not Decimal(0) <= split_percent <= Decimal(100):
            raise SettingsError("split_percent", "must be between 0 and 100")
        split = SplitOverlay(
            start_date=_date(s, "split_start", loan_start),
            years=_int(s, "split_years"),
            rate=_decimal(s, "split_rate"),
            split_type=_choice(s, "split_type", SPLIT_TYPES),
            split_percent=split_percent,
            split_value=_decimal(s, "split_value"),
        )

    property_value = _decimal(s, "property_value")
    property_track = None
    if property_value > 0:
        property_track = PropertyTrack(value=property_value, growth_rate=_decimal(s, "property_growth"))

    return LoanConfig(
        principal=_decimal(s, "amount"),
        rate=_decimal(s, "rate"),
        term=term,
        loan_start=loan_start,
        repayment_start=repayment_start,
        frequency=_choice(s, "frequency", FREQUENCIES),
        annual_fee=_decimal(s, "fees"),
        repayment_override=override if override > 0 else None,
        offset=_decimal(s, "offset"),
        redraw=_decimal(s, "redraw"),
        fixed=fixed,
        interest_only=interest_only,
        split=split,
        interventions=tuple(_interventions(s.get("interventions"))),
        refinance=_refinance(s.get("refinance")),
        property_track=property_track,
        accrual=_choice(s, "accrual", ACCRUAL_MODES),
    )
