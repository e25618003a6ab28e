"""Data models for the mortgage simulator.

This module defines dataclasses representing the different entities used by
the simulator: the loan configuration and its optional regime overlays
(fixed, interest-only and split), interventions, a refinance event, the
tracked property, individual ledger entries and the results produced by the
engine. Using dataclasses makes it easy to construct, inspect and serialize
these structures.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

FREQUENCIES = ("monthly", "fortnightly", "weekly")
ACCRUAL_MODES = ("simple", "actual_days")
INTERVENTION_KINDS = ("lump_sum", "rate_change", "offset_add", "redraw_add")
RECURRENCES = ("once", "weekly", "fortnightly", "monthly", "yearly")
REFINANCE_REGIMES = ("variable", "fixed", "interest_only")

# Regime kinds, also used as keys for regime markers
FIXED = "fixed"
INTEREST_ONLY = "interest_only"
SPLIT = "split"

LVR_THRESHOLDS = (("lvr90", 90), ("lvr80", 80), ("lvr50", 50), ("lvr25", 25))

ZERO = Decimal("0")


@dataclass(frozen=True)
class FixedOverlay:
    """A fixed-rate window starting at ``start_date`` for ``years`` years."""

    start_date: Optional[date]
    years: int
    rate: Decimal


@dataclass(frozen=True)
class InterestOnlyOverlay:
    """An interest-only window; no principal is repaid while it is active."""

    start_date: Optional[date]
    years: int
    rate: Decimal


@dataclass(frozen=True)
class SplitOverlay:
    """A split loan window.

    Attributes
    ----------
    split_type: str
        ``"percent"`` sizes the fixed portion as ``split_percent`` of the
        original principal, ``"value"`` uses the absolute ``split_value``.
    rate: Decimal
        The rate charged on the fixed portion. The variable portion accrues at
        the loan's variable rate.
    """

    start_date: Optional[date]
    years: int
    rate: Decimal
    split_type: str = "percent"
    split_percent: Decimal = Decimal("50")
    split_value: Decimal = ZERO

    def fixed_amount(self, principal: Decimal) -> Decimal:
        if self.split_type == "value":
            return min(self.split_value, principal)
        return principal * self.split_percent / Decimal(100)

    def split_amounts(self, principal: Decimal) -> Dict[str, Decimal]:
        """Fixed and variable portions of ``principal`` with their percentages."""
        fixed = self.fixed_amount(principal)
        fixed_percent = fixed / principal * Decimal(100) if principal > 0 else ZERO
        return {
            "fixed_amount": fixed,
            "variable_amount": principal - fixed,
            "fixed_percent": fixed_percent,
            "variable_percent": Decimal(100) - fixed_percent,
        }


@dataclass(frozen=True)
class Intervention:
    """A dated event applied during the period whose window contains ``date``.

    Attributes
    ----------
    kind: str
        ``"lump_sum"`` reduces the balance, ``"rate_change"`` sets a new
        variable rate (``value`` in percent), ``"offset_add"`` and
        ``"redraw_add"`` top up the respective facility.
    recurrence: str
        One of ``once``, ``weekly``, ``fortnightly``, ``monthly`` or
        ``yearly``. Rate changes never recur.
    """

    date: date
    kind: str
    value: Decimal
    recurrence: str = "once"


@dataclass(frozen=True)
class RefinanceEvent:
    """Replaces the remaining loan on ``date`` with a new rate, term and regime."""

    date: date
    rate: Decimal
    term: int  # new term in months, counted from the refinance period
    cash_out: Decimal = ZERO
    regime: str = "variable"  # 'variable', 'fixed' or 'interest_only'
    regime_years: int = 0


@dataclass(frozen=True)
class PropertyTrack:
    value: Decimal
    growth_rate: Decimal  # annual growth in percent


@dataclass(frozen=True)
class LoanConfig:
    """Configuration of a mortgage.

    This configuration collects all user inputs into a single object, making
    it easy to pass around and derive variants from (the engine runs a
    baseline and a comparison path from modified copies).
    """

    principal: Decimal
    rate: Decimal  # nominal annual variable rate in percent
    term: int  # contract term in months
    loan_start: date
    repayment_start: Optional[date] = None
    frequency: str = "monthly"
    annual_fee: Decimal = ZERO
    repayment_override: Optional[Decimal] = None
    offset: Decimal = ZERO
    redraw: Decimal = ZERO
    fixed: Optional[FixedOverlay] = None
    interest_only: Optional[InterestOnlyOverlay] = None
    split: Optional[SplitOverlay] = None
    interventions: Tuple[Intervention, ...] = ()
    refinance: Optional[RefinanceEvent] = None
    property_track: Optional[PropertyTrack] = None
    accrual: str = "simple"  # 'simple' or 'actual_days'

    @property
    def first_repayment(self) -> date:
        return self.repayment_start or self.loan_start


@dataclass(frozen=True)
class LedgerEntry:
    """One simulated period.

    ``balance`` is the closing balance after the period's payment. Notes
    describe the transitions that happened during the period (regime
    changes, fees, lump sums, rate changes, refinance); offset and redraw
    top-ups are noted separately.
    """

    period: int
    date: date
    balance: Decimal
    interest: Decimal
    principal: Decimal
    payment: Decimal
    offset: Decimal
    redraw: Decimal
    rate: Decimal
    variable_rate: Decimal
    is_fixed: bool = False
    is_split: bool = False
    is_interest_only: bool = False
    is_refinance: bool = False
    split_rate: Optional[Decimal] = None
    split_fixed_payment: Decimal = ZERO
    split_variable_payment: Decimal = ZERO
    property_value: Decimal = ZERO
    lvr: Optional[Decimal] = None
    equity: Decimal = ZERO
    note: str = ""
    offset_note: str = ""
    redraw_note: str = ""


@dataclass(frozen=True)
class Milestone:
    index: int
    date: date
    property_value: Decimal
    balance: Decimal


@dataclass(frozen=True)
class RegimeMarker:
    """First ledger index dated on or after the end of a regime window."""

    kind: str
    index: int
    date: date


@dataclass
class SimulationResult:
    history: List[LedgerEntry] = field(default_factory=list)
    total_interest: Decimal = ZERO
    neutrality_date: Optional[date] = None
    neutrality_index: int = -1
    loan_end_date: Optional[date] = None
    milestones: Dict[str, Optional[Milestone]] = field(
        default_factory=lambda: {key: None for key, _ in LVR_THRESHOLDS}
    )
    regime_markers: List[RegimeMarker] = field(default_factory=list)
    refinance_index: int = -1

    @property
    def total_repaid(self) -> Decimal:
        return sum((entry.payment for entry in self.history), ZERO)

    def marker(self, kind: str) -> Optional[RegimeMarker]:
        for marker in self.regime_markers:
            if marker.kind == kind:
                return marker
        return None


@dataclass
class CalculationResult:
    """Everything a ``calculate`` call produces, published together."""

    config: LoanConfig
    periodic_repayment: Decimal = ZERO
    split_fixed_repayment: Decimal = ZERO
    split_variable_repayment: Decimal = ZERO
    result: SimulationResult = field(default_factory=SimulationResult)
    baseline: SimulationResult = field(default_factory=SimulationResult)
    without_refinance: SimulationResult = field(default_factory=SimulationResult)
    months_saved: int = 0

    @property
    def split_total_repayment(self) -> Decimal:
        return self.split_fixed_repayment + self.split_variable_repayment

    @property
    def history(self) -> List[LedgerEntry]:
        return self.result.history

    @property
    def total_interest(self) -> Decimal:
        return self.result.total_interest

    @property
    def total_repaid(self) -> Decimal:
        return self.result.total_repaid

    @property
    def baseline_interest(self) -> Decimal:
        return self.baseline.total_interest

    @property
    def interest_saved(self) -> Decimal:
        return self.baseline.total_interest - self.result.total_interest

    @property
    def refinance_interest_delta(self) -> Decimal:
        """Interest with the refinance minus interest without it."""
        return self.result.total_interest - self.without_refinance.total_interest

    def summary(self) -> Dict[str, Any]:
        """Aggregate metrics as plain floats and ISO date strings."""

        def iso(value: Optional[date]) -> Optional[str]:
            return value.isoformat() if value else None

        milestones = {
            key: (
                {
                    "index": m.index,
                    "date": m.date.isoformat(),
                    "property_value": float(m.property_value),
                    "balance": float(m.balance),
                }
                if m
                else None
            )
            for key, m in self.result.milestones.items()
        }
        split = None
        if self.config.split is not None:
            split = {k: float(v) for k, v in self.config.split.split_amounts(self.config.principal).items()}
        return {
            "principal": float(self.config.principal),
            "split": split,
            "periodic_repayment": float(self.periodic_repayment),
            "split_fixed_repayment": float(self.split_fixed_repayment),
            "split_variable_repayment": float(self.split_variable_repayment),
            "split_total_repayment": float(self.split_total_repayment),
            "total_interest": float(self.total_interest),
            "total_repaid": float(self.total_repaid),
            "baseline_interest": float(self.baseline_interest),
            "interest_saved": float(self.interest_saved),
            "interest_without_refinance": float(self.without_refinance.total_interest),
            "refinance_interest_delta": float(self.refinance_interest_delta),
            "months_saved": self.months_saved,
            "periods": len(self.history),
            "neutrality_date": iso(self.result.neutrality_date),
            "neutrality_index": self.result.neutrality_index,
            "loan_end_date": iso(self.result.loan_end_date),
            "refinance_index": self.result.refinance_index,
            "milestones": milestones,
            "regime_markers": [
                {"kind": m.kind, "index": m.index, "date": m.date.isoformat()}
                for m in self.result.regime_markers
            ],
        }
