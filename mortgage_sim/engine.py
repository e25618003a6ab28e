"""Core calculation engine for the mortgage simulator.

This module implements the financial logic required to project a mortgage
period by period. It supports fixed, interest-only and split regime windows,
offset and redraw facilities, lump sums, rate changes, annual fees, property
growth tracking and a single refinance event. Results are returned as a
``CalculationResult`` holding the authoritative ledger along with a baseline
run (no facilities, interventions or fees) and a run without the refinance.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import date, timedelta
from decimal import Decimal, getcontext
from typing import Dict, Hashable, Iterable, List, Optional

from .data_models import (
    FIXED,
    INTEREST_ONLY,
    LVR_THRESHOLDS,
    SPLIT,
    ZERO,
    CalculationResult,
    Intervention,
    LedgerEntry,
    LoanConfig,
    Milestone,
    RefinanceEvent,
    RegimeMarker,
    SimulationResult,
)
from .regimes import RegimeWindow, build_windows, refinance_windows, resolve_regime, transition_notes
from .utils import (
    DAYS_PER_PERIOD,
    add_months,
    add_years,
    format_currency,
    months_between,
    period_date,
    periods_per_year,
    round_money,
)

getcontext().prec = 28  # increase precision for financial calculations

logger = logging.getLogger(__name__)

MAX_YEARS = 60
HUNDRED = Decimal(100)
ONE = Decimal(1)


def calculate_repayment(principal: Decimal, annual_rate: Decimal, periods_remaining: int, ppy: int) -> Decimal:
    """Return the periodic payment that amortizes ``principal``.

    The formula is:

        payment = P * (i * (1 + i)^n) / ((1 + i)^n - 1)

    where ``P`` is the principal, ``i`` is the per-period rate
    (``annual_rate / 100 / ppy``) and ``n`` is the number of remaining
    periods. When the rate is zero, the payment simplifies to ``P / n``.
    Nothing is owed for a non-positive principal or period count.
    """
    if principal <= 0 or periods_remaining <= 0:
        return ZERO
    rate_per_period = annual_rate / HUNDRED / Decimal(ppy)
    if rate_per_period == 0:
        return principal / Decimal(periods_remaining)
    factor = (1 + rate_per_period) ** periods_remaining
    return principal * (rate_per_period * factor) / (factor - 1)


def contract_periods(term_months: int, ppy: int) -> int:
    """Number of repayment periods in a term, rounded up to whole periods."""
    return -(-term_months * ppy // 12)


def expand_intervention(item: Intervention, base_date: date) -> List[Intervention]:
    """Expand a recurring intervention into dated occurrences.

    Occurrences are generated from ``item.date`` up to 60 years after
    ``base_date``. One-off items and rate changes are returned as is.
    """
    if item.recurrence == "once" or item.kind == "rate_change":
        return [item]
    limit = add_years(base_date, MAX_YEARS)
    occurrences: List[Intervention] = []
    step = 0
    current = item.date
    while current <= limit:
        occurrences.append(replace(item, date=current))
        step += 1
        if item.recurrence == "weekly":
            current = item.date + timedelta(days=7 * step)
        elif item.recurrence == "fortnightly":
            current = item.date + timedelta(days=14 * step)
        elif item.recurrence == "monthly":
            current = add_months(item.date, step)
        elif item.recurrence == "yearly":
            current = add_years(item.date, step)
        else:
            break
    return occurrences


def expand_interventions(interventions: Iterable[Intervention], base_date: date) -> List[Intervention]:
    expanded: List[Intervention] = []
    for item in interventions:
        expanded.extend(expand_intervention(item, base_date))
    return expanded


def _period_key(dt: date, config: LoanConfig) -> Optional[Hashable]:
    """Key of the period whose window contains ``dt``.

    Monthly periods are keyed by calendar month; weekly and fortnightly
    periods by their 1-based index from the first repayment. Dates before the
    first repayment have no period.
    """
    if config.frequency == "monthly":
        return (dt.year, dt.month)
    days = (dt - config.first_repayment).days
    if days < 0:
        return None
    return days // DAYS_PER_PERIOD[config.frequency] + 1


def _prepare_interventions(occurrences: Iterable[Intervention], config: LoanConfig) -> Dict[Hashable, List[Intervention]]:
    """Group occurrences by period key, keeping encounter order."""
    mapping: Dict[Hashable, List[Intervention]] = {}
    for occurrence in occurrences:
        key = _period_key(occurrence.date, config)
        if key is not None:
            mapping.setdefault(key, []).append(occurrence)
    return mapping


@dataclass(frozen=True)
class RepaymentPlan:
    """Payments derived from the configuration before any simulation runs."""

    periodic: Decimal
    split_fixed: Decimal = ZERO
    split_variable: Decimal = ZERO
    initial: Decimal = ZERO

    @property
    def split_total(self) -> Decimal:
        return self.split_fixed + self.split_variable


def plan_repayments(config: LoanConfig) -> RepaymentPlan:
    """Resolve the rate at the first repayment and the standing payments.

    If the loan starts interest-only, the periodic repayment is the first
    period's interest. Split repayments are sized over the full contract
    term: the fixed portion at the split rate, the rest at the variable rate.
    """
    ppy = periods_per_year(config.frequency)
    periods = contract_periods(config.term, ppy)
    windows = build_windows(config)
    window = resolve_regime(config.first_repayment, windows)
    regime = window.kind if window else None
    start_rate = window.rate if regime in (FIXED, INTEREST_ONLY) else config.rate

    if regime == INTEREST_ONLY:
        periodic = round_money(config.principal * start_rate / HUNDRED / Decimal(ppy))
    else:
        periodic = round_money(calculate_repayment(config.principal, start_rate, periods, ppy))

    split_fixed = split_variable = ZERO
    if config.split is not None and any(w.kind == SPLIT for w in windows):
        fixed_amount = config.split.fixed_amount(config.principal)
        variable_amount = config.principal - fixed_amount
        split_fixed = round_money(calculate_repayment(fixed_amount, config.split.rate, periods, ppy))
        split_variable = round_money(calculate_repayment(variable_amount, config.rate, periods, ppy))

    if config.repayment_override:
        initial = config.repayment_override
    elif regime == SPLIT:
        initial = split_fixed + split_variable
    else:
        initial = periodic
    return RepaymentPlan(periodic=periodic, split_fixed=split_fixed, split_variable=split_variable, initial=initial)


@dataclass(frozen=True)
class _RunContext:
    """Inputs fixed for the duration of one simulation run."""

    config: LoanConfig
    plan: RepaymentPlan
    ppy: int
    windows: List[RegimeWindow]
    split_amount: Decimal
    interventions: Dict[Hashable, List[Intervention]]
    override: Optional[Decimal]
    growth_factor: Decimal
    initial_lvr: Optional[Decimal]
    refinance_key: Optional[Hashable]

    def period_key(self, dt: date) -> Optional[Hashable]:
        return _period_key(dt, self.config)

    def accrue(self, amount: Decimal, annual_rate: Decimal, days: int) -> Decimal:
        if amount <= 0:
            return ZERO
        if self.config.accrual == "actual_days":
            return amount * (annual_rate / HUNDRED / Decimal(365)) * Decimal(days)
        return amount * (annual_rate / HUNDRED) / Decimal(self.ppy)


@dataclass
class SimulationState:
    """Mutable state carried from one period to the next within a single run."""

    balance: Decimal
    offset: Decimal
    redraw: Decimal
    rate: Decimal  # prevailing variable rate
    payment: Decimal  # standing periodic payment
    windows: List[RegimeWindow]
    contract_periods: int
    cap: int
    property_value: Decimal
    last_fee_year: int
    previous_regime: Optional[str] = None
    total_interest: Decimal = ZERO
    neutrality_date: Optional[date] = None
    loan_end_date: Optional[date] = None
    refinanced: bool = False
    refinance_index: int = -1
    history: List[LedgerEntry] = field(default_factory=list)
    milestones: Dict[str, Optional[Milestone]] = field(
        default_factory=lambda: {key: None for key, _ in LVR_THRESHOLDS}
    )


def _new_context(config: LoanConfig, plan: RepaymentPlan) -> _RunContext:
    ppy = periods_per_year(config.frequency)
    windows = build_windows(config)
    has_split = config.split is not None and any(w.kind == SPLIT for w in windows)
    split_amount = config.split.fixed_amount(config.principal) if has_split else ZERO
    occurrences = expand_interventions(config.interventions, config.first_repayment)

    growth = config.property_track.growth_rate if config.property_track else ZERO
    if config.frequency == "monthly":
        growth_factor = ONE + growth / HUNDRED / Decimal(12)
    else:
        growth_factor = ONE + growth / HUNDRED / Decimal(ppy)
    value = config.property_track.value if config.property_track else ZERO
    initial_lvr = config.principal / value * HUNDRED if value > 0 else None

    override = config.repayment_override if config.repayment_override and config.repayment_override > 0 else None
    refinance_key = _period_key(config.refinance.date, config) if config.refinance else None
    return _RunContext(
        config=config,
        plan=plan,
        ppy=ppy,
        windows=windows,
        split_amount=split_amount,
        interventions=_prepare_interventions(occurrences, config),
        override=override,
        growth_factor=growth_factor,
        initial_lvr=initial_lvr,
        refinance_key=refinance_key,
    )


def _refinance_pending(ctx: _RunContext, state: SimulationState, key: Hashable) -> bool:
    return ctx.refinance_key is not None and not state.refinanced and ctx.refinance_key >= key


def _apply_refinance(ctx: _RunContext, state: SimulationState, period: int) -> None:
    """Fire the refinance at the end of ``period`` and replace its ledger entry."""
    event: RefinanceEvent = ctx.config.refinance
    state.refinanced = True
    if event.cash_out > 0:
        state.balance += event.cash_out
        note = f"Refinance +{format_currency(event.cash_out)}"
    else:
        note = "Refinance (no cash out)"

    new_periods = contract_periods(event.term, ctx.ppy)
    state.contract_periods = period + new_periods
    state.cap = max(state.cap, state.contract_periods)
    state.rate = event.rate
    state.windows = refinance_windows(event)
    state.previous_regime = None

    if ctx.override is not None:
        state.payment = ctx.override
    elif event.regime == INTEREST_ONLY and state.windows:
        state.payment = round_money(state.balance * event.rate / HUNDRED / Decimal(ctx.ppy))
    else:
        state.payment = round_money(calculate_repayment(state.balance, event.rate, new_periods, ctx.ppy))

    if state.balance > 0:
        state.loan_end_date = None

    last = state.history[-1]
    value = last.property_value
    state.history[-1] = replace(
        last,
        balance=state.balance,
        rate=event.rate,
        variable_rate=event.rate,
        payment=state.payment,
        is_fixed=False,
        is_split=False,
        is_interest_only=False,
        is_refinance=True,
        split_rate=None,
        split_fixed_payment=ZERO,
        split_variable_payment=ZERO,
        lvr=state.balance / value * HUNDRED if value > 0 else None,
        equity=value - state.balance,
        note="; ".join(n for n in (last.note, note) if n),
    )
    state.refinance_index = len(state.history) - 1
    logger.debug(
        "Refinance fired in period %d: balance %s, rate %s%%, %d new periods, payment %s",
        period, state.balance, event.rate, new_periods, state.payment,
    )


def _step(ctx: _RunContext, state: SimulationState, period: int) -> bool:
    """Advance the simulation by one period.

    Returns False when the loan was already paid off and nothing is pending,
    which ends the run without recording an entry.
    """
    config = ctx.config
    current = period_date(config.first_repayment, config.frequency, period)
    key = ctx.period_key(current)
    # Paid off in an earlier period; only a pending refinance keeps the run going
    paid_off = state.balance <= 0
    if paid_off and not _refinance_pending(ctx, state, key):
        return False
    window = resolve_regime(current, state.windows)
    regime = window.kind if window else None
    notes: List[str] = []
    offset_notes: List[str] = []
    redraw_notes: List[str] = []

    # Regime transitions re-amortize the balance over the remaining contract
    if period > 1 and regime != state.previous_regime:
        notes.extend(transition_notes(state.previous_regime, regime))
        remaining = state.contract_periods - period + 1
        if remaining > 0 and ctx.override is None:
            if regime == FIXED:
                state.payment = round_money(calculate_repayment(state.balance, window.rate, remaining, ctx.ppy))
            elif regime == SPLIT:
                ratio = state.balance / max(ONE, config.principal)
                state.payment = round_money(ctx.plan.split_total * ratio)
            elif regime is None:
                state.payment = round_money(calculate_repayment(state.balance, state.rate, remaining, ctx.ppy))
        logger.debug("Period %d: regime %s -> %s, payment %s", period, state.previous_regime, regime, state.payment)
    state.previous_regime = regime

    # Fees are capitalized once per year, from the loan-start month onwards
    fee = config.annual_fee
    if fee > 0 and period > 1 and current.year > state.last_fee_year and current.month >= config.loan_start.month:
        state.balance += fee
        notes.append(f"Fee +{format_currency(fee)}")
        state.last_fee_year = current.year

    for event in ctx.interventions.get(key, ()):
        if event.kind == "lump_sum":
            state.balance -= event.value
            notes.append(f"Lump -{format_currency(event.value)}")
        elif event.kind == "rate_change":
            state.rate = event.value
            notes.append(f"Rate→{event.value}%")
            remaining = state.contract_periods - period + 1
            if regime != FIXED and remaining > 0 and ctx.override is None:
                state.payment = round_money(calculate_repayment(state.balance, state.rate, remaining, ctx.ppy))
        elif event.kind == "offset_add":
            state.offset += event.value
            offset_notes.append(f"+{format_currency(event.value)}")
        elif event.kind == "redraw_add":
            state.redraw += event.value
            redraw_notes.append(f"+{format_currency(event.value)}")

    effective_rate = window.rate if regime in (FIXED, INTEREST_ONLY) else state.rate

    if state.balance < 0:
        state.balance = ZERO
    facilities = state.offset + state.redraw
    if state.neutrality_date is None and state.balance > 0 and facilities >= state.balance:
        state.neutrality_date = current

    days = (period_date(config.first_repayment, config.frequency, period + 1) - current).days
    effective_principal = max(ZERO, state.balance - facilities)
    if regime == SPLIT:
        split_ratio = ctx.split_amount / max(ONE, config.principal)
        split_portion = min(state.balance * split_ratio, state.balance)
        facility_share = facilities * split_portion / state.balance if state.balance > 0 else ZERO
        effective_split = max(ZERO, split_portion - facility_share)
        effective_variable = max(ZERO, effective_principal - effective_split)
        interest = ctx.accrue(effective_split, window.rate, days) + ctx.accrue(effective_variable, state.rate, days)
    else:
        interest = ctx.accrue(effective_principal, effective_rate, days)

    if paid_off and state.balance <= 0:
        # Hold at zero until the refinance fires
        interest = payment = principal_paid = ZERO
    else:
        if regime == INTEREST_ONLY and ctx.override is None:
            state.payment = interest
        payment = state.payment
        principal_paid = ZERO if regime == INTEREST_ONLY else payment - interest
        if state.balance <= principal_paid:
            principal_paid = state.balance
            payment = principal_paid + interest
            state.balance = ZERO
            state.loan_end_date = current
            logger.debug("Loan paid off in period %d (%s)", period, current)
        else:
            state.balance -= principal_paid
    state.total_interest += interest

    split_fixed_payment = split_variable_payment = ZERO
    if regime == SPLIT and ctx.plan.split_total > 0:
        share = payment / ctx.plan.split_total
        split_fixed_payment = ctx.plan.split_fixed * share
        split_variable_payment = ctx.plan.split_variable * share

    value = state.property_value
    lvr = state.balance / value * HUNDRED if value > 0 else None
    state.history.append(
        LedgerEntry(
            period=period,
            date=current,
            balance=state.balance,
            interest=interest,
            principal=principal_paid,
            payment=payment,
            offset=state.offset,
            redraw=state.redraw,
            rate=effective_rate,
            variable_rate=state.rate,
            is_fixed=regime == FIXED,
            is_split=regime == SPLIT,
            is_interest_only=regime == INTEREST_ONLY,
            split_rate=window.rate if regime == SPLIT else None,
            split_fixed_payment=split_fixed_payment,
            split_variable_payment=split_variable_payment,
            property_value=value,
            lvr=lvr,
            equity=value - state.balance,
            note="; ".join(notes),
            offset_note="; ".join(offset_notes),
            redraw_note="; ".join(redraw_notes),
        )
    )

    if lvr is not None and ctx.initial_lvr is not None and period > 1:
        index = len(state.history) - 1
        for name, threshold in LVR_THRESHOLDS:
            if state.milestones[name] is None and lvr <= threshold and ctx.initial_lvr > threshold:
                state.milestones[name] = Milestone(index=index, date=current, property_value=value, balance=state.balance)

    if ctx.refinance_key is not None and not state.refinanced and key == ctx.refinance_key:
        _apply_refinance(ctx, state, period)

    state.property_value *= ctx.growth_factor
    return True


def _regime_markers(history: List[LedgerEntry], windows: Iterable[RegimeWindow]) -> List[RegimeMarker]:
    markers = []
    for window in windows:
        for index, entry in enumerate(history):
            if entry.date >= window.end:
                markers.append(RegimeMarker(kind=window.kind, index=index, date=window.end))
                break
    return markers


def run_simulation(config: LoanConfig, plan: Optional[RepaymentPlan] = None) -> SimulationResult:
    """Simulate the loan period by period.

    Parameters
    ----------
    config: LoanConfig
        The loan configuration. Facilities, interventions, fees and the
        refinance are all taken from it; derive a modified copy to switch any
        of them off.
    plan: RepaymentPlan
        Standing payments to start from. Computed from ``config`` when
        omitted.

    Returns
    -------
    SimulationResult
        The ledger (one entry per period) and derived markers. An empty
        result is returned for a non-positive principal or term.
    """
    if config.principal <= 0 or config.term <= 0:
        return SimulationResult()
    if plan is None:
        plan = plan_repayments(config)
    ctx = _new_context(config, plan)
    state = SimulationState(
        balance=config.principal,
        offset=config.offset,
        redraw=config.redraw,
        rate=config.rate,
        payment=plan.initial,
        windows=list(ctx.windows),
        contract_periods=contract_periods(config.term, ctx.ppy),
        cap=ctx.ppy * MAX_YEARS,
        property_value=config.property_track.value if config.property_track else ZERO,
        last_fee_year=config.loan_start.year,
    )
    logger.debug(
        "Simulating %s at %s%% over %d %s periods, payment %s",
        config.principal, config.rate, state.contract_periods, config.frequency, state.payment,
    )

    period = 0
    while period < state.cap:
        period += 1
        if not _step(ctx, state, period):
            break

    history = state.history
    windows_in_force = list(ctx.windows)
    if state.refinanced:
        cutoff = config.refinance.date
        windows_in_force = [w for w in windows_in_force if w.end <= cutoff] + state.windows

    neutrality_index = -1
    if state.neutrality_date is not None:
        for index, entry in enumerate(history):
            if entry.date <= state.neutrality_date:
                neutrality_index = index

    return SimulationResult(
        history=history,
        total_interest=state.total_interest,
        neutrality_date=state.neutrality_date,
        neutrality_index=neutrality_index,
        loan_end_date=state.loan_end_date,
        milestones=state.milestones,
        regime_markers=_regime_markers(history, windows_in_force),
        refinance_index=state.refinance_index,
    )


def calculate(config: LoanConfig) -> CalculationResult:
    """Compute the full projection for a loan.

    Three independent simulations are run from the same repayment plan: a
    baseline without offset, redraw, interventions or fees; a comparison path
    with the refinance removed; and the authoritative run with the full
    configuration. Months saved compares the actual payoff date, measured
    from the loan start, with the contractual term.
    """
    if config.principal <= 0 or config.term <= 0:
        return CalculationResult(config=config)

    plan = plan_repayments(config)
    baseline = run_simulation(
        replace(config, offset=ZERO, redraw=ZERO, annual_fee=ZERO, interventions=()), plan
    )
    without_refinance = run_simulation(replace(config, refinance=None), plan)
    result = run_simulation(config, plan)

    months_saved = 0
    if result.history and result.loan_end_date is not None:
        actual_months = months_between(config.loan_start, result.loan_end_date)
        months_saved = max(0, config.term - actual_months)

    return CalculationResult(
        config=config,
        periodic_repayment=plan.periodic,
        split_fixed_repayment=plan.split_fixed,
        split_variable_repayment=plan.split_variable,
        result=result,
        baseline=baseline,
        without_refinance=without_refinance,
        months_saved=months_saved,
    )
