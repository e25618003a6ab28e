"""Regime windows and their precedence.

Each configured overlay (interest-only, fixed, split) becomes a dated
``RegimeWindow``. At most one window is active in a period; when windows
overlap, the first one in ``PRIORITY`` that contains the date wins.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional

from .data_models import FIXED, INTEREST_ONLY, SPLIT, LoanConfig, RefinanceEvent
from .utils import add_years

# Fixed suppresses Split when both windows contain a date; IO overrides both
PRIORITY = (INTEREST_ONLY, FIXED, SPLIT)

START_NOTES = {
    FIXED: "Fixed Started",
    INTEREST_ONLY: "Interest Only Started",
    SPLIT: "Split Started",
}
END_NOTES = {
    FIXED: "Reverted to Variable",
    INTEREST_ONLY: "Interest Only Ended",
    SPLIT: "Split Ended",
}


@dataclass(frozen=True)
class RegimeWindow:
    kind: str
    start: date
    end: date
    rate: Decimal

    def contains(self, dt: date) -> bool:
        return self.start <= dt < self.end


def _window(kind: str, start: Optional[date], years: int, rate: Decimal) -> Optional[RegimeWindow]:
    if start is None or not years or years <= 0:
        return None
    return RegimeWindow(kind=kind, start=start, end=add_years(start, years), rate=rate)


def build_windows(config: LoanConfig) -> List[RegimeWindow]:
    """Return the configured windows ordered by precedence.

    Overlays with a missing start date or a non-positive duration are left
    out.
    """
    candidates = {
        INTEREST_ONLY: config.interest_only,
        SPLIT: config.split,
        FIXED: config.fixed,
    }
    windows = []
    for kind in PRIORITY:
        overlay = candidates[kind]
        if overlay is None:
            continue
        window = _window(kind, overlay.start_date, overlay.years, overlay.rate)
        if window is not None:
            windows.append(window)
    return windows


def refinance_windows(event: RefinanceEvent) -> List[RegimeWindow]:
    """Windows that replace all existing ones when ``event`` fires."""
    if event.regime == FIXED:
        window = _window(FIXED, event.date, event.regime_years, event.rate)
    elif event.regime == INTEREST_ONLY:
        window = _window(INTEREST_ONLY, event.date, event.regime_years, event.rate)
    else:
        window = None
    return [window] if window else []


def resolve_regime(dt: date, windows: Iterable[RegimeWindow]) -> Optional[RegimeWindow]:
    """Return the highest-precedence window containing ``dt``, or None for variable."""
    active = [w for w in windows if w.contains(dt)]
    for kind in PRIORITY:
        for window in active:
            if window.kind == kind:
                return window
    return None


def transition_notes(previous: Optional[str], current: Optional[str]) -> List[str]:
    """Ledger notes for a change of active regime between two periods."""
    notes = []
    if previous is not None:
        notes.append(END_NOTES[previous])
    if current is not None:
        notes.append(START_NOTES[current])
    return notes
