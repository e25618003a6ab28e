"""
Unit tests for intervention expansion, bucketing and application.
"""

import unittest
from datetime import date, timedelta
from decimal import Decimal

from mortgage_sim.data_models import FixedOverlay, Intervention
from mortgage_sim.engine import (
    calculate,
    calculate_repayment,
    expand_intervention,
    expand_interventions,
    run_simulation,
)
from mortgage_sim.utils import round_money

from utilities import LOAN_START, REPAYMENT_START, make_config


class TestExpansion(unittest.TestCase):

    def test_once_is_unchanged(self):
        item = Intervention(date=date(2027, 3, 15), kind="lump_sum", value=Decimal("5000"))
        self.assertEqual(expand_intervention(item, REPAYMENT_START), [item])

    def test_rate_changes_never_recur(self):
        item = Intervention(date=date(2027, 3, 15), kind="rate_change", value=Decimal("6"), recurrence="yearly")
        self.assertEqual(expand_intervention(item, REPAYMENT_START), [item])

    def test_yearly_runs_sixty_years(self):
        item = Intervention(date=REPAYMENT_START, kind="lump_sum", value=Decimal("5000"), recurrence="yearly")
        occurrences = expand_intervention(item, REPAYMENT_START)
        self.assertEqual(len(occurrences), 61)
        self.assertEqual(occurrences[-1].date, date(2086, 2, 1))
        self.assertTrue(all(o.value == Decimal("5000") and o.kind == "lump_sum" for o in occurrences))

    def test_monthly_clamps_to_month_end(self):
        item = Intervention(date=date(2026, 1, 31), kind="offset_add", value=Decimal("100"), recurrence="monthly")
        dates = [o.date for o in expand_intervention(item, REPAYMENT_START)[:4]]
        self.assertEqual(dates, [date(2026, 1, 31), date(2026, 2, 28), date(2026, 3, 31), date(2026, 4, 30)])

    def test_weekly_and_fortnightly_spacing(self):
        for recurrence, days in (("weekly", 7), ("fortnightly", 14)):
            with self.subTest(recurrence=recurrence):
                item = Intervention(date=REPAYMENT_START, kind="redraw_add", value=Decimal("50"), recurrence=recurrence)
                occurrences = expand_intervention(item, REPAYMENT_START)
                gaps = {b.date - a.date for a, b in zip(occurrences, occurrences[1:])}
                self.assertEqual(gaps, {timedelta(days=days)})

    def test_expand_many_keeps_order(self):
        first = Intervention(date=date(2027, 1, 1), kind="lump_sum", value=Decimal("1"))
        second = Intervention(date=date(2026, 6, 1), kind="offset_add", value=Decimal("2"))
        self.assertEqual(expand_interventions([first, second], REPAYMENT_START), [first, second])


class TestApplication(unittest.TestCase):

    def test_lump_sum_reduces_balance_before_interest(self):
        lump = Intervention(date=date(2027, 3, 15), kind="lump_sum", value=Decimal("50000"))
        history = run_simulation(make_config(interventions=(lump,))).history
        entry = history[13]
        self.assertEqual(entry.date, date(2027, 3, 1))
        self.assertEqual(entry.note, "Lump -$50,000")
        opening = history[12].balance - Decimal("50000")
        self.assertAlmostEqual(float(entry.interest), float(opening * Decimal("0.0529") / 12), places=6)
        self.assertEqual(entry.balance, opening - entry.principal)

    def test_lump_sum_saves_interest(self):
        lump = Intervention(date=date(2027, 3, 15), kind="lump_sum", value=Decimal("50000"))
        with_lump = run_simulation(make_config(interventions=(lump,)))
        without = run_simulation(make_config())
        self.assertLess(with_lump.total_interest, without.total_interest)

    def test_lump_sum_clearing_balance_records_payoff(self):
        lump = Intervention(date=date(2027, 3, 10), kind="lump_sum", value=Decimal("400000"))
        config = make_config(interventions=(lump,))
        result = run_simulation(config)
        self.assertEqual(len(result.history), 14)
        payoff = result.history[-1]
        self.assertEqual(payoff.date, date(2027, 3, 1))
        self.assertEqual(payoff.note, "Lump -$400,000")
        self.assertEqual(payoff.balance, 0)
        self.assertEqual(payoff.interest, 0)
        self.assertEqual(payoff.principal, 0)
        self.assertEqual(payoff.payment, 0)
        self.assertEqual(result.loan_end_date, date(2027, 3, 1))
        self.assertEqual(calculate(config).months_saved, 286)

    def test_lump_sum_leaving_less_than_a_payment(self):
        plain = run_simulation(make_config()).history
        lump = Intervention(date=date(2027, 3, 10), kind="lump_sum", value=plain[12].balance - Decimal("100"))
        result = run_simulation(make_config(interventions=(lump,)))
        payoff = result.history[-1]
        self.assertEqual(len(result.history), 14)
        self.assertEqual(payoff.balance, 0)
        self.assertEqual(payoff.principal, Decimal("100"))
        self.assertEqual(payoff.payment, payoff.principal + payoff.interest)
        self.assertAlmostEqual(float(payoff.interest), 100 * 0.0529 / 12, places=6)
        self.assertEqual(result.loan_end_date, date(2027, 3, 1))

    def test_same_period_events_apply_in_order(self):
        events = (
            Intervention(date=date(2026, 4, 3), kind="lump_sum", value=Decimal("1000")),
            Intervention(date=date(2026, 4, 20), kind="lump_sum", value=Decimal("2000")),
        )
        history = run_simulation(make_config(interventions=events)).history
        self.assertEqual(history[2].note, "Lump -$1,000; Lump -$2,000")

    def test_recurring_offset_top_up(self):
        top_up = Intervention(date=REPAYMENT_START, kind="offset_add", value=Decimal("1000"), recurrence="monthly")
        history = run_simulation(make_config(interventions=(top_up,))).history
        self.assertEqual(history[0].offset, Decimal("1000"))
        self.assertEqual(history[11].offset, Decimal("12000"))
        self.assertEqual(history[0].offset_note, "+$1,000")
        self.assertEqual(history[0].note, "")

    def test_redraw_top_up(self):
        top_up = Intervention(date=date(2026, 5, 1), kind="redraw_add", value=Decimal("10000"))
        history = run_simulation(make_config(interventions=(top_up,))).history
        self.assertEqual(history[2].redraw, 0)
        self.assertEqual(history[3].redraw, Decimal("10000"))
        self.assertEqual(history[3].redraw_note, "+$10,000")

    def test_rate_change_re_amortizes(self):
        change = Intervention(date=date(2028, 6, 10), kind="rate_change", value=Decimal("6.0"))
        history = run_simulation(make_config(interventions=(change,))).history
        entry = history[28]
        self.assertEqual(entry.date, date(2028, 6, 1))
        self.assertEqual(entry.note, "Rate→6.0%")
        self.assertEqual(entry.rate, Decimal("6.0"))
        self.assertEqual(history[27].rate, Decimal("5.29"))
        opening = history[27].balance
        self.assertEqual(entry.payment, round_money(calculate_repayment(opening, Decimal("6.0"), 272, 12)))
        self.assertAlmostEqual(float(entry.interest), float(opening * Decimal("0.06") / 12), places=6)

    def test_rate_change_during_fixed_waits_for_reversion(self):
        config = make_config(
            fixed=FixedOverlay(start_date=LOAN_START, years=2, rate=Decimal("6.5")),
            interventions=(Intervention(date=date(2027, 1, 1), kind="rate_change", value=Decimal("7.0")),),
        )
        history = run_simulation(config).history
        changed = history[11]
        self.assertTrue(changed.is_fixed)
        self.assertEqual(changed.rate, Decimal("6.5"))
        self.assertEqual(changed.variable_rate, Decimal("7.0"))
        self.assertEqual(changed.payment, history[10].payment)
        reverted = history[23]
        self.assertEqual(reverted.rate, Decimal("7.0"))
        self.assertEqual(reverted.payment, round_money(calculate_repayment(history[22].balance, Decimal("7.0"), 277, 12)))

    def test_rate_change_keeps_override(self):
        config = make_config(
            repayment_override=Decimal("3000"),
            interventions=(Intervention(date=date(2028, 6, 1), kind="rate_change", value=Decimal("6.0")),),
        )
        self.assertEqual(run_simulation(config).history[28].payment, Decimal("3000"))

    def test_events_before_first_repayment_are_ignored(self):
        early = Intervention(date=date(2026, 1, 15), kind="lump_sum", value=Decimal("50000"))
        with_early = run_simulation(make_config(interventions=(early,)))
        without = run_simulation(make_config())
        self.assertEqual(with_early.total_interest, without.total_interest)

    def test_weekly_periods_bucket_by_index(self):
        lump = Intervention(date=REPAYMENT_START + timedelta(days=10), kind="lump_sum", value=Decimal("5000"))
        history = run_simulation(make_config(frequency="weekly", interventions=(lump,))).history
        self.assertEqual(history[0].note, "")
        self.assertEqual(history[1].note, "Lump -$5,000")
        self.assertEqual(history[1].date, date(2026, 2, 8))


if __name__ == "__main__":
    unittest.main()
