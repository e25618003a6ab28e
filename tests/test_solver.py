"""
Unit tests for the repayment solver and repayment planning.

Checks the annuity formula against an independent float implementation, the
zero-rate and degenerate cases, period counting per frequency, and the
initial payments chosen for each starting regime.
"""

import unittest
from datetime import date
from decimal import Decimal

from mortgage_sim.data_models import FixedOverlay, InterestOnlyOverlay, SplitOverlay
from mortgage_sim.engine import calculate_repayment, contract_periods, plan_repayments
from mortgage_sim.utils import round_money

from utilities import LOAN_START, annuity, make_config


class TestCalculateRepayment(unittest.TestCase):
    """Periodic payment for a principal, rate and remaining period count."""

    def test_matches_annuity_formula(self):
        cases = [
            (375000, 5.29, 300, 12),
            (500000, 6.5, 360, 12),
            (250000, 4.0, 650, 26),
            (80000, 9.75, 520, 52),
        ]
        for principal, rate, periods, ppy in cases:
            with self.subTest(principal=principal, rate=rate, periods=periods, ppy=ppy):
                result = calculate_repayment(Decimal(principal), Decimal(str(rate)), periods, ppy)
                self.assertAlmostEqual(float(result), annuity(principal, rate, periods, ppy), places=6)

    def test_reference_loan_payment(self):
        payment = round_money(calculate_repayment(Decimal("375000"), Decimal("5.29"), 300, 12))
        self.assertAlmostEqual(float(payment), round(annuity(375000, 5.29, 300), 2), places=2)
        self.assertGreater(payment, Decimal("2200"))
        self.assertLess(payment, Decimal("2300"))

    def test_zero_rate_is_straight_line(self):
        self.assertEqual(calculate_repayment(Decimal("120000"), Decimal("0"), 120, 12), Decimal("1000"))

    def test_degenerate_inputs_owe_nothing(self):
        self.assertEqual(calculate_repayment(Decimal("0"), Decimal("5"), 120, 12), 0)
        self.assertEqual(calculate_repayment(Decimal("-10"), Decimal("5"), 120, 12), 0)
        self.assertEqual(calculate_repayment(Decimal("1000"), Decimal("5"), 0, 12), 0)
        self.assertEqual(calculate_repayment(Decimal("1000"), Decimal("5"), -3, 12), 0)


class TestContractPeriods(unittest.TestCase):

    def test_rounds_up_to_whole_periods(self):
        self.assertEqual(contract_periods(300, 12), 300)
        self.assertEqual(contract_periods(300, 26), 650)
        self.assertEqual(contract_periods(301, 26), 653)
        self.assertEqual(contract_periods(12, 52), 52)
        self.assertEqual(contract_periods(1, 52), 5)


class TestPlanRepayments(unittest.TestCase):
    """Initial standing payment for each starting regime."""

    def test_variable_start(self):
        plan = plan_repayments(make_config())
        self.assertEqual(plan.periodic, round_money(calculate_repayment(Decimal("375000"), Decimal("5.29"), 300, 12)))
        self.assertEqual(plan.initial, plan.periodic)
        self.assertEqual(plan.split_total, 0)

    def test_fixed_start_uses_fixed_rate(self):
        config = make_config(fixed=FixedOverlay(start_date=LOAN_START, years=2, rate=Decimal("6.5")))
        plan = plan_repayments(config)
        self.assertEqual(plan.periodic, round_money(calculate_repayment(Decimal("375000"), Decimal("6.5"), 300, 12)))

    def test_interest_only_start_is_pure_interest(self):
        config = make_config(interest_only=InterestOnlyOverlay(start_date=LOAN_START, years=3, rate=Decimal("5")))
        self.assertEqual(plan_repayments(config).periodic, Decimal("1562.50"))

    def test_split_start_uses_combined_payment(self):
        split = SplitOverlay(start_date=LOAN_START, years=5, rate=Decimal("6.0"), split_percent=Decimal("50"))
        plan = plan_repayments(make_config(split=split))
        self.assertEqual(plan.split_fixed, round_money(calculate_repayment(Decimal("187500"), Decimal("6.0"), 300, 12)))
        self.assertEqual(plan.split_variable, round_money(calculate_repayment(Decimal("187500"), Decimal("5.29"), 300, 12)))
        self.assertEqual(plan.initial, plan.split_fixed + plan.split_variable)

    def test_split_by_value(self):
        split = SplitOverlay(
            start_date=LOAN_START, years=5, rate=Decimal("6.0"), split_type="value", split_value=Decimal("100000")
        )
        plan = plan_repayments(make_config(split=split))
        self.assertEqual(plan.split_fixed, round_money(calculate_repayment(Decimal("100000"), Decimal("6.0"), 300, 12)))
        self.assertEqual(plan.split_variable, round_money(calculate_repayment(Decimal("275000"), Decimal("5.29"), 300, 12)))

    def test_split_starting_later_keeps_periodic_payment(self):
        split = SplitOverlay(start_date=date(2028, 1, 1), years=5, rate=Decimal("6.0"))
        plan = plan_repayments(make_config(split=split))
        self.assertEqual(plan.initial, plan.periodic)
        self.assertGreater(plan.split_total, 0)

    def test_override_wins(self):
        plan = plan_repayments(make_config(repayment_override=Decimal("3000")))
        self.assertEqual(plan.initial, Decimal("3000"))


if __name__ == "__main__":
    unittest.main()
