from datetime import date, datetime
import unittest

from feetracker.services.billing import (
    BillingSettings,
    compute_late_fee,
    compute_total,
    due_date,
    monthly_fee,
    normalize_grade,
    per_subject_fee,
)


class FeeScheduleTests(unittest.TestCase):
    def test_monthly_fee_examples(self):
        self.assertEqual(monthly_fee(4, 2), 3400)
        self.assertEqual(monthly_fee(8, 3), 5400)
        self.assertEqual(monthly_fee("K", 1), 1700)

    def test_rate_tiers(self):
        for grade in (1, 6, "K", "PK1", "PK2"):
            self.assertEqual(per_subject_fee(grade), 1700, grade)
        for grade in (7, 12, "9"):
            self.assertEqual(per_subject_fee(grade), 1800, grade)

    def test_zero_subjects_bill_as_one(self):
        self.assertEqual(monthly_fee(3, 0), 1700)

    def test_normalize_grade(self):
        self.assertEqual(normalize_grade(" 10 "), 10)
        self.assertEqual(normalize_grade("pk1"), "PK1")
        self.assertEqual(normalize_grade(5), 5)

    def test_invalid_grades_raise(self):
        for bad in (0, 13, "13", "G1", "", True):
            with self.assertRaises(ValueError, msg=repr(bad)):
                normalize_grade(bad)


class LateFeeTests(unittest.TestCase):
    def test_due_date_is_in_previous_month(self):
        self.assertEqual(due_date("2025-09", 25), date(2025, 8, 25))

    def test_january_rolls_back_to_december(self):
        self.assertEqual(due_date("2026-01", 25), date(2025, 12, 25))
        self.assertEqual(compute_late_fee(1700, 0, date(2025, 12, 26), 25, 50, "2026-01"), 50)

    def test_on_due_date_is_not_late(self):
        self.assertEqual(compute_late_fee(1700, 0, date(2025, 8, 25), 25, 50, "2025-09"), 0)

    def test_day_after_due_date_is_late(self):
        self.assertEqual(compute_late_fee(1700, 0, date(2025, 8, 26), 25, 50, "2025-09"), 50)

    def test_datetime_compares_by_calendar_day(self):
        evening = datetime(2025, 8, 25, 23, 59)
        self.assertEqual(compute_late_fee(1700, 0, evening, 25, 50, "2025-09"), 0)

    def test_day_past_month_end_rolls_forward(self):
        # 31 September does not exist: the cut-off becomes 1 October
        self.assertEqual(due_date("2025-10", 31), date(2025, 10, 1))
        self.assertEqual(compute_late_fee(1700, 0, date(2025, 9, 30), 31, 50, "2025-10"), 0)
        self.assertEqual(compute_late_fee(1700, 0, date(2025, 10, 1), 31, 50, "2025-10"), 0)
        self.assertEqual(compute_late_fee(1700, 0, date(2025, 10, 2), 31, 50, "2025-10"), 50)

    def test_legacy_mode_uses_evaluation_month_and_legacy_rate(self):
        self.assertEqual(compute_late_fee(1700, 75, date(2025, 9, 24), 25, 50), 0)
        self.assertEqual(compute_late_fee(1700, 75, date(2025, 9, 25), 25, 50), 75)

    def test_rejects_bad_inputs(self):
        with self.assertRaises(ValueError):
            compute_late_fee(-1, 0, date(2025, 9, 1), 25, 50, "2025-09")
        with self.assertRaises(ValueError):
            compute_late_fee(1700, 0, date(2025, 9, 1), 25, -5, "2025-09")
        with self.assertRaises(ValueError):
            compute_late_fee(1700, 0, date(2025, 9, 1), 0, 50, "2025-09")
        with self.assertRaises(ValueError):
            compute_late_fee(1700, 0, date(2025, 9, 1), 25, 50, "2025-9")


class ComputeTotalTests(unittest.TestCase):
    settings = BillingSettings(late_fee_after_day=25, late_fee_amount=50)

    def total(self, base, evaluation, half=False, registration=False, waive=False, **kwargs):
        return compute_total(
            base, half, registration, waive, kwargs.pop("settings", self.settings), evaluation, "2025-09", **kwargs
        )

    def test_registration_and_late(self):
        charge = self.total(1700, date(2025, 9, 1), registration=True)
        self.assertEqual(charge.late_fee, 50)
        self.assertEqual(charge.total_amount, 2285)
        self.assertEqual(charge.registration_fee_charged, 535)

    def test_registration_on_time(self):
        charge = self.total(1700, date(2025, 8, 20), registration=True)
        self.assertEqual(charge.late_fee, 0)
        self.assertEqual(charge.total_amount, 2235)

    def test_half_month_on_time(self):
        charge = self.total(1800, date(2025, 8, 20), half=True)
        self.assertEqual(charge.effective_amount, 900)
        self.assertEqual(charge.late_fee, 0)
        self.assertEqual(charge.total_amount, 900)

    def test_half_month_late_adds_flat_fee_to_halved_amount(self):
        charge = self.total(1000, date(2025, 9, 1), half=True)
        self.assertEqual(charge.effective_amount, 500)
        self.assertEqual(charge.total_amount, 550)

    def test_waived_registration_charges_nothing(self):
        charge = self.total(1700, date(2025, 8, 20), registration=True, waive=True)
        self.assertEqual(charge.registration_fee_charged, 0)
        self.assertEqual(charge.total_amount, 1700)

    def test_waive_without_registration_is_noop(self):
        charge = self.total(1700, date(2025, 8, 20), waive=True)
        self.assertEqual(charge.total_amount, 1700)

    def test_monotonic_in_penalty_and_registration_amount(self):
        late = date(2025, 9, 10)
        totals = [
            self.total(1700, late, settings=BillingSettings(late_fee_amount=amount)).total_amount
            for amount in (0, 50, 100)
        ]
        self.assertEqual(totals, sorted(totals))
        totals = [
            self.total(1700, late, registration=True, registration_fee_amount=fee).total_amount
            for fee in (0, 535, 1000)
        ]
        self.assertEqual(totals, sorted(totals))

    def test_negative_base_amount_rejected(self):
        with self.assertRaises(ValueError):
            self.total(-100, date(2025, 8, 20))


class BillingSettingsTests(unittest.TestCase):
    def test_defaults(self):
        settings = BillingSettings.from_key_values({})
        self.assertEqual((settings.late_fee_after_day, settings.late_fee_amount, settings.collection_day), (25, 50, 18))

    def test_reads_stored_strings(self):
        settings = BillingSettings.from_key_values(
            {"late_fee_after_day": "10", "late_fee_amount": "100", "collection_day": "5"}
        )
        self.assertEqual((settings.late_fee_after_day, settings.late_fee_amount, settings.collection_day), (10, 100, 5))

    def test_invalid_values_fall_back(self):
        with self.assertLogs("feetracker.services.billing", level="WARNING"):
            settings = BillingSettings.from_key_values(
                {"late_fee_after_day": "40", "late_fee_amount": "abc", "collection_day": ""}
            )
        self.assertEqual((settings.late_fee_after_day, settings.late_fee_amount, settings.collection_day), (25, 50, 18))


if __name__ == "__main__":
    unittest.main()
