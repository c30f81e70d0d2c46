from datetime import date
from types import SimpleNamespace
import unittest

from feetracker.models.payment import PaymentView
from feetracker.services.reports import missing_current, monthly_stats, past_due_summaries, yearly_stats


def view(pid, sid, name, month, total, is_paid=False, grade=4):
    return PaymentView(
        id=pid, student_id=sid, student_name=name, grade=grade, month=month,
        amount=total, total_amount=total, is_paid=is_paid,
    )


class MonthlyStatsTests(unittest.TestCase):
    def test_students_without_rows_count_as_unpaid(self):
        students = [SimpleNamespace(id="s1", name="bob"), SimpleNamespace(id="s2", name="Anna"),
                    SimpleNamespace(id="s3", name="Cara")]
        payments = [
            SimpleNamespace(student_id="s1", is_paid=True, total_amount=1750.0),
            SimpleNamespace(student_id="s2", is_paid=False, total_amount=1700.0),
        ]
        stats = monthly_stats(students, payments)
        self.assertEqual((stats["paid"], stats["unpaid"], stats["total_students"]), (1, 2, 3))
        self.assertEqual(stats["paid_students"], ["bob"])
        self.assertEqual(stats["unpaid_students"], ["Anna", "Cara"])
        self.assertEqual(stats["paid_amount"], 1750.0)
        self.assertEqual(stats["total_amount"], 3450.0)

    def test_yearly_has_twelve_rows(self):
        payments = [
            SimpleNamespace(student_id="s1", month="2025-01", is_paid=True),
            SimpleNamespace(student_id="s2", month="2025-01", is_paid=False),
            SimpleNamespace(student_id="s2", month="2025-03", is_paid=True),
        ]
        rows = yearly_stats(2025, ["s1", "s2"], payments)
        self.assertEqual(len(rows), 12)
        self.assertEqual(rows[0], {"month": "2025-01", "paid": 1, "unpaid": 1, "total": 2})
        self.assertEqual(rows[1]["paid"], 0)
        self.assertEqual(rows[2]["paid"], 1)


class OutstandingTests(unittest.TestCase):
    def test_missing_current(self):
        rows = [view("p1", "s1", "Anna", "2025-09", 1700), view("p2", "s2", "Ben", "2025-09", 1800, is_paid=True)]
        result = missing_current(rows, 25, date(2025, 9, 30))
        self.assertEqual(result["count"], 1)
        self.assertEqual(result["total_missing"], 1700)
        self.assertEqual(result["late_count"], 1)
        self.assertEqual(result["payments"][0].student_name, "Anna")

        self.assertEqual(missing_current(rows, 25, date(2025, 9, 10))["late_count"], 0)

    def test_past_due_sorted_by_months_behind_then_name(self):
        rows = [
            view("p1", "s1", "Zoe", "2025-06", 1700),
            view("p2", "s1", "Zoe", "2025-08", 1700),
            view("p3", "s2", "anna", "2025-07", 1800),
            view("p4", "s3", "Ben", "2025-07", 1700),
            view("p5", "s3", "Ben", "2025-05", 1700, is_paid=True),
        ]
        summaries = past_due_summaries(rows)
        self.assertEqual([s["student_name"] for s in summaries], ["Zoe", "anna", "Ben"])
        self.assertEqual(summaries[0]["missing_months"], ["2025-08", "2025-06"])
        self.assertEqual(summaries[0]["months_behind"], 2)
        self.assertEqual(summaries[0]["total_amount_due"], 3400)
        self.assertEqual(summaries[2]["months_behind"], 1)


if __name__ == "__main__":
    unittest.main()
