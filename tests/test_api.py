from datetime import datetime
from types import SimpleNamespace
from unittest import mock
import unittest

from fastapi import HTTPException
from fastapi.testclient import TestClient
from pymongo.errors import BulkWriteError

from feetracker.api import deps
from feetracker.main import app
from feetracker.models.user import UserRole

PAYMENT_ID = "65f0c0ffee0000000003f9a1"
STUDENT_ID = "65f0c0ffee0000000000aaaa"


def make_user(role=UserRole.USER, email="staff@school.local"):
    return SimpleNamespace(id="u1", email=email, name="Staff", role=role, is_active=True)


def make_payment(month="2000-01", is_paid=False):
    return SimpleNamespace(
        id=PAYMENT_ID, student_id=STUDENT_ID, month=month, amount=1700.0, late_fee=0.0,
        total_amount=1700.0, payment_method="cash", reference=None,
        paid_at=datetime(2000, 1, 3) if is_paid else None, is_paid=is_paid,
        is_registration=False, is_half_month=False, waive_registration_fee=False,
    )


class AdminGateTests(unittest.TestCase):
    def test_admin_role(self):
        self.assertTrue(deps.is_admin(make_user(role=UserRole.ADMIN)))

    def test_configured_admin_email(self):
        self.assertTrue(deps.is_admin(make_user(email="Admin@School.Local")))

    def test_regular_user(self):
        self.assertFalse(deps.is_admin(make_user()))


class TokenTests(unittest.TestCase):
    def test_access_token_round_trip(self):
        token = deps.create_access_token("abc", "user")
        self.assertEqual(deps.decode_token(token, "access"), "abc")

    def test_refresh_token_is_not_an_access_token(self):
        token = deps.create_refresh_token("abc")
        with self.assertRaises(HTTPException) as ctx:
            deps.decode_token(token, "access")
        self.assertEqual(ctx.exception.status_code, 401)

    def test_password_hash(self):
        hashed = deps.get_password_hash("s3cret")
        self.assertTrue(deps.verify_password("s3cret", hashed))
        self.assertFalse(deps.verify_password("wrong", hashed))


class ApiTests(unittest.TestCase):
    user = make_user()

    def setUp(self):
        app.dependency_overrides[deps.get_current_user] = lambda: self.user
        app.dependency_overrides[deps.load_setting_values] = lambda: {"school1_name": "Campus One"}
        self.client = TestClient(app)

    def tearDown(self):
        app.dependency_overrides.clear()

    def test_health(self):
        resp = self.client.get("/health")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["status"], "ok")

    def test_requires_authentication(self):
        app.dependency_overrides.pop(deps.get_current_user)
        self.assertEqual(self.client.get("/api/students/").status_code, 401)
        resp = self.client.get("/api/students/", headers={"Authorization": "Bearer not-a-token"})
        self.assertEqual(resp.status_code, 401)

    def test_me(self):
        resp = self.client.get("/api/auth/me")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["is_admin"], False)

    def test_reports_are_admin_only(self):
        self.assertEqual(self.client.get("/api/reports/missing-current").status_code, 403)
        self.assertEqual(self.client.get("/api/payments/export?month=2025-09").status_code, 403)

    def test_month_selector(self):
        resp = self.client.get("/api/payments/months")
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(len(body["months"]), 15)
        self.assertIn(body["current"], [m["value"] for m in body["months"]])

    def test_bad_month_is_rejected(self):
        resp = self.client.get("/api/payments/?month=2025-9")
        self.assertEqual(resp.status_code, 400)

    def test_general_settings_fall_back_to_defaults(self):
        resp = self.client.get("/api/settings/general")
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual((body["late_fee_after_day"], body["late_fee_amount"], body["collection_day"]), (25, 50, 18))
        self.assertEqual(body["school1"]["name"], "Campus One")
        self.assertEqual(body["currency"], "THB")

    def test_settings_write_is_admin_only(self):
        resp = self.client.put("/api/settings/general", json={"late_fee_after_day": 20})
        self.assertEqual(resp.status_code, 403)

    def test_preview_late_registration(self):
        with mock.patch("feetracker.api.payments.Payment") as payment_doc:
            payment_doc.get = mock.AsyncMock(return_value=make_payment("2000-01"))
            resp = self.client.post(
                f"/api/payments/{PAYMENT_ID}/preview",
                json={"amount": 1700, "is_registration": True},
            )
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["late_fee"], 50)
        self.assertEqual(body["total_amount"], 2285)
        self.assertEqual(body["due_date"], "1999-12-25")
        self.assertTrue(body["is_late"])

    def test_preview_half_month_before_due_date(self):
        with mock.patch("feetracker.api.payments.Payment") as payment_doc:
            payment_doc.get = mock.AsyncMock(return_value=make_payment("2100-01"))
            resp = self.client.post(
                f"/api/payments/{PAYMENT_ID}/preview",
                json={"amount": 1800, "is_half_month": True},
            )
        body = resp.json()
        self.assertEqual((body["effective_amount"], body["late_fee"], body["total_amount"]), (900, 0, 900))

    def test_preview_rejects_negative_amount(self):
        resp = self.client.post(f"/api/payments/{PAYMENT_ID}/preview", json={"amount": -1})
        self.assertEqual(resp.status_code, 422)

    def test_unknown_payment_id(self):
        resp = self.client.post("/api/payments/not-an-id/preview", json={"amount": 1})
        self.assertEqual(resp.status_code, 404)

    def test_receipt_only_for_paid_rows(self):
        with mock.patch("feetracker.api.payments.Payment") as payment_doc:
            payment_doc.get = mock.AsyncMock(return_value=make_payment(is_paid=False))
            resp = self.client.get(f"/api/payments/{PAYMENT_ID}/receipt")
        self.assertEqual(resp.status_code, 400)

    def test_html_receipt(self):
        student = SimpleNamespace(name="Anna Lee", grade=4, year=2025, subjects=["MATH"], monthly_fee=1700.0)
        with mock.patch("feetracker.api.payments.Payment") as payment_doc, \
                mock.patch("feetracker.api.payments.Student") as student_doc:
            payment_doc.get = mock.AsyncMock(return_value=make_payment(is_paid=True))
            student_doc.get = mock.AsyncMock(return_value=student)
            resp = self.client.get(f"/api/payments/{PAYMENT_ID}/receipt?format=html&campus=1")
        self.assertEqual(resp.status_code, 200)
        self.assertIn("text/html", resp.headers["content-type"])
        self.assertIn("Anna Lee", resp.text)
        self.assertIn("Campus One", resp.text)

    def test_receipt_campus_out_of_range(self):
        resp = self.client.get(f"/api/payments/{PAYMENT_ID}/receipt?campus=3")
        self.assertEqual(resp.status_code, 422)

    def test_pdf_receipt_for_thai_student_name(self):
        student = SimpleNamespace(name="สมชาย ใจดี", grade=4, year=2025, subjects=["MATH"], monthly_fee=1700.0)
        with mock.patch("feetracker.api.payments.Payment") as payment_doc, \
                mock.patch("feetracker.api.payments.Student") as student_doc:
            payment_doc.get = mock.AsyncMock(return_value=make_payment(is_paid=True))
            student_doc.get = mock.AsyncMock(return_value=student)
            resp = self.client.get(f"/api/payments/{PAYMENT_ID}/receipt?format=pdf")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.headers["content-type"], "application/pdf")
        self.assertTrue(resp.content.startswith(b"%PDF"))
        disposition = resp.headers["content-disposition"]
        self.assertIn('filename="receipt-2000-01-3f9a1.pdf"', disposition)
        self.assertIn("filename*=UTF-8''receipt-", disposition)


class PaymentWriteTests(unittest.TestCase):
    """Mark paid/unpaid and the per-month row sync, against mocked documents."""

    def setUp(self):
        self.user = make_user()
        app.dependency_overrides[deps.get_current_user] = lambda: self.user
        app.dependency_overrides[deps.load_setting_values] = lambda: {}
        self.client = TestClient(app)

    def tearDown(self):
        app.dependency_overrides.clear()

    def student(self, monthly_fee=1700.0):
        return SimpleNamespace(
            id=STUDENT_ID, name="Anna Lee", grade=4, year=2025, subjects=["MATH"], monthly_fee=monthly_fee,
        )

    def test_mark_paid_saves_late_half_month_registration(self):
        payment = make_payment("2000-01")
        payment.save = mock.AsyncMock()
        with mock.patch("feetracker.api.payments.Payment") as payment_doc, \
                mock.patch("feetracker.api.payments.Student") as student_doc:
            payment_doc.get = mock.AsyncMock(return_value=payment)
            student_doc.get = mock.AsyncMock(return_value=self.student())
            resp = self.client.patch(
                f"/api/payments/{PAYMENT_ID}/pay",
                json={"amount": 1800, "is_half_month": True, "is_registration": True,
                      "payment_method": "bank", "reference": "  TX-1 "},
            )
        self.assertEqual(resp.status_code, 200)
        payment.save.assert_awaited_once()
        self.assertEqual((payment.amount, payment.late_fee, payment.total_amount), (900, 50, 1485))
        self.assertTrue(payment.is_paid)
        self.assertIsNotNone(payment.paid_at)
        self.assertEqual((payment.payment_method, payment.reference), ("bank", "TX-1"))
        body = resp.json()
        self.assertEqual(body["total_amount"], 1485)
        self.assertEqual(body["student_name"], "Anna Lee")

    def test_mark_unpaid_is_admin_only(self):
        resp = self.client.patch(f"/api/payments/{PAYMENT_ID}/unpay")
        self.assertEqual(resp.status_code, 403)

    def test_mark_unpaid_resets_to_current_fee(self):
        self.user = make_user(role=UserRole.ADMIN)
        payment = make_payment("2000-01", is_paid=True)
        payment.late_fee, payment.total_amount, payment.is_registration = 50.0, 2285.0, True
        payment.save = mock.AsyncMock()
        with mock.patch("feetracker.api.payments.Payment") as payment_doc, \
                mock.patch("feetracker.api.payments.Student") as student_doc:
            payment_doc.get = mock.AsyncMock(return_value=payment)
            student_doc.get = mock.AsyncMock(return_value=self.student(monthly_fee=3400.0))
            resp = self.client.patch(f"/api/payments/{PAYMENT_ID}/unpay")
        self.assertEqual(resp.status_code, 200)
        payment.save.assert_awaited_once()
        self.assertEqual((payment.amount, payment.late_fee, payment.total_amount), (3400.0, 0.0, 3400.0))
        self.assertFalse(payment.is_paid)
        self.assertIsNone(payment.paid_at)
        self.assertFalse(payment.is_registration)

    def test_list_survives_concurrent_row_creation(self):
        created_elsewhere = make_payment("2000-01")
        with mock.patch("feetracker.api.payments.Payment") as payment_doc, \
                mock.patch("feetracker.api.payments.Student") as student_doc:
            student_doc.find_all.return_value.to_list = mock.AsyncMock(return_value=[self.student()])
            payment_doc.find.return_value.to_list = mock.AsyncMock(side_effect=[[], [created_elsewhere]])
            payment_doc.insert_many = mock.AsyncMock(
                side_effect=BulkWriteError({"writeErrors": [{"code": 11000}], "nInserted": 0})
            )
            with self.assertLogs("feetracker.api.payments", level="INFO") as logs:
                resp = self.client.get("/api/payments/?month=2000-01")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual([r["id"] for r in resp.json()["payments"]], [PAYMENT_ID])
        self.assertTrue(any("created 0 of 1" in line for line in logs.output))
        self.assertFalse(any("Created 1 payment rows" in line for line in logs.output))

    def test_list_refreshes_unpaid_amount_from_student_fee(self):
        payment = make_payment("2000-01")
        payment.save = mock.AsyncMock()
        with mock.patch("feetracker.api.payments.Payment") as payment_doc, \
                mock.patch("feetracker.api.payments.Student") as student_doc:
            student_doc.find_all.return_value.to_list = mock.AsyncMock(return_value=[self.student(monthly_fee=3400.0)])
            payment_doc.find.return_value.to_list = mock.AsyncMock(return_value=[payment])
            payment_doc.insert_many = mock.AsyncMock()
            resp = self.client.get("/api/payments/?month=2000-01")
        self.assertEqual(resp.status_code, 200)
        payment_doc.insert_many.assert_not_awaited()
        payment.save.assert_awaited_once()
        self.assertEqual((payment.amount, payment.total_amount), (3400.0, 3400.0))
        self.assertEqual(resp.json()["payments"][0]["total_amount"], 3400.0)


if __name__ == "__main__":
    unittest.main()
