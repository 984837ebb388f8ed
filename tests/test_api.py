import io
import unittest
from datetime import date
from unittest.mock import patch

import openpyxl
from sqlalchemy.exc import OperationalError

import crud
from models import Category, User
from tests.base import ApiTestCase


class TestHealth(ApiTestCase):
    def test_health(self):
        resp = self.client.get("/api/health")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), {"status": "ok"})

    def test_unknown_route_uses_error_shape(self):
        resp = self.client.get("/api/nope")
        self.assertEqual(resp.status_code, 404)
        self.assertIn("error", resp.json())


class TestCreateAndList(ApiTestCase):
    def test_round_trip(self):
        created = self.post_expense(12.5, "2025-01-15", "Food", "Lunch")

        resp = self.client.get("/api/expenses")
        self.assertEqual(resp.status_code, 200)
        rows = resp.json()
        self.assertEqual(len(rows), 1)

        row = rows[0]
        self.assertEqual(row["id"], created["id"])
        self.assertEqual(row["amount"], 12.5)
        self.assertEqual(row["date"], "2025-01-15")
        self.assertEqual(row["description"], "Lunch")
        self.assertEqual(row["category"]["name"], "Food")
        self.assertEqual(row["categoryId"], row["category"]["id"])
        self.assertEqual(row["userId"], row["category"]["userId"])

    def test_new_category_created_once_for_demo_user(self):
        self.post_expense(5, "2025-01-01", "Coffee")
        self.assertEqual(self.db.query(Category).count(), 1)

        self.post_expense(6, "2025-01-02", "Coffee")
        categories = self.db.query(Category).all()
        self.assertEqual(len(categories), 1)

        demo = self.db.query(User).filter(User.email == "demo@example.com").one()
        self.assertEqual(categories[0].user_id, demo.id)

    def test_description_optional(self):
        created = self.post_expense(3, "2025-01-01", "Misc")
        self.assertIsNone(created["description"])

    def test_month_filter_boundaries(self):
        for day in ["2024-12-31", "2025-01-01", "2025-01-31", "2025-02-01"]:
            self.post_expense(1, day, "Food")

        resp = self.client.get("/api/expenses", params={"month": "2025-01"})
        self.assertEqual([r["date"] for r in resp.json()], ["2025-01-01", "2025-01-31"])

    def test_malformed_month_is_ignored(self):
        self.post_expense(1, "2025-01-10", "Food")
        self.post_expense(1, "2025-03-10", "Food")

        resp = self.client.get("/api/expenses", params={"month": "2025-99"})
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(len(resp.json()), 2)

    def test_category_filter_is_case_sensitive(self):
        self.post_expense(1, "2025-01-10", "Food")
        self.post_expense(2, "2025-01-11", "Rent")

        resp = self.client.get("/api/expenses", params={"category": "Food"})
        self.assertEqual([r["category"]["name"] for r in resp.json()], ["Food"])

        resp = self.client.get("/api/expenses", params={"category": "food"})
        self.assertEqual(resp.json(), [])

    def test_results_ordered_by_date(self):
        self.post_expense(1, "2025-01-20", "Food")
        self.post_expense(1, "2025-01-05", "Food")
        self.post_expense(1, "2025-01-12", "Food")

        dates = [r["date"] for r in self.client.get("/api/expenses").json()]
        self.assertEqual(dates, sorted(dates))


class TestValidation(ApiTestCase):
    def assertBadRequest(self, body, mentions=None):
        resp = self.client.post("/api/expenses", json=body)
        self.assertEqual(resp.status_code, 400, resp.text)
        error = resp.json()["error"]
        self.assertIsInstance(error, str)
        if mentions:
            self.assertIn(mentions, error)

    def test_missing_category(self):
        self.assertBadRequest({"amount": 10, "date": "2025-01-05"}, mentions="categoryName")

    def test_missing_amount(self):
        self.assertBadRequest({"date": "2025-01-05", "categoryName": "Food"}, mentions="amount")

    def test_missing_date(self):
        self.assertBadRequest({"amount": 10, "categoryName": "Food"}, mentions="date")

    def test_bad_date(self):
        self.assertBadRequest({"amount": 10, "date": "yesterday", "categoryName": "Food"}, mentions="date")

    def test_blank_category(self):
        self.assertBadRequest({"amount": 10, "date": "2025-01-05", "categoryName": "   "}, mentions="categoryName")

    def test_negative_amount(self):
        self.assertBadRequest({"amount": -1, "date": "2025-01-05", "categoryName": "Food"}, mentions="amount")

    def test_non_numeric_amount(self):
        self.assertBadRequest({"amount": "lots", "date": "2025-01-05", "categoryName": "Food"}, mentions="amount")

    def test_nothing_written_on_bad_request(self):
        self.client.post("/api/expenses", json={"amount": -5, "date": "2025-01-05", "categoryName": "Food"})
        self.assertEqual(self.db.query(Category).count(), 0)


class TestUpdate(ApiTestCase):
    def test_update_fields(self):
        created = self.post_expense(10, "2025-01-05", "Food", "Lunch")

        resp = self.client.put(
            f"/api/expenses/{created['id']}",
            json={"amount": 11.75, "date": "2025-01-06", "categoryName": "Food", "description": "Brunch"},
        )
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["amount"], 11.75)
        self.assertEqual(body["date"], "2025-01-06")
        self.assertEqual(body["description"], "Brunch")
        self.assertEqual(body["categoryId"], created["categoryId"])

    def test_reassign_to_new_category_keeps_old(self):
        created = self.post_expense(10, "2025-01-05", "Food")

        resp = self.client.put(
            f"/api/expenses/{created['id']}",
            json={"amount": 10, "date": "2025-01-05", "categoryName": "Dining"},
        )
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["category"]["name"], "Dining")

        names = [c["name"] for c in self.client.get("/api/categories").json()]
        self.assertEqual(names, ["Dining", "Food"])

    def test_update_missing_expense(self):
        resp = self.client.put("/api/expenses/999", json={"amount": 1, "date": "2025-01-05", "categoryName": "Food"})
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json(), {"error": "Expense not found"})

    def test_update_foreign_expense(self):
        other = self.make_user("other@example.com")
        theirs = self.make_expense(other, "Food", 7, date(2025, 1, 3))

        resp = self.client.put(
            f"/api/expenses/{theirs.id}",
            json={"amount": 1, "date": "2025-01-05", "categoryName": "Food"},
        )
        self.assertEqual(resp.status_code, 404)

    def test_update_validates_body(self):
        created = self.post_expense(10, "2025-01-05", "Food")
        resp = self.client.put(f"/api/expenses/{created['id']}", json={"amount": 10})
        self.assertEqual(resp.status_code, 400)


class TestDelete(ApiTestCase):
    def test_delete(self):
        created = self.post_expense(10, "2025-01-05", "Food")

        resp = self.client.delete(f"/api/expenses/{created['id']}")
        self.assertEqual(resp.status_code, 204)
        self.assertEqual(resp.content, b"")
        self.assertEqual(self.client.get("/api/expenses").json(), [])
        # categories are never removed
        self.assertEqual(len(self.client.get("/api/categories").json()), 1)

    def test_delete_missing_expense(self):
        resp = self.client.delete("/api/expenses/12345")
        self.assertEqual(resp.status_code, 404)
        self.assertIn("error", resp.json())

    def test_delete_twice(self):
        created = self.post_expense(10, "2025-01-05", "Food")
        self.assertEqual(self.client.delete(f"/api/expenses/{created['id']}").status_code, 204)
        self.assertEqual(self.client.delete(f"/api/expenses/{created['id']}").status_code, 404)

    def test_delete_foreign_expense(self):
        other = self.make_user("other@example.com")
        theirs = self.make_expense(other, "Food", 7, date(2025, 1, 3))

        resp = self.client.delete(f"/api/expenses/{theirs.id}")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(self.db.query(User).filter(User.email == "other@example.com").one().expenses[0].id, theirs.id)

    def test_delete_bad_id(self):
        resp = self.client.delete("/api/expenses/abc")
        self.assertEqual(resp.status_code, 400)


class TestCategories(ApiTestCase):
    def test_empty(self):
        resp = self.client.get("/api/categories")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json(), [])

    def test_only_demo_users_categories(self):
        other = self.make_user("other@example.com")
        self.make_expense(other, "Secret", 1, date(2025, 1, 1))
        self.post_expense(1, "2025-01-01", "Food")

        rows = self.client.get("/api/categories").json()
        self.assertEqual([r["name"] for r in rows], ["Food"])
        self.assertEqual(set(rows[0]), {"id", "name", "userId"})


class TestSummaryEndpoint(ApiTestCase):
    def test_summary(self):
        self.post_expense(100, "2025-01-01", "Rent")
        self.post_expense(20, "2025-01-10", "Food")
        self.post_expense(30, "2025-01-20", "Food")
        self.post_expense(999, "2025-02-01", "Rent")

        resp = self.client.get("/api/expenses/summary", params={"month": "2025-01"})
        self.assertEqual(resp.status_code, 200)
        body = resp.json()
        self.assertEqual(body["count"], 3)
        self.assertEqual(body["total"], 150.0)
        self.assertEqual(body["average"], 50.0)
        self.assertEqual(body["largest"], 100.0)
        self.assertEqual(
            body["byCategory"],
            [
                {"category": "Rent", "total": 100.0, "count": 1},
                {"category": "Food", "total": 50.0, "count": 2},
            ],
        )


class TestExport(ApiTestCase):
    def test_export_month(self):
        self.post_expense(12.5, "2025-01-15", "Food", "Lunch")
        self.post_expense(40, "2025-02-01", "Food")

        resp = self.client.get("/api/expenses/export", params={"month": "2025-01"})
        self.assertEqual(resp.status_code, 200)
        self.assertIn("expenses_2025-01.xlsx", resp.headers["content-disposition"])

        sheet = openpyxl.load_workbook(io.BytesIO(resp.content)).active
        rows = list(sheet.iter_rows(values_only=True))
        self.assertEqual(rows[0], ("ID", "Date", "Category", "Amount", "Description"))
        self.assertEqual(len(rows), 2)
        self.assertEqual(rows[1][2:], ("Food", 12.5, "Lunch"))

    def test_export_without_month(self):
        resp = self.client.get("/api/expenses/export")
        self.assertEqual(resp.status_code, 200)
        self.assertIn("filename=expenses.xlsx", resp.headers["content-disposition"])


class TestSeedEndpoint(ApiTestCase):
    def test_seed_get_and_post_are_idempotent(self):
        first = self.client.post("/api/seed")
        self.assertEqual(first.status_code, 200)
        self.assertEqual(first.json()["created"], len(crud.SEED_EXPENSES))

        second = self.client.get("/api/seed")
        self.assertEqual(second.status_code, 200)
        self.assertEqual(second.json()["created"], 0)
        self.assertEqual(second.json()["expenses"], len(crud.SEED_EXPENSES))

        names = [c["name"] for c in self.client.get("/api/categories").json()]
        self.assertEqual(names, sorted(crud.SEED_CATEGORIES))


class TestDatabaseErrors(ApiTestCase):
    def test_database_failure_returns_500(self):
        boom = OperationalError("SELECT 1", {}, Exception("database is locked"))
        with patch.object(crud, "filter_expenses", side_effect=boom):
            with self.assertLogs("main", level="ERROR"):
                resp = self.client.get("/api/expenses")

        self.assertEqual(resp.status_code, 500)
        self.assertEqual(resp.json(), {"error": "Internal server error"})


if __name__ == "__main__":
    unittest.main()
