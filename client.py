"""
Python client for the expense API, plus the list state a front end keeps.

``ExpenseApi`` is a thin wrapper over the REST endpoints. ``ExpenseBoard``
holds what the dashboard shows (the filtered expense list, the categories
and the active filters) and reconciles it with the server after every
change. Deletes are optimistic: the row disappears locally first and the
full list is reloaded if the server refuses.
"""

from datetime import date as Date
from typing import Any, Dict, List, Optional

import requests

from months import in_month, month_bounds

DEFAULT_API_URL = "http://localhost:8000"


class ApiError(Exception):
    def __init__(self, status_code: Optional[int], message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def _safe_json(resp):
    try:
        return resp.json()
    except ValueError:
        return None


class ExpenseApi:
    def __init__(self, base_url: str = DEFAULT_API_URL, session: Optional[requests.Session] = None, timeout: float = 10):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout

    def _request(self, method: str, path: str, params=None, json=None, expected=(200,)):
        url = self.base_url + path
        try:
            resp = self.session.request(method, url, params=params, json=json, timeout=self.timeout)
        except requests.RequestException as e:
            raise ApiError(None, f"Connection failed: {e}") from e

        if resp.status_code not in expected:
            body = _safe_json(resp)
            message = body.get("error") if isinstance(body, dict) and body.get("error") else f"Request failed ({resp.status_code})"
            raise ApiError(resp.status_code, message)

        if resp.status_code == 204:
            return None
        return _safe_json(resp)

    @staticmethod
    def _filters(month: Optional[str], category: Optional[str]) -> Dict[str, str]:
        params = {}
        if month:
            params["month"] = month
        if category:
            params["category"] = category
        return params

    @staticmethod
    def _payload(amount: float, date: str, category_name: str, description: Optional[str]) -> Dict[str, Any]:
        payload = {"amount": amount, "date": date, "categoryName": category_name}
        if description:
            payload["description"] = description
        return payload

    def health(self) -> str:
        return self._request("GET", "/api/health")["status"]

    def list_expenses(self, month: Optional[str] = None, category: Optional[str] = None) -> List[Dict[str, Any]]:
        return self._request("GET", "/api/expenses", params=self._filters(month, category))

    def summary(self, month: Optional[str] = None, category: Optional[str] = None) -> Dict[str, Any]:
        return self._request("GET", "/api/expenses/summary", params=self._filters(month, category))

    def create_expense(self, amount: float, date: str, category_name: str, description: Optional[str] = None) -> Dict[str, Any]:
        return self._request(
            "POST",
            "/api/expenses",
            json=self._payload(amount, date, category_name, description),
            expected=(201,),
        )

    def update_expense(self, expense_id: int, amount: float, date: str, category_name: str, description: Optional[str] = None) -> Dict[str, Any]:
        return self._request(
            "PUT",
            f"/api/expenses/{expense_id}",
            json=self._payload(amount, date, category_name, description),
        )

    def delete_expense(self, expense_id: int) -> None:
        self._request("DELETE", f"/api/expenses/{expense_id}", expected=(200, 204))

    def list_categories(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/api/categories")

    def seed(self) -> Dict[str, Any]:
        return self._request("POST", "/api/seed")


def _sort_key(expense: Dict[str, Any]):
    return expense["date"], expense["id"]


class ExpenseBoard:
    """Local copy of the dashboard's expense list, kept in step with the API."""

    def __init__(self, api: ExpenseApi):
        self.api = api
        self.expenses: List[Dict[str, Any]] = []
        self.categories: List[Dict[str, Any]] = []
        self.month: Optional[str] = None
        self.category: Optional[str] = None

    def refresh(self) -> List[Dict[str, Any]]:
        self.expenses = self.api.list_expenses(month=self.month, category=self.category)
        self.categories = self.api.list_categories()
        return self.expenses

    def set_filters(self, month: Optional[str] = None, category: Optional[str] = None) -> List[Dict[str, Any]]:
        self.month = month or None
        self.category = category or None
        return self.refresh()

    def _matches_filters(self, expense: Dict[str, Any]) -> bool:
        if self.category and expense["category"]["name"] != self.category:
            return False
        if not in_month(Date.fromisoformat(expense["date"]), month_bounds(self.month)):
            return False
        return True

    def _known_category(self, name: str) -> bool:
        return any(c["name"] == name for c in self.categories)

    def _place(self, expense: Dict[str, Any]) -> None:
        rows = [e for e in self.expenses if e["id"] != expense["id"]]
        if self._matches_filters(expense):
            rows.append(expense)
        self.expenses = sorted(rows, key=_sort_key)

    def add(self, amount: float, date: str, category_name: str, description: Optional[str] = None) -> Dict[str, Any]:
        created = self.api.create_expense(amount, date, category_name, description)
        self._place(created)
        if not self._known_category(created["category"]["name"]):
            self.categories = self.api.list_categories()
        return created

    def edit(self, expense_id: int, amount: float, date: str, category_name: str, description: Optional[str] = None) -> Dict[str, Any]:
        updated = self.api.update_expense(expense_id, amount, date, category_name, description)
        self._place(updated)
        if not self._known_category(updated["category"]["name"]):
            self.categories = self.api.list_categories()
        return updated

    def remove(self, expense_id: int) -> None:
        self.expenses = [e for e in self.expenses if e["id"] != expense_id]
        try:
            self.api.delete_expense(expense_id)
        except ApiError:
            self.expenses = self.api.list_expenses(month=self.month, category=self.category)
            raise

    def totals_by_category(self) -> Dict[str, float]:
        """Bar chart data for what's currently loaded."""
        totals: Dict[str, float] = {}
        for e in self.expenses:
            name = e["category"]["name"]
            totals[name] = round(totals.get(name, 0.0) + float(e["amount"]), 2)
        return totals
