"""
Python client for the ExpenseAI API.

Every call unwraps the `{"success", "message", "data"}` envelope and
returns `data`. Network failures and error envelopes are raised as
ApiClientError carrying a message fit to show to a user. Nothing is
retried.
"""
import logging
from datetime import date
from typing import Any, Optional, Union

import httpx

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class ApiClientError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None):
        self.message = message
        self.status_code = status_code
        self.code = code
        super().__init__(message)


class ExpenseApiClient:
    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        api_version: str = "v1",
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.api_prefix = f"/api/{api_version}"
        self._http = httpx.Client(base_url=self.base_url, timeout=timeout, transport=transport)

    def close(self) -> None:
        self._http.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def url(self, path: str) -> str:
        return f"{self.api_prefix}/{path.lstrip('/')}".rstrip("/")

    def request(self, method: str, path: str, **kwargs) -> Any:
        headers = kwargs.pop("headers", {})
        headers.setdefault("Accept", "application/json")
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"

        try:
            response = self._http.request(method, self.url(path), headers=headers, **kwargs)
        except httpx.TimeoutException:
            raise ApiClientError("Request timed out. Please check your connection and try again.")
        except httpx.HTTPError as e:
            logger.error(f"{method} {path} failed: {e}")
            raise ApiClientError("Network error. Please check your internet connection.")

        try:
            body = response.json()
        except ValueError:
            raise ApiClientError(
                f"Unexpected response from server ({response.status_code})", status_code=response.status_code
            )

        if not isinstance(body, dict) or not body.get("success", False) or response.is_error:
            message = body.get("message") if isinstance(body, dict) else None
            code = body.get("error") if isinstance(body, dict) else None
            raise ApiClientError(
                message or "Something went wrong. Please try again.",
                status_code=response.status_code,
                code=code,
            )
        return body.get("data")

    # --- Auth ---

    def _store_tokens(self, data: dict) -> dict:
        self.token = data["access_token"]
        return data

    def signup(self, email: str, password: str, first_name: str, last_name: str) -> dict:
        data = self.request(
            "POST",
            "auth/signup",
            json={"email": email, "password": password, "first_name": first_name, "last_name": last_name},
        )
        return self._store_tokens(data)

    def login(self, email: str, password: str) -> dict:
        return self._store_tokens(self.request("POST", "auth/login", json={"email": email, "password": password}))

    def refresh(self, refresh_token: str) -> dict:
        return self._store_tokens(self.request("POST", "auth/refresh", json={"refresh_token": refresh_token}))

    def logout(self) -> None:
        self.request("POST", "auth/logout")
        self.token = None

    def profile(self) -> dict:
        return self.request("GET", "auth/profile")

    # --- Expenses & categories ---

    def create_expense(
        self,
        amount: float,
        description: str,
        category_id: Union[int, str],
        expense_date: Union[date, str],
        **extra,
    ) -> dict:
        payload = {
            "amount": amount,
            "description": description,
            "category_id": category_id,
            "expense_date": str(expense_date),
            **extra,
        }
        return self.request("POST", "expenses", json=payload)

    def update_expense(self, expense_id: int, **changes) -> dict:
        return self.request("PUT", f"expenses/{expense_id}", json=changes)

    def delete_expense(self, expense_id: int) -> None:
        self.request("DELETE", f"expenses/{expense_id}")

    def create_category(self, name: str, icon: Optional[str] = None, color: Optional[str] = None) -> dict:
        payload = {"name": name}
        if icon:
            payload["icon"] = icon
        if color:
            payload["color"] = color
        return self.request("POST", "categories", json=payload)

    def delete_category(self, category_id: int) -> dict:
        return self.request("DELETE", f"categories/{category_id}")

    # --- Screens ---

    def dashboard(self, month: Optional[int] = None, year: Optional[int] = None) -> dict:
        params = {k: v for k, v in {"month": month, "year": year}.items() if v is not None}
        return self.request("GET", "screens/dashboard", params=params)

    def expenses(self, **filters) -> dict:
        params = {k: str(v) for k, v in filters.items() if v is not None}
        return self.request("GET", "screens/expenses", params=params)

    def analytics(self, period: str = "month") -> dict:
        return self.request("GET", "screens/analytics", params={"period": period})

    # --- Preferences ---

    def preferences(self) -> dict:
        return self.request("GET", "preferences")

    def update_preferences(self, **changes) -> dict:
        return self.request("PUT", "preferences", json=changes)

    def spending_progress(self) -> dict:
        return self.request("GET", "preferences/spending-progress")

    def register_push_token(self, push_token: Optional[str]) -> dict:
        return self.request("POST", "preferences/push-token", json={"push_token": push_token})
