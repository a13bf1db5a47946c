import base64
from pathlib import Path

from expense_ai.config import get_settings
from expense_ai.database import Expense
from tests.conftest import signup

PNG = "data:image/png;base64," + base64.b64encode(b"\x89PNG\r\n\x1a\nfake-image").decode()


def create(client, headers, **overrides):
    payload = {
        "amount": 12.5,
        "description": "Lunch",
        "category_id": "Food & Drink",
        "expense_date": "2024-06-12",
    }
    payload.update(overrides)
    return client.post("/api/v1/expenses", json=payload, headers=headers)


class TestCreateExpense:
    def test_category_by_name(self, client, auth_headers):
        response = create(client, auth_headers)
        assert response.status_code == 201
        data = response.json()["data"]
        assert data["category_name"] == "Food & Drink"
        assert data["amount"] == 12.5

    def test_category_by_alias(self, client, auth_headers):
        data = create(client, auth_headers, category_id="food").json()["data"]
        assert data["category_name"] == "Food & Drink"

    def test_category_by_partial_name(self, client, auth_headers):
        data = create(client, auth_headers, category_id="Health").json()["data"]
        assert data["category_name"] == "Healthcare"

    def test_category_by_id(self, client, auth_headers):
        first = create(client, auth_headers, category_id="Transport").json()["data"]
        data = create(client, auth_headers, category_id=first["category_id"]).json()["data"]
        assert data["category_name"] == "Transport"

    def test_unknown_category(self, client, auth_headers):
        response = create(client, auth_headers, category_id="Yachts")
        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"
        assert response.json()["message"] == "Category not found: Yachts"

    def test_amount_must_be_positive(self, client, auth_headers):
        assert create(client, auth_headers, amount=0).status_code == 400

    def test_item_breakdowns_kept(self, client, auth_headers):
        items = [{"name": "Soup", "quantity": 1, "price": 5.5}, {"name": "Bread", "quantity": 2, "price": 3.5}]
        data = create(client, auth_headers, item_breakdowns=items).json()["data"]
        assert [i["name"] for i in data["item_breakdowns"]] == ["Soup", "Bread"]

    def test_inline_receipt_is_stored(self, client, auth_headers):
        data = create(client, auth_headers, receipt_image=PNG).json()["data"]
        url = data["receipt_image_url"]
        assert url.startswith("/uploads/receipts/")
        assert (Path(get_settings().upload_dir) / "receipts" / url.rsplit("/", 1)[1]).exists()


class TestUpdateAndDelete:
    def test_partial_update(self, client, auth_headers):
        expense = create(client, auth_headers).json()["data"]
        response = client.put(
            f"/api/v1/expenses/{expense['id']}", json={"amount": 20, "category_id": "transport"}, headers=auth_headers
        )
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["amount"] == 20
        assert data["description"] == "Lunch"
        assert data["category_name"] == "Transport"

    def test_cannot_touch_other_users_expense(self, client, auth_headers):
        expense = create(client, auth_headers).json()["data"]
        other = signup(client, email="other@example.com")
        headers = {"Authorization": f"Bearer {other['access_token']}"}

        response = client.put(f"/api/v1/expenses/{expense['id']}", json={"amount": 1}, headers=headers)
        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"

    def test_delete_removes_receipt(self, client, auth_headers, db):
        expense = create(client, auth_headers, receipt_image=PNG).json()["data"]
        path = Path(get_settings().upload_dir) / "receipts" / expense["receipt_image_url"].rsplit("/", 1)[1]
        assert path.exists()

        response = client.delete(f"/api/v1/expenses/{expense['id']}", headers=auth_headers)

        assert response.status_code == 200
        assert not path.exists()
        assert db.query(Expense).filter(Expense.id == expense["id"]).first() is None


class TestUploadReceipt:
    def test_upload(self, client, auth_headers):
        response = client.post("/api/v1/expenses/upload-receipt", json={"image": PNG}, headers=auth_headers)
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["image_url"].endswith(".png")

    def test_unsupported_type(self, client, auth_headers):
        image = "data:image/gif;base64," + base64.b64encode(b"GIF89a").decode()
        response = client.post("/api/v1/expenses/upload-receipt", json={"image": image}, headers=auth_headers)
        assert response.status_code == 400
        assert "Unsupported image type" in response.json()["message"]
