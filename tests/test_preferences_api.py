from expense_ai.database import UserPreferences
from expense_ai.timeutils import local_now

TOKEN = "ExponentPushToken[xxxxxxxxxxxxxxxxxxxxxx]"


class TestPreferences:
    def test_signup_defaults(self, client, auth_headers):
        response = client.get("/api/v1/preferences", headers=auth_headers)
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["currency"] == "USD"
        assert data["daily_budget"] is None
        assert data["onboarding_completed"] is False

    def test_missing_preferences_are_created(self, client, auth, db):
        user, headers = auth
        db.query(UserPreferences).filter(UserPreferences.user_id == user["id"]).delete()
        db.commit()

        response = client.get("/api/v1/preferences", headers=headers)

        assert response.json()["message"] == "Default preferences created"

    def test_update_and_clear_budget(self, client, auth_headers):
        client.put("/api/v1/preferences", json={"daily_budget": 50, "weekly_notifications": True}, headers=auth_headers)
        response = client.put("/api/v1/preferences", json={"daily_budget": 0}, headers=auth_headers)

        data = response.json()["data"]
        assert data["daily_budget"] is None
        assert data["weekly_notifications"] is True

    def test_unknown_timezone(self, client, auth_headers):
        response = client.put("/api/v1/preferences", json={"timezone": "Mars/Olympus"}, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"

    def test_notification_time_range(self, client, auth_headers):
        response = client.put("/api/v1/preferences", json={"daily_notification_time": 1440}, headers=auth_headers)
        assert response.status_code == 400


class TestOnboarding:
    def test_completes_once(self, client, auth_headers):
        payload = {"monthly_budget": 1500, "notifications_enabled": True, "timezone": "Europe/London"}

        first = client.post("/api/v1/preferences/onboarding/complete", json=payload, headers=auth_headers)
        second = client.post("/api/v1/preferences/onboarding/complete", json=payload, headers=auth_headers)

        assert first.status_code == 200
        data = first.json()["data"]
        assert data["onboarding_completed"] is True
        assert data["monthly_budget"] == 1500
        assert data["timezone"] == "Europe/London"
        assert second.status_code == 400
        assert second.json()["message"] == "Onboarding has already been completed"


class TestSpendingProgress:
    def test_progress(self, client, auth_headers):
        client.put("/api/v1/preferences", json={"daily_budget": 100}, headers=auth_headers)
        today = local_now("America/New_York").date().isoformat()
        client.post(
            "/api/v1/expenses",
            json={"amount": 85, "description": "Groceries", "category_id": "Shopping", "expense_date": today},
            headers=auth_headers,
        )

        data = client.get("/api/v1/preferences/spending-progress", headers=auth_headers).json()["data"]

        assert data["daily"]["spent"] == 85
        assert data["daily"]["remaining"] == 15
        assert data["daily"]["percentage"] == 85
        assert data["daily"]["status"] == "warning"
        assert data["weekly"] is None
        assert data["monthly"] is None


class TestPushToken:
    def test_register_and_clear(self, client, auth_headers):
        saved = client.post("/api/v1/preferences/push-token", json={"push_token": TOKEN}, headers=auth_headers)
        assert saved.json()["data"]["push_token"] == TOKEN

        cleared = client.post("/api/v1/preferences/push-token", json={"push_token": None}, headers=auth_headers)
        assert cleared.json()["data"]["push_token"] is None
        assert client.get("/api/v1/preferences", headers=auth_headers).json()["data"]["push_token"] is None

    def test_invalid_token(self, client, auth_headers):
        response = client.post("/api/v1/preferences/push-token", json={"push_token": "abc"}, headers=auth_headers)
        assert response.status_code == 400
        assert response.json()["message"] == "Invalid Expo push token"
