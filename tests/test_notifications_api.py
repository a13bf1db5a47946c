TOKEN = "ExponentPushToken[test-device]"


class TestNotificationEndpoints:
    def test_daily_sends_to_registered_device(self, client, auth_headers, push_client):
        client.put("/api/v1/preferences", json={"daily_budget": 40}, headers=auth_headers)
        client.post("/api/v1/preferences/push-token", json={"push_token": TOKEN}, headers=auth_headers)

        response = client.post("/api/v1/notifications/test-daily", headers=auth_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Test daily notification processed"
        assert body["data"]["notification_sent"] is True
        assert body["data"]["progress"]["budget"] == 40
        assert push_client.sent[0]["token"] == TOKEN
        assert push_client.sent[0]["data"]["test"] is True

    def test_without_token_only_renders(self, client, auth_headers, push_client):
        response = client.post("/api/v1/notifications/test-weekly", headers=auth_headers)

        data = response.json()["data"]
        assert data["notification_sent"] is False
        assert data["title"] == "Weekly Reminder"
        assert data["progress"] is None
        assert push_client.sent == []

    def test_requires_auth(self, client):
        assert client.post("/api/v1/notifications/test-monthly").status_code == 401
