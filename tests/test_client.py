import json

import httpx
import pytest

from expense_ai.client import ApiClientError, ExpenseApiClient


def make_client(handler, token="tok"):
    return ExpenseApiClient("http://api.test/", token=token, transport=httpx.MockTransport(handler))


class TestExpenseApiClient:
    def test_unwraps_envelope(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json={"success": True, "message": "ok", "data": {"categories": []}})

        with make_client(handler) as client:
            assert client.request("GET", "screens/categories") == {"categories": []}

        assert seen == {"url": "http://api.test/api/v1/screens/categories", "auth": "Bearer tok"}

    def test_login_stores_token(self):
        def handler(request):
            assert json.loads(request.content) == {"email": "a@b.co", "password": "pw"}
            assert "Authorization" not in request.headers
            data = {"access_token": "new", "refresh_token": "r", "token_type": "bearer"}
            return httpx.Response(200, json={"success": True, "message": "ok", "data": data})

        client = make_client(handler, token=None)
        client.login("a@b.co", "pw")
        assert client.token == "new"

    def test_error_envelope(self):
        def handler(request):
            return httpx.Response(
                409, json={"success": False, "message": "Category with this name already exists", "error": "DUPLICATE_ERROR"}
            )

        with pytest.raises(ApiClientError) as excinfo:
            make_client(handler).create_category("Transport")

        assert excinfo.value.message == "Category with this name already exists"
        assert excinfo.value.status_code == 409
        assert excinfo.value.code == "DUPLICATE_ERROR"

    def test_error_without_message(self):
        def handler(request):
            return httpx.Response(500, json={"success": False})

        with pytest.raises(ApiClientError, match="Something went wrong"):
            make_client(handler).profile()

    def test_non_json_response(self):
        def handler(request):
            return httpx.Response(502, text="<html>Bad Gateway</html>")

        with pytest.raises(ApiClientError, match=r"Unexpected response from server \(502\)"):
            make_client(handler).profile()

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(ApiClientError, match="Request timed out"):
            make_client(handler).dashboard()

    def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        with pytest.raises(ApiClientError, match="Network error"):
            make_client(handler).dashboard()

    def test_query_params_skip_none(self):
        def handler(request):
            assert dict(request.url.params) == {"page": "2", "search": "coffee"}
            return httpx.Response(200, json={"success": True, "message": "ok", "data": {}})

        make_client(handler).expenses(page=2, search="coffee", category=None)
