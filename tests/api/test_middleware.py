"""Tests for API middleware."""

from fastapi.testclient import TestClient


class TestRequestIdMiddleware:
    """Tests for request ID correlation middleware."""

    def test_generates_request_id_if_not_provided(self, client: TestClient) -> None:
        """Should generate request ID if not in request headers."""
        response = client.get("/health")
        assert response.status_code == 200
        assert len(response.headers["X-Request-ID"]) == 36

    def test_uses_provided_request_id(self, client: TestClient) -> None:
        custom_id = "custom-request-id-12345"
        response = client.get("/health", headers={"X-Request-ID": custom_id})
        assert response.headers["X-Request-ID"] == custom_id

    def test_error_body_carries_request_id(self, auth_client: TestClient) -> None:
        response = auth_client.get("/budgets/missing", headers={"X-Request-ID": "req-42"})
        assert response.status_code == 404
        assert response.json()["request_id"] == "req-42"


class TestApiKeyMiddleware:
    """Tests for API key authentication middleware."""

    def test_public_endpoints_dont_require_auth(self, client: TestClient) -> None:
        assert client.get("/health").status_code == 200
        assert client.get("/ready").status_code == 200

    def test_missing_authorization(self, client: TestClient) -> None:
        response = client.get("/budgets")
        assert response.status_code == 401
        assert response.json()["error_code"] == "UNAUTHORIZED"
        assert response.headers["WWW-Authenticate"] == "Bearer"

    def test_wrong_scheme(self, client: TestClient) -> None:
        response = client.get("/budgets", headers={"Authorization": "Basic abc"})
        assert response.status_code == 401
        assert response.json()["error_code"] == "UNAUTHORIZED"

    def test_invalid_api_key(self, client: TestClient) -> None:
        response = client.get("/budgets", headers={"Authorization": "Bearer wrong-key"})
        assert response.status_code == 401
        assert response.json()["error_code"] == "INVALID_API_KEY"

    def test_valid_api_key(self, auth_client: TestClient) -> None:
        assert auth_client.get("/budgets").status_code == 200
