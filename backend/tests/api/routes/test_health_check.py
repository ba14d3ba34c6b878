from fastapi.testclient import TestClient

from tests.utils.test_utils import assert_response_success


class TestHealthCheckAPI:
    """Test cases for the health check API endpoint."""

    def test_health_check_reports_service(self, client: TestClient):
        body = assert_response_success(client.get("/api/health-check/"))

        assert body == {"status": "healthy", "service": "billing-backend"}

    def test_health_check_needs_no_principal(self, client: TestClient):
        """Liveness probes carry no X-User headers."""
        response = client.get("/api/health-check/", headers={})
        assert_response_success(response)

    def test_health_check_only_accepts_get(self, client: TestClient):
        for method in ("post", "put", "delete"):
            response = getattr(client, method)("/api/health-check/")
            assert response.status_code == 405

    def test_unknown_route_is_not_found(self, client: TestClient):
        response = client.get("/api/does-not-exist")
        assert response.status_code == 404
