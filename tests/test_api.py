"""Integration tests for app-level endpoints."""

import pytest
from httpx import ASGITransport, AsyncClient

from fpl_live.main import app


@pytest.fixture
async def client():
    """Async HTTP client for testing the FastAPI app."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


class TestHealthEndpoint:
    """Tests for health check endpoint."""

    async def test_health_returns_healthy(self, client: AsyncClient):
        """Health endpoint should return healthy status."""
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestDocsEndpoint:
    """Tests for documentation endpoints."""

    async def test_docs_available(self, client: AsyncClient):
        """OpenAPI docs should be available."""
        response = await client.get("/docs")

        # FastAPI redirects /docs to /docs/ or returns HTML
        assert response.status_code in (200, 307)

    async def test_openapi_lists_live_routes(self, client: AsyncClient):
        """The live router should be mounted under /api/v1/live."""
        response = await client.get("/openapi.json")

        paths = response.json()["paths"]
        assert "/api/v1/live/status" in paths
        assert "/api/v1/live/fixtures/{fixture_id}" in paths
        assert "/api/v1/live/managers/{manager_id}/totals" in paths


class TestCORSHeaders:
    """Tests for CORS configuration."""

    async def test_cors_headers_present(self, client: AsyncClient):
        """CORS preflight should succeed for a configured origin."""
        response = await client.options(
            "/health",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "GET",
            },
        )

        # FastAPI/Starlette returns 200 for OPTIONS with CORS
        assert response.status_code in (200, 400)
