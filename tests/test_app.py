"""Tests for application composition and the HTTP surface."""

from __future__ import annotations

import asyncio

import pytest

from apiforge import create_app
from apiforge.exceptions import MissingSectionError
from apiforge.repositories import C3PO, R2D2

from conftest import settings


def vary_values(response):
    return [value.strip() for value in response.headers.get("vary", "").split(",")]


@pytest.mark.integration
class TestStatusEndpoints:
    def test_status(self, client):
        response = client.get("/status")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert [component["name"] for component in body["components"]] == ["options"]
        assert body["components"][0]["metadata"] == {"environment": "Test", "backend": "InMemory"}
        assert body["uptime_seconds"] >= 0

    def test_status_self(self, client):
        response = client.get("/status/self")

        assert response.status_code == 200
        assert response.json()["status"] == "alive"

    def test_metrics(self, client):
        client.get("/v1/droids")

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "apiforge_http_requests_total" in response.text
        assert 'method="GET"' in response.text

    def test_health_check_disabled(self, make_client):
        client = make_client(overrides={"Features": {"HealthCheck": False}})

        assert client.get("/status").status_code == 404
        assert client.get("/status/self").status_code == 404


@pytest.mark.integration
class TestRestApi:
    def test_versioned_droids(self, client):
        response = client.get("/v1/droids")

        assert response.status_code == 200
        assert [droid["name"] for droid in response.json()] == ["C-3PO", "R2-D2"]
        assert response.headers["api-supported-versions"] == "1.0"

    def test_unversioned_path_uses_default_version(self, client):
        response = client.get("/droids")

        assert response.status_code == 200
        assert response.headers["api-supported-versions"] == "1.0"

    def test_versioning_disabled(self, make_client):
        client = make_client(overrides={"Features": {"Versioning": False}})

        response = client.get("/droids")

        assert response.status_code == 200
        assert "api-supported-versions" not in response.headers
        assert client.get("/v1/droids").status_code == 404

    def test_paging_arguments(self, client):
        response = client.get("/v1/droids", params={"skip": 1, "limit": 1})

        assert [droid["name"] for droid in response.json()] == ["R2-D2"]

    def test_droid_by_id_is_cached(self, client):
        response = client.get(f"/v1/droids/{C3PO}")

        assert response.status_code == 200
        assert response.json()["name"] == "C-3PO"
        assert response.json()["charge_period"] == "PT4H"

        cache = client.app.state.cache
        cached = asyncio.run(cache.get(f"droid:{C3PO}"))
        assert cached is not None
        assert client.get(f"/v1/droids/{C3PO}").json() == response.json()

    def test_unknown_droid(self, client):
        response = client.get("/v1/droids/00000000-0000-0000-0000-000000000000")

        assert response.status_code == 404

    def test_default_cache_profile(self, client):
        response = client.get(f"/v1/droids/{R2D2}")

        assert response.headers["cache-control"] == "public,max-age=60"
        assert "Accept" in vary_values(response)

    def test_no_cache_profile(self, client):
        response = client.get("/v1/cache-profiles")

        assert response.status_code == 200
        assert response.json() == ["Default", "NoCache", "StaticFiles"]
        assert response.headers["cache-control"] == "no-store"

    def test_paths_are_case_insensitive(self, client):
        response = client.get("/V1/Droids")

        assert response.status_code == 200


@pytest.mark.integration
class TestSwagger:
    def test_swagger_enabled(self, client):
        document = client.get("/swagger/v1/swagger.json")

        assert document.status_code == 200
        paths = document.json()["paths"]
        assert "/v1/droids" in paths
        assert "/droids" not in paths
        assert client.get("/swagger").status_code == 200

    def test_swagger_disabled(self, make_client):
        client = make_client(overrides={"Features": {"Swagger": False}})

        assert client.get("/swagger/v1/swagger.json").status_code == 404
        assert client.get("/swagger").status_code == 404


@pytest.mark.integration
class TestHttps:
    def test_http_is_redirected(self, make_client):
        client = make_client(base_url="http://testserver")

        response = client.get("/status/self", follow_redirects=False)

        assert response.status_code == 307
        assert response.headers["location"] == "https://testserver/status/self"

    def test_forwarded_proto_is_honoured(self, make_client):
        client = make_client(base_url="http://testserver")

        response = client.get(
            "/status/self",
            headers={"X-Forwarded-Proto": "https"},
            follow_redirects=False,
        )

        assert response.status_code == 200

    def test_hsts_header(self, client):
        response = client.get("/status/self")

        assert response.headers["strict-transport-security"] == "max-age=31536000; includeSubDomains"

    def test_hsts_preload(self, make_client):
        client = make_client(overrides={"Features": {"HstsPreload": True}})

        response = client.get("/status/self")

        assert response.headers["strict-transport-security"] == (
            "max-age=31536000; includeSubDomains; preload"
        )

    def test_no_hsts_in_development(self, make_client):
        client = make_client(
            "Development",
            overrides={"Storage": {"Backend": "InMemory"}, "Features": {"OpenTelemetry": False}},
        )

        response = client.get("/status/self")

        assert response.status_code == 200
        assert "strict-transport-security" not in response.headers

    def test_https_everywhere_disabled(self, make_client):
        client = make_client(
            base_url="http://testserver",
            overrides={"Features": {"HttpsEverywhere": False}},
        )

        response = client.get("/status/self", follow_redirects=False)

        assert response.status_code == 200
        assert "strict-transport-security" not in response.headers


@pytest.mark.integration
class TestResponseCompression:
    def test_gzip_above_minimum_size(self, make_client):
        client = make_client(overrides={"Compression": {"MinimumSize": 0}})

        response = client.get("/v1/droids", headers={"Accept-Encoding": "gzip"})

        assert response.headers["content-encoding"] == "gzip"
        assert "Accept-Encoding" in vary_values(response)
        assert [droid["name"] for droid in response.json()] == ["C-3PO", "R2-D2"]

    def test_small_responses_are_not_compressed(self, client):
        response = client.get("/status/self", headers={"Accept-Encoding": "gzip"})

        assert "content-encoding" not in response.headers

    def test_identity_encoding(self, make_client):
        client = make_client(overrides={"Compression": {"MinimumSize": 0}})

        response = client.get("/v1/droids", headers={"Accept-Encoding": "identity"})

        assert "content-encoding" not in response.headers

    def test_compression_disabled(self, make_client):
        client = make_client(
            overrides={"Features": {"ResponseCompression": False}, "Compression": {"MinimumSize": 0}}
        )

        response = client.get("/v1/droids", headers={"Accept-Encoding": "gzip"})

        assert "content-encoding" not in response.headers


@pytest.mark.integration
class TestServerLimits:
    def test_request_body_too_large(self, make_client):
        client = make_client(overrides={"Kestrel": {"Limits": {"MaxRequestBodySize": 10}}})

        response = client.post("/graphql", json={"query": "{ droids { nodes { name } } }"})

        assert response.status_code == 413

    def test_chunked_request_body_too_large(self, make_client):
        client = make_client(overrides={"Kestrel": {"Limits": {"MaxRequestBodySize": 10}}})

        def chunks():
            yield b'{"query": '
            yield b'"{ droids { nodes { name } } }"}'

        response = client.post(
            "/graphql", content=chunks(), headers={"Content-Type": "application/json"}
        )

        assert "content-length" not in response.request.headers
        assert response.status_code == 413
        assert response.json() == {"detail": "Request body too large"}

    def test_request_body_within_limit(self, make_client):
        client = make_client(overrides={"Kestrel": {"Limits": {"MaxRequestBodySize": 1024}}})

        def chunks():
            yield b'{"query": '
            yield b'"{ droids { nodes { name } } }"}'

        response = client.post(
            "/graphql", content=chunks(), headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 200
        assert "errors" not in response.json()

    def test_too_many_headers(self, make_client):
        client = make_client(overrides={"Kestrel": {"Limits": {"MaxRequestHeaderCount": 5}}})

        response = client.get(
            "/status/self",
            headers={"X-One": "1", "X-Two": "2", "X-Three": "3"},
        )

        assert response.status_code == 431


@pytest.mark.integration
class TestRequestPipeline:
    def test_cors_preflight(self, client):
        response = client.options(
            "/v1/droids",
            headers={
                "Origin": "https://example.com",
                "Access-Control-Request-Method": "GET",
            },
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "*"

    def test_cors_disabled(self, make_client):
        client = make_client(overrides={"Features": {"Cors": False}})

        response = client.get("/v1/droids", headers={"Origin": "https://example.com"})

        assert "access-control-allow-origin" not in response.headers

    def test_correlation_id_is_echoed(self, client):
        response = client.get("/status/self", headers={"X-Correlation-ID": "abc-123"})

        assert response.headers["x-correlation-id"] == "abc-123"

    def test_correlation_id_is_generated(self, client):
        response = client.get("/status/self")

        assert response.headers["x-correlation-id"].startswith("req-")

    def test_host_filtering(self, make_client):
        client = make_client(
            overrides={
                "Features": {"ForwardedHeaders": False, "HostFiltering": True},
                "HostFiltering": {"AllowedHosts": ["api.example.com"]},
            },
        )

        assert client.get("/status/self").status_code == 400

    def test_graphql_disabled(self, make_client):
        client = make_client(overrides={"Features": {"GraphQL": False}})

        response = client.post("/graphql", json={"query": "{ droids { nodes { name } } }"})

        assert response.status_code == 404


@pytest.mark.unit
class TestComposition:
    def test_options_are_exposed(self, make_app):
        app = make_app()

        assert app.state.options.environment == "Test"
        assert app.state.backends.redis is None

    def test_missing_redis_outside_test_is_fatal(self):
        config = settings("Production")
        del config["Redis"]

        with pytest.raises(MissingSectionError) as exc_info:
            create_app(config, environment="Production")

        assert exc_info.value.section == "Redis"

    def test_missing_graphql_section_is_fatal(self):
        config = settings()
        del config["GraphQL"]

        with pytest.raises(MissingSectionError, match="GraphQL"):
            create_app(config, environment="Test")
