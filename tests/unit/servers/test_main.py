"""Tests for the assembled relay application."""

import logging
from unittest.mock import patch

import httpx
import pytest
from starlette.testclient import TestClient

from oauth_relay.servers import create_app
from oauth_relay.servers.main import HEALTH_PATH, TOKEN_PATH
from oauth_relay.servers.middleware import REQUEST_ID_HEADER
from oauth_relay.utils.metrics import UNMATCHED_ROUTE, MetricsCollector
from tests.conftest import (
    ALLOWED_ORIGIN,
    APP_CLIENT_SECRET,
    ERROR_PAYLOAD,
    OTHER_CLIENT_SECRET,
    SUCCESS_PAYLOAD,
    UpstreamStub,
    exchange_body,
)


@pytest.fixture
def metrics():
    return MetricsCollector(include_process_metrics=False)


@pytest.fixture
def app(relay_config, upstream, metrics):
    return create_app(relay_config, http_client=upstream.client(), metrics=metrics)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


class TestHealth:
    def test_health(self, client):
        response = client.get(HEALTH_PATH)
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}
        assert REQUEST_ID_HEADER in response.headers

    def test_health_rejects_post(self, client, metrics):
        response = client.post(HEALTH_PATH)
        assert response.status_code == 405
        assert metrics.request_count("POST", HEALTH_PATH, 405) == 1


class TestMetricsEndpoint:
    def test_exposes_request_counter(self, client):
        client.get(HEALTH_PATH)

        response = client.get("/metrics")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/plain")
        assert "# HELP http_requests_total" in response.text
        assert "# TYPE http_requests_total counter" in response.text
        assert (
            'http_requests_total{method="GET",route="/health",status_code="200"} 1.0'
            in response.text
        )

    def test_scrapes_are_not_counted(self, client, metrics):
        client.get("/metrics")
        client.get("/metrics")
        response = client.get("/metrics")
        assert 'route="/metrics"' not in response.text
        assert metrics.request_count("GET", "/metrics", 200) == 0

    def test_default_collector_includes_process_metrics(self, relay_config, upstream):
        app = create_app(relay_config, http_client=upstream.client())
        with TestClient(app) as test_client:
            response = test_client.get("/metrics")
        assert "python_info" in response.text


class TestTokenRoute:
    def test_successful_exchange(self, client, metrics):
        response = client.post(TOKEN_PATH, json=exchange_body())

        assert response.status_code == 200
        assert response.json() == SUCCESS_PAYLOAD
        assert metrics.request_count("POST", TOKEN_PATH, 200) == 1

    def test_rejections_are_counted(self, client, metrics):
        client.post(TOKEN_PATH, json=exchange_body(client_id="unknown"))
        client.post(TOKEN_PATH, json=exchange_body(redirect_uri="https://evil.example.com/cb"))
        assert metrics.request_count("POST", TOKEN_PATH, 400) == 2

    def test_upstream_failure_counted_as_500(self, relay_config, metrics):
        stub = UpstreamStub(exc=httpx.ConnectError("connection refused"))
        app = create_app(relay_config, http_client=stub.client(), metrics=metrics)
        with TestClient(app) as test_client:
            response = test_client.post(TOKEN_PATH, json=exchange_body())

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}
        assert metrics.request_count("POST", TOKEN_PATH, 500) == 1

    def test_get_not_allowed(self, client, metrics):
        response = client.get(TOKEN_PATH)
        assert response.status_code == 405
        assert metrics.request_count("GET", TOKEN_PATH, 405) == 1

    def test_unknown_path(self, client, metrics):
        response = client.get("/v1/github/unknown")
        assert response.status_code == 404
        assert metrics.request_count("GET", UNMATCHED_ROUTE, 404) == 1

    @pytest.mark.parametrize("payload", [None, ERROR_PAYLOAD])
    def test_secrets_never_leak(self, relay_config, metrics, caplog, payload):
        stub = UpstreamStub(payload)
        app = create_app(relay_config, http_client=stub.client(), metrics=metrics)

        with caplog.at_level(logging.DEBUG), TestClient(app) as test_client:
            response = test_client.post(TOKEN_PATH, json=exchange_body())

        assert APP_CLIENT_SECRET not in response.text
        for record in caplog.records:
            text = record.getMessage() + " " + " ".join(str(v) for v in vars(record).values())
            assert APP_CLIENT_SECRET not in text
            assert OTHER_CLIENT_SECRET not in text


class TestCors:
    def test_preflight_from_allowed_origin(self, client, metrics):
        response = client.options(
            TOKEN_PATH,
            headers={
                "Origin": ALLOWED_ORIGIN,
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "content-type",
            },
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == ALLOWED_ORIGIN
        assert response.headers["access-control-allow-credentials"] == "true"
        assert metrics.request_count("OPTIONS", TOKEN_PATH, 200) == 0

    def test_preflight_from_disallowed_origin(self, client):
        response = client.options(
            TOKEN_PATH,
            headers={
                "Origin": "https://evil.example.com",
                "Access-Control-Request-Method": "POST",
            },
        )
        assert response.status_code == 400
        assert "access-control-allow-origin" not in response.headers

    def test_simple_request_from_allowed_origin(self, client):
        response = client.post(
            TOKEN_PATH, json=exchange_body(), headers={"Origin": ALLOWED_ORIGIN}
        )
        assert response.headers["access-control-allow-origin"] == ALLOWED_ORIGIN

    def test_simple_request_from_disallowed_origin(self, client):
        response = client.get(HEALTH_PATH, headers={"Origin": "https://evil.example.com"})
        assert response.status_code == 200
        assert "access-control-allow-origin" not in response.headers


class TestLifespan:
    def test_logs_ready_and_stopped(self, app, caplog):
        with caplog.at_level(logging.INFO):
            with TestClient(app):
                pass

        messages = [r.getMessage() for r in caplog.records]
        assert "GitHub OAuth relay ready" in messages
        assert "GitHub OAuth relay stopped" in messages

    def test_provided_client_is_left_open(self, relay_config):
        stub = UpstreamStub()
        http_client = stub.client()
        with TestClient(create_app(relay_config, http_client=http_client)):
            pass
        assert not http_client.is_closed

    def test_owned_client_is_reopened_for_each_lifespan(self, relay_config, upstream):
        real_async_client = httpx.AsyncClient
        opened = []

        def open_client():
            client = real_async_client(transport=httpx.MockTransport(upstream))
            opened.append(client)
            return client

        app = create_app(relay_config)
        handler = app.state.token_handler

        with patch("oauth_relay.servers.main.httpx.AsyncClient", side_effect=open_client):
            with TestClient(app):
                pass
            assert handler.http_client is None
            with TestClient(app) as test_client:
                response = test_client.post(TOKEN_PATH, json=exchange_body())

        assert response.status_code == 200
        assert response.json() == SUCCESS_PAYLOAD
        assert len(opened) == 2
        assert all(client.is_closed for client in opened)
        assert len(upstream.requests) == 1

    def test_exchange_outside_lifespan_fails_cleanly(self, relay_config, upstream):
        app = create_app(relay_config)
        response = TestClient(app).post(TOKEN_PATH, json=exchange_body())

        assert response.status_code == 500
        assert response.json() == {"error": "Internal server error"}
        assert upstream.requests == []

    def test_state(self, app, relay_config, metrics):
        assert app.state.config is relay_config
        assert app.state.metrics is metrics
        assert app.state.token_handler.token_url == relay_config.token_url
