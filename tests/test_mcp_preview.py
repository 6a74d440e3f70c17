"""Tests for the HTTP preview route that renders templates to HTML."""

from __future__ import annotations

import pytest
from starlette.applications import Starlette
from starlette.testclient import TestClient

from mcp_server.server import create_mcp_server


@pytest.fixture
def server():
    return create_mcp_server()


@pytest.fixture
def client(server):
    app = Starlette(routes=server.preview_routes())
    with TestClient(app) as test_client:
        yield test_client


class TestRenderEmailEndpoint:
    """Test POST /api/render-email."""

    def test_success_returns_html(self, client, welcome_template):
        response = client.post("/api/render-email", json={"sourceText": welcome_template})

        assert response.status_code == 200
        body = response.json()
        assert set(body) == {"htmlCode"}
        assert "Hello" in body["htmlCode"]

    def test_legacy_tsx_code_key(self, client, tsx_template):
        response = client.post("/api/render-email", json={"tsxCode": tsx_template})

        assert response.status_code == 200
        assert "Thanks, Ada!" in response.json()["htmlCode"]

    @pytest.mark.parametrize(
        "payload",
        [{}, {"sourceText": ""}, {"sourceText": 42}, ["not", "an", "object"]],
        ids=["missing", "empty", "number", "array"],
    )
    def test_invalid_source_is_400(self, client, payload):
        response = client.post("/api/render-email", json=payload)

        assert response.status_code == 400
        assert response.json() == {"error": "sourceText is required and must be a string"}

    def test_malformed_json_is_400(self, client):
        response = client.post(
            "/api/render-email", content=b"{not json", headers={"content-type": "application/json"}
        )
        assert response.status_code == 400

    def test_compile_failure_is_500(self, client):
        response = client.post(
            "/api/render-email",
            json={"sourceText": 'const cp = require("child_process");\nmodule.exports.default = () => null;'},
        )

        assert response.status_code == 500
        assert "child_process" in response.json()["error"]

    def test_throwing_template_message(self, client):
        response = client.post(
            "/api/render-email",
            json={"sourceText": 'module.exports.default = () => { throw new Error("bad data"); };'},
        )

        assert response.status_code == 500
        assert response.json() == {"error": "Error: bad data"}

    def test_get_not_allowed(self, client):
        assert client.get("/api/render-email").status_code == 405

    def test_requests_recorded_in_metrics(self, server, client, welcome_template):
        client.post("/api/render-email", json={"sourceText": welcome_template})
        client.post("/api/render-email", json={})

        preview = server.metrics.get_summary()["preview_requests"]
        assert preview["total_count"] == 2
        assert preview["error_count"] == 1
