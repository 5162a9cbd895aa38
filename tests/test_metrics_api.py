from fastapi.testclient import TestClient

import src.api.main as api_main
from src.core.metrics import (
    record_request_transition,
    record_session_materialized,
    record_write_conflict,
    render_prometheus_metrics,
    reset_metrics_for_tests,
)


def test_metrics_endpoint_returns_prometheus_payload(monkeypatch) -> None:
    reset_metrics_for_tests()
    monkeypatch.setattr(api_main.settings, "metrics_enabled", True)

    client = TestClient(api_main.app)
    version_response = client.get("/version")
    assert version_response.status_code == 200

    metrics_response = client.get("/metrics")
    assert metrics_response.status_code == 200
    assert metrics_response.headers["content-type"].startswith("text/plain")
    body = metrics_response.text
    assert "talkboard_build_info" in body
    assert 'talkboard_http_requests_total{method="GET",path="/version",status="200"}' in body
    assert "talkboard_http_request_duration_seconds_sum" in body


def test_metrics_endpoint_disabled_returns_404(monkeypatch) -> None:
    monkeypatch.setattr(api_main.settings, "metrics_enabled", False)
    client = TestClient(api_main.app)
    response = client.get("/metrics")
    assert response.status_code == 404


def test_lifecycle_counters_are_rendered() -> None:
    reset_metrics_for_tests()
    record_request_transition(event="approve", to_status="approved")
    record_request_transition(event="approve", to_status="approved")
    record_session_materialized(origin="request")
    record_write_conflict(kind="materialize")

    body = render_prometheus_metrics(app_name="talkboard", app_version="0.1.0", env="test")

    assert 'talkboard_request_transitions_total{event="approve",to_status="approved"} 2' in body
    assert 'talkboard_sessions_materialized_total{origin="request"} 1' in body
    assert 'talkboard_write_conflicts_total{kind="materialize"} 1' in body
    reset_metrics_for_tests()


def test_http_series_are_labelled_by_route_template(client, monkeypatch) -> None:
    reset_metrics_for_tests()
    monkeypatch.setattr(api_main.settings, "metrics_enabled", True)

    for session_id in ("first-id", "second-id", "third-id"):
        assert client.get(f"/sessions/{session_id}").status_code == 401
    assert client.get("/no-such-page-1").status_code == 404
    assert client.get("/no-such-page-2").status_code == 404

    body = client.get("/metrics").text
    series = [line for line in body.splitlines() if line.startswith("talkboard_http_requests_total{")]

    assert 'talkboard_http_requests_total{method="GET",path="/sessions/{session_id}",status="401"} 3' in series
    assert 'talkboard_http_requests_total{method="GET",path="unmatched",status="404"} 2' in series
    assert not any("first-id" in line or "no-such-page" in line for line in body.splitlines())
    reset_metrics_for_tests()
