"""Unit tests for draft job metrics and alerts."""

import json
import logging

import httpx
import pytest

from drafting.services.telemetry import DraftJobAlert, DraftJobMetric, DraftTelemetry, TokenCounts


@pytest.fixture(autouse=True)
def clear_sink_env(monkeypatch):
    for name in ("DRAFT_METRICS_ENDPOINT", "DRAFT_METRICS_TOKEN", "DRAFT_ALERT_WEBHOOK"):
        monkeypatch.delenv(name, raising=False)


def recording_transport(requests, status_code=200):
    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(status_code)

    return httpx.MockTransport(handler)


def metric(**kwargs) -> DraftJobMetric:
    return DraftJobMetric(job_id="job-1", project_id="proj-1", status="complete", **kwargs)


class TestPublishMetrics:
    @pytest.mark.asyncio
    async def test_posts_metric_with_bearer_token(self):
        requests = []
        telemetry = DraftTelemetry(
            metrics_endpoint="https://metrics.test/draft",
            metrics_token="secret",
            transport=recording_transport(requests),
        )

        await telemetry.publish_metrics(metric(duration_ms=1200, tokens=TokenCounts(input=10, total=15)))

        assert len(requests) == 1
        request = requests[0]
        assert str(request.url) == "https://metrics.test/draft"
        assert request.headers["Authorization"] == "Bearer secret"
        body = json.loads(request.content)
        assert body["status"] == "complete"
        assert body["duration_ms"] == 1200
        assert body["tokens"] == {"input": 10, "total": 15}
        assert "session_id" not in body
        assert isinstance(body["timestamp"], int)

    @pytest.mark.asyncio
    async def test_no_token_no_auth_header(self):
        requests = []
        telemetry = DraftTelemetry(
            metrics_endpoint="https://metrics.test/draft", transport=recording_transport(requests)
        )
        await telemetry.publish_metrics(metric())
        assert "Authorization" not in requests[0].headers

    @pytest.mark.asyncio
    async def test_unconfigured_logs_only(self, caplog):
        with caplog.at_level(logging.INFO, logger="drafting.services.telemetry"):
            await DraftTelemetry().publish_metrics(metric())
        assert "Draft job metric" in caplog.text

    @pytest.mark.asyncio
    async def test_delivery_failure_is_logged_not_raised(self, caplog):
        telemetry = DraftTelemetry(
            metrics_endpoint="https://metrics.test/draft", transport=recording_transport([], 500)
        )
        with caplog.at_level(logging.ERROR, logger="drafting.services.telemetry"):
            await telemetry.publish_metrics(metric())
        assert "Failed to publish draft job metric" in caplog.text


class TestSendAlert:
    @pytest.mark.asyncio
    async def test_posts_alert(self):
        requests = []
        telemetry = DraftTelemetry(
            alert_webhook="https://alerts.test/hook", transport=recording_transport(requests)
        )

        await telemetry.send_alert(
            DraftJobAlert(job_id="job-1", project_id="proj-1", message="boom", severity="error")
        )

        body = json.loads(requests[0].content)
        assert body == {"job_id": "job-1", "project_id": "proj-1", "message": "boom", "severity": "error"}

    @pytest.mark.asyncio
    async def test_unconfigured_logs_warning(self, caplog):
        with caplog.at_level(logging.WARNING, logger="drafting.services.telemetry"):
            await DraftTelemetry().send_alert(
                DraftJobAlert(job_id="job-1", project_id="proj-1", message="boom", severity="error")
            )
        assert "Draft queue alert" in caplog.text

    @pytest.mark.asyncio
    async def test_connection_error_swallowed(self):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        telemetry = DraftTelemetry(
            alert_webhook="https://alerts.test/hook", transport=httpx.MockTransport(handler)
        )
        await telemetry.send_alert(
            DraftJobAlert(job_id="job-1", project_id="proj-1", message="boom", severity="warning")
        )

    @pytest.mark.asyncio
    async def test_malformed_endpoint_is_logged_not_raised(self, caplog):
        telemetry = DraftTelemetry(metrics_endpoint="http://[::1", alert_webhook="http://[::1")
        with caplog.at_level(logging.ERROR, logger="drafting.services.telemetry"):
            await telemetry.publish_metrics(metric())
            await telemetry.send_alert(
                DraftJobAlert(job_id="job-1", project_id="proj-1", message="boom", severity="error")
            )
        assert "Failed to publish draft job metric" in caplog.text
        assert "Failed to send drafting alert" in caplog.text
