"""Draft job metrics and alerts.

Both sinks are plain HTTP POST endpoints configured through the environment.
When a sink is not configured the payload is logged instead. Delivery
failures are logged and never raised: telemetry must not fail a job.
"""

from __future__ import annotations

import logging
import os
from typing import Literal, Optional

import httpx
from pydantic import BaseModel, Field

from drafting.models.timestamps import utcnow

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 10.0


class TokenCounts(BaseModel):
    input: Optional[int] = None
    output: Optional[int] = None
    total: Optional[int] = None


class DraftJobMetric(BaseModel):
    """One job lifecycle measurement."""

    job_id: str
    project_id: str
    session_id: Optional[str] = None
    status: Literal["running", "complete", "error"]
    duration_ms: Optional[int] = None
    attempts: Optional[int] = None
    prompt_tokens: Optional[int] = None
    tokens: Optional[TokenCounts] = None
    timestamp: int = Field(
        default_factory=lambda: int(utcnow().timestamp() * 1000),
        description="Epoch milliseconds",
    )


class DraftJobAlert(BaseModel):
    """Escalation for a job that failed terminally."""

    job_id: str
    project_id: str
    session_id: Optional[str] = None
    message: str
    severity: Literal["info", "warning", "error"]
    summary: Optional[str] = None


class DraftTelemetry:
    """Publishes draft job metrics and alerts.

    Configuration (env vars):
    - DRAFT_METRICS_ENDPOINT: Metrics sink URL (unset: log only)
    - DRAFT_METRICS_TOKEN: Optional bearer token for the metrics sink
    - DRAFT_ALERT_WEBHOOK: Alert webhook URL (unset: log only)
    """

    def __init__(
        self,
        metrics_endpoint: Optional[str] = None,
        metrics_token: Optional[str] = None,
        alert_webhook: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        self.metrics_endpoint = metrics_endpoint or os.getenv("DRAFT_METRICS_ENDPOINT")
        self.metrics_token = metrics_token or os.getenv("DRAFT_METRICS_TOKEN")
        self.alert_webhook = alert_webhook or os.getenv("DRAFT_ALERT_WEBHOOK")
        self._transport = transport
        self._timeout = timeout

    async def _post(self, url: str, body: dict, headers: Optional[dict] = None) -> None:
        async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
            response = await client.post(url, json=body, headers=headers)
            response.raise_for_status()

    async def publish_metrics(self, metric: DraftJobMetric) -> None:
        body = metric.model_dump(mode="json", exclude_none=True)
        if not self.metrics_endpoint:
            logger.info("Draft job metric", extra={"metric": body})
            return

        headers = {"Authorization": f"Bearer {self.metrics_token}"} if self.metrics_token else None
        try:
            await self._post(self.metrics_endpoint, body, headers)
        except Exception as e:
            logger.error(f"Failed to publish draft job metric: {e}", extra={"metric": body})

    async def send_alert(self, alert: DraftJobAlert) -> None:
        body = alert.model_dump(mode="json", exclude_none=True)
        if not self.alert_webhook:
            logger.warning("Draft queue alert", extra={"alert": body})
            return

        try:
            await self._post(self.alert_webhook, body)
        except Exception as e:
            logger.error(f"Failed to send drafting alert: {e}", extra={"alert": body})
