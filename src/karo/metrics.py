"""
OpenTelemetry metrics for alert reactions.

Counters:
- karo.alerts.received: alerts accepted for processing
- karo.alerts.unmatched: alerts that produced zero jobs
- karo.jobs.created: jobs submitted to the cluster
- karo.jobs.failed: actions that did not yield a job (attribute ``stage``)
- karo.rules.triggered: AlertReactions that matched an alert

The provider is private to this collector so other OTel users in the
process are not affected. Without an exporter the counters are recorded
but never exported.

Usage:
    from karo.metrics import ReactionMetrics

    metrics = ReactionMetrics(console=True)
    metrics.record_alert_received("HighCPUUsage")
"""

from __future__ import annotations

import atexit
import logging
from typing import Optional, Sequence

from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import (
    ConsoleMetricExporter,
    MetricExporter,
    MetricReader,
    PeriodicExportingMetricReader,
)
from opentelemetry.sdk.resources import Resource

logger = logging.getLogger(__name__)

DEFAULT_EXPORT_INTERVAL_MS = 60000
OTEL_FLUSH_TIMEOUT_MS = 5000


class ReactionMetrics:
    """Counters for the alert-to-job pipeline."""

    def __init__(
        self,
        service_name: str = "karo",
        console: bool = False,
        exporter: Optional[MetricExporter] = None,
        export_interval_ms: int = DEFAULT_EXPORT_INTERVAL_MS,
        metric_readers: Optional[Sequence[MetricReader]] = None,
    ):
        readers = list(metric_readers or [])
        if exporter is None and console:
            exporter = ConsoleMetricExporter()
        if exporter is not None:
            readers.append(
                PeriodicExportingMetricReader(exporter, export_interval_millis=export_interval_ms)
            )

        resource = Resource.create({"service.name": service_name})
        self._provider = MeterProvider(resource=resource, metric_readers=readers)
        self._meter = self._provider.get_meter("karo.metrics")
        self._setup_instruments()

        if readers:
            atexit.register(self.shutdown)

    def _setup_instruments(self) -> None:
        self.alerts_received = self._meter.create_counter(
            name="karo.alerts.received",
            description="Firing alerts accepted for processing",
            unit="{alert}",
        )
        self.alerts_unmatched = self._meter.create_counter(
            name="karo.alerts.unmatched",
            description="Alerts for which no job was produced",
            unit="{alert}",
        )
        self.jobs_created = self._meter.create_counter(
            name="karo.jobs.created",
            description="Jobs submitted to the cluster",
            unit="{job}",
        )
        self.jobs_failed = self._meter.create_counter(
            name="karo.jobs.failed",
            description="Actions that did not produce a submitted job",
            unit="{job}",
        )
        self.rules_triggered = self._meter.create_counter(
            name="karo.rules.triggered",
            description="AlertReactions matched by an alert",
            unit="{rule}",
        )

    def record_alert_received(self, alert_name: str) -> None:
        self.alerts_received.add(1, {"alert.name": alert_name})

    def record_alert_unmatched(self, alert_name: str) -> None:
        self.alerts_unmatched.add(1, {"alert.name": alert_name})

    def record_job_created(self, rule: str, action: str) -> None:
        self.jobs_created.add(1, {"rule.name": rule, "action.name": action})

    def record_job_failed(self, rule: str, action: str, stage: str) -> None:
        self.jobs_failed.add(1, {"rule.name": rule, "action.name": action, "stage": stage})

    def record_rule_triggered(self, rule: str, namespace: str) -> None:
        self.rules_triggered.add(1, {"rule.name": rule, "rule.namespace": namespace})

    def shutdown(self) -> None:
        """Flush and stop the provider."""
        try:
            self._provider.force_flush(timeout_millis=OTEL_FLUSH_TIMEOUT_MS)
            self._provider.shutdown()
        except Exception as e:
            logger.debug(f"Error during metrics shutdown: {e}")
