"""
Structured logging for alert reaction events.

Outputs JSON-formatted logs for Loki ingestion. One line per event:

- alert.received
- alert.skipped (not firing, no alertname)
- alert.unmatched (no AlertReaction applies)
- job.created
- job.failed (synthesis or submission)
- rule.triggered
- status.update_failed

Usage:
    from karo.logger import ReactionLogger

    events = ReactionLogger()
    events.log_alert_received(alert_name="HighCPUUsage", receiver="karo")
    events.log_job_created(rule="cpu-reaction", namespace="ops", action="scale-up", job_name="...")
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

EVENTS_LOGGER_NAME = "karo.events"

# Configure structured logger for Loki
_events_logger = logging.getLogger(EVENTS_LOGGER_NAME)
_events_logger.setLevel(logging.INFO)
_events_logger.propagate = False

# Default handler outputs JSON to stdout (for container/Loki pickup)
if not _events_logger.handlers:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    _events_logger.addHandler(handler)


class JsonFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def configure_logging(level: str = "info", fmt: str = "json") -> None:
    """Configure the root logger for the CLI entry points."""
    if fmt == "json":
        formatter: logging.Formatter = JsonFormatter()
    else:
        formatter = logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    root = logging.getLogger()
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))


class ReactionLogger:
    """
    Structured logger for alert reaction events.

    Each entry carries timestamp, level, event, service and the
    event-specific fields, so Loki queries can filter by rule,
    alert or action.
    """

    def __init__(
        self,
        service_name: str = "karo",
        extra_labels: Optional[Dict[str, str]] = None,
    ):
        self.service_name = service_name
        self.extra_labels = extra_labels or {}
        self._logger = _events_logger

    def _emit(self, event: str, level: str = "info", **fields: Any) -> None:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "event": event,
            "service": self.service_name,
        }
        entry.update({k: v for k, v in fields.items() if v is not None})

        if self.extra_labels:
            entry["labels"] = self.extra_labels

        log_line = json.dumps(entry, default=str)

        if level == "error":
            self._logger.error(log_line)
        elif level == "warn":
            self._logger.warning(log_line)
        else:
            self._logger.info(log_line)

    def log_alert_received(self, alert_name: str, receiver: str = "", fingerprint: Optional[str] = None) -> None:
        self._emit("alert.received", alert_name=alert_name, receiver=receiver, fingerprint=fingerprint)

    def log_alert_skipped(self, reason: str, alert_name: Optional[str] = None, status: Optional[str] = None) -> None:
        self._emit("alert.skipped", alert_name=alert_name, reason=reason, status=status)

    def log_alert_unmatched(self, alert_name: str) -> None:
        """No AlertReaction applied; zero jobs for this alert."""
        self._emit("alert.unmatched", level="warn", alert_name=alert_name)

    def log_job_created(self, rule: str, namespace: str, action: str, job_name: str) -> None:
        self._emit(
            "job.created",
            rule=rule,
            namespace=namespace,
            action=action,
            job_name=job_name,
        )

    def log_job_failed(
        self,
        rule: str,
        namespace: str,
        action: str,
        stage: str,
        error: str,
        step: Optional[str] = None,
    ) -> None:
        self._emit(
            "job.failed",
            level="error",
            rule=rule,
            namespace=namespace,
            action=action,
            stage=stage,
            step=step,
            error=error,
        )

    def log_rule_triggered(self, rule: str, namespace: str, alert_name: str, jobs_created: int, jobs_failed: int) -> None:
        self._emit(
            "rule.triggered",
            rule=rule,
            namespace=namespace,
            alert_name=alert_name,
            jobs_created=jobs_created,
            jobs_failed=jobs_failed,
        )

    def log_status_update_failed(self, rule: str, namespace: str, error: str) -> None:
        self._emit("status.update_failed", level="error", rule=rule, namespace=namespace, error=error)
