"""
Alert dispatch: process an alert, submit its jobs and record rule status.

The processor only synthesizes jobs. This layer hands them to the job
sink, writes per-rule status and emits the structured events and
counters for every outcome. Nothing here raises for a single failed
action, submission or status write.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, List, Optional

from karo.engine.fields import PayloadLike, as_payload
from karo.engine.processor import ActionOutcome, AlertProcessor, RuleTrigger
from karo.errors import SynthesisError
from karo.logger import ReactionLogger
from karo.metrics import ReactionMetrics
from karo.models import JobReference
from karo.storage.base import JobSink, StatusSink

logger = logging.getLogger(__name__)

STAGE_SYNTHESIS = "synthesis"
STAGE_SUBMISSION = "submission"


@dataclass
class DispatchResult:
    """What happened to one alert."""
    alert_name: str
    rules_triggered: List[str] = field(default_factory=list)
    jobs: List[JobReference] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def jobs_created(self) -> int:
        return len(self.jobs)

    def to_dict(self) -> dict:
        return {
            "alertName": self.alert_name,
            "rulesTriggered": self.rules_triggered,
            "jobsCreated": self.jobs_created,
            "jobs": [j.name for j in self.jobs],
            "errors": self.errors,
        }


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AlertDispatcher:
    """
    Turn alerts into submitted jobs.

    Example:
        dispatcher = AlertDispatcher(processor, backend, backend)
        result = dispatcher.dispatch("HighCPUUsage", payload)
    """

    def __init__(
        self,
        processor: AlertProcessor,
        job_sink: JobSink,
        status_sink: StatusSink,
        events: Optional[ReactionLogger] = None,
        metrics: Optional[ReactionMetrics] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.processor = processor
        self.job_sink = job_sink
        self.status_sink = status_sink
        self.events = events or ReactionLogger()
        self.metrics = metrics or ReactionMetrics()
        self.clock = clock

    def skip(self, reason: str, alert_name: Optional[str] = None, status: Optional[str] = None) -> None:
        """Record an alert that is not processed at all."""
        self.events.log_alert_skipped(reason=reason, alert_name=alert_name, status=status)

    def dispatch(
        self,
        alert_name: str,
        payload: PayloadLike,
        receiver: str = "",
    ) -> DispatchResult:
        payload = as_payload(payload)
        result = DispatchResult(alert_name=alert_name)

        self.events.log_alert_received(
            alert_name=alert_name, receiver=receiver, fingerprint=payload.fingerprint,
        )
        self.metrics.record_alert_received(alert_name)

        try:
            processed = self.processor.process_alert(alert_name, payload)
        except Exception as e:
            # Rule listing failed; nothing was synthesized
            logger.error(f"Failed to process alert {alert_name}: {e}")
            result.errors.append(str(e))
            self._unmatched(alert_name)
            return result

        for trigger in processed.triggers:
            self._dispatch_trigger(alert_name, trigger, result)

        if not result.jobs:
            self._unmatched(alert_name)

        return result

    def _unmatched(self, alert_name: str) -> None:
        self.events.log_alert_unmatched(alert_name)
        self.metrics.record_alert_unmatched(alert_name)

    def _dispatch_trigger(self, alert_name: str, trigger: RuleTrigger, result: DispatchResult) -> None:
        rule = trigger.rule
        submitted: List[JobReference] = []
        failed = 0

        for outcome in trigger.outcomes:
            if not outcome.ok:
                failed += 1
                self._synthesis_failed(outcome, result)
                continue

            job = outcome.job
            try:
                self.job_sink.submit(job)
            except Exception as e:
                # Any sink failure is scoped to this job
                failed += 1
                message = str(e) or type(e).__name__
                logger.error(f"Failed to submit job {job.metadata.name}: {message}")
                self.events.log_job_failed(
                    rule=rule.name,
                    namespace=rule.namespace,
                    action=outcome.action_name,
                    stage=STAGE_SUBMISSION,
                    error=message,
                )
                self.metrics.record_job_failed(rule.name, outcome.action_name, STAGE_SUBMISSION)
                result.errors.append(message)
                continue

            ref = JobReference(
                name=job.metadata.name,
                namespace=job.metadata.namespace,
                action_name=outcome.action_name,
                created_at=self.clock(),
            )
            submitted.append(ref)
            self.events.log_job_created(
                rule=rule.name,
                namespace=rule.namespace,
                action=outcome.action_name,
                job_name=ref.name,
            )
            self.metrics.record_job_created(rule.name, outcome.action_name)

        result.rules_triggered.append(rule.name)
        result.jobs.extend(submitted)
        self.events.log_rule_triggered(
            rule=rule.name,
            namespace=rule.namespace,
            alert_name=alert_name,
            jobs_created=len(submitted),
            jobs_failed=failed,
        )
        self.metrics.record_rule_triggered(rule.name, rule.namespace)

        try:
            self.status_sink.record_trigger(rule, submitted, self.clock())
        except Exception as e:
            logger.error(f"Failed to update status of AlertReaction {rule.namespace}/{rule.name}: {e}")
            self.events.log_status_update_failed(rule=rule.name, namespace=rule.namespace, error=str(e))

    def _synthesis_failed(self, outcome: ActionOutcome, result: DispatchResult) -> None:
        rule = outcome.rule
        error = outcome.error
        step = error.step.value if isinstance(error, SynthesisError) else None
        message = str(error) or type(error).__name__
        self.events.log_job_failed(
            rule=rule.name,
            namespace=rule.namespace,
            action=outcome.action_name,
            stage=STAGE_SYNTHESIS,
            error=message,
            step=step,
        )
        self.metrics.record_job_failed(rule.name, outcome.action_name, STAGE_SYNTHESIS)
        result.errors.append(message)
