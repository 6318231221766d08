"""
Alert processing: match rules, then synthesize one Job per action.

Synthesis of each (rule, action) pair is independent and runs on a thread
pool. Results keep declaration order (rules as listed by the rule source,
actions as declared) and every failure stays scoped to its action.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from kubernetes.client import V1Job

from karo.alert import AlertPayload
from karo.engine.fields import PayloadLike, as_payload
from karo.engine.matching import rule_matches
from karo.engine.synthesizer import JobSynthesizer
from karo.models import Action, ReactionRule
from karo.storage.base import RuleSource

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 8
DEFAULT_SYNTHESIS_TIMEOUT_S = 10.0


@dataclass
class ActionOutcome:
    """Result of synthesizing one action: a job or an error."""
    rule: ReactionRule
    action_name: str
    job: Optional[V1Job] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.job is not None and self.error is None

    @property
    def job_name(self) -> Optional[str]:
        return self.job.metadata.name if self.job is not None else None


@dataclass
class RuleTrigger:
    """All action outcomes of one matched rule."""
    rule: ReactionRule
    outcomes: List[ActionOutcome] = field(default_factory=list)

    @property
    def jobs(self) -> List[V1Job]:
        return [o.job for o in self.outcomes if o.ok]

    @property
    def errors(self) -> List[ActionOutcome]:
        return [o for o in self.outcomes if not o.ok]


@dataclass
class ProcessResult:
    alert_name: str
    triggers: List[RuleTrigger] = field(default_factory=list)

    @property
    def matched(self) -> bool:
        return bool(self.triggers)

    @property
    def outcomes(self) -> List[ActionOutcome]:
        return [o for t in self.triggers for o in t.outcomes]

    @property
    def jobs(self) -> List[V1Job]:
        return [j for t in self.triggers for j in t.jobs]

    @property
    def errors(self) -> List[ActionOutcome]:
        return [e for t in self.triggers for e in t.errors]


class AlertProcessor:
    """
    Match an alert against the current rules and synthesize its jobs.

    Rules are re-read from ``rule_source`` on every call. Submitting the
    jobs and recording status is the caller's job (see
    :class:`karo.dispatcher.AlertDispatcher`).
    """

    def __init__(
        self,
        rule_source: RuleSource,
        synthesizer: JobSynthesizer,
        max_workers: int = DEFAULT_MAX_WORKERS,
        synthesis_timeout_s: float = DEFAULT_SYNTHESIS_TIMEOUT_S,
    ):
        self.rule_source = rule_source
        self.synthesizer = synthesizer
        self.max_workers = max(1, max_workers)
        self.synthesis_timeout_s = synthesis_timeout_s

    def matching_rules(self, alert_name: str, payload: PayloadLike) -> List[ReactionRule]:
        payload = as_payload(payload)
        return [r for r in self.rule_source.list_rules() if rule_matches(r, alert_name, payload)]

    def process_alert(self, alert_name: str, payload: PayloadLike) -> ProcessResult:
        payload = as_payload(payload)
        result = ProcessResult(alert_name=alert_name)

        rules = self.matching_rules(alert_name, payload)
        if not rules:
            logger.debug(f"No AlertReaction matches alert {alert_name}")
            return result

        logger.info(f"Processing alert {alert_name}: {len(rules)} matching AlertReaction(s)")

        pairs = [(rule, action) for rule in rules for action in rule.actions]
        outcomes = self._synthesize_all(pairs, payload)

        triggers = {id(rule): RuleTrigger(rule=rule) for rule in rules}
        for (rule, _), outcome in zip(pairs, outcomes):
            triggers[id(rule)].outcomes.append(outcome)
        result.triggers = [triggers[id(rule)] for rule in rules]
        return result

    def _synthesize_all(
        self,
        pairs: List[Tuple[ReactionRule, Action]],
        payload: AlertPayload,
    ) -> List[ActionOutcome]:
        """
        Synthesize every pair with at most ``max_workers`` live at once.

        Each action's deadline starts when it is handed to a worker. A
        timed-out worker is abandoned and its slot goes to the next queued
        action.
        """
        outcomes: List[Optional[ActionOutcome]] = [None] * len(pairs)
        pending = deque(range(len(pairs)))
        running: Dict[Future, Tuple[int, float]] = {}

        # Threads are only spawned on demand; abandoned ones must not block the queue
        pool = ThreadPoolExecutor(max_workers=max(1, len(pairs)), thread_name_prefix="karo-synth")
        try:
            while pending or running:
                while pending and len(running) < self.max_workers:
                    index = pending.popleft()
                    rule, action = pairs[index]
                    future = pool.submit(self._synthesize_one, rule, action, payload)
                    running[future] = (index, time.monotonic() + self.synthesis_timeout_s)

                next_deadline = min(deadline for _, deadline in running.values())
                done, _ = wait(
                    running,
                    timeout=max(0.0, next_deadline - time.monotonic()),
                    return_when=FIRST_COMPLETED,
                )
                for future in done:
                    index, _ = running.pop(future)
                    outcomes[index] = future.result()

                now = time.monotonic()
                for future, (index, deadline) in list(running.items()):
                    if deadline > now:
                        continue
                    del running[future]
                    rule, action = pairs[index]
                    logger.error(
                        f"Synthesis of action {action.name} (AlertReaction {rule.name}) "
                        f"timed out after {self.synthesis_timeout_s}s"
                    )
                    error = FutureTimeoutError(f"synthesis timed out after {self.synthesis_timeout_s}s")
                    outcomes[index] = ActionOutcome(rule=rule, action_name=action.name, error=error)
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        return outcomes

    def _synthesize_one(self, rule: ReactionRule, action: Action, payload: AlertPayload) -> ActionOutcome:
        try:
            job = self.synthesizer.synthesize(rule, action, payload)
        except Exception as e:
            logger.error(
                f"Failed to create job for action {action.name} (AlertReaction {rule.name}): {e}"
            )
            return ActionOutcome(rule=rule, action_name=action.name, error=e)
        return ActionOutcome(rule=rule, action_name=action.name, job=job)
