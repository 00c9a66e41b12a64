"""Polling waits on role instance readiness.

Every wait shares one bounded loop: sleep for the fixed interval, take a fresh
deployment snapshot, evaluate it, repeat until the condition holds or the poll
budget runs out. What differs between the three waits is only how a snapshot is
judged:

* ``ONE``  - the named instance must be present and match ``want_ready``
* ``ANY``  - at least one instance matches (first match in roster order wins)
* ``ALL``  - every instance matches

An empty roster (``ANY``/``ALL``) or a missing instance (``ONE``) ends the wait at
once with ``NOT_FOUND``; it is never polled again.
"""

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from tenacity import Retrying, retry_if_result, stop_after_attempt, wait_none

from .client import DeploymentClient
from .errors import InstanceNotFoundError, WaitCancelledError, WaitTimeoutError
from .models import DeploymentSlot, DeploymentSnapshot, PollingConfig

logger = logging.getLogger(__name__)


class WaitOutcome(str, Enum):
    """How a wait ended."""
    SATISFIED = "satisfied"
    TIMED_OUT = "timed_out"
    NOT_FOUND = "not_found"
    CANCELLED = "cancelled"


class Aggregation(str, Enum):
    """Which instances of a snapshot a wait looks at."""
    ONE = "one"
    ANY = "any"
    ALL = "all"


@dataclass(frozen=True)
class WaitResult:
    """Result of a wait, returned instead of raised so callers can branch on it."""
    outcome: WaitOutcome
    description: str
    polls: int
    instance_name: Optional[str] = None
    snapshot: Optional[DeploymentSnapshot] = None

    @property
    def satisfied(self) -> bool:
        return self.outcome is WaitOutcome.SATISFIED

    def raise_for_outcome(self) -> "WaitResult":
        """Raise the matching WaitError unless the wait was satisfied."""
        if self.outcome is WaitOutcome.TIMED_OUT:
            raise WaitTimeoutError(
                f"Timed out after {self.polls} poll(s) waiting for {self.description}.",
                instance_name=self.instance_name,
                polls=self.polls,
            )
        if self.outcome is WaitOutcome.NOT_FOUND:
            target = f"Instance {self.instance_name} was not" if self.instance_name else "No instances were"
            raise InstanceNotFoundError(
                f"{target} found while waiting for {self.description}.",
                instance_name=self.instance_name,
                polls=self.polls,
            )
        if self.outcome is WaitOutcome.CANCELLED:
            raise WaitCancelledError(
                f"Cancelled after {self.polls} poll(s) waiting for {self.description}.",
                instance_name=self.instance_name,
                polls=self.polls,
            )
        return self


def evaluate_snapshot(
    snapshot: DeploymentSnapshot,
    aggregation: Aggregation,
    want_ready: bool,
    instance_name: Optional[str] = None,
) -> Optional[WaitOutcome]:
    """
    Judge one snapshot.

    Returns:
        SATISFIED or NOT_FOUND when the wait is over, None to keep polling
    """
    if aggregation is Aggregation.ONE:
        instance = snapshot.find(instance_name)
        if instance is None:
            return WaitOutcome.NOT_FOUND
        return WaitOutcome.SATISFIED if instance.is_ready == want_ready else None

    if not snapshot.instances:
        return WaitOutcome.NOT_FOUND

    if aggregation is Aggregation.ANY:
        matched = any(instance.is_ready == want_ready for instance in snapshot.instances)
    else:
        matched = all(instance.is_ready == want_ready for instance in snapshot.instances)
    return WaitOutcome.SATISFIED if matched else None


def poll_until(
    probe: Callable[[int], Optional[WaitResult]],
    polling: PollingConfig,
    description: str,
    instance_name: Optional[str] = None,
    sleep: Callable[[float], None] = time.sleep,
    cancel_event: Optional[threading.Event] = None,
) -> WaitResult:
    """
    Run ``probe`` up to ``polling.max_polls`` times, sleeping before each call.

    ``probe`` receives the 1-based poll number and returns a finished WaitResult
    or None to continue. Exceptions raised by the probe propagate unchanged.
    Cancellation is checked before the delay of every iteration and again before
    the probe, so a wait cancelled during a delay makes no further query.
    """
    completed = 0

    def cancelled() -> bool:
        return cancel_event is not None and cancel_event.is_set()

    def attempt() -> Optional[WaitResult]:
        nonlocal completed
        if cancelled():
            return WaitResult(WaitOutcome.CANCELLED, description, completed, instance_name)
        sleep(polling.interval_seconds)
        if cancelled():
            return WaitResult(WaitOutcome.CANCELLED, description, completed, instance_name)
        completed += 1
        return probe(completed)

    retrying = Retrying(
        stop=stop_after_attempt(polling.max_polls),
        wait=wait_none(),
        retry=retry_if_result(lambda result: result is None),
        retry_error_callback=lambda _state: WaitResult(
            WaitOutcome.TIMED_OUT, description, completed, instance_name
        ),
    )
    return retrying(attempt)


class InstanceWaiter:
    """Waits on the instances of one deployment slot of a hosted service."""

    def __init__(
        self,
        client: DeploymentClient,
        service_name: str,
        slot: DeploymentSlot = DeploymentSlot.PRODUCTION,
        polling: Optional[PollingConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.client = client
        self.service_name = service_name
        self.slot = DeploymentSlot(slot)
        self.polling = polling or PollingConfig()
        self.sleep = sleep
        self.cancel_event = cancel_event

    def wait_for_one(self, instance_name: str, want_ready: bool) -> WaitResult:
        """Wait until ``instance_name`` is (or is no longer) ready."""
        state = "ready" if want_ready else "not ready"
        return self._wait(Aggregation.ONE, want_ready, f"{instance_name} to be {state}", instance_name)

    def wait_for_any(self, want_ready: bool) -> WaitResult:
        """Wait until at least one instance is (or is no longer) ready."""
        state = "ready" if want_ready else "not ready"
        return self._wait(Aggregation.ANY, want_ready, f"any instance of {self.service_name} to be {state}")

    def wait_for_all(self, want_ready: bool) -> WaitResult:
        """Wait until every instance is (or is no longer) ready."""
        state = "ready" if want_ready else "not ready"
        return self._wait(Aggregation.ALL, want_ready, f"all instances of {self.service_name} to be {state}")

    def _wait(
        self,
        aggregation: Aggregation,
        want_ready: bool,
        description: str,
        instance_name: Optional[str] = None,
    ) -> WaitResult:
        logger.debug(
            "Waiting up to %d poll(s) every %ss (%ss in total) for %s",
            self.polling.max_polls,
            self.polling.interval_seconds,
            self.polling.total_wait_seconds,
            description,
        )

        def probe(poll: int) -> Optional[WaitResult]:
            snapshot = self.client.get_snapshot(self.service_name, self.slot)
            logger.debug(
                "Poll %d/%d for %s: %s",
                poll,
                self.polling.max_polls,
                description,
                ", ".join(f"{i.name}={i.status}" for i in snapshot.instances) or "<empty>",
            )
            outcome = evaluate_snapshot(snapshot, aggregation, want_ready, instance_name)
            if outcome is None:
                return None
            return WaitResult(outcome, description, poll, instance_name, snapshot)

        result = poll_until(
            probe,
            self.polling,
            description,
            instance_name=instance_name,
            sleep=self.sleep,
            cancel_event=self.cancel_event,
        )
        if result.satisfied:
            logger.debug("Condition met after %d poll(s): %s", result.polls, description)
        else:
            logger.warning("Wait ended %s after %d poll(s): %s", result.outcome.value, result.polls, description)
        return result
