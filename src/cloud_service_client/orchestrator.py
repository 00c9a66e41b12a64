"""Reimage and reboot orchestration for hosted cloud services."""

import logging
import threading
import time
from datetime import datetime
from typing import Callable, Optional

from .client import DeploymentClient
from .models import (
    DeploymentSlot,
    DeploymentSnapshot,
    ExecutionMode,
    InstanceAction,
    InstanceActionResult,
    OperationSummary,
    PollingConfig,
)
from .utils.display import display_action_start, display_completion, display_warning
from .waiter import InstanceWaiter, WaitResult

logger = logging.getLogger(__name__)


class CloudServiceManager:
    """Applies reimage/reboot actions to the instances of a hosted service."""

    def __init__(
        self,
        client: DeploymentClient,
        polling: Optional[PollingConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
        cancel_event: Optional[threading.Event] = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        """
        Args:
            client: Deployment backend used for snapshots and actions
            polling: Interval and poll budget shared by every wait
            sleep: Delay function used between polls
            cancel_event: When set, any running wait stops at its next poll
            clock: Source of the timestamps used in progress lines and summaries
        """
        self.client = client
        self.polling = polling or PollingConfig()
        self.sleep = sleep
        self.cancel_event = cancel_event
        self.clock = clock

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------
    def reimage(
        self,
        service_name: str,
        slot: DeploymentSlot = DeploymentSlot.PRODUCTION,
        mode: ExecutionMode = ExecutionMode.SEQUENTIAL,
    ) -> OperationSummary:
        """
        Reimage every instance of a service.

        Sequential mode handles one instance at a time; batched mode requests all
        reimages up front and then waits on the roster as a whole.

        Raises:
            WaitTimeoutError: If an instance does not change state within the poll budget
            InstanceNotFoundError: If an instance (or the whole roster) disappears
        """
        slot = DeploymentSlot(slot)
        mode = ExecutionMode(mode)
        snapshot = self.client.get_snapshot(service_name, slot)
        summary = self._new_summary(InstanceAction.REIMAGE, service_name, slot, mode)
        waiter = self._waiter(service_name, slot)

        if mode is ExecutionMode.BATCHED:
            self._run_batched(InstanceAction.REIMAGE, snapshot, waiter, summary)
        else:
            self._run_sequential(InstanceAction.REIMAGE, snapshot, waiter, summary)
        return self._finish(summary)

    def reboot(
        self,
        service_name: str,
        slot: DeploymentSlot = DeploymentSlot.PRODUCTION,
        instance_name: Optional[str] = None,
    ) -> OperationSummary:
        """
        Reboot instances of a service one at a time.

        With ``instance_name`` only that instance is rebooted. A name that matches
        nothing in the roster reboots nothing and is reported as a warning.
        """
        slot = DeploymentSlot(slot)
        snapshot = self.client.get_snapshot(service_name, slot)
        summary = self._new_summary(InstanceAction.REBOOT, service_name, slot, ExecutionMode.SEQUENTIAL)
        waiter = self._waiter(service_name, slot)

        self._run_sequential(InstanceAction.REBOOT, snapshot, waiter, summary, target=instance_name or None)
        if instance_name and not summary.results:
            message = (
                f"Instance {instance_name} not found in {service_name} ({slot.value}); nothing rebooted. "
                f"Known instances: {', '.join(snapshot.instance_names) or 'none'}"
            )
            logger.warning(message)
            display_warning(message)
        return self._finish(summary)

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------
    def _run_sequential(
        self,
        action: InstanceAction,
        snapshot: DeploymentSnapshot,
        waiter: InstanceWaiter,
        summary: OperationSummary,
        target: Optional[str] = None,
    ) -> None:
        for instance in snapshot.instances:
            if target is not None and instance.name != target:
                summary.skipped.append(instance.name)
                continue

            result = InstanceActionResult(instance.name, action, started_at=self.clock())
            summary.results.append(result)
            display_action_start(action.value, instance.name, result.started_at)
            self._request(action, summary, instance.name)

            self.confirm_left_ready(waiter, instance.name)
            self.confirm_returned_ready(waiter, instance.name)
            result.finished_at = self.clock()
            logger.info("Finished %s of %s", action.value, instance.name)

    def _run_batched(
        self,
        action: InstanceAction,
        snapshot: DeploymentSnapshot,
        waiter: InstanceWaiter,
        summary: OperationSummary,
    ) -> None:
        display_action_start(
            action.value, f"{len(snapshot)} instance(s) of {summary.service_name}", self.clock()
        )
        for instance in snapshot.instances:
            summary.results.append(InstanceActionResult(instance.name, action, started_at=self.clock()))
            self._request(action, summary, instance.name)

        self.confirm_batch_started(waiter)
        self.confirm_batch_completed(waiter)
        finished_at = self.clock()
        for result in summary.results:
            result.finished_at = finished_at

    # ------------------------------------------------------------------
    # Wait steps
    # ------------------------------------------------------------------
    @staticmethod
    def confirm_left_ready(waiter: InstanceWaiter, instance_name: str) -> WaitResult:
        """The action took effect: the instance is no longer ready."""
        return waiter.wait_for_one(instance_name, want_ready=False).raise_for_outcome()

    @staticmethod
    def confirm_returned_ready(waiter: InstanceWaiter, instance_name: str) -> WaitResult:
        """The action completed: the instance is ready again."""
        return waiter.wait_for_one(instance_name, want_ready=True).raise_for_outcome()

    @staticmethod
    def confirm_batch_started(waiter: InstanceWaiter) -> WaitResult:
        """At least one instance of the batch has left ready."""
        return waiter.wait_for_any(want_ready=False).raise_for_outcome()

    @staticmethod
    def confirm_batch_completed(waiter: InstanceWaiter) -> WaitResult:
        """Every instance of the batch is ready again."""
        return waiter.wait_for_all(want_ready=True).raise_for_outcome()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _waiter(self, service_name: str, slot: DeploymentSlot) -> InstanceWaiter:
        return InstanceWaiter(
            self.client,
            service_name,
            slot,
            polling=self.polling,
            sleep=self.sleep,
            cancel_event=self.cancel_event,
        )

    def _request(self, action: InstanceAction, summary: OperationSummary, instance_name: str) -> None:
        if action is InstanceAction.REIMAGE:
            self.client.request_reimage(summary.service_name, instance_name, summary.slot)
        else:
            self.client.request_reboot(summary.service_name, instance_name, summary.slot)

    def _new_summary(
        self,
        action: InstanceAction,
        service_name: str,
        slot: DeploymentSlot,
        mode: ExecutionMode,
    ) -> OperationSummary:
        logger.info("Starting %s %s of %s (%s)", mode.value, action.value, service_name, slot.value)
        return OperationSummary(
            action=action,
            service_name=service_name,
            slot=slot,
            mode=mode,
            started_at=self.clock(),
        )

    def _finish(self, summary: OperationSummary) -> OperationSummary:
        summary.finished_at = self.clock()
        display_completion(summary.finished_at)
        logger.info(
            "%s of %s finished: %d instance(s) acted on, %d skipped",
            summary.action.value.capitalize(),
            summary.service_name,
            len(summary.results),
            len(summary.skipped),
        )
        return summary
