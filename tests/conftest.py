"""Shared fixtures: a scripted in-memory deployment backend."""

from typing import Iterable, List, Sequence, Tuple

import pytest

from cloud_service_client.models import DeploymentSlot, DeploymentSnapshot, RoleInstance

READY = "ReadyRole"
BUSY = "BusyRole"


def make_snapshot(
    *instances: Tuple[str, str],
    service_name: str = "svc",
    slot: DeploymentSlot = DeploymentSlot.PRODUCTION,
) -> DeploymentSnapshot:
    return DeploymentSnapshot(
        service_name=service_name,
        slot=slot,
        instances=tuple(RoleInstance(name=name, status=status) for name, status in instances),
    )


class FakeDeploymentClient:
    """Returns scripted snapshots in order (the last one repeats) and records every call."""

    def __init__(self, snapshots: Sequence[DeploymentSnapshot]):
        self._snapshots: List[DeploymentSnapshot] = list(snapshots)
        self.calls: List[Tuple] = []

    def get_snapshot(self, service_name, slot):
        self.calls.append(("get_snapshot", service_name, slot))
        if len(self._snapshots) > 1:
            return self._snapshots.pop(0)
        return self._snapshots[0]

    def request_reimage(self, service_name, instance_name, slot):
        self.calls.append(("reimage", service_name, instance_name, slot))
        return f"req-{len(self.calls)}"

    def request_reboot(self, service_name, instance_name, slot):
        self.calls.append(("reboot", service_name, instance_name, slot))
        return f"req-{len(self.calls)}"

    def actions(self, kind: str) -> List[str]:
        return [call[2] for call in self.calls if call[0] == kind]

    @property
    def snapshot_calls(self) -> int:
        return sum(1 for call in self.calls if call[0] == "get_snapshot")


@pytest.fixture
def fake_client_factory():
    def build(snapshots: Iterable[DeploymentSnapshot]) -> FakeDeploymentClient:
        return FakeDeploymentClient(list(snapshots))

    return build


@pytest.fixture
def sleeps() -> List[float]:
    """Collects the delays requested by the waiter instead of sleeping."""
    return []
