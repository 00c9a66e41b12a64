"""Hosted cloud service reimage/reboot client package."""

from .client import DeploymentClient, ServiceManagementClient
from .orchestrator import CloudServiceManager
from .waiter import InstanceWaiter, WaitOutcome, WaitResult

__all__ = [
    "CloudServiceManager",
    "DeploymentClient",
    "InstanceWaiter",
    "ServiceManagementClient",
    "WaitOutcome",
    "WaitResult",
]
