"""Data models for the cloud service client."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator


DEFAULT_MANAGEMENT_ENDPOINT = "https://management.core.windows.net"
DEFAULT_API_VERSION = "2014-06-01"
DEFAULT_POLL_SECONDS = 30
DEFAULT_MAX_POLLS = 40  # 20 minutes at the default interval


class DeploymentSlot(str, Enum):
    """Deployment slots of a hosted service."""
    PRODUCTION = "Production"
    STAGING = "Staging"


class InstanceStatus(str, Enum):
    """Role instance statuses reported by the management API."""
    READY_ROLE = "ReadyRole"
    BUSY_ROLE = "BusyRole"
    CYCLING_ROLE = "CyclingRole"
    ROLE_STATE_UNKNOWN = "RoleStateUnknown"
    STOPPED_VM = "StoppedVM"
    RESTARTING_ROLE = "RestartingRole"
    STOPPING_ROLE = "StoppingRole"
    CREATING_ROLE = "CreatingRole"
    STARTING_ROLE = "StartingRole"
    UNRESPONSIVE_ROLE = "UnresponsiveRole"


class ExecutionMode(str, Enum):
    """How an operation is applied across the roster."""
    SEQUENTIAL = "sequential"
    BATCHED = "batched"


class InstanceAction(str, Enum):
    """State-changing actions that can be requested for an instance."""
    REIMAGE = "reimage"
    REBOOT = "reboot"


@dataclass(frozen=True)
class RoleInstance:
    """One instance as seen in a single deployment query."""
    name: str
    status: str
    role_name: Optional[str] = None

    @property
    def is_ready(self) -> bool:
        # Anything other than ReadyRole counts as not ready.
        return self.status == InstanceStatus.READY_ROLE.value


@dataclass(frozen=True)
class DeploymentSnapshot:
    """Point-in-time roster of a deployment."""
    service_name: str
    slot: DeploymentSlot
    instances: Tuple[RoleInstance, ...] = ()
    deployment_name: Optional[str] = None

    def __len__(self) -> int:
        return len(self.instances)

    def find(self, instance_name: str) -> Optional[RoleInstance]:
        """Return the record named ``instance_name`` or None when absent."""
        for instance in self.instances:
            if instance.name == instance_name:
                return instance
        return None

    @property
    def instance_names(self) -> List[str]:
        return [instance.name for instance in self.instances]


@dataclass
class InstanceActionResult:
    """Timing of one action applied to one instance (or a batch)."""
    instance_name: str
    action: InstanceAction
    started_at: datetime
    finished_at: Optional[datetime] = None

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()


@dataclass
class OperationSummary:
    """Outcome of one orchestration call."""
    action: InstanceAction
    service_name: str
    slot: DeploymentSlot
    mode: ExecutionMode
    started_at: datetime
    finished_at: Optional[datetime] = None
    results: List[InstanceActionResult] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)

    @property
    def acted_on(self) -> List[str]:
        return [result.instance_name for result in self.results]


class ManagementConfig(BaseModel):
    """Management API connection settings with validation."""
    model_config = ConfigDict(validate_assignment=True)

    subscription_id: str
    certificate_file: Path
    endpoint: str = DEFAULT_MANAGEMENT_ENDPOINT
    api_version: str = DEFAULT_API_VERSION
    request_timeout: float = Field(default=60.0, gt=0)

    @field_validator("subscription_id")
    @classmethod
    def _require_subscription(cls, value: str) -> str:
        value = (value or "").strip()
        if not value:
            raise ValueError("subscription_id must be a subscription ID.")
        return value

    @field_validator("certificate_file")
    @classmethod
    def _require_readable_certificate(cls, value: Path) -> Path:
        path = Path(value).expanduser()
        if not path.is_file():
            raise ValueError(f"certificate_file must be a readable file path: {value}")
        try:
            with path.open("rb"):
                pass
        except OSError as exc:
            raise ValueError(f"certificate_file is not readable: {exc}") from exc
        return path

    @field_validator("endpoint")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


class PollingConfig(BaseModel):
    """Fixed-interval polling parameters shared by every wait."""
    model_config = ConfigDict(validate_assignment=True)

    interval_seconds: float = Field(default=DEFAULT_POLL_SECONDS, ge=0)
    max_polls: int = Field(default=DEFAULT_MAX_POLLS, ge=1)

    @property
    def total_wait_seconds(self) -> float:
        return self.interval_seconds * self.max_polls
