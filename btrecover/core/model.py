"""Core data models used across loader, service, orchestrator, and CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

# ConfigManagerErrorCode reported for a device disabled through Device Manager.
CM_PROB_DISABLED = 22


class DeviceStatus(str, Enum):
    OK = "OK"
    ERROR = "Error"
    DISABLED = "Disabled"
    UNKNOWN = "Unknown"
    OTHER = "Other"

    @classmethod
    def parse(cls, raw: str | None) -> DeviceStatus:
        if not raw:
            return cls.UNKNOWN
        lowered = raw.strip().lower()
        for status in (cls.OK, cls.ERROR, cls.DISABLED, cls.UNKNOWN):
            if status.value.lower() == lowered:
                return status
        return cls.OTHER


class ServiceStatus(str, Enum):
    RUNNING = "Running"
    STOPPED = "Stopped"
    OTHER = "Other"

    @classmethod
    def parse(cls, raw: str | None) -> ServiceStatus:
        lowered = (raw or "").strip().lower()
        if lowered == "running":
            return cls.RUNNING
        if lowered == "stopped":
            return cls.STOPPED
        return cls.OTHER


class RecoveryState(str, Enum):
    SEARCHING = "searching"
    INSPECTING = "inspecting"
    SOFT_RECOVERY = "soft-recovery"
    FULL_TOGGLE = "full-toggle"
    SERVICE_RESTART = "service-restart"
    VERIFYING = "verifying"
    DONE = "done"
    RETRY = "retry"
    FAILED = "failed"


@dataclass(frozen=True)
class Device:
    instance_id: str
    friendly_name: str
    device_class: str
    status: str
    problem_code: int | None = None

    @property
    def state(self) -> DeviceStatus:
        if self.problem_code == CM_PROB_DISABLED:
            return DeviceStatus.DISABLED
        return DeviceStatus.parse(self.status)


@dataclass(frozen=True)
class Service:
    name: str
    status: str

    @property
    def state(self) -> ServiceStatus:
        return ServiceStatus.parse(self.status)


@dataclass(frozen=True)
class PreferenceRule:
    name_contains: str
    priority: int


@dataclass(frozen=True)
class MatchSpec:
    exact_name: str | None = None
    fuzzy_pattern: str | None = None
    device_class: str | None = None
    fuzzy: bool = True
    preference_rules: tuple[PreferenceRule, ...] = ()


@dataclass(frozen=True)
class DeviceHint:
    instance_id: str | None = None
    instance_prefix: str | None = None


@dataclass(frozen=True)
class RecoverySettings:
    max_attempts: int = 5
    retry_delay_s: float = 2.0
    state_timeout_s: float = 15.0
    poll_interval_s: float = 0.25


@dataclass(frozen=True)
class RecoveryProfile:
    id: str
    name: str
    match: MatchSpec
    service_name: str | None = None
    settings: RecoverySettings = field(default_factory=RecoverySettings)


@dataclass(frozen=True)
class OperationResult:
    success: bool
    error: str | None = None


@dataclass(frozen=True)
class OperationOutcome:
    succeeded: bool
    detail: str = ""
    timed_out: bool = False
    skipped: bool = False

    def __bool__(self) -> bool:
        return self.succeeded


@dataclass(frozen=True)
class Transition:
    attempt: int
    state: RecoveryState
    status: str | None
    action: str


@dataclass(frozen=True)
class AttemptOutcome:
    attempt: int
    succeeded: bool
    final_status: DeviceStatus | ServiceStatus
    diagnostic: str
    path: tuple[RecoveryState, ...] = ()


@dataclass(frozen=True)
class RecoveryReport:
    mode: str
    succeeded: bool
    attempts: tuple[AttemptOutcome, ...]
    device: Device | None = None
