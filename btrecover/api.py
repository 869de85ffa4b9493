"""Stable public API for building tooling on top of btrecover.

This module is the supported integration surface for third-party callers
(tray apps, schedulers, watchdog scripts). Avoid importing from internal
modules unless intentionally depending on non-stable internals.
"""

from __future__ import annotations

from collections.abc import Callable

from btrecover.backends.base import PnpBackend
from btrecover.core.errors import (
    BackendError,
    BackendTimeoutError,
    BackendUnavailableError,
    BtRecoverError,
    DeviceNotFoundError,
    PreconditionError,
    ProfileLoadError,
    ProfileValidationError,
    RecoveryExhaustedError,
)
from btrecover.core.model import (
    AttemptOutcome,
    Device,
    DeviceStatus,
    MatchSpec,
    PreferenceRule,
    RecoveryProfile,
    RecoveryReport,
    RecoverySettings,
    RecoveryState,
    Service,
    ServiceStatus,
    Transition,
)
from btrecover.core.orchestrator import Observer
from btrecover.core.service import Overrides, RecoveryService

__all__ = [
    "BtRecoverError",
    "BackendError",
    "BackendTimeoutError",
    "BackendUnavailableError",
    "DeviceNotFoundError",
    "PreconditionError",
    "ProfileLoadError",
    "ProfileValidationError",
    "RecoveryExhaustedError",
    "AttemptOutcome",
    "Device",
    "DeviceStatus",
    "MatchSpec",
    "PreferenceRule",
    "RecoveryProfile",
    "RecoveryReport",
    "RecoverySettings",
    "RecoveryState",
    "Service",
    "ServiceStatus",
    "Transition",
    "Overrides",
    "PnpBackend",
    "Client",
]


class Client:
    """Public client for btrecover core capabilities.

    A `Client` wraps profile loading, device matching, and the recovery state
    machine behind a stable API. Pass a custom `backend` to drive something
    other than the local PowerShell cmdlets, and `clock`/`sleep` to control
    timing in tests.
    """

    def __init__(
        self,
        *,
        backend: PnpBackend | None = None,
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self._service = RecoveryService(backend=backend, clock=clock, sleep=sleep)

    @property
    def load_warnings(self) -> tuple[str, ...]:
        return self._service.load_warnings

    @property
    def runtime_warnings(self) -> tuple[str, ...]:
        return self._service.runtime_warnings

    def list_profiles(self) -> list[RecoveryProfile]:
        return self._service.list_profiles()

    def list_devices(self, device_class: str | None = None) -> list[Device]:
        return self._service.list_devices(device_class)

    def find_device(
        self,
        profile_id: str | None = None,
        *,
        overrides: Overrides | None = None,
    ) -> Device | None:
        return self._service.find_device(profile_id, overrides)

    def recover(
        self,
        profile_id: str | None = None,
        *,
        mode: str = "pnp",
        overrides: Overrides | None = None,
        observer: Observer | None = None,
    ) -> RecoveryReport:
        return self._service.recover(
            profile_id,
            mode=mode,
            overrides=overrides,
            observer=observer,
        )
