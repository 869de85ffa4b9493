"""Service layer used by CLI and API frontends."""

from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, replace

from btrecover.backends.base import PnpBackend
from btrecover.backends.powershell import PowerShellBackend, runtime_warnings
from btrecover.core.device_match import find_device
from btrecover.core.errors import BtRecoverError, PreconditionError
from btrecover.core.model import Device, RecoveryProfile, RecoveryReport
from btrecover.core.orchestrator import Observer, RecoveryOrchestrator
from btrecover.core.profile_loader import DEFAULT_PROFILE_ID, load_profiles

MODES = ("pnp", "service", "combined")


@dataclass(frozen=True)
class Overrides:
    """Per-run adjustments layered on top of a profile."""

    exact_name: str | None = None
    fuzzy_pattern: str | None = None
    device_class: str | None = None
    service_name: str | None = None
    max_attempts: int | None = None
    state_timeout_s: float | None = None
    retry_delay_s: float | None = None


class RecoveryService:
    def __init__(
        self,
        *,
        backend: PnpBackend | None = None,
        clock: Callable[[], float] | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        loaded = load_profiles()
        self.profiles = loaded.profiles
        self.load_warnings = loaded.warnings
        self.runtime_warnings = runtime_warnings() if backend is None else ()
        self.backend: PnpBackend = backend or PowerShellBackend()
        self._clock = clock or time.monotonic
        self._sleep = sleep or time.sleep

    def list_profiles(self) -> list[RecoveryProfile]:
        return sorted(self.profiles.values(), key=lambda p: p.id)

    def list_devices(self, device_class: str | None = None) -> list[Device]:
        return self.backend.list_devices(device_class)

    def resolve_profile(
        self,
        profile_id: str | None = None,
        overrides: Overrides | None = None,
    ) -> RecoveryProfile:
        wanted = profile_id or DEFAULT_PROFILE_ID
        profile = self.profiles.get(wanted)
        if profile is None:
            raise BtRecoverError(
                f"Unknown profile '{wanted}'. Use 'btrecover profiles' to inspect available profiles."
            )
        if overrides is None:
            return profile

        match = profile.match
        if overrides.exact_name:
            # An explicit name also serves as the fuzzy fallback pattern.
            match = replace(match, exact_name=overrides.exact_name, fuzzy_pattern=overrides.exact_name)
        if overrides.fuzzy_pattern:
            match = replace(match, fuzzy_pattern=overrides.fuzzy_pattern)
        if overrides.device_class:
            match = replace(match, device_class=overrides.device_class)

        settings = profile.settings
        if overrides.max_attempts is not None:
            if overrides.max_attempts < 1:
                raise BtRecoverError("max attempts must be at least 1")
            settings = replace(settings, max_attempts=overrides.max_attempts)
        if overrides.state_timeout_s is not None:
            if overrides.state_timeout_s <= 0:
                raise BtRecoverError("timeout must be positive")
            settings = replace(settings, state_timeout_s=overrides.state_timeout_s)
        if overrides.retry_delay_s is not None:
            if overrides.retry_delay_s < 0:
                raise BtRecoverError("delay must not be negative")
            settings = replace(settings, retry_delay_s=overrides.retry_delay_s)

        return replace(
            profile,
            match=match,
            service_name=overrides.service_name or profile.service_name,
            settings=settings,
        )

    def find_device(
        self,
        profile_id: str | None = None,
        overrides: Overrides | None = None,
    ) -> Device | None:
        profile = self.resolve_profile(profile_id, overrides)
        return find_device(self.list_devices(), profile.match)

    def build_orchestrator(
        self,
        profile: RecoveryProfile,
        observer: Observer | None = None,
    ) -> RecoveryOrchestrator:
        return RecoveryOrchestrator(
            self.backend,
            profile.match,
            settings=profile.settings,
            service_name=profile.service_name,
            observer=observer,
            clock=self._clock,
            sleep=self._sleep,
        )

    def recover(
        self,
        profile_id: str | None = None,
        *,
        mode: str = "pnp",
        overrides: Overrides | None = None,
        observer: Observer | None = None,
    ) -> RecoveryReport:
        if mode not in MODES:
            raise BtRecoverError(f"Unknown mode '{mode}'. Choose one of: {', '.join(MODES)}")

        profile = self.resolve_profile(profile_id, overrides)
        if not self.backend.is_elevated():
            raise PreconditionError("Administrator rights are required to toggle devices and services.")

        orchestrator = self.build_orchestrator(profile, observer)
        if mode == "service":
            return orchestrator.run_service_only()
        if mode == "combined":
            return orchestrator.run_combined()
        return orchestrator.run()
