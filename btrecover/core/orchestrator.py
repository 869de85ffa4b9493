"""Recovery state machine driving device toggles and service restarts.

Each attempt walks SEARCHING -> INSPECTING -> {SOFT_RECOVERY, FULL_TOGGLE}
-> VERIFYING and ends in DONE or RETRY. The least destructive operation that
could plausibly restore health is always tried first: a device in Error is
enabled in place before it is ever disabled, and a disable that does not
converge is followed by an enable so the adapter is never left off.

Device identity is re-resolved on every attempt and after every disable,
because Windows may re-enumerate the adapter under a new instance id.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from btrecover.backends.base import PnpBackend
from btrecover.core.device_match import find_device, hint_for
from btrecover.core.errors import (
    BackendError,
    BackendUnavailableError,
    BtRecoverError,
    DeviceNotFoundError,
    RecoveryExhaustedError,
)
from btrecover.core.model import (
    AttemptOutcome,
    Device,
    DeviceHint,
    DeviceStatus,
    MatchSpec,
    RecoveryReport,
    RecoverySettings,
    RecoveryState,
    ServiceStatus,
    Transition,
)
from btrecover.core.poller import StatusPoller
from btrecover.core.toggle import ToggleExecutor

LOGGER = logging.getLogger(__name__)

Observer = Callable[[Transition], None]


class _Attempt:
    """Bookkeeping for one attempt: the visited states and the last status."""

    def __init__(self, number: int, report: Callable[[Transition], None]) -> None:
        self.number = number
        self.path: list[RecoveryState] = []
        self.status: DeviceStatus = DeviceStatus.UNKNOWN
        self._report = report

    def enter(self, state: RecoveryState, action: str, status: str | None = None) -> None:
        self.path.append(state)
        self._report(Transition(attempt=self.number, state=state, status=status, action=action))

    def finish(self, succeeded: bool, diagnostic: str) -> AttemptOutcome:
        self.enter(RecoveryState.DONE if succeeded else RecoveryState.RETRY, diagnostic, self.status.value)
        return AttemptOutcome(
            attempt=self.number,
            succeeded=succeeded,
            final_status=self.status,
            diagnostic=diagnostic,
            path=tuple(self.path),
        )


class RecoveryOrchestrator:
    def __init__(
        self,
        backend: PnpBackend,
        spec: MatchSpec,
        *,
        settings: RecoverySettings | None = None,
        service_name: str | None = None,
        observer: Observer | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.backend = backend
        self.spec = spec
        self.settings = settings or RecoverySettings()
        self.service_name = service_name
        self.observer = observer
        self._sleep = sleep
        self.poller = StatusPoller(
            backend,
            interval_s=self.settings.poll_interval_s,
            clock=clock,
            sleep=sleep,
        )
        self.executor = ToggleExecutor(backend, self.poller)
        self.hint: DeviceHint | None = None
        self.last_device: Device | None = None

    # ─── Public entrypoints ───

    def run(self) -> RecoveryReport:
        """Recover the PnP device; raises RecoveryExhaustedError when out of attempts."""
        outcomes = self._loop(self._device_attempt)
        return self._conclude("pnp", outcomes)

    def run_service_only(self) -> RecoveryReport:
        """Restart the OS service without touching the PnP device."""
        if not self.service_name:
            raise BtRecoverError("No service configured for service-only recovery")
        outcomes = self._loop(self._service_attempt_for(self.service_name))
        return self._conclude("service", outcomes)

    def run_combined(self) -> RecoveryReport:
        """PnP recovery followed by a service restart; succeeds if either part did."""
        if not self.service_name:
            raise BtRecoverError("No service configured for combined recovery")

        pnp_outcomes: tuple[AttemptOutcome, ...]
        try:
            pnp_outcomes = self.run().attempts
            pnp_ok = True
        except RecoveryExhaustedError as exc:
            LOGGER.warning("PnP recovery failed (%s); continuing with service restart", exc)
            pnp_outcomes = exc.outcomes
            pnp_ok = False

        service_outcomes = self._loop(self._service_attempt_for(self.service_name))
        service_ok = any(o.succeeded for o in service_outcomes)
        attempts = pnp_outcomes + service_outcomes

        if pnp_ok or service_ok:
            LOGGER.info("Combined recovery succeeded (pnp=%s, service=%s)", pnp_ok, service_ok)
            return RecoveryReport(
                mode="combined",
                succeeded=True,
                attempts=attempts,
                device=self.last_device,
            )
        raise RecoveryExhaustedError(
            "Combined recovery failed: neither device toggle nor service restart succeeded",
            attempts,
        )

    # ─── Loop ───

    def _loop(self, attempt_fn: Callable[[int], AttemptOutcome]) -> tuple[AttemptOutcome, ...]:
        outcomes: list[AttemptOutcome] = []
        max_attempts = max(1, self.settings.max_attempts)
        for number in range(1, max_attempts + 1):
            LOGGER.info("Attempt %d/%d", number, max_attempts)
            try:
                outcome = attempt_fn(number)
            except BackendUnavailableError:
                raise
            except BackendError as exc:
                LOGGER.warning("Attempt %d hit a backend error: %s", number, exc)
                self._emit(Transition(number, RecoveryState.RETRY, None, f"backend error: {exc}"))
                outcome = AttemptOutcome(
                    attempt=number,
                    succeeded=False,
                    final_status=DeviceStatus.UNKNOWN,
                    diagnostic=f"backend error: {exc}",
                    path=(RecoveryState.RETRY,),
                )
            outcomes.append(outcome)
            if outcome.succeeded:
                break
            if number < max_attempts:
                self._sleep(self.settings.retry_delay_s)
        return tuple(outcomes)

    def _conclude(self, mode: str, outcomes: tuple[AttemptOutcome, ...]) -> RecoveryReport:
        if outcomes and outcomes[-1].succeeded:
            LOGGER.info("Recovery succeeded on attempt %d", outcomes[-1].attempt)
            return RecoveryReport(mode=mode, succeeded=True, attempts=outcomes, device=self.last_device)

        self._emit(
            Transition(
                attempt=len(outcomes),
                state=RecoveryState.FAILED,
                status=outcomes[-1].final_status.value if outcomes else None,
                action="giving up",
            )
        )
        if mode == "pnp" and self.last_device is None:
            raise DeviceNotFoundError(
                f"No device matched {_describe_spec(self.spec)} in {len(outcomes)} attempt(s)",
                outcomes,
            )
        last = outcomes[-1].diagnostic if outcomes else "no attempts made"
        raise RecoveryExhaustedError(
            f"Recovery failed after {len(outcomes)} attempt(s); last: {last}",
            outcomes,
        )

    # ─── Attempts ───

    def _device_attempt(self, number: int) -> AttemptOutcome:
        attempt = _Attempt(number, self._emit)
        timeout_s = self.settings.state_timeout_s

        attempt.enter(RecoveryState.SEARCHING, "resolving device")
        device = self._resolve()
        if device is None:
            return attempt.finish(False, "device not found")

        attempt.status = device.state
        attempt.enter(
            RecoveryState.INSPECTING,
            f"found {device.friendly_name} ({device.instance_id})",
            device.status,
        )

        if device.state in (DeviceStatus.DISABLED, DeviceStatus.ERROR):
            attempt.enter(RecoveryState.SOFT_RECOVERY, "enable", device.status)
            enabled = self.executor.enable(device.instance_id, timeout_s)
            if enabled:
                return self._verify(attempt)
            if device.state is DeviceStatus.DISABLED:
                return attempt.finish(False, f"enable failed: {enabled.detail}")
            LOGGER.info("Soft recovery failed (%s); falling back to full toggle", enabled.detail)
            # The failed enable may have re-enumerated the adapter.
            device = self._resolve_quietly() or device
            attempt.status = device.state

        return self._full_toggle(attempt, device)

    def _full_toggle(self, attempt: _Attempt, device: Device) -> AttemptOutcome:
        timeout_s = self.settings.state_timeout_s

        attempt.enter(RecoveryState.FULL_TOGGLE, "disable", device.status)
        disabled = self.executor.disable(device.instance_id, timeout_s)

        # Whatever happens here, the enable below must still run.
        current = self._resolve_quietly()
        if current is None:
            LOGGER.info("Re-resolve after disable failed; enabling %s", device.instance_id)
            current = device
        else:
            attempt.status = current.state

        if not disabled:
            # Never leave the adapter worse off than it was.
            attempt.enter(RecoveryState.FULL_TOGGLE, "enable after failed disable", current.status)
            enabled = self.executor.enable(current.instance_id, timeout_s)
            if enabled:
                return self._verify(attempt)
            return attempt.finish(
                False,
                f"disable failed: {disabled.detail}; enable failed: {enabled.detail}",
            )

        attempt.enter(RecoveryState.FULL_TOGGLE, "enable", current.status)
        enabled = self.executor.enable(current.instance_id, timeout_s)
        if enabled:
            return self._verify(attempt)
        return attempt.finish(False, f"enable failed: {enabled.detail}")

    def _verify(self, attempt: _Attempt) -> AttemptOutcome:
        attempt.enter(RecoveryState.VERIFYING, "re-reading status")
        device = self._resolve_quietly()
        if device is None:
            # Poll already observed OK under the last resolved id.
            attempt.status = DeviceStatus.OK
            return attempt.finish(True, "recovered")
        attempt.status = device.state
        if device.state is DeviceStatus.OK:
            return attempt.finish(True, "recovered")
        return attempt.finish(False, f"status {device.status} after enable")

    def _service_attempt_for(self, name: str) -> Callable[[int], AttemptOutcome]:
        return lambda number: self._service_attempt(number, name)

    def _service_attempt(self, number: int, name: str) -> AttemptOutcome:
        attempt = _Attempt(number, self._emit)
        service = self.backend.get_service(name)
        observed = service.status if service is not None else None
        attempt.enter(RecoveryState.SERVICE_RESTART, f"restart service {name}", observed)

        restarted = self.executor.restart_service(name, self.settings.state_timeout_s)
        final = self.backend.get_service(name)
        final_status = final.state if final is not None else ServiceStatus.OTHER

        path = tuple(attempt.path) + ((RecoveryState.DONE if restarted else RecoveryState.RETRY),)
        self._emit(
            Transition(
                number,
                path[-1],
                final.status if final is not None else None,
                restarted.detail,
            )
        )
        return AttemptOutcome(
            attempt=number,
            succeeded=restarted.succeeded,
            final_status=final_status,
            diagnostic=restarted.detail,
            path=path,
        )

    # ─── Helpers ───

    def _resolve(self) -> Device | None:
        devices = self.backend.list_devices()
        device = find_device(devices, self.spec, self.hint)
        if device is None:
            LOGGER.info("No device matched %s among %d device(s)", _describe_spec(self.spec), len(devices))
            return None
        self.hint = hint_for(device)
        self.last_device = device
        return device

    def _resolve_quietly(self) -> Device | None:
        """Re-resolve mid-attempt; a failed query yields ``None`` instead of ending the attempt."""
        try:
            return self._resolve()
        except BackendUnavailableError:
            raise
        except BackendError as exc:
            LOGGER.warning("Could not re-resolve device: %s", exc)
            return None

    def _emit(self, transition: Transition) -> None:
        LOGGER.info(
            "attempt=%d state=%s status=%s action=%s",
            transition.attempt,
            transition.state.value,
            transition.status or "-",
            transition.action,
        )
        if self.observer is not None:
            self.observer(transition)


def _describe_spec(spec: MatchSpec) -> str:
    parts = []
    if spec.exact_name:
        parts.append(f"name={spec.exact_name!r}")
    if spec.fuzzy_pattern:
        parts.append(f"pattern={spec.fuzzy_pattern!r}")
    if spec.device_class:
        parts.append(f"class={spec.device_class!r}")
    return ", ".join(parts) or "<empty match spec>"
