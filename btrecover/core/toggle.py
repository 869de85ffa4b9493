"""Enable/disable/restart operations verified by polled status.

A mutation call's own success flag is never trusted on its own: some drivers
report a transient failure while still converging, and some report success
while staying broken. Every operation is "attempt, then verify" and the
verification decides the outcome.
"""

from __future__ import annotations

import logging

from btrecover.backends.base import PnpBackend
from btrecover.core.errors import BackendError, BackendTimeoutError, BackendUnavailableError
from btrecover.core.model import Device, DeviceStatus, OperationOutcome, Service, ServiceStatus
from btrecover.core.poller import StatusPoller

LOGGER = logging.getLogger(__name__)


class ToggleExecutor:
    def __init__(self, backend: PnpBackend, poller: StatusPoller) -> None:
        self._backend = backend
        self._poller = poller

    def enable(self, instance_id: str, timeout_s: float) -> OperationOutcome:
        return self._set_enabled(instance_id, True, timeout_s)

    def disable(self, instance_id: str, timeout_s: float) -> OperationOutcome:
        return self._set_enabled(instance_id, False, timeout_s)

    def _set_enabled(self, instance_id: str, enabled: bool, timeout_s: float) -> OperationOutcome:
        target = DeviceStatus.OK if enabled else DeviceStatus.DISABLED
        action = "enable" if enabled else "disable"

        current = self._current_device(instance_id)
        if current is not None and current.state is target:
            LOGGER.info("Device %s already %s; %s skipped", instance_id, target.value, action)
            return OperationOutcome(
                succeeded=True,
                detail=f"already {target.value}",
                skipped=True,
            )

        reported_error: str | None = None
        try:
            result = self._backend.set_device_enabled(instance_id, enabled, timeout_s=timeout_s)
        except BackendTimeoutError as exc:
            LOGGER.warning("%s of %s timed out: %s", action.capitalize(), instance_id, exc)
            return OperationOutcome(succeeded=False, detail=str(exc), timed_out=True)

        if not result.success:
            reported_error = result.error or "no error message"
            LOGGER.warning(
                "%s of %s reported failure (%s); verifying status",
                action.capitalize(),
                instance_id,
                reported_error,
            )

        if self._poller.wait_for_status(instance_id, target, timeout_s):
            detail = f"{action}d"
            if reported_error:
                detail += f" despite reported error: {reported_error}"
            LOGGER.info("Device %s reached %s", instance_id, target.value)
            return OperationOutcome(succeeded=True, detail=detail)

        detail = f"status did not reach {target.value} within {timeout_s:g}s"
        if reported_error:
            detail += f"; {action} reported: {reported_error}"
        return OperationOutcome(succeeded=False, detail=detail)

    def _current_device(self, instance_id: str) -> Device | None:
        # An unreadable status is "unknown": mutate anyway and let the poll decide.
        try:
            return self._backend.get_device(instance_id)
        except BackendUnavailableError:
            raise
        except BackendError as exc:
            LOGGER.warning("Could not read status of %s before toggling: %s", instance_id, exc)
            return None

    def restart_service(self, name: str, timeout_s: float) -> OperationOutcome:
        try:
            service: Service | None = self._backend.get_service(name)
        except BackendUnavailableError:
            raise
        except BackendError as exc:
            LOGGER.warning("Could not query service %s (%s); restarting anyway", name, exc)
            service = Service(name=name, status=ServiceStatus.RUNNING.value)
        if service is None:
            LOGGER.warning("Service %s not found", name)
            return OperationOutcome(succeeded=False, detail=f"service {name} not found")

        action = "restart" if service.state is ServiceStatus.RUNNING else "start"
        reported_error: str | None = None
        try:
            if action == "restart":
                result = self._backend.restart_service(name, timeout_s=timeout_s)
            else:
                result = self._backend.start_service(name, timeout_s=timeout_s)
        except BackendTimeoutError as exc:
            LOGGER.warning("Service %s %s timed out: %s", name, action, exc)
            return OperationOutcome(succeeded=False, detail=str(exc), timed_out=True)

        if not result.success:
            reported_error = result.error or "no error message"
            LOGGER.warning("Service %s %s reported failure (%s); verifying status", name, action, reported_error)

        if self._poller.wait_for_service_status(name, ServiceStatus.RUNNING, timeout_s):
            return OperationOutcome(succeeded=True, detail=f"service {name} {action}ed")

        detail = f"service {name} not running within {timeout_s:g}s"
        if reported_error:
            detail += f"; {action} reported: {reported_error}"
        return OperationOutcome(succeeded=False, detail=detail)
