"""Status polling with a bounded wait."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from btrecover.backends.base import PnpBackend
from btrecover.core.errors import BackendError, BackendUnavailableError
from btrecover.core.model import DeviceStatus, ServiceStatus

LOGGER = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_S = 0.25
# Lower bound for a single status query.
MIN_QUERY_TIMEOUT_S = 1.0


class StatusPoller:
    def __init__(
        self,
        backend: PnpBackend,
        *,
        interval_s: float = DEFAULT_POLL_INTERVAL_S,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._backend = backend
        self.interval_s = interval_s
        self._clock = clock
        self._sleep = sleep

    def wait_for_status(self, instance_id: str, expected: DeviceStatus, timeout_s: float) -> bool:
        """Poll a device until it reports ``expected``; False on timeout."""

        def _current(limit: float) -> DeviceStatus | None:
            device = self._backend.get_device(instance_id, timeout_s=limit)
            return device.state if device is not None else None

        return self._wait(f"device {instance_id}", _current, expected, timeout_s)

    def wait_for_service_status(self, name: str, expected: ServiceStatus, timeout_s: float) -> bool:
        def _current(limit: float) -> ServiceStatus | None:
            service = self._backend.get_service(name, timeout_s=limit)
            return service.state if service is not None else None

        return self._wait(f"service {name}", _current, expected, timeout_s)

    def _wait(
        self,
        label: str,
        current: Callable[[float], DeviceStatus | ServiceStatus | None],
        expected: DeviceStatus | ServiceStatus,
        timeout_s: float,
    ) -> bool:
        deadline = self._clock() + timeout_s
        last: DeviceStatus | ServiceStatus | None = None
        while True:
            try:
                last = current(max(deadline - self._clock(), MIN_QUERY_TIMEOUT_S))
            except BackendUnavailableError:
                raise
            except BackendError as exc:
                # Treated like a missing device: keep polling until the deadline.
                LOGGER.debug("Polling %s failed transiently: %s", label, exc)
                last = None

            if last is expected:
                return True

            remaining = deadline - self._clock()
            if remaining <= 0:
                LOGGER.info(
                    "Timed out after %.2fs waiting for %s to become %s (last seen: %s)",
                    timeout_s,
                    label,
                    expected.value,
                    last.value if last is not None else "not found",
                )
                return False
            self._sleep(min(self.interval_s, remaining))
