from __future__ import annotations

from dataclasses import replace

from btrecover.core.errors import BackendError, BackendTimeoutError
from btrecover.core.model import Device, OperationResult, Service


class FakeClock:
    """Monotonic clock whose sleep advances time instantly."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class FakeBackend:
    """In-memory PnP/service backend that records every call.

    Toggles apply the next status queued in ``enable_results`` /
    ``disable_results`` (default OK / Disabled). Actions listed in
    ``report_failure`` still apply their status but report an error, and
    actions in ``timeouts`` raise BackendTimeoutError without changing state.
    ``listing_errors`` and ``query_errors`` make the next enumerations or
    single-item queries fail with BackendError.
    """

    def __init__(self) -> None:
        self.devices: dict[str, Device] = {}
        self.services: dict[str, Service] = {}
        self.calls: list[tuple[str, str]] = []
        self.elevated = True
        self.hidden_listings = 0
        self.listing_errors = 0
        self.query_errors = 0
        self.query_timeouts: list[float | None] = []
        self.enable_results: list[str] = []
        self.disable_results: list[str] = []
        self.report_failure: set[str] = set()
        self.timeouts: set[str] = set()
        self.renumber: dict[str, str] = {}
        self.stuck_services: set[str] = set()

    def add_device(self, device: Device) -> Device:
        self.devices[device.instance_id] = device
        return device

    def add_service(self, name: str, status: str) -> None:
        self.services[name] = Service(name=name, status=status)

    def toggles(self) -> list[tuple[str, str]]:
        return [call for call in self.calls if call[0] in {"enable", "disable"}]

    def list_devices(self, device_class: str | None = None) -> list[Device]:
        self.calls.append(("list", device_class or ""))
        if self.listing_errors > 0:
            self.listing_errors -= 1
            raise BackendError("PowerShell query failed (1): transient")
        if self.hidden_listings > 0:
            self.hidden_listings -= 1
            return []
        return [
            d for d in self.devices.values()
            if device_class is None or d.device_class == device_class
        ]

    def get_device(self, instance_id: str, *, timeout_s: float | None = None) -> Device | None:
        self._query(timeout_s)
        return self.devices.get(instance_id)

    def set_device_enabled(self, instance_id: str, enabled: bool, *, timeout_s: float) -> OperationResult:
        action = "enable" if enabled else "disable"
        self.calls.append((action, instance_id))
        if action in self.timeouts:
            raise BackendTimeoutError(f"{action} exceeded {timeout_s:g}s")

        queue = self.enable_results if enabled else self.disable_results
        status = queue.pop(0) if queue else ("OK" if enabled else "Disabled")
        device = self.devices.pop(instance_id)
        new_id = self.renumber.pop(instance_id, instance_id)
        self.devices[new_id] = replace(device, instance_id=new_id, status=status, problem_code=None)

        if action in self.report_failure:
            return OperationResult(success=False, error="The device reported a transient error")
        return OperationResult(success=True)

    def get_service(self, name: str, *, timeout_s: float | None = None) -> Service | None:
        self._query(timeout_s)
        return self.services.get(name)

    def start_service(self, name: str, *, timeout_s: float) -> OperationResult:
        return self._service_call("start", name, timeout_s)

    def restart_service(self, name: str, *, timeout_s: float) -> OperationResult:
        return self._service_call("restart", name, timeout_s)

    def _service_call(self, action: str, name: str, timeout_s: float) -> OperationResult:
        self.calls.append((f"service-{action}", name))
        if f"service-{action}" in self.timeouts:
            raise BackendTimeoutError(f"{action} exceeded {timeout_s:g}s")
        if name not in self.services:
            return OperationResult(success=False, error=f"Cannot find any service with service name '{name}'")
        if name in self.stuck_services:
            return OperationResult(success=False, error="Service cannot be started")
        self.services[name] = Service(name=name, status="Running")
        return OperationResult(success=True)

    def is_elevated(self) -> bool:
        return self.elevated

    def _query(self, timeout_s: float | None) -> None:
        self.query_timeouts.append(timeout_s)
        if self.query_errors > 0:
            self.query_errors -= 1
            raise BackendError("PowerShell query failed (1): transient")


ADAPTER_ID = "USB\\VID_0BDA&PID_8771\\00E04C000001"


def adapter(status: str = "OK", problem_code: int | None = None, instance_id: str = ADAPTER_ID) -> Device:
    return Device(
        instance_id=instance_id,
        friendly_name="Realtek Bluetooth Adapter",
        device_class="Bluetooth",
        status=status,
        problem_code=problem_code,
    )


