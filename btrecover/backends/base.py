"""OS binding interfaces consumed by the recovery core."""

from __future__ import annotations

from typing import Protocol

from btrecover.core.model import Device, OperationResult, Service


class PnpBackend(Protocol):
    def list_devices(self, device_class: str | None = None) -> list[Device]:
        """Enumerate PnP devices, optionally restricted to one device class."""

    def get_device(self, instance_id: str, *, timeout_s: float | None = None) -> Device | None:
        """Return the device with this instance id, or None when absent.

        ``timeout_s`` caps this single query below the backend's own default.
        """

    def set_device_enabled(
        self,
        instance_id: str,
        enabled: bool,
        *,
        timeout_s: float,
    ) -> OperationResult:
        """Enable or disable a device; raises BackendTimeoutError past the deadline."""

    def get_service(self, name: str, *, timeout_s: float | None = None) -> Service | None:
        """Return the named OS service, or None when absent."""

    def start_service(self, name: str, *, timeout_s: float) -> OperationResult:
        """Start a stopped service."""

    def restart_service(self, name: str, *, timeout_s: float) -> OperationResult:
        """Restart a running service."""

    def is_elevated(self) -> bool:
        """Whether the current process holds administrator rights."""
