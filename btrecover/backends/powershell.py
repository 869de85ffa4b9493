"""Windows PnP/service backend driving PowerShell cmdlets in child processes."""

from __future__ import annotations

import json
import logging
import subprocess
import sys
from typing import Any

from btrecover.core.errors import BackendError, BackendTimeoutError, BackendUnavailableError
from btrecover.core.model import Device, OperationResult, Service

LOGGER = logging.getLogger(__name__)

POWERSHELL = "powershell"
DEFAULT_QUERY_TIMEOUT_S = 30.0

_DEVICE_FIELDS = (
    "InstanceId,FriendlyName,Class,Status,"
    "@{n='ProblemCode';e={$_.ConfigManagerErrorCode}}"
)
_SERVICE_FIELDS = "Name,@{n='Status';e={$_.Status.ToString()}}"


def ps_quote(value: str) -> str:
    """Render ``value`` as a single-quoted PowerShell literal."""
    return "'" + value.replace("'", "''") + "'"


class PowerShellBackend:
    def __init__(
        self,
        *,
        executable: str = POWERSHELL,
        query_timeout_s: float = DEFAULT_QUERY_TIMEOUT_S,
    ) -> None:
        self.executable = executable
        self.query_timeout_s = query_timeout_s

    # ─── Devices ───

    def list_devices(self, device_class: str | None = None) -> list[Device]:
        class_arg = f" -Class {ps_quote(device_class)}" if device_class else ""
        script = (
            f"Get-PnpDevice{class_arg} -ErrorAction SilentlyContinue"
            f" | Select-Object {_DEVICE_FIELDS} | ConvertTo-Json -Compress"
        )
        return [_device_from_json(item) for item in self._query(script)]

    def get_device(self, instance_id: str, *, timeout_s: float | None = None) -> Device | None:
        script = (
            f"Get-PnpDevice -InstanceId {ps_quote(instance_id)} -ErrorAction SilentlyContinue"
            f" | Select-Object {_DEVICE_FIELDS} | ConvertTo-Json -Compress"
        )
        items = self._query(script, timeout_s=timeout_s)
        return _device_from_json(items[0]) if items else None

    def set_device_enabled(
        self,
        instance_id: str,
        enabled: bool,
        *,
        timeout_s: float,
    ) -> OperationResult:
        cmdlet = "Enable-PnpDevice" if enabled else "Disable-PnpDevice"
        script = f"{cmdlet} -InstanceId {ps_quote(instance_id)} -Confirm:$false -ErrorAction Stop"
        return self._mutate(script, timeout_s=timeout_s)

    # ─── Services ───

    def get_service(self, name: str, *, timeout_s: float | None = None) -> Service | None:
        script = (
            f"Get-Service -Name {ps_quote(name)} -ErrorAction SilentlyContinue"
            f" | Select-Object {_SERVICE_FIELDS} | ConvertTo-Json -Compress"
        )
        items = self._query(script, timeout_s=timeout_s)
        if not items:
            return None
        return Service(name=str(items[0].get("Name") or name), status=str(items[0].get("Status") or ""))

    def start_service(self, name: str, *, timeout_s: float) -> OperationResult:
        return self._mutate(f"Start-Service -Name {ps_quote(name)} -ErrorAction Stop", timeout_s=timeout_s)

    def restart_service(self, name: str, *, timeout_s: float) -> OperationResult:
        return self._mutate(
            f"Restart-Service -Name {ps_quote(name)} -Force -ErrorAction Stop",
            timeout_s=timeout_s,
        )

    # ─── Privileges ───

    def is_elevated(self) -> bool:
        try:
            import ctypes

            return ctypes.windll.shell32.IsUserAnAdmin() != 0  # type: ignore[attr-defined]
        except (AttributeError, OSError):
            return False

    # ─── Process plumbing ───

    def _run(self, script: str, *, timeout_s: float) -> subprocess.CompletedProcess[str]:
        cmd = [
            self.executable,
            "-NoProfile",
            "-NonInteractive",
            "-ExecutionPolicy",
            "Bypass",
            "-Command",
            script,
        ]
        LOGGER.debug("Running PowerShell (timeout %.1fs): %s", timeout_s, script)
        try:
            return subprocess.run(
                cmd,
                check=False,
                capture_output=True,
                text=True,
                timeout=timeout_s,
            )
        except FileNotFoundError as exc:
            raise BackendUnavailableError(
                f"'{self.executable}' not found; btrecover needs Windows PowerShell"
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise BackendTimeoutError(
                f"PowerShell call exceeded {timeout_s:g}s and was terminated: {script}"
            ) from exc

    def _query(self, script: str, *, timeout_s: float | None = None) -> list[dict[str, Any]]:
        limit = self.query_timeout_s if timeout_s is None else min(timeout_s, self.query_timeout_s)
        result = self._run(script, timeout_s=limit)
        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            raise BackendError(f"PowerShell query failed ({result.returncode}): {stderr}")
        return _parse_json_items(result.stdout)

    def _mutate(self, script: str, *, timeout_s: float) -> OperationResult:
        result = self._run(script, timeout_s=timeout_s)
        if result.returncode == 0:
            return OperationResult(success=True)
        message = (result.stderr or "").strip() or (result.stdout or "").strip()
        return OperationResult(success=False, error=message or f"exit code {result.returncode}")


def _parse_json_items(stdout: str) -> list[dict[str, Any]]:
    text = (stdout or "").strip()
    if not text:
        return []
    try:
        loaded = json.loads(text)
    except json.JSONDecodeError as exc:
        raise BackendError(f"Could not parse PowerShell output as JSON: {exc}") from exc
    if isinstance(loaded, dict):
        return [loaded]
    if isinstance(loaded, list):
        return [item for item in loaded if isinstance(item, dict)]
    raise BackendError(f"Unexpected PowerShell JSON payload: {type(loaded).__name__}")


def _device_from_json(item: dict[str, Any]) -> Device:
    problem = item.get("ProblemCode")
    return Device(
        instance_id=str(item.get("InstanceId") or ""),
        friendly_name=str(item.get("FriendlyName") or ""),
        device_class=str(item.get("Class") or ""),
        status=str(item.get("Status") or "Unknown"),
        problem_code=int(problem) if problem is not None else None,
    )


def runtime_warnings() -> tuple[str, ...]:
    warnings: list[str] = []
    if not sys.platform.startswith("win"):
        warnings.append(
            "Not running on Windows; PnP device and service commands will fail."
        )
    return tuple(warnings)
