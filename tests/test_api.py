from __future__ import annotations

import pytest

from btrecover.api import Client, Device, Overrides, PreconditionError, RecoveryReport
from fakes import ADAPTER_ID, FakeBackend, FakeClock, adapter


def _client(backend: FakeBackend, clock: FakeClock) -> Client:
    return Client(backend=backend, clock=clock, sleep=clock.sleep)


def test_public_client_list_profiles(backend: FakeBackend, clock: FakeClock) -> None:
    client = _client(backend, clock)
    profiles = client.list_profiles()
    assert any(p.id == "generic_bluetooth" for p in profiles)
    assert client.runtime_warnings == ()


def test_public_client_find_device_with_overrides(backend: FakeBackend, clock: FakeClock) -> None:
    backend.add_device(adapter("OK"))
    backend.add_device(
        Device(
            instance_id="USB\\VID_8087&PID_0026\\5",
            friendly_name="Intel(R) Wireless Bluetooth(R)",
            device_class="Bluetooth",
            status="OK",
        )
    )
    client = _client(backend, clock)

    default_pick = client.find_device()
    assert default_pick is not None
    assert default_pick.instance_id == ADAPTER_ID

    intel = client.find_device(overrides=Overrides(exact_name="Intel(R) Wireless Bluetooth(R)"))
    assert intel is not None
    assert intel.friendly_name.startswith("Intel")


def test_public_client_recover(backend: FakeBackend, clock: FakeClock) -> None:
    backend.add_device(adapter("Error", problem_code=22))
    client = _client(backend, clock)

    report = client.recover(overrides=Overrides(max_attempts=2, state_timeout_s=1.0))

    assert isinstance(report, RecoveryReport)
    assert report.succeeded
    assert backend.toggles() == [("enable", ADAPTER_ID)]


def test_public_client_requires_elevation(backend: FakeBackend, clock: FakeClock) -> None:
    backend.add_device(adapter("Error"))
    backend.elevated = False
    client = _client(backend, clock)

    with pytest.raises(PreconditionError):
        client.recover()
    assert backend.toggles() == []
