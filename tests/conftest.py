from __future__ import annotations

import logging
from collections.abc import Iterator
from pathlib import Path

import pytest

from fakes import FakeBackend, FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture(autouse=True)
def isolated_profile_dirs(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("APPDATA", str(tmp_path / "roaming"))
    monkeypatch.setenv("LOCALAPPDATA", str(tmp_path / "local"))


@pytest.fixture(autouse=True)
def reset_btrecover_logging() -> Iterator[None]:
    yield
    logger = logging.getLogger("btrecover")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
