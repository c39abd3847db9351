import os
import threading
from collections.abc import Callable
from typing import Any

import pytest

from devicemesh.config.environment import Environment
from devicemesh.device.types import DeviceDescriptor, DeviceStatus
from devicemesh.errors import CommandError, DeviceNotFoundError


class FakeExecutor:
    """Scriptable CommandExecutor test double.

    Responses are looked up by (device_id, command), then by command alone.
    A response may be a string, an exception instance (raised), or a callable
    receiving (device_id, command). Unscripted commands return "".
    """

    def __init__(self, devices: list[DeviceDescriptor] | None = None):
        self.devices: list[DeviceDescriptor] = list(devices or [])
        self.responses: dict[Any, Any] = {}
        self.calls: list[tuple[str, str]] = []
        self.list_calls = 0
        self.list_error: BaseException | None = None
        self.list_errors: list[BaseException] = []
        self._lock = threading.Lock()

    def add_device(self, device_id: str, status: DeviceStatus = DeviceStatus.ONLINE) -> None:
        self.devices.append(DeviceDescriptor(id=device_id, status=status))

    def respond(self, command: str, response: Any, device_id: str | None = None) -> None:
        key = (device_id, command) if device_id is not None else command
        self.responses[key] = response

    def commands_for(self, device_id: str) -> list[str]:
        with self._lock:
            return [command for d, command in self.calls if d == device_id]

    def execute(self, device_id: str, command: str) -> str:
        with self._lock:
            self.calls.append((device_id, command))
        if self.devices and device_id not in {d.id for d in self.devices}:
            raise DeviceNotFoundError(device_id)

        response = self.responses.get((device_id, command), self.responses.get(command, ""))
        if isinstance(response, BaseException):
            raise response
        if callable(response):
            return response(device_id, command)
        return response

    def list_devices(self) -> list[DeviceDescriptor]:
        with self._lock:
            self.list_calls += 1
        if self.list_errors:
            raise self.list_errors.pop(0)
        if self.list_error is not None:
            raise self.list_error
        return list(self.devices)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def failing(message: str = "device offline", times: int | None = None) -> Callable[[str, str], str]:
    """Build a response that raises CommandError, optionally only for the first `times` calls."""
    count = {"n": 0}

    def respond(device_id: str, command: str) -> str:
        count["n"] += 1
        if times is None or count["n"] <= times:
            raise CommandError(message, device_id=device_id, command=command, exit_code=1)
        return "ok"

    return respond


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch, tmp_path):
    """Keep DEVICEMESH_* settings from the host out of the tests."""
    for key in list(os.environ):
        if key.startswith("DEVICEMESH_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("DEVICEMESH_CONFIG_DIR", str(tmp_path / "config"))
    monkeypatch.chdir(tmp_path)
    Environment.reset()
    yield
    Environment.reset()


@pytest.fixture
def executor() -> FakeExecutor:
    fake = FakeExecutor()
    for device_id in ("d1", "d2", "d3"):
        fake.add_device(device_id)
    return fake


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def no_sleep(monkeypatch) -> list[float]:
    """Record retry delays instead of sleeping."""
    slept: list[float] = []
    monkeypatch.setattr("devicemesh.concurrency.retry.time.sleep", slept.append)
    return slept


@pytest.fixture
def failing_response():
    return failing
