"""Shared fixtures: an in-process stand-in for the privileged provider."""

import threading
import time

import pytest

from pyautopilot.device import DeviceController, RetryPolicy
from pyautopilot.errors import ProviderError
from pyautopilot.gateway import PrivilegedGateway
from pyautopilot.scanner import AppInfo, AppScanner, AppSnapshot
from pyautopilot.skills.registry import SkillRegistry
from pyautopilot.tools.builtin import register_builtin_tools
from pyautopilot.tools.registry import ToolRegistry


class StubTransport:
    """Records every request with entry/exit markers so tests can check ordering."""

    def __init__(self, notify, on_exit, granted=False):
        self.notify = notify
        self.on_exit = on_exit
        self.granted = granted
        self.calls = []
        self.log = []
        self.failures = []
        self.replies = {}
        self.delay = 0.0
        self.closed = False
        self._lock = threading.Lock()

    def request(self, method, params=None, timeout=30.0):
        params = dict(params or {})
        with self._lock:
            self.calls.append((method, params))
            self.log.append(("enter", method, params))
        try:
            if method == "session/ping":
                return {"pong": True}
            if method == "permission/check":
                return {"granted": self.granted}
            if method == "permission/request":
                return {"accepted": True}
            if self.failures:
                raise self.failures.pop(0)
            if self.delay:
                time.sleep(self.delay)
            if method in self.replies:
                reply = self.replies[method]
                return reply(params) if callable(reply) else reply
            if method == "shell/exec":
                return {"exit_code": 0, "stdout": "", "stderr": ""}
            raise ProviderError(f"unknown method {method}", provider_code="unknown_method")
        finally:
            with self._lock:
                self.log.append(("exit", method, params))

    def close(self):
        self.closed = True

    # ---- provider-side actions ----

    def send_permission_result(self, request_code, granted=True):
        self.notify("permission/result", {"requestCode": request_code, "granted": granted})

    def die(self):
        self.on_exit()

    def privileged_calls(self, method="shell/exec"):
        return [p for m, p in self.calls if m == method]


class StubProvider:
    """Transport factory handed to the gateway."""

    def __init__(self, granted=False):
        self.granted = granted
        self.unavailable = False
        self.transports = []

    def __call__(self, notify, on_exit):
        if self.unavailable:
            raise FileNotFoundError("provider binary not found")
        t = StubTransport(notify, on_exit, granted=self.granted)
        self.transports.append(t)
        return t

    @property
    def transport(self) -> StubTransport:
        return self.transports[-1]


def wait_until(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture
def provider():
    return StubProvider()


@pytest.fixture
def gateway(provider):
    gw = PrivilegedGateway(provider, call_timeout=1.0)
    yield gw
    gw.teardown()


@pytest.fixture
def authorized_gateway(provider, gateway):
    provider.granted = True
    gateway.connect()
    assert gateway.is_authorized()
    return gateway


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def controller(gateway, tmp_path, sleeps):
    return DeviceController(
        gateway,
        tmp_path / "cache",
        RetryPolicy(max_attempts=3, base_delay=0.1, max_delay=1.0),
        sleep=sleeps.append,
    )


@pytest.fixture
def scanner():
    return AppScanner(lambda: {"com.android.settings": AppInfo("com.android.settings")})


@pytest.fixture
def tools(controller, scanner):
    reg = ToolRegistry()
    register_builtin_tools(reg, controller, scanner)
    return reg


@pytest.fixture
def skills(tools):
    return SkillRegistry(tools)


@pytest.fixture
def settings_snapshot():
    return AppSnapshot.of(["com.android.settings"], generation=1)
