import sys
import textwrap

import pytest

from pyautopilot.device import DeviceController, RetryPolicy
from pyautopilot.errors import ProviderError, ProviderUnavailable, TransientProviderError
from pyautopilot.gateway import PermissionOutcome, PrivilegedGateway, SessionState
from pyautopilot.provider.client import ProviderClient
from pyautopilot.provider.models import ProviderConfig
from pyautopilot.provider.registry import stdio_transport_factory

from conftest import wait_until

FAKE_PROVIDER = textwrap.dedent(
    """
    import json
    import sys

    granted = False

    def send(msg):
        sys.stdout.write(json.dumps(msg) + "\\n")
        sys.stdout.flush()

    for line in sys.stdin:
        req = json.loads(line)
        rid, method, params = req["id"], req["method"], req.get("params") or {}
        if method == "session/ping":
            send({"id": rid, "result": {"pong": True}})
        elif method == "permission/check":
            send({"id": rid, "result": {"granted": granted}})
        elif method == "permission/request":
            send({"id": rid, "result": {"accepted": True}})
            granted = True
            send({"method": "permission/result", "params": {"requestCode": params["requestCode"], "granted": True}})
        elif method == "shell/exec":
            send({"id": rid, "result": {"exit_code": 0, "stdout": params["command"], "stderr": ""}})
        elif method == "crash":
            sys.exit(3)
        else:
            send({"id": rid, "error": {"code": "unknown_method", "message": "no such method"}})
    """
)


@pytest.fixture
def provider_cmd(tmp_path):
    script = tmp_path / "fake_provider.py"
    script.write_text(FAKE_PROVIDER, encoding="utf-8")
    return [sys.executable, str(script)]


def test_request_and_error_reply(provider_cmd):
    client = ProviderClient(provider_cmd)
    try:
        assert client.request("session/ping", timeout=10) == {"pong": True}
        with pytest.raises(ProviderError) as ei:
            client.request("bogus", timeout=10)
        assert ei.value.provider_code == "unknown_method"
    finally:
        client.close()


def test_exit_fails_pending_and_reports_once(provider_cmd):
    exits = []
    client = ProviderClient(provider_cmd, on_exit=lambda: exits.append(1))
    try:
        with pytest.raises(TransientProviderError):
            client.request("crash", timeout=10)
        assert wait_until(lambda: not client.alive)
        with pytest.raises(TransientProviderError):
            client.request("session/ping", timeout=1)
        assert exits == [1]
    finally:
        client.close()


def test_close_is_not_a_death(provider_cmd):
    exits = []
    client = ProviderClient(provider_cmd, on_exit=lambda: exits.append(1))
    client.request("session/ping", timeout=10)
    client.close()
    assert wait_until(lambda: not client.alive)
    assert exits == []


def test_gateway_over_stdio(provider_cmd, tmp_path):
    factory = stdio_transport_factory(ProviderConfig(name="fake", command=provider_cmd))
    with PrivilegedGateway(factory, call_timeout=10) as gw:
        assert gw.connect() == SessionState.CONNECTED
        assert not gw.is_authorized()

        req = gw.request_permission()
        assert req.wait(10) == PermissionOutcome.GRANTED
        assert wait_until(gw.is_authorized)

        assert gw.call("shell/exec", {"command": "input tap 1 2"})["stdout"] == "input tap 1 2"


def test_gateway_notices_provider_death(provider_cmd):
    factory = stdio_transport_factory(ProviderConfig(name="fake", command=provider_cmd))
    with PrivilegedGateway(factory, call_timeout=10) as gw:
        gw.connect()
        gw.request_permission().wait(10)
        assert wait_until(gw.is_authorized)
        with pytest.raises(TransientProviderError):
            gw.call("crash")
        assert wait_until(lambda: gw.state == SessionState.DISCONNECTED)
        with pytest.raises(ProviderUnavailable):
            gw.call("shell/exec", {"command": "true"})

        # a fresh connect starts a new provider process
        assert gw.connect() == SessionState.CONNECTED


def test_missing_provider_binary(tmp_path):
    factory = stdio_transport_factory(ProviderConfig(name="none", command=[str(tmp_path / "no-such-binary")]))
    gw = PrivilegedGateway(factory)
    with pytest.raises(ProviderUnavailable):
        gw.connect()
    assert gw.state == SessionState.DISCONNECTED
    gw.teardown()


def test_controller_retry_sees_reset_session(provider_cmd, tmp_path):
    factory = stdio_transport_factory(ProviderConfig(name="fake", command=provider_cmd))
    with PrivilegedGateway(factory, call_timeout=10) as gw:
        gw.connect()
        gw.request_permission().wait(10)
        assert wait_until(gw.is_authorized)
        controller = DeviceController(gw, tmp_path, RetryPolicy(max_attempts=3, base_delay=0, max_delay=0))
        # the provider dies mid-call; the retry finds no session instead of a stale one
        with pytest.raises(ProviderUnavailable):
            controller._invoke("crash", {})
