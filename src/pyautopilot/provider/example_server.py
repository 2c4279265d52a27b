"""Reference privileged provider backed by ``adb``.

Speaks the provider protocol on stdin/stdout: one JSON-RPC message per
line. Permission requests are acknowledged immediately and answered later
with a ``permission/result`` notification, the way a Shizuku-style service
answers after the user responds to its prompt. Here the answer is "granted"
when ``adb get-state`` reports a connected device. That authorization is
held by the device, not by this process, so ``permission/check`` reports it
too and a grant carries over to the next provider process.
"""
from __future__ import annotations

import base64
import json
import subprocess
import sys
import threading
from typing import Any

import typer

from ..util.subprocess import adb_base, run_cmd, run_cmd_bytes

_write_lock = threading.Lock()


def _send(msg: dict[str, Any]) -> None:
    with _write_lock:
        sys.stdout.write(json.dumps(msg, ensure_ascii=False) + "\n")
        sys.stdout.flush()


def _reply(rid: int, result=None, error=None, code: str | None = None):
    msg: dict[str, Any] = {"jsonrpc": "2.0", "id": rid}
    if error is not None:
        msg["error"] = {"message": str(error), "code": code or "error"}
    else:
        msg["result"] = result
    _send(msg)


def _notify(method: str, params: dict[str, Any]) -> None:
    _send({"jsonrpc": "2.0", "method": method, "params": params})


class AdbBackend:
    def __init__(self, adb: str, serial: str | None, timeout: int = 60):
        self.base = adb_base(adb, serial)
        self.timeout = timeout
        self.granted = False

    def device_ready(self) -> bool:
        try:
            res = run_cmd(self.base + ["get-state"], timeout=10)
        except (OSError, subprocess.TimeoutExpired):
            return False
        return res.ok and res.stdout.strip() == "device"

    def check_permission(self) -> bool:
        if not self.granted:
            self.granted = self.device_ready()
        return self.granted

    def answer_permission(self, request_code: int) -> None:
        self.granted = self.device_ready()
        _notify("permission/result", {"requestCode": request_code, "granted": self.granted})

    def shell(self, command: str) -> dict[str, Any]:
        res = run_cmd(self.base + ["shell", command], timeout=self.timeout)
        return {"exit_code": res.returncode, "stdout": res.stdout, "stderr": res.stderr}

    def capture(self) -> dict[str, Any]:
        rc, out, err = run_cmd_bytes(self.base + ["exec-out", "screencap", "-p"], timeout=self.timeout)
        if rc != 0 or not out:
            raise RuntimeError(f"screencap failed: {err.strip() or rc}")
        return {"png_base64": base64.b64encode(out).decode("ascii")}


def serve(backend: AdbBackend) -> None:
    for line in sys.stdin:
        line = line.strip()
        if not line:
            continue
        try:
            req = json.loads(line)
        except ValueError:
            continue
        if not isinstance(req, dict):
            continue
        method = req.get("method")
        params = req.get("params") or {}
        try:
            rid = int(req.get("id"))
        except (TypeError, ValueError):
            continue

        try:
            if method == "session/ping":
                _reply(rid, {"pong": True})
            elif method == "permission/check":
                _reply(rid, {"granted": backend.check_permission()})
            elif method == "permission/request":
                code = params.get("requestCode")
                if not isinstance(code, int):
                    _reply(rid, error="requestCode must be an integer", code="invalid_params")
                    continue
                _reply(rid, {"accepted": True})
                threading.Thread(target=backend.answer_permission, args=(code,), daemon=True).start()
            elif not backend.granted:
                _reply(rid, error="permission not granted", code="not_authorized")
            elif method == "shell/exec":
                command = params.get("command")
                if not isinstance(command, str) or not command.strip():
                    _reply(rid, error="command must be a non-empty string", code="invalid_params")
                    continue
                _reply(rid, backend.shell(command))
            elif method == "screen/capture":
                _reply(rid, backend.capture())
            else:
                _reply(rid, error=f"Unknown method: {method}", code="unknown_method")
        except subprocess.TimeoutExpired as e:
            _reply(rid, error=e, code="timeout")
        except Exception as e:
            _reply(rid, error=e)


def main(
    adb: str = typer.Option("adb", "--adb", help="Path to the adb executable."),
    serial: str = typer.Option(None, "--serial", help="Device serial (adb -s)."),
    timeout: int = typer.Option(60, "--timeout", help="Per-command timeout seconds."),
):
    serve(AdbBackend(adb, serial, timeout))


if __name__ == "__main__":
    typer.run(main)
