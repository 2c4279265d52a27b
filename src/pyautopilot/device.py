"""Device primitives on top of the privileged gateway.

Every primitive validates its arguments, then runs inside the gateway's
single-flight lock with a bounded exponential-backoff retry for transient
transport failures. Provider error replies and malformed arguments fail at
once.
"""
from __future__ import annotations

import base64
import binascii
import logging
import re
import shlex
import time
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from tenacity import (
    Retrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .errors import ExecutionFailed, ProviderError, TransientProviderError
from .gateway import PrivilegedGateway
from .util.subprocess import CmdResult

logger = logging.getLogger(__name__)

# Provider error codes that describe a momentary condition rather than a bad request.
TRANSIENT_PROVIDER_CODES = frozenset({"timeout", "busy"})

KEYCODE_HOME = 3
KEYCODE_BACK = 4

_PACKAGE_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_]*(\.[A-Za-z][A-Za-z0-9_]*)+$")
_KEYCODE_NAME_RE = re.compile(r"^KEYCODE_[A-Z0-9_]+$")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 0.2
    max_delay: float = 2.0


def _malformed(message: str) -> ExecutionFailed:
    return ExecutionFailed(ValueError(message), transient=False)


def _check_int(name: str, value: Any, minimum: int = 0) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < minimum:
        raise _malformed(f"{name} must be an integer >= {minimum}, got {value!r}")
    return value


def _check_text(name: str, value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise _malformed(f"{name} must be a non-empty string")
    return value


def escape_input_text(text: str) -> str:
    """Escape text for ``input text``: spaces become %s, then shell-quote."""
    return shlex.quote(text.replace("%", "\\%").replace(" ", "%s"))


class DeviceController:
    def __init__(
        self,
        gateway: PrivilegedGateway,
        cache_dir: Path,
        retry: RetryPolicy | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.gateway = gateway
        self.cache_dir = Path(cache_dir)
        self.retry = retry or RetryPolicy()
        self._sleep = sleep

    # ---- plumbing ----

    def _attempt(self, method: str, params: dict[str, Any]) -> Any:
        try:
            return self.gateway.call(method, params)
        except ProviderError as e:
            if e.provider_code in TRANSIENT_PROVIDER_CODES:
                raise TransientProviderError(str(e)) from e
            raise

    def _invoke(self, method: str, params: dict[str, Any]) -> Any:
        retrying = Retrying(
            stop=stop_after_attempt(max(1, self.retry.max_attempts)),
            wait=wait_exponential(multiplier=self.retry.base_delay, max=self.retry.max_delay),
            retry=retry_if_exception_type(TransientProviderError),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            sleep=self._sleep,
            reraise=True,
        )
        with self.gateway.exclusive():
            self.gateway.ensure_ready()
            try:
                return retrying(self._attempt, method, params)
            except TransientProviderError as e:
                raise ExecutionFailed(e, transient=True) from e
            except ProviderError as e:
                raise ExecutionFailed(e) from e

    def _shell(self, command: str, check: bool = True) -> CmdResult:
        res = self._invoke("shell/exec", {"command": command})
        if not isinstance(res, dict):
            raise ExecutionFailed(f"malformed shell/exec reply: {res!r}")
        out = CmdResult(
            returncode=int(res.get("exit_code", -1)),
            stdout=str(res.get("stdout") or ""),
            stderr=str(res.get("stderr") or ""),
        )
        if check and not out.ok:
            detail = out.stderr.strip() or out.stdout.strip() or "no output"
            raise ExecutionFailed(f"`{command}` exited with {out.returncode}: {detail}")
        return out

    # ---- primitives ----

    def tap(self, x: int, y: int) -> None:
        x = _check_int("x", x)
        y = _check_int("y", y)
        self._shell(f"input tap {x} {y}")

    def swipe(self, x1: int, y1: int, x2: int, y2: int, duration_ms: int = 300) -> None:
        coords = [_check_int(n, v) for n, v in (("x1", x1), ("y1", y1), ("x2", x2), ("y2", y2))]
        duration_ms = _check_int("duration_ms", duration_ms, minimum=1)
        self._shell("input swipe " + " ".join(str(c) for c in coords) + f" {duration_ms}")

    def input_text(self, text: str) -> None:
        text = _check_text("text", text)
        self._shell(f"input text {escape_input_text(text)}")

    def key_event(self, keycode: int | str) -> None:
        if isinstance(keycode, str):
            if not _KEYCODE_NAME_RE.match(keycode):
                raise _malformed(f"keycode must look like KEYCODE_NAME, got {keycode!r}")
        else:
            keycode = _check_int("keycode", keycode)
        self._shell(f"input keyevent {keycode}")

    def press_back(self) -> None:
        self.key_event(KEYCODE_BACK)

    def press_home(self) -> None:
        self.key_event(KEYCODE_HOME)

    def launch_app(self, package: str) -> None:
        package = _check_text("package", package)
        if not _PACKAGE_RE.match(package):
            raise _malformed(f"not a package name: {package!r}")
        self._shell(f"monkey -p {package} -c android.intent.category.LAUNCHER 1")

    def open_uri(self, uri: str) -> None:
        uri = _check_text("uri", uri)
        if any(ch.isspace() for ch in uri):
            raise _malformed("uri must not contain whitespace")
        self._shell(f"am start -a android.intent.action.VIEW -d {shlex.quote(uri)}")

    def shell(self, command: str, check: bool = True) -> CmdResult:
        command = _check_text("command", command)
        return self._shell(command, check=check)

    def screenshot(self) -> Path:
        """Capture the screen into the cache directory. The caller owns the file."""
        res = self._invoke("screen/capture", {})
        encoded = res.get("png_base64") if isinstance(res, dict) else None
        if not isinstance(encoded, str):
            raise ExecutionFailed(f"malformed screen/capture reply: {res!r}")
        try:
            data = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ExecutionFailed(e) from e
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        path = self.cache_dir / f"screen_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}.png"
        path.write_bytes(data)
        logger.debug("screenshot saved to %s (%d bytes)", path, len(data))
        return path
