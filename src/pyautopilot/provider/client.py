from __future__ import annotations

import itertools
import json
import logging
import os
import subprocess
import threading
from typing import Any, Callable

from ..errors import ProviderError, TransientProviderError

logger = logging.getLogger(__name__)

NotificationHandler = Callable[[str, dict[str, Any]], None]


class ProviderClient:
    """JSON-RPC client for a privileged provider process over stdio.

    Replies are correlated by integer id. Messages without an id are
    notifications (e.g. ``permission/result``) and are handed to
    ``on_notification`` from the reader thread. When the provider's stdout
    closes, every pending request fails and ``on_exit`` is called once.
    """

    def __init__(
        self,
        command: list[str],
        *,
        cwd: str | None = None,
        env: dict[str, str] | None = None,
        on_notification: NotificationHandler | None = None,
        on_exit: Callable[[], None] | None = None,
    ):
        self._proc = subprocess.Popen(
            command,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            text=True,
            bufsize=1,
            cwd=cwd,
            env={**os.environ, **env} if env else None,
        )
        if self._proc.stdin is None or self._proc.stdout is None:
            raise RuntimeError("Failed to start provider process with pipes.")
        self._stdin = self._proc.stdin
        self._stdout = self._proc.stdout
        self._on_notification = on_notification
        self._on_exit = on_exit
        self._id_iter = itertools.count(1)
        self._lock = threading.Lock()
        self._pending: dict[int, tuple[threading.Event, dict[str, Any]]] = {}
        self._dead = False
        self._reader = threading.Thread(target=self._read_loop, name="provider-reader", daemon=True)
        self._reader.start()

    @property
    def alive(self) -> bool:
        return not self._dead

    def close(self) -> None:
        # Drop the exit callback: a deliberate close is not a provider death.
        self._on_exit = None
        if self._proc.poll() is None:
            self._proc.terminate()
            try:
                self._proc.wait(timeout=2)
            except subprocess.TimeoutExpired:
                self._proc.kill()

    def _read_loop(self) -> None:
        try:
            for line in self._stdout:
                line = line.strip()
                if not line:
                    continue
                try:
                    msg = json.loads(line)
                except ValueError:
                    logger.debug("provider sent non-JSON line: %r", line[:200])
                    continue
                if not isinstance(msg, dict):
                    continue
                if "id" in msg and msg["id"] is not None:
                    try:
                        mid = int(msg["id"])
                    except (TypeError, ValueError):
                        continue
                    with self._lock:
                        if mid in self._pending:
                            ev, holder = self._pending[mid]
                            holder["msg"] = msg
                            ev.set()
                    continue
                method = msg.get("method")
                if isinstance(method, str) and self._on_notification is not None:
                    params = msg.get("params")
                    self._on_notification(method, params if isinstance(params, dict) else {})
        finally:
            self._mark_dead()

    def _mark_dead(self) -> None:
        with self._lock:
            self._dead = True
            waiting = list(self._pending.values())
        # Report the death before waking waiters so a retry sees the reset session.
        cb = self._on_exit
        if cb is not None:
            cb()
        for ev, holder in waiting:
            holder["dead"] = True
            ev.set()

    def request(self, method: str, params: dict[str, Any] | None = None, timeout: float = 30.0) -> Any:
        rid = next(self._id_iter)
        req = {"jsonrpc": "2.0", "id": rid, "method": method, "params": params or {}}
        ev = threading.Event()
        holder: dict[str, Any] = {}
        with self._lock:
            if self._dead:
                raise TransientProviderError(f"provider exited before {method}")
            self._pending[rid] = (ev, holder)
            try:
                self._stdin.write(json.dumps(req, ensure_ascii=False) + "\n")
                self._stdin.flush()
            except OSError as e:
                self._pending.pop(rid, None)
                raise TransientProviderError(f"provider write failed: {e}") from e
        ok = ev.wait(timeout)
        with self._lock:
            self._pending.pop(rid, None)
        if not ok:
            raise TransientProviderError(f"provider request timeout: {method}")
        if holder.get("dead"):
            raise TransientProviderError(f"provider exited during {method}")
        msg = holder.get("msg", {})
        if "error" in msg:
            err = msg["error"]
            if isinstance(err, dict):
                raise ProviderError(str(err.get("message", err)), provider_code=err.get("code"))
            raise ProviderError(str(err))
        return msg.get("result")
