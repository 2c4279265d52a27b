"""Privileged session gateway.

The gateway is the only path from pyautopilot to the external privileged
provider. It owns the session state machine, the permission handshake and
the single-flight lock that keeps privileged operations from interleaving.

State machine::

    DISCONNECTED -> CONNECTING -> CONNECTED | (ProviderUnavailable, back to DISCONNECTED)
    CONNECTED -> PERMISSION_PENDING -> CONNECTED (authorized) | PERMISSION_DENIED
    any -> DISCONNECTED when the provider dies

Permission results arrive as provider notifications. The transport pushes
them onto a queue owned by the gateway and a listener thread consumes it;
results for request codes the gateway no longer tracks are logged and
dropped.
"""
from __future__ import annotations

import itertools
import logging
import queue
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterator, Protocol

from .errors import AutopilotError, NotAuthorized, ProviderUnavailable

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    PERMISSION_PENDING = "permission_pending"
    PERMISSION_DENIED = "permission_denied"


class PermissionOutcome(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"


@dataclass
class PermissionRequest:
    request_code: int
    outcome: PermissionOutcome | None = None
    _event: threading.Event = field(default_factory=threading.Event, repr=False)

    def resolve(self, outcome: PermissionOutcome) -> None:
        self.outcome = outcome
        self._event.set()

    @property
    def done(self) -> bool:
        return self._event.is_set()

    @property
    def granted(self) -> bool:
        return self.outcome == PermissionOutcome.GRANTED

    def wait(self, timeout: float | None = None) -> PermissionOutcome | None:
        """Block the *calling* thread until the outcome arrives (or timeout)."""
        self._event.wait(timeout)
        return self.outcome


class ProviderTransport(Protocol):
    def request(self, method: str, params: dict[str, Any] | None = None, timeout: float = 30.0) -> Any: ...
    def close(self) -> None: ...


# (on_notification, on_exit) -> transport
TransportFactory = Callable[[Callable[[str, dict[str, Any]], None], Callable[[], None]], ProviderTransport]

_STOP = object()


class PrivilegedGateway:
    def __init__(self, transport_factory: TransportFactory, *, call_timeout: float = 30.0, journal=None):
        self._factory = transport_factory
        self._call_timeout = call_timeout
        self._journal = journal
        self._lock = threading.Lock()
        self._exclusive = threading.RLock()
        self._state = SessionState.DISCONNECTED
        self._authorized = False
        self._transport: ProviderTransport | None = None
        self._generation = 0
        self._codes = itertools.count(1)
        self._pending: dict[int, PermissionRequest] = {}
        self._inbox: queue.Queue = queue.Queue()
        self._listener: threading.Thread | None = None

    # ---- queries ----

    @property
    def state(self) -> SessionState:
        return self._state

    def is_authorized(self) -> bool:
        with self._lock:
            return self._state == SessionState.CONNECTED and self._authorized

    def ensure_ready(self) -> None:
        """Raise the typed error a privileged call would fail with right now."""
        with self._lock:
            state, authorized, transport = self._state, self._authorized, self._transport
        if transport is None or state in (SessionState.DISCONNECTED, SessionState.CONNECTING):
            raise ProviderUnavailable("privileged session is not connected")
        if state != SessionState.CONNECTED or not authorized:
            raise NotAuthorized(f"privileged session is not authorized (state={state.value})")

    # ---- lifecycle ----

    def connect(self) -> SessionState:
        """Connect to the provider. A no-op when a session already exists."""
        with self._exclusive:
            with self._lock:
                if self._state != SessionState.DISCONNECTED:
                    return self._state
                self._state = SessionState.CONNECTING
                self._generation += 1
                gen = self._generation
            self._start_listener()

            transport: ProviderTransport | None = None
            try:
                transport = self._factory(self._on_notification, lambda: self._on_provider_exit(gen))
                transport.request("session/ping", {}, timeout=self._call_timeout)
                status = transport.request("permission/check", {}, timeout=self._call_timeout) or {}
            except Exception as e:
                with self._lock:
                    if self._generation == gen:
                        self._state = SessionState.DISCONNECTED
                if transport is not None:
                    transport.close()
                raise ProviderUnavailable(f"privileged provider is not running: {e}") from e

            with self._lock:
                if self._generation != gen or self._state != SessionState.CONNECTING:
                    died = True
                else:
                    died = False
                    self._transport = transport
                    self._authorized = bool(isinstance(status, dict) and status.get("granted"))
                    self._state = SessionState.CONNECTED
            if died:
                transport.close()
                raise ProviderUnavailable("privileged provider exited while connecting")
            logger.info("privileged session connected (authorized=%s)", self._authorized)
            return self._state

    def teardown(self) -> None:
        """Release the session and stop the listener. Safe to call repeatedly."""
        with self._lock:
            self._generation += 1
            transport, self._transport = self._transport, None
            self._state = SessionState.DISCONNECTED
            self._authorized = False
            pending = list(self._pending.values())
            self._pending.clear()
            listener, self._listener = self._listener, None
        for req in pending:
            req.resolve(PermissionOutcome.DENIED)
        if listener is not None:
            self._inbox.put(_STOP)
            listener.join(timeout=2)
        if transport is not None:
            transport.close()

    def __enter__(self) -> "PrivilegedGateway":
        return self

    def __exit__(self, *exc) -> None:
        self.teardown()

    # ---- permission handshake ----

    def request_permission(self) -> PermissionRequest:
        """Submit a permission request and return without waiting for the outcome."""
        with self._lock:
            transport = self._transport
            if transport is None or self._state in (SessionState.DISCONNECTED, SessionState.CONNECTING):
                raise ProviderUnavailable("privileged session is not connected")
            previous = self._state
            req = PermissionRequest(request_code=next(self._codes))
            self._pending[req.request_code] = req
            self._state = SessionState.PERMISSION_PENDING

        try:
            transport.request("permission/request", {"requestCode": req.request_code}, timeout=self._call_timeout)
        except AutopilotError as e:
            with self._lock:
                self._pending.pop(req.request_code, None)
                if self._state == SessionState.PERMISSION_PENDING and not self._pending:
                    self._state = previous
            raise ProviderUnavailable(f"permission request could not be submitted: {e}") from e
        return req

    def _on_notification(self, method: str, params: dict[str, Any]) -> None:
        # Runs on the transport's reader thread; only enqueue here.
        self._inbox.put((method, params))

    def _start_listener(self) -> None:
        with self._lock:
            if self._listener is not None and self._listener.is_alive():
                return
            self._listener = threading.Thread(target=self._listen, name="permission-listener", daemon=True)
            self._listener.start()

    def _listen(self) -> None:
        while True:
            item = self._inbox.get()
            if item is _STOP:
                return
            method, params = item
            try:
                if method == "permission/result":
                    self._deliver_permission_result(params.get("requestCode"), bool(params.get("granted")))
                else:
                    logger.debug("ignoring provider notification %s", method)
            except Exception:
                logger.exception("failed to handle provider notification %s", method)

    def _deliver_permission_result(self, request_code: Any, granted: bool) -> None:
        with self._lock:
            req = self._pending.pop(request_code, None) if isinstance(request_code, int) else None
            if req is None:
                logger.warning("dropping permission result for unknown request %r", request_code)
                return
            if self._state != SessionState.DISCONNECTED:
                self._authorized = granted
                self._state = SessionState.CONNECTED if granted else SessionState.PERMISSION_DENIED
        outcome = PermissionOutcome.GRANTED if granted else PermissionOutcome.DENIED
        logger.info("permission request %d %s", request_code, outcome.value)
        req.resolve(outcome)
        if self._journal is not None:
            try:
                self._journal.append("permission.result", {"request_code": request_code, "granted": granted})
            except Exception:
                logger.exception("failed to journal permission result %d", request_code)

    def _on_provider_exit(self, gen: int) -> None:
        with self._lock:
            if gen != self._generation:
                return
            self._transport = None
            self._state = SessionState.DISCONNECTED
            self._authorized = False
            pending = list(self._pending.values())
            self._pending.clear()
        logger.warning("privileged provider exited; session reset")
        for req in pending:
            req.resolve(PermissionOutcome.DENIED)

    # ---- privileged calls ----

    @contextmanager
    def exclusive(self) -> Iterator[None]:
        """Hold the single-flight lock; concurrent callers queue here."""
        with self._exclusive:
            yield

    def call(self, method: str, params: dict[str, Any] | None = None) -> Any:
        with self._exclusive:
            self.ensure_ready()
            transport = self._transport
            if transport is None:
                raise ProviderUnavailable("privileged session is not connected")
            return transport.request(method, params or {}, timeout=self._call_timeout)
