from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Mapping

from .util.subprocess import adb_base, run_cmd

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppInfo:
    package: str
    apk_path: str | None = None
    system: bool = False

    @property
    def label(self) -> str:
        # pm does not expose labels without aapt; the last package segment is a usable stand-in.
        return self.package.rsplit(".", 1)[-1]


@dataclass(frozen=True)
class AppSnapshot:
    """Immutable view of installed applications. Never mutated; replaced wholesale."""

    packages: Mapping[str, AppInfo] = field(default_factory=lambda: MappingProxyType({}))
    generation: int = 0
    taken_at: float = 0.0

    @staticmethod
    def of(apps: Mapping[str, AppInfo] | list[str], generation: int = 0) -> "AppSnapshot":
        if not isinstance(apps, Mapping):
            apps = {p: AppInfo(package=p) for p in apps}
        return AppSnapshot(packages=MappingProxyType(dict(apps)), generation=generation, taken_at=time.time())

    def __contains__(self, package: object) -> bool:
        return package in self.packages

    def __len__(self) -> int:
        return len(self.packages)

    def package_ids(self) -> frozenset[str]:
        return frozenset(self.packages)


EMPTY_SNAPSHOT = AppSnapshot()

PackageSource = Callable[[], Mapping[str, AppInfo]]


def parse_pm_list(output: str) -> dict[str, str | None]:
    """Parse ``pm list packages [-f]`` output into package -> apk path."""
    out: dict[str, str | None] = {}
    for line in output.splitlines():
        line = line.strip()
        if not line.startswith("package:"):
            continue
        body = line[len("package:"):]
        if "=" in body:
            # -f form: package:/data/app/~~x/base.apk=com.example
            path, pkg = body.rsplit("=", 1)
            out[pkg.strip()] = path.strip() or None
        elif body:
            out[body.strip()] = None
    return out


def adb_package_source(adb: str = "adb", serial: str | None = None, timeout: int = 60) -> PackageSource:
    """Package source that lists packages with ``adb shell pm``. Needs no privileged session."""
    base = adb_base(adb, serial)

    def source() -> dict[str, AppInfo]:
        res = run_cmd(base + ["shell", "pm", "list", "packages", "-f"], timeout=timeout)
        if not res.ok:
            raise RuntimeError(f"pm list packages failed: {res.stderr.strip() or res.returncode}")
        system = run_cmd(base + ["shell", "pm", "list", "packages", "-s"], timeout=timeout)
        system_ids = set(parse_pm_list(system.stdout)) if system.ok else set()
        return {
            pkg: AppInfo(package=pkg, apk_path=path, system=pkg in system_ids)
            for pkg, path in parse_pm_list(res.stdout).items()
        }

    return source


class AppScanner:
    """Keeps the current installed-app snapshot, refreshed off the caller's thread.

    ``start()`` launches a supervised worker: it scans once, then rescans on
    ``request_refresh()`` or every ``interval`` seconds. A failing scan is
    logged and the previous snapshot stays current.
    """

    def __init__(self, source: PackageSource, *, interval: float | None = None):
        self._source = source
        self._interval = interval
        self._snapshot: AppSnapshot = EMPTY_SNAPSHOT
        self._generation = 0
        self._scan_lock = threading.Lock()
        self._wake = threading.Event()
        self._stop = threading.Event()
        self._first_scan = threading.Event()
        self._worker: threading.Thread | None = None
        self._subscribers: list[Callable[[AppSnapshot], None]] = []
        self.last_error: BaseException | None = None

    def current_snapshot(self) -> AppSnapshot:
        return self._snapshot

    def subscribe(self, callback: Callable[[AppSnapshot], None]) -> None:
        self._subscribers.append(callback)

    def refresh(self) -> AppSnapshot:
        """Scan now on the calling thread and publish the result."""
        with self._scan_lock:
            try:
                snap = AppSnapshot.of(self._source(), generation=self._generation + 1)
            except Exception as e:
                # the worker thread must outlive any single bad scan
                self.last_error = e
                logger.warning("application scan failed, keeping generation %d: %s", self._snapshot.generation, e)
                return self._snapshot
            self._generation = snap.generation
            self._snapshot = snap
            self.last_error = None
        logger.info("scanned %d installed applications (generation %d)", len(snap), snap.generation)
        for cb in list(self._subscribers):
            try:
                cb(snap)
            except Exception:
                logger.exception("snapshot subscriber failed")
        return snap

    # ---- background task ----

    def start(self) -> None:
        if self._worker is not None and self._worker.is_alive():
            return
        self._stop.clear()
        self._worker = threading.Thread(target=self._run, name="app-scanner", daemon=True)
        self._worker.start()

    def _run(self) -> None:
        try:
            while not self._stop.is_set():
                self.refresh()
                self._first_scan.set()
                self._wake.wait(self._interval)
                self._wake.clear()
        finally:
            self._first_scan.set()

    def request_refresh(self) -> None:
        self._wake.set()

    def wait_first_scan(self, timeout: float | None = None) -> bool:
        return self._first_scan.wait(timeout)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        self._wake.set()
        worker, self._worker = self._worker, None
        if worker is not None:
            worker.join(timeout=timeout)

    # ---- queries ----

    def get_apps(self) -> list[AppInfo]:
        return sorted(self._snapshot.packages.values(), key=lambda a: a.package)

    def is_installed(self, package: str) -> bool:
        return package in self._snapshot

    def search(self, query: str, include_system: bool = True) -> list[AppInfo]:
        q = (query or "").strip().lower()
        out = []
        for app in self.get_apps():
            if not include_system and app.system:
                continue
            if not q or q in app.package.lower():
                out.append(app)
        return out
