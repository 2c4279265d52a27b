import subprocess

import pytest

from pyautopilot.scanner import EMPTY_SNAPSHOT, AppInfo, AppScanner, AppSnapshot, parse_pm_list

from conftest import wait_until


PM_OUTPUT = """\
package:/system/app/Settings/Settings.apk=com.android.settings
package:/data/app/~~abc==/com.example.app-1/base.apk=com.example.app
garbage line
package:com.bare.name
"""


def test_parse_pm_list():
    assert parse_pm_list(PM_OUTPUT) == {
        "com.android.settings": "/system/app/Settings/Settings.apk",
        "com.example.app": "/data/app/~~abc==/com.example.app-1/base.apk",
        "com.bare.name": None,
    }


def test_snapshot_is_immutable():
    snap = AppSnapshot.of(["a.b"], generation=3)
    assert "a.b" in snap
    assert len(snap) == 1
    assert snap.package_ids() == frozenset({"a.b"})
    with pytest.raises(TypeError):
        snap.packages["c.d"] = AppInfo("c.d")


class FlakySource:
    def __init__(self):
        self.apps = {"com.android.settings": AppInfo("com.android.settings", system=True)}
        self.error = None
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return dict(self.apps)


def test_refresh_publishes_new_generation():
    source = FlakySource()
    scanner = AppScanner(source)
    assert scanner.current_snapshot() is EMPTY_SNAPSHOT
    first = scanner.refresh()
    source.apps["com.example.app"] = AppInfo("com.example.app")
    second = scanner.refresh()
    assert second.generation == first.generation + 1
    assert "com.example.app" not in first
    assert scanner.is_installed("com.example.app")


def test_failed_scan_keeps_previous_snapshot():
    source = FlakySource()
    scanner = AppScanner(source)
    good = scanner.refresh()
    source.error = subprocess.TimeoutExpired("adb", 60)
    assert scanner.refresh() is good
    assert scanner.current_snapshot() is good
    assert scanner.last_error is source.error


def test_subscribers_see_each_snapshot():
    scanner = AppScanner(FlakySource())
    seen = []
    scanner.subscribe(seen.append)
    scanner.subscribe(lambda snap: 1 / 0)
    snap = scanner.refresh()
    assert seen == [snap]


def test_search_filters_system_apps():
    source = FlakySource()
    source.apps["com.example.settingsplus"] = AppInfo("com.example.settingsplus")
    scanner = AppScanner(source)
    scanner.refresh()
    assert [a.package for a in scanner.search("settings")] == ["com.android.settings", "com.example.settingsplus"]
    assert [a.package for a in scanner.search("settings", include_system=False)] == ["com.example.settingsplus"]
    assert scanner.get_apps()[0].label == "settings"


def test_background_worker_scans_and_stops():
    source = FlakySource()
    scanner = AppScanner(source, interval=None)
    scanner.start()
    try:
        assert scanner.wait_first_scan(2)
        assert scanner.current_snapshot().generation == 1
        scanner.request_refresh()
        assert wait_until(lambda: scanner.current_snapshot().generation == 2)
    finally:
        scanner.stop()
    assert source.calls >= 2


def test_worker_survives_unexpected_source_error():
    source = FlakySource()
    source.error = ValueError("garbled pm output")
    scanner = AppScanner(source, interval=0.05)
    scanner.start()
    try:
        assert wait_until(lambda: source.calls >= 2)
        assert isinstance(scanner.last_error, ValueError)
        assert scanner.current_snapshot() is EMPTY_SNAPSHOT

        source.error = None
        assert wait_until(lambda: scanner.current_snapshot().generation == 1)
        assert scanner.last_error is None
    finally:
        scanner.stop()
