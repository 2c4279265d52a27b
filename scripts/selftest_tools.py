"""Smoke-test the built-in tools against a real device (adb on PATH, one device attached)."""
from __future__ import annotations
import sys
from pathlib import Path

from pyautopilot.app_context import AppContext
from pyautopilot.tools.base import ToolContext


def main():
    with AppContext.from_env(cwd=Path.cwd(), run_id="selftest") as app:
        app.gateway.connect()
        if not app.gateway.is_authorized():
            req = app.gateway.request_permission()
            print("PERMISSION:", req.wait(60))
        app.scanner.wait_first_scan(timeout=30)
        ctx = ToolContext(run_id="selftest")

        # read-only first
        print("APPS:", len(app.tools.dispatch("list_apps", {}, ctx).payload or []))
        print("SETTINGS:", app.tools.dispatch("app_installed", {"package": "com.android.settings"}, ctx).payload)

        # device actions
        for name, args in [
            ("home", {}),
            ("launch_app", {"package": "com.android.settings"}),
            ("wait", {"seconds": 1.0}),
            ("screenshot", {}),
            ("back", {}),
        ]:
            res = app.tools.dispatch(name, args, ctx)
            print(f"{name.upper()}:", res.payload if res.ok else res.error)
            if not res.ok:
                sys.exit(1)

        report = app.skills.execute("go_home", {}, app.scanner.current_snapshot())
        print("SKILL go_home:", "ok" if report.ok else report.error)


if __name__ == "__main__":
    main()
