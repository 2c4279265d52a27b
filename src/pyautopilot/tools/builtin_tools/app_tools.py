from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any

from ..base import ParamSpec, ToolContext, ToolSpec, session_authorized
from ...device import DeviceController
from ...scanner import AppScanner

@dataclass
class LaunchAppTool:
    controller: DeviceController
    spec: ToolSpec = field(init=False)

    def __post_init__(self):
        self.spec = ToolSpec(
            name="launch_app",
            description="Launch an installed application by package name.",
            parameters=(ParamSpec("package", "str", "Package id, e.g. com.android.settings."),),
            preconditions=(session_authorized(self.controller.gateway),),
        )

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
        self.controller.launch_app(args["package"])
        return {"package": args["package"]}

@dataclass
class OpenUriTool:
    controller: DeviceController
    spec: ToolSpec = field(init=False)

    def __post_init__(self):
        self.spec = ToolSpec(
            name="open_uri",
            description="Open a URI (web link or app deep link) with an ACTION_VIEW intent.",
            parameters=(ParamSpec("uri", "str", "URI to open."),),
            preconditions=(session_authorized(self.controller.gateway),),
        )

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
        self.controller.open_uri(args["uri"])
        return {"uri": args["uri"]}

def _app_row(app) -> dict[str, Any]:
    return {"package": app.package, "label": app.label, "system": app.system}

class ListAppsTool:
    spec = ToolSpec(
        name="list_apps",
        description="List installed applications from the latest scan.",
        parameters=(ParamSpec("include_system", "bool", "Include system packages.", default=False),),
    )

    def __init__(self, scanner: AppScanner):
        self.scanner = scanner

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> list[dict[str, Any]]:
        return [_app_row(a) for a in self.scanner.search("", include_system=args["include_system"])]

class SearchAppsTool:
    spec = ToolSpec(
        name="search_apps",
        description="Find installed applications whose package id contains the query (case-insensitive).",
        parameters=(
            ParamSpec("query", "str", "Substring to look for."),
            ParamSpec("limit", "int", "Max results.", default=20),
        ),
    )

    def __init__(self, scanner: AppScanner):
        self.scanner = scanner

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> list[dict[str, Any]]:
        hits = self.scanner.search(args["query"])
        return [_app_row(a) for a in hits[: max(0, args["limit"])]]

class AppInstalledTool:
    spec = ToolSpec(
        name="app_installed",
        description="Check whether a package is present in the latest scan.",
        parameters=(ParamSpec("package", "str", "Package id."),),
    )

    def __init__(self, scanner: AppScanner):
        self.scanner = scanner

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
        return {"package": args["package"], "installed": self.scanner.is_installed(args["package"])}
