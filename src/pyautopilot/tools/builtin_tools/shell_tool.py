from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any

from ..base import ParamSpec, ToolContext, ToolSpec, session_authorized
from ...device import DeviceController

@dataclass
class ShellTool:
    controller: DeviceController
    spec: ToolSpec = field(init=False)

    def __post_init__(self):
        self.spec = ToolSpec(
            name="shell",
            description="Run a shell command on the device through the privileged session. Returns stdout/stderr and exit code.",
            parameters=(
                ParamSpec("command", "str", "Shell command to run on the device."),
                ParamSpec("check", "bool", "Fail when the exit code is non-zero.", default=True),
            ),
            preconditions=(session_authorized(self.controller.gateway),),
        )

    def execute(self, ctx: ToolContext, args: dict[str, Any]) -> dict[str, Any]:
        res = self.controller.shell(args["command"], check=args["check"])
        return {"exit_code": res.returncode, "stdout": res.stdout, "stderr": res.stderr}
