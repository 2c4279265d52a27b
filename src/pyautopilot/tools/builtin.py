from __future__ import annotations

from .registry import ToolRegistry
from ..device import DeviceController
from ..scanner import AppScanner

from .builtin_tools.touch_tools import TapTool, SwipeTool
from .builtin_tools.input_tools import InputTextTool, KeyEventTool, BackTool, HomeTool
from .builtin_tools.shell_tool import ShellTool
from .builtin_tools.screenshot_tool import ScreenshotTool
from .builtin_tools.app_tools import LaunchAppTool, OpenUriTool, ListAppsTool, SearchAppsTool, AppInstalledTool
from .builtin_tools.wait_tool import WaitTool

def register_builtin_tools(registry: ToolRegistry, controller: DeviceController, scanner: AppScanner) -> None:
    registry.register(TapTool(controller))
    registry.register(SwipeTool(controller))
    registry.register(InputTextTool(controller))
    registry.register(KeyEventTool(controller))
    registry.register(BackTool(controller))
    registry.register(HomeTool(controller))
    registry.register(ShellTool(controller))
    registry.register(ScreenshotTool(controller))
    registry.register(LaunchAppTool(controller))
    registry.register(OpenUriTool(controller))
    registry.register(ListAppsTool(scanner))
    registry.register(SearchAppsTool(scanner))
    registry.register(AppInstalledTool(scanner))
    registry.register(WaitTool())
