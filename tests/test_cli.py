import json
import os
import stat
from pathlib import Path

import pytest
import typer
from typer.testing import CliRunner

from pyautopilot import main
from pyautopilot.config import loader
from pyautopilot.tools.base import ParamSpec


@pytest.fixture
def project(tmp_path, monkeypatch):
    monkeypatch.setattr(loader, "_global_candidate_paths", lambda: [])
    # Keep the shared "pyautopilot" logger untouched for caplog in other tests.
    monkeypatch.setattr(main, "configure_logging", lambda verbose: None)
    (tmp_path / ".pyautopilot.json").write_text(json.dumps({"journal": False}), encoding="utf-8")
    return tmp_path


def test_tools_lists_builtins(project):
    result = CliRunner().invoke(main.app, ["tools", "--cwd", str(project)])
    assert result.exit_code == 0, result.output
    for name in ("tap", "swipe", "launch_app", "screenshot", "search_apps"):
        assert name in result.output


def test_bad_provider_file_is_a_config_error(project):
    (project / "providers.yaml").write_text("providers: [1]\n", encoding="utf-8")
    settings = project / "run.json"
    settings.write_text(json.dumps({"providers_file": "providers.yaml", "journal": False}), encoding="utf-8")
    result = CliRunner().invoke(main.app, ["tools", "--cwd", str(project), "--settings", str(settings)])
    assert result.exit_code == 2
    assert "Configuration error" in result.output


def test_parse_args_coerces_by_declared_type():
    params = (ParamSpec("x", "int"), ParamSpec("check", "bool"), ParamSpec("s", "float"), ParamSpec("t", "str"))
    args = main._parse_args(params, ["x=5", "check=no", "s=0.5", "t=12", "extra=1"])
    assert args == {"x": 5, "check": False, "s": 0.5, "t": "12", "extra": "1"}


def test_parse_args_rejects_missing_equals():
    with pytest.raises(typer.BadParameter):
        main._parse_args((), ["novalue"])


FAKE_ADB = """#!/bin/sh
echo "$*" >> "{log}"
if [ "$1" = "-s" ]; then shift 2; fi
case "$1" in
  get-state) echo device ;;
  exec-out) printf 'fakepng' ;;
esac
exit 0
"""


@pytest.fixture
def adb_project(project, monkeypatch):
    log = project / "adb.log"
    adb = project / "adb"
    adb.write_text(FAKE_ADB.format(log=log), encoding="utf-8")
    adb.chmod(adb.stat().st_mode | stat.S_IXUSR)
    settings = {"journal": False, "providers_file": "none.yaml", "adb": {"path": str(adb)}}
    (project / ".pyautopilot.json").write_text(json.dumps(settings), encoding="utf-8")

    # the bundled provider runs as `python -m pyautopilot.provider.example_server`
    src = str(Path(main.__file__).resolve().parents[1])
    monkeypatch.setenv("PYTHONPATH", os.pathsep.join(filter(None, [src, os.environ.get("PYTHONPATH")])))
    return project, log


def test_tool_runs_through_bundled_provider(adb_project):
    project, log = adb_project
    result = CliRunner().invoke(
        main.app, ["tool", "tap", "-A", "x=1", "-A", "y=2", "--json", "--cwd", str(project)]
    )
    assert result.exit_code == 0, result.output
    assert '"ok": true' in result.output
    assert "shell input tap 1 2" in log.read_text(encoding="utf-8")


def test_skill_runs_through_bundled_provider(adb_project):
    project, log = adb_project
    result = CliRunner().invoke(main.app, ["skill", "go_home", "--json", "--cwd", str(project)])
    assert result.exit_code == 0, result.output
    calls = log.read_text(encoding="utf-8")
    assert "shell input keyevent 4" in calls
    assert "shell input keyevent 3" in calls
