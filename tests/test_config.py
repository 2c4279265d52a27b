import json
import sys

import pytest

from pyautopilot.config import loader
from pyautopilot.config.loader import load_settings
from pyautopilot.provider.registry import load_provider_registry


@pytest.fixture
def no_global_settings(monkeypatch, tmp_path):
    g = tmp_path / "global" / "pyautopilot.json"
    monkeypatch.setattr(loader, "_global_candidate_paths", lambda: [g])
    return g


def write_json(path, obj):
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(obj), encoding="utf-8")


def test_defaults(tmp_path, no_global_settings):
    s = load_settings(cwd=tmp_path)
    assert s.provider == "adb"
    assert s.call_timeout == 30.0
    assert s.retry.max_attempts == 3
    assert s.journal is True
    assert s.loaded_from is None
    assert s.cache_dir is not None


def test_merge_order(tmp_path, no_global_settings):
    write_json(no_global_settings, {"call_timeout": 5, "retry": {"max_attempts": 5, "base_delay": 1}})
    write_json(tmp_path / ".pyautopilot.json", {"retry": {"max_attempts": 2}, "adb": {"serial": "emulator-5554"}})
    explicit = tmp_path / "run.json"
    write_json(explicit, {"journal": False, "cache_dir": "shots"})

    s = load_settings(cwd=tmp_path, explicit_path=explicit)
    assert s.call_timeout == 5.0
    assert s.retry.max_attempts == 2
    assert s.retry.base_delay == 1.0
    assert s.adb.serial == "emulator-5554"
    assert s.journal is False
    assert s.cache_dir == (tmp_path / "shots").resolve()
    assert s.loaded_from == explicit.resolve()


def test_bad_values_fall_back(tmp_path, no_global_settings):
    write_json(tmp_path / "pyautopilot.json", {"call_timeout": -1, "journal": "yes", "retry": {"max_attempts": 0}})
    s = load_settings(cwd=tmp_path)
    assert s.call_timeout == 30.0
    assert s.journal is True
    assert s.retry.max_attempts == 3


def test_unreadable_file_is_ignored(tmp_path, no_global_settings, caplog):
    (tmp_path / ".pyautopilot.json").write_text("{not json", encoding="utf-8")
    s = load_settings(cwd=tmp_path)
    assert s.loaded_from is None
    assert "ignoring unreadable settings file" in caplog.text


def test_missing_explicit_path(tmp_path, no_global_settings):
    with pytest.raises(FileNotFoundError):
        load_settings(cwd=tmp_path, explicit_path=tmp_path / "nope.json")


def test_builtin_provider_always_present(tmp_path):
    reg = load_provider_registry(tmp_path / "missing.yaml", adb="/opt/adb", serial="X1")
    cfg = reg.get("adb")
    assert cfg.command[0] == sys.executable
    assert cfg.command[-4:] == ["--adb", "/opt/adb", "--serial", "X1"]


def test_provider_yaml(tmp_path, monkeypatch):
    monkeypatch.setenv("SHIZUKU_TOKEN", "s3cret")
    p = tmp_path / "pyautopilot.yaml"
    p.write_text(
        "providers:\n"
        "  Shizuku:\n"
        "    command: shizuku-bridge --stdio\n"
        "    env:\n"
        "      TOKEN: ${SHIZUKU_TOKEN}\n",
        encoding="utf-8",
    )
    reg = load_provider_registry(p)
    assert reg.names() == ["adb", "shizuku"]
    cfg = reg.get("SHIZUKU")
    assert cfg.command == ["shizuku-bridge", "--stdio"]
    assert cfg.env == {"TOKEN": "s3cret"}


def test_provider_yaml_errors(tmp_path, monkeypatch):
    monkeypatch.delenv("NOT_SET_ANYWHERE", raising=False)
    p = tmp_path / "pyautopilot.yaml"

    p.write_text("providers: [1, 2]\n", encoding="utf-8")
    with pytest.raises(ValueError, match="mapping"):
        load_provider_registry(p)

    p.write_text("providers:\n  x:\n    command: []\n", encoding="utf-8")
    with pytest.raises(ValueError, match="command"):
        load_provider_registry(p)

    p.write_text("providers:\n  x:\n    command: run\n    env:\n      A: ${NOT_SET_ANYWHERE}\n", encoding="utf-8")
    with pytest.raises(ValueError, match="NOT_SET_ANYWHERE"):
        load_provider_registry(p)


def test_unknown_provider_name(tmp_path):
    reg = load_provider_registry(None)
    with pytest.raises(ValueError, match="Known providers: adb"):
        reg.get("shizuku")
