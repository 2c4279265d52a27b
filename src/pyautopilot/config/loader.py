from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from platformdirs import user_cache_dir, user_config_dir

from .models import AdbSettings, RetrySettings, Settings

APP_NAME = "pyautopilot"

logger = logging.getLogger(__name__)


def _candidate_paths(cwd: Path) -> list[Path]:
    # project-level (higher priority)
    return [
        cwd / ".pyautopilot.json",
        cwd / "pyautopilot.json",
    ]


def _global_candidate_paths() -> list[Path]:
    return [Path(user_config_dir(APP_NAME)) / "pyautopilot.json"]


def default_cache_dir() -> Path:
    return Path(user_cache_dir(APP_NAME)) / "captures"


def default_providers_file(cwd: Path) -> Path:
    local = cwd / "pyautopilot.yaml"
    if local.exists():
        return local
    return Path(user_config_dir(APP_NAME)) / "pyautopilot.yaml"


def _load_json(p: Path) -> dict[str, Any] | None:
    try:
        obj = json.loads(p.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.warning("ignoring unreadable settings file %s: %s", p, e)
        return None
    if isinstance(obj, dict):
        return obj
    logger.warning("ignoring settings file %s: top level is not an object", p)
    return None


def _merge_dicts(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    out = dict(base)
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge_dicts(out[k], v)  # type: ignore
        else:
            out[k] = v
    return out


def _resolve(cwd: Path, value: str) -> Path:
    p = Path(value).expanduser()
    if not p.is_absolute():
        p = cwd / p
    return p.resolve()


def load_settings(*, cwd: Path, explicit_path: Path | None = None) -> Settings:
    """Load settings.

    Merge order: global < project < explicit_path.
    """
    merged: dict[str, Any] = {}
    loaded_from: Path | None = None

    for p in _global_candidate_paths():
        if p.exists() and p.is_file():
            obj = _load_json(p)
            if obj is not None:
                merged = _merge_dicts(merged, obj)
                loaded_from = p

    for p in _candidate_paths(cwd):
        if p.exists() and p.is_file():
            obj = _load_json(p)
            if obj is not None:
                merged = _merge_dicts(merged, obj)
                loaded_from = p
                break  # first match wins for project-level

    if explicit_path is not None:
        p = explicit_path.expanduser().resolve()
        if not p.is_file():
            raise FileNotFoundError(f"Settings file not found: {p}")
        obj = _load_json(p)
        if obj is not None:
            merged = _merge_dicts(merged, obj)
            loaded_from = p

    cfg = Settings()
    cfg.loaded_from = loaded_from

    prov = merged.get("provider")
    if isinstance(prov, str) and prov.strip():
        cfg.provider = prov.strip()

    pf = merged.get("providers_file")
    cfg.providers_file = _resolve(cwd, pf) if isinstance(pf, str) and pf.strip() else default_providers_file(cwd)

    cd = merged.get("cache_dir")
    cfg.cache_dir = _resolve(cwd, cd) if isinstance(cd, str) and cd.strip() else default_cache_dir()

    ct = merged.get("call_timeout")
    if isinstance(ct, (int, float)) and not isinstance(ct, bool) and ct > 0:
        cfg.call_timeout = float(ct)

    si = merged.get("scan_interval")
    if isinstance(si, (int, float)) and not isinstance(si, bool) and si > 0:
        cfg.scan_interval = float(si)

    j = merged.get("journal")
    if isinstance(j, bool):
        cfg.journal = j

    cfg.retry = RetrySettings.from_obj(merged.get("retry"))
    cfg.adb = AdbSettings.from_obj(merged.get("adb"))
    return cfg
