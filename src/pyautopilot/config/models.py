from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


def _number(obj: dict[str, Any], key: str, default: float, minimum: float = 0.0) -> float:
    v = obj.get(key, default)
    if isinstance(v, bool) or not isinstance(v, (int, float)) or v < minimum:
        return default
    return float(v)


@dataclass
class RetrySettings:
    max_attempts: int = 3
    base_delay: float = 0.2
    max_delay: float = 2.0

    @staticmethod
    def from_obj(obj: Any) -> "RetrySettings":
        out = RetrySettings()
        if not isinstance(obj, dict):
            return out
        ma = obj.get("max_attempts")
        if isinstance(ma, int) and not isinstance(ma, bool) and ma >= 1:
            out.max_attempts = ma
        out.base_delay = _number(obj, "base_delay", out.base_delay)
        out.max_delay = _number(obj, "max_delay", out.max_delay)
        return out


@dataclass
class AdbSettings:
    path: str = "adb"
    serial: str | None = None

    @staticmethod
    def from_obj(obj: Any) -> "AdbSettings":
        out = AdbSettings()
        if not isinstance(obj, dict):
            return out
        p = obj.get("path")
        if isinstance(p, str) and p.strip():
            out.path = p.strip()
        s = obj.get("serial")
        if isinstance(s, str) and s.strip():
            out.serial = s.strip()
        return out


@dataclass
class Settings:
    """Settings loaded from JSON (global < project < explicit)."""

    provider: str = "adb"
    providers_file: Path | None = None
    cache_dir: Path | None = None
    call_timeout: float = 30.0
    scan_interval: float | None = None
    journal: bool = True
    retry: RetrySettings = field(default_factory=RetrySettings)
    adb: AdbSettings = field(default_factory=AdbSettings)

    loaded_from: Path | None = None
