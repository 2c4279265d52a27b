from __future__ import annotations

import os
import re
import sys
from pathlib import Path
from typing import Callable, Dict

import yaml

from .client import NotificationHandler, ProviderClient
from .models import ProviderConfig


_ENV_PATTERN = re.compile(r"\$\{(\w+)\}")

DEFAULT_PROVIDER = "adb"


class ProviderRegistry:
    def __init__(self) -> None:
        self._items: Dict[str, ProviderConfig] = {}

    def add(self, cfg: ProviderConfig) -> None:
        key = cfg.name.strip().lower()
        if not key:
            raise ValueError("Provider name cannot be empty.")
        self._items[key] = cfg

    def get(self, name: str) -> ProviderConfig:
        key = (name or "").strip().lower()
        if not key:
            raise ValueError("Missing provider name.")
        if key not in self._items:
            known = ", ".join(sorted(self._items.keys())) or "(none)"
            raise ValueError(f"Unknown provider '{name}'. Known providers: {known}")
        return self._items[key]

    def names(self) -> list[str]:
        return sorted(self._items.keys())


def _expand_env_placeholders(s: str) -> str:
    def repl(m: re.Match) -> str:
        var = m.group(1)
        val = os.getenv(var)
        if not val:
            raise ValueError(f"Placeholder '${{{var}}}' not found in environment or is empty.")
        return val

    return _ENV_PATTERN.sub(repl, s)


def builtin_provider(adb: str = "adb", serial: str | None = None) -> ProviderConfig:
    """The bundled reference provider, forwarding to ``adb``."""
    cmd = [sys.executable, "-m", "pyautopilot.provider.example_server", "--adb", adb]
    if serial:
        cmd += ["--serial", serial]
    return ProviderConfig(name=DEFAULT_PROVIDER, command=cmd)


def load_provider_registry(yaml_path: str | Path | None, *, adb: str = "adb", serial: str | None = None) -> ProviderRegistry:
    """Load providers from YAML on top of the built-in ``adb`` provider.

    A missing file is not an error: the built-in provider is always present.
    """
    reg = ProviderRegistry()
    reg.add(builtin_provider(adb, serial))
    if yaml_path is None:
        return reg

    p = Path(yaml_path).expanduser().resolve()
    if not p.exists():
        return reg

    data = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
    providers = data.get("providers") if isinstance(data, dict) else None
    if providers is None:
        return reg
    if not isinstance(providers, dict):
        raise ValueError(f"{p}: 'providers:' must be a mapping.")

    for name, obj in providers.items():
        cfg = ProviderConfig.from_obj(str(name), obj)
        if cfg is None:
            raise ValueError(f"providers.{name} must be a mapping with a non-empty 'command' list.")
        cfg.env = {k: _expand_env_placeholders(v) for k, v in cfg.env.items()}
        reg.add(cfg)

    return reg


def stdio_transport_factory(cfg: ProviderConfig) -> Callable[[NotificationHandler, Callable[[], None]], ProviderClient]:
    """Return a gateway transport factory that launches ``cfg.command``."""

    def factory(on_notification: NotificationHandler, on_exit: Callable[[], None]) -> ProviderClient:
        return ProviderClient(
            cfg.command,
            cwd=cfg.cwd,
            env=cfg.env or None,
            on_notification=on_notification,
            on_exit=on_exit,
        )

    return factory
