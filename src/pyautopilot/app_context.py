from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .config.loader import load_settings
from .config.models import Settings
from .device import DeviceController, RetryPolicy
from .events.store import EventStore
from .gateway import PrivilegedGateway, TransportFactory
from .provider.registry import load_provider_registry, stdio_transport_factory
from .scanner import AppScanner, PackageSource, adb_package_source
from .skills.builtin import register_builtin_skills
from .skills.registry import SkillRegistry
from .tools.builtin import register_builtin_tools
from .tools.registry import ToolRegistry

logger = logging.getLogger(__name__)

@dataclass
class AppContext:
    """Everything a command needs, built once and passed explicitly."""

    cwd: Path
    settings: Settings
    gateway: PrivilegedGateway
    controller: DeviceController
    scanner: AppScanner
    tools: ToolRegistry
    skills: SkillRegistry
    events: EventStore | None = None
    provider_name: str = ""

    def close(self) -> None:
        """Stop the scanner and release the privileged session, in that order."""
        try:
            self.scanner.stop()
        finally:
            self.gateway.teardown()

    def __enter__(self) -> "AppContext":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @staticmethod
    def build(
        cwd: Path,
        settings: Settings,
        transport_factory: TransportFactory,
        package_source: PackageSource,
        *,
        events: EventStore | None = None,
        provider_name: str = "",
    ) -> "AppContext":
        """Wire components leaves first: gateway, controller, tools, scanner, skills."""
        gateway = PrivilegedGateway(transport_factory, call_timeout=settings.call_timeout, journal=events)

        retry = RetryPolicy(
            max_attempts=settings.retry.max_attempts,
            base_delay=settings.retry.base_delay,
            max_delay=settings.retry.max_delay,
        )
        controller = DeviceController(gateway, settings.cache_dir or Path.cwd(), retry)

        scanner = AppScanner(package_source, interval=settings.scan_interval)

        tools = ToolRegistry(journal=events)
        register_builtin_tools(tools, controller, scanner)

        skills = SkillRegistry(tools, journal=events)
        register_builtin_skills(skills)
        logger.info("registered %d tools and %d skills", len(tools.names()), len(skills.names()))

        return AppContext(
            cwd=cwd,
            settings=settings,
            gateway=gateway,
            controller=controller,
            scanner=scanner,
            tools=tools,
            skills=skills,
            events=events,
            provider_name=provider_name,
        )

    @staticmethod
    def from_env(
        cwd: Path,
        settings_path: Optional[Path] = None,
        provider: str | None = None,
        serial: str | None = None,
        run_id: str | None = None,
        start_scanner: bool = True,
    ) -> "AppContext":
        settings = load_settings(cwd=cwd, explicit_path=settings_path)
        if serial:
            settings.adb.serial = serial

        reg = load_provider_registry(settings.providers_file, adb=settings.adb.path, serial=settings.adb.serial)
        provider_cfg = reg.get(provider or settings.provider)

        events = EventStore.open(run_id) if settings.journal else None

        ctx = AppContext.build(
            cwd,
            settings,
            stdio_transport_factory(provider_cfg),
            adb_package_source(settings.adb.path, settings.adb.serial),
            events=events,
            provider_name=provider_cfg.name,
        )
        if start_scanner:
            # Registries are usable right away; skills gate on whatever snapshot is current.
            ctx.scanner.start()
        return ctx
