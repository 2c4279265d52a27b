from __future__ import annotations

from pathlib import Path
import json
import threading
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.align import Align

from datetime import datetime

from .app_context import AppContext
from .errors import AutopilotError, ProviderUnavailable
from .events.store import EventStore, list_runs
from .skills.models import SkillReport
from .tools.base import ParamSpec, ToolResult
from .util.log import configure_logging


app = typer.Typer(add_completion=False, help="pyautopilot: drive an Android device through a privileged provider.")
console = Console()

_SETTINGS_HELP = "Settings JSON path (default: ./.pyautopilot.json or ./pyautopilot.json)."


def _resolve_cwd(cwd: Path | None) -> Path:
    cwd = Path(str(cwd or Path.cwd())).expanduser()
    if not cwd.is_absolute():
        cwd = (Path.cwd() / cwd).resolve()
    else:
        cwd = cwd.resolve()
    if not cwd.is_dir():
        raise typer.BadParameter(f"--cwd must be an existing directory: {cwd}")
    return cwd


def _open_context(cwd, settings, provider, serial, verbose, start_scanner=True) -> AppContext:
    configure_logging(verbose)
    try:
        return AppContext.from_env(
            cwd=_resolve_cwd(cwd),
            settings_path=settings,
            provider=provider,
            serial=serial,
            start_scanner=start_scanner,
        )
    except (ValueError, FileNotFoundError) as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(code=2)


def _connect(ctx: AppContext, required: bool = False) -> bool:
    try:
        ctx.gateway.connect()
        return True
    except ProviderUnavailable as e:
        console.print(f"[yellow]Provider unavailable:[/yellow] {e}")
        if required:
            raise typer.Exit(code=1)
        return False


def _coerce(spec: ParamSpec | None, raw: str):
    if spec is None or spec.type == "str":
        return raw
    try:
        if spec.type == "int":
            return int(raw)
        if spec.type == "float":
            return float(raw)
    except ValueError:
        return raw
    if spec.type == "bool":
        low = raw.strip().lower()
        if low in {"1", "true", "yes", "on"}:
            return True
        if low in {"0", "false", "no", "off"}:
            return False
    return raw


def _parse_args(params: tuple[ParamSpec, ...], pairs: list[str] | None) -> dict:
    by_name = {p.name: p for p in params}
    args: dict = {}
    for it in (pairs or []):
        if "=" not in it:
            raise typer.BadParameter(f"--arg expects key=value, got {it!r}")
        k, v = it.split("=", 1)
        k = k.strip()
        args[k] = _coerce(by_name.get(k), v)
    return args


def _print_tool_result(res: ToolResult) -> None:
    if res.ok:
        body = json.dumps(res.payload, ensure_ascii=False, indent=2, default=str)
        console.print(Panel.fit(body[:4000], title=f"{res.tool} (ok)", border_style="green"))
    else:
        body = json.dumps(res.error.to_dict() if res.error else {}, ensure_ascii=False, indent=2)
        console.print(Panel.fit(body, title=f"{res.tool} (error)", border_style="red"))


def _print_report(report: SkillReport) -> None:
    table = Table(title=f"skill {report.skill}")
    table.add_column("#", justify="right")
    table.add_column("tool")
    table.add_column("result")
    rows = list(report.outcomes)
    if report.failed_outcome is not None:
        rows.append(report.failed_outcome)
    for o in rows:
        if o.ok:
            detail = "[green]ok[/green]"
        else:
            detail = f"[red]{o.result.error.code if o.result.error else 'error'}[/red] {o.result.error}"
        table.add_row(str(o.index), o.tool, detail)
    console.print(table)
    if report.error is not None:
        console.print(f"[red]{report.error.code}[/red]: {report.error}")
    else:
        console.print("[green]completed[/green]" if report.ok else "[yellow]completed with step failures[/yellow]")


@app.command()
def status(
    cwd: Path = typer.Option(None, "--cwd", help="Project directory used to find settings. Defaults to current directory."),
    settings: Path = typer.Option(None, "--settings", help=_SETTINGS_HELP),
    provider: str = typer.Option(None, "--provider", help="Provider name (built-in: adb)."),
    serial: str = typer.Option(None, "--serial", help="Device serial for adb."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
):
    """Connect to the privileged provider and show the session state."""
    ctx = _open_context(cwd, settings, provider, serial, verbose)
    try:
        _connect(ctx)
        ctx.scanner.wait_first_scan(timeout=15)
        table = Table.grid(padding=(0, 2))
        table.add_row("[bold green]provider[/bold green]", f"[bright_cyan]{ctx.provider_name}[/bright_cyan]")
        table.add_row("[bold green]session[/bold green]", f"[bright_cyan]{ctx.gateway.state.value}[/bright_cyan]")
        table.add_row("[bold green]authorized[/bold green]", f"[bright_cyan]{ctx.gateway.is_authorized()}[/bright_cyan]")
        table.add_row("[bold green]apps[/bold green]", f"[bright_cyan]{len(ctx.scanner.current_snapshot())}[/bright_cyan]")
        table.add_row("[bold green]cache_dir[/bold green]", f"[bright_cyan]{ctx.controller.cache_dir}[/bright_cyan]")
        table.add_row("[bold green]settings[/bold green]", f"[bright_cyan]{ctx.settings.loaded_from or '(defaults)'}[/bright_cyan]")
        if ctx.events is not None:
            table.add_row("[bold green]run[/bold green]", f"[bright_cyan]{ctx.events.run_id}[/bright_cyan]")
        console.print(Align.center(Panel(table, title="[bold magenta]pyautopilot[/bold magenta]", border_style="bright_blue")))
    finally:
        ctx.close()


@app.command()
def grant(
    cwd: Path = typer.Option(None, "--cwd", help="Project directory used to find settings."),
    settings: Path = typer.Option(None, "--settings", help=_SETTINGS_HELP),
    provider: str = typer.Option(None, "--provider", help="Provider name (built-in: adb)."),
    serial: str = typer.Option(None, "--serial", help="Device serial for adb."),
    timeout: float = typer.Option(60.0, "--timeout", help="Seconds to wait for the provider's answer."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
):
    """Ask the provider for permission and wait for the answer."""
    ctx = _open_context(cwd, settings, provider, serial, verbose, start_scanner=False)
    try:
        _connect(ctx, required=True)
        if ctx.gateway.is_authorized():
            console.print("[green]Already authorized.[/green]")
            return
        req = ctx.gateway.request_permission()
        console.print(f"Permission request {req.request_code} submitted; waiting...")
        outcome = req.wait(timeout)
        if outcome is None:
            console.print("[yellow]No answer from the provider yet.[/yellow]")
            raise typer.Exit(code=1)
        if not req.granted:
            console.print("[red]Permission denied.[/red]")
            raise typer.Exit(code=1)
        console.print("[green]Permission granted.[/green]")
    finally:
        ctx.close()


@app.command()
def apps(
    query: str = typer.Argument("", help="Substring of the package id."),
    system: bool = typer.Option(False, "--system", help="Include system packages."),
    cwd: Path = typer.Option(None, "--cwd", help="Project directory used to find settings."),
    settings: Path = typer.Option(None, "--settings", help=_SETTINGS_HELP),
    serial: str = typer.Option(None, "--serial", help="Device serial for adb."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
):
    """Scan and list installed applications."""
    ctx = _open_context(cwd, settings, None, serial, verbose, start_scanner=False)
    try:
        snap = ctx.scanner.refresh()
        if ctx.scanner.last_error is not None:
            console.print(f"[red]Scan failed:[/red] {ctx.scanner.last_error}")
            raise typer.Exit(code=1)
        hits = ctx.scanner.search(query, include_system=system)
        table = Table(title=f"{len(hits)} of {len(snap)} packages")
        table.add_column("package")
        table.add_column("system")
        table.add_column("apk")
        for a in hits:
            table.add_row(a.package, "yes" if a.system else "", a.apk_path or "")
        console.print(table)
    finally:
        ctx.close()


@app.command()
def tools(
    cwd: Path = typer.Option(None, "--cwd", help="Project directory used to find settings."),
    settings: Path = typer.Option(None, "--settings", help=_SETTINGS_HELP),
):
    """List registered tools and their parameters."""
    ctx = _open_context(cwd, settings, None, None, False, start_scanner=False)
    try:
        for spec in ctx.tools.list_specs():
            params = ", ".join(
                f"{p.name}:{p.type}" + ("" if p.required else f"={p.default!r}") for p in spec.parameters
            )
            console.print(f"- [bold]{spec.name}[/bold]({params}) {spec.description}")
    finally:
        ctx.close()


@app.command()
def tool(
    name: str = typer.Argument(..., help="Tool name."),
    arg: list[str] = typer.Option(None, "--arg", "-A", help="Tool argument as key=value."),
    cwd: Path = typer.Option(None, "--cwd", help="Project directory used to find settings."),
    settings: Path = typer.Option(None, "--settings", help=_SETTINGS_HELP),
    provider: str = typer.Option(None, "--provider", help="Provider name (built-in: adb)."),
    serial: str = typer.Option(None, "--serial", help="Device serial for adb."),
    as_json: bool = typer.Option(False, "--json", help="Print the raw result as JSON."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
):
    """Dispatch a single tool."""
    ctx = _open_context(cwd, settings, provider, serial, verbose)
    try:
        found = ctx.tools.get_optional(name)
        args = _parse_args(found.spec.parameters if found else (), arg)
        if found is not None and found.spec.preconditions:
            _connect(ctx)
        ctx.scanner.wait_first_scan(timeout=15)
        res = ctx.tools.dispatch(name, args)
        if as_json:
            console.print_json(json.dumps(res.to_dict(), default=str))
        else:
            _print_tool_result(res)
        if not res.ok:
            raise typer.Exit(code=1)
    finally:
        ctx.close()


@app.command()
def skills(
    show_all: bool = typer.Option(False, "--all", help="Also list skills whose apps are missing."),
    cwd: Path = typer.Option(None, "--cwd", help="Project directory used to find settings."),
    settings: Path = typer.Option(None, "--settings", help=_SETTINGS_HELP),
    serial: str = typer.Option(None, "--serial", help="Device serial for adb."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
):
    """List skills available with the installed applications."""
    ctx = _open_context(cwd, settings, None, serial, verbose)
    try:
        ctx.scanner.wait_first_scan(timeout=15)
        snap = ctx.scanner.current_snapshot()
        available = {s.name for s in ctx.skills.list_available(snap)}
        for s in ctx.skills.all_skills():
            if s.name not in available and not show_all:
                continue
            mark = "" if s.name in available else " [dim](unavailable)[/dim]"
            params = ", ".join(p.name for p in s.parameters)
            console.print(f"- [bold]{s.name}[/bold]({params}){mark} {s.description}")
    finally:
        ctx.close()


@app.command()
def skill(
    name: str = typer.Argument(..., help="Skill name."),
    arg: list[str] = typer.Option(None, "--arg", "-A", help="Skill argument as key=value."),
    cwd: Path = typer.Option(None, "--cwd", help="Project directory used to find settings."),
    settings: Path = typer.Option(None, "--settings", help=_SETTINGS_HELP),
    provider: str = typer.Option(None, "--provider", help="Provider name (built-in: adb)."),
    serial: str = typer.Option(None, "--serial", help="Device serial for adb."),
    as_json: bool = typer.Option(False, "--json", help="Print the report as JSON."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
):
    """Run a skill. Ctrl-C stops it before the next step."""
    ctx = _open_context(cwd, settings, provider, serial, verbose)
    try:
        try:
            params = ctx.skills.get(name).parameters
        except AutopilotError:
            params = ()
        args = _parse_args(params, arg)
        _connect(ctx)
        ctx.scanner.wait_first_scan(timeout=15)

        cancel = threading.Event()
        holder: dict[str, SkillReport] = {}

        def _run():
            holder["report"] = ctx.skills.execute(name, args, ctx.scanner.current_snapshot(), cancel=cancel)

        worker = threading.Thread(target=_run, name="skill-runner")
        worker.start()
        try:
            while worker.is_alive():
                worker.join(0.2)
        except KeyboardInterrupt:
            console.print("[yellow]Cancelling after the current step...[/yellow]")
            cancel.set()
            worker.join()

        report = holder["report"]
        if as_json:
            console.print_json(json.dumps(report.to_dict(), default=str))
        else:
            _print_report(report)
        if not report.ok:
            raise typer.Exit(code=1)
    finally:
        ctx.close()


@app.command()
def events(
    run: str = typer.Option(None, "--run", help="Run id to inspect (default: list runs)."),
    tail: int = typer.Option(200, "--tail", help="Show last N events."),
):
    """Show journaled events (tool dispatches, skill reports) for a run."""
    if not run:
        runs = list_runs()
        if not runs:
            console.print("No runs recorded.")
        for r in runs[-tail:]:
            console.print(f"- {r}")
        return
    es = EventStore.open(run)
    evs = list(es.iter_events())
    evs = evs[-tail:] if tail and tail > 0 else evs
    console.print(Panel.fit(f"run: {run}\nfile: {es.path}\nevents: {len(evs)}", title="Events"))
    for e in evs:
        ts = datetime.fromtimestamp(e.ts).strftime("%Y-%m-%d %H:%M:%S")
        console.print(Panel.fit(json.dumps(e.data, ensure_ascii=False, indent=2)[:4000], title=f"{ts}  {e.type}"))


if __name__ == "__main__":
    app()
