"""
ASKAI CLI — The Interface

  askai ask "find large log files"        (generate, confirm, print for eval)
  askai ask --run "show disk usage"       (generate, confirm, execute here)
  askai batch "install dependencies"      (every project under --root)

Plus utilities:
  - askai daemon start|stop|status   (resident warm process)
  - askai cache clear|prewarm|stats
  - askai history                    (recent commands and statistics)
  - askai status                     (providers, keys, daemon)
  - askai init                       (bootstrap ~/.askai)

Human-readable output goes to stderr. stdout carries only the generated
command so a shell wrapper can `eval "$(askai ask ...)"`.
"""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional

import typer
from dotenv import load_dotenv
from loguru import logger
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from askai.cache import COMMON_PROMPTS, DiskResponseCache
from askai.config_loader import AskAIConfig, ConfigError, default_home, load_config, validate_api_keys
from askai.daemon.client import DaemonClient, spawn_daemon
from askai.daemon.server import run_daemon
from askai.dispatch import generate
from askai.errors import (
    AskAIError,
    CommandBlocked,
    DaemonAlreadyRunning,
    DaemonNotRunning,
    IPCTimeout,
    ProviderUnavailable,
)
from askai.history import HistoryStore
from askai.identity import BANNER, __codename__, __tagline__, __version__
from askai.parallel import BatchExecutor, print_batch_summary, print_plan
from askai.projects import ProjectKind
from askai.providers.registry import SUPPORTED_PROVIDERS, create_provider, is_supported
from askai.runner import run_command
from askai.safety import RiskLevel

# Load .env from current directory or ASKAI home
load_dotenv()
load_dotenv(default_home() / ".env")

app = typer.Typer(
    name="askai",
    help=f"{__codename__} — {__tagline__}\nNatural language in, one shell command out.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
cache_app = typer.Typer(help="Inspect and manage the response cache.", no_args_is_help=True)
daemon_app = typer.Typer(help="Control the resident background daemon.", no_args_is_help=True)
app.add_typer(cache_app, name="cache")
app.add_typer(daemon_app, name="daemon")

console = Console(stderr=True)

EXIT_BLOCKED = 3
EXIT_USAGE = 2

RISK_STYLES = {
    RiskLevel.LOW: ("green", "low risk"),
    RiskLevel.MEDIUM: ("yellow", "medium risk, elevated privileges"),
    RiskLevel.HIGH: ("bold red", "HIGH RISK, review carefully"),
    RiskLevel.BLOCKED: ("bold red", "blocked"),
}


def version_callback(value: bool):
    if value:
        typer.echo(f"{__codename__} v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        callback=version_callback,
        is_eager=True,
        help="Show the version and exit.",
    ),
):
    pass


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _print_banner():
    console.print(f"[bright_green]{BANNER}[/]")
    console.print(f"  [dim]v{__version__} — {__tagline__}[/]\n")


def _configure_logging(verbose: bool) -> None:
    logger.remove()
    if verbose:
        logger.add(
            lambda msg: console.print(msg, style="dim", end="", highlight=False, markup=False),
            level="DEBUG",
            format="{time:HH:mm:ss} | {level:<7} | {message}",
        )
    else:
        logger.add(
            lambda msg: console.print(msg, style="dim", end="", highlight=False, markup=False),
            level="WARNING",
            format="{message}",
        )


def _load() -> AskAIConfig:
    try:
        return load_config()
    except ConfigError as e:
        console.print(f"[red]Config error:[/] {e}", highlight=False)
        raise typer.Exit(EXIT_USAGE)


def _check_provider(provider: Optional[str]) -> None:
    if provider and not is_supported(provider):
        console.print(f"[red]Unknown provider: {escape(provider)}[/]")
        console.print(f"  Supported: {', '.join(SUPPORTED_PROVIDERS)}")
        raise typer.Exit(EXIT_USAGE)


def _join_prompt(words: List[str]) -> str:
    text = " ".join(words).strip()
    if not text:
        console.print("[red]No prompt provided.[/]")
        raise typer.Exit(EXIT_USAGE)
    return text


def _report_error(e: AskAIError) -> None:
    if isinstance(e, CommandBlocked):
        console.print(f"[bold red]⛔ Blocked:[/] {escape(e.reason or e.message)}")
        console.print("[dim]This command will not be offered for execution.[/]")
        raise typer.Exit(EXIT_BLOCKED)
    if isinstance(e, ProviderUnavailable):
        console.print(f"[red]{escape(e.message)}[/]")
        raise typer.Exit(1)
    console.print(f"[red]{e.kind}: {escape(e.message)}[/]")
    raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def ask(
    prompt: List[str] = typer.Argument(..., help="What you want to do, in plain language"),
    provider: Optional[str] = typer.Option(None, "--provider", "-p", help="gemini | claude | codex | litellm"),
    no_cache: bool = typer.Option(False, "--no-cache", help="Bypass the response cache"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show the command and its risk, then stop"),
    run: bool = typer.Option(False, "--run", help="Execute the command here instead of printing it"),
    no_daemon: bool = typer.Option(False, "--no-daemon", help="Generate in-process, ignoring the daemon"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """Turn a natural-language request into a shell command."""
    _configure_logging(verbose)
    text = _join_prompt(prompt)
    _check_provider(provider)
    config = _load()

    try:
        result = generate(
            config,
            text,
            provider=provider,
            use_cache=not no_cache,
            use_daemon=config.daemon.enabled and not no_daemon,
        )
    except AskAIError as e:
        _report_error(e)

    color, label = RISK_STYLES[result.risk_level]
    origin = "cache" if result.cache_hit else result.provider
    console.print(f"[bold]$ {escape(result.command)}[/]", highlight=False)
    detail = f" ({escape(result.reason)})" if result.reason else ""
    console.print(f"  [{color}]{label}{detail}[/] [dim]via {origin}[/]")

    if dry_run:
        return

    if not yes:
        approved = typer.confirm(
            "Run this command?" if run else "Use this command?",
            default=result.risk_level is RiskLevel.LOW,
            err=True,
        )
        if not approved:
            console.print("[yellow]Cancelled.[/]")
            raise typer.Exit(1)

    if not run:
        typer.echo(result.command)
        return

    outcome = run_command(
        result.command,
        cwd=Path.cwd(),
        shell=config.execution.shell,
        capture=False,
    )
    if config.history.enabled:
        HistoryStore(config.history_path, max_entries=config.history.max_entries).mark_executed(
            text, result.command
        )
    if outcome.exit_status != 0:
        console.print(f"[red]Exit status {outcome.exit_status}[/]")
    raise typer.Exit(outcome.exit_status)


@app.command()
def batch(
    prompt: List[str] = typer.Argument(..., help="Instruction to apply in every project"),
    root: Path = typer.Option(Path("."), "--root", "-r", help="Directory to search for projects"),
    jobs: Optional[int] = typer.Option(None, "--jobs", "-j", min=1, help="Max concurrent generations/executions"),
    max_depth: Optional[int] = typer.Option(None, "--max-depth", min=0, help="How deep to search for projects"),
    kind: Optional[str] = typer.Option(None, "--kind", "-k", help="Only projects of this kind (rust, node, python, ...)"),
    provider: Optional[str] = typer.Option(None, "--provider", "-p"),
    no_cache: bool = typer.Option(False, "--no-cache"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Generate and show the plan without executing"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Generate and run one command in every project under a directory."""
    _print_banner()
    _configure_logging(verbose)
    text = _join_prompt(prompt)
    _check_provider(provider)
    config = _load()

    root = root.resolve()
    if not root.is_dir():
        console.print(f"[red]Directory not found: {root}[/]")
        raise typer.Exit(1)
    if max_depth is not None:
        config.batch.max_depth = max_depth

    kind_filter = None
    if kind:
        kind_filter = ProjectKind.parse(kind)
        if kind_filter is ProjectKind.UNKNOWN and kind.strip().lower() != "unknown":
            console.print(f"[red]Unknown project kind: {kind}[/]")
            raise typer.Exit(EXIT_USAGE)

    executor = BatchExecutor(config, max_parallel=jobs, provider=provider, use_cache=not no_cache)
    console.print(f"[cyan]Searching {root} (depth {config.batch.max_depth})...[/]")
    plan = executor.plan(root, text, kind=kind_filter)

    if not plan.items:
        console.print("[yellow]No projects found.[/]")
        return

    print_plan(plan, console)

    if not dry_run and plan.runnable and not yes:
        if RiskLevel.HIGH in plan.risk_levels:
            console.print("[bold red]⚠ Some commands are HIGH risk.[/]")
        if not typer.confirm(f"Run {len(plan.runnable)} command(s) across {len(plan.items)} project(s)?", err=True):
            console.print("[yellow]Cancelled.[/]")
            raise typer.Exit(1)

    summary = executor.execute(plan, dry_run=dry_run)
    print_batch_summary(summary, console)
    if summary.failed:
        raise typer.Exit(1)


@app.command()
def history(
    count: int = typer.Option(10, "--count", "-n", help="Number of entries to show"),
    stats: bool = typer.Option(False, "--stats", "-s", help="Show aggregate statistics"),
    clear: bool = typer.Option(False, "--clear", help="Delete all history"),
):
    """View recent commands and statistics."""
    config = _load()
    store = HistoryStore(config.history_path, max_entries=config.history.max_entries)

    if clear:
        store.clear()
        console.print("[green]History cleared.[/]")
        return

    if stats:
        s = store.stats()
        if s["total"] == 0:
            console.print("[dim]No history yet.[/]")
            return
        stats_table = Table(title="ASKAI Statistics", border_style="cyan")
        stats_table.add_column("Metric")
        stats_table.add_column("Value")
        stats_table.add_row("Total commands", str(s["total"]))
        stats_table.add_row("Executed", str(s["executed"]))
        stats_table.add_row("Execution rate", f"{s['execution_rate']}%")
        stats_table.add_row("Capacity", str(s["capacity"]))
        console.print(stats_table)

        if s["providers"]:
            provider_table = Table(title="By Provider", border_style="dim")
            provider_table.add_column("Provider")
            provider_table.add_column("Count")
            for name, cnt in sorted(s["providers"].items(), key=lambda x: -x[1]):
                provider_table.add_row(name, str(cnt))
            console.print(provider_table)
        return

    entries = store.get_recent(count)
    if not entries:
        console.print("[dim]No history yet.[/]")
        return

    table = Table(title=f"Last {len(entries)} commands", border_style="cyan")
    table.add_column("Time", style="dim")
    table.add_column("Prompt")
    table.add_column("Command")
    table.add_column("Provider")
    table.add_column("Run")
    for e in reversed(entries):
        table.add_row(
            e.timestamp.strftime("%Y-%m-%d %H:%M"),
            e.prompt[:40],
            e.command[:60],
            e.provider,
            "[green]✓[/]" if e.executed else "",
        )
    console.print(table)


@app.command()
def status():
    """Check providers, API keys and the daemon."""
    _print_banner()
    config = _load()

    provider_table = Table(title="Providers", border_style="cyan")
    provider_table.add_column("Provider")
    provider_table.add_column("Status")
    for name in SUPPORTED_PROVIDERS:
        gateway = create_provider(name, config)
        if gateway.is_available():
            s = "[green]✓ Available[/]"
        else:
            s = f"[dim]✗ Unavailable[/] [dim]{gateway.install_hint}[/]"
        marker = " (default)" if name == config.default_provider else ""
        provider_table.add_row(name + marker, s)
    console.print(provider_table)

    key_table = Table(title="API Keys", border_style="cyan")
    key_table.add_column("Key")
    key_table.add_column("Status")
    for key, available in validate_api_keys().items():
        key_table.add_row(key, "[green]✓ Available[/]" if available else "[red]✗ Missing[/]")
    console.print(key_table)

    console.print(f"\n[bold]Home:[/] {config.home}")
    if not config.daemon.enabled:
        console.print("[bold]Daemon:[/] [dim]disabled[/]")
        return
    try:
        daemon_status = DaemonClient(config.socket_path, timeout=2.0).status()
    except (DaemonNotRunning, IPCTimeout):
        console.print("[bold]Daemon:[/] [dim]not running[/]")
    else:
        console.print(
            f"[bold]Daemon:[/] [green]{daemon_status.state}[/] "
            f"(up {daemon_status.uptime_seconds:.0f}s, {daemon_status.cache_entries} cached)"
        )


@app.command()
def init():
    """Initialize the ASKAI home directory with a config template."""
    _print_banner()
    home = default_home()
    home.mkdir(parents=True, exist_ok=True)

    config_path = home / "config.yaml"
    if not config_path.exists():
        config_path.write_text("""# ASKAI user config overrides
# These merge with the built-in defaults.

# Which generator to use when --provider is not given:
# default_provider: claude

# providers:
#   litellm_model: "anthropic/claude-sonnet-4-20250514"
#   daemon_preload: [gemini, claude]

# cache:
#   ttl_seconds: 7200
#   prewarm:
#     - prompt: "show listening ports"
#       command: "ss -tlnp"

# batch:
#   max_parallel: 8

# Extra regexes that are always refused:
# blocked_patterns:
#   - "terraform destroy"
""", encoding="utf-8")

    console.print(f"[green]✅ Initialized ASKAI in {home}[/]")
    console.print(f"  Config:  {config_path}")
    console.print(f"  API keys: {home / '.env'}")
    console.print("\n[dim]Start the daemon for faster answers: askai daemon start[/]")


# ---------------------------------------------------------------------------
# Cache
# ---------------------------------------------------------------------------


def _disk_cache(config: AskAIConfig) -> DiskResponseCache:
    return DiskResponseCache(
        config.cache_path,
        ttl_seconds=config.cache.ttl_seconds,
        max_entries=config.cache.max_entries,
    )


@cache_app.command("clear")
def cache_clear():
    """Remove every cached command."""
    config = _load()
    _disk_cache(config).clear()
    console.print("[green]Cache cleared.[/]")
    if DaemonClient(config.socket_path, timeout=1.0).is_running():
        console.print("[dim]The running daemon keeps its memory cache until restarted.[/]")


@cache_app.command("prewarm")
def cache_prewarm(
    provider: Optional[List[str]] = typer.Option(None, "--provider", "-p", help="Providers to warm (repeatable)"),
):
    """Insert common prompts into the on-disk cache."""
    config = _load()
    names = provider or list(dict.fromkeys([config.default_provider, *config.providers.daemon_preload]))
    for name in names:
        _check_provider(name)
    pairs = list(COMMON_PROMPTS) + [(p.prompt, p.command) for p in config.cache.prewarm]
    inserted = _disk_cache(config).prewarm(names, pairs)
    console.print(f"[green]Pre-warmed {inserted} entries[/] for {', '.join(names)}")


@cache_app.command("stats")
def cache_stats():
    """Show cache size, expiry and hit counts."""
    config = _load()
    s = _disk_cache(config).stats()
    table = Table(title="Response Cache", border_style="cyan")
    table.add_column("Metric", no_wrap=True)
    table.add_column("Value")
    table.add_row("File", str(config.cache_path))
    table.add_row("Entries", f"{s.entries} / {s.max_entries}")
    table.add_row("Expired", str(s.expired))
    table.add_row("TTL", f"{s.ttl_seconds}s")
    table.add_row("Hits / misses (this process)", f"{s.hits} / {s.misses}")
    try:
        daemon = DaemonClient(config.socket_path, timeout=1.0).status()
    except AskAIError:
        daemon = None
    if daemon is not None:
        table.add_row("Daemon entries", str(daemon.cache_entries))
        table.add_row("Daemon hits / misses", f"{daemon.cache_hits} / {daemon.cache_misses}")
    console.print(table)


# ---------------------------------------------------------------------------
# Daemon
# ---------------------------------------------------------------------------


@daemon_app.command("start")
def daemon_start(
    foreground: bool = typer.Option(False, "--foreground", "-f", help="Run in this terminal"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Start the background daemon."""
    config = _load()
    try:
        if foreground:
            _configure_logging(verbose)
            console.print(f"[cyan]Daemon listening on {config.socket_path} (Ctrl+C to stop)[/]")
            run_daemon(config, foreground=True)
            return
        pid = spawn_daemon(config)
    except DaemonAlreadyRunning as e:
        console.print(f"[yellow]{e.message}[/]")
        raise typer.Exit(1)
    except DaemonNotRunning as e:
        console.print(f"[red]{escape(e.message)}[/]")
        raise typer.Exit(1)
    console.print(f"[green]Daemon started[/] (pid {pid})")


@daemon_app.command("stop")
def daemon_stop():
    """Stop the background daemon."""
    config = _load()
    try:
        DaemonClient.from_config(config).stop()
    except DaemonNotRunning:
        console.print("[yellow]Daemon is not running.[/]")
        raise typer.Exit(1)
    except IPCTimeout as e:
        console.print(f"[red]{escape(e.message)}[/]")
        raise typer.Exit(1)
    console.print("[green]Daemon stopping.[/]")


@daemon_app.command("status")
def daemon_status():
    """Show daemon uptime and loaded providers."""
    config = _load()
    try:
        s = DaemonClient(config.socket_path, timeout=2.0).status()
    except (DaemonNotRunning, IPCTimeout):
        console.print("[dim]Daemon is not running.[/]")
        raise typer.Exit(1)

    table = Table(title="ASKAI Daemon", border_style="cyan")
    table.add_column("Property")
    table.add_column("Value")
    table.add_row("State", s.state)
    table.add_row("Uptime", f"{s.uptime_seconds:.0f}s")
    table.add_row("Providers", ", ".join(s.loaded_providers) or "—")
    table.add_row("Cached commands", str(s.cache_entries))
    table.add_row("Socket", str(config.socket_path))
    console.print(table)


@daemon_app.command("run", hidden=True)
def daemon_run():
    """Daemon entry point used by `daemon start`."""
    config = _load()
    try:
        run_daemon(config, foreground=False)
    except DaemonAlreadyRunning as e:
        logger.error(f"[DAEMON] {e.message}")
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Entry
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    app()
