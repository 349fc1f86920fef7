"""
ASKAI Batch Executor

Applies one natural-language instruction across every project under a
root directory:

  1. discover projects (bounded-depth walk)
  2. generate one command per project, at most `max_parallel` at once
  3. execute non-blocked commands in each project directory, same bound
  4. aggregate into a BatchSummary sorted by project path

A failure in one project never aborts its siblings. Blocked commands are
reported and never executed.
"""

from __future__ import annotations

import concurrent.futures
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from loguru import logger
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from askai.config_loader import AskAIConfig, load_config
from askai.errors import AskAIError, CommandBlocked
from askai.event_bus import EventBus, bus as default_bus
from askai.pipeline import GenerationPipeline, GenerationResult
from askai.projects import Project, ProjectKind, ProjectScanner
from askai.runner import ExecutionResult, run_command
from askai.safety import RiskLevel

Generator = Callable[..., GenerationResult]
Runner = Callable[..., ExecutionResult]


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass
class PlannedCommand:
    project: Project
    command: str | None = None
    risk_level: RiskLevel | None = None
    cache_hit: bool = False
    error: str | None = None

    @property
    def runnable(self) -> bool:
        return self.command is not None and self.risk_level is not RiskLevel.BLOCKED


@dataclass
class BatchPlan:
    root: Path
    prompt: str
    items: list[PlannedCommand] = field(default_factory=list)
    peak_parallel: int = 0
    duration: float = 0.0

    @property
    def runnable(self) -> list[PlannedCommand]:
        return [i for i in self.items if i.runnable]

    @property
    def risk_levels(self) -> set[RiskLevel]:
        return {i.risk_level for i in self.items if i.risk_level is not None}


@dataclass
class BatchResult:
    project: Project
    command: str | None
    exit_status: int | None
    duration: float
    error: str | None = None
    risk_level: RiskLevel | None = None
    cache_hit: bool = False

    @property
    def success(self) -> bool:
        return self.exit_status == 0

    @property
    def status(self) -> str:
        if self.risk_level is RiskLevel.BLOCKED:
            return "blocked"
        if self.command is None:
            return "generation_failed"
        if self.exit_status is None:
            return "planned"
        return "ok" if self.success else "failed"


@dataclass
class BatchSummary:
    results: list[BatchResult]
    total: int
    succeeded: int
    failed: int
    duration: float
    peak_parallel: int = 0
    dry_run: bool = False


class ConcurrencyGauge:
    """Counts tasks in flight and remembers the highest count seen."""

    def __init__(self):
        self._lock = threading.Lock()
        self.current = 0
        self.peak = 0

    def __enter__(self):
        with self._lock:
            self.current += 1
            self.peak = max(self.peak, self.current)
        return self

    def __exit__(self, *exc):
        with self._lock:
            self.current -= 1
        return False


# ---------------------------------------------------------------------------
# Executor
# ---------------------------------------------------------------------------

def scoped_prompt(prompt: str, kind: ProjectKind) -> str:
    """Prompt as sent for one project. Projects of the same kind share cache entries."""
    return f"[{kind.value} project] {prompt.strip()}"


class BatchExecutor:
    def __init__(
        self,
        config: AskAIConfig,
        max_parallel: int | None = None,
        provider: str | None = None,
        use_cache: bool = True,
        generator: Generator | None = None,
        runner: Runner = run_command,
        bus: EventBus | None = None,
    ):
        self.config = config
        self.max_parallel = max_parallel or config.batch.max_parallel
        if self.max_parallel < 1:
            raise ValueError("max_parallel must be at least 1")
        self.provider = provider
        self.use_cache = use_cache
        self._generator = generator
        self._runner = runner
        self.bus = bus or default_bus
        self.scanner = ProjectScanner(
            max_depth=config.batch.max_depth,
            exclude_dirs=config.batch.exclude_dirs or None,
        )

    @property
    def generator(self) -> Generator:
        if self._generator is None:
            self._generator = GenerationPipeline.from_config(self.config, bus=self.bus).generate
        return self._generator

    # ── Phase 1 + 2 ──

    def plan(self, root: Path, prompt: str, kind: ProjectKind | None = None) -> BatchPlan:
        start = time.monotonic()
        scan = self.scanner.scan(Path(root), kind=kind)
        logger.info(f"[BATCH] Discovered {len(scan.projects)} projects under {scan.root}")
        self.bus.emit("batch.discovered", "batch", {"root": str(scan.root), **scan.summary()})

        plan = BatchPlan(root=scan.root, prompt=prompt)
        if not scan.projects:
            return plan

        generate = self.generator
        gauge = ConcurrencyGauge()
        with concurrent.futures.ThreadPoolExecutor(
            max_workers=self.max_parallel, thread_name_prefix="askai-gen"
        ) as pool:
            futures = [pool.submit(self._plan_one, generate, project, prompt, gauge) for project in scan.projects]
            plan.items = [f.result() for f in futures]

        plan.items.sort(key=lambda i: str(i.project.path))
        plan.peak_parallel = gauge.peak
        plan.duration = time.monotonic() - start
        self.bus.emit(
            "batch.generated",
            "batch",
            {"total": len(plan.items), "runnable": len(plan.runnable), "peak_parallel": gauge.peak},
        )
        return plan

    def _plan_one(self, generate: Generator, project: Project, prompt: str, gauge: ConcurrencyGauge) -> PlannedCommand:
        with gauge:
            try:
                result = generate(
                    scoped_prompt(prompt, project.kind),
                    provider=self.provider,
                    use_cache=self.use_cache,
                    extra_context=project.to_context(),
                    cwd=project.path,
                )
            except CommandBlocked as e:
                logger.warning(f"[BATCH] {project.name}: blocked ({e.reason})")
                return PlannedCommand(project=project, risk_level=RiskLevel.BLOCKED, error=f"blocked: {e.reason}")
            except AskAIError as e:
                logger.warning(f"[BATCH] {project.name}: {e.kind}: {e.message}")
                return PlannedCommand(project=project, error=f"{e.kind}: {e.message}")
            except Exception as e:
                logger.error(f"[BATCH] {project.name}: generation crashed: {e}")
                return PlannedCommand(project=project, error=str(e))
        return PlannedCommand(
            project=project,
            command=result.command,
            risk_level=result.risk_level,
            cache_hit=result.cache_hit,
        )

    # ── Phase 3 + 4 ──

    def execute(self, plan: BatchPlan, dry_run: bool = False) -> BatchSummary:
        start = time.monotonic()
        gauge = ConcurrencyGauge()
        by_path: dict[str, BatchResult] = {}

        for item in plan.items:
            if not item.runnable or dry_run:
                by_path[str(item.project.path)] = BatchResult(
                    project=item.project,
                    command=item.command if item.runnable else None,
                    exit_status=None,
                    duration=0.0,
                    error=item.error,
                    risk_level=item.risk_level,
                    cache_hit=item.cache_hit,
                )

        runnable = [] if dry_run else plan.runnable
        if runnable:
            self.bus.emit("batch.execution_started", "batch", {"count": len(runnable)})
            with concurrent.futures.ThreadPoolExecutor(
                max_workers=self.max_parallel, thread_name_prefix="askai-run"
            ) as pool:
                future_to_item = {pool.submit(self._execute_one, item, gauge): item for item in runnable}
                for future in concurrent.futures.as_completed(future_to_item):
                    item = future_to_item[future]
                    try:
                        result = future.result()
                    except Exception as e:
                        result = BatchResult(
                            project=item.project,
                            command=item.command,
                            exit_status=1,
                            duration=0.0,
                            error=str(e),
                            risk_level=item.risk_level,
                            cache_hit=item.cache_hit,
                        )
                    by_path[str(item.project.path)] = result
                    self.bus.emit(
                        "batch.execution_finished",
                        "batch",
                        {"project": str(item.project.path), "exit_status": result.exit_status},
                    )

        results = [by_path[k] for k in sorted(by_path)]
        succeeded = sum(1 for r in results if r.success)
        summary = BatchSummary(
            results=results,
            total=len(results),
            succeeded=succeeded,
            failed=sum(1 for r in results if r.command is None) if dry_run else len(results) - succeeded,
            duration=plan.duration + (time.monotonic() - start),
            peak_parallel=max(plan.peak_parallel, gauge.peak),
            dry_run=dry_run,
        )
        self.bus.emit(
            "batch.completed",
            "batch",
            {"total": summary.total, "succeeded": summary.succeeded, "failed": summary.failed},
        )
        return summary

    def _execute_one(self, item: PlannedCommand, gauge: ConcurrencyGauge) -> BatchResult:
        with gauge:
            logger.debug(f"[BATCH] {item.project.name} $ {item.command}")
            outcome = self._runner(
                item.command,
                cwd=item.project.path,
                shell=self.config.execution.shell,
                timeout=self.config.execution.timeout_seconds,
                capture=True,
            )
        return BatchResult(
            project=item.project,
            command=item.command,
            exit_status=outcome.exit_status,
            duration=outcome.duration,
            error=outcome.error,
            risk_level=item.risk_level,
            cache_hit=item.cache_hit,
        )

    def run(
        self,
        root: Path,
        prompt: str,
        kind: ProjectKind | None = None,
        dry_run: bool = False,
    ) -> BatchSummary:
        return self.execute(self.plan(root, prompt, kind=kind), dry_run=dry_run)


def run_batch(
    root_path: Path,
    prompt: str,
    max_parallel: int = 4,
    config: AskAIConfig | None = None,
    provider: str | None = None,
    use_cache: bool = True,
    kind: ProjectKind | None = None,
    dry_run: bool = False,
    generator: Generator | None = None,
    runner: Runner = run_command,
) -> BatchSummary:
    """
    Discover, generate and execute across all projects under `root_path`.

    `total` in the returned summary always equals the number of projects
    discovered; blocked and failed generations appear as failed results.
    """
    executor = BatchExecutor(
        config or load_config(),
        max_parallel=max_parallel,
        provider=provider,
        use_cache=use_cache,
        generator=generator,
        runner=runner,
    )
    return executor.run(Path(root_path), prompt, kind=kind, dry_run=dry_run)


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------

_RISK_COLORS = {
    RiskLevel.LOW: "green",
    RiskLevel.MEDIUM: "yellow",
    RiskLevel.HIGH: "red",
    RiskLevel.BLOCKED: "bold red",
}

_STATUS_COLORS = {"ok": "green", "planned": "cyan", "failed": "red", "blocked": "bold red", "generation_failed": "red"}


def print_plan(plan: BatchPlan, console: Console) -> None:
    table = Table(title=f"Batch plan: {plan.prompt}", border_style="bright_green")
    table.add_column("Project")
    table.add_column("Kind")
    table.add_column("Command")
    table.add_column("Risk")

    for item in plan.items:
        if item.risk_level is not None:
            color = _RISK_COLORS[item.risk_level]
            risk = f"[{color}]{item.risk_level.value}[/]"
        else:
            risk = "[red]error[/]"
        command = escape(item.command) if item.command else f"[dim]{escape(item.error or '-')}[/]"
        table.add_row(item.project.name, item.project.kind.value, command, risk)

    console.print(table)


def print_batch_summary(summary: BatchSummary, console: Console) -> None:
    table = Table(title="Batch Results", border_style="bright_green")
    table.add_column("Project")
    table.add_column("Status")
    table.add_column("Exit")
    table.add_column("Time")
    table.add_column("Detail")

    for r in summary.results:
        color = _STATUS_COLORS.get(r.status, "red")
        exit_status = "—" if r.exit_status is None else str(r.exit_status)
        detail = escape((r.error or r.command or "")[:60])
        table.add_row(r.project.name, f"[{color}]{r.status}[/]", exit_status, f"{r.duration:.1f}s", detail)

    console.print(table)
    console.print(
        f"\n[bold]{summary.succeeded}/{summary.total} succeeded | "
        f"{summary.failed} failed | peak {summary.peak_parallel} parallel | {summary.duration:.1f}s[/]"
    )
