"""CLI entrypoint for the hybrid reasoning router."""

import json
import logging
from pathlib import Path
from typing import Optional

import typer
from pydantic import ValidationError as SchemaError
from rich import print as rprint
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from learning import SnapshotStore
from pipeline import __version__
from pipeline.config import Config, get_config
from pipeline.errors import ValidationError
from routing import ModelRouter
from routing.catalog import REASONING_MODES
from schemas.performance import MetricsFilter
from schemas.routing import ModeCategory
from schemas.task import Complexity, ExecutionContext, Priority, SubmitOptions, Task, TaskType

app = typer.Typer(
    name="hroute",
    help="Route tasks to thinking, non-thinking or hybrid reasoning and the right models.",
    add_completion=False,
)
console = Console()


def _setup_logging(config: Config, verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else getattr(logging, config.execution.log_level.upper(), logging.INFO)
    root = logging.getLogger()
    if not any(isinstance(h, RichHandler) for h in root.handlers):
        root.addHandler(RichHandler(console=console, rich_tracebacks=True, show_path=False))
    root.setLevel(level)


def _load_snapshots(config: Config) -> SnapshotStore:
    path = config.routing.snapshot_file
    if path and Path(path).exists():
        return SnapshotStore.load(path)
    return SnapshotStore()


def _build_task(
    description: Optional[str],
    task_file: Optional[Path],
    task_type: TaskType,
    complexity: Complexity,
    priority: Priority,
    domain: str,
) -> Task:
    """Task from a JSON file, or from command-line options."""
    try:
        if task_file is not None:
            data = json.loads(task_file.read_text(encoding="utf-8"))
            data.setdefault("id", task_file.stem)
            return Task(**data)
        if not description:
            rprint("[red]Provide a task description or --task-file[/red]")
            raise typer.Exit(1)
        return Task(
            id="cli-task",
            description=description,
            type=task_type,
            complexity=complexity,
            priority=priority,
            domain=domain,
        )
    except (OSError, json.JSONDecodeError, SchemaError) as e:
        rprint(f"[red]Invalid task: {e}[/red]")
        raise typer.Exit(1)


# Shared task options
DESCRIPTION = typer.Argument(None, help="Task description")
TASK_FILE = typer.Option(None, "--task-file", "-f", help="JSON file with a full task")
TASK_TYPE = typer.Option(TaskType.ANALYSIS, "--type", "-t", help="Task type")
COMPLEXITY = typer.Option(Complexity.MODERATE, "--complexity", "-c", help="Declared complexity")
PRIORITY = typer.Option(Priority.MEDIUM, "--priority", "-p", help="Declared priority")
DOMAIN = typer.Option("general", "--domain", "-d", help="Business domain")
BUDGET = typer.Option(None, "--budget", help="Budget in USD")


@app.command()
def route(
    description: Optional[str] = DESCRIPTION,
    task_file: Optional[Path] = TASK_FILE,
    task_type: TaskType = TASK_TYPE,
    complexity: Complexity = COMPLEXITY,
    priority: Priority = PRIORITY,
    domain: str = DOMAIN,
    budget: Optional[float] = BUDGET,
    explain: bool = typer.Option(False, "--explain", "-e", help="Show how every rule fared"),
) -> None:
    """Show the routing decision for a task (no model calls)."""
    config = get_config()
    task = _build_task(description, task_file, task_type, complexity, priority, domain)
    router = ModelRouter(config.routing, _load_snapshots(config))
    info = router.explain_routing(task, ExecutionContext(budget=budget) if budget is not None else None)

    rprint(f"[bold blue]hroute[/bold blue] v{__version__}  [dim]snapshot v{info['snapshot_version']}[/dim]")
    rprint()

    features = Table(title="Features")
    features.add_column("Feature", style="cyan")
    features.add_column("Value", style="green")
    for key, value in info["features"].items():
        features.add_row(key, f"{value:.2f}" if isinstance(value, float) else str(value))
    console.print(features)

    if explain:
        rules = Table(title="Rules (evaluation order)")
        rules.add_column("Rule", style="cyan")
        rules.add_column("Priority", justify="right")
        rules.add_column("Weight", justify="right")
        rules.add_column("Matched")
        rules.add_column("Failed condition", style="dim")
        for row in info["rules"]:
            marker = "[bold green]selected[/bold green]" if row["selected"] else (
                "yes" if row["matched"] else "[dim]no[/dim]"
            )
            rules.add_row(
                row["rule_id"],
                str(row["priority"]),
                f"{row['weight']:.2f}",
                marker,
                row["failed_condition"] or "",
            )
        console.print(rules)

    rprint()
    rprint(f"[green]Mode:[/green] {info['mode']}")
    rprint(f"[green]Model:[/green] {info['model']}")
    rprint(f"[green]Confidence:[/green] {info['confidence']:.2f}")
    estimated = info["estimated"]
    rprint(
        f"[green]Estimate:[/green] {estimated['processing_time_ms']}ms, "
        f"${estimated['cost']:.4f}, {estimated['token_usage']} tokens"
    )
    for reason in info["reasons"]:
        rprint(f"[dim]{reason}[/dim]")


@app.command()
def rules() -> None:
    """List routing rules in evaluation order."""
    config = get_config()
    snapshot = _load_snapshots(config).current()

    table = Table(title=f"Routing Rules (v{snapshot.rule_set.version})")
    table.add_column("Rule", style="cyan")
    table.add_column("Priority", justify="right")
    table.add_column("Weight", justify="right")
    table.add_column("Conditions")
    table.add_column("Action", style="green")

    for rule in sorted(snapshot.rule_set.rules, key=lambda r: (-r.priority, -r.weight, r.id)):
        conditions = ", ".join(
            f"{c.field.value} {c.operator} {c.value}" for c in rule.conditions
        ) or "[dim](fallback)[/dim]"
        table.add_row(
            rule.id,
            str(rule.priority),
            f"{rule.weight:.2f}",
            conditions,
            f"{rule.action.mode.value} / {rule.action.model}",
        )
    console.print(table)


@app.command()
def models() -> None:
    """List registered models and their learned statistics."""
    config = get_config()
    registry = _load_snapshots(config).current().registry

    table = Table(title="Models")
    table.add_column("Model", style="cyan")
    table.add_column("Provider")
    table.add_column("Tier", style="yellow")
    table.add_column("Reasoning", justify="right")
    table.add_column("Accuracy", justify="right")
    table.add_column("Cost", justify="right")
    table.add_column("Samples", justify="right")
    table.add_column("Success", justify="right")

    for profile in sorted(registry, key=lambda p: (p.capabilities.cost, p.id)):
        stats = profile.stats
        table.add_row(
            profile.id,
            profile.provider,
            profile.tier.value,
            f"{profile.capabilities.reasoning:.2f}",
            f"{profile.capabilities.accuracy:.2f}",
            f"{profile.capabilities.cost:.2f}",
            str(stats.samples),
            f"{stats.success_rate:.0%}" if stats.success_rate is not None else "-",
        )
    console.print(table)


@app.command()
def modes() -> None:
    """List reasoning modes."""
    table = Table(title="Reasoning Modes")
    table.add_column("Mode", style="cyan")
    table.add_column("Category", style="green")
    table.add_column("Depth", justify="right")
    table.add_column("Speed", justify="right")
    table.add_column("Cost", justify="right")
    table.add_column("Suitable for")

    for mode in REASONING_MODES:
        c = mode.characteristics
        table.add_row(
            mode.id,
            mode.category.value,
            f"{c.depth:.2f}",
            f"{c.speed:.2f}",
            f"{c.cost:.2f}",
            ", ".join(mode.suitable_for),
        )
    console.print(table)


@app.command()
def run(
    description: Optional[str] = DESCRIPTION,
    task_file: Optional[Path] = TASK_FILE,
    task_type: TaskType = TASK_TYPE,
    complexity: Complexity = COMPLEXITY,
    priority: Priority = PRIORITY,
    domain: str = DOMAIN,
    budget: Optional[float] = BUDGET,
    mode: Optional[ModeCategory] = typer.Option(None, "--mode", "-m", help="Force a reasoning mode"),
    time_budget: Optional[float] = typer.Option(None, "--time-budget", help="Session budget in seconds"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
) -> None:
    """Execute a task against the configured model backend."""
    from orchestrator import HybridReasoningService

    config = get_config()
    _setup_logging(config, verbose)
    task = _build_task(description, task_file, task_type, complexity, priority, domain)

    service = HybridReasoningService(config)
    options = SubmitOptions(
        context=ExecutionContext(budget=budget) if budget is not None else None,
        session_budget_seconds=time_budget,
        mode=mode,
    )

    try:
        result = service.submit_task(task, options)
    except ValidationError as e:
        rprint(f"[red]Invalid task: {e.message}[/red]")
        raise typer.Exit(1)
    except KeyboardInterrupt:
        rprint("\n[yellow]Interrupted[/yellow]")
        raise typer.Exit(130)
    finally:
        service.close()

    rprint()
    rprint(f"[green]Session:[/green] {result.session_id}")
    rprint(f"[green]Status:[/green] {result.status.value}")
    rprint(f"[green]Mode / model:[/green] {result.mode.value if result.mode else '-'} / {result.model}")
    rprint(f"[green]Confidence:[/green] {result.confidence:.2f}  [green]Consensus:[/green] {result.consensus:.2f}")
    rprint(f"[green]Cost:[/green] ${result.cost:.4f}  [green]Tokens:[/green] {result.tokens}  "
           f"[green]Elapsed:[/green] {result.elapsed_ms}ms")
    for transition in result.transitions:
        rprint(f"[yellow]{transition.from_mode.value} -> {transition.to_mode.value}:[/yellow] {transition.reason}")

    flags = [name for name in ("low_confidence", "partial", "needs_review", "from_cache") if getattr(result, name)]
    if flags:
        rprint(f"[yellow]Flags:[/yellow] {', '.join(flags)}")

    if result.content is not None:
        rprint()
        console.print(result.content)

    if result.error is not None:
        rprint()
        rprint(f"[red]Failed ({result.error.type}): {result.error.message}[/red]")
        raise typer.Exit(1)


@app.command()
def trace(session_id: str = typer.Argument(..., help="Session ID")) -> None:
    """Show the reasoning trace of a persisted session."""
    from orchestrator import SessionStateMachine

    config = get_config()
    if not config.execution.sessions_dir:
        rprint("[red]execution.sessions_dir is not configured; sessions are not persisted[/red]")
        raise typer.Exit(1)

    try:
        machine = SessionStateMachine.load_state(config.execution.sessions_dir, session_id)
    except FileNotFoundError:
        rprint(f"[red]Session not found: {session_id}[/red]")
        raise typer.Exit(1)

    session = machine.session
    rprint(f"[bold]Session {session.id}[/bold] ({session.status.value}, task {session.task_id})")
    rprint()

    table = Table(title="Reasoning Trace")
    table.add_column("Step", style="cyan")
    table.add_column("Attempt", justify="right")
    table.add_column("Type", style="yellow")
    table.add_column("Confidence", justify="right")
    table.add_column("Content")
    for step in session.steps:
        content = step.content if len(step.content) <= 80 else step.content[:77] + "..."
        table.add_row(step.id, str(step.attempt), step.type.value, f"{step.confidence:.2f}", content)
    console.print(table)

    for transition in session.transitions:
        rprint(f"[yellow]{transition.from_mode.value} -> {transition.to_mode.value}[/yellow] "
               f"(attempt {transition.attempt}): {transition.reason}")
    if session.error is not None:
        rprint(f"[red]Error ({session.error.type}): {session.error.message}[/red]")


@app.command()
def metrics(
    mode: Optional[ModeCategory] = typer.Option(None, "--mode", "-m", help="Filter by mode"),
    model: Optional[str] = typer.Option(None, "--model", help="Filter by model"),
) -> None:
    """Show performance analytics from the performance log."""
    from learning import PerformanceLearner

    config = get_config()
    if not config.learning.store_path:
        rprint("[red]learning.store_path is not configured; no performance log to read[/red]")
        raise typer.Exit(1)

    learner = PerformanceLearner.from_config(config.learning, _load_snapshots(config))
    summary = learner.summary(MetricsFilter(mode=mode, model=model))
    if summary.total_requests == 0:
        rprint("[dim]No performance records found.[/dim]")
        return

    rprint(f"[green]Requests:[/green] {summary.total_requests}")
    rprint(f"[green]Success rate:[/green] {summary.success_rate:.1%}")
    rprint(f"[green]Average accuracy:[/green] {summary.average_accuracy:.2f}")
    rprint(f"[green]Average cost:[/green] ${summary.average_cost:.4f}")
    rprint(f"[green]Average time:[/green] {summary.average_processing_time_ms:.0f}ms")
    rprint(f"[green]Recommended strategy:[/green] {summary.recommended_strategy}")
    rprint()

    table = Table(title="Mode / Model Pairs")
    table.add_column("Mode", style="cyan")
    table.add_column("Model", style="cyan")
    table.add_column("Samples", justify="right")
    table.add_column("Success", justify="right")
    table.add_column("Accuracy", justify="right")
    table.add_column("Cost", justify="right")
    for pair in summary.pairs:
        table.add_row(
            pair.mode.value,
            pair.model,
            str(pair.samples),
            f"{pair.success_rate:.0%}",
            f"{pair.mean_accuracy:.2f}",
            f"${pair.mean_cost:.4f}",
        )
    console.print(table)


@app.command()
def version() -> None:
    """Show version information."""
    config = get_config()

    rprint(f"[bold blue]hroute[/bold blue] v{__version__}")
    rprint()
    rprint(f"[dim]LLM Backend:[/dim] {config.llm.backend}")
    rprint(f"[dim]Strategy:[/dim] {config.routing.strategy}")


@app.command()
def config_show() -> None:
    """Show current configuration."""
    cfg = get_config()

    table = Table(title="Current Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("llm.backend", cfg.llm.backend)
    table.add_row("llm.base_url", cfg.llm.base_url)
    table.add_row("llm.timeout", str(cfg.llm.timeout))
    if cfg.llm.providers:
        table.add_row("llm.providers", ", ".join(f"{p}={k}" for p, k in cfg.llm.providers.items()))

    table.add_row("routing.strategy", cfg.routing.strategy)
    table.add_row("routing.confidence_baseline", str(cfg.routing.confidence_baseline))
    table.add_row("routing.snapshot_file", cfg.routing.snapshot_file)

    table.add_row("thinking.max_depth", str(cfg.thinking.max_depth))
    table.add_row("thinking.confidence_threshold", str(cfg.thinking.confidence_threshold))
    table.add_row("non_thinking.cache_enabled", str(cfg.non_thinking.cache_enabled))
    table.add_row("hybrid.auto_switch", str(cfg.hybrid.auto_switch))
    table.add_row("hybrid.complexity_threshold", str(cfg.hybrid.complexity_threshold))
    table.add_row("hybrid.confidence_threshold", str(cfg.hybrid.confidence_threshold))

    table.add_row("ensemble.max_fan_out", str(cfg.ensemble.max_fan_out))
    table.add_row("ensemble.call_timeout_seconds", str(cfg.ensemble.call_timeout_seconds))

    table.add_row("learning.enabled", str(cfg.learning.enabled))
    table.add_row("learning.store_path", cfg.learning.store_path)

    table.add_row("execution.session_budget_seconds", str(cfg.execution.session_budget_seconds))
    table.add_row("execution.sessions_dir", cfg.execution.sessions_dir)
    table.add_row("execution.log_level", cfg.execution.log_level)

    console.print(table)


if __name__ == "__main__":
    app()
