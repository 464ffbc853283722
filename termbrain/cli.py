"""CLI entry point for termbrain."""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional

import typer
from rich import print as rprint
from rich.logging import RichHandler
from rich.table import Table

from termbrain.activity import read_activity_log
from termbrain.advisor.risk import PreconditionAdvisor, RiskLevel
from termbrain.capture import CommandRecorder
from termbrain.config import Config
from termbrain.errors import TermbrainError
from termbrain.intentions.flow import FlowSession, FlowTracker
from termbrain.intentions.tracker import IntentionTracker
from termbrain.knowledge.base import KnowledgeBase
from termbrain.mining.patterns import PatternMiner
from termbrain.query.engine import QueryEngine
from termbrain.session import SessionContext
from termbrain.storage.db import get_connection
from termbrain.storage.events import SqliteEventStore
from termbrain.workflows.engine import WorkflowEngine

logger = logging.getLogger(__name__)

app = typer.Typer(help="Remember, classify and learn from your shell commands.")
record_app = typer.Typer(help="Capture commands (called by the shell hook).")
workflow_app = typer.Typer(help="Manage named multi-step workflows.")
knowledge_app = typer.Typer(help="Record and look up what you've learned.")
flow_app = typer.Typer(help="Track focused stretches of work.")
app.add_typer(record_app, name="record")
app.add_typer(workflow_app, name="workflow")
app.add_typer(knowledge_app, name="knowledge")
app.add_typer(flow_app, name="flow")

RISK_COLORS = {
    RiskLevel.LOW: "green",
    RiskLevel.MEDIUM: "yellow",
    RiskLevel.HIGH: "red",
    RiskLevel.CRITICAL: "red bold",
}

DbPathOption = typer.Option(None, "--db-path", help="Database file path")
SessionOption = typer.Option(
    None, "--session", envvar="TERMBRAIN_SESSION_ID", help="Shell session id"
)


@dataclass
class Services:
    config: Config
    events: SqliteEventStore
    knowledge: KnowledgeBase
    recorder: CommandRecorder
    miner: PatternMiner
    workflows: WorkflowEngine
    intentions: IntentionTracker
    flow: FlowTracker
    advisor: PreconditionAdvisor
    query: QueryEngine


def _build(conn: sqlite3.Connection, config: Config) -> Services:
    events = SqliteEventStore(conn)
    knowledge = KnowledgeBase(conn, events, config)
    miner = PatternMiner(conn, config)
    workflows = WorkflowEngine(conn)
    intentions = IntentionTracker(conn, events, knowledge)
    flow = FlowTracker(conn)
    return Services(
        config=config,
        events=events,
        knowledge=knowledge,
        recorder=CommandRecorder(events, knowledge, config),
        miner=miner,
        workflows=workflows,
        intentions=intentions,
        flow=flow,
        advisor=PreconditionAdvisor(events, config),
        query=QueryEngine(events, knowledge, workflows, miner, intentions, flow),
    )


@contextmanager
def _services(db_path: Optional[str]) -> Iterator[Services]:
    """Open the database, yield the wired services, and report failures."""
    config = Config.load()
    if db_path:
        config.db_path = Path(db_path)
    issues = config.validate()
    if issues:
        for issue in issues:
            rprint(f"[red]Config error: {issue}[/red]")
        raise typer.Exit(1)

    try:
        conn = get_connection(config.db_path)
    except TermbrainError as e:
        rprint(f"[red]{e}[/red]")
        raise typer.Exit(1)

    try:
        yield _build(conn, config)
    except (TermbrainError, sqlite3.Error) as e:
        rprint(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)
    finally:
        conn.close()


def _session(session_id: Optional[str]) -> SessionContext:
    return SessionContext.create(session_id=session_id)


def _load_flows(path: Path) -> dict[str, dict]:
    if not path.exists():
        return {}
    try:
        return json.loads(path.read_text())
    except json.JSONDecodeError:
        logger.warning(f"Ignoring unreadable flow state at {path}")
        return {}


def _save_flows(path: Path, flows: dict[str, dict]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(flows, indent=2) + "\n")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(show_path=False)],
    )


@record_app.command("start")
def record_start(
    command: str = typer.Argument(help="Command line about to run"),
    session: Optional[str] = SessionOption,
    db_path: Optional[str] = DbPathOption,
) -> None:
    """Store a command before it runs and print its event id."""
    with _services(db_path) as s:
        event_id = s.recorder.start(_session(session), command)
        if event_id is not None:
            typer.echo(event_id)


@record_app.command("finish")
def record_finish(
    event_id: int = typer.Argument(help="Id printed by 'record start'"),
    exit_code: int = typer.Argument(help="Exit code of the command"),
    duration_ms: int = typer.Option(0, "--duration-ms", help="Run time in milliseconds"),
    session: Optional[str] = SessionOption,
    db_path: Optional[str] = DbPathOption,
) -> None:
    """Attach the outcome of a command recorded with 'record start'."""
    with _services(db_path) as s:
        ctx = _session(session)
        if not s.recorder.finish(ctx, event_id, exit_code, duration_ms):
            return

        flows = _load_flows(s.config.flow_state_path)
        if ctx.session_id in flows:
            event = s.events.get(event_id)
            flow = s.flow.note_command(FlowSession.from_dict(flows[ctx.session_id]), event.semantic_type)
            flows[ctx.session_id] = flow.to_dict()
            _save_flows(s.config.flow_state_path, flows)


@app.command()
def search(
    text: str = typer.Argument(help="Text to look for in past commands"),
    semantic_type: Optional[str] = typer.Option(None, "--type", "-t", help="Only this semantic type"),
    limit: int = typer.Option(20, help="Max results"),
    format: str = typer.Option("text", "--format", "-f", help="Output format: text or json"),
    db_path: Optional[str] = DbPathOption,
) -> None:
    """Search your command history."""
    with _services(db_path) as s:
        results = s.query.search(text, limit=limit, semantic_type=semantic_type)
        if format == "json":
            typer.echo(json.dumps(
                [
                    {
                        "id": e.id,
                        "command": e.command,
                        "semantic_type": e.semantic_type,
                        "directory": e.directory,
                        "exit_code": e.exit_code,
                        "timestamp": e.timestamp.isoformat(),
                    }
                    for e in results
                ],
                indent=2,
            ))
            return

        if not results:
            rprint(f"No commands matching '{text}'")
            return
        for e in results:
            status = "[green]✓[/green]" if e.succeeded else "[red]✗[/red]" if e.exit_code else " "
            rprint(f"{status} [dim]{e.timestamp:%Y-%m-%d %H:%M}[/dim] {e.command} [dim]({e.semantic_type})[/dim]")


@app.command()
def stats(
    time_range: str = typer.Option("all", "--range", "-r", help="today, week, month or all"),
    format: str = typer.Option("text", "--format", "-f", help="Output format: text or json"),
    db_path: Optional[str] = DbPathOption,
) -> None:
    """Show statistics about your commands."""
    with _services(db_path) as s:
        result = s.query.stats(time_range)
        if format == "json":
            typer.echo(result.to_json())
            return

        rprint(f"[bold]termbrain statistics ({time_range}):[/bold]")
        rprint(f"  Total commands: {result.total_commands}")
        rprint(f"  Success rate:   {result.success_rate:.0%}")
        if result.avg_duration_ms is not None:
            rprint(f"  Avg duration:   {result.avg_duration_ms:.0f}ms")
        rprint(f"  Errors:         {result.total_errors} ({result.solved_errors} solved)")

        if result.by_semantic_type:
            table = Table("Type", "Commands")
            for semantic_type, count in result.by_semantic_type.items():
                table.add_row(semantic_type, str(count))
            rprint(table)

        if result.top_commands:
            rprint("\n[bold]Top commands:[/bold]")
            for command, count in result.top_commands:
                rprint(f"  {count:>4}  {command}")


@app.command()
def learn(
    db_path: Optional[str] = DbPathOption,
) -> None:
    """Mine the command log for patterns."""
    with _services(db_path) as s:
        report = s.miner.mine_all()
        for kind, count in report.found.items():
            rprint(f"  {kind}: [bold]{count}[/bold]")
        for kind, error in report.errors.items():
            rprint(f"  [red]{kind} failed: {error}[/red]")
        rprint(f"[green]Found {report.total} patterns in {report.duration_ms}ms[/green]")


@app.command()
def patterns(
    kind: Optional[str] = typer.Option(None, "--kind", "-k", help="Only this pattern kind"),
    limit: int = typer.Option(20, help="Max results"),
    db_path: Optional[str] = DbPathOption,
) -> None:
    """Show mined patterns."""
    with _services(db_path) as s:
        found = s.miner.get_patterns(kind, limit=limit)
        if not found:
            rprint("No patterns yet. Run [bold]termbrain learn[/bold] first.")
            return
        table = Table("Kind", "Pattern", "Seen")
        for pattern in found:
            table.add_row(pattern.kind, pattern.key, str(pattern.frequency))
        rprint(table)


@workflow_app.command("create")
def workflow_create(
    name: str = typer.Argument(help="Workflow name"),
    commands: list[str] = typer.Argument(help="Commands, in order"),
    description: str = typer.Option("", "--description", "-d", help="What the workflow is for"),
    db_path: Optional[str] = DbPathOption,
) -> None:
    """Create a workflow."""
    with _services(db_path) as s:
        workflow = s.workflows.create(name, commands, description)
        rprint(f"[green]Created workflow '{workflow.name}' ({len(workflow.commands)} steps)[/green]")


@workflow_app.command("list")
def workflow_list(
    db_path: Optional[str] = DbPathOption,
) -> None:
    """List workflows."""
    with _services(db_path) as s:
        workflows = s.workflows.list()
        if not workflows:
            rprint("No workflows defined")
            return
        table = Table("Name", "Steps", "Used", "Success")
        for w in workflows:
            table.add_row(w.name, str(len(w.commands)), str(w.times_used), f"{w.success_rate:.0%}")
        rprint(table)


@workflow_app.command("show")
def workflow_show(
    name: str = typer.Argument(help="Workflow name"),
    db_path: Optional[str] = DbPathOption,
) -> None:
    """Show a workflow's steps."""
    with _services(db_path) as s:
        workflow = s.workflows.get(name)
        if workflow is None:
            rprint(f"[red]Workflow '{name}' not found[/red]")
            raise typer.Exit(1)
        rprint(f"[bold]{workflow.name}[/bold] {workflow.description}")
        for position, command in enumerate(workflow.commands, start=1):
            rprint(f"  {position}. {command}")
        rprint(f"  Used {workflow.times_used} times, {workflow.success_rate:.0%} success")


@workflow_app.command("run")
def workflow_run(
    name: str = typer.Argument(help="Workflow name"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show the steps without running them"),
    db_path: Optional[str] = DbPathOption,
) -> None:
    """Run a workflow, stopping at the first failing step."""
    with _services(db_path) as s:
        run = s.workflows.run(name, dry_run=dry_run)
        if dry_run:
            rprint(f"[bold]Would run '{name}':[/bold]")
            for step in run.steps:
                rprint(f"  {step.position}. {step.command}")
            return

        if run.failed_step:
            rprint(
                f"[red]Workflow '{name}' failed at step {run.failed_step.position}: "
                f"{run.failed_step.command} (exit {run.failed_step.exit_code})[/red]"
            )
            raise typer.Exit(1)
        rprint(f"[green]Workflow '{name}' completed ({len(run.steps)} steps)[/green]")


@workflow_app.command("update")
def workflow_update(
    name: str = typer.Argument(help="Workflow name"),
    commands: list[str] = typer.Argument(help="New commands, in order"),
    db_path: Optional[str] = DbPathOption,
) -> None:
    """Replace a workflow's steps."""
    with _services(db_path) as s:
        workflow = s.workflows.update_steps(name, commands)
        rprint(f"[green]Updated workflow '{workflow.name}' ({len(workflow.commands)} steps)[/green]")


@workflow_app.command("delete")
def workflow_delete(
    name: str = typer.Argument(help="Workflow name"),
    db_path: Optional[str] = DbPathOption,
) -> None:
    """Delete a workflow."""
    with _services(db_path) as s:
        if not s.workflows.delete(name):
            rprint(f"[red]Workflow '{name}' not found[/red]")
            raise typer.Exit(1)
        rprint(f"Deleted workflow '{name}'")


@knowledge_app.command("add")
def knowledge_add(
    insight: str = typer.Argument(help="What you learned"),
    topic: Optional[str] = typer.Option(None, "--topic", help="Topic; defaults to what you're working on"),
    source: str = typer.Option("experience", help="experience, error or documentation"),
    session: Optional[str] = SessionOption,
    db_path: Optional[str] = DbPathOption,
) -> None:
    """Record an insight."""
    with _services(db_path) as s:
        if topic:
            entry = s.knowledge.record(topic, insight, source)
        else:
            entry = s.knowledge.extract(_session(session), insight, source)
        rprint(f"[green]Recorded under '{entry.topic}'[/green]")


@knowledge_app.command("find")
def knowledge_find(
    query: str = typer.Argument(help="Topic or text to look for"),
    limit: int = typer.Option(10, help="Max results"),
    db_path: Optional[str] = DbPathOption,
) -> None:
    """Look up recorded insights."""
    with _services(db_path) as s:
        entries = s.knowledge.find_by_topic(query, limit=limit)
        if not entries:
            rprint(f"Nothing known about '{query}'")
            return
        for k in entries:
            mark = " [green]✓[/green]" if k.verified else ""
            rprint(f"  [{k.confidence}/{s.config.knowledge_max}] [bold]{k.topic}[/bold]: {k.insight}{mark}")


@app.command()
def intend(
    goal: str = typer.Argument(help="What you're about to do"),
    session: Optional[str] = SessionOption,
    db_path: Optional[str] = DbPathOption,
) -> None:
    """Set the goal for this session."""
    with _services(db_path) as s:
        intention = s.intentions.start(_session(session), goal)
        rprint(f"[green]Intention set:[/green] {intention.goal}")


@app.command()
def achieved(
    learnings: str = typer.Argument("", help="What you learned along the way"),
    failed: bool = typer.Option(False, "--failed", help="The goal was not reached"),
    session: Optional[str] = SessionOption,
    db_path: Optional[str] = DbPathOption,
) -> None:
    """Close the session's intention."""
    with _services(db_path) as s:
        intention = s.intentions.complete(_session(session), learnings, success=not failed)
        if intention is None:
            rprint("[yellow]No open intention in this session[/yellow]")
            raise typer.Exit(1)
        minutes = (intention.time_spent or 0) // 60
        verb = "Failed" if failed else "Achieved"
        rprint(f"[green]{verb}:[/green] {intention.goal} ({minutes} min)")


@flow_app.command("start")
def flow_start(
    session: Optional[str] = SessionOption,
    db_path: Optional[str] = DbPathOption,
) -> None:
    """Start tracking a focused stretch of work."""
    with _services(db_path) as s:
        ctx = _session(session)
        flows = _load_flows(s.config.flow_state_path)
        flows[ctx.session_id] = s.flow.start(ctx).to_dict()
        _save_flows(s.config.flow_state_path, flows)
        rprint("[green]Flow started[/green]")


@flow_app.command("end")
def flow_end(
    productivity: int = typer.Option(..., "--productivity", "-p", help="How it went, 1-10"),
    energy: int = typer.Option(5, "--energy", "-e", help="Energy left, 1-10"),
    session: Optional[str] = SessionOption,
    db_path: Optional[str] = DbPathOption,
) -> None:
    """Finish the current flow and record how it went."""
    with _services(db_path) as s:
        ctx = _session(session)
        flows = _load_flows(s.config.flow_state_path)
        if ctx.session_id not in flows:
            rprint("[yellow]No flow in progress for this session[/yellow]")
            raise typer.Exit(1)
        state = s.flow.end(FlowSession.from_dict(flows[ctx.session_id]), productivity, energy)
        del flows[ctx.session_id]
        _save_flows(s.config.flow_state_path, flows)
        rprint(
            f"[green]Flow recorded:[/green] {state.focus_area}, "
            f"{state.flow_duration // 60} min, {state.interruption_count} switches"
        )


@flow_app.command("status")
def flow_status(
    session: Optional[str] = SessionOption,
    db_path: Optional[str] = DbPathOption,
) -> None:
    """Show the flow in progress."""
    with _services(db_path) as s:
        ctx = _session(session)
        flows = _load_flows(s.config.flow_state_path)
        if ctx.session_id not in flows:
            rprint("No flow in progress")
            return
        flow = FlowSession.from_dict(flows[ctx.session_id])
        rprint(f"Flow since {flow.started_at:%H:%M}, {flow.interruptions} switches")
        for semantic_type, count in sorted(flow.type_counts.items(), key=lambda kv: -kv[1]):
            rprint(f"  {semantic_type}: {count}")


@app.command()
def risk(
    command: str = typer.Argument(help="Command you're about to run"),
    directory: Optional[str] = typer.Option(None, help="Directory it would run in"),
    db_path: Optional[str] = DbPathOption,
) -> None:
    """Check a command for risks and unmet preconditions."""
    with _services(db_path) as s:
        advice = s.advisor.advise(command, directory or str(Path.cwd()))
        color = RISK_COLORS[advice.risk.level]
        rprint(f"Risk: [{color}]{advice.risk.level.value}[/{color}]")
        for warning in advice.risk.warnings:
            rprint(f"  ⚠ {warning}")
        for check in advice.checks:
            mark = {True: "[green]✓[/green]", False: "[red]✗[/red]", None: "[dim]?[/dim]"}[check.satisfied]
            rprint(f"  {mark} {check.name}: {check.detail}")


@app.command()
def suggest(
    session: Optional[str] = SessionOption,
    format: str = typer.Option("text", "--format", "-f", help="Output format: text or json"),
    db_path: Optional[str] = DbPathOption,
) -> None:
    """Suggest knowledge and workflows for what you're doing."""
    with _services(db_path) as s:
        result = s.query.suggest(_session(session))
        if format == "json":
            typer.echo(result.to_json())
            return

        rprint(f"[bold]Focus:[/bold] {result.focus_area}")
        for k in result.knowledge:
            rprint(f"  💡 {k.insight}")
        for w in result.workflows:
            rprint(f"  ▶ termbrain workflow run {w.name}")
        for p in result.candidates:
            rprint(f"  ? Repeated {p.frequency}x: {' → '.join(p.data.get('steps', []))}")
        if result.likely_next:
            rprint(f"  Likely next: {', '.join(result.likely_next)}")


@app.command()
def growth(
    format: str = typer.Option("text", "--format", "-f", help="Output format: text or json"),
    db_path: Optional[str] = DbPathOption,
) -> None:
    """Show what termbrain has learned so far."""
    with _services(db_path) as s:
        report = s.query.growth()
        if format == "json":
            typer.echo(report.to_json())
            return

        rprint("[bold]Growth:[/bold]")
        rprint(f"  Knowledge:  {report.knowledge_total} ({report.knowledge_verified} verified)")
        rprint(f"  Goals met:  {report.completed_intentions}")
        rprint(f"  Patterns:   {report.patterns_found}")
        if report.avg_productivity is not None:
            rprint(f"  Productivity (7d): {report.avg_productivity:.1f}/10")


@app.command()
def activity(
    limit: int = typer.Option(20, help="Max entries"),
    kind: Optional[str] = typer.Option(None, "--kind", "-k", help="mine or advise"),
    db_path: Optional[str] = DbPathOption,
) -> None:
    """Show the recent activity log."""
    config = Config.load()
    if db_path:
        config.db_path = Path(db_path)
    entries = read_activity_log(limit=limit, kind=kind, log_path=config.activity_log_path)
    if not entries:
        rprint("No activity logged yet")
        return
    for entry in entries:
        error = f" [red]{entry['error']}[/red]" if entry.get("error") else ""
        rprint(f"[dim]{entry['timestamp'][:19]}[/dim] [bold]{entry['kind']}[/bold] {entry['details']}{error}")


if __name__ == "__main__":
    app()
