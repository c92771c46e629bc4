#!/usr/bin/env python3
"""Request Governor - CLI Entry Point."""
import sys
import json
import signal
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

import click
from rich.console import Console
from rich.table import Table

from __version__ import __version__
from models.enums import Comparator, HealthStatus, Severity, UserTier

console = Console()

SEVERITY_STYLES = {"critical": "bold red", "error": "red", "warning": "yellow", "info": "blue"}


def _init_components(config_path=None, verbose=False):
    """Lazy initialization of all services."""
    from utils.logger import setup_logging
    from config import load_config
    from bootstrap import build_services

    config = load_config(config_path)
    log_cfg = config["logging"]
    setup_logging("DEBUG" if verbose else log_cfg.get("level", "INFO"), log_cfg.get("file"))
    return build_services(config)


@click.group()
@click.option("--config", "config_path", default=None, help="Path to config YAML")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.version_option(__version__, prog_name="governor")
@click.pass_context
def cli(ctx, config_path, verbose):
    """Request Governor - rate limiting, alerting & feature flags."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["verbose"] = verbose


def _get_components(ctx):
    if "_components" not in ctx.obj:
        ctx.obj["_components"] = _init_components(ctx.obj.get("config_path"), ctx.obj.get("verbose"))
    return ctx.obj["_components"]


# ──────────────────────────────────────────────────────
# SERVE
# ──────────────────────────────────────────────────────
@cli.command()
@click.option("--port", default=None, type=int, help="Port to bind to (default: web.port)")
@click.option("--host", default=None, type=str, help="Host to bind to (default: web.host)")
@click.pass_context
def serve(ctx, port, host):
    """Start the background jobs and the HTTP API."""
    from web.app import create_app
    from bootstrap import start_background, shutdown

    c = _get_components(ctx)
    web_cfg = c["config"]["web"]
    host = host or web_cfg.get("host", "127.0.0.1")
    port = port or web_cfg.get("port", 5000)

    app = create_app(c["config"], c)
    start_background(c)
    signal.signal(signal.SIGTERM, lambda *_: sys.exit(0))

    console.print("\n[bold cyan]Request Governor[/bold cyan]\n")
    console.print(f"  API:        http://{host}:{port}/api/health")
    console.print(f"  Thresholds: {len(c['alert_manager'].get_all_thresholds())}")
    console.print(f"  Flags:      {len(c['feature_flags'].get_all_flags())}")
    console.print(f"\n  Press Ctrl+C to stop.\n")

    try:
        app.run(host=host, port=port, debug=False)
    finally:
        shutdown(c)


# ──────────────────────────────────────────────────────
# ALERTS
# ──────────────────────────────────────────────────────
@cli.group()
def alerts():
    """Alert thresholds and notifications."""
    pass


@alerts.command("thresholds")
@click.pass_context
def alerts_thresholds(ctx):
    """List all configured alert thresholds."""
    c = _get_components(ctx)
    thresholds = c["alert_manager"].get_all_thresholds()
    table = Table(title="Alert Thresholds", show_header=True)
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Conditions")
    table.add_column("Severity")
    table.add_column("Channels")
    table.add_column("Cooldown")
    table.add_column("Enabled")
    for t in thresholds:
        conds = " AND ".join(
            f"{c_.type.value} {Comparator(c_.comparator).value} {c_.value}" for c_ in t.conditions
        )
        sev = Severity(t.severity).value
        table.add_row(t.id, t.name, conds, f"[{SEVERITY_STYLES.get(sev, '')}]{sev}[/]",
                      ", ".join(t.channels), f"{t.cooldown_minutes}m",
                      "[green]✓[/green]" if t.enabled else "[red]✗[/red]")
    console.print(table)


@alerts.command("test")
@click.option("--severity", default="info",
              type=click.Choice(["info", "warning", "error", "critical"]), help="Severity of the test alert")
@click.option("--channel", "channels", multiple=True, help="Channel to send to (repeatable, default: console)")
@click.pass_context
def alerts_test(ctx, severity, channels):
    """Send a test alert through the dispatch path."""
    c = _get_components(ctx)
    manager = c["alert_manager"]
    alert = manager.trigger_test_alert(severity, channels=list(channels) or None)
    delivered = manager.flush(timeout=c["config"]["alerts"].get("shutdown_grace_seconds", 5))
    console.print(f"[green]✓[/green] Test alert {alert.id} sent ({severity})")
    if not delivered:
        console.print("[yellow]Some channels did not finish delivering in time.[/yellow]")


@alerts.command("check")
@click.pass_context
def alerts_check(ctx):
    """Evaluate all thresholds once (dry run, ignores cooldowns)."""
    c = _get_components(ctx)
    results = c["alert_manager"].test_thresholds()

    table = Table(title="Alert Threshold Check", show_header=True)
    table.add_column("Threshold")
    table.add_column("Severity")
    table.add_column("Conditions")
    table.add_column("Would Fire")
    table.add_column("Enabled")

    for r in results:
        fire_str = "[green]YES[/green]" if r["would_fire"] else "[dim]no[/dim]"
        conds = " ".join("✓" if ok else "✗" for ok in r["conditions"])
        if r["error"]:
            conds += f" [red]({r['error']})[/red]"
        table.add_row(r["name"], r["severity"], conds, fire_str, "✓" if r["enabled"] else "✗")
    console.print(table)


# ──────────────────────────────────────────────────────
# FEATURE FLAGS
# ──────────────────────────────────────────────────────
@cli.group()
def flags():
    """Feature flag inspection."""
    pass


@flags.command("list")
@click.pass_context
def flags_list(ctx):
    """List all feature flags."""
    c = _get_components(ctx)
    table = Table(title="Feature Flags", show_header=True)
    table.add_column("Key", style="dim")
    table.add_column("Name")
    table.add_column("Enabled")
    table.add_column("Rollout")
    table.add_column("Segments")
    table.add_column("Environments")
    for f in c["feature_flags"].get_all_flags():
        rollout = f"{f.rollout_percentage}%" if f.rollout_percentage is not None else "-"
        table.add_row(f.key, f.name, "[green]✓[/green]" if f.enabled else "[red]✗[/red]", rollout,
                      ", ".join(f.user_segments) or "-", ", ".join(f.environments) or "-")
    console.print(table)

    stats = c["feature_flags"].get_evaluation_stats()
    console.print(f"[dim]{stats['enabledFlags']}/{stats['totalFlags']} enabled, "
                  f"{stats['flagsWithRollout']} with rollout, {stats['overrideCount']} overrides[/dim]")


@flags.command("eval")
@click.argument("key")
@click.option("--user", "user_id", default=None, help="User id")
@click.option("--tier", default=None, type=click.Choice([t.value for t in UserTier]), help="User tier")
@click.option("--segment", "segments", multiple=True, help="User segment (repeatable)")
@click.option("--env", "environment", default=None, help="Environment (default: app.environment)")
@click.pass_context
def flags_eval(ctx, key, user_id, tier, segments, environment):
    """Evaluate a flag for a user context."""
    c = _get_components(ctx)
    manager = c["feature_flags"]
    manager.set_user_context({
        "user_id": user_id, "tier": tier, "segments": list(segments), "environment": environment,
    })
    enabled = manager.is_enabled(key)
    value = manager.get_value(key)
    if manager.get_flag(key) is None:
        console.print(f"[yellow]Unknown flag: {key}[/yellow]")
    state = "[green]ON[/green]" if enabled else "[red]OFF[/red]"
    console.print(f"{key}: {state}  value={value!r}")
    if user_id:
        console.print(f"[dim]rollout bucket for {user_id}: {manager.bucket(key, user_id)}[/dim]")


@flags.command("export")
@click.option("--output", default=None, help="Output file path (default: stdout)")
@click.pass_context
def flags_export(ctx, output):
    """Export flag configuration as JSON."""
    c = _get_components(ctx)
    data = json.dumps(c["feature_flags"].export_configuration(), indent=2, default=str)
    if output:
        Path(output).write_text(data)
        console.print(f"[green]Exported flag configuration to {output}[/green]")
    else:
        click.echo(data)


# ──────────────────────────────────────────────────────
# HEALTH
# ──────────────────────────────────────────────────────
@cli.command()
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_context
def health(ctx, as_json):
    """Run all health checks."""
    c = _get_components(ctx)
    result = c["health_checker"].run_all_checks()
    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        styles = {"healthy": "green", "degraded": "yellow", "unhealthy": "red"}
        table = Table(title=f"System Health: {HealthStatus(result.status).value}", show_header=True)
        table.add_column("Check")
        table.add_column("Status")
        table.add_column("Time (ms)", justify="right")
        table.add_column("Error")
        for chk in result.checks:
            status = HealthStatus(chk.status).value
            table.add_row(chk.name, f"[{styles.get(status, '')}]{status}[/]",
                          f"{chk.response_time:.1f}", chk.error or "")
        console.print(table)
    if HealthStatus(result.status) == HealthStatus.UNHEALTHY:
        sys.exit(1)


if __name__ == "__main__":
    cli()
