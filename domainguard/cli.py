"""Command-line interface for domainguard."""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any

import click
from rich.console import Console
from rich.table import Table

from domainguard.config import Config, find_config_file, load_config, merge_cli_options
from domainguard.exceptions import DomainGuardError, MonitorUnavailableError
from domainguard.notifiers import EVENT_ACCESS_BLOCKED, EVENT_MONITOR_STATE
from domainguard.services import Services, build_services
from domainguard.validation import validate_domain

console = Console()


def _services(ctx: click.Context, **overrides: Any) -> Services:
    cfg: Config = ctx.obj["config"]
    merge_cli_options(cfg, **overrides)
    return build_services(cfg)


def _fail(error: DomainGuardError) -> None:
    console.print(f"[red]Error: {error.message}[/red]")
    sys.exit(1)


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Path to config file (default: searches standard locations)",
)
@click.option(
    "--data-dir",
    type=click.Path(path_type=Path),
    default=None,
    help="Directory holding blocked_domains.json",
)
@click.option("--verbose", "-v", is_flag=True, help="Verbose output (debug logging)")
@click.pass_context
def main(ctx: click.Context, config: Path | None, data_dir: Path | None, verbose: bool) -> None:
    """domainguard - Domain blocking and blocked-access monitor."""
    ctx.ensure_object(dict)

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    cfg = load_config(config)
    merge_cli_options(cfg, data_dir=data_dir)
    ctx.obj["config"] = cfg

    config_path = config or find_config_file()
    if config_path:
        ctx.obj["config_path"] = config_path


@main.command()
@click.argument("domain")
@click.option("--dry-run", is_flag=True, help="Print the rules without applying them")
@click.pass_context
def block(ctx: click.Context, domain: str, dry_run: bool) -> None:
    """Block all traffic to and from DOMAIN."""
    services = _services(ctx, dry_run=dry_run or None)

    console.print(f"[cyan]Blocking {domain}...[/cyan]")
    try:
        rules = asyncio.run(services.blocker.block(domain))
    except DomainGuardError as e:
        _fail(e)
        return

    table = Table(title=f"Rules for {rules[0].domain}" if rules else "Rules")
    table.add_column("Rule")
    table.add_column("Direction")
    table.add_column("IP")
    for rule in rules:
        table.add_row(rule.rule_id, rule.direction.value, rule.ip)
    console.print(table)

    if services.config.dry_run:
        console.print("[yellow]Dry run: no firewall rules were changed[/yellow]")
    else:
        console.print(f"[green]Blocked {rules[0].domain if rules else domain}[/green]")


@main.command()
@click.argument("domain")
@click.option("--dry-run", is_flag=True, help="Print the rules without applying them")
@click.pass_context
def unblock(ctx: click.Context, domain: str, dry_run: bool) -> None:
    """Remove the firewall rules created for DOMAIN."""
    services = _services(ctx, dry_run=dry_run or None)

    console.print(f"[cyan]Unblocking {domain}...[/cyan]")
    try:
        removed = asyncio.run(services.blocker.unblock(domain))
    except DomainGuardError as e:
        _fail(e)
        return

    if removed:
        console.print(f"[green]Unblocked {domain} ({removed} rules removed)[/green]")
    else:
        console.print(f"[green]Unblocked {domain}[/green] [dim](no matching firewall rules)[/dim]")


@main.command(name="list")
@click.pass_context
def list_domains(ctx: click.Context) -> None:
    """Show blocked domains."""
    services = _services(ctx)
    domains = services.blocker.list_blocked()

    if not domains:
        console.print("[green]No blocked domains[/green]")
        return

    table = Table(title="Blocked Domains")
    table.add_column("Domain")
    table.add_column("Rules", justify="right")
    for domain in domains:
        table.add_row(domain, str(len(services.store.rule_ids(domain))))
    console.print(table)


@main.command()
@click.argument("domain")
@click.pass_context
def resolve(ctx: click.Context, domain: str) -> None:
    """Show the addresses DOMAIN would be blocked on."""
    services = _services(ctx)

    try:
        name = validate_domain(domain)
        ips = asyncio.run(services.resolver.resolve(name))
    except DomainGuardError as e:
        _fail(e)
        return

    for ip in ips:
        console.print(ip)


@main.command()
@click.option("--limit", type=int, default=50, help="Number of alerts to show")
@click.option("--log-dir", type=click.Path(path_type=Path), default=None, help="Suricata log directory")
@click.pass_context
def alerts(ctx: click.Context, limit: int, log_dir: Path | None) -> None:
    """Show recent IDS alerts from the Suricata log."""
    services = _services(ctx, log_dir=log_dir)

    if not services.source.is_available():
        console.print(f"[yellow]Suricata log directory not found: {services.config.suricata_log_dir}[/yellow]")
        return

    alert_list = services.source.read_alert_events()[-limit:]
    if not alert_list:
        console.print("[green]No alerts[/green]")
        return

    blocked = services.store.snapshot()
    table = Table(title="Recent Alerts")
    table.add_column("Time", style="dim")
    table.add_column("Source")
    table.add_column("Destination")
    table.add_column("Severity", justify="right")
    table.add_column("Signature")

    for alert in alert_list:
        table.add_row(
            alert.timestamp[:19],
            alert.src_ip or "",
            alert.dest_ip or "",
            str(alert.severity) if alert.severity is not None else "",
            (alert.signature or "")[:60],
        )

    console.print(table)
    if blocked:
        console.print(f"[dim]{len(blocked)} blocked domains; run 'domainguard monitor' to correlate[/dim]")


@main.command()
@click.option("--poll-interval", type=float, default=None, help="Seconds between alert polls (default: 5)")
@click.option("--log-dir", type=click.Path(path_type=Path), default=None, help="Suricata log directory")
@click.option("--notify/--no-notify", default=None, help="Enable or disable notifications")
@click.option("--delay", type=int, default=None, help="Notification delay in seconds (default: 2)")
@click.option("--cooldown", type=int, default=None, help="Seconds between notifications per domain/IP (default: 30)")
@click.pass_context
def monitor(
    ctx: click.Context,
    poll_interval: float | None,
    log_dir: Path | None,
    notify: bool | None,
    delay: int | None,
    cooldown: int | None,
) -> None:
    """Watch IDS alerts for traffic to blocked domains.

    Runs until interrupted with Ctrl+C.
    """
    services = _services(
        ctx,
        poll_interval=poll_interval,
        log_dir=log_dir,
        notify=notify,
        delay=delay,
        cooldown=cooldown,
    )
    cfg = services.config

    # Show progress at INFO unless --verbose already asked for DEBUG
    if logging.getLogger().level > logging.INFO:
        logging.getLogger().setLevel(logging.INFO)

    def print_notification(event: str, payload: dict) -> None:
        signature = payload.get("signature") or "no signature"
        console.print(
            f"[red bold][BLOCKED ACCESS][/red bold] {payload['domain']} "
            f"({payload['ip']}) [dim]{payload.get('timestamp', '')} - {signature}[/dim]"
        )

    def print_state(event: str, payload: dict) -> None:
        state = "running" if payload.get("active") else "stopped"
        console.print(f"[dim]Monitor {state}[/dim]")

    services.emitter.subscribe(print_notification, EVENT_ACCESS_BLOCKED)
    services.emitter.subscribe(print_state, EVENT_MONITOR_STATE)

    async def run() -> None:
        if not services.monitor.start():
            raise MonitorUnavailableError(
                code="monitor_unavailable",
                message="Access monitor could not be started",
            )

        if "config_path" in ctx.obj:
            console.print(f"[dim]Config: {ctx.obj['config_path']}[/dim]")
        console.print(f"[green]Monitoring {cfg.suricata_log_dir} every {cfg.poll_interval:g}s[/green]")
        console.print(f"[cyan]Blocked domains: {len(services.store)}[/cyan]")
        if not services.source.is_available():
            console.print("[yellow]Suricata log directory not found yet; waiting for it[/yellow]")
        settings = services.notification_state.get()
        if settings.enabled:
            console.print(
                f"[cyan]Notifications: delay={settings.delay_seconds}s, "
                f"cooldown={settings.cooldown_seconds}s[/cyan]"
            )
        else:
            console.print("[cyan]Notifications disabled[/cyan]")
        if services.slack:
            console.print("[cyan]Slack notifications enabled[/cyan]")
        console.print("[dim]Press Ctrl+C to stop[/dim]")
        console.print()

        try:
            await services.monitor.wait_stopped()
        except asyncio.CancelledError:
            pass
        finally:
            services.monitor.stop()
            await services.dispatcher.drain()
            await services.close()
            print_stats()

    def print_stats() -> None:
        stats = services.monitor.stats
        console.print()
        console.print("[green]Access monitor stopped[/green]")
        console.print(f"  Polls: {stats['ticks']:,}")
        console.print(f"  Alerts checked: {stats['alerts_seen']:,}")
        console.print(f"  Blocked-domain matches: {stats['matches']:,}")
        console.print(f"  Notifications: {stats['notifications']:,}")

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass
    except DomainGuardError as e:
        _fail(e)


if __name__ == "__main__":
    main()
