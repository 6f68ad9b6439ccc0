"""
relaydesk platforms - Run and inspect the platform relays.

Usage:
    relaydesk platforms list
    relaydesk platforms status
    relaydesk platforms start [--platform PLATFORM]
"""

import asyncio
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

from relaydesk.cli.log_setup import configure_logging
from relaydesk.cli.output import print_error, print_success, print_warning
from relaydesk.config import Config, ConfigurationError, get_config
from relaydesk.relay.service import PLATFORM_NAMES, build_router, create_adapter
from relaydesk.store.message_log import get_message_log

app = typer.Typer(
    name="platforms",
    help="Run and inspect the Telegram and Discord relays.",
)

console = Console()


def _load_config() -> Config:
    try:
        return get_config()
    except ConfigurationError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        raise typer.Exit(1)


def _management_summary(name: str, config: Config) -> str:
    if name == "telegram":
        chat_id = config.platforms.telegram.management_chat_id
        return f"chat {chat_id}" if chat_id else "[yellow]setup mode[/yellow]"

    discord_config = config.platforms.discord
    if discord_config.management_guild_id and discord_config.management_channel_id:
        return (
            f"server {discord_config.management_guild_id}, "
            f"channel {discord_config.management_channel_id}"
        )
    return "[yellow]setup mode[/yellow]"


async def _run_service(platform_filter: Optional[str] = None) -> None:
    """Run the relay until interrupted.

    Args:
        platform_filter: Optional platform name to start (None = all enabled)
    """
    config = _load_config()
    configure_logging(config.logging)

    message_log = get_message_log(config.message_log)
    if not message_log.health_check():
        console.print(
            f"[yellow]Warning: message log {message_log.log_path} is not writable[/yellow]"
        )

    router, skipped = build_router(config, message_log, platform_filter)
    for name, reason in skipped.items():
        print_warning(f"{name} not started: {reason}")

    if not router.active_platforms:
        console.print("[yellow]No platforms configured. Enable at least one platform.[/yellow]")
        console.print("[dim]See: relaydesk platforms list[/dim]")
        raise typer.Exit(1)

    console.print("[bold green]Starting relay service...[/bold green]")
    started = await router.start()
    if not started:
        await router.stop()
        print_error("No platform could be started")
        raise typer.Exit(1)

    print_success(f"Relay service started with {len(started)} platform(s)")
    for name in started:
        console.print(f"  [cyan]•[/cyan] {name}")
    console.print("\n[dim]Press Ctrl+C to stop[/dim]\n")

    try:
        await router.wait()
    finally:
        await router.stop()
        print_success("Relay service stopped")


@app.command("list")
def list_platforms() -> None:
    """List platforms and their configuration status."""
    config = _load_config()

    table = Table(title="Available Platforms")
    table.add_column("Platform", style="cyan")
    table.add_column("Status", style="bold")
    table.add_column("Mode", style="dim")
    table.add_column("Token")
    table.add_column("Management")
    table.add_column("Units")

    platforms_info = [
        ("telegram", "Telegram", config.platforms.telegram, "Long Polling"),
        ("discord", "Discord", config.platforms.discord, "Gateway WebSocket"),
    ]

    for key, name, platform_config, mode in platforms_info:
        if not platform_config.enable:
            table.add_row(name, "[dim]Disabled[/dim]", mode, *(["[dim]-[/dim]"] * 3))
            continue

        token = (
            "[green]✓ Configured[/green]"
            if platform_config.bot_token
            else "[yellow]⚠ Missing[/yellow]"
        )
        use_units = (
            config.platforms.telegram.use_topics
            if key == "telegram"
            else config.platforms.discord.use_threads
        )
        unit_term = "topics" if key == "telegram" else "threads"
        units = f"[green]{unit_term}[/green]" if use_units else "[dim]off[/dim]"
        table.add_row(
            name,
            "[green]Enabled[/green]",
            mode,
            token,
            _management_summary(key, config),
            units,
        )

    console.print(table)
    console.print("\n[dim]Configuration: ~/.relaydesk/config.yaml[/dim]")
    console.print("[dim]Tokens can also come from TELEGRAM_BOT_TOKEN / DISCORD_BOT_TOKEN[/dim]")


@app.command()
def status() -> None:
    """Show which platforms would start, and why not."""
    config = _load_config()

    enabled = config.enabled_platforms()
    if not enabled:
        console.print("[yellow]No platforms enabled[/yellow]")
        console.print("[dim]See: relaydesk platforms list[/dim]")
        return

    table = Table(title="Platform Status")
    table.add_column("Platform", style="cyan")
    table.add_column("Configuration", style="bold")
    table.add_column("Management")

    ready = 0
    for name in enabled:
        try:
            create_adapter(name, config)
            state = "[green]✓ Ready[/green]"
            ready += 1
        except (ConfigurationError, ImportError) as e:
            state = f"[red]✗ {e}[/red]"
        table.add_row(name, state, _management_summary(name, config))

    console.print(table)
    console.print(f"\n[green]✓[/green] {ready} platform(s) configured and ready")
    console.print("[dim]Run 'relaydesk platforms start' to begin[/dim]")


@app.command()
def start(
    platform: Annotated[
        Optional[str],
        typer.Option(
            "--platform",
            "-p",
            help="Start a single platform (telegram or discord)",
        ),
    ] = None,
) -> None:
    """Start the relay service.

    Starts all enabled platforms or a specific platform if specified.
    Runs continuously until stopped with Ctrl+C.
    """
    if platform is not None and platform not in PLATFORM_NAMES:
        console.print(f"[red]Error: unknown platform '{platform}'[/red]")
        raise typer.Exit(1)

    try:
        asyncio.run(_run_service(platform_filter=platform))
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped by user[/yellow]")
