"""
relaydesk config - Configuration management commands.

Usage:
    relaydesk config show
    relaydesk config show platforms
    relaydesk config show message_log --json
    relaydesk config path
    relaydesk config set platforms.discord.use_threads false
    relaydesk config set -- platforms.telegram.management_chat_id -1001234567890
"""

import json
from typing import Annotated, Any

import typer
import yaml
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from relaydesk.config import (
    ConfigurationError,
    get_config_sources,
    load_config,
    load_yaml_file,
    save_yaml_file,
    set_nested_value,
)
from relaydesk.storage.paths import find_project_config, get_global_config_path

app = typer.Typer(
    name="config",
    help="Configuration management.",
)

console = Console()

# Never echo secrets
MASKED_KEYS = {"bot_token"}


def _mask_secrets(value):
    if isinstance(value, dict):
        return {
            key: ("****" if key in MASKED_KEYS and item else _mask_secrets(item))
            for key, item in value.items()
        }
    if isinstance(value, list):
        return [_mask_secrets(item) for item in value]
    return value


def _parse_value(value: str) -> Any:
    """
    Parse a string value to the appropriate Python type.

    Numeric ids stay numbers here; the schema turns them into strings.

    Args:
        value: String value to parse.

    Returns:
        Parsed value (bool, int, float, list, or string).
    """
    if value.lower() in ("true", "yes", "on"):
        return True
    if value.lower() in ("false", "no", "off"):
        return False

    try:
        return int(value)
    except ValueError:
        pass

    try:
        return float(value)
    except ValueError:
        pass

    if value.startswith("[") or value.startswith("{"):
        try:
            return json.loads(value)
        except json.JSONDecodeError:
            pass

    return value


@app.command()
def show(
    section: Annotated[
        str | None,
        typer.Argument(
            help="Config section to show (e.g., 'platforms', 'message_log').",
        ),
    ] = None,
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output as JSON.",
        ),
    ] = False,
) -> None:
    """Show the effective (merged) configuration."""
    try:
        config = load_config()
    except ConfigurationError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        raise typer.Exit(1)

    config_dict = config.model_dump(mode="json")

    if section:
        if section not in config_dict:
            console.print(f"[red]Section '{section}' not found in configuration.[/red]")
            raise typer.Exit(1)
        config_dict = config_dict[section]

    config_dict = _mask_secrets(config_dict)

    if json_output:
        console.print_json(json.dumps(config_dict))
        return

    output = yaml.dump(
        config_dict,
        default_flow_style=False,
        sort_keys=False,
        allow_unicode=True,
    )
    if section:
        console.print(
            Panel(Syntax(output, "yaml", theme="monokai"), title=f"[cyan]{section}[/cyan]")
        )
    else:
        console.print(Syntax(output, "yaml", theme="monokai"))


@app.command()
def path() -> None:
    """Show configuration file locations."""
    table = Table(title="Configuration Sources")
    table.add_column("Source", style="cyan")
    table.add_column("Path", style="green")
    table.add_column("Status")

    expected = {"global": get_global_config_path()}

    for source_name, source_path in get_config_sources().items():
        if source_path:
            table.add_row(source_name, str(source_path), "[green]found[/green]")
        elif source_name in expected:
            table.add_row(source_name, str(expected[source_name]), "[dim]not found[/dim]")
        else:
            table.add_row(source_name, "-", "[dim]not found[/dim]")

    console.print(table)


@app.command("set")
def set_value(
    key: Annotated[
        str,
        typer.Argument(
            help="Configuration key (e.g., 'platforms.discord.management_channel_id').",
        ),
    ],
    value: Annotated[
        str,
        typer.Argument(
            help="Value to set.",
        ),
    ],
    scope: Annotated[
        str,
        typer.Option(
            "--scope",
            "-s",
            help="Config scope: global or project.",
        ),
    ] = "global",
) -> None:
    """Set a configuration value."""
    if scope == "global":
        config_path = get_global_config_path()
    elif scope == "project":
        config_path = find_project_config()
        if not config_path:
            console.print(
                "[red]No project configuration found (.relaydesk/project.yaml).[/red]"
            )
            raise typer.Exit(1)
    else:
        console.print(f"[red]Invalid scope: {scope}. Use 'global' or 'project'.[/red]")
        raise typer.Exit(1)

    try:
        config_dict = load_yaml_file(config_path)
    except ConfigurationError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        raise typer.Exit(1)

    parsed_value = _parse_value(value)
    config_dict = set_nested_value(config_dict, key, parsed_value)

    shown = "****" if key.split(".")[-1] in MASKED_KEYS else repr(parsed_value)
    try:
        save_yaml_file(config_path, config_dict)
        console.print(f"[green]Set {key} = {shown} in {scope} config[/green]")
        console.print(f"[dim]File: {config_path}[/dim]")
    except ConfigurationError as e:
        console.print(f"[red]Failed to save configuration: {e}[/red]")
        raise typer.Exit(1)
