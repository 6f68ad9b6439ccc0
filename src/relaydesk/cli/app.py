"""relaydesk command line: `relaydesk platforms ...` and `relaydesk config ...`."""

from typing import Annotated

import typer

from relaydesk import __version__
from relaydesk.cli.commands import config, platforms
from relaydesk.cli.output import print_info

app = typer.Typer(
    name="relaydesk",
    help="Relay Telegram and Discord conversations to a human operator.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_enable=True,
    pretty_exceptions_show_locals=False,
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        print_info(f"relaydesk version [green]{__version__}[/green]")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """
    [bold blue]relaydesk[/bold blue] - human-in-the-loop chat relay

    Forwards messages users send to your Telegram and Discord bots into a
    management chat, and delivers your replies back as the bot.
    """


app.add_typer(platforms.app, name="platforms")
app.add_typer(config.app, name="config")


if __name__ == "__main__":
    app()
