"""Process logging setup for the relay service."""

import logging
from pathlib import Path

from rich.logging import RichHandler

from relaydesk.cli.output import console
from relaydesk.config.schema import LoggingConfig
from relaydesk.storage.paths import ensure_directory, expand_path

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Library loggers that are chatty at INFO
QUIET_LOGGERS = ("httpx", "telegram.ext", "discord.gateway", "discord.client")


def configure_logging(config: LoggingConfig) -> None:
    """Install handlers on the root logger.

    Args:
        config: Logging configuration
    """
    root = logging.getLogger()
    root.setLevel(config.level)

    for handler in list(root.handlers):
        root.removeHandler(handler)

    if config.rich:
        handler: logging.Handler = RichHandler(
            console=console, rich_tracebacks=True, show_path=False
        )
        handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)

    if config.file:
        log_file = expand_path(config.file)
        ensure_directory(Path(log_file).parent)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(file_handler)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(logging.WARNING, root.level))
