import asyncio
import logging

from dotenv import load_dotenv
from rich.logging import RichHandler

from . import commands
from .services.plugin_runtime import setup_plugin_runtime

logger = logging.getLogger(__name__)


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True)],
    )


async def start() -> None:
    """Bring the plugin subsystem up: runtime bridge first, then installed plugins.

    Storage problems do not stop startup; the manager reports itself
    unavailable and the plugin commands decline.
    """
    setup_plugin_runtime()
    response = await commands.initialize_plugins()
    if not response.available:
        logger.warning("Plugin subsystem is off: storage is not available")
        return
    for plugin in response.plugins:
        logger.info(
            "%s %s (%s)",
            plugin.id,
            plugin.version,
            "enabled" if plugin.enabled else "disabled",
        )


def main() -> int:
    load_dotenv()
    configure_logging()

    asyncio.run(start())
    return 0


if __name__ == "__main__":
    exit(main())
