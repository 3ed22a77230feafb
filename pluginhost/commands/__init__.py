"""Command layer the embedding host exposes to its UI.

Each command is a plain async function taking and returning the pydantic
models in ``pluginhost.models``. A host with its own RPC bridge registers
them through :func:`register_commands`, passing the bridge's decorator::

    from zynk import command
    from pluginhost.commands import register_commands

    register_commands(command)
"""

from __future__ import annotations

from typing import Any, Callable

from . import plugins
from .plugins import (
    check_plugin_updates,
    initialize_plugins,
    install_plugin,
    list_plugins,
    toggle_plugin,
    uninstall_plugin,
    update_plugin,
)

PLUGIN_COMMANDS: tuple[Callable[..., Any], ...] = (
    initialize_plugins,
    list_plugins,
    install_plugin,
    toggle_plugin,
    uninstall_plugin,
    update_plugin,
    check_plugin_updates,
)


def register_commands(register: Callable[[Callable[..., Any]], Any]) -> dict[str, Any]:
    """Hand every plugin command to ``register``; returns what it produced, keyed by name."""
    return {fn.__name__: register(fn) for fn in PLUGIN_COMMANDS}


__all__ = ["PLUGIN_COMMANDS", "plugins", "register_commands"]
