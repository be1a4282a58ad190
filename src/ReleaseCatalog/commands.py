"""Per-product command registry.

Every product in a catalog gets two commands: ``"<product>"`` installs it and
``"<product> list"`` lists its versions.  The registry maps those keys to
immutable :class:`CommandDescriptor` records and is built before any handler
exists; :func:`bind_handler` later derives the callable from the
descriptor's own fields.
"""

from __future__ import annotations

import functools
from dataclasses import dataclass
from typing import Any, Callable, Dict, Mapping

from .catalog import Catalog
from .errors import CatalogLookupError

__all__ = [
    "ACTION_INSTALL",
    "ACTION_LIST",
    "CommandDescriptor",
    "bind_handler",
    "build_command_registry",
    "command_key",
    "resolve_command",
]

ACTION_INSTALL = "install"
ACTION_LIST = "list"

Handler = Callable[..., Any]


@dataclass(slots=True, frozen=True)
class CommandDescriptor:
    key: str
    product: str
    action: str
    summary: str


def command_key(product: str, action: str = ACTION_INSTALL) -> str:
    """Return the registry key for ``product``'s ``action``."""

    return product if action == ACTION_INSTALL else f"{product} {action}"


def build_command_registry(catalog: Catalog) -> Dict[str, CommandDescriptor]:
    """Return ``key -> descriptor`` for every product in ``catalog``.

    Examples:
        >>> sorted(build_command_registry(Catalog()))
        []
    """

    registry: Dict[str, CommandDescriptor] = {}
    for product in catalog.list_products():
        install_key = command_key(product, ACTION_INSTALL)
        registry[install_key] = CommandDescriptor(
            key=install_key,
            product=product,
            action=ACTION_INSTALL,
            summary=f"Install {product} for the local platform",
        )
        list_key = command_key(product, ACTION_LIST)
        registry[list_key] = CommandDescriptor(
            key=list_key,
            product=product,
            action=ACTION_LIST,
            summary=f"List available {product} versions",
        )
    return registry


def bind_handler(descriptor: CommandDescriptor, handlers: Mapping[str, Handler]) -> Handler:
    """Return ``handlers[descriptor.action]`` with the descriptor's product pre-applied."""

    try:
        handler = handlers[descriptor.action]
    except KeyError:
        raise CatalogLookupError(
            f"no handler for action {descriptor.action!r}", product=descriptor.product
        ) from None
    return functools.partial(handler, descriptor.product)


def resolve_command(registry: Mapping[str, CommandDescriptor], product: str, action: str) -> CommandDescriptor:
    """Look up the descriptor for ``product``/``action``.

    Raises:
        CatalogLookupError: When the registry has no such command.
    """

    key = command_key(product.strip().lower(), action)
    try:
        return registry[key]
    except KeyError:
        raise CatalogLookupError(f"unknown command {key!r}", product=product) from None
