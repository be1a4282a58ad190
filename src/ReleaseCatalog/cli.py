# === NAVMAP v1 ===
# {
#   "module": "ReleaseCatalog.cli",
#   "purpose": "Typer CLI for querying the release catalog, installing and verifying artifacts, and serving the REST view",
#   "sections": [
#     {"id": "clicontext", "name": "CliContext", "anchor": "class-clicontext", "kind": "class"},
#     {"id": "root", "name": "root callback", "anchor": "function-root", "kind": "function"},
#     {"id": "commands", "name": "Commands", "anchor": "CMD", "kind": "api"},
#     {"id": "main", "name": "main", "anchor": "function-main", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Command-line interface for the release catalog.

Global options select the ingestion source and endpoint; the catalog is
built lazily the first time a command needs it, and an ingestion failure
terminates the process with exit status 1.

Example:
    $ release-catalog products
    $ release-catalog --mode crawl versions terraform
    $ release-catalog run terraform list
    $ release-catalog install terraform 1.5.7 --dest ./bin
"""

from __future__ import annotations

from pathlib import Path
from typing import List, NoReturn, Optional

import typer
from rich.console import Console
from rich.markup import escape

from . import __version__
from .api import INGESTION_MODES, build_catalog, install
from .catalog import Catalog
from .checksums import IntegrityVerifier
from .commands import ACTION_INSTALL, ACTION_LIST, bind_handler, build_command_registry, resolve_command
from .errors import CatalogLookupError, ConfigError, IntegrityError, NetworkError, ReleaseCatalogError
from .logging_utils import setup_logging
from .net import build_http_client
from .settings import APP_NAME, CatalogSettings, load_settings

__all__ = ["CliContext", "app", "get_context", "main"]

_console = Console()


class CliContext:
    """Per-invocation state shared by the commands."""

    def __init__(self, settings: CatalogSettings, mode: str = "index", verbosity: int = 0) -> None:
        self.settings = settings
        self.mode = mode
        self.verbosity = verbosity
        self.console = _console
        self._catalog: Optional[Catalog] = None

    def client(self):
        return build_http_client(self.settings)

    @property
    def catalog(self) -> Catalog:
        """Build the catalog on first use; exit with status 1 if ingestion fails."""

        if self._catalog is None:
            with self.client() as http:
                try:
                    self._catalog = build_catalog(self.settings, mode=self.mode, client=http)  # type: ignore[arg-type]
                except ReleaseCatalogError as exc:
                    self.console.print(f"[red]Failed to build catalog: {escape(str(exc))}[/red]")
                    raise typer.Exit(1) from exc
        return self._catalog

    def fail(self, message: str, code: int = 1) -> NoReturn:
        self.console.print(f"[red]{escape(message)}[/red]")
        raise typer.Exit(code)


app = typer.Typer(
    name=APP_NAME,
    help="Query published release metadata and install verified artifacts",
    no_args_is_help=True,
)

_context: Optional[CliContext] = None


def get_context() -> CliContext:
    """Return the context created by the root callback.

    Raises:
        RuntimeError: If no command has been dispatched yet.
    """
    if _context is None:
        raise RuntimeError("CLI context not initialized")
    return _context


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"{APP_NAME} {__version__}")
        raise typer.Exit()


@app.callback(invoke_without_command=False)
def root(
    mode: str = typer.Option("index", "--mode", "-m", help="Ingestion source: index or crawl"),
    base_url: Optional[str] = typer.Option(None, "--base-url", help="Release distribution endpoint"),
    verbosity: int = typer.Option(0, "--verbose", "-v", count=True, help="-v for INFO, -vv for DEBUG"),
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """Release catalog CLI."""
    global _context

    if mode not in INGESTION_MODES:
        _console.print(f"[red]--mode must be one of: {', '.join(INGESTION_MODES)}[/red]")
        raise typer.Exit(2)

    overrides = {"base_url": base_url} if base_url else {}
    try:
        settings = load_settings(**overrides)
    except ConfigError as exc:
        _console.print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(2) from exc

    level = settings.log_level if verbosity == 0 else ("INFO" if verbosity == 1 else "DEBUG")
    setup_logging(level=level, log_dir=settings.log_dir, json_file=settings.log_json)
    _context = CliContext(settings, mode=mode, verbosity=verbosity)


# --- Commands ------------------------------------------------------------------


def _print_lines(ctx: CliContext, lines: List[str]) -> None:
    for line in lines:
        ctx.console.print(line, highlight=False, soft_wrap=True)


def _list_versions(product: str, version: Optional[str] = None) -> None:
    ctx = get_context()
    try:
        _print_lines(ctx, ctx.catalog.list_versions(product))
    except CatalogLookupError as exc:
        ctx.fail(str(exc))


def _install(
    product: str,
    version: Optional[str] = None,
    destination: Optional[Path] = None,
    os_name: Optional[str] = None,
    arch: Optional[str] = None,
) -> None:
    ctx = get_context()
    catalog = ctx.catalog
    with ctx.client() as http:
        try:
            result = install(
                catalog,
                product,
                version,
                destination=destination or Path.cwd(),
                os=os_name,
                arch=arch,
                client=http,
                settings=ctx.settings,
            )
        except CatalogLookupError as exc:
            ctx.fail(str(exc))
        except IntegrityError as exc:
            ctx.fail(f"Integrity check failed: {exc}")
        except ReleaseCatalogError as exc:
            ctx.fail(f"Install failed: {exc}")
    ctx.console.print(
        f"Installed {result.build.product} {result.build.version} "
        f"({result.build.os}/{result.build.arch}) to {result.binary_path}",
        highlight=False,
        soft_wrap=True,
    )
    ctx.console.print(f"sha256 {result.sha256}", highlight=False, soft_wrap=True)


@app.command()
def products() -> None:
    """List every product in the catalog."""
    ctx = get_context()
    _print_lines(ctx, ctx.catalog.list_products())


@app.command()
def latest(product: str = typer.Argument(..., help="Product name")) -> None:
    """Show the highest version of PRODUCT."""
    ctx = get_context()
    try:
        _print_lines(ctx, [ctx.catalog.latest_version(product)])
    except CatalogLookupError as exc:
        ctx.fail(str(exc))


@app.command()
def versions(product: str = typer.Argument(..., help="Product name")) -> None:
    """List PRODUCT's versions, oldest first."""
    _list_versions(product)


@app.command("install")
def install_cmd(
    product: str = typer.Argument(..., help="Product name"),
    version: Optional[str] = typer.Argument(None, help="Version to install (default: latest)"),
    destination: Path = typer.Option(Path("."), "--dest", "-d", help="Directory receiving the binary"),
    os_name: Optional[str] = typer.Option(None, "--os", help="Target OS (default: local)"),
    arch: Optional[str] = typer.Option(None, "--arch", help="Target architecture (default: local)"),
) -> None:
    """Download, verify, and extract PRODUCT's binary.

    Example:
        $ release-catalog install terraform 1.5.7 --os linux --arch amd64 -d ./bin
    """
    _install(product, version, destination, os_name, arch)


@app.command()
def verify(archive: Path = typer.Argument(..., exists=True, dir_okay=False, help="Downloaded archive")) -> None:
    """Check ARCHIVE against its published SHA256SUMS manifest."""
    ctx = get_context()
    with ctx.client() as http:
        try:
            digest = IntegrityVerifier(http, ctx.settings).verify_file(archive)
        except IntegrityError as exc:
            ctx.fail(f"Integrity check failed: {exc}")
        except NetworkError as exc:
            ctx.fail(f"Cannot fetch checksum manifest: {exc}")
    ctx.console.print(f"OK {archive.name} sha256 {digest}", highlight=False, soft_wrap=True)


@app.command()
def run(
    product: str = typer.Argument(..., help="Product name"),
    action: str = typer.Argument(ACTION_INSTALL, help="install or list"),
    version: Optional[str] = typer.Argument(None, help="Version for install (default: latest)"),
) -> None:
    """Dispatch a per-product command from the catalog's command registry.

    Example:
        $ release-catalog run terraform list
        $ release-catalog run terraform install 1.5.7
    """
    ctx = get_context()
    registry = build_command_registry(ctx.catalog)
    try:
        descriptor = resolve_command(registry, product, action)
    except CatalogLookupError as exc:
        ctx.fail(str(exc))
    handler = bind_handler(descriptor, {ACTION_INSTALL: _install, ACTION_LIST: _list_versions})
    handler(version)


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind"),
    port: int = typer.Option(8080, "--port", "-p", help="Port to listen on"),
) -> None:
    """Serve the catalog as JSON over HTTP."""
    from .server import create_app

    ctx = get_context()
    create_app(ctx.catalog).run(host=host, port=port)


def main(argv: Optional[List[str]] = None) -> None:
    """Console-script entry point."""
    app(args=argv, prog_name=APP_NAME)


if __name__ == "__main__":  # pragma: no cover
    main()
