# === NAVMAP v1 ===
# {
#   "module": "CircuitArtifacts.ArtifactDownload.cli",
#   "purpose": "Typer CLI for downloading and inspecting circuit artifacts.",
#   "sections": [
#     {"id": "clicontext", "name": "CliContext", "anchor": "class-clicontext", "kind": "class"},
#     {"id": "main", "name": "main", "anchor": "function-main", "kind": "function"},
#     {"id": "download", "name": "download", "anchor": "function-download", "kind": "function"},
#     {"id": "fetch", "name": "fetch", "anchor": "function-fetch", "kind": "function"},
#     {"id": "variants", "name": "variants", "anchor": "function-variants", "kind": "function"},
#     {"id": "locate", "name": "locate", "anchor": "function-locate", "kind": "function"},
#     {"id": "version-cmd", "name": "version_cmd", "anchor": "function-version-cmd", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Typer CLI for downloading and inspecting circuit artifacts.

Example:
    $ circuit-artifacts download 01x01
    $ circuit-artifacts --log-format json download POI_3x3 --native
    $ circuit-artifacts fetch 02x03 vkey --output vkey.json
    $ circuit-artifacts locate 01x01

Exit codes: 0 on success, 1 on download failures, 2 on invalid variants or
usage errors.
"""

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from ._version import __version__
from .catalog import VariantFamily, get_default_catalog
from .downloader import Downloader, NativeProgram
from .errors import ArtifactDownloadError, InvalidVariant
from .logging_config import setup_logging
from .settings import DownloaderSettings, LogFormat, LogLevel, TransportStrategy, get_settings
from .storage.filesystem import FilesystemArtifactStore

_console = Console()
_err_console = Console(stderr=True)


class CliContext:
    """Per-invocation state shared by commands."""

    def __init__(self, settings: DownloaderSettings, verbosity: int = 0) -> None:
        self.settings = settings
        self.verbosity = verbosity
        self.console = _console

    def with_overrides(
        self,
        *,
        native: Optional[bool] = None,
        strategy: Optional[TransportStrategy] = None,
        store_root: Optional[Path] = None,
    ) -> DownloaderSettings:
        """Settings for one command with its options applied."""
        update: dict = {}
        if native is not None:
            update["use_native_artifacts"] = native
        if store_root is not None:
            update["store_root"] = store_root.expanduser()
        if strategy is not None:
            update["transport"] = self.settings.transport.model_copy(update={"strategy": strategy})
        return self.settings.model_copy(update=update) if update else self.settings


def build_downloader(settings: DownloaderSettings) -> Downloader:
    """Construct the downloader used by CLI commands."""
    return Downloader(FilesystemArtifactStore(settings.store_root), settings=settings)


app = typer.Typer(
    name="circuit-artifacts",
    help="Download, verify, and store circuit artifacts from IPFS",
    no_args_is_help=True,
)

_context: Optional[CliContext] = None


def get_context() -> CliContext:
    if _context is None:
        raise RuntimeError("CLI context not initialized")
    return _context


def _fail(exc: ArtifactDownloadError) -> typer.Exit:
    _err_console.print(f"[red]✗ {type(exc).__name__}: {exc}[/red]")
    return typer.Exit(2 if isinstance(exc, InvalidVariant) else 1)


def _version_callback(value: bool) -> None:
    # Eager, so it runs before Click insists on a subcommand
    if value:
        typer.echo(f"circuit-artifacts {__version__}")
        raise typer.Exit(0)


@app.callback(invoke_without_command=False)
def main(
    verbosity: int = typer.Option(
        0, "--verbose", "-v", count=True, help="Increase verbosity (-v INFO, -vv DEBUG)"
    ),
    log_format: Optional[LogFormat] = typer.Option(
        None, "--log-format", help="Log output format (console or json)"
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """Circuit artifact downloader."""
    global _context

    settings = get_settings()
    level = settings.log_level
    if verbosity >= 2:
        level = LogLevel.DEBUG
    elif verbosity == 1:
        level = LogLevel.INFO
    setup_logging(level, log_format or settings.log_format)
    _context = CliContext(settings, verbosity=verbosity)


@app.command()
def download(
    variant: str = typer.Argument(..., help="Circuit variant, e.g. 01x01 or POI_3x3"),
    native: Optional[bool] = typer.Option(
        None, "--native/--wasm", help="Fetch the native (.dat) or WebAssembly program"
    ),
    strategy: Optional[TransportStrategy] = typer.Option(
        None, "--strategy", "-s", help="Transport strategy"
    ),
    store_root: Optional[Path] = typer.Option(None, "--store-root", help="Artifact store root"),
) -> None:
    """Fetch the verification key, proving key, and program of VARIANT."""
    ctx = get_context()
    settings = ctx.with_overrides(native=native, strategy=strategy, store_root=store_root)

    with build_downloader(settings) as downloader:
        try:
            result = downloader.download_variant(variant)
        except ArtifactDownloadError as exc:
            raise _fail(exc) from exc

    store = FilesystemArtifactStore(settings.store_root)
    program_name = "dat" if isinstance(result.program, NativeProgram) else "wasm"
    table = Table(title=f"Artifacts for {variant}")
    table.add_column("Artifact")
    table.add_column("Path")
    for label, key in (("vkey", result.vkey), ("zkey", result.zkey), (program_name, result.program.value)):
        table.add_row(label, str(store.path_for(key)))
    ctx.console.print(table)


@app.command()
def fetch(
    variant: str = typer.Argument(..., help="Circuit variant"),
    kind: str = typer.Argument(..., help="vkey, zkey, program, wasm, or dat"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write bytes to this file"),
    root_id: Optional[str] = typer.Option(None, "--root", help="Override the network root CID"),
    native: Optional[bool] = typer.Option(None, "--native/--wasm"),
    strategy: Optional[TransportStrategy] = typer.Option(None, "--strategy", "-s"),
    store_root: Optional[Path] = typer.Option(None, "--store-root"),
) -> None:
    """Fetch a single artifact KIND of VARIANT."""
    ctx = get_context()
    settings = ctx.with_overrides(native=native, strategy=strategy, store_root=store_root)

    with build_downloader(settings) as downloader:
        try:
            data = downloader.fetch_one(variant, kind, root_id=root_id)
        except ArtifactDownloadError as exc:
            raise _fail(exc) from exc

    if output is not None:
        try:
            output.write_bytes(data)
        except OSError as exc:
            _err_console.print(f"[red]✗ cannot write {output}: {exc}[/red]")
            raise typer.Exit(1) from exc
        ctx.console.print(f"[green]✓[/green] wrote {len(data)} bytes to {output}")
    else:
        ctx.console.print(f"[green]✓[/green] {variant}/{kind}: {len(data)} bytes")


@app.command()
def variants(
    family: Optional[VariantFamily] = typer.Option(None, "--family", help="Only list one family"),
) -> None:
    """List every variant in the catalog."""
    ctx = get_context()
    catalog = get_default_catalog()
    table = Table(title="Circuit variants")
    table.add_column("Variant")
    table.add_column("Family")
    table.add_column("Root")
    for variant in catalog:
        info = catalog.classify(variant)
        if family is not None and info.family is not family:
            continue
        table.add_row(variant, info.family.value, info.root_id)
    ctx.console.print(table)


@app.command()
def locate(
    variant: str = typer.Argument(..., help="Circuit variant"),
    native: Optional[bool] = typer.Option(None, "--native/--wasm"),
) -> None:
    """Show network paths and storage keys for VARIANT without any I/O."""
    ctx = get_context()
    settings = ctx.with_overrides(native=native)
    catalog = get_default_catalog()
    try:
        locations = catalog.locate_all(variant, settings.program_format)
    except ArtifactDownloadError as exc:
        raise _fail(exc) from exc

    table = Table(title=f"{variant} ({locations[0].family.value})")
    table.add_column("Artifact")
    table.add_column("Network path")
    table.add_column("Storage key")
    for location in locations:
        table.add_row(
            location.name.value,
            f"/ipfs/{location.root_id}/{location.network_path}",
            location.storage_key,
        )
    ctx.console.print(table)


@app.command("version")
def version_cmd() -> None:
    """Show the package version."""
    typer.echo(f"circuit-artifacts {__version__}")


__all__ = ["app", "build_downloader", "CliContext"]
