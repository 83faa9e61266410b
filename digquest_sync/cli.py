"""
Command-line interface for digquest-sync.

This module implements the CLI using Click, with rich-click for colored
help output.

Commands:
    digquest-sync reconcile KIND --server-file F   Merge a saved server collection
    digquest-sync reconcile KIND --from-api        Fetch and merge the server collection
    digquest-sync list KIND                        Print locally stored records
    digquest-sync remove KIND ID                   Remove one record from storage
    digquest-sync clear KIND                       Remove every record of a kind
    digquest-sync migrate                          Fold legacy keys into chunked storage
    digquest-sync optimize IMAGES... --out-dir D   Shrink images before upload

Options:
    --config <path>                                Path to digquest.yaml

Exit Codes:
    0   Success
    1   Configuration error (or unexpected error)
    2   Storage error
    3   API error
    4   Other digquest-sync error
    5   One or more images could not be optimized
    130 Interrupted by user
"""

import json
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Generator

import rich_click as click
from tqdm import tqdm

click.rich_click.USE_RICH_MARKUP = True
click.rich_click.SHOW_ARGUMENTS = True
click.rich_click.MAX_WIDTH = 100

from digquest_sync import __version__
from digquest_sync.api import DigQuestApiClient
from digquest_sync.core import (
    ApiError,
    Config,
    ConfigError,
    DigQuestSyncError,
    ImageOptimizationError,
    StorageError,
    get_logger,
    load_config,
    setup_logging,
    shutdown_logging,
)
from digquest_sync.media import ImageFile, ImageOptimizer, OptimizeOptions
from digquest_sync.storage import EntityKind, SqliteKeyValueStore, encode
from digquest_sync.sync import Reconciler
from digquest_sync.utils import ensure_directory

logger = get_logger(__name__)


KIND_CHOICE = click.Choice([kind.value for kind in EntityKind], case_sensitive=False)


class PartialFailure(DigQuestSyncError):
    """Raised when a batch command finished but some items failed."""
    pass


@click.group()
@click.option(
    "--config", "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    metavar="<digquest.yaml>",
    help="Configuration file (default: ./digquest.yaml or $DIGQUEST_CONFIG)"
)
@click.version_option(__version__, prog_name="digquest-sync")
@click.pass_context
def cli(ctx: click.Context, config_path: Path | None) -> None:
    """
    digquest-sync: offline cache and upload helpers for DigQuest.

    Keeps a local copy of finds, locations, forum posts and events, merges it
    with the server's collections, and shrinks photos before they are uploaded.

    \b
    EXAMPLES:
        digquest-sync reconcile find --from-api
        digquest-sync reconcile post --server-file posts.json
        digquest-sync remove location 12
        digquest-sync optimize ~/Photos/*.jpg --out-dir upload/
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


def _run_command(ctx: click.Context, action: Callable[[Config], None]) -> None:
    """
    Load configuration, set up logging, run action and map errors to exit codes.

    Raises:
        SystemExit: On any failure, with the exit code listed in the module docstring.
    """
    try:
        config = load_config(ctx.obj.get("config_path"))
        setup_logging(config.logging.directory, config.logging.level)
        action(config)

    except ConfigError as e:
        click.echo(f"Configuration error: {e.message}", err=True)
        sys.exit(1)

    except StorageError as e:
        click.echo(f"Storage error: {e.message}", err=True)
        logger.error(f"Storage error: {e.message}", exc_info=True)
        sys.exit(2)

    except ApiError as e:
        click.echo(f"API error: {e.message}", err=True)
        logger.error(f"API error: {e.message}", exc_info=True)
        sys.exit(3)

    except (ImageOptimizationError, PartialFailure) as e:
        click.echo(f"Image error: {e.message}", err=True)
        sys.exit(5)

    except DigQuestSyncError as e:
        click.echo(f"Error: {e.message}", err=True)
        logger.error(f"Error: {e.message}", exc_info=True)
        sys.exit(4)

    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        logger.info("Interrupted by user")
        sys.exit(130)

    except Exception as e:
        click.echo(f"Unexpected error: {e}", err=True)
        logger.exception("Unexpected error")
        sys.exit(1)

    finally:
        shutdown_logging()


@contextmanager
def _open_reconciler(config: Config) -> Generator[Reconciler, None, None]:
    """
    Open the configured SQLite store and wrap it in a Reconciler.

    The store is closed when the block exits.

    Raises:
        StorageError: If the database cannot be opened.
    """
    path = config.storage.path
    if str(path) != ":memory:":
        try:
            ensure_directory(path.parent)
        except OSError as e:
            raise StorageError(
                f"Cannot create storage directory {path.parent}: {e}",
                details={"path": str(path.parent)}
            ) from e

    store = SqliteKeyValueStore(path)
    try:
        yield Reconciler(store, dual_write=config.storage.dual_write)
    finally:
        store.close()


def _read_server_file(path: Path) -> list[dict]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            collection = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        raise DigQuestSyncError(
            f"Cannot read server collection from {path}: {e}",
            details={"path": str(path)}
        ) from e
    if not isinstance(collection, list):
        raise DigQuestSyncError(
            f"Server collection in {path} must be a JSON array",
            details={"path": str(path)}
        )
    return collection


@cli.command()
@click.argument("kind", type=KIND_CHOICE)
@click.option(
    "--server-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="JSON array previously fetched from the server"
)
@click.option("--from-api", is_flag=True, help="Fetch the collection from the configured server")
@click.pass_context
def reconcile(ctx: click.Context, kind: str, server_file: Path | None, from_api: bool) -> None:
    """Merge a server collection with local storage and print the result."""
    if bool(server_file) == from_api:
        raise click.UsageError("Use exactly one of --server-file or --from-api")

    def action(config: Config) -> None:
        if from_api:
            collection = DigQuestApiClient.from_config(config.api).fetch_collection(kind)
        else:
            collection = _read_server_file(server_file)

        with _open_reconciler(config) as reconciler:
            merged = reconciler.reconcile(kind, collection)
        click.echo(encode(kind, merged))

    _run_command(ctx, action)


@cli.command(name="list")
@click.argument("kind", type=KIND_CHOICE)
@click.pass_context
def list_command(ctx: click.Context, kind: str) -> None:
    """Print the locally stored records of KIND."""
    def action(config: Config) -> None:
        with _open_reconciler(config) as reconciler:
            click.echo(encode(kind, reconciler.list_local(kind)))

    _run_command(ctx, action)


@cli.command()
@click.argument("kind", type=KIND_CHOICE)
@click.argument("entity_id", type=int)
@click.pass_context
def remove(ctx: click.Context, kind: str, entity_id: int) -> None:
    """Remove one record from local storage after it was deleted on the server."""
    def action(config: Config) -> None:
        with _open_reconciler(config) as reconciler:
            reconciler.remove_one(kind, entity_id)
        click.echo(f"Removed {kind} {entity_id}")

    _run_command(ctx, action)


@cli.command()
@click.argument("kind", type=KIND_CHOICE)
@click.confirmation_option(prompt="Remove every locally stored record of this kind?")
@click.pass_context
def clear(ctx: click.Context, kind: str) -> None:
    """Remove every locally stored record of KIND."""
    def action(config: Config) -> None:
        with _open_reconciler(config) as reconciler:
            reconciler.clear_all(kind)
        click.echo(f"Cleared all {kind} records")

    _run_command(ctx, action)


@cli.command()
@click.pass_context
def migrate(ctx: click.Context) -> None:
    """Fold legacy aggregate keys into chunked storage."""
    def action(config: Config) -> None:
        with _open_reconciler(config) as reconciler:
            report = reconciler.migrate()
        if report is None:
            raise DigQuestSyncError("Legacy migration failed, see the error log")
        for kind_name, count in report.folded.items():
            click.echo(f"{kind_name}: {count} records folded")
        for key in report.removed_keys:
            click.echo(f"removed key: {key}")

    _run_command(ctx, action)


@cli.command()
@click.argument(
    "images",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path)
)
@click.option(
    "--out-dir",
    type=click.Path(file_okay=False, path_type=Path),
    required=True,
    help="Directory receiving the files to upload"
)
@click.pass_context
def optimize(ctx: click.Context, images: tuple[Path, ...], out_dir: Path) -> None:
    """Shrink IMAGES for upload, writing the results to --out-dir."""
    def action(config: Config) -> None:
        optimizer = ImageOptimizer(OptimizeOptions.from_config(config.optimizer))
        failed = []

        for path in tqdm(images, desc="Optimizing", unit="image"):
            try:
                result = optimizer.optimize(ImageFile.from_path(path))
            except ImageOptimizationError as e:
                logger.error(f"{path.name}: {e.message}")
                failed.append(path.name)
                continue
            target = result.save_to(out_dir)
            logger.info(f"{path.name} -> {target.name} ({result.size} bytes)")

        if failed:
            raise PartialFailure(
                f"{len(failed)} of {len(images)} images could not be optimized: {', '.join(failed)}",
                details={"failed": failed}
            )

    _run_command(ctx, action)


def main() -> None:
    """Entry point for the digquest-sync console script."""
    cli()


if __name__ == "__main__":
    main()
