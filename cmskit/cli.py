"""The ``cms`` command line tool: bootstrap and sync cms-config.json."""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import click

from cmskit import __version__
from cmskit.client import CmsClient
from cmskit.config import DEFAULT_CONFIG_FILENAME, load_config, write_template
from cmskit.errors import CmsError


logger = logging.getLogger(__name__)

config_option = click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help=f"Path to config file (default: ./{DEFAULT_CONFIG_FILENAME}).",
)


def _resolve_config_path(config_path: Optional[Path]) -> Path:
    return config_path if config_path is not None else Path.cwd() / DEFAULT_CONFIG_FILENAME


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    logging.getLogger("aiohttp").setLevel(logging.WARNING)


@click.group()
@click.version_option(version=__version__, prog_name="cms")
@click.option("-v", "--verbose", is_flag=True, help="Detailed output with debug info.")
def cli(verbose: bool) -> None:
    """cms - Headless CMS CLI."""
    _configure_logging(verbose)


@cli.command("init")
@config_option
def init_cmd(config_path: Optional[Path]) -> None:
    """Create cms-config.json in the project root."""
    path = _resolve_config_path(config_path)
    try:
        write_template(path)
    except CmsError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"{path.name} created")
    click.echo("Next steps:")
    click.echo("  1. Set api.baseUrl to your CMS API URL")
    click.echo("  2. Set api.apiKey to your API key")
    click.echo("  3. Declare your components and pages")
    click.echo('  4. Run "cms sync" to sync with the server')


async def _sync(base_url: str, api_key: str, structure: dict) -> dict:
    async with CmsClient(base_url, api_key) as client:
        return await client.sync_structure(structure)


@cli.command("sync")
@config_option
def sync_cmd(config_path: Optional[Path]) -> None:
    """Sync components and pages from cms-config.json to the CMS server."""
    path = _resolve_config_path(config_path)
    try:
        config = load_config(path)
    except CmsError as exc:
        raise click.ClickException(str(exc)) from exc

    click.echo(f"Syncing to {config.api.base_url}...")
    try:
        result = asyncio.run(_sync(config.api.base_url, config.api.api_key, config.structure()))
    except CmsError as exc:
        logger.debug("Sync failed", exc_info=True)
        raise click.ClickException(f"Sync failed: {exc}") from exc

    click.echo("Sync successful")
    if result.get("message"):
        click.echo(result["message"])


def main() -> None:
    cli()


__all__ = ["cli", "main"]
