"""Command line entrypoint for laj3.

Failures are logged to stderr; the exit status stays 0.
"""

import logging

import click

from laj3 import __version__
from laj3.config.settings import (
    CONNECTION_TIMEOUT, LOG_DATEFMT, LOG_FORMAT, LOG_LEVEL, METRICS_PORT, OUTPUT_FILE,
    POOL_SIZE, SERVER_HOST, SERVER_MANIFEST, SERVER_PORT, STORAGE_DIR,
)
from laj3.errors import Laj3Error

log = logging.getLogger("laj3")


@click.group()
@click.version_option(version=__version__, prog_name="laj3")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
def main(verbose: bool) -> None:
    """laj3 - fetch the files you are missing from a sync server."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else LOG_LEVEL,
        format=LOG_FORMAT,
        datefmt=LOG_DATEFMT,
    )


@main.command("dict")
@click.argument("root")
@click.option("-o", "--output", default=None, help="Output file to store the manifest")
@click.option("-r", "--recursive", is_flag=True, help="Include files in subdirectories")
def dict_command(root: str, output: str | None, recursive: bool) -> None:
    """Build a manifest for ROOT (a directory or a single file)."""
    from laj3.manifest.builder import build_manifest
    from laj3.manifest.store import dump_manifest, save_manifest

    try:
        manifest = build_manifest(root, recursive=recursive)
    except OSError as e:
        log.error(f"Error while reading {root}: {e}")
        return

    if output is None:
        click.echo(dump_manifest(manifest))
        return

    try:
        save_manifest(manifest, output)
    except OSError as e:
        log.error(f"Error while saving manifest file: {e}")
        return
    log.info(f"Saved manifest with {len(manifest)} entries to {output}")


@main.command("server")
@click.option("-p", "--port", type=int, default=SERVER_PORT, show_default=True, help="Port to listen to")
@click.option("--host", default=SERVER_HOST, show_default=True, help="Address to bind")
@click.option("--root", default=STORAGE_DIR, show_default=True, help="Directory files are served from")
@click.option("--manifest", "manifest_path", default=SERVER_MANIFEST, show_default=True,
              help="Pre-computed server manifest")
@click.option("-w", "--workers", type=click.IntRange(min=1), default=POOL_SIZE, show_default=True,
              help="Number of worker threads")
@click.option("--timeout", type=float, default=CONNECTION_TIMEOUT, show_default=True,
              help="Per-connection socket timeout in seconds")
@click.option("--metrics-port", type=int, default=METRICS_PORT, show_default=True,
              help="Prometheus metrics port (0 disables)")
def server_command(port: int, host: str, root: str, manifest_path: str, workers: int,
                   timeout: float, metrics_port: int) -> None:
    """Start the laj3 server."""
    from laj3.server.server import serve

    try:
        serve(port, host=host, root=root, manifest_path=manifest_path,
              pool_size=workers, timeout=timeout, metrics_port=metrics_port)
    except OSError as e:
        log.error(f"Error while binding to {host}:{port}: {e}")


@main.command("install")
@click.argument("uri")
@click.option("-f", "--file", "manifest_path", default=None, help="Use a pre-computed manifest file")
@click.option("--root", default=None, help="Build the manifest from this directory instead")
@click.option("-o", "--output", default=OUTPUT_FILE, show_default=True, help="Where to save the archive")
@click.option("--timeout", type=float, default=CONNECTION_TIMEOUT, show_default=True,
              help="Socket timeout in seconds")
def install_command(uri: str, manifest_path: str | None, root: str | None, output: str,
                    timeout: float) -> None:
    """Download missing files from URI (host:port/resource)."""
    from laj3.client.client import install

    try:
        install(uri, manifest_path=manifest_path, root=root, output=output, timeout=timeout)
    except Laj3Error as e:
        log.error(f"Error: {e}")
    except OSError as e:
        log.error(f"Error while talking to {uri}: {e}")


if __name__ == "__main__":
    main()
