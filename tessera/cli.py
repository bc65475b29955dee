"""Command-line interface for Tessera.

This module defines the CLI commands using the Click framework.

Commands:
- build: Build the site into the output directory.
- preview: Run the preview server with live reload.
- tree: Print the content tree, including generated pages.
- new: Create a new site from a packaged example site.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
from pathlib import Path

import click

from . import __version__
from .errors import TesseraError
from .log import setup_logging

logger = logging.getLogger(__name__)

_SITE_TEMPLATES_DIR = Path(__file__).parent / "site_templates"


def _report_failure(title: str, exc: TesseraError) -> None:
    click.echo(click.style(title, fg="red", bold=True), err=True)
    click.echo(click.style(f"  Source: {exc.source}", fg="yellow"), err=True)
    click.echo(click.style(f"  Error: {exc.message}", fg="white"), err=True)


@click.group()
@click.version_option(version=__version__, prog_name="tessera")
@click.option(
    "--chdir",
    "-C",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=".",
    help="Project directory (defaults to the current directory)",
)
@click.option(
    "--config",
    "-c",
    "config_file",
    type=click.Path(path_type=Path),
    default=None,
    help="Config file, relative to the project directory (default tessera.yaml)",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug output and tracebacks")
@click.option("--quiet", "-q", is_flag=True, help="Only show errors")
@click.pass_context
def cli(ctx: click.Context, chdir: Path, config_file: Path | None, verbose: bool, quiet: bool):
    """Tessera static site generator."""
    setup_logging(verbose=verbose, quiet=quiet)
    ctx.ensure_object(dict)
    ctx.obj["project_root"] = chdir.resolve()
    ctx.obj["config_file"] = config_file


@cli.command()
@click.option(
    "--output",
    "-o",
    type=click.Path(file_okay=False),
    default=None,
    help="Output directory (overrides tessera.yaml)",
)
@click.option("--clean", "-X", is_flag=True, help="Empty the output directory first")
@click.pass_context
def build(ctx: click.Context, output: str | None, clean: bool):
    """Build the site into the output directory."""
    from .build import build_site

    project_root = ctx.obj["project_root"]
    try:
        result = build_site(
            project_root,
            config_file=ctx.obj["config_file"],
            overrides={"output": output},
            clean_output=clean,
        )
    except TesseraError as exc:
        _report_failure("Build failed:", exc)
        raise SystemExit(1) from None
    click.echo(f"Built {len(result.items)} files into {result.output_dir}")


@cli.command()
@click.option(
    "--port",
    "-p",
    type=int,
    required=False,
    help="Port to run the preview server (overrides tessera.yaml)",
)
@click.pass_context
def preview(ctx: click.Context, port: int | None):
    """Run the preview server with live reload."""
    from .server import PreviewServer

    try:
        server = PreviewServer(ctx.obj["project_root"], config_file=ctx.obj["config_file"], http_port=port)
    except TesseraError as exc:
        _report_failure("Preview failed:", exc)
        raise SystemExit(1) from None
    server.start()


@cli.command()
@click.argument("path", type=click.Path(path_type=Path))
@click.option(
    "--template",
    "-T",
    default="blog",
    show_default=True,
    help="Example site to copy",
)
@click.option("--force", "-f", is_flag=True, help="Write into a non-empty directory")
@click.pass_context
def new(ctx: click.Context, path: Path, template: str, force: bool):
    """Create a new site at PATH from an example site."""
    available = sorted(p.name for p in _SITE_TEMPLATES_DIR.iterdir() if p.is_dir())
    if template not in available:
        raise click.ClickException(
            f"Unknown site template '{template}'. Available: {', '.join(available)}"
        )
    target = (ctx.obj["project_root"] / path).resolve()
    if target.exists() and not target.is_dir():
        raise click.ClickException(f"Not a directory: {target}")
    if target.exists() and any(target.iterdir()) and not force:
        raise click.ClickException(
            f"Refusing to initialize into non-empty directory: {target} (use --force)"
        )
    logger.info("Initialising new site in %s using template %s", target, template)
    copied = _scaffold(_SITE_TEMPLATES_DIR / template, target)
    logger.debug("Copied %d files from site template %s", copied, template)
    click.echo(f"New Tessera site created at {target}")


@cli.command()
@click.pass_context
def tree(ctx: click.Context):
    """Print the content tree, including generated pages."""
    from .environment import Environment

    try:
        env = Environment.create(ctx.obj["project_root"], ctx.obj["config_file"])
        site = asyncio.run(env.load())
    except TesseraError as exc:
        _report_failure("Loading failed:", exc)
        raise SystemExit(1) from None
    click.echo(site.contents.inspect())


def _scaffold(source: Path, root: Path) -> int:
    """Copy an example site into a project directory.

    Args:
        source: Site template directory.
        root: Destination directory; created if missing. Existing files with
            the same names are overwritten.

    Returns:
        Number of files copied.
    """
    count = 0
    for src_path in sorted(source.rglob("*")):
        if src_path.is_dir() or "__pycache__" in src_path.parts:
            continue
        dest_path = root / src_path.relative_to(source)
        dest_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(src_path, dest_path)
        count += 1
    return count


def main() -> None:
    cli(obj={})
