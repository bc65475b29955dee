"""Site build orchestration for Tessera.

A build runs in stages: load the content tree, run the generators, load the
templates, then render every item and write it to the output directory. Any
failing stage aborts the build with a ``BuildError`` naming the artifact
responsible. Output written before the failure is left in place.

Key functions:
- render_view: Render one item through its view.
- render_tree: Render and write every item of a loaded site.
- build_site: Synchronous entry point used by the CLI and preview server.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .environment import Environment, LoadedSite
from .errors import RenderError, ResolutionError, TesseraError, format_error_message
from .plugins import ContentPlugin, TemplatePlugin
from .tree import ContentTree
from .utils import ensure_clean_dir

logger = logging.getLogger(__name__)


@dataclass
class BuildResult:
    """Result of a site build.

    Attributes:
        items: Items written to the output directory, in render order.
        output_dir: Path to the output directory.
        locals: Site locals after the generators ran.
    """

    items: list[ContentPlugin]
    output_dir: Path
    locals: dict[str, Any]


def _describe(item: ContentPlugin) -> str:
    """Name an item for error messages without risking another error."""
    try:
        return item.filename
    except Exception:
        filepath = getattr(item, "filepath", None)
        return filepath.relative if filepath is not None else repr(item)


async def render_view(
    env: Environment,
    item: ContentPlugin,
    site_locals: Mapping[str, Any],
    tree: ContentTree,
    templates: Mapping[str, TemplatePlugin],
) -> bytes | None:
    """Render an item through the view it selects.

    The view receives a context of ``env``, ``contents`` and the site
    locals; locals override the first two.

    Returns:
        Rendered bytes, or None if the item produces no output.

    Raises:
        ResolutionError: If the item names a view that is not registered.
        RenderError: If the view raises.
    """
    view = env.views.get(item.view) if isinstance(item.view, str) else item.view
    if view is None:
        raise ResolutionError(_describe(item), f"unknown view '{item.view}'")
    context = {"env": env, "contents": tree, **site_locals}
    try:
        output = await view(env, context, tree, templates, item)
    except TesseraError:
        raise
    except Exception as exc:
        raise RenderError(_describe(item), format_error_message(exc), exc) from exc
    if isinstance(output, str):
        output = output.encode("utf-8")
    return output


def _write_output(destination: Path, output: bytes) -> None:
    destination.parent.mkdir(parents=True, exist_ok=True)
    destination.write_bytes(output)


async def render_tree(env: Environment, output_dir: Path, site: LoadedSite) -> list[ContentPlugin]:
    """Render every item in a loaded site and write the results.

    Items are rendered one at a time in tree order. An item reachable under
    several keys is rendered once.

    Returns:
        The items that produced output.
    """
    logger.debug("Rendering tree:\n%s", site.contents.inspect(1))
    logger.debug("Render to output directory %s", output_dir)
    site_locals = site.locals.snapshot()
    written: list[ContentPlugin] = []
    seen: set[int] = set()
    for item in site.contents.flatten():
        if id(item) in seen:
            continue
        seen.add(id(item))
        output = await render_view(env, item, site_locals, site.contents, site.templates)
        if output is None:
            logger.debug("Skipping %s", _describe(item))
            continue
        try:
            destination = output_dir / item.filename
        except Exception as exc:
            raise RenderError(_describe(item), f"cannot compute filename: {format_error_message(exc)}", exc) from exc
        logger.debug("Writing %s to %s", item.url, destination)
        await asyncio.to_thread(_write_output, destination, output)
        written.append(item)
    return written


def build_site(
    project_root: Path,
    config_file: Path | None = None,
    overrides: dict[str, Any] | None = None,
    clean_output: bool = False,
    output_dir_override: Path | None = None,
    mode: str = "build",
) -> BuildResult:
    """Build the entire static site.

    Args:
        project_root: Root directory of the project.
        config_file: Optional config path relative to the project root.
        overrides: Config values taking precedence over the config file.
        clean_output: Whether to empty the output directory before building.
        output_dir_override: Write the build here instead of the configured
            output directory.
        mode: ``build`` or ``preview``; exposed to plugins as ``env.mode``.

    Returns:
        BuildResult with the written items, output directory and locals.

    Raises:
        TesseraError: If configuration or any build stage fails.
    """
    started = time.perf_counter()
    env = Environment.create(project_root, config_file, overrides, mode=mode)
    output_dir = output_dir_override or env.output_path
    logger.debug("Building %s into %s", env.contents_path, output_dir)
    if clean_output:
        ensure_clean_dir(output_dir)
    else:
        output_dir.mkdir(parents=True, exist_ok=True)

    site, written = asyncio.run(env.build(output_dir))
    logger.info("Wrote %d files in %.2fs", len(written), time.perf_counter() - started)
    return BuildResult(items=written, output_dir=output_dir, locals=site.locals.snapshot())
