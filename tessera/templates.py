"""Template loading for Tessera.

Templates are loaded from the templates directory through the template
handler registry, using the same last-registered-wins rule as content. The
built-in handler compiles Jinja2 templates.

Key pieces:
- JinjaTemplate: Template handler backed by a Jinja2 ``Template``.
- load_templates: Load every template file into a name → template mapping.
"""

from __future__ import annotations

import asyncio
import logging
from contextvars import ContextVar
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Any

from jinja2 import Environment as JinjaEnvironment
from jinja2 import FileSystemLoader, Template, select_autoescape

from .errors import LoadError, format_error_message
from .plugins import FilePath, TemplatePlugin
from .utils import read_dir_recursive

if TYPE_CHECKING:
    from .environment import Environment

logger = logging.getLogger(__name__)

TEMPLATE_PATTERN = "**/*.{html,jinja,j2,xml}"


def _pygments_css() -> str:
    """Return Pygments CSS styles for the .highlight class."""
    from pygments.formatters import HtmlFormatter

    return HtmlFormatter().get_style_defs(".highlight")


# Environments created during one load_templates call, by templates root.
_environments: ContextVar[dict[str, JinjaEnvironment] | None] = ContextVar(
    "tessera_jinja_environments", default=None
)


def jinja_environment(templates_root: str) -> JinjaEnvironment:
    """Return the Jinja2 environment for a templates directory.

    Within one ``load_templates`` call every template under the same root
    shares an environment, so ``extends`` and ``include`` resolve relative to
    that root. Each call starts fresh, so edited parent templates are picked
    up on the next build.
    """
    cache = _environments.get()
    if cache is not None and templates_root in cache:
        return cache[templates_root]
    env = JinjaEnvironment(
        loader=FileSystemLoader(templates_root),
        autoescape=select_autoescape(["html", "xml"]),
    )
    env.globals["pygments_css"] = _pygments_css
    if cache is not None:
        cache[templates_root] = env
    return env


def _templates_root(filepath: FilePath) -> Path:
    depth = len(PurePosixPath(filepath.relative).parts)
    return Path(filepath.full).parents[depth - 1]


class JinjaTemplate(TemplatePlugin):
    """A compiled Jinja2 template.

    Attributes:
        template: Compiled Jinja2 template.
    """

    def __init__(self, template: Template):
        self.template = template

    @classmethod
    async def load(cls, filepath: FilePath) -> JinjaTemplate:
        env = jinja_environment(str(_templates_root(filepath)))
        template = await asyncio.to_thread(env.get_template, filepath.relative)
        return cls(template)

    async def render(self, context: dict[str, Any]) -> bytes:
        return self.template.render(context).encode("utf-8")


async def load_templates(env: Environment) -> dict[str, TemplatePlugin]:
    """Load every template in the environment's templates directory.

    Args:
        env: Build environment.

    Returns:
        Mapping of ``/``-separated relative path to loaded template. Files
        no template handler accepts are skipped.

    Raises:
        LoadError: If any template fails to load. The first failure in
            sorted path order is reported, naming the template's path.
    """
    root = env.templates_path
    relatives = await asyncio.to_thread(read_dir_recursive, root)
    if not relatives:
        logger.debug("No templates found in %s", root)

    jobs: list[tuple[str, Any]] = []
    for relative in relatives:
        definition = env.template_plugins.resolve(relative)
        if definition is None:
            logger.debug("No template handler for %s; skipping", relative)
            continue
        filepath = FilePath(full=str(root / relative), relative=relative)
        jobs.append((relative, definition.plugin.load(filepath)))

    token = _environments.set({})
    try:
        results = await asyncio.gather(*(job for _, job in jobs), return_exceptions=True)
    finally:
        _environments.reset(token)
    templates: dict[str, TemplatePlugin] = {}
    for (relative, _), result in zip(jobs, results):
        if isinstance(result, BaseException):
            raise LoadError(
                relative,
                f"template failed to load: {format_error_message(result)}",
                result,
            ) from result
        templates[relative] = result
    logger.debug("Loaded %d templates", len(templates))
    return templates


def register(env: Environment) -> None:
    """Register the built-in template handler."""
    env.register_template_plugin(TEMPLATE_PATTERN, JinjaTemplate)
