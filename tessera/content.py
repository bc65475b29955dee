"""Content items for Tessera.

This module holds the content handlers registered by default: Markdown and
JSON pages, and the static-file passthrough used for everything else. It also
defines the default ``template`` view that renders a page through its
selected template.

Key classes:
- Page: Base class for items with metadata, a computed filename and HTML.
- MarkdownPage: Front matter plus a Markdown body.
- JsonPage: A JSON object of metadata; its optional ``content`` key holds
  Markdown.
- StaticFile: Copies a file to the output unchanged.

Filename templates:
    A page's output path is built from its filename template (metadata
    ``filename``, then config ``filename_template``, then ``:file.html``).
    The tokens ``:year``, ``:month``, ``:day``, ``:title``, ``:file``,
    ``:ext``, ``:basename`` and ``:dirname`` are substituted, then every
    ``{{ expression }}`` block is evaluated in a sandbox with ``page`` and
    ``env`` bound.
"""

from __future__ import annotations

import asyncio
import json
import logging
import posixpath
import re
from collections.abc import Awaitable, Callable
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from jinja2.sandbox import SandboxedEnvironment
from markupsafe import Markup

from .errors import RenderError, ResolutionError, format_error_message
from .extractors import extract_frontmatter
from .plugins import ContentPlugin, FilePath, TemplatePlugin
from .renderers import render_markdown
from .utils import EPOCH, parse_date, rfc2822, slugify, strip_extension

if TYPE_CHECKING:
    from .environment import Environment
    from .tree import ContentTree

logger = logging.getLogger(__name__)

_TOKEN_RE = re.compile(r":(year|month|day|title|file|ext|basename|dirname)")
_EXPRESSION_RE = re.compile(r"\{\{(.*?)\}\}")

_sandbox = SandboxedEnvironment()

DEFAULT_FILENAME_TEMPLATE = ":file.html"
DEFAULT_INTRO_CUTOFFS = ['<span class="more', "<h2", "<hr"]

ViewFunc = Callable[..., Awaitable["bytes | None"]]


class Page(ContentPlugin):
    """Base class for pages.

    Subclasses provide ``get_html()``. Everything else (filename, URL,
    template selection, title, date and intro) is derived from the metadata.

    Attributes:
        filepath: Source file location.
        metadata: Metadata mapping, usually from front matter.
    """

    def __init__(self, filepath: FilePath, metadata: dict[str, Any] | None = None):
        super().__init__()
        self.filepath = filepath
        self.metadata = metadata or {}
        # Rendered HTML by (location, source); dropped when the page moves.
        self._html_cache: dict[tuple[str, str], str] = {}
        raw_date = self.metadata.get("date")
        if raw_date not in (None, "") and parse_date(raw_date) is None:
            logger.warning("%s: cannot parse date %r; using 1970-01-01", filepath.relative, raw_date)

    @ContentPlugin.parent.setter
    def parent(self, node: ContentTree | None) -> None:
        ContentPlugin.parent.fset(self, node)
        self._html_cache.clear()

    @property
    def filename_template(self) -> str:
        return (
            self.metadata.get("filename")
            or self.config.get("filename_template")
            or DEFAULT_FILENAME_TEMPLATE
        )

    @property
    def template(self) -> str:
        return self.metadata.get("template") or self.config.get("default_template") or "none"

    @property
    def title(self) -> str:
        return self.metadata.get("title") or "Untitled"

    @property
    def date(self) -> datetime:
        return parse_date(self.metadata.get("date")) or EPOCH

    @property
    def rfc2822_date(self) -> str:
        return rfc2822(self.date)

    @property
    def view(self) -> str | ViewFunc:
        return self.metadata.get("view") or "template"

    @property
    def filename(self) -> str:
        """Output path expanded from the filename template."""
        relative = self.filepath.relative
        dirname = posixpath.dirname(relative)
        basename = posixpath.basename(relative)
        date = self.date
        tokens = {
            "year": f"{date.year:04d}",
            "month": f"{date.month:02d}",
            "day": f"{date.day:02d}",
            "title": slugify(self.title),
            "file": strip_extension(basename),
            "ext": posixpath.splitext(basename)[1],
            "basename": basename,
            "dirname": posixpath.basename(dirname),
        }
        filename = _TOKEN_RE.sub(lambda m: tokens[m.group(1)], self.filename_template)
        filename = _EXPRESSION_RE.sub(self._evaluate, filename)
        return posixpath.join(dirname, filename.lstrip("/"))

    def _evaluate(self, match: re.Match[str]) -> str:
        expression = _sandbox.compile_expression(match.group(1).strip())
        return str(expression(page=self, env=self.env))

    def get_html(self, base: str | None = None) -> str:
        """Rendered body HTML, with links resolved against ``base``."""
        raise NotImplementedError(f"{self.name}.get_html() not implemented")

    @property
    def html(self) -> Markup:
        """Rendered HTML, marked safe for autoescaping templates."""
        return Markup(self.get_html())

    def get_intro(self, base: str | None = None) -> str:
        """Rendered HTML up to the earliest intro cutoff marker.

        Returns the whole HTML when no marker is present.
        """
        html = self.get_html(base)
        cutoffs = self.config.get("intro_cutoffs") or DEFAULT_INTRO_CUTOFFS
        positions = [i for i in (html.find(c) for c in cutoffs) if i != -1]
        return html[: min(positions)] if positions else html

    @property
    def intro(self) -> Markup:
        return Markup(self.get_intro())

    @property
    def has_more(self) -> bool:
        """Whether the rendered HTML continues past the intro."""
        return len(self.get_html()) > len(self.get_intro())

    @property
    def plugin_info(self) -> str:
        return f"url: {self.get_url()} template: {self.template} plugin: {self.name}"


class MarkdownPage(Page):
    """A page written in Markdown with optional front matter."""

    def __init__(self, filepath: FilePath, metadata: dict[str, Any] | None = None, markdown: str = ""):
        super().__init__(filepath, metadata)
        self.markdown = markdown

    @classmethod
    async def load(cls, filepath: FilePath) -> MarkdownPage:
        text = await asyncio.to_thread(Path(filepath.full).read_text, encoding="utf-8")
        metadata, body = extract_frontmatter(text)
        return cls(filepath, metadata, body)

    def get_location(self, base: str | None = None) -> str:
        """URL of the directory the page is published in."""
        url = self.get_url(base)
        return url[: url.rfind("/")]

    def get_html(self, base: str | None = None) -> str:
        base = base or self.config.get("base_url") or "/"
        location = self.get_location(base)
        key = (location, self.markdown)
        if key not in self._html_cache:
            self._html_cache[key] = render_markdown(self.markdown, self, location)
        return self._html_cache[key]


class JsonPage(MarkdownPage):
    """A page whose metadata is a JSON object.

    An optional ``content`` key holds the Markdown body.
    """

    @classmethod
    async def load(cls, filepath: FilePath) -> JsonPage:
        text = await asyncio.to_thread(Path(filepath.full).read_text, encoding="utf-8")
        metadata = json.loads(text)
        if not isinstance(metadata, dict):
            raise ValueError("JSON page must contain an object")
        return cls(filepath, metadata, metadata.get("content") or "")


class StaticFile(ContentPlugin):
    """Passthrough handler: the file is written to the output unchanged."""

    plugin_colour = None

    def __init__(self, filepath: FilePath):
        super().__init__()
        self.filepath = filepath

    @classmethod
    async def load(cls, filepath: FilePath) -> StaticFile:
        return cls(filepath)

    @property
    def filename(self) -> str:
        return self.filepath.relative

    @property
    def view(self) -> ViewFunc:
        async def copy_file(*_args: Any) -> bytes:
            return await asyncio.to_thread(Path(self.filepath.full).read_bytes)

        return copy_file

    @property
    def plugin_info(self) -> str:
        return f"url: {self.get_url()}"


async def template_view(
    env: Environment,
    site_locals: dict[str, Any],
    tree: ContentTree,
    templates: dict[str, TemplatePlugin],
    item: Page,
) -> bytes | None:
    """Default view: render a page through the template it selects.

    Pages whose template is ``none`` produce no output.

    Raises:
        ResolutionError: If the selected template is not loaded.
        RenderError: If the template raises while rendering.
    """
    if item.template == "none":
        return None
    template = templates.get(posixpath.normpath(item.template))
    if template is None:
        raise ResolutionError(item.filename, f"unknown template '{item.template}'")
    context = {**item.get_context(), **site_locals}
    try:
        return await template.render(context)
    except Exception as exc:
        raise RenderError(
            item.filename,
            f"template '{item.template}': {format_error_message(exc)}",
            exc,
        ) from exc


async def none_view(*_args: Any) -> None:
    """View for items that are never written."""
    return None


def register(env: Environment) -> None:
    """Register the built-in content handlers and views."""
    env.register_content_plugin("files", "**/*", StaticFile)
    env.register_content_plugin("pages", "**/*.{markdown,mkd,md}", MarkdownPage)
    env.register_content_plugin("pages", "**/*.json", JsonPage)
    env.plugins["Page"] = Page
    env.register_view("none", none_view)
    env.register_view("template", template_view)
