"""Markdown rendering and link resolution for Tessera.

Markdown pages may link to other content by its source path, e.g.
``[next post](../second/index.md)``. When the page is rendered, every link
and image target is resolved against the content tree, starting from the
node the page is a leaf of, and replaced with the target's public URL.
Targets that are not in the tree are resolved as ordinary URLs against the
page's own location.

Key functions:
- resolve_link: Map a reference to a URL.
- render_link / render_image: Resolve and emit markup.
- render_markdown: Markdown to HTML with link resolution, heading ids and
  Pygments highlighting.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING
from urllib.parse import urljoin

import mistune
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexers import get_lexer_by_name
from pygments.util import ClassNotFound

from .html_utils import escape_html, image_tag, link_tag
from .tree import ContentTree
from .utils import is_absolute_uri

if TYPE_CHECKING:
    from .plugins import ContentPlugin

logger = logging.getLogger(__name__)

MARKDOWN_PLUGINS = ["strikethrough", "footnotes", "table", "url"]


def _walk(item: ContentPlugin, path: str) -> ContentPlugin | None:
    """Follow a ``/``-separated path through the tree from an item's parent.

    Returns the leaf the path ends on, or None if any step is missing or the
    path ends on a directory.
    """
    node: ContentTree | ContentPlugin | None = item.parent
    for part in path.split("/"):
        if node is None or not isinstance(node, ContentTree):
            return None
        if part == "":
            node = node.root
        elif part == "..":
            node = node.parent
        elif part == ".":
            continue
        else:
            node = node.get(part)
    if node is None or isinstance(node, ContentTree):
        return None
    return node


def resolve_link(item: ContentPlugin, href: str, base_url: str) -> str:
    """Resolve a link or image reference found in an item's body.

    Args:
        item: Item whose body contains the reference.
        href: Reference as written in the source.
        base_url: URL of the directory the item is published in, used when
            the reference does not name content in the tree.

    Returns:
        The URL the rendered markup should point at.

    Examples:
        Absolute URIs and fragment-only references are returned unchanged;
        ``../x.md`` from ``a/b/y.md`` yields the URL of ``a/x.md``.
    """
    if is_absolute_uri(href) or href.startswith("#"):
        return href

    pathname, hash_part = href, ""
    if "#" in pathname:
        pathname, _, fragment = pathname.partition("#")
        hash_part = "#" + fragment
    pathname = pathname.split("?", 1)[0]

    target = _walk(item, pathname) if pathname else None
    if target is not None:
        return target.url + hash_part
    return urljoin(base_url.rstrip("/") + "/", href)


def render_link(item: ContentPlugin, base_url: str, href: str, title: str | None, text: str) -> str:
    """Render an ``<a>`` element with its target resolved."""
    return link_tag(resolve_link(item, href, base_url), text, title)


def render_image(item: ContentPlugin, base_url: str, href: str, title: str | None, text: str) -> str:
    """Render an ``<img>`` element with its source resolved."""
    return image_tag(resolve_link(item, href, base_url), text, title)


def _generate_heading_id(text: str) -> str:
    """Generate a URL-friendly ID from heading text."""
    slug = re.sub(r"<[^>]+>", "", text).lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[-\s]+", "-", slug)
    return slug.strip("-")


class _LinkResolvingRenderer(mistune.HTMLRenderer):
    """HTML renderer that resolves links against the content tree.

    Attributes:
        item: Item being rendered.
        base_url: Fallback base for references outside the tree.
    """

    def __init__(self, item: ContentPlugin, base_url: str):
        super().__init__(escape=False)
        self.item = item
        self.base_url = base_url
        self._heading_id_counts: dict[str, int] = {}

    def link(self, text: str, url: str, title: str | None = None) -> str:
        return render_link(self.item, self.base_url, url, title, text)

    def image(self, text: str, url: str, title: str | None = None) -> str:
        return render_image(self.item, self.base_url, url, title, text)

    def heading(self, text: str, level: int, **attrs) -> str:
        """Render a heading with an auto-generated, de-duplicated id."""
        base_id = _generate_heading_id(text)
        if base_id in self._heading_id_counts:
            self._heading_id_counts[base_id] += 1
            heading_id = f"{base_id}-{self._heading_id_counts[base_id]}"
        else:
            self._heading_id_counts[base_id] = 0
            heading_id = base_id
        return f'<h{level} id="{heading_id}">{text}</h{level}>\n'

    def block_code(self, code: str, info: str | None = None) -> str:
        """Render a code block with Pygments syntax highlighting.

        Unknown languages fall back to a plain escaped block.
        """
        lang = info.split()[0] if info and info.strip() else None
        if lang:
            try:
                lexer = get_lexer_by_name(lang, stripall=True)
            except ClassNotFound:
                logger.debug("No Pygments lexer for %r", lang)
            else:
                return highlight(code, lexer, HtmlFormatter(cssclass="highlight"))
        lang_class = f' class="language-{escape_html(lang)}"' if lang else ""
        return f"<pre><code{lang_class}>{escape_html(code)}</code></pre>\n"


def render_markdown(source: str, item: ContentPlugin, base_url: str) -> str:
    """Render Markdown to HTML for an item.

    Args:
        source: Markdown text.
        item: Item the Markdown belongs to; its tree position anchors
            relative links.
        base_url: Fallback base for references outside the tree.

    Returns:
        Rendered HTML.
    """
    markdown = mistune.create_markdown(
        renderer=_LinkResolvingRenderer(item, base_url),
        plugins=MARKDOWN_PLUGINS,
    )
    return markdown(source)
