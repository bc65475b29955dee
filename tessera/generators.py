"""Generator pipeline for Tessera.

Generators derive virtual content items from the fully loaded content tree:
pagination, archives, category indexes. Each generator is a coroutine
function ``fn(tree, site_locals)`` returning a nested mapping of
``{key: item | {key: ...}}``; nested mappings become interior tree nodes.

Generators run one after another in registration order. They share a
``SiteLocals`` accumulator, so a later generator can read what an earlier one
published, and the accumulated values end up in every render context.

This module also holds the helpers the built-in generators in
``tessera.archives`` are assembled from.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Iterator, Mapping, MutableMapping, Sequence
from typing import TYPE_CHECKING, Any, TypeVar

from .content import Page
from .errors import GeneratorError, format_error_message
from .plugins import ContentPlugin, FilePath, GeneratorDef
from .tree import ContentTree

if TYPE_CHECKING:
    from .environment import Environment

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SiteLocals(MutableMapping[str, Any]):
    """Site-wide values shared by generators and templates for one build.

    Seeded from the configured locals. Writes are last-wins.
    """

    def __init__(self, initial: Mapping[str, Any] | None = None):
        self._data: dict[str, Any] = dict(initial or {})

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        if key in self._data:
            logger.debug("Site local %r overwritten", key)
        self._data[key] = value

    def __delitem__(self, key: str) -> None:
        del self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def snapshot(self) -> dict[str, Any]:
        """A shallow copy for use in render contexts."""
        return dict(self._data)

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"SiteLocals({self._data!r})"


async def run_generator(
    env: Environment,
    tree: ContentTree,
    generator: GeneratorDef,
    site_locals: SiteLocals,
) -> ContentTree:
    """Run one generator and build a tree of the items it returns.

    Args:
        env: Build environment.
        tree: The loaded content tree (read by the generator, not modified).
        generator: Generator to run.
        site_locals: Shared accumulator the generator may read and write.

    Returns:
        A new tree holding only the generated items.

    Raises:
        GeneratorError: If the generator raises or returns something other
            than a mapping of items.
    """
    logger.debug("Running generator %s", generator.name)
    try:
        generated = await generator.fn(tree, site_locals)
    except Exception as exc:
        raise GeneratorError(generator.name, format_error_message(exc), exc) from exc

    result = ContentTree("", env.get_content_groups())
    if generated is None:
        return result
    if not isinstance(generated, Mapping):
        raise GeneratorError(generator.name, f"expected a mapping, got {type(generated).__name__}")

    def resolve(node: ContentTree, items: Mapping[str, Any]) -> None:
        for key, item in items.items():
            if item is None:
                continue
            if isinstance(item, ContentPlugin):
                item.env = env
                item.plugin = generator
                node.add(key, item, generator.group)
            elif isinstance(item, Mapping):
                child = ContentTree(key, env.get_content_groups())
                node.add(key, child)
                resolve(child, item)
            else:
                raise GeneratorError(
                    generator.name,
                    f"item {key!r} is neither a content item nor a mapping",
                )

    resolve(result, generated)
    return result


async def run_generators(
    env: Environment,
    tree: ContentTree,
    site_locals: SiteLocals,
) -> ContentTree:
    """Run every registered generator in order and merge their output.

    When two generators produce the same key, the later one wins.
    """
    merged = ContentTree("", env.get_content_groups())
    for generator in env.generators:
        merged.merge(await run_generator(env, tree, generator, site_locals))
    return merged


def get_articles(tree: ContentTree, subtree: str) -> list[Page]:
    """Collect the articles in a subtree, newest first.

    Articles are the pages directly in the subtree plus the index page of
    each of its subdirectories. Pages whose template is ``none`` are left
    out. Articles with equal dates keep their tree order.

    Args:
        tree: Root of the content tree.
        subtree: ``/``-separated path of the articles directory.

    Returns:
        Articles sorted by date, descending. Empty if the subtree is missing.
    """
    node: Any = tree
    for part in subtree.strip("/").split("/"):
        if not part:
            continue
        node = node.get(part) if isinstance(node, ContentTree) else None
    if not isinstance(node, ContentTree):
        logger.debug("No articles directory %r in content tree", subtree)
        return []

    candidates: list[Any] = [child for child in node.values() if not isinstance(child, ContentTree)]
    candidates.extend(directory.index for directory in node.directories)
    articles = [
        item for item in candidates
        if isinstance(item, Page) and item.template != "none"
    ]
    articles.sort(key=lambda a: a.date, reverse=True)
    return articles


def chunk(items: Sequence[T], size: int) -> list[list[T]]:
    """Split items into consecutive chunks of at most ``size``.

    Examples:
        >>> chunk([1, 2, 3], 2)
        [[1, 2], [3]]

        >>> chunk([], 2)
        []
    """
    if size < 1:
        raise ValueError(f"page size must be at least 1, got {size}")
    count = math.ceil(len(items) / size)
    return [list(items[i * size : (i + 1) * size]) for i in range(count)]


def link_chain(pages: Sequence[GeneratedPage]) -> None:
    """Link pages into a previous/next chain in sequence order."""
    for index, page in enumerate(pages):
        page.prev_page = pages[index - 1] if index > 0 else None
        page.next_page = pages[index + 1] if index < len(pages) - 1 else None


def summarise(pages: Sequence[GeneratedPage], name: str) -> dict[str, Any]:
    """Summary record of one group of pages for site locals."""
    return {
        "name": name,
        "url": pages[0].url,
        "count": sum(len(page.articles) for page in pages),
    }


class GeneratedPage(Page):
    """Base class for pages produced by generators.

    A generated page has no source file. It renders ``template`` (from the
    generator's options) with the page's articles and chain neighbours in the
    context.

    Attributes:
        page_num: 1-based position in the page chain.
        articles: Articles shown on this page.
        options: Options of the generator that made the page.
        prev_page: Previous page in the chain, or None.
        next_page: Next page in the chain, or None.
    """

    def __init__(self, page_num: int, articles: Iterable[Page], options: Mapping[str, Any]):
        super().__init__(FilePath(full="", relative=""), {})
        self.page_num = page_num
        self.articles = list(articles)
        self.options = dict(options)
        self.prev_page: GeneratedPage | None = None
        self.next_page: GeneratedPage | None = None

    @property
    def template(self) -> str:
        return self.options["template"]

    @property
    def view(self) -> str:
        return "template"

    def page_filename(self, **replacements: Any) -> str:
        """Expand the ``first`` or ``filename`` option for this page.

        ``%d`` is replaced by the page number; each keyword ``x=value``
        replaces ``%x``.
        """
        pattern = self.options["first"] if self.page_num == 1 else self.options["filename"]
        pattern = pattern.replace("%d", str(self.page_num))
        for key, value in replacements.items():
            pattern = pattern.replace(f"%{key}", str(value))
        return pattern.lstrip("/")

    @property
    def filename(self) -> str:
        return self.page_filename()

    def get_html(self, base: str | None = None) -> str:
        return ""

    def get_context(self) -> dict[str, Any]:
        return {
            "page": self,
            "articles": self.articles,
            "page_num": self.page_num,
            "prev_page": self.prev_page,
            "next_page": self.next_page,
        }

    @property
    def plugin_info(self) -> str:
        return f"url: {self.get_url()} template: {self.template} plugin: {self.name}"
