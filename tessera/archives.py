"""Built-in generators: paginator, month archiver and categoriser.

Each is enabled by listing its name under ``plugins`` in ``tessera.yaml`` and
configured through a section of the same name, e.g.::

    plugins: [paginator, archiver]
    paginator:
      template: index.html
      per_page: 5

All three take the articles under ``articles`` (newest first), split them
into groups, chunk each group into pages of ``per_page`` articles and link
the pages of a group into a previous/next chain. In ``first`` and
``filename``, ``%d`` is the page number; ``%y``/``%m`` are the year and month
for the archiver and ``%c`` the category slug for the categoriser.

Summary records (name, URL of the first page, article count) are published
to site locals as ``month_data`` and ``category_data``.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING, Any

from .config import generator_options
from .generators import (
    GeneratedPage,
    SiteLocals,
    chunk,
    get_articles,
    link_chain,
    summarise,
)
from .utils import slugify

if TYPE_CHECKING:
    from .content import Page
    from .environment import Environment
    from .tree import ContentTree

logger = logging.getLogger(__name__)

PAGINATOR_DEFAULTS: dict[str, Any] = {
    "template": "index.html",
    "articles": "articles",
    "first": "index.html",
    "filename": "page/%d/index.html",
    "per_page": 2,
}

ARCHIVER_DEFAULTS: dict[str, Any] = {
    "template": "index.html",
    "articles": "articles",
    "first": "%y/%m/index.html",
    "filename": "%y/%m/page/%d/index.html",
    "subheader_pattern": "Archive for %D",
    "subheader_date_format": "%B, %Y",
    "undated_subheader": "Undated posts",
    "per_page": 2,
}

CATEGORISER_DEFAULTS: dict[str, Any] = {
    "template": "index.html",
    "articles": "articles",
    "first": "category/%c/index.html",
    "filename": "category/%c/page/%d/index.html",
    "subheader_pattern": "Archive for the ‘%C’ category",
    "uncategorised": "Uncategorised",
    "multi_category": False,
    "per_page": 2,
}


def _make_pages(
    env: Environment,
    cls: type[GeneratedPage],
    articles: list[Page],
    options: dict[str, Any],
    *args: Any,
) -> list[GeneratedPage]:
    pages = [
        cls(*args, page_num=index + 1, articles=group, options=options)
        for index, group in enumerate(chunk(articles, int(options["per_page"])))
    ]
    for page in pages:
        page.env = env
    link_chain(pages)
    return pages


class PaginatorPage(GeneratedPage):
    """One page of the site-wide article listing."""

    @property
    def name(self) -> str:
        return "paginator"


def register_paginator(env: Environment) -> None:
    """Register the paginator generator.

    Produces ``pages/<n>.page`` for every page, plus ``index.page`` and
    ``last.page`` for the first and last.
    """
    options = generator_options(env.config, "paginator", PAGINATOR_DEFAULTS)

    async def paginate(tree: ContentTree, site_locals: SiteLocals) -> dict[str, Any]:
        articles = get_articles(tree, options["articles"])
        pages = _make_pages(env, PaginatorPage, articles, options)
        logger.debug("Paginator: %d articles on %d pages", len(articles), len(pages))
        return {
            "pages": {f"{page.page_num}.page": page for page in pages},
            "index.page": pages[0] if pages else None,
            "last.page": pages[-1] if pages else None,
        }

    env.register_generator("paginator", "paginator", paginate)
    env.helpers["get_articles"] = get_articles


class MonthArchivePage(GeneratedPage):
    """One page of the archive for a calendar month.

    Attributes:
        month: ``YYYY/MM`` of the articles on the page.
    """

    def __init__(self, month: str, **kwargs: Any):
        super().__init__(**kwargs)
        self.month = month

    @property
    def name(self) -> str:
        return "archiver"

    @property
    def month_date(self) -> datetime:
        return datetime(int(self.month[:4]), int(self.month[5:7]), 1)

    @property
    def filename(self) -> str:
        return self.page_filename(y=self.month[:4], m=self.month[5:7])

    @property
    def subheader(self) -> str:
        if self.month == "1970/01":
            return self.options["undated_subheader"]
        formatted = self.month_date.strftime(self.options["subheader_date_format"])
        return self.options["subheader_pattern"].replace("%D", formatted)

    def get_context(self) -> dict[str, Any]:
        return {**super().get_context(), "month": self.month, "subheader": self.subheader}


def month_key(article: Page) -> str:
    return f"{article.date.year:04d}/{article.date.month:02d}"


def register_archiver(env: Environment) -> None:
    """Register the month archiver generator.

    Months appear in the order they are first met in the newest-first
    article list, so the most recent month comes first.
    """
    options = generator_options(env.config, "archiver", ARCHIVER_DEFAULTS)

    async def archive(tree: ContentTree, site_locals: SiteLocals) -> dict[str, Any]:
        months: dict[str, list[Page]] = {}
        for article in get_articles(tree, options["articles"]):
            months.setdefault(month_key(article), []).append(article)

        output: dict[str, Any] = {}
        month_data: list[dict[str, Any]] = []
        for month, articles in months.items():
            pages = _make_pages(env, MonthArchivePage, articles, options, month)
            slug = month.replace("/", ".")
            for page in pages:
                output[f"month.{slug}.{page.page_num}.page"] = page
            summary = summarise(pages, pages[0].month_date.strftime("%B %Y"))
            summary["month"] = month
            month_data.append(summary)

        site_locals["month_data"] = month_data
        return {"pages": output}

    env.register_generator("archiver", "archiver", archive)


class CategoryPage(GeneratedPage):
    """One page of the archive for a category.

    Attributes:
        category: Category name.
        slug: Slug used in keys and filenames, unique within one build.
    """

    def __init__(self, category: str, slug: str | None = None, **kwargs: Any):
        super().__init__(**kwargs)
        self.category = category
        self.slug = slug or slugify(category)

    @property
    def name(self) -> str:
        return "categoriser"

    @property
    def filename(self) -> str:
        return self.page_filename(c=self.slug)

    @property
    def subheader(self) -> str:
        return self.options["subheader_pattern"].replace("%C", self.category)

    def get_context(self) -> dict[str, Any]:
        return {**super().get_context(), "category": self.category, "subheader": self.subheader}


def article_categories(article: Page) -> list[str]:
    """Categories named by an article's ``categories`` metadata.

    The value may be a single string or a list of strings.
    """
    value = article.metadata.get("categories")
    if not value:
        return []
    if isinstance(value, str):
        return [value]
    return [str(category) for category in value if category]


def unique_slugs(names: list[str]) -> dict[str, str]:
    """Map each name to its slug, suffixing ``-2``, ``-3`` ... on clashes.

    Examples:
        >>> unique_slugs(["C", "C!", "D"])
        {'C': 'c', 'C!': 'c-2', 'D': 'd'}
    """
    slugs: dict[str, str] = {}
    used: set[str] = set()
    for name in names:
        base = slug = slugify(name)
        suffix = 2
        while slug in used:
            slug = f"{base}-{suffix}"
            suffix += 1
        used.add(slug)
        slugs[name] = slug
    return slugs


def register_categoriser(env: Environment) -> None:
    """Register the categoriser generator.

    By default each article is filed under its first category only, so
    every article lands in exactly one group. With ``multi_category`` an
    article appears under every category it names. Articles without a
    category, and articles naming the ``uncategorised`` group itself, go to
    that group, which comes after the named categories in sorted order.
    Categories whose names slugify alike get distinct slugs.
    """
    options = generator_options(env.config, "categoriser", CATEGORISER_DEFAULTS)

    async def categorise(tree: ContentTree, site_locals: SiteLocals) -> dict[str, Any]:
        fallback = options["uncategorised"]
        groups: dict[str, list[Page]] = {}
        for article in get_articles(tree, options["articles"]):
            categories = article_categories(article) or [fallback]
            if not options["multi_category"]:
                categories = categories[:1]
            for category in dict.fromkeys(categories):
                groups.setdefault(category, []).append(article)

        names = sorted(category for category in groups if category != fallback)
        if fallback in groups:
            names.append(fallback)
        slugs = unique_slugs(names)

        output: dict[str, Any] = {}
        category_data: list[dict[str, Any]] = []
        for category in names:
            pages = _make_pages(env, CategoryPage, groups[category], options, category, slugs[category])
            for page in pages:
                output[f"{page.slug}.{page.page_num}.page"] = page
            category_data.append(summarise(pages, category))

        site_locals["category_data"] = category_data
        return {"pages": output}

    env.register_generator("categoriser", "categoriser", categorise)


BUILTIN_PLUGINS = {
    "paginator": register_paginator,
    "archiver": register_archiver,
    "categoriser": register_categoriser,
}
