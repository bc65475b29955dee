import asyncio
import copy
from datetime import datetime
from pathlib import Path

import pytest

from tessera.config import DEFAULT_CONFIG
from tessera.content import MarkdownPage
from tessera.environment import Environment
from tessera.errors import GeneratorError
from tessera.generators import (
    GeneratedPage,
    SiteLocals,
    chunk,
    get_articles,
    link_chain,
    run_generator,
    run_generators,
    summarise,
)
from tessera.plugins import FilePath, GeneratorDef
from tessera.tree import ContentTree


def make_env(root: Path, **config) -> Environment:
    cfg = copy.deepcopy(DEFAULT_CONFIG)
    cfg.update(config)
    env = Environment(cfg, root)
    env.load_plugins()
    return env


def article(relative: str, day: int, template: str = "post.html", **metadata) -> MarkdownPage:
    metadata = {"date": datetime(2024, 1, day), "template": template, **metadata}
    return MarkdownPage(FilePath(full="/src/" + relative, relative=relative), metadata, "")


def options(**overrides):
    base = {"template": "index.html", "first": "index.html", "filename": "page/%d/index.html", "per_page": 2}
    base.update(overrides)
    return base


@pytest.mark.parametrize(
    ("count", "size", "expected"),
    [(0, 2, []), (1, 2, [1]), (4, 2, [2, 2]), (5, 2, [2, 2, 1]), (3, 10, [3])],
)
def test_chunk_sizes(count, size, expected):
    chunks = chunk(list(range(count)), size)
    assert [len(c) for c in chunks] == expected
    assert [x for c in chunks for x in c] == list(range(count))


def test_chunk_rejects_bad_size():
    with pytest.raises(ValueError):
        chunk([1, 2], 0)


def test_link_chain():
    pages = [GeneratedPage(i + 1, [], options()) for i in range(3)]
    link_chain(pages)
    assert pages[0].prev_page is None
    assert pages[-1].next_page is None
    for index in range(len(pages) - 1):
        assert pages[index].next_page is pages[index + 1]
        assert pages[index + 1].prev_page is pages[index]


def test_generated_page_filenames_and_context():
    first = GeneratedPage(1, ["a"], options())
    second = GeneratedPage(2, ["b"], options())
    link_chain([first, second])
    assert first.filename == "index.html"
    assert second.filename == "page/2/index.html"
    assert second.url == "/page/2/"
    assert first.template == "index.html"
    context = second.get_context()
    assert context["articles"] == ["b"]
    assert context["page_num"] == 2
    assert context["prev_page"] is first
    assert context["next_page"] is None
    assert context["page"] is second


def test_summarise():
    pages = [GeneratedPage(1, ["a", "b"], options()), GeneratedPage(2, ["c"], options())]
    assert summarise(pages, "All") == {"name": "All", "url": "/", "count": 3}


def test_site_locals():
    site_locals = SiteLocals({"name": "Site"})
    site_locals["count"] = 1
    site_locals["count"] = 2
    snapshot = site_locals.snapshot()
    site_locals["later"] = True
    assert snapshot == {"name": "Site", "count": 2}
    assert dict(site_locals) == {"name": "Site", "count": 2, "later": True}


def build_articles_tree():
    root = ContentTree("", ["pages"])
    articles = ContentTree("articles", ["pages"])
    root.add("articles", articles)
    old = article("articles/old.md", 1)
    draft = article("articles/draft.md", 20, template="none")
    mid = ContentTree("mid", ["pages"])
    mid_index = article("articles/mid/index.md", 10)
    empty_dir = ContentTree("empty", ["pages"])
    new = article("articles/new.md", 15)
    same_day = article("articles/same.md", 15)
    articles.add("old.md", old, "pages")
    articles.add("draft.md", draft, "pages")
    articles.add("mid", mid)
    mid.add("index.md", mid_index, "pages")
    articles.add("empty", empty_dir)
    articles.add("new.md", new, "pages")
    articles.add("same.md", same_day, "pages")
    return root, [new, same_day, mid_index, old]


def test_get_articles_newest_first():
    root, expected = build_articles_tree()
    assert get_articles(root, "articles") == expected
    assert get_articles(root, "/articles/") == expected


def test_get_articles_missing_subtree():
    root, _ = build_articles_tree()
    assert get_articles(root, "nope") == []
    assert get_articles(root, "articles/old.md") == []


def make_generator(name, fn, group="generated"):
    return GeneratorDef(name=name, group=group, fn=fn)


def test_run_generator_builds_nested_tree(tmp_path):
    env = make_env(tmp_path)
    page = GeneratedPage(1, [], options())

    async def generate(tree, site_locals):
        site_locals["seen"] = True
        return {"nested": {"deep.page": page, "skipped": None}}

    generator = make_generator("gen", generate)
    site_locals = SiteLocals()
    result = asyncio.run(run_generator(env, ContentTree(), generator, site_locals))
    assert result["nested"]["deep.page"] is page
    assert page.env is env
    assert page.plugin is generator
    assert page.parent is result["nested"]
    assert result["nested"].groups["generated"] == [page]
    assert "skipped" not in result["nested"]
    assert site_locals["seen"] is True


def test_run_generator_wraps_errors(tmp_path):
    env = make_env(tmp_path)

    async def boom(tree, site_locals):
        raise RuntimeError("no articles")

    with pytest.raises(GeneratorError) as excinfo:
        asyncio.run(run_generator(env, ContentTree(), make_generator("boom", boom), SiteLocals()))
    assert excinfo.value.source == "boom"
    assert "no articles" in excinfo.value.message


def test_run_generator_rejects_non_mapping(tmp_path):
    env = make_env(tmp_path)

    async def bad(tree, site_locals):
        return ["not", "a", "mapping"]

    async def bad_item(tree, site_locals):
        return {"x": 42}

    with pytest.raises(GeneratorError):
        asyncio.run(run_generator(env, ContentTree(), make_generator("bad", bad), SiteLocals()))
    with pytest.raises(GeneratorError):
        asyncio.run(run_generator(env, ContentTree(), make_generator("bad_item", bad_item), SiteLocals()))


def test_generators_run_in_order_and_later_wins(tmp_path):
    env = make_env(tmp_path)
    first_page = GeneratedPage(1, [], options())
    second_page = GeneratedPage(1, [], options())
    order = []

    async def first(tree, site_locals):
        order.append("first")
        site_locals["value"] = "first"
        return {"shared.page": first_page, "only-first.page": GeneratedPage(1, [], options())}

    async def second(tree, site_locals):
        order.append(("second", site_locals["value"]))
        site_locals["value"] = "second"
        return {"shared.page": second_page}

    env.register_generator("first", "one", first)
    env.register_generator("second", "two", second)
    site_locals = SiteLocals()
    merged = asyncio.run(run_generators(env, ContentTree(), site_locals))
    assert order == ["first", ("second", "first")]
    assert merged["shared.page"] is second_page
    assert "only-first.page" in merged
    assert site_locals["value"] == "second"
