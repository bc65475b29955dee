import asyncio
import copy
from pathlib import Path

from tessera.archives import (
    CategoryPage,
    MonthArchivePage,
    PaginatorPage,
    article_categories,
    unique_slugs,
)
from tessera.config import DEFAULT_CONFIG
from tessera.content import MarkdownPage, StaticFile
from tessera.environment import Environment
from tessera.plugins import FilePath


def make_env(root: Path, **config) -> Environment:
    cfg = copy.deepcopy(DEFAULT_CONFIG)
    cfg.update(config)
    env = Environment(cfg, root)
    env.load_plugins()
    return env


def write_article(root: Path, name: str, front: str) -> None:
    path = root / "contents" / "articles" / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f"---\ntemplate: post.html\n{front}---\nBody of {name}\n", encoding="utf-8")


def create_blog(root: Path) -> None:
    write_article(root, "a.md", "title: A\ndate: 2024-02-10\ncategories: [news, tech]\n")
    write_article(root, "b.md", "title: B\ndate: 2024-01-20\ncategories: tech\n")
    write_article(root, "c.md", "title: C\ndate: 2024-01-05\n")


def load(env):
    return asyncio.run(env.load())


def test_paginator_pages_and_aliases(tmp_path):
    create_blog(tmp_path)
    site = load(make_env(tmp_path, plugins=["paginator"]))
    pages = site.contents["pages"]
    first, second = pages["1.page"], pages["2.page"]
    assert isinstance(first, PaginatorPage)
    assert site.contents["index.page"] is first
    assert site.contents["last.page"] is second
    assert [a.title for a in first.articles] == ["A", "B"]
    assert [a.title for a in second.articles] == ["C"]
    assert first.next_page is second and second.prev_page is first
    assert first.url == "/"
    assert second.url == "/page/2/"
    assert first.plugin.name == "paginator"
    assert site.contents.groups["paginator"] == [first, second]


def test_paginator_options(tmp_path):
    create_blog(tmp_path)
    env = make_env(tmp_path, plugins=["paginator"], paginator={"per_page": 10, "first": "blog/index.html"})
    site = load(env)
    assert list(site.contents["pages"]) == ["1.page"]
    assert site.contents["index.page"].url == "/blog/"
    assert env.helpers["get_articles"] is not None


def test_paginator_without_articles(tmp_path):
    (tmp_path / "contents").mkdir()
    site = load(make_env(tmp_path, plugins=["paginator"]))
    assert "index.page" not in site.contents
    assert len(site.contents["pages"]) == 0


def test_archiver_groups_by_month(tmp_path):
    create_blog(tmp_path)
    site = load(make_env(tmp_path, plugins=["archiver"]))
    month_data = site.locals["month_data"]
    assert [(m["month"], m["count"]) for m in month_data] == [("2024/02", 1), ("2024/01", 2)]
    assert [m["name"] for m in month_data] == ["February 2024", "January 2024"]
    assert month_data[1]["url"] == "/2024/01/"

    page = site.contents["pages"]["month.2024.01.1.page"]
    assert isinstance(page, MonthArchivePage)
    assert [a.title for a in page.articles] == ["B", "C"]
    assert page.filename == "2024/01/index.html"
    assert page.subheader == "Archive for January, 2024"
    assert page.get_context()["month"] == "2024/01"


def test_archiver_paginates_each_month(tmp_path):
    create_blog(tmp_path)
    site = load(make_env(tmp_path, plugins=["archiver"], archiver={"per_page": 1}))
    pages = site.contents["pages"]
    first, second = pages["month.2024.01.1.page"], pages["month.2024.01.2.page"]
    assert second.filename == "2024/01/page/2/index.html"
    assert first.next_page is second
    assert pages["month.2024.02.1.page"].next_page is None
    assert site.locals["month_data"][1]["count"] == 2


def test_archiver_undated_posts(tmp_path):
    write_article(tmp_path, "old.md", "title: Old\n")
    site = load(make_env(tmp_path, plugins=["archiver"]))
    page = site.contents["pages"]["month.1970.01.1.page"]
    assert page.subheader == "Undated posts"


def test_categoriser_partitions_by_first_category(tmp_path):
    create_blog(tmp_path)
    site = load(make_env(tmp_path, plugins=["categoriser"]))
    category_data = site.locals["category_data"]
    assert [(c["name"], c["count"]) for c in category_data] == [
        ("news", 1),
        ("tech", 1),
        ("Uncategorised", 1),
    ]
    assert sum(c["count"] for c in category_data) == 3
    assert category_data[0]["url"] == "/category/news/"

    pages = site.contents["pages"]
    assert isinstance(pages["tech.1.page"], CategoryPage)
    assert [a.title for a in pages["tech.1.page"].articles] == ["B"]
    assert [a.title for a in pages["uncategorised.1.page"].articles] == ["C"]
    assert pages["uncategorised.1.page"].filename == "category/uncategorised/index.html"
    assert pages["news.1.page"].subheader == "Archive for the ‘news’ category"


def test_categoriser_multi_category(tmp_path):
    create_blog(tmp_path)
    site = load(make_env(tmp_path, plugins=["categoriser"], categoriser={"multi_category": True}))
    counts = {c["name"]: c["count"] for c in site.locals["category_data"]}
    assert counts == {"news": 1, "tech": 2, "Uncategorised": 1}


def test_categoriser_slug_clash_and_named_fallback(tmp_path):
    write_article(tmp_path, "a.md", "title: A\ndate: 2024-01-04\ncategories: C\n")
    write_article(tmp_path, "b.md", "title: B\ndate: 2024-01-03\ncategories: \"C!\"\n")
    write_article(tmp_path, "c.md", "title: C\ndate: 2024-01-02\ncategories: Uncategorised\n")
    write_article(tmp_path, "d.md", "title: D\ndate: 2024-01-01\n")
    site = load(make_env(tmp_path, plugins=["categoriser"]))

    category_data = site.locals["category_data"]
    assert [(c["name"], c["url"], c["count"]) for c in category_data] == [
        ("C", "/category/c/", 1),
        ("C!", "/category/c-2/", 1),
        ("Uncategorised", "/category/uncategorised/", 2),
    ]
    pages = site.contents["pages"]
    assert pages["c-2.1.page"].category == "C!"
    assert pages["c-2.1.page"].filename == "category/c-2/index.html"
    assert [a.title for a in pages["uncategorised.1.page"].articles] == ["C", "D"]

    generated = pages.groups["categoriser"]
    titles = {a.title for page in generated for a in page.articles}
    assert titles == {"A", "B", "C", "D"}
    assert len({page.filename for page in generated}) == len(generated)


def test_unique_slugs():
    assert unique_slugs(["C", "C!", "c?", "D"]) == {"C": "c", "C!": "c-2", "c?": "c-3", "D": "d"}


def test_archiver_three_articles_over_two_months(tmp_path):
    write_article(tmp_path, "a.md", "title: A\ndate: 2024-01-01\n")
    write_article(tmp_path, "b.md", "title: B\ndate: 2024-01-15\n")
    write_article(tmp_path, "c.md", "title: C\ndate: 2024-02-01\n")
    site = load(make_env(tmp_path, plugins=["archiver"], archiver={"per_page": 2}))

    month_data = site.locals["month_data"]
    assert [(m["month"], m["count"]) for m in month_data] == [("2024/02", 1), ("2024/01", 2)]
    pages = site.contents["pages"]
    assert sorted(pages) == ["month.2024.01.1.page", "month.2024.02.1.page"]
    assert [a.title for a in pages["month.2024.01.1.page"].articles] == ["B", "A"]
    assert [a.title for a in pages["month.2024.02.1.page"].articles] == ["C"]
    assert pages["month.2024.01.1.page"].next_page is None


def test_article_categories():
    def page(categories):
        return MarkdownPage(FilePath(full="/a.md", relative="a.md"), {"categories": categories}, "")

    assert article_categories(page("one")) == ["one"]
    assert article_categories(page(["x", "", "y"])) == ["x", "y"]
    assert article_categories(page(None)) == []


def test_generators_share_site_locals(tmp_path):
    create_blog(tmp_path)
    site = load(make_env(tmp_path, plugins=["paginator", "archiver", "categoriser"], locals={"name": "Blog"}))
    assert site.locals["name"] == "Blog"
    assert "month_data" in site.locals
    assert "category_data" in site.locals
    pages = site.contents["pages"]
    assert "1.page" in pages
    assert "month.2024.02.1.page" in pages
    assert "news.1.page" in pages


def test_file_content_wins_over_generated(tmp_path):
    create_blog(tmp_path)
    (tmp_path / "contents" / "pages").mkdir()
    (tmp_path / "contents" / "pages" / "1.page").write_text("static", encoding="utf-8")
    site = load(make_env(tmp_path, plugins=["paginator"]))
    assert isinstance(site.contents["pages"]["1.page"], StaticFile)
    assert isinstance(site.contents["pages"]["2.page"], PaginatorPage)
