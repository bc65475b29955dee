from pathlib import Path

from click.testing import CliRunner

from tessera import __version__
from tessera.cli import cli


def write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def create_site(root: Path) -> None:
    write(root / "contents" / "index.md", "---\ntitle: Home\ntemplate: page.html\n---\nHello\n")
    write(root / "contents" / "posts" / "one.md", "---\ntitle: One\n---\nPost\n")
    write(root / "contents" / "robots.txt", "User-agent: *\n")
    write(root / "templates" / "page.html", "<h1>{{ page.title }}</h1>")


def test_version():
    result = CliRunner().invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert f"tessera, version {__version__}" in result.output


def test_build_command(tmp_path):
    create_site(tmp_path)
    result = CliRunner().invoke(cli, ["-C", str(tmp_path), "build"], catch_exceptions=False)
    assert result.exit_code == 0
    assert "Built 2 files into" in result.output
    assert (tmp_path / "build" / "index.html").read_text(encoding="utf-8") == "<h1>Home</h1>"
    assert (tmp_path / "build" / "robots.txt").exists()


def test_build_command_output_and_clean(tmp_path):
    create_site(tmp_path)
    write(tmp_path / "out" / "stale.html", "old")
    result = CliRunner().invoke(cli, ["-C", str(tmp_path), "build", "-o", "out", "--clean"])
    assert result.exit_code == 0
    assert (tmp_path / "out" / "index.html").exists()
    assert not (tmp_path / "out" / "stale.html").exists()


def test_build_command_with_config_file(tmp_path):
    create_site(tmp_path)
    write(tmp_path / "site.yaml", "output: public\n")
    result = CliRunner().invoke(cli, ["-C", str(tmp_path), "-c", "site.yaml", "build"])
    assert result.exit_code == 0
    assert (tmp_path / "public" / "index.html").exists()


def test_build_failure_reports_source(tmp_path):
    create_site(tmp_path)
    write(tmp_path / "contents" / "index.md", "---\ntemplate: nowhere.html\n---\n")
    result = CliRunner().invoke(cli, ["-C", str(tmp_path), "build"])
    assert result.exit_code == 1
    assert "Build failed:" in result.output
    assert "Source: index.html" in result.output
    assert "unknown template 'nowhere.html'" in result.output


def test_missing_config_file_fails(tmp_path):
    create_site(tmp_path)
    result = CliRunner().invoke(cli, ["-C", str(tmp_path), "-c", "nope.yaml", "build"])
    assert result.exit_code == 1
    assert "Source: nope.yaml" in result.output


def test_tree_command(tmp_path):
    create_site(tmp_path)
    write(tmp_path / "contents" / "posts" / "one.md", "---\ntitle: One\ntemplate: page.html\n---\nPost\n")
    write(tmp_path / "tessera.yaml", "plugins: [paginator]\npaginator:\n  articles: posts\n")
    result = CliRunner().invoke(cli, ["-C", str(tmp_path), "tree"], catch_exceptions=False)
    assert result.exit_code == 0
    lines = result.output.splitlines()
    assert "posts/" in lines
    assert any(line.startswith(" one.md (url: /posts/one.html") for line in lines)
    assert any(line.startswith("index.page (url: /") for line in lines)


def test_tree_command_load_failure(tmp_path):
    result = CliRunner().invoke(cli, ["-C", str(tmp_path), "tree"])
    assert result.exit_code == 1
    assert "Loading failed:" in result.output


def test_preview_command(monkeypatch, tmp_path):
    called = {}

    class DummyServer:
        def __init__(self, project_root, config_file=None, http_port=None):
            called["root"] = project_root
            called["port"] = http_port

        def start(self):
            called["started"] = True

    monkeypatch.setattr("tessera.server.PreviewServer", DummyServer)
    result = CliRunner().invoke(cli, ["-C", str(tmp_path), "preview", "--port", "5050"], catch_exceptions=False)
    assert result.exit_code == 0
    assert called == {"root": tmp_path.resolve(), "port": 5050, "started": True}


def test_module_main_entrypoint():
    from tessera.__main__ import main

    assert callable(main)


def test_main_invokes_cli(monkeypatch):
    import tessera.cli as cli_mod

    called = {}

    def fake_cli(obj):
        called["obj"] = obj

    monkeypatch.setattr(cli_mod, "cli", fake_cli)
    cli_mod.main()
    assert called["obj"] == {}


def test_new_command_creates_buildable_site(tmp_path):
    runner = CliRunner()
    result = runner.invoke(cli, ["-C", str(tmp_path), "new", "blog"], catch_exceptions=False)
    assert result.exit_code == 0
    site = tmp_path / "blog"
    assert f"New Tessera site created at {site.resolve()}" in result.output
    assert (site / "tessera.yaml").exists()
    assert (site / "templates" / "layout.html").exists()
    assert (site / "contents" / "articles" / "second-post.md").exists()

    result = runner.invoke(cli, ["-C", str(site), "build"], catch_exceptions=False)
    assert result.exit_code == 0
    build = site / "build"
    index = (build / "index.html").read_text(encoding="utf-8")
    assert "A Second Post" in index
    assert "Hello, World" in index
    assert (build / "2024" / "01" / "index.html").exists()
    assert (build / "2024" / "02" / "index.html").exists()
    assert (build / "category" / "news" / "index.html").exists()
    assert (build / "css" / "style.css").exists()
    article = (build / "articles" / "hello-world" / "index.html").read_text(encoding="utf-8")
    assert 'href="/articles/second-post.html"' in article


def test_new_command_unknown_template(tmp_path):
    result = CliRunner().invoke(cli, ["-C", str(tmp_path), "new", "-T", "portfolio", "site"])
    assert result.exit_code != 0
    assert "Unknown site template 'portfolio'" in result.output
    assert "blog" in result.output
    assert not (tmp_path / "site").exists()


def test_new_command_refuses_non_empty_directory(tmp_path):
    write(tmp_path / "site" / "notes.txt", "keep me")
    runner = CliRunner()
    result = runner.invoke(cli, ["-C", str(tmp_path), "new", "site"])
    assert result.exit_code != 0
    assert "non-empty directory" in result.output
    assert not (tmp_path / "site" / "tessera.yaml").exists()

    result = runner.invoke(cli, ["-C", str(tmp_path), "new", "--force", "site"])
    assert result.exit_code == 0
    assert (tmp_path / "site" / "tessera.yaml").exists()
    assert (tmp_path / "site" / "notes.txt").read_text(encoding="utf-8") == "keep me"
