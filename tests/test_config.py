import json
from pathlib import Path

import pytest

from tessera.config import DEFAULT_CONFIG, generator_options, load_config, load_locals
from tessera.errors import ConfigError


def test_load_config_defaults_when_missing(tmp_path):
    config = load_config(tmp_path)
    assert config == DEFAULT_CONFIG
    config["ignore"].append("x")
    assert DEFAULT_CONFIG["ignore"] == []


def test_load_config_merges_file(tmp_path):
    (tmp_path / "tessera.yaml").write_text(
        "base_url: /blog/\npaginator:\n  per_page: 5\n", encoding="utf-8"
    )
    config = load_config(tmp_path)
    assert config["base_url"] == "/blog/"
    assert config["paginator"] == {"per_page": 5}
    assert config["output"] == "build"


def test_load_config_explicit_missing_file(tmp_path):
    with pytest.raises(ConfigError) as excinfo:
        load_config(tmp_path, Path("other.yaml"))
    assert excinfo.value.source == "other.yaml"


def test_load_config_invalid_yaml(tmp_path):
    (tmp_path / "tessera.yaml").write_text("base_url: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(tmp_path)


def test_load_config_ignores_non_mapping(tmp_path, caplog):
    (tmp_path / "tessera.yaml").write_text("- a\n- b\n", encoding="utf-8")
    config = load_config(tmp_path)
    assert config["contents"] == "contents"
    assert "expected a mapping" in caplog.text


def test_load_locals_inline_and_files(tmp_path):
    assert load_locals({"locals": {"name": "Site"}}, tmp_path) == {"name": "Site"}
    assert load_locals({}, tmp_path) == {}

    (tmp_path / "locals.json").write_text(json.dumps({"name": "Json"}), encoding="utf-8")
    assert load_locals({"locals": "locals.json"}, tmp_path) == {"name": "Json"}

    (tmp_path / "locals.yaml").write_text("name: Yaml\n", encoding="utf-8")
    assert load_locals({"locals": "locals.yaml"}, tmp_path) == {"name": "Yaml"}


def test_load_locals_errors(tmp_path):
    with pytest.raises(ConfigError):
        load_locals({"locals": "missing.json"}, tmp_path)
    (tmp_path / "list.json").write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_locals({"locals": "list.json"}, tmp_path)


def test_generator_options():
    defaults = {"per_page": 2, "template": "index.html"}
    assert generator_options({}, "paginator", defaults) == defaults
    merged = generator_options(
        {"paginator": {"per_page": 10, "template": None}}, "paginator", defaults
    )
    assert merged == {"per_page": 10, "template": "index.html"}
