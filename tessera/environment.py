"""Build environment for Tessera.

The environment holds everything a build needs besides the content itself:
the site configuration, the handler registries, generators, views and the
initial site locals. Plugins extend a site by registering against it.

Plugins:
    ``plugins`` in the config lists plugin references loaded in order after
    the built-in handlers. A reference is one of the built-in generator names
    (``paginator``, ``archiver``, ``categoriser``), a dotted module path, or
    a ``.py`` file relative to the project root. Modules must define
    ``register(env)``.

Key class:
- Environment: Registries plus ``load()`` and ``build()``.
"""

from __future__ import annotations

import importlib
import importlib.util
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable

from . import content, templates
from .archives import BUILTIN_PLUGINS
from .config import load_config, load_locals
from .errors import ConfigError
from .generators import SiteLocals, run_generators
from .plugins import GeneratorDef, GeneratorFunc, PluginDef, PluginRegistry, TemplatePlugin
from .tree import ContentTree, build_tree

logger = logging.getLogger(__name__)


@dataclass
class LoadedSite:
    """Everything a render pass needs.

    Attributes:
        contents: Content tree with generated items merged in.
        templates: Loaded templates by relative path.
        locals: Site locals after every generator has run.
    """

    contents: ContentTree
    templates: dict[str, TemplatePlugin]
    locals: SiteLocals


class Environment:
    """The build-time environment exposed to plugins and templates.

    Attributes:
        config: Site configuration.
        project_root: Directory relative paths in the config resolve against.
        mode: ``build`` or ``preview``.
        content_plugins: Content handler registry.
        template_plugins: Template handler registry.
        generators: Generators in registration order.
        views: Named view functions.
        plugins: Handler classes by name, for plugins to subclass.
        helpers: Functions shared with plugins and templates.
        locals: Initial site locals from the config.
    """

    def __init__(self, config: dict[str, Any], project_root: Path, mode: str = "build"):
        self.config = config
        self.project_root = Path(project_root).resolve()
        self.mode = mode
        self.content_plugins = PluginRegistry()
        self.template_plugins = PluginRegistry()
        self.generators: list[GeneratorDef] = []
        self.views: dict[str, Callable[..., Any]] = {}
        self.plugins: dict[str, type] = {}
        self.helpers: dict[str, Callable[..., Any]] = {}
        self.locals = load_locals(config, self.project_root)

    @classmethod
    def create(
        cls,
        project_root: Path,
        config_file: Path | None = None,
        overrides: dict[str, Any] | None = None,
        mode: str = "build",
    ) -> Environment:
        """Load the config, create an environment and load its plugins.

        Args:
            project_root: Root directory of the project.
            config_file: Optional config path relative to the project root.
            overrides: Config values taking precedence over the file.
            mode: ``build`` or ``preview``.
        """
        config = load_config(project_root, config_file)
        config.update({k: v for k, v in (overrides or {}).items() if v is not None})
        env = cls(config, project_root, mode=mode)
        env.load_plugins()
        return env

    def resolve_path(self, pathname: str | Path) -> Path:
        return self.project_root / pathname

    @property
    def contents_path(self) -> Path:
        return self.resolve_path(self.config.get("contents") or "contents")

    @property
    def templates_path(self) -> Path:
        return self.resolve_path(self.config.get("templates") or "templates")

    @property
    def output_path(self) -> Path:
        return self.resolve_path(self.config.get("output") or "build")

    def register_content_plugin(self, group: str, pattern: str, plugin: type) -> PluginDef:
        """Register a content handler class for files matching ``pattern``."""
        logger.debug("Registering content plugin %s that handles %s", plugin.__name__, pattern)
        self.plugins[plugin.__name__] = plugin
        return self.content_plugins.register(pattern, plugin, group)

    def register_template_plugin(self, pattern: str, plugin: type) -> PluginDef:
        """Register a template handler class for files matching ``pattern``."""
        logger.debug("Registering template plugin %s that handles %s", plugin.__name__, pattern)
        self.plugins[plugin.__name__] = plugin
        return self.template_plugins.register(pattern, plugin)

    def register_generator(self, name: str, group: str, fn: GeneratorFunc) -> GeneratorDef:
        """Register a generator. Generators run in registration order."""
        logger.debug("Registering generator %s", name)
        definition = GeneratorDef(name=name, group=group, fn=fn)
        self.generators.append(definition)
        return definition

    def register_view(self, name: str, view: Callable[..., Any]) -> None:
        self.views[name] = view

    def get_content_groups(self) -> list[str]:
        """Role groups of every content handler and generator, in order."""
        groups = self.content_plugins.groups()
        for generator in self.generators:
            if generator.group not in groups:
                groups.append(generator.group)
        return groups

    def load_plugins(self) -> None:
        """Register the built-in handlers, then every configured plugin."""
        content.register(self)
        templates.register(self)
        for reference in self.config.get("plugins") or []:
            self.load_plugin(str(reference))

    def load_plugin(self, reference: str) -> None:
        """Load one plugin and call its ``register(env)``.

        Raises:
            ConfigError: If the plugin cannot be imported or registration
                fails.
        """
        logger.debug("Loading plugin %s", reference)
        if reference in BUILTIN_PLUGINS:
            register = BUILTIN_PLUGINS[reference]
        else:
            module = self._import_plugin(reference)
            register = getattr(module, "register", None)
            if not callable(register):
                raise ConfigError(reference, "plugin module has no register(env) function")
        try:
            register(self)
        except Exception as exc:
            raise ConfigError(reference, f"error loading plugin: {exc}", exc) from exc

    def _import_plugin(self, reference: str) -> Any:
        try:
            if reference.endswith(".py"):
                path = self.resolve_path(reference)
                if not path.exists():
                    raise FileNotFoundError(f"no such file {path}")
                spec = importlib.util.spec_from_file_location(f"tessera_plugin_{path.stem}", path)
                module = importlib.util.module_from_spec(spec)
                spec.loader.exec_module(module)
                return module
            return importlib.import_module(reference)
        except Exception as exc:
            raise ConfigError(reference, f"error loading plugin: {exc}", exc) from exc

    async def get_contents(self, site_locals: SiteLocals) -> ContentTree:
        """Load the content tree and merge in every generator's output.

        File content is merged last, so a file wins over a generated item
        with the same key.
        """
        contents = await build_tree(self)
        generated = await run_generators(self, contents, site_locals)
        tree = ContentTree("", self.get_content_groups())
        tree.merge(generated)
        tree.merge(contents)
        return tree

    async def load(self) -> LoadedSite:
        """Load contents, run generators and load templates."""
        site_locals = SiteLocals(self.locals)
        contents = await self.get_contents(site_locals)
        loaded_templates = await templates.load_templates(self)
        return LoadedSite(contents=contents, templates=loaded_templates, locals=site_locals)

    async def build(self, output_dir: Path | None = None) -> tuple[LoadedSite, list[Any]]:
        """Load the site and render it into ``output_dir``.

        Returns:
            The loaded site and the items that were written.
        """
        from .build import render_tree

        site = await self.load()
        written = await render_tree(self, output_dir or self.output_path, site)
        return site, written
