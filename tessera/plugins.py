"""Plugin protocol definitions for Tessera.

Content handlers, template handlers and generators are registered with the
environment against glob patterns and resolved at build time. This module
defines the base classes handlers derive from and the ordered registry used to
resolve a file to its handler.

Resolution scans the registry in reverse registration order and takes the
first matching pattern, so a handler registered later overrides earlier ones
for the files both match.

Key classes:
- FilePath: Absolute and root-relative path of a source file.
- ContentPlugin: Base class for content items.
- TemplatePlugin: Base class for compiled templates.
- PluginDef: Pattern, handler class and role group.
- PluginRegistry: Ordered list of PluginDefs with last-match-wins lookup.
- GeneratorDef: Name, role group and coroutine of a generator.
"""

from __future__ import annotations

import weakref
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from .utils import glob_match, is_absolute_uri, join_url, normalize_url

if TYPE_CHECKING:
    from .environment import Environment
    from .generators import SiteLocals
    from .tree import ContentTree


@dataclass(frozen=True)
class FilePath:
    """Location of a source file.

    Attributes:
        full: Absolute filesystem path.
        relative: Path relative to the contents (or templates) root, always
            ``/``-separated.
    """

    full: str
    relative: str


class ContentPlugin:
    """Base class for content items.

    Concrete handlers implement ``load()``, ``filename`` and ``view``. The
    loader attaches ``env`` and ``plugin`` after construction, and the tree
    sets ``parent`` when the item is installed as a leaf.

    The parent reference is weak: the tree owns its children, an item only
    looks upward through it when resolving relative links.
    """

    is_leaf = True
    # click colour used when printing the content tree; None prints plain
    plugin_colour: str | None = "cyan"

    def __init__(self) -> None:
        self._parent: Callable[[], ContentTree | None] | None = None
        self.env: Environment | None = None
        self.plugin: PluginDef | GeneratorDef | None = None

    @property
    def name(self) -> str:
        return type(self).__name__

    @property
    def parent(self) -> ContentTree | None:
        """The tree node this item is a leaf of, if it is still alive."""
        return self._parent() if self._parent is not None else None

    @parent.setter
    def parent(self, node: ContentTree | None) -> None:
        self._parent = weakref.ref(node) if node is not None else None

    @property
    def config(self) -> dict[str, Any]:
        return self.env.config if self.env is not None else {}

    @property
    def group(self) -> str:
        return self.plugin.group if self.plugin is not None else "files"

    @classmethod
    async def load(cls, filepath: FilePath) -> ContentPlugin:
        """Create an item from a source file."""
        raise NotImplementedError(f"{cls.__name__}.load() not implemented")

    @property
    def filename(self) -> str:
        """Output path of the item, relative to the output directory."""
        raise NotImplementedError("filename not implemented")

    @property
    def view(self) -> str | Callable[..., Awaitable[bytes | None]]:
        """Name of a registered view, or a view coroutine function."""
        raise NotImplementedError("view not implemented")

    def get_url(self, base: str | None = None) -> str:
        """Compute the public URL of the item.

        Args:
            base: Base path overriding the configured ``base_url``.

        Returns:
            Forward-slash URL; a trailing ``index.html`` is stripped.
        """
        base = base or self.config.get("base_url") or "/"
        if not is_absolute_uri(base) and not base.startswith("/"):
            base = "/" + base
        return normalize_url(join_url(base, self.filename.replace("\\", "/")))

    @property
    def url(self) -> str:
        return self.get_url()

    def get_context(self) -> dict[str, Any]:
        """Per-item fields made available to the item's template."""
        return {"page": self}

    @property
    def plugin_info(self) -> str:
        return f"url: {self.get_url()} plugin: {self.name}"

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"<{self.name} {self.filename}>"


class TemplatePlugin:
    """Base class for template handlers.

    Concrete handlers compile the template in ``load()`` and render it with a
    context mapping in ``render()``.
    """

    @property
    def name(self) -> str:
        return type(self).__name__

    @classmethod
    async def load(cls, filepath: FilePath) -> TemplatePlugin:
        raise NotImplementedError(f"{cls.__name__}.load() not implemented")

    async def render(self, context: dict[str, Any]) -> bytes:
        raise NotImplementedError("render() not implemented")


@dataclass(frozen=True)
class PluginDef:
    """A registered handler.

    Attributes:
        pattern: Glob pattern matched against root-relative paths.
        plugin: Handler class exposing an async ``load(filepath)`` factory.
        group: Role group of the items it produces (e.g. ``pages``).
    """

    pattern: str
    plugin: type
    group: str = "pages"

    @property
    def name(self) -> str:
        return self.plugin.__name__


GeneratorFunc = Callable[["ContentTree", "SiteLocals"], Awaitable[dict[str, Any]]]


@dataclass(frozen=True)
class GeneratorDef:
    """A registered generator.

    Attributes:
        name: Generator name used in diagnostics.
        group: Role group given to the items it produces.
        fn: Coroutine function ``(tree, site_locals) -> {key: item | {...}}``.
    """

    name: str
    group: str
    fn: GeneratorFunc


class PluginRegistry:
    """Ordered registry of handler definitions.

    Registration order is preserved; ``resolve`` scans it backwards so the
    most recently registered matching handler wins.
    """

    def __init__(self) -> None:
        self._defs: list[PluginDef] = []

    def register(self, pattern: str, plugin: type, group: str = "pages") -> PluginDef:
        """Register a handler class for a glob pattern.

        Args:
            pattern: Glob pattern of root-relative paths the handler accepts.
            plugin: Handler class.
            group: Role group for items the handler produces.

        Returns:
            The new definition.
        """
        definition = PluginDef(pattern=pattern, plugin=plugin, group=group)
        self._defs.append(definition)
        return definition

    def resolve(self, relative_path: str) -> PluginDef | None:
        """Find the handler for a root-relative path.

        Args:
            relative_path: ``/``-separated path relative to the root.

        Returns:
            The last-registered matching definition, or None.
        """
        for definition in reversed(self._defs):
            if glob_match(relative_path, definition.pattern):
                return definition
        return None

    def groups(self) -> list[str]:
        """Distinct role groups in registration order."""
        seen: list[str] = []
        for definition in self._defs:
            if definition.group not in seen:
                seen.append(definition.group)
        return seen

    def __iter__(self) -> Iterator[PluginDef]:
        return iter(self._defs)

    def __len__(self) -> int:
        return len(self._defs)

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"PluginRegistry({len(self._defs)} handlers)"
