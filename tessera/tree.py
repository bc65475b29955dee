"""Content tree for Tessera.

The content tree is an in-memory mirror of the contents directory. Interior
nodes are ``ContentTree`` instances mapping child names to nodes; leaves are
content items produced by the content handlers. Generated items are merged
into the same structure after the generators have run.

Key pieces:
- ContentTree: Interior node with ordered children, role groups and a weak
  parent reference.
- load_content: Instantiate the handler registered for one file.
- build_tree: Load a directory recursively into a ContentTree.
"""

from __future__ import annotations

import asyncio
import logging
import os
import weakref
from collections.abc import Callable, Iterable, Iterator, Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Union

import click

from .errors import LoadError
from .plugins import ContentPlugin, FilePath, PluginRegistry
from .utils import glob_match

if TYPE_CHECKING:
    from .environment import Environment

logger = logging.getLogger(__name__)

Node = Union["ContentTree", ContentPlugin]


class ContentTree(Mapping[str, Node]):
    """Interior node of the content tree.

    Children are kept in insertion order. Leaves are additionally listed
    under their role group in ``groups``; interior children are listed under
    the ``directories`` group.

    Attributes:
        name: Directory name, or the key of this node in its parent.
        groups: Role group name to the children of that group. The
            ``directories`` and ``files`` groups are always present.
    """

    is_leaf = False

    def __init__(self, name: str = "", groups: Iterable[str] = ()):
        self.name = name
        self._children: dict[str, Node] = {}
        self._parent: Callable[[], ContentTree | None] | None = None
        self.groups: dict[str, list[Node]] = {"directories": [], "files": []}
        for group in groups:
            self.groups.setdefault(group, [])

    @property
    def directories(self) -> list[ContentTree]:
        """Immediate child interior nodes."""
        return self.groups["directories"]

    def __getitem__(self, key: str) -> Node:
        return self._children[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._children)

    def __len__(self) -> int:
        return len(self._children)

    # Mapping equality compares contents; nodes are distinct objects.
    __eq__ = object.__eq__
    __hash__ = object.__hash__

    @property
    def parent(self) -> ContentTree | None:
        return self._parent() if self._parent is not None else None

    @parent.setter
    def parent(self, node: ContentTree | None) -> None:
        self._parent = weakref.ref(node) if node is not None else None

    @property
    def root(self) -> ContentTree:
        node = self
        while node.parent is not None:
            node = node.parent
        return node

    @property
    def index(self) -> Node | None:
        """The first child whose name starts with ``index.``."""
        for key, node in self._children.items():
            if key.startswith("index."):
                return node
        return None

    def add(self, name: str, node: Node, group: str | None = None) -> None:
        """Install a child node, replacing any existing child of that name.

        Args:
            name: Key of the child in this node.
            node: Interior node or content item.
            group: Role group for a leaf; defaults to the item's own group.
        """
        self._detach(name)
        node.parent = self
        self._children[name] = node
        if isinstance(node, ContentTree):
            self.directories.append(node)
        else:
            self.groups.setdefault(group or node.group, []).append(node)

    def _detach(self, name: str) -> None:
        existing = self._children.pop(name, None)
        if existing is None:
            return
        for group, items in self.groups.items():
            self.groups[group] = [i for i in items if i is not existing]

    def flatten(self) -> list[ContentPlugin]:
        """Return every leaf below this node, depth first."""
        items: list[ContentPlugin] = []
        for node in self._children.values():
            if isinstance(node, ContentTree):
                items.extend(node.flatten())
            else:
                items.append(node)
        return items

    def merge(self, other: ContentTree) -> None:
        """Merge another tree into this one, recursively.

        Leaves of ``other`` replace same-named leaves here; interior nodes are
        merged into existing interior nodes, or created.
        """
        for name, node in list(other.items()):
            if isinstance(node, ContentTree):
                target = self._children.get(name)
                if not isinstance(target, ContentTree):
                    target = ContentTree(name, node.groups)
                    self.add(name, target)
                target.merge(node)
            else:
                self.add(name, node)

    def inspect(self, depth: int = 0) -> str:
        """Render the tree as indented text, directories first."""
        pad = " " * depth
        lines: list[str] = []
        keys = sorted(
            self._children,
            key=lambda k: (not isinstance(self._children[k], ContentTree), k),
        )
        for key in keys:
            node = self._children[key]
            if isinstance(node, ContentTree):
                lines.append(f"{pad}{click.style(key, bold=True)}/")
                nested = node.inspect(depth + 1)
                if nested:
                    lines.append(nested)
            else:
                label = click.style(key, fg=node.plugin_colour) if node.plugin_colour else key
                info = click.style(node.plugin_info, fg="bright_black")
                lines.append(f"{pad}{label} ({info})")
        return "\n".join(lines)

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"ContentTree({self.name!r}, {len(self._children)} children)"


async def load_content(
    env: Environment,
    filepath: FilePath,
    registry: PluginRegistry | None = None,
) -> ContentPlugin | None:
    """Create the content item for a file using its registered handler.

    Args:
        env: Build environment, attached to the new item.
        filepath: File to load.
        registry: Handler registry; defaults to the environment's content
            handlers.

    Returns:
        The loaded item, or None when no handler matches the file.

    Raises:
        LoadError: If the handler's ``load`` fails. The error names the file's
            root-relative path.
    """
    registry = registry if registry is not None else env.content_plugins
    definition = registry.resolve(filepath.relative)
    if definition is None:
        logger.debug("No content handler for %s; skipping", filepath.relative)
        return None
    try:
        instance = await definition.plugin.load(filepath)
    except Exception as exc:
        raise LoadError(filepath.relative, str(exc) or type(exc).__name__, exc) from exc
    instance.env = env
    instance.plugin = definition
    return instance


def _is_ignored(env: Environment, relative: str) -> bool:
    for pattern in env.config.get("ignore") or []:
        if glob_match(relative, pattern):
            logger.debug("Ignoring %s (matches %s)", relative, pattern)
            return True
    return False


async def build_tree(
    env: Environment,
    directory: Path | None = None,
    registry: PluginRegistry | None = None,
) -> ContentTree:
    """Build a content tree from a directory and its subdirectories.

    Files in one directory are loaded concurrently, but children are
    installed in sorted name order so the resulting tree does not depend on
    load timing. If several files fail, the first in that order is reported.

    Args:
        env: Build environment.
        directory: Root directory; defaults to the environment's contents path.
        registry: Handler registry; defaults to the environment's content
            handlers.

    Returns:
        The root ContentTree.

    Raises:
        LoadError: If the directory is missing or any file fails to load.
    """
    root = Path(directory) if directory is not None else env.contents_path
    if not root.is_dir():
        raise LoadError(str(root), "contents directory does not exist")
    registry = registry if registry is not None else env.content_plugins
    return await _build_node(env, root, root, registry)


async def _build_node(
    env: Environment,
    root: Path,
    directory: Path,
    registry: PluginRegistry,
) -> ContentTree:
    name = "" if directory == root else directory.name
    tree = ContentTree(name, env.get_content_groups())
    try:
        names = sorted(await asyncio.to_thread(os.listdir, directory))
    except OSError as exc:
        source = directory.relative_to(root).as_posix() if directory != root else str(root)
        raise LoadError(source, f"cannot read directory: {exc.strerror or exc}", exc) from exc
    filepaths = [
        FilePath(full=str(directory / entry), relative=(directory / entry).relative_to(root).as_posix())
        for entry in names
    ]
    filepaths = [f for f in filepaths if not _is_ignored(env, f.relative)]

    async def create(filepath: FilePath) -> Node | None:
        if os.path.isdir(filepath.full):
            return await _build_node(env, root, Path(filepath.full), registry)
        if os.path.isfile(filepath.full):
            return await load_content(env, filepath, registry)
        return None

    results = await asyncio.gather(*(create(f) for f in filepaths), return_exceptions=True)
    for filepath, result in zip(filepaths, results):
        if isinstance(result, BaseException):
            raise result
        if result is not None:
            tree.add(filepath.relative.rsplit("/", 1)[-1], result)
    return tree
