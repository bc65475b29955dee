"""Utility functions for Tessera.

This module contains the small, dependency-free helpers used throughout the
Tessera codebase: glob matching for handler patterns, slugs, date parsing and
formatting, URL joining and normalisation, and filesystem housekeeping.

Key functions:
    glob_match: Match a root-relative path against a handler glob pattern.
    slugify: Convert a title or category name to a URL slug.
    parse_date: Coerce front-matter date values into naive datetimes.
    join_url: Join a base URL and a path with exactly one separator.
    normalize_url: Use forward slashes and strip a trailing index.html.
    ensure_clean_dir: Ensure a directory exists and is empty.
"""

from __future__ import annotations

import functools
import posixpath
import re
import shutil
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any

EPOCH = datetime(1970, 1, 1)

_ABSOLUTE_URI_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9.+-]*:")

_SEGMENT = r"(?!\.)[^/]*"


def _split_alternatives(body: str) -> list[str]:
    """Split the inside of a brace group on top-level commas."""
    parts: list[str] = []
    depth = 0
    current = ""
    for char in body:
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
        if char == "," and depth == 0:
            parts.append(current)
            current = ""
        else:
            current += char
    parts.append(current)
    return parts


def _find_closing_brace(pattern: str, start: int) -> int:
    depth = 0
    for index in range(start, len(pattern)):
        if pattern[index] == "{":
            depth += 1
        elif pattern[index] == "}":
            depth -= 1
            if depth == 0:
                return index
    return -1


def _translate(pattern: str, segment_start: bool = True) -> str:
    """Translate a glob pattern into a regular expression fragment.

    Args:
        pattern: Glob pattern (``*``, ``?``, ``**``, ``[...]``, ``{a,b}``).
        segment_start: Whether the fragment begins a path segment.

    Returns:
        Regular expression source without anchors.
    """
    out: list[str] = []
    i = 0
    length = len(pattern)
    while i < length:
        char = pattern[i]
        if char == "*":
            if i + 1 < length and pattern[i + 1] == "*" and segment_start:
                while i < length and pattern[i] == "*":
                    i += 1
                if i < length and pattern[i] == "/":
                    i += 1
                    out.append(f"(?:{_SEGMENT}/)*")
                    segment_start = True
                else:
                    out.append(f"(?:{_SEGMENT}(?:/{_SEGMENT})*)?")
                    segment_start = False
                continue
            out.append(_SEGMENT if segment_start else "[^/]*")
            while i < length and pattern[i] == "*":
                i += 1
            segment_start = False
            continue
        if char == "?":
            out.append("(?!\\.)[^/]" if segment_start else "[^/]")
            segment_start = False
        elif char == "[":
            end = pattern.find("]", i + 2)
            if end == -1:
                out.append(re.escape(char))
            else:
                body = pattern[i + 1 : end]
                if body.startswith("!"):
                    body = "^" + body[1:]
                out.append("[" + body.replace("\\", "\\\\") + "]")
                i = end
            segment_start = False
        elif char == "{":
            end = _find_closing_brace(pattern, i)
            alternatives = _split_alternatives(pattern[i + 1 : end]) if end != -1 else []
            if len(alternatives) < 2:
                out.append(re.escape(char))
                segment_start = False
            else:
                translated = [_translate(alt, segment_start) for alt in alternatives]
                out.append("(?:" + "|".join(translated) + ")")
                i = end
                segment_start = False
        elif char == "/":
            out.append("/")
            segment_start = True
        else:
            out.append(re.escape(char))
            segment_start = False
        i += 1
    return "".join(out)


@functools.lru_cache(maxsize=256)
def compile_glob(pattern: str) -> re.Pattern[str]:
    """Compile a glob pattern into an anchored regular expression.

    Args:
        pattern: Glob pattern.

    Returns:
        Compiled regular expression matching whole paths.
    """
    return re.compile(r"\A" + _translate(pattern) + r"\Z")


def glob_match(path: str, pattern: str) -> bool:
    """Check whether a relative path matches a glob pattern.

    ``*`` matches any run of characters except ``/``, ``**`` matches across
    separators, ``{a,b}`` is alternation. Wildcards never match a leading dot,
    so hidden files are only matched by patterns that name the dot explicitly.

    Examples:
        >>> glob_match("posts/hello.md", "**/*.{md,markdown}")
        True

        >>> glob_match(".git/config", "**/*")
        False
    """
    return compile_glob(pattern).match(path.replace("\\", "/")) is not None


def slugify(text: str) -> str:
    """Convert a title or category name to a URL slug.

    Args:
        text: Human-readable text.

    Returns:
        Lowercase slug, or ``untitled`` when nothing usable remains.

    Examples:
        >>> slugify("Hello, World!")
        'hello-world'
    """
    slug = str(text).lower().strip()
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[-\s]+", "-", slug)
    return slug.strip("-") or "untitled"


def strip_extension(filename: str) -> str:
    """Remove the last extension from a filename.

    Examples:
        >>> strip_extension("archive.tar.gz")
        'archive.tar'
    """
    return posixpath.splitext(filename)[0]


def parse_date(value: Any) -> datetime | None:
    """Coerce a front-matter date value into a naive datetime.

    YAML already yields ``date`` and ``datetime`` objects for well-formed
    values; strings are parsed as ISO 8601 and numbers as Unix timestamps in
    milliseconds. Aware datetimes are converted to UTC and made naive so that
    articles can always be compared.

    Args:
        value: Raw metadata value.

    Returns:
        datetime, or None when the value is empty or unparsable.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        parsed = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    else:
        text = str(value).strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def rfc2822(value: datetime) -> str:
    """Format a datetime the way RSS feeds expect."""
    return value.strftime("%a, %d %b %Y %H:%M:%S +0000")


def is_absolute_uri(url: str) -> bool:
    """Check whether a URL carries a scheme (``https:``, ``mailto:`` ...)."""
    return bool(_ABSOLUTE_URI_RE.match(url))


def join_url(base: str, path: str) -> str:
    """Join a base URL and a path with exactly one separator.

    Examples:
        >>> join_url("/blog/", "/posts/a.html")
        '/blog/posts/a.html'

        >>> join_url("https://example.com", "about/")
        'https://example.com/about/'
    """
    return base.rstrip("/") + "/" + path.lstrip("/")


def normalize_url(url: str) -> str:
    """Normalise a URL to forward slashes and strip a trailing ``index.html``.

    Applying the function twice gives the same result as applying it once.

    Examples:
        >>> normalize_url("/posts/index.html")
        '/posts/'
    """
    url = url.replace("\\", "/")
    if url.endswith("/index.html"):
        url = url[: -len("index.html")]
    return url


def ensure_clean_dir(path: Path) -> None:
    """Ensure a directory exists and is empty.

    If the directory exists, removes all contents. Creates the
    directory if it doesn't exist.

    Args:
        path: Directory path to clean or create.
    """
    if path.exists():
        shutil.rmtree(str(path), ignore_errors=True)
        if path.exists():
            # Fallback for stubborn directories
            for item in path.rglob("*"):
                if item.is_file():
                    item.unlink()
            for item in sorted(
                [p for p in path.rglob("*") if p.is_dir()], reverse=True
            ):
                item.rmdir()
            path.rmdir()
    path.mkdir(parents=True, exist_ok=True)


def read_dir_recursive(directory: Path) -> list[str]:
    """List every file below a directory as sorted ``/``-separated paths.

    Args:
        directory: Root directory to walk.

    Returns:
        Relative file paths, or an empty list if the directory is missing.
    """
    if not directory.is_dir():
        return []
    return sorted(
        path.relative_to(directory).as_posix()
        for path in directory.rglob("*")
        if path.is_file()
    )
