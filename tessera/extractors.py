"""Front-matter extraction for Tessera.

A content file may begin with a block of YAML metadata, written either as a
``---`` delimited block or as a fenced block tagged ``metadata``::

    ---
    title: Hello
    date: 2024-01-15
    ---
    Body text.

    ```metadata
    title: Hello
    ```
    Body text.

Files without front matter have empty metadata and the whole file as body.
"""

from __future__ import annotations

import re
from typing import Any

import yaml

FRONTMATTER_RE = re.compile(r"\A-{3,}\s(.*?)-{3,}(\s.*|\s?)\Z", re.DOTALL)

FENCE_OPEN = "```metadata\n"
FENCE_CLOSE = "\n```\n"


class FrontMatterError(ValueError):
    """Front matter was present but could not be parsed."""


def split_frontmatter(text: str) -> tuple[str, str]:
    """Split a source file into its metadata block and body.

    Args:
        text: Raw file content.

    Returns:
        Tuple of (YAML source, body). The YAML source is empty when the file
        has no front matter.
    """
    if text.startswith("---"):
        match = FRONTMATTER_RE.match(text)
        if match:
            return match.group(1), match.group(2)
    elif text.startswith(FENCE_OPEN):
        end = text.find(FENCE_CLOSE)
        if end != -1:
            return text[len(FENCE_OPEN) : end], text[end + len(FENCE_CLOSE) :]
    return "", text


def parse_metadata(source: str) -> dict[str, Any]:
    """Parse a YAML metadata block.

    Args:
        source: YAML text (may be empty).

    Returns:
        Metadata mapping; empty for empty or non-mapping documents.

    Raises:
        FrontMatterError: If the YAML is malformed. The message quotes the
            offending line with a caret under the problem column.
    """
    if not source.strip():
        return {}
    try:
        data = yaml.safe_load(source)
    except yaml.MarkedYAMLError as exc:
        mark = exc.problem_mark
        lines = source.split("\n")
        if mark is not None and mark.line < len(lines):
            pad = " " * mark.column
            raise FrontMatterError(
                f"YAML: {exc.problem}\n    {lines[mark.line]}\n    {pad}^"
            ) from exc
        raise FrontMatterError(f"YAML parsing error: {exc}") from exc
    except yaml.YAMLError as exc:
        raise FrontMatterError(f"YAML parsing error: {exc}") from exc
    if not isinstance(data, dict):
        return {}
    return data


def extract_frontmatter(text: str) -> tuple[dict[str, Any], str]:
    """Extract YAML front matter from content.

    Args:
        text: Raw file content.

    Returns:
        Tuple of (metadata dict, remaining body).
    """
    source, body = split_frontmatter(text)
    return parse_metadata(source), body
