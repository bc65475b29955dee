"""HTML utility functions for Tessera.

This module provides the small pieces of HTML string building used by the
Markdown renderer: escaping attribute values and emitting link and image
tags.

Functions:
    escape_html: Escape special HTML characters in a string.
    link_tag: Build an ``<a>`` element.
    image_tag: Build an ``<img>`` element.
"""

from __future__ import annotations


def escape_html(text: str) -> str:
    """Escape special HTML characters in a string.

    Converts the following characters to their HTML entity equivalents:
    - & becomes &amp;
    - < becomes &lt;
    - > becomes &gt;
    - " becomes &quot;

    Args:
        text: The string to escape.

    Returns:
        The escaped string, safe for inclusion in HTML.

    Examples:
        >>> escape_html('<script>alert("XSS")</script>')
        '&lt;script&gt;alert(&quot;XSS&quot;)&lt;/script&gt;'

        >>> escape_html('Tom & Jerry')
        'Tom &amp; Jerry'
    """
    return (
        text.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


def link_tag(href: str, text: str, title: str | None = None) -> str:
    """Build an anchor element.

    The title attribute is only emitted when non-empty. ``text`` is already
    rendered HTML and is inserted as is.

    Examples:
        >>> link_tag("/about/", "About")
        '<a href="/about/">About</a>'

        >>> link_tag("/about/", "About", 'The "about" page')
        '<a href="/about/" title="The &quot;about&quot; page">About</a>'
    """
    out = f'<a href="{escape_html(href)}"'
    if title:
        out += f' title="{escape_html(title)}"'
    return out + f">{text}</a>"


def image_tag(src: str, alt: str, title: str | None = None) -> str:
    """Build an image element.

    The alt attribute is always emitted, the title attribute only when
    non-empty. Like ``text`` in ``link_tag``, ``alt`` is already escaped.

    Examples:
        >>> image_tag("/img/cat.png", "A cat")
        '<img src="/img/cat.png" alt="A cat"/>'
    """
    out = f'<img src="{escape_html(src)}" alt="{alt}"'
    if title:
        out += f' title="{escape_html(title)}"'
    return out + "/>"
