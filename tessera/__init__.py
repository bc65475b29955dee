"""Tessera static site generator.

Tessera turns a tree of content files into a rendered site. Content handlers
parse source files into items, generators derive virtual pages (pagination,
monthly archives, category indexes) and template handlers render items to bytes.

The main entry point is the CLI module, which provides commands for building a
site, running the preview server and inspecting the content tree.

Architecture:
- Content and template handlers are registered against glob patterns and
  resolved last-registered-first.
- The content tree mirrors the contents directory; generated items are merged
  into it after every generator has run.
- Site locals are threaded explicitly through the generator pipeline into the
  render context.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
