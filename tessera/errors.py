"""Error types raised by Tessera builds.

Every error names the artifact responsible (a content file, template,
generator or configuration key) so the CLI can report it without a traceback.

Classes:
    TesseraError: Base class for all Tessera errors.
    ConfigError: Configuration or plugin loading failed.
    BuildError: A build stage failed for a specific artifact.
    LoadError: A content or template file failed to read or parse.
    ResolutionError: An item names a template or view that is not registered.
    GeneratorError: A generator function raised.
    RenderError: A template's render call raised.
"""

from __future__ import annotations


class TesseraError(Exception):
    """Base class for errors reported to the user.

    Attributes:
        source: Name of the artifact that caused the error.
        message: Human-readable error message.
        original_error: The original exception that was caught, if any.
    """

    def __init__(
        self,
        source: str,
        message: str,
        original_error: Exception | None = None,
    ):
        self.source = source
        self.message = message
        self.original_error = original_error
        super().__init__(f"{source}: {message}")


class ConfigError(TesseraError):
    """Configuration could not be loaded or a plugin failed to register."""


class BuildError(TesseraError):
    """A build stage failed."""


class LoadError(BuildError):
    """A content or template file failed to load."""


class ResolutionError(BuildError):
    """An item refers to a template or view that does not exist."""


class GeneratorError(BuildError):
    """A generator function failed."""


class RenderError(BuildError):
    """A template failed while rendering an item."""


def format_error_message(exc: Exception) -> str:
    """Format an exception into a user-friendly error message.

    Args:
        exc: The exception to format.

    Returns:
        A human-readable error message.
    """
    error_type = type(exc).__name__
    error_msg = str(exc)

    # Common Jinja2 and Python errors read better without the class name noise
    if error_type == "UndefinedError":
        return f"Undefined variable: {error_msg}"
    if error_type == "TemplateSyntaxError":
        lineno = getattr(exc, "lineno", None)
        return f"Template syntax error on line {lineno}: {getattr(exc, 'message', error_msg)}"
    if error_type == "TypeError":
        return f"Type error: {error_msg}"
    if error_type == "AttributeError":
        return f"Attribute error: {error_msg}"

    return f"{error_type}: {error_msg}"
