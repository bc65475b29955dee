"""Console logging for Tessera.

Library modules log through ``logging.getLogger(__name__)``; this module
installs the single console handler used by the CLI. Messages are styled with
click so that colour handling follows the terminal.
"""

from __future__ import annotations

import logging

import click

logger = logging.getLogger("tessera")


class ClickHandler(logging.Handler):
    """Logging handler that writes styled messages with ``click.echo``.

    INFO messages are printed plain, DEBUG messages carry a grey ``verbose``
    prefix and WARNING messages a yellow ``warn`` prefix. Errors go to stderr
    with a red ``error`` prefix, followed by the traceback when running
    verbosely.

    Attributes:
        quiet: Suppress everything below ERROR.
        verbose: Include tracebacks with errors.
    """

    def __init__(self, verbose: bool = False, quiet: bool = False):
        super().__init__(level=logging.DEBUG if verbose else logging.INFO)
        self.verbose = verbose
        self.quiet = quiet

    def emit(self, record: logging.LogRecord) -> None:
        try:
            message = record.getMessage()
            if record.levelno >= logging.ERROR:
                click.echo(f"\n {click.style('error', fg='red')} {message}", err=True)
                if self.verbose and record.exc_info:
                    click.echo(self.format_exception(record), err=True)
                return
            if self.quiet:
                return
            if record.levelno >= logging.WARNING:
                message = f"{click.style('warn', fg='yellow')} {message}"
            elif record.levelno < logging.INFO:
                message = f"{click.style('verbose', fg='bright_black')} {message}"
            click.echo(f"  {message}")
        except Exception:  # pragma: no cover - logging must never raise
            self.handleError(record)

    def format_exception(self, record: logging.LogRecord) -> str:
        return logging.Formatter().formatException(record.exc_info)


def setup_logging(verbose: bool = False, quiet: bool = False) -> logging.Logger:
    """Install the console handler on the ``tessera`` logger.

    Calling this again replaces the previous handler, so the CLI can be
    invoked repeatedly in one process (as the tests do).

    Args:
        verbose: Show DEBUG messages and error tracebacks.
        quiet: Only show errors.

    Returns:
        The configured ``tessera`` logger.
    """
    for handler in list(logger.handlers):
        if isinstance(handler, ClickHandler):
            logger.removeHandler(handler)
    logger.addHandler(ClickHandler(verbose=verbose, quiet=quiet))
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    return logger
