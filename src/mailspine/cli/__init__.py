"""
CLI layer for mailspine.

Provides a Typer application whose sub-commands call the store, the
pure scheduling core and the housekeeping pass directly.  This package
handles only terminal transport: argument parsing, coloured output,
and table formatting.

Entry point::

    mailspine --help
"""

from mailspine.cli.app import app

__all__ = ["app"]
