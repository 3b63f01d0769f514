"""
CLI layer for claimrun.

Entry point::

    claimrun --help
"""

from claimrun.cli.app import app

__all__ = ["app"]
