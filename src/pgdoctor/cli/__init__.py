"""pgdoctor command-line interface."""

from pgdoctor.cli.main import app

__all__ = ["app"]
