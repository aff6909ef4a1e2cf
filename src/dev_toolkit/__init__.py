"""Task runner and monorepo maintenance CLI."""

__version__ = "0.1.0"
