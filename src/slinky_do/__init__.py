"""
slinky-do - An Obsidian vault companion exposed as an MCP server.
This package keeps a queryable model of a Markdown vault: frontmatter metadata,
tags inferred from folder structure and content, and a flat TODO checklist,
all derived from the documents themselves rather than a database.

This version uses synchronous operations.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("slinky-do")
except PackageNotFoundError:
    __version__ = "1.0.0"
