#!/usr/bin/env python
"""Main entry point for the slinky-do MCP server."""
import argparse
import atexit
import logging
import os
import sys
from pathlib import Path

from slinky_do.config import config
from slinky_do.exceptions import VaultError
from slinky_do.observability import configure_logging, metrics
from slinky_do.server.mcp_server import VaultMcpServer


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="slinky-do vault MCP server")
    parser.add_argument(
        "--vault-path",
        help="Root directory of the vault",
        type=str,
        default=os.environ.get("OBSIDIAN_VAULT_PATH")
    )
    parser.add_argument(
        "--todo-file",
        help="Checklist document, relative to the vault root",
        type=str,
        default=os.environ.get("SLINKY_TODO_FILE")
    )
    parser.add_argument(
        "--rules-file",
        help="YAML file with metadata inference rules",
        type=str,
        default=os.environ.get("SLINKY_RULES_FILE")
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("SLINKY_LOG_LEVEL", "INFO")
    )
    return parser.parse_args(argv)


def update_config(args):
    """Update the global config with command line arguments.

    Raises:
        ValueError: If the checklist path is absolute or leaves the vault
    """
    if args.vault_path:
        config.vault_path = Path(args.vault_path)
    if args.todo_file:
        todo_file = Path(args.todo_file)
        if todo_file.is_absolute() or ".." in todo_file.parts:
            raise ValueError("--todo-file must be a path inside the vault")
        config.todo_file = todo_file
    if args.rules_file:
        config.rules_file = Path(args.rules_file)


def _save_metrics_on_exit():
    """Save metrics to disk on server shutdown."""
    if metrics.save_metrics():
        logging.getLogger(__name__).info("Metrics saved to disk on shutdown")


def main(argv=None):
    """Run the slinky-do MCP server."""
    args = parse_args(argv)

    # Configure logging (console + persistent file logging with rotation)
    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    try:
        log_dir = configure_logging(level=log_level, console=True)
    except OSError as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logging.getLogger(__name__).warning(f"Failed to configure file logging: {e}")
        log_dir = None

    logger = logging.getLogger(__name__)
    if log_dir:
        logger.info(f"Persistent logging enabled: {log_dir}")

    try:
        update_config(args)
    except ValueError as e:
        logger.error(f"Invalid arguments: {e}")
        sys.exit(1)

    atexit.register(_save_metrics_on_exit)

    vault_root = config.get_vault_root()
    if not vault_root.is_dir():
        logger.error(f"Vault directory does not exist: {vault_root}")
        sys.exit(1)

    try:
        logger.info(f"Starting slinky-do MCP server on {vault_root}")
        server = VaultMcpServer()
        server.run()
    except VaultError as e:
        logger.error(f"Failed to start server: {e}")
        sys.exit(1)
    except Exception as e:
        logger.error(f"Error running server: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
