"""Storage layer for the slinky-do vault server."""

from slinky_do.storage.filesystem import FileSystem, LocalFileSystem
from slinky_do.storage.scan_cache import CacheState, ScanCache
from slinky_do.storage.vault_scanner import VaultScanner

__all__ = [
    "FileSystem",
    "LocalFileSystem",
    "VaultScanner",
    "ScanCache",
    "CacheState",
]
