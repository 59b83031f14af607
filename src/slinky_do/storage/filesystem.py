"""File system access used by the scanner and the vault service.

The scanner only needs to list directories and read files; tests substitute
an in-memory implementation of ``FileSystem``.
"""
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Protocol, Union

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DirEntry:
    """One child of a listed directory."""

    name: str
    path: Path
    is_dir: bool
    is_file: bool


@dataclass(frozen=True)
class FileStat:
    """The subset of ``os.stat`` results the vault uses."""

    size: int
    modified: float


class FileSystem(Protocol):
    """Read-only capability consumed by the vault scanner."""

    def list_dir(self, path: Path) -> List[DirEntry]:
        """List a directory's children, sorted by name."""
        ...

    def read_text(self, path: Path) -> str:
        """Read a whole file as UTF-8 text."""
        ...

    def stat(self, path: Path) -> FileStat:
        """Return size and modification time of a file."""
        ...


class LocalFileSystem:
    """``FileSystem`` backed by the real disk."""

    def list_dir(self, path: Union[str, Path]) -> List[DirEntry]:
        # symbolic links are reported as neither directory nor file
        entries = []
        with os.scandir(path) as it:
            for entry in it:
                entries.append(
                    DirEntry(
                        name=entry.name,
                        path=Path(entry.path),
                        is_dir=entry.is_dir(follow_symlinks=False),
                        is_file=entry.is_file(follow_symlinks=False),
                    )
                )
        return sorted(entries, key=lambda e: e.name)

    def read_text(self, path: Union[str, Path]) -> str:
        with open(path, "r", encoding="utf-8", newline="") as f:
            return f.read()

    def stat(self, path: Union[str, Path]) -> FileStat:
        st = os.stat(path)
        return FileStat(size=st.st_size, modified=st.st_mtime)
