"""Full-tree walk of the vault producing aggregate statistics."""
import logging
from collections import Counter
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple, Union

from slinky_do.exceptions import ErrorCode, StorageError
from slinky_do.models.schema import (
    FIELD_TAGS,
    ROOT_FOLDER_KEY,
    MetadataStatus,
    ScanError,
    VaultStats,
)
from slinky_do.storage.filesystem import FileSystem, LocalFileSystem
from slinky_do.storage.metadata_codec import decode_document

logger = logging.getLogger(__name__)


class VaultScanner:
    """Walks every document under a root and aggregates metadata.

    Entries whose name starts with ``hidden_prefix`` are skipped together
    with everything below them. A file that cannot be read is recorded in
    ``VaultStats.errors`` and the walk continues.
    """

    def __init__(
        self,
        root: Union[str, Path],
        fs: Optional[FileSystem] = None,
        hidden_prefix: str = ".",
        extensions: Sequence[str] = (".md",),
    ) -> None:
        self.root = Path(root)
        self.fs: FileSystem = fs or LocalFileSystem()
        self.hidden_prefix = hidden_prefix
        self.extensions = tuple(extensions)

    def is_hidden(self, name: str) -> bool:
        return bool(self.hidden_prefix) and name.startswith(self.hidden_prefix)

    def is_document(self, name: str) -> bool:
        return name.endswith(self.extensions)

    def iter_documents(
        self, errors: Optional[List[ScanError]] = None
    ) -> Iterator[Tuple[Path, str]]:
        """Yield ``(absolute_path, relative_posix_path)`` for every document.

        Unlistable subdirectories are appended to ``errors`` when given.

        Raises:
            StorageError: If the root itself cannot be listed
        """
        try:
            top = self.fs.list_dir(self.root)
        except OSError as e:
            raise StorageError(
                "Failed to list vault root",
                operation="scan",
                path=str(self.root),
                code=ErrorCode.STORAGE_LIST_FAILED,
                original_error=e,
            ) from e

        stack = [(top, "")]
        while stack:
            entries, prefix = stack.pop()
            subdirs = []
            for entry in entries:
                if self.is_hidden(entry.name):
                    continue
                rel = f"{prefix}{entry.name}"
                if entry.is_dir:
                    try:
                        subdirs.append((self.fs.list_dir(entry.path), f"{rel}/"))
                    except OSError as e:
                        logger.warning("Cannot list %s: %s", rel, e)
                        if errors is not None:
                            errors.append(ScanError(path=rel, message=str(e)))
                elif entry.is_file and self.is_document(entry.name):
                    yield entry.path, rel
            # reversed so that siblings come off the stack in name order
            stack.extend(reversed(subdirs))

    def scan(self) -> VaultStats:
        """Walk the whole tree once.

        Raises:
            StorageError: If the root itself cannot be listed
        """
        errors: List[ScanError] = []
        folder_counts: Counter = Counter()
        tag_counts: Counter = Counter()
        field_names = set()
        malformed: List[str] = []
        total = 0

        for path, rel in self.iter_documents(errors):
            total += 1
            folder = rel.split("/", 1)[0] if "/" in rel else ROOT_FOLDER_KEY
            folder_counts[folder] += 1

            try:
                text = self.fs.read_text(path)
            except (OSError, UnicodeDecodeError) as e:
                logger.warning("Cannot read %s: %s", rel, e)
                errors.append(ScanError(path=rel, message=str(e)))
                continue

            result = decode_document(text)
            if result.status is MetadataStatus.MALFORMED:
                malformed.append(rel)
                continue
            if result.status is not MetadataStatus.PRESENT:
                continue

            metadata = result.metadata or {}
            field_names.update(metadata.keys())
            tags = metadata.get(FIELD_TAGS)
            if isinstance(tags, list):
                for tag in tags:
                    tag_counts[str(tag)] += 1

        stats = VaultStats(
            total_documents=total,
            folder_counts=dict(folder_counts),
            tag_counts=dict(tag_counts),
            field_names=field_names,
            malformed_documents=malformed,
            errors=errors,
        )
        logger.info(
            "Scanned %d documents in %d folders (%d tags, %d errors)",
            total,
            len(folder_counts),
            len(tag_counts),
            len(errors),
        )
        return stats
