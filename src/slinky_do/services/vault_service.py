"""Service layer for vault operations.

Every write goes through the path guard first and invalidates the stats
cache after it succeeds.
"""

import datetime
import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from slinky_do.config import VaultConfig, config
from slinky_do.exceptions import (
    AmbiguousMatchError,
    ConfigurationError,
    ErrorCode,
    MalformedMetadataError,
    NoteAlreadyExistsError,
    NoteNotFoundError,
    StorageError,
    TodoNotFoundError,
    ValidationError,
    VaultError,
)
from slinky_do.models.schema import (
    FIELD_DATE,
    FIELD_DOC_TYPE,
    FIELD_TAGS,
    FIELD_TITLE,
    ChecklistItem,
    EnrichmentReport,
    InferenceRules,
    MetadataStatus,
    NoteDocument,
    RenameResult,
    ScanError,
    SearchHit,
    TodoStatus,
    VaultStats,
)
from slinky_do.services.inference import fix_date, infer_from_path, infer_tags
from slinky_do.services.merger import merge, merge_tags
from slinky_do.storage.checklist_parser import (
    append_item,
    filter_items,
    find_items_by_text,
    format_item,
    parse_checklist,
    set_completion,
)
from slinky_do.storage.filesystem import FileSystem, LocalFileSystem
from slinky_do.storage.metadata_codec import decode_document, encode, normalize_value
from slinky_do.storage.path_guard import ensure_within_root, resolve_in_root
from slinky_do.storage.scan_cache import ScanCache
from slinky_do.storage.vault_scanner import VaultScanner
from slinky_do.utils import make_excerpt, rewrite_wikilinks, slugify_title

logger = logging.getLogger(__name__)

MAX_SEARCH_RESULTS = 50
DAILY_TAG = "daily"


class VaultService:
    """Operations on a Markdown vault and its TODO checklist."""

    def __init__(
        self,
        vault_root: Optional[Union[str, Path]] = None,
        todo_file: Optional[Union[str, Path]] = None,
        rules: Optional[InferenceRules] = None,
        cache: Optional[ScanCache] = None,
        fs: Optional[FileSystem] = None,
        settings: Optional[VaultConfig] = None,
        today: Callable[[], datetime.date] = datetime.date.today,
    ):
        """Initialize the service.

        Args:
            vault_root: Vault directory. Defaults to the configured vault path.
            todo_file: Checklist document relative to the vault root.
            rules: Inference vocabulary. Loaded from config if None.
            cache: Stats cache. Created over a new scanner if None.
            fs: Read capability for the scanner. Local disk if None.
            settings: Configuration to read defaults from (global config if None).
            today: Date source for new notes, injectable for tests.

        Raises:
            PathEscapeError: If the checklist document lies outside the vault.
        """
        self.settings = settings or config
        self.vault_root = (
            Path(os.path.abspath(os.fspath(vault_root)))
            if vault_root is not None
            else self.settings.get_vault_root()
        )
        self.todo_path = resolve_in_root(
            self.vault_root,
            todo_file if todo_file is not None else self.settings.todo_file,
        )
        self.fs: FileSystem = fs or LocalFileSystem()
        self.rules = rules if rules is not None else self.settings.load_rules()
        self.extensions = tuple(self.settings.document_extensions)
        self.scanner = VaultScanner(
            self.vault_root,
            fs=self.fs,
            hidden_prefix=self.settings.hidden_prefix,
            extensions=self.extensions,
        )
        self.cache = cache or ScanCache(self.scanner, ttl=self.settings.stats_cache_ttl)
        self._today = today

    # =========================================================================
    # Path and I/O helpers
    # =========================================================================

    def _resolve(self, relative_path: Union[str, Path]) -> Path:
        """Absolute, guarded path for a caller-supplied relative path."""
        return resolve_in_root(self.vault_root, relative_path)

    def _relative(self, path: Path) -> str:
        return Path(os.path.relpath(path, self.vault_root)).as_posix()

    def _with_extension(self, relative_path: str) -> str:
        relative_path = relative_path.strip()
        if relative_path.endswith(self.extensions):
            return relative_path
        return relative_path + self.extensions[0]

    def _read(self, path: Path) -> str:
        try:
            return self.fs.read_text(path)
        except (OSError, UnicodeDecodeError) as e:
            raise StorageError(
                "Failed to read note",
                operation="read",
                path=str(path),
                code=ErrorCode.STORAGE_READ_FAILED,
                original_error=e,
            ) from e

    def _write(self, path: Path, text: str) -> None:
        """Overwrite a whole file after checking it is inside the vault."""
        path = ensure_within_root(path, self.vault_root)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "w", encoding="utf-8", newline="") as f:
                f.write(text)
        except OSError as e:
            raise StorageError(
                "Failed to write note",
                operation="write",
                path=str(path),
                code=ErrorCode.STORAGE_WRITE_FAILED,
                original_error=e,
            ) from e
        logger.debug("Wrote %s", self._relative(path))

    # =========================================================================
    # Checklist
    # =========================================================================

    def _read_todos(self) -> str:
        if not self.todo_path.exists():
            return ""
        return self._read(self.todo_path)

    def add_todo(self, text: str, tags: Optional[Sequence[str]] = None) -> ChecklistItem:
        """Append an unchecked item to the checklist document.

        Args:
            text: Item text
            tags: Tags with or without a leading ``#``

        Returns:
            The parsed item as it now appears in the document.
        """
        if not text or not text.strip():
            raise ValidationError(
                "Todo text is required", field="text", code=ErrorCode.TODO_TEXT_REQUIRED
            )
        if "\n" in text.strip():
            raise ValidationError("Todo text must be a single line", field="text")

        ensure_within_root(self.todo_path, self.vault_root)
        updated = append_item(self._read_todos(), format_item(text, tags))
        self._write(self.todo_path, updated)
        self.cache.invalidate()

        item = parse_checklist(updated)[-1]
        logger.info("Added todo %d: %s", item.id, item.text)
        return item

    def list_todos(
        self,
        status: Union[TodoStatus, str] = TodoStatus.ALL,
        tags: Optional[Sequence[str]] = None,
    ) -> List[ChecklistItem]:
        """Parse the checklist and apply a status/tag view."""
        try:
            status = TodoStatus(status)
        except ValueError as e:
            raise ValidationError(
                f"Invalid status: {status}. Valid values are: "
                f"{', '.join(s.value for s in TodoStatus)}",
                field="status",
                value=status,
            ) from e
        return filter_items(parse_checklist(self._read_todos()), status, tags)

    def complete_todo(
        self,
        todo_id: Optional[int] = None,
        text: Optional[str] = None,
        completed: bool = True,
    ) -> ChecklistItem:
        """Tick (or untick) one checklist item, selected by id or by text.

        Only the box character of the matched line is rewritten.

        Raises:
            TodoNotFoundError: Nothing matches
            AmbiguousMatchError: The text matches several items
        """
        if (todo_id is None) == (not text or not text.strip()):
            raise ValidationError("Provide exactly one of todo_id or text")

        ensure_within_root(self.todo_path, self.vault_root)
        content = self._read_todos()
        items = parse_checklist(content)

        if todo_id is not None:
            matches = [item for item in items if item.id == todo_id]
            if not matches:
                raise TodoNotFoundError(f"id {todo_id}")
        else:
            matches = find_items_by_text(items, text)
            if not matches:
                raise TodoNotFoundError(f"text '{text}'")
            if len(matches) > 1:
                raise AmbiguousMatchError(text, matches)

        item = matches[0]
        if item.completed == completed:
            return item

        self._write(self.todo_path, set_completion(content, item, completed))
        self.cache.invalidate()
        logger.info(
            "Marked todo %d as %s", item.id, "completed" if completed else "pending"
        )
        return item.model_copy(update={"completed": completed})

    # =========================================================================
    # Notes
    # =========================================================================

    def _note_path(self, path: str) -> Path:
        if not path or not path.strip():
            raise ValidationError("Note path is required", field="path")
        return self._resolve(self._with_extension(path))

    def create_note(
        self,
        title: str,
        content: str,
        folder: Optional[str] = None,
        tags: Optional[Sequence[str]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> NoteDocument:
        """Create a note with title/date/tags frontmatter.

        The file name is the slugified title. Existing files are never
        overwritten.

        Raises:
            PathEscapeError: The folder is outside the vault
            NoteAlreadyExistsError: A note with that file name exists
        """
        if not title or not title.strip():
            raise ValidationError(
                "Title is required", field="title", code=ErrorCode.NOTE_TITLE_REQUIRED
            )
        slug = slugify_title(title)
        if not slug:
            raise ValidationError(
                "Title must contain at least one letter or digit", field="title", value=title
            )

        folder_path = self._resolve(folder or self.settings.default_folder)
        file_path = ensure_within_root(folder_path / f"{slug}{self.extensions[0]}", self.vault_root)
        rel = self._relative(file_path)
        if file_path.exists():
            raise NoteAlreadyExistsError(rel)

        block = self._validated_metadata(metadata or {})
        block[FIELD_TITLE] = title.strip()
        block[FIELD_DATE] = self._today().isoformat()
        block[FIELD_TAGS] = merge_tags(block.get(FIELD_TAGS), list(tags or []))

        body = content if content.endswith("\n") else content + "\n"
        self._write(file_path, encode(block, body))
        self.cache.invalidate()
        logger.info("Created note %s", rel)
        return NoteDocument(
            path=rel, metadata=block, body=body, metadata_status=MetadataStatus.PRESENT
        )

    def read_note(self, path: str) -> NoteDocument:
        """Read a note and split it into frontmatter and body.

        Raises:
            NoteNotFoundError: The file does not exist
        """
        file_path = self._note_path(path)
        if not file_path.is_file():
            raise NoteNotFoundError(path)
        result = decode_document(self._read(file_path))
        return NoteDocument(
            path=self._relative(file_path),
            metadata=result.metadata or {},
            body=result.body,
            metadata_status=result.status,
        )

    @staticmethod
    def _validated_metadata(metadata: Dict[str, Any]) -> Dict[str, Any]:
        try:
            return normalize_value(dict(metadata))  # type: ignore[return-value]
        except MalformedMetadataError as e:
            raise ValidationError(e.message, field="metadata") from e

    def update_note(
        self,
        path: str,
        content: Optional[str] = None,
        metadata_updates: Optional[Dict[str, Any]] = None,
        tags: Optional[Sequence[str]] = None,
    ) -> NoteDocument:
        """Replace the body and/or set frontmatter fields of a note.

        Args:
            path: Note path relative to the vault
            content: New body (kept as is when None)
            metadata_updates: Fields to set; other fields are kept
            tags: Replacement tag list (sorted and deduplicated)

        Raises:
            NoteNotFoundError: The file does not exist
            ValidationError: Metadata changes requested on a note whose
                frontmatter cannot be parsed
        """
        note = self.read_note(path)
        file_path = self._resolve(note.path)
        wants_metadata = bool(metadata_updates) or tags is not None

        if note.metadata_status is MetadataStatus.MALFORMED and wants_metadata:
            raise ValidationError(
                "Note frontmatter is malformed; fix it before updating fields",
                field="metadata",
                value=note.path,
            )

        metadata = dict(note.metadata)
        if metadata_updates:
            metadata.update(self._validated_metadata(metadata_updates))
        if tags is not None:
            metadata[FIELD_TAGS] = merge_tags(list(tags))

        body = note.body if content is None else content
        if note.metadata_status is MetadataStatus.PRESENT or wants_metadata:
            text = encode(metadata, body)
            status = MetadataStatus.PRESENT
        else:
            text = body
            status = note.metadata_status

        self._write(file_path, text)
        self.cache.invalidate()
        logger.info("Updated note %s", note.path)
        return NoteDocument(path=note.path, metadata=metadata, body=body, metadata_status=status)

    def delete_note(self, path: str) -> None:
        """Delete a note.

        Raises:
            NoteNotFoundError: The file does not exist
        """
        file_path = self._note_path(path)
        if not file_path.is_file():
            raise NoteNotFoundError(path)
        try:
            file_path.unlink()
        except OSError as e:
            raise StorageError(
                "Failed to delete note",
                operation="delete",
                path=str(file_path),
                code=ErrorCode.STORAGE_DELETE_FAILED,
                original_error=e,
            ) from e
        self.cache.invalidate()
        logger.info("Deleted note %s", self._relative(file_path))

    def move_note(
        self, path: str, new_path: str, update_links: bool = True
    ) -> RenameResult:
        """Move or rename a note, rewriting wikilinks that point at it.

        ``new_path`` is either a full note path or a folder (trailing ``/``
        or an existing directory), in which case the file name is kept.

        Raises:
            PathEscapeError: Either path is outside the vault
            NoteNotFoundError: The source does not exist
            NoteAlreadyExistsError: The destination exists
        """
        source = self._note_path(path)
        if not new_path or not new_path.strip():
            raise ValidationError("Destination path is required", field="new_path")

        target = self._resolve(new_path)
        if new_path.endswith("/") or target.is_dir():
            target = ensure_within_root(target / source.name, self.vault_root)
        else:
            target = self._resolve(self._with_extension(new_path))

        if not source.is_file():
            raise NoteNotFoundError(path)
        if target.exists():
            raise NoteAlreadyExistsError(self._relative(target))

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            os.replace(source, target)
        except OSError as e:
            raise StorageError(
                "Failed to move note",
                operation="move",
                path=str(source),
                code=ErrorCode.STORAGE_MOVE_FAILED,
                original_error=e,
            ) from e
        self.cache.invalidate()

        old_rel, new_rel = self._relative(source), self._relative(target)
        result = RenameResult(old_path=old_rel, new_path=new_rel)
        logger.info("Moved note %s -> %s", old_rel, new_rel)

        if update_links:
            self._rewrite_links(result)
        return result

    def _rewrite_links(self, result: RenameResult) -> None:
        old_link = os.path.splitext(result.old_path)[0]
        new_link = os.path.splitext(result.new_path)[0]
        old_stem = old_link.rsplit("/", 1)[-1]
        new_stem = new_link.rsplit("/", 1)[-1]
        if old_link == new_link:
            return

        for doc_path, rel in self.scanner.iter_documents():
            try:
                text = self._read(doc_path)
            except StorageError as e:
                logger.warning("Skipping link rewrite in %s: %s", rel, e.message)
                continue
            updated, count = rewrite_wikilinks(text, old_link, new_link, old_stem, new_stem)
            if count:
                self._write(doc_path, updated)
                result.links_updated += count
                result.files_touched.append(rel)

        if result.links_updated:
            self.cache.invalidate()
            logger.info(
                "Rewrote %d wikilinks in %d notes",
                result.links_updated,
                len(result.files_touched),
            )

    def search_notes(self, query: str, limit: int = 10) -> List[SearchHit]:
        """Case-insensitive substring search over file names and contents."""
        if not query or not query.strip():
            raise ValidationError("Search query is required", field="query")
        if limit < 1 or limit > MAX_SEARCH_RESULTS:
            raise ValidationError(
                f"limit must be between 1 and {MAX_SEARCH_RESULTS}", field="limit", value=limit
            )

        needle = query.lower()
        hits: List[SearchHit] = []
        for doc_path, rel in self.scanner.iter_documents():
            try:
                text = self._read(doc_path)
            except StorageError as e:
                logger.warning("Skipping %s during search: %s", rel, e.message)
                continue

            name_match = needle in doc_path.name.lower()
            content_match = needle in text.lower()
            if not (name_match or content_match):
                continue

            result = decode_document(text)
            note = NoteDocument(path=rel, metadata=result.metadata or {}, body=result.body)
            excerpt_source = result.body if needle in result.body.lower() else text
            hits.append(
                SearchHit(
                    path=rel,
                    title=note.title,
                    excerpt=make_excerpt(excerpt_source, query if content_match else ""),
                )
            )
            if len(hits) >= limit:
                break
        return hits

    # =========================================================================
    # Stats and enrichment
    # =========================================================================

    def get_vault_stats(self, bypass_cache: bool = False) -> VaultStats:
        """Vault statistics, served from the scan cache while fresh."""
        return self.cache.get(bypass=bypass_cache)

    def invalidate_stats(self) -> None:
        self.cache.invalidate()

    def enrich_vault(self, dry_run: bool = False) -> EnrichmentReport:
        """Fill in missing frontmatter for every note in the vault.

        Infers fields from each note's path and tags from its body, merges
        them under the existing frontmatter (never overwriting) and repairs
        ``0YYY-MM-DD`` dates from dates embedded in file names. Notes with
        malformed frontmatter are reported and left untouched.
        """
        report = EnrichmentReport(dry_run=dry_run)
        scan_errors: List[ScanError] = []
        written = 0

        for doc_path, rel in self.scanner.iter_documents(scan_errors):
            # The checklist is not a note
            if os.path.normpath(doc_path) == os.path.normpath(self.todo_path):
                continue
            name = doc_path.name
            try:
                text = self._read(doc_path)
                result = decode_document(text)
                if result.status is MetadataStatus.MALFORMED:
                    report.errors.append(f"{rel}: malformed frontmatter, skipped")
                    continue

                extension = next((e for e in self.extensions if name.endswith(e)), "")
                inferred = infer_from_path(rel, name, self.rules, extension)
                inferred.tags = set(infer_tags(result.body, inferred.tags, self.rules))
                merged = merge(result.metadata or {}, inferred)

                if isinstance(merged.get(FIELD_DATE), str):
                    fixed = fix_date(merged[FIELD_DATE], name)
                    if fixed != merged[FIELD_DATE]:
                        merged[FIELD_DATE] = fixed
                        report.dates_fixed += 1

                new_text = encode(merged, result.body)
                if new_text != text and not dry_run:
                    self._write(doc_path, new_text)
                    written += 1

                report.processed += 1
                if result.status is MetadataStatus.ABSENT:
                    report.enhanced += 1
            except VaultError as e:
                report.errors.append(f"{name}: {e.message}")

        report.errors.extend(f"{e.path}: {e.message}" for e in scan_errors)
        if written:
            self.cache.invalidate()
        logger.info(
            "Enrichment %s: %d processed, %d enhanced, %d dates fixed, %d errors",
            "previewed" if dry_run else "complete",
            report.processed,
            report.enhanced,
            report.dates_fixed,
            len(report.errors),
        )
        return report

    # =========================================================================
    # Daily notes
    # =========================================================================

    def create_daily_note(self, day: Optional[datetime.date] = None) -> NoteDocument:
        """Create today's (or ``day``'s) daily note from the template.

        An existing daily note is returned unchanged.
        """
        day = day or self._today()
        iso = day.isoformat()
        rel = f"{self.settings.daily_folder}/{iso}{self.extensions[0]}"
        file_path = self._resolve(rel)
        if file_path.exists():
            return self.read_note(rel)

        try:
            body = self.settings.daily_note_template.format(
                date=iso, weekday=day.strftime("%A")
            )
        except (KeyError, IndexError, ValueError) as e:
            raise ConfigurationError(
                f"Invalid daily note template: {e}", config_key="daily_note_template"
            ) from e

        block = {
            FIELD_TITLE: iso,
            FIELD_DATE: iso,
            FIELD_DOC_TYPE: DAILY_TAG,
            FIELD_TAGS: [DAILY_TAG],
        }
        self._write(file_path, encode(block, body))
        self.cache.invalidate()
        logger.info("Created daily note %s", rel)
        return NoteDocument(
            path=self._relative(file_path),
            metadata=block,
            body=body,
            metadata_status=MetadataStatus.PRESENT,
        )
