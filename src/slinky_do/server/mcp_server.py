"""MCP server implementation for the slinky-do vault."""

import datetime
import json
import logging
import uuid
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from slinky_do.config import config
from slinky_do.exceptions import AmbiguousMatchError, ValidationError, VaultError
from slinky_do.models.schema import (
    FIELD_CATEGORY,
    FIELD_DATE,
    FIELD_DOC_TYPE,
    FIELD_PROJECT,
    FIELD_STATUS,
    FIELD_TAGS,
    FIELD_TITLE,
    ChecklistItem,
    MetadataStatus,
    TodoStatus,
    VaultStats,
)
from slinky_do.observability import metrics, timed_operation
from slinky_do.services.vault_service import VaultService
from slinky_do.storage.metadata_codec import encode

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 500
MAX_CONTENT_LENGTH = 1_000_000  # 1 MB
MAX_REPORTED_ERRORS = 10

INFO_SECTIONS = ("all", "tags", "properties", "folders", "stats")

PROPERTY_DESCRIPTIONS = {
    FIELD_TITLE: "string - Note title (defaults to the file name)",
    FIELD_DATE: "YYYY-MM-DD",
    FIELD_CATEGORY: "string - inferred from the folder",
    FIELD_PROJECT: "string - inferred from the folder",
    FIELD_DOC_TYPE: "string - inferred from the folder",
    FIELD_STATUS: "active | archived | completed (default: active)",
    FIELD_TAGS: "sorted list of strings",
}


def _validate_input_lengths(
    title: Optional[str] = None, content: Optional[str] = None
) -> None:
    """Validate input string lengths at the MCP boundary."""
    if title and len(title) > MAX_TITLE_LENGTH:
        raise ValueError(
            f"Title exceeds maximum length of {MAX_TITLE_LENGTH} characters"
        )
    if content and len(content) > MAX_CONTENT_LENGTH:
        raise ValueError(
            f"Content exceeds maximum length of {MAX_CONTENT_LENGTH} characters"
        )


def _split_tags(tags: Optional[str]) -> List[str]:
    """Turn a comma-separated tag string into a list."""
    if not tags:
        return []
    return [t.strip() for t in tags.split(",") if t.strip()]


def _format_item(item: ChecklistItem) -> str:
    box = "x" if item.completed else " "
    tag_string = "".join(f" #{t}" for t in item.tags)
    return f"{' ' * item.indent}{item.id}. [{box}]{tag_string} {item.text}"


class VaultMcpServer:
    """MCP server for an Obsidian-style vault and its TODO checklist."""

    def __init__(self, vault_service: Optional[VaultService] = None):
        """Initialize the MCP server.

        Args:
            vault_service: Pre-built service. A service over the configured
                vault is created when None.
        """
        self.mcp = FastMCP(config.server_name, version=config.server_version)
        self.vault_service = vault_service or VaultService()
        self.initialize()
        self._register_tools()
        self._register_resources()
        self._register_prompts()

    def initialize(self) -> None:
        """Initialize services."""
        logger.info("slinky-do MCP server initialized for %s", self.vault_service.vault_root)

    def format_error_response(self, error: Exception) -> str:
        """Format an error response in a consistent way.

        Args:
            error: The exception that occurred

        Returns:
            Formatted error message with appropriate level of detail
        """
        # Generate a unique error ID for traceability in logs
        error_id = str(uuid.uuid4())[:8]

        if isinstance(error, VaultError):
            # Structured domain errors - use the error code and message
            logger.error(
                f"[{error.code.name}] [{error_id}]: {error.message}",
                extra={"error_details": error.details},
            )
            return f"Error: {error.message}"
        elif isinstance(error, ValueError):
            # Log full detail but return generic ref to avoid leaking internals
            logger.error(f"Validation error [{error_id}]: {str(error)}")
            return f"Error: Invalid input (ref: {error_id})"
        elif isinstance(error, (IOError, OSError)):
            # File system errors - don't expose paths or detailed error messages
            logger.error(f"File system error [{error_id}]: {str(error)}", exc_info=True)
            return f"Error: A file system error occurred (ref: {error_id})"
        else:
            # Unexpected errors - log with full stack trace but return generic message
            logger.error(f"Unexpected error [{error_id}]: {str(error)}", exc_info=True)
            return f"Error: An unexpected error occurred (ref: {error_id})"

    def _register_tools(self) -> None:
        """Register MCP tools."""

        # Append a checklist item to the TODO document
        @self.mcp.tool(name="add_todo")
        def add_todo(text: str, tags: Optional[str] = None) -> str:
            """Add a todo item to the vault's TODO file.
            Args:
                text: The todo text
                tags: Comma-separated tags such as backlog, waiting (optional)
            """
            with timed_operation("add_todo", text=text[:30]) as op:
                try:
                    _validate_input_lengths(title=text)
                    item = self.vault_service.add_todo(text, _split_tags(tags))
                    op["todo_id"] = item.id
                    return (
                        f"Added todo {item.id}: {item.text}\n"
                        f"File: {self.vault_service.todo_path.name}"
                    )
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="list_todos")
        def list_todos(status: str = "pending", tags: Optional[str] = None) -> str:
            """List checklist items from the TODO file.
            Args:
                status: all, pending (default) or completed
                tags: Comma-separated tags; only items carrying all of them are listed
            """
            with timed_operation("list_todos", status=status) as op:
                try:
                    try:
                        status_enum = TodoStatus(status.lower())
                    except ValueError:
                        return f"Invalid status: {status}. Valid values are: {', '.join(s.value for s in TodoStatus)}"

                    items = self.vault_service.list_todos(status_enum, _split_tags(tags))
                    op["result_count"] = len(items)
                    if not items:
                        return f"No {status_enum.value} todos found."

                    output = f"Found {len(items)} {status_enum.value} todo(s):\n\n"
                    output += "\n".join(_format_item(item) for item in items)
                    return output
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="complete_todo")
        def complete_todo(
            todo_id: Optional[int] = None,
            text: Optional[str] = None,
            completed: bool = True,
        ) -> str:
            """Mark a todo as completed (or pending again).
            Args:
                todo_id: Item number as shown by list_todos
                text: Item text, or a unique part of it (alternative to todo_id)
                completed: False to reopen the item
            """
            with timed_operation("complete_todo", todo_id=todo_id) as op:
                try:
                    item = self.vault_service.complete_todo(
                        todo_id=todo_id, text=text, completed=completed
                    )
                    op["todo_id"] = item.id
                    state = "completed" if item.completed else "pending"
                    return f"Todo {item.id} marked {state}: {item.text}"
                except AmbiguousMatchError as e:
                    candidates = "\n".join(_format_item(c) for c in e.candidates)
                    return f"Error: {e.message}\n\nCandidates:\n{candidates}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="create_note")
        def create_note(
            title: str,
            content: str,
            folder: Optional[str] = None,
            tags: Optional[str] = None,
        ) -> str:
            """Create a new note with title, date and tags frontmatter.
            Args:
                title: The title of the note (also used for the file name)
                content: The note body
                folder: Target folder relative to the vault (defaults to the inbox folder)
                tags: Comma-separated list of tags (optional)
            """
            with timed_operation("create_note", title=title[:30]) as op:
                try:
                    _validate_input_lengths(title=title, content=content)
                    note = self.vault_service.create_note(
                        title=title,
                        content=content,
                        folder=folder,
                        tags=_split_tags(tags),
                    )
                    op["path"] = note.path
                    return f"Created note: {note.path}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="read_note")
        def read_note(path: str, format: str = "summary") -> str:
            """Read a note from the vault.
            Args:
                path: Note path relative to the vault (extension optional)
                format: "summary" (default) for metadata plus body, "markdown" for the raw file
            """
            with timed_operation("read_note", path=path) as op:
                try:
                    note = self.vault_service.read_note(path)
                    op["metadata_status"] = note.metadata_status.value
                    if format == "markdown":
                        if note.metadata_status is MetadataStatus.PRESENT:
                            return encode(note.metadata, note.body)
                        return note.body

                    result = f"# {note.title}\n"
                    result += f"Path: {note.path}\n"
                    for key in sorted(note.metadata):
                        if key in (FIELD_TITLE, FIELD_TAGS):
                            continue
                        result += f"{key}: {note.metadata[key]}\n"
                    tags = note.metadata.get(FIELD_TAGS)
                    if isinstance(tags, list) and tags:
                        result += f"Tags: {', '.join(str(t) for t in tags)}\n"
                    if note.metadata_status is MetadataStatus.MALFORMED:
                        result += "Warning: frontmatter could not be parsed\n"
                    result += f"\n{note.body}"
                    return result
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="update_note")
        def update_note(
            path: str,
            content: Optional[str] = None,
            metadata: Optional[str] = None,
            tags: Optional[str] = None,
        ) -> str:
            """Update a note's body and/or frontmatter.
            Args:
                path: Note path relative to the vault
                content: New body (optional)
                metadata: JSON object of frontmatter fields to set (optional)
                tags: Comma-separated replacement tag list (optional)
            """
            with timed_operation("update_note", path=path) as op:
                try:
                    _validate_input_lengths(content=content)
                    updates: Optional[Dict[str, Any]] = None
                    if metadata:
                        try:
                            updates = json.loads(metadata)
                        except json.JSONDecodeError as e:
                            raise ValidationError(
                                f"metadata must be a JSON object: {e.msg}", field="metadata"
                            ) from e
                        if not isinstance(updates, dict):
                            raise ValidationError(
                                "metadata must be a JSON object", field="metadata"
                            )

                    if content is None and updates is None and tags is None:
                        return "Nothing to update: provide content, metadata or tags."

                    note = self.vault_service.update_note(
                        path,
                        content=content,
                        metadata_updates=updates,
                        tags=_split_tags(tags) if tags is not None else None,
                    )
                    op["path"] = note.path
                    return f"Updated note: {note.path}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="move_note")
        def move_note(path: str, new_path: str, update_links: bool = True) -> str:
            """Move or rename a note and update wikilinks pointing at it.
            Args:
                path: Current note path relative to the vault
                new_path: New note path, or a folder ending in "/" to keep the file name
                update_links: Rewrite [[wikilinks]] in other notes (default: True)
            """
            with timed_operation("move_note", path=path) as op:
                try:
                    result = self.vault_service.move_note(path, new_path, update_links)
                    op["links_updated"] = result.links_updated
                    output = f"Moved note: {result.old_path} -> {result.new_path}\n"
                    if result.links_updated:
                        output += (
                            f"Updated {result.links_updated} link(s) in "
                            f"{len(result.files_touched)} note(s):\n"
                        )
                        output += "\n".join(f"- {p}" for p in result.files_touched)
                    return output.rstrip("\n")
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="delete_note")
        def delete_note(path: str) -> str:
            """Delete a note from the vault.
            Args:
                path: Note path relative to the vault
            """
            with timed_operation("delete_note", path=path):
                try:
                    self.vault_service.delete_note(path)
                    return f"Deleted note: {path}"
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="search_notes")
        def search_notes(query: str, limit: int = 10) -> str:
            """Search notes by file name and content.
            Args:
                query: Text to look for (case-insensitive)
                limit: Maximum number of results, 1-50 (default: 10)
            """
            with timed_operation("search_notes", query=query[:30]) as op:
                try:
                    hits = self.vault_service.search_notes(query, limit)
                    op["result_count"] = len(hits)
                    if not hits:
                        return f'No notes found matching "{query}"'

                    result_text = "\n\n".join(
                        f"{i}. **{hit.title}**\n   File: {hit.path}\n   {hit.excerpt}"
                        for i, hit in enumerate(hits, 1)
                    )
                    return f'Found {len(hits)} note(s) matching "{query}":\n\n{result_text}'
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="get_vault_info")
        def get_vault_info(section: str = "all", refresh: bool = False) -> str:
            """Get the vault's structure, tags, property schema and statistics.
            Args:
                section: all (default), tags, properties, folders or stats
                refresh: Rescan the vault even if cached statistics are fresh
            """
            with timed_operation("get_vault_info", section=section) as op:
                try:
                    if section not in INFO_SECTIONS:
                        return f"Invalid section: {section}. Valid sections are: {', '.join(INFO_SECTIONS)}"

                    stats = self.vault_service.get_vault_stats(bypass_cache=refresh)
                    op["total_documents"] = stats.total_documents
                    return self._format_vault_info(stats, section)
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="enrich_vault")
        def enrich_vault(dry_run: bool = False) -> str:
            """Add inferred frontmatter and tags to every note in the vault.
            Existing values are never overwritten.
            Args:
                dry_run: Report what would change without writing files
            """
            with timed_operation("enrich_vault", dry_run=dry_run) as op:
                try:
                    report = self.vault_service.enrich_vault(dry_run=dry_run)
                    op["processed"] = report.processed

                    heading = "Vault Enrichment Preview" if report.dry_run else "Vault Enrichment Complete"
                    summary = f"## {heading}\n\n"
                    summary += f"- **Processed**: {report.processed} markdown files\n"
                    summary += f"- **Enhanced**: {report.enhanced} files (added frontmatter)\n"
                    summary += f"- **Dates Fixed**: {report.dates_fixed} malformed dates corrected\n"

                    if report.errors:
                        summary += f"\n## Errors ({len(report.errors)})\n\n"
                        summary += "\n".join(f"- {e}" for e in report.errors[:MAX_REPORTED_ERRORS])
                        if len(report.errors) > MAX_REPORTED_ERRORS:
                            summary += f"\n- ... and {len(report.errors) - MAX_REPORTED_ERRORS} more"
                    return summary
                except Exception as e:
                    return self.format_error_response(e)

        @self.mcp.tool(name="create_daily_note")
        def create_daily_note(date: Optional[str] = None) -> str:
            """Create the daily note for today or a given date.
            Returns the existing note if it is already there.
            Args:
                date: YYYY-MM-DD (defaults to today)
            """
            with timed_operation("create_daily_note", date=date) as op:
                try:
                    day = None
                    if date:
                        try:
                            day = datetime.date.fromisoformat(date)
                        except ValueError as e:
                            raise ValidationError(
                                "date must be YYYY-MM-DD", field="date", value=date
                            ) from e
                    note = self.vault_service.create_daily_note(day)
                    op["path"] = note.path
                    return f"Daily note: {note.path}\n\n{note.body}"
                except Exception as e:
                    return self.format_error_response(e)

    def _format_vault_info(self, stats: VaultStats, section: str) -> str:
        """Render live vault statistics as Markdown."""
        include_all = section == "all"
        output = ""

        if include_all or section == "folders":
            output += "## Vault Structure\n\n"
            output += f"Root: {self.vault_service.vault_root}\n"
            output += f"Total Notes: {stats.total_documents}\n\n"
            output += "**Folders:**\n"
            for folder, count in sorted(stats.folder_counts.items()):
                output += f"- {folder} ({count})\n"
            output += "\n"

        if include_all or section == "properties":
            output += "## Property Schema\n\n"
            for prop, desc in PROPERTY_DESCRIPTIONS.items():
                output += f"- **{prop}**: {desc}\n"
            extra = sorted(stats.field_names - set(PROPERTY_DESCRIPTIONS))
            if extra:
                output += f"\n**Other properties in use:** {', '.join(extra)}\n"
            output += "\n"

        if include_all or section == "tags":
            output += "## Tags\n\n"
            ranked = sorted(stats.tag_counts.items(), key=lambda kv: (-kv[1], kv[0]))
            if ranked:
                output += "\n".join(f"- {tag} ({count})" for tag, count in ranked) + "\n"
            else:
                output += "No tags in use yet.\n"

            rules = self.vault_service.rules
            keyword_tags = sorted({rule.tag for rule in rules.keywords})
            if keyword_tags:
                output += f"\n**Inferred from content:** {', '.join(keyword_tags)}\n"
            output += "\n"

        if section == "stats":
            output += "## Vault Statistics\n\n"
            output += f"- Total notes: {stats.total_documents}\n"
            output += f"- Folders: {len(stats.folder_counts)}\n"
            output += f"- Distinct tags: {len(stats.tag_counts)}\n"
            output += f"- Malformed frontmatter: {len(stats.malformed_documents)}\n"
            output += f"- Scanned at: {stats.scanned_at.isoformat()}\n"
            if stats.malformed_documents:
                output += "\n**Malformed:**\n"
                output += "\n".join(f"- {p}" for p in stats.malformed_documents[:MAX_REPORTED_ERRORS]) + "\n"
            summary = metrics.get_summary()
            output += f"\n**Server operations:** {summary['total_operations']} "
            output += f"({summary['total_errors']} errors)\n"

        if stats.is_partial:
            output += f"\nWarning: {len(stats.errors)} path(s) could not be read:\n"
            output += "\n".join(
                f"- {e.path}: {e.message}" for e in stats.errors[:MAX_REPORTED_ERRORS]
            )

        return output.strip()

    def _register_resources(self) -> None:
        """Register MCP resources."""
        # Currently, we don't define resources for the vault server
        pass

    def _register_prompts(self) -> None:
        """Register MCP prompts."""
        # Currently, we don't define prompts for the vault server
        pass

    def run(self) -> None:
        """Run the MCP server."""
        self.mcp.run()
