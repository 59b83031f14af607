# tests/test_mcp_server.py
"""Tests for the MCP server implementation."""
import datetime
from pathlib import Path
from unittest.mock import MagicMock, patch

from slinky_do.exceptions import (
    AmbiguousMatchError,
    NoteNotFoundError,
    PathEscapeError,
)
from slinky_do.models.schema import (
    ChecklistItem,
    EnrichmentReport,
    InferenceRules,
    KeywordRule,
    MetadataStatus,
    NoteDocument,
    RenameResult,
    ScanError,
    SearchHit,
    TodoStatus,
    VaultStats,
)
from slinky_do.observability import metrics
from slinky_do.server.mcp_server import VaultMcpServer


class TestMcpServer:
    """Tests for the VaultMcpServer class."""

    def setup_method(self):
        """Set up test environment before each test."""
        # Capture the tool decorator functions when registering
        self.registered_tools = {}

        # Create a mock for FastMCP
        self.mock_mcp = MagicMock()

        # Mock the tool decorator to capture registered functions BEFORE server creation
        def mock_tool_decorator(*args, **kwargs):
            def tool_wrapper(func):
                name = kwargs.get('name')
                self.registered_tools[name] = func
                return func
            return tool_wrapper
        self.mock_mcp.tool = mock_tool_decorator

        self.mock_vault_service = MagicMock()
        self.mock_vault_service.vault_root = Path("/vault")
        self.mock_vault_service.todo_path = Path("/vault/TODO.md")
        self.mock_vault_service.rules = InferenceRules(
            keywords=[KeywordRule(keywords=["opensearch"], tag="opensearch")]
        )

        self.mcp_patcher = patch('slinky_do.server.mcp_server.FastMCP', return_value=self.mock_mcp)
        self.service_patcher = patch('slinky_do.server.mcp_server.VaultService', return_value=self.mock_vault_service)
        self.mcp_patcher.start()
        self.service_patcher.start()

        # Create a server instance AFTER setting up the mocks
        self.server = VaultMcpServer()

    def teardown_method(self):
        """Clean up after each test."""
        self.mcp_patcher.stop()
        self.service_patcher.stop()

    def test_all_tools_registered(self):
        assert set(self.registered_tools) == {
            "add_todo",
            "list_todos",
            "complete_todo",
            "create_note",
            "read_note",
            "update_note",
            "move_note",
            "delete_note",
            "search_notes",
            "get_vault_info",
            "enrich_vault",
            "create_daily_note",
        }

    def test_add_todo_tool(self):
        self.mock_vault_service.add_todo.return_value = ChecklistItem(
            id=3, text="Buy milk", tags=["a", "b"], source_line=3
        )
        result = self.registered_tools['add_todo'](text="Buy milk", tags="a, b")

        assert "Added todo 3: Buy milk" in result
        assert "TODO.md" in result
        self.mock_vault_service.add_todo.assert_called_with("Buy milk", ["a", "b"])

    def test_list_todos_tool(self):
        self.mock_vault_service.list_todos.return_value = [
            ChecklistItem(id=1, text="one", tags=["work"], source_line=1),
            ChecklistItem(id=2, text="two", completed=True, indent=2, source_line=2),
        ]
        result = self.registered_tools['list_todos'](status="all", tags="work")

        assert "Found 2 all todo(s)" in result
        assert "1. [ ] #work one" in result
        assert "  2. [x] two" in result
        self.mock_vault_service.list_todos.assert_called_with(TodoStatus.ALL, ["work"])

    def test_list_todos_invalid_status(self):
        result = self.registered_tools['list_todos'](status="someday")
        assert "Invalid status" in result
        self.mock_vault_service.list_todos.assert_not_called()

    def test_list_todos_empty(self):
        self.mock_vault_service.list_todos.return_value = []
        assert self.registered_tools['list_todos']() == "No pending todos found."

    def test_complete_todo_tool(self):
        self.mock_vault_service.complete_todo.return_value = ChecklistItem(
            id=2, text="ship", completed=True, source_line=4
        )
        result = self.registered_tools['complete_todo'](todo_id=2)

        assert result == "Todo 2 marked completed: ship"
        self.mock_vault_service.complete_todo.assert_called_with(
            todo_id=2, text=None, completed=True
        )

    def test_complete_todo_ambiguous_lists_candidates(self):
        candidates = [
            ChecklistItem(id=1, text="Call Alice", source_line=1),
            ChecklistItem(id=2, text="Call Bob", source_line=2),
        ]
        self.mock_vault_service.complete_todo.side_effect = AmbiguousMatchError("call", candidates)

        result = self.registered_tools['complete_todo'](text="call")

        assert result.startswith("Error: 'call' matches 2 todos")
        assert "1. [ ] Call Alice" in result
        assert "2. [ ] Call Bob" in result

    def test_create_note_tool(self):
        self.mock_vault_service.create_note.return_value = NoteDocument(
            path="Inbox/test-note.md", metadata_status=MetadataStatus.PRESENT
        )
        result = self.registered_tools['create_note'](
            title="Test Note", content="Body", tags="tag1, tag2"
        )

        assert result == "Created note: Inbox/test-note.md"
        self.mock_vault_service.create_note.assert_called_with(
            title="Test Note", content="Body", folder=None, tags=["tag1", "tag2"]
        )

    def test_create_note_title_too_long(self):
        result = self.registered_tools['create_note'](title="x" * 501, content="")
        assert result.startswith("Error: Invalid input (ref: ")
        self.mock_vault_service.create_note.assert_not_called()

    def test_read_note_summary(self):
        self.mock_vault_service.read_note.return_value = NoteDocument(
            path="Inbox/idea.md",
            metadata={"title": "Idea", "status": "active", "tags": ["a", "b"]},
            body="Body\n",
            metadata_status=MetadataStatus.PRESENT,
        )
        result = self.registered_tools['read_note'](path="Inbox/idea.md")

        assert result.startswith("# Idea\n")
        assert "Path: Inbox/idea.md" in result
        assert "status: active" in result
        assert "Tags: a, b" in result
        assert result.endswith("Body\n")

    def test_read_note_markdown(self):
        self.mock_vault_service.read_note.return_value = NoteDocument(
            path="n.md",
            metadata={"title": "N"},
            body="Body\n",
            metadata_status=MetadataStatus.PRESENT,
        )
        result = self.registered_tools['read_note'](path="n.md", format="markdown")
        assert result == "---\ntitle: N\n---\n\nBody\n"

    def test_read_note_malformed_warning(self):
        self.mock_vault_service.read_note.return_value = NoteDocument(
            path="bad.md", body="---\nx: [\n---\n", metadata_status=MetadataStatus.MALFORMED
        )
        result = self.registered_tools['read_note'](path="bad.md")
        assert "Warning: frontmatter could not be parsed" in result

    def test_read_note_not_found(self):
        self.mock_vault_service.read_note.side_effect = NoteNotFoundError("nope.md")
        result = self.registered_tools['read_note'](path="nope.md")
        assert result == "Error: Note 'nope.md' not found"

    def test_update_note_tool(self):
        self.mock_vault_service.update_note.return_value = NoteDocument(path="n.md")
        result = self.registered_tools['update_note'](
            path="n.md", metadata='{"status": "archived"}', tags="x,y"
        )

        assert result == "Updated note: n.md"
        self.mock_vault_service.update_note.assert_called_with(
            "n.md", content=None, metadata_updates={"status": "archived"}, tags=["x", "y"]
        )

    def test_update_note_bad_json(self):
        result = self.registered_tools['update_note'](path="n.md", metadata="{not json")
        assert result.startswith("Error: metadata must be a JSON object")
        self.mock_vault_service.update_note.assert_not_called()

    def test_update_note_nothing_to_do(self):
        result = self.registered_tools['update_note'](path="n.md")
        assert result.startswith("Nothing to update")

    def test_move_note_tool(self):
        self.mock_vault_service.move_note.return_value = RenameResult(
            old_path="a.md", new_path="Archive/b.md", links_updated=2, files_touched=["Home.md"]
        )
        result = self.registered_tools['move_note'](path="a.md", new_path="Archive/b.md")

        assert "Moved note: a.md -> Archive/b.md" in result
        assert "Updated 2 link(s) in 1 note(s)" in result
        assert "- Home.md" in result
        self.mock_vault_service.move_note.assert_called_with("a.md", "Archive/b.md", True)

    def test_move_note_escape(self):
        self.mock_vault_service.move_note.side_effect = PathEscapeError("../x.md", "/vault")
        result = self.registered_tools['move_note'](path="a.md", new_path="../x.md")
        assert result == "Error: Path must be within the vault"

    def test_delete_note_tool(self):
        result = self.registered_tools['delete_note'](path="n.md")
        assert result == "Deleted note: n.md"
        self.mock_vault_service.delete_note.assert_called_with("n.md")

    def test_search_notes_tool(self):
        self.mock_vault_service.search_notes.return_value = [
            SearchHit(path="Tech/a.md", title="A", excerpt="...OpenSearch..."),
        ]
        result = self.registered_tools['search_notes'](query="opensearch", limit=5)

        assert result.startswith('Found 1 note(s) matching "opensearch"')
        assert "1. **A**\n   File: Tech/a.md\n   ...OpenSearch..." in result
        self.mock_vault_service.search_notes.assert_called_with("opensearch", 5)

    def test_search_notes_no_results(self):
        self.mock_vault_service.search_notes.return_value = []
        result = self.registered_tools['search_notes'](query="zzz")
        assert result == 'No notes found matching "zzz"'

    def _stats(self, **kwargs):
        values = dict(
            total_documents=4,
            folder_counts={".": 1, "Projects": 3},
            tag_counts={"alpha": 3, "index": 1},
            field_names={"title", "tags", "customer"},
            scanned_at=datetime.datetime(2024, 3, 5, 12, 0, tzinfo=datetime.timezone.utc),
        )
        values.update(kwargs)
        return VaultStats(**values)

    def test_get_vault_info_all(self):
        self.mock_vault_service.get_vault_stats.return_value = self._stats()
        result = self.registered_tools['get_vault_info']()

        assert "## Vault Structure" in result
        assert "Total Notes: 4" in result
        assert "- Projects (3)" in result
        assert "## Property Schema" in result
        assert "**Other properties in use:** customer" in result
        assert "- alpha (3)" in result
        assert "**Inferred from content:** opensearch" in result
        assert "## Vault Statistics" not in result
        self.mock_vault_service.get_vault_stats.assert_called_with(bypass_cache=False)

    def test_get_vault_info_stats_section(self):
        self.mock_vault_service.get_vault_stats.return_value = self._stats(
            malformed_documents=["Inbox/bad.md"],
            errors=[ScanError(path="Locked", message="Permission denied")],
        )
        result = self.registered_tools['get_vault_info'](section="stats", refresh=True)

        assert result.startswith("## Vault Statistics")
        assert "- Total notes: 4" in result
        assert "- Malformed frontmatter: 1" in result
        assert "- Inbox/bad.md" in result
        assert "Warning: 1 path(s) could not be read" in result
        assert "## Vault Structure" not in result
        self.mock_vault_service.get_vault_stats.assert_called_with(bypass_cache=True)

    def test_get_vault_info_invalid_section(self):
        result = self.registered_tools['get_vault_info'](section="everything")
        assert result.startswith("Invalid section")

    def test_enrich_vault_tool(self):
        self.mock_vault_service.enrich_vault.return_value = EnrichmentReport(
            processed=12, enhanced=3, dates_fixed=1,
            errors=[f"f{i}.md: boom" for i in range(12)],
        )
        result = self.registered_tools['enrich_vault']()

        assert "## Vault Enrichment Complete" in result
        assert "**Processed**: 12" in result
        assert "**Enhanced**: 3" in result
        assert "**Dates Fixed**: 1" in result
        assert "## Errors (12)" in result
        assert "- ... and 2 more" in result
        self.mock_vault_service.enrich_vault.assert_called_with(dry_run=False)

    def test_enrich_vault_dry_run(self):
        self.mock_vault_service.enrich_vault.return_value = EnrichmentReport(dry_run=True)
        result = self.registered_tools['enrich_vault'](dry_run=True)
        assert "## Vault Enrichment Preview" in result

    def test_enrich_vault_recorded_once_per_call(self):
        self.mock_vault_service.enrich_vault.return_value = EnrichmentReport()
        metrics.reset()
        self.registered_tools['enrich_vault']()
        assert metrics.get_metrics()['enrich_vault']['count'] == 1

    def test_create_daily_note_tool(self):
        self.mock_vault_service.create_daily_note.return_value = NoteDocument(
            path="Daily/2024-03-05.md", body="# 2024-03-05\n"
        )
        result = self.registered_tools['create_daily_note'](date="2024-03-05")

        assert result.startswith("Daily note: Daily/2024-03-05.md")
        self.mock_vault_service.create_daily_note.assert_called_with(datetime.date(2024, 3, 5))

    def test_create_daily_note_bad_date(self):
        result = self.registered_tools['create_daily_note'](date="03/05/2024")
        assert result == "Error: date must be YYYY-MM-DD"

    def test_error_handling(self):
        """Non-domain errors are reported with a reference id only."""
        self.mock_vault_service.delete_note.side_effect = OSError("/secret/path")
        result = self.registered_tools['delete_note'](path="n.md")
        assert result.startswith("Error: A file system error occurred (ref: ")
        assert "/secret/path" not in result

        self.mock_vault_service.delete_note.side_effect = RuntimeError("boom")
        result = self.registered_tools['delete_note'](path="n.md")
        assert result.startswith("Error: An unexpected error occurred (ref: ")
