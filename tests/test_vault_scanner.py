"""Tests for the full-tree vault scanner."""
import pytest

from tests.fakes import FakeFileSystem, write_file
from slinky_do.exceptions import ErrorCode, StorageError
from slinky_do.storage.vault_scanner import VaultScanner


def _build_fs():
    fs = FakeFileSystem()
    fs.add("Home.md", "---\ntitle: Home\ntags: [index]\n---\n\nWelcome\n")
    fs.add("Projects/Alpha/status.md", "---\ntitle: Status\ntags:\n- alpha\n- index\n---\n\n")
    fs.add("Projects/Beta/plan.md", "No frontmatter here\n")
    fs.add("Inbox/broken.md", "---\ntitle: [oops\n---\n\nbody\n")
    fs.add("Inbox/scalar-tags.md", "---\ntags: single\ncustomer: acme\n---\n\n")
    fs.add("Inbox/image.png", "not a document")
    fs.add(".obsidian/workspace.md", "---\ntitle: hidden\n---\n")
    fs.add("Inbox/.draft.md", "---\ntitle: hidden file\n---\n")
    return fs


def test_scan_aggregates():
    stats = VaultScanner("/vault", fs=_build_fs()).scan()

    assert stats.total_documents == 5
    assert stats.folder_counts == {".": 1, "Projects": 2, "Inbox": 2}
    assert stats.total_documents == sum(stats.folder_counts.values())
    assert stats.tag_counts == {"index": 2, "alpha": 1}
    assert stats.field_names == {"title", "tags", "customer"}
    assert stats.malformed_documents == ["Inbox/broken.md"]
    assert stats.errors == []
    assert not stats.is_partial


def test_hidden_entries_skipped():
    rels = [rel for _, rel in VaultScanner("/vault", fs=_build_fs()).iter_documents()]
    assert not any(".obsidian" in rel or ".draft" in rel for rel in rels)


def test_walk_order_is_by_name():
    rels = [rel for _, rel in VaultScanner("/vault", fs=_build_fs()).iter_documents()]
    assert rels == [
        "Home.md",
        "Inbox/broken.md",
        "Inbox/scalar-tags.md",
        "Projects/Alpha/status.md",
        "Projects/Beta/plan.md",
    ]


def test_custom_extensions_and_prefix():
    fs = FakeFileSystem()
    fs.add("a.md", "x")
    fs.add("b.markdown", "y")
    fs.add("_private/c.md", "z")
    fs.add(".config/d.md", "w")
    scanner = VaultScanner("/vault", fs=fs, hidden_prefix="_", extensions=(".md", ".markdown"))
    rels = sorted(rel for _, rel in scanner.iter_documents())
    assert rels == [".config/d.md", "a.md", "b.markdown"]


def test_unreadable_file_is_partial_failure():
    fs = _build_fs()
    fs.fail_read("Projects/Beta/plan.md")
    stats = VaultScanner("/vault", fs=fs).scan()

    assert stats.total_documents == 5
    assert stats.is_partial
    assert [e.path for e in stats.errors] == ["Projects/Beta/plan.md"]


def test_unlistable_directory_is_partial_failure():
    fs = _build_fs()
    fs.fail_list("Projects")
    stats = VaultScanner("/vault", fs=fs).scan()

    assert "Projects" not in stats.folder_counts
    assert stats.total_documents == 3
    assert [e.path for e in stats.errors] == ["Projects"]


def test_unlistable_root_raises():
    fs = _build_fs()
    fs.fail_list()
    with pytest.raises(StorageError) as exc_info:
        VaultScanner("/vault", fs=fs).scan()
    assert exc_info.value.code is ErrorCode.STORAGE_LIST_FAILED


def test_empty_vault():
    stats = VaultScanner("/vault", fs=FakeFileSystem()).scan()
    assert stats.total_documents == 0
    assert stats.folder_counts == {}


def test_scan_real_directory(tmp_path):
    write_file(tmp_path, "Daily/2024-01-15.md", "---\ntags: [daily]\n---\n\nentry\n")
    write_file(tmp_path, "TODO.md", "- [ ] one\n")
    write_file(tmp_path, ".trash/old.md", "gone\n")

    stats = VaultScanner(tmp_path).scan()
    assert stats.total_documents == 2
    assert stats.folder_counts == {"Daily": 1, ".": 1}
    assert stats.tag_counts == {"daily": 1}


def test_symbolic_links_not_followed(tmp_path):
    vault = tmp_path / "vault"
    outside = tmp_path / "outside"
    write_file(vault, "A/n.md", "---\ntags: [x]\n---\n\nbody\n")
    write_file(outside, "secret.md", "---\ntags: [y]\n---\n")
    try:
        (vault / "A" / "loop").symlink_to(vault, target_is_directory=True)
        (vault / "escape").symlink_to(outside, target_is_directory=True)
        (vault / "linked.md").symlink_to(outside / "secret.md")
    except (OSError, NotImplementedError):
        pytest.skip("symlinks not supported")

    stats = VaultScanner(vault).scan()
    assert stats.total_documents == 1
    assert stats.tag_counts == {"x": 1}
    assert stats.folder_counts == {"A": 1}
    assert stats.errors == []
