"""Common test fixtures for the slinky-do vault server."""

import datetime
from pathlib import Path

import pytest

from tests.fakes import FakeClock
from slinky_do.config import config
from slinky_do.models.schema import InferenceRules, KeywordRule, PathRule
from slinky_do.services.vault_service import VaultService
from slinky_do.storage.scan_cache import ScanCache
from slinky_do.storage.vault_scanner import VaultScanner


@pytest.fixture
def vault_dir(tmp_path):
    """Create an empty vault directory."""
    vault = tmp_path / "vault"
    vault.mkdir()
    return vault


@pytest.fixture
def test_config(vault_dir, monkeypatch):
    """Point the global config at the temporary vault (auto-restored)."""
    monkeypatch.setattr(config, "vault_path", vault_dir)
    monkeypatch.setattr(config, "todo_file", Path("TODO.md"))
    monkeypatch.setattr(config, "default_folder", "Inbox")
    monkeypatch.setattr(config, "daily_folder", "Daily")
    monkeypatch.setattr(config, "stats_cache_ttl", 60.0)
    monkeypatch.setattr(config, "hidden_prefix", ".")
    monkeypatch.setattr(config, "document_extensions", [".md"])
    monkeypatch.setattr(config, "rules_file", None)
    yield config


@pytest.fixture
def rules():
    """A small rule table in the shape of the packaged defaults."""
    return InferenceRules(
        category=[PathRule(match="Projects/Alpha", value="alpha")],
        project=[PathRule(match="Lucille", value="lucille")],
        doc_type=[
            PathRule(match="Standups", value="standup"),
            PathRule(match="Documentation", value="documentation", tag="docs"),
        ],
        keywords=[
            KeywordRule(keywords=["OpenSearch"], tag="opensearch"),
            KeywordRule(keywords=["kubernetes", "eks"], tag="kubernetes"),
        ],
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def vault_service(test_config, vault_dir, rules, clock):
    """Create a VaultService over the temporary vault with a fake clock."""
    scanner = VaultScanner(vault_dir)
    cache = ScanCache(scanner, ttl=60.0, clock=clock)
    service = VaultService(
        vault_root=vault_dir,
        rules=rules,
        cache=cache,
        today=lambda: datetime.date(2024, 3, 5),
    )
    yield service
