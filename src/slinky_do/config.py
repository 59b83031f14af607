"""Configuration module for the slinky-do vault server."""

import logging
import os
from importlib import resources
from pathlib import Path
from typing import List, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from slinky_do import __version__
from slinky_do.exceptions import ConfigurationError
from slinky_do.models.schema import InferenceRules

# Load environment variables from the project root .env file.
# Anchored to __file__ so it works regardless of the process CWD.
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
load_dotenv(_PROJECT_ROOT / ".env")

# User-level config: survives reinstalls, lives alongside logs
_USER_ENV = Path.home() / ".slinky-do" / ".env"
load_dotenv(_USER_ENV)


logger = logging.getLogger(__name__)

DEFAULT_RULES_RESOURCE = "default_rules.yaml"


def _split_env_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


class VaultConfig(BaseModel):
    """Configuration for the vault server."""

    # Vault root; every path the server touches must resolve inside it
    vault_path: Path = Field(
        default_factory=lambda: Path(os.getenv("OBSIDIAN_VAULT_PATH", "vault"))
    )
    # Checklist document, relative to the vault root
    todo_file: Path = Field(
        default_factory=lambda: Path(os.getenv("SLINKY_TODO_FILE", "TODO.md"))
    )
    # Folder used by create_note when none is given
    default_folder: str = Field(
        default_factory=lambda: os.getenv("SLINKY_DEFAULT_FOLDER", "Inbox")
    )
    daily_folder: str = Field(
        default_factory=lambda: os.getenv("SLINKY_DAILY_FOLDER", "Daily")
    )
    # Seconds a vault scan stays fresh; 0 disables caching
    stats_cache_ttl: float = Field(
        default_factory=lambda: float(os.getenv("SLINKY_STATS_CACHE_TTL", "60"))
    )
    # Entries whose name starts with this prefix are skipped while walking
    hidden_prefix: str = Field(
        default_factory=lambda: os.getenv("SLINKY_HIDDEN_PREFIX", ".")
    )
    document_extensions: List[str] = Field(
        default_factory=lambda: _split_env_list(
            os.getenv("SLINKY_DOCUMENT_EXTENSIONS", ".md")
        )
    )
    # Optional YAML file with inference rules; packaged defaults otherwise
    rules_file: Optional[Path] = Field(
        default_factory=lambda: (
            Path(os.getenv("SLINKY_RULES_FILE"))
            if os.getenv("SLINKY_RULES_FILE")
            else None
        )
    )
    # Server configuration
    server_name: str = Field(default=os.getenv("SLINKY_SERVER_NAME", "slinky-do"))
    server_version: str = Field(default=__version__)

    # Template for create_daily_note
    daily_note_template: str = Field(
        default=(
            "# {date}\n\n"
            "## Focus\n\n"
            "## Notes\n\n"
            "## Tasks\n"
            "- [ ] \n"
        )
    )

    @model_validator(mode="after")
    def _validate_settings(self) -> "VaultConfig":
        """Validate cache and path settings."""
        if self.stats_cache_ttl < 0:
            raise ValueError("stats_cache_ttl must be >= 0")
        if self.todo_file.is_absolute() or ".." in self.todo_file.parts:
            raise ValueError("todo_file must be a path inside the vault")
        if not self.document_extensions:
            raise ValueError("document_extensions cannot be empty")
        if not self.hidden_prefix:
            logger.warning(
                "hidden_prefix is empty; hidden folders such as .obsidian will be scanned"
            )
        return self

    def get_vault_root(self) -> Path:
        """Get the absolute vault root without resolving symlinks."""
        return Path(os.path.abspath(self.vault_path.expanduser()))

    def get_todo_path(self) -> Path:
        """Get the absolute path of the checklist document."""
        return self.get_vault_root() / self.todo_file

    def load_rules(self) -> InferenceRules:
        """Load inference rules from ``rules_file`` or the packaged defaults.

        Raises:
            ConfigurationError: If the rules file is missing or invalid.
        """
        try:
            if self.rules_file is not None:
                text = self.rules_file.expanduser().read_text(encoding="utf-8")
                source = str(self.rules_file)
            else:
                text = (
                    resources.files("slinky_do.resources")
                    .joinpath(DEFAULT_RULES_RESOURCE)
                    .read_text(encoding="utf-8")
                )
                source = DEFAULT_RULES_RESOURCE
        except OSError as e:
            raise ConfigurationError(
                f"Cannot read inference rules: {e}", config_key="rules_file"
            ) from e

        try:
            rules = InferenceRules.model_validate(yaml.safe_load(text) or {})
        except (yaml.YAMLError, ValueError) as e:
            raise ConfigurationError(
                f"Invalid inference rules in {source}: {e}", config_key="rules_file"
            ) from e

        logger.debug(
            "Loaded inference rules from %s (%d keyword rules)",
            source,
            len(rules.keywords),
        )
        return rules


# Create a global config instance
config = VaultConfig()
