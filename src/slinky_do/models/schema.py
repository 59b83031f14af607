"""Data models for the slinky-do vault server."""

import datetime
from datetime import timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Set, Union

from pydantic import BaseModel, Field, field_validator

# Closed set of values a frontmatter field may hold. Anything else found in a
# metadata block makes the block malformed.
MetadataValue = Union[
    str, bool, int, float, List["MetadataValue"], Dict[str, "MetadataValue"]
]
MetadataBlock = Dict[str, MetadataValue]

# Reserved frontmatter keys
FIELD_TITLE = "title"
FIELD_DATE = "date"
FIELD_TAGS = "tags"
FIELD_CATEGORY = "category"
FIELD_PROJECT = "project"
FIELD_DOC_TYPE = "docType"
FIELD_STATUS = "status"

DEFAULT_STATUS = "active"

# Folder key used in VaultStats for documents that sit directly in the root
ROOT_FOLDER_KEY = "."


def utc_now() -> datetime.datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Current time with UTC timezone info attached.
    """
    return datetime.datetime.now(timezone.utc)


class MetadataStatus(str, Enum):
    """Outcome of looking for a frontmatter block in a document."""

    ABSENT = "absent"  # Document does not start with a delimiter line
    MALFORMED = "malformed"  # Block present but unparseable or out of the value set
    PRESENT = "present"


class TodoStatus(str, Enum):
    """Read-time views over a parsed checklist."""

    ALL = "all"
    PENDING = "pending"
    COMPLETED = "completed"


class ChecklistItem(BaseModel):
    """One checklist line of the TODO document."""

    id: int = Field(..., ge=1, description="1-based position among checklist lines")
    text: str = Field(..., description="Item text with tag markers removed")
    completed: bool = Field(default=False, description="Whether the box is ticked")
    tags: List[str] = Field(
        default_factory=list, description="Tags in order of first appearance"
    )
    indent: int = Field(default=0, ge=0, description="Leading whitespace units")
    source_line: int = Field(..., ge=1, description="1-based line in the document")

    model_config = {"frozen": True}


class PathRule(BaseModel):
    """Maps a relative-path substring to a metadata value."""

    match: str = Field(..., description="Substring tested against the relative path")
    value: str = Field(..., description="Value assigned when the substring is present")
    tag: Optional[str] = Field(
        default=None, description="Tag added on match (defaults to value)"
    )
    add_tag: bool = Field(default=True, description="Whether a match also adds a tag")

    @field_validator("match", "value")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        """Reject empty rule fields; an empty substring would match every path."""
        if not v.strip():
            raise ValueError("Rule match and value cannot be empty")
        return v

    @property
    def effective_tag(self) -> Optional[str]:
        """Tag contributed by this rule, or None."""
        if not self.add_tag:
            return None
        return self.tag or self.value


class KeywordRule(BaseModel):
    """Adds a tag when any keyword appears in a document body."""

    keywords: List[str] = Field(..., min_length=1)
    tag: str = Field(...)

    @field_validator("keywords")
    @classmethod
    def normalize_keywords(cls, v: List[str]) -> List[str]:
        """Lowercase keywords once so matching is a plain substring test."""
        keywords = [k.strip().lower() for k in v if k and k.strip()]
        if not keywords:
            raise ValueError("Keyword rule needs at least one non-empty keyword")
        return keywords


class InferenceRules(BaseModel):
    """Ordered vocabulary used for path- and content-based inference.

    Each path table is evaluated independently; within a table the first
    matching rule wins.
    """

    category: List[PathRule] = Field(default_factory=list)
    project: List[PathRule] = Field(default_factory=list)
    doc_type: List[PathRule] = Field(default_factory=list)
    keywords: List[KeywordRule] = Field(default_factory=list)


class InferredMetadata(BaseModel):
    """Metadata guessed for one document; consumed by the merger, never stored."""

    title: str
    tags: Set[str] = Field(default_factory=set)
    category: Optional[str] = None
    project: Optional[str] = None
    doc_type: Optional[str] = None
    status: str = DEFAULT_STATUS
    date: Optional[str] = None

    def field_values(self) -> Dict[str, Optional[str]]:
        """Inferred scalar values keyed by their frontmatter field name."""
        return {
            FIELD_TITLE: self.title,
            FIELD_DATE: self.date,
            FIELD_CATEGORY: self.category,
            FIELD_PROJECT: self.project,
            FIELD_DOC_TYPE: self.doc_type,
            FIELD_STATUS: self.status,
        }


class ScanError(BaseModel):
    """A file or directory the scanner could not read."""

    path: str
    message: str

    model_config = {"frozen": True}


class VaultStats(BaseModel):
    """Aggregate statistics from one full walk of the vault."""

    total_documents: int = 0
    folder_counts: Dict[str, int] = Field(default_factory=dict)
    tag_counts: Dict[str, int] = Field(default_factory=dict)
    field_names: Set[str] = Field(default_factory=set)
    malformed_documents: List[str] = Field(default_factory=list)
    errors: List[ScanError] = Field(default_factory=list)
    scanned_at: datetime.datetime = Field(default_factory=utc_now)

    @property
    def is_partial(self) -> bool:
        """True when at least one file or directory could not be read."""
        return bool(self.errors)


class NoteDocument(BaseModel):
    """A vault document split into frontmatter and body."""

    path: str = Field(..., description="Path relative to the vault root")
    metadata: Dict[str, Any] = Field(default_factory=dict)
    body: str = ""
    metadata_status: MetadataStatus = MetadataStatus.ABSENT

    @property
    def title(self) -> str:
        """Frontmatter title, falling back to the file name."""
        title = self.metadata.get(FIELD_TITLE)
        if isinstance(title, str) and title.strip():
            return title
        name = self.path.rsplit("/", 1)[-1]
        return name.rsplit(".", 1)[0] if "." in name else name


class SearchHit(BaseModel):
    """A note matching a search query."""

    path: str
    title: str
    excerpt: str


class EnrichmentReport(BaseModel):
    """Summary of an enrich_vault run."""

    processed: int = 0
    enhanced: int = 0
    dates_fixed: int = 0
    errors: List[str] = Field(default_factory=list)
    dry_run: bool = False


class RenameResult(BaseModel):
    """Outcome of moving a note, including wikilink rewrites."""

    old_path: str
    new_path: str
    links_updated: int = 0
    files_touched: List[str] = Field(default_factory=list)
