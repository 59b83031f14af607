"""Merging inferred metadata into a note's existing frontmatter."""
from typing import Any, List

from slinky_do.models.schema import (
    FIELD_TAGS,
    InferredMetadata,
    MetadataBlock,
)


def is_blank(value: Any) -> bool:
    """True for values the merger treats as missing."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, dict)):
        return not value
    return False


def coerce_tags(value: Any) -> List[str]:
    """Read a ``tags`` field that may be a list or a comma-separated string."""
    if value is None:
        return []
    if isinstance(value, str):
        return [t.strip() for t in value.split(",") if t.strip()]
    if isinstance(value, list):
        return [str(t).strip() for t in value if str(t).strip()]
    return [str(value)]


def merge_tags(*tag_groups: Any) -> List[str]:
    """Deduplicated, sorted union of several tag collections."""
    merged = set()
    for group in tag_groups:
        merged.update(coerce_tags(list(group) if isinstance(group, (set, tuple)) else group))
    return sorted(merged)


def merge(existing: MetadataBlock, inferred: InferredMetadata) -> MetadataBlock:
    """Fill gaps in ``existing`` with inferred values.

    Present, non-empty fields are never overwritten and no field is removed,
    so hand-written frontmatter always wins. ``tags`` becomes the sorted
    union of both sides.
    """
    merged = dict(existing)

    for field_name, inferred_value in inferred.field_values().items():
        if is_blank(merged.get(field_name)) and inferred_value is not None:
            merged[field_name] = inferred_value

    merged[FIELD_TAGS] = merge_tags(merged.get(FIELD_TAGS), inferred.tags)
    return merged
