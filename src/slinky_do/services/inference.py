"""Heuristic metadata inference from note paths and content.

The vocabulary (which folders mean which category, which words mean which
tag) lives in ``InferenceRules``; the functions here only know how to apply
an ordered table.
"""
import logging
import re
from typing import Iterable, List, Optional, Sequence

from slinky_do.models.schema import (
    InferenceRules,
    InferredMetadata,
    KeywordRule,
    PathRule,
)

logger = logging.getLogger(__name__)

# exactly eight digits, not part of a longer digit run
_EIGHT_DIGITS = re.compile(r"(?<!\d)(\d{8})(?!\d)")
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

DEFAULT_EXTENSION = ".md"


def first_match(path: str, rules: Sequence[PathRule]) -> Optional[PathRule]:
    """Return the first rule whose substring occurs in ``path``."""
    for rule in rules:
        if rule.match in path:
            return rule
    return None


def matching_keyword_tags(text: str, rules: Iterable[KeywordRule]) -> List[str]:
    """Tags of every keyword rule with a keyword occurring in ``text``."""
    lowered = text.lower()
    return [
        rule.tag
        for rule in rules
        if any(keyword in lowered for keyword in rule.keywords)
    ]


def date_from_filename(file_name: str) -> Optional[str]:
    """Read an ``MMDDYYYY`` run from a file name as ``YYYY-MM-DD``.

    Only used when the name holds exactly one such run. Month and day are
    not range-checked, so ``13452024`` yields ``2024-13-45``.
    """
    runs = _EIGHT_DIGITS.findall(file_name)
    if len(runs) != 1:
        return None
    digits = runs[0]
    month, day, year = digits[0:2], digits[2:4], digits[4:8]
    return f"{year}-{month}-{day}"


def title_from_filename(file_name: str, extension: str = DEFAULT_EXTENSION) -> str:
    """File name without its extension, underscores turned into spaces."""
    stem = file_name[: -len(extension)] if extension and file_name.endswith(extension) else file_name
    return stem.replace("_", " ")


def infer_from_path(
    relative_path: str,
    file_name: str,
    rules: InferenceRules,
    extension: str = DEFAULT_EXTENSION,
) -> InferredMetadata:
    """Guess category, project, type, date and tags from where a note lives.

    Category, project and document type are each decided by their own
    first-match pass over the corresponding rule table.

    Args:
        relative_path: Path relative to the vault root, using ``/``
        file_name: Base name of the file
        rules: Ordered inference vocabulary
        extension: Document extension stripped from the title
    """
    inferred = InferredMetadata(
        title=title_from_filename(file_name, extension),
        date=date_from_filename(file_name),
    )

    for field_name, table in (
        ("category", rules.category),
        ("project", rules.project),
        ("doc_type", rules.doc_type),
    ):
        rule = first_match(relative_path, table)
        if rule is None:
            continue
        setattr(inferred, field_name, rule.value)
        if rule.effective_tag:
            inferred.tags.add(rule.effective_tag)

    return inferred


def infer_tags(
    body: str, existing_tags: Iterable[str], rules: InferenceRules
) -> List[str]:
    """Union of ``existing_tags`` and keyword tags found in ``body``, sorted."""
    tags = set(existing_tags)
    tags.update(matching_keyword_tags(body, rules.keywords))
    return sorted(tags)


def fix_date(date: str, file_name: str) -> str:
    """Repair a ``0YYY-MM-DD`` date using the date embedded in the file name.

    Dates that do not start with ``0`` (or are not ``YYYY-MM-DD`` strings)
    are returned unchanged, as are dates whose file name carries no date.
    """
    if not isinstance(date, str) or not _ISO_DATE.match(date) or not date.startswith("0"):
        return date
    corrected = date_from_filename(file_name)
    if corrected and corrected != date:
        logger.debug("Corrected date %s -> %s from %s", date, corrected, file_name)
        return corrected
    return date
