"""Utility functions for the slinky-do vault server."""
import re
from typing import Tuple

WIKILINK_PATTERN = re.compile(
    r"\[\[(?P<target>[^\]\|#]+)(?P<heading>#[^\]\|]*)?(?P<alias>\|[^\]]*)?\]\]"
)


def slugify_title(title: str) -> str:
    """Turn a note title into a file name stem.

    Lowercases, collapses every run of other characters into one hyphen and
    trims hyphens from both ends.

    Examples:
        "Meeting Notes: Q1 Review" -> "meeting-notes-q1-review"
        "  Hello,   World!  " -> "hello-world"
    """
    return re.sub(r"[^a-z0-9]+", "-", title.lower()).strip("-")


def make_excerpt(content: str, query: str, radius: int = 50) -> str:
    """Return text around the first case-insensitive match of ``query``.

    Newlines are flattened to spaces and ``...`` marks truncation. Without a
    match, the first 100 characters are returned.
    """
    index = content.lower().find(query.lower()) if query else -1
    if index < 0:
        return content[:100].replace("\n", " ") + "..."

    start = max(0, index - radius)
    end = min(len(content), index + len(query) + radius)
    excerpt = content[start:end].replace("\n", " ")
    return ("..." if start > 0 else "") + excerpt + ("..." if end < len(content) else "")


def rewrite_wikilinks(
    text: str, old_link: str, new_link: str, old_stem: str, new_stem: str
) -> Tuple[str, int]:
    """Point wikilinks at a renamed note.

    Handles ``[[stem]]``, ``[[stem|alias]]``, ``[[stem#heading]]`` and
    path-style ``[[folder/stem]]`` links; headings and aliases are kept.

    Args:
        text: Document text to rewrite
        old_link: Previous path of the note, relative, without extension
        new_link: New path of the note, relative, without extension
        old_stem: Previous file name without extension
        new_stem: New file name without extension

    Returns:
        (rewritten text, number of links changed)
    """
    count = 0

    def _replace(match: re.Match) -> str:
        nonlocal count
        target = match.group("target").strip()
        suffix = ""
        bare = target
        if bare.lower().endswith(".md"):
            bare, suffix = bare[:-3], bare[-3:]

        if bare == old_link:
            replacement = new_link
        elif bare == old_stem:
            replacement = new_stem
        else:
            return match.group(0)
        if replacement == bare:
            return match.group(0)

        count += 1
        heading = match.group("heading") or ""
        alias = match.group("alias") or ""
        return f"[[{replacement}{suffix}{heading}{alias}]]"

    return WIKILINK_PATTERN.sub(_replace, text), count
