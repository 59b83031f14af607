"""Parsing and line-level editing of the TODO checklist document.

The document text is the only source of truth: items are re-parsed on every
read, and edits rewrite exactly one line.
"""
import re
from typing import Iterable, List, Optional, Sequence, Union

from slinky_do.models.schema import ChecklistItem, TodoStatus

# leading indentation, "-", whitespace, a one-character box, then the rest of the line
CHECKLIST_LINE = re.compile(r"^([ \t]*)-[ \t]+\[([ xX])\][ \t]*(.*)$")
TAG_TOKEN = re.compile(r"#(\w+)")
# a tag and at most one following space
TAG_WITH_SPACE = re.compile(r"#\w+ ?")


def parse_checklist_line(line: str, item_id: int, source_line: int) -> Optional[ChecklistItem]:
    """Parse one line, returning None if it is not a checklist line."""
    match = CHECKLIST_LINE.match(line.rstrip("\r"))
    if not match:
        return None

    indent, box, rest = match.groups()
    return ChecklistItem(
        id=item_id,
        text=TAG_WITH_SPACE.sub("", rest).strip(),
        completed=box.lower() == "x",
        tags=TAG_TOKEN.findall(rest),
        indent=len(indent),
        source_line=source_line,
    )


def parse_checklist(text: str) -> List[ChecklistItem]:
    """Parse every checklist line of a document.

    Ids count matching lines only, starting at 1, regardless of completion
    state or indentation. ``source_line`` is the 1-based line number in
    ``text``. Nothing is filtered here; see ``filter_items``.
    """
    items: List[ChecklistItem] = []
    for line_no, line in enumerate(text.split("\n"), start=1):
        item = parse_checklist_line(line, len(items) + 1, line_no)
        if item is not None:
            items.append(item)
    return items


def filter_items(
    items: Iterable[ChecklistItem],
    status: Union[TodoStatus, str] = TodoStatus.ALL,
    tags: Optional[Sequence[str]] = None,
) -> List[ChecklistItem]:
    """Read-time view over parsed items.

    Args:
        items: Parsed checklist
        status: all, pending or completed
        tags: Only keep items carrying every one of these tags (``#`` optional)
    """
    status = TodoStatus(status)
    wanted = [normalize_tag(t) for t in tags or [] if normalize_tag(t)]

    result = []
    for item in items:
        if status is TodoStatus.PENDING and item.completed:
            continue
        if status is TodoStatus.COMPLETED and not item.completed:
            continue
        if wanted and not all(tag in item.tags for tag in wanted):
            continue
        result.append(item)
    return result


def find_items_by_text(items: Iterable[ChecklistItem], query: str) -> List[ChecklistItem]:
    """Find items by text, case-insensitively.

    Items whose whole text equals the query win; otherwise every item whose
    text contains the query is returned.
    """
    needle = query.strip().lower()
    if not needle:
        return []
    items = list(items)
    exact = [item for item in items if item.text.lower() == needle]
    if exact:
        return exact
    return [item for item in items if needle in item.text.lower()]


def set_completion(text: str, item: ChecklistItem, completed: bool = True) -> str:
    """Rewrite the box character of ``item`` and nothing else.

    Args:
        text: Current document text (must be the text ``item`` was parsed from)
        item: Item to update
        completed: New state

    Raises:
        ValueError: If the item's line is no longer a checklist line
    """
    lines = text.split("\n")
    index = item.source_line - 1
    if index >= len(lines):
        raise ValueError(f"Line {item.source_line} is past the end of the document")

    line = lines[index]
    match = CHECKLIST_LINE.match(line.rstrip("\r"))
    if not match:
        raise ValueError(f"Line {item.source_line} is not a checklist line")

    box_pos = match.start(2)
    lines[index] = line[:box_pos] + ("x" if completed else " ") + line[box_pos + 1:]
    return "\n".join(lines)


def normalize_tag(tag: str) -> str:
    """Strip whitespace and any leading ``#`` characters."""
    return tag.strip().lstrip("#").strip()


def format_item(text: str, tags: Optional[Sequence[str]] = None) -> str:
    """Build a new unchecked line: ``- [ ] #tag1 #tag2 text``."""
    tag_names = [normalize_tag(t) for t in tags or []]
    tag_string = "".join(f" #{name}" for name in tag_names if name)
    return f"- [ ]{tag_string} {text.strip()}"


def append_item(document: str, line: str) -> str:
    """Append a checklist line to the document, keeping one trailing newline."""
    if document.strip():
        return document.rstrip() + "\n" + line + "\n"
    return line + "\n"
