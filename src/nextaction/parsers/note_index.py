"""
Structural index of a note: frontmatter, tags, headings and list items.

Adapted from the TASKS.md parser. Where that parser built a task tree, this
module only records positions: every list item with its indentation and the
line of its parent item, every heading, and the note-level tags. Task lines
are parsed later, one at a time, by the reconciliation engine.

Main API:
    build_snapshot(path, content)  → NoteSnapshot
"""

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

import yaml

from nextaction.models.note import Heading, ListItem, NoteSnapshot

log = logging.getLogger(__name__)

_LIST_ITEM = re.compile(r"^([ \t]*)[-*+]\s")
_TASK_ITEM = re.compile(r"^[ \t]*[-*+]\s+\[.\]\s")
_INLINE_TAG = re.compile(r"(?:^|\s)(#[\w/-]+)")


def _indent_width(indent_str: str) -> int:
    """Convert a leading-whitespace string to a column count (tab = 4)."""
    return len(indent_str.replace("\t", "    "))


def _parse_heading(stripped: str) -> Optional[Tuple[int, str]]:
    """Return (level, text) or None if line is not a heading."""
    match = re.match(r"^(#{1,6})\s+(.*)$", stripped)
    if not match:
        return None
    return len(match.group(1)), match.group(2).strip()


# ---------------------------------------------------------------------------
# Frontmatter extraction
# ---------------------------------------------------------------------------

def extract_frontmatter(lines: List[str]) -> Tuple[Dict[str, Any], int]:
    """
    Extract YAML frontmatter from the beginning of the note.

    Returns:
        (frontmatter, body_start_index)
        If there is no frontmatter, or it is not valid YAML, returns ({}, 0)
        for the mapping while still skipping a properly delimited block.
    """
    if not lines or lines[0].strip() != "---":
        return {}, 0

    for i in range(1, len(lines)):
        if lines[i].strip() == "---":
            raw = "\n".join(lines[1:i])
            try:
                data = yaml.safe_load(raw) or {}
            except yaml.YAMLError:
                log.debug("Invalid frontmatter YAML, ignoring")
                data = {}
            if not isinstance(data, dict):
                data = {}
            return data, i + 1

    # Never closed, treat as no frontmatter
    return {}, 0


def frontmatter_tags(frontmatter: Dict[str, Any]) -> List[str]:
    """Normalise ``tags:`` frontmatter (list or comma/space separated) to ``#tag`` strings."""
    raw = frontmatter.get("tags") or frontmatter.get("tag") or []
    if isinstance(raw, str):
        raw = re.split(r"[,\s]+", raw)
    tags = []
    for tag in raw:
        tag = str(tag).strip()
        if tag:
            tags.append(tag if tag.startswith("#") else f"#{tag}")
    return tags


# ---------------------------------------------------------------------------
# Main API
# ---------------------------------------------------------------------------

def build_snapshot(path: str, content: str) -> NoteSnapshot:
    """
    Index note content.

    Args:
        path: Vault-relative path of the note
        content: Full note content, stored verbatim on the snapshot

    Returns:
        NoteSnapshot whose list items carry parent relationships derived from
        indentation. A heading ends every open list.
    """
    lines = content.split("\n")
    frontmatter, body_start = extract_frontmatter(lines)
    tags = frontmatter_tags(frontmatter)

    list_items: List[ListItem] = []
    headings: List[Heading] = []
    stack: List[ListItem] = []
    in_code_block = False

    for line_num in range(body_start, len(lines)):
        line = lines[line_num]
        stripped = line.strip()

        if stripped.startswith("```"):
            in_code_block = not in_code_block
            continue
        if in_code_block or not stripped:
            continue

        heading = _parse_heading(stripped)
        if heading and not line[:1].isspace():
            level, text = heading
            headings.append(Heading(line=line_num, level=level, text=text))
            stack.clear()
            continue

        match = _LIST_ITEM.match(line)
        if match:
            item = ListItem(
                line=line_num,
                indent=_indent_width(match.group(1)),
                is_task=bool(_TASK_ITEM.match(line)),
            )
            # Pop stack to find parent
            while stack and stack[-1].indent >= item.indent:
                stack.pop()
            item.parent_line = stack[-1].line if stack else None
            list_items.append(item)
            stack.append(item)
        elif not line[:1].isspace():
            # Unindented prose ends the current list
            stack.clear()

        for tag in _INLINE_TAG.findall(line):
            if tag not in tags:
                tags.append(tag)

    return NoteSnapshot(
        path=path,
        content=content,
        list_items=list_items,
        headings=headings,
        tags=tags,
        frontmatter=frontmatter,
    )
