"""
Structural index of a single note.

A NoteSnapshot pairs the exact text that was indexed with the list items,
headings and tags found in it. The reconciliation engine only ever parses
lines out of ``snapshot.content``, so any later comparison against the live
note is a verbatim comparison against this string.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class ListItem:
    """A list item line. ``parent_line`` is None for root-level items."""

    line: int
    indent: int
    parent_line: Optional[int] = None
    is_task: bool = False


@dataclass
class Heading:
    line: int
    level: int
    text: str


@dataclass
class NoteSnapshot:
    path: str
    content: str
    list_items: List[ListItem] = field(default_factory=list)
    headings: List[Heading] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    frontmatter: dict = field(default_factory=dict)

    @property
    def lines(self) -> List[str]:
        return self.content.split("\n")

    @property
    def task_items(self) -> List[ListItem]:
        return [item for item in self.list_items if item.is_task]

    def nearest_heading_line(self, line: int) -> Optional[int]:
        """Line number of the last heading above ``line``, if any."""
        above = [h.line for h in self.headings if h.line < line]
        return above[-1] if above else None
