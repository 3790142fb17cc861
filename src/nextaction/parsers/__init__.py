from .task_parser import MarkdownTaskParser, get_and_remove_match
from .note_index import build_snapshot, extract_frontmatter

__all__ = [
    "MarkdownTaskParser",
    "get_and_remove_match",
    "build_snapshot",
    "extract_frontmatter",
]
