"""
Vault-rooted note store.

Notes are addressed by vault-relative posix paths ("Projects/Home.md"). All
operations are coroutines so that the engine awaits them as its only
suspension points; the file I/O itself is ordinary blocking pathlib calls,
each short enough to run inline on the event loop.

Writes replace the whole file atomically (temp file + os.replace).
Callers always see "\n" line endings; a note written with "\r\n" keeps them
when it is rewritten.
A missing note is never an error: read and process return None.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Set

log = logging.getLogger(__name__)

NOTE_SUFFIX = ".md"


class NoteStore:
    def __init__(self, vault_root: Path, exclude_dirs: Optional[Set[str]] = None) -> None:
        self.vault_root = Path(vault_root)
        self.exclude_dirs = set(exclude_dirs or ())

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def resolve(self, path: str) -> Path:
        return self.vault_root / path

    def relative(self, file_path: Path) -> str:
        return file_path.relative_to(self.vault_root).as_posix()

    def walk_notes(self) -> Iterator[Path]:
        """Yield every note under the vault root, respecting exclusions."""
        for file_path in self.vault_root.rglob(f"*{NOTE_SUFFIX}"):
            try:
                rel = file_path.relative_to(self.vault_root)
            except ValueError:
                continue
            if any(part in self.exclude_dirs for part in rel.parts[:-1]):
                continue
            if file_path.is_file():
                yield file_path

    def list_notes(self) -> List[str]:
        return sorted(self.relative(p) for p in self.walk_notes())

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def exists(self, path: str) -> bool:
        return self.resolve(path).is_file()

    async def read(self, path: str) -> Optional[str]:
        """Full note content with "\n" line endings, or None if the note does not exist."""
        raw = self._read_raw(path)
        return None if raw is None else raw.replace("\r\n", "\n")

    async def process(self, path: str, transform: Callable[[str], str]) -> Optional[str]:
        """
        Read-modify-write a note.

        ``transform`` receives the live content and returns the new content.
        Nothing is written when the content is unchanged. Returns the resulting
        content, or None if the note does not exist.
        """
        raw = self._read_raw(path)
        if raw is None:
            log.debug("Note %s not found, nothing to process", path)
            return None
        newline = "\r\n" if "\r\n" in raw else "\n"
        data = raw.replace("\r\n", "\n")
        updated = transform(data)
        if updated != data:
            self._write(self.resolve(path), updated.replace("\n", newline) if newline != "\n" else updated)
        return updated

    async def append(self, path: str, text: str) -> Optional[str]:
        """Append text to an existing note. Returns None if the note does not exist."""
        return await self.process(path, lambda data: data + text)

    async def get_or_create(self, path: str) -> str:
        """Make sure a note exists, creating an empty one (and its folders) if needed."""
        file_path = self.resolve(path)
        if not file_path.exists():
            file_path.parent.mkdir(parents=True, exist_ok=True)
            self._write(file_path, "")
            log.info("Created note %s", path)
        return path

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _read_raw(self, path: str) -> Optional[str]:
        try:
            with open(self.resolve(path), encoding="utf-8", newline="") as f:
                return f.read()
        except FileNotFoundError:
            return None

    @staticmethod
    def _write(file_path: Path, content: str) -> None:
        with tempfile.NamedTemporaryFile(
            "w", encoding="utf-8", dir=str(file_path.parent), prefix=".tmp_", suffix=NOTE_SUFFIX + ".tmp",
            delete=False, newline="",
        ) as tmp:
            tmp.write(content)
            tmp.flush()
            os.fsync(tmp.fileno())
            tmp_name = tmp.name
        os.replace(tmp_name, file_path)
