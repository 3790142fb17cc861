from .note_watcher import NoteWatcher

__all__ = ["NoteWatcher"]
