"""
Runtime configuration.

Settings are read from the environment (as the server entry point always has)
and then overlaid with an optional JSON settings file kept inside the vault.
The settings file is shared between replicas, which is how the elected master
device id reaches every replica.
"""

import json
import logging
import os
import socket
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Set

log = logging.getLogger(__name__)

_DEFAULT_EXCLUDE_DIRS = ".git,.obsidian,node_modules,.trash"
_STATE_DIR = ".nextaction"


class DisplayOption(str, Enum):
    EMOJI = "emoji"
    TAG = "tag"
    NONE = "none"


@dataclass
class DisplaySettings:
    """How each task attribute is written back into a note."""

    type: DisplayOption = DisplayOption.EMOJI
    created: DisplayOption = DisplayOption.NONE
    scheduled: DisplayOption = DisplayOption.EMOJI
    due: DisplayOption = DisplayOption.EMOJI
    completed: DisplayOption = DisplayOption.EMOJI


@dataclass
class ExcludeTags:
    note: str = "#exclude-note"
    section: str = "#exclude-section"
    task: str = "#exclude"


@dataclass
class Intervals:
    """All timer intervals, in seconds."""

    poll: float = 5.0
    reconcile_debounce: float = 2.0
    save_debounce: float = 3.0
    queue: float = 2.0
    queue_stale: float = 30.0
    orphan_sweep: float = 3600.0
    user_activity: float = 10.0


@dataclass
class ReplicaSettings:
    device_id: str = ""
    master_id: str = ""


@dataclass
class Settings:
    vault_root: Path = Path(".")
    exclude_dirs: Set[str] = field(default_factory=lambda: _parse_exclude_dirs(_DEFAULT_EXCLUDE_DIRS))
    task_block_prefix: str = "na"
    default_note: str = "Next Action quick add.md"
    archive_note: str = "Next Action completed tasks.md"
    db_path: Optional[Path] = None
    settings_file: Optional[Path] = None
    orphan_retention_days: int = 14
    display: DisplaySettings = field(default_factory=DisplaySettings)
    exclude_tags: ExcludeTags = field(default_factory=ExcludeTags)
    intervals: Intervals = field(default_factory=Intervals)
    replica: ReplicaSettings = field(default_factory=ReplicaSettings)
    api_enabled: bool = True
    api_port: int = 9410

    def __post_init__(self) -> None:
        self.vault_root = Path(self.vault_root)
        if self.db_path is None:
            self.db_path = self.vault_root / _STATE_DIR / "db-tasks.json"
        if self.settings_file is None:
            self.settings_file = self.vault_root / _STATE_DIR / "settings.json"
        if not self.replica.device_id:
            self.replica.device_id = socket.gethostname()

    @property
    def retention_seconds(self) -> int:
        return self.orphan_retention_days * 24 * 60 * 60

    # ------------------------------------------------------------------
    # Loading / saving
    # ------------------------------------------------------------------

    @classmethod
    def from_env(cls, environ: Optional[Dict[str, str]] = None) -> "Settings":
        """Build settings from environment variables, then apply the settings file."""
        env = os.environ if environ is None else environ
        settings = cls(
            vault_root=Path(env.get("VAULT_ROOT", ".")),
            exclude_dirs=_parse_exclude_dirs(env.get("EXCLUDE_DIRS", _DEFAULT_EXCLUDE_DIRS)),
            task_block_prefix=env.get("TASK_BLOCK_PREFIX", "na"),
            default_note=env.get("DEFAULT_NOTE", "Next Action quick add.md"),
            archive_note=env.get("ARCHIVE_NOTE", "Next Action completed tasks.md"),
            db_path=Path(env["DB_PATH"]) if env.get("DB_PATH") else None,
            settings_file=Path(env["SETTINGS_FILE"]) if env.get("SETTINGS_FILE") else None,
            replica=ReplicaSettings(device_id=env.get("DEVICE_ID", "")),
            api_enabled=env.get("API_ENABLED", "true").lower() in ("true", "1", "yes"),
            api_port=int(env.get("API_PORT", "9410")),
        )
        if env.get("POLL_INTERVAL"):
            settings.intervals.poll = float(env["POLL_INTERVAL"])
        settings.apply_file()
        return settings

    def apply_file(self) -> None:
        """Overlay values from the JSON settings file. A missing or corrupt file is ignored."""
        data = self._load_file()
        if data is None:
            return

        for key in ("task_block_prefix", "default_note", "archive_note"):
            if isinstance(data.get(key), str) and data[key]:
                setattr(self, key, data[key])
        if isinstance(data.get("orphan_retention_days"), int):
            self.orphan_retention_days = data["orphan_retention_days"]

        _overlay(self.display, data.get("display"), DisplayOption)
        _overlay(self.exclude_tags, data.get("exclude_tags"))
        _overlay(self.intervals, data.get("intervals"), float)
        self._apply_replica(data)

    def apply_shared(self) -> None:
        """
        Re-read only the replica-shared part of the settings file.

        Everything else (block prefix, note names, intervals) is fixed once
        the engine has started.
        """
        data = self._load_file()
        if data is not None:
            self._apply_replica(data)

    def _apply_replica(self, data: Dict[str, Any]) -> None:
        replica = data.get("replica") or {}
        if isinstance(replica, dict) and "master_id" in replica:
            self.replica.master_id = str(replica["master_id"] or "")

    def _load_file(self) -> Optional[Dict[str, Any]]:
        assert self.settings_file is not None
        try:
            data = json.loads(self.settings_file.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError):
            log.warning("Ignoring unreadable settings file %s", self.settings_file)
            return None
        if not isinstance(data, dict):
            log.warning("Ignoring settings file %s: not an object", self.settings_file)
            return None
        return data

    def save_shared(self) -> None:
        """
        Write the replica-shared part of the settings back to the settings file.

        Only the master id is shared; device ids stay local to each replica.
        """
        assert self.settings_file is not None
        try:
            data = json.loads(self.settings_file.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                data = {}
        except (OSError, ValueError):
            data = {}
        data.setdefault("replica", {})["master_id"] = self.replica.master_id
        self.settings_file.parent.mkdir(parents=True, exist_ok=True)
        self.settings_file.write_text(json.dumps(data, indent=2), encoding="utf-8")

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["vault_root"] = str(self.vault_root)
        data["exclude_dirs"] = sorted(self.exclude_dirs)
        data["db_path"] = str(self.db_path)
        data["settings_file"] = str(self.settings_file)
        data["display"] = {k: v.value for k, v in asdict(self.display).items()}
        return data


def _parse_exclude_dirs(raw: str) -> Set[str]:
    """Parse a comma-separated list of directory names to exclude."""
    return {part.strip() for part in raw.split(",") if part.strip()}


def _overlay(target: Any, values: Any, coerce: Any = None) -> None:
    if not isinstance(values, dict):
        return
    for key, value in values.items():
        if not hasattr(target, key):
            continue
        try:
            setattr(target, key, coerce(value) if coerce else value)
        except (TypeError, ValueError):
            log.warning("Ignoring invalid setting %s=%r", key, value)
