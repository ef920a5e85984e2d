"""Append-only log of past queries and the commands they produced."""
from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional

_HISTORY_FILENAME = "history.jsonl"


def get_default_history_path() -> Path:
    return Path("~/.knock").expanduser() / _HISTORY_FILENAME


@dataclass
class HistoryEntry:
    timestamp: str
    query: str
    command: str


def iter_jsonl(path: Path) -> Iterable[dict]:
    """Yield JSON objects from a JSON Lines file, skipping malformed rows."""
    with path.open("r", encoding="utf-8") as handle:
        for line in handle:
            line = line.strip()
            if not line:
                continue
            try:
                yield json.loads(line)
            except json.JSONDecodeError:
                continue


class History:
    """JSON Lines history file, one entry per translation."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = Path(path).expanduser() if path else get_default_history_path()

    def add(self, query: str, command: str, timestamp: Optional[datetime] = None) -> HistoryEntry:
        moment = timestamp or datetime.now(timezone.utc)
        entry = HistoryEntry(timestamp=moment.isoformat(), query=query, command=command)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(asdict(entry), ensure_ascii=False) + "\n")
        return entry

    def entries(self) -> List[HistoryEntry]:
        if not self.path.is_file():
            return []
        entries: List[HistoryEntry] = []
        for obj in iter_jsonl(self.path):
            entry = _entry_from_obj(obj)
            if entry:
                entries.append(entry)
        return entries

    def recent(self, limit: int = 20) -> List[HistoryEntry]:
        """Return the newest ``limit`` entries, newest first; 0 means all."""
        if limit < 0:
            raise ValueError(f"limit must not be negative, got {limit}")
        entries = self.entries()
        entries.reverse()
        return entries[:limit] if limit else entries

    def search(self, text: str) -> List[HistoryEntry]:
        """Case-insensitive match against queries and commands, newest first."""
        needle = text.strip().lower()
        return [
            entry
            for entry in self.recent(limit=0)
            if needle in entry.query.lower() or needle in entry.command.lower()
        ]


def _entry_from_obj(obj: object) -> Optional[HistoryEntry]:
    if not isinstance(obj, dict):
        return None
    query = obj.get("query")
    command = obj.get("command")
    if not isinstance(query, str) or not isinstance(command, str):
        return None
    timestamp = obj.get("timestamp")
    return HistoryEntry(
        timestamp=timestamp if isinstance(timestamp, str) else "",
        query=query,
        command=command,
    )
