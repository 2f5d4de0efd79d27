from __future__ import annotations

import time
from dataclasses import dataclass, field
from logging import getLogger
from typing import List, Optional, Tuple

from spritecore.config import EditorConfig

logger = getLogger(__name__)


@dataclass(frozen=True)
class LayerSnapshot:
    id: str
    name: str
    visible: bool
    opacity: float
    locked: bool
    blend_mode: str
    pixels: bytes


@dataclass(frozen=True)
class HistoryEntry:
    width: int
    height: int
    active_layer_index: int
    layers: Tuple[LayerSnapshot, ...]
    frame_id: Optional[str] = None
    timestamp: float = field(default_factory=time.time)

    @property
    def pixel_count(self) -> int:
        return self.width * self.height


class HistoryManager:
    """
    Linear undo log of full-state snapshots.

    ``index`` points at the entry that matches the current document. Pushing
    while ``index`` is not the last entry drops the redo branch. Large
    documents keep fewer entries, and very large documents only store every
    ``throttle_every``-th committed edit.
    """

    def __init__(self, config: Optional[EditorConfig] = None):
        self.config = config or EditorConfig()
        self.entries: List[HistoryEntry] = []
        self.index = -1
        self._commit_count = 0

    def __len__(self) -> int:
        return len(self.entries)

    def capacity_for(self, pixel_count: int) -> int:
        if pixel_count > self.config.large_sprite_pixels:
            return self.config.max_history_large
        return self.config.max_history

    def _throttled(self, pixel_count: int) -> bool:
        if pixel_count <= self.config.throttle_pixels:
            return False
        skip = self._commit_count % self.config.throttle_every != 0
        self._commit_count += 1
        return skip

    def push(self, entry: HistoryEntry, force: bool = False) -> bool:
        if not force and self._throttled(entry.pixel_count):
            logger.debug("History push throttled for %dx%d sprite", entry.width, entry.height)
            return False

        if self.index < len(self.entries) - 1:
            del self.entries[self.index + 1:]

        self.entries.append(entry)
        self.index += 1

        cap = self.capacity_for(entry.pixel_count)
        overflow = len(self.entries) - cap
        if overflow > 0:
            del self.entries[:overflow]
            self.index -= overflow
            logger.debug("History evicted %d oldest entries (cap %d)", overflow, cap)
        return True

    def can_undo(self) -> bool:
        return self.index > 0

    def can_redo(self) -> bool:
        return self.index < len(self.entries) - 1

    def undo(self) -> Optional[HistoryEntry]:
        if not self.can_undo():
            return None
        self.index -= 1
        return self.entries[self.index]

    def redo(self) -> Optional[HistoryEntry]:
        if not self.can_redo():
            return None
        self.index += 1
        return self.entries[self.index]

    def current(self) -> Optional[HistoryEntry]:
        if 0 <= self.index < len(self.entries):
            return self.entries[self.index]
        return None

    def clear(self) -> None:
        self.entries.clear()
        self.index = -1
        self._commit_count = 0

    def stats(self) -> dict:
        return {
            "entries": len(self.entries),
            "index": self.index,
            "undo_count": max(0, self.index),
            "redo_count": max(0, len(self.entries) - 1 - self.index),
        }
