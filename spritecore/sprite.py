from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from logging import getLogger
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np

from spritecore.color import RGBA, round_half_up
from spritecore.config import EditorConfig
from spritecore.history import HistoryEntry, HistoryManager
from spritecore.layers import Layer, LayerStack, new_id

logger = getLogger(__name__)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(eq=False)
class Frame:
    stack: LayerStack
    name: str = "Frame 1"
    id: str = field(default_factory=new_id)

    @classmethod
    def blank(cls, width: int, height: int, name: str = "Frame 1") -> "Frame":
        return cls(stack=LayerStack(width, height), name=name)

    @property
    def width(self) -> int:
        return self.stack.width

    @property
    def height(self) -> int:
        return self.stack.height

    @property
    def active_layer_index(self) -> int:
        return self.stack.active_index

    @property
    def layers(self) -> List[Layer]:
        return self.stack.layers

    def copy(self, name: Optional[str] = None) -> "Frame":
        return Frame(stack=self.stack.copy(), name=self.name if name is None else name)


class Sprite:
    """
    One editable artwork: ordered frames, each with its own layer stack.

    Every committed batch on any frame's stack is snapshotted into the
    sprite's history. Width and height always read through to the active
    frame.
    """

    def __init__(
        self,
        width: Optional[int] = None,
        height: Optional[int] = None,
        name: str = "Untitled",
        config: Optional[EditorConfig] = None,
        frames: Optional[List[Frame]] = None,
        id: Optional[str] = None,
        created_at: Optional[str] = None,
        modified_at: Optional[str] = None,
        active_frame_index: int = 0,
    ):
        self.config = config or EditorConfig()
        self.id = id or new_id()
        self.name = name
        now = utc_now()
        self.created_at = created_at or now
        self.modified_at = modified_at or now

        if frames:
            self.frames: List[Frame] = list(frames)
        else:
            w = self.config.default_width if width is None else int(width)
            h = self.config.default_height if height is None else int(height)
            self.frames = [Frame.blank(w, h)]
        self.active_frame_index = max(0, min(int(active_frame_index), len(self.frames) - 1))

        self.listeners: List[Callable[["Sprite"], None]] = []
        # Last recorded state of each frame, keyed by frame id
        self._baselines: Dict[str, HistoryEntry] = {}
        for frame in self.frames:
            self._attach(frame)

        self.history = HistoryManager(self.config)
        self.history.push(self._baselines[self.active_frame.id], force=True)

    # ---- wiring ----
    def _attach(self, frame: Frame) -> None:
        frame.stack.on_commit = self._on_stack_commit
        frame.stack.on_change = self._on_stack_change
        self._baselines[frame.id] = frame.stack.snapshot(frame.id)

    def _frame_for_stack(self, stack: LayerStack) -> Optional[Frame]:
        for frame in self.frames:
            if frame.stack is stack:
                return frame
        return None

    def _record(self, entry: HistoryEntry, force: bool = False) -> bool:
        current = self.history.current()
        baseline = self._baselines.get(entry.frame_id)
        if current is not None and baseline is not None and current.frame_id != entry.frame_id:
            # First edit of this frame since another frame was edited
            self.history.push(baseline, force=True)
        stored = self.history.push(entry, force=force)
        if stored and entry.frame_id is not None:
            self._baselines[entry.frame_id] = entry
        return stored

    def _on_stack_commit(self, stack: LayerStack) -> None:
        frame = self._frame_for_stack(stack)
        self.touch()
        self._record(stack.snapshot(frame.id if frame else None))

    def _on_stack_change(self, stack: LayerStack) -> None:
        self._notify()

    def _notify(self) -> None:
        for listener in list(self.listeners):
            listener(self)

    def add_listener(self, listener: Callable[["Sprite"], None]) -> None:
        if listener not in self.listeners:
            self.listeners.append(listener)

    def remove_listener(self, listener: Callable[["Sprite"], None]) -> None:
        if listener in self.listeners:
            self.listeners.remove(listener)

    def touch(self) -> None:
        self.modified_at = utc_now()

    def _snapshot(self) -> HistoryEntry:
        return self.active_stack.snapshot(self.active_frame.id)

    def commit(self, force: bool = False) -> bool:
        """Record the active frame's current state as one history entry."""
        self.touch()
        return self._record(self._snapshot(), force=force)

    # ---- read-through properties ----
    @property
    def active_frame(self) -> Frame:
        return self.frames[self.active_frame_index]

    @property
    def active_stack(self) -> LayerStack:
        return self.active_frame.stack

    @property
    def layers(self) -> List[Layer]:
        return self.active_stack.layers

    @property
    def width(self) -> int:
        return self.active_frame.width

    @property
    def height(self) -> int:
        return self.active_frame.height

    @property
    def pixel_count(self) -> int:
        return self.width * self.height

    @property
    def is_animated(self) -> bool:
        return len(self.frames) > 1

    # ---- pixel API ----
    def in_bounds(self, x: int, y: int) -> bool:
        return self.active_stack.in_bounds(x, y)

    def get_pixel(self, x: int, y: int) -> RGBA:
        return self.active_stack.get_pixel(x, y)

    def set_pixel(self, x: int, y: int, color: Sequence[int], layer_index: Optional[int] = None) -> bool:
        return self.active_stack.set_pixel(x, y, color, layer_index)

    def get_region(self, x: int, y: int, width: int, height: int) -> np.ndarray:
        return self.active_stack.get_region(x, y, width, height)

    def set_region(self, x: int, y: int, pixels, layer_index: Optional[int] = None) -> bool:
        return self.active_stack.set_region(x, y, pixels, layer_index)

    def composite_array(self) -> np.ndarray:
        return self.active_stack.composite_array()

    def get_pixel_array(self) -> List[List[RGBA]]:
        return [[tuple(px) for px in row] for row in self.composite_array().tolist()]

    def start_batch(self) -> None:
        self.active_stack.start_batch()

    def end_batch(self) -> bool:
        return self.active_stack.end_batch()

    # ---- structural edits ----
    def _refresh_other_baselines(self) -> None:
        active = self.active_frame
        for frame in self.frames:
            if frame is not active:
                self._baselines[frame.id] = frame.stack.snapshot(frame.id)

    def resize(self, new_width: int, new_height: int, keep_aspect: bool = False) -> bool:
        new_width = int(new_width)
        new_height = int(new_height)
        if new_width <= 0 or new_height <= 0:
            return False
        if keep_aspect:
            aspect = self.width / self.height
            if new_width / new_height < aspect:
                new_width = max(1, round_half_up(new_height * aspect))
            else:
                new_height = max(1, round_half_up(new_width / aspect))

        logger.debug("Resizing sprite %s from %dx%d to %dx%d", self.id, self.width, self.height, new_width, new_height)
        for frame in self.frames:
            frame.stack.resize_nearest(new_width, new_height)
        self._refresh_other_baselines()
        self.commit(force=True)
        self._notify()
        return True

    def crop(self, left: int, top: int, width: int, height: int) -> bool:
        if width <= 0 or height <= 0:
            return False
        if left < 0 or top < 0 or left + width > self.width or top + height > self.height:
            return False
        for frame in self.frames:
            frame.stack.crop(left, top, width, height)
        self._refresh_other_baselines()
        self.commit(force=True)
        self._notify()
        return True

    def clear(self) -> bool:
        return self.active_stack.clear_layer()

    def fill(self, color: Sequence[int]) -> bool:
        return self.active_stack.fill_layer(color)

    # ---- frames ----
    def add_frame(self, frame: Optional[Frame] = None) -> Frame:
        if frame is None:
            frame = Frame.blank(self.width, self.height, name=f"Frame {len(self.frames) + 1}")
        self._attach(frame)
        self.frames.append(frame)
        self.active_frame_index = len(self.frames) - 1
        self.touch()
        self._notify()
        return frame

    def duplicate_frame(self, index: int) -> Optional[Frame]:
        if not 0 <= index < len(self.frames):
            return None
        source = self.frames[index]
        frame = source.copy(name=f"{source.name} Copy")
        self._attach(frame)
        self.frames.insert(index + 1, frame)
        self.active_frame_index = index + 1
        self.touch()
        self._notify()
        return frame

    def delete_frame(self, index: int) -> bool:
        if len(self.frames) <= 1 or not 0 <= index < len(self.frames):
            return False
        self._baselines.pop(self.frames[index].id, None)
        del self.frames[index]
        if self.active_frame_index >= len(self.frames):
            self.active_frame_index = len(self.frames) - 1
        elif self.active_frame_index > index:
            self.active_frame_index -= 1
        self.touch()
        self._notify()
        return True

    def set_active_frame(self, index: int) -> bool:
        if not 0 <= index < len(self.frames):
            return False
        self.active_frame_index = index
        self._notify()
        return True

    # ---- history ----
    def _restore(self, entry: HistoryEntry) -> None:
        target = self.active_frame
        if entry.frame_id is not None:
            for frame in self.frames:
                if frame.id == entry.frame_id:
                    target = frame
                    break
        self.active_frame_index = self.frames.index(target)
        target.stack.restore(entry)
        self._baselines[target.id] = entry
        self.touch()

    def can_undo(self) -> bool:
        return self.history.can_undo()

    def can_redo(self) -> bool:
        return self.history.can_redo()

    def undo(self) -> bool:
        entry = self.history.undo()
        if entry is None:
            return False
        self._restore(entry)
        return True

    def redo(self) -> bool:
        entry = self.history.redo()
        if entry is None:
            return False
        self._restore(entry)
        return True

    # ---- copies / stats ----
    def clone(self, name: Optional[str] = None) -> "Sprite":
        return Sprite(
            name=self.name if name is None else name,
            config=self.config,
            frames=[frame.copy() for frame in self.frames],
            active_frame_index=self.active_frame_index,
        )

    def stats(self) -> dict:
        pixels = self.composite_array().reshape(-1, 4)
        alpha = pixels[:, 3]
        opaque = pixels[alpha > 0]
        unique = len(np.unique(opaque, axis=0)) if len(opaque) else 0
        return {
            "id": self.id,
            "name": self.name,
            "width": self.width,
            "height": self.height,
            "total_pixels": int(pixels.shape[0]),
            "transparent_pixels": int(np.count_nonzero(alpha == 0)),
            "opaque_pixels": int(len(opaque)),
            "unique_colors": int(unique),
            "frames": len(self.frames),
            "layers": len(self.layers),
            "is_animated": self.is_animated,
            "created_at": self.created_at,
            "modified_at": self.modified_at,
        }

    def __repr__(self) -> str:
        return f"Sprite({self.name!r}, {self.width}x{self.height}, frames={len(self.frames)})"
