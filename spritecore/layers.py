from __future__ import annotations

import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from logging import getLogger
from typing import Callable, Iterator, List, Optional, Sequence

import numpy as np

from spritecore.color import RGBA, TRANSPARENT, normalize_color
from spritecore.history import HistoryEntry, LayerSnapshot
from spritecore.pixel_buffer import PixelBuffer

logger = getLogger(__name__)

# Only "normal" has its own math; the others are kept as tags and composite like "normal".
BLEND_MODES = ("normal", "multiply", "screen", "overlay", "darken", "lighten")


def new_id() -> str:
    return uuid.uuid4().hex


def normalize_blend_mode(mode: Optional[str]) -> str:
    mode = str(mode or "normal").lower()
    return mode if mode in BLEND_MODES else "normal"


def clamp_opacity(value: float) -> float:
    try:
        value = float(value)
    except (TypeError, ValueError):
        return 1.0
    if value != value:
        return 1.0
    return max(0.0, min(1.0, value))


def composite_over(acc: np.ndarray, top: np.ndarray, opacity: float = 1.0) -> np.ndarray:
    """
    One alpha-over step on a float accumulator.

    ``acc`` is (h, w, 4) float64 with RGB in 0..255 and alpha in 0..255;
    ``top`` is a (h, w, 4) uint8 layer. Returns a new accumulator, unrounded,
    so any number of layers can be stacked before ``finish_composite``.
    """
    acc_rgb = acc[..., :3]
    acc_alpha = acc[..., 3:4]
    top_rgb = top[..., :3].astype(np.float64)
    top_alpha = top[..., 3:4].astype(np.float64)

    layer_a = top_alpha / 255.0 * float(opacity)
    result_a = acc_alpha / 255.0
    combined = layer_a + result_a * (1.0 - layer_a)

    blended_rgb = np.divide(
        top_rgb * layer_a + acc_rgb * result_a * (1.0 - layer_a),
        combined,
        out=acc_rgb.copy(),
        where=combined > 0,
    )
    blended = np.concatenate([blended_rgb, np.where(combined > 0, combined * 255.0, acc_alpha)], axis=-1)

    # An empty accumulator takes the first visible pixel as is
    first = np.concatenate([top_rgb, top_alpha * float(opacity)], axis=-1)
    out = np.where(acc_alpha == 0, first, blended)

    # Fully transparent layer pixels leave the accumulator untouched
    skip = top[..., 3:4] == 0
    return np.where(skip, acc, out)


def finish_composite(acc: np.ndarray) -> np.ndarray:
    """Round a float accumulator half-up to uint8; fully transparent pixels become (0, 0, 0, 0)."""
    out = np.clip(np.floor(acc + 0.5), 0, 255).astype(np.uint8)
    out[out[..., 3] == 0] = 0
    return out


def empty_accumulator(height: int, width: int) -> np.ndarray:
    return np.zeros((height, width, 4), dtype=np.float64)


@dataclass(eq=False)
class Layer:
    name: str
    buffer: PixelBuffer
    visible: bool = True
    opacity: float = 1.0
    locked: bool = False
    blend_mode: str = "normal"
    id: str = field(default_factory=new_id)

    def __post_init__(self) -> None:
        self.opacity = clamp_opacity(self.opacity)
        self.blend_mode = normalize_blend_mode(self.blend_mode)

    @classmethod
    def blank(cls, name: str, width: int, height: int) -> "Layer":
        return cls(name=name, buffer=PixelBuffer(width, height))

    @property
    def width(self) -> int:
        return self.buffer.width

    @property
    def height(self) -> int:
        return self.buffer.height

    def copy(self, name: Optional[str] = None, keep_id: bool = False) -> "Layer":
        return Layer(
            name=self.name if name is None else name,
            buffer=self.buffer.copy(),
            visible=self.visible,
            opacity=self.opacity,
            locked=self.locked,
            blend_mode=self.blend_mode,
            id=self.id if keep_id else new_id(),
        )

    def snapshot(self) -> LayerSnapshot:
        return LayerSnapshot(
            id=self.id,
            name=self.name,
            visible=self.visible,
            opacity=self.opacity,
            locked=self.locked,
            blend_mode=self.blend_mode,
            pixels=self.buffer.to_bytes(),
        )

    @classmethod
    def from_snapshot(cls, snap: LayerSnapshot, width: int, height: int) -> "Layer":
        return cls(
            name=snap.name,
            buffer=PixelBuffer.from_bytes(width, height, snap.pixels),
            visible=snap.visible,
            opacity=snap.opacity,
            locked=snap.locked,
            blend_mode=snap.blend_mode,
            id=snap.id,
        )

    def __repr__(self) -> str:
        return f"Layer({self.name!r}, visible={self.visible}, opacity={self.opacity:.2f}, locked={self.locked})"


class LayerStack:
    """
    Ordered layers of one size; index 0 is the bottom layer.

    Writes go straight to a layer's buffer. Reads through ``get_pixel`` are
    composited. Bulk writes and structural edits run inside a batch; closing
    the outermost batch calls ``on_commit`` once and ``on_change`` once, and
    neither if nothing inside the batch changed.
    """

    def __init__(
        self,
        width: int,
        height: int,
        layers: Optional[List[Layer]] = None,
        active_index: int = 0,
    ):
        self.width = int(width)
        self.height = int(height)
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Layer stack size must be positive, got {self.width}x{self.height}")
        self.layers: List[Layer] = list(layers) if layers else [Layer.blank("Layer 1", self.width, self.height)]
        for layer in self.layers:
            if layer.width != self.width or layer.height != self.height:
                raise ValueError(
                    f"Layer {layer.name!r} is {layer.width}x{layer.height}, stack is {self.width}x{self.height}"
                )
        self.active_index = max(0, min(int(active_index), len(self.layers) - 1))

        self.on_change: Optional[Callable[["LayerStack"], None]] = None
        self.on_commit: Optional[Callable[["LayerStack"], None]] = None
        self._batch_depth = 0
        self._pending = False

    def __len__(self) -> int:
        return len(self.layers)

    def __iter__(self) -> Iterator[Layer]:
        return iter(self.layers)

    # ---- notifications / batching ----
    def _changed(self) -> None:
        if self._batch_depth > 0:
            self._pending = True
            return
        if self.on_change is not None:
            self.on_change(self)

    @property
    def in_batch(self) -> bool:
        return self._batch_depth > 0

    def start_batch(self) -> None:
        self._batch_depth += 1

    def end_batch(self) -> bool:
        if self._batch_depth == 0:
            return False
        self._batch_depth -= 1
        if self._batch_depth == 0:
            changed = self._pending
            self._pending = False
            # A batch that wrote nothing leaves history alone
            if changed:
                if self.on_commit is not None:
                    self.on_commit(self)
                if self.on_change is not None:
                    self.on_change(self)
        return True

    def force_end_batch(self) -> bool:
        if self._batch_depth == 0:
            return False
        self._batch_depth = 1
        return self.end_batch()

    @contextmanager
    def batch(self) -> Iterator["LayerStack"]:
        self.start_batch()
        try:
            yield self
        finally:
            self.end_batch()

    def _structural(self) -> None:
        self.start_batch()
        self._pending = True
        self.end_batch()

    # ---- lookup ----
    def layer(self, index: Optional[int] = None) -> Optional[Layer]:
        idx = self.active_index if index is None else index
        if 0 <= idx < len(self.layers):
            return self.layers[idx]
        return None

    @property
    def active_layer(self) -> Layer:
        return self.layers[self.active_index]

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def is_writable(self, layer_index: Optional[int] = None) -> bool:
        layer = self.layer(layer_index)
        return layer is not None and not layer.locked

    # ---- pixel access ----
    def composite_region(self, x: int, y: int, width: int, height: int) -> np.ndarray:
        x0 = max(0, int(x))
        y0 = max(0, int(y))
        x1 = min(self.width, int(x) + int(width))
        y1 = min(self.height, int(y) + int(height))
        if x1 <= x0 or y1 <= y0:
            return np.zeros((0, 0, 4), dtype=np.uint8)
        acc = empty_accumulator(y1 - y0, x1 - x0)
        for layer in self.layers:
            if not layer.visible:
                continue
            acc = composite_over(acc, layer.buffer.data[y0:y1, x0:x1], layer.opacity)
        return finish_composite(acc)

    def composite_array(self) -> np.ndarray:
        return self.composite_region(0, 0, self.width, self.height)

    def get_pixel(self, x: int, y: int) -> RGBA:
        if not self.in_bounds(x, y):
            return TRANSPARENT
        r, g, b, a = self.composite_region(x, y, 1, 1)[0, 0]
        return (int(r), int(g), int(b), int(a))

    def get_layer_pixel(self, x: int, y: int, layer_index: Optional[int] = None) -> RGBA:
        layer = self.layer(layer_index)
        if layer is None:
            return TRANSPARENT
        return layer.buffer.get_pixel(x, y)

    def set_pixel(self, x: int, y: int, color: Sequence[int], layer_index: Optional[int] = None) -> bool:
        layer = self.layer(layer_index)
        if layer is None or layer.locked or not self.in_bounds(x, y):
            return False
        layer.buffer.data[y, x] = normalize_color(color)
        self._changed()
        return True

    def get_region(self, x: int, y: int, width: int, height: int) -> np.ndarray:
        return self.composite_region(x, y, width, height)

    def set_region(
        self,
        x: int,
        y: int,
        pixels,
        layer_index: Optional[int] = None,
        skip_transparent: bool = False,
    ) -> bool:
        layer = self.layer(layer_index)
        if layer is None or layer.locked:
            return False
        src = np.asarray(pixels)
        if src.ndim != 3 or src.shape[2] != 4:
            logger.warning("set_region expects (h, w, 4) pixels, got shape %s", src.shape)
            return False
        src_h, src_w = src.shape[:2]
        x0 = max(0, x)
        y0 = max(0, y)
        x1 = min(self.width, x + src_w)
        y1 = min(self.height, y + src_h)
        if x1 <= x0 or y1 <= y0:
            return False
        block = np.clip(src[y0 - y:y1 - y, x0 - x:x1 - x], 0, 255).astype(np.uint8)
        with self.batch():
            dst = layer.buffer.data[y0:y1, x0:x1]
            if skip_transparent:
                opaque = block[..., 3] > 0
                dst[opaque] = block[opaque]
            else:
                dst[...] = block
            self._changed()
        return True

    def fill_rect(
        self,
        left: int,
        top: int,
        right: int,
        bottom: int,
        color: Sequence[int],
        layer_index: Optional[int] = None,
    ) -> bool:
        """Overwrite the inclusive rectangle on one layer, clipped to the stack."""
        layer = self.layer(layer_index)
        if layer is None or layer.locked:
            return False
        x0 = max(0, left)
        y0 = max(0, top)
        x1 = min(self.width - 1, right)
        y1 = min(self.height - 1, bottom)
        if x1 < x0 or y1 < y0:
            return False
        rgba = normalize_color(color)
        with self.batch():
            layer.buffer.data[y0:y1 + 1, x0:x1 + 1] = rgba
            self._changed()
        return True

    def paint_mask(self, mask: np.ndarray, color: Sequence[int], layer_index: Optional[int] = None) -> bool:
        layer = self.layer(layer_index)
        if layer is None or layer.locked:
            return False
        if mask.shape != (self.height, self.width):
            raise ValueError(f"Mask shape {mask.shape} does not match {self.width}x{self.height}")
        with self.batch():
            layer.buffer.data[mask] = normalize_color(color)
            self._changed()
        return True

    # ---- layer management ----
    def add_layer(self, name: Optional[str] = None, insert_at: Optional[int] = None) -> Layer:
        name = name or f"Layer {len(self.layers) + 1}"
        idx = len(self.layers) if insert_at is None else max(0, min(int(insert_at), len(self.layers)))
        layer = Layer.blank(name, self.width, self.height)
        self.layers.insert(idx, layer)
        self.active_index = idx
        self._structural()
        return layer

    def delete_layer(self, index: int) -> bool:
        if len(self.layers) <= 1 or not 0 <= index < len(self.layers):
            return False
        del self.layers[index]
        if self.active_index >= len(self.layers):
            self.active_index = len(self.layers) - 1
        elif self.active_index > index:
            self.active_index -= 1
        self._structural()
        return True

    def duplicate_layer(self, index: int) -> Optional[Layer]:
        source = self.layer(index)
        if source is None:
            return None
        layer = source.copy(name=f"{source.name} Copy")
        layer.locked = False
        self.layers.insert(index + 1, layer)
        self.active_index = index + 1
        self._structural()
        return layer

    def move_layer(self, from_index: int, to_index: int) -> bool:
        count = len(self.layers)
        if not (0 <= from_index < count and 0 <= to_index < count) or from_index == to_index:
            return False
        layer = self.layers.pop(from_index)
        self.layers.insert(to_index, layer)
        if self.active_index == from_index:
            self.active_index = to_index
        elif from_index < self.active_index <= to_index:
            self.active_index -= 1
        elif to_index <= self.active_index < from_index:
            self.active_index += 1
        self._structural()
        return True

    def merge_down(self, index: int) -> bool:
        if not 0 < index < len(self.layers):
            return False
        upper = self.layers[index]
        lower = self.layers[index - 1]
        if lower.locked:
            return False
        merged = composite_over(lower.buffer.data.astype(np.float64), upper.buffer.data, upper.opacity)
        lower.buffer.data = finish_composite(merged)
        lower.name = f"{lower.name} + {upper.name}"
        del self.layers[index]
        if self.active_index >= index:
            self.active_index = max(0, self.active_index - 1)
        self._structural()
        return True

    def set_active_layer(self, index: int) -> bool:
        if not 0 <= index < len(self.layers):
            return False
        self.active_index = index
        self._changed()
        return True

    def set_layer_visibility(self, index: int, visible: bool) -> bool:
        layer = self.layer(index)
        if layer is None:
            return False
        layer.visible = bool(visible)
        self._changed()
        return True

    def set_layer_opacity(self, index: int, opacity: float) -> bool:
        layer = self.layer(index)
        if layer is None:
            return False
        layer.opacity = clamp_opacity(opacity)
        self._changed()
        return True

    def set_layer_name(self, index: int, name: str) -> bool:
        layer = self.layer(index)
        if layer is None or not name or not name.strip():
            return False
        layer.name = name.strip()
        self._changed()
        return True

    def set_layer_locked(self, index: int, locked: bool) -> bool:
        layer = self.layer(index)
        if layer is None:
            return False
        layer.locked = bool(locked)
        self._changed()
        return True

    def set_layer_blend_mode(self, index: int, mode: str) -> bool:
        layer = self.layer(index)
        if layer is None:
            return False
        layer.blend_mode = normalize_blend_mode(mode)
        self._changed()
        return True

    def clear_layer(self, index: Optional[int] = None) -> bool:
        layer = self.layer(index)
        if layer is None or layer.locked:
            return False
        layer.buffer.clear()
        self._structural()
        return True

    def fill_layer(self, color: Sequence[int], index: Optional[int] = None) -> bool:
        layer = self.layer(index)
        if layer is None or layer.locked:
            return False
        layer.buffer.fill(color)
        self._structural()
        return True

    # ---- reallocation (the owning sprite records history) ----
    def resize_nearest(self, new_width: int, new_height: int) -> None:
        for layer in self.layers:
            layer.buffer = layer.buffer.resized_nearest(new_width, new_height)
        self.width = int(new_width)
        self.height = int(new_height)
        self._changed()

    def crop(self, left: int, top: int, width: int, height: int) -> None:
        for layer in self.layers:
            layer.buffer = layer.buffer.cropped(left, top, width, height)
        self.width = int(width)
        self.height = int(height)
        self._changed()

    def copy(self, keep_ids: bool = False) -> "LayerStack":
        return LayerStack(
            self.width,
            self.height,
            layers=[layer.copy(keep_id=keep_ids) for layer in self.layers],
            active_index=self.active_index,
        )

    # ---- history ----
    def snapshot(self, frame_id: Optional[str] = None) -> HistoryEntry:
        return HistoryEntry(
            width=self.width,
            height=self.height,
            active_layer_index=self.active_index,
            layers=tuple(layer.snapshot() for layer in self.layers),
            frame_id=frame_id,
        )

    def restore(self, entry: HistoryEntry) -> None:
        self.width = entry.width
        self.height = entry.height
        self.layers = [Layer.from_snapshot(snap, entry.width, entry.height) for snap in entry.layers]
        self.active_index = max(0, min(entry.active_layer_index, len(self.layers) - 1))
        self._changed()
