from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

import numpy as np

from spritecore.color import RGBA, TRANSPARENT, normalize_color


def to_rgba_array(data, width: int, height: int) -> np.ndarray:
    arr = np.asarray(data)
    if arr.shape != (height, width, 4):
        raise ValueError(f"Expected {width}x{height} RGBA pixels, got shape {arr.shape}")
    if arr.dtype == np.uint8:
        return np.array(arr, dtype=np.uint8, copy=True)
    if np.issubdtype(arr.dtype, np.floating):
        arr = np.floor(np.nan_to_num(arr.astype(np.float64)) + 0.5)
    return np.clip(arr, 0, 255).astype(np.uint8)


def nearest_indices(new_size: int, old_size: int) -> np.ndarray:
    # floor(i / new * old), clamped to the source range
    idx = (np.arange(new_size, dtype=np.int64) * old_size) // new_size
    return np.clip(idx, 0, old_size - 1)


def resample_nearest(pixels: np.ndarray, new_width: int, new_height: int) -> np.ndarray:
    old_height, old_width = pixels.shape[:2]
    xs = nearest_indices(new_width, old_width)
    ys = nearest_indices(new_height, old_height)
    return np.ascontiguousarray(pixels[ys[:, None], xs[None, :]])


class PixelBuffer:
    """Fixed-shape RGBA grid for one layer, stored as a (height, width, 4) uint8 array."""

    __slots__ = ("width", "height", "data")

    def __init__(self, width: int, height: int, data: Optional[np.ndarray] = None):
        width = int(width)
        height = int(height)
        if width <= 0 or height <= 0:
            raise ValueError(f"Pixel buffer size must be positive, got {width}x{height}")
        self.width = width
        self.height = height
        if data is None:
            self.data = np.zeros((height, width, 4), dtype=np.uint8)
        else:
            self.data = to_rgba_array(data, width, height)

    @classmethod
    def from_bytes(cls, width: int, height: int, raw) -> "PixelBuffer":
        flat = np.frombuffer(bytes(raw), dtype=np.uint8)
        if flat.size != int(width) * int(height) * 4:
            raise ValueError(f"Expected {int(width) * int(height) * 4} bytes, got {flat.size}")
        return cls(width, height, flat.reshape((int(height), int(width), 4)))

    @classmethod
    def from_rows(cls, rows: Sequence[Sequence[Sequence[int]]], width: int, height: int) -> "PixelBuffer":
        if len(rows) != height or any(len(row) != width for row in rows):
            raise ValueError(f"Row data does not match {width}x{height}")
        buf = cls(width, height)
        for y, row in enumerate(rows):
            for x, px in enumerate(row):
                buf.data[y, x] = normalize_color(px)
        return buf

    @property
    def size(self) -> int:
        return int(self.data.size)

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.width, self.height)

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def get_pixel(self, x: int, y: int) -> RGBA:
        if not self.in_bounds(x, y):
            return TRANSPARENT
        r, g, b, a = self.data[y, x]
        return (int(r), int(g), int(b), int(a))

    def set_pixel(self, x: int, y: int, color: Sequence[int]) -> bool:
        if not self.in_bounds(x, y):
            return False
        self.data[y, x] = normalize_color(color)
        return True

    def fill(self, color: Sequence[int]) -> None:
        self.data[...] = normalize_color(color)

    def clear(self) -> None:
        self.data.fill(0)

    def copy(self) -> "PixelBuffer":
        return PixelBuffer(self.width, self.height, self.data)

    def to_bytes(self) -> bytes:
        return self.data.tobytes()

    def to_rows(self) -> List[List[List[int]]]:
        return self.data.tolist()

    def is_empty(self) -> bool:
        return not bool(np.any(self.data[..., 3]))

    def region(self, x: int, y: int, width: int, height: int) -> np.ndarray:
        """Copy of the rectangle clipped to the buffer; may be empty."""
        x0 = max(0, int(x))
        y0 = max(0, int(y))
        x1 = min(self.width, int(x) + int(width))
        y1 = min(self.height, int(y) + int(height))
        if x1 <= x0 or y1 <= y0:
            return np.zeros((0, 0, 4), dtype=np.uint8)
        return self.data[y0:y1, x0:x1].copy()

    def resized_nearest(self, new_width: int, new_height: int) -> "PixelBuffer":
        return PixelBuffer(new_width, new_height, resample_nearest(self.data, new_width, new_height))

    def cropped(self, left: int, top: int, width: int, height: int) -> "PixelBuffer":
        out = PixelBuffer(width, height)
        x0 = max(0, left)
        y0 = max(0, top)
        x1 = min(self.width, left + width)
        y1 = min(self.height, top + height)
        if x1 > x0 and y1 > y0:
            out.data[y0 - top:y1 - top, x0 - left:x1 - left] = self.data[y0:y1, x0:x1]
        return out

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PixelBuffer):
            return NotImplemented
        return self.width == other.width and self.height == other.height and bool(np.array_equal(self.data, other.data))

    def __repr__(self) -> str:
        return f"PixelBuffer({self.width}x{self.height})"
