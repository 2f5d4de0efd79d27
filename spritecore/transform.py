from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np

from spritecore.color import round_half_up
from spritecore.pixel_buffer import resample_nearest

HANDLES = ("nw", "ne", "sw", "se")


@dataclass(frozen=True)
class Selection:
    """Inclusive pixel rectangle."""

    left: int
    top: int
    right: int
    bottom: int

    @classmethod
    def from_points(cls, x0: int, y0: int, x1: int, y1: int) -> "Selection":
        return cls(min(x0, x1), min(y0, y1), max(x0, x1), max(y0, y1))

    @classmethod
    def from_size(cls, left: int, top: int, width: int, height: int) -> "Selection":
        return cls(left, top, left + width - 1, top + height - 1)

    @property
    def width(self) -> int:
        return self.right - self.left + 1

    @property
    def height(self) -> int:
        return self.bottom - self.top + 1

    @property
    def area(self) -> int:
        return self.width * self.height

    @property
    def origin(self) -> Tuple[int, int]:
        return (self.left, self.top)

    def contains(self, x: int, y: int) -> bool:
        return self.left <= x <= self.right and self.top <= y <= self.bottom

    def moved(self, dx: int, dy: int) -> "Selection":
        return Selection(self.left + dx, self.top + dy, self.right + dx, self.bottom + dy)

    def clipped(self, width: int, height: int) -> Optional["Selection"]:
        left = max(0, self.left)
        top = max(0, self.top)
        right = min(width - 1, self.right)
        bottom = min(height - 1, self.bottom)
        if right < left or bottom < top:
            return None
        return Selection(left, top, right, bottom)

    def inside(self, width: int, height: int) -> bool:
        return self.left >= 0 and self.top >= 0 and self.right < width and self.bottom < height

    def info(self) -> dict:
        return {"x": self.left, "y": self.top, "width": self.width, "height": self.height, "area": self.area}


@dataclass(frozen=True)
class Clipboard:
    """Detached block of layer pixels, shape (height, width, 4)."""

    pixels: np.ndarray

    @classmethod
    def from_array(cls, pixels: np.ndarray) -> "Clipboard":
        arr = np.array(pixels, dtype=np.uint8, copy=True)
        arr.setflags(write=False)
        return cls(arr)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    def scaled(self, new_width: int, new_height: int) -> "Clipboard":
        if new_width == self.width and new_height == self.height:
            return self
        return Clipboard.from_array(resample_nearest(self.pixels, new_width, new_height))

    def rotated(self, clockwise: bool = True) -> "Clipboard":
        return Clipboard.from_array(np.rot90(self.pixels, k=-1 if clockwise else 1))

    def flipped(self, horizontal: bool = True) -> "Clipboard":
        return Clipboard.from_array(self.pixels[:, ::-1] if horizontal else self.pixels[::-1, :])


def handle_points(sel: Selection) -> Dict[str, Tuple[int, int]]:
    # Handles sit on the outer pixel edges, one past right/bottom
    return {
        "nw": (sel.left, sel.top),
        "ne": (sel.right + 1, sel.top),
        "sw": (sel.left, sel.bottom + 1),
        "se": (sel.right + 1, sel.bottom + 1),
    }


def is_small(sel: Selection, small_side: int = 4) -> bool:
    return sel.width <= small_side or sel.height <= small_side


def handle_tolerance(sel: Selection, zoom: float = 1.0, handle_size: int = 8, small_side: int = 4) -> int:
    tol = int(math.ceil(handle_size / (2.0 * max(zoom, 1e-6))))
    if is_small(sel, small_side):
        tol = max(1, int(math.floor(tol * 0.6)))
    return tol


def on_corner_edge(sel: Selection, x: int, y: int) -> bool:
    near_x = abs(x - sel.left) <= 1 or abs(x - (sel.right + 1)) <= 1
    near_y = abs(y - sel.top) <= 1 or abs(y - (sel.bottom + 1)) <= 1
    return near_x and near_y


def hit_test_handle(
    sel: Optional[Selection],
    x: int,
    y: int,
    zoom: float = 1.0,
    handle_size: int = 8,
    small_side: int = 4,
) -> Optional[str]:
    if sel is None:
        return None
    tol = handle_tolerance(sel, zoom, handle_size, small_side)
    for name, (hx, hy) in handle_points(sel).items():
        if abs(x - hx) <= tol and abs(y - hy) <= tol:
            if is_small(sel, small_side) and not on_corner_edge(sel, x, y):
                return None
            return name
    return None


def rigid_factor(width: int, height: int, orig_width: int, orig_height: int) -> int:
    kx = max(1, round_half_up(width / orig_width))
    ky = max(1, round_half_up(height / orig_height))
    return max(kx, ky)


def scaled_rect(original: Selection, handle: str, x: int, y: int, rigid: bool = False) -> Selection:
    """Rectangle produced by dragging ``handle`` of ``original`` to (x, y)."""
    left, top, right, bottom = original.left, original.top, original.right, original.bottom
    # The dragged edge stops at the opposite edge, leaving at least one pixel
    if handle in ("nw", "sw"):
        left = min(x, right)
    if handle in ("ne", "se"):
        right = max(x, left)
    if handle in ("nw", "ne"):
        top = min(y, bottom)
    if handle in ("sw", "se"):
        bottom = max(y, top)

    if not rigid:
        return Selection(left, top, right, bottom)

    k = rigid_factor(right - left + 1, bottom - top + 1, original.width, original.height)
    new_w = original.width * k
    new_h = original.height * k
    if handle in ("nw", "sw"):
        left, right = original.right - new_w + 1, original.right
    else:
        left, right = original.left, original.left + new_w - 1
    if handle in ("nw", "ne"):
        top, bottom = original.bottom - new_h + 1, original.bottom
    else:
        top, bottom = original.top, original.top + new_h - 1
    return Selection(left, top, right, bottom)


def recentered(sel: Selection, new_width: int, new_height: int) -> Selection:
    cx = (sel.left + sel.right) / 2.0
    cy = (sel.top + sel.bottom) / 2.0
    left = round_half_up(cx - new_width / 2.0)
    top = round_half_up(cy - new_height / 2.0)
    return Selection.from_size(left, top, new_width, new_height)
