from __future__ import annotations

from logging import getLogger
from typing import Sequence, Tuple

import numpy as np

from spritecore.color import MAX_DISTANCE, clamp_tolerance, colors_equal, normalize_color
from spritecore.layers import LayerStack

logger = getLogger(__name__)


def match_mask(rgba: np.ndarray, ref: Sequence[int], tolerance: float) -> np.ndarray:
    """Pixels of ``rgba`` whose color matches ``ref`` under the percentage tolerance."""
    tolerance = clamp_tolerance(tolerance)
    arr = rgba.astype(np.int64)
    diff = arr - np.asarray(ref[:4], dtype=np.int64)
    if tolerance == 0:
        return np.all(diff == 0, axis=-1)
    dist = np.sqrt(np.sum(diff * diff, axis=-1).astype(np.float64))
    return dist / MAX_DISTANCE * 100.0 <= tolerance


def contiguous_region(matches: np.ndarray, seed_xy: Tuple[int, int]) -> np.ndarray:
    h, w = matches.shape
    x0, y0 = seed_xy
    out = np.zeros((h, w), dtype=bool)
    if x0 < 0 or y0 < 0 or x0 >= w or y0 >= h or not matches[y0, x0]:
        return out

    stack = [(x0, y0)]
    visited = {(x0, y0)}
    dirs = ((1, 0), (-1, 0), (0, 1), (0, -1))

    while stack:
        cx, cy = stack.pop()
        out[cy, cx] = True
        for dx, dy in dirs:
            nx, ny = cx + dx, cy + dy
            if nx < 0 or ny < 0 or nx >= w or ny >= h:
                continue
            if (nx, ny) in visited or not matches[ny, nx]:
                continue
            visited.add((nx, ny))
            stack.append((nx, ny))

    return out


def fill_mask(
    rgba: np.ndarray,
    seed_xy: Tuple[int, int],
    tolerance: float,
    contiguous: bool = True,
) -> np.ndarray:
    h, w = rgba.shape[:2]
    x, y = seed_xy
    if x < 0 or y < 0 or x >= w or y >= h:
        return np.zeros((h, w), dtype=bool)
    ref = tuple(int(v) for v in rgba[y, x])
    matches = match_mask(rgba, ref, tolerance)
    if not contiguous:
        return matches
    return contiguous_region(matches, seed_xy)


def flood_fill(
    stack: LayerStack,
    x: int,
    y: int,
    fill_color: Sequence[int],
    tolerance: float = 0,
    contiguous: bool = True,
) -> bool:
    layer = stack.active_layer
    if layer.locked or not stack.in_bounds(x, y):
        return False
    color = normalize_color(fill_color)
    if colors_equal(layer.buffer.get_pixel(x, y), color):
        return False

    mask = fill_mask(layer.buffer.data, (x, y), tolerance, contiguous)
    logger.debug("Flood fill at (%d, %d) covers %d pixels", x, y, int(mask.sum()))
    return stack.paint_mask(mask, color)
