from __future__ import annotations

from typing import Iterator, List, Optional, Sequence, Set, Tuple

from spritecore.color import TRANSPARENT, blend_over, normalize_color, scale_alpha
from spritecore.layers import LayerStack

Point = Tuple[int, int]

MIRROR_AXES = ("horizontal", "vertical", "both", "diagonal")


def bresenham_line(x0: int, y0: int, x1: int, y1: int) -> Iterator[Point]:
    """Every integer point from (x0, y0) to (x1, y1), both ends included."""
    dx = abs(x1 - x0)
    dy = -abs(y1 - y0)
    sx = 1 if x0 < x1 else -1
    sy = 1 if y0 < y1 else -1
    err = dx + dy
    x, y = x0, y0
    while True:
        yield (x, y)
        if x == x1 and y == y1:
            return
        e2 = 2 * err
        if e2 >= dy:
            err += dy
            x += sx
        if e2 <= dx:
            err += dx
            y += sy


def square_offsets(size: int) -> List[Point]:
    half = max(1, int(size)) // 2
    return [(dx, dy) for dy in range(-half, half + 1) for dx in range(-half, half + 1)]


def brush_offsets(size: int) -> List[Point]:
    size = max(1, int(size))
    if size == 1:
        return [(0, 0)]
    radius = size / 2.0
    return [(dx, dy) for dx, dy in square_offsets(size) if (dx * dx + dy * dy) ** 0.5 <= radius]


def mirror_positions(x: int, y: int, width: int, height: int, axis: str) -> List[Point]:
    points = [(x, y)]
    if axis == "horizontal":
        points.append((width - 1 - x, y))
    elif axis == "vertical":
        points.append((x, height - 1 - y))
    elif axis == "both":
        points.append((width - 1 - x, y))
        points.append((x, height - 1 - y))
        points.append((width - 1 - x, height - 1 - y))
    elif axis == "diagonal":
        points.append((y, x))
    return points


def _claim(visited: Optional[Set[Point]], point: Point) -> bool:
    if visited is None:
        return True
    if point in visited:
        return False
    visited.add(point)
    return True


def _write(stack: LayerStack, x: int, y: int, color, blend: bool) -> bool:
    if blend:
        color = blend_over(stack.get_layer_pixel(x, y), color)
    return stack.set_pixel(x, y, color)


def apply_brush(
    stack: LayerStack,
    x: int,
    y: int,
    color: Sequence[int],
    size: int = 1,
    visited: Optional[Set[Point]] = None,
) -> int:
    color = normalize_color(color)
    blend = color[3] < 255
    written = 0
    for dx, dy in brush_offsets(size):
        px, py = x + dx, y + dy
        if not stack.in_bounds(px, py) or not _claim(visited, (px, py)):
            continue
        if _write(stack, px, py, color, blend):
            written += 1
    return written


def apply_eraser(
    stack: LayerStack,
    x: int,
    y: int,
    size: int = 1,
    visited: Optional[Set[Point]] = None,
) -> int:
    written = 0
    for dx, dy in brush_offsets(size):
        px, py = x + dx, y + dy
        if not stack.in_bounds(px, py) or not _claim(visited, (px, py)):
            continue
        if stack.set_pixel(px, py, TRANSPARENT):
            written += 1
    return written


def apply_dither(
    stack: LayerStack,
    x: int,
    y: int,
    color: Sequence[int],
    size: int = 1,
    opacity: float = 100,
    visited: Optional[Set[Point]] = None,
) -> int:
    color = scale_alpha(normalize_color(color), opacity)
    written = 0
    for dx, dy in square_offsets(size):
        px, py = x + dx, y + dy
        if (px + py) % 2 != 0:
            continue
        if not stack.in_bounds(px, py) or not _claim(visited, (px, py)):
            continue
        if _write(stack, px, py, color, True):
            written += 1
    return written


def apply_mirror(
    stack: LayerStack,
    x: int,
    y: int,
    color: Sequence[int],
    axis: str,
    visited: Set[Point],
) -> int:
    color = normalize_color(color)
    written = 0
    for px, py in mirror_positions(x, y, stack.width, stack.height, axis):
        if not stack.in_bounds(px, py) or not _claim(visited, (px, py)):
            continue
        if stack.set_pixel(px, py, color):
            written += 1
    return written
