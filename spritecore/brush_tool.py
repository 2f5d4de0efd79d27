from __future__ import annotations

from typing import TYPE_CHECKING, Optional, Set

from spritecore.layers import LayerStack
from spritecore.raster import (
    MIRROR_AXES,
    Point,
    apply_brush,
    apply_dither,
    apply_eraser,
    apply_mirror,
    bresenham_line,
)
from spritecore.tools import NO_MODIFIERS, BaseTool, Modifiers

if TYPE_CHECKING:
    from spritecore.session import EditorSession

STROKE_MODES = ("brush", "eraser", "dither", "mirror")


class StrokeTool(BaseTool):
    """
    Freehand stroke in one of the ``STROKE_MODES``.

    A stroke is one batch on the stack that was active at pointer-down, so the
    whole gesture lands in history as a single entry. Drag segments are walked
    with ``bresenham_line`` and every visited point goes through the mode's
    point routine.
    """

    def __init__(
        self,
        session: "EditorSession",
        mode: str = "brush",
        size: int = 1,
        apply_once: bool = False,
        opacity: Optional[float] = None,
        axis: Optional[str] = None,
    ):
        super().__init__(session)
        if mode not in STROKE_MODES:
            raise ValueError(f"Unknown stroke mode {mode!r}")
        self.mode = mode
        self.name = mode
        self.size = 1
        self.set_size(size)
        self.apply_once = apply_once
        self.opacity = float(session.config.dither_opacity if opacity is None else opacity)
        self.axis = "horizontal"
        self.set_axis(axis or session.config.mirror_axis)

        self._visited: Set[Point] = set()
        self._stack: Optional[LayerStack] = None

    @property
    def stroking(self) -> bool:
        return self._stack is not None

    def set_size(self, size: int) -> None:
        self.size = max(1, min(int(size), self.session.config.max_brush_size))

    def set_axis(self, axis: str) -> None:
        axis = str(axis).lower()
        self.axis = axis if axis in MIRROR_AXES else "horizontal"

    def apply_point(self, stack: LayerStack, x: int, y: int) -> int:
        visited = self._visited if self.apply_once else None
        color = self.session.primary_color
        if self.mode == "brush":
            return apply_brush(stack, x, y, color, self.size, visited)
        if self.mode == "eraser":
            return apply_eraser(stack, x, y, self.size, visited)
        if self.mode == "dither":
            return apply_dither(stack, x, y, color, self.size, self.opacity, visited)
        return apply_mirror(stack, x, y, color, self.axis, self._visited)

    def on_pointer_down(self, x: int, y: int, modifiers: Modifiers = NO_MODIFIERS) -> None:
        if self.stroking:
            self._end_stroke()
        stack = self.stack
        if stack is None or not stack.is_writable():
            return
        self._visited = set()
        self._stack = stack
        stack.start_batch()
        self.apply_point(stack, x, y)

    def on_pointer_drag(self, x: int, y: int, last_x: int, last_y: int, modifiers: Modifiers = NO_MODIFIERS) -> None:
        stack = self._stack
        if stack is None:
            return
        for px, py in bresenham_line(last_x, last_y, x, y):
            self.apply_point(stack, px, py)

    def on_pointer_up(self, x: int, y: int, modifiers: Modifiers = NO_MODIFIERS) -> None:
        self._end_stroke()

    def on_pointer_leave(self) -> None:
        super().on_pointer_leave()
        if self._stack is not None:
            self._stack.force_end_batch()
            self._stack = None
        self._visited = set()

    def _end_stroke(self) -> None:
        if self._stack is not None:
            self._stack.end_batch()
            self._stack = None
        self._visited = set()
