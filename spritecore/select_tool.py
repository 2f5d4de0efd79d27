from __future__ import annotations

from logging import getLogger
from typing import TYPE_CHECKING, Optional, Sequence, Tuple

from spritecore.color import TRANSPARENT
from spritecore.layers import LayerStack
from spritecore.tools import NO_MODIFIERS, BaseTool, Modifiers
from spritecore.transform import Clipboard, Selection, hit_test_handle, recentered, scaled_rect

if TYPE_CHECKING:
    from spritecore.session import EditorSession

logger = getLogger(__name__)

IDLE = "idle"
SELECTING = "selecting"
DRAGGING = "dragging"
SCALING = "scaling"


class SelectTool(BaseTool):
    """
    Rectangular selection with move, corner scaling and clipboard operations.

    Move and scale gestures lift the selected pixels off the active layer at
    pointer-down and paste them back at pointer-up, all inside one batch.
    ``preview`` holds the block being carried so a renderer can draw it.
    """

    name = "select"

    def __init__(self, session: "EditorSession", rigid_scaling: Optional[bool] = None):
        super().__init__(session)
        self.rigid_scaling = session.config.rigid_scaling if rigid_scaling is None else bool(rigid_scaling)
        self.state = IDLE
        self.selection: Optional[Selection] = None
        self.preview: Optional[Tuple[Selection, Clipboard]] = None

        self._press: Optional[Tuple[int, int]] = None
        self._current: Optional[Tuple[int, int]] = None
        self._original: Optional[Selection] = None
        self._captured: Optional[Clipboard] = None
        self._handle: Optional[str] = None
        self._stack: Optional[LayerStack] = None

    # ---- helpers ----
    @property
    def clipboard(self) -> Optional[Clipboard]:
        return self.session.clipboard

    def has_selection(self) -> bool:
        return self.selection is not None

    def has_clipboard(self) -> bool:
        return self.session.clipboard is not None

    def selection_info(self) -> Optional[dict]:
        return self.selection.info() if self.selection is not None else None

    @property
    def pending_rect(self) -> Optional[Selection]:
        """Rectangle being drawn while selecting."""
        if self.state != SELECTING or self._press is None or self._current is None:
            return None
        return Selection.from_points(self._press[0], self._press[1], self._current[0], self._current[1])

    def _capture(self, stack: LayerStack, sel: Selection) -> Clipboard:
        layer = stack.active_layer
        return Clipboard.from_array(layer.buffer.cropped(sel.left, sel.top, sel.width, sel.height).data)

    def _paste(self, stack: LayerStack, clip: Clipboard, left: int, top: int) -> bool:
        return stack.set_region(left, top, clip.pixels, skip_transparent=True)

    def _reset_gesture(self) -> None:
        self.state = IDLE
        self.preview = None
        self._press = None
        self._current = None
        self._original = None
        self._captured = None
        self._handle = None
        self._stack = None

    # ---- pointer events ----
    def on_pointer_down(self, x: int, y: int, modifiers: Modifiers = NO_MODIFIERS) -> None:
        stack = self.stack
        if stack is None:
            return
        if self.state != IDLE:
            self._finish(x, y)

        sel = self.selection
        if sel is not None:
            config = self.session.config
            handle = hit_test_handle(sel, x, y, self.session.zoom, config.handle_size, config.small_selection_side)
            if handle is not None and stack.is_writable():
                self._begin_transform(stack, SCALING, x, y, handle)
                return
            if sel.contains(x, y):
                if stack.is_writable():
                    self._begin_transform(stack, DRAGGING, x, y)
                return

        self.clear_selection()
        self.state = SELECTING
        self._press = (x, y)
        self._current = (x, y)

    def on_pointer_drag(self, x: int, y: int, last_x: int, last_y: int, modifiers: Modifiers = NO_MODIFIERS) -> None:
        if self.state == SELECTING:
            self._current = (x, y)
        elif self.state == DRAGGING:
            dx = x - self._press[0]
            dy = y - self._press[1]
            self.selection = self._original.moved(dx, dy)
            self.preview = (self.selection, self._captured)
        elif self.state == SCALING:
            self.selection = scaled_rect(self._original, self._handle, x, y, self.rigid_scaling)
            self.preview = (self.selection, self._captured.scaled(self.selection.width, self.selection.height))

    def on_pointer_up(self, x: int, y: int, modifiers: Modifiers = NO_MODIFIERS) -> None:
        self._finish(x, y)

    def on_pointer_leave(self) -> None:
        super().on_pointer_leave()
        stack = self._stack
        self._finish(None, None)
        if stack is not None:
            stack.force_end_batch()

    def deactivate(self) -> None:
        super().deactivate()
        self.clear_selection()

    # ---- gestures ----
    def _begin_transform(self, stack: LayerStack, state: str, x: int, y: int, handle: Optional[str] = None) -> None:
        sel = self.selection
        stack.start_batch()
        self._stack = stack
        self._captured = self._capture(stack, sel)
        stack.fill_rect(sel.left, sel.top, sel.right, sel.bottom, TRANSPARENT)
        self._original = sel
        self._press = (x, y)
        self._handle = handle
        self.state = state
        self.preview = (sel, self._captured)

    def _finish(self, x: Optional[int], y: Optional[int]) -> None:
        if self.state == SELECTING:
            if x is not None and y is not None:
                self._current = (x, y)
            rect = self.pending_rect
            sprite = self.sprite
            self.selection = rect.clipped(sprite.width, sprite.height) if rect and sprite else None
            self._reset_gesture()
        elif self.state in (DRAGGING, SCALING):
            stack = self._stack
            sel, clip = self.preview
            if self.state == SCALING:
                clip = self._captured.scaled(sel.width, sel.height)
            self._paste(stack, clip, sel.left, sel.top)
            self.selection = sel
            self._reset_gesture()
            stack.end_batch()

    # ---- clipboard / region operations ----
    def clear_selection(self) -> None:
        self.selection = None
        self.preview = None

    def select(self, left: int, top: int, right: int, bottom: int) -> bool:
        sprite = self.sprite
        if sprite is None:
            return False
        self.selection = Selection.from_points(left, top, right, bottom).clipped(sprite.width, sprite.height)
        return self.selection is not None

    def copy(self) -> bool:
        stack = self.stack
        if self.selection is None or stack is None:
            return False
        self.session.clipboard = self._capture(stack, self.selection)
        return True

    def cut(self) -> bool:
        stack = self.stack
        if self.selection is None or stack is None or not stack.is_writable():
            return False
        with stack.batch():
            self.copy()
            self.delete()
        return True

    def paste(self, x: Optional[int] = None, y: Optional[int] = None) -> bool:
        stack = self.stack
        clip = self.session.clipboard
        if clip is None or stack is None or not stack.is_writable():
            return False
        if x is not None and y is not None:
            left, top = x, y
        elif self.selection is not None:
            left, top = self.selection.origin
        else:
            left, top = 0, 0
        return self._paste(stack, clip, left, top)

    def delete(self) -> bool:
        stack = self.stack
        sel = self.selection
        if sel is None or stack is None or not stack.is_writable():
            return False
        return stack.fill_rect(sel.left, sel.top, sel.right, sel.bottom, TRANSPARENT)

    def fill(self, color: Optional[Sequence[int]] = None) -> bool:
        stack = self.stack
        sel = self.selection
        if sel is None or stack is None or not stack.is_writable():
            return False
        if color is None:
            color = self.session.primary_color
        return stack.fill_rect(sel.left, sel.top, sel.right, sel.bottom, color)

    def crop(self) -> bool:
        sprite = self.sprite
        if self.selection is None or sprite is None:
            return False
        # A moved selection can hang off the canvas; crop to the part on it
        sel = self.selection.clipped(sprite.width, sprite.height)
        if sel is None or not sprite.crop(sel.left, sel.top, sel.width, sel.height):
            logger.warning("Cannot crop to %s on %dx%d sprite", sel, sprite.width, sprite.height)
            return False
        self.clear_selection()
        return True

    def _replace_block(self, clip: Clipboard, target: Selection) -> bool:
        stack = self.stack
        sel = self.selection
        with stack.batch():
            stack.fill_rect(sel.left, sel.top, sel.right, sel.bottom, TRANSPARENT)
            self._paste(stack, clip, target.left, target.top)
        self.selection = target
        return True

    def _can_transform(self) -> bool:
        stack = self.stack
        return self.selection is not None and stack is not None and stack.is_writable() and self.state == IDLE

    def rotate_clockwise(self) -> bool:
        if not self._can_transform():
            return False
        clip = self._capture(self.stack, self.selection).rotated(clockwise=True)
        return self._replace_block(clip, recentered(self.selection, clip.width, clip.height))

    def rotate_counter_clockwise(self) -> bool:
        if not self._can_transform():
            return False
        clip = self._capture(self.stack, self.selection).rotated(clockwise=False)
        return self._replace_block(clip, recentered(self.selection, clip.width, clip.height))

    def flip_horizontal(self) -> bool:
        if not self._can_transform():
            return False
        return self._replace_block(self._capture(self.stack, self.selection).flipped(horizontal=True), self.selection)

    def flip_vertical(self) -> bool:
        if not self._can_transform():
            return False
        return self._replace_block(self._capture(self.stack, self.selection).flipped(horizontal=False), self.selection)
