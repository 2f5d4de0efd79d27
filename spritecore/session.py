from __future__ import annotations

from logging import getLogger
from typing import Callable, Dict, List, Optional, Sequence, Union

from spritecore.brush_tool import StrokeTool
from spritecore.color import RGBA, normalize_color
from spritecore.config import EditorConfig
from spritecore.select_tool import SelectTool
from spritecore.sprite import Sprite
from spritecore.tools import NO_MODIFIERS, BaseTool, BucketTool, EyedropperTool, Modifiers
from spritecore.transform import Clipboard

logger = getLogger(__name__)


class EditorSession:
    """
    Everything one editor instance owns: sprites, the current sprite, the
    clipboard, colors, zoom and the tool registry. UI code forwards pointer
    events here and the active tool handles them.
    """

    def __init__(self, config: Optional[EditorConfig] = None):
        self.config = config or EditorConfig()
        self.sprites: List[Sprite] = []
        self.current_sprite: Optional[Sprite] = None
        self.clipboard: Optional[Clipboard] = None
        self.primary_color: RGBA = (0, 0, 0, 255)
        self.secondary_color: RGBA = (255, 255, 255, 255)
        self.zoom = 1.0
        self.listeners: List[Callable[[Optional[Sprite]], None]] = []

        self.tools: Dict[str, BaseTool] = {
            "brush": StrokeTool(self, "brush"),
            "eraser": StrokeTool(self, "eraser"),
            "dither": StrokeTool(self, "dither"),
            "mirror": StrokeTool(self, "mirror"),
            "bucket": BucketTool(self),
            "select": SelectTool(self),
            "eyedropper": EyedropperTool(self),
        }
        self.active_tool: Optional[BaseTool] = None
        self.set_tool("brush")

    # ---- notifications ----
    def add_listener(self, listener: Callable[[Optional[Sprite]], None]) -> None:
        if listener not in self.listeners:
            self.listeners.append(listener)

    def _on_sprite_change(self, sprite: Sprite) -> None:
        if sprite is self.current_sprite:
            self._notify()

    def _notify(self) -> None:
        for listener in list(self.listeners):
            listener(self.current_sprite)

    # ---- tools ----
    def tool(self, name: str) -> Optional[BaseTool]:
        return self.tools.get(name)

    def set_tool(self, name: str) -> bool:
        tool = self.tools.get(name)
        if tool is None:
            logger.warning("Unknown tool %r", name)
            return False
        if tool is self.active_tool:
            return True
        if self.active_tool is not None:
            self.active_tool.deactivate()
        self.active_tool = tool
        tool.activate()
        return True

    def _interrupt(self) -> None:
        # Close any gesture so history and the stack's batch state stay consistent
        if self.active_tool is not None:
            self.active_tool.on_pointer_leave()

    # ---- colors / view ----
    def set_primary_color(self, color: Sequence[int]) -> None:
        self.primary_color = normalize_color(color)

    def set_secondary_color(self, color: Sequence[int]) -> None:
        self.secondary_color = normalize_color(color)

    def swap_colors(self) -> None:
        self.primary_color, self.secondary_color = self.secondary_color, self.primary_color

    def set_zoom(self, zoom: float) -> bool:
        if zoom <= 0:
            return False
        self.zoom = float(zoom)
        return True

    # ---- sprite lifecycle ----
    def open_sprite(self, sprite: Sprite) -> Sprite:
        if sprite not in self.sprites:
            self.sprites.append(sprite)
            sprite.add_listener(self._on_sprite_change)
        self.set_current_sprite(sprite)
        return sprite

    def create_sprite(self, width: Optional[int] = None, height: Optional[int] = None, name: Optional[str] = None) -> Sprite:
        name = name or f"Sprite {len(self.sprites) + 1}"
        sprite = Sprite(width, height, name=name, config=self.config)
        logger.debug("Created sprite %s (%dx%d)", sprite.id, sprite.width, sprite.height)
        return self.open_sprite(sprite)

    def duplicate_sprite(self, sprite: Optional[Sprite] = None) -> Optional[Sprite]:
        source = sprite or self.current_sprite
        if source is None:
            return None
        return self.open_sprite(source.clone(name=f"{source.name} Copy"))

    def delete_sprite(self, sprite: Optional[Sprite] = None) -> bool:
        target = sprite or self.current_sprite
        if target is None or target not in self.sprites:
            return False
        if target is self.current_sprite:
            self._interrupt()
        self.sprites.remove(target)
        target.remove_listener(self._on_sprite_change)
        if target is self.current_sprite:
            self.current_sprite = None
            if self.sprites:
                self.set_current_sprite(self.sprites[-1])
            else:
                self._notify()
        return True

    def set_current_sprite(self, sprite: Union[Sprite, int]) -> bool:
        if isinstance(sprite, int):
            if not 0 <= sprite < len(self.sprites):
                return False
            sprite = self.sprites[sprite]
        if sprite not in self.sprites:
            return False
        if sprite is not self.current_sprite:
            self._interrupt()
            select = self.tools.get("select")
            if isinstance(select, SelectTool):
                select.clear_selection()
            self.current_sprite = sprite
        self._notify()
        return True

    # ---- history ----
    def can_undo(self) -> bool:
        return self.current_sprite is not None and self.current_sprite.can_undo()

    def can_redo(self) -> bool:
        return self.current_sprite is not None and self.current_sprite.can_redo()

    def undo(self) -> bool:
        if self.current_sprite is None:
            return False
        self._interrupt()
        return self.current_sprite.undo()

    def redo(self) -> bool:
        if self.current_sprite is None:
            return False
        self._interrupt()
        return self.current_sprite.redo()

    # ---- pointer forwarding ----
    def pointer_down(self, x: int, y: int, modifiers: Modifiers = NO_MODIFIERS) -> None:
        if self.active_tool is not None:
            self.active_tool.on_pointer_down(x, y, modifiers)

    def pointer_drag(self, x: int, y: int, last_x: int, last_y: int, modifiers: Modifiers = NO_MODIFIERS) -> None:
        if self.active_tool is not None:
            self.active_tool.on_pointer_drag(x, y, last_x, last_y, modifiers)

    def pointer_up(self, x: int, y: int, modifiers: Modifiers = NO_MODIFIERS) -> None:
        if self.active_tool is not None:
            self.active_tool.on_pointer_up(x, y, modifiers)

    def pointer_move(self, x: int, y: int, modifiers: Modifiers = NO_MODIFIERS) -> None:
        if self.active_tool is not None:
            self.active_tool.on_pointer_move(x, y, modifiers)

    def pointer_leave(self) -> None:
        if self.active_tool is not None:
            self.active_tool.on_pointer_leave()
