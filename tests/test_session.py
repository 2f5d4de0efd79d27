from __future__ import annotations

import unittest

from spritecore.brush_tool import StrokeTool
from spritecore.config import EditorConfig
from spritecore.select_tool import SelectTool
from spritecore.session import EditorSession
from spritecore.tools import BucketTool, EyedropperTool, Modifiers

RED = (255, 0, 0, 255)
BLUE = (0, 0, 255, 255)


class SessionTests(unittest.TestCase):
    def test_tool_registry(self) -> None:
        session = EditorSession()
        self.assertEqual(
            sorted(session.tools),
            ["brush", "bucket", "dither", "eraser", "eyedropper", "mirror", "select"],
        )
        self.assertIsInstance(session.tool("brush"), StrokeTool)
        self.assertIsInstance(session.tool("bucket"), BucketTool)
        self.assertIsInstance(session.tool("select"), SelectTool)
        self.assertIsInstance(session.tool("eyedropper"), EyedropperTool)
        self.assertIs(session.active_tool, session.tool("brush"))

    def test_unknown_tool_is_rejected(self) -> None:
        session = EditorSession()
        with self.assertLogs("spritecore.session", level="WARNING"):
            self.assertFalse(session.set_tool("lasso"))
        self.assertIs(session.active_tool, session.tool("brush"))

    def test_sprite_lifecycle(self) -> None:
        session = EditorSession(EditorConfig(default_width=8, default_height=4))
        first = session.create_sprite()
        self.assertEqual(first.name, "Sprite 1")
        self.assertEqual((first.width, first.height), (8, 4))
        second = session.create_sprite(2, 2)
        self.assertEqual(second.name, "Sprite 2")
        self.assertIs(session.current_sprite, second)

        copy = session.duplicate_sprite(first)
        self.assertEqual(copy.name, "Sprite 1 Copy")
        self.assertIs(session.current_sprite, copy)

        self.assertTrue(session.delete_sprite())
        self.assertIs(session.current_sprite, second)
        self.assertTrue(session.set_current_sprite(0))
        self.assertIs(session.current_sprite, first)
        self.assertFalse(session.set_current_sprite(7))

        session.delete_sprite(first)
        session.delete_sprite(second)
        self.assertIsNone(session.current_sprite)
        self.assertFalse(session.undo())
        self.assertIsNone(session.duplicate_sprite())

    def test_undo_redo_through_session(self) -> None:
        session = EditorSession()
        sprite = session.create_sprite(3, 3)
        session.set_primary_color(RED)
        session.pointer_down(1, 1)
        session.pointer_up(1, 1)
        self.assertTrue(session.can_undo())
        self.assertTrue(session.undo())
        self.assertEqual(sprite.get_pixel(1, 1), (0, 0, 0, 0))
        self.assertTrue(session.can_redo())
        self.assertTrue(session.redo())
        self.assertEqual(sprite.get_pixel(1, 1), RED)

    def test_undo_mid_stroke_closes_the_stroke(self) -> None:
        session = EditorSession()
        sprite = session.create_sprite(3, 3)
        session.set_primary_color(RED)
        session.pointer_down(0, 0)
        self.assertTrue(session.undo())
        self.assertFalse(sprite.active_stack.in_batch)
        self.assertEqual(sprite.get_pixel(0, 0), (0, 0, 0, 0))

    def test_eyedropper(self) -> None:
        session = EditorSession()
        sprite = session.create_sprite(2, 1)
        sprite.set_pixel(0, 0, BLUE)
        session.set_tool("eyedropper")
        session.pointer_down(0, 0)
        self.assertEqual(session.primary_color, BLUE)
        session.pointer_down(1, 0)
        self.assertEqual(session.primary_color, BLUE)

    def test_bucket_through_pointer(self) -> None:
        session = EditorSession()
        sprite = session.create_sprite(5, 1)
        sprite.set_pixel(2, 0, BLUE)
        session.set_primary_color(RED)
        session.set_tool("bucket")
        session.pointer_down(0, 0)
        self.assertTrue(session.tool("bucket").last_result)
        self.assertEqual(sprite.get_pixel(1, 0), RED)
        self.assertEqual(sprite.get_pixel(3, 0), (0, 0, 0, 0))

        session.pointer_down(3, 0, Modifiers(shift=True))
        session.set_primary_color((0, 255, 0, 255))
        session.pointer_down(0, 0, Modifiers(shift=True))
        self.assertEqual(sprite.get_pixel(4, 0), (0, 255, 0, 255))
        self.assertEqual(sprite.get_pixel(2, 0), BLUE)

    def test_colors_and_zoom(self) -> None:
        session = EditorSession()
        session.set_primary_color((1, 2, 3))
        self.assertEqual(session.primary_color, (1, 2, 3, 255))
        session.swap_colors()
        self.assertEqual(session.primary_color, (255, 255, 255, 255))
        self.assertEqual(session.secondary_color, (1, 2, 3, 255))
        self.assertFalse(session.set_zoom(0))
        self.assertTrue(session.set_zoom(2.5))
        self.assertEqual(session.zoom, 2.5)

    def test_listeners_follow_current_sprite(self) -> None:
        session = EditorSession()
        seen = []
        session.add_listener(seen.append)
        first = session.create_sprite(2, 2)
        session.create_sprite(2, 2)
        seen.clear()
        first.set_pixel(0, 0, RED)
        self.assertEqual(seen, [])
        session.current_sprite.set_pixel(0, 0, RED)
        self.assertEqual(seen, [session.current_sprite])

    def test_pointer_move_tracks_hover(self) -> None:
        session = EditorSession()
        session.create_sprite(2, 2)
        session.pointer_move(1, 0)
        self.assertEqual(session.active_tool.hover, (1, 0))
        session.pointer_leave()
        self.assertIsNone(session.active_tool.hover)


if __name__ == "__main__":
    unittest.main()
