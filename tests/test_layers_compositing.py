from __future__ import annotations

import unittest

import numpy as np

from spritecore.layers import Layer, LayerStack, composite_over, empty_accumulator, finish_composite
from spritecore.pixel_buffer import PixelBuffer


def _random_layer(rng: np.random.Generator, name: str, w: int, h: int, opacity: float) -> Layer:
    data = rng.integers(0, 256, size=(h, w, 4), dtype=np.uint8)
    # Make some pixels fully transparent so the skip rule is exercised
    data[rng.random((h, w)) < 0.2, 3] = 0
    return Layer(name=name, buffer=PixelBuffer(w, h, data), opacity=opacity)


def _scalar_composite(pixels) -> tuple:
    """Float accumulation over (color, opacity) pairs, rounded once at the end."""
    result = [0.0, 0.0, 0.0, 0.0]
    for (r, g, b, a), opacity in pixels:
        if a == 0:
            continue
        layer_a = a / 255.0 * opacity
        if result[3] == 0:
            result = [float(r), float(g), float(b), a * opacity]
            continue
        result_a = result[3] / 255.0
        combined = layer_a + result_a * (1.0 - layer_a)
        if combined > 0:
            result = [
                (c * layer_a + result[i] * result_a * (1.0 - layer_a)) / combined
                for i, c in enumerate((r, g, b))
            ] + [combined * 255.0]
    out = tuple(int(np.floor(v + 0.5)) for v in result)
    return out if out[3] > 0 else (0, 0, 0, 0)


class CompositingTests(unittest.TestCase):
    def test_get_pixel_returns_written_color(self) -> None:
        stack = LayerStack(4, 3)
        hidden = stack.add_layer("hidden")
        hidden.buffer.fill((0, 255, 0, 255))
        stack.set_layer_visibility(1, False)
        stack.set_active_layer(0)
        for color in [(10, 20, 30, 128), (255, 255, 255, 255), (1, 2, 3, 1)]:
            for y in range(3):
                for x in range(4):
                    self.assertTrue(stack.set_pixel(x, y, color))
                    self.assertEqual(stack.get_pixel(x, y), color)

    def test_out_of_range(self) -> None:
        stack = LayerStack(2, 2)
        self.assertEqual(stack.get_pixel(-1, 0), (0, 0, 0, 0))
        self.assertEqual(stack.get_pixel(0, 2), (0, 0, 0, 0))
        self.assertFalse(stack.set_pixel(2, 0, (1, 1, 1, 255)))

    def test_opacity_over_blend(self) -> None:
        stack = LayerStack(1, 1)
        stack.set_pixel(0, 0, (0, 0, 255, 255))
        top = stack.add_layer("top")
        top.buffer.fill((255, 0, 0, 255))
        stack.set_layer_opacity(1, 0.5)
        self.assertEqual(stack.get_pixel(0, 0), (128, 0, 128, 255))

    def test_transparent_and_invisible_layers_are_skipped(self) -> None:
        stack = LayerStack(2, 1)
        stack.set_pixel(0, 0, (9, 9, 9, 255))
        stack.add_layer("empty")
        self.assertEqual(stack.get_pixel(0, 0), (9, 9, 9, 255))
        stack.set_layer_visibility(0, False)
        self.assertEqual(stack.get_pixel(0, 0), (0, 0, 0, 0))

    def test_compositing_is_associative(self) -> None:
        rng = np.random.default_rng(7)
        w, h = 6, 5
        a = _random_layer(rng, "A", w, h, 1.0)
        b = _random_layer(rng, "B", w, h, 0.6)
        c = _random_layer(rng, "C", w, h, 0.35)

        lower = empty_accumulator(h, w)
        for layer in (a, b):
            lower = composite_over(lower, layer.buffer.data, layer.opacity)
        stepped = composite_over(lower, c.buffer.data, c.opacity)

        full = empty_accumulator(h, w)
        for layer in (a, b, c):
            full = composite_over(full, layer.buffer.data, layer.opacity)
        np.testing.assert_array_equal(full, stepped)
        np.testing.assert_array_equal(LayerStack(w, h, layers=[a, b, c]).composite_array(), finish_composite(stepped))

    def test_rounding_happens_once_after_all_layers(self) -> None:
        colors = [(224, 244, 124, 162), (188, 130, 54, 120), (156, 234, 82, 2)]
        layers = [
            Layer(name=str(i), buffer=PixelBuffer(1, 1, np.array([[color]], dtype=np.uint8)), opacity=opacity)
            for i, (color, opacity) in enumerate(zip(colors, (1.0, 0.6, 0.35)))
        ]
        self.assertEqual(LayerStack(1, 1, layers=layers).get_pixel(0, 0), (210, 201, 97, 188))

    def test_matches_scalar_float_accumulation(self) -> None:
        rng = np.random.default_rng(21)
        opacities = (1.0, 0.6, 0.35)
        for _ in range(100):
            colors = [tuple(int(v) for v in rng.integers(0, 256, size=4)) for _ in opacities]
            layers = [
                Layer(name=str(i), buffer=PixelBuffer(1, 1, np.array([[color]], dtype=np.uint8)), opacity=opacity)
                for i, (color, opacity) in enumerate(zip(colors, opacities))
            ]
            expected = _scalar_composite(list(zip(colors, opacities)))
            self.assertEqual(LayerStack(1, 1, layers=layers).get_pixel(0, 0), expected)

    def test_single_pixel_read_matches_full_grid(self) -> None:
        rng = np.random.default_rng(3)
        layers = [_random_layer(rng, str(i), 4, 4, 0.5 + i * 0.2) for i in range(3)]
        stack = LayerStack(4, 4, layers=layers)
        grid = stack.composite_array()
        for y in range(4):
            for x in range(4):
                self.assertEqual(stack.get_pixel(x, y), tuple(int(v) for v in grid[y, x]))

    def test_opacity_and_blend_mode_are_normalized(self) -> None:
        self.assertEqual(Layer(name="x", buffer=PixelBuffer(1, 1), opacity=2.0).opacity, 1.0)
        self.assertEqual(Layer(name="x", buffer=PixelBuffer(1, 1), blend_mode="Multiply").blend_mode, "multiply")
        self.assertEqual(Layer(name="x", buffer=PixelBuffer(1, 1), blend_mode="weird").blend_mode, "normal")
        stack = LayerStack(1, 1)
        stack.set_layer_opacity(0, -1)
        self.assertEqual(stack.layers[0].opacity, 0.0)


class BatchTests(unittest.TestCase):
    def setUp(self) -> None:
        self.stack = LayerStack(4, 4)
        self.commits = 0
        self.changes = 0

        def on_commit(_stack: LayerStack) -> None:
            self.commits += 1

        def on_change(_stack: LayerStack) -> None:
            self.changes += 1

        self.stack.on_commit = on_commit
        self.stack.on_change = on_change

    def test_set_pixel_outside_batch_notifies_without_commit(self) -> None:
        self.stack.set_pixel(0, 0, (1, 1, 1, 255))
        self.assertEqual((self.commits, self.changes), (0, 1))

    def test_nested_batches_commit_once(self) -> None:
        self.stack.start_batch()
        self.stack.start_batch()
        for x in range(3):
            self.stack.set_pixel(x, 0, (1, 1, 1, 255))
        self.assertTrue(self.stack.end_batch())
        self.assertEqual((self.commits, self.changes), (0, 0))
        self.assertTrue(self.stack.end_batch())
        self.assertEqual((self.commits, self.changes), (1, 1))
        self.assertFalse(self.stack.end_batch())

    def test_force_end_batch_closes_every_level(self) -> None:
        self.stack.start_batch()
        self.stack.start_batch()
        self.stack.set_pixel(1, 1, (1, 1, 1, 255))
        self.assertTrue(self.stack.force_end_batch())
        self.assertFalse(self.stack.in_batch)
        self.assertEqual(self.commits, 1)
        self.assertFalse(self.stack.force_end_batch())

    def test_batch_without_writes_does_not_commit(self) -> None:
        self.stack.start_batch()
        self.assertFalse(self.stack.set_pixel(-1, 0, (1, 1, 1, 255)))
        self.assertTrue(self.stack.end_batch())
        self.assertEqual((self.commits, self.changes), (0, 0))

        self.stack.set_layer_locked(0, True)
        self.changes = 0
        with self.stack.batch():
            self.stack.set_pixel(0, 0, (1, 1, 1, 255))
        self.assertEqual((self.commits, self.changes), (0, 0))

    def test_bulk_writes_are_one_commit(self) -> None:
        block = np.full((2, 2, 4), 200, dtype=np.uint8)
        self.assertTrue(self.stack.set_region(3, 3, block))
        self.assertEqual(self.stack.get_pixel(3, 3), (200, 200, 200, 200))
        self.assertEqual(self.commits, 1)
        self.assertTrue(self.stack.fill_rect(0, 0, 1, 1, (5, 5, 5, 255)))
        self.assertEqual(self.commits, 2)
        self.assertFalse(self.stack.set_region(10, 10, block))
        self.assertEqual(self.commits, 2)

    def test_region_read_is_clipped(self) -> None:
        self.stack.fill_rect(0, 0, 3, 3, (7, 7, 7, 255))
        self.assertEqual(self.stack.get_region(2, 2, 5, 5).shape, (2, 2, 4))

    def test_set_region_skip_transparent(self) -> None:
        self.stack.fill_layer((9, 9, 9, 255))
        block = np.zeros((1, 2, 4), dtype=np.uint8)
        block[0, 1] = (1, 2, 3, 255)
        self.stack.set_region(0, 0, block, skip_transparent=True)
        self.assertEqual(self.stack.get_pixel(0, 0), (9, 9, 9, 255))
        self.assertEqual(self.stack.get_pixel(1, 0), (1, 2, 3, 255))

    def test_locked_layer_rejects_writes(self) -> None:
        self.stack.set_layer_locked(0, True)
        self.assertFalse(self.stack.set_pixel(0, 0, (1, 1, 1, 255)))
        self.assertFalse(self.stack.fill_rect(0, 0, 3, 3, (1, 1, 1, 255)))
        self.assertFalse(self.stack.clear_layer())
        self.assertFalse(self.stack.fill_layer((1, 1, 1, 255)))
        self.assertEqual(self.commits, 0)


class LayerManagementTests(unittest.TestCase):
    def test_add_delete_keeps_one_layer(self) -> None:
        stack = LayerStack(2, 2)
        self.assertFalse(stack.delete_layer(0))
        stack.add_layer()
        self.assertEqual(len(stack), 2)
        self.assertEqual(stack.active_index, 1)
        self.assertEqual(stack.layers[1].name, "Layer 2")
        self.assertTrue(stack.delete_layer(1))
        self.assertEqual(stack.active_index, 0)
        self.assertFalse(stack.delete_layer(5))

    def test_duplicate_copies_pixels_not_buffer(self) -> None:
        stack = LayerStack(2, 2)
        stack.set_pixel(0, 0, (1, 2, 3, 255))
        copy = stack.duplicate_layer(0)
        self.assertEqual(copy.name, "Layer 1 Copy")
        self.assertNotEqual(copy.id, stack.layers[0].id)
        copy.buffer.set_pixel(0, 0, (0, 0, 0, 0))
        self.assertEqual(stack.get_layer_pixel(0, 0, 0), (1, 2, 3, 255))
        self.assertIsNone(stack.duplicate_layer(9))

    def test_move_layer_tracks_active(self) -> None:
        stack = LayerStack(1, 1)
        stack.add_layer("B")
        stack.add_layer("C")
        stack.set_active_layer(0)
        self.assertTrue(stack.move_layer(0, 2))
        self.assertEqual([layer.name for layer in stack.layers], ["B", "C", "Layer 1"])
        self.assertEqual(stack.active_index, 2)
        self.assertFalse(stack.move_layer(0, 0))

    def test_merge_down(self) -> None:
        stack = LayerStack(1, 1)
        stack.set_pixel(0, 0, (0, 0, 255, 255))
        stack.add_layer("top")
        stack.set_pixel(0, 0, (255, 0, 0, 255))
        stack.set_layer_opacity(1, 0.5)
        before = stack.get_pixel(0, 0)
        self.assertTrue(stack.merge_down(1))
        self.assertEqual(len(stack), 1)
        self.assertEqual(stack.layers[0].name, "Layer 1 + top")
        self.assertEqual(stack.get_pixel(0, 0), before)
        self.assertFalse(stack.merge_down(0))

    def test_merge_down_onto_locked_layer(self) -> None:
        stack = LayerStack(1, 1)
        stack.add_layer()
        stack.set_layer_locked(0, True)
        self.assertFalse(stack.merge_down(1))

    def test_blank_names_rejected(self) -> None:
        stack = LayerStack(1, 1)
        self.assertFalse(stack.set_layer_name(0, "  "))
        self.assertTrue(stack.set_layer_name(0, " Ink "))
        self.assertEqual(stack.layers[0].name, "Ink")

    def test_snapshot_restore(self) -> None:
        stack = LayerStack(2, 2)
        stack.set_pixel(1, 1, (4, 5, 6, 255))
        entry = stack.snapshot("frame")
        stack.add_layer()
        stack.clear_layer(0)
        stack.restore(entry)
        self.assertEqual(len(stack), 1)
        self.assertEqual(stack.get_pixel(1, 1), (4, 5, 6, 255))
        self.assertEqual(entry.frame_id, "frame")

    def test_mismatched_layer_sizes_rejected(self) -> None:
        with self.assertRaises(ValueError):
            LayerStack(2, 2, layers=[Layer.blank("a", 3, 2)])


if __name__ == "__main__":
    unittest.main()
