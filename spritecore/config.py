from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from logging import getLogger
from pathlib import Path
from typing import Optional

logger = getLogger(__name__)


@dataclass
class EditorConfig:
    # New sprite defaults
    default_width: int = 32
    default_height: int = 32

    # History
    max_history: int = 50
    max_history_large: int = 10
    large_sprite_pixels: int = 100_000
    throttle_pixels: int = 500_000
    throttle_every: int = 5

    # Tools
    max_brush_size: int = 10
    default_tolerance: int = 0
    dither_opacity: int = 50
    mirror_axis: str = "horizontal"
    rigid_scaling: bool = True

    # Selection handles are hit-tested in screen pixels
    handle_size: int = 8
    small_selection_side: int = 4


def config_to_raw(config: EditorConfig) -> dict:
    return asdict(config)


def config_from_raw(raw: dict) -> EditorConfig:
    defaults = EditorConfig()
    return EditorConfig(
        default_width=max(1, int(raw.get("default_width", defaults.default_width))),
        default_height=max(1, int(raw.get("default_height", defaults.default_height))),
        max_history=max(1, int(raw.get("max_history", defaults.max_history))),
        max_history_large=max(1, int(raw.get("max_history_large", defaults.max_history_large))),
        large_sprite_pixels=int(raw.get("large_sprite_pixels", defaults.large_sprite_pixels)),
        throttle_pixels=int(raw.get("throttle_pixels", defaults.throttle_pixels)),
        throttle_every=max(1, int(raw.get("throttle_every", defaults.throttle_every))),
        max_brush_size=max(1, int(raw.get("max_brush_size", defaults.max_brush_size))),
        default_tolerance=max(0, min(100, int(raw.get("default_tolerance", defaults.default_tolerance)))),
        dither_opacity=max(0, min(100, int(raw.get("dither_opacity", defaults.dither_opacity)))),
        mirror_axis=str(raw.get("mirror_axis", defaults.mirror_axis)).lower(),
        rigid_scaling=bool(raw.get("rigid_scaling", defaults.rigid_scaling)),
        handle_size=max(1, int(raw.get("handle_size", defaults.handle_size))),
        small_selection_side=max(0, int(raw.get("small_selection_side", defaults.small_selection_side))),
    )


def load_config(path: Optional[str] = None) -> EditorConfig:
    if not path:
        return EditorConfig()
    config_file = Path(path)
    if not config_file.exists():
        logger.warning("Config file %s not found, using defaults", config_file)
        return EditorConfig()
    try:
        raw = json.loads(config_file.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        logger.warning("Config file %s is not valid JSON (%s), using defaults", config_file, exc)
        return EditorConfig()
    if not isinstance(raw, dict):
        logger.warning("Config file %s does not hold an object, using defaults", config_file)
        return EditorConfig()
    return config_from_raw(raw)


def save_config(path: str, config: EditorConfig) -> None:
    Path(path).write_text(json.dumps(config_to_raw(config), indent=2), encoding="utf-8")
