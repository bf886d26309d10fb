"""Editor limits and clamp helpers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from .color_space import round_half_up


MAX_DIMENSION = 4096


def threshold_alpha_for(percent: float) -> int:
    """Alpha value below which a pixel counts as under ``percent`` opacity."""

    return round_half_up(max(0.0, min(100.0, float(percent))) / 100.0 * 255.0)


def _clamp_number(value: Any, low: float, high: float, fallback: float) -> float:
    try:
        parsed = float(value)
    except (TypeError, ValueError):
        return fallback
    if parsed != parsed:  # NaN
        return fallback
    return max(low, min(high, parsed))


@dataclass(slots=True)
class EditorSettings:
    reduce_min_colors: int = 1
    reduce_max_colors: int = 256
    reduce_default_colors: int = 16
    resize_min_percent: float = 1.0
    resize_max_percent: float = 1000.0
    resize_max_dimension: int = MAX_DIMENSION
    transparency_min_percent: float = 0.0
    transparency_max_percent: float = 100.0
    transparency_default_percent: float = 50.0
    grouping_threshold: float = 15.0
    default_frame_delay: int = 100  # ms, used for still image sequences

    def clamp_reduce_target(self, value: Any) -> int:
        return int(
            _clamp_number(value, self.reduce_min_colors, self.reduce_max_colors, self.reduce_default_colors)
        )

    def clamp_resize_percent(self, value: Any) -> float:
        return _clamp_number(value, self.resize_min_percent, self.resize_max_percent, 100.0)

    def clamp_resize_dimension(self, value: Any, fallback: int) -> int:
        return int(_clamp_number(value, 1, self.resize_max_dimension, fallback))

    def clamp_transparency_percent(self, value: Any) -> float:
        return _clamp_number(
            value,
            self.transparency_min_percent,
            self.transparency_max_percent,
            self.transparency_default_percent,
        )
