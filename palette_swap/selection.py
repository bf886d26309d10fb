"""Pixel selection masks (rectangle, polygon, invert)."""
from __future__ import annotations

import logging
from typing import Iterable, List, Sequence, Tuple

import numpy as np


logger = logging.getLogger(__name__)

Point = Tuple[float, float]


def selection_mask(indices: Iterable[int] | None, pixel_count: int) -> np.ndarray | None:
    """Boolean mask for ``indices``; indices outside ``[0, pixel_count)`` are dropped."""

    if indices is None:
        return None
    values = np.fromiter((int(i) for i in indices), dtype=np.int64)
    mask = np.zeros(pixel_count, dtype=bool)
    in_range = values[(values >= 0) & (values < pixel_count)]
    if in_range.size != values.size:
        logger.debug("Selection dropped stale indices count=%s", values.size - in_range.size)
    mask[in_range] = True
    return mask


def points_in_polygon(xs: np.ndarray, ys: np.ndarray, polygon: Sequence[Point]) -> np.ndarray:
    """Even-odd ray casting test for arrays of points."""

    inside = np.zeros(xs.shape, dtype=bool)
    count = len(polygon)
    j = count - 1
    for i in range(count):
        xi, yi = float(polygon[i][0]), float(polygon[i][1])
        xj, yj = float(polygon[j][0]), float(polygon[j][1])
        crosses = (yi > ys) != (yj > ys)
        if yj != yi:
            x_cross = (xj - xi) * (ys - yi) / (yj - yi) + xi
            inside ^= crosses & (xs < x_cross)
        j = i
    return inside


class PixelSelection:
    """Selection state over one frame's pixel grid."""

    def __init__(self, width: int, height: int) -> None:
        self.width = width
        self.height = height
        self._mask: np.ndarray | None = None

    @property
    def pixel_count(self) -> int:
        return self.width * self.height

    @property
    def has_selection(self) -> bool:
        return self._mask is not None and bool(self._mask.any())

    @property
    def mask(self) -> np.ndarray | None:
        return self._mask if self.has_selection else None

    @property
    def selected_count(self) -> int:
        return int(self._mask.sum()) if self._mask is not None else 0

    def clear(self) -> None:
        self._mask = None

    def reset(self, width: int, height: int) -> None:
        self.width = width
        self.height = height
        self._mask = None

    def _fresh_mask(self) -> np.ndarray:
        self._mask = np.zeros(self.pixel_count, dtype=bool)
        return self._mask

    def select_rectangle(self, x1: int, y1: int, x2: int, y2: int) -> None:
        mask = self._fresh_mask()
        min_x = max(0, min(x1, x2))
        max_x = min(self.width - 1, max(x1, x2))
        min_y = max(0, min(y1, y2))
        max_y = min(self.height - 1, max(y1, y2))
        if min_x > max_x or min_y > max_y:
            return
        grid = mask.reshape(self.height, self.width)
        grid[min_y : max_y + 1, min_x : max_x + 1] = True
        logger.debug("Selection rectangle (%s,%s)-(%s,%s) count=%s", min_x, min_y, max_x, max_y, self.selected_count)

    def select_polygon(self, points: Sequence[Point]) -> None:
        if len(points) < 3:
            return
        ys, xs = np.mgrid[0 : self.height, 0 : self.width]
        inside = points_in_polygon(xs.ravel() + 0.5, ys.ravel() + 0.5, points)
        self._mask = inside
        logger.debug("Selection polygon points=%s count=%s", len(points), self.selected_count)

    def invert(self) -> None:
        if self._mask is None:
            return
        self._mask = ~self._mask

    def contains(self, pixel_index: int) -> bool:
        if not self.has_selection:
            return True
        return 0 <= pixel_index < self.pixel_count and bool(self._mask[pixel_index])

    def indices(self) -> List[int]:
        if self._mask is None:
            return []
        return np.flatnonzero(self._mask).tolist()

    def describe(self) -> str:
        if not self.has_selection:
            return "No selection"
        percent = self.selected_count / self.pixel_count * 100.0
        return f"{self.selected_count} pixels selected ({percent:.1f}% of image)"
