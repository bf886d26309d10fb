"""Nearest-neighbor resize, opaque bounds and cropping over frame sets."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Sequence

import numpy as np

from .palette_ops import copy_frames, validate_frames


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Bounds:
    min_x: int
    min_y: int
    max_x: int
    max_y: int

    @property
    def width(self) -> int:
        return self.max_x - self.min_x + 1

    @property
    def height(self) -> int:
        return self.max_y - self.min_y + 1

    @classmethod
    def from_size(cls, x: int, y: int, width: int, height: int) -> "Bounds":
        return cls(min_x=x, min_y=y, max_x=x + width - 1, max_y=y + height - 1)

    def is_full(self, width: int, height: int) -> bool:
        return self.min_x == 0 and self.min_y == 0 and self.width == width and self.height == height


def _nearest_source(from_size: int, to_size: int) -> np.ndarray:
    # sample at output pixel centres: floor((dst + 0.5) * from / to)
    dst = np.arange(to_size, dtype=np.int64)
    src = ((2 * dst + 1) * from_size) // (2 * to_size)
    return np.minimum(src, from_size - 1)


def resize_nearest_neighbor(
    frames: Sequence[np.ndarray], from_width: int, from_height: int, to_width: int, to_height: int
) -> List[np.ndarray]:
    """Resample every frame to ``to_width`` x ``to_height`` without blending."""

    if to_width < 1 or to_height < 1 or from_width < 1 or from_height < 1:
        logger.debug(
            "Resize skipped invalid size from=%sx%s to=%sx%s", from_width, from_height, to_width, to_height
        )
        return copy_frames(frames)
    validate_frames(frames, from_width, from_height)
    if from_width == to_width and from_height == to_height:
        return copy_frames(frames)
    src_x = _nearest_source(from_width, to_width)
    src_y = _nearest_source(from_height, to_height)
    resized: List[np.ndarray] = []
    for frame in frames:
        grid = frame.reshape(from_height, from_width, 4)
        resized.append(np.ascontiguousarray(grid[src_y[:, None], src_x[None, :]]).reshape(-1))
    logger.debug(
        "Resized frames=%s from=%sx%s to=%sx%s", len(frames), from_width, from_height, to_width, to_height
    )
    return resized


def opaque_bounds(frames: Sequence[np.ndarray], width: int, height: int) -> Bounds | None:
    """Smallest box covering every pixel with alpha > 0 in any frame."""

    if not frames or width < 1 or height < 1:
        return None
    validate_frames(frames, width, height)
    coverage = np.zeros((height, width), dtype=bool)
    for frame in frames:
        coverage |= frame.reshape(height, width, 4)[:, :, 3] > 0
    rows = np.flatnonzero(coverage.any(axis=1))
    cols = np.flatnonzero(coverage.any(axis=0))
    if rows.size == 0:
        return None
    return Bounds(min_x=int(cols[0]), min_y=int(rows[0]), max_x=int(cols[-1]), max_y=int(rows[-1]))


def crop_to_bounds(
    frames: Sequence[np.ndarray], from_width: int, from_height: int, bounds: Bounds
) -> List[np.ndarray]:
    """Extract ``bounds`` from every frame; invalid bounds return an unmodified copy."""

    if (
        bounds.width < 1
        or bounds.height < 1
        or bounds.min_x < 0
        or bounds.min_y < 0
        or bounds.min_x + bounds.width > from_width
        or bounds.min_y + bounds.height > from_height
    ):
        logger.debug("Crop skipped bounds=%s source=%sx%s", bounds, from_width, from_height)
        return copy_frames(frames)
    validate_frames(frames, from_width, from_height)
    cropped: List[np.ndarray] = []
    for frame in frames:
        grid = frame.reshape(from_height, from_width, 4)
        region = grid[bounds.min_y : bounds.max_y + 1, bounds.min_x : bounds.max_x + 1]
        cropped.append(np.ascontiguousarray(region).reshape(-1))
    logger.debug("Cropped frames=%s source=%sx%s bounds=%s", len(frames), from_width, from_height, bounds)
    return cropped
