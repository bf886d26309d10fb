from typing import Sequence

import numpy as np
import pytest


@pytest.fixture
def pixel_frame():
    """Factory building a flat frame buffer from a row-major list of RGBA (or RGB) pixels."""

    def _make(pixels: Sequence[Sequence[int]]) -> np.ndarray:
        rows = [tuple(p) + (255,) * (4 - len(p)) for p in pixels]
        return np.array(rows, dtype=np.uint8).reshape(-1)

    return _make
