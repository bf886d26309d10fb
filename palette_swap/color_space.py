"""sRGB <-> CIE LAB conversion and perceptual distance helpers."""
from __future__ import annotations

import math
from typing import NamedTuple, Sequence, Tuple

import numpy as np


# D65 reference white, 2 degree observer
_XN = 0.95047
_YN = 1.0
_ZN = 1.08883

_EPSILON = 0.008856
_KAPPA = 903.3

_RGB_TO_XYZ = (
    (0.4124564, 0.3575761, 0.1804375),
    (0.2126729, 0.7151522, 0.0721750),
    (0.0193339, 0.1191920, 0.9503041),
)
_XYZ_TO_RGB = (
    (3.2404542, -1.5371385, -0.4985314),
    (-0.9692660, 1.8760108, 0.0415560),
    (0.0556434, -0.2040259, 1.0572252),
)


class Lab(NamedTuple):
    L: float
    a: float
    b: float


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going up (not banker's rounding)."""

    return int(math.floor(value + 0.5))


def _srgb_to_linear(channel: float) -> float:
    c = channel / 255.0
    if c > 0.04045:
        return ((c + 0.055) / 1.055) ** 2.4
    return c / 12.92


def _linear_to_srgb(value: float) -> float:
    if value > 0.0031308:
        return 1.055 * (value ** (1.0 / 2.4)) - 0.055
    return 12.92 * value


def _lab_f(t: float) -> float:
    if t > _EPSILON:
        return t ** (1.0 / 3.0)
    return (_KAPPA * t + 16.0) / 116.0


def _lab_f_inv(t: float) -> float:
    cube = t * t * t
    if cube > _EPSILON:
        return cube
    return (116.0 * t - 16.0) / _KAPPA


def _clamp_channel(value: float) -> int:
    return max(0, min(255, round_half_up(value * 255.0)))


def rgb_to_lab(r: int, g: int, b: int) -> Lab:
    """Convert an 8-bit sRGB color to LAB (D65)."""

    lr = _srgb_to_linear(r)
    lg = _srgb_to_linear(g)
    lb = _srgb_to_linear(b)
    x = (lr * _RGB_TO_XYZ[0][0] + lg * _RGB_TO_XYZ[0][1] + lb * _RGB_TO_XYZ[0][2]) / _XN
    y = (lr * _RGB_TO_XYZ[1][0] + lg * _RGB_TO_XYZ[1][1] + lb * _RGB_TO_XYZ[1][2]) / _YN
    z = (lr * _RGB_TO_XYZ[2][0] + lg * _RGB_TO_XYZ[2][1] + lb * _RGB_TO_XYZ[2][2]) / _ZN
    fx = _lab_f(x)
    fy = _lab_f(y)
    fz = _lab_f(z)
    return Lab(116.0 * fy - 16.0, 500.0 * (fx - fy), 200.0 * (fy - fz))


def lab_to_rgb(L: float, a: float, b: float) -> Tuple[int, int, int]:
    """Convert LAB back to 8-bit sRGB, clamping each channel to [0, 255]."""

    fy = (L + 16.0) / 116.0
    fx = fy + a / 500.0
    fz = fy - b / 200.0
    x = _lab_f_inv(fx) * _XN
    y = _lab_f_inv(fy) * _YN
    z = _lab_f_inv(fz) * _ZN
    lr = x * _XYZ_TO_RGB[0][0] + y * _XYZ_TO_RGB[0][1] + z * _XYZ_TO_RGB[0][2]
    lg = x * _XYZ_TO_RGB[1][0] + y * _XYZ_TO_RGB[1][1] + z * _XYZ_TO_RGB[1][2]
    lb = x * _XYZ_TO_RGB[2][0] + y * _XYZ_TO_RGB[2][1] + z * _XYZ_TO_RGB[2][2]
    return (
        _clamp_channel(_linear_to_srgb(lr)),
        _clamp_channel(_linear_to_srgb(lg)),
        _clamp_channel(_linear_to_srgb(lb)),
    )


def delta_e(first: Sequence[float], second: Sequence[float]) -> float:
    """CIE76 Delta E: Euclidean distance between two LAB points."""

    return math.sqrt(
        (first[0] - second[0]) ** 2
        + (first[1] - second[1]) ** 2
        + (first[2] - second[2]) ** 2
    )


def color_distance(first: Sequence[int], second: Sequence[int]) -> float:
    return delta_e(rgb_to_lab(*first[:3]), rgb_to_lab(*second[:3]))


def rgb_array_to_lab(rgb: np.ndarray) -> np.ndarray:
    """Vectorised ``rgb_to_lab`` for an ``(N, 3)`` array of 0-255 values."""

    rgb_norm = np.asarray(rgb, dtype=np.float64).reshape(-1, 3) / 255.0
    linear = np.where(rgb_norm > 0.04045, ((rgb_norm + 0.055) / 1.055) ** 2.4, rgb_norm / 12.92)
    matrix = np.array(_RGB_TO_XYZ, dtype=np.float64)
    xyz = linear @ matrix.T
    xyz /= np.array([_XN, _YN, _ZN], dtype=np.float64)
    f = np.where(xyz > _EPSILON, np.cbrt(xyz), (_KAPPA * xyz + 16.0) / 116.0)
    L = 116.0 * f[:, 1] - 16.0
    a = 500.0 * (f[:, 0] - f[:, 1])
    b = 200.0 * (f[:, 1] - f[:, 2])
    return np.column_stack([L, a, b])
