"""Gradient preserving group recolor."""
from __future__ import annotations

from typing import Dict, Sequence

from .color_space import lab_to_rgb, rgb_to_lab
from .palette_ops import ColorTuple


def compute_group_shift(
    group_colors: Sequence[ColorTuple],
    target: ColorTuple,
    anchor: ColorTuple | None = None,
) -> Dict[ColorTuple, ColorTuple]:
    """Translate every color of a group by the LAB offset from ``anchor`` to ``target``.

    The anchor falls back to the middle color of the group when it is missing or not a
    member. Lightness is clamped to [0, 100]; a and b are left unclamped.
    """

    if not group_colors:
        return {}
    labs = [rgb_to_lab(*color) for color in group_colors]
    anchor_index = len(group_colors) // 2
    if anchor is not None and anchor in group_colors:
        anchor_index = list(group_colors).index(anchor)
    anchor_lab = labs[anchor_index]
    target_lab = rgb_to_lab(*target)
    delta_l = target_lab.L - anchor_lab.L
    delta_a = target_lab.a - anchor_lab.a
    delta_b = target_lab.b - anchor_lab.b

    mapping: Dict[ColorTuple, ColorTuple] = {}
    for color, lab in zip(group_colors, labs):
        shifted_l = max(0.0, min(100.0, lab.L + delta_l))
        mapping[color] = lab_to_rgb(shifted_l, lab.a + delta_a, lab.b + delta_b)
    return mapping
