"""Perceptual color grouping with LAB spatial buckets and union-find."""
from __future__ import annotations

import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field
from itertools import product
from typing import DefaultDict, Dict, List, Mapping, Tuple

from .color_space import Lab, delta_e, rgb_to_lab
from .palette_ops import ColorTuple, PaletteEntry


logger = logging.getLogger(__name__)

RARE_COLOR_CUTOFF = 2
MIN_CLUSTER_COLORS = 10
BUCKET_SCALE = 1.5
MIN_BUCKET_SIZE = 10.0
REATTACH_FACTOR = 2.0
THRESHOLD_SCALE = 0.5

_NEIGHBOR_OFFSETS = tuple(product((-1, 0, 1), repeat=3))

BucketKey = Tuple[int, int, int]


@dataclass(slots=True)
class ColorGroups:
    """Ordered color groups plus a color -> group index lookup."""

    groups: List[List[ColorTuple]] = field(default_factory=list)
    membership: Dict[ColorTuple, int] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.groups)

    def group_for(self, color: ColorTuple) -> int:
        return self.membership.get(color, -1)

    def colors_in(self, index: int) -> List[ColorTuple]:
        if 0 <= index < len(self.groups):
            return list(self.groups[index])
        return []


class DisjointSet:
    def __init__(self, size: int) -> None:
        self.parent = list(range(size))
        self.rank = [0] * size

    def find(self, item: int) -> int:
        root = item
        while self.parent[root] != root:
            root = self.parent[root]
        while self.parent[item] != root:
            self.parent[item], item = root, self.parent[item]
        return root

    def union(self, left: int, right: int) -> bool:
        root_left = self.find(left)
        root_right = self.find(right)
        if root_left == root_right:
            return False
        if self.rank[root_left] < self.rank[root_right]:
            root_left, root_right = root_right, root_left
        self.parent[root_right] = root_left
        if self.rank[root_left] == self.rank[root_right]:
            self.rank[root_left] += 1
        return True


def _lightness_order(colors: List[ColorTuple], labs: Mapping[ColorTuple, Lab]) -> List[ColorTuple]:
    return sorted(colors, key=lambda color: (labs[color].L, color))


def _bucket_key(lab: Lab, size: float) -> BucketKey:
    return (math.floor(lab.L / size), math.floor(lab.a / size), math.floor(lab.b / size))


def _cluster_primary(
    colors: List[ColorTuple], labs: Mapping[ColorTuple, Lab], threshold: float
) -> List[List[ColorTuple]]:
    bucket_size = max(threshold * BUCKET_SCALE, MIN_BUCKET_SIZE)
    buckets: DefaultDict[BucketKey, List[int]] = defaultdict(list)
    for index, color in enumerate(colors):
        buckets[_bucket_key(labs[color], bucket_size)].append(index)

    sets = DisjointSet(len(colors))
    comparisons = 0
    for key in sorted(buckets):
        members = buckets[key]
        for dx, dy, dz in _NEIGHBOR_OFFSETS:
            neighbor_key = (key[0] + dx, key[1] + dy, key[2] + dz)
            # each unordered bucket pair is visited once, from its smaller key
            if neighbor_key < key or neighbor_key not in buckets:
                continue
            neighbors = buckets[neighbor_key]
            same = neighbor_key == key
            for i, left in enumerate(members):
                candidates = members[i + 1 :] if same else neighbors
                left_lab = labs[colors[left]]
                for right in candidates:
                    comparisons += 1
                    if delta_e(left_lab, labs[colors[right]]) <= threshold:
                        sets.union(left, right)

    by_root: Dict[int, List[ColorTuple]] = {}
    for index, color in enumerate(colors):
        by_root.setdefault(sets.find(index), []).append(color)
    logger.debug(
        "Grouping primary pass colors=%s buckets=%s bucket_size=%.2f comparisons=%s groups=%s",
        len(colors),
        len(buckets),
        bucket_size,
        comparisons,
        len(by_root),
    )
    return list(by_root.values())


def _representatives(group: List[ColorTuple]) -> List[ColorTuple]:
    if len(group) <= 3:
        return list(group)
    return [group[0], group[len(group) // 2], group[-1]]


def _reattach_rare(
    groups: List[List[ColorTuple]],
    rare: List[ColorTuple],
    labs: Mapping[ColorTuple, Lab],
    threshold: float,
) -> List[List[ColorTuple]]:
    limit = threshold * REATTACH_FACTOR
    representatives = [_representatives(group) for group in groups]
    attached = [list(group) for group in groups]
    singletons: List[List[ColorTuple]] = []
    for color in rare:
        best_index = -1
        best_distance = math.inf
        for index, reps in enumerate(representatives):
            for rep in reps:
                distance = delta_e(labs[color], labs[rep])
                if distance < best_distance:
                    best_distance = distance
                    best_index = index
        if best_index >= 0 and best_distance <= limit:
            attached[best_index].append(color)
        else:
            singletons.append([color])
    logger.debug(
        "Grouping rare colors=%s attached=%s singletons=%s",
        len(rare),
        len(rare) - len(singletons),
        len(singletons),
    )
    return attached + singletons


def group_colors(
    color_counts: Mapping[ColorTuple, PaletteEntry], threshold_percent: float
) -> ColorGroups:
    """Cluster a palette into perceptually similar groups.

    ``threshold_percent`` (0-100) maps to a Delta E threshold of 0-50. At 100 every
    color lands in one group. Colors inside a group are ordered dark to light and the
    groups are ordered by the lightness of their darkest color.
    """

    if not color_counts:
        return ColorGroups()
    percent = max(0.0, min(100.0, float(threshold_percent)))
    threshold = percent * THRESHOLD_SCALE
    keys = sorted(color_counts)
    labs = {key: rgb_to_lab(*key) for key in keys}

    if percent >= 100.0:
        raw_groups = [list(keys)]
    else:
        primary = [key for key in keys if color_counts[key].count >= RARE_COLOR_CUTOFF]
        if len(primary) < MIN_CLUSTER_COLORS:
            primary = list(keys)
        primary_set = set(primary)
        rare = [key for key in keys if key not in primary_set]
        raw_groups = _cluster_primary(primary, labs, threshold)
        if rare:
            sorted_primary = [_lightness_order(group, labs) for group in raw_groups]
            raw_groups = _reattach_rare(sorted_primary, rare, labs, threshold)

    ordered = [_lightness_order(group, labs) for group in raw_groups]
    ordered.sort(key=lambda group: (labs[group[0]].L, group[0]))
    membership = {color: index for index, group in enumerate(ordered) for color in group}
    logger.debug(
        "Grouped colors=%s threshold_percent=%s delta_e=%.2f groups=%s",
        len(keys),
        percent,
        threshold,
        len(ordered),
    )
    return ColorGroups(groups=ordered, membership=membership)
