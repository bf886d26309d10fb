"""Weighted perceptual color reduction (k-means in LAB space)."""
from __future__ import annotations

import logging
from typing import Dict, Mapping

import numpy as np

from .color_space import lab_to_rgb, rgb_array_to_lab
from .palette_ops import ColorTuple, PaletteEntry


logger = logging.getLogger(__name__)

MAX_ITERATIONS = 20


def _squared_distances(labs: np.ndarray, centroids: np.ndarray) -> np.ndarray:
    diff = labs[:, None, :] - centroids[None, :, :]
    return np.einsum("nkc,nkc->nk", diff, diff)


def _seed_centroids(labs: np.ndarray, weights: np.ndarray, target: int) -> np.ndarray:
    # colors arrive sorted by key, so argmax picks the lexicographically smallest on ties
    first = int(np.argmax(weights))
    chosen = [first]
    min_dist2 = np.sum((labs - labs[first]) ** 2, axis=1)
    while len(chosen) < target:
        scores = min_dist2 * weights
        scores[chosen] = -1.0
        pick = int(np.argmax(scores))
        chosen.append(pick)
        min_dist2 = np.minimum(min_dist2, np.sum((labs - labs[pick]) ** 2, axis=1))
    return labs[chosen].copy()


def _update_centroids(
    labs: np.ndarray, weights: np.ndarray, assignments: np.ndarray, centroids: np.ndarray
) -> np.ndarray:
    k = centroids.shape[0]
    totals = np.bincount(assignments, weights=weights, minlength=k)
    updated = centroids.copy()
    occupied = totals > 0
    for channel in range(3):
        sums = np.bincount(assignments, weights=weights * labs[:, channel], minlength=k)
        updated[occupied, channel] = sums[occupied] / totals[occupied]

    empty = np.flatnonzero(~occupied)
    if empty.size:
        own = updated[assignments]
        scores = np.sum((labs - own) ** 2, axis=1) * weights
        for cluster in empty.tolist():
            worst = int(np.argmax(scores))
            updated[cluster] = labs[worst]
            scores[worst] = -1.0
        logger.debug("Relocated empty centroids count=%s", empty.size)
    return updated


def reduce_colors(
    color_counts: Mapping[ColorTuple, PaletteEntry], target_count: int
) -> Dict[ColorTuple, ColorTuple]:
    """Map every color in ``color_counts`` onto one of ``target_count`` representatives.

    Centroids are seeded from the most frequent color, then by weighted farthest-point
    selection (min squared distance times pixel count), and refined with weighted Lloyd
    iterations in LAB space. The result is deterministic for a given input.
    """

    if not color_counts:
        return {}
    target = max(1, int(target_count))
    keys = sorted(color_counts)
    if target >= len(keys):
        return {key: key for key in keys}

    rgb = np.array(keys, dtype=np.float64)
    weights = np.array([color_counts[key].count for key in keys], dtype=np.float64)
    labs = rgb_array_to_lab(rgb)
    centroids = _seed_centroids(labs, weights, target)

    assignments = np.full(len(keys), -1, dtype=np.int64)
    iterations = 0
    for iterations in range(1, MAX_ITERATIONS + 1):
        updated = np.argmin(_squared_distances(labs, centroids), axis=1)
        if np.array_equal(updated, assignments):
            break
        assignments = updated
        centroids = _update_centroids(labs, weights, assignments, centroids)

    palette = {
        cluster: lab_to_rgb(*centroids[cluster].tolist())
        for cluster in np.unique(assignments).tolist()
    }
    mapping = {key: palette[int(cluster)] for key, cluster in zip(keys, assignments.tolist())}
    logger.debug(
        "Reduced colors from=%s target=%s iterations=%s distinct_out=%s",
        len(keys),
        target,
        iterations,
        len(set(mapping.values())),
    )
    return mapping
