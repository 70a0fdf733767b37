from __future__ import annotations

from typing import Tuple

import numpy as np

from .errors import ValidationError
from .types import ComparisonResult


WHITE = (255, 255, 255, 255)
BLACK = (0, 0, 0, 255)


def pad_to_same_canvas(a: np.ndarray, b: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Pad two RGBA rasters to their common bounding canvas without resampling.

    Uncovered pixels are transparent black ``(0, 0, 0, 0)``.
    """

    for image in (a, b):
        if image.ndim != 3 or image.shape[2] != 4:
            raise ValueError(f"expected an (H, W, 4) RGBA array, got shape {image.shape}")

    height = max(a.shape[0], b.shape[0])
    width = max(a.shape[1], b.shape[1])
    padded_a = np.zeros((height, width, 4), dtype=np.uint8)
    padded_b = np.zeros((height, width, 4), dtype=np.uint8)
    padded_a[: a.shape[0], : a.shape[1]] = a
    padded_b[: b.shape[0], : b.shape[1]] = b
    return padded_a, padded_b


def diff_mask(a: np.ndarray, b: np.ndarray, threshold: int) -> np.ndarray:
    """Boolean ``(H, W)`` mask, true where any channel differs by more than ``threshold``."""

    delta = np.abs(a.astype(np.int16) - b.astype(np.int16))
    return (delta > threshold).any(axis=2)


def diff_images(image1: np.ndarray, image2: np.ndarray, threshold: int = 1) -> ComparisonResult:
    """Compare two RGBA rasters channel by channel.

    Differing pixels become opaque white in the diff image, the rest opaque
    black.  ``diff_percentage`` keeps full precision; the result reports the
    same ``threshold`` it was computed with.
    """

    if isinstance(threshold, bool) or not isinstance(threshold, (int, np.integer)):
        raise ValidationError(f"pixel threshold must be an integer, got {threshold!r}")
    if not 0 <= threshold <= 255:
        raise ValidationError(f"pixel threshold must be within [0, 255], got {threshold}")

    a, b = pad_to_same_canvas(np.asarray(image1), np.asarray(image2))
    mask = diff_mask(a, b, int(threshold))

    diff = np.empty(a.shape, dtype=np.uint8)
    diff[...] = BLACK
    diff[mask] = WHITE

    total = int(mask.size)
    different = int(np.count_nonzero(mask))
    percentage = 100.0 * different / total if total else 0.0
    return ComparisonResult(
        total_pixels=total,
        different_pixels=different,
        diff_percentage=percentage,
        diff_image=diff,
        threshold=int(threshold),
    )


__all__ = ["diff_images", "diff_mask", "pad_to_same_canvas"]
