from __future__ import annotations

import logging
import math
from typing import List

import numpy as np

from .errors import InferenceError
from .geometry import DetectionRegion, RawCandidateBox, non_max_suppression
from .preprocessing import LetterboxTransform

logger = logging.getLogger(__name__)

# Values per candidate in the model output: cx, cy, w, h, confidence.
OUTPUT_FEATURES = 5


def candidates_from_output(raw_output: np.ndarray, confidence_threshold: float) -> List[RawCandidateBox]:
    """
    Unpack a 1x5xN (or 5xN) output into the candidates whose confidence is
    strictly above the threshold. Columns holding a non-finite value are dropped.

    The tensor is feature-major: row 0 holds every cx, row 4 every confidence.
    """
    data = np.asarray(raw_output, dtype=np.float64)
    if data.ndim == 3 and data.shape[0] == 1:
        data = data[0]
    if data.ndim != 2 or data.shape[0] != OUTPUT_FEATURES:
        raise InferenceError(f"unexpected model output shape {tuple(np.shape(raw_output))}, expected (1, 5, N)")
    # NaN or inf anywhere in a column makes that candidate unusable.
    keep = np.nonzero((data[4] > confidence_threshold) & np.isfinite(data).all(axis=0))[0]
    cx, cy, w, h, conf = data
    return [
        RawCandidateBox(cx=float(cx[i]), cy=float(cy[i]), w=float(w[i]), h=float(h[i]), confidence=float(conf[i]))
        for i in keep
    ]


def to_image_region(box: RawCandidateBox, transform: LetterboxTransform) -> DetectionRegion:
    """Undo the letterbox and return the clamped corner-form box in source pixels."""
    x = (box.cx - transform.pad_x) / transform.scale
    y = (box.cy - transform.pad_y) / transform.scale
    w = box.w / transform.scale
    h = box.h / transform.scale
    region = DetectionRegion(
        xmin=int(math.floor(x - w / 2.0)),
        ymin=int(math.floor(y - h / 2.0)),
        xmax=int(math.ceil(x + w / 2.0)),
        ymax=int(math.ceil(y + h / 2.0)),
    )
    return region.clamp(transform.original_width, transform.original_height)


def margin_for(box_width: float, margin_ratio: float = 0.10, min_margin_px: int = 5) -> int:
    """Blur margin for a plate `box_width` source pixels wide, before any clamping."""
    return max(int(min_margin_px), int(math.floor(box_width * margin_ratio)))


def decode(
    raw_output: np.ndarray,
    transform: LetterboxTransform,
    confidence_threshold: float = 0.25,
    iou_threshold: float = 0.45,
    *,
    margin_ratio: float = 0.10,
    min_margin_px: int = 5,
    min_region_px: int = 5,
) -> List[DetectionRegion]:
    """
    Turn raw detector output into padded regions in source-image pixels.

    Candidates need confidence strictly above the threshold. Regions smaller
    than min_region_px on either side after clamping are dropped before the
    margin is added; the margin only grows a box, so survivors stay above it.
    """
    candidates = candidates_from_output(raw_output, confidence_threshold)
    kept = non_max_suppression(candidates, iou_threshold)

    regions: List[DetectionRegion] = []
    for box in kept:
        region = to_image_region(box, transform)
        if not region.is_at_least(min_region_px):
            continue
        # A plate cut off at the border keeps the margin of its full width.
        margin = margin_for(box.w / transform.scale, margin_ratio, min_margin_px)
        regions.append(region.expand(margin).clamp(transform.original_width, transform.original_height))

    logger.debug(
        "Plate candidates: %d above threshold, %d after NMS, %d regions",
        len(candidates),
        len(kept),
        len(regions),
    )
    return regions
