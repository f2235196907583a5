from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple


@dataclass(frozen=True)
class RawCandidateBox:
    """Detector candidate in model input space (center form)."""

    cx: float
    cy: float
    w: float
    h: float
    confidence: float

    def corners(self) -> Tuple[float, float, float, float]:
        return (
            self.cx - self.w / 2.0,
            self.cy - self.h / 2.0,
            self.cx + self.w / 2.0,
            self.cy + self.h / 2.0,
        )


@dataclass(frozen=True)
class DetectionRegion:
    """Axis-aligned rectangle in pixel coordinates (xmin, ymin, xmax, ymax), max exclusive."""

    xmin: int
    ymin: int
    xmax: int
    ymax: int

    @property
    def width(self) -> int:
        return self.xmax - self.xmin

    @property
    def height(self) -> int:
        return self.ymax - self.ymin

    def clamp(self, width: int, height: int) -> "DetectionRegion":
        xmin = max(0, min(self.xmin, width))
        ymin = max(0, min(self.ymin, height))
        xmax = max(0, min(self.xmax, width))
        ymax = max(0, min(self.ymax, height))
        # Ensure proper ordering
        if xmax < xmin:
            xmin, xmax = xmax, xmin
        if ymax < ymin:
            ymin, ymax = ymax, ymin
        return DetectionRegion(xmin=xmin, ymin=ymin, xmax=xmax, ymax=ymax)

    def expand(self, margin: int) -> "DetectionRegion":
        return DetectionRegion(
            xmin=self.xmin - margin,
            ymin=self.ymin - margin,
            xmax=self.xmax + margin,
            ymax=self.ymax + margin,
        )

    def is_at_least(self, min_extent: int) -> bool:
        return self.width >= min_extent and self.height >= min_extent


def iou(a: RawCandidateBox, b: RawCandidateBox) -> float:
    """Intersection over union of two center-form boxes; 0.0 when the union is empty."""
    ax1, ay1, ax2, ay2 = a.corners()
    bx1, by1, bx2, by2 = b.corners()

    inter_w = max(0.0, min(ax2, bx2) - max(ax1, bx1))
    inter_h = max(0.0, min(ay2, by2) - max(ay1, by1))
    intersection = inter_w * inter_h

    union = a.w * a.h + b.w * b.h - intersection
    if union <= 0.0:
        return 0.0
    return intersection / union


def non_max_suppression(boxes: Iterable[RawCandidateBox], iou_threshold: float) -> List[RawCandidateBox]:
    """
    Greedy NMS.

    Boxes are visited by descending confidence; ties keep their input order
    (the sort is stable), so equal-confidence duplicates resolve to the first one.
    """
    remaining = sorted(boxes, key=lambda b: b.confidence, reverse=True)
    kept: List[RawCandidateBox] = []
    while remaining:
        best = remaining.pop(0)
        kept.append(best)
        remaining = [b for b in remaining if iou(best, b) <= iou_threshold]
    return kept


@dataclass(frozen=True)
class FrameTransform:
    """
    Maps pixel coordinates between two renditions of the same photo.

    Used by the pipeline for its own downscale-to-bounds step. It is unrelated
    to the detector's letterbox transform, which lives in `preprocessing`.
    """

    source_size: Tuple[int, int]
    target_size: Tuple[int, int]

    @property
    def scale_x(self) -> float:
        return self.target_size[0] / float(self.source_size[0])

    @property
    def scale_y(self) -> float:
        return self.target_size[1] / float(self.source_size[1])

    @property
    def is_identity(self) -> bool:
        return tuple(self.source_size) == tuple(self.target_size)

    def map_region(self, region: DetectionRegion) -> DetectionRegion:
        if self.is_identity:
            return region
        # Round outward so the mapped box never shrinks inside the plate.
        mapped = DetectionRegion(
            xmin=int(math.floor(region.xmin * self.scale_x)),
            ymin=int(math.floor(region.ymin * self.scale_y)),
            xmax=int(math.ceil(region.xmax * self.scale_x)),
            ymax=int(math.ceil(region.ymax * self.scale_y)),
        )
        return mapped.clamp(*self.target_size)

    def map_regions(self, regions: Sequence[DetectionRegion]) -> List[DetectionRegion]:
        return [self.map_region(r) for r in regions]
