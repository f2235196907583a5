from __future__ import annotations

import logging
from typing import Iterable, Optional, Tuple

import cv2

from .geometry import DetectionRegion
from .imaging import RasterImage

logger = logging.getLogger(__name__)

DEFAULT_BLUR_SIGMA = 20.0


def _extraction_window(region: DetectionRegion, width: int, height: int) -> Optional[Tuple[int, int, int, int]]:
    """
    Clamp a region to the image again right before cutting it out.

    Returns (left, top, w, h), or None when nothing usable is left.
    """
    if region.width <= 0 or region.height <= 0:
        return None
    if region.xmin >= width or region.ymin >= height or region.xmax <= 0 or region.ymax <= 0:
        return None
    # Keep the full extent when possible by sliding the window back inside.
    extract_w = min(region.width, width)
    extract_h = min(region.height, height)
    left = max(0, min(region.xmin, width - extract_w))
    top = max(0, min(region.ymin, height - extract_h))
    return left, top, extract_w, extract_h


def anonymize(image: RasterImage, regions: Iterable[DetectionRegion], blur_sigma: float = DEFAULT_BLUR_SIGMA) -> RasterImage:
    """
    Gaussian-blur every region and return the composited copy.

    A region that cannot be extracted is skipped and logged; the rest are
    still blurred.
    """
    regions = list(regions)
    if not regions:
        return image

    pixels = image.writable_copy()
    applied = 0
    for region in regions:
        window = _extraction_window(region, image.width, image.height)
        if window is None:
            logger.info(
                "Skipping unusable blur region %s",
                region,
                extra={"event": "region_extraction_skipped", "region": [region.xmin, region.ymin, region.xmax, region.ymax]},
            )
            continue
        left, top, w, h = window
        try:
            roi = pixels[top : top + h, left : left + w]
            # ksize (0, 0): kernel is derived from sigma.
            pixels[top : top + h, left : left + w] = cv2.GaussianBlur(
                roi, (0, 0), sigmaX=blur_sigma, sigmaY=blur_sigma, borderType=cv2.BORDER_REPLICATE
            )
        except cv2.error as e:
            logger.info(
                "Skipping blur region %s: %s",
                region,
                e,
                extra={"event": "region_extraction_skipped"},
            )
            continue
        applied += 1

    logger.debug("Blurred %d of %d regions", applied, len(regions))
    return RasterImage(pixels)
