from __future__ import annotations

import logging
import threading
import time
from typing import Any, Dict, List, Optional, Tuple

from .anonymize import anonymize
from .config import PipelineConfig, get_pipeline_config
from .detection import PlateDetector, build_detector
from .errors import ProcessingError
from .geometry import DetectionRegion, FrameTransform
from .imaging import RasterImage, decode_image, encode_jpeg, resize_to_bounds
from .watermark import stamp

logger = logging.getLogger(__name__)


class ImagePipeline:
    """
    decode -> resize to bounds -> detect -> blur -> watermark -> JPEG.

    Detection problems only ever cost the blur; decode, blur, watermark and
    encode problems raise ProcessingError for that one photo.
    """

    def __init__(self, config: PipelineConfig, detector: Optional[PlateDetector] = None) -> None:
        self.config = config
        self.detector = detector if detector is not None else build_detector(config)

    def _detect(self, image: RasterImage) -> Tuple[List[DetectionRegion], Dict[str, Any]]:
        try:
            return self.detector.detect_with_meta(image)
        except Exception as e:
            logger.warning(
                "Plate detection failed, publishing without blur: %s",
                e,
                exc_info=True,
                extra={"event": "detection_degraded"},
            )
            return [], {"detect_status": "error", "detect_error": type(e).__name__}

    def _regions_on_working(self, original: RasterImage, working: RasterImage, to_working: FrameTransform):
        """
        Detect and return regions in working-image pixels.

        Detection runs either on the working image (identity mapping) or on the
        full-resolution original, in which case `to_working` maps them down.
        """
        if self.config.detect_on_original and not to_working.is_identity:
            regions, meta = self._detect(original)
            return to_working.map_regions(regions), meta
        regions, meta = self._detect(working)
        return regions, meta

    def process_with_meta(self, raw_bytes: bytes) -> Tuple[bytes, Dict[str, Any]]:
        t0 = time.perf_counter()
        original = decode_image(raw_bytes)
        working, to_working = resize_to_bounds(original, self.config.max_output_size)

        regions, meta = self._regions_on_working(original, working, to_working)
        regions = [r.clamp(working.width, working.height) for r in regions]
        # Remote boxes and boxes mapped down from the original can fall under the minimum.
        regions = [r for r in regions if r.is_at_least(self.config.min_region_px)]

        try:
            blurred = anonymize(working, regions, self.config.blur_sigma)
        except Exception as e:
            raise ProcessingError(f"anonymization failed: {e}", stage="anonymize") from e
        try:
            stamped = stamp(blurred, self.config.watermark_text)
        except Exception as e:
            raise ProcessingError(f"watermark failed: {e}", stage="watermark") from e

        out = encode_jpeg(stamped, self.config.jpeg_quality)

        meta = {
            **meta,
            "status": "blurred" if regions else "no_plates",
            "plates": len(regions),
            "regions": [[r.xmin, r.ymin, r.xmax, r.ymax] for r in regions],
            "original_size": list(original.size),
            "output_size": list(working.size),
            "duration_ms": int((time.perf_counter() - t0) * 1000),
        }
        logger.info(
            "Processed vehicle photo: %s, %d plate(s)",
            meta["status"],
            len(regions),
            extra={"event": "image_processed", "plates": len(regions), "duration_ms": meta["duration_ms"]},
        )
        return out, meta

    def process(self, raw_bytes: bytes) -> bytes:
        out, _ = self.process_with_meta(raw_bytes)
        return out


_PIPELINES: Dict[PipelineConfig, ImagePipeline] = {}
_PIPELINES_LOCK = threading.Lock()


def _pipeline_for(config: PipelineConfig) -> ImagePipeline:
    """One pipeline (and detector) per distinct config for the process lifetime."""
    with _PIPELINES_LOCK:
        pipeline = _PIPELINES.get(config)
        if pipeline is None:
            pipeline = ImagePipeline(config)
            _PIPELINES[config] = pipeline
        return pipeline


def process_with_meta(
    raw_bytes: bytes,
    config: Optional[PipelineConfig] = None,
    *,
    detector: Optional[PlateDetector] = None,
) -> Tuple[bytes, Dict[str, Any]]:
    cfg = config or get_pipeline_config()
    if detector is not None:
        return ImagePipeline(cfg, detector).process_with_meta(raw_bytes)
    return _pipeline_for(cfg).process_with_meta(raw_bytes)


def process(raw_bytes: bytes, config: Optional[PipelineConfig] = None, *, detector: Optional[PlateDetector] = None) -> bytes:
    """
    Anonymize and watermark one uploaded photo; returns the JPEG to publish.

    Raises DecodeError/EncodeError/ProcessingError when the photo itself
    cannot be processed. Detection outages never raise.
    """
    out, _ = process_with_meta(raw_bytes, config, detector=detector)
    return out
