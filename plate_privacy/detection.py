from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

from .config import DetectionMethod, PipelineConfig
from .errors import DetectionError, ModelUnavailable
from .geometry import DetectionRegion
from .imaging import RasterImage, encode_jpeg
from .inference import run_inference
from .model_session import ModelSessionManager, get_session_manager, is_available
from .postprocessing import decode
from .preprocessing import prepare
from .remote_detector import PlateRecognizerClient

logger = logging.getLogger(__name__)

DetectResult = Tuple[List[DetectionRegion], Dict[str, Any]]


class PlateDetector:
    """
    Common contract: regions come back in the pixel space of the image passed in.

    Implementations absorb their own failures and report them through the
    `detect_status` meta key instead of raising.
    """

    method: DetectionMethod

    def detect_with_meta(self, image: RasterImage) -> DetectResult:
        raise NotImplementedError

    def detect(self, image: RasterImage) -> List[DetectionRegion]:
        regions, _ = self.detect_with_meta(image)
        return regions


class NullDetector(PlateDetector):
    method = DetectionMethod.NONE

    def detect_with_meta(self, image: RasterImage) -> DetectResult:
        return [], {"detect_status": "disabled", "detect_method": self.method.value}


class RemoteApiDetector(PlateDetector):
    method = DetectionMethod.REMOTE_API

    def __init__(self, client: PlateRecognizerClient, jpeg_quality: int = 95) -> None:
        self.client = client
        self.jpeg_quality = jpeg_quality

    def detect_with_meta(self, image: RasterImage) -> DetectResult:
        # Upload the exact pixels we will blur so the returned boxes share their frame.
        payload = encode_jpeg(image, self.jpeg_quality)
        regions, meta = self.client.detect_with_meta(payload, image.width, image.height)
        return regions, {**meta, "detect_method": self.method.value}


class LocalModelDetector(PlateDetector):
    """Letterbox -> ONNX inference -> decode/NMS, all in-process."""

    method = DetectionMethod.LOCAL_MODEL

    def __init__(self, sessions: ModelSessionManager, config: PipelineConfig) -> None:
        self.sessions = sessions
        self.config = config

    def detect_with_meta(self, image: RasterImage) -> DetectResult:
        meta: Dict[str, Any] = {"detect_method": self.method.value}
        session = self.sessions.get_session()
        if not is_available(session):
            return [], {**meta, "detect_status": "model_unavailable"}

        cfg = self.config
        try:
            tensor, transform = prepare(image, cfg.model_input_size)
            raw = run_inference(session, tensor)
            regions = decode(
                raw,
                transform,
                cfg.confidence_threshold,
                cfg.iou_threshold,
                margin_ratio=cfg.margin_ratio,
                min_margin_px=cfg.min_margin_px,
                min_region_px=cfg.min_region_px,
            )
        except ModelUnavailable:
            return [], {**meta, "detect_status": "model_unavailable"}
        except DetectionError as e:
            logger.warning("Local plate detection failed: %s", e, extra={"event": "detection_degraded"})
            return [], {**meta, "detect_status": "detect_failed", "detect_error": str(e)}
        except Exception as e:
            logger.warning(
                "Local plate detection failed unexpectedly: %s",
                e,
                exc_info=True,
                extra={"event": "detection_degraded"},
            )
            return [], {**meta, "detect_status": "detect_failed", "detect_error": type(e).__name__}
        return regions, {**meta, "detect_status": "ok"}


class FallbackDetector(PlateDetector):
    """Try `primary`; only when it finds nothing, ask `secondary` once."""

    def __init__(self, primary: PlateDetector, secondary: PlateDetector) -> None:
        self.primary = primary
        self.secondary = secondary
        self.method = primary.method

    def detect_with_meta(self, image: RasterImage) -> DetectResult:
        regions, meta = self.primary.detect_with_meta(image)
        if regions:
            return regions, meta
        logger.info("Local detection found no plates, trying the remote API")
        fb_regions, fb_meta = self.secondary.detect_with_meta(image)
        return fb_regions, {**fb_meta, "fallback_from": meta.get("detect_status")}


def _remote_client(config: PipelineConfig) -> PlateRecognizerClient:
    return PlateRecognizerClient(
        api_token=config.remote_api_token or "",
        endpoint=config.remote_api_url,
        regions=config.remote_regions,
        timeout_s=config.remote_timeout_s,
        min_score=config.remote_min_score,
    )


def build_detector(config: PipelineConfig, sessions: Optional[ModelSessionManager] = None) -> PlateDetector:
    """Map the configured DetectionMethod onto a detector instance."""
    method = config.detection_method
    if method is DetectionMethod.NONE:
        return NullDetector()
    if method is DetectionMethod.REMOTE_API:
        return RemoteApiDetector(_remote_client(config))

    local = LocalModelDetector(sessions or get_session_manager(config.model_path), config)
    if config.remote_fallback and config.has_remote_credentials:
        return FallbackDetector(local, RemoteApiDetector(_remote_client(config)))
    return local
