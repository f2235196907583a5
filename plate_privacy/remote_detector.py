from __future__ import annotations

import base64
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import requests

from .errors import RemoteDetectionError
from .geometry import DetectionRegion
from .logging_utils import redact_secrets

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT_S = 5
# Plate Recognizer boxes are tight; pad before blurring.
BOX_PADDING_PX = 10


class PlateRecognizerClient:
    """
    Plate Recognizer API client returning plate boxes in image pixels.

    Sends the image as base64 JSON to
    https://api.platerecognizer.com/v1/plate-reader/ with a `Token` header.
    Failures never raise: they come back as no boxes plus a status in meta.
    """

    def __init__(
        self,
        *,
        api_token: str,
        endpoint: str = "https://api.platerecognizer.com/v1/plate-reader/",
        regions: Sequence[str] = ("cl",),
        timeout_s: float = 10.0,
        min_score: float = 0.5,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.api_token = (api_token or "").strip()
        self.endpoint = (endpoint or "").strip()
        self.regions = [r for r in regions if r]
        self.timeout_s = float(timeout_s)
        self.min_score = float(min_score)
        self._session = session or requests.Session()

    def is_configured(self) -> bool:
        return bool(self.api_token and self.endpoint)

    def detect_with_meta(
        self, image_bytes: bytes, width: int, height: int
    ) -> Tuple[List[DetectionRegion], Dict[str, Any]]:
        if not self.is_configured():
            return [], {"detect_status": "not_configured"}

        try:
            payload = self._post(image_bytes)
        except RemoteDetectionError as e:
            msg = str(e)
            logger.warning("Plate Recognizer request failed: %s", msg, extra={"event": "detection_degraded"})
            return [], {"detect_status": "detect_failed", "detect_error": msg}

        results = payload.get("results") if isinstance(payload, dict) else None
        if not isinstance(results, list):
            keys = list(payload.keys()) if isinstance(payload, dict) else []
            return [], {"detect_status": "bad_response", "detect_keys": keys}

        regions: List[DetectionRegion] = []
        for r in results:
            if not isinstance(r, dict):
                continue
            try:
                score = float(r.get("score") or 0.0)
                box = r["box"]
                region = DetectionRegion(
                    xmin=int(box["xmin"]) - BOX_PADDING_PX,
                    ymin=int(box["ymin"]) - BOX_PADDING_PX,
                    xmax=int(box["xmax"]) + BOX_PADDING_PX,
                    ymax=int(box["ymax"]) + BOX_PADDING_PX,
                ).clamp(width, height)
            except (KeyError, TypeError, ValueError):
                continue
            if score <= self.min_score or region.width <= 0 or region.height <= 0:
                continue
            regions.append(region)

        return regions, {"detect_status": "ok", "results": len(results)}

    def _post(self, image_bytes: bytes) -> Any:
        try:
            resp = self._session.post(
                self.endpoint,
                json={
                    "upload": base64.b64encode(image_bytes).decode("ascii"),
                    "regions": self.regions,
                    "config": {"mode": "fast"},
                },
                headers={"Authorization": f"Token {self.api_token}"},
                timeout=(CONNECT_TIMEOUT_S, self.timeout_s),
            )
            resp.raise_for_status()
            return resp.json() if resp.content else {}
        except (requests.RequestException, ValueError) as e:
            # The token can appear in exception messages.
            raise RemoteDetectionError(redact_secrets(str(e))) from e

    def detect(self, image_bytes: bytes, width: int, height: int) -> List[DetectionRegion]:
        regions, _ = self.detect_with_meta(image_bytes, width, height)
        return regions
