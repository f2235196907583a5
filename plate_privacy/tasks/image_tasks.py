from __future__ import annotations

import logging
import os
from typing import Optional

from celery import shared_task

from ..config import PipelineConfig, get_pipeline_config
from ..detection import PlateDetector
from ..errors import ProcessingError
from ..media_processing import LocalPhotoStorage, process_and_store_image

logger = logging.getLogger(__name__)


def _process_image_path(
    *,
    temp_abs: str,
    original_filename: str,
    output_root: str,
    config: Optional[PipelineConfig] = None,
    detector: Optional[PlateDetector] = None,
) -> dict:
    """
    Process an image already saved to disk at temp_abs.
    Returns {ok, rel_path, plates} or {ok: False, error}.
    """
    with open(temp_abs, "rb") as fp:
        raw_bytes = fp.read()

    try:
        stored = process_and_store_image(
            raw_bytes,
            original_filename,
            LocalPhotoStorage(output_root),
            config or get_pipeline_config(),
            detector=detector,
        )
    except ProcessingError as e:
        logger.warning(
            "Rejected photo %s at stage %s: %s",
            original_filename,
            e.stage,
            e,
            extra={"event": "photo_rejected", "stage": e.stage},
        )
        return {"ok": False, "error": e.public_message}

    return {"ok": True, "rel_path": stored.rel_path, "plates": stored.meta.get("plates", 0)}


@shared_task(bind=True, name="plate_privacy.process_vehicle_photo")
def process_vehicle_photo(self, temp_abs: str, original_filename: str, output_root: str = ""):
    """
    Celery task: anonymize a photo saved at temp_abs and store it under output_root.

    The temp file is always removed.
    """
    root = output_root or os.environ.get("PHOTO_OUTPUT_ROOT") or "static"
    try:
        return _process_image_path(temp_abs=temp_abs, original_filename=original_filename, output_root=root)
    finally:
        try:
            if temp_abs and os.path.isfile(temp_abs):
                os.remove(temp_abs)
        except OSError:
            logger.warning("Could not remove temp upload %s", temp_abs)
