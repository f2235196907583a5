from __future__ import annotations

import logging
import os
import re
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from .config import PipelineConfig
from .detection import PlateDetector
from .pipeline import process_with_meta

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


class PhotoStorage:
    """Receives the final JPEG bytes and returns where they are published."""

    def save(self, data: bytes, filename: str) -> str:
        raise NotImplementedError


class LocalPhotoStorage(PhotoStorage):
    """Writes under `<root>/<subdir>/` and returns the path relative to root."""

    def __init__(self, root: str, subdir: str = os.path.join("uploads", "car_photos")) -> None:
        self.root = root
        self.subdir = subdir

    def save(self, data: bytes, filename: str) -> str:
        rel = os.path.join(self.subdir, filename).replace("\\", "/")
        abs_path = os.path.join(self.root, rel)
        os.makedirs(os.path.dirname(abs_path), exist_ok=True)
        tmp_path = f"{abs_path}.part"
        try:
            with open(tmp_path, "wb") as out:
                out.write(data)
            os.replace(tmp_path, abs_path)
        except OSError:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise
        return rel


@dataclass
class StoredPhoto:
    rel_path: str
    meta: Dict[str, Any] = field(default_factory=dict)


def processed_filename(original_filename: str) -> str:
    base = os.path.splitext(os.path.basename(original_filename or ""))[0]
    base = _UNSAFE_CHARS.sub("_", base).strip("._")[:64] or "upload"
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S_%f")
    return f"processed_{timestamp}_{uuid.uuid4().hex[:8]}_{base}.jpg"


def process_and_store_image(
    raw_bytes: bytes,
    original_filename: str,
    storage: PhotoStorage,
    config: Optional[PipelineConfig] = None,
    *,
    detector: Optional[PlateDetector] = None,
) -> StoredPhoto:
    """
    Anonymize one upload and hand the result to storage.

    Only the final encoded bytes leave this function; ProcessingError
    propagates and nothing is stored.
    """
    out_bytes, meta = process_with_meta(raw_bytes, config, detector=detector)
    rel_path = storage.save(out_bytes, processed_filename(original_filename))
    logger.info("Stored processed photo %s", rel_path, extra={"event": "photo_stored", "plates": meta.get("plates")})
    return StoredPhoto(rel_path=rel_path, meta=meta)
