import os
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, Optional, Tuple

from dotenv import load_dotenv

load_dotenv()

DEFAULT_MODEL_PATH = os.path.join("models", "license-plate-detection.onnx")
DEFAULT_REMOTE_URL = "https://api.platerecognizer.com/v1/plate-reader/"
DEFAULT_WATERMARK = "AutoExplora.cl"

_TRUE_VALUES = ("1", "true", "yes", "y", "on")
_FALSE_VALUES = ("0", "false", "no", "n", "off")


class DetectionMethod(str, Enum):
    """Closed set of detection backends; values are the PLATE_DETECTION_METHOD strings."""

    NONE = "none"
    REMOTE_API = "plate-recognizer"
    LOCAL_MODEL = "yolo"


def resolve_detection_method(raw: Optional[str], remote_api_token: Optional[str]) -> DetectionMethod:
    """
    Pick the detection backend.

    An explicit PLATE_DETECTION_METHOD always wins. When unset, a configured
    remote API token selects REMOTE_API; otherwise LOCAL_MODEL.
    """
    value = (raw or "").strip().lower()
    if value:
        try:
            return DetectionMethod(value)
        except ValueError:
            valid = ", ".join(m.value for m in DetectionMethod)
            raise ValueError(f"Unknown PLATE_DETECTION_METHOD {raw!r} (expected one of: {valid})")
    if (remote_api_token or "").strip():
        return DetectionMethod.REMOTE_API
    return DetectionMethod.LOCAL_MODEL


def _env_str(env: Mapping[str, str], key: str, default: str) -> str:
    value = (env.get(key) or "").strip()
    return value or default


def _env_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = (env.get(key) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{key} must be a number, got {raw!r}")


def _env_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = (env.get(key) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {raw!r}")


def _env_flag(env: Mapping[str, str], key: str, default: bool) -> bool:
    raw = (env.get(key) or "").strip().lower()
    if not raw:
        return default
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    raise ValueError(f"{key} must be a boolean flag, got {raw!r}")


@dataclass(frozen=True)
class PipelineConfig:
    """
    Process-wide settings for the photo pipeline.

    Resolved once (see `get_pipeline_config()`) and never mutated afterwards.
    """

    detection_method: DetectionMethod = DetectionMethod.LOCAL_MODEL
    confidence_threshold: float = 0.25
    iou_threshold: float = 0.45
    max_output_size: Tuple[int, int] = (1920, 1080)
    jpeg_quality: int = 85

    # Local model
    model_path: str = DEFAULT_MODEL_PATH
    model_input_size: int = 640

    # Anonymization
    blur_sigma: float = 20.0
    margin_ratio: float = 0.10
    min_margin_px: int = 5
    min_region_px: int = 5
    detect_on_original: bool = False

    watermark_text: str = DEFAULT_WATERMARK

    # Remote API (Plate Recognizer)
    remote_api_token: Optional[str] = field(default=None, repr=False)
    remote_api_url: str = DEFAULT_REMOTE_URL
    remote_regions: Tuple[str, ...] = ("cl",)
    remote_timeout_s: float = 10.0
    remote_min_score: float = 0.5
    remote_fallback: bool = True

    def __post_init__(self) -> None:
        if not isinstance(self.detection_method, DetectionMethod):
            object.__setattr__(self, "detection_method", DetectionMethod(self.detection_method))
        for name in ("confidence_threshold", "iou_threshold", "remote_min_score"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be within [0, 1], got {value}")
        max_w, max_h = self.max_output_size
        if max_w <= 0 or max_h <= 0:
            raise ValueError(f"max_output_size must be positive, got {self.max_output_size}")
        if not 1 <= self.jpeg_quality <= 100:
            raise ValueError(f"jpeg_quality must be within [1, 100], got {self.jpeg_quality}")
        if self.model_input_size <= 0:
            raise ValueError("model_input_size must be positive")
        if self.blur_sigma <= 0:
            raise ValueError("blur_sigma must be positive")
        if self.margin_ratio < 0 or self.min_margin_px < 0 or self.min_region_px < 1:
            raise ValueError("margin_ratio/min_margin_px must be >= 0 and min_region_px >= 1")
        if self.remote_timeout_s <= 0:
            raise ValueError("remote_timeout_s must be positive")

    @property
    def has_remote_credentials(self) -> bool:
        return bool((self.remote_api_token or "").strip())

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "PipelineConfig":
        env = environ if environ is not None else os.environ
        token = (env.get("PLATE_RECOGNIZER_API_TOKEN") or "").strip() or None
        regions = tuple(
            r.strip().lower()
            for r in _env_str(env, "PLATE_RECOGNIZER_REGIONS", "cl").split(",")
            if r.strip()
        )
        return cls(
            detection_method=resolve_detection_method(env.get("PLATE_DETECTION_METHOD"), token),
            confidence_threshold=_env_float(env, "PLATE_CONFIDENCE_THRESHOLD", 0.25),
            iou_threshold=_env_float(env, "PLATE_IOU_THRESHOLD", 0.45),
            max_output_size=(
                _env_int(env, "UPLOAD_IMAGE_MAX_WIDTH", 1920),
                _env_int(env, "UPLOAD_IMAGE_MAX_HEIGHT", 1080),
            ),
            jpeg_quality=_env_int(env, "UPLOAD_IMAGE_JPEG_QUALITY", 85),
            model_path=_env_str(env, "PLATE_MODEL_PATH", DEFAULT_MODEL_PATH),
            model_input_size=_env_int(env, "PLATE_MODEL_INPUT_SIZE", 640),
            blur_sigma=_env_float(env, "PLATE_BLUR_SIGMA", 20.0),
            margin_ratio=_env_float(env, "PLATE_BLUR_EXPAND", 0.10),
            min_margin_px=_env_int(env, "PLATE_BLUR_MIN_MARGIN", 5),
            min_region_px=_env_int(env, "PLATE_MIN_REGION", 5),
            detect_on_original=_env_flag(env, "PLATE_DETECT_ON_ORIGINAL", False),
            watermark_text=env.get("WATERMARK_TEXT", DEFAULT_WATERMARK),
            remote_api_token=token,
            remote_api_url=_env_str(env, "PLATE_RECOGNIZER_URL", DEFAULT_REMOTE_URL),
            remote_regions=regions,
            remote_timeout_s=_env_float(env, "PLATE_RECOGNIZER_TIMEOUT_S", 10.0),
            remote_min_score=_env_float(env, "PLATE_RECOGNIZER_MIN_SCORE", 0.5),
            remote_fallback=_env_flag(env, "PLATE_DETECTION_REMOTE_FALLBACK", True),
        )


_CONFIG_SINGLETON: Optional[PipelineConfig] = None
_CONFIG_LOCK = threading.Lock()


def get_pipeline_config() -> PipelineConfig:
    """Resolve PipelineConfig from the environment once per process."""
    global _CONFIG_SINGLETON
    if _CONFIG_SINGLETON is not None:
        return _CONFIG_SINGLETON
    with _CONFIG_LOCK:
        if _CONFIG_SINGLETON is None:
            _CONFIG_SINGLETON = PipelineConfig.from_env()
    return _CONFIG_SINGLETON
