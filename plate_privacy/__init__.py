"""
License-plate anonymization for vehicle photos.

Uploaded photos go through `process()`: resize to bounds, detect plates,
blur them, stamp the watermark and encode the JPEG that gets published.
"""

from .config import DetectionMethod, PipelineConfig, get_pipeline_config
from .errors import DecodeError, EncodeError, ProcessingError
from .pipeline import ImagePipeline, process, process_with_meta

__all__ = [
    "DecodeError",
    "DetectionMethod",
    "EncodeError",
    "ImagePipeline",
    "PipelineConfig",
    "ProcessingError",
    "get_pipeline_config",
    "process",
    "process_with_meta",
]
