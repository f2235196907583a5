from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import cv2
import numpy as np

from .imaging import RasterImage

MODEL_INPUT_SIZE = 640

# Letterbox fill the YOLO family is trained against (RGB 114, 114, 114).
LETTERBOX_FILL = (114, 114, 114)


@dataclass(frozen=True)
class LetterboxTransform:
    """Everything needed to map model-space boxes back onto the source image."""

    scale: float
    pad_x: int
    pad_y: int
    original_width: int
    original_height: int


def letterbox(image: RasterImage, target_size: int = MODEL_INPUT_SIZE) -> Tuple[np.ndarray, LetterboxTransform]:
    """
    Fit `image` inside a target_size square, keeping aspect ratio.

    Padding is split with floor on the left/top side, so an odd remainder
    puts the extra pixel on the right/bottom.
    """
    width, height = image.size
    scale = min(target_size / float(width), target_size / float(height))
    new_w = min(target_size, max(1, int(round(width * scale))))
    new_h = min(target_size, max(1, int(round(height * scale))))
    pad_x = (target_size - new_w) // 2
    pad_y = (target_size - new_h) // 2

    resized = cv2.resize(image.pixels, (new_w, new_h), interpolation=cv2.INTER_LINEAR)
    canvas = np.full((target_size, target_size, 3), LETTERBOX_FILL, dtype=np.uint8)
    canvas[pad_y : pad_y + new_h, pad_x : pad_x + new_w] = resized

    transform = LetterboxTransform(
        scale=scale,
        pad_x=pad_x,
        pad_y=pad_y,
        original_width=width,
        original_height=height,
    )
    return canvas, transform


def prepare(image: RasterImage, target_size: int = MODEL_INPUT_SIZE) -> Tuple[np.ndarray, LetterboxTransform]:
    """
    Build the 1x3xSxS float32 input tensor (RGB planes, values in [0, 1]).
    """
    canvas, transform = letterbox(image, target_size)
    tensor = canvas.astype(np.float32) / 255.0
    # HWC -> CHW, then add the batch axis.
    tensor = np.ascontiguousarray(tensor.transpose(2, 0, 1)[np.newaxis, ...])
    return tensor, transform
