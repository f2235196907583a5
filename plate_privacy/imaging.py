from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO
from typing import Tuple

import numpy as np
import pillow_heif
from PIL import Image, ImageOps, UnidentifiedImageError

from .errors import DecodeError, EncodeError
from .geometry import FrameTransform

# Allow PIL to open HEIC (iPhone) uploads.
pillow_heif.register_heif_opener()


@dataclass(frozen=True)
class RasterImage:
    """
    Decoded RGB pixels (H x W x 3, uint8).

    The buffer is read-only; every operation that changes pixels returns a
    new RasterImage backed by its own array.
    """

    pixels: np.ndarray

    def __post_init__(self) -> None:
        if self.pixels.ndim != 3 or self.pixels.shape[2] != 3 or self.pixels.dtype != np.uint8:
            raise ValueError(f"expected an HxWx3 uint8 array, got {self.pixels.shape} {self.pixels.dtype}")
        if self.pixels.flags.writeable:
            self.pixels.setflags(write=False)

    @classmethod
    def from_array(cls, pixels: np.ndarray) -> "RasterImage":
        return cls(np.array(pixels, dtype=np.uint8, copy=True))

    @classmethod
    def from_pil(cls, im: Image.Image) -> "RasterImage":
        if im.mode != "RGB":
            im = im.convert("RGB")
        return cls(np.array(im, dtype=np.uint8))

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def channels(self) -> int:
        return int(self.pixels.shape[2])

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height

    def to_pil(self) -> Image.Image:
        return Image.fromarray(np.ascontiguousarray(self.pixels))

    def writable_copy(self) -> np.ndarray:
        return np.array(self.pixels, copy=True)


def _flatten_to_rgb(im: Image.Image) -> Image.Image:
    if im.mode in ("RGBA", "LA") or (im.mode == "P" and "transparency" in im.info):
        rgba = im.convert("RGBA")
        background = Image.new("RGB", rgba.size, (255, 255, 255))
        background.paste(rgba, mask=rgba.getchannel("A"))
        return background
    if im.mode != "RGB":
        return im.convert("RGB")
    return im


def decode_image(data: bytes) -> RasterImage:
    """
    Decode uploaded bytes to RGB pixels with EXIF orientation applied.

    Orientation is normalized before detection so boxes line up with the
    pixels that end up published.
    """
    if not data:
        raise DecodeError("empty image payload")
    try:
        im = Image.open(BytesIO(data))
        im.load()
        im = ImageOps.exif_transpose(im)
        im = _flatten_to_rgb(im)
    except (UnidentifiedImageError, OSError, ValueError, SyntaxError, Image.DecompressionBombError) as e:
        raise DecodeError(f"could not decode image: {e}") from e
    if im.width < 1 or im.height < 1:
        raise DecodeError("decoded image has no pixels")
    return RasterImage.from_pil(im)


def encode_jpeg(image: RasterImage, quality: int = 85) -> bytes:
    try:
        out = BytesIO()
        image.to_pil().save(out, format="JPEG", quality=int(quality), optimize=True)
        return out.getvalue()
    except (OSError, ValueError) as e:
        raise EncodeError(f"could not encode JPEG: {e}") from e


def resize_to_bounds(image: RasterImage, max_size: Tuple[int, int]) -> Tuple[RasterImage, FrameTransform]:
    """
    Shrink to fit inside max_size (never enlarges) and return the transform
    from the input frame to the resized frame.
    """
    max_w, max_h = max_size
    width, height = image.size
    if width <= max_w and height <= max_h:
        return image, FrameTransform(source_size=(width, height), target_size=(width, height))

    ratio = min(max_w / float(width), max_h / float(height))
    new_w = max(1, int(round(width * ratio)))
    new_h = max(1, int(round(height * ratio)))
    resized = image.to_pil().resize((new_w, new_h), Image.Resampling.LANCZOS)
    return RasterImage.from_pil(resized), FrameTransform(source_size=(width, height), target_size=(new_w, new_h))
