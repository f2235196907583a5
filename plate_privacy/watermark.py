from __future__ import annotations

from functools import lru_cache

from PIL import Image, ImageDraw, ImageFilter, ImageFont

from .imaging import RasterImage

# Bold sans faces commonly present on Linux/macOS/Windows hosts.
_FONT_CANDIDATES = (
    "DejaVuSans-Bold.ttf",
    "LiberationSans-Bold.ttf",
    "Arial Bold.ttf",
    "arialbd.ttf",
)

TEXT_OPACITY = 0.7
SHADOW_OPACITY = 0.5
SHADOW_OFFSET = 1
SHADOW_BLUR = 2


@lru_cache(maxsize=32)
def _load_font(size: int) -> ImageFont.ImageFont:
    for name in _FONT_CANDIDATES:
        try:
            return ImageFont.truetype(name, size)
        except OSError:
            continue
    return ImageFont.load_default(size=size)


def watermark_layout(width: int) -> tuple:
    """Font size and edge padding for an image `width` pixels wide."""
    font_size = max(16, width // 60)
    padding = max(1, width // 80)
    return font_size, padding


def stamp(image: RasterImage, text: str) -> RasterImage:
    """
    Draw `text` bottom-right in semi-transparent white over a soft shadow.

    Size and padding follow the image width so the mark reads the same at
    any resolution.
    """
    if not text or not text.strip():
        return image

    width, height = image.size
    font_size, padding = watermark_layout(width)
    font = _load_font(font_size)
    anchor_xy = (width - padding, height - padding)

    base = image.to_pil().convert("RGBA")

    shadow = Image.new("RGBA", base.size, (0, 0, 0, 0))
    ImageDraw.Draw(shadow).text(
        (anchor_xy[0] + SHADOW_OFFSET, anchor_xy[1] + SHADOW_OFFSET),
        text,
        font=font,
        fill=(0, 0, 0, int(255 * SHADOW_OPACITY)),
        anchor="rd",
    )
    shadow = shadow.filter(ImageFilter.GaussianBlur(SHADOW_BLUR))

    mark = Image.new("RGBA", base.size, (0, 0, 0, 0))
    ImageDraw.Draw(mark).text(
        anchor_xy,
        text,
        font=font,
        fill=(255, 255, 255, int(255 * TEXT_OPACITY)),
        anchor="rd",
    )

    out = Image.alpha_composite(Image.alpha_composite(base, shadow), mark)
    return RasterImage.from_pil(out.convert("RGB"))
