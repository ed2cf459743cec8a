from __future__ import annotations

import logging
import os
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path

from PIL import ExifTags, Image

logger = logging.getLogger(__name__)

ROTATION_FILL = "#000"

# Pillow rotates counter-clockwise for positive angles.
_ROTATIONS: dict[int, int] = {
    3: 180,  # bottom-right: upside down
    6: -90,  # right-top: turn clockwise
    8: 90,  # left-bottom: turn counter-clockwise
}

_ALPHA_FORMATS = frozenset({"PNG", "WEBP", "TIFF", "GIF"})
_SAVE_OPTIONS: dict[str, dict[str, int]] = {
    "JPEG": {"quality": 95},
    "MPO": {"quality": 95},
}

_RATIO_PLACES = Decimal("0.00001")
_WHOLE = Decimal("1")

StrPath = str | os.PathLike[str]


def _round_half_up(value: Decimal, places: Decimal) -> Decimal:
    return value.quantize(places, rounding=ROUND_HALF_UP)


def target_size(width: int, height: int, max_size: int) -> tuple[int, int]:
    """Scale ``width`` x ``height`` so the longer side becomes ``max_size``.

    The aspect ratio is rounded to five decimal places before it is applied,
    and both roundings go half away from zero.
    """
    if width <= 0 or height <= 0:
        raise ValueError(f"Image dimensions must be positive, got {width}x{height}")
    if max_size <= 0:
        raise ValueError(f"max_size must be positive, got {max_size}")

    if width >= height:
        ratio = _round_half_up(Decimal(height) / Decimal(width), _RATIO_PLACES)
        return max_size, int(_round_half_up(max_size * ratio, _WHOLE))

    ratio = _round_half_up(Decimal(width) / Decimal(height), _RATIO_PLACES)
    return int(_round_half_up(max_size * ratio, _WHOLE)), max_size


def _without_metadata(image: Image.Image) -> Image.Image:
    clean = Image.frombytes(image.mode, image.size, image.tobytes())
    if image.mode in ("P", "PA"):
        palette = image.getpalette()
        if palette:
            clean.putpalette(palette)
    if "transparency" in image.info:
        clean.info["transparency"] = image.info["transparency"]
    return clean


def normalize_orientation(path: StrPath | None) -> None:
    """Rotate the image at ``path`` upright and rewrite it without metadata."""
    if not path:
        return

    with Image.open(path) as image:
        image_format = image.format
        orientation = image.getexif().get(ExifTags.Base.Orientation)
        corrected = _without_metadata(image)

    angle = _ROTATIONS.get(orientation)
    try:
        if angle:
            rotated = corrected.rotate(angle, expand=True, fillcolor=ROTATION_FILL)
            corrected.close()
            corrected = rotated
        corrected.save(path, format=image_format, **_SAVE_OPTIONS.get(image_format, {}))
    finally:
        corrected.close()

    logger.debug("Normalized %s (orientation=%s, rotated=%s)", path, orientation, angle or 0)


def format_for_extension(extension: str) -> str | None:
    """Return the Pillow format that writes files with ``extension``, if any."""
    if not extension:
        return None
    image_format = Image.registered_extensions().get(f".{extension.lstrip('.').lower()}")
    if image_format not in Image.SAVE:
        return None
    return image_format


def resize_image(source: StrPath, destination: StrPath, max_size: int) -> tuple[int, int]:
    """Write a proportionally resized copy of ``source`` to ``destination``.

    Returns the size of the written image.
    """
    destination = Path(destination)
    output_format = format_for_extension(destination.suffix)
    if output_format is None:
        raise ValueError(f"Unsupported image extension: {destination.suffix or '<none>'}")
    mode = "RGBA" if output_format in _ALPHA_FORMATS else "RGB"

    with Image.open(source) as image:
        width, height = target_size(image.width, image.height, max_size)
        # Pillow cannot produce a zero-pixel side; keep at least one pixel.
        size = (max(1, width), max(1, height))
        with image.convert(mode) as converted:
            with converted.resize(size, Image.Resampling.LANCZOS) as resized:
                resized.save(
                    destination,
                    format=output_format,
                    **_SAVE_OPTIONS.get(output_format, {}),
                )

    logger.debug("Resized %s -> %s (%dx%d)", source, destination, *size)
    return size


def read_image_size(path: StrPath) -> tuple[int, int]:
    with Image.open(path) as image:
        return image.size
