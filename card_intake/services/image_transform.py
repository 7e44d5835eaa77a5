"""
Avatar image transform pipeline.

Decodes an image from bytes or a file path, applies an optional crop,
resizes it to cover the target box and re-encodes it as PNG. Files Pillow
cannot decode (animated PNG and friends) are passed through untouched.
"""

import asyncio
import io
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Tuple, Union

from PIL import Image, ImageOps, UnidentifiedImageError

logger = logging.getLogger(__name__)

ImageInput = Union[bytes, Path]

# Modes the PNG encoder writes without conversion
_PNG_MODES = {"1", "L", "LA", "I", "I;16", "P", "RGB", "RGBA"}


class ImageDecodeError(Exception):
    """Image bytes could not be decoded and no raw fallback applies."""
    pass


@dataclass(frozen=True)
class CropSpec:
    """Crop rectangle in source pixels, plus whether to resize to the standard avatar box."""
    x: int
    y: int
    width: int
    height: int
    want_resize: bool = False

    @property
    def box(self) -> Tuple[int, int, int, int]:
        return (self.x, self.y, self.x + self.width, self.y + self.height)

    @property
    def has_area(self) -> bool:
        return self.width > 0 and self.height > 0


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_crop(raw: Union[str, dict, None]) -> Optional[CropSpec]:
    """
    Build a CropSpec from a JSON string or dict.

    Returns None unless x, y, width and height are all present, numeric
    and non-negative. Partial crops are never produced.
    """
    if raw is None:
        return None

    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            logger.debug(f"Ignoring unparseable crop: {raw!r}")
            return None

    if not isinstance(raw, dict):
        return None

    geometry = [raw.get(key) for key in ("x", "y", "width", "height")]
    if not all(_is_number(value) for value in geometry):
        return None
    if any(value < 0 for value in geometry):
        return None

    x, y, width, height = (int(round(value)) for value in geometry)
    return CropSpec(
        x=x,
        y=y,
        width=width,
        height=height,
        want_resize=bool(raw.get("want_resize", False)),
    )


def _decode(source: ImageInput) -> Image.Image:
    if isinstance(source, Path):
        image = Image.open(source)
    else:
        image = Image.open(io.BytesIO(source))
    # Image.open is lazy; force the decoder so corrupt data fails here
    image.load()
    return image


def _target_box(
    image: Image.Image,
    crop: Optional[CropSpec],
    avatar_size: Tuple[int, int],
) -> Tuple[Image.Image, Tuple[int, int]]:
    if crop is None or not crop.has_area:
        return image, image.size

    cropped = image.crop(crop.box)
    if crop.want_resize:
        return cropped, avatar_size
    return cropped, (crop.width, crop.height)


def _render(
    image: Image.Image,
    crop: Optional[CropSpec],
    avatar_size: Tuple[int, int],
) -> bytes:
    image, target = _target_box(image, crop, avatar_size)

    if image.size != target:
        # Cover: scale to fill the box, trim the overflow evenly from both edges
        image = ImageOps.fit(
            image,
            target,
            method=Image.Resampling.LANCZOS,
            centering=(0.5, 0.5),
        )

    if image.mode not in _PNG_MODES:
        image = image.convert("RGBA")

    output = io.BytesIO()
    image.save(output, format="PNG")
    return output.getvalue()


def _transform_sync(
    source: ImageInput,
    crop: Optional[CropSpec],
    avatar_size: Tuple[int, int],
) -> bytes:
    try:
        image = _decode(source)
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as e:
        if isinstance(source, Path):
            logger.info(f"Cannot decode {source.name} ({e}), storing raw file bytes")
            return source.read_bytes()
        raise ImageDecodeError(f"Image data could not be decoded: {e}") from e

    try:
        return _render(image, crop, avatar_size)
    finally:
        image.close()


async def transform_image(
    source: ImageInput,
    crop: Optional[CropSpec] = None,
    avatar_size: Tuple[int, int] = (512, 768),
) -> bytes:
    """
    Crop, cover-resize and re-encode an image as PNG.

    Args:
        source: Raw image bytes or a path to an image file
        crop: Optional crop rectangle; when absent the image keeps its size
        avatar_size: (width, height) used when the crop asks for a resize

    Returns:
        PNG bytes, or the file's raw bytes if a path could not be decoded

    Raises:
        ImageDecodeError: In-memory bytes could not be decoded
    """
    return await asyncio.to_thread(_transform_sync, source, crop, avatar_size)
