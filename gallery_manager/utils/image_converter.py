"""
Image conversion utility used by local version transforms.
Resizes, crops and transcodes images with Pillow.
"""
import io
import logging
from typing import Optional, Tuple
from PIL import Image, ImageOps, UnidentifiedImageError

logger = logging.getLogger(__name__)

# Conversion settings
DEFAULT_QUALITY = 85  # Balance between quality and file size (0-100)

# Pillow format names for the gallery file extensions
FORMATS = {
    "jpg": "JPEG",
    "jpeg": "JPEG",
    "png": "PNG",
    "webp": "WEBP",
    "gif": "GIF",
}


class ImageConversionError(Exception):
    """Raised when Pillow cannot read or write an image."""


def format_for_extension(extension: str) -> str:
    """
    Map a file extension to a Pillow format name.

    Raises:
        ImageConversionError: If the extension is not supported
    """
    try:
        return FORMATS[extension.lower().lstrip(".")]
    except KeyError:
        raise ImageConversionError(f"Unsupported image extension: {extension}")


def convert_image(
    image_bytes: bytes,
    image_format: str = "JPEG",
    quality: int = DEFAULT_QUALITY,
    size: Optional[Tuple[int, int]] = None,
    crop: bool = False,
) -> bytes:
    """
    Re-encode image bytes, optionally resizing them.

    EXIF orientation is applied and metadata is dropped, since only pixel data
    is written back.

    Args:
        image_bytes: Source image file bytes
        image_format: Pillow output format (JPEG, PNG, WEBP, ...)
        quality: Output quality for lossy formats (0-100)
        size: Optional (width, height) bounding box
        crop: If True, fill ``size`` exactly and crop the overflow;
              otherwise fit inside it keeping the aspect ratio

    Returns:
        bytes: Encoded image

    Raises:
        ImageConversionError: If the image cannot be decoded or encoded
    """
    try:
        image = Image.open(io.BytesIO(image_bytes))
        image = ImageOps.exif_transpose(image)

        # JPEG has no alpha channel
        if image_format == "JPEG" and image.mode not in ("RGB", "L"):
            image = image.convert("RGB")
        elif image.mode == "P":
            image = image.convert("RGBA")

        if size:
            if crop:
                image = ImageOps.fit(image, size, Image.Resampling.LANCZOS)
            else:
                image.thumbnail(size, Image.Resampling.LANCZOS)

        buffer = io.BytesIO()
        save_kwargs = {"format": image_format}
        if image_format in ("JPEG", "WEBP"):
            save_kwargs["quality"] = quality
        image.save(buffer, **save_kwargs)
        converted = buffer.getvalue()

        logger.debug(
            f"Converted image to {image_format} {image.size[0]}x{image.size[1]}: "
            f"{len(image_bytes):,} bytes -> {len(converted):,} bytes"
        )
        return converted

    except UnidentifiedImageError as e:
        raise ImageConversionError(f"Cannot identify image format: {str(e)}") from e
    except (OSError, ValueError) as e:
        raise ImageConversionError(f"Error converting image: {str(e)}") from e


def get_image_info(image_bytes: bytes) -> Optional[dict]:
    """
    Get basic information about an image.

    Returns:
        dict: Image information (format, size, mode) or None if unreadable
    """
    try:
        image = Image.open(io.BytesIO(image_bytes))
        return {
            'format': image.format,
            'size': image.size,
            'mode': image.mode,
            'bytes': len(image_bytes)
        }
    except (UnidentifiedImageError, OSError) as e:
        logger.debug(f"Error getting image info: {str(e)}")
        return None
