from enum import Enum
from pathlib import PurePath
from typing import Optional

from exceptions import UnsupportedFormatError


class ImageFormat(str, Enum):
    GIF = "gif"
    WEBP = "webp"


# MIME type mapping
MIME_TYPES = {
    ImageFormat.GIF: "image/gif",
    ImageFormat.WEBP: "image/webp",
}

# File extension mapping (lowercase, with leading dot)
EXTENSIONS = {
    ImageFormat.GIF: ".gif",
    ImageFormat.WEBP: ".webp",
}

_BY_MIME = {mime: fmt for fmt, mime in MIME_TYPES.items()}
_BY_EXTENSION = {ext: fmt for fmt, ext in EXTENSIONS.items()}


def format_from_extension(filename: Optional[str]) -> Optional[ImageFormat]:
    """Map a file name's extension (case-insensitive) to an ImageFormat."""
    if not filename:
        return None
    return _BY_EXTENSION.get(PurePath(filename).suffix.lower())


def format_from_media_type(media_type: Optional[str]) -> Optional[ImageFormat]:
    """Map a media type (case-insensitive, parameters ignored) to an ImageFormat."""
    if not media_type:
        return None
    essence = media_type.split(";", 1)[0].strip().lower()
    return _BY_MIME.get(essence)


def resolve_declared_format(filename: Optional[str], media_type: Optional[str]) -> ImageFormat:
    """Resolve the declared format of an upload.

    Either a matching extension or a matching media type is enough.
    When both match but disagree, the extension wins.

    Args:
        filename: Original file name (may be empty).
        media_type: Advertised Content-Type (may be empty).

    Returns:
        ImageFormat enum value.

    Raises:
        UnsupportedFormatError: If neither names GIF or WebP.
    """
    by_extension = format_from_extension(filename)
    if by_extension is not None:
        return by_extension

    by_media_type = format_from_media_type(media_type)
    if by_media_type is not None:
        return by_media_type

    raise UnsupportedFormatError(
        "Please select a valid GIF or WebP file.",
        filename=filename or "",
        media_type=media_type or "",
    )


def sniff_format(data: bytes) -> Optional[ImageFormat]:
    """Detect GIF or WebP from magic bytes.

    Args:
        data: Raw image bytes (at least the first 12 bytes needed).

    Returns:
        ImageFormat enum value, or None if the bytes are neither.
    """
    # GIF: GIF87a or GIF89a
    if data[:6] in (b"GIF87a", b"GIF89a"):
        return ImageFormat.GIF

    # WebP: RIFF....WEBP
    if data[:4] == b"RIFF" and len(data) >= 12 and data[8:12] == b"WEBP":
        return ImageFormat.WEBP

    return None
