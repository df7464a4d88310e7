from config import settings
from exceptions import FileTooLargeError
from pipeline.frames import SourceFile
from utils.format_detect import ImageFormat, resolve_declared_format


def validate_upload(source: SourceFile) -> ImageFormat:
    """Validate file size and declared format before any decoding.

    Args:
        source: Uploaded bytes with their file name and media type.

    Returns:
        Declared ImageFormat.

    Raises:
        FileTooLargeError: If file exceeds max_file_size_mb.
        UnsupportedFormatError: If neither the extension nor the media
            type names GIF or WebP.
    """
    if len(source.data) > settings.max_file_size_bytes:
        raise FileTooLargeError(
            f"File size {len(source.data)} bytes exceeds limit of {settings.max_file_size_mb} MB",
            file_size=len(source.data),
            limit=settings.max_file_size_bytes,
        )

    return resolve_declared_format(source.filename, source.media_type)
