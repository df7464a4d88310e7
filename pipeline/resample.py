import math

from config import settings
from exceptions import ImageTooLargeError, InvalidScaleError
from pipeline.frames import DecodedFrame, ResampledFrame


def validate_scale(scale: int) -> int:
    """Reject scale factors outside [min_scale, max_scale].

    Clamping belongs to the caller; the core only accepts or refuses.

    Raises:
        InvalidScaleError: If scale is not an integer in range.
    """
    if isinstance(scale, bool) or not isinstance(scale, int):
        raise InvalidScaleError(
            f"Scale factor must be an integer, got {scale!r}",
            scale=str(scale),
        )
    if not settings.min_scale <= scale <= settings.max_scale:
        raise InvalidScaleError(
            f"Scale factor must be between {settings.min_scale} and {settings.max_scale}, got {scale}",
            scale=scale,
            min_scale=settings.min_scale,
            max_scale=settings.max_scale,
        )
    return scale


def max_scale_for(width: int, height: int, max_dimension: int) -> int:
    """Largest scale whose output fits the container and the pixel budget."""
    by_dimension = max_dimension // max(width, height, 1)
    by_pixels = math.isqrt(settings.max_output_pixels // max(width * height, 1))
    return min(by_dimension, by_pixels, settings.max_scale)


def check_output_size(width: int, height: int, scale: int, max_dimension: int) -> None:
    """Reject a scale whose output would not fit, before any frame is enlarged.

    Raises:
        InvalidScaleError: If a smaller accepted scale would fit; the
            largest one is in ``details["max_scale_for_input"]``.
        ImageTooLargeError: If not even ``min_scale`` fits.
    """
    limit = max_scale_for(width, height, max_dimension)
    if scale <= limit:
        return

    out_width, out_height = width * scale, height * scale
    if limit < settings.min_scale:
        raise ImageTooLargeError(
            f"{width}x{height} is too large to upscale",
            width=width,
            height=height,
            max_dimension=max_dimension,
            max_pixels=settings.max_output_pixels,
        )
    raise InvalidScaleError(
        f"Scale {scale} would produce {out_width}x{out_height}; "
        f"the largest scale for a {width}x{height} image is {limit}",
        scale=scale,
        max_scale_for_input=limit,
        width=width,
        height=height,
    )


def resample(frame: DecodedFrame, scale: int) -> ResampledFrame:
    """Enlarge a frame by pixel replication.

    Output pixel (x, y) is input pixel (x // scale, y // scale), all four
    channels copied verbatim. Each source row is widened once and the
    widened row is repeated ``scale`` times.

    Args:
        frame: Source frame (RGBA).
        scale: Integer magnification factor.

    Returns:
        ResampledFrame of size (width * scale, height * scale).

    Raises:
        InvalidScaleError: If scale is out of range.
    """
    validate_scale(scale)

    stride = frame.width * 4
    src = frame.pixels
    out = bytearray()

    for row_start in range(0, len(src), stride):
        row = src[row_start : row_start + stride]
        wide = b"".join(row[i : i + 4] * scale for i in range(0, stride, 4))
        out += wide * scale

    return ResampledFrame(
        pixels=bytes(out),
        width=frame.width * scale,
        height=frame.height * scale,
        duration_ms=frame.duration_ms,
        index=frame.index,
        scale=scale,
    )
