from typing import Optional

from decoders.base import BaseDecoder, FrameCallback
from decoders.gif import GifDecoder
from decoders.webp import WebpDecoder
from exceptions import CorruptContainerError
from pipeline.frames import DecodedAnimation
from utils.format_detect import ImageFormat, sniff_format
from utils.logging import get_logger

logger = get_logger("decoders")

# Decoder registry, built once at import time
DECODERS = {
    ImageFormat.GIF: GifDecoder(),
    ImageFormat.WEBP: WebpDecoder(),
}


def select_decoder(data: bytes, declared: ImageFormat) -> BaseDecoder:
    """Pick the decoder for the bytes actually supplied.

    The declared format has already passed the GIF/WebP gate; magic bytes
    decide which parser runs. Bytes that are neither format are corrupt
    as far as the declared container is concerned.

    Raises:
        CorruptContainerError: If the bytes are neither GIF nor WebP.
    """
    detected = sniff_format(data)
    if detected is None:
        raise CorruptContainerError(
            f"File is not a valid {declared.value.upper()} container",
            declared_format=declared.value,
        )

    if detected != declared:
        logger.warning(
            f"Declared {declared.value} but content is {detected.value}",
            extra={"context": {"declared": declared.value, "detected": detected.value}},
        )

    return DECODERS[detected]


def decode(
    data: bytes,
    declared: ImageFormat,
    on_frame: Optional[FrameCallback] = None,
) -> DecodedAnimation:
    """Decode an animated image into its full-canvas frame sequence.

    Args:
        data: Raw container bytes.
        declared: Format resolved from the media type / file name.
        on_frame: Optional per-frame progress callback (index, total).

    Returns:
        DecodedAnimation with every frame, in display order.

    Raises:
        CorruptContainerError: If any part of the container is unreadable.
    """
    return select_decoder(data, declared).decode(data, on_frame=on_frame)
