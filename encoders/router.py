from encoders.base import BaseEncoder
from encoders.gif import GifEncoder
from encoders.webp import WebpEncoder
from utils.format_detect import ImageFormat


def get_encoder(fmt: ImageFormat) -> BaseEncoder:
    """Build the encoder for an output container.

    Encoders are built per call so a settings change (quantize method)
    applies to the next conversion.
    """
    if fmt == ImageFormat.GIF:
        return GifEncoder()
    return WebpEncoder()
