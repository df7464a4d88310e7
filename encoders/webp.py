import io
from typing import Optional, Sequence

from PIL import Image

from config import settings
from encoders.base import BaseEncoder, EncodeCallback
from exceptions import EncodeError
from pipeline.frames import ResampledFrame
from utils.format_detect import ImageFormat


class WebpEncoder(BaseEncoder):
    """Static lossless WebP via Pillow.

    Only single-frame output is produced; animated WebP sources are
    converted to GIF upstream.
    """

    format = ImageFormat.WEBP
    max_dimension = 16383

    def encode(
        self,
        frames: Sequence[ResampledFrame],
        loop_count: int = 0,
        preserve_zero_delay: Optional[bool] = None,
        on_frame: Optional[EncodeCallback] = None,
    ) -> bytes:
        self._validate(frames)
        if len(frames) != 1:
            raise EncodeError(
                "Static WebP output takes exactly one frame",
                frame_count=len(frames),
            )

        frame = frames[0]
        img = Image.frombytes("RGBA", (frame.width, frame.height), frame.pixels)
        output = io.BytesIO()
        img.save(
            output,
            format="WEBP",
            lossless=True,
            quality=100,
            method=settings.webp_method,
            exact=True,  # keep RGB under fully transparent pixels
        )
        if on_frame is not None:
            on_frame(0, 1)
        return output.getvalue()
