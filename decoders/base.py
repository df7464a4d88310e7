import struct
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Callable, Iterator, Optional

from PIL import Image

from config import settings
from exceptions import CorruptContainerError, ImageTooLargeError
from pipeline.frames import DecodedAnimation, DecodedFrame
from utils.format_detect import ImageFormat
from utils.lzw import LZWError

# Called once per decoded frame with (index, total)
FrameCallback = Callable[[int, int], None]

# Low-level failures that mean "this frame's data is unreadable"
_FRAME_ERRORS = (LZWError, ValueError, OSError, EOFError, struct.error, Image.DecompressionBombError)


@dataclass
class ContainerInfo:
    """Container-level facts gathered before any pixel data is decoded."""

    width: int
    height: int
    frame_count: int
    loop_count: Optional[int] = None


class BaseDecoder(ABC):
    """Abstract base for format-specific container decoders.

    Decoding runs in two phases. ``probe`` walks the container structure
    and counts frames without touching pixel data; ``iter_frames`` then
    produces one fully composed canvas per frame, in display order.
    """

    format: ImageFormat

    @abstractmethod
    def probe(self, data: bytes) -> ContainerInfo:
        """Parse container structure.

        Raises:
            CorruptContainerError: If the structure is malformed.
            ImageTooLargeError: If the canvas exceeds max_canvas_pixels.
        """

    def _check_canvas(self, width: int, height: int) -> None:
        """Refuse canvases over the pixel budget before anything is allocated."""
        if width * height > settings.max_canvas_pixels:
            raise ImageTooLargeError(
                f"{self.format.value.upper()} canvas {width}x{height} exceeds "
                f"{settings.max_canvas_pixels} pixels",
                width=width,
                height=height,
                max_pixels=settings.max_canvas_pixels,
            )

    @abstractmethod
    def _iter_frames(self, data: bytes, info: ContainerInfo) -> Iterator[DecodedFrame]:
        """Yield composed frames for a probed container."""

    def iter_frames(
        self,
        data: bytes,
        info: Optional[ContainerInfo] = None,
    ) -> Iterator[DecodedFrame]:
        """Yield frames one at a time, suspending between frames.

        Single-frame containers yield a frame with duration 0. Any
        low-level failure surfaces as CorruptContainerError carrying the
        index of the frame being decoded.
        """
        if info is None:
            info = self.probe(data)

        index = 0
        try:
            for frame in self._iter_frames(data, info):
                if info.frame_count == 1 and frame.duration_ms:
                    frame = replace(frame, duration_ms=0)
                yield frame
                index += 1
        except _FRAME_ERRORS as e:
            raise CorruptContainerError(
                f"Failed to decode {self.format.value.upper()} frame {index}: {e}",
                frame_index=index,
            ) from e

    def decode(
        self,
        data: bytes,
        on_frame: Optional[FrameCallback] = None,
    ) -> DecodedAnimation:
        """Decode every frame, all-or-nothing.

        Args:
            data: Raw container bytes.
            on_frame: Optional progress callback, called after each frame.

        Returns:
            DecodedAnimation holding every frame.

        Raises:
            CorruptContainerError: If any frame fails; no partial result
                is returned.
        """
        info = self.probe(data)
        frames = []
        for frame in self.iter_frames(data, info):
            frames.append(frame)
            if on_frame is not None:
                on_frame(frame.index, info.frame_count)

        return DecodedAnimation(
            format=self.format,
            width=info.width,
            height=info.height,
            frames=frames,
            loop_count=info.loop_count,
        )
