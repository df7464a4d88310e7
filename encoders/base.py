from abc import ABC, abstractmethod
from typing import Callable, Optional, Sequence

from exceptions import EncodeError
from pipeline.frames import ResampledFrame
from utils.format_detect import ImageFormat

# Called once per encoded frame with (index, total)
EncodeCallback = Callable[[int, int], None]


class BaseEncoder(ABC):
    """Abstract base for format-specific encoders."""

    format: ImageFormat
    # Largest width/height the container can describe
    max_dimension: int

    @abstractmethod
    def encode(
        self,
        frames: Sequence[ResampledFrame],
        loop_count: int = 0,
        preserve_zero_delay: Optional[bool] = None,
        on_frame: Optional[EncodeCallback] = None,
    ) -> bytes:
        """Serialize frames.

        Args:
            frames: Frames in display order, all the same size.
            loop_count: Times to repeat, 0 = forever (animated output only).
            preserve_zero_delay: Keep 0 ms frames at 0 centiseconds
                instead of the minimum delay. None = settings default.
            on_frame: Optional progress callback, called after each frame.

        Returns:
            Encoded file bytes.
        """

    def _validate(self, frames: Sequence[ResampledFrame]) -> None:
        """Reject empty or inconsistent frame sets.

        Raises:
            EncodeError: If there are no frames, sizes differ, or the
                canvas is too large for the container.
        """
        if not frames:
            raise EncodeError(f"No frames to encode as {self.format.value.upper()}")

        width, height = frames[0].width, frames[0].height
        for frame in frames[1:]:
            if (frame.width, frame.height) != (width, height):
                raise EncodeError(
                    f"Frame {frame.index} is {frame.width}x{frame.height}, "
                    f"expected {width}x{height}",
                    frame_index=frame.index,
                )

        if width > self.max_dimension or height > self.max_dimension:
            raise EncodeError(
                f"{width}x{height} exceeds the {self.format.value.upper()} "
                f"limit of {self.max_dimension} pixels per side",
                width=width,
                height=height,
            )
