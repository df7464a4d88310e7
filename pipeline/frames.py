from dataclasses import dataclass, field
from typing import Optional

from utils.format_detect import ImageFormat


@dataclass(frozen=True)
class SourceFile:
    """Raw upload plus what the caller says it is."""

    data: bytes
    media_type: str = ""
    filename: str = ""


@dataclass(frozen=True)
class DecodedFrame:
    """One fully composed canvas, RGBA, row-major."""

    pixels: bytes
    width: int
    height: int
    duration_ms: int
    index: int

    def __post_init__(self) -> None:
        if len(self.pixels) != self.width * self.height * 4:
            raise ValueError(
                f"Frame {self.index}: expected {self.width * self.height * 4} bytes, "
                f"got {len(self.pixels)}"
            )


@dataclass(frozen=True)
class ResampledFrame(DecodedFrame):
    """A DecodedFrame after nearest-neighbor magnification by ``scale``."""

    scale: int = 1


@dataclass
class DecodedAnimation:
    """Ordered frame sequence decoded from one container.

    All frames share the canvas size. ``loop_count`` is the source's own
    loop signaling (0 = infinite), or None when the container has none.
    """

    format: ImageFormat
    width: int
    height: int
    frames: list[DecodedFrame] = field(default_factory=list)
    loop_count: Optional[int] = None

    @property
    def frame_count(self) -> int:
        return len(self.frames)

    @property
    def is_animated(self) -> bool:
        return len(self.frames) > 1
