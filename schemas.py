from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ConversionState(str, Enum):
    """Format Coordinator states. DONE and FAILED are terminal."""

    IDLE = "idle"
    DECODING = "decoding"
    RESAMPLING = "resampling"
    ENCODING = "encoding"
    DONE = "done"
    FAILED = "failed"


class Outcome(str, Enum):
    """How the output container relates to the source.

    STATIC and DOWNGRADED are informational fallbacks, not failures.
    """

    CONVERTED = "converted"  # same container, same animation
    STATIC = "static"  # single-frame WebP kept as a still WebP
    DOWNGRADED = "downgraded"  # animated WebP re-encoded as animated GIF


class UpscaleConfig(BaseModel):
    """Animation parameters for one conversion.

    ``scale`` is not bounded here; the coordinator range-checks it and
    raises InvalidScaleError before decoding.
    """

    scale: int = 2
    loop_count: Optional[int] = Field(
        default=None, ge=0, le=65535,
        description="Times the animation repeats, 0 = forever. "
        "None keeps the source's loop count.",
    )
    preserve_zero_delay: Optional[bool] = Field(
        default=None,
        description="Write 0 ms frames as 0 centiseconds instead of the minimum delay.",
    )


class ProgressEvent(BaseModel):
    """One status update emitted while a conversion advances."""

    stage: ConversionState
    message: str
    current: Optional[int] = None
    total: Optional[int] = None


class UpscaleResult(BaseModel):
    """Internal result passed between coordinator and response formatter."""

    success: bool
    outcome: Outcome
    source_format: str
    format: str
    mime_type: str
    filename: str
    frame_count: int
    width: int
    height: int
    scale: int
    loop_count: Optional[int] = None
    original_size: int
    output_size: int
    output_bytes: bytes = b""
    message: Optional[str] = None


class UpscaleResponse(BaseModel):
    """JSON response when response_format="json"."""

    success: bool
    outcome: Outcome
    source_format: str
    format: str
    mime_type: str
    filename: str
    frame_count: int
    width: int
    height: int
    scale: int
    loop_count: Optional[int] = None
    original_size: int
    output_size: int
    data: str  # base64
    message: Optional[str] = None
    events: list[ProgressEvent] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    """Standard error response."""

    success: bool = False
    error: str
    message: str
    stage: Optional[str] = None
    frame_index: Optional[int] = None


class HealthResponse(BaseModel):
    """GET /health response."""

    status: str = "ok"
    codecs: dict
    version: str
