import threading
import uuid
from pathlib import PurePath
from typing import Optional

from config import settings
from decoders.router import select_decoder
from encoders.router import get_encoder
from exceptions import ConversionCancelledError, MagnifyError
from pipeline.frames import DecodedFrame, ResampledFrame, SourceFile
from pipeline.progress import ProgressListener, ProgressLog
from pipeline.resample import check_output_size, resample, validate_scale
from schemas import ConversionState, Outcome, UpscaleConfig, UpscaleResult
from utils.format_detect import EXTENSIONS, MIME_TYPES, ImageFormat, resolve_declared_format
from utils.logging import get_logger

logger = get_logger("pipeline.coordinator")

_SUCCESS_MESSAGES = {
    Outcome.CONVERTED: "GIF upscaled successfully!",
    Outcome.STATIC: "Static WebP upscaled successfully!",
    Outcome.DOWNGRADED: "Animated WebP upscaled successfully! Saved as animated GIF.",
}


def choose_target(source_format: ImageFormat, frame_count: int) -> tuple[ImageFormat, Outcome]:
    """Pick the output container for a decoded source.

    - GIF → GIF
    - WebP with one frame → static lossless WebP
    - WebP with several frames → animated GIF (no WebP muxer available)
    """
    if source_format == ImageFormat.GIF:
        return ImageFormat.GIF, Outcome.CONVERTED
    if frame_count == 1:
        return ImageFormat.WEBP, Outcome.STATIC
    return ImageFormat.GIF, Outcome.DOWNGRADED


def output_filename(filename: str, fmt: ImageFormat) -> str:
    """``<stem>_upscaled<ext>``, the extension following the output container."""
    stem = PurePath(filename).stem if filename else ""
    return f"{stem or 'animation'}_upscaled{EXTENSIONS[fmt]}"


class Conversion:
    """One decode → resample → encode run.

    States advance IDLE → DECODING → RESAMPLING → ENCODING → DONE, or
    jump to FAILED from wherever an error occurs. A Conversion runs once;
    build a new one for the next request.

    Between frames the run reports progress and honours ``cancel()``.
    Nothing is interrupted mid-frame.
    """

    def __init__(
        self,
        source: SourceFile,
        config: Optional[UpscaleConfig] = None,
        listener: Optional[ProgressListener] = None,
    ):
        self.source = source
        self.config = config or UpscaleConfig(scale=settings.default_scale)
        self.progress = ProgressLog(listener)
        self.state = ConversionState.IDLE
        self.error: Optional[Exception] = None
        self.result: Optional[UpscaleResult] = None
        self.conversion_id = uuid.uuid4().hex[:12]
        self._cancelled = threading.Event()

    def cancel(self) -> None:
        """Request cancellation; takes effect at the next frame boundary."""
        self._cancelled.set()

    def run(self) -> UpscaleResult:
        """Execute the conversion.

        Returns:
            UpscaleResult with the encoded bytes.

        Raises:
            InvalidScaleError, UnsupportedFormatError: Before any decoding.
            InvalidScaleError, ImageTooLargeError: After probing, when the
                output would not fit at this scale.
            CorruptContainerError, EncodeError, ConversionCancelledError:
                From the stage that failed; ``details["stage"]`` names it.
            RuntimeError: If this conversion already ran.
        """
        if self.state != ConversionState.IDLE:
            raise RuntimeError(f"Conversion already {self.state.value}; start a new one")

        try:
            result = self._run()
        except Exception as exc:
            self._fail(exc)
            raise

        self.result = result
        self.state = ConversionState.DONE
        self.progress.emit(ConversionState.DONE, result.message)
        logger.info(
            "Conversion finished",
            extra={
                "conversion_id": self.conversion_id,
                "context": {
                    "outcome": result.outcome.value,
                    "format": result.format,
                    "frames": result.frame_count,
                    "original_size": result.original_size,
                    "output_size": result.output_size,
                },
            },
        )
        return result

    def _run(self) -> UpscaleResult:
        source = self.source
        scale = validate_scale(self.config.scale)
        declared = resolve_declared_format(source.filename, source.media_type)

        logger.info(
            "Conversion started",
            extra={
                "conversion_id": self.conversion_id,
                "context": {
                    "filename": source.filename,
                    "declared_format": declared.value,
                    "size": len(source.data),
                    "scale": scale,
                },
            },
        )

        # --- Decoding ---
        self.state = ConversionState.DECODING
        self.progress.emit(self.state, f"Reading {declared.value.upper()} file...")

        decoder = select_decoder(source.data, declared)
        info = decoder.probe(source.data)
        total = info.frame_count

        target, outcome = choose_target(decoder.format, total)
        encoder = get_encoder(target)
        check_output_size(info.width, info.height, scale, encoder.max_dimension)

        self.progress.emit(self.state, f"Found {total} frames. Processing...", 0, total)

        decoded: list[DecodedFrame] = []
        for frame in decoder.iter_frames(source.data, info):
            self._check_cancelled()
            decoded.append(frame)
            self.progress.emit(
                self.state, f"Decoded frame {frame.index + 1}/{total}", frame.index + 1, total
            )

        if outcome == Outcome.DOWNGRADED:
            logger.warning(
                "Animated WebP will be saved as GIF",
                extra={"conversion_id": self.conversion_id, "context": {"frames": total}},
            )
            self.progress.emit(
                self.state,
                f"Animated WebP ({total} frames) will be saved as an animated GIF.",
            )

        # --- Resampling ---
        self.state = ConversionState.RESAMPLING
        resampled: list[ResampledFrame] = []
        for frame in decoded:
            self._check_cancelled()
            resampled.append(resample(frame, scale))
            self.progress.emit(
                self.state, f"Processing frame {frame.index + 1}/{total}...", frame.index + 1, total
            )
        del decoded

        # --- Encoding ---
        self.state = ConversionState.ENCODING
        self.progress.emit(self.state, f"Encoding upscaled {target.value.upper()}...")

        loop_count = self._loop_count(info.loop_count) if len(resampled) > 1 else None

        def on_encoded(index: int, count: int) -> None:
            self.progress.emit(self.state, f"Encoded frame {index + 1}/{count}", index + 1, count)
            self._check_cancelled()

        output = encoder.encode(
            resampled,
            loop_count=loop_count or 0,
            preserve_zero_delay=self.config.preserve_zero_delay,
            on_frame=on_encoded,
        )

        first = resampled[0]
        return UpscaleResult(
            success=True,
            outcome=outcome,
            source_format=decoder.format.value,
            format=target.value,
            mime_type=MIME_TYPES[target],
            filename=output_filename(source.filename, target),
            frame_count=len(resampled),
            width=first.width,
            height=first.height,
            scale=scale,
            loop_count=loop_count,
            original_size=len(source.data),
            output_size=len(output),
            output_bytes=output,
            message=_SUCCESS_MESSAGES[outcome],
        )

    def _loop_count(self, source_loop: Optional[int]) -> int:
        if self.config.loop_count is not None:
            return self.config.loop_count
        if source_loop is not None:
            return source_loop
        return settings.default_loop_count

    def _check_cancelled(self) -> None:
        if self._cancelled.is_set():
            raise ConversionCancelledError("Conversion cancelled")

    def _fail(self, exc: Exception) -> None:
        stage = self.state.value
        self.error = exc
        self.state = ConversionState.FAILED

        if isinstance(exc, MagnifyError):
            exc.details.setdefault("stage", stage)
            message = exc.message
            logger.warning(
                f"Conversion failed during {stage}: {message}",
                extra={
                    "conversion_id": self.conversion_id,
                    "context": {"error": exc.error_code, **exc.details},
                },
            )
        else:
            message = str(exc) or type(exc).__name__
            logger.exception(
                f"Conversion crashed during {stage}",
                extra={"conversion_id": self.conversion_id},
            )

        self.progress.emit(ConversionState.FAILED, f"Error: {message}")


def upscale(
    source: SourceFile,
    config: Optional[UpscaleConfig] = None,
    listener: Optional[ProgressListener] = None,
) -> UpscaleResult:
    """Run a fresh Conversion and return its result."""
    return Conversion(source, config, listener).run()
