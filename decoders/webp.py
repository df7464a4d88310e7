import io
import struct
from dataclasses import dataclass, field
from typing import Iterator, Optional

from PIL import Image

from decoders.base import BaseDecoder, ContainerInfo
from exceptions import CorruptContainerError, ImageTooLargeError
from pipeline.frames import DecodedFrame
from utils.format_detect import ImageFormat

# VP8X feature flags
_FLAG_ANIMATION = 0x02
_FLAG_ALPHA = 0x10

# ANMF flags
_ANMF_DISPOSE_BACKGROUND = 0x01
_ANMF_NO_BLEND = 0x02

_BITSTREAM_CHUNKS = (b"VP8 ", b"VP8L")


@dataclass
class WebpFrame:
    """One ANMF chunk: placement, timing and its embedded bitstream."""

    x: int
    y: int
    width: int
    height: int
    duration_ms: int
    blend: bool
    dispose: bool
    bitstream: bytes  # standalone RIFF/WEBP file holding just this frame


@dataclass
class WebpContainer(ContainerInfo):
    """Parsed WebP structure. ``frames`` is empty for still images."""

    animated: bool = False
    frames: list[WebpFrame] = field(default_factory=list)


class WebpDecoder(BaseDecoder):
    """WebP decoder for simple (VP8/VP8L), extended and animated files.

    The RIFF container and animation chunks are parsed here; each frame's
    VP8/VP8L bitstream is decoded by Pillow (libwebp). Animated frames are
    composed on a transparent canvas: alpha-blended unless the frame says
    otherwise, and cleared to transparent when it asks to be disposed.
    """

    format = ImageFormat.WEBP

    def probe(self, data: bytes) -> WebpContainer:
        chunks = _read_chunks(data)
        if not chunks:
            raise CorruptContainerError("WebP file has no chunks")

        first_type, first_payload = chunks[0]

        if first_type in _BITSTREAM_CHUNKS:
            width, height = _still_size(data)
            self._check_canvas(width, height)
            return WebpContainer(width=width, height=height, frame_count=1)

        if first_type != b"VP8X":
            raise CorruptContainerError(
                f"Unexpected first WebP chunk {first_type!r}",
                chunk=first_type.decode("latin-1"),
            )

        if len(first_payload) < 10:
            raise CorruptContainerError("VP8X chunk is too short")

        flags = first_payload[0]
        width = 1 + _u24(first_payload, 4)
        height = 1 + _u24(first_payload, 7)
        self._check_canvas(width, height)

        if not flags & _FLAG_ANIMATION:
            still_width, still_height = _still_size(data)
            if (still_width, still_height) != (width, height):
                raise CorruptContainerError(
                    "VP8X canvas size does not match the image",
                    canvas=f"{width}x{height}",
                    image=f"{still_width}x{still_height}",
                )
            return WebpContainer(width=width, height=height, frame_count=1)

        loop_count = None
        frames: list[WebpFrame] = []
        for chunk_type, payload in chunks[1:]:
            if chunk_type == b"ANIM":
                if len(payload) < 6:
                    raise CorruptContainerError("ANIM chunk is too short")
                loop_count = payload[4] | (payload[5] << 8)
            elif chunk_type == b"ANMF":
                frames.append(_parse_frame(payload, width, height, len(frames)))

        if not frames:
            raise CorruptContainerError("Animated WebP contains no frames", frame_index=0)

        return WebpContainer(
            width=width,
            height=height,
            frame_count=len(frames),
            loop_count=loop_count,
            animated=True,
            frames=frames,
        )

    def _iter_frames(self, data: bytes, info: WebpContainer) -> Iterator[DecodedFrame]:
        if not info.animated:
            image = _open_rgba(data)
            yield DecodedFrame(
                pixels=image.tobytes(),
                width=info.width,
                height=info.height,
                duration_ms=0,
                index=0,
            )
            return

        canvas = Image.new("RGBA", (info.width, info.height), (0, 0, 0, 0))
        dispose_box = None

        for index, frame in enumerate(info.frames):
            if dispose_box is not None:
                canvas.paste((0, 0, 0, 0), dispose_box)

            tile = _open_rgba(frame.bitstream)
            if tile.size != (frame.width, frame.height):
                raise CorruptContainerError(
                    f"WebP frame {index} is {tile.width}x{tile.height}, "
                    f"ANMF declares {frame.width}x{frame.height}",
                    frame_index=index,
                )

            if frame.blend:
                canvas.alpha_composite(tile, dest=(frame.x, frame.y))
            else:
                canvas.paste(tile, (frame.x, frame.y))

            yield DecodedFrame(
                pixels=canvas.tobytes(),
                width=info.width,
                height=info.height,
                duration_ms=frame.duration_ms,
                index=index,
            )

            dispose_box = None
            if frame.dispose:
                dispose_box = (frame.x, frame.y, frame.x + frame.width, frame.y + frame.height)


def _read_chunks(data: bytes) -> list[tuple[bytes, bytes]]:
    """Split a RIFF/WEBP file into (fourcc, payload) pairs.

    Each chunk is: 4-byte fourcc + 4-byte little-endian size + payload,
    padded to an even length.
    """
    if data[:4] != b"RIFF" or data[8:12] != b"WEBP":
        raise CorruptContainerError("Not a WebP file (bad RIFF header)")

    riff_size = struct.unpack("<I", data[4:8])[0]
    end = riff_size + 8
    if end > len(data):
        raise CorruptContainerError(
            "Truncated WebP file",
            declared_size=end,
            actual_size=len(data),
        )

    return _split_chunks(data, 12, end)


def _split_chunks(data: bytes, offset: int, end: int) -> list[tuple[bytes, bytes]]:
    chunks = []
    while offset + 8 <= end:
        chunk_type = data[offset : offset + 4]
        chunk_size = struct.unpack("<I", data[offset + 4 : offset + 8])[0]
        payload_end = offset + 8 + chunk_size
        if payload_end > end:
            raise CorruptContainerError(
                f"WebP chunk {chunk_type!r} overruns its container",
                chunk=chunk_type.decode("latin-1"),
                offset=offset,
            )
        chunks.append((chunk_type, data[offset + 8 : payload_end]))
        offset = payload_end + (chunk_size & 1)
    return chunks


def _parse_frame(payload: bytes, canvas_width: int, canvas_height: int, index: int) -> WebpFrame:
    """Parse an ANMF payload.

    Layout: X/2 (24 bits), Y/2 (24), width-1 (24), height-1 (24),
    duration in ms (24), flags (8), then the frame's own chunks.
    """
    if len(payload) < 16:
        raise CorruptContainerError("ANMF chunk is too short", frame_index=index)

    x = _u24(payload, 0) * 2
    y = _u24(payload, 3) * 2
    width = 1 + _u24(payload, 6)
    height = 1 + _u24(payload, 9)
    duration_ms = _u24(payload, 12)
    flags = payload[15]

    if x + width > canvas_width or y + height > canvas_height:
        raise CorruptContainerError(
            f"WebP frame {index} lies outside the canvas",
            frame_index=index,
        )

    alpha = None
    bitstream = None
    for chunk_type, chunk_payload in _split_chunks(payload, 16, len(payload)):
        if chunk_type == b"ALPH":
            alpha = chunk_payload
        elif chunk_type in _BITSTREAM_CHUNKS:
            bitstream = (chunk_type, chunk_payload)
            break

    if bitstream is None:
        raise CorruptContainerError(
            f"WebP frame {index} has no image data",
            frame_index=index,
        )

    return WebpFrame(
        x=x,
        y=y,
        width=width,
        height=height,
        duration_ms=duration_ms,
        blend=not flags & _ANMF_NO_BLEND,
        dispose=bool(flags & _ANMF_DISPOSE_BACKGROUND),
        bitstream=_wrap_bitstream(bitstream, alpha, width, height),
    )


def _wrap_bitstream(
    bitstream: tuple[bytes, bytes],
    alpha: Optional[bytes],
    width: int,
    height: int,
) -> bytes:
    """Package one frame's chunks as a standalone still WebP file."""
    chunk_type, payload = bitstream
    if chunk_type == b"VP8 " and alpha is not None:
        header = bytes((_FLAG_ALPHA, 0, 0, 0)) + _pack_u24(width - 1) + _pack_u24(height - 1)
        body = _chunk(b"VP8X", header) + _chunk(b"ALPH", alpha) + _chunk(b"VP8 ", payload)
    else:
        body = _chunk(chunk_type, payload)
    return b"RIFF" + struct.pack("<I", 4 + len(body)) + b"WEBP" + body


def _chunk(chunk_type: bytes, payload: bytes) -> bytes:
    padding = b"\x00" if len(payload) & 1 else b""
    return chunk_type + struct.pack("<I", len(payload)) + payload + padding


def _still_size(data: bytes) -> tuple[int, int]:
    """Read a still image's dimensions without decoding pixels."""
    try:
        with Image.open(io.BytesIO(data)) as img:
            return img.size
    except Image.DecompressionBombError as e:
        raise ImageTooLargeError(f"WebP image too large: {e}") from e
    except (OSError, ValueError) as e:
        raise CorruptContainerError(f"Unreadable WebP image: {e}", frame_index=0) from e


def _open_rgba(data: bytes) -> Image.Image:
    with Image.open(io.BytesIO(data)) as img:
        img.load()
        return img.convert("RGBA")


def _u24(data: bytes, offset: int) -> int:
    return data[offset] | (data[offset + 1] << 8) | (data[offset + 2] << 16)


def _pack_u24(value: int) -> bytes:
    return bytes((value & 0xFF, (value >> 8) & 0xFF, (value >> 16) & 0xFF))
