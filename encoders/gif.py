import struct
from dataclasses import dataclass
from typing import Optional, Sequence

from PIL import Image

from config import settings
from encoders.base import BaseEncoder, EncodeCallback
from exceptions import EncodeError
from pipeline.frames import ResampledFrame
from utils.format_detect import ImageFormat
from utils.lzw import lzw_encode

QUANTIZE_METHODS = {
    "mediancut": Image.Quantize.MEDIANCUT,
    "maxcoverage": Image.Quantize.MAXCOVERAGE,
    "fastoctree": Image.Quantize.FASTOCTREE,
}

# Pixels below this alpha become the transparent index
_ALPHA_THRESHOLD = 128

_DISPOSE_KEEP = 1
_DISPOSE_BACKGROUND = 2


@dataclass
class IndexedFrame:
    """A frame reduced to a color table and one index per pixel."""

    palette: bytes  # RGB triples, padded to a power of two
    indices: bytes
    transparent_index: Optional[int] = None


def delay_centiseconds(duration_ms: int, preserve_zero: bool = False) -> int:
    """Convert a frame duration to a GIF delay.

    Rounds half up to whole centiseconds and clamps to
    [min_frame_delay_cs, 65535]. A delay that rounds to 0 stays 0 only
    when ``preserve_zero`` is set.
    """
    delay = (duration_ms + 5) // 10
    if delay == 0 and preserve_zero:
        return 0
    return min(max(delay, settings.min_frame_delay_cs), 0xFFFF)


class GifEncoder(BaseEncoder):
    """Animated GIF89a writer.

    Layout:
    - Header, logical screen, first frame's palette as global color table
    - NETSCAPE2.0 loop extension (animations only)
    - Per frame: Graphic Control Extension, image descriptor, local color
      table when the palette differs from the global one, LZW image data

    Frames are full canvases. When any frame has transparent pixels every
    frame uses "restore to background" so earlier frames never show
    through; otherwise frames are left in place.
    """

    format = ImageFormat.GIF
    max_dimension = 0xFFFF

    def __init__(self, quantize_method: Optional[str] = None):
        name = (quantize_method or settings.quantize_method).lower()
        if name not in QUANTIZE_METHODS:
            raise ValueError(
                f"Unknown quantize method {name!r}; expected one of {sorted(QUANTIZE_METHODS)}"
            )
        self.quantize_method = name

    def encode(
        self,
        frames: Sequence[ResampledFrame],
        loop_count: int = 0,
        preserve_zero_delay: Optional[bool] = None,
        on_frame: Optional[EncodeCallback] = None,
    ) -> bytes:
        self._validate(frames)
        if preserve_zero_delay is None:
            preserve_zero_delay = settings.preserve_zero_delay

        width, height = frames[0].width, frames[0].height
        total = len(frames)
        animated = total > 1

        indexed = [self.quantize(frame) for frame in frames]

        has_transparency = any(image.transparent_index is not None for image in indexed)
        disposal = _DISPOSE_BACKGROUND if has_transparency and animated else _DISPOSE_KEEP

        global_palette = indexed[0].palette
        global_bits = _table_bits(global_palette)

        out = bytearray(b"GIF89a")
        # Global table present, 8-bit color resolution, table size
        out += struct.pack("<HHBBB", width, height, 0xF0 | (global_bits - 1), 0, 0)
        out += global_palette

        if animated:
            out += _loop_extension(loop_count)

        for position, (frame, image) in enumerate(zip(frames, indexed)):
            delay = delay_centiseconds(frame.duration_ms, preserve_zero_delay) if animated else 0
            out += _graphic_control(disposal, delay, image.transparent_index)

            if image.palette == global_palette:
                bits = global_bits
                out += b"," + struct.pack("<HHHHB", 0, 0, width, height, 0)
            else:
                bits = _table_bits(image.palette)
                out += b"," + struct.pack("<HHHHB", 0, 0, width, height, 0x80 | (bits - 1))
                out += image.palette

            min_code_size = max(2, bits)
            out.append(min_code_size)
            out += _sub_blocks(lzw_encode(image.indices, min_code_size))

            if on_frame is not None:
                on_frame(position, total)

        out.append(0x3B)
        return bytes(out)

    def quantize(self, frame: ResampledFrame) -> IndexedFrame:
        """Reduce a frame to at most 256 colors, one reserved for transparency.

        No dithering, so flat regions stay flat after magnification.
        """
        image = Image.frombytes("RGBA", (frame.width, frame.height), frame.pixels)
        transparent_mask = image.getchannel("A").point(
            lambda a: 255 if a < _ALPHA_THRESHOLD else 0
        )
        has_transparency = transparent_mask.getbbox() is not None

        rgb = image.convert("RGB")
        if has_transparency:
            # Hidden colors under transparent pixels must not claim palette slots
            first_opaque = transparent_mask.tobytes().find(b"\x00")
            fill = (0, 0, 0)
            if first_opaque >= 0:
                fill = rgb.getpixel((first_opaque % frame.width, first_opaque // frame.width))
            rgb.paste(fill, (0, 0), transparent_mask)

        quantized = rgb.quantize(
            colors=255 if has_transparency else 256,
            method=QUANTIZE_METHODS[self.quantize_method],
            dither=Image.Dither.NONE,
        )

        used = quantized.getextrema()[1] + 1
        palette = bytes((quantized.getpalette() or [])[: used * 3])
        palette = palette.ljust(used * 3, b"\x00")

        transparent_index = None
        if has_transparency:
            transparent_index = used
            palette += b"\x00\x00\x00"
            quantized.paste(transparent_index, (0, 0), transparent_mask)

        if len(palette) > 256 * 3:
            raise EncodeError(
                f"Frame {frame.index} quantized to {len(palette) // 3} colors",
                frame_index=frame.index,
            )

        size = 2 << (_table_bits(palette) - 1)
        return IndexedFrame(
            palette=palette.ljust(size * 3, b"\x00"),
            indices=quantized.tobytes(),
            transparent_index=transparent_index,
        )


def _table_bits(palette: bytes) -> int:
    """Bits needed to index a color table (1-8)."""
    entries = max(2, len(palette) // 3)
    return (entries - 1).bit_length()


def _loop_extension(loop_count: int) -> bytes:
    """NETSCAPE2.0 application extension; 0 = loop forever."""
    loop_count = min(max(loop_count, 0), 0xFFFF)
    return b"\x21\xff\x0bNETSCAPE2.0\x03\x01" + struct.pack("<H", loop_count) + b"\x00"


def _graphic_control(disposal: int, delay_cs: int, transparent_index: Optional[int]) -> bytes:
    packed = disposal << 2
    if transparent_index is not None:
        packed |= 0x01
    return b"\x21\xf9\x04" + struct.pack("<BHB", packed, delay_cs, transparent_index or 0) + b"\x00"


def _sub_blocks(data: bytes) -> bytes:
    """Split data into length-prefixed sub-blocks of at most 255 bytes."""
    out = bytearray()
    for i in range(0, len(data), 255):
        chunk = data[i : i + 255]
        out.append(len(chunk))
        out += chunk
    out.append(0)
    return bytes(out)
