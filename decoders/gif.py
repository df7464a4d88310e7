from dataclasses import dataclass, field
from typing import Iterator, Optional

from PIL import Image

from config import settings
from decoders.base import BaseDecoder, ContainerInfo
from exceptions import CorruptContainerError
from pipeline.frames import DecodedFrame
from utils.format_detect import ImageFormat
from utils.lzw import lzw_decode

# Block introducers and extension labels
_EXTENSION = 0x21
_IMAGE = 0x2C
_TRAILER = 0x3B
_GRAPHIC_CONTROL = 0xF9
_APPLICATION = 0xFF

# Disposal methods
DISPOSE_NONE = 0
DISPOSE_KEEP = 1
DISPOSE_BACKGROUND = 2
DISPOSE_PREVIOUS = 3

_LOOP_APPLICATIONS = (b"NETSCAPE2.0", b"ANIMEXTS1.0")

# Interlaced row order: (first row, step) per pass
_INTERLACE_PASSES = ((0, 8), (4, 8), (2, 4), (1, 2))


@dataclass
class GifImage:
    """One image descriptor plus the Graphic Control Extension before it."""

    left: int
    top: int
    width: int
    height: int
    interlaced: bool
    palette: bytes  # RGB triples, local table if present else global
    min_code_size: int
    data: bytes  # Concatenated LZW sub-blocks
    disposal: int = DISPOSE_NONE
    transparent_index: Optional[int] = None
    delay_cs: Optional[int] = None  # None when no Graphic Control Extension


@dataclass
class GifContainer(ContainerInfo):
    """Parsed GIF structure."""

    images: list[GifImage] = field(default_factory=list)


class _Reader:
    """Sequential little-endian reader over a byte buffer."""

    def __init__(self, data: bytes, offset: int = 0):
        self.data = data
        self.offset = offset

    def at_end(self) -> bool:
        return self.offset >= len(self.data)

    def take(self, size: int) -> bytes:
        end = self.offset + size
        if end > len(self.data):
            raise EOFError(f"Unexpected end of data at offset {self.offset}")
        chunk = self.data[self.offset : end]
        self.offset = end
        return chunk

    def u8(self) -> int:
        return self.take(1)[0]

    def u16(self) -> int:
        lo, hi = self.take(2)
        return lo | (hi << 8)

    def sub_blocks(self) -> list[bytes]:
        """Read a sub-block chain up to and including its terminator."""
        blocks = []
        while True:
            size = self.u8()
            if size == 0:
                return blocks
            blocks.append(self.take(size))


class GifDecoder(BaseDecoder):
    """GIF87a/GIF89a decoder.

    Frames are composed onto a transparent logical screen following each
    image's disposal method, so every yielded frame is a full canvas:
    - 0/1 (unspecified / do not dispose): leave the frame in place
    - 2 (restore to background): clear the frame rectangle to transparent
    - 3 (restore to previous): put back the canvas as it was before the frame
    """

    format = ImageFormat.GIF

    def probe(self, data: bytes) -> GifContainer:
        if data[:6] not in (b"GIF87a", b"GIF89a"):
            raise CorruptContainerError("Not a GIF file (bad signature)")

        reader = _Reader(data, 6)
        images: list[GifImage] = []

        try:
            width = reader.u16()
            height = reader.u16()
            packed = reader.u8()
            reader.u8()  # background color index
            reader.u8()  # pixel aspect ratio

            global_palette = b""
            if packed & 0x80:
                global_palette = reader.take(3 * (2 << (packed & 0x07)))

            loop_count = None
            control = None

            while True:
                if reader.at_end():
                    # Missing trailer is common and harmless once an image was read
                    if images:
                        break
                    raise EOFError("No image data before end of file")

                block = reader.u8()
                if block == _TRAILER:
                    break

                if block == _EXTENSION:
                    label = reader.u8()
                    blocks = reader.sub_blocks()
                    if label == _GRAPHIC_CONTROL:
                        control = _parse_graphic_control(b"".join(blocks), len(images))
                    elif label == _APPLICATION:
                        loop = _parse_loop_extension(blocks)
                        if loop is not None:
                            loop_count = loop
                    continue

                if block != _IMAGE:
                    raise CorruptContainerError(
                        f"Unknown GIF block 0x{block:02x} at offset {reader.offset - 1}",
                        frame_index=len(images),
                    )

                images.append(_read_image(reader, global_palette, control, len(images)))
                self._check_canvas(images[-1].width, images[-1].height)
                control = None

        except EOFError as e:
            raise CorruptContainerError(
                f"Truncated GIF: {e}",
                frame_index=len(images),
            ) from e

        if not images:
            raise CorruptContainerError("GIF contains no images", frame_index=0)

        if width == 0 or height == 0:
            # Zero logical screen: size it to the first image, as browsers do
            first = images[0]
            width = width or first.left + first.width
            height = height or first.top + first.height
            if width == 0 or height == 0:
                raise CorruptContainerError(
                    "GIF logical screen has zero size", width=width, height=height
                )
        self._check_canvas(width, height)

        return GifContainer(
            width=width,
            height=height,
            frame_count=len(images),
            loop_count=loop_count,
            images=images,
        )

    def _iter_frames(self, data: bytes, info: GifContainer) -> Iterator[DecodedFrame]:
        canvas = Image.new("RGBA", (info.width, info.height), (0, 0, 0, 0))
        pending_disposal = DISPOSE_NONE
        pending_box = None
        saved = None

        for index, image in enumerate(info.images):
            if pending_disposal == DISPOSE_BACKGROUND and pending_box is not None:
                canvas.paste((0, 0, 0, 0), pending_box)
            elif pending_disposal == DISPOSE_PREVIOUS and saved is not None:
                canvas = saved

            if image.disposal == DISPOSE_PREVIOUS:
                saved = canvas.copy()

            tile = _render_image(image, index)
            if tile is not None:
                canvas.paste(tile, (image.left, image.top), tile)

            if image.delay_cs is None:
                duration_ms = settings.default_frame_duration_ms
            else:
                duration_ms = image.delay_cs * 10

            yield DecodedFrame(
                pixels=canvas.tobytes(),
                width=info.width,
                height=info.height,
                duration_ms=duration_ms,
                index=index,
            )

            pending_disposal = image.disposal
            pending_box = _clip_box(image, info.width, info.height)


def _parse_graphic_control(payload: bytes, frame_index: int) -> dict:
    if len(payload) < 4:
        raise CorruptContainerError(
            "Graphic Control Extension is too short",
            frame_index=frame_index,
        )
    packed = payload[0]
    return {
        "disposal": (packed >> 2) & 0x07,
        "transparent_index": payload[3] if packed & 0x01 else None,
        "delay_cs": payload[1] | (payload[2] << 8),
    }


def _parse_loop_extension(blocks: list[bytes]) -> Optional[int]:
    """Return the loop count from a NETSCAPE2.0 / ANIMEXTS1.0 block, if any."""
    if len(blocks) < 2 or blocks[0][:11] not in _LOOP_APPLICATIONS:
        return None
    sub = blocks[1]
    if len(sub) < 3 or sub[0] != 0x01:
        return None
    return sub[1] | (sub[2] << 8)


def _read_image(
    reader: _Reader,
    global_palette: bytes,
    control: Optional[dict],
    frame_index: int,
) -> GifImage:
    left = reader.u16()
    top = reader.u16()
    width = reader.u16()
    height = reader.u16()
    packed = reader.u8()

    palette = global_palette
    if packed & 0x80:
        palette = reader.take(3 * (2 << (packed & 0x07)))
    if not palette:
        raise CorruptContainerError("GIF image has no color table", frame_index=frame_index)

    min_code_size = reader.u8()
    data = b"".join(reader.sub_blocks())

    control = control or {}
    return GifImage(
        left=left,
        top=top,
        width=width,
        height=height,
        interlaced=bool(packed & 0x40),
        palette=palette,
        min_code_size=min_code_size,
        data=data,
        disposal=control.get("disposal", DISPOSE_NONE),
        transparent_index=control.get("transparent_index"),
        delay_cs=control.get("delay_cs"),
    )


def _render_image(image: GifImage, frame_index: int) -> Optional[Image.Image]:
    """Decode one image's indices into an RGBA tile (None for empty images)."""
    pixel_count = image.width * image.height
    if pixel_count == 0:
        return None

    indices = lzw_decode(image.data, image.min_code_size, pixel_count)
    if len(indices) < pixel_count:
        raise CorruptContainerError(
            f"GIF frame {frame_index} has {len(indices)} of {pixel_count} pixels",
            frame_index=frame_index,
        )

    if image.interlaced:
        indices = _deinterlace(indices, image.width, image.height)

    tile = Image.frombytes("P", (image.width, image.height), indices)
    tile.putpalette(_rgba_palette(image.palette, image.transparent_index), "RGBA")
    return tile.convert("RGBA")


def _rgba_palette(palette: bytes, transparent_index: Optional[int]) -> bytes:
    """Expand an RGB color table to 256 RGBA entries.

    Indices past the end of the table render as opaque black.
    """
    entries = bytearray()
    for i in range(256):
        rgb = palette[i * 3 : i * 3 + 3]
        if len(rgb) < 3:
            rgb = b"\x00\x00\x00"
        entries += rgb
        entries.append(0 if i == transparent_index else 255)
    return bytes(entries)


def _deinterlace(indices: bytes, width: int, height: int) -> bytes:
    rows: list[bytes] = [b""] * height
    src = 0
    for start, step in _INTERLACE_PASSES:
        for y in range(start, height, step):
            rows[y] = indices[src * width : (src + 1) * width]
            src += 1
    return b"".join(rows)


def _clip_box(image: GifImage, width: int, height: int) -> Optional[tuple[int, int, int, int]]:
    right = min(image.left + image.width, width)
    bottom = min(image.top + image.height, height)
    if image.left >= right or image.top >= bottom:
        return None
    return (image.left, image.top, right, bottom)
