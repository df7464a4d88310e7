import io
import struct

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from main import app
from utils.lzw import lzw_encode

# Global color table used by hand-built GIFs: black, red, blue, green
PALETTE = bytes([0, 0, 0, 255, 0, 0, 0, 0, 255, 0, 255, 0])

RED = (255, 0, 0, 255)
BLUE = (0, 0, 255, 255)
GREEN = (0, 255, 0, 255)
BLACK = (0, 0, 0, 255)
CLEAR = (0, 0, 0, 0)


@pytest.fixture
def client():
    """FastAPI test client (does not raise server exceptions)."""
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture
def strict_client():
    """FastAPI test client that raises server exceptions."""
    return TestClient(app, raise_server_exceptions=True)


@pytest.fixture
def make_gif():
    """Hand-built GIF with full control over disposal, transparency and layout."""
    return build_gif


@pytest.fixture
def pillow_gif():
    return build_pillow_gif


@pytest.fixture
def pillow_webp():
    return build_pillow_webp


@pytest.fixture
def red_blue_gif():
    """Two 1x1 frames, red for 50 ms then blue for 150 ms, looping forever."""
    return build_pillow_gif([RED, BLUE], (1, 1), durations=[50, 150], loop=0)


@pytest.fixture
def static_webp():
    return build_pillow_webp([RED], (2, 2))


@pytest.fixture
def animated_webp():
    return build_pillow_webp([RED, BLUE, GREEN], (4, 4), durations=[100, 200, 300], loop=0)


@pytest.fixture
def pixels():
    return frame_pixels


def frame_pixels(frame) -> list[tuple[int, int, int, int]]:
    """RGBA tuples of a DecodedFrame, row-major."""
    data = frame.pixels
    return [tuple(data[i : i + 4]) for i in range(0, len(data), 4)]


def build_pillow_gif(colors, size, durations=None, loop=None) -> bytes:
    """One solid-color frame per entry in ``colors``, written by Pillow."""
    frames = [Image.new("RGB", size, color[:3]) for color in colors]
    params = {}
    if len(frames) > 1:
        params["save_all"] = True
        params["append_images"] = frames[1:]
    if durations is not None:
        params["duration"] = durations
    if loop is not None:
        params["loop"] = loop
    buf = io.BytesIO()
    frames[0].save(buf, format="GIF", **params)
    return buf.getvalue()


def build_pillow_webp(colors, size, durations=None, loop=0, lossless=True) -> bytes:
    """Solid-color frames written by Pillow; one color gives a still WebP."""
    frames = [Image.new("RGBA", size, color) for color in colors]
    buf = io.BytesIO()
    if len(frames) == 1:
        frames[0].save(buf, format="WEBP", lossless=lossless, quality=100)
    else:
        frames[0].save(
            buf,
            format="WEBP",
            save_all=True,
            append_images=frames[1:],
            duration=durations or 100,
            loop=loop,
            lossless=lossless,
            quality=100,
        )
    return buf.getvalue()


def build_gif(width, height, images, palette=PALETTE, loop=None, trailer=True) -> bytes:
    """Assemble a GIF89a from image dicts.

    Each image dict takes ``indices`` (display order) plus optional
    ``left``, ``top``, ``width``, ``height``, ``delay`` (centiseconds,
    None = no Graphic Control Extension), ``disposal``, ``transparent``,
    ``interlaced`` and a local ``palette``.
    """
    bits = _table_bits(palette)
    out = bytearray(b"GIF89a")
    out += struct.pack("<HHBBB", width, height, 0x80 | (bits - 1), 0, 0)
    out += _pad_palette(palette, bits)

    if loop is not None:
        out += b"\x21\xff\x0bNETSCAPE2.0\x03\x01" + struct.pack("<H", loop) + b"\x00"

    for image in images:
        w = image.get("width", width)
        h = image.get("height", height)
        indices = image["indices"]

        delay = image.get("delay", 10)
        if delay is not None:
            transparent = image.get("transparent")
            packed = image.get("disposal", 0) << 2
            if transparent is not None:
                packed |= 0x01
            out += b"\x21\xf9\x04" + struct.pack("<BHB", packed, delay, transparent or 0) + b"\x00"

        flags = 0
        if image.get("interlaced"):
            flags |= 0x40
            indices = _interlace(indices, w, h)

        code_bits = bits
        local = image.get("palette")
        if local:
            code_bits = _table_bits(local)
            flags |= 0x80 | (code_bits - 1)

        out += b"," + struct.pack("<HHHHB", image.get("left", 0), image.get("top", 0), w, h, flags)
        if local:
            out += _pad_palette(local, code_bits)

        min_code_size = max(2, code_bits)
        out.append(min_code_size)
        data = lzw_encode(bytes(indices), min_code_size)
        for i in range(0, len(data), 255):
            chunk = data[i : i + 255]
            out.append(len(chunk))
            out += chunk
        out.append(0)

    if trailer:
        out.append(0x3B)
    return bytes(out)


def _table_bits(palette: bytes) -> int:
    return max(1, (max(2, len(palette) // 3) - 1).bit_length())


def _pad_palette(palette: bytes, bits: int) -> bytes:
    return palette.ljust(3 * (1 << bits), b"\x00")


def _interlace(indices, width, height) -> bytes:
    rows = [bytes(indices[y * width : (y + 1) * width]) for y in range(height)]
    ordered = []
    for start, step in ((0, 8), (4, 8), (2, 4), (1, 2)):
        ordered.extend(rows[start:height:step])
    return b"".join(ordered)
