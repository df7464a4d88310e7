"""Tests for format resolution and magic-byte sniffing."""

import io

import pytest
from PIL import Image

from exceptions import UnsupportedFormatError
from utils.format_detect import (
    ImageFormat,
    format_from_extension,
    format_from_media_type,
    resolve_declared_format,
    sniff_format,
)

# --- sniff_format ---


def test_sniff_gif89a(red_blue_gif):
    assert sniff_format(red_blue_gif) == ImageFormat.GIF


def test_sniff_gif87a():
    assert sniff_format(b"GIF87a" + b"\x00" * 10) == ImageFormat.GIF


def test_sniff_webp(static_webp):
    assert sniff_format(static_webp) == ImageFormat.WEBP


def test_sniff_png_is_none():
    img = Image.new("RGB", (10, 10))
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    assert sniff_format(buf.getvalue()) is None


def test_sniff_riff_without_webp_tag():
    assert sniff_format(b"RIFF\x00\x00\x00\x00WAVE") is None


def test_sniff_empty():
    assert sniff_format(b"") is None


# --- declared format ---


@pytest.mark.parametrize(
    "filename,expected",
    [
        ("sprite.gif", ImageFormat.GIF),
        ("SPRITE.GIF", ImageFormat.GIF),
        ("walk.webp", ImageFormat.WEBP),
        ("walk.WebP", ImageFormat.WEBP),
        ("archive.tar.gif", ImageFormat.GIF),
        ("photo.png", None),
        ("noext", None),
        ("", None),
        (None, None),
    ],
)
def test_format_from_extension(filename, expected):
    assert format_from_extension(filename) == expected


@pytest.mark.parametrize(
    "media_type,expected",
    [
        ("image/gif", ImageFormat.GIF),
        ("IMAGE/GIF", ImageFormat.GIF),
        ("image/webp", ImageFormat.WEBP),
        ("image/webp; charset=binary", ImageFormat.WEBP),
        ("image/png", None),
        ("application/octet-stream", None),
        ("", None),
    ],
)
def test_format_from_media_type(media_type, expected):
    assert format_from_media_type(media_type) == expected


def test_resolve_by_media_type_only():
    assert resolve_declared_format("upload", "image/gif") == ImageFormat.GIF


def test_resolve_by_extension_only():
    assert resolve_declared_format("walk.webp", "application/octet-stream") == ImageFormat.WEBP


def test_resolve_extension_wins_on_conflict():
    assert resolve_declared_format("walk.webp", "image/gif") == ImageFormat.WEBP


def test_resolve_rejects_other_formats():
    with pytest.raises(UnsupportedFormatError) as exc_info:
        resolve_declared_format("photo.png", "image/png")
    assert exc_info.value.message == "Please select a valid GIF or WebP file."
    assert exc_info.value.details["filename"] == "photo.png"


def test_resolve_rejects_empty():
    with pytest.raises(UnsupportedFormatError):
        resolve_declared_format("", "")
