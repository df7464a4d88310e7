"""Tests for upload validation."""

from unittest.mock import patch

import pytest

from config import settings
from exceptions import FileTooLargeError, UnsupportedFormatError
from pipeline.frames import SourceFile
from security.file_validation import validate_upload
from utils.format_detect import ImageFormat


def test_validate_gif_upload(red_blue_gif):
    source = SourceFile(data=red_blue_gif, media_type="image/gif", filename="a.gif")
    assert validate_upload(source) == ImageFormat.GIF


def test_validate_webp_by_extension(static_webp):
    source = SourceFile(data=static_webp, media_type="", filename="a.webp")
    assert validate_upload(source) == ImageFormat.WEBP


def test_validate_rejects_other_format():
    source = SourceFile(data=b"\x89PNG\r\n\x1a\n", media_type="image/png", filename="a.png")
    with pytest.raises(UnsupportedFormatError):
        validate_upload(source)


def test_validate_file_too_large():
    source = SourceFile(data=b"GIF89a" + b"\x00" * 100, media_type="image/gif", filename="a.gif")
    with patch.object(settings, "max_file_size_bytes", 50):
        with pytest.raises(FileTooLargeError) as exc_info:
            validate_upload(source)
    assert exc_info.value.details["file_size"] == 106


def test_size_checked_before_format():
    source = SourceFile(data=b"x" * 100, media_type="image/png", filename="a.png")
    with patch.object(settings, "max_file_size_bytes", 50):
        with pytest.raises(FileTooLargeError):
            validate_upload(source)
