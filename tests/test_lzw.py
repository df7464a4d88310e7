"""Tests for GIF LZW coding."""

import io

import pytest
from PIL import Image

from utils.lzw import MAX_CODES, LZWError, lzw_decode, lzw_encode


def test_round_trip_small_palette():
    indices = bytes([0, 1, 2, 3] * 10 + [3, 2, 1, 0])
    encoded = lzw_encode(indices, 2)
    assert lzw_decode(encoded, 2, len(indices)) == indices


def test_round_trip_repeated_run():
    """A run of one value exercises the code-not-yet-in-table case."""
    indices = bytes(200)
    encoded = lzw_encode(indices, 2)
    assert lzw_decode(encoded, 2, len(indices)) == indices
    assert len(encoded) < len(indices)


def test_round_trip_fills_dictionary():
    """Enough distinct sequences to fill 4096 entries and force a clear code."""
    indices = bytes((i * 7 + i // 13) % 256 for i in range(30000))
    encoded = lzw_encode(indices, 8)
    assert lzw_decode(encoded, 8, len(indices)) == indices


def test_encoded_stream_starts_with_clear_code():
    encoded = lzw_encode(bytes([1, 1, 1]), 2)
    # clear code 4 in the low 3 bits
    assert encoded[0] & 0b111 == 4


def test_empty_input_round_trip():
    encoded = lzw_encode(b"", 2)
    assert lzw_decode(encoded, 2, 10) == b""


def test_decode_stops_at_max_pixels():
    indices = bytes([1, 2, 3, 0] * 8)
    encoded = lzw_encode(indices, 2)
    assert lzw_decode(encoded, 2, 5) == indices[:5]


def test_decode_short_stream_returns_partial():
    indices = bytes((i % 4) for i in range(64))
    encoded = lzw_encode(indices, 2)
    partial = lzw_decode(encoded[:3], 2, len(indices))
    assert len(partial) < len(indices)
    assert indices.startswith(partial)


def test_decode_invalid_min_code_size():
    with pytest.raises(LZWError):
        lzw_decode(b"\x00", 0, 1)
    with pytest.raises(LZWError):
        lzw_decode(b"\x00", 12, 1)


def test_decode_invalid_first_code():
    """Clear (4) then 7, which is beyond the literal range."""
    with pytest.raises(LZWError):
        lzw_decode(bytes([4 | (7 << 3)]), 2, 4)


def test_decode_code_past_table():
    """Literal 1 followed by code 7 while the next free code is 6."""
    with pytest.raises(LZWError):
        lzw_decode(bytes([4 | (1 << 3) | (7 << 6) & 0xFF, 7 >> 2]), 2, 4)


def test_pillow_reads_encoded_stream(make_gif):
    """A GIF holding our LZW data decodes identically in Pillow."""
    indices = bytes((x + y) % 4 for y in range(16) for x in range(16))
    data = make_gif(16, 16, [{"indices": indices, "delay": None}])
    with Image.open(io.BytesIO(data)) as img:
        assert img.tobytes() == indices


def test_max_codes_constant():
    assert MAX_CODES == 4096
