"""Variable-length LZW coding as used by GIF image data.

Codes are packed least-significant bit first. The code width starts at
``min_code_size + 1`` bits and grows to at most 12 bits; the dictionary
holds 4096 entries.
"""

MAX_CODE_SIZE = 12
MAX_CODES = 1 << MAX_CODE_SIZE


class LZWError(ValueError):
    """Malformed LZW stream."""


def lzw_decode(data: bytes, min_code_size: int, max_pixels: int) -> bytes:
    """Decode a GIF LZW stream into palette indices.

    Decoding stops at the End Of Information code, when the data runs
    out, or once ``max_pixels`` indices have been produced.

    Args:
        data: Concatenated sub-block payloads of one image.
        min_code_size: LZW minimum code size from the image data header.
        max_pixels: Number of indices the image needs.

    Returns:
        Up to ``max_pixels`` palette indices. The result may be shorter
        when the stream ends early; callers decide whether that is fatal.

    Raises:
        LZWError: On an invalid minimum code size or an out-of-range code.
    """
    if not 1 <= min_code_size < MAX_CODE_SIZE:
        raise LZWError(f"Invalid LZW minimum code size {min_code_size}")

    clear_code = 1 << min_code_size
    end_code = clear_code + 1
    base_table = [bytes((i,)) for i in range(clear_code)] + [b"", b""]

    table = list(base_table)
    code_size = min_code_size + 1
    code_mask = (1 << code_size) - 1
    next_code = end_code + 1
    prev = None

    out = bytearray()
    bit_buf = 0
    bit_count = 0
    pos = 0
    length = len(data)

    while len(out) < max_pixels:
        while bit_count < code_size and pos < length:
            bit_buf |= data[pos] << bit_count
            pos += 1
            bit_count += 8
        if bit_count < code_size:
            break

        code = bit_buf & code_mask
        bit_buf >>= code_size
        bit_count -= code_size

        if code == clear_code:
            table = list(base_table)
            code_size = min_code_size + 1
            code_mask = (1 << code_size) - 1
            next_code = end_code + 1
            prev = None
            continue
        if code == end_code:
            break

        if prev is None:
            if code >= clear_code:
                raise LZWError(f"Invalid first code {code}")
            entry = table[code]
        else:
            if code < next_code:
                entry = table[code]
                new_entry = prev + entry[:1]
            elif code == next_code:
                entry = new_entry = prev + prev[:1]
            else:
                raise LZWError(f"Invalid code {code} (next free code {next_code})")

            if next_code < MAX_CODES:
                table.append(new_entry)
                next_code += 1
                if next_code == (1 << code_size) and code_size < MAX_CODE_SIZE:
                    code_size += 1
                    code_mask = (1 << code_size) - 1

        out += entry
        prev = entry

    return bytes(out[:max_pixels])


def lzw_encode(indices: bytes, min_code_size: int) -> bytes:
    """Encode palette indices into a GIF LZW stream.

    The stream starts with a Clear code, ends with End Of Information and
    emits a Clear code whenever the dictionary fills up.

    Args:
        indices: One palette index per pixel, each below ``1 << min_code_size``.
        min_code_size: LZW minimum code size (2-8 for GIF).

    Returns:
        Packed code bytes, not yet split into sub-blocks.
    """
    clear_code = 1 << min_code_size
    end_code = clear_code + 1

    code_size = min_code_size + 1
    next_code = end_code + 1
    table: dict[int, int] = {}

    out = bytearray()
    bit_buf = clear_code
    bit_count = code_size

    if indices:
        prefix = indices[0]
        for k in indices[1:]:
            key = (prefix << 8) | k
            code = table.get(key)
            if code is not None:
                prefix = code
                continue

            bit_buf |= prefix << bit_count
            bit_count += code_size
            while bit_count >= 8:
                out.append(bit_buf & 0xFF)
                bit_buf >>= 8
                bit_count -= 8

            if next_code < MAX_CODES:
                table[key] = next_code
                if next_code == (1 << code_size) and code_size < MAX_CODE_SIZE:
                    code_size += 1
                next_code += 1
            else:
                bit_buf |= clear_code << bit_count
                bit_count += code_size
                table.clear()
                code_size = min_code_size + 1
                next_code = end_code + 1
            prefix = k

        bit_buf |= prefix << bit_count
        bit_count += code_size

    bit_buf |= end_code << bit_count
    bit_count += code_size
    while bit_count > 0:
        out.append(bit_buf & 0xFF)
        bit_buf >>= 8
        bit_count -= 8

    return bytes(out)
