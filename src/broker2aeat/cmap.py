"""ToUnicode CMap reader.

Only the parts of a CMap program needed for text recovery are interpreted:
``beginbfchar``/``endbfchar`` and ``beginbfrange``/``endbfrange`` blocks.
Everything else (code space ranges, dictionaries, procedure sets) is skipped.
"""

import binascii
import logging
import re
from typing import Dict, Iterator, List, Tuple

HEX = "hex"
ARRAY_START = "["
ARRAY_END = "]"
KEYWORD = "keyword"

_TOKEN_RE = re.compile(
    rb"(?P<dict><<|>>)"
    rb"|<(?P<hex>[0-9A-Fa-f\s]*)>"
    rb"|(?P<array_start>\[)"
    rb"|(?P<array_end>\])"
    rb"|(?P<string>\((?:\\.|[^\\)])*\))"
    rb"|(?P<comment>%[^\r\n]*)"
    rb"|/(?P<name>[^\s/\[\]<>()%{}]*)"
    rb"|(?P<keyword>[^\s/\[\]<>()%{}]+)"
    rb"|(?P<brace>[{}])"
)

Token = Tuple[str, bytes]


def _tokenize(data: bytes) -> Iterator[Token]:
    """Yield the hex strings, array delimiters and bare keywords of a CMap program."""
    for match in _TOKEN_RE.finditer(data):
        kind = match.lastgroup
        if kind == "hex":
            digits = re.sub(rb"\s", b"", match.group("hex"))
            if len(digits) % 2:
                digits += b"0"
            yield HEX, binascii.unhexlify(digits)
        elif kind == "array_start":
            yield ARRAY_START, b"["
        elif kind == "array_end":
            yield ARRAY_END, b"]"
        elif kind == "keyword":
            yield KEYWORD, match.group("keyword")


def _decode_utf16(raw: bytes) -> str:
    return raw.decode("utf-16-be", errors="replace")


def _increment_last_unit(raw: bytes, step: int) -> bytes:
    """Add ``step`` to the trailing 16-bit code unit of a UTF-16BE destination."""
    if len(raw) < 2:
        return bytes([(raw[0] + step) & 0xFF]) if raw else raw
    last = int.from_bytes(raw[-2:], "big") + step
    return raw[:-2] + (last & 0xFFFF).to_bytes(2, "big")


def _read_bfchar(tokens: List[Token], pos: int, cmap: Dict[int, str]) -> int:
    while pos + 1 < len(tokens):
        kind, value = tokens[pos]
        if kind == KEYWORD:
            return pos
        dst_kind, dst = tokens[pos + 1]
        if kind != HEX or dst_kind != HEX:
            logging.debug("Malformed bfchar entry near token %d", pos)
            return pos
        cmap[int.from_bytes(value, "big")] = _decode_utf16(dst)
        pos += 2
    return pos


def _read_bfrange(tokens: List[Token], pos: int, cmap: Dict[int, str]) -> int:
    while pos + 2 < len(tokens):
        lo_kind, lo = tokens[pos]
        if lo_kind == KEYWORD:
            return pos
        hi_kind, hi = tokens[pos + 1]
        dst_kind, dst = tokens[pos + 2]
        if lo_kind != HEX or hi_kind != HEX:
            logging.debug("Malformed bfrange bounds near token %d", pos)
            return pos
        first = int.from_bytes(lo, "big")
        last = int.from_bytes(hi, "big")
        if dst_kind == HEX:
            for offset, code in enumerate(range(first, last + 1)):
                cmap[code] = _decode_utf16(_increment_last_unit(dst, offset))
            pos += 3
        elif dst_kind == ARRAY_START:
            pos += 3
            code = first
            while pos < len(tokens) and tokens[pos][0] == HEX:
                if code <= last:
                    cmap[code] = _decode_utf16(tokens[pos][1])
                code += 1
                pos += 1
            if pos < len(tokens) and tokens[pos][0] == ARRAY_END:
                pos += 1
        else:
            logging.debug("Malformed bfrange destination near token %d", pos)
            return pos
    return pos


def parse_cmap(data: bytes) -> Dict[int, str]:
    """Build a character-code to text map from a ToUnicode CMap stream.

    ``bfchar`` entries map one source code to a UTF-16BE string. ``bfrange``
    entries map a contiguous code range either to consecutive strings (the
    last code unit of the destination is incremented per code) or to an
    explicit array with one string per code. Malformed entries end the block
    they appear in; parsing stops at ``endcmap``.

    Args:
        data: Decoded (unfiltered) CMap stream content.

    Returns:
        Mapping of integer character code to its Unicode text.
    """
    tokens = list(_tokenize(data))
    cmap: Dict[int, str] = {}
    pos = 0
    while pos < len(tokens):
        kind, value = tokens[pos]
        pos += 1
        if kind != KEYWORD:
            continue
        if value == b"beginbfchar":
            pos = _read_bfchar(tokens, pos, cmap)
        elif value == b"beginbfrange":
            pos = _read_bfrange(tokens, pos, cmap)
        elif value == b"endcmap":
            break
    return cmap
