import io
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from pypdf import PdfReader
from pypdf.errors import PdfReadError, PyPdfError
from pypdf.generic import ArrayObject, ByteStringObject, TextStringObject

from .cmap import parse_cmap
from .errors import UnsupportedInputError

IDENTITY_H = "/Identity-H"

# Operators whose string operands are shown text
_SHOW_TEXT_OPERATORS = (b"Tj", b"TJ", b"BT")
# Operators that move to a new line; they are the only source of line breaks
_NEWLINE_OPERATORS = (b"Td", b"TD", b"T*")


@dataclass
class FontInfo:
    """Decoding data of one page font."""
    two_byte: bool = False
    cmap: Dict[int, str] = field(default_factory=dict)

    def decode(self, raw: bytes) -> str:
        """Decode a shown string.

        Identity-H strings are read as big-endian 2-byte codes, unmapped codes
        are dropped and a newline follows the string. Single-byte strings fall
        back to the raw byte value for unmapped codes.
        """
        if self.two_byte:
            chars = []
            for i in range(0, len(raw) - 1, 2):
                chars.append(self.cmap.get(int.from_bytes(raw[i:i + 2], "big"), ""))
            return "".join(chars) + "\n"
        return "".join(self.cmap.get(b, chr(b)) for b in raw)


def _resolve(obj: Any) -> Any:
    return obj.get_object() if hasattr(obj, "get_object") else obj


def load_font(font: Any) -> FontInfo:
    """Build FontInfo from a font dictionary, parsing its ToUnicode CMap if any."""
    font = _resolve(font)
    info = FontInfo(two_byte=_resolve(font.get("/Encoding")) == IDENTITY_H)
    to_unicode = _resolve(font.get("/ToUnicode"))
    if to_unicode is not None and hasattr(to_unicode, "get_data"):
        info.cmap = parse_cmap(to_unicode.get_data())
    return info


def _page_fonts(resources: Any) -> Dict[str, FontInfo]:
    fonts: Dict[str, FontInfo] = {}
    font_dict = _resolve(resources.get("/Font")) or {}
    for name, font in font_dict.items():
        fonts[name] = load_font(font)
    return fonts


def _graphics_state_fonts(resources: Any) -> Dict[str, FontInfo]:
    """Fonts selected through ExtGState ``/Font [font size]`` entries, keyed by state name."""
    fonts: Dict[str, FontInfo] = {}
    states = _resolve(resources.get("/ExtGState")) or {}
    for name, state in states.items():
        state = _resolve(state)
        entry = _resolve(state.get("/Font"))
        if isinstance(entry, ArrayObject) and entry:
            fonts[name] = load_font(entry[0])
    return fonts


def _string_bytes(operand: Any) -> Optional[bytes]:
    if isinstance(operand, TextStringObject):
        return operand.original_bytes
    if isinstance(operand, (ByteStringObject, bytes)):
        return bytes(operand)
    return None


def _show(operands: Iterable[Any], font: FontInfo, out: List[str]) -> None:
    for operand in operands:
        operand = _resolve(operand)
        if isinstance(operand, ArrayObject):
            _show(operand, font, out)
            continue
        raw = _string_bytes(operand)
        if raw is not None:
            out.append(font.decode(raw))


def extract_page_text(page: Any) -> str:
    """Recover the displayed text of one page by interpreting its content stream.

    Args:
        page: pypdf page object.

    Returns:
        Page text, with a newline for every text positioning operator.
    """
    resources = _resolve(page.get("/Resources")) or {}
    fonts = _page_fonts(resources)
    state_fonts = _graphics_state_fonts(resources)
    contents = page.get_contents()
    if contents is None:
        return ""

    out: List[str] = []
    current: Optional[FontInfo] = None
    for operands, operator in contents.operations:
        if operator == b"gs" and operands:
            if operands[0] in state_fonts:
                current = state_fonts[operands[0]]
        elif operator == b"Tf" and operands:
            current = fonts.get(operands[0])
            if current is None:
                logging.debug("Font %s not found in page resources", operands[0])
        elif operator in _SHOW_TEXT_OPERATORS:
            if current is not None:
                _show(operands, current, out)
        elif operator in _NEWLINE_OPERATORS:
            out.append("\n")
    return "".join(out)


def extract_text(data: bytes) -> str:
    """Extract the text of every page of a PDF document, in page order.

    Raises:
        UnsupportedInputError: if the bytes are not a readable PDF.
    """
    try:
        reader = PdfReader(io.BytesIO(data))
        pages = [extract_page_text(page) for page in reader.pages]
    except (PdfReadError, PyPdfError) as e:
        raise UnsupportedInputError(f"Unable to read PDF document: {e}") from e
    logging.debug("Extracted text from %d PDF page(s)", len(pages))
    return "".join(pages)


def remove_repeated_section(text: str, marker: str) -> str:
    """Keep the first occurrence of ``marker`` and delete every later one.

    Repeated running headers must be byte-identical to be removed.
    """
    first = text.find(marker)
    if first == -1:
        return text
    last = text.rfind(marker)
    while last != first:
        text = text[:last] + text[last + len(marker):]
        last = text.rfind(marker)
    return text
