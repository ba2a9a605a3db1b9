import pytest

from broker2aeat.errors import UnsupportedInputError
from broker2aeat.pdf_text import FontInfo, extract_text, remove_repeated_section
from conftest import build_pdf, identity_encoding, identity_hex


class TestFontInfoDecode:
    def test_identity_pairs_with_trailing_newline(self):
        font = FontInfo(two_byte=True, cmap={0x0024: "A", 0x0025: "B"})
        assert font.decode(b"\x00\x24\x00\x25") == "AB\n"

    def test_identity_unmapped_codes_dropped(self):
        font = FontInfo(two_byte=True, cmap={0x0024: "A"})
        assert font.decode(b"\x00\x24\x00\x99") == "A\n"

    def test_identity_odd_trailing_byte_ignored(self):
        font = FontInfo(two_byte=True, cmap={0x0024: "A"})
        assert font.decode(b"\x00\x24\x00") == "A\n"

    def test_single_byte_falls_back_to_byte_value(self):
        font = FontInfo(cmap={0x41: "Z"})
        assert font.decode(b"AB") == "ZB"


class TestExtractText:
    def test_identity_strings_and_positioning(self):
        codes, cmap = identity_encoding("Hola")
        stream = (
            b"BT\n/F1 10 Tf\n" + identity_hex("Hola", codes) + b" Tj\n"
            b"/F2 10 Tf\n0 -12 Td\n(Fin) Tj\nT*\n[(A) -120 (B)] TJ\nET\n"
        )
        assert extract_text(build_pdf([stream], cmap)) == "Hola\n\nFin\nAB"

    def test_graphics_state_font(self):
        codes, cmap = identity_encoding("Gs")
        stream = b"BT\n/GS1 gs\n" + identity_hex("Gs", codes) + b" Tj\nET\n"
        assert extract_text(build_pdf([stream], cmap)) == "Gs\n"

    def test_text_before_font_selection_ignored(self):
        codes, cmap = identity_encoding("x")
        stream = b"BT\n(lost) Tj\n/F2 10 Tf\n(kept) Tj\nET\n"
        assert extract_text(build_pdf([stream], cmap)) == "kept"

    def test_pages_concatenated_in_order(self):
        codes, cmap = identity_encoding("12")
        pages = [
            b"BT\n/F1 10 Tf\n" + identity_hex("1", codes) + b" Tj\nET\n",
            b"BT\n/F1 10 Tf\n" + identity_hex("2", codes) + b" Tj\nET\n",
        ]
        assert extract_text(build_pdf(pages, cmap)) == "1\n2\n"

    def test_not_a_pdf(self):
        with pytest.raises(UnsupportedInputError):
            extract_text(b"%PDF-1.4\nthis is not a pdf")


class TestRemoveRepeatedSection:
    def test_keeps_first_occurrence(self):
        text = "HEAD\nrow1\nHEAD\nrow2\nHEAD\nrow3"
        assert remove_repeated_section(text, "\nHEAD") == "HEAD\nrow1\nrow2\nrow3"

    def test_marker_absent(self):
        assert remove_repeated_section("abc", "zzz") == "abc"

    def test_single_occurrence_untouched(self):
        assert remove_repeated_section("a\nHEAD\nb", "\nHEAD") == "a\nHEAD\nb"
