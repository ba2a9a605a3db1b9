import datetime
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Tuple

import pytest

from broker2aeat.models import (
    AccountNote,
    BalanceNote,
    BrokerInformation,
    BrokerOperation,
    CompanyInfo,
    FinancialInformation,
)

FIXTURE_DIR = Path(__file__).parent / "fixtures"

DEGIRO = BrokerInformation("Degiro", "NL")
IB = BrokerInformation("Interactive Brokers", "IE")


# --- Minimal PDF assembly ---


def identity_encoding(text: str, first_code: int = 0x0100) -> Tuple[Dict[str, int], bytes]:
    """Assign a two-byte glyph code to every distinct character and build its ToUnicode CMap."""
    codes: Dict[str, int] = {}
    for char in text:
        if char not in codes:
            codes[char] = first_code + len(codes)
    entries = b"".join(
        b"<%04X> <%s>\n" % (code, char.encode("utf-16-be").hex().upper().encode("ascii"))
        for char, code in codes.items()
    )
    cmap = (
        b"/CIDInit /ProcSet findresource begin\n"
        b"12 dict begin\nbegincmap\n"
        b"/CMapName /Test-UCS def\n"
        b"1 begincodespacerange\n<0000> <FFFF>\nendcodespacerange\n"
        b"%d beginbfchar\n" % len(codes)
        + entries
        + b"endbfchar\nendcmap\nCMapName currentdict /CMap defineresource pop\nend\nend\n"
    )
    return codes, cmap


def identity_hex(text: str, codes: Dict[str, int]) -> bytes:
    return b"<" + "".join("%04X" % codes[char] for char in text).encode("ascii") + b">"


def identity_lines_stream(lines: List[str], codes: Dict[str, int]) -> bytes:
    """Content stream showing each line as one Identity-H string (each decodes with a trailing newline)."""
    body = b"".join(identity_hex(line, codes) + b" Tj\n" for line in lines)
    return b"BT\n/F1 10 Tf\n" + body + b"ET\n"


def build_pdf(page_streams: List[bytes], cmap: bytes) -> bytes:
    """Assemble a PDF whose pages share an Identity-H font (/F1, also set via /GS1) and Helvetica (/F2)."""
    objects: Dict[int, bytes] = {}
    page_ids = [6 + 2 * i for i in range(len(page_streams))]
    kids = b" ".join(b"%d 0 R" % page_id for page_id in page_ids)
    objects[1] = b"<< /Type /Catalog /Pages 2 0 R >>"
    objects[2] = b"<< /Type /Pages /Kids [" + kids + b"] /Count %d >>" % len(page_ids)
    objects[3] = (
        b"<< /Type /Font /Subtype /Type0 /BaseFont /TestFont /Encoding /Identity-H "
        b"/ToUnicode 5 0 R >>"
    )
    objects[4] = b"<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>"
    objects[5] = b"<< /Length %d >>\nstream\n" % len(cmap) + cmap + b"\nendstream"
    for page_id, stream in zip(page_ids, page_streams):
        objects[page_id] = (
            b"<< /Type /Page /Parent 2 0 R /MediaBox [0 0 595 842] "
            b"/Resources << /Font << /F1 3 0 R /F2 4 0 R >> "
            b"/ExtGState << /GS1 << /Type /ExtGState /Font [3 0 R 10] >> >> >> "
            b"/Contents %d 0 R >>" % (page_id + 1)
        )
        objects[page_id + 1] = b"<< /Length %d >>\nstream\n" % len(stream) + stream + b"\nendstream"

    out = bytearray(b"%PDF-1.4\n")
    offsets = {}
    for number in sorted(objects):
        offsets[number] = len(out)
        out += b"%d 0 obj\n" % number + objects[number] + b"\nendobj\n"
    xref_offset = len(out)
    size = max(objects) + 1
    out += b"xref\n0 %d\n0000000000 65535 f \n" % size
    for number in range(1, size):
        out += b"%010d 00000 n \n" % offsets[number]
    out += b"trailer\n<< /Size %d /Root 1 0 R >>\nstartxref\n%d\n%%%%EOF\n" % (size, xref_offset)
    return bytes(out)


# --- Fixtures ---


@pytest.fixture
def degiro_broker():
    return DEGIRO


@pytest.fixture
def ib_broker():
    return IB


@pytest.fixture
def degiro_2018_text():
    return (FIXTURE_DIR / "degiro_2018.txt").read_text(encoding="utf-8")


@pytest.fixture
def degiro_2018_pdf(degiro_2018_text):
    """The 2018 report as a two-page PDF; page two repeats the transaction column header."""
    lines = degiro_2018_text.split("\n")
    split_at = lines.index("22/10/2018")
    header_lines = [
        "Fecha", "Producto", "Symbol/ISIN", "Tipo de", "orden", "Cantidad", "Precio",
        "Valor local", "Valor en EUR", "Comisión", "Tipo de", "cambio", "Beneficios y", "pérdidas",
    ]
    codes, cmap = identity_encoding(degiro_2018_text)
    first_page = identity_lines_stream(lines[:split_at], codes)
    second_page = identity_lines_stream(header_lines + lines[split_at:], codes)
    return build_pdf([first_page, second_page], cmap)


@pytest.fixture
def degiro_2019_csv_path():
    return FIXTURE_DIR / "degiro_2019.csv"


@pytest.fixture
def ib_html_path():
    return FIXTURE_DIR / "ib_statement.html"


@pytest.fixture
def ib_csv_path():
    return FIXTURE_DIR / "ib_statement.csv"


@pytest.fixture
def ib_csv_es_path():
    return FIXTURE_DIR / "ib_statement_es.csv"


@pytest.fixture
def degiro_2018_balance_notes():
    rows = [
        ("BURFORD CAP LD", "GG00B4L84979", "LSE", "122", "GBX", "1656.0000", "2247.00"),
        ("FACEBOOK INC. - CLASS", "US30303M1027", "NDQ", "21", "USD", "131.0900", "2401.07"),
        ("JD.COM INC. - AMERICA", "US47215P1066", "NDQ", "140", "USD", "20.9300", "2555.72"),
        ("MONDO TV", "IT0001447785", "MIL", "1105", "EUR", "1.1940", "1319.37"),
        ("TAPTICA INT LTD", "IL0011320343", "LSE", "565", "GBX", "160.0000", "1005.43"),
        ("XPO LOGISTICS INC.", "US9837931008", "NSY", "41", "USD", "57.0400", "2039.76"),
    ]
    return [
        BalanceNote(
            company=CompanyInfo(name, isin),
            market=market,
            quantity=Decimal(quantity),
            currency=currency,
            price=Decimal(price),
            value_in_euro=Decimal(value),
            broker=DEGIRO,
        )
        for name, isin, market, quantity, currency, price, value in rows
    ]


@pytest.fixture
def degiro_2018_account_notes(degiro_2018_balance_notes):
    companies = {note.company.isin: note.company for note in degiro_2018_balance_notes}
    rows = [
        ("2018-10-31", "GG00B4L84979", "122", "1616.0000", "197152.00", "5.28"),
        ("2018-10-22", "US30303M1027", "21", "154.7600", "3249.96", "0.57"),
        ("2018-10-22", "US47215P1066", "140", "23.8900", "3344.60", "0.99"),
        ("2018-11-23", "IT0001447785", "877", "1.9000", "1666.30", "4.97"),
        ("2018-11-23", "IT0001447785", "228", "1.9000", "433.20", "0.25"),
        ("2018-12-03", "IL0011320343", "565", "310.0000", "175150.00", "5.15"),
        ("2018-12-31", "US9837931008", "41", "56.6000", "2320.60", "0.64"),
    ]
    return [
        AccountNote(
            date=datetime.date.fromisoformat(date),
            company=companies[isin],
            operation=BrokerOperation.BUY,
            quantity=Decimal(quantity),
            price=Decimal(price),
            value=Decimal(value),
            commission=Decimal(commission),
            broker=DEGIRO,
        )
        for date, isin, quantity, price, value, commission in rows
    ]


@pytest.fixture
def financial_information(degiro_2018_balance_notes, degiro_2018_account_notes):
    return FinancialInformation(
        name="NILES",
        surname="SMITH DONCIC",
        nif="123456789A",
        phone="",
        year=2019,
        balance_notes=degiro_2018_balance_notes,
        account_notes=degiro_2018_account_notes,
    )
