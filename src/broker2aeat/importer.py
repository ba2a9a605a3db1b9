import io
import logging
import re
import zipfile
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

from .degiro_csv import DegiroCSVParser, is_degiro_csv
from .degiro_pdf import DegiroParser, read_degiro_pdf
from .errors import Broker2AeatError, UnsupportedInputError
from .ib_csv import IBCSVParser, is_ib_csv
from .ib_html import IBParser
from .models import AccountNote, BalanceNote, Brokers, FinancialInformation, PersonalInformation
from .validation import check_duplicate_positions, check_personal_information

PDF_MAGIC = b"%PDF"
ZIP_MAGIC = b"PK\x03\x04"
_HTML_RE = re.compile(rb"\s*(?:<!doctype\s+html|<html)", re.IGNORECASE)

Notes = Tuple[List[BalanceNote], List[AccountNote]]


class ContentType(Enum):
    PDF = "pdf"
    HTML = "html"
    ZIP = "zip"
    TEXT = "text"


def sniff_content_type(content: bytes) -> ContentType:
    """Content type from magic bytes; anything unrecognised is treated as text."""
    if content.startswith(ZIP_MAGIC):
        return ContentType.ZIP
    if content.startswith(PDF_MAGIC):
        return ContentType.PDF
    if _HTML_RE.match(content.lstrip(b"\xef\xbb\xbf")):
        return ContentType.HTML
    return ContentType.TEXT


def unzip_single_entry(content: bytes) -> bytes:
    """Content of the only file inside a ZIP archive.

    Raises:
        UnsupportedInputError: if the archive is invalid or does not hold exactly one file.
    """
    try:
        with zipfile.ZipFile(io.BytesIO(content)) as archive:
            entries = [info for info in archive.infolist() if not info.is_dir()]
            if len(entries) != 1:
                raise UnsupportedInputError(
                    f"ZIP archive must contain exactly one file, found {len(entries)}"
                )
            logging.debug("Unpacking %s from ZIP archive", entries[0].filename)
            return archive.read(entries[0])
    except zipfile.BadZipFile as e:
        raise UnsupportedInputError(f"Invalid ZIP archive: {e}") from e


def _decode_text(content: bytes) -> str:
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise UnsupportedInputError(f"Text content is not valid UTF-8: {e}") from e


def parse_statement(content: bytes, brokers: Optional[Brokers] = None) -> Notes:
    """Parse one statement file of any supported broker and format.

    Magic bytes choose between ZIP, PDF (Degiro report) and HTML (Interactive
    Brokers); other content is read as CSV and told apart by its header. A ZIP
    holding a single file is unpacked and the content sniffed again.

    Args:
        content: Raw file bytes.
        brokers: Broker identities attached to the notes; defaults to ``Brokers()``.

    Returns:
        Tuple of (balance_notes, account_notes).

    Raises:
        Broker2AeatError: if the content is unsupported or does not parse.
    """
    brokers = brokers or Brokers()
    content_type = sniff_content_type(content)
    logging.debug("Detected content type: %s", content_type.value)

    if content_type is ContentType.ZIP:
        return parse_statement(unzip_single_entry(content), brokers)
    if content_type is ContentType.PDF:
        return DegiroParser(read_degiro_pdf(content), brokers.degiro).parse_pdf_content()
    if content_type is ContentType.HTML:
        return IBParser(_decode_text(content), brokers.interactive_brokers).parse_html_content()

    text = _decode_text(content)
    if is_degiro_csv(text):
        return DegiroCSVParser(text, brokers.degiro).parse_csv(), []
    if is_ib_csv(text):
        return IBCSVParser(text, brokers.interactive_brokers).parse_csv_content()
    raise UnsupportedInputError("Unrecognised statement format")


def load_statements(
    paths: Sequence[Union[str, Path]],
    brokers: Optional[Brokers] = None,
) -> Tuple[List[BalanceNote], List[AccountNote], List[str]]:
    """Parse several statement files in order and concatenate their notes.

    A file that fails to read or parse is logged and contributes nothing; the
    notes of the other files are kept.

    Args:
        paths: Statement files.
        brokers: Broker identities; defaults to ``Brokers()``.

    Returns:
        Tuple of (balance_notes, account_notes, failed_paths).
    """
    balance_notes: List[BalanceNote] = []
    account_notes: List[AccountNote] = []
    failed: List[str] = []
    for path in paths:
        try:
            content = Path(path).read_bytes()
            balances, accounts = parse_statement(content, brokers)
        except (OSError, Broker2AeatError) as e:
            logging.error("Unable to process %s: %s", path, e)
            failed.append(str(path))
            continue
        logging.info("%s: %d position(s), %d transaction(s)", path, len(balances), len(accounts))
        balance_notes.extend(balances)
        account_notes.extend(accounts)
    check_duplicate_positions(balance_notes)
    return balance_notes, account_notes, failed


def build_financial_information(
    personal: PersonalInformation,
    balance_notes: List[BalanceNote],
    account_notes: List[AccountNote],
) -> FinancialInformation:
    """Combine filer identity and parsed notes into the record the form writers consume."""
    check_personal_information(personal)
    return FinancialInformation(
        name=personal.name,
        surname=personal.surname,
        nif=personal.nif,
        phone=personal.phone,
        year=personal.year,
        balance_notes=list(balance_notes),
        account_notes=list(account_notes),
    )
