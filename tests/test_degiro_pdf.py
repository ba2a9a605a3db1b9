import datetime
from decimal import Decimal

import pytest

from broker2aeat.degiro_pdf import (
    BALANCE_HEADER_BEGIN,
    BALANCE_HEADER_END,
    DegiroParser,
    _Cursor,
    find_sections,
    parse_account_note,
    parse_account_notes,
    parse_balance_note,
    parse_balance_notes,
    parse_company_info,
    parse_date,
    parse_earnings,
    read_degiro_pdf,
)
from broker2aeat.errors import GrammarError, UnknownOperationError
from broker2aeat.models import BrokerOperation, CompanyInfo


class TestGrammarRules:
    def test_date(self):
        assert parse_date(_Cursor("31/10/2018")) == datetime.date(2018, 10, 31)

    def test_invalid_date(self):
        with pytest.raises(GrammarError, match="date concept"):
            parse_date(_Cursor("31/02/2018"))

    def test_company_name_on_several_lines(self):
        cursor = _Cursor("JD.COM INC. -\nAMERICA\nUS47215P1066\nC")
        assert parse_company_info(cursor) == CompanyInfo("JD.COM INC. - AMERICA", "US47215P1066")
        assert cursor.rest == "C"

    def test_company_without_isin(self):
        with pytest.raises(GrammarError, match="company info"):
            parse_company_info(_Cursor("NO ISIN HERE\n1234"))

    def test_earnings_present(self):
        cursor = _Cursor("\n-12,50\n")
        assert parse_earnings(cursor) == Decimal("-12.50")
        assert cursor.rest == "\n"

    def test_earnings_absent_leaves_cursor(self):
        cursor = _Cursor("\n22/10/2018")
        assert parse_earnings(cursor) is None
        assert cursor.pos == 0


class TestAccountNote:
    NOTE = "31/10/2018\nBURFORD CAP LD\nGG00B4L84979\nC\n122\n1.616,0000\n197.152,00\n2.247,93\n5,28\n0,0114"

    def test_parse(self, degiro_broker):
        note = parse_account_note(_Cursor(self.NOTE), degiro_broker)
        assert note.date == datetime.date(2018, 10, 31)
        assert note.company == CompanyInfo("BURFORD CAP LD", "GG00B4L84979")
        assert note.operation is BrokerOperation.BUY
        assert note.quantity == Decimal("122")
        assert str(note.price) == "1616.0000"
        assert note.value == Decimal("197152.00")
        assert note.commission == Decimal("5.28")
        assert note.broker == degiro_broker

    def test_sell_lowercase(self, degiro_broker):
        note = parse_account_note(_Cursor(self.NOTE.replace("\nC\n", "\nv\n")), degiro_broker)
        assert note.operation is BrokerOperation.SELL

    def test_unknown_operation(self, degiro_broker):
        with pytest.raises(UnknownOperationError):
            parse_account_note(_Cursor(self.NOTE.replace("\nC\n", "\nX\n")), degiro_broker)

    def test_with_earnings(self, degiro_broker):
        notes = parse_account_notes("\n" + self.NOTE + "\n+3,20" + "\n" + self.NOTE, degiro_broker)
        assert len(notes) == 2

    def test_trailing_garbage_rejected(self, degiro_broker):
        with pytest.raises(GrammarError):
            parse_account_notes("\n" + self.NOTE + "\nsomething else", degiro_broker)


class TestBalanceNote:
    NOTE = "2.247,00\n1.656,0000\nGBX\n122\nLSE\nStock\nBURFORD CAP LD\nGG00B4L84979\n"

    def test_parse(self, degiro_broker):
        note = parse_balance_note(_Cursor(self.NOTE), degiro_broker)
        assert note.company == CompanyInfo("BURFORD CAP LD", "GG00B4L84979")
        assert note.market == "LSE"
        assert note.quantity == Decimal("122")
        assert note.currency == "GBX"
        assert str(note.price) == "1656.0000"
        assert note.value_in_euro == Decimal("2247.00")

    def test_back_to_back(self, degiro_broker):
        assert len(parse_balance_notes(self.NOTE * 3 + "\n\n", degiro_broker)) == 3

    def test_empty_market(self, degiro_broker):
        text = self.NOTE.replace("\nLSE\n", "\n\n")
        assert parse_balance_note(_Cursor(text), degiro_broker).market == ""

    def test_short_currency(self, degiro_broker):
        with pytest.raises(GrammarError):
            parse_balance_note(_Cursor("2.247,00\n1.656,0000\nGB"), degiro_broker)


class TestFindSections:
    def test_end_marker(self):
        assert find_sections("xBEGINabc\nENDtail", "BEGIN", "END") == ["abc"]

    def test_without_end_marker(self):
        assert find_sections("BEGINabc", "BEGIN", "END") == ["abc"]

    def test_repeated_begin(self):
        assert find_sections("BEGINa1BEGINb2\nEND", "BEGIN", "END") == ["a1", "b2"]

    def test_end_before_section_ignored(self):
        text = "Amsterdam, x" + BALANCE_HEADER_BEGIN + "data"
        assert find_sections(text, BALANCE_HEADER_BEGIN, BALANCE_HEADER_END) == ["data"]

    def test_no_begin(self):
        assert find_sections("nothing", "BEGIN", "END") == []


class TestDegiroReport:
    def test_parse_2018_report(self, degiro_2018_text, degiro_broker, degiro_2018_balance_notes,
                               degiro_2018_account_notes):
        balance_notes, account_notes = DegiroParser(degiro_2018_text, degiro_broker).parse_pdf_content()
        assert balance_notes == degiro_2018_balance_notes
        assert account_notes == degiro_2018_account_notes

    def test_no_sections(self, degiro_broker):
        assert DegiroParser("Informe Anual 2018", degiro_broker).parse_pdf_content() == ([], [])

    def test_read_pdf_removes_repeated_headers(self, degiro_2018_pdf, degiro_2018_text):
        assert read_degiro_pdf(degiro_2018_pdf) == degiro_2018_text + "\n"

    def test_pdf_end_to_end(self, degiro_2018_pdf, degiro_broker, degiro_2018_balance_notes,
                            degiro_2018_account_notes):
        text = read_degiro_pdf(degiro_2018_pdf)
        balance_notes, account_notes = DegiroParser(text, degiro_broker).parse_pdf_content()
        assert balance_notes == degiro_2018_balance_notes
        assert account_notes == degiro_2018_account_notes
