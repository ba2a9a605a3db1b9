#!/usr/bin/env python3

import argparse
import datetime
import logging
import sys
from pathlib import Path

from .aeat720 import create_aeat720_report
from .d6 import create_d6_form
from .errors import Broker2AeatError
from .importer import build_financial_information, load_statements
from .models import PersonalInformation
from .notes_view import print_notes, print_written_file

AEAT720_FILE_NAME = "fichero-720.txt"
D6_FILE_NAME = "d6.aforixm"


def main() -> None:
    """CLI entry point: parse statements, print them and write the tax forms."""
    default_year = datetime.date.today().year - 1

    parser = argparse.ArgumentParser(
        description='Generate AEAT model 720 and Aforix D-6 files from Degiro and Interactive Brokers statements'
    )
    parser.add_argument('files', nargs='+',
                        help='Statement files (Degiro PDF/CSV, Interactive Brokers HTML/CSV, or a ZIP with one of them)')
    parser.add_argument('--name', required=True, help='Given name of the filer')
    parser.add_argument('--surname', required=True, help='Surname(s) of the filer')
    parser.add_argument('--nif', required=True, help='Spanish tax identification number')
    parser.add_argument('--phone', default='', help='Contact phone, 9 digits (default: none)')
    parser.add_argument('--year', type=int, default=default_year,
                        help=f'Tax year to declare (default: {default_year})')
    parser.add_argument('--output-dir', default='.',
                        help='Directory for the generated files (default: current directory)')
    parser.add_argument('--no-720', action='store_true', help='Do not write the model 720 file')
    parser.add_argument('--no-d6', action='store_true', help='Do not write the D-6 file')
    parser.add_argument('--verbose', action='store_true', help='Log parser details')
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format='%(levelname)s: %(message)s')

    balance_notes, account_notes, failed = load_statements(args.files)
    if len(failed) == len(args.files):
        parser.error("None of the input files could be parsed")

    personal = PersonalInformation(
        name=args.name.upper(),
        surname=args.surname.upper(),
        nif=args.nif.upper(),
        phone=args.phone,
        year=args.year,
    )
    info = build_financial_information(personal, balance_notes, account_notes)
    print_notes(info)

    output_dir = Path(args.output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    # Forms are independent: a failure in one still writes the other
    status = 0
    forms = []
    if not args.no_720:
        forms.append(("Modelo 720", AEAT720_FILE_NAME, create_aeat720_report))
    if not args.no_d6:
        forms.append(("Aforix D-6", D6_FILE_NAME, create_d6_form))
    for label, file_name, render in forms:
        try:
            content = render(info)
        except Broker2AeatError as e:
            logging.error("Unable to generate %s: %s", label, e)
            status = 1
            continue
        path = output_dir / file_name
        path.write_bytes(content)
        print_written_file(label, str(path))

    if failed:
        logging.warning("Skipped %d file(s): %s", len(failed), ", ".join(failed))
        status = 1
    if status:
        sys.exit(status)
