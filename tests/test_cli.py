import logging
import sys

import pytest

from broker2aeat.cli import AEAT720_FILE_NAME, D6_FILE_NAME, main


def _argv(*files, output_dir, extra=()):
    return [
        "broker2aeat",
        *[str(path) for path in files],
        "--name", "niles",
        "--surname", "smith doncic",
        "--nif", "123456789a",
        "--year", "2021",
        "--output-dir", str(output_dir),
        *extra,
    ]


class TestMainCLI:
    def test_writes_both_forms(self, capsys, monkeypatch, tmp_path, ib_csv_path):
        output_dir = tmp_path / "out"
        monkeypatch.setattr(sys, "argv", _argv(ib_csv_path, output_dir=output_dir))
        main()
        out = capsys.readouterr().out
        assert "SMITH DONCIC NILES (123456789A) - ejercicio 2021" in out
        assert "Posiciones a fin de ejercicio" in out
        assert "<-- submit" in out

        report = (output_dir / AEAT720_FILE_NAME).read_bytes()
        assert len(report.split(b"\n")) == 5
        assert report[4:8] == b"2021"
        assert report[17:35] == b"SMITH DONCIC NILES"
        form = (output_dir / D6_FILE_NAME).read_bytes()
        assert b"<Datos>SMITH DONCIC NILES</Datos>" in form
        assert b"<Datos>123456789A</Datos>" in form

    def test_skip_forms(self, monkeypatch, tmp_path, ib_csv_path):
        monkeypatch.setattr(sys, "argv", _argv(ib_csv_path, output_dir=tmp_path, extra=["--no-d6"]))
        main()
        assert (tmp_path / AEAT720_FILE_NAME).exists()
        assert not (tmp_path / D6_FILE_NAME).exists()

    def test_several_statements(self, capsys, monkeypatch, tmp_path, ib_csv_path, degiro_2019_csv_path):
        monkeypatch.setattr(sys, "argv", _argv(degiro_2019_csv_path, ib_csv_path, output_dir=tmp_path))
        main()
        report = (tmp_path / AEAT720_FILE_NAME).read_bytes()
        # summary + 10 Degiro + 3 Interactive Brokers positions
        assert len(report.split(b"\n")) == 15
        assert "Operaciones" in capsys.readouterr().out

    def test_failed_file_exit_status(self, monkeypatch, tmp_path, ib_csv_path, caplog):
        broken = tmp_path / "broken.csv"
        broken.write_text("nothing useful\n", encoding="utf-8")
        monkeypatch.setattr(sys, "argv", _argv(broken, ib_csv_path, output_dir=tmp_path))
        with caplog.at_level(logging.WARNING), pytest.raises(SystemExit) as excinfo:
            main()
        assert excinfo.value.code == 1
        assert (tmp_path / AEAT720_FILE_NAME).exists()
        assert "Skipped 1 file(s)" in caplog.text

    def test_all_files_failed(self, capsys, monkeypatch, tmp_path):
        missing = tmp_path / "missing.pdf"
        monkeypatch.setattr(sys, "argv", _argv(missing, output_dir=tmp_path))
        with pytest.raises(SystemExit) as excinfo:
            main()
        assert excinfo.value.code == 2
        assert "None of the input files could be parsed" in capsys.readouterr().err
        assert not (tmp_path / AEAT720_FILE_NAME).exists()

    def test_unencodable_name_keeps_other_form(self, monkeypatch, tmp_path, ib_csv_path, caplog):
        argv = _argv(ib_csv_path, output_dir=tmp_path)
        argv[argv.index("niles")] = "李"
        monkeypatch.setattr(sys, "argv", argv)
        with caplog.at_level(logging.ERROR), pytest.raises(SystemExit) as excinfo:
            main()
        assert excinfo.value.code == 1
        assert "Unable to generate Modelo 720" in caplog.text
        assert not (tmp_path / AEAT720_FILE_NAME).exists()
        assert (tmp_path / D6_FILE_NAME).exists()

    def test_missing_required_argument(self, monkeypatch, ib_csv_path):
        monkeypatch.setattr(sys, "argv", ["broker2aeat", str(ib_csv_path), "--name", "niles"])
        with pytest.raises(SystemExit):
            main()
