"""CLI entry point: exit codes, per-run outputs, stdout CSV blob."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import pytest

from leads_pipeline import cli
from leads_pipeline.collector import BatchImageCollector
from leads_pipeline.extraction_service import ExtractionClient
from leads_pipeline.orchestrator import PipelineOrchestrator
from leads_pipeline.writer import records_from_csv, records_to_csv

from conftest import RECORD_JSON, FakeOpenAI, FakeRasterizer


@pytest.fixture
def workdir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    # Pas de .env parasite: find_dotenv part du dossier courant.
    monkeypatch.chdir(tmp_path)
    for var in ("RENDER_SCALE", "JPEG_QUALITY", "CSV_FILENAME", "PIPELINE_OUT_ROOT"):
        monkeypatch.delenv(var, raising=False)
    return tmp_path


def _use_fake_service(monkeypatch: pytest.MonkeyPatch, fake: FakeOpenAI) -> None:
    class FakeFactory:
        @staticmethod
        def from_config(cfg):
            return PipelineOrchestrator(
                collector=BatchImageCollector(FakeRasterizer({})),
                client=ExtractionClient(client=fake, deployment="gpt-test"),
            )

    monkeypatch.setattr(cli, "PipelineOrchestrator", FakeFactory)


def _run_main(monkeypatch: pytest.MonkeyPatch, *args: str) -> None:
    monkeypatch.setattr(sys, "argv", ["leads-pipeline", *args])
    cli.main()


def _image(workdir: Path, name: str = "scan.png") -> Path:
    path = workdir / name
    path.write_bytes(b"\x89PNG fake")
    return path


class TestSuccess:
    def test_writes_csv_and_status(self, workdir: Path, monkeypatch, capsys):
        _use_fake_service(monkeypatch, FakeOpenAI(RECORD_JSON))
        out_root = workdir / "out"

        _run_main(monkeypatch, str(_image(workdir)), "--out-root", str(out_root))

        (run_dir,) = [p for p in out_root.iterdir() if p.is_dir()]
        csv_path = run_dir / "hsu_leads_data.csv"
        records = records_from_csv(csv_path.read_text(encoding="utf-8"))
        assert [r.full_name for r in records] == ["Nguyễn Văn A", "Trần Thị B"]

        status = json.loads((run_dir / "status.json").read_text(encoding="utf-8"))
        assert status["ok"] is True
        assert status["record_count"] == 2
        assert status["inputs"] == ["scan.png"]
        assert not (run_dir / "errors.json").exists()
        assert capsys.readouterr().out == ""

    def test_custom_csv_filename(self, workdir: Path, monkeypatch):
        _use_fake_service(monkeypatch, FakeOpenAI("[]"))
        monkeypatch.setenv("CSV_FILENAME", "leads.csv")
        out_root = workdir / "out"

        _run_main(monkeypatch, str(_image(workdir)), "--out-root", str(out_root))

        (run_dir,) = [p for p in out_root.iterdir() if p.is_dir()]
        assert (run_dir / "leads.csv").exists()

    def test_stdout_contains_only_csv(self, workdir: Path, monkeypatch, capsys):
        _use_fake_service(monkeypatch, FakeOpenAI(RECORD_JSON))
        out_root = workdir / "out"

        _run_main(monkeypatch, str(_image(workdir)), "--out-root", str(out_root), "--stdout")

        captured = capsys.readouterr()
        (run_dir,) = [p for p in out_root.iterdir() if p.is_dir()]
        records = records_from_csv((run_dir / "hsu_leads_data.csv").read_text(encoding="utf-8"))
        assert captured.out == records_to_csv(records) + "\n"
        assert "extrait(s)" in captured.err


class TestFailures:
    def test_service_failure_exits_1_with_errors_json(self, workdir: Path, monkeypatch, capsys):
        _use_fake_service(monkeypatch, FakeOpenAI(error=RuntimeError("Error code: 429")))
        out_root = workdir / "out"

        with pytest.raises(SystemExit) as excinfo:
            _run_main(monkeypatch, str(_image(workdir)), "--out-root", str(out_root))
        assert excinfo.value.code == 1

        (run_dir,) = [p for p in out_root.iterdir() if p.is_dir()]
        errors = json.loads((run_dir / "errors.json").read_text(encoding="utf-8"))
        assert errors["kind"] == "RateLimited"
        status = json.loads((run_dir / "status.json").read_text(encoding="utf-8"))
        assert status["ok"] is False
        assert not (run_dir / "hsu_leads_data.csv").exists()
        assert capsys.readouterr().out == ""

    def test_no_inputs_exits_1_without_run_dir(self, workdir: Path, monkeypatch, capsys):
        fake = FakeOpenAI("[]")
        _use_fake_service(monkeypatch, fake)
        out_root = workdir / "out"

        with pytest.raises(SystemExit) as excinfo:
            _run_main(monkeypatch, "--out-root", str(out_root))
        assert excinfo.value.code == 1
        assert list(out_root.iterdir()) == []
        assert fake.responses.requests == []
        assert "select one or more files" in capsys.readouterr().err

    def test_only_unsupported_inputs(self, workdir: Path, monkeypatch):
        _use_fake_service(monkeypatch, FakeOpenAI("[]"))
        notes = workdir / "notes.txt"
        notes.write_text("hello")

        with pytest.raises(SystemExit) as excinfo:
            _run_main(monkeypatch, str(notes), "--out-root", str(workdir / "out"))
        assert excinfo.value.code == 1

    def test_invalid_config_exits_1(self, workdir: Path, monkeypatch, capsys):
        _use_fake_service(monkeypatch, FakeOpenAI("[]"))

        with pytest.raises(SystemExit) as excinfo:
            _run_main(monkeypatch, str(_image(workdir)), "--out-root", str(workdir / "out"), "--scale", "0")
        assert excinfo.value.code == 1
        assert "Erreur de configuration" in capsys.readouterr().err

    def test_keyboard_interrupt_exits_130(self, workdir: Path, monkeypatch):
        _use_fake_service(monkeypatch, FakeOpenAI("[]"))

        def interrupted(coro):
            coro.close()
            raise KeyboardInterrupt

        monkeypatch.setattr(asyncio, "run", interrupted)

        with pytest.raises(SystemExit) as excinfo:
            _run_main(monkeypatch, str(_image(workdir)), "--out-root", str(workdir / "out"))
        assert excinfo.value.code == 130
