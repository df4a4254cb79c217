import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from super_bank.cli import app
from super_bank.persistence import SqlTagStore

from tests.helpers.db import HDFC_MAPPING, HDFC_RECORDS, SBI_MAPPING, SBI_RECORDS

runner = CliRunner()


# ---- Helpers -----------------------------------------------------------------


def _write_json(path: Path, doc) -> str:
    path.write_text(json.dumps(doc), encoding="utf-8")
    return str(path)


def _ok(args, **kw):
    result = runner.invoke(app, args, **kw)
    assert result.exit_code == 0, result.output
    return result


@pytest.fixture
def db_url(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> str:
    """A migrated SQLite file with two banks imported through the CLI itself."""

    # Keep the developer's .env out of the picture.
    monkeypatch.chdir(tmp_path)
    url = f"sqlite+pysqlite:///{tmp_path / 'cli.db'}"
    monkeypatch.setenv("SUPER_BANK_DATABASE_URL", url)
    monkeypatch.setenv("SUPER_BANK_USER_ID", "u1")
    monkeypatch.setenv("SUPER_BANK_INGEST_RETRY_DELAY", "0")

    _ok(["init-db"])
    _ok(["bank-set", _write_json(tmp_path / "hdfc.json", {"id": "hdfc", "bankName": "HDFC Bank", **HDFC_MAPPING})])
    _ok(["bank-set", _write_json(tmp_path / "sbi.json", {"id": "sbi", "bankName": "SBI", **SBI_MAPPING})])
    _ok(["import", _write_json(tmp_path / "hdfc-tx.json", HDFC_RECORDS), "--bank-id", "hdfc"])
    _ok(["import", _write_json(tmp_path / "sbi-tx.json", SBI_RECORDS), "--bank-id", "sbi"])
    return url


# ---- Read commands -----------------------------------------------------------


def test_help_lists_commands():
    result = _ok(["--help"])
    for cmd in ("summary", "rows", "tag-apply", "tags-summary"):
        assert cmd in result.output


def test_summary_by_bank_with_total_line(db_url):
    lines = _ok(["summary"]).stdout.splitlines()
    assert lines[0].startswith("label\ttransactions\tcredit")
    assert lines[1] == "HDFC Bank\t2\t1,234.50\t500.00\t734.50\t1,734.50\t0/2"
    assert lines[2] == "SBI\t1\t0.00\t200.00\t-200.00\t200.00\t0/1"
    assert lines[3] == "TOTAL\t3\t1,234.50\t700.00\t534.50\t1,934.50\t0/3"


def test_summary_honours_filters(db_url):
    lines = _ok(["summary", "--group-by", "account", "--dr-cr", "dr"]).stdout.splitlines()
    assert lines[1].startswith("50100 - HDFC Bank\t1\t")
    assert lines[-1].startswith("TOTAL\t2\t0.00\t700.00")


def test_rows_sorted_and_filtered(db_url):
    lines = _ok(["rows", "--sort", "Amount", "--desc", "--ids"]).stdout.splitlines()
    assert lines[0] == "id\tDate\tDescription\tReference No.\tAmount\tDr./Cr.\tBalance\tTags"
    assert [line.split("\t")[0] for line in lines[1:]] == ["h1", "h2", "s1"]
    assert lines[1].startswith("h1\t2024-01-05\tSALARY JAN\tREF001\t1,234.50\tCR")

    lines = _ok(["rows", "--bank", "SBI"]).stdout.splitlines()
    assert len(lines) == 2
    assert lines[1].startswith("2024-01-10\tATM WITHDRAWAL")

    lines = _ok(["rows", "--from", "2024-01-06", "--limit", "1"]).stdout.splitlines()
    assert len(lines) == 2
    assert "SWIGGY ORDER" in lines[1]


# ---- Tag commands ------------------------------------------------------------


def test_tag_create_and_duplicate(db_url):
    assert "Created tag Food" in _ok(["tag-create", "Food"]).stdout
    result = runner.invoke(app, ["tag-create", "food"])
    assert result.exit_code == 1
    assert "already exists" in result.output
    result = runner.invoke(app, ["tag-create", "bad#name"])
    assert result.exit_code == 1
    assert "Invalid tag name" in result.output
    assert "\tFood\t" in _ok(["tags"]).stdout


def test_tag_apply_then_summaries(db_url):
    result = _ok(["tag-apply", "--tag", "Food", "--match", "swiggy", "--create", "--yes"])
    assert "1 transaction(s) match." in result.stdout
    assert "1 succeeded, 0 failed" in result.stdout

    lines = _ok(["summary", "--group-by", "tag"]).stdout.splitlines()
    assert lines[1] == "Food\t1\t0.00\t500.00\t-500.00\t500.00\t1/0"
    assert lines[-1].startswith("TOTAL\t3\t")

    doc = json.loads(_ok(["tags-summary", "--json"]).stdout)
    assert [(d["tagName"], d["debit"], d["transactionCount"]) for d in doc] == [("Food", 500.0, 1)]
    assert doc[0]["bankBreakdown"]["HDFC Bank"]["accounts"] == ["50100"]

    lines = _ok(["rows", "--tag", "Food"]).stdout.splitlines()
    assert len(lines) == 2
    assert lines[1].endswith("\tFood")


def test_tag_apply_by_id_needs_confirmation(db_url):
    _ok(["tag-create", "Rent"])
    result = runner.invoke(app, ["tag-apply", "--tag", "rent", "--id", "s1"], input="n\n")
    assert result.exit_code == 1
    assert "Aborted." in result.output

    result = _ok(["tag-apply", "--tag", "rent", "--id", "s1", "--id", "h1"], input="y\n")
    assert "2 succeeded, 0 failed" in result.stdout


def test_tag_apply_unknown_tag_without_create(db_url):
    result = runner.invoke(app, ["tag-apply", "--tag", "Nope", "--match", "x", "--yes"])
    assert result.exit_code == 1
    assert "unknown tag" in result.output


def test_tag_remove_all(db_url):
    _ok(["tag-apply", "--tag", "Food", "--match", "order", "--create", "--yes"])
    result = _ok(["tag-remove", "--tag", "food", "--all", "--yes"])
    assert "1 succeeded, 0 failed" in result.stdout
    lines = _ok(["rows", "--tagged"]).stdout.splitlines()
    assert len(lines) == 1


def test_tag_update_and_delete(db_url):
    _ok(["tag-apply", "--tag", "Food", "--match", "swiggy", "--create", "--yes"])
    (food,) = SqlTagStore("u1", database_url=db_url).list_tags()

    assert "Updated tag Eating Out" in _ok(["tag-update", food.id, "--name", "Eating Out"]).stdout
    result = runner.invoke(app, ["tag-update", "missing", "--color", "#000000"])
    assert result.exit_code == 1
    assert "tag not found" in result.output

    result = _ok(["tag-delete", food.id, "--yes"])
    assert "updated 1 transaction(s)" in result.stdout
    assert _ok(["tags"]).stdout == ""
    assert len(_ok(["rows", "--tagged"]).stdout.splitlines()) == 1


# ---- Errors ------------------------------------------------------------------


def test_missing_user_id_is_reported(db_url, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("SUPER_BANK_USER_ID")
    result = runner.invoke(app, ["summary"])
    assert result.exit_code == 1
    assert "Error: no user id" in result.output


def test_malformed_setting_is_reported(db_url, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("SUPER_BANK_INGEST_MAX_RETRIES", "lots")
    result = runner.invoke(app, ["rows"])
    assert result.exit_code == 1
    assert "SUPER_BANK_INGEST_MAX_RETRIES must be an integer" in result.output


def test_invalid_filter_is_reported(db_url):
    result = runner.invoke(app, ["rows", "--tagged", "--untagged"])
    assert result.exit_code == 1
    assert "mutually exclusive" in result.output


def test_import_rejects_unknown_bank(db_url, tmp_path: Path):
    result = runner.invoke(app, ["import", _write_json(tmp_path / "x.json", [{"id": "z"}]), "--bank-id", "nope"])
    assert result.exit_code == 1
    assert "unknown bank id" in result.output


def test_env_file_is_loaded(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.chdir(tmp_path)
    url = f"sqlite+pysqlite:///{tmp_path / 'dotenv.db'}"
    (tmp_path / ".env").write_text(f"SUPER_BANK_DATABASE_URL={url}\n", encoding="utf-8")
    _ok(["init-db"])
    assert (tmp_path / "dotenv.db").exists()
