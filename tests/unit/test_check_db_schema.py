"""
Tests for the database schema check script.
"""

from __future__ import annotations

import json
import sqlite3
import sys
from pathlib import Path

import pytest

# Add scripts to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "scripts"))

from check_db_schema import format_report, main, run_check


@pytest.fixture
def db_path(tmp_path: Path) -> str:
    return str(tmp_path / "data" / "newsletter.db")


class TestRunCheck:
    def test_init_creates_schema(self, db_path: str) -> None:
        report = run_check(db_path, init=True)
        assert report.ok
        assert report.row_count == 0

    def test_missing_database_not_created(self, db_path: str) -> None:
        report = run_check(db_path)
        assert not report.ok
        assert not Path(db_path).exists()

    def test_format_mentions_missing_table(self, tmp_path: Path) -> None:
        path = str(tmp_path / "empty.db")
        sqlite3.connect(path).close()
        text = format_report(run_check(path), path)
        assert "does not exist" in text
        assert "FAILED" in text


class TestMain:
    def test_exit_codes(self, db_path: str) -> None:
        assert main(["--db", db_path]) == 1
        assert main(["--db", db_path, "--init"]) == 0
        assert main(["--db", db_path]) == 0

    def test_json_output(self, db_path: str, capsys: pytest.CaptureFixture[str]) -> None:
        main(["--db", db_path, "--init", "--json"])
        data = json.loads(capsys.readouterr().out)
        assert data["ok"] is True
        assert data["table_exists"] is True
        assert "email" in data["columns"]
