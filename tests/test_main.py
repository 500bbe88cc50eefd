import json

import pytest

from billtracker import main as cli
from billtracker.core.app import BillTrackerApp

CONFIG = """
cache:
  directory: data
sessions:
  directory: sessions
providers:
  - type: manual
    entries:
      - name: Rent
        amount: 1500
        due_date: "2099-03-01"
        category: other
      - name: Card
        amount: 80
        due_date: "2001-01-01"
        category: credit
"""

BROKEN = """
cache:
  directory: data
providers:
  - type: api
    id: broken
"""


@pytest.fixture(autouse=True)
def keep_test_logging(monkeypatch):
    """The CLI reconfigures root logging; leave pytest's handlers alone."""
    monkeypatch.setattr(BillTrackerApp, "setup_logging", lambda self: None)


def _config(tmp_path, text):
    path = tmp_path / "config.yaml"
    path.write_text(text)
    return str(path)


def test_json_output(tmp_path, capsys):
    code = cli.main(["--config", _config(tmp_path, CONFIG), "--format", "json"])
    assert code == 0
    data = json.loads(capsys.readouterr().out)
    assert [d["provider"] for d in data] == ["Card", "Rent"]
    assert (tmp_path / "data" / "manual.json").exists()


def test_filters(tmp_path, capsys):
    path = _config(tmp_path, CONFIG)
    cli.main(["--config", path, "--format", "json", "--overdue"])
    assert [d["provider"] for d in json.loads(capsys.readouterr().out)] == ["Card"]

    cli.main(["--config", path, "--format", "json", "--category", "other"])
    assert [d["provider"] for d in json.loads(capsys.readouterr().out)] == ["Rent"]


def test_text_output(tmp_path, capsys):
    assert cli.main(["--config", _config(tmp_path, CONFIG)]) == 0
    out = capsys.readouterr().out
    assert "=== BILL SUMMARY ===" in out
    assert "Total Due: $1580.00" in out


def test_every_source_failing_exits_nonzero(tmp_path, capsys):
    """No data at all because every source failed is distinguishable from an empty list."""
    code = cli.main(["--config", _config(tmp_path, BROKEN), "--format", "csv"])
    assert code == 1
    assert capsys.readouterr().out.startswith("Provider,Amount")


def test_provider_filter_with_no_match(tmp_path, capsys):
    code = cli.main(["--config", _config(tmp_path, CONFIG), "--provider", "nothing-here"])
    assert code == 0
    assert "No bills found" in capsys.readouterr().out
