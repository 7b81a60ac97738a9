"""
Tests for the feature store refresh script.
"""
import sys

import pytest

from scripts import refresh_feature_store


@pytest.fixture
def event_files(write_json, tmp_path, property_rows):
    return {
        "--transactions": write_json("property-transactions.json", []),
        "--listings": write_json("property-listings.json", []),
        "--engagement": write_json("property-engagement.json", []),
        "--catalogue": write_json("property-opportunities.json", property_rows),
        "--output-dir": tmp_path / "feature-store",
    }


def run_main(monkeypatch, files):
    argv = ["refresh_feature_store.py", "--no-macro"]
    for flag, value in files.items():
        argv.extend([flag, str(value)])
    monkeypatch.setattr(sys, "argv", argv)
    refresh_feature_store.main()


def test_refresh_writes_snapshot(monkeypatch, event_files, tmp_path, capsys):
    run_main(monkeypatch, event_files)

    assert (tmp_path / "feature-store" / "latest.json").exists()
    assert "Records:      3" in capsys.readouterr().out


def test_malformed_event_file_exits_cleanly(monkeypatch, event_files, tmp_path):
    broken = tmp_path / "broken-transactions.json"
    broken.write_text("[{\"propertyId\": ", encoding="utf-8")
    event_files["--transactions"] = broken

    with pytest.raises(SystemExit) as exc_info:
        run_main(monkeypatch, event_files)

    assert exc_info.value.code == 1
    assert not (tmp_path / "feature-store" / "latest.json").exists()


def test_missing_event_file_exits_cleanly(monkeypatch, event_files, tmp_path):
    event_files["--listings"] = tmp_path / "nowhere.json"

    with pytest.raises(SystemExit) as exc_info:
        run_main(monkeypatch, event_files)

    assert exc_info.value.code == 1
