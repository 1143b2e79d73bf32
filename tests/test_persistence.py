from __future__ import annotations

import csv
import sqlite3
from pathlib import Path

import pytest

from nback_trainer.core import Modality, Mode, TrialOutcome
from nback_trainer.persistence import (
    CSV_HEADERS,
    SCHEMA_VERSION,
    CsvTrialExporter,
    ExporterChain,
    SqliteTrialExporter,
    csv_row,
    open_db,
)
from nback_trainer.recorder import TrialRecord


def _record(
    trial_number: int,
    *,
    outcome: TrialOutcome = TrialOutcome.NO_RESPONSE,
    keys: tuple[Modality, ...] = (),
    points: int = 0,
    rt_ms: float | None = None,
    color: bool = False,
) -> TrialRecord:
    return TrialRecord(
        trial_number=trial_number,
        timestamp_s=1.5 * (trial_number - 1) + 0.0004,
        mode=Mode.COMBINED,
        n=3,
        location_match_expected=False,
        color_match_expected=color,
        audio_match_expected=False,
        response_keys=keys,
        outcome=outcome,
        points=points,
        reaction_time_ms=rt_ms,
    )


def _sample_records() -> list[TrialRecord]:
    return [
        _record(1),
        _record(2, outcome=TrialOutcome.CORRECT, keys=(Modality.COLOR,), points=10, rt_ms=412.6, color=True),
        _record(
            3,
            outcome=TrialOutcome.FALSE_ALARM,
            keys=(Modality.LOCATION, Modality.COLOR),
            points=-10,
            rt_ms=300.2,
        ),
        _record(4, outcome=TrialOutcome.MISS_COLOR, points=-5, color=True),
    ]


def test_csv_row_formats_like_the_export_columns() -> None:
    rows = [csv_row(r) for r in _sample_records()]
    assert rows[0] == ["1", "0.000", "Combined", "3", "0", "False", "False", "False", "None", "NoResponse", "0"]
    assert rows[1][1] == "1.500"
    assert rows[1][8] == "C;"
    assert rows[1][10] == "413"
    assert rows[2][8] == "L;C;"
    assert rows[2][9] == "FalseAlarm"
    assert rows[3][9] == "Miss_Color"


def test_csv_exporter_writes_header_and_rows(tmp_path: Path) -> None:
    out_dir = tmp_path / "exports"
    exporter = CsvTrialExporter(out_dir)
    path = exporter.export(_sample_records())

    assert path.parent == out_dir
    assert path.name.startswith("PlayerData_") and path.suffix == ".csv"
    with path.open(newline="", encoding="utf-8") as f:
        rows = list(csv.reader(f))
    assert tuple(rows[0]) == CSV_HEADERS
    assert len(rows) == 5
    assert rows[2][9] == "Correct"


def test_csv_exporter_never_overwrites(tmp_path: Path) -> None:
    exporter = CsvTrialExporter(tmp_path)
    first = exporter.export(_sample_records())
    second = exporter.export(_sample_records()[:1])
    assert first != second
    assert first.exists() and second.exists()


def test_sqlite_migration_is_idempotent(tmp_path: Path) -> None:
    db = tmp_path / "results.sqlite3"
    conn = open_db(db)
    conn.close()
    conn = open_db(db)
    try:
        ver = conn.execute("PRAGMA user_version;").fetchone()[0]
        assert ver == SCHEMA_VERSION
        tables = {r[0] for r in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
        assert {"session", "metric", "trial"} <= tables
    finally:
        conn.close()


def test_sqlite_exporter_stores_trials_and_summary(tmp_path: Path) -> None:
    db = tmp_path / "nested" / "results.sqlite3"
    exporter = SqliteTrialExporter(db, app_version="test")
    session_id = exporter.export(_sample_records())
    second_id = exporter.export(_sample_records()[:2])
    assert second_id != session_id

    conn = sqlite3.connect(db)
    try:
        metrics = dict(
            conn.execute("SELECT key, value FROM metric WHERE session_id=?", (session_id,)).fetchall()
        )
        assert metrics["trials"] == "4"
        assert metrics["hits"] == "1"
        assert metrics["false_alarms"] == "2"
        assert metrics["misses"] == "1"
        assert metrics["score"] == "-5"
        assert metrics["max_n"] == "3"

        rows = conn.execute(
            "SELECT trial_number, timestamp_ms, response_keys, outcome, rt_ms FROM trial "
            "WHERE session_id=? ORDER BY trial_number",
            (session_id,),
        ).fetchall()
        assert rows[0] == (1, 0, "None", "NoResponse", None)
        assert rows[1] == (2, 1500, "C;", "Correct", 413)
        assert rows[2][2] == "L;C;"
    finally:
        conn.close()


def test_exporter_chain_stops_at_first_failure(tmp_path: Path) -> None:
    class Failing:
        def export(self, records: object) -> None:
            raise OSError("read-only")

    csv_dir = tmp_path / "csv"
    chain = ExporterChain(Failing(), CsvTrialExporter(csv_dir))
    with pytest.raises(OSError):
        chain.export(_sample_records())
    assert not csv_dir.exists()

    ok_chain = ExporterChain(CsvTrialExporter(csv_dir), SqliteTrialExporter(tmp_path / "r.sqlite3", app_version="t"))
    path, session_id = ok_chain.export(_sample_records())
    assert Path(path).exists()
    assert session_id == 1


def test_exporter_chain_retry_skips_exporters_that_succeeded(tmp_path: Path) -> None:
    class FailsOnce:
        def __init__(self) -> None:
            self.calls = 0

        def export(self, records: object) -> str:
            self.calls += 1
            if self.calls == 1:
                raise sqlite3.OperationalError("database is locked")
            return "stored"

    csv_dir = tmp_path / "csv"
    flaky = FailsOnce()
    chain = ExporterChain(CsvTrialExporter(csv_dir), flaky)
    records = _sample_records()

    with pytest.raises(sqlite3.Error):
        chain.export(records)
    path, stored = chain.export(records)
    assert stored == "stored"
    assert list(csv_dir.glob("*.csv")) == [Path(path)]

    # A different batch runs every exporter again.
    chain.export(records[:2])
    assert len(list(csv_dir.glob("*.csv"))) == 2
    assert flaky.calls == 3
