from __future__ import annotations

import csv
import sqlite3
import time
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path

from .collaborators import TrialExporter
from .core import format_response_keys
from .recorder import TrialRecord
from .results import summarize_records

SCHEMA_VERSION = 1

CSV_HEADERS: tuple[str, ...] = (
    "TrialNumber",
    "Timestamp",
    "Mode",
    "N_Level",
    "PointsAwarded",
    "LocationMatchExpected",
    "ColorMatchExpected",
    "AuditoryMatchExpected",
    "UserResponseKey",
    "Outcome",
    "ReactionTime_ms",
)


def csv_row(record: TrialRecord) -> list[str]:
    rt = 0.0 if record.reaction_time_ms is None else record.reaction_time_ms
    return [
        str(record.trial_number),
        f"{record.timestamp_s:.3f}",
        record.mode.value,
        str(record.n),
        str(record.points),
        str(record.location_match_expected),
        str(record.color_match_expected),
        str(record.audio_match_expected),
        format_response_keys(record.response_keys),
        record.outcome.value,
        f"{rt:.0f}",
    ]


class CsvTrialExporter:
    """Writes one ``PlayerData_<timestamp>.csv`` per export into ``directory``."""

    def __init__(self, directory: Path) -> None:
        self._directory = Path(directory)

    @property
    def directory(self) -> Path:
        return self._directory

    def export(self, records: Sequence[TrialRecord]) -> Path:
        self._directory.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now().strftime("%Y-%m-%d_%H-%M-%S")
        path = self._directory / f"PlayerData_{stamp}.csv"
        suffix = 2
        while path.exists():
            path = self._directory / f"PlayerData_{stamp}_{suffix}.csv"
            suffix += 1

        with path.open("w", newline="", encoding="utf-8") as f:
            writer = csv.writer(f)
            writer.writerow(CSV_HEADERS)
            for record in records:
                writer.writerow(csv_row(record))
        return path


def open_db(path: Path) -> sqlite3.Connection:
    conn = sqlite3.connect(path)
    conn.execute("PRAGMA foreign_keys=ON;")
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    _migrate(conn)
    return conn


def _utc_now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(time.time()))


def _migrate(conn: sqlite3.Connection) -> None:
    row = conn.execute("PRAGMA user_version;").fetchone()
    ver = int(row[0]) if row else 0
    if ver >= SCHEMA_VERSION:
        return

    with conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS session (
                id INTEGER PRIMARY KEY,
                created_at_utc TEXT NOT NULL,
                app_version TEXT NOT NULL
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS metric (
                session_id INTEGER NOT NULL REFERENCES session(id) ON DELETE CASCADE,
                key TEXT NOT NULL,
                value TEXT NOT NULL,
                PRIMARY KEY (session_id, key)
            );
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS trial (
                id INTEGER PRIMARY KEY,
                session_id INTEGER NOT NULL REFERENCES session(id) ON DELETE CASCADE,
                trial_number INTEGER NOT NULL,
                timestamp_ms INTEGER NOT NULL,
                mode TEXT NOT NULL,
                n_level INTEGER NOT NULL,
                points INTEGER NOT NULL,
                location_expected INTEGER NOT NULL,
                color_expected INTEGER NOT NULL,
                audio_expected INTEGER NOT NULL,
                response_keys TEXT NOT NULL,
                outcome TEXT NOT NULL,
                rt_ms INTEGER
            );
            """
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_trial_session_seq ON trial(session_id, trial_number);")
        conn.execute(f"PRAGMA user_version={SCHEMA_VERSION};")


class SqliteTrialExporter:
    """Appends each exported session (trials + summary metrics) to a SQLite file."""

    def __init__(self, db_path: Path, *, app_version: str) -> None:
        self._db_path = Path(db_path)
        self._app_version = str(app_version)

    def export(self, records: Sequence[TrialRecord]) -> int:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = open_db(self._db_path)
        try:
            return self._insert_session(conn, records)
        finally:
            conn.close()

    def _insert_session(self, conn: sqlite3.Connection, records: Sequence[TrialRecord]) -> int:
        summary = summarize_records(records)
        with conn:
            cur = conn.execute(
                "INSERT INTO session(created_at_utc, app_version) VALUES (?, ?)",
                (_utc_now_iso(), self._app_version),
            )
            session_id = int(cur.lastrowid)

            mean_rt = "" if summary.mean_rt_ms is None else f"{summary.mean_rt_ms:.3f}"
            median_rt = "" if summary.median_rt_ms is None else f"{summary.median_rt_ms:.3f}"
            metrics = {
                "trials": str(summary.trials),
                "hits": str(summary.hits),
                "false_alarms": str(summary.false_alarms),
                "misses": str(summary.misses),
                "score": str(summary.final_score),
                "max_n": str(summary.max_n),
                "mean_rt_ms": mean_rt,
                "median_rt_ms": median_rt,
            }
            for k, v in metrics.items():
                conn.execute("INSERT INTO metric(session_id, key, value) VALUES (?, ?, ?)", (session_id, k, v))

            for rec in records:
                conn.execute(
                    """
                    INSERT INTO trial(
                        session_id, trial_number, timestamp_ms, mode, n_level, points,
                        location_expected, color_expected, audio_expected,
                        response_keys, outcome, rt_ms
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        session_id,
                        int(rec.trial_number),
                        int(round(rec.timestamp_s * 1000.0)),
                        rec.mode.value,
                        int(rec.n),
                        int(rec.points),
                        1 if rec.location_match_expected else 0,
                        1 if rec.color_match_expected else 0,
                        1 if rec.audio_match_expected else 0,
                        format_response_keys(rec.response_keys),
                        rec.outcome.value,
                        None if rec.reaction_time_ms is None else int(round(rec.reaction_time_ms)),
                    ),
                )

        return session_id


class ExporterChain:
    """Runs several exporters in order; the first failure propagates.

    Exporters that already succeeded for a batch are not run again when the
    same records are exported a second time, so a retry only repeats the
    ones that failed.
    """

    def __init__(self, *exporters: TrialExporter) -> None:
        self._exporters = exporters
        self._batch: tuple[TrialRecord, ...] | None = None
        self._results: dict[int, object] = {}

    def export(self, records: Sequence[TrialRecord]) -> list[object]:
        batch = tuple(records)
        if batch != self._batch:
            self._batch = batch
            self._results = {}
        for idx, exporter in enumerate(self._exporters):
            if idx not in self._results:
                self._results[idx] = exporter.export(records)
        return [self._results[idx] for idx in range(len(self._exporters))]
