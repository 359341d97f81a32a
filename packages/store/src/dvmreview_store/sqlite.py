"""SQLiteStore: local file-based job history.

Schema:
  jobs       one row per published job request, keyed by event id.
  responses  one row per worker response, keyed by event id; re-saving a
             response updates its payment state in place.
"""

from __future__ import annotations

import json
import sqlite3

from dvmreview_store.base import BaseStore
from dvmreview_store.models import JobRecord, ResponseRecord

_SCHEMA = """
CREATE TABLE IF NOT EXISTS jobs (
    event_id     TEXT PRIMARY KEY,
    pubkey       TEXT NOT NULL,
    created_at   INTEGER NOT NULL,
    kind         INTEGER NOT NULL,
    job_type     TEXT,
    bid          TEXT,
    relays_json  TEXT DEFAULT '[]',
    files_json   TEXT DEFAULT '[]',
    content      TEXT,
    status       TEXT DEFAULT 'published'
);
CREATE TABLE IF NOT EXISTS responses (
    event_id       TEXT PRIMARY KEY,
    job_id         TEXT NOT NULL,
    author         TEXT,
    created_at     INTEGER,
    kind           INTEGER,
    content        TEXT,
    amount_msats   INTEGER,
    invoice        TEXT,
    payment_state  TEXT DEFAULT 'unpaid',
    seq            INTEGER
);
CREATE INDEX IF NOT EXISTS idx_jobs_created ON jobs (created_at);
CREATE INDEX IF NOT EXISTS idx_responses_job ON responses (job_id);
"""


class SQLiteStore(BaseStore):
    """Stores job history in a local SQLite database file.

    The database file path defaults to `.dvmreview.db` in the current working
    directory. Configure via .dvmreview.yml: `store_path: /path/to/dvmreview.db`.
    """

    def __init__(self, db_path: str = ".dvmreview.db"):
        self._conn = sqlite3.connect(db_path)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    def save_job(self, record: JobRecord) -> None:
        self._conn.execute(
            """
            INSERT OR REPLACE INTO jobs
              (event_id, pubkey, created_at, kind, job_type, bid,
               relays_json, files_json, content, status)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.event_id,
                record.pubkey,
                record.created_at,
                record.kind,
                record.job_type,
                record.bid,
                json.dumps(record.relays),
                json.dumps(record.files),
                record.content,
                record.status,
            ),
        )
        self._conn.commit()

    def save_response(self, record: ResponseRecord) -> None:
        # Keep the original arrival sequence when a response is re-saved.
        row = self._conn.execute("SELECT seq FROM responses WHERE event_id=?", (record.event_id,)).fetchone()
        if row is not None:
            seq = row["seq"]
        else:
            seq = self._conn.execute("SELECT COALESCE(MAX(seq), 0) + 1 FROM responses").fetchone()[0]
        self._conn.execute(
            """
            INSERT OR REPLACE INTO responses
              (event_id, job_id, author, created_at, kind, content,
               amount_msats, invoice, payment_state, seq)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                record.event_id,
                record.job_id,
                record.author,
                record.created_at,
                record.kind,
                record.content,
                record.amount_msats,
                record.invoice,
                record.payment_state,
                seq,
            ),
        )
        self._conn.commit()

    def list_jobs(self, limit: int | None = None) -> list[JobRecord]:
        query = "SELECT * FROM jobs ORDER BY created_at DESC, rowid DESC"
        params: tuple = ()
        if limit is not None:
            query += " LIMIT ?"
            params = (limit,)
        rows = self._conn.execute(query, params).fetchall()
        return [self._row_to_job(r) for r in rows]

    def list_responses(self, job_id: str) -> list[ResponseRecord]:
        rows = self._conn.execute(
            "SELECT * FROM responses WHERE job_id=? ORDER BY seq DESC",
            (job_id,),
        ).fetchall()
        return [self._row_to_response(r) for r in rows]

    def close(self) -> None:
        self._conn.close()

    @staticmethod
    def _row_to_job(row: sqlite3.Row) -> JobRecord:
        return JobRecord(
            event_id=row["event_id"],
            pubkey=row["pubkey"],
            created_at=row["created_at"],
            kind=row["kind"],
            job_type=row["job_type"] or "",
            bid=row["bid"] or "",
            relays=json.loads(row["relays_json"] or "[]"),
            files=json.loads(row["files_json"] or "[]"),
            content=row["content"] or "",
            status=row["status"] or "published",
        )

    @staticmethod
    def _row_to_response(row: sqlite3.Row) -> ResponseRecord:
        return ResponseRecord(
            event_id=row["event_id"],
            job_id=row["job_id"],
            author=row["author"] or "",
            created_at=row["created_at"] or 0,
            kind=row["kind"] or 0,
            content=row["content"] or "",
            amount_msats=row["amount_msats"],
            invoice=row["invoice"],
            payment_state=row["payment_state"] or "unpaid",
        )
