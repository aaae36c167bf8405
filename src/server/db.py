from __future__ import annotations
import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional


DB_PATH: Optional[Path] = None

JSON_FIELDS = ("params", "counters", "result")


def init_db(db_path: Path) -> None:
    global DB_PATH
    DB_PATH = db_path
    db_path.parent.mkdir(parents=True, exist_ok=True)
    with sqlite3.connect(str(db_path)) as conn:
        cur = conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS jobs (
                id TEXT PRIMARY KEY,
                kind TEXT NOT NULL,
                status TEXT NOT NULL,
                entry_id TEXT,
                created_at TEXT NOT NULL,
                started_at TEXT,
                finished_at TEXT,
                params TEXT NOT NULL,
                result TEXT,
                error TEXT,
                counters TEXT
            )
            """
        )
        cur.execute("CREATE INDEX IF NOT EXISTS jobs_entry ON jobs(entry_id)")
        conn.commit()


def _ts(value) -> Optional[str]:
    if value is None or value == "":
        return None
    return value.isoformat() if isinstance(value, datetime) else str(value)


def _row_to_job(r: sqlite3.Row) -> Dict:
    d = dict(r)
    for name in JSON_FIELDS:
        try:
            d[name] = json.loads(d.get(name) or "{}")
        except ValueError:
            d[name] = {}
    return d


def add_job(job: Dict) -> None:
    assert DB_PATH is not None
    with sqlite3.connect(str(DB_PATH)) as conn:
        cur = conn.cursor()
        cur.execute(
            "INSERT OR REPLACE INTO jobs(id,kind,status,entry_id,created_at,started_at,finished_at,params,result,error,counters)"
            " VALUES(?,?,?,?,?,?,?,?,?,?,?)",
            (
                job.get("id"), job.get("kind"), job.get("status"),
                None if job.get("entry_id") is None else str(job.get("entry_id")),
                _ts(job.get("created_at")),
                _ts(job.get("started_at")), _ts(job.get("finished_at")),
                json.dumps(job.get("params") or {}),
                json.dumps(job.get("result") or {}, default=str),
                job.get("error"),
                json.dumps(job.get("counters") or {}),
            )
        )
        conn.commit()


def update_job(job: Dict) -> None:
    add_job(job)


def get_job(job_id: str) -> Optional[Dict]:
    assert DB_PATH is not None
    with sqlite3.connect(str(DB_PATH)) as conn:
        conn.row_factory = sqlite3.Row
        cur = conn.cursor()
        cur.execute("SELECT * FROM jobs WHERE id=?", (job_id,))
        r = cur.fetchone()
        return _row_to_job(r) if r else None


def list_jobs(entry_id: Optional[str] = None) -> List[Dict]:
    assert DB_PATH is not None
    with sqlite3.connect(str(DB_PATH)) as conn:
        conn.row_factory = sqlite3.Row
        cur = conn.cursor()
        if entry_id is None:
            cur.execute("SELECT * FROM jobs ORDER BY created_at DESC")
        else:
            cur.execute("SELECT * FROM jobs WHERE entry_id=? ORDER BY created_at DESC", (str(entry_id),))
        return [_row_to_job(r) for r in cur.fetchall()]
