import sqlite3
from pathlib import Path
from datetime import datetime, timezone

from trafficjam.models import PLACEHOLDER_TITLE, CameraSource, TrafficResult
from trafficjam.settings import get_db_path

UPDATABLE_FIELDS = {"title", "url", "enabled", "cctv_date", "current_traffic_amount"}


def _utc_now():
    return datetime.now(timezone.utc).isoformat()


def _ensure_columns(conn, table, columns):
    existing = {
        row[1] for row in conn.execute(f"PRAGMA table_info({table})").fetchall()
    }
    for name, ddl in columns.items():
        if name in existing:
            continue
        conn.execute(f"ALTER TABLE {table} ADD COLUMN {ddl}")


def _row_to_result(row):
    return TrafficResult(
        id=row["id"],
        traffic_id=row["traffic_id"],
        traffic_title=row["traffic_title"] or "",
        cctv_date=row["cctv_date"],
        traffic_amount=row["traffic_amount"] or 0,
        created_at=row["created_at"] or "",
    )


class SourceRepository:
    """
    SQLite store for camera sources and their append-only reading history.
    """

    def __init__(self, db_path=None):
        self.db_path = Path(db_path) if db_path else get_db_path()

    def _connect(self):
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self):
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS traffic_entries (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    url TEXT UNIQUE NOT NULL,
                    title TEXT,
                    enabled INTEGER DEFAULT 1,
                    cctv_date TEXT,
                    current_traffic_amount INTEGER DEFAULT 0,
                    created_at TEXT,
                    updated_at TEXT
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS traffic_results (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    traffic_id INTEGER NOT NULL,
                    traffic_title TEXT,
                    cctv_date TEXT,
                    traffic_amount INTEGER,
                    created_at TEXT,
                    FOREIGN KEY(traffic_id) REFERENCES traffic_entries(id)
                )
                """
            )
            _ensure_columns(
                conn,
                "traffic_entries",
                {
                    "cctv_date": "cctv_date TEXT",
                    "current_traffic_amount": "current_traffic_amount INTEGER DEFAULT 0",
                    "updated_at": "updated_at TEXT",
                },
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_traffic_results_traffic ON traffic_results(traffic_id, id)"
            )

    def sync_sources(self, entries):
        """Inserts configured sources whose URL is not stored yet; returns the number added."""
        if not entries:
            return 0
        added = 0
        now = _utc_now()
        with self._connect() as conn:
            for entry in entries:
                url = entry.get("url")
                if not url:
                    continue
                cursor = conn.execute(
                    """
                    INSERT OR IGNORE INTO traffic_entries (url, title, enabled, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (
                        url,
                        entry.get("title") or PLACEHOLDER_TITLE,
                        1 if entry.get("enabled", True) else 0,
                        now,
                        now,
                    ),
                )
                added += cursor.rowcount
        return added

    def _load(self, conn, rows):
        sources = []
        for row in rows:
            results = conn.execute(
                "SELECT * FROM traffic_results WHERE traffic_id = ? ORDER BY id ASC",
                (row["id"],),
            ).fetchall()
            sources.append(
                CameraSource(
                    id=row["id"],
                    url=row["url"],
                    title=row["title"] or "",
                    enabled=bool(row["enabled"]),
                    cctv_date=row["cctv_date"],
                    current_traffic_amount=row["current_traffic_amount"] or 0,
                    created_at=row["created_at"],
                    updated_at=row["updated_at"],
                    results=[_row_to_result(result) for result in results],
                )
            )
        return sources

    def list_all(self):
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM traffic_entries ORDER BY id ASC").fetchall()
            return self._load(conn, rows)

    def list_enabled(self):
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM traffic_entries WHERE enabled = 1 ORDER BY id ASC"
            ).fetchall()
            return self._load(conn, rows)

    def list_by_title(self, title):
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM traffic_entries WHERE lower(title) = lower(?) ORDER BY id ASC",
                (title,),
            ).fetchall()
            return self._load(conn, rows)

    def get(self, source_id):
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM traffic_entries WHERE id = ?", (source_id,)
            ).fetchall()
            sources = self._load(conn, rows)
        return sources[0] if sources else None

    def update(self, source_id, fields):
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        if not fields:
            return
        values = dict(fields)
        if "enabled" in values:
            values["enabled"] = 1 if values["enabled"] else 0
        values["updated_at"] = _utc_now()
        assignments = ", ".join(f"{name} = ?" for name in values)
        with self._connect() as conn:
            conn.execute(
                f"UPDATE traffic_entries SET {assignments} WHERE id = ?",
                (*values.values(), source_id),
            )

    def append_result(self, source_id, reading, created_at=None):
        created_at = created_at or _utc_now()
        if isinstance(created_at, datetime):
            created_at = created_at.isoformat()
        with self._connect() as conn:
            cursor = conn.execute(
                """
                INSERT INTO traffic_results (traffic_id, traffic_title, cctv_date, traffic_amount, created_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (source_id, reading.title, reading.date, reading.traffic, created_at),
            )
            conn.execute(
                """
                UPDATE traffic_entries
                SET current_traffic_amount = ?, cctv_date = ?, updated_at = ?
                WHERE id = ?
                """,
                (reading.traffic, reading.date, _utc_now(), source_id),
            )
            return cursor.lastrowid
