"""SQLite storage for the website registry and custom project statuses."""

import json
import sqlite3
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path
from typing import Any

from sitewatch.core.schemas import ProjectStatusOption, WebsiteRecord

_WEBSITES_TABLE = """
CREATE TABLE IF NOT EXISTS websites (
    id              INTEGER PRIMARY KEY,
    position        INTEGER NOT NULL,
    url             TEXT    NOT NULL,
    display_name    TEXT    NOT NULL,
    http_status     INTEGER,
    vitals_json     TEXT,
    last_checked_at TEXT,
    screenshot      TEXT,
    screenshot_at   TEXT,
    industry        TEXT    NOT NULL DEFAULT 'general',
    project_status  TEXT    NOT NULL DEFAULT 'wip',
    favorite        INTEGER NOT NULL DEFAULT 0,
    is_wordpress    INTEGER,
    notes_json      TEXT
);
"""

_CUSTOM_STATUSES_TABLE = """
CREATE TABLE IF NOT EXISTS custom_statuses (
    value    TEXT    PRIMARY KEY,
    label    TEXT    NOT NULL,
    color    TEXT    NOT NULL,
    position INTEGER NOT NULL
);
"""

# Single-field updates go through this allow-list; column names are never
# taken from caller input.
_UPDATABLE_COLUMNS = {"industry", "project_status", "favorite"}


def init_db(path: str | Path) -> sqlite3.Connection:
    """Create the database and tables, returning a connection."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    conn.execute(_WEBSITES_TABLE)
    conn.execute(_CUSTOM_STATUSES_TABLE)
    columns = {row["name"] for row in conn.execute("PRAGMA table_info(websites)")}
    if "screenshot_at" not in columns:
        # databases created before capture times were stored
        conn.execute("ALTER TABLE websites ADD COLUMN screenshot_at TEXT")
    conn.commit()
    return conn


def load_websites(conn: sqlite3.Connection) -> list[WebsiteRecord]:
    """Return every stored website in registry order.

    Raises ValueError (or pydantic's ValidationError) on malformed rows.
    """
    rows = conn.execute("SELECT * FROM websites ORDER BY position, id").fetchall()
    return [_row_to_record(row) for row in rows]


def replace_websites(conn: sqlite3.Connection, records: Iterable[WebsiteRecord]) -> int:
    """Atomically replace the stored registry. Returns the number of rows written.

    A bulk capture writes screenshots straight into rows while the registry
    may still be saving an older snapshot. For a row whose URL is unchanged,
    a stored screenshot newer than the incoming one is kept, and so is a
    later ``last_checked_at``.
    """
    records = list(records)
    with conn:
        stored = {
            row["id"]: row
            for row in conn.execute(
                "SELECT id, url, screenshot, screenshot_at, last_checked_at FROM websites"
            )
        }
        params = [
            _record_to_params(position, _keep_newer_capture(r, stored.get(r.id)))
            for position, r in enumerate(records)
        ]
        conn.execute("DELETE FROM websites")
        conn.executemany(
            """
            INSERT INTO websites
                (id, position, url, display_name, http_status, vitals_json,
                 last_checked_at, screenshot, screenshot_at, industry,
                 project_status, favorite, is_wordpress, notes_json)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            params,
        )
    return len(params)


def update_website_field(
    conn: sqlite3.Connection,
    website_id: int,
    column: str,
    value: Any,
) -> bool:
    """Set one allow-listed column. Returns False if the website does not exist."""
    if column not in _UPDATABLE_COLUMNS:
        msg = f"column '{column}' cannot be updated individually"
        raise ValueError(msg)
    if isinstance(value, bool):
        value = int(value)
    cursor = conn.execute(
        f"UPDATE websites SET {column} = ? WHERE id = ?",  # noqa: S608
        (value, website_id),
    )
    conn.commit()
    return cursor.rowcount > 0


def set_screenshot(
    conn: sqlite3.Connection,
    website_id: int,
    screenshot: str,
    captured_at: datetime,
) -> bool:
    """Store a captured screenshot. Returns False if the website was removed meanwhile."""
    cursor = conn.execute(
        "UPDATE websites SET screenshot = ?, screenshot_at = ?, last_checked_at = ? WHERE id = ?",
        (screenshot, captured_at.isoformat(), captured_at.isoformat(), website_id),
    )
    conn.commit()
    return cursor.rowcount > 0


def load_custom_statuses(conn: sqlite3.Connection) -> list[ProjectStatusOption]:
    rows = conn.execute(
        "SELECT value, label, color FROM custom_statuses ORDER BY position"
    ).fetchall()
    return [
        ProjectStatusOption(value=row["value"], label=row["label"], color=row["color"])
        for row in rows
    ]


def replace_custom_statuses(
    conn: sqlite3.Connection,
    statuses: Iterable[ProjectStatusOption],
) -> None:
    with conn:
        conn.execute("DELETE FROM custom_statuses")
        conn.executemany(
            "INSERT INTO custom_statuses (value, label, color, position) VALUES (?, ?, ?, ?)",
            [(s.value, s.label, s.color, i) for i, s in enumerate(statuses)],
        )


def _record_to_params(position: int, record: WebsiteRecord) -> tuple[Any, ...]:
    data = record.to_storage()
    return (
        record.id,
        position,
        record.url,
        record.display_name,
        record.http_status,
        json.dumps(data["vitals"]) if data["vitals"] is not None else None,
        data["last_checked_at"],
        record.screenshot,
        data["screenshot_at"],
        record.industry,
        record.project_status,
        int(record.favorite),
        int(record.is_wordpress) if record.is_wordpress is not None else None,
        json.dumps(record.notes) if record.notes is not None else None,
    )


def _row_to_record(row: sqlite3.Row) -> WebsiteRecord:
    is_wordpress = row["is_wordpress"]
    return WebsiteRecord(
        id=row["id"],
        url=row["url"],
        display_name=row["display_name"],
        http_status=row["http_status"],
        vitals=json.loads(row["vitals_json"]) if row["vitals_json"] else None,
        last_checked_at=row["last_checked_at"],
        screenshot=row["screenshot"],
        screenshot_at=row["screenshot_at"],
        industry=row["industry"],
        project_status=row["project_status"],
        favorite=bool(row["favorite"]),
        is_wordpress=bool(is_wordpress) if is_wordpress is not None else None,
        notes=json.loads(row["notes_json"]) if row["notes_json"] else None,
    )


def _is_newer(stored: datetime | None, incoming: datetime | None) -> bool:
    if stored is None:
        return False
    # timestamp() copes with naive and aware values side by side.
    return incoming is None or stored.timestamp() > incoming.timestamp()


def _keep_newer_capture(record: WebsiteRecord, row: sqlite3.Row | None) -> WebsiteRecord:
    if row is None or row["url"] != record.url:
        return record
    patch: dict[str, Any] = {}
    screenshot_at = _parse_time(row["screenshot_at"])
    if _is_newer(screenshot_at, record.screenshot_at):
        patch["screenshot"] = row["screenshot"]
        patch["screenshot_at"] = screenshot_at
    checked_at = _parse_time(row["last_checked_at"])
    if _is_newer(checked_at, record.last_checked_at):
        patch["last_checked_at"] = checked_at
    return record.model_copy(update=patch) if patch else record


def _parse_time(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None
