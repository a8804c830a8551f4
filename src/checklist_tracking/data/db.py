from __future__ import annotations

from pathlib import Path
import sqlite3

SCHEMA_VERSION = 1

SCHEMA_SQL = """
PRAGMA foreign_keys = ON;

CREATE TABLE IF NOT EXISTS profiles (
  id TEXT PRIMARY KEY,
  email TEXT NOT NULL UNIQUE,
  display_name TEXT,
  role TEXT NOT NULL DEFAULT 'operator',
  created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS devices (
  id TEXT PRIMARY KEY,
  name TEXT NOT NULL,
  location TEXT,
  description TEXT,
  deleted INTEGER NOT NULL DEFAULT 0,
  created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS kpis (
  id TEXT PRIMARY KEY,
  name TEXT NOT NULL,
  description TEXT,
  fields_json TEXT NOT NULL DEFAULT '[]',
  deleted INTEGER NOT NULL DEFAULT 0,
  created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS todolists (
  id TEXT PRIMARY KEY,
  device_id TEXT NOT NULL,
  scheduled_execution TEXT NOT NULL,
  time_slot_type TEXT NOT NULL DEFAULT 'standard',
  time_slot TEXT,
  time_slot_start INTEGER,
  time_slot_end INTEGER,
  status TEXT NOT NULL DEFAULT 'pending',
  completion_date TEXT,
  end_day_time TEXT,
  todolist_category TEXT,
  created_at TEXT NOT NULL,
  updated_at TEXT NOT NULL,
  FOREIGN KEY(device_id) REFERENCES devices(id)
);

CREATE INDEX IF NOT EXISTS idx_todolists_scheduled
  ON todolists (scheduled_execution);

CREATE TABLE IF NOT EXISTS tasks (
  id TEXT PRIMARY KEY,
  todolist_id TEXT NOT NULL,
  kpi_id TEXT NOT NULL,
  status TEXT NOT NULL DEFAULT 'pending',
  value_json TEXT,
  completed_at TEXT,
  created_at TEXT NOT NULL,
  FOREIGN KEY(todolist_id) REFERENCES todolists(id) ON DELETE CASCADE,
  FOREIGN KEY(kpi_id) REFERENCES kpis(id)
);

CREATE TABLE IF NOT EXISTS todolist_alerts (
  id TEXT PRIMARY KEY,
  todolist_id TEXT NOT NULL UNIQUE,
  email TEXT NOT NULL,
  is_active INTEGER NOT NULL DEFAULT 1,
  created_at TEXT NOT NULL,
  FOREIGN KEY(todolist_id) REFERENCES todolists(id) ON DELETE CASCADE
);

CREATE TABLE IF NOT EXISTS todolist_alert_logs (
  id TEXT PRIMARY KEY,
  todolist_id TEXT NOT NULL,
  alert_id TEXT,
  email TEXT NOT NULL,
  sent_at TEXT NOT NULL,
  error_message TEXT
);

CREATE TABLE IF NOT EXISTS kpi_alerts (
  id TEXT PRIMARY KEY,
  kpi_id TEXT NOT NULL,
  device_id TEXT NOT NULL,
  email TEXT NOT NULL,
  conditions_json TEXT NOT NULL DEFAULT '[]',
  is_active INTEGER NOT NULL DEFAULT 1,
  created_at TEXT NOT NULL,
  FOREIGN KEY(kpi_id) REFERENCES kpis(id),
  FOREIGN KEY(device_id) REFERENCES devices(id)
);

CREATE TABLE IF NOT EXISTS kpi_alert_logs (
  id TEXT PRIMARY KEY,
  alert_id TEXT NOT NULL,
  kpi_id TEXT NOT NULL,
  device_id TEXT NOT NULL,
  triggered_value TEXT,
  triggered_at TEXT NOT NULL,
  email_sent INTEGER NOT NULL DEFAULT 0,
  email_sent_at TEXT,
  error_message TEXT
);
"""


def connect(db_path: Path) -> sqlite3.Connection:
    if db_path.as_posix() != ":memory:":
        db_path.parent.mkdir(parents=True, exist_ok=True)
    con = sqlite3.connect(db_path.as_posix())
    con.row_factory = sqlite3.Row
    con.execute("PRAGMA foreign_keys=ON;")
    return con


def _get_user_version(con: sqlite3.Connection) -> int:
    row = con.execute("PRAGMA user_version;").fetchone()
    return int(row[0]) if row else 0


def _set_user_version(con: sqlite3.Connection, version: int) -> None:
    con.execute(f"PRAGMA user_version = {version};")


def init_db(con: sqlite3.Connection) -> None:
    con.executescript(SCHEMA_SQL)
    if _get_user_version(con) < SCHEMA_VERSION:
        _set_user_version(con, SCHEMA_VERSION)
    con.commit()


def table_count(con: sqlite3.Connection, table: str) -> int:
    cur = con.execute(f"SELECT COUNT(1) AS n FROM {table}")
    return int(cur.fetchone()["n"])
