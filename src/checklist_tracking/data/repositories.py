from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime, timezone
import json
import sqlite3
from typing import Any
from uuid import uuid4

from checklist_tracking.domain.constants import (
    ROLE_OPERATOR,
    ROLES,
    STATUS_COMPLETED,
    STATUS_PENDING,
    TOLERANCE_HOURS,
)
from checklist_tracking.domain.models import (
    AlertCondition,
    ChecklistInstance,
    Device,
    Kpi,
    KpiAlert,
    KpiField,
    TaskItem,
    TimeSlot,
    TodolistAlert,
)
from checklist_tracking.services.deadlines import compute_deadline
from checklist_tracking.services.overdue import derive_status
from checklist_tracking.services.time_slots import parse as parse_time_slot
from checklist_tracking.services.time_slots import to_row as time_slot_row


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _iso(value: date | datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()


def _parse_datetime(value: Any) -> datetime | None:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        return None


def _parse_date(value: Any) -> date | None:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def _dump_json(value: Any) -> str | None:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False, default=str)


def _load_json(value: str | None, default: Any = None) -> Any:
    if not value:
        return default
    try:
        return json.loads(value)
    except json.JSONDecodeError:
        return default


def _placeholders(values: list[Any]) -> str:
    return ", ".join(["?"] * len(values))


class ProfileRepository:
    def __init__(self, con: sqlite3.Connection) -> None:
        self.con = con

    def create_profile(self, email: str, display_name: str | None = None, role: str = ROLE_OPERATOR) -> str:
        clean_email = (email or "").strip().lower()
        if not clean_email:
            raise ValueError("Email is required.")
        if role not in ROLES:
            raise ValueError(f"Unknown role: {role!r}")
        profile_id = str(uuid4())
        self.con.execute(
            """
            INSERT INTO profiles (id, email, display_name, role, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (profile_id, clean_email, display_name, role, _utc_now()),
        )
        self.con.commit()
        return profile_id

    def get_role(self, email: str | None) -> str | None:
        if not email:
            return None
        row = self.con.execute(
            "SELECT role FROM profiles WHERE email = ?",
            ((email or "").strip().lower(),),
        ).fetchone()
        return row["role"] if row else None


class DeviceRepository:
    def __init__(self, con: sqlite3.Connection) -> None:
        self.con = con

    def create_device(
        self,
        name: str,
        location: str | None = None,
        description: str | None = None,
    ) -> str:
        clean_name = (name or "").strip()
        if not clean_name:
            raise ValueError("Control point name is required.")
        device_id = str(uuid4())
        self.con.execute(
            """
            INSERT INTO devices (id, name, location, description, deleted, created_at)
            VALUES (?, ?, ?, ?, 0, ?)
            """,
            (device_id, clean_name, location, description, _utc_now()),
        )
        self.con.commit()
        return device_id

    def list_devices(self) -> list[Device]:
        cur = self.con.execute(
            """
            SELECT id, name, location
            FROM devices
            WHERE deleted = 0
            ORDER BY name ASC
            """
        )
        return [Device(id=row["id"], name=row["name"], location=row["location"]) for row in cur]

    def get_device(self, device_id: str) -> Device | None:
        row = self.con.execute(
            "SELECT id, name, location FROM devices WHERE id = ?",
            (device_id,),
        ).fetchone()
        if not row:
            return None
        return Device(id=row["id"], name=row["name"], location=row["location"])

    def names_by_id(self, device_ids: Iterable[str]) -> dict[str, str]:
        ids = list(dict.fromkeys(device_ids))
        if not ids:
            return {}
        cur = self.con.execute(
            f"SELECT id, name FROM devices WHERE id IN ({_placeholders(ids)})",
            ids,
        )
        return {row["id"]: row["name"] for row in cur.fetchall()}


class KpiRepository:
    def __init__(self, con: sqlite3.Connection) -> None:
        self.con = con

    def create_kpi(
        self,
        name: str,
        description: str | None,
        fields: Iterable[KpiField | dict[str, Any]],
    ) -> str:
        clean_name = (name or "").strip()
        if not 2 <= len(clean_name) <= 80:
            raise ValueError("Control name must be between 2 and 80 characters.")
        if description and len(description) > 250:
            raise ValueError("Control description cannot exceed 250 characters.")
        parsed = [item if isinstance(item, KpiField) else KpiField.from_dict(item) for item in fields]
        if not parsed:
            raise ValueError("Add at least one field.")
        kpi_id = str(uuid4())
        self.con.execute(
            """
            INSERT INTO kpis (id, name, description, fields_json, deleted, created_at)
            VALUES (?, ?, ?, ?, 0, ?)
            """,
            (
                kpi_id,
                clean_name,
                description or None,
                _dump_json([item.to_dict() for item in parsed]),
                _utc_now(),
            ),
        )
        self.con.commit()
        return kpi_id

    def _row_to_kpi(self, row: sqlite3.Row) -> Kpi:
        fields = tuple(
            KpiField.from_dict(item)
            for item in _load_json(row["fields_json"], default=[])
            if isinstance(item, dict)
        )
        return Kpi(id=row["id"], name=row["name"], description=row["description"], fields=fields)

    def list_kpis(self) -> list[Kpi]:
        cur = self.con.execute(
            """
            SELECT id, name, description, fields_json
            FROM kpis
            WHERE deleted = 0
            ORDER BY name ASC
            """
        )
        return [self._row_to_kpi(row) for row in cur.fetchall()]

    def get_kpi(self, kpi_id: str) -> Kpi | None:
        row = self.con.execute(
            "SELECT id, name, description, fields_json FROM kpis WHERE id = ?",
            (kpi_id,),
        ).fetchone()
        return self._row_to_kpi(row) if row else None

    def names_by_id(self, kpi_ids: Iterable[str]) -> dict[str, str]:
        ids = list(dict.fromkeys(kpi_ids))
        if not ids:
            return {}
        cur = self.con.execute(
            f"SELECT id, name FROM kpis WHERE id IN ({_placeholders(ids)})",
            ids,
        )
        return {row["id"]: row["name"] for row in cur.fetchall()}


_INSTANCE_SELECT = """
    SELECT tl.id,
           tl.device_id,
           tl.scheduled_execution,
           tl.time_slot_type,
           tl.time_slot,
           tl.time_slot_start,
           tl.time_slot_end,
           tl.status,
           tl.completion_date,
           tl.end_day_time,
           tl.todolist_category,
           d.name AS device_name,
           d.location AS device_location,
           a.id AS alert_id,
           a.email AS alert_email,
           a.is_active AS alert_is_active
    FROM todolists tl
    LEFT JOIN devices d ON d.id = tl.device_id
    LEFT JOIN todolist_alerts a ON a.todolist_id = tl.id
"""

_TASK_SELECT = """
    SELECT t.id,
           t.todolist_id,
           t.kpi_id,
           t.status,
           t.value_json,
           t.completed_at,
           k.name AS kpi_name,
           k.description AS kpi_description
    FROM tasks t
    LEFT JOIN kpis k ON k.id = t.kpi_id
"""


class TodolistRepository:
    def __init__(self, con: sqlite3.Connection) -> None:
        self.con = con

    def schedule_todolists(
        self,
        device_ids: list[str],
        dates: list[date],
        slots: list[Any],
        kpi_ids: list[str],
        category: str | None = None,
        alert_email: str | None = None,
        tolerance_hours: int = TOLERANCE_HOURS,
    ) -> list[str]:
        """Create one todolist per device x date x slot, each with one task per KPI."""
        if not device_ids:
            raise ValueError("Select at least one control point.")
        if not dates:
            raise ValueError("Select at least one date.")
        if not slots:
            raise ValueError("Select at least one time slot.")
        if not kpi_ids:
            raise ValueError("Select at least one control.")
        parsed_slots = [parse_time_slot(slot) for slot in slots]
        unique_kpis = list(dict.fromkeys(kpi_ids))
        now = _utc_now()
        created: list[str] = []
        for device_id in dict.fromkeys(device_ids):
            for scheduled_date in sorted(set(dates)):
                for slot in parsed_slots:
                    todolist_id = str(uuid4())
                    slot_row = time_slot_row(slot)
                    self.con.execute(
                        """
                        INSERT INTO todolists (
                            id,
                            device_id,
                            scheduled_execution,
                            time_slot_type,
                            time_slot,
                            time_slot_start,
                            time_slot_end,
                            status,
                            end_day_time,
                            todolist_category,
                            created_at,
                            updated_at
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            todolist_id,
                            device_id,
                            scheduled_date.isoformat(),
                            slot_row["time_slot_type"],
                            slot_row["time_slot"],
                            slot_row["time_slot_start"],
                            slot_row["time_slot_end"],
                            STATUS_PENDING,
                            _iso(compute_deadline(scheduled_date, slot, tolerance_hours)),
                            category or None,
                            now,
                            now,
                        ),
                    )
                    self.con.executemany(
                        """
                        INSERT INTO tasks (id, todolist_id, kpi_id, status, created_at)
                        VALUES (?, ?, ?, ?, ?)
                        """,
                        [
                            (str(uuid4()), todolist_id, kpi_id, STATUS_PENDING, now)
                            for kpi_id in unique_kpis
                        ],
                    )
                    if alert_email:
                        self.con.execute(
                            """
                            INSERT INTO todolist_alerts (id, todolist_id, email, is_active, created_at)
                            VALUES (?, ?, ?, 1, ?)
                            """,
                            (str(uuid4()), todolist_id, alert_email.strip(), now),
                        )
                    created.append(todolist_id)
        self.con.commit()
        return created

    def _load_tasks(self, where_sql: str, params: list[Any]) -> dict[str, list[TaskItem]]:
        cur = self.con.execute(
            _TASK_SELECT
            + f"""
            WHERE t.todolist_id IN (
                SELECT tl.id
                FROM todolists tl
                LEFT JOIN todolist_alerts a ON a.todolist_id = tl.id
                WHERE {where_sql}
            )
            ORDER BY t.created_at ASC, t.id ASC
            """,
            params,
        )
        tasks: dict[str, list[TaskItem]] = {}
        for row in cur.fetchall():
            tasks.setdefault(row["todolist_id"], []).append(
                TaskItem(
                    id=row["id"],
                    kpi_id=row["kpi_id"],
                    status=row["status"],
                    recorded_value=_load_json(row["value_json"]),
                    completed_at=_parse_datetime(row["completed_at"]),
                    kpi_name=row["kpi_name"],
                    kpi_description=row["kpi_description"],
                )
            )
        return tasks

    def _row_to_instance(self, row: sqlite3.Row, tasks: list[TaskItem]) -> ChecklistInstance:
        alert = None
        if row["alert_id"]:
            alert = TodolistAlert(
                id=row["alert_id"],
                email=row["alert_email"],
                is_active=bool(row["alert_is_active"]),
            )
        slot: TimeSlot = parse_time_slot(
            {
                "time_slot_type": row["time_slot_type"],
                "time_slot": row["time_slot"],
                "time_slot_start": row["time_slot_start"],
                "time_slot_end": row["time_slot_end"],
            }
        )
        return ChecklistInstance(
            id=row["id"],
            device_id=row["device_id"],
            scheduled_date=_parse_date(row["scheduled_execution"]),
            time_slot=slot,
            status=row["status"],
            completion_date=_parse_datetime(row["completion_date"]),
            category=row["todolist_category"],
            end_day_time=_parse_datetime(row["end_day_time"]),
            tasks=tuple(tasks),
            device_name=row["device_name"],
            device_location=row["device_location"],
            alert=alert,
        )

    def _fetch_instances(self, where_sql: str, params: list[Any]) -> list[ChecklistInstance]:
        cur = self.con.execute(
            _INSTANCE_SELECT
            + f"""
            WHERE {where_sql}
            ORDER BY tl.scheduled_execution ASC, tl.created_at ASC, tl.id ASC
            """,
            params,
        )
        rows = cur.fetchall()
        if not rows:
            return []
        tasks = self._load_tasks(where_sql, params)
        return [self._row_to_instance(row, tasks.get(row["id"], [])) for row in rows]

    def list_in_range(self, date_from: date, date_to: date) -> list[ChecklistInstance]:
        return self._fetch_instances(
            "tl.scheduled_execution >= ? AND tl.scheduled_execution <= ?",
            [date_from.isoformat(), date_to.isoformat()],
        )

    def list_overdue_candidates(self, now: datetime) -> list[ChecklistInstance]:
        """Open todolists up to today with an active alert; the classifier decides."""
        return self._fetch_instances(
            """
            tl.status != ?
            AND tl.completion_date IS NULL
            AND tl.scheduled_execution <= ?
            AND a.id IS NOT NULL
            AND a.is_active = 1
            """,
            [STATUS_COMPLETED, now.date().isoformat()],
        )

    def get_todolist(self, todolist_id: str) -> ChecklistInstance | None:
        instances = self._fetch_instances("tl.id = ?", [todolist_id])
        return instances[0] if instances else None

    def get_task(self, task_id: str) -> dict[str, Any] | None:
        row = self.con.execute(
            """
            SELECT t.id, t.todolist_id, t.kpi_id, t.status, tl.device_id
            FROM tasks t
            JOIN todolists tl ON tl.id = t.todolist_id
            WHERE t.id = ?
            """,
            (task_id,),
        ).fetchone()
        return dict(row) if row else None

    def record_task_value(self, task_id: str, value: Any, completed_at: datetime) -> ChecklistInstance:
        task = self.get_task(task_id)
        if not task:
            raise ValueError(f"Unknown task: {task_id}")
        self.con.execute(
            """
            UPDATE tasks
            SET value_json = ?, status = ?, completed_at = ?
            WHERE id = ?
            """,
            (_dump_json(value), STATUS_COMPLETED, _iso(completed_at), task_id),
        )
        statuses = [
            TaskItem(id=row["id"], kpi_id=row["kpi_id"], status=row["status"])
            for row in self.con.execute(
                "SELECT id, kpi_id, status FROM tasks WHERE todolist_id = ?",
                (task["todolist_id"],),
            ).fetchall()
        ]
        status = derive_status(statuses)
        self.con.execute(
            """
            UPDATE todolists
            SET status = ?,
                completion_date = ?,
                updated_at = ?
            WHERE id = ?
            """,
            (
                status,
                _iso(completed_at) if status == STATUS_COMPLETED else None,
                _utc_now(),
                task["todolist_id"],
            ),
        )
        self.con.commit()
        return self.get_todolist(task["todolist_id"])


class TodolistAlertRepository:
    def __init__(self, con: sqlite3.Connection) -> None:
        self.con = con

    def set_alert(self, todolist_id: str, email: str) -> str:
        clean_email = (email or "").strip()
        if not clean_email:
            raise ValueError("Alert email is required.")
        alert_id = str(uuid4())
        self.con.execute(
            """
            INSERT INTO todolist_alerts (id, todolist_id, email, is_active, created_at)
            VALUES (?, ?, ?, 1, ?)
            ON CONFLICT(todolist_id) DO UPDATE SET
                email = excluded.email,
                is_active = 1
            """,
            (alert_id, todolist_id, clean_email, _utc_now()),
        )
        self.con.commit()
        row = self.con.execute(
            "SELECT id FROM todolist_alerts WHERE todolist_id = ?",
            (todolist_id,),
        ).fetchone()
        return row["id"]

    def deactivate(self, alert_id: str) -> None:
        self.con.execute(
            "UPDATE todolist_alerts SET is_active = 0 WHERE id = ?",
            (alert_id,),
        )
        self.con.commit()

    def log_sent(
        self,
        todolist_id: str,
        alert_id: str | None,
        email: str,
        sent_at: datetime,
        error_message: str | None = None,
    ) -> str:
        log_id = str(uuid4())
        self.con.execute(
            """
            INSERT INTO todolist_alert_logs (id, todolist_id, alert_id, email, sent_at, error_message)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (log_id, todolist_id, alert_id, email, _iso(sent_at), error_message),
        )
        self.con.commit()
        return log_id

    def list_logs(self, todolist_id: str | None = None, limit: int = 100) -> list[dict[str, Any]]:
        query = """
            SELECT l.id,
                   l.todolist_id,
                   l.alert_id,
                   l.email,
                   l.sent_at,
                   l.error_message,
                   tl.scheduled_execution,
                   d.name AS device_name
            FROM todolist_alert_logs l
            LEFT JOIN todolists tl ON tl.id = l.todolist_id
            LEFT JOIN devices d ON d.id = tl.device_id
        """
        params: list[Any] = []
        if todolist_id:
            query += " WHERE l.todolist_id = ?"
            params.append(todolist_id)
        query += " ORDER BY l.sent_at DESC LIMIT ?"
        params.append(limit)
        return [dict(row) for row in self.con.execute(query, params).fetchall()]


class KpiAlertRepository:
    def __init__(self, con: sqlite3.Connection) -> None:
        self.con = con

    def create_alert(
        self,
        kpi_id: str,
        device_id: str,
        email: str,
        conditions: Iterable[AlertCondition | dict[str, Any]],
        is_active: bool = True,
    ) -> str:
        clean_email = (email or "").strip()
        if not clean_email:
            raise ValueError("Alert email is required.")
        parsed = [
            item if isinstance(item, AlertCondition) else AlertCondition.from_dict(item)
            for item in conditions
        ]
        if not parsed:
            raise ValueError("Add at least one alert condition.")
        alert_id = str(uuid4())
        self.con.execute(
            """
            INSERT INTO kpi_alerts (id, kpi_id, device_id, email, conditions_json, is_active, created_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                alert_id,
                kpi_id,
                device_id,
                clean_email,
                _dump_json([item.to_dict() for item in parsed]),
                1 if is_active else 0,
                _utc_now(),
            ),
        )
        self.con.commit()
        return alert_id

    def _row_to_alert(self, row: sqlite3.Row) -> KpiAlert:
        conditions = tuple(
            AlertCondition.from_dict(item)
            for item in _load_json(row["conditions_json"], default=[])
            if isinstance(item, dict)
        )
        return KpiAlert(
            id=row["id"],
            kpi_id=row["kpi_id"],
            device_id=row["device_id"],
            email=row["email"],
            conditions=conditions,
            is_active=bool(row["is_active"]),
        )

    def list_alerts(self, kpi_id: str | None = None, device_id: str | None = None, active_only: bool = False) -> list[KpiAlert]:
        query = """
            SELECT id, kpi_id, device_id, email, conditions_json, is_active
            FROM kpi_alerts
            WHERE 1 = 1
        """
        params: list[Any] = []
        if kpi_id:
            query += " AND kpi_id = ?"
            params.append(kpi_id)
        if device_id:
            query += " AND device_id = ?"
            params.append(device_id)
        if active_only:
            query += " AND is_active = 1"
        query += " ORDER BY created_at ASC"
        return [self._row_to_alert(row) for row in self.con.execute(query, params).fetchall()]

    def set_active(self, alert_id: str, is_active: bool) -> None:
        self.con.execute(
            "UPDATE kpi_alerts SET is_active = ? WHERE id = ?",
            (1 if is_active else 0, alert_id),
        )
        self.con.commit()

    def log_trigger(
        self,
        alert_id: str,
        kpi_id: str,
        device_id: str,
        triggered_value: Any,
        triggered_at: datetime,
        email_sent: bool,
        email_sent_at: datetime | None = None,
        error_message: str | None = None,
    ) -> str:
        log_id = str(uuid4())
        self.con.execute(
            """
            INSERT INTO kpi_alert_logs (
                id,
                alert_id,
                kpi_id,
                device_id,
                triggered_value,
                triggered_at,
                email_sent,
                email_sent_at,
                error_message
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                log_id,
                alert_id,
                kpi_id,
                device_id,
                _dump_json(triggered_value),
                _iso(triggered_at),
                1 if email_sent else 0,
                _iso(email_sent_at),
                error_message,
            ),
        )
        self.con.commit()
        return log_id

    def list_logs(
        self,
        kpi_id: str | None = None,
        device_id: str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        limit: int = 200,
    ) -> list[dict[str, Any]]:
        query = """
            SELECT l.id,
                   l.alert_id,
                   l.kpi_id,
                   l.device_id,
                   l.triggered_value,
                   l.triggered_at,
                   l.email_sent,
                   l.email_sent_at,
                   l.error_message,
                   k.name AS kpi_name,
                   d.name AS device_name,
                   a.email
            FROM kpi_alert_logs l
            LEFT JOIN kpis k ON k.id = l.kpi_id
            LEFT JOIN devices d ON d.id = l.device_id
            LEFT JOIN kpi_alerts a ON a.id = l.alert_id
            WHERE 1 = 1
        """
        params: list[Any] = []
        if kpi_id:
            query += " AND l.kpi_id = ?"
            params.append(kpi_id)
        if device_id:
            query += " AND l.device_id = ?"
            params.append(device_id)
        if start:
            query += " AND l.triggered_at >= ?"
            params.append(_iso(start))
        if end:
            query += " AND l.triggered_at <= ?"
            params.append(_iso(end))
        query += " ORDER BY l.triggered_at DESC LIMIT ?"
        params.append(limit)
        rows = [dict(row) for row in self.con.execute(query, params).fetchall()]
        for row in rows:
            row["triggered_value"] = _load_json(row.get("triggered_value"))
            row["email_sent"] = bool(row.get("email_sent"))
        return rows
