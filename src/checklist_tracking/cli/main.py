from __future__ import annotations

import argparse
from datetime import date, datetime
import logging
import os
from pathlib import Path
from typing import Any

from checklist_tracking.data.db import connect, init_db
from checklist_tracking.data.repositories import TodolistAlertRepository
from checklist_tracking.domain.errors import ChecklistTrackingError
from checklist_tracking.integrations.email_sender import (
    EmailNotifier,
    notifications_enabled,
    smtp_config_status,
)
from checklist_tracking.services.access import resolve_role
from checklist_tracking.services.export import (
    aggregated_to_frame,
    matrix_to_frame,
    to_csv_bytes,
    to_xlsx_bytes,
    todolists_to_frame,
)
from checklist_tracking.services.notifications import build_overdue_notice
from checklist_tracking.services.overdue import instance_deadline
from checklist_tracking.services.overdue_alerts import process_overdue_instances
from checklist_tracking.services.reports import (
    load_matrix,
    load_overdue_with_alerts,
    load_todolists,
)

LOGGER = logging.getLogger(__name__)


def _parse_now(value: str | None) -> datetime:
    if not value:
        return datetime.now()
    try:
        return datetime.fromisoformat(value)
    except ValueError as exc:
        raise ValueError("Invalid --now format (YYYY-MM-DDTHH:MM).") from exc


def _parse_date(value: str, flag: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValueError(f"Invalid {flag} date format (YYYY-MM-DD).") from exc


def _get_db_connection() -> Any:
    data_dir = Path(os.getenv("CHECKLIST_TRACKING_DATA_DIR", "./data"))
    db_path = Path(os.getenv("CHECKLIST_TRACKING_DB_PATH", data_dir / "app.db"))
    con = connect(db_path)
    init_db(con)
    return con


def _run_overdue(con, now: datetime, dry_run: bool) -> dict[str, int]:
    instances = load_overdue_with_alerts(con, now)
    if dry_run:
        for instance in instances:
            subject, body = build_overdue_notice(
                instance.device_name or instance.device_id,
                instance.device_location,
                instance.scheduled_date,
                list(instance.tasks),
                deadline=instance_deadline(instance),
                todolist_id=instance.id,
            )
            print(f"--- {instance.alert.email} ---")
            print(subject)
            print(body)
            print("")
        return {"processed": 0, "errors": 0, "dry_run": len(instances)}

    result = process_overdue_instances(
        instances,
        EmailNotifier(),
        TodolistAlertRepository(con),
        now,
    )
    for detail in result.details:
        if detail["error"]:
            LOGGER.error("%s -> %s: %s", detail["todolist_id"], detail["email"], detail["error"])
    return {"processed": result.processed_count, "errors": result.error_count, "dry_run": 0}


def _run_export(
    con,
    date_from: date,
    date_to: date,
    now: datetime,
    output_format: str,
    output: Path,
) -> int:
    matrix = load_matrix(con, date_from, date_to, resolve_role(con), now)
    groups_df = matrix_to_frame(matrix.groups)
    if output_format == "csv":
        payload = to_csv_bytes(groups_df)
    else:
        payload = to_xlsx_bytes(
            {
                "Matrix": groups_df,
                "By control": aggregated_to_frame(matrix.aggregated),
                "Checklists": todolists_to_frame(load_todolists(con, date_from, date_to), now),
            }
        )
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(payload)
    LOGGER.info("Exported %s matrix rows to %s", len(groups_df), output)
    return len(groups_df)


def main(argv: list[str] | None = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")
    parser = argparse.ArgumentParser(description="Checklist scheduling and alert tools.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    overdue = subparsers.add_parser("overdue", help="Send overdue checklist notices.")
    overdue.add_argument("--dry-run", action="store_true", help="Print emails without sending.")
    overdue.add_argument("--now", help="Override current time (YYYY-MM-DDTHH:MM).")

    export = subparsers.add_parser("export", help="Export the scheduling matrix.")
    export.add_argument("--from", dest="date_from", required=True, help="First date (YYYY-MM-DD).")
    export.add_argument("--to", dest="date_to", required=True, help="Last date (YYYY-MM-DD).")
    export.add_argument("--format", choices=["csv", "xlsx"], default="csv")
    export.add_argument("--output", help="Output file path.")
    export.add_argument("--now", help="Override current time (YYYY-MM-DDTHH:MM).")

    args = parser.parse_args(argv)

    try:
        now = _parse_now(args.now)
        if args.command == "overdue":
            if not notifications_enabled():
                LOGGER.info(
                    "Email notifications disabled "
                    "(CHECKLIST_TRACKING_EMAIL_NOTIFICATIONS_ENABLED=false)."
                )
                return 0
            if not args.dry_run:
                status = smtp_config_status()
                if not status["configured"]:
                    LOGGER.error("SMTP not configured: %s", ", ".join(status["missing"]))
                    return 1
            con = _get_db_connection()
            counts = _run_overdue(con, now, args.dry_run)
            LOGGER.info("Summary: %s", counts)
            return 1 if counts["errors"] else 0

        date_from = _parse_date(args.date_from, "--from")
        date_to = _parse_date(args.date_to, "--to")
        output = Path(
            args.output
            or f"checklist_matrix_{date_from.isoformat()}_{date_to.isoformat()}.{args.format}"
        )
        con = _get_db_connection()
        _run_export(con, date_from, date_to, now, args.format, output)
        return 0
    except (ChecklistTrackingError, ValueError) as exc:
        LOGGER.error("%s", exc)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
