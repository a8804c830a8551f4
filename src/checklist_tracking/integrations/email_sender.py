from __future__ import annotations

from datetime import date, datetime
import logging
import os
import smtplib
from email.message import EmailMessage
from typing import Any

from checklist_tracking.domain.errors import EmailDeliveryError
from checklist_tracking.domain.models import TaskItem, TriggeredCondition
from checklist_tracking.services.notifications import build_alert_notice, build_overdue_notice

LOGGER = logging.getLogger(__name__)


def parse_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "y", "on"}


def notifications_enabled() -> bool:
    return parse_bool(os.getenv("CHECKLIST_TRACKING_EMAIL_NOTIFICATIONS_ENABLED"), default=False)


def _load_smtp_config() -> tuple[dict[str, Any] | None, list[str]]:
    host = os.getenv("CHECKLIST_TRACKING_SMTP_HOST")
    port = int(os.getenv("CHECKLIST_TRACKING_SMTP_PORT", "587"))
    user = os.getenv("CHECKLIST_TRACKING_SMTP_USER")
    password = os.getenv("CHECKLIST_TRACKING_SMTP_PASS")
    from_address = os.getenv("CHECKLIST_TRACKING_SMTP_FROM") or user
    tls = parse_bool(os.getenv("CHECKLIST_TRACKING_SMTP_TLS"), default=True)

    missing = [name for name, value in {"CHECKLIST_TRACKING_SMTP_HOST": host}.items() if not value]
    if not from_address:
        missing.append("CHECKLIST_TRACKING_SMTP_FROM")

    if missing:
        return None, missing

    return {
        "host": host,
        "port": port,
        "user": user,
        "password": password,
        "from_address": from_address,
        "tls": tls,
    }, []


def smtp_config_status() -> dict[str, Any]:
    config, missing = _load_smtp_config()
    return {
        "configured": config is not None,
        "missing": missing,
        "config": config,
    }


def build_email(subject: str, to_email: str, body_text: str) -> EmailMessage:
    config, _ = _load_smtp_config()
    from_address = (config or {}).get("from_address") or "no-reply@localhost"
    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = from_address
    message["To"] = to_email
    message.set_content(body_text)
    return message


def send_email(message: EmailMessage) -> bool:
    config, missing = _load_smtp_config()
    if not config:
        LOGGER.error("SMTP config missing: %s", ", ".join(missing))
        return False

    try:
        if config["tls"] and config["port"] == 465:
            smtp: smtplib.SMTP = smtplib.SMTP_SSL(config["host"], config["port"])
        else:
            smtp = smtplib.SMTP(config["host"], config["port"])
            if config["tls"]:
                smtp.starttls()
        if config.get("user"):
            smtp.login(config["user"], config.get("password") or "")
        smtp.send_message(message)
        smtp.quit()
        return True
    except (smtplib.SMTPException, OSError) as exc:
        LOGGER.error("SMTP send failed to %s: %s", message.get("To"), exc)
        return False


class EmailNotifier:
    """Delivers checklist notices over SMTP; failures raise ``EmailDeliveryError``."""

    def _deliver(self, to_email: str, subject: str, body: str) -> None:
        if not (to_email or "").strip():
            raise EmailDeliveryError("No recipient address.")
        message = build_email(subject, to_email.strip(), body)
        if not send_email(message):
            raise EmailDeliveryError(f"Email delivery to {to_email} failed.")

    def send_overdue_notice(
        self,
        to_email: str,
        device_name: str,
        device_location: str | None,
        scheduled_execution: date | datetime,
        tasks: list[TaskItem],
        deadline: datetime | None = None,
        todolist_id: str | None = None,
    ) -> None:
        subject, body = build_overdue_notice(
            device_name,
            device_location,
            scheduled_execution,
            tasks,
            deadline=deadline,
            todolist_id=todolist_id,
        )
        self._deliver(to_email, subject, body)

    def send_alert_notice(
        self,
        to_email: str,
        kpi_name: str,
        kpi_description: str | None,
        device_name: str,
        device_location: str | None,
        triggered_value: Any,
        conditions: list[TriggeredCondition],
    ) -> None:
        subject, body = build_alert_notice(
            kpi_name,
            kpi_description,
            device_name,
            device_location,
            triggered_value,
            conditions,
        )
        self._deliver(to_email, subject, body)
