from __future__ import annotations

SLOT_KIND_STANDARD = "standard"
SLOT_KIND_CUSTOM = "custom"

# Canonical [start_hour, end_hour) per standard slot. Night wraps midnight.
STANDARD_SLOT_HOURS: dict[str, tuple[int, int]] = {
    "morning": (6, 12),
    "afternoon": (12, 18),
    "evening": (18, 22),
    "night": (22, 6),
    "full-day": (7, 17),
}

STANDARD_SLOT_LABELS: dict[str, str] = {
    "morning": "Morning",
    "afternoon": "Afternoon",
    "evening": "Evening",
    "night": "Night",
    "full-day": "Full day",
}

# Slot names stored by the legacy scheduling screens.
STANDARD_SLOT_ALIASES: dict[str, str] = {
    "mattina": "morning",
    "pomeriggio": "afternoon",
    "sera": "evening",
    "notte": "night",
    "giornata": "full-day",
    "full_day": "full-day",
    "fullday": "full-day",
}

TOLERANCE_HOURS = 3

STATUS_PENDING = "pending"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"
STATUS_OVERDUE = "overdue"

STATUS_LABELS: dict[str, str] = {
    STATUS_PENDING: "Pending",
    STATUS_IN_PROGRESS: "In progress",
    STATUS_COMPLETED: "Completed",
    STATUS_OVERDUE: "Overdue",
}

FIELD_TYPES = ("text", "textarea", "number", "decimal", "date", "boolean", "select")

CONDITION_NUMERIC = "numeric"
CONDITION_TEXT = "text"
CONDITION_BOOLEAN = "boolean"
CONDITION_SELECT = "select"
CONDITION_TYPES = (CONDITION_NUMERIC, CONDITION_TEXT, CONDITION_BOOLEAN, CONDITION_SELECT)

ROLE_ADMIN = "admin"
ROLE_OPERATOR = "operator"
ROLES = (ROLE_ADMIN, ROLE_OPERATOR)

GROUP_SINGLE = "single"
GROUP_COMPOSITE = "composite"
