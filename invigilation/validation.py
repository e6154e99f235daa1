import math
import re
from collections.abc import Mapping
from datetime import date
from typing import Any

from invigilation.exceptions import ParseError, ValidationError
from invigilation.timerange import parse_time_range

# stored dates are compared as strings, so only one spelling per day
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def _text(values: Mapping[str, Any], field: str) -> str:
    value = values.get(field)
    return value.strip() if isinstance(value, str) else ""


def parse_count(value: Any) -> int | None:
    """Whole, finite count, or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number) or not number.is_integer():
        return None
    return int(number)


def is_iso_date(raw: str) -> bool:
    if not _DATE_RE.match(raw):
        return False
    try:
        date.fromisoformat(raw)
    except ValueError:
        return False
    return True


def validate(values: Mapping[str, Any]) -> dict[str, str]:
    """
    Check an invigilation request form. Returns field -> message for every
    problem found; an empty dict means the form is valid.
    """
    errors: dict[str, str] = {}

    if not _text(values, "subject"):
        errors["subject"] = "Subject is required"

    raw_date = _text(values, "date")
    if not raw_date:
        errors["date"] = "Date is required"
    elif not is_iso_date(raw_date):
        errors["date"] = "Date must be in YYYY-MM-DD format"

    raw_time = _text(values, "time")
    if not raw_time:
        errors["time"] = "Time is required"
    else:
        try:
            time_range = parse_time_range(raw_time)
        except ParseError:
            errors["time"] = "Time must be in HH:MM - HH:MM format"
        else:
            if time_range.end < time_range.start:
                errors["time"] = "End time must not be before start time"

    if not _text(values, "venue"):
        errors["venue"] = "Venue is required"

    student_count = parse_count(values.get("student_count"))
    if student_count is None or student_count < 0:
        errors["student_count"] = "Students must be 0 or more"

    invigilator_count = parse_count(values.get("invigilator_count"))
    if invigilator_count is None or invigilator_count < 1:
        errors["invigilator_count"] = "Invigilators must be at least 1"

    return errors


def ensure_valid(values: Mapping[str, Any]) -> None:
    errors = validate(values)
    if errors:
        raise ValidationError(errors)
