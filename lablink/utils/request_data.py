from datetime import date, datetime, timezone

from flask import request

from lablink.errors import ValidationError


def json_body() -> dict:
    return request.get_json(silent=True) or {}


def require_fields(data: dict, *names):
    missing = [n for n in names if data.get(n) in (None, "")]
    if missing:
        raise ValidationError(f"{', '.join(missing)} zorunlu")


def parse_int(value, field: str, default=None) -> int:
    if value is None or value == "":
        if default is None:
            raise ValidationError(f"{field} zorunlu")
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{field} sayı olmalı")


def parse_bool(value, field: str) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("1", "true", "yes", "on"):
        return True
    if text in ("0", "false", "no", "off"):
        return False
    raise ValidationError(f"{field} true/false olmalı")


def parse_date(value, field: str) -> date:
    try:
        return date.fromisoformat(str(value))
    except (TypeError, ValueError):
        raise ValidationError(f"{field} YYYY-MM-DD formatında olmalı")


def parse_datetime(value, field: str) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(str(value))
    except ValueError:
        raise ValidationError(f"{field} ISO formatında olmalı")
    # DB kolonları naive UTC
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed
