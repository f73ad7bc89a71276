from datetime import datetime, timezone, date


def utcnow() -> datetime:
    # DB kolonları naive UTC tutuyor
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today() -> date:
    return utcnow().date()


def epoch_ms() -> int:
    return int(datetime.now(timezone.utc).timestamp() * 1000)
