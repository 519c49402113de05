# Overview: Query-string helpers shared by list and report routes.

from __future__ import annotations

from datetime import datetime, time

from flask import request

from ..errors import ValidationError
from ..time_utils import parse_iso_date, parse_iso_datetime


def bool_arg(name: str) -> bool | None:
    """'true'/'false' (any case) -> bool; absent -> None."""
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    lowered = raw.strip().lower()
    if lowered in ("true", "1", "yes"):
        return True
    if lowered in ("false", "0", "no"):
        return False
    raise ValidationError(f"{name} must be true or false")


def page_args() -> tuple[int | None, int | None]:
    return request.args.get("page", type=int), request.args.get("per_page", type=int)


def datetime_range_args() -> tuple[datetime | None, datetime | None]:
    """
    from/to query params as UTC-naive datetimes.

    A bare date in `to` covers the whole day, so both ends are inclusive.
    """
    raw_from = request.args.get("from")
    raw_to = request.args.get("to")
    try:
        start = parse_iso_datetime(raw_from)
        end = parse_iso_datetime(raw_to)
    except ValueError:
        raise ValidationError("from/to must be ISO-8601 dates or datetimes")
    if end is not None and len(raw_to.strip()) == 10:
        end = datetime.combine(end.date(), time.max)
    if start and end and start > end:
        raise ValidationError("from must be before to")
    return start, end


def date_range_args():
    try:
        start = parse_iso_date(request.args.get("from"))
        end = parse_iso_date(request.args.get("to"))
    except ValueError:
        raise ValidationError("from/to must be ISO-8601 dates")
    if start and end and start > end:
        raise ValidationError("from must be before to")
    return start, end
