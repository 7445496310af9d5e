"""Effective-date resolution.

The date a request operates "as of" is resolved through an override chain:

    explicit per-request override → global ``test_date_override`` setting → real date

Only the HTTP layer and the startup job call into this module; services receive
``today`` / ``now`` as plain arguments.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from workday.common.constants import TIMEZONE

logger = logging.getLogger(__name__)


def parse_iso_date(raw: object) -> Optional[date]:
    """Parse ``YYYY-MM-DD`` strictly; return None for anything else."""
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    if not isinstance(raw, str):
        return None
    value = raw.strip()
    if len(value) != 10:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def get_zone(timezone_name: Optional[str]) -> ZoneInfo:
    """Return the configured zone, falling back to the default on bad names."""
    try:
        return ZoneInfo(timezone_name or TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, using %s", timezone_name, TIMEZONE)
        return ZoneInfo(TIMEZONE)


def now_in(timezone_name: Optional[str]) -> datetime:
    """Wall-clock time in the configured timezone."""
    return datetime.now(timezone.utc).astimezone(get_zone(timezone_name))


def resolve_effective_date(
    *,
    timezone_name: Optional[str],
    global_override: Optional[str] = None,
    request_override: Optional[str] = None,
) -> date:
    """Walk the override chain and return the first date that parses."""
    for candidate in (request_override, global_override):
        if candidate:
            parsed = parse_iso_date(candidate)
            if parsed is not None:
                return parsed
            logger.warning("Ignoring unparsable date override %r", candidate)
    return now_in(timezone_name).date()


def effective_now(today: date, timezone_name: Optional[str]) -> datetime:
    """Combine the effective date with the current wall-clock time of day.

    When no override is active this is simply "now"; with an override the
    time of day is kept so check-in / check-out ordering still holds.
    """
    current = now_in(timezone_name)
    return current.replace(year=today.year, month=today.month, day=today.day)


def month_key(d: date) -> str:
    """``YYYY-MM`` key used for accrual checkpoints."""
    return f"{d.year:04d}-{d.month:02d}"
