"""Date-window and money helpers shared by the budget, insight and transaction services."""
from calendar import monthrange
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal

ZERO = Decimal("0")
_CENT = Decimal("0.01")


# ─── Money ───────────────────────────────────────────────────────────────────

def to_money(value) -> Decimal:
    """Coerce a DB aggregate (None, float, int, Decimal) to a 2-place Decimal; None → 0."""
    if value is None:
        return ZERO.quantize(_CENT)
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def round2(value: Decimal) -> Decimal:
    return value.quantize(_CENT, rounding=ROUND_HALF_UP)


def safe_ratio(numerator: Decimal, denominator: Decimal) -> Decimal:
    """numerator / denominator, or 0 when the denominator is 0."""
    if not denominator:
        return ZERO
    return numerator / denominator


def percentage(part: Decimal, whole: Decimal) -> Decimal:
    return round2(safe_ratio(part, whole) * 100)


# ─── Months ──────────────────────────────────────────────────────────────────

def parse_month(month: str) -> tuple[int, int]:
    """Split a YYYY-MM string into (year, month)."""
    try:
        year, mon = int(month[:4]), int(month[5:7])
    except (ValueError, IndexError, TypeError):
        raise ValueError(f"month must be YYYY-MM, got {month!r}")
    if len(month) != 7 or month[4] != "-" or not 1 <= mon <= 12:
        raise ValueError(f"month must be YYYY-MM, got {month!r}")
    return year, mon


def month_bounds(month: str) -> tuple[datetime, datetime]:
    """Return (first day 00:00:00, last day 23:59:59.999) in UTC for a YYYY-MM string."""
    year, mon = parse_month(month)
    last = monthrange(year, mon)[1]
    start = datetime(year, mon, 1, tzinfo=timezone.utc)
    end = datetime(year, mon, last, 23, 59, 59, 999000, tzinfo=timezone.utc)
    return start, end


def month_key(value: datetime) -> str:
    return value.strftime("%Y-%m")


def months_ago(now: datetime, months: int) -> datetime:
    """Shift `now` back by calendar months, clamping the day (Mar 31 → Feb 28/29)."""
    index = now.year * 12 + (now.month - 1) - months
    year, mon = divmod(index, 12)
    mon += 1
    day = min(now.day, monthrange(year, mon)[1])
    return now.replace(year=year, month=mon, day=day)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
