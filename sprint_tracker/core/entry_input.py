"""Parsing and adjustment of hours typed in by the user."""

from decimal import ROUND_UP, Decimal, InvalidOperation

from sprint_tracker.config.workflow import EXPECTED_HOURS_PER_DAY

HOUR_INCREMENT = 0.5


def parse_hours(text: str) -> float | None:
    """Parse hours, rounded up to two decimals. None if not a number."""
    try:
        value = Decimal(text.strip())
        if not value.is_finite():
            return None
        return float(value.quantize(Decimal("0.01"), rounding=ROUND_UP))
    except (InvalidOperation, AttributeError):
        return None


def is_invalid_hours(text: str) -> bool:
    """Check whether the text is unusable as an amount of hours."""
    return (parse_hours(text) or 0.0) < HOUR_INCREMENT


def increment_hours(text: str) -> str:
    """Add one increment; unparsable text is returned unchanged."""
    hours = parse_hours(text)
    if hours is None:
        return text
    return str(hours + HOUR_INCREMENT)


def decrement_hours(text: str) -> str:
    """Remove one increment, not going below a single increment."""
    hours = parse_hours(text)
    if hours is None:
        return text
    return str(max(hours - HOUR_INCREMENT, HOUR_INCREMENT))


def suggested_hours(
    item_count: int,
    hours_logged_today: float,
    expected_hours_per_day: int = EXPECTED_HOURS_PER_DAY,
) -> float:
    """Split what is left of the working day evenly over the selected items."""
    if item_count < 1:
        return 0.0
    left = Decimal(str(max(expected_hours_per_day - hours_logged_today, 0.0)))
    return float((left / item_count).quantize(Decimal("0.01"), rounding=ROUND_UP))
