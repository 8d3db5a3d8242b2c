"""
Rule Engine: next-run computation for recurring bill-pay and transfer rules.

compute_next_run(start_time, frequency, now) walks the rule's fixed grid
(start, start + 1 period, start + 2 periods, ...) and returns the first
point strictly after now. Missed occurrences are skipped, not replayed: a
weekly rule that started three Mondays ago reports next Monday.

Each grid point is derived from the anchor (start + n * period) rather
than from the previous point, so calendar clamping never drifts: a
monthly rule anchored on Jan 31 runs Feb 28 (or 29), Mar 31, Apr 30, ...

Frequencies are the named periods below or, for bill pay, a five-field
cron expression evaluated with croniter: the first match at or after a
future start_time, otherwise the first match after now.

A start_time that cannot be parsed is returned unchanged instead of
raising. Callers check the result with is_valid_run() before storing it.
The end_time boundary is also the caller's concern; RuleScheduler.stamp()
implements it for ORM rules.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from croniter import croniter
from dateutil.relativedelta import relativedelta

from bank_ledger.exceptions import InvalidFrequencyError, InvalidScheduleError


# name -> (period, period length, unit of that length); the length only
# seeds the jump-ahead in compute_next_run
FREQUENCIES: dict[str, tuple[relativedelta, int, str]] = {
    "weekly": (relativedelta(weeks=1), 7, "days"),
    "biweekly": (relativedelta(weeks=2), 14, "days"),
    "monthly": (relativedelta(months=1), 1, "months"),
    "quarterly": (relativedelta(months=3), 3, "months"),
    "yearly": (relativedelta(years=1), 12, "months"),
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """SQLite hands back naive datetimes; every stored time is UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def check_window(start_time: datetime, end_time: datetime | None) -> None:
    if end_time is not None and as_utc(end_time) <= as_utc(start_time):
        raise InvalidScheduleError("end_time must be after start_time")


def is_cron(frequency: str) -> bool:
    return len(frequency.split()) == 5 and croniter.is_valid(frequency)


def normalize_frequency(frequency: str) -> str:
    """Return the canonical form of a frequency, or raise InvalidFrequencyError."""
    if not isinstance(frequency, str):
        raise InvalidFrequencyError(str(frequency))
    candidate = frequency.strip()
    if candidate.lower() in FREQUENCIES:
        return candidate.lower()
    collapsed = " ".join(candidate.split())
    if is_cron(collapsed):
        return collapsed
    raise InvalidFrequencyError(frequency)


def parse_start_time(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, str):
        try:
            return as_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            return None
    return None


def is_valid_run(value: Any) -> bool:
    return isinstance(value, datetime)


def compute_next_run(start_time: Any, frequency: str, now: datetime) -> datetime | Any:
    """
    First occurrence of the rule's schedule strictly after now.

    Args:
        start_time: Anchor of the schedule. A datetime or ISO-8601 string;
                    naive values are taken as UTC.
        frequency: weekly, biweekly, monthly, quarterly, yearly, or a
                   five-field cron expression.
        now: Reference time.

    Returns:
        A timezone-aware UTC datetime, or start_time itself when it cannot
        be parsed.

    Raises:
        InvalidFrequencyError: If the frequency is not recognised.
    """
    frequency = normalize_frequency(frequency)
    start = parse_start_time(start_time)
    if start is None:
        return start_time
    now = as_utc(now)

    if frequency not in FREQUENCIES:
        # A future start that matches the expression is itself the first run
        base = start - timedelta(seconds=1) if start > now else now
        return croniter(frequency, base).get_next(datetime)

    period, length, unit = FREQUENCIES[frequency]
    if unit == "days":
        elapsed = (now - start).days
    else:
        elapsed = (now.year - start.year) * 12 + now.month - start.month

    # Jump to just before now, then step; the estimate may undershoot by one
    steps = max(elapsed // length - 1, 0)
    candidate = start + period * steps
    while candidate <= now:
        steps += 1
        candidate = start + period * steps
    return candidate


class RuleScheduler:
    """
    Stamps next_run_at on recurring rules.

    The clock is injectable so tests can pin "now".
    """

    def __init__(self, clock: Callable[[], datetime] = utcnow):
        self.clock = clock

    def next_run(
        self, start_time: Any, frequency: str, end_time: datetime | None = None
    ) -> datetime | None:
        run = compute_next_run(start_time, frequency, self.clock())
        if not is_valid_run(run):
            raise InvalidScheduleError(f"Invalid start time {start_time!r}")
        if end_time is not None and run > as_utc(end_time):
            return None
        return run

    def stamp(self, rule) -> None:
        """
        Recompute rule.next_run_at from the rule's own start_time.

        Always anchored to start_time, never to the previous next_run_at or
        to now, so changing the frequency keeps the rule on its original
        grid. A rule whose next occurrence falls after end_time lapses
        (next_run_at = None).
        """
        rule.next_run_at = self.next_run(rule.start_time, rule.frequency, rule.end_time)
