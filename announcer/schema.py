import re
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

MIN_INTERVAL_MINUTES = 1
MAX_INTERVAL_MINUTES = 7 * 24 * 60  # 10080


class IntervalUnit(Enum):
    MINUTES = "minutes"
    HOURS = "hours"
    DAYS = "days"

    @property
    def minutes(self) -> int:
        return _UNIT_MINUTES[self]


_UNIT_MINUTES = {
    IntervalUnit.MINUTES: 1,
    IntervalUnit.HOURS: 60,
    IntervalUnit.DAYS: 24 * 60,
}

# The remote panel stores Portuguese unit names, operators type short forms.
_UNIT_ALIASES = {
    IntervalUnit.MINUTES: {"m", "min", "mins", "minute", "minutes", "minuto", "minutos"},
    IntervalUnit.HOURS: {"h", "hr", "hrs", "hour", "hours", "hora", "horas"},
    IntervalUnit.DAYS: {"d", "day", "days", "dia", "dias"},
}

_INTERVAL_TOKEN = re.compile(r"(\d+)([mhd])")


def normalize_unit(unit: Any) -> Optional[IntervalUnit]:
    """Map a unit name or alias to an IntervalUnit; None if unknown."""
    if isinstance(unit, IntervalUnit):
        return unit
    if not isinstance(unit, str):
        return None
    key = unit.strip().lower()
    for candidate, aliases in _UNIT_ALIASES.items():
        if key in aliases:
            return candidate
    return None


def unit_to_minutes(unit: IntervalUnit) -> int:
    return unit.minutes


def interval_minutes(count: int, unit: IntervalUnit) -> int:
    return count * unit.minutes


def interval_millis(count: int, unit: IntervalUnit) -> int:
    return interval_minutes(count, unit) * 60 * 1000


def _is_non_empty_str(v: Any) -> bool:
    return isinstance(v, str) and v.strip() != ""


def validate_job(content: Any, interval_count: Any, unit: Any) -> List[str]:
    """
    Returns a list of validation error messages for a locally created job.
    Empty list means valid.
    """
    errors: List[str] = []

    if not _is_non_empty_str(content):
        errors.append("Content must be a non-empty string")

    resolved = normalize_unit(unit)
    if resolved is None:
        errors.append(f"Unknown interval unit: {unit!r}")

    # bool is an int subclass; reject it explicitly
    if isinstance(interval_count, bool) or not isinstance(interval_count, int):
        errors.append("Interval count must be an integer")
    elif interval_count < 1:
        errors.append("Interval count must be positive")
    elif resolved is not None:
        total = interval_minutes(interval_count, resolved)
        if not MIN_INTERVAL_MINUTES <= total <= MAX_INTERVAL_MINUTES:
            errors.append(
                f"Interval must be between {MIN_INTERVAL_MINUTES} minute and 7 days "
                f"({MAX_INTERVAL_MINUTES} minutes), got {total} minutes"
            )

    return errors


def parse_interval(text: str) -> Tuple[int, IntervalUnit]:
    """
    Parse shorthand such as ``30m``, ``2h30m`` or ``1d`` into (count, unit).

    The total is expressed in the largest unit that divides it evenly.

    Raises:
        ValueError: If no ``<number><m|h|d>`` token is found
    """
    compact = re.sub(r"\s+", "", (text or "").lower())
    matches = _INTERVAL_TOKEN.findall(compact)
    if not matches:
        raise ValueError(f"Invalid interval format: {text!r} (examples: 30m, 1h, 2h30m, 1d)")

    total = 0
    for value, suffix in matches:
        total += int(value) * normalize_unit(suffix).minutes

    if total >= 1440 and total % 1440 == 0:
        return total // 1440, IntervalUnit.DAYS
    if total >= 60 and total % 60 == 0:
        return total // 60, IntervalUnit.HOURS
    return total, IntervalUnit.MINUTES


def format_interval(count: int, unit: IntervalUnit) -> str:
    name = unit.value[:-1] if count == 1 else unit.value
    return f"every {count} {name}"


def _parse_timestamp(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if not _is_non_empty_str(value):
        return None
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


@dataclass(frozen=True)
class RemoteJob:
    """A job entry as returned by the remote authority."""

    remote_id: str
    group_id: str
    content: str
    interval_count: int
    unit: IntervalUnit
    local_job_id: Optional[str] = None
    last_sent_at: Optional[datetime] = None

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "RemoteJob":
        """
        Decode one remote entry. Remote jobs are trusted as-is: unknown units
        fall back to minutes and no interval bound is enforced.

        Raises:
            ValueError: If the id, group or interval is missing or malformed
        """
        if not isinstance(data, dict):
            raise ValueError(f"Remote job must be an object, got {type(data).__name__}")
        remote_id = data.get("id")
        group_id = data.get("group_id")
        if remote_id is None or str(remote_id).strip() == "":
            raise ValueError("Remote job is missing 'id'")
        if not _is_non_empty_str(group_id):
            raise ValueError(f"Remote job {remote_id} is missing 'group_id'")
        try:
            count = int(data.get("interval"))
        except (TypeError, ValueError):
            raise ValueError(f"Remote job {remote_id} has invalid interval {data.get('interval')!r}")

        local_job_id = data.get("local_job_id")
        if local_job_id is not None and str(local_job_id).strip() != "":
            local_job_id = str(local_job_id).strip()
        else:
            local_job_id = None

        return cls(
            remote_id=str(remote_id),
            group_id=group_id,
            content=data.get("content") or "",
            interval_count=count,
            unit=normalize_unit(data.get("unit")) or IntervalUnit.MINUTES,
            local_job_id=local_job_id,
            last_sent_at=_parse_timestamp(data.get("last_sent_at")),
        )


@dataclass(frozen=True)
class JobRecord:
    """A job as cached locally. Immutable; timers hold the snapshot they were given."""

    group_id: str
    local_job_id: str
    content: str
    interval_count: int
    interval_unit: IntervalUnit
    created_at: datetime
    remote_id: Optional[str] = None
    last_sent_at: Optional[datetime] = None

    @property
    def key(self) -> Tuple[str, str]:
        return (self.group_id, self.local_job_id)

    @property
    def interval_millis(self) -> int:
        return interval_millis(self.interval_count, self.interval_unit)

    def with_last_sent(self, sent_at: datetime) -> "JobRecord":
        return replace(self, last_sent_at=sent_at)

    @classmethod
    def from_remote(cls, remote: RemoteJob, local_job_id: str, created_at: datetime) -> "JobRecord":
        return cls(
            group_id=remote.group_id,
            local_job_id=local_job_id,
            content=remote.content,
            interval_count=remote.interval_count,
            interval_unit=remote.unit,
            created_at=created_at,
            remote_id=remote.remote_id,
            last_sent_at=remote.last_sent_at,
        )
