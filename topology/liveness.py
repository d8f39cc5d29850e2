from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional, Union

ALIVE = "alive"
DEAD = "dead"

DEAD_AFTER = 300.0
PULSE_WINDOW = 5.0

Timestamp = Union[datetime, str, int, float]


def utcnow() -> datetime:
	return datetime.now(timezone.utc)


def parse_timestamp(value: Optional[Timestamp]) -> Optional[datetime]:
	"""
	Normalize a heartbeat / end timestamp to an aware UTC datetime.

	Accepts ISO-8601 strings (a trailing 'Z' or an explicit offset; naive
	strings are taken as UTC), epoch seconds, or datetimes. None and ""
	mean "no timestamp". Anything else raises ValueError.
	"""
	if value is None or value == "":
		return None
	if isinstance(value, bool):
		raise ValueError(f"not a timestamp: {value!r}")
	if isinstance(value, datetime):
		dt = value
	elif isinstance(value, (int, float)):
		try:
			dt = datetime.fromtimestamp(float(value), tz=timezone.utc)
		except (OverflowError, OSError, ValueError):
			raise ValueError(f"timestamp out of range: {value!r}") from None
	elif isinstance(value, str):
		s = value.strip()
		if s.endswith("Z") or s.endswith("z"):
			s = s[:-1] + "+00:00"
		try:
			dt = datetime.fromisoformat(s)
		except ValueError:
			raise ValueError(f"unparsable timestamp: {value!r}") from None
	else:
		raise ValueError(f"not a timestamp: {value!r}")
	if dt.tzinfo is None:
		dt = dt.replace(tzinfo=timezone.utc)
	try:
		return dt.astimezone(timezone.utc)
	except OverflowError:
		raise ValueError(f"timestamp out of range: {value!r}") from None


def elapsed_seconds(last_heartbeat: datetime, now: datetime) -> float:
	# clock skew can put the heartbeat in the future
	return max(0.0, (now - last_heartbeat).total_seconds())


def classify(last_heartbeat: Optional[datetime], now: datetime, dead_after: float = DEAD_AFTER) -> str:
	"""
	ALIVE or DEAD from heartbeat recency. DEAD only when strictly more than
	`dead_after` seconds have elapsed. An agent that never checked in is ALIVE.
	"""
	if last_heartbeat is None:
		return ALIVE
	if elapsed_seconds(last_heartbeat, now) > dead_after:
		return DEAD
	return ALIVE


def is_recent(last_heartbeat: Optional[datetime], now: datetime, window: float = PULSE_WINDOW) -> bool:
	if last_heartbeat is None:
		return False
	return elapsed_seconds(last_heartbeat, now) < window


def describe_checkin(last_heartbeat: Optional[datetime], now: datetime) -> str:
	if last_heartbeat is None:
		return "NEVER"
	diff = int(elapsed_seconds(last_heartbeat, now))
	if diff < 60:
		return f"{diff}s ago"
	if diff < 3600:
		return f"{diff // 60}m ago"
	if diff < 86400:
		return f"{diff // 3600}h ago"
	return f"{diff // 86400}d ago"
