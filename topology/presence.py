from __future__ import annotations

import threading
from datetime import datetime
from typing import Dict, Optional

from .liveness import utcnow


class SeenTracker:
	"""
	Ids rendered at least once during this session. Grows monotonically:
	an agent that disappears (hidden, deregistered) and comes back is not new.
	"""
	def __init__(self):
		self._first_seen: Dict[str, datetime] = {}
		self._lock = threading.Lock()

	def observe(self, agent_id: str, now: Optional[datetime] = None) -> bool:
		with self._lock:
			if agent_id in self._first_seen:
				return False
			self._first_seen[agent_id] = now or utcnow()
			return True

	def first_seen_at(self, agent_id: str) -> Optional[datetime]:
		return self._first_seen.get(agent_id)

	def __contains__(self, agent_id: object) -> bool:
		return agent_id in self._first_seen

	def __len__(self) -> int:
		return len(self._first_seen)

	@property
	def seen_ids(self) -> frozenset:
		return frozenset(self._first_seen)
