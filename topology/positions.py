from __future__ import annotations

import json, os, threading
from typing import Dict, Iterable, Literal, Optional

from . import config
from .logutil import get_logger
from .models import ROOT_ID, Position

logger = get_logger(__name__)

POLICY = Literal["memory", "file"]


class PositionStore:
	"""
	Node id -> (x, y), carried from one reconciliation pass to the next.

	Policy "memory" forgets everything with the process. Policy "file" loads
	from and saves to a JSON file ({id: [x, y]}) so manual drags survive a
	restart. Either way positions are advisory and never sent to the backing
	store.
	"""
	def __init__(self, policy: POLICY = "memory", path: Optional[str] = None):
		if policy not in ("memory", "file"):
			raise ValueError(f"unknown position policy: {policy!r}")
		self.policy = policy
		self.path = path or config.POSITIONS_PATH
		self._positions: Dict[str, Position] = {}
		self._lock = threading.RLock()
		if self.policy == "file":
			self._positions = self._load()

	@classmethod
	def from_env(cls) -> "PositionStore":
		return cls(policy=config.POSITIONS_POLICY, path=config.POSITIONS_PATH)  # type: ignore[arg-type]

	def get(self, node_id: str) -> Optional[Position]:
		return self._positions.get(node_id)

	def __contains__(self, node_id: object) -> bool:
		return node_id in self._positions

	def __len__(self) -> int:
		return len(self._positions)

	def snapshot(self) -> Dict[str, Position]:
		with self._lock:
			return dict(self._positions)

	def update(self, positions: Dict[str, Position]) -> None:
		with self._lock:
			for node_id, (x, y) in positions.items():
				self._positions[node_id] = (float(x), float(y))
		self._save()

	def move(self, node_id: str, x: float, y: float) -> bool:
		"""Manual drag; last writer wins. The root stays pinned."""
		if node_id == ROOT_ID:
			return False
		with self._lock:
			self._positions[node_id] = (float(x), float(y))
		self._save()
		return True

	def prune(self, keep: Iterable[str]) -> int:
		"""Forget every node not in `keep`; returns how many were dropped."""
		keep = set(keep)
		with self._lock:
			gone = [k for k in self._positions if k not in keep]
			for k in gone:
				del self._positions[k]
		if gone:
			self._save()
		return len(gone)

	# ----- persistence -----
	def _load(self) -> Dict[str, Position]:
		try:
			with open(self.path, "r", encoding="utf-8") as f:
				data = json.load(f)
		except FileNotFoundError:
			return {}
		except (OSError, ValueError) as e:
			logger.warning("could not read positions file", extra={"path": self.path, "error": str(e)})
			return {}
		if not isinstance(data, dict):
			return {}
		out: Dict[str, Position] = {}
		for k, v in data.items():
			if isinstance(v, list) and len(v) == 2:
				try:
					out[str(k)] = (float(v[0]), float(v[1]))
				except (TypeError, ValueError):
					continue
		return out

	def _save(self) -> None:
		if self.policy != "file":
			return
		with self._lock:
			data = {k: [x, y] for k, (x, y) in self._positions.items()}
			tmp = self.path + ".tmp"
			try:
				os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
				with open(tmp, "w", encoding="utf-8") as f:
					json.dump(data, f, indent=2, sort_keys=True)
				os.replace(tmp, self.path)
			except OSError as e:
				logger.warning("could not write positions file", extra={"path": self.path, "error": str(e)})
