import threading
from typing import Callable, Optional

import requests

from topology import config
from topology.logutil import get_logger
from topology.models import MutationResult, RenderableGraph
from topology.reconcile import ReconciliationEngine

from .api_client import APIClient

logger = get_logger("client.poller")


class TopologyPoller:
	"""
	Fixed-interval driver: fetch a snapshot, reconcile it, hand the graph to
	`on_graph`. A failed fetch keeps the last graph and flags it stale.
	"""
	def __init__(self, client: APIClient, engine: Optional[ReconciliationEngine] = None,
	             interval: float = config.POLL_INTERVAL_SECONDS,
	             on_graph: Optional[Callable[[RenderableGraph], None]] = None):
		self.client = client
		self.engine = engine or ReconciliationEngine()
		self.interval = interval
		self.on_graph = on_graph
		self._stop = threading.Event()
		self._thread: Optional[threading.Thread] = None

	def poll_once(self) -> Optional[RenderableGraph]:
		try:
			snap = self.client.fetch_snapshot()
		except (requests.RequestException, ValueError) as e:
			graph = self.engine.mark_refresh_failed(e)
		else:
			if snap.dropped:
				logger.warning("snapshot had malformed records", extra={"count": snap.dropped})
			graph = self.engine.reconcile(snap)
		if graph is not None and self.on_graph:
			self.on_graph(graph)
		return graph

	def refresh(self) -> Optional[RenderableGraph]:
		"""Out-of-band poll, e.g. right after a mutation completes."""
		return self.poll_once()

	def mutate(self, op: Callable[..., MutationResult], *args, **kwargs) -> MutationResult:
		"""Submit a mutation, then refresh. The graph only changes through the snapshot."""
		result = op(*args, **kwargs)
		if not result.ok:
			logger.warning("mutation rejected", extra={"op": getattr(op, "__name__", str(op)), "error": result.error})
		self.refresh()
		return result

	# ---------- background loop ----------
	def _run(self):
		while not self._stop.is_set():
			try:
				self.poll_once()
			except Exception:
				logger.exception("poll cycle failed")
			self._stop.wait(self.interval)

	def is_running(self) -> bool:
		return self._thread is not None and self._thread.is_alive()

	def join(self, timeout: Optional[float] = None) -> bool:
		"""Wait for the loop to exit; True once it has."""
		thread = self._thread
		if thread is not None:
			thread.join(timeout)
		return not self.is_running()

	def start(self):
		if self._thread and self._thread.is_alive():
			return
		self._stop.clear()
		self._thread = threading.Thread(target=self._run, name="topology-poller", daemon=True)
		self._thread.start()

	def stop(self, timeout: Optional[float] = None):
		self._stop.set()
		if self._thread:
			self._thread.join(timeout)
			self._thread = None
